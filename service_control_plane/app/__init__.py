"""Control plane service package.

Layout:
- ``api``: REST routes for catalogs, cluster, endpoints, API keys and inference.
- ``adapters``: outbound HTTP (retrying client, liveness prober, engine client).
- ``runtime``: stream relay and the in-memory service implementations.

Import convenience:
- from service_control_plane.app.main import create_app
"""
