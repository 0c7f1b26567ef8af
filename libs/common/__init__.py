"""Common utilities shared across services.

Includes:
- ``config``: Pydantic-based service configuration from environment variables.
- ``logging``: structured logging setup with structlog.
- ``metrics``: Prometheus metrics helpers.
- ``errors``: error taxonomy mapped onto HTTP statuses.
- ``response``: JSON success/failure envelope.
- ``auth``: JWT helpers and role gates.

Import pattern:
- from libs.common.config import ControlPlaneConfig
- from libs.common.logging import configure_logging
"""
