"""Tests for the control plane service.

Unit tests cover the shared libraries, the outbound HTTP adapters and the
stream relay. API tests drive the FastAPI app through ``TestClient`` with
``httpx.MockTransport`` standing in for the cluster.
"""
