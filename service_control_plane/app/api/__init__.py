"""API subpackage for the control plane service.

Routers for catalogs, cluster configuration, endpoints, API keys and the
OpenAI-compatible inference proxy. Handlers stay thin: binding and query
parsing live in ``binding``/``query`` and the work is done by the services
found on ``app.state``.
"""

from fastapi import APIRouter

from . import api_keys, catalogs, clusters, endpoints, inference

router = APIRouter()
router.include_router(catalogs.router)
router.include_router(clusters.router)
router.include_router(endpoints.router)
router.include_router(api_keys.router)
router.include_router(inference.router)
