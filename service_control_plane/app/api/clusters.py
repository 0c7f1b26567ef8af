"""Cluster information and cluster-wide configuration routes."""

from fastapi import APIRouter, Depends, Request

from libs.common.auth import ALLOW_ADMIN, ALLOW_ALL, ALLOW_SUPER_ADMIN, UserContext, require_roles
from libs.common.errors import AppError, ErrorType
from libs.common.response import http_response
from ..models import ClusterConfig, ClusterConfigUpdateRequest, EULA, Language, ListOptions, Pulse
from ..runtime.services import Services
from ..runtime.store import utcnow
from .binding import bind_json
from .dependencies import get_services
from .query import get_query_options

router = APIRouter(prefix="/cluster", tags=["cluster"])


@router.get("/info")
async def get_cluster_info(
    _: UserContext = Depends(require_roles(ALLOW_ALL)),
    services: Services = Depends(get_services),
):
    return http_response("Cluster info fetched successfully", services.clusters.get_nodes_info())


@router.get("/config")
async def get_cluster_config(
    request: Request,
    _: UserContext = Depends(require_roles(ALLOW_ALL)),
    services: Services = Depends(get_services),
):
    """Cluster config, optionally narrowed with ``?type=eula|pulse|language``."""
    options = get_query_options(request, ["type"])
    config = services.clusters.get_config(options)
    return http_response("Cluster config fetched successfully", config.model_dump(exclude_none=True))


@router.patch("/config")
async def update_cluster_config(
    request: Request,
    user: UserContext = Depends(require_roles(ALLOW_SUPER_ADMIN)),
    services: Services = Depends(get_services),
):
    body = await bind_json(request, ClusterConfigUpdateRequest)
    current = services.clusters.get_config(ListOptions())
    now = utcnow()
    update = ClusterConfig()

    if body.eula is not None:
        if current.eula is not None and current.eula.accepted:
            raise AppError(
                ErrorType.INVALID_VALUE,
                "EULA has already been accepted and cannot be changed",
                log=f"user {user.user_id} tried to change an accepted EULA",
            )
        update.eula = EULA(
            accepted=body.eula.accepted,
            name=body.eula.name,
            company=body.eula.company,
            updated_at=now,
        )
    if body.pulse is not None:
        update.pulse = Pulse(accepted=body.pulse.accepted, updated_at=now)
    if body.language is not None:
        update.language = Language(name=body.language.name)

    services.clusters.update_config(user.user_id, update)
    return http_response("Cluster config updated successfully")


@router.get("/health")
async def get_cluster_health(
    _: UserContext = Depends(require_roles(ALLOW_ADMIN)),
    services: Services = Depends(get_services),
):
    """Report records that reference missing resources."""
    issues = services.consistency.get_inconsistent_data()
    return http_response(
        "Cluster health fetched successfully",
        {"consistent": not issues, "inconsistent_resources": issues},
    )
