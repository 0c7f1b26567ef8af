"""Inference endpoint routes."""

from fastapi import APIRouter, Depends, Request

from libs.common.auth import ALLOW_ALL, UserContext, require_roles
from libs.common.config import ControlPlaneConfig
from libs.common.errors import AppError, validation_error
from libs.common.response import http_response
from ..models import CreateEndpointRequest
from ..runtime.endpoint_service import ACTUAL_INSTANCES, HEALTH
from ..runtime.services import Services
from .binding import bind_json, revalidate
from .dependencies import get_app_config, get_services
from .query import get_expand, get_query_options, parse_bool, validate_owner

router = APIRouter(prefix="/endpoints", tags=["endpoints"])


def check_name_length(name: str, max_length: int) -> None:
    if len(name) > max_length:
        raise validation_error(
            "Invalid endpoint name",
            "name",
            f"Length of name should be less than {max_length} for the name {name}",
        )


@router.post("")
async def create_endpoint(
    request: Request,
    user: UserContext = Depends(require_roles(ALLOW_ALL)),
    services: Services = Depends(get_services),
    config: ControlPlaneConfig = Depends(get_app_config),
):
    body = await bind_json(request, CreateEndpointRequest)
    body.set_defaults()
    body = revalidate(body)
    check_name_length(body.name, config.cp_endpoint_name_max_length)
    endpoint_id = services.endpoints.create(user, body)
    return http_response("Endpoint creation triggered successfully", {"id": endpoint_id})


@router.get("")
async def list_endpoints(
    request: Request,
    user: UserContext = Depends(require_roles(ALLOW_ALL)),
    services: Services = Depends(get_services),
    config: ControlPlaneConfig = Depends(get_app_config),
):
    try:
        options = get_query_options(
            request, ["owner_id"], config.cp_list_default_limit, config.cp_list_max_limit
        )
    except AppError as e:
        raise e.with_prefix("Failed to list endpoints")
    validate_owner(user, options)
    items, total = await services.endpoints.list(user, get_expand(request), options)
    return http_response("Endpoints fetched successfully", {"items": items, "total": total})


@router.post("/validate")
async def validate_endpoint(
    request: Request,
    _: UserContext = Depends(require_roles(ALLOW_ALL)),
    services: Services = Depends(get_services),
    config: ControlPlaneConfig = Depends(get_app_config),
):
    """Check ``?endpoint_name=`` is well-formed and not taken."""
    name = request.query_params.get("endpoint_name", "")
    check_name_length(name, config.cp_endpoint_name_max_length)
    services.endpoints.validate_endpoint_name(name)
    return http_response("Endpoint name validated successfully")


@router.get("/apikeys/{endpoint_id}")
async def list_endpoint_api_keys(
    endpoint_id: str,
    user: UserContext = Depends(require_roles(ALLOW_ALL)),
    services: Services = Depends(get_services),
):
    api_keys = services.endpoints.list_api_keys_by_endpoint(user, endpoint_id)
    items = [k.model_dump(exclude={"key_hash"}) for k in api_keys]
    return http_response(
        "API keys for provided endpoint fetched successfully",
        {"items": items, "total": len(items)},
    )


@router.get("/{endpoint_id}")
async def get_endpoint(
    endpoint_id: str,
    request: Request,
    user: UserContext = Depends(require_roles(ALLOW_ALL)),
    services: Services = Depends(get_services),
):
    expand = get_expand(request)
    expand[ACTUAL_INSTANCES] = True
    expand[HEALTH] = True
    endpoint = await services.endpoints.get_by_id(user, endpoint_id, expand)
    return http_response("Endpoint fetched successfully", endpoint)


@router.delete("/{endpoint_id}")
async def delete_endpoint(
    endpoint_id: str,
    request: Request,
    user: UserContext = Depends(require_roles(ALLOW_ALL)),
    services: Services = Depends(get_services),
):
    try:
        force = parse_bool("force", request.query_params.get("force"), default=False)
    except AppError as e:
        raise e.with_prefix("Failed to delete endpoint")
    services.endpoints.delete(user, endpoint_id, force)
    return http_response("Endpoint delete triggered successfully")
