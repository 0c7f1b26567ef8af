"""API key routes."""

from fastapi import APIRouter, Depends, Request

from libs.common.auth import ALLOW_ALL, UserContext, require_roles
from libs.common.config import ControlPlaneConfig
from libs.common.response import http_response
from ..models import APIKeyCreateRequest, APIKeyRecord, APIKeyUpdateRequest
from ..runtime.services import Services
from .binding import bind_json
from .dependencies import get_app_config, get_services
from .query import get_query_options, validate_owner

router = APIRouter(prefix="/apikeys", tags=["apikeys"])


def api_key_view(record: APIKeyRecord) -> dict:
    return record.model_dump(exclude={"key_hash"})


@router.post("")
async def create_api_key(
    request: Request,
    user: UserContext = Depends(require_roles(ALLOW_ALL)),
    services: Services = Depends(get_services),
):
    """Create a key; the plaintext is only ever returned here."""
    body = await bind_json(request, APIKeyCreateRequest)
    created = services.api_keys.create(user, body)
    return http_response("API key created successfully", created)


@router.get("")
async def list_api_keys(
    request: Request,
    user: UserContext = Depends(require_roles(ALLOW_ALL)),
    services: Services = Depends(get_services),
    config: ControlPlaneConfig = Depends(get_app_config),
):
    options = get_query_options(
        request, ["owner_id"], config.cp_list_default_limit, config.cp_list_max_limit
    )
    validate_owner(user, options)
    records, total = services.api_keys.list(user, options)
    return http_response(
        "API keys fetched successfully",
        {"items": [api_key_view(r) for r in records], "total": total},
    )


@router.delete("/{api_key_id}")
async def delete_api_key(
    api_key_id: str,
    user: UserContext = Depends(require_roles(ALLOW_ALL)),
    services: Services = Depends(get_services),
):
    services.api_keys.delete(user, api_key_id)
    return http_response("API key deleted successfully")


@router.patch("/{api_key_id}")
async def update_api_key(
    api_key_id: str,
    request: Request,
    user: UserContext = Depends(require_roles(ALLOW_ALL)),
    services: Services = Depends(get_services),
):
    body = await bind_json(request, APIKeyUpdateRequest)
    record = services.api_keys.update(user, api_key_id, body)
    return http_response("API key updated successfully", api_key_view(record))
