"""Model catalog routes."""

from fastapi import APIRouter, Depends, Request

from libs.common.auth import ALLOW_ALL, ALLOW_SUPER_ADMIN, UserContext, require_roles
from libs.common.config import ControlPlaneConfig
from libs.common.response import http_response
from ..models import CatalogRequirements, CreateCatalogRequest
from ..runtime.services import Services
from .binding import bind_json, revalidate
from .dependencies import get_app_config, get_services
from .query import get_query_options

router = APIRouter(prefix="/catalogs", tags=["catalogs"])

CATALOG_FILTERS = ["model_name", "deprecated", "source_hub"]


@router.post("")
async def create_catalog(
    request: Request,
    user: UserContext = Depends(require_roles(ALLOW_SUPER_ADMIN)),
    services: Services = Depends(get_services),
):
    body = await bind_json(request, CreateCatalogRequest)
    catalog_id = services.catalogs.create(body, user.user_id)
    return http_response("Catalog created successfully", {"id": catalog_id})


@router.get("")
async def list_catalogs(
    request: Request,
    _: UserContext = Depends(require_roles(ALLOW_ALL)),
    services: Services = Depends(get_services),
    config: ControlPlaneConfig = Depends(get_app_config),
):
    """List catalog entries; deprecated ones are hidden unless asked for."""
    options = get_query_options(
        request, CATALOG_FILTERS, config.cp_list_default_limit, config.cp_list_max_limit
    )
    if options.get_filter("deprecated") is None:
        options.filters["deprecated"] = ["false"]
    items, total = services.catalogs.list(options)
    return http_response("Catalogs listed successfully", {"items": items, "total": total})


@router.post("/requirements")
async def get_requirements(
    request: Request,
    _: UserContext = Depends(require_roles(ALLOW_ALL)),
    services: Services = Depends(get_services),
):
    body = await bind_json(request, CatalogRequirements)
    body.set_defaults()
    body = revalidate(body)
    requirements = services.catalogs.get_requirements(body)
    return http_response("Requirements computed successfully", requirements)


@router.get("/{catalog_id}")
async def get_catalog(
    catalog_id: str,
    _: UserContext = Depends(require_roles(ALLOW_ALL)),
    services: Services = Depends(get_services),
):
    return http_response("Catalog fetched successfully", services.catalogs.get_by_id(catalog_id))


@router.delete("/{catalog_id}")
async def delete_catalog(
    catalog_id: str,
    _: UserContext = Depends(require_roles(ALLOW_SUPER_ADMIN)),
    services: Services = Depends(get_services),
):
    services.catalogs.delete(catalog_id)
    return http_response("Catalog deleted successfully")
