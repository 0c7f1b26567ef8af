"""Inference endpoints: lifecycle records plus live health."""

from typing import Dict, List, Optional, Tuple

import structlog

from libs.common.auth import UserContext
from libs.common.errors import AppError, ErrorType, not_found, validation_error
from ..adapters.health_client import HealthClient
from ..adapters.inference_backend import EndpointURLResolver
from ..models import (
    ENDPOINT_NAME_PATTERN,
    APIKeyRecord,
    CreateEndpointRequest,
    EndpointRecord,
    ListOptions,
)
from .store import InMemoryStore, new_id, query, utcnow

logger = structlog.get_logger("endpoint_service")

ACTUAL_INSTANCES = "actual_instances"
HEALTH = "health"


class EndpointService:
    """Owns endpoint records and probes their liveness on demand.

    Parameters
    - store: Shared in-memory tables
    - health_client: Prober used when ``health`` is expanded
    - resolver: Builds the in-cluster URL of an endpoint
    - live_path: Liveness path appended to the endpoint URL
    """

    def __init__(
        self,
        store: InMemoryStore,
        health_client: HealthClient,
        resolver: EndpointURLResolver,
        live_path: str = "/v2/health/live",
    ):
        self.store = store
        self.health_client = health_client
        self.resolver = resolver
        self.live_path = live_path

    def create(self, user: UserContext, request: CreateEndpointRequest) -> str:
        if request.catalog_id not in self.store.catalogs:
            raise validation_error(
                "Failed to create new endpoint", "catalog_id", f"catalog {request.catalog_id} does not exist"
            )
        catalog = self.store.catalogs[request.catalog_id]
        if request.engine not in catalog.supported_engines:
            raise validation_error(
                "Failed to create new endpoint",
                "engine",
                f"engine {request.engine.value} is not supported by catalog {catalog.model_name}",
            )
        self.validate_endpoint_name(request.name)

        record = EndpointRecord(
            id=new_id(),
            owner_id=user.user_id,
            created_at=utcnow(),
            **request.model_dump(),
        )
        self.store.endpoints[record.id] = record
        logger.info("Endpoint creation triggered", endpoint_id=record.id, name=record.name, engine=record.engine.value)
        return record.id

    def _visible(self, user: Optional[UserContext], record: EndpointRecord) -> bool:
        return user is None or user.is_admin or record.owner_id == user.user_id

    def _get(self, user: Optional[UserContext], endpoint_id: str) -> EndpointRecord:
        record = self.store.endpoints.get(endpoint_id)
        if record is None or not self._visible(user, record):
            raise not_found("Endpoint not found", log=f"endpoint {endpoint_id} not found for caller")
        return record

    def get_by_name(self, name: str) -> EndpointRecord:
        for record in self.store.endpoints.values():
            if record.name == name:
                return record
        raise not_found("Endpoint not found", log=f"no endpoint named {name}")

    def health_url(self, record: EndpointRecord) -> str:
        return self.resolver.root_url(record.name) + self.live_path

    async def get_by_id(self, user: UserContext, endpoint_id: str, expand: Dict[str, bool]) -> dict:
        record = self._get(user, endpoint_id)
        view = record.model_dump()
        if expand.get(ACTUAL_INSTANCES):
            # Without cluster introspection the desired floor is reported
            view[ACTUAL_INSTANCES] = record.min_instances
        if expand.get(HEALTH):
            status = await self.health_client.check_health(self.health_url(record))
            view[HEALTH] = status.value
        return view

    async def list(
        self, user: UserContext, expand: Dict[str, bool], options: ListOptions
    ) -> Tuple[List[dict], int]:
        if not user.is_admin and options.get_filter("owner_id") is None:
            options.filters["owner_id"] = [user.user_id]
        records, total = query(self.store.endpoints.values(), options)
        views = []
        for record in records:
            view = record.model_dump()
            if expand.get(HEALTH):
                view[HEALTH] = (await self.health_client.check_health(self.health_url(record))).value
            views.append(view)
        return views, total

    def delete(self, user: UserContext, endpoint_id: str, force: bool) -> None:
        record = self._get(user, endpoint_id)
        attached = [k for k in self.store.api_keys.values() if endpoint_id in k.endpoint_ids]
        if attached and not force:
            raise AppError(
                ErrorType.INVALID_VALUE,
                "Endpoint has API keys attached, use force to delete",
                log=f"endpoint {endpoint_id} attached to {len(attached)} api keys",
            )
        for api_key in attached:
            api_key.endpoint_ids = [e for e in api_key.endpoint_ids if e != endpoint_id]
        del self.store.endpoints[record.id]
        logger.info("Endpoint delete triggered", endpoint_id=endpoint_id, force=force)

    def list_api_keys_by_endpoint(self, user: UserContext, endpoint_id: str) -> List[APIKeyRecord]:
        self._get(user, endpoint_id)
        return [
            k for k in self.store.api_keys.values()
            if endpoint_id in k.endpoint_ids and (user.is_admin or k.owner_id == user.user_id)
        ]

    def validate_endpoint_name(self, name: str) -> None:
        if not ENDPOINT_NAME_PATTERN.match(name):
            raise validation_error(
                "Invalid endpoint name",
                "name",
                "name must be lowercase alphanumeric or '-', starting with a letter",
            )
        if any(e.name == name for e in self.store.endpoints.values()):
            raise validation_error(
                "Invalid endpoint name", "name", f"endpoint with name {name} already exists"
            )
