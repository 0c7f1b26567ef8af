"""Catalog of deployable models."""

import math
from typing import List, Tuple

import structlog

from libs.common.errors import AppError, ErrorType, not_found, validation_error
from ..models import (
    BYTES_PER_PARAMETER,
    CatalogRecord,
    CatalogRequirements,
    CatalogRequirementsResponse,
    CreateCatalogRequest,
    ListOptions,
)
from .store import InMemoryStore, new_id, query, utcnow

logger = structlog.get_logger("catalog_service")

# Memory of one accelerator assumed when sizing deployments
GPU_MEMORY_GB = 80.0
# Headroom for activations and KV cache on top of the weights
RUNTIME_OVERHEAD = 1.2
# Extra KV cache per 1k tokens of context, per billion parameters
KV_CACHE_GB_PER_1K_TOKENS_PER_B = 0.0125


class CatalogService:
    """Stores catalog entries and sizes their deployments."""

    def __init__(self, store: InMemoryStore):
        self.store = store

    def create(self, request: CreateCatalogRequest, created_by: str) -> str:
        if any(
            c.model_name == request.model_name and c.model_revision == request.model_revision
            for c in self.store.catalogs.values()
        ):
            raise validation_error(
                "Failed to create catalog",
                "model_name",
                f"catalog for {request.model_name}@{request.model_revision} already exists",
            )
        record = CatalogRecord(
            id=new_id(),
            created_by=created_by,
            created_at=utcnow(),
            **request.model_dump(),
        )
        self.store.catalogs[record.id] = record
        logger.info("Catalog entry created", catalog_id=record.id, model_name=record.model_name)
        return record.id

    def list(self, options: ListOptions) -> Tuple[List[CatalogRecord], int]:
        return query(self.store.catalogs.values(), options)

    def get_by_id(self, catalog_id: str) -> CatalogRecord:
        record = self.store.catalogs.get(catalog_id)
        if record is None:
            raise not_found("Catalog not found", log=f"catalog {catalog_id} does not exist")
        return record

    def delete(self, catalog_id: str) -> None:
        self.get_by_id(catalog_id)
        in_use = [e.name for e in self.store.endpoints.values() if e.catalog_id == catalog_id]
        if in_use:
            raise AppError(
                ErrorType.CONFLICT,
                "Catalog is used by existing endpoints",
                log=f"catalog {catalog_id} referenced by {in_use}",
            )
        del self.store.catalogs[catalog_id]
        logger.info("Catalog entry deleted", catalog_id=catalog_id)

    def get_requirements(self, requirements: CatalogRequirements) -> CatalogRequirementsResponse:
        matches = [
            c for c in self.store.catalogs.values()
            if c.model_name == requirements.model_name and c.model_revision == requirements.model_revision
        ]
        if not matches:
            raise not_found(
                "Catalog not found",
                log=f"no catalog for {requirements.model_name}@{requirements.model_revision}",
            )
        catalog = matches[0]
        if requirements.engine not in catalog.supported_engines:
            raise AppError(
                ErrorType.INVALID_VALUE,
                f"Engine {requirements.engine.value} is not supported for this model",
            )

        params = catalog.parameters_billion
        weights_gb = params * BYTES_PER_PARAMETER[requirements.precision]
        kv_cache_gb = params * KV_CACHE_GB_PER_1K_TOKENS_PER_B * (requirements.max_model_len / 1024)
        memory_gb = round((weights_gb + kv_cache_gb) * RUNTIME_OVERHEAD, 2)
        return CatalogRequirementsResponse(
            model_name=catalog.model_name,
            model_revision=catalog.model_revision,
            engine=requirements.engine,
            precision=requirements.precision,
            gpu_memory_gb=memory_gb,
            gpu_count=max(1, math.ceil(memory_gb / GPU_MEMORY_GB)),
        )
