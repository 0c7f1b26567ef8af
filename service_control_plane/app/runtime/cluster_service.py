"""Cluster information, cluster-wide configuration and consistency checks."""

from typing import List

import structlog

from libs.common.errors import AppError, ErrorType
from ..models import (
    ClusterConfig,
    ClusterNode,
    ConfigType,
    InconsistentResource,
    ListOptions,
)
from .store import InMemoryStore

logger = structlog.get_logger("cluster_service")


class ClusterService:
    def __init__(self, store: InMemoryStore):
        self.store = store

    def get_nodes_info(self) -> List[ClusterNode]:
        return list(self.store.nodes)

    def get_config(self, options: ListOptions) -> ClusterConfig:
        """Return the cluster config, narrowed to one section by ``type``."""
        current = self.store.cluster_config
        config_type = options.first("type")
        if config_type is None:
            return current.model_copy(deep=True)
        try:
            section = ConfigType(config_type.lower())
        except ValueError:
            raise AppError(ErrorType.INVALID_VALUE, f"Unknown config type {config_type}")
        return ClusterConfig(**{section.value: getattr(current, section.value)})

    def update_config(self, user_id: str, config: ClusterConfig) -> None:
        """Overwrite the sections present in ``config``."""
        current = self.store.cluster_config
        for section in ConfigType:
            value = getattr(config, section.value)
            if value is not None:
                setattr(current, section.value, value)
                logger.info("Cluster config updated", section=section.value, user_id=user_id)


class DataConsistencyService:
    """Finds records that point at resources which no longer exist."""

    def __init__(self, store: InMemoryStore):
        self.store = store

    def get_inconsistent_data(self) -> List[InconsistentResource]:
        issues: List[InconsistentResource] = []
        for endpoint in self.store.endpoints.values():
            if endpoint.catalog_id not in self.store.catalogs:
                issues.append(InconsistentResource(
                    resource_type="endpoint",
                    resource_id=endpoint.id,
                    reason=f"catalog {endpoint.catalog_id} does not exist",
                ))
        for api_key in self.store.api_keys.values():
            for endpoint_id in api_key.endpoint_ids:
                if endpoint_id not in self.store.endpoints:
                    issues.append(InconsistentResource(
                        resource_type="api_key",
                        resource_id=api_key.id,
                        reason=f"endpoint {endpoint_id} does not exist",
                    ))
        return issues
