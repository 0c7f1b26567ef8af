"""Service container wired into ``app.state``."""

from dataclasses import dataclass
from typing import Optional

from libs.common.config import ControlPlaneConfig
from libs.common.metrics import MetricsCollector
from ..adapters.health_client import HealthClient
from ..adapters.http_client import HTTPClient
from ..adapters.inference_backend import EndpointURLResolver, InferenceService
from .api_key_service import APIKeyService
from .catalog_service import CatalogService
from .cluster_service import ClusterService, DataConsistencyService
from .endpoint_service import EndpointService
from .store import InMemoryStore


@dataclass
class Services:
    catalogs: CatalogService
    clusters: ClusterService
    consistency: DataConsistencyService
    endpoints: EndpointService
    api_keys: APIKeyService
    inference: InferenceService
    http_client: HTTPClient
    health_http_client: HTTPClient

    async def aclose(self) -> None:
        await self.inference.aclose()
        await self.http_client.aclose()
        await self.health_http_client.aclose()


def create_services(
    config: ControlPlaneConfig,
    metrics: Optional[MetricsCollector] = None,
    store: Optional[InMemoryStore] = None,
    http_client: Optional[HTTPClient] = None,
    inference: Optional[InferenceService] = None,
    health_http_client: Optional[HTTPClient] = None,
) -> Services:
    """Build the in-memory services from configuration.

    ``http_client``, ``health_http_client`` and ``inference`` may be supplied
    to route outbound calls through a test transport. Liveness probes use
    ``health_http_client`` only.
    """
    store = store or InMemoryStore()
    http_client = http_client or HTTPClient(
        timeout=config.cp_http_timeout_seconds,
        max_attempts=config.cp_http_max_attempts,
        retry_delay=config.cp_http_retry_delay_seconds,
    )
    health_http_client = health_http_client or HTTPClient(timeout=config.cp_health_timeout_seconds)
    resolver = EndpointURLResolver(
        config.cp_kserve_url_template,
        config.cp_kserve_namespace,
        config.cp_engine_api_paths,
    )
    health_client = HealthClient(
        health_http_client,
        timeout=config.cp_health_timeout_seconds,
        max_attempts=config.cp_max_service_health_attempts,
        retry_delay=config.cp_health_retry_delay_seconds,
        metrics=metrics,
    )
    inference = inference or InferenceService(resolver, timeout=config.cp_inference_timeout_seconds)

    return Services(
        catalogs=CatalogService(store),
        clusters=ClusterService(store),
        consistency=DataConsistencyService(store),
        endpoints=EndpointService(store, health_client, resolver, config.cp_health_live_path),
        api_keys=APIKeyService(store),
        inference=inference,
        http_client=http_client,
        health_http_client=health_http_client,
    )
