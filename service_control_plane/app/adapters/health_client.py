"""Liveness prober for inference endpoints."""

import asyncio
from enum import Enum
from typing import Optional

import httpx
import structlog

from libs.common.metrics import MetricsCollector
from .http_client import HTTPClient, HTTPClientError, RequestConstructionError, build_request

logger = structlog.get_logger("health_client")


class HealthStatus(str, Enum):
    """Endpoint health derived from the latest probe only."""
    HEALTHY = "healthy"      # a probe returned 200
    CRITICAL = "critical"    # probed, never got a 200
    UNKNOWN = "unknown"      # probe could not be built


class HealthClient:
    """Polls a liveness URL a bounded number of times.

    ``UNKNOWN`` means the target is malformed (a configuration problem),
    ``CRITICAL`` means it was reachable in principle but never answered 200.
    """

    def __init__(
        self,
        client: HTTPClient,
        timeout: float = 5.0,
        max_attempts: int = 3,
        retry_delay: float = 0.0,
        metrics: Optional[MetricsCollector] = None,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.client = client
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self.metrics = metrics

    async def check_health(self, endpoint_url: str) -> HealthStatus:
        status = await self._probe(endpoint_url)
        if self.metrics is not None:
            self.metrics.record_health_probe(status.value)
        return status

    async def _probe(self, endpoint_url: str) -> HealthStatus:
        self.client.set_timeout(self.timeout)
        try:
            request = build_request("GET", endpoint_url)
        except RequestConstructionError as e:
            logger.warning("Cannot build health probe", url=endpoint_url, error=str(e))
            return HealthStatus.UNKNOWN

        for attempt in range(1, self.max_attempts + 1):
            try:
                response, _ = await self.client.do(request)
                if response.status_code == httpx.codes.OK:
                    return HealthStatus.HEALTHY
                logger.debug(
                    "Health probe returned non-200",
                    url=endpoint_url,
                    attempt=attempt,
                    status=response.status_code,
                )
            except HTTPClientError as e:
                logger.debug("Health probe failed", url=endpoint_url, attempt=attempt, error=str(e))

            if self.retry_delay and attempt < self.max_attempts:
                await asyncio.sleep(self.retry_delay)

        logger.info("Endpoint unhealthy", url=endpoint_url, attempts=self.max_attempts)
        return HealthStatus.CRITICAL
