"""Shared fixtures: an app wired to fake engines and liveness endpoints."""

import json
from typing import Any, Dict, List

import httpx
import pytest
from fastapi.testclient import TestClient
from prometheus_client import CollectorRegistry

from libs.common.auth import AuthManager, Role
from libs.common.config import ControlPlaneConfig
from libs.common.metrics import MetricsCollector
from service_control_plane.app.adapters.http_client import HTTPClient
from service_control_plane.app.adapters.inference_backend import EndpointURLResolver, InferenceService
from service_control_plane.app.main import create_app
from service_control_plane.app.runtime.services import create_services
from service_control_plane.app.runtime.store import InMemoryStore


class FakeCluster:
    """Answers for every in-cluster URL the control plane calls.

    Liveness probes return ``health_status``. Completion calls return
    ``completion`` or, when the payload asks for a stream, ``stream_chunks``
    framed as server-sent events.
    """

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.health_status = 200
        self.inference_status = 200
        self.completion: Dict[str, Any] = {"object": "chat.completion", "choices": [{"index": 0}]}
        self.stream_chunks: List[Dict[str, Any]] = [
            {"choices": [{"delta": {"content": "Hel"}}]},
            {"choices": [{"delta": {"content": "lo"}}]},
        ]
        self.stream_done = True

    def stream_body(self) -> bytes:
        frames = [f"data: {json.dumps(chunk)}\n\n" for chunk in self.stream_chunks]
        if self.stream_done:
            frames.append("data: [DONE]\n\n")
        return "".join(frames).encode("utf-8")

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path.endswith("/health/live"):
            return httpx.Response(self.health_status)
        if self.inference_status != 200:
            return httpx.Response(self.inference_status, json={"error": "engine unavailable"})
        payload = json.loads(request.content)
        if payload.get("stream"):
            return httpx.Response(
                200, content=self.stream_body(), headers={"content-type": "text/event-stream"}
            )
        return httpx.Response(200, json=dict(self.completion))

    def inference_requests(self) -> List[httpx.Request]:
        return [r for r in self.requests if not r.url.path.endswith("/health/live")]


@pytest.fixture
def config() -> ControlPlaneConfig:
    return ControlPlaneConfig(
        cp_jwt_secret_key="test-secret",
        cp_log_format="console",
        cp_health_timeout_seconds=0.5,
        cp_max_service_health_attempts=2,
        cp_http_retry_delay_seconds=0.0,
    )


@pytest.fixture
def metrics() -> MetricsCollector:
    return MetricsCollector("test-control-plane", registry=CollectorRegistry())


@pytest.fixture
def cluster() -> FakeCluster:
    return FakeCluster()


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def app(config, metrics, cluster, store):
    transport = httpx.MockTransport(cluster.handler)
    resolver = EndpointURLResolver(
        config.cp_kserve_url_template, config.cp_kserve_namespace, config.cp_engine_api_paths
    )
    services = create_services(
        config,
        metrics=metrics,
        store=store,
        http_client=HTTPClient(transport=transport),
        health_http_client=HTTPClient(transport=transport),
        inference=InferenceService(resolver, transport=transport),
    )
    return create_app(config, services=services, metrics=metrics)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def token_for(config):
    manager = AuthManager(config.cp_jwt_secret_key, config.cp_jwt_algorithm)

    def issue(user_id: str = "user-1", role: Role = Role.USER) -> Dict[str, str]:
        return {"Authorization": f"Bearer {manager.create_access_token(user_id, role)}"}

    return issue


@pytest.fixture
def inference_count(metrics):
    """Read the inference outcome counter, 0 when never incremented."""

    def count(model_name: str, outcome: str) -> float:
        value = metrics.registry.get_sample_value(
            "cp_inference_requests_total", {"model_name": model_name, "outcome": outcome}
        )
        return value or 0.0

    return count
