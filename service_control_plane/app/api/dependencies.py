"""FastAPI dependencies resolving shared objects from ``app.state``."""

from fastapi import Request

from libs.common.config import ControlPlaneConfig
from libs.common.metrics import MetricsCollector
from ..runtime.services import Services


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_app_config(request: Request) -> ControlPlaneConfig:
    return request.app.state.config


def get_metrics(request: Request) -> MetricsCollector:
    return request.app.state.metrics_collector
