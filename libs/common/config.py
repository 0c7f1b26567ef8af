"""Configuration management for control plane services.

This module centralizes environment-driven configuration for the control
plane API. It builds on ``pydantic-settings`` so configuration can be
provided via environment variables, ``.env`` files, or defaults.

Highlights
- Strongly-typed settings with sensible defaults
- Retry and probe bounds are settings rather than literals so tests can
  shrink them
- Small service-specific subclasses to keep concerns clear

Usage
- Inject the config in the service entrypoint: ``config = ControlPlaneConfig()``
- Or ``config = get_config()``
"""

from typing import Dict

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class for all services.

    Parameters are read from the process environment using the upper-cased
    field names (``CP_LOG_LEVEL`` and so on). Defaults keep local development
    convenient while still being explicit.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    cp_env: str = Field(default="local")

    # Logging
    cp_log_level: str = Field(default="INFO")
    cp_log_format: str = Field(default="json")

    # Security
    cp_jwt_secret_key: str = Field(default="dev-secret-key-change-in-production")
    cp_jwt_algorithm: str = Field(default="HS256")


class ControlPlaneConfig(BaseConfig):
    """Configuration for the control plane API service.

    Groups the outbound HTTP knobs (generic retry client, liveness prober,
    inference backends) with the API limits enforced by the controllers.
    """

    cp_port: int = Field(default=9010)

    # Generic retrying HTTP client
    cp_http_timeout_seconds: float = Field(default=30.0, gt=0)
    cp_http_max_attempts: int = Field(default=3, ge=1)
    cp_http_retry_delay_seconds: float = Field(default=1.0, ge=0)

    # Liveness prober
    cp_health_timeout_seconds: float = Field(default=5.0, gt=0)
    cp_max_service_health_attempts: int = Field(default=3, ge=1)
    cp_health_retry_delay_seconds: float = Field(default=0.0, ge=0)
    cp_health_live_path: str = Field(default="/v2/health/live")

    # Inference backends
    cp_inference_timeout_seconds: float = Field(default=600.0, gt=0)
    cp_kserve_namespace: str = Field(default="nai-admin")
    cp_kserve_url_template: str = Field(
        default="http://{name}.{namespace}.svc.cluster.local"
    )
    cp_engine_api_paths: Dict[str, str] = Field(
        default_factory=lambda: {"vllm": "/openai/v1", "tgi": "/v1", "nim": "/v1"}
    )

    # API limits
    cp_endpoint_name_max_length: int = Field(default=63, ge=1)
    cp_list_default_limit: int = Field(default=20, ge=1)
    cp_list_max_limit: int = Field(default=1000, ge=1)


def get_config() -> ControlPlaneConfig:
    """Build the control plane configuration from the environment."""
    return ControlPlaneConfig()
