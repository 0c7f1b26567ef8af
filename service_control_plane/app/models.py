"""Request DTOs and stored records for the control plane resources."""

import re
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .adapters.inference_backend import Engine

# Kubernetes DNS-1035 label, which KServe uses for inference service names
ENDPOINT_NAME_PATTERN = re.compile(r"^[a-z]([-a-z0-9]*[a-z0-9])?$")


class CatalogSourceHub(str, Enum):
    HUGGING_FACE = "huggingface"
    NGC = "ngc"
    MANUAL = "manual"


class Precision(str, Enum):
    FP32 = "fp32"
    FP16 = "fp16"
    BF16 = "bf16"
    INT8 = "int8"
    INT4 = "int4"


BYTES_PER_PARAMETER: Dict[Precision, float] = {
    Precision.FP32: 4.0,
    Precision.FP16: 2.0,
    Precision.BF16: 2.0,
    Precision.INT8: 1.0,
    Precision.INT4: 0.5,
}


class ConfigType(str, Enum):
    EULA = "eula"
    PULSE = "pulse"
    LANGUAGE = "language"


class APIKeyStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class EndpointStatus(str, Enum):
    PENDING = "pending"
    READY = "ready"
    FAILED = "failed"
    DELETING = "deleting"


class ListOptions(BaseModel):
    """Pagination plus equality filters for list endpoints."""

    limit: int = 20
    offset: int = 0
    filters: Dict[str, List[str]] = Field(default_factory=dict)

    def add_equal_to_filters_from_map(self, values: Dict[str, List[str]], supported: List[str]) -> None:
        for field, items in values.items():
            if field in supported and items:
                self.filters[field] = list(items)

    def get_filter(self, field: str) -> Optional[List[str]]:
        return self.filters.get(field)

    def first(self, field: str) -> Optional[str]:
        values = self.filters.get(field)
        return values[0] if values else None


# Catalogs

class CreateCatalogRequest(BaseModel):
    model_config = ConfigDict(extra="forbid", protected_namespaces=())

    model_name: str = Field(..., min_length=1, max_length=256)
    model_revision: str = Field("main", min_length=1, max_length=128)
    source_hub: CatalogSourceHub = CatalogSourceHub.HUGGING_FACE
    display_name: Optional[str] = Field(None, max_length=256)
    description: Optional[str] = Field(None, max_length=2048)
    parameters_billion: float = Field(..., gt=0)
    supported_engines: List[Engine] = Field(default_factory=lambda: [Engine.VLLM], min_length=1)
    deprecated: bool = False


class CatalogRecord(CreateCatalogRequest):
    id: str
    created_by: str
    created_at: datetime


class CatalogRequirements(BaseModel):
    model_config = ConfigDict(extra="forbid", protected_namespaces=())

    model_name: str = Field(..., min_length=1)
    model_revision: Optional[str] = None
    engine: Optional[Engine] = None
    precision: Optional[Precision] = None
    max_model_len: Optional[int] = Field(None, gt=0)

    def set_defaults(self) -> None:
        if self.model_revision is None:
            self.model_revision = "main"
        if self.engine is None:
            self.engine = Engine.VLLM
        if self.precision is None:
            self.precision = Precision.FP16
        if self.max_model_len is None:
            self.max_model_len = 4096


class CatalogRequirementsResponse(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    model_name: str
    model_revision: str
    engine: Engine
    precision: Precision
    gpu_memory_gb: float
    gpu_count: int


# Cluster

class ClusterNode(BaseModel):
    name: str
    gpu_count: int = 0
    gpu_product: Optional[str] = None
    cpu_cores: int = 0
    memory_gb: float = 0.0


class EULA(BaseModel):
    accepted: bool = False
    updated_at: Optional[datetime] = None
    name: Optional[str] = None
    company: Optional[str] = None


class Pulse(BaseModel):
    accepted: bool = False
    updated_at: Optional[datetime] = None


class Language(BaseModel):
    name: str = "en-US"


class ClusterConfig(BaseModel):
    eula: Optional[EULA] = None
    pulse: Optional[Pulse] = None
    language: Optional[Language] = None


class EULAAcceptRequest(BaseModel):
    accepted: bool
    name: str = Field(..., min_length=1, max_length=256)
    company: str = Field(..., min_length=1, max_length=256)


class PulseUpdateRequest(BaseModel):
    accepted: bool


class LanguageUpdateRequest(BaseModel):
    name: str = Field(..., min_length=2, max_length=16)


class ClusterConfigUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    eula: Optional[EULAAcceptRequest] = None
    pulse: Optional[PulseUpdateRequest] = None
    language: Optional[LanguageUpdateRequest] = None

    @model_validator(mode="after")
    def _require_one_section(self) -> "ClusterConfigUpdateRequest":
        if self.eula is None and self.pulse is None and self.language is None:
            raise ValueError("at least one of eula, pulse or language is required")
        return self


class InconsistentResource(BaseModel):
    resource_type: str
    resource_id: str
    reason: str


# Endpoints

class CreateEndpointRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1)
    catalog_id: str = Field(..., min_length=1)
    engine: Engine = Engine.VLLM
    description: Optional[str] = Field(None, max_length=2048)
    gpu_count: int = Field(1, ge=0)
    min_instances: int = Field(1, ge=0)
    max_instances: Optional[int] = Field(None, ge=1)

    def set_defaults(self) -> None:
        if self.max_instances is None:
            self.max_instances = max(self.min_instances, 1)

    @field_validator("name")
    @classmethod
    def _dns_label(cls, value: str) -> str:
        if not ENDPOINT_NAME_PATTERN.match(value):
            raise ValueError("name must be lowercase alphanumeric or '-', starting with a letter")
        return value

    @model_validator(mode="after")
    def _instances_ordered(self) -> "CreateEndpointRequest":
        if self.max_instances is not None and self.max_instances < self.min_instances:
            raise ValueError("max_instances must be >= min_instances")
        return self


class EndpointRecord(BaseModel):
    id: str
    name: str
    catalog_id: str
    engine: Engine
    description: Optional[str] = None
    gpu_count: int
    min_instances: int
    max_instances: int
    owner_id: str
    status: EndpointStatus = EndpointStatus.PENDING
    created_at: datetime


# API keys

class APIKeyCreateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1, max_length=64)
    endpoint_ids: List[str] = Field(default_factory=list)


class APIKeyUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    status: Optional[APIKeyStatus] = None
    endpoint_ids: Optional[List[str]] = None

    @model_validator(mode="after")
    def _require_change(self) -> "APIKeyUpdateRequest":
        if self.status is None and self.endpoint_ids is None:
            raise ValueError("status or endpoint_ids is required")
        return self


class APIKeyRecord(BaseModel):
    id: str
    name: str
    owner_id: str
    key_hash: str
    key_prefix: str
    status: APIKeyStatus = APIKeyStatus.ACTIVE
    endpoint_ids: List[str] = Field(default_factory=list)
    created_at: datetime


class APIKeyCreateResponse(BaseModel):
    id: str
    generated_key: str
