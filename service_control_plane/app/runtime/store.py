"""In-memory state shared by the bundled service implementations.

The control plane normally sits on a database and a Kubernetes cluster. The
services in this package keep everything in process dictionaries instead,
which is enough to run the API standalone and to drive it from tests.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Tuple, TypeVar

from pydantic import BaseModel

from ..models import (
    APIKeyRecord,
    CatalogRecord,
    ClusterConfig,
    ClusterNode,
    EndpointRecord,
    EULA,
    Language,
    ListOptions,
    Pulse,
)

RecordT = TypeVar("RecordT", bound=BaseModel)


def default_cluster_config() -> ClusterConfig:
    return ClusterConfig(eula=EULA(), pulse=Pulse(), language=Language())


@dataclass
class InMemoryStore:
    """Process-local tables keyed by resource id."""

    catalogs: Dict[str, CatalogRecord] = field(default_factory=dict)
    endpoints: Dict[str, EndpointRecord] = field(default_factory=dict)
    api_keys: Dict[str, APIKeyRecord] = field(default_factory=dict)
    cluster_config: ClusterConfig = field(default_factory=default_cluster_config)
    nodes: List[ClusterNode] = field(default_factory=list)


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _filter_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)


def matches(record: BaseModel, filters: Dict[str, List[str]]) -> bool:
    """Equality match of every filter; values within one filter are OR-ed."""
    for name, wanted in filters.items():
        if not hasattr(record, name):
            return False
        actual = _filter_value(getattr(record, name)).lower()
        if actual not in {w.lower() for w in wanted}:
            return False
    return True


def query(records: Iterable[RecordT], options: ListOptions) -> Tuple[List[RecordT], int]:
    """Filter, order by creation time, and page ``records``.

    Returns the page and the total count before paging.
    """
    selected = [r for r in records if matches(r, options.filters)]
    selected.sort(key=lambda r: getattr(r, "created_at", None) or utcnow())
    total = len(selected)
    return selected[options.offset:options.offset + options.limit], total
