"""API keys used by callers of the inference routes."""

import hashlib
import hmac
import secrets
from typing import List, Optional, Tuple

import structlog

from libs.common.auth import UserContext
from libs.common.errors import AppError, ErrorType, not_found, validation_error
from ..models import (
    APIKeyCreateRequest,
    APIKeyCreateResponse,
    APIKeyRecord,
    APIKeyStatus,
    APIKeyUpdateRequest,
    EndpointRecord,
    ListOptions,
)
from .store import InMemoryStore, new_id, query, utcnow

logger = structlog.get_logger("api_key_service")

KEY_PREFIX = "nai_"
# Characters of the plaintext key kept for display
VISIBLE_PREFIX_LENGTH = 8


def hash_key(key: str) -> str:
    return hashlib.sha256(key.encode("utf-8")).hexdigest()


class APIKeyService:
    """Issues API keys and checks them against endpoints.

    Only a SHA-256 digest of each key is kept; the plaintext is returned once
    on creation.
    """

    def __init__(self, store: InMemoryStore):
        self.store = store

    def _check_endpoints(self, user: UserContext, endpoint_ids: List[str], msg: str) -> None:
        for endpoint_id in endpoint_ids:
            endpoint = self.store.endpoints.get(endpoint_id)
            if endpoint is None or not (user.is_admin or endpoint.owner_id == user.user_id):
                raise validation_error(msg, "endpoint_ids", f"endpoint {endpoint_id} does not exist")

    def create(self, user: UserContext, request: APIKeyCreateRequest) -> APIKeyCreateResponse:
        if any(k.name == request.name and k.owner_id == user.user_id for k in self.store.api_keys.values()):
            raise validation_error(
                "Failed to create API key", "name", f"API key with name {request.name} already exists"
            )
        self._check_endpoints(user, request.endpoint_ids, "Failed to create API key")

        key = KEY_PREFIX + secrets.token_urlsafe(32)
        record = APIKeyRecord(
            id=new_id(),
            name=request.name,
            owner_id=user.user_id,
            key_hash=hash_key(key),
            key_prefix=key[:VISIBLE_PREFIX_LENGTH],
            endpoint_ids=list(dict.fromkeys(request.endpoint_ids)),
            created_at=utcnow(),
        )
        self.store.api_keys[record.id] = record
        logger.info("API key created", api_key_id=record.id, owner_id=user.user_id)
        return APIKeyCreateResponse(id=record.id, generated_key=key)

    def list(self, user: Optional[UserContext], options: ListOptions) -> Tuple[List[APIKeyRecord], int]:
        if user is not None and not user.is_admin and options.get_filter("owner_id") is None:
            options.filters["owner_id"] = [user.user_id]
        return query(self.store.api_keys.values(), options)

    def _get(self, user: UserContext, api_key_id: str) -> APIKeyRecord:
        record = self.store.api_keys.get(api_key_id)
        if record is None or not (user.is_admin or record.owner_id == user.user_id):
            raise not_found("API key not found", log=f"api key {api_key_id} not found for caller")
        return record

    def delete(self, user: UserContext, api_key_id: str) -> None:
        self._get(user, api_key_id)
        del self.store.api_keys[api_key_id]
        logger.info("API key deleted", api_key_id=api_key_id)

    def update(self, user: UserContext, api_key_id: str, request: APIKeyUpdateRequest) -> APIKeyRecord:
        record = self._get(user, api_key_id)
        if request.endpoint_ids is not None:
            self._check_endpoints(user, request.endpoint_ids, "Failed to update API key")
            record.endpoint_ids = list(dict.fromkeys(request.endpoint_ids))
        if request.status is not None:
            record.status = request.status
        logger.info("API key updated", api_key_id=api_key_id)
        return record

    def authorize(self, key: str, endpoint: EndpointRecord) -> APIKeyRecord:
        """Return the active key record allowed to call ``endpoint``.

        Unknown keys raise UNAUTHORIZED; known keys that are inactive or not
        attached to the endpoint raise FORBIDDEN.
        """
        digest = hash_key(key)
        record = next(
            (k for k in self.store.api_keys.values() if hmac.compare_digest(k.key_hash, digest)),
            None,
        )
        if record is None:
            raise AppError(ErrorType.UNAUTHORIZED, "Invalid API key", log="unknown api key presented")
        if record.status != APIKeyStatus.ACTIVE:
            raise AppError(
                ErrorType.FORBIDDEN, "API key is not active", log=f"api key {record.id} is {record.status.value}"
            )
        if endpoint.id not in record.endpoint_ids:
            raise AppError(
                ErrorType.FORBIDDEN,
                "API key is not allowed to access this endpoint",
                log=f"api key {record.id} not attached to endpoint {endpoint.id}",
            )
        return record
