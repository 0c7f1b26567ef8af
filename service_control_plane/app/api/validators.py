"""Pre-validation of inference calls.

The dependencies here run before the inference handlers. They never raise:
whatever goes wrong is kept on the returned ``InferenceContext`` so the
handler can record the ``invalid`` metric exactly once and answer with the
error envelope.
"""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Type

import structlog
from fastapi import Depends, Request

from libs.common.errors import AppError, ErrorType
from ..adapters.inference_backend import (
    ChatCompletionRequest,
    CompletionRequest,
    Engine,
    InferenceRequest,
)
from ..runtime.services import Services
from .binding import bind_json
from .dependencies import get_services

logger = structlog.get_logger("inference_validator")

UNKNOWN_MODEL = "unknown"


class InferenceKind(str, Enum):
    COMPLETION = "completion"
    CHAT = "chat"


@dataclass
class InferenceContext:
    """Typed hand-off from the validator to the inference handler.

    ``started_at`` is a ``time.monotonic()`` reading taken before validation.
    """

    kind: InferenceKind
    started_at: float
    request: Optional[InferenceRequest] = None
    engine: Optional[Engine] = None
    error: Optional[AppError] = None

    @property
    def model_name(self) -> str:
        """The caller's model name, once it has resolved to an endpoint."""
        if self.error is not None or self.engine is None or self.request is None:
            return UNKNOWN_MODEL
        return self.request.model


def _bearer_token(request: Request) -> Optional[str]:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def _validate(
    request: Request,
    services: Services,
    kind: InferenceKind,
    model_cls: Type[InferenceRequest],
) -> InferenceContext:
    ctx = InferenceContext(kind=kind, started_at=time.monotonic())
    try:
        ctx.request = await bind_json(request, model_cls)

        api_key = _bearer_token(request)
        if api_key is None:
            raise AppError(ErrorType.UNAUTHORIZED, "Missing API key")
        endpoint = services.endpoints.get_by_name(ctx.request.model)
        services.api_keys.authorize(api_key, endpoint)
        ctx.engine = endpoint.engine
    except AppError as e:
        logger.info("Inference request rejected", kind=kind.value, error_type=e.type.value, detail=e.log)
        ctx.error = e
    return ctx


async def validate_completion(
    request: Request, services: Services = Depends(get_services)
) -> InferenceContext:
    return await _validate(request, services, InferenceKind.COMPLETION, CompletionRequest)


async def validate_chat_completion(
    request: Request, services: Services = Depends(get_services)
) -> InferenceContext:
    return await _validate(request, services, InferenceKind.CHAT, ChatCompletionRequest)
