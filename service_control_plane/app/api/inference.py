"""OpenAI-compatible completion routes proxied to inference endpoints."""

import uuid
from typing import Any, Dict

import structlog
from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from libs.common.errors import AppError, ErrorType
from libs.common.metrics import MetricsCollector
from libs.common.response import error_response, http_response
from ..adapters.inference_backend import ChatCompletionRequest, CompletionRequest
from ..runtime.services import Services
from ..runtime.streaming import StreamRelay, elapsed_ms
from .dependencies import get_metrics, get_services
from .validators import (
    InferenceContext,
    InferenceKind,
    UNKNOWN_MODEL,
    validate_chat_completion,
    validate_completion,
)

logger = structlog.get_logger("inference_api")

router = APIRouter(tags=["inference"])

SSE_HEADERS = {"Cache-Control": "no-cache", "Connection": "keep-alive", "X-Accel-Buffering": "no"}


def _check_context(ctx: InferenceContext) -> None:
    if ctx.error is not None:
        raise ctx.error
    if ctx.request is None:
        raise AppError(ErrorType.NOT_FOUND, "Inference request not found", log="validator produced no request")
    expected = CompletionRequest if ctx.kind == InferenceKind.COMPLETION else ChatCompletionRequest
    if not isinstance(ctx.request, expected):
        raise AppError(ErrorType.BINDING, "Invalid inference request", log=f"expected {expected.__name__}")
    if ctx.engine is None:
        raise AppError(ErrorType.NOT_FOUND, "Inference engine not found", log="validator resolved no engine")


async def _dispatch(ctx: InferenceContext, services: Services) -> Dict[str, Any]:
    if ctx.kind == InferenceKind.COMPLETION:
        return await services.inference.completion(ctx.request, ctx.engine)
    return await services.inference.chat_completion(ctx.request, ctx.engine)


async def _open_stream(ctx: InferenceContext, services: Services):
    if ctx.kind == InferenceKind.COMPLETION:
        return await services.inference.completion_stream(ctx.request, ctx.engine)
    return await services.inference.chat_completion_stream(ctx.request, ctx.engine)


async def serve_inference(ctx: InferenceContext, services: Services, metrics: MetricsCollector):
    """Answer one validated inference call, recording a single metric."""
    try:
        _check_context(ctx)
    except AppError as e:
        metrics.record_inference_metrics(UNKNOWN_MODEL, "invalid", elapsed_ms(ctx.started_at))
        return error_response(e)

    model_name = ctx.model_name
    if not ctx.request.stream:
        try:
            body = await _dispatch(ctx, services)
        except AppError as e:
            metrics.record_inference_metrics(model_name, "failure", elapsed_ms(ctx.started_at))
            return error_response(e)
        if not body.get("id"):
            body["id"] = str(uuid.uuid4())
        body["model"] = model_name
        metrics.record_inference_metrics(model_name, "success", elapsed_ms(ctx.started_at))
        return http_response(data=body, raw=True)

    try:
        stream = await _open_stream(ctx, services)
    except AppError as e:
        metrics.record_inference_metrics(model_name, "failure", elapsed_ms(ctx.started_at))
        return error_response(e)

    relay = StreamRelay(stream, model_name, metrics, ctx.started_at)
    return StreamingResponse(relay.frames(), media_type="text/event-stream", headers=SSE_HEADERS)


@router.post("/completions")
async def completions(
    ctx: InferenceContext = Depends(validate_completion),
    services: Services = Depends(get_services),
    metrics: MetricsCollector = Depends(get_metrics),
):
    """Text completion, streamed as server-sent events when ``stream`` is set."""
    return await serve_inference(ctx, services, metrics)


@router.post("/chat/completions")
async def chat_completions(
    ctx: InferenceContext = Depends(validate_chat_completion),
    services: Services = Depends(get_services),
    metrics: MetricsCollector = Depends(get_metrics),
):
    """Chat completion, streamed as server-sent events when ``stream`` is set."""
    return await serve_inference(ctx, services, metrics)
