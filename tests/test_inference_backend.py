"""Tests for the inference engine client."""

import json
from typing import List

import httpx
import pytest

from libs.common.errors import AppError, ErrorType
from service_control_plane.app.adapters.inference_backend import (
    ChatCompletionRequest,
    CompletionRequest,
    EndOfStream,
    Engine,
    EndpointURLResolver,
    InferenceService,
    UpstreamStreamError,
)

PATHS = {"vllm": "/openai/v1", "tgi": "/v1", "nim": "/v1"}


@pytest.fixture
def resolver():
    return EndpointURLResolver("http://{name}.{namespace}.svc.cluster.local", "nai-admin", PATHS)


def test_resolver_builds_engine_urls(resolver):
    assert resolver.base_url("llama", Engine.VLLM) == "http://llama.nai-admin.svc.cluster.local/openai/v1"
    assert resolver.base_url("llama", Engine.TGI) == "http://llama.nai-admin.svc.cluster.local/v1"
    assert resolver.root_url("llama") == "http://llama.nai-admin.svc.cluster.local"


def test_resolver_rejects_unconfigured_engine():
    resolver = EndpointURLResolver("http://{name}.{namespace}", "ns", {"vllm": "/v1"})
    with pytest.raises(AppError) as exc_info:
        resolver.base_url("llama", Engine.NIM)
    assert exc_info.value.type == ErrorType.PARSING


@pytest.mark.asyncio
async def test_completion_posts_payload_with_stream_flag(resolver):
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"id": "cmpl-1", "choices": [{"text": "hi"}]})

    service = InferenceService(resolver, transport=httpx.MockTransport(handler))
    request = CompletionRequest(model="llama", prompt="Say hi", max_tokens=8)

    body = await service.completion(request, Engine.VLLM)

    assert body["id"] == "cmpl-1"
    assert str(seen[0].url) == "http://llama.nai-admin.svc.cluster.local/openai/v1/completions"
    assert json.loads(seen[0].content) == {"model": "llama", "prompt": "Say hi", "stream": False, "max_tokens": 8}
    await service.aclose()


@pytest.mark.asyncio
async def test_non_200_is_generic_error(resolver):
    service = InferenceService(
        resolver, transport=httpx.MockTransport(lambda r: httpx.Response(503, text="overloaded"))
    )
    request = ChatCompletionRequest(model="llama", messages=[{"role": "user", "content": "hi"}])

    with pytest.raises(AppError) as exc_info:
        await service.chat_completion(request, Engine.TGI)

    assert exc_info.value.type == ErrorType.GENERIC
    assert "overloaded" in exc_info.value.log
    assert "overloaded" not in exc_info.value.msg
    await service.aclose()


@pytest.mark.asyncio
async def test_timeout_is_gateway_timeout(resolver):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow engine", request=request)

    service = InferenceService(resolver, transport=httpx.MockTransport(handler))
    request = ChatCompletionRequest(model="llama", messages=[{"role": "user", "content": "hi"}], stream=True)

    with pytest.raises(AppError) as exc_info:
        await service.chat_completion_stream(request, Engine.VLLM)

    assert exc_info.value.type == ErrorType.GATEWAY_TIMEOUT
    await service.aclose()


@pytest.mark.asyncio
async def test_stream_reads_chunks_until_done(resolver):
    body = (
        b": keep-alive\n\n"
        b'data: {"id":"c1","choices":[{"delta":{"content":"a"}}]}\n\n'
        b"event: ping\n\n"
        b'data: {"id":"c1","choices":[{"delta":{"content":"b"}}]}\n\n'
        b"data: [DONE]\n\n"
    )
    service = InferenceService(
        resolver, transport=httpx.MockTransport(lambda r: httpx.Response(200, content=body))
    )
    request = ChatCompletionRequest(model="llama", messages=[{"role": "user", "content": "hi"}], stream=True)

    stream = await service.chat_completion_stream(request, Engine.VLLM)
    first = await stream.recv()
    second = await stream.recv()
    with pytest.raises(EndOfStream):
        await stream.recv()
    await stream.aclose()
    await stream.aclose()

    assert first["choices"][0]["delta"]["content"] == "a"
    assert second["choices"][0]["delta"]["content"] == "b"
    await service.aclose()


@pytest.mark.asyncio
async def test_stream_without_done_ends_at_body_end(resolver):
    body = b'data: {"choices":[]}\n\n'
    service = InferenceService(
        resolver, transport=httpx.MockTransport(lambda r: httpx.Response(200, content=body))
    )
    stream = await service.completion_stream(CompletionRequest(model="llama", prompt="x", stream=True), Engine.VLLM)

    assert await stream.recv() == {"choices": []}
    with pytest.raises(EndOfStream):
        await stream.recv()
    await stream.aclose()
    await service.aclose()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "frame",
    [b"data: {not json}\n\n", b"data: [1, 2]\n\n", b'data: {"error": {"message": "boom"}}\n\n'],
)
async def test_stream_rejects_bad_frames(resolver, frame):
    service = InferenceService(
        resolver, transport=httpx.MockTransport(lambda r: httpx.Response(200, content=frame))
    )
    stream = await service.completion_stream(CompletionRequest(model="llama", prompt="x", stream=True), Engine.VLLM)

    with pytest.raises(UpstreamStreamError):
        await stream.recv()
    await stream.aclose()
    await service.aclose()


@pytest.mark.asyncio
async def test_stream_open_failure_is_raised(resolver):
    service = InferenceService(
        resolver, transport=httpx.MockTransport(lambda r: httpx.Response(500, text="no gpu"))
    )
    with pytest.raises(AppError) as exc_info:
        await service.completion_stream(CompletionRequest(model="llama", prompt="x", stream=True), Engine.VLLM)
    assert exc_info.value.type == ErrorType.GENERIC
    await service.aclose()
