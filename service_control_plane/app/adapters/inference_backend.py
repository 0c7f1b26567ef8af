"""Client for the OpenAI-compatible APIs exposed by inference engines.

Payloads are passed through as JSON objects. Only ``model`` and ``stream``
are interpreted here; the rest of the schema belongs to the engines.
"""

import json
from enum import Enum
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional, Union

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, Field

from libs.common.errors import AppError, ErrorType

logger = structlog.get_logger("inference_backend")


class Engine(str, Enum):
    """Inference runtimes an endpoint can be served by."""
    VLLM = "vllm"
    TGI = "tgi"
    NIM = "nim"


class CompletionRequest(BaseModel):
    """Legacy text completion request."""

    model_config = ConfigDict(extra="allow")

    model: str = Field(..., min_length=1, description="Endpoint name serving the model")
    prompt: Union[str, List[Any]] = Field(..., description="Prompt text or token list")
    stream: bool = Field(False, description="Relay the answer as server-sent events")


class ChatCompletionRequest(BaseModel):
    """Chat completion request."""

    model_config = ConfigDict(extra="allow")

    model: str = Field(..., min_length=1, description="Endpoint name serving the model")
    messages: List[Dict[str, Any]] = Field(..., min_length=1, description="Conversation so far")
    stream: bool = Field(False, description="Relay the answer as server-sent events")


InferenceRequest = Union[CompletionRequest, ChatCompletionRequest]


class EndOfStream(Exception):
    """The upstream stream finished cleanly."""


class UpstreamStreamError(Exception):
    """The upstream stream broke before finishing."""


class EndpointURLResolver:
    """Maps an endpoint name and engine to the engine's API base URL."""

    def __init__(self, url_template: str, namespace: str, api_paths: Mapping[str, str]):
        self.url_template = url_template
        self.namespace = namespace
        self.api_paths = dict(api_paths)

    def root_url(self, endpoint_name: str) -> str:
        return self.url_template.format(name=endpoint_name, namespace=self.namespace).rstrip("/")

    def base_url(self, endpoint_name: str, engine: Engine) -> str:
        try:
            path = self.api_paths[engine.value]
        except KeyError:
            raise AppError(
                ErrorType.PARSING,
                "Unsupported inference engine",
                log=f"no API path configured for engine {engine.value}",
            )
        return self.root_url(endpoint_name) + path


class UpstreamStream:
    """Pull-based reader over an engine's server-sent event stream."""

    def __init__(self, response: httpx.Response):
        self._response = response
        self._lines: AsyncIterator[str] = response.aiter_lines()
        self._finished = False
        self._closed = False

    async def recv(self) -> Dict[str, Any]:
        """Return the next chunk.

        Raises ``EndOfStream`` on ``[DONE]`` or when the body ends and
        ``UpstreamStreamError`` for transport failures or malformed frames.
        """
        if self._finished or self._closed:
            raise EndOfStream()
        while True:
            try:
                line = await self._lines.__anext__()
            except StopAsyncIteration:
                self._finished = True
                raise EndOfStream()
            except httpx.HTTPError as e:
                raise UpstreamStreamError(f"stream read failed: {e}") from e

            line = line.strip()
            if not line.startswith("data:"):
                # blank separators, comments and event/id fields
                continue
            data = line[len("data:"):].strip()
            if data == "[DONE]":
                self._finished = True
                raise EndOfStream()
            try:
                chunk = json.loads(data)
            except ValueError as e:
                raise UpstreamStreamError(f"malformed stream frame: {data[:200]!r}") from e
            if not isinstance(chunk, dict):
                raise UpstreamStreamError(f"unexpected stream frame: {data[:200]!r}")
            if "error" in chunk and "choices" not in chunk:
                raise UpstreamStreamError(f"upstream reported error: {chunk['error']!r}")
            return chunk

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._response.aclose()


class InferenceService:
    """Forwards completion and chat requests to the resolved engine."""

    def __init__(
        self,
        resolver: EndpointURLResolver,
        timeout: Optional[float] = 600.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.resolver = resolver
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def completion(self, request: CompletionRequest, engine: Engine) -> Dict[str, Any]:
        return await self._call(request, engine, "/completions")

    async def completion_stream(self, request: CompletionRequest, engine: Engine) -> UpstreamStream:
        return await self._open_stream(request, engine, "/completions")

    async def chat_completion(self, request: ChatCompletionRequest, engine: Engine) -> Dict[str, Any]:
        return await self._call(request, engine, "/chat/completions")

    async def chat_completion_stream(self, request: ChatCompletionRequest, engine: Engine) -> UpstreamStream:
        return await self._open_stream(request, engine, "/chat/completions")

    def _build(self, request: InferenceRequest, engine: Engine, path: str, stream: bool) -> httpx.Request:
        url = self.resolver.base_url(request.model, engine) + path
        payload = request.model_dump(exclude_none=True)
        payload["stream"] = stream
        headers = {"Accept": "text/event-stream"} if stream else {}
        return self._client.build_request("POST", url, json=payload, headers=headers)

    async def _call(self, request: InferenceRequest, engine: Engine, path: str) -> Dict[str, Any]:
        http_request = self._build(request, engine, path, stream=False)
        try:
            response = await self._client.send(http_request)
        except httpx.HTTPError as e:
            raise _transport_error(e, request.model)

        if response.status_code != httpx.codes.OK:
            raise _status_error(response.status_code, response.text, request.model)
        try:
            body = response.json()
        except ValueError as e:
            raise AppError(
                ErrorType.GENERIC,
                "Inference request failed",
                log=f"non-JSON response from endpoint {request.model}",
                internal_err=e,
            )
        if not isinstance(body, dict):
            raise AppError(
                ErrorType.GENERIC,
                "Inference request failed",
                log=f"unexpected response shape from endpoint {request.model}",
            )
        return body

    async def _open_stream(self, request: InferenceRequest, engine: Engine, path: str) -> UpstreamStream:
        http_request = self._build(request, engine, path, stream=True)
        try:
            response = await self._client.send(http_request, stream=True)
        except httpx.HTTPError as e:
            raise _transport_error(e, request.model)

        if response.status_code != httpx.codes.OK:
            try:
                text = (await response.aread()).decode("utf-8", errors="replace")
            finally:
                await response.aclose()
            raise _status_error(response.status_code, text, request.model)
        return UpstreamStream(response)

    async def aclose(self) -> None:
        await self._client.aclose()


def _transport_error(e: httpx.HTTPError, endpoint: str) -> AppError:
    if isinstance(e, httpx.TimeoutException):
        return AppError(
            ErrorType.GATEWAY_TIMEOUT,
            "Inference request timed out",
            log=f"timeout calling endpoint {endpoint}",
            internal_err=e,
        )
    return AppError(
        ErrorType.GENERIC,
        "Inference request failed",
        log=f"transport error calling endpoint {endpoint}",
        internal_err=e,
    )


def _status_error(status_code: int, text: str, endpoint: str) -> AppError:
    return AppError(
        ErrorType.GENERIC,
        "Inference request failed",
        log=f"endpoint {endpoint} returned {status_code}: {text[:500]}",
    )
