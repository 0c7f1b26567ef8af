"""Server-sent event relay from an inference engine to the API caller.

A relay owns one upstream stream for one client connection. Frames are
produced by an async generator that the HTTP layer drains and flushes one
by one:

- each upstream chunk becomes ``data: <json>\\n\\n``
- a clean upstream end becomes ``data: [DONE]\\n\\n`` and the relay stops
- any other upstream error stops the relay without a ``[DONE]`` frame

Exactly one inference metric is recorded per relay and the upstream stream
is closed however the generator exits.
"""

import json
import time
import uuid
from typing import Any, AsyncIterator, Dict, Optional, Protocol

import structlog

from ..adapters.inference_backend import EndOfStream

logger = structlog.get_logger("stream_relay")

DONE_FRAME = b"data: [DONE]\n\n"

# Characters HTML-safe JSON encoders write as \u escapes
_HTML_ESCAPES = {
    "<": "\\u003c",
    ">": "\\u003e",
    "&": "\\u0026",
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
}


class ChunkStream(Protocol):
    async def recv(self) -> Dict[str, Any]: ...

    async def aclose(self) -> None: ...


class MetricsRecorder(Protocol):
    def record_inference_metrics(self, model_name: str, outcome: str, latency_ms: int) -> None: ...


def encode_frame(chunk: Dict[str, Any]) -> bytes:
    """Encode one chunk as an event frame with compact, HTML-safe JSON."""
    payload = json.dumps(chunk, separators=(",", ":"), ensure_ascii=False)
    for char, escaped in _HTML_ESCAPES.items():
        payload = payload.replace(char, escaped)
    return b"data: " + payload.encode("utf-8") + b"\n\n"


def elapsed_ms(started_at: float) -> int:
    return int((time.monotonic() - started_at) * 1000)


class StreamRelay:
    """Relays one upstream chunk stream as event frames.

    Parameters
    - stream: Upstream handle with ``recv``/``aclose``
    - model_name: Requested model; stamped on every chunk and used as the
      metric label
    - metrics: Recorder receiving the single outcome for this request
    - started_at: ``time.monotonic()`` reading taken before validation
    """

    def __init__(
        self,
        stream: ChunkStream,
        model_name: str,
        metrics: MetricsRecorder,
        started_at: float,
    ):
        self.stream = stream
        self.model_name = model_name
        self.metrics = metrics
        self.started_at = started_at
        self._response_id: Optional[str] = None
        self._outcome: Optional[str] = None

    @property
    def response_id(self) -> str:
        """Synthetic ID for chunks the engine sent without one."""
        if self._response_id is None:
            self._response_id = str(uuid.uuid4())
        return self._response_id

    @property
    def outcome(self) -> Optional[str]:
        return self._outcome

    def _record(self, outcome: str) -> None:
        if self._outcome is not None:
            return
        self._outcome = outcome
        self.metrics.record_inference_metrics(self.model_name, outcome, elapsed_ms(self.started_at))

    def _stamp(self, chunk: Dict[str, Any]) -> Dict[str, Any]:
        if not chunk.get("id"):
            chunk["id"] = self.response_id
        chunk["model"] = self.model_name
        return chunk

    async def frames(self) -> AsyncIterator[bytes]:
        try:
            while True:
                try:
                    chunk = await self.stream.recv()
                except EndOfStream:
                    logger.debug("Stream finished", model=self.model_name)
                    self._record("success")
                    yield DONE_FRAME
                    return
                except Exception as e:
                    # Headers are already sent; all we can do is stop.
                    logger.warning("Stream error", model=self.model_name, error=str(e))
                    self._record("failure")
                    return

                yield encode_frame(self._stamp(chunk))
        finally:
            if self._outcome is None:
                logger.info("Client went away mid-stream", model=self.model_name)
                self._record("failure")
            await self.stream.aclose()
