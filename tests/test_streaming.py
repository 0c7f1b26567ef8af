"""Tests for the server-sent event relay."""

import json
import time
from typing import Any, Dict, List, Union
from unittest.mock import MagicMock

import pytest

from service_control_plane.app.adapters.inference_backend import EndOfStream, UpstreamStreamError
from service_control_plane.app.runtime.streaming import DONE_FRAME, StreamRelay, encode_frame

MODEL = "llama-3-8b"


class ScriptedStream:
    """Upstream stream replaying chunks and exceptions in order."""

    def __init__(self, items: List[Union[Dict[str, Any], Exception]]):
        self.items = list(items)
        self.recv_calls = 0
        self.closed = 0

    async def recv(self) -> Dict[str, Any]:
        self.recv_calls += 1
        item = self.items.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    async def aclose(self) -> None:
        self.closed += 1


async def drain(relay: StreamRelay) -> List[bytes]:
    return [frame async for frame in relay.frames()]


def decode(frame: bytes) -> Dict[str, Any]:
    assert frame.startswith(b"data: ") and frame.endswith(b"\n\n")
    return json.loads(frame[len(b"data: "):-2])


@pytest.mark.asyncio
async def test_clean_stream_ends_with_done_and_one_success():
    recorder = MagicMock()
    stream = ScriptedStream([{"choices": ["A"]}, {"choices": ["B"]}, EndOfStream()])
    relay = StreamRelay(stream, MODEL, recorder, time.monotonic())

    frames = await drain(relay)

    assert len(frames) == 3
    assert [decode(f)["choices"] for f in frames[:2]] == [["A"], ["B"]]
    assert frames[2] == DONE_FRAME
    recorder.record_inference_metrics.assert_called_once()
    model_name, outcome, latency_ms = recorder.record_inference_metrics.call_args.args
    assert (model_name, outcome) == (MODEL, "success")
    assert latency_ms >= 0
    assert stream.closed == 1


@pytest.mark.asyncio
async def test_upstream_error_stops_without_done_and_one_failure():
    recorder = MagicMock()
    stream = ScriptedStream([{"choices": ["A"]}, UpstreamStreamError("connection reset")])
    relay = StreamRelay(stream, MODEL, recorder, time.monotonic())

    frames = await drain(relay)

    assert len(frames) == 1
    assert DONE_FRAME not in frames
    recorder.record_inference_metrics.assert_called_once()
    assert recorder.record_inference_metrics.call_args.args[1] == "failure"
    assert relay.outcome == "failure"
    assert stream.recv_calls == 2
    assert stream.closed == 1


@pytest.mark.asyncio
async def test_missing_ids_share_one_synthetic_id():
    stream = ScriptedStream([{"choices": []}, {"id": "", "choices": []}, {"choices": []}, EndOfStream()])
    relay = StreamRelay(stream, MODEL, MagicMock(), time.monotonic())

    chunks = [decode(f) for f in (await drain(relay))[:-1]]

    ids = {chunk["id"] for chunk in chunks}
    assert len(ids) == 1
    assert ids == {relay.response_id}
    assert all(chunk["model"] == MODEL for chunk in chunks)


@pytest.mark.asyncio
async def test_upstream_ids_pass_through():
    stream = ScriptedStream([
        {"id": "cmpl-1", "model": "engine-internal-name"},
        {"id": "cmpl-2"},
        EndOfStream(),
    ])
    relay = StreamRelay(stream, MODEL, MagicMock(), time.monotonic())

    chunks = [decode(f) for f in (await drain(relay))[:-1]]

    assert [c["id"] for c in chunks] == ["cmpl-1", "cmpl-2"]
    assert [c["model"] for c in chunks] == [MODEL, MODEL]


@pytest.mark.asyncio
async def test_empty_stream_is_a_success():
    recorder = MagicMock()
    relay = StreamRelay(ScriptedStream([EndOfStream()]), MODEL, recorder, time.monotonic())

    assert await drain(relay) == [DONE_FRAME]
    assert recorder.record_inference_metrics.call_args.args[1] == "success"


@pytest.mark.asyncio
async def test_client_disconnect_records_failure_and_closes_upstream():
    recorder = MagicMock()
    stream = ScriptedStream([{"choices": ["A"]}, {"choices": ["B"]}, EndOfStream()])
    relay = StreamRelay(stream, MODEL, recorder, time.monotonic())

    frames = relay.frames()
    first = await frames.__anext__()
    await frames.aclose()

    assert decode(first)["choices"] == ["A"]
    recorder.record_inference_metrics.assert_called_once()
    assert recorder.record_inference_metrics.call_args.args[1] == "failure"
    assert stream.closed == 1


def test_frames_are_compact_json():
    frame = encode_frame({"id": "x", "choices": [{"text": "héllo"}]})
    assert frame == 'data: {"id":"x","choices":[{"text":"héllo"}]}\n\n'.encode("utf-8")


def test_frames_escape_html_characters():
    text = "<b>a & b</b>\u2028"
    frame = encode_frame({"choices": [{"text": text}]})
    assert frame == b'data: {"choices":[{"text":"\\u003cb\\u003ea \\u0026 b\\u003c/b\\u003e\\u2028"}]}\n\n'
    assert decode(frame)["choices"][0]["text"] == text
