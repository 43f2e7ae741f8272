"""Tests for the recording proxy addon (pagepack/commands/capture/proxy.py)."""

from __future__ import annotations

from mitmproxy.test import tflow
import pytest

from pagepack.commands.capture.assembler import ExchangeAssembler
from pagepack.commands.capture.proxy import BodyRecorder, RecordingAddon
from pagepack.commands.capture.types import Capture, CaptureState


class Recorder:
    def __init__(self) -> None:
        self.calls: list[tuple[str, str, bytes]] = []

    def __call__(self, session_id: str, direction: str, chunk: bytes) -> bytes:
        self.calls.append((session_id, direction, chunk))
        return chunk


class TestBodyRecorder:
    def test_plain_body_passes_through(self) -> None:
        ingest = Recorder()
        recorder = BodyRecorder(ingest, "sess-1", "response", chunked=False)
        assert recorder(b"hello") == b"hello"
        assert recorder(b"") == b""
        assert ingest.calls == [("sess-1", "response", b"hello")]

    def test_chunked_body_is_reframed(self) -> None:
        ingest = Recorder()
        recorder = BodyRecorder(ingest, "sess-1", "response", chunked=True)
        assert recorder(b"hello world") == b"hello world"
        assert recorder(b"") == b""
        assert b"".join(chunk for _, _, chunk in ingest.calls) == (
            b"b\r\nhello world\r\n0\r\n\r\n"
        )


class TestRecordingAddon:
    def test_request_head_and_body(self) -> None:
        ingest = Recorder()
        addon = RecordingAddon(ingest)
        flow = tflow.tflow()

        addon.requestheaders(flow)
        session_id, direction, head = ingest.calls[0]
        assert session_id == flow.client_conn.id
        assert direction == "request"
        assert head.startswith(b"GET ")
        assert head.endswith(b"\r\n\r\n")

        flow.request.stream(b"payload")
        assert ingest.calls[-1] == (flow.client_conn.id, "request", b"payload")

    def test_response_head(self) -> None:
        ingest = Recorder()
        addon = RecordingAddon(ingest)
        flow = tflow.tflow(resp=True)

        addon.responseheaders(flow)
        _, direction, head = ingest.calls[0]
        assert direction == "response"
        assert head.startswith(b"HTTP/1.1 200 OK\r\n")
        assert callable(flow.response.stream)

    def test_chunked_response_stream(self) -> None:
        ingest = Recorder()
        addon = RecordingAddon(ingest)
        flow = tflow.tflow(resp=True)
        flow.response.headers["transfer-encoding"] = "chunked"

        addon.responseheaders(flow)
        flow.response.stream(b"abc")
        flow.response.stream(b"")
        assert [chunk for _, _, chunk in ingest.calls[1:]] == [b"3\r\nabc\r\n", b"0\r\n\r\n"]

    def test_feeds_assembler(self) -> None:
        capture = Capture(url="https://example.com/", state=CaptureState.CAPTURE)
        addon = RecordingAddon(ExchangeAssembler(capture).ingest)
        flow = tflow.tflow(resp=True)

        addon.requestheaders(flow)
        addon.responseheaders(flow)
        flow.response.stream(b"body")

        assert len(capture.exchanges) == 1
        exchange = capture.exchanges[0]
        assert exchange.request is not None
        assert exchange.response is not None
        assert exchange.response.status == 200
        assert exchange.response_bytes.endswith(b"body")
        assert capture.total_size == len(exchange.request_bytes) + len(exchange.response_bytes)

    @pytest.mark.asyncio
    async def test_running_sets_ready(self) -> None:
        addon = RecordingAddon(Recorder())
        assert not addon.ready.is_set()
        addon.running()
        assert addon.ready.is_set()
