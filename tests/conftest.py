"""Shared test fixtures for pagepack tests."""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from pagepack.commands.capture.browser import CaptureSession
from pagepack.commands.capture.config import CaptureOptions
from pagepack.commands.capture.steps import SCREENSHOT_URL
from pagepack.commands.capture.types import (
    Capture,
    CaptureState,
    Exchange,
    ExchangeStore,
    GeneratedExchange,
)
from pagepack.helpers.http import ParsedResponse

ROOT_REQUEST = (
    b"GET https://example.com/ HTTP/1.1\r\n"
    b"Host: example.com\r\n"
    b"User-Agent: pagepack-test\r\n\r\n"
)
ROOT_RESPONSE = (
    b"HTTP/1.1 200 OK\r\n"
    b"Content-Type: text/html\r\n"
    b"Content-Length: 13\r\n\r\n"
    b"<html></html>"
)
API_REQUEST = (
    b"POST /api HTTP/1.1\r\n"
    b"Host: example.com\r\n"
    b"Content-Length: 7\r\n\r\n"
    b'{"a":1}'
)
API_RESPONSE = (
    b"HTTP/1.1 201 Created\r\n"
    b"Transfer-Encoding: chunked\r\n\r\n"
    b"5\r\nhello\r\n0\r\n\r\n"
)
PENDING_REQUEST = b"GET /slow HTTP/1.1\r\nHost: cdn.example.com\r\n\r\n"


def _ts(second: int, micro: int = 0) -> datetime:
    return datetime(2026, 3, 1, 12, 0, second, micro, tzinfo=timezone.utc)


@pytest.fixture
def sample_messages() -> dict[str, bytes]:
    return {
        "root_request": ROOT_REQUEST,
        "root_response": ROOT_RESPONSE,
        "api_request": API_REQUEST,
        "api_response": API_RESPONSE,
        "pending_request": PENDING_REQUEST,
    }


@pytest.fixture
def sample_exchanges() -> list[Exchange]:
    return [
        Exchange("sess-1", _ts(0, 123456), ROOT_REQUEST, ROOT_RESPONSE),
        Exchange("sess-1", _ts(1, 500), API_REQUEST, API_RESPONSE),
        Exchange("sess-2", _ts(2), PENDING_REQUEST, b""),
    ]


@pytest.fixture
def screenshot_exchange() -> GeneratedExchange:
    body = b"\x89PNG\r\n\x1a\nfake-image-bytes"
    return GeneratedExchange(
        id="f" * 32,
        url=SCREENSHOT_URL,
        timestamp=_ts(3, 42),
        description="Capture-time screenshot of the page",
        is_entry_point=True,
        response=ParsedResponse(
            status=200,
            reason="OK",
            headers=[("Content-Type", "image/png"), ("Content-Length", str(len(body)))],
            body=body,
        ),
    )


@pytest.fixture
def sample_capture(
    sample_exchanges: list[Exchange], screenshot_exchange: GeneratedExchange
) -> Capture:
    total = sum(len(e.request_bytes) + len(e.response_bytes) for e in sample_exchanges)
    return Capture(
        url="https://example.com/",
        state=CaptureState.COMPLETE,
        store=ExchangeStore(list(sample_exchanges)),
        generated_exchanges=[screenshot_exchange],
        total_size=total,
        provenance_info={
            "url": "https://example.com/",
            "software": "pagepack 0.1.0",
            "exchangeCount": 3,
            "maxSizeReached": False,
        },
    )


@pytest.fixture
def quiet_options() -> CaptureOptions:
    """Options for tests that drive the controller without a behaviors script."""
    return CaptureOptions(
        grab_secondary_resources=False,
        auto_play_media=False,
        run_site_specific_behaviors=False,
    )


class FakeSessionFactory:
    """Stands in for open_capture_session: a mocked page, no browser or proxy."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.opened = 0
        self.closed = 0
        self.ingest = None
        self.page = MagicMock()
        self.page.goto = AsyncMock()
        self.page.evaluate = AsyncMock(return_value="FakeAgent/1.0")
        self.page.screenshot = AsyncMock(return_value=b"\x89PNG fake")
        self.page.wait_for_load_state = AsyncMock()
        self.page.frames = []

    @asynccontextmanager
    async def __call__(self, options, ingest):
        if self.fail:
            raise RuntimeError("Proxy failed to start on localhost:9000")
        self.opened += 1
        self.ingest = ingest
        try:
            yield CaptureSession(page=self.page)
        finally:
            self.closed += 1


@pytest.fixture
def fake_session_factory() -> FakeSessionFactory:
    return FakeSessionFactory()


@pytest.fixture
def failing_session_factory() -> FakeSessionFactory:
    return FakeSessionFactory(fail=True)
