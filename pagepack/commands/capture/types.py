"""In-memory data classes for a capture and its exchanges."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Literal

from pagepack.commands.capture.config import CaptureOptions
from pagepack.helpers.console import console
from pagepack.helpers.http import (
    ParsedRequest,
    ParsedResponse,
    parse_request,
    parse_response,
    request_url,
)

Direction = Literal["request", "response"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CaptureState(Enum):
    INIT = "init"
    SETUP = "setup"
    CAPTURE = "capture"
    TEARDOWN = "teardown"
    COMPLETE = "complete"
    PARTIAL = "partial"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (CaptureState.COMPLETE, CaptureState.PARTIAL, CaptureState.ERROR)

    @property
    def is_archivable(self) -> bool:
        return self in (CaptureState.COMPLETE, CaptureState.PARTIAL)


@dataclass
class LogEntry:
    message: str
    is_warning: bool = False
    trace: str = ""
    timestamp: datetime = field(default_factory=utcnow)


@dataclass
class Exchange:
    """A request/response pair as intercepted on the wire."""

    id: str
    timestamp: datetime = field(default_factory=utcnow)
    request_bytes: bytes = b""
    response_bytes: bytes = b""

    kind = "intercepted"

    @property
    def url(self) -> str | None:
        return request_url(self.request_bytes)

    @property
    def request(self) -> ParsedRequest | None:
        return parse_request(self.request_bytes)

    @property
    def response(self) -> ParsedResponse | None:
        return parse_response(self.response_bytes)


@dataclass
class GeneratedExchange:
    """An exchange synthesized in-process, e.g. a screenshot of the page."""

    id: str
    url: str
    timestamp: datetime = field(default_factory=utcnow)
    description: str = ""
    is_entry_point: bool = False
    request: ParsedRequest | None = None
    response: ParsedResponse | None = None

    kind = "generated"

    @property
    def request_bytes(self) -> bytes:
        return self.request.to_bytes() if self.request else b""

    @property
    def response_bytes(self) -> bytes:
        return self.response.to_bytes() if self.response else b""


@dataclass
class ExchangeStore:
    """Ordered exchanges, plus the exchange currently open on each session.

    Only the most recent exchange of a session can still be missing its
    response bytes, so keeping that one per session is enough to answer the
    "latest exchange on this session" lookups made during ingestion.
    """

    exchanges: list[Exchange] = field(default_factory=list)
    _open: dict[str, int] = field(default_factory=dict, repr=False, compare=False)

    def __post_init__(self) -> None:
        for index, exchange in enumerate(self.exchanges):
            self._open[exchange.id] = index

    def __len__(self) -> int:
        return len(self.exchanges)

    def __iter__(self) -> Iterator[Exchange]:
        return iter(self.exchanges)

    def __getitem__(self, index: int) -> Exchange:
        return self.exchanges[index]

    def latest(self, session_id: str) -> Exchange | None:
        index = self._open.get(session_id)
        return None if index is None else self.exchanges[index]

    def append(self, exchange: Exchange) -> Exchange:
        self.exchanges.append(exchange)
        self._open[exchange.id] = len(self.exchanges) - 1
        return exchange


@dataclass
class Capture:
    """Aggregate root of one single-page capture."""

    url: str
    options: CaptureOptions = field(default_factory=CaptureOptions)
    state: CaptureState = CaptureState.INIT
    store: ExchangeStore = field(default_factory=ExchangeStore)
    generated_exchanges: list[GeneratedExchange] = field(default_factory=list)
    logs: list[LogEntry] = field(default_factory=list)
    total_size: int = 0
    budget_exceeded: bool = False
    provenance_info: dict | None = None

    @property
    def exchanges(self) -> list[Exchange]:
        return self.store.exchanges

    def add_log(self, message: str, is_warning: bool = False, trace: str = "") -> LogEntry:
        entry = LogEntry(message=message, is_warning=is_warning, trace=trace)
        self.logs.append(entry)
        if self.options.verbose:
            style = "yellow" if is_warning else "dim"
            console.print(
                f"{entry.timestamp.isoformat()} {message}", style=style, markup=False
            )
            if trace:
                console.print(trace, style="dim", markup=False)
        return entry
