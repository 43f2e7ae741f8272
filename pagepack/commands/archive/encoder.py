"""Serialize a finished capture into a WACZ container."""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable

from pagepack.commands.archive.types import ArchiveContainer
from pagepack.commands.archive.warc import format_warc_date, write_warc
from pagepack.commands.capture.types import Capture, Direction, Exchange, GeneratedExchange
from pagepack.formats.wacz import RAW_PREFIX, WARC_PATH, PageLine


class EncodeError(Exception):
    """The capture cannot be archived in its current state."""


def raw_path(direction: Direction, exchange: Exchange) -> str:
    return f"{RAW_PREFIX}{direction}_{format_warc_date(exchange.timestamp)}_{exchange.id}"


def shared_raw_keys(exchanges: Iterable[Exchange]) -> set[str]:
    """Raw paths that more than one exchange maps to.

    Such exchanges keep their bytes in the WARC records only.
    """
    counts = Counter(raw_path("request", exchange) for exchange in exchanges)
    return {path for path, count in counts.items() if count > 1}


def _check_archivable(capture: Capture) -> None:
    if not capture.state.is_archivable:
        raise EncodeError(
            f"Capture is not finished (state: {capture.state.value}); "
            "only complete or partial captures can be archived"
        )


def _page(exchange: Exchange | GeneratedExchange) -> PageLine:
    url = exchange.url or ""
    title = exchange.description if isinstance(exchange, GeneratedExchange) else ""
    return PageLine(
        id=exchange.id,
        url=url,
        ts=format_warc_date(exchange.timestamp),
        title=title or url,
    )


def entry_points(capture: Capture) -> list[Exchange | GeneratedExchange]:
    """The root page (first exchange) followed by generated entry points."""
    pages: list[Exchange | GeneratedExchange] = []
    if capture.exchanges:
        pages.append(capture.exchanges[0])
    pages.extend(g for g in capture.generated_exchanges if g.is_entry_point)
    return pages


def encode(capture: Capture, include_raw: bool = False) -> ArchiveContainer:
    """Build the archive container for a COMPLETE or PARTIAL capture.

    WARC record blocks are the captured bytes verbatim. With ``include_raw``
    each non-empty buffer is also stored as-is under ``raw/``.
    """
    _check_archivable(capture)

    files = {
        WARC_PATH: write_warc(
            capture.exchanges, capture.generated_exchanges, is_part_of=capture.url
        )
    }
    if include_raw:
        shared = shared_raw_keys(capture.exchanges)
        for exchange in capture.exchanges:
            if raw_path("request", exchange) in shared:
                continue
            if exchange.request_bytes:
                files[raw_path("request", exchange)] = exchange.request_bytes
            if exchange.response_bytes:
                files[raw_path("response", exchange)] = exchange.response_bytes

    extras = None
    if capture.options.provenance_summary and capture.provenance_info:
        extras = {"provenanceInfo": capture.provenance_info}

    return ArchiveContainer(
        files=files,
        pages=[_page(exchange) for exchange in entry_points(capture)],
        extras=extras,
        title=f"Capture of {capture.url}",
        main_page_url=capture.url,
    )


def to_warc(capture: Capture, gzip: bool = False) -> bytes:
    """Export the capture as a standalone WARC file."""
    _check_archivable(capture)
    return write_warc(
        capture.exchanges,
        capture.generated_exchanges,
        gzip=gzip,
        filename="data.warc.gz" if gzip else "data.warc",
        is_part_of=capture.url,
    )
