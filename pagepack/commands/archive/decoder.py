"""Rebuild an in-memory capture from a WACZ container."""

from __future__ import annotations

from pathlib import Path

from pagepack.commands.archive.encoder import raw_path, shared_raw_keys
from pagepack.commands.archive.loader import DecodeError, read_container
from pagepack.commands.archive.types import ArchiveContainer
from pagepack.commands.archive.warc import ExchangeRecord, WarcFormatError, read_warc
from pagepack.commands.capture.types import (
    Capture,
    CaptureState,
    Exchange,
    ExchangeStore,
    GeneratedExchange,
)
from pagepack.formats.wacz import WARC_PATH
from pagepack.helpers.http import parse_request, parse_response

__all__ = ["DecodeError", "capture_from_container", "decode", "load_capture"]


def _generated(record: ExchangeRecord, page_ids: set[str]) -> GeneratedExchange:
    return GeneratedExchange(
        id=record.id,
        url=record.uri,
        timestamp=record.timestamp,
        description=record.description,
        is_entry_point=record.id in page_ids,
        request=parse_request(record.request_bytes),
        response=parse_response(record.response_bytes),
    )


def _intercepted(
    record: ExchangeRecord, raw_files: dict[str, bytes], shared: set[str]
) -> Exchange:
    exchange = Exchange(id=record.id, timestamp=record.timestamp)
    if raw_path("request", exchange) in shared:
        raw_files = {}
    exchange.request_bytes = raw_files.get(
        raw_path("request", exchange), record.request_bytes
    )
    exchange.response_bytes = raw_files.get(
        raw_path("response", exchange), record.response_bytes
    )
    return exchange


def capture_from_container(container: ArchiveContainer) -> Capture:
    """Rebuild the capture held by an already-loaded container."""
    try:
        records = read_warc(container.files[WARC_PATH])
    except KeyError as e:
        raise DecodeError(f"Missing required file: {WARC_PATH}") from e
    except WarcFormatError as e:
        raise DecodeError(f"Invalid {WARC_PATH}: {e}") from e

    page_ids = {page.id for page in container.pages}
    raw_files = container.raw_files
    shared = shared_raw_keys(
        Exchange(id=r.id, timestamp=r.timestamp) for r in records if r.kind == Exchange.kind
    )
    store = ExchangeStore()
    generated: list[GeneratedExchange] = []
    for record in records:
        if record.kind == GeneratedExchange.kind:
            generated.append(_generated(record, page_ids))
        elif record.kind == Exchange.kind:
            store.append(_intercepted(record, raw_files, shared))
        else:
            raise DecodeError(f"Unknown exchange kind {record.kind!r} for {record.id}")

    extras = container.extras or {}
    provenance = extras.get("provenanceInfo")
    url = container.main_page_url or (container.pages[0].url if container.pages else "")
    return Capture(
        url=url,
        state=CaptureState.COMPLETE,
        store=store,
        generated_exchanges=generated,
        total_size=sum(len(e.request_bytes) + len(e.response_bytes) for e in store),
        provenance_info=provenance,
    )


def decode(data: bytes) -> Capture:
    """Rebuild a capture from WACZ bytes. Raises DecodeError."""
    return capture_from_container(read_container(data))


def load_capture(path: str | Path) -> Capture:
    """Rebuild a capture from a .wacz file on disk."""
    return decode(Path(path).read_bytes())
