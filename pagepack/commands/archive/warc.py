"""WARC request/response records for captured exchanges, written with warcio.

Each record block is the exchange's raw HTTP message, byte for byte. Extension
headers carry what the archive needs to rebuild the capture:

* ``WARC-Exchange-Id``: proxy session id (or generated exchange id)
* ``WARC-Exchange-Kind``: ``intercepted`` or ``generated``
* ``WARC-Exchange-Description``: generated exchanges only

A response is tied to the request of the same exchange by
``WARC-Concurrent-To``.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timezone
from io import BytesIO
import uuid

from warcio.archiveiterator import ArchiveIterator
from warcio.exceptions import ArchiveLoadFailed
from warcio.statusandheaders import StatusAndHeaders, StatusAndHeadersParserException
from warcio.warcwriter import WARCWriter

from pagepack.commands.capture.types import Exchange, GeneratedExchange
from pagepack.formats.wacz import SOFTWARE
from pagepack.helpers.http import parse_head, split_message

EXCHANGE_ID = "WARC-Exchange-Id"
EXCHANGE_KIND = "WARC-Exchange-Kind"
EXCHANGE_DESCRIPTION = "WARC-Exchange-Description"

WARC_VERSION = "1.1"
SUPPORTED_WARC_VERSIONS = ("WARC/1.0", "WARC/1.1")
WARC_DATE_FORMATS = ("%Y-%m-%dT%H:%M:%S.%fZ", "%Y-%m-%dT%H:%M:%SZ")
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class WarcFormatError(ValueError):
    """The WARC data is not a well-formed sequence of records."""


class VerbatimHttpHead(StatusAndHeaders):
    """HTTP head that serializes back to exactly the bytes it was read from."""

    def __init__(self, raw_head: bytes):
        start_line, headers = parse_head(raw_head)
        protocol, _, statusline = start_line.partition(" ")
        super().__init__(statusline, headers, protocol=protocol)
        self.raw_head = raw_head

    def compute_headers_buffer(self, header_filter=None) -> None:  # noqa: ARG002
        # WARCWriter serializes the head through this hook.
        self.headers_buff = self.raw_head

    def to_bytes(self, filter_func=None, encoding="utf-8") -> bytes:  # noqa: ARG002
        return self.raw_head

    def __bool__(self) -> bool:
        return bool(self.raw_head)


@dataclass
class ExchangeRecord:
    """One exchange as read back from WARC records."""

    kind: str
    id: str
    timestamp: datetime
    uri: str
    description: str = ""
    request_bytes: bytes = b""
    response_bytes: bytes = b""


def format_warc_date(ts: datetime) -> str:
    return ts.astimezone(timezone.utc).strftime(WARC_DATE_FORMATS[0])


def parse_warc_date(value: str) -> datetime:
    for fmt in WARC_DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    raise WarcFormatError(f"Invalid WARC-Date: {value!r}")


def _record_id(exchange: Exchange | GeneratedExchange, index: int, record_type: str) -> str:
    name = f"{exchange.kind}/{index}/{record_type}/{exchange.id}/{exchange.timestamp.isoformat()}"
    return f"<urn:uuid:{uuid.uuid5(uuid.NAMESPACE_URL, name)}>"


def _warcinfo_record(writer: WARCWriter, filename: str, info: dict[str, str], date: datetime):
    # Same block as WARCWriter.create_warcinfo_record, with a stable id and date.
    warc_date = format_warc_date(date)
    fields = "".join(f"{name}: {value}\r\n" for name, value in info.items()).encode("utf-8")
    record_id = uuid.uuid5(uuid.NAMESPACE_URL, f"warcinfo/{filename}/{warc_date}")
    headers = StatusAndHeaders(
        "",
        [
            ("WARC-Type", "warcinfo"),
            ("WARC-Record-ID", f"<urn:uuid:{record_id}>"),
            ("WARC-Filename", filename),
            ("WARC-Date", warc_date),
        ],
        protocol=f"WARC/{WARC_VERSION}",
    )
    return writer.create_warc_record(
        "",
        "warcinfo",
        payload=BytesIO(fields),
        length=len(fields),
        warc_content_type="application/warc-fields",
        warc_headers=headers,
    )


def _create_record(
    writer: WARCWriter, uri: str, record_type: str, raw: bytes, headers: dict[str, str]
):
    if not raw:
        return writer.create_warc_record(uri, record_type, warc_headers_dict=headers)
    head, body = split_message(raw)
    return writer.create_warc_record(
        uri,
        record_type,
        payload=BytesIO(body),
        length=len(body),
        warc_headers_dict=headers,
        http_headers=VerbatimHttpHead(head),
    )


def _write_exchange(
    writer: WARCWriter, exchange: Exchange | GeneratedExchange, index: int
) -> None:
    uri = exchange.url or f"urn:pagepack:exchange:{exchange.id}"
    common = {
        EXCHANGE_ID: exchange.id,
        EXCHANGE_KIND: exchange.kind,
        "WARC-Date": format_warc_date(exchange.timestamp),
    }
    if isinstance(exchange, GeneratedExchange) and exchange.description:
        common[EXCHANGE_DESCRIPTION] = exchange.description

    request_id = None
    # An exchange with no bytes at all still gets an (empty) request record.
    if exchange.request_bytes or not exchange.response_bytes:
        request_id = _record_id(exchange, index, "request")
        headers = {**common, "WARC-Record-ID": request_id}
        writer.write_record(
            _create_record(writer, uri, "request", exchange.request_bytes, headers)
        )
    if exchange.response_bytes:
        headers = {**common, "WARC-Record-ID": _record_id(exchange, index, "response")}
        if request_id:
            headers["WARC-Concurrent-To"] = request_id
        writer.write_record(
            _create_record(writer, uri, "response", exchange.response_bytes, headers)
        )


def write_warc(
    exchanges: Iterable[Exchange],
    generated: Iterable[GeneratedExchange] = (),
    *,
    gzip: bool = False,
    filename: str = "data.warc",
    is_part_of: str = "",
) -> bytes:
    """Serialize exchanges, then generated exchanges, as WARC records."""
    buf = BytesIO()
    writer = WARCWriter(buf, gzip=gzip, warc_version=WARC_VERSION)
    records = list(exchanges) + list(generated)
    info = {"software": SOFTWARE, "format": "WARC File Format 1.1"}
    if is_part_of:
        info["isPartOf"] = is_part_of
    started = min((e.timestamp for e in records), default=EPOCH)
    writer.write_record(_warcinfo_record(writer, filename, info, started))

    index = 0
    for exchange in records:
        _write_exchange(writer, exchange, index)
        index += 1
    return buf.getvalue()


def read_warc(data: bytes) -> list[ExchangeRecord]:
    """Read exchanges back from WARC bytes, in record order."""
    exchanges: list[ExchangeRecord] = []
    open_requests: dict[str, ExchangeRecord] = {}
    try:
        for record in ArchiveIterator(BytesIO(data), no_record_parse=True):
            headers = record.rec_headers
            if headers.protocol not in SUPPORTED_WARC_VERSIONS:
                raise WarcFormatError(f"Unsupported WARC version: {headers.protocol!r}")
            if record.rec_type not in ("request", "response"):
                continue

            declared = headers.get_header("Content-Length")
            block = record.raw_stream.read()
            if declared is None or not declared.isdigit() or int(declared) != len(block):
                raise WarcFormatError(
                    f"Record {headers.get_header('WARC-Record-ID')} declares "
                    f"length {declared!r} but holds {len(block)} bytes"
                )

            record_id = headers.get_header("WARC-Record-ID") or ""
            if record.rec_type == "response":
                concurrent = headers.get_header("WARC-Concurrent-To")
                exchange = open_requests.pop(concurrent, None) if concurrent else None
                if exchange is not None:
                    exchange.response_bytes = block
                    continue

            date = headers.get_header("WARC-Date")
            if not date:
                raise WarcFormatError(f"Record {record_id} has no WARC-Date")
            exchange = ExchangeRecord(
                kind=headers.get_header(EXCHANGE_KIND) or "intercepted",
                id=headers.get_header(EXCHANGE_ID) or record_id,
                timestamp=parse_warc_date(date),
                uri=headers.get_header("WARC-Target-URI") or "",
                description=headers.get_header(EXCHANGE_DESCRIPTION) or "",
            )
            if record.rec_type == "request":
                exchange.request_bytes = block
                open_requests[record_id] = exchange
            else:
                exchange.response_bytes = block
            exchanges.append(exchange)
    except WarcFormatError:
        raise
    except (ArchiveLoadFailed, StatusAndHeadersParserException, ValueError) as e:
        raise WarcFormatError(f"Malformed WARC data: {e}") from e
    return exchanges
