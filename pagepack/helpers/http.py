"""Raw HTTP/1.x message helpers.

Exchanges are recorded as the bytes seen on the wire. These helpers split a
raw message into its head and body, read the start line and headers out of the
head, and serialize structured messages back to bytes for exchanges that are
generated in-process.
"""

from __future__ import annotations

from dataclasses import dataclass, field

HEAD_SEPARATOR = b"\r\n\r\n"


@dataclass
class ParsedRequest:
    """Structured view of an HTTP request."""

    method: str = "GET"
    target: str = "/"
    version: str = "HTTP/1.1"
    headers: list[tuple[str, str]] = field(default_factory=list)
    body: bytes = b""

    def to_bytes(self) -> bytes:
        start_line = f"{self.method} {self.target} {self.version}"
        return _assemble(start_line, self.headers, self.body)


@dataclass
class ParsedResponse:
    """Structured view of an HTTP response."""

    status: int = 200
    reason: str = "OK"
    version: str = "HTTP/1.1"
    headers: list[tuple[str, str]] = field(default_factory=list)
    body: bytes = b""

    def to_bytes(self) -> bytes:
        start_line = f"{self.version} {self.status} {self.reason}".rstrip()
        return _assemble(start_line, self.headers, self.body)


def _assemble(start_line: str, headers: list[tuple[str, str]], body: bytes) -> bytes:
    lines = [start_line] + [f"{name}: {value}" for name, value in headers]
    return "\r\n".join(lines).encode("latin-1") + HEAD_SEPARATOR + body


def split_message(raw: bytes) -> tuple[bytes, bytes]:
    """Split raw bytes into (head, body).

    The head keeps its terminating blank line. When no blank line is present
    the whole buffer is treated as a (possibly truncated) head.
    """
    index = raw.find(HEAD_SEPARATOR)
    if index < 0:
        return raw, b""
    end = index + len(HEAD_SEPARATOR)
    return raw[:end], raw[end:]


def parse_head(head: bytes) -> tuple[str, list[tuple[str, str]]]:
    """Return the start line and ordered header pairs of a message head."""
    text = head.decode("latin-1")
    lines = text.split("\r\n")
    start_line = lines[0]
    headers: list[tuple[str, str]] = []
    for line in lines[1:]:
        if not line:
            continue
        name, sep, value = line.partition(":")
        if not sep:
            continue
        # Only the single space written after the colon is dropped.
        headers.append((name, value[1:] if value.startswith(" ") else value))
    return start_line, headers


def get_header(headers: list[tuple[str, str]], name: str) -> str | None:
    """Get a header value by name (case-insensitive, first match wins).

    Surrounding whitespace is not part of the returned value.
    """
    name_lower = name.lower()
    for key, value in headers:
        if key.lower() == name_lower:
            return value.strip()
    return None


def parse_request(raw: bytes) -> ParsedRequest | None:
    """Parse raw request bytes, or None if there is no usable request line."""
    head, body = split_message(raw)
    if not head:
        return None
    start_line, headers = parse_head(head)
    parts = start_line.split(" ")
    if len(parts) != 3:
        return None
    method, target, version = parts
    return ParsedRequest(
        method=method, target=target, version=version, headers=headers, body=body
    )


def parse_response(raw: bytes) -> ParsedResponse | None:
    """Parse raw response bytes, or None if there is no usable status line."""
    head, body = split_message(raw)
    if not head:
        return None
    start_line, headers = parse_head(head)
    parts = start_line.split(" ", 2)
    if len(parts) < 2 or not parts[1].isdigit():
        return None
    return ParsedResponse(
        version=parts[0],
        status=int(parts[1]),
        reason=parts[2] if len(parts) == 3 else "",
        headers=headers,
        body=body,
    )


def request_url(raw: bytes) -> str | None:
    """Absolute URL targeted by raw request bytes.

    Proxied plain-HTTP requests carry an absolute-form target. Requests that
    reached the proxy through a CONNECT tunnel use origin-form, in which case
    the URL is rebuilt from the Host header.
    """
    request = parse_request(raw)
    if request is None:
        return None
    if request.target.startswith(("http://", "https://")):
        return request.target
    host = get_header(request.headers, "Host")
    if not host:
        return None
    return f"https://{host}{request.target}"
