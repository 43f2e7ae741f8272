"""MITM proxy transport feeding raw exchange bytes to the assembler."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from mitmproxy.http import Headers as mitmproxy_Headers, HTTPFlow

from pagepack.commands.capture.config import CaptureOptions
from pagepack.commands.capture.types import Direction
from pagepack.helpers.console import console

IngestFn = Callable[[str, Direction, bytes], bytes]

STARTUP_TIMEOUT = 10.0


def _ensure_mitmproxy() -> None:
    """Lazy-import mitmproxy, raising a clear error if not installed."""
    try:
        import mitmproxy as _mitmproxy  # noqa: F401

        del _mitmproxy
    except ImportError:
        raise ImportError(
            "mitmproxy is required for capture.\n"
            "  Install it with: pip install mitmproxy>=10.0"
        )


def _is_chunked(headers: mitmproxy_Headers) -> bool:
    value = str(headers.get("transfer-encoding", "") or "")  # pyright: ignore[reportUnknownMemberType, reportUnknownArgumentType]
    return "chunked" in value.lower()


class BodyRecorder:
    """Stream callback handing body chunks to ingest.

    mitmproxy strips chunked framing before streaming, so chunked bodies are
    re-framed here to match what was on the wire. An empty chunk marks the end
    of the body.
    """

    def __init__(
        self, ingest: IngestFn, session_id: str, direction: Direction, chunked: bool
    ) -> None:
        self.ingest = ingest
        self.session_id = session_id
        self.direction = direction
        self.chunked = chunked

    def __call__(self, data: bytes) -> bytes:
        if self.chunked:
            if data:
                framed = b"%x\r\n" % len(data) + data + b"\r\n"
            else:
                framed = b"0\r\n\r\n"
            self.ingest(self.session_id, self.direction, framed)
        elif data:
            self.ingest(self.session_id, self.direction, data)
        return data


class RecordingAddon:
    """mitmproxy addon that forwards every HTTP message to ingest.

    The session id is the client connection id, so pairs sent over a reused
    keep-alive connection share it.
    """

    def __init__(self, ingest: IngestFn, verbose: bool = False) -> None:
        self.ingest = ingest
        self.verbose = verbose
        self.ready = asyncio.Event()

    def running(self) -> None:
        self.ready.set()

    def requestheaders(self, flow: HTTPFlow) -> None:
        from mitmproxy.net.http.http1.assemble import assemble_request_head

        session_id = flow.client_conn.id
        self.ingest(session_id, "request", assemble_request_head(flow.request))
        flow.request.stream = BodyRecorder(
            self.ingest, session_id, "request", _is_chunked(flow.request.headers)
        )
        if self.verbose:
            console.print(
                f"  {session_id[:8]}  >>> {flow.request.method:<6} {flow.request.pretty_url}",
                markup=False,
            )

    def responseheaders(self, flow: HTTPFlow) -> None:
        from mitmproxy.net.http.http1.assemble import assemble_response_head

        assert flow.response is not None
        session_id = flow.client_conn.id
        self.ingest(session_id, "response", assemble_response_head(flow.response))
        flow.response.stream = BodyRecorder(
            self.ingest, session_id, "response", _is_chunked(flow.response.headers)
        )
        if self.verbose:
            console.print(
                f"  {session_id[:8]}  <<< {flow.response.status_code}     {flow.request.pretty_url}",
                markup=False,
            )


@asynccontextmanager
async def run_proxy(options: CaptureOptions, ingest: IngestFn) -> AsyncIterator[RecordingAddon]:
    """Run a MITM proxy on the current event loop for the duration of the block.

    HTTP/2 is disabled towards the client so that every exchange is recorded
    as HTTP/1.1 bytes.
    """
    _ensure_mitmproxy()

    from mitmproxy.options import Options
    from mitmproxy.tools.dump import DumpMaster

    opts = Options(
        listen_host=options.proxy_host,
        listen_port=options.proxy_port,
        mode=["regular"],
        http2=False,
        ssl_insecure=True,
    )
    master = DumpMaster(opts, with_termlog=options.proxy_verbose, with_dumper=False)
    addon = RecordingAddon(ingest, verbose=options.proxy_verbose)
    master.addons.add(addon)  # pyright: ignore[reportUnknownMemberType]

    proxy_task = asyncio.create_task(master.run())
    ready_task = asyncio.create_task(addon.ready.wait())
    try:
        done, _ = await asyncio.wait(
            {proxy_task, ready_task},
            timeout=STARTUP_TIMEOUT,
            return_when=asyncio.FIRST_COMPLETED,
        )
        if ready_task not in done:
            raise RuntimeError(
                f"Proxy failed to start on {options.proxy_host}:{options.proxy_port}"
            )
        yield addon
    finally:
        ready_task.cancel()
        master.shutdown()
        await asyncio.gather(proxy_task, return_exceptions=True)
