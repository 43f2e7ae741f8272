"""Reassembles proxied byte chunks into exchanges and enforces the size budget."""

from __future__ import annotations

from collections.abc import Callable
import threading

from pagepack.commands.capture.types import (
    Capture,
    CaptureState,
    Direction,
    Exchange,
)


class BudgetExceeded(Exception):
    """Signal that the capture reached its maximum size.

    Not a failure: it is handed to the budget callback, never raised out of
    ingest(), and the data captured so far is kept.
    """

    def __init__(self, total_size: int, max_size: int):
        super().__init__(
            f"Max size reached ({total_size} >= {max_size} bytes). "
            "Ending further capture."
        )
        self.total_size = total_size
        self.max_size = max_size


class ExchangeAssembler:
    """Single entry point for bytes delivered by the proxy.

    ingest() may be called from the proxy's own thread; each call is applied
    atomically to the exchange store and the size counter.
    """

    def __init__(
        self,
        capture: Capture,
        on_budget_exceeded: Callable[[BudgetExceeded], None] | None = None,
    ) -> None:
        self.capture = capture
        self.on_budget_exceeded = on_budget_exceeded
        self._lock = threading.Lock()

    def select_exchange(self, session_id: str, direction: Direction) -> Exchange:
        """Find the exchange a chunk belongs to, creating it if needed.

        Responses always continue the latest exchange of their session. A
        request continues it only while no response bytes have been seen; after
        that the connection is being reused and a new exchange starts.
        """
        store = self.capture.store
        latest = store.latest(session_id)
        if latest is not None and (direction == "response" or not latest.response_bytes):
            return latest
        return store.append(Exchange(id=session_id))

    def ingest(self, session_id: str, direction: Direction, chunk: bytes) -> bytes:
        if direction not in ("request", "response"):
            raise ValueError(f"Unknown direction: {direction!r}")

        signal = None
        with self._lock:
            exchange = self.select_exchange(session_id, direction)
            if direction == "request":
                exchange.request_bytes += chunk
            else:
                exchange.response_bytes += chunk

            capture = self.capture
            capture.total_size += len(chunk)
            max_size = capture.options.max_size
            if capture.total_size >= max_size and capture.state is CaptureState.CAPTURE:
                if not capture.budget_exceeded:
                    capture.budget_exceeded = True
                    signal = BudgetExceeded(capture.total_size, max_size)

        if signal is not None:
            self.capture.add_log(str(signal), is_warning=True)
            if self.on_budget_exceeded is not None:
                self.on_budget_exceeded(signal)
        return chunk
