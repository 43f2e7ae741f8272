"""Capture state machine: set up resources, run the steps, tear down.

States move forward only::

    INIT -> SETUP -> CAPTURE -> TEARDOWN -> COMPLETE | PARTIAL | ERROR

Teardown can be triggered twice: by the end of the step loop and by the
assembler when the size budget is reached. The transition into TEARDOWN is
guarded so the browser and proxy are released exactly once.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager, AsyncExitStack
from datetime import datetime
import threading
import traceback
from typing import Any

from pagepack.commands.capture.assembler import BudgetExceeded, ExchangeAssembler
from pagepack.commands.capture.browser import CaptureSession, open_capture_session
from pagepack.commands.capture.config import CaptureOptions, validate_url
from pagepack.commands.capture.proxy import IngestFn
from pagepack.commands.capture.steps import CaptureStep, build_steps
from pagepack.commands.capture.types import Capture, CaptureState, utcnow
from pagepack.formats.wacz import SOFTWARE

SessionFactory = Callable[
    [CaptureOptions, IngestFn], AbstractAsyncContextManager[CaptureSession]
]


class SetupError(Exception):
    """The browser or proxy could not be acquired. Fatal to the capture."""


class StepError(Exception):
    """A single capture step failed or timed out. Logged, never fatal."""

    def __init__(self, step_name: str, message: str):
        super().__init__(f"{step_name}: {message}")
        self.step_name = step_name


def format_trace(error: BaseException) -> str:
    return "".join(traceback.format_exception(type(error), error, error.__traceback__))


class CaptureController:
    """Drives one capture of one URL.

    The browser and proxy are acquired in SETUP, handed to each step
    explicitly and released at TEARDOWN; nothing else holds them.
    """

    def __init__(
        self,
        url: str,
        options: CaptureOptions | None = None,
        *,
        session_factory: SessionFactory | None = None,
        steps: list[CaptureStep] | None = None,
    ) -> None:
        options = options or CaptureOptions()
        self.result = Capture(url=validate_url(url), options=options)
        self.assembler = ExchangeAssembler(
            self.result, on_budget_exceeded=self._on_budget_exceeded
        )
        self.steps = steps if steps is not None else build_steps(options)
        self._session_factory = session_factory or open_capture_session
        self._resources = AsyncExitStack()
        self._state_lock = threading.Lock()
        self._release_task: asyncio.Task[None] | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._browser_info: dict[str, Any] = {}

    @property
    def state(self) -> CaptureState:
        return self.result.state

    async def capture(self) -> CaptureState:
        """Run the whole capture and return its terminal state.

        Raises SetupError if the browser or proxy cannot be acquired. Step
        failures are only logged.
        """
        capture = self.result
        if capture.state is not CaptureState.INIT:
            raise RuntimeError(f"Capture already ran (state: {capture.state.value})")

        session = await self.setup()
        started_at = utcnow()
        capture.add_log(
            f"Starting capture of {capture.url} with options: "
            f"{capture.options.model_dump_json()}"
        )
        try:
            with self._state_lock:
                capture.state = CaptureState.CAPTURE
            await self._run_steps(session)
        finally:
            await self.teardown()

        if capture.options.provenance_summary:
            capture.provenance_info = self._provenance(started_at, utcnow())
        capture.state = (
            CaptureState.PARTIAL if capture.budget_exceeded else CaptureState.COMPLETE
        )
        return capture.state

    async def setup(self) -> CaptureSession:
        capture = self.result
        self._loop = asyncio.get_running_loop()
        capture.state = CaptureState.SETUP
        try:
            session = await self._resources.enter_async_context(
                self._session_factory(capture.options, self.assembler.ingest)
            )
        except Exception as e:
            capture.state = CaptureState.ERROR
            capture.add_log("Could not start browser and proxy.", True, format_trace(e))
            await self._resources.aclose()
            raise SetupError(f"Could not start browser and proxy: {e}") from e

        try:
            self._browser_info = await session.describe()
        except Exception as e:
            capture.add_log("Could not read browser details.", True, format_trace(e))
        return session

    async def _run_steps(self, session: CaptureSession) -> None:
        capture = self.result
        total = len(self.steps)
        for index, step in enumerate(self.steps, start=1):
            label = f"STEP [{index}/{total}]: {step.name}"
            if capture.state is not CaptureState.CAPTURE:
                capture.add_log(f"{label} - skipped, capture ended early", True)
                break
            capture.add_log(label)
            try:
                await self._run_step(step, session)
            except StepError as e:
                if capture.state is CaptureState.CAPTURE:
                    capture.add_log(f"{label} - failed", True, format_trace(e))
                else:
                    capture.add_log(f"{label} - ended due to max size reached", True)

    async def _run_step(self, step: CaptureStep, session: CaptureSession) -> None:
        try:
            await asyncio.wait_for(step.run(session, self.result), timeout=step.timeout)
        except asyncio.TimeoutError as e:
            raise StepError(step.name, f"timed out after {step.timeout:.1f}s") from e
        except Exception as e:
            raise StepError(step.name, str(e)) from e

    def _enter_teardown(self) -> bool:
        """Move to TEARDOWN. False if already there, finished, or never started."""
        with self._state_lock:
            if self.result.state not in (CaptureState.SETUP, CaptureState.CAPTURE):
                return False
            self.result.state = CaptureState.TEARDOWN
        self.result.add_log("Closing browser and proxy server.")
        return True

    async def teardown(self) -> None:
        """Release the browser and proxy. Safe to call any number of times."""
        self._enter_teardown()
        if self._loop is None:
            return
        await self._schedule_release()

    def request_teardown(self) -> None:
        """Start teardown from synchronous code, possibly on another thread."""
        if self._enter_teardown() and self._loop is not None:
            self._loop.call_soon_threadsafe(self._schedule_release)

    def _schedule_release(self) -> asyncio.Task[None]:
        if self._release_task is None:
            assert self._loop is not None
            self._release_task = self._loop.create_task(self._release())
        return self._release_task

    async def _release(self) -> None:
        try:
            await self._resources.aclose()
        except Exception as e:
            self.result.add_log("Error while closing browser and proxy.", True, format_trace(e))

    def _on_budget_exceeded(self, signal: BudgetExceeded) -> None:
        self.request_teardown()

    def _provenance(self, started_at: datetime, ended_at: datetime) -> dict[str, Any]:
        capture = self.result
        options = capture.options
        return {
            "url": capture.url,
            "software": SOFTWARE,
            "captureStart": started_at.isoformat(),
            "captureEnd": ended_at.isoformat(),
            "proxy": f"{options.proxy_host}:{options.proxy_port}",
            "exchangeCount": len(capture.exchanges),
            "generatedExchangeCount": len(capture.generated_exchanges),
            "totalSize": capture.total_size,
            "maxSizeReached": capture.budget_exceeded,
            "options": options.model_dump(mode="json"),
            **self._browser_info,
        }


async def capture_url(
    url: str,
    options: CaptureOptions | None = None,
    session_factory: SessionFactory | None = None,
) -> Capture:
    """Capture url and return the finished Capture."""
    controller = CaptureController(url, options, session_factory=session_factory)
    await controller.capture()
    return controller.result
