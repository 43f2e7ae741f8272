"""The ordered browser steps a capture runs through."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
import json
import uuid

from pagepack.commands.capture.browser import CaptureSession
from pagepack.commands.capture.config import CaptureOptions
from pagepack.commands.capture.types import Capture, CaptureState, GeneratedExchange
from pagepack.helpers.http import ParsedResponse

SCREENSHOT_URL = "file:///screenshot.png"
STEP_GRACE_SECONDS = 1.0

AUTO_SCROLL_JS = """
async ({ timeout }) => {
  const deadline = Date.now() + timeout;
  let previous = -1;
  while (Date.now() < deadline) {
    window.scrollBy(0, window.innerHeight);
    await new Promise((resolve) => setTimeout(resolve, 250));
    const bottom = window.scrollY + window.innerHeight >= document.body.scrollHeight;
    if (bottom || window.scrollY === previous) break;
    previous = window.scrollY;
  }
  window.scrollTo(0, 0);
}
"""

StepFn = Callable[[CaptureSession, Capture], Awaitable[None]]


@dataclass(frozen=True)
class CaptureStep:
    name: str
    run: StepFn
    timeout_ms: int

    @property
    def timeout(self) -> float:
        # Leaves room for the browser call's own timeout to fire first.
        return self.timeout_ms / 1000 + STEP_GRACE_SECONDS


async def initial_load(session: CaptureSession, capture: Capture) -> None:
    await session.page.goto(
        capture.url, wait_until="load", timeout=capture.options.load_timeout
    )


async def run_behaviors(session: CaptureSession, capture: Capture) -> None:
    """Inject the behaviors script in every frame and run it."""
    options = capture.options
    if options.behaviors_script is None:
        raise FileNotFoundError("No behaviors script configured (behaviors_script)")

    init_config = json.dumps(
        {
            "autofetch": options.grab_secondary_resources,
            "autoplay": options.auto_play_media,
            "siteSpecific": options.run_site_specific_behaviors,
            "timeout": options.behaviors_timeout,
        }
    )
    frames = session.page.frames
    for frame in frames:
        await frame.add_script_tag(path=str(options.behaviors_script))
        await frame.evaluate(f"self.__bx_behaviors.init({init_config})")

    # Frames may detach while behaviors run; those failures are not the step's.
    await asyncio.gather(
        *(frame.evaluate("self.__bx_behaviors.run()") for frame in frames),
        return_exceptions=True,
    )


async def auto_scroll(session: CaptureSession, capture: Capture) -> None:
    await session.page.evaluate(
        AUTO_SCROLL_JS, {"timeout": capture.options.auto_scroll_timeout}
    )


async def take_screenshot(session: CaptureSession, capture: Capture) -> None:
    body = await session.page.screenshot(
        full_page=True, timeout=capture.options.screenshot_timeout
    )
    if capture.state is not CaptureState.CAPTURE:
        raise RuntimeError("Capture is no longer running, screenshot discarded")

    capture.generated_exchanges.append(
        GeneratedExchange(
            id=uuid.uuid4().hex,
            url=SCREENSHOT_URL,
            description="Capture-time screenshot of the page",
            is_entry_point=True,
            response=ParsedResponse(
                status=200,
                reason="OK",
                headers=[
                    ("Content-Type", "image/png"),
                    ("Content-Length", str(len(body))),
                ],
                body=body,
            ),
        )
    )


async def network_idle(session: CaptureSession, capture: Capture) -> None:
    await session.page.wait_for_load_state(
        "networkidle", timeout=capture.options.network_idle_timeout
    )


def build_steps(options: CaptureOptions) -> list[CaptureStep]:
    """Pipeline selected by the options. Navigation first, network idle last."""
    steps = [CaptureStep("initial load", initial_load, options.load_timeout)]
    if options.runs_behaviors:
        steps.append(CaptureStep("browser scripts", run_behaviors, options.behaviors_timeout))
    if options.auto_scroll:
        steps.append(CaptureStep("auto-scroll", auto_scroll, options.auto_scroll_timeout))
    if options.screenshot:
        steps.append(CaptureStep("screenshot", take_screenshot, options.screenshot_timeout))
    steps.append(CaptureStep("network idle", network_idle, options.network_idle_timeout))
    return steps
