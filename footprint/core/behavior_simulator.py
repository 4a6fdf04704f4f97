from __future__ import annotations

import asyncio
import logging
import math
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Sequence

from playwright.async_api import Page

from footprint.core.models import BehaviorReport, ElementDescriptor, StepResult
from footprint.core.network_monitor import NetworkActivityMonitor

logger = logging.getLogger("footprint.behavior")

PAGE_DIMENSIONS_JS = """
() => ({
  scrollHeight: Math.max(document.body ? document.body.scrollHeight : 0, document.documentElement.scrollHeight),
  viewportHeight: window.innerHeight,
})
"""

SCROLL_TO_JS = "(top) => window.scrollTo({ top, behavior: 'smooth' })"

LAZY_CONTENT_JS = """
() => Array.from(document.querySelectorAll('img[data-src], img[loading="lazy"]'))
  .every((img) => img.complete || img.naturalWidth > 0)
"""

HOVER_CONTENT_JS = """
() => {
  const panels = document.querySelectorAll('.dropdown-menu, .hover-content, [aria-expanded="true"]');
  return panels.length === 0 || Array.from(panels).some((el) => el.offsetParent !== null);
}
"""

RESPONSIVE_CONTENT_JS = """
() => Array.from(document.querySelectorAll('header, nav, main, .container'))
  .every((el) => el.offsetWidth > 0 && el.offsetHeight > 0)
"""

TOUCH_POINTS_JS = """
Object.defineProperty(navigator, 'maxTouchPoints', { value: 1, configurable: true });
"""

ORIENTATION_CHANGE_JS = "() => window.dispatchEvent(new Event('orientationchange'))"


@dataclass(frozen=True)
class ScrollOptions:
    max_steps: int = 5
    pause_range_ms: tuple[int, int] = (800, 1400)
    scroll_to_top: bool = True
    trigger_lazy_load: bool = True
    lazy_timeout_ms: int = 2_000


@dataclass(frozen=True)
class HoverOptions:
    max_elements: int = 3
    hover_range_ms: tuple[int, int] = (500, 1500)
    content_timeout_ms: int = 1_000


@dataclass(frozen=True)
class FocusOptions:
    max_elements: int = 5
    focus_range_ms: tuple[int, int] = (300, 800)
    tab_probability: float = 0.3
    timeout_ms: int = 2_000


@dataclass(frozen=True)
class TypingOptions:
    max_fields: int = 3
    sample_texts: tuple[str, ...] = ("test", "sample", "example")
    key_delay_ms: int = 100
    timeout_ms: int = 2_000


@dataclass(frozen=True)
class ViewportOptions:
    viewports: tuple[tuple[int, int], ...] = ((375, 667), (768, 1024), (1920, 1080))
    pause_ms: int = 1_000
    content_timeout_ms: int = 2_000


@dataclass(frozen=True)
class DeviceCapabilityOptions:
    enable_touch: bool = True
    enable_orientation: bool = False


class BehaviorSimulator:
    """Best-effort user behaviors.

    Every sub-step is captured as a :class:`StepResult`; a failing step is
    logged and recorded, and the sequence moves on to the next one.
    """

    def __init__(
        self,
        page: Page,
        monitor: Optional[NetworkActivityMonitor] = None,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._page = page
        self._monitor = monitor
        self._rng = rng or random.Random()
        self._sleep = sleep

    async def _pause(self, range_ms: tuple[int, int]) -> None:
        low, high = range_ms
        await self._sleep(self._rng.uniform(low, high) / 1000.0)

    async def _step(self, name: str, action: Callable[[], Awaitable[Any]]) -> StepResult:
        try:
            await action()
        except Exception as exc:
            reason = str(exc).splitlines()[0] if str(exc) else type(exc).__name__
            logger.debug(f"[Behavior] {name} failed: {reason}")
            return StepResult(name=name, ok=False, reason=reason)
        return StepResult(name=name, ok=True)

    async def _wait_for(self, script: str, timeout_ms: int) -> bool:
        """Bounded wait on an in-page predicate; a timeout is an expected outcome."""
        try:
            await self._page.wait_for_function(script, timeout=timeout_ms)
        except Exception as exc:
            logger.debug(f"[Behavior] Content wait ended without settling: {str(exc).splitlines()[0] if str(exc) else exc!r}")
            return False
        return True

    async def _dimensions(self) -> tuple[int, int]:
        dims = await self._page.evaluate(PAGE_DIMENSIONS_JS)
        return int(dims.get("scrollHeight") or 0), int(dims.get("viewportHeight") or 0)

    async def simulate_scrolling(self, options: ScrollOptions | None = None) -> BehaviorReport:
        opts = options or ScrollOptions()
        steps: list[StepResult] = []

        try:
            scroll_height, viewport_height = await self._dimensions()
        except Exception as exc:
            logger.debug(f"[Behavior] Could not measure page: {exc}")
            return BehaviorReport(behavior="scroll", steps=(StepResult("measure", False, str(exc)),))

        scrollable = max(0, scroll_height - viewport_height)
        if scrollable == 0 or opts.max_steps <= 0 or viewport_height <= 0:
            logger.debug("[Behavior] Nothing to scroll")
            return BehaviorReport(behavior="scroll", steps=(StepResult("measure", True),))

        step_count = min(opts.max_steps, max(1, math.ceil(scrollable / (viewport_height * 0.8))))
        increment = scrollable / step_count
        position = 0.0

        for index in range(1, step_count + 1):
            target = int(round(min(position + increment, scrollable)))

            async def scroll(target: int = target) -> None:
                await self._page.evaluate(SCROLL_TO_JS, target)
                await self._pause(opts.pause_range_ms)
                if opts.trigger_lazy_load:
                    await self._wait_for(LAZY_CONTENT_JS, opts.lazy_timeout_ms)

            steps.append(await self._step(f"scroll_{index}", scroll))
            position = target

            try:
                grown_height, _ = await self._dimensions()
            except Exception as exc:
                logger.debug(f"[Behavior] Re-measure after step {index} failed: {exc}")
                continue
            if grown_height > scroll_height:
                logger.debug(f"[Behavior] Lazy content grew page by {grown_height - scroll_height}px")
                scroll_height = grown_height
                scrollable = max(0, scroll_height - viewport_height)
                remaining_steps = step_count - index
                if remaining_steps > 0:
                    increment = (scrollable - position) / remaining_steps
            if position >= scrollable:
                break

        if opts.scroll_to_top:

            async def back_to_top() -> None:
                await self._page.evaluate(SCROLL_TO_JS, 0)
                await self._pause((500, 1000))

            steps.append(await self._step("scroll_top", back_to_top))

        report = BehaviorReport(behavior="scroll", steps=tuple(steps))
        logger.debug(f"[Behavior] Scrolling done: {report.succeeded}/{report.attempted} steps")
        return report

    async def simulate_hover(
        self, elements: Sequence[ElementDescriptor], options: HoverOptions | None = None
    ) -> BehaviorReport:
        opts = options or HoverOptions()
        steps: list[StepResult] = []

        for element in list(elements)[: opts.max_elements]:
            name = f"hover:{element.selector}"
            if not element.has_valid_center:
                steps.append(StepResult(name=name, ok=False, reason="no valid position"))
                continue

            async def hover(element: ElementDescriptor = element) -> None:
                x, y = element.geometry.center
                await self._page.mouse.move(x, y)
                await self._pause(opts.hover_range_ms)
                await self._wait_for(HOVER_CONTENT_JS, opts.content_timeout_ms)

            steps.append(await self._step(name, hover))

        return BehaviorReport(behavior="hover", steps=tuple(steps))

    async def simulate_focus(
        self, elements: Sequence[ElementDescriptor], options: FocusOptions | None = None
    ) -> BehaviorReport:
        opts = options or FocusOptions()
        focusable = [element for element in elements if element.interactive and not element.disabled]
        steps: list[StepResult] = []

        for element in focusable[: opts.max_elements]:

            async def focus(element: ElementDescriptor = element) -> None:
                await self._page.focus(element.selector, timeout=opts.timeout_ms)
                await self._pause(opts.focus_range_ms)
                if self._rng.random() < opts.tab_probability:
                    await self._page.keyboard.press("Tab")
                    await self._pause((200, 500))

            steps.append(await self._step(f"focus:{element.selector}", focus))

        return BehaviorReport(behavior="focus", steps=tuple(steps))

    async def simulate_typing(
        self, elements: Sequence[ElementDescriptor], options: TypingOptions | None = None
    ) -> BehaviorReport:
        opts = options or TypingOptions()
        steps: list[StepResult] = []

        for field in list(elements)[: opts.max_fields]:
            text = self._rng.choice(opts.sample_texts) if opts.sample_texts else "test"

            async def type_into(field: ElementDescriptor = field, text: str = text) -> None:
                await self._page.focus(field.selector, timeout=opts.timeout_ms)
                await self._page.keyboard.press("Control+A")
                await self._page.keyboard.type(text, delay=opts.key_delay_ms)
                await self._pause((500, 1000))

            steps.append(await self._step(f"type:{field.selector}", type_into))

        return BehaviorReport(behavior="typing", steps=tuple(steps))

    async def simulate_viewport_changes(self, options: ViewportOptions | None = None) -> BehaviorReport:
        opts = options or ViewportOptions()
        original = self._page.viewport_size
        steps: list[StepResult] = []

        try:
            for width, height in opts.viewports:

                async def resize(width: int = width, height: int = height) -> None:
                    await self._page.set_viewport_size({"width": width, "height": height})
                    await self._pause((opts.pause_ms, int(opts.pause_ms * 1.5)))
                    await self._wait_for(RESPONSIVE_CONTENT_JS, opts.content_timeout_ms)

                steps.append(await self._step(f"viewport:{width}x{height}", resize))
        finally:
            if original:
                try:
                    await self._page.set_viewport_size(dict(original))
                except Exception as exc:
                    logger.warning(f"[Behavior] Failed to restore viewport {original}: {exc}")
                    steps.append(StepResult(name="viewport:restore", ok=False, reason=str(exc)))

        return BehaviorReport(behavior="viewport", steps=tuple(steps))

    async def simulate_device_capabilities(self, options: DeviceCapabilityOptions | None = None) -> BehaviorReport:
        opts = options or DeviceCapabilityOptions()
        steps: list[StepResult] = []

        if opts.enable_touch:
            steps.append(await self._step("touch", lambda: self._page.add_init_script(TOUCH_POINTS_JS)))

        if opts.enable_orientation:

            async def rotate() -> None:
                await self._page.evaluate(ORIENTATION_CHANGE_JS)
                await self._pause((500, 1000))

            steps.append(await self._step("orientation", rotate))

        return BehaviorReport(behavior="device", steps=tuple(steps))
