from __future__ import annotations

import asyncio
import logging
import time
from enum import Enum
from typing import Optional

from playwright.async_api import Page

from footprint.core.errors import InteractionFailure
from footprint.core.models import ElementDescriptor, InteractionOutcome
from footprint.core.network_monitor import NetworkActivityMonitor

logger = logging.getLogger("footprint.interaction")


class Strategy(str, Enum):
    NATIVE = "native"
    SCRIPT = "script"
    TEXT = "text"
    COORDINATE = "coordinate"


# Lower runs first.
BASE_PRIORITY: dict[Strategy, float] = {
    Strategy.NATIVE: 1.0,
    Strategy.SCRIPT: 2.0,
    Strategy.TEXT: 3.0,
    Strategy.COORDINATE: 4.0,
}

TEXT_SEARCH_SELECTORS: tuple[str, ...] = (
    "button",
    '[role="button"]',
    'input[type="button"]',
    'input[type="submit"]',
    "[onclick]",
    "[data-toggle]",
    "summary",
    ".btn",
    ".button",
)

DISPATCH_JS = r"""
(selector) => {
  const el = document.querySelector(selector);
  if (!el) return 'not found';
  if (typeof el.focus === 'function') el.focus();
  const init = { bubbles: true, cancelable: true, view: window };
  for (const type of ['mouseenter', 'mouseover', 'mousedown', 'mouseup', 'click']) {
    el.dispatchEvent(new MouseEvent(type, init));
  }
  if (typeof el.click === 'function') el.click();
  return 'ok';
}
"""

DISPATCH_BY_TEXT_JS = r"""
({text, selectors}) => {
  const wanted = (text || '').replace(/\s+/g, ' ').trim().toLowerCase();
  if (!wanted) return 'no text';
  for (const selector of selectors) {
    let nodes = [];
    try {
      nodes = Array.from(document.querySelectorAll(selector));
    } catch (_) {
      continue;
    }
    for (const el of nodes) {
      const content = (el.textContent || '').replace(/\s+/g, ' ').trim().toLowerCase();
      if (!content.includes(wanted)) continue;
      const rect = el.getBoundingClientRect();
      if (rect.width <= 0 || rect.height <= 0) continue;
      const init = { bubbles: true, cancelable: true, view: window };
      if (typeof el.focus === 'function') el.focus();
      for (const type of ['mouseenter', 'mouseover', 'mousedown', 'mouseup', 'click']) {
        el.dispatchEvent(new MouseEvent(type, init));
      }
      if (typeof el.click === 'function') el.click();
      return 'ok';
    }
  }
  return 'no visible element with matching text';
}
"""


def strategy_order(descriptor: ElementDescriptor) -> tuple[Strategy, ...]:
    priority = dict(BASE_PRIORITY)
    if descriptor.has_stable_id:
        priority[Strategy.NATIVE] = 0.5
    if descriptor.has_click_handler:
        priority[Strategy.SCRIPT] = min(priority[Strategy.SCRIPT], 0.75)
    if descriptor.disabled or not descriptor.visible:
        priority[Strategy.NATIVE] = 5.0
        priority[Strategy.SCRIPT] = min(priority[Strategy.SCRIPT], 0.75)
        priority[Strategy.COORDINATE] = 1.5
    # sorted() is stable, so ties keep enum declaration order.
    return tuple(sorted(Strategy, key=lambda strategy: priority[strategy]))


class StrategyError(Exception):
    pass


class InteractionEngine:
    """Clicks one discovered element through ordered fallback strategies.

    ``invoke`` always returns an :class:`InteractionOutcome`; a timeout or the
    exhaustion of every strategy is reported in the outcome, never raised.
    """

    def __init__(
        self,
        page: Page,
        monitor: Optional[NetworkActivityMonitor] = None,
        settle_fraction: float = 0.3,
        settle_quiet_ms: int = 500,
        settle_max_ms: int = 3_000,
        strategy_timeout_ms: int = 3_000,
    ) -> None:
        self._page = page
        self._monitor = monitor
        self._settle_fraction = settle_fraction
        self._settle_quiet_ms = settle_quiet_ms
        self._settle_max_ms = settle_max_ms
        self._strategy_timeout_ms = strategy_timeout_ms

    async def _native(self, descriptor: ElementDescriptor, timeout_ms: int) -> None:
        await self._page.click(descriptor.selector, timeout=timeout_ms)

    async def _script(self, descriptor: ElementDescriptor, timeout_ms: int) -> None:
        result = await self._page.evaluate(DISPATCH_JS, descriptor.selector)
        if result != "ok":
            raise StrategyError(str(result))

    async def _text(self, descriptor: ElementDescriptor, timeout_ms: int) -> None:
        if not descriptor.text:
            raise StrategyError("element has no text to match")
        result = await self._page.evaluate(
            DISPATCH_BY_TEXT_JS,
            {"text": descriptor.text, "selectors": list(TEXT_SEARCH_SELECTORS)},
        )
        if result != "ok":
            raise StrategyError(str(result))

    async def _coordinate(self, descriptor: ElementDescriptor, timeout_ms: int) -> None:
        if not descriptor.has_valid_center:
            raise StrategyError("element not visible or has invalid coordinates")
        x, y = descriptor.geometry.center
        await self._page.mouse.click(x, y)

    async def _execute(self, strategy: Strategy, descriptor: ElementDescriptor, timeout_ms: int) -> None:
        if strategy == Strategy.NATIVE:
            await self._native(descriptor, timeout_ms)
        elif strategy == Strategy.SCRIPT:
            await self._script(descriptor, timeout_ms)
        elif strategy == Strategy.TEXT:
            await self._text(descriptor, timeout_ms)
        elif strategy == Strategy.COORDINATE:
            await self._coordinate(descriptor, timeout_ms)
        else:
            raise ValueError(f"Unsupported strategy: {strategy}")

    async def _attempt(
        self,
        descriptor: ElementDescriptor,
        deadline: float,
        attempts: list[tuple[str, str]],
    ) -> Strategy:
        for strategy in strategy_order(descriptor):
            remaining_ms = max(1, min(self._strategy_timeout_ms, int((deadline - time.monotonic()) * 1000)))
            try:
                await self._execute(strategy, descriptor, remaining_ms)
            except Exception as exc:
                reason = str(exc).splitlines()[0] if str(exc) else type(exc).__name__
                attempts.append((strategy.value, reason))
                logger.debug(f"[Interaction] {strategy.value} failed on {descriptor.selector}: {reason}")
                continue
            return strategy
        raise InteractionFailure(dict(attempts))

    async def _settle(self, deadline: float) -> bool:
        if self._monitor is None:
            return False
        before = len(self._monitor.resources())
        remaining_ms = int((deadline - time.monotonic()) * 1000)
        budget_ms = min(self._settle_max_ms, int(max(0, remaining_ms) * self._settle_fraction))
        if budget_ms > 0:
            await self._monitor.wait_idle(
                quiet_window_ms=min(self._settle_quiet_ms, budget_ms),
                max_wait_ms=budget_ms,
            )
        return len(self._monitor.resources()) > before

    async def invoke(self, descriptor: ElementDescriptor, timeout_ms: int = 10_000) -> InteractionOutcome:
        started = time.monotonic()
        deadline = started + timeout_ms / 1000.0
        attempts: list[tuple[str, str]] = []
        before = len(self._monitor.resources()) if self._monitor is not None else 0

        def elapsed() -> int:
            return int((time.monotonic() - started) * 1000)

        try:
            strategy = await asyncio.wait_for(
                self._attempt(descriptor, deadline, attempts),
                timeout=timeout_ms / 1000.0,
            )
        except asyncio.TimeoutError:
            logger.debug(f"[Interaction] Timed out after {timeout_ms}ms on {descriptor.selector}")
            return InteractionOutcome(
                success=False,
                error=f"timed out after {timeout_ms}ms",
                elapsed_ms=elapsed(),
                timed_out=True,
                attempts=tuple(attempts),
            )
        except InteractionFailure as exc:
            logger.debug(f"[Interaction] {exc}")
            return InteractionOutcome(
                success=False,
                error=str(exc),
                elapsed_ms=elapsed(),
                attempts=tuple(attempts),
            )

        try:
            activity = await self._settle(deadline)
        except Exception as exc:
            logger.debug(f"[Interaction] Post-interaction settle failed: {exc}")
            activity = False
        if self._monitor is not None:
            activity = activity or len(self._monitor.resources()) > before

        logger.debug(f"[Interaction] {strategy.value} succeeded on {descriptor.selector} in {elapsed()}ms")
        return InteractionOutcome(
            success=True,
            strategy=strategy.value,
            elapsed_ms=elapsed(),
            network_activity=activity,
            attempts=tuple(attempts),
        )
