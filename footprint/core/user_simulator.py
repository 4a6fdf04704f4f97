from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

from playwright.async_api import Page

from footprint.core.behavior_simulator import BehaviorSimulator, FocusOptions, HoverOptions, ScrollOptions, TypingOptions
from footprint.core.config import AnalysisOptions
from footprint.core.element_discovery import DiscoveryConfig, ElementDiscovery, deduplicate
from footprint.core.interaction_engine import InteractionEngine
from footprint.core.models import BehaviorReport, ElementDescriptor, InteractionOutcome, StepResult
from footprint.core.network_monitor import NetworkActivityMonitor

logger = logging.getLogger("footprint.simulator")

PAGE_STRUCTURE_JS = """
() => ({
  title: document.title,
  url: window.location.href,
  hasFrames: window.frames.length > 0,
  hasServiceWorker: 'serviceWorker' in navigator,
  viewport: { width: window.innerWidth, height: window.innerHeight },
  pageSize: {
    width: document.body ? document.body.scrollWidth : 0,
    height: document.body ? document.body.scrollHeight : 0,
  },
})
"""


@dataclass(frozen=True)
class SimulationConfig:
    max_interactions: int = 2
    max_scroll_steps: int = 3
    enable_hover: bool = True
    enable_forms: bool = False
    enable_responsive: bool = False
    element_timeout_ms: int = 5_000
    post_interaction_pause_ms: int = 1_000
    reading_pause_ms: int = 1_500
    settle_quiet_ms: int = 5_000
    settle_max_ms: int = 30_000
    verbose_logging: bool = True

    @classmethod
    def from_options(cls, options: AnalysisOptions) -> "SimulationConfig":
        return cls(
            max_interactions=options.max_interactions,
            max_scroll_steps=options.max_scroll_steps,
            verbose_logging=options.verbose_logging,
        )


@dataclass(frozen=True)
class SimulationResult:
    total_interactions: int
    successful_interactions: int
    pages_explored: int = 1
    network_activity: bool = False
    page_info: dict[str, Any] = field(default_factory=dict)
    outcomes: tuple[InteractionOutcome, ...] = ()
    reports: tuple[BehaviorReport, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_interactions": self.total_interactions,
            "successful_interactions": self.successful_interactions,
            "pages_explored": self.pages_explored,
            "network_activity": self.network_activity,
            "page_info": self.page_info,
            "outcomes": [outcome.to_dict() for outcome in self.outcomes],
            "behaviors": [report.to_dict() for report in self.reports],
        }


def page_metadata(page_info: dict[str, Any]) -> dict[str, Any]:
    size = page_info.get("pageSize") or {}
    return {
        "title": page_info.get("title", ""),
        "has_frames": bool(page_info.get("hasFrames", False)),
        "has_service_worker": bool(page_info.get("hasServiceWorker", False)),
        "page_size": {"width": int(size.get("width") or 0), "height": int(size.get("height") or 0)},
    }


class UserSimulator:
    """Runs the behavior phases of one analysis against an open page."""

    def __init__(
        self,
        page: Page,
        config: SimulationConfig | None = None,
        monitor: Optional[NetworkActivityMonitor] = None,
        discovery: Optional[ElementDiscovery] = None,
        engine: Optional[InteractionEngine] = None,
        behavior: Optional[BehaviorSimulator] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._page = page
        self._config = config or SimulationConfig()
        self._monitor = monitor
        self._discovery = discovery or ElementDiscovery(page)
        self._engine = engine or InteractionEngine(page, monitor=monitor)
        self._behavior = behavior or BehaviorSimulator(page, monitor=monitor)
        self._sleep = sleep

    @property
    def config(self) -> SimulationConfig:
        return self._config

    def _network_activity(self) -> bool:
        return self._monitor.has_activity() if self._monitor is not None else False

    async def simulate(self) -> SimulationResult:
        logger.info("[Simulator] Starting user behavior simulation")
        reports: list[BehaviorReport] = []

        page_info = await self.explore_page_structure()
        reports.append(await self._behavior.simulate_scrolling(ScrollOptions(max_steps=self._config.max_scroll_steps)))
        await self._pause(self._config.reading_pause_ms)

        outcomes = await self._discover_and_interact()

        if self._config.enable_hover:
            reports.append(await self._hover_phase())
        if self._config.enable_forms:
            reports.extend(await self._form_phase())
        if self._config.enable_responsive:
            reports.append(await self._behavior.simulate_viewport_changes())

        await self.final_settlement()

        successful = sum(1 for outcome in outcomes if outcome.success)
        logger.info(f"[Simulator] Completed: {successful}/{len(outcomes)} interactions successful")
        return SimulationResult(
            total_interactions=len(outcomes),
            successful_interactions=successful,
            pages_explored=1,
            network_activity=self._network_activity(),
            page_info=page_info,
            outcomes=tuple(outcomes),
            reports=tuple(reports),
        )

    async def explore_page_structure(self) -> dict[str, Any]:
        try:
            info = await self._page.evaluate(PAGE_STRUCTURE_JS)
        except Exception as exc:
            logger.warning(f"[Simulator] Page structure probe failed: {exc}")
            return {}
        if self._config.verbose_logging:
            size = info.get("pageSize") or {}
            logger.debug(f"[Simulator] Page '{info.get('title', '')}' {size.get('width')}x{size.get('height')}")
        return dict(info)

    async def _pause(self, ms: int) -> None:
        if ms > 0:
            await self._sleep(ms / 1000.0)

    async def _candidates(self) -> list[ElementDescriptor]:
        candidates: list[ElementDescriptor] = []
        try:
            candidates.extend(await self._discovery.find_smart())
        except Exception as exc:
            logger.warning(f"[Simulator] Smart discovery failed: {exc}")
        try:
            interactive = await self._discovery.find_interactive()
            candidates.extend(interactive.buttons)
        except Exception as exc:
            logger.warning(f"[Simulator] Interactive discovery failed: {exc}")
        return deduplicate(candidates)

    async def _discover_and_interact(self) -> list[InteractionOutcome]:
        if self._config.max_interactions <= 0:
            return []
        candidates = await self._candidates()
        logger.debug(f"[Simulator] {len(candidates)} unique interactive candidates")
        outcomes: list[InteractionOutcome] = []
        for descriptor in candidates[: self._config.max_interactions]:
            outcomes.append(await self._interact(descriptor))
        return outcomes

    async def _interact(self, descriptor: ElementDescriptor, timeout_ms: int | None = None) -> InteractionOutcome:
        if self._config.verbose_logging:
            logger.debug(f"[Simulator] Interacting with {descriptor.text[:30] or descriptor.selector}")
        outcome = await self._engine.invoke(descriptor, timeout_ms or self._config.element_timeout_ms)
        if outcome.success:
            await self._pause(self._config.post_interaction_pause_ms)
        elif self._config.verbose_logging:
            logger.debug(f"[Simulator] Interaction failed: {outcome.error}")
        return outcome

    async def _hover_phase(self) -> BehaviorReport:
        try:
            elements = await self._discovery.find_by_type(
                "hover", DiscoveryConfig(max_elements=3, exclude_navigation=False)
            )
        except Exception as exc:
            logger.debug(f"[Simulator] Hover discovery failed: {exc}")
            return BehaviorReport(behavior="hover", steps=(StepResult("discover", False, str(exc)),))
        return await self._behavior.simulate_hover(elements, HoverOptions(max_elements=3))

    async def _form_phase(self) -> list[BehaviorReport]:
        try:
            fields = await self._discovery.find_by_type("forms", DiscoveryConfig(max_elements=2))
        except Exception as exc:
            logger.debug(f"[Simulator] Form discovery failed: {exc}")
            return [BehaviorReport(behavior="typing", steps=(StepResult("discover", False, str(exc)),))]
        return [
            await self._behavior.simulate_typing(fields, TypingOptions()),
            await self._behavior.simulate_focus(fields, FocusOptions()),
        ]

    async def final_settlement(self) -> None:
        if self._monitor is None:
            return
        result = await self._monitor.wait_idle(
            quiet_window_ms=self._config.settle_quiet_ms,
            max_wait_ms=self._config.settle_max_ms,
        )
        logger.debug(
            f"[Simulator] Final network state: {len(self._monitor.resources())} resources, "
            f"{round(self._monitor.total_bytes() / 1024)}KB, idle={result.idle} after {result.waited_ms}ms"
        )

    async def interact_with_elements(self, element_type: str = "buttons", max_elements: int = 3) -> SimulationResult:
        elements = await self._discovery.find_by_type(element_type, DiscoveryConfig(max_elements=max_elements))
        outcomes = [await self._interact(element) for element in elements]
        return SimulationResult(
            total_interactions=len(outcomes),
            successful_interactions=sum(1 for outcome in outcomes if outcome.success),
            network_activity=self._network_activity(),
            outcomes=tuple(outcomes),
        )

    async def custom_interaction(self, selector: str, timeout_ms: int | None = None) -> InteractionOutcome:
        try:
            descriptor = await self._discovery.describe(selector)
        except Exception as exc:
            return InteractionOutcome(success=False, error=str(exc))
        if descriptor is None:
            return InteractionOutcome(success=False, error="Element not found")
        return await self._interact(descriptor, timeout_ms)
