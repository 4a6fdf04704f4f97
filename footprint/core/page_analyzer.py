from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Callable, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from footprint.core.analysis_cache import AnalysisCache, NullAnalysisCache, fingerprint
from footprint.core.config import (
    AnalysisOptions,
    EngineSettings,
    create_analysis_options,
    estimate_duration_ms,
    normalize_url,
    profile_for,
    validate_options,
)
from footprint.core.emissions import GreenHostingClient, bytes_to_co2e
from footprint.core.errors import AnalysisError, CacheError, LaunchFailure, NavigationFailure
from footprint.core.models import AnalysisResult
from footprint.core.network_monitor import NetworkActivityMonitor
from footprint.core.resource_classifier import classify
from footprint.core.session_manager import SessionManager
from footprint.core.telemetry import Telemetry
from footprint.core.user_simulator import SimulationConfig, UserSimulator, page_metadata

logger = logging.getLogger("footprint.analyzer")

ProgressCallback = Callable[[int, str, str], None]
SimulatorFactory = Callable[[Page, SimulationConfig, NetworkActivityMonitor], UserSimulator]


def _default_simulator(page: Page, config: SimulationConfig, monitor: NetworkActivityMonitor) -> UserSimulator:
    return UserSimulator(page, config=config, monitor=monitor)


class PageAnalyzer:
    """Runs one analysis: cache check, browser session, simulation, tally, emissions.

    Only :class:`LaunchFailure` and :class:`NavigationFailure` escape a run as
    themselves; anything else that breaks the browser phase is wrapped in
    :class:`AnalysisError`. The session is always torn down.
    """

    def __init__(
        self,
        settings: EngineSettings | None = None,
        sessions: Optional[SessionManager] = None,
        cache: Optional[AnalysisCache] = None,
        green_client: Optional[GreenHostingClient] = None,
        monitor_factory: Callable[[], NetworkActivityMonitor] = NetworkActivityMonitor,
        simulator_factory: SimulatorFactory = _default_simulator,
    ) -> None:
        self._settings = settings or EngineSettings()
        self._sessions = sessions or SessionManager(self._settings)
        self._cache = cache or NullAnalysisCache()
        self._green = green_client or GreenHostingClient()
        self._monitor_factory = monitor_factory
        self._simulator_factory = simulator_factory

    @property
    def cache(self) -> AnalysisCache:
        return self._cache

    @property
    def sessions(self) -> SessionManager:
        return self._sessions

    def _report(self, progress: Optional[ProgressCallback], percent: int, step: str, message: str) -> None:
        if progress is None:
            return
        try:
            progress(percent, step, message)
        except Exception as exc:
            logger.warning(f"[Analyzer] Progress callback failed at {step}: {exc}")

    async def _cache_lookup(self, url: str, key: str) -> AnalysisResult | None:
        try:
            return await asyncio.to_thread(self._cache.lookup, url, key)
        except CacheError as exc:
            logger.error(f"[Analyzer] Cache lookup failed, running fresh analysis: {exc}")
            return None

    async def _cache_store(self, result: AnalysisResult) -> None:
        try:
            await asyncio.to_thread(self._cache.store, result)
        except CacheError as exc:
            logger.error(f"[Analyzer] Caching result failed: {exc}")

    async def _navigate(self, page: Page, url: str, timeout_ms: int) -> None:
        try:
            await page.goto(url, wait_until="load", timeout=timeout_ms)
        except PlaywrightTimeoutError as exc:
            raise NavigationFailure(
                f"Navigation to {url} timed out after {timeout_ms}ms", url=url, timeout_ms=timeout_ms
            ) from exc
        except PlaywrightError as exc:
            raise NavigationFailure(f"Navigation to {url} failed: {exc}", url=url, timeout_ms=timeout_ms) from exc

    async def run_analysis(
        self,
        url: str,
        options: AnalysisOptions | None = None,
        progress: Optional[ProgressCallback] = None,
    ) -> AnalysisResult:
        options = options or create_analysis_options()
        validate_options(options)
        target = normalize_url(url)
        key = fingerprint(target, options)

        cached = await self._cache_lookup(target, key)
        if cached is not None:
            logger.info(f"[Analyzer] Returning cached analysis for {target}")
            self._report(progress, 100, "complete", "Retrieved from cache")
            return cached

        estimated_ms = estimate_duration_ms(options)
        logger.info(
            f"[Analyzer] Starting analysis of {target} "
            f"(level={options.interaction_level.value}, device={options.device_type.value}, est={estimated_ms}ms)"
        )
        started = time.perf_counter()
        telemetry = Telemetry()
        telemetry.event("analysis_start", {"url": target, "fingerprint": key})
        self._report(progress, 10, "setup", "Setting up browser environment...")

        try:
            async with self._sessions.session(profile_for(options.device_type), options.timeout_ms) as session:
                page = session.page
                telemetry.event("session_ready", {"session_id": session.session_id})
                monitor = self._monitor_factory()
                await monitor.attach(page)
                monitor.on_activity(telemetry.on_activity)
                try:
                    self._report(progress, 25, "navigation", "Navigating to target website...")
                    await self._navigate(page, target, options.timeout_ms)
                    telemetry.event("navigated", {"resources": len(monitor.resources())})

                    self._report(progress, 50, "simulation", "Simulating user interactions...")
                    simulator = self._simulator_factory(page, SimulationConfig.from_options(options), monitor)
                    simulation = await simulator.simulate()
                    telemetry.event(
                        "simulated",
                        {
                            "interactions": simulation.total_interactions,
                            "successful": simulation.successful_interactions,
                        },
                    )

                    self._report(progress, 80, "processing", "Processing collected resources...")
                    records = monitor.resources()
                    tally = classify(records)
                    page_info = await simulator.explore_page_structure()
                finally:
                    monitor.remove_listener(telemetry.on_activity)
                    await monitor.detach()
        except (LaunchFailure, NavigationFailure) as exc:
            logger.error(f"[Analyzer] Analysis failed for {target}: {exc}")
            raise
        except Exception as exc:
            logger.error(f"[Analyzer] Analysis failed for {target}: {exc}")
            raise AnalysisError(f"Failed to analyze {target}: {exc}", url=target) from exc

        telemetry.event("classified", {"total_bytes": tally.total_bytes, "resources": tally.resource_count})

        self._report(progress, 92, "green-hosting", "Assessing green hosting impact...")
        green = await self._green.check(target)

        self._report(progress, 94, "co2e-bytes-conversion", "Converting bytes into gCO2e...")
        g_co2e = bytes_to_co2e(tally.total_bytes, green.green)
        telemetry.event("emissions", {"g_co2e": g_co2e, "green": green.green})

        result = AnalysisResult(
            url=target,
            timestamp=datetime.now(tz=timezone.utc).isoformat(),
            options=options.to_dict(),
            duration_ms=int((time.perf_counter() - started) * 1000),
            tally=tally,
            resources=[record.to_dict() for record in records],
            green_hosting=green,
            g_co2e=g_co2e,
            fingerprint=key,
            metadata={
                "page": page_metadata(page_info),
                "simulation": simulation.to_dict(),
                "estimated_duration_ms": estimated_ms,
                "telemetry": telemetry.snapshot(),
            },
        )

        self._report(progress, 98, "finalizing", "Finalizing analysis results...")
        logger.info(
            f"[Analyzer] Completed {target} in {result.duration_ms}ms: {tally.resource_count} resources, "
            f"{tally.total_bytes} bytes, {g_co2e:.4f} gCO2e, "
            f"{simulation.successful_interactions}/{simulation.total_interactions} interactions"
        )
        await self._cache_store(result)
        self._report(progress, 100, "complete", "Analysis completed successfully")
        return result

    async def close(self) -> None:
        await self._sessions.shutdown()
