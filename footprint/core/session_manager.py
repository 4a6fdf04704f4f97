from __future__ import annotations

import asyncio
import logging
import time
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Optional

from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright

from footprint.core.config import DeviceProfile, EngineSettings
from footprint.core.errors import LaunchFailure, PageCreationFailure

logger = logging.getLogger("footprint.session")


@dataclass
class Session:
    """One browser process and the single page an analysis run drives."""

    session_id: str
    profile: DeviceProfile
    navigation_timeout_ms: int
    browser: Browser
    context: BrowserContext
    page: Optional[Page] = None
    created_at: float = field(default_factory=time.time)
    closed_at: float | None = None

    @property
    def closed(self) -> bool:
        return self.closed_at is not None

    def is_alive(self) -> bool:
        if self.closed:
            return False
        try:
            return bool(self.browser.is_connected())
        except Exception:
            return False


class SessionManager:
    def __init__(
        self,
        settings: EngineSettings | None = None,
        playwright_factory: Callable[[], Any] = async_playwright,
    ) -> None:
        self._settings = settings or EngineSettings()
        self._playwright_factory = playwright_factory
        self._playwright: Optional[Playwright] = None
        self._start_lock = asyncio.Lock()

    @property
    def settings(self) -> EngineSettings:
        return self._settings

    async def _driver(self) -> Playwright:
        async with self._start_lock:
            if self._playwright is None:
                self._playwright = await self._playwright_factory().start()
            return self._playwright

    async def _backoff(self, attempt: int) -> None:
        await asyncio.sleep(self._settings.launch_backoff_ms * attempt / 1000.0)

    def _launch_options(self, profile: DeviceProfile) -> dict[str, Any]:
        options: dict[str, Any] = {
            "headless": self._settings.headless,
            "args": list(self._settings.chromium_args),
        }
        if self._settings.executable_path:
            options["executable_path"] = self._settings.executable_path
        if profile.is_mobile:
            options["args"].append("--force-device-scale-factor=1")
        return options

    def _context_options(self, profile: DeviceProfile) -> dict[str, Any]:
        return {
            "viewport": profile.viewport(),
            "device_scale_factor": profile.device_scale_factor,
            "is_mobile": profile.is_mobile,
            "has_touch": profile.has_touch if profile.is_mobile else False,
            "user_agent": profile.user_agent,
        }

    async def launch(self, profile: DeviceProfile, navigation_timeout_ms: int = 30_000) -> Session:
        attempts = max(1, self._settings.launch_retries)
        last_error: Exception | None = None

        for attempt in range(1, attempts + 1):
            browser: Optional[Browser] = None
            try:
                driver = await self._driver()
                browser = await driver.chromium.launch(**self._launch_options(profile))
                context = await browser.new_context(**self._context_options(profile))
                session = Session(
                    session_id=f"sess_{uuid.uuid4().hex[:12]}",
                    profile=profile,
                    navigation_timeout_ms=navigation_timeout_ms,
                    browser=browser,
                    context=context,
                )
                logger.debug(
                    f"[Session] Launched {session.session_id} "
                    f"({profile.width}x{profile.height}, mobile={profile.is_mobile}) on attempt {attempt}"
                )
                return session
            except Exception as exc:
                last_error = exc
                logger.warning(f"[Session] Launch attempt {attempt}/{attempts} failed: {exc}")
                if browser is not None:
                    await self._close_quietly(browser.close, "browser")
                if attempt < attempts:
                    await self._backoff(attempt)

        raise LaunchFailure(f"Browser launch failed after {attempts} attempts: {last_error}", attempts=attempts)

    async def new_page(self, session: Session) -> Page:
        attempts = max(1, self._settings.launch_retries)
        last_error: Exception | None = None

        for attempt in range(1, attempts + 1):
            if not session.is_alive():
                raise PageCreationFailure(
                    f"Session {session.session_id} is no longer alive", attempts=attempt
                )
            try:
                page = await session.context.new_page()
                page.set_default_timeout(session.navigation_timeout_ms)
                page.set_default_navigation_timeout(session.navigation_timeout_ms)
                session.page = page
                return page
            except Exception as exc:
                last_error = exc
                logger.warning(f"[Session] Page creation attempt {attempt}/{attempts} failed: {exc}")
                if attempt < attempts:
                    await self._backoff(attempt)

        raise PageCreationFailure(
            f"Page creation failed after {attempts} attempts: {last_error}", attempts=attempts
        )

    async def _close_quietly(self, closer: Callable[[], Any], label: str) -> None:
        try:
            await closer()
        except Exception as exc:
            logger.warning(f"[Session] Failed to close {label}: {exc}")

    async def close(self, session: Session) -> None:
        if session.closed:
            return
        session.closed_at = time.time()
        if session.page is not None:
            await self._close_quietly(session.page.close, "page")
        await self._close_quietly(session.context.close, "context")
        await self._close_quietly(session.browser.close, "browser")
        lifetime_ms = int((session.closed_at - session.created_at) * 1000)
        logger.debug(f"[Session] Closed {session.session_id} after {lifetime_ms}ms")

    @asynccontextmanager
    async def session(self, profile: DeviceProfile, navigation_timeout_ms: int = 30_000) -> AsyncIterator[Session]:
        session = await self.launch(profile, navigation_timeout_ms=navigation_timeout_ms)
        try:
            await self.new_page(session)
            yield session
        finally:
            await self.close(session)

    async def shutdown(self) -> None:
        async with self._start_lock:
            if self._playwright is not None:
                await self._close_quietly(self._playwright.stop, "playwright driver")
                self._playwright = None
