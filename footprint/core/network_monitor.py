from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from functools import partial
from typing import Any, Callable, Optional

from playwright.async_api import CDPSession, Page

from footprint.core.models import ResourceRecord, ResourceState
from footprint.core.resource_classifier import classify_resource

logger = logging.getLogger("footprint.monitor")

NETWORK_EVENTS = (
    "Network.requestWillBeSent",
    "Network.responseReceived",
    "Network.loadingFinished",
    "Network.loadingFailed",
)

_TRANSITIONS: dict[ResourceState, frozenset[ResourceState]] = {
    ResourceState.REQUESTED: frozenset({ResourceState.RESPONDED, ResourceState.FINISHED, ResourceState.FAILED}),
    ResourceState.RESPONDED: frozenset({ResourceState.FINISHED, ResourceState.FAILED}),
    ResourceState.FINISHED: frozenset(),
    ResourceState.FAILED: frozenset(),
}


@dataclass(frozen=True)
class ActivityEvent:
    kind: str
    request_id: str
    url: str = ""
    status: int | None = None
    resource_type: str | None = None
    size: int | None = None


ActivityListener = Callable[[ActivityEvent], None]


@dataclass(frozen=True)
class IdleWaitResult:
    idle: bool
    waited_ms: int
    pending: int


def _header(headers: dict[str, Any], name: str) -> str:
    wanted = name.lower()
    for key, value in headers.items():
        if key.lower() == wanted:
            return str(value)
    return ""


class NetworkActivityMonitor:
    """Per-page network telemetry driven by DevTools Network events.

    Every resource moves through ``requested -> responded -> finished|failed``.
    All events enter through :meth:`dispatch`; the in-flight set and the
    last-activity timestamp are the only shared mutable state and are touched
    only from the event loop that owns the CDP session.
    """

    def __init__(
        self,
        poll_interval_ms: int = 100,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._poll_interval_ms = max(1, poll_interval_ms)
        self._clock = clock
        self._cdp: Optional[CDPSession] = None
        self._records: list[ResourceRecord] = []
        self._active: dict[str, ResourceRecord] = {}
        self._in_flight: set[str] = set()
        self._listeners: list[ActivityListener] = []
        self._last_activity = clock()
        self._subscriptions = {event: partial(self.dispatch, event) for event in NETWORK_EVENTS}
        self._handlers: dict[str, Callable[[dict[str, Any]], None]] = {
            "Network.requestWillBeSent": self._on_request_will_be_sent,
            "Network.responseReceived": self._on_response_received,
            "Network.loadingFinished": self._on_loading_finished,
            "Network.loadingFailed": self._on_loading_failed,
        }

    @property
    def attached(self) -> bool:
        return self._cdp is not None

    @property
    def pending_count(self) -> int:
        return len(self._in_flight)

    async def attach(self, page: Page) -> "NetworkActivityMonitor":
        if self._cdp is not None:
            return self
        cdp = await page.context.new_cdp_session(page)
        await cdp.send("Network.enable")
        for event, handler in self._subscriptions.items():
            cdp.on(event, handler)
        self._cdp = cdp
        self._last_activity = self._clock()
        logger.debug("[Monitor] Attached to page via DevTools session")
        return self

    async def detach(self) -> None:
        cdp = self._cdp
        if cdp is None:
            return
        self._cdp = None
        for event, handler in self._subscriptions.items():
            cdp.remove_listener(event, handler)
        try:
            await cdp.send("Network.disable")
            await cdp.detach()
        except Exception as exc:
            logger.debug(f"[Monitor] DevTools session already gone on detach: {exc}")
        logger.debug("[Monitor] Detached")

    # Dispatcher

    def dispatch(self, method: str, params: dict[str, Any]) -> None:
        handler = self._handlers.get(method)
        if handler is None:
            return
        handler(params or {})

    def _transition(self, record: ResourceRecord, target: ResourceState) -> bool:
        if target not in _TRANSITIONS[record.state]:
            logger.debug(
                f"[Monitor] Ignoring {record.state.value} -> {target.value} for {record.request_id}"
            )
            return False
        record.state = target
        return True

    def _on_request_will_be_sent(self, params: dict[str, Any]) -> None:
        request = params.get("request") or {}
        url = str(request.get("url") or "")
        request_id = str(params.get("requestId") or "")
        if not request_id or url.startswith("data:"):
            return

        existing = self._active.get(request_id)
        redirect = params.get("redirectResponse")
        if existing is not None and redirect:
            # Same id is reused for each redirect hop; close out the previous hop.
            existing.status = int(redirect.get("status") or 0)
            existing.headers = dict(redirect.get("headers") or {})
            existing.content_type = _header(existing.headers, "content-type") or str(redirect.get("mimeType") or "")
            existing.transfer_size = int(redirect.get("encodedDataLength") or 0)
            self._finish(existing, ResourceState.FINISHED)

        record = ResourceRecord(
            request_id=request_id,
            url=url,
            method=str(request.get("method") or "GET"),
            started_at=self._clock(),
        )
        self._records.append(record)
        self._active[request_id] = record
        self._in_flight.add(request_id)
        self._notify(ActivityEvent(kind="request", request_id=request_id, url=url))

    def _on_response_received(self, params: dict[str, Any]) -> None:
        request_id = str(params.get("requestId") or "")
        record = self._active.get(request_id)
        if record is None:
            return
        response = params.get("response") or {}
        if not self._transition(record, ResourceState.RESPONDED):
            return
        record.status = int(response.get("status") or 0)
        record.headers = dict(response.get("headers") or {})
        record.content_type = (
            _header(record.headers, "content-type") or str(response.get("mimeType") or "")
        )
        self._notify(ActivityEvent(kind="response", request_id=request_id, url=record.url, status=record.status))

    def _on_loading_finished(self, params: dict[str, Any]) -> None:
        request_id = str(params.get("requestId") or "")
        record = self._active.pop(request_id, None)
        if record is None:
            return
        record.transfer_size = int(params.get("encodedDataLength") or 0)
        self._finish(record, ResourceState.FINISHED)
        self._release(request_id)
        self._notify(
            ActivityEvent(
                kind="finished",
                request_id=request_id,
                url=record.url,
                status=record.status,
                resource_type=record.resource_type.value,
                size=record.transfer_size,
            )
        )

    def _on_loading_failed(self, params: dict[str, Any]) -> None:
        request_id = str(params.get("requestId") or "")
        record = self._active.pop(request_id, None)
        if record is None:
            return
        record.error_text = str(params.get("errorText") or "failed")
        self._finish(record, ResourceState.FAILED)
        self._release(request_id)
        logger.debug(f"[Monitor] Loading failed for {record.url[:80]}: {record.error_text}")
        self._notify(ActivityEvent(kind="failed", request_id=request_id, url=record.url))

    def _finish(self, record: ResourceRecord, target: ResourceState) -> None:
        if not self._transition(record, target):
            return
        record.resource_type = classify_resource(record.content_type, record.url)
        record.finished_at = self._clock()
        record.seal()

    def _release(self, request_id: str) -> None:
        self._in_flight.discard(request_id)

    # Listeners

    def on_activity(self, listener: ActivityListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: ActivityListener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    def _notify(self, event: ActivityEvent) -> None:
        self._last_activity = self._clock()
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as exc:
                logger.warning(f"[Monitor] Activity listener error: {exc}")

    # Queries

    def resources(self) -> list[ResourceRecord]:
        return list(self._records)

    def total_bytes(self) -> int:
        return sum(record.transfer_size for record in self._records if record.billable)

    def has_activity(self) -> bool:
        return any(record.state == ResourceState.FINISHED for record in self._records)

    def time_since_last_activity_ms(self) -> int:
        return int((self._clock() - self._last_activity) * 1000)

    def reset(self) -> None:
        self._records.clear()
        self._active.clear()
        self._in_flight.clear()
        self._last_activity = self._clock()
        logger.debug("[Monitor] Reset")

    async def wait_idle(self, quiet_window_ms: int = 2_000, max_wait_ms: int = 30_000) -> IdleWaitResult:
        """Block until idle or until ``max_wait_ms`` elapses, whichever is first.

        Idle means nothing in flight and no activity for ``quiet_window_ms``.
        New requests during the quiet window restart it.
        """
        start = self._clock()
        poll_s = self._poll_interval_ms / 1000.0
        max_wait_s = max(0, max_wait_ms) / 1000.0
        quiet_s = max(0, quiet_window_ms) / 1000.0

        while True:
            now = self._clock()
            elapsed = now - start
            if not self._in_flight and (now - self._last_activity) >= quiet_s:
                return IdleWaitResult(idle=True, waited_ms=int(elapsed * 1000), pending=0)
            remaining = max_wait_s - elapsed
            if remaining <= 0:
                logger.debug(
                    f"[Monitor] Idle wait gave up after {int(elapsed * 1000)}ms "
                    f"with {len(self._in_flight)} requests in flight"
                )
                return IdleWaitResult(idle=False, waited_ms=int(elapsed * 1000), pending=len(self._in_flight))
            await asyncio.sleep(min(poll_s, remaining))
