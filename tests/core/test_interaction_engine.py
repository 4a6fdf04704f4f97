import asyncio
import time
from unittest.mock import AsyncMock, MagicMock

import pytest

from footprint.core.interaction_engine import InteractionEngine, Strategy, strategy_order
from footprint.core.models import ElementDescriptor, Geometry
from footprint.core.network_monitor import NetworkActivityMonitor


def _descriptor(**overrides) -> ElementDescriptor:
    values = {
        "selector": "button.buy",
        "tag": "button",
        "kind": "button",
        "text": "Buy now",
        "geometry": Geometry(x=100, y=200, width=80, height=30),
        "visible": True,
        "interactive": True,
    }
    values.update(overrides)
    return ElementDescriptor(**values)


def _page():
    page = MagicMock()
    page.click = AsyncMock()
    page.evaluate = AsyncMock(return_value="ok")
    page.mouse.click = AsyncMock()
    return page


class TestStrategyOrder:
    def test_default_order(self):
        assert strategy_order(_descriptor()) == (
            Strategy.NATIVE,
            Strategy.SCRIPT,
            Strategy.TEXT,
            Strategy.COORDINATE,
        )

    def test_stable_id_keeps_native_first(self):
        order = strategy_order(_descriptor(selector="#checkout", element_id="checkout", has_click_handler=True))
        assert order[0] == Strategy.NATIVE

    def test_click_handler_favors_script(self):
        order = strategy_order(_descriptor(has_click_handler=True))
        assert order[:2] == (Strategy.SCRIPT, Strategy.NATIVE)

    def test_invisible_demotes_native(self):
        order = strategy_order(_descriptor(visible=False))
        assert order[-1] == Strategy.NATIVE
        assert order.index(Strategy.COORDINATE) < order.index(Strategy.NATIVE)
        assert order.index(Strategy.SCRIPT) < order.index(Strategy.NATIVE)

    def test_disabled_demotes_native(self):
        order = strategy_order(_descriptor(disabled=True))
        assert order[-1] == Strategy.NATIVE

    def test_every_strategy_present_once(self):
        for descriptor in (_descriptor(), _descriptor(visible=False, has_click_handler=True)):
            order = strategy_order(descriptor)
            assert sorted(order, key=lambda s: s.value) == sorted(Strategy, key=lambda s: s.value)


class TestInvoke:
    @pytest.mark.asyncio
    async def test_native_success(self):
        page = _page()
        engine = InteractionEngine(page)

        outcome = await engine.invoke(_descriptor(), timeout_ms=1000)

        assert outcome.success is True
        assert outcome.strategy == "native"
        page.evaluate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_native_fails_script_succeeds(self):
        page = _page()
        page.click = AsyncMock(side_effect=Exception("Timeout 3000ms exceeded.\n=========== logs"))
        engine = InteractionEngine(page)

        outcome = await engine.invoke(_descriptor(), timeout_ms=1000)

        assert outcome.success is True
        assert outcome.strategy == "script"
        assert outcome.attempts == (("native", "Timeout 3000ms exceeded."),)

    @pytest.mark.asyncio
    async def test_all_strategies_fail_is_aggregated(self):
        page = _page()
        page.click = AsyncMock(side_effect=Exception("not clickable"))
        page.evaluate = AsyncMock(return_value="not found")
        page.mouse.click = AsyncMock(side_effect=Exception("page detached"))
        engine = InteractionEngine(page)

        outcome = await engine.invoke(_descriptor(), timeout_ms=1000)

        assert outcome.success is False
        assert outcome.timed_out is False
        assert [name for name, _ in outcome.attempts] == ["native", "script", "text", "coordinate"]
        for name in ("native", "script", "text", "coordinate"):
            assert name in outcome.error

    @pytest.mark.asyncio
    async def test_coordinate_requires_visible_center(self):
        page = _page()
        page.click = AsyncMock(side_effect=Exception("hidden"))
        page.evaluate = AsyncMock(return_value="not found")
        engine = InteractionEngine(page)

        outcome = await engine.invoke(
            _descriptor(visible=False, geometry=Geometry(0, 0, 0, 0)),
            timeout_ms=1000,
        )

        assert outcome.success is False
        page.mouse.click.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_timeout_is_reported_not_raised(self):
        async def hang(*args, **kwargs):
            await asyncio.sleep(5)

        page = _page()
        page.click = AsyncMock(side_effect=hang)
        engine = InteractionEngine(page)

        started = time.monotonic()
        outcome = await engine.invoke(_descriptor(), timeout_ms=100)
        elapsed = time.monotonic() - started

        assert outcome.success is False
        assert outcome.timed_out is True
        assert "timed out" in outcome.error
        assert elapsed < 0.5

    @pytest.mark.asyncio
    async def test_success_waits_for_triggered_network(self):
        monitor = NetworkActivityMonitor(poll_interval_ms=5)
        page = _page()

        async def click_triggers_fetch(*args, **kwargs):
            monitor.dispatch(
                "Network.requestWillBeSent",
                {"requestId": "x1", "request": {"url": "https://example.com/api/cart"}},
            )
            monitor.dispatch("Network.loadingFinished", {"requestId": "x1", "encodedDataLength": 64})

        page.click = AsyncMock(side_effect=click_triggers_fetch)
        engine = InteractionEngine(page, monitor=monitor, settle_quiet_ms=10, settle_max_ms=200)

        outcome = await engine.invoke(_descriptor(), timeout_ms=1000)

        assert outcome.success is True
        assert outcome.network_activity is True
        assert outcome.elapsed_ms <= 1000

    @pytest.mark.asyncio
    async def test_no_activity_reported_without_monitor(self):
        engine = InteractionEngine(_page())
        outcome = await engine.invoke(_descriptor(), timeout_ms=500)
        assert outcome.network_activity is False
