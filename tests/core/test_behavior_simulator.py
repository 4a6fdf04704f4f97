import random
from unittest.mock import AsyncMock, MagicMock, call

import pytest

from footprint.core.behavior_simulator import (
    PAGE_DIMENSIONS_JS,
    SCROLL_TO_JS,
    TOUCH_POINTS_JS,
    BehaviorSimulator,
    DeviceCapabilityOptions,
    FocusOptions,
    HoverOptions,
    ScrollOptions,
    TypingOptions,
    ViewportOptions,
)
from footprint.core.models import ElementDescriptor, Geometry


def _element(selector: str, visible: bool = True, interactive: bool = True, disabled: bool = False) -> ElementDescriptor:
    return ElementDescriptor(
        selector=selector,
        tag="button",
        kind="button",
        text=selector,
        geometry=Geometry(10, 10, 40, 20) if visible else Geometry(0, 0, 0, 0),
        visible=visible,
        interactive=interactive,
        disabled=disabled,
    )


def _page(scroll_heights=(3000,), viewport_height=1000):
    heights = list(scroll_heights)
    scrolls = []

    async def evaluate(script, arg=None):
        if script == PAGE_DIMENSIONS_JS:
            height = heights.pop(0) if len(heights) > 1 else heights[0]
            return {"scrollHeight": height, "viewportHeight": viewport_height}
        if script == SCROLL_TO_JS:
            scrolls.append(arg)
        return None

    page = MagicMock()
    page.evaluate = AsyncMock(side_effect=evaluate)
    page.wait_for_function = AsyncMock()
    page.mouse.move = AsyncMock()
    page.focus = AsyncMock()
    page.keyboard.press = AsyncMock()
    page.keyboard.type = AsyncMock()
    page.set_viewport_size = AsyncMock()
    page.add_init_script = AsyncMock()
    page.viewport_size = {"width": 1920, "height": 1080}
    return page, scrolls


def _simulator(page):
    return BehaviorSimulator(page, rng=random.Random(3), sleep=AsyncMock())


class TestScrolling:
    @pytest.mark.asyncio
    async def test_even_steps_then_back_to_top(self):
        page, scrolls = _page()

        report = await _simulator(page).simulate_scrolling(ScrollOptions(max_steps=5))

        assert report.behavior == "scroll"
        assert [step.name for step in report.steps] == ["scroll_1", "scroll_2", "scroll_3", "scroll_top"]
        assert scrolls[0] == 667
        assert scrolls[-2] == 2000
        assert scrolls[-1] == 0
        assert report.succeeded == report.attempted

    @pytest.mark.asyncio
    async def test_step_count_bounded_by_max(self):
        page, scrolls = _page(scroll_heights=(20_000,))

        report = await _simulator(page).simulate_scrolling(ScrollOptions(max_steps=2, scroll_to_top=False))

        assert scrolls == [9500, 19000]
        assert report.attempted == 2

    @pytest.mark.asyncio
    async def test_short_page_does_not_scroll(self):
        page, scrolls = _page(scroll_heights=(800,))

        report = await _simulator(page).simulate_scrolling()

        assert scrolls == []
        assert report.attempted == 1
        assert report.steps[0].ok is True

    @pytest.mark.asyncio
    async def test_lazy_growth_extends_range(self):
        page, scrolls = _page(scroll_heights=(2000, 4000, 4000))

        await _simulator(page).simulate_scrolling(ScrollOptions(max_steps=3, scroll_to_top=False))

        assert scrolls == [500, 3000]

    @pytest.mark.asyncio
    async def test_lazy_wait_timeout_is_not_a_failure(self):
        page, _ = _page()
        page.wait_for_function = AsyncMock(side_effect=Exception("Timeout 2000ms exceeded"))

        report = await _simulator(page).simulate_scrolling(ScrollOptions(max_steps=1))

        assert report.failures == ()

    @pytest.mark.asyncio
    async def test_measure_failure_reported(self):
        page, _ = _page()
        page.evaluate = AsyncMock(side_effect=Exception("Execution context was destroyed"))

        report = await _simulator(page).simulate_scrolling()

        assert report.steps[0].name == "measure"
        assert report.steps[0].ok is False


class TestElementBehaviors:
    @pytest.mark.asyncio
    async def test_hover_continues_after_failure(self):
        page, _ = _page()
        page.mouse.move = AsyncMock(side_effect=[None, Exception("element detached"), None])
        elements = [_element(".a"), _element(".b"), _element(".c"), _element(".d")]

        report = await _simulator(page).simulate_hover(elements, HoverOptions(max_elements=3))

        assert report.attempted == 3
        assert report.succeeded == 2
        assert report.failures[0].name == "hover:.b"
        assert report.failures[0].reason == "element detached"

    @pytest.mark.asyncio
    async def test_hover_skips_elements_without_position(self):
        page, _ = _page()

        report = await _simulator(page).simulate_hover([_element(".hidden", visible=False)])

        assert report.failures[0].reason == "no valid position"
        page.mouse.move.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_focus_filters_non_interactive_and_disabled(self):
        page, _ = _page()
        elements = [_element(".a"), _element(".b", interactive=False), _element(".c", disabled=True)]

        report = await _simulator(page).simulate_focus(elements, FocusOptions(tab_probability=0.0))

        page.focus.assert_awaited_once_with(".a", timeout=2_000)
        page.keyboard.press.assert_not_awaited()
        assert report.attempted == 1

    @pytest.mark.asyncio
    async def test_typing_uses_sample_text(self):
        page, _ = _page()

        report = await _simulator(page).simulate_typing(
            [_element("input.email"), _element("input.name")],
            TypingOptions(max_fields=1, sample_texts=("hello",)),
        )

        assert report.attempted == 1
        page.focus.assert_awaited_once_with("input.email", timeout=2_000)
        page.keyboard.type.assert_awaited_once_with("hello", delay=100)

    @pytest.mark.asyncio
    async def test_stale_field_fails_within_its_own_deadline(self):
        page, _ = _page()
        page.focus = AsyncMock(side_effect=[Exception("Timeout 500ms exceeded."), None])

        focus = await _simulator(page).simulate_focus(
            [_element(".stale"), _element(".live")], FocusOptions(tab_probability=0.0, timeout_ms=500)
        )

        assert [call.kwargs["timeout"] for call in page.focus.await_args_list] == [500, 500]
        assert focus.failures[0].name == "focus:.stale"
        assert focus.succeeded == 1

        page.focus = AsyncMock()
        await _simulator(page).simulate_typing([_element("input.q")], TypingOptions(timeout_ms=750))
        page.focus.assert_awaited_once_with("input.q", timeout=750)


class TestViewportAndDevice:
    @pytest.mark.asyncio
    async def test_viewport_restored_after_failures(self):
        page, _ = _page()
        page.set_viewport_size = AsyncMock(side_effect=[None, Exception("resize failed"), None, None])

        report = await _simulator(page).simulate_viewport_changes(ViewportOptions(pause_ms=0))

        assert report.attempted == 3
        assert report.succeeded == 2
        assert page.set_viewport_size.await_args_list[-1] == call({"width": 1920, "height": 1080})

    @pytest.mark.asyncio
    async def test_device_capabilities(self):
        page, _ = _page()

        report = await _simulator(page).simulate_device_capabilities(
            DeviceCapabilityOptions(enable_touch=True, enable_orientation=True)
        )

        page.add_init_script.assert_awaited_once_with(TOUCH_POINTS_JS)
        assert [step.name for step in report.steps] == ["touch", "orientation"]
        assert report.succeeded == 2
