from unittest.mock import AsyncMock, MagicMock

import pytest

from footprint.core.element_discovery import (
    DESCRIBE_SELECTOR_JS,
    FIND_BY_SELECTORS_JS,
    FIND_SMART_JS,
    HELPERS_JS,
    NAVIGATION_KEYWORDS,
    SELECTOR_MAP,
    DiscoveryConfig,
    ElementDiscovery,
    deduplicate,
    descriptor_from_raw,
)
from footprint.core.models import ElementDescriptor


def _raw(selector: str, text: str = "", **overrides) -> dict:
    payload = {
        "kind": "button",
        "selector": selector,
        "tag": "button",
        "text": text,
        "role": "",
        "elementId": "",
        "className": "",
        "ariaLabel": "",
        "dataAttributes": "",
        "x": 10,
        "y": 20,
        "width": 100,
        "height": 40,
        "visible": True,
        "disabled": False,
        "hasClickHandler": False,
        "interactive": True,
        "confidence": 0,
    }
    payload.update(overrides)
    return payload


def _page(responses: dict[str, object]):
    calls = []

    async def evaluate(script, arg=None):
        calls.append((script, arg))
        return responses.get(script)

    page = MagicMock()
    page.evaluate = AsyncMock(side_effect=evaluate)
    return page, calls


class TestParsing:
    def test_descriptor_from_raw(self):
        descriptor = descriptor_from_raw(
            _raw("#signup", "Sign up", elementId="signup", hasClickHandler=True, confidence=0.9)
        )

        assert descriptor.selector == "#signup"
        assert descriptor.element_id == "signup"
        assert descriptor.has_stable_id is True
        assert descriptor.has_click_handler is True
        assert descriptor.geometry.center == (60, 40)
        assert descriptor.confidence == 0.9

    def test_missing_fields_default(self):
        descriptor = descriptor_from_raw({"tag": "div"})
        assert descriptor.selector == "div"
        assert descriptor.visible is False
        assert descriptor.has_valid_center is False

    def test_dedupe_by_selector_and_text(self):
        items = [
            ElementDescriptor(selector=".btn", tag="button", kind="button", text="Save"),
            ElementDescriptor(selector=".btn", tag="button", kind="smart", text="Save"),
            ElementDescriptor(selector=".btn", tag="button", kind="button", text="Cancel"),
        ]
        unique = deduplicate(items)
        assert [(item.selector, item.text) for item in unique] == [(".btn", "Save"), (".btn", "Cancel")]
        assert unique[0].kind == "button"


class TestDiscovery:
    @pytest.mark.asyncio
    async def test_find_by_type_uses_selector_map(self):
        page, calls = _page({HELPERS_JS: True, FIND_BY_SELECTORS_JS: [_raw("button.a", "A"), _raw("button.a", "A")]})
        discovery = ElementDiscovery(page)

        found = await discovery.find_by_type("buttons", DiscoveryConfig(max_elements=4))

        assert len(found) == 1
        assert calls[0] == (HELPERS_JS, list(NAVIGATION_KEYWORDS))
        script, arg = calls[1]
        assert script == FIND_BY_SELECTORS_JS
        assert arg["selectors"] == list(SELECTOR_MAP["buttons"])
        assert arg["config"]["maxElements"] == 4
        assert arg["config"]["excludeNavigation"] is True

    @pytest.mark.asyncio
    async def test_find_by_type_unknown_type_is_raw_selector(self):
        page, calls = _page({HELPERS_JS: True, FIND_BY_SELECTORS_JS: []})
        discovery = ElementDiscovery(page)

        assert await discovery.find_by_type(".promo-banner") == []
        assert calls[1][1]["selectors"] == [".promo-banner"]

    @pytest.mark.asyncio
    async def test_find_interactive_groups(self):
        results = iter(
            [
                [_raw("button.buy", "Buy")],
                [_raw("li.menu-item", "Products", kind="hover")],
                [_raw("summary", "Details", kind="trigger"), _raw("[role=tab]", "Specs", kind="trigger")],
            ]
        )

        async def evaluate(script, arg=None):
            if script == HELPERS_JS:
                return True
            return next(results)

        page = MagicMock()
        page.evaluate = AsyncMock(side_effect=evaluate)
        discovery = ElementDiscovery(page)

        found = await discovery.find_interactive()

        assert [item.text for item in found.buttons] == ["Buy"]
        assert [item.text for item in found.hoverables] == ["Products"]
        assert [item.text for item in found.triggers] == ["Details", "Specs"]
        assert len(found.all()) == 4

    @pytest.mark.asyncio
    async def test_hoverables_keep_navigation(self):
        page, calls = _page({HELPERS_JS: True, FIND_BY_SELECTORS_JS: []})
        discovery = ElementDiscovery(page)

        await discovery.find_interactive()

        configs = {arg["kind"]: arg["config"] for script, arg in calls if script == FIND_BY_SELECTORS_JS}
        assert configs["hover"]["excludeNavigation"] is False
        assert configs["button"]["excludeNavigation"] is True

    @pytest.mark.asyncio
    async def test_find_smart_is_confidence_ranked(self):
        page, calls = _page(
            {
                HELPERS_JS: True,
                FIND_SMART_JS: [
                    _raw(".menu-item", "Menu", confidence=0.5),
                    _raw("[data-testid=cta]", "Start", confidence=0.9),
                    _raw(".btn", "More", confidence=0.8),
                ],
            }
        )
        discovery = ElementDiscovery(page, smart_limit=15)

        ranked = await discovery.find_smart()

        assert [item.confidence for item in ranked] == [0.9, 0.8, 0.5]
        assert calls[1][1]["limit"] == 15

    @pytest.mark.asyncio
    async def test_describe_missing_element(self):
        page, _ = _page({HELPERS_JS: True, DESCRIBE_SELECTOR_JS: None})
        discovery = ElementDiscovery(page)
        assert await discovery.describe("#nope") is None
