from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Iterable

from playwright.async_api import Page

from footprint.core.models import ElementDescriptor, Geometry

logger = logging.getLogger("footprint.discovery")

NAVIGATION_KEYWORDS: tuple[str, ...] = ("download", "link", "external", "href", "navigate", "redirect")

SELECTOR_MAP: dict[str, tuple[str, ...]] = {
    "buttons": ('button', 'input[type="button"]', 'input[type="submit"]', '[role="button"]'),
    "links": ('a[href]', '[role="link"]'),
    "inputs": ('input', 'textarea', 'select'),
    "forms": ('input:not([type="hidden"]):not([type="submit"]):not([type="button"])', 'textarea', 'select'),
    "navigation": ('nav a', '.navigation a', '.menu a', '[role="navigation"] a'),
    "hover": (
        '[aria-haspopup]', '.dropdown', '.dropdown-toggle', '[data-toggle="dropdown"]',
        '.menu-item', '.nav-item', 'nav li', '[data-tooltip]', '[title]',
    ),
    "triggers": (
        '[aria-expanded]', '[aria-controls]', '[data-toggle]', '[data-bs-toggle]',
        'summary', '[role="tab"]', '.modal-trigger', '[data-modal]',
    ),
}

# Class/attribute patterns and the confidence each one earns.
SMART_SELECTORS: tuple[tuple[str, float], ...] = (
    ('[data-testid]', 0.9),
    ('[data-track]', 0.8),
    ('.cta, .call-to-action', 0.9),
    ('.button, .btn', 0.8),
    ('[onclick]', 0.7),
    ('.tab, [role="tab"]', 0.6),
    ('.accordion, [role="button"][aria-expanded]', 0.6),
    ('.modal-trigger, [data-modal]', 0.7),
    ('.menu-item, .nav-item', 0.5),
    ('[aria-label*="menu"], [aria-label*="navigation"]', 0.6),
)

HELPERS_JS = r"""
(navigationKeywords) => {
  if (window.__footprintProbe) return true;

  const collapse = (value) => (value || '').replace(/\s+/g, ' ').trim();

  const bestSelector = (el) => {
    const tag = (el.tagName || '').toLowerCase();
    if (el.id) return '#' + CSS.escape(el.id);
    const testId = el.getAttribute('data-testid');
    if (testId) return tag + '[data-testid="' + testId.replace(/"/g, '\\"') + '"]';
    const cls = typeof el.className === 'string' ? el.className.trim().split(/\s+/)[0] : '';
    if (cls) return tag + '.' + CSS.escape(cls);
    return tag;
  };

  const dataAttributes = (el) => Array.from(el.attributes)
    .filter((attr) => attr.name.startsWith('data-'))
    .map((attr) => attr.name + '="' + attr.value + '"')
    .join(' ');

  const isNavigation = (el) => {
    const text = collapse(el.textContent).toLowerCase();
    const hasHref = !!(el.getAttribute('href') || el.closest('a'));
    return hasHref || navigationKeywords.some((keyword) => text.includes(keyword));
  };

  const hasClickHandler = (el) => !!el.onclick || el.getAttribute('onclick') !== null;

  const isInteractive = (el) => {
    const tag = (el.tagName || '').toLowerCase();
    const role = el.getAttribute('role');
    return ['button', 'input', 'select', 'textarea', 'a', 'details', 'summary'].includes(tag)
      || role === 'button' || role === 'link'
      || hasClickHandler(el)
      || el.getAttribute('tabindex') !== null;
  };

  const hasBox = (el) => {
    const rect = el.getBoundingClientRect();
    if (rect.width <= 0 || rect.height <= 0) return false;
    const style = window.getComputedStyle(el);
    return style.display !== 'none' && style.visibility !== 'hidden';
  };

  const describe = (el, kind, confidence) => {
    const rect = el.getBoundingClientRect();
    const vh = window.innerHeight || document.documentElement.clientHeight || 0;
    const vw = window.innerWidth || document.documentElement.clientWidth || 0;
    return {
      kind,
      selector: bestSelector(el),
      tag: (el.tagName || '').toLowerCase(),
      text: collapse(el.textContent).slice(0, 50),
      role: el.getAttribute('role') || '',
      elementId: el.id || '',
      className: typeof el.className === 'string' ? el.className : '',
      ariaLabel: el.getAttribute('aria-label') || '',
      dataAttributes: dataAttributes(el),
      x: rect.left,
      y: rect.top,
      width: rect.width,
      height: rect.height,
      visible: hasBox(el) && rect.top >= 0 && rect.top <= vh && rect.left <= vw,
      disabled: !!el.disabled || el.getAttribute('disabled') !== null || el.getAttribute('aria-disabled') === 'true',
      hasClickHandler: hasClickHandler(el),
      interactive: isInteractive(el),
      confidence: confidence || 0,
    };
  };

  const findBySelectors = (selectors, kind, config) => {
    const maxElements = config.maxElements ?? 5;
    const mustBeVisible = config.mustBeVisible ?? true;
    const excludeNavigation = config.excludeNavigation ?? true;
    const out = [];
    const seen = new Set();
    for (const selector of selectors) {
      let nodes = [];
      try {
        nodes = Array.from(document.querySelectorAll(selector));
      } catch (_) {
        continue;
      }
      for (const el of nodes) {
        if (seen.has(el)) continue;
        seen.add(el);
        if (excludeNavigation && isNavigation(el)) continue;
        if (mustBeVisible && !hasBox(el)) continue;
        out.push(describe(el, kind, config.confidence || 0));
        if (out.length >= maxElements) return out;
      }
    }
    return out;
  };

  window.__footprintProbe = { bestSelector, describe, findBySelectors, isNavigation, hasBox };
  return true;
}
"""

FIND_BY_SELECTORS_JS = r"""
({selectors, kind, config}) => window.__footprintProbe.findBySelectors(selectors, kind, config)
"""

FIND_SMART_JS = r"""
({table, limit}) => {
  const probe = window.__footprintProbe;
  const out = [];
  const seen = new Set();
  for (const [selector, confidence] of table) {
    let nodes = [];
    try {
      nodes = Array.from(document.querySelectorAll(selector));
    } catch (_) {
      continue;
    }
    for (const el of nodes) {
      if (seen.has(el)) continue;
      seen.add(el);
      if (probe.isNavigation(el)) continue;
      if (!probe.hasBox(el)) continue;
      out.push(probe.describe(el, 'smart', confidence));
    }
  }
  out.sort((a, b) => b.confidence - a.confidence);
  return out.slice(0, limit);
}
"""

DESCRIBE_SELECTOR_JS = r"""
(selector) => {
  const el = document.querySelector(selector);
  if (!el) return null;
  return window.__footprintProbe.describe(el, 'custom', 0);
}
"""


@dataclass(frozen=True)
class DiscoveryConfig:
    max_elements: int = 5
    must_be_visible: bool = True
    exclude_navigation: bool = True
    confidence: float = 0.0

    def to_js(self) -> dict[str, Any]:
        payload = asdict(self)
        return {
            "maxElements": payload["max_elements"],
            "mustBeVisible": payload["must_be_visible"],
            "excludeNavigation": payload["exclude_navigation"],
            "confidence": payload["confidence"],
        }


@dataclass(frozen=True)
class InteractiveElements:
    buttons: tuple[ElementDescriptor, ...] = ()
    hoverables: tuple[ElementDescriptor, ...] = ()
    triggers: tuple[ElementDescriptor, ...] = ()

    def all(self) -> list[ElementDescriptor]:
        return deduplicate([*self.buttons, *self.triggers, *self.hoverables])


def descriptor_from_raw(raw: dict[str, Any]) -> ElementDescriptor:
    return ElementDescriptor(
        selector=str(raw.get("selector") or raw.get("tag") or ""),
        tag=str(raw.get("tag") or ""),
        kind=str(raw.get("kind") or ""),
        text=str(raw.get("text") or ""),
        role=str(raw.get("role") or ""),
        element_id=str(raw.get("elementId") or ""),
        class_name=str(raw.get("className") or ""),
        aria_label=str(raw.get("ariaLabel") or ""),
        data_attributes=str(raw.get("dataAttributes") or ""),
        geometry=Geometry(
            x=float(raw.get("x") or 0.0),
            y=float(raw.get("y") or 0.0),
            width=float(raw.get("width") or 0.0),
            height=float(raw.get("height") or 0.0),
        ),
        visible=bool(raw.get("visible", False)),
        disabled=bool(raw.get("disabled", False)),
        has_click_handler=bool(raw.get("hasClickHandler", False)),
        interactive=bool(raw.get("interactive", False)),
        confidence=float(raw.get("confidence") or 0.0),
    )


def deduplicate(descriptors: Iterable[ElementDescriptor]) -> list[ElementDescriptor]:
    seen: set[tuple[str, str]] = set()
    unique: list[ElementDescriptor] = []
    for descriptor in descriptors:
        if descriptor.dedupe_key in seen:
            continue
        seen.add(descriptor.dedupe_key)
        unique.append(descriptor)
    return unique


class ElementDiscovery:
    """Finds candidate interactive elements by probing inside the page.

    Heuristics run in the page's own JS context; only plain descriptor
    snapshots cross back into Python.
    """

    def __init__(self, page: Page, smart_limit: int = 15) -> None:
        self._page = page
        self._smart_limit = smart_limit

    @property
    def page(self) -> Page:
        return self._page

    async def _inject(self) -> None:
        await self._page.evaluate(HELPERS_JS, list(NAVIGATION_KEYWORDS))

    async def _probe(self, selectors: tuple[str, ...], kind: str, config: DiscoveryConfig) -> list[ElementDescriptor]:
        await self._inject()
        raw = await self._page.evaluate(
            FIND_BY_SELECTORS_JS,
            {"selectors": list(selectors), "kind": kind, "config": config.to_js()},
        )
        return deduplicate(descriptor_from_raw(item) for item in raw or [])

    async def find_interactive(self) -> InteractiveElements:
        buttons = await self._probe(SELECTOR_MAP["buttons"], "button", DiscoveryConfig(max_elements=10))
        hoverables = await self._probe(
            SELECTOR_MAP["hover"], "hover", DiscoveryConfig(max_elements=5, exclude_navigation=False)
        )
        triggers = await self._probe(SELECTOR_MAP["triggers"], "trigger", DiscoveryConfig(max_elements=8))
        logger.debug(
            f"[Discovery] {len(buttons)} buttons, {len(hoverables)} hoverables, {len(triggers)} triggers"
        )
        return InteractiveElements(buttons=tuple(buttons), hoverables=tuple(hoverables), triggers=tuple(triggers))

    async def find_by_type(self, element_type: str, config: DiscoveryConfig | None = None) -> list[ElementDescriptor]:
        selectors = SELECTOR_MAP.get(element_type, (element_type,))
        return await self._probe(selectors, element_type, config or DiscoveryConfig())

    async def find_smart(self) -> list[ElementDescriptor]:
        await self._inject()
        raw = await self._page.evaluate(
            FIND_SMART_JS,
            {"table": [list(item) for item in SMART_SELECTORS], "limit": self._smart_limit},
        )
        ranked = deduplicate(descriptor_from_raw(item) for item in raw or [])
        ranked.sort(key=lambda item: item.confidence, reverse=True)
        return ranked

    async def describe(self, selector: str) -> ElementDescriptor | None:
        await self._inject()
        raw = await self._page.evaluate(DESCRIBE_SELECTOR_JS, selector)
        if not raw:
            return None
        return descriptor_from_raw(raw)
