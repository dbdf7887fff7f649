"""Rendering backend primitives used by the gate and capture components."""

import json
from dataclasses import dataclass, field
from typing import Protocol

from src.browser.cdp import CDPClient, CDPError
from src.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class Signature:
    """
    Structural description of an element.

    ``selector`` is a CSS selector; ``text`` optionally requires the element's
    visible label (or value) to contain one of the given phrases, compared
    case-insensitively; ``within`` requires an ancestor matching that selector.
    """

    selector: str
    text: tuple[str, ...] = ()
    within: str | None = None

    def describe(self) -> str:
        parts = [self.selector]
        if self.text:
            parts.append(f"text~{'|'.join(self.text)}")
        if self.within:
            parts.append(f"within {self.within}")
        return " ".join(parts)


@dataclass(frozen=True)
class Element:
    """An element located by a signature in the live page."""

    signature: Signature
    index: int
    visible: bool = True
    enabled: bool = True
    text: str = ""
    in_form: bool = False

    @property
    def usable(self) -> bool:
        return self.visible and self.enabled


class RenderingBackend(Protocol):
    """Primitives offered by a live browser page."""

    async def navigate(self, url: str) -> None: ...

    async def wait_for_load(self, timeout: float) -> None: ...

    async def find(self, signature: Signature) -> Element | None: ...

    async def fill(self, element: Element, value: str) -> None: ...

    async def click(self, element: Element) -> None: ...

    async def submit_form(self, element: Element) -> bool: ...

    async def hide(self, selectors: tuple[str, ...]) -> int: ...

    async def unhide(self) -> None: ...

    async def screenshot(self) -> bytes: ...


_FIND_SCRIPT = """
(() => {
  const sig = %s;
  const nodes = Array.from(document.querySelectorAll(sig.selector));
  let fallback = null;
  for (let i = 0; i < nodes.length; i++) {
    const el = nodes[i];
    if (sig.within && !el.closest(sig.within)) continue;
    const text = ((el.innerText || el.value || el.textContent || '') + '').trim();
    const lowered = text.toLowerCase();
    if (sig.text.length && !sig.text.some(t => lowered.includes(t))) continue;
    const style = window.getComputedStyle(el);
    const rect = el.getBoundingClientRect();
    const visible = style.display !== 'none' && style.visibility !== 'hidden'
      && rect.width > 0 && rect.height > 0;
    const enabled = !el.disabled && el.getAttribute('aria-disabled') !== 'true'
      && !el.classList.contains('disabled');
    const found = {index: i, visible, enabled, text: text.slice(0, 200), in_form: !!(el.form || el.closest('form'))};
    if (visible) return found;
    if (fallback === null) fallback = found;
  }
  return fallback;
})()
"""

_RESOLVE = "document.querySelectorAll(%s)[%d]"

_HIDE_SCRIPT = """
(() => {
  let count = 0;
  for (const selector of %s) {
    for (const el of document.querySelectorAll(selector)) {
      if (el.hasAttribute('data-capture-hidden')) continue;
      el.setAttribute('data-capture-hidden', el.style.visibility || '');
      el.style.visibility = 'hidden';
      count++;
    }
  }
  return count;
})()
"""

_UNHIDE_SCRIPT = """
(() => {
  for (const el of document.querySelectorAll('[data-capture-hidden]')) {
    el.style.visibility = el.getAttribute('data-capture-hidden');
    el.removeAttribute('data-capture-hidden');
  }
})()
"""

STEALTH_SCRIPT = """
Object.defineProperty(navigator, 'webdriver', { get: () => undefined });
Object.defineProperty(navigator, 'plugins', { get: () => [1, 2, 3, 4, 5] });
Object.defineProperty(navigator, 'languages', { get: () => ['en-US', 'en'] });
window.chrome = window.chrome || { runtime: {} };
"""


@dataclass
class CDPBackend:
    """RenderingBackend implemented over a page-level CDP connection."""

    client: CDPClient
    navigation_timeout: float = 30.0
    _hidden: bool = field(default=False, init=False)

    def _resolve(self, element: Element) -> str:
        return _RESOLVE % (json.dumps(element.signature.selector), element.index)

    async def navigate(self, url: str) -> None:
        await self.client.navigate(url)
        await self.client.wait_for_load(timeout=self.navigation_timeout)

    async def wait_for_load(self, timeout: float) -> None:
        await self.client.wait_for_load(timeout=timeout)

    async def find(self, signature: Signature) -> Element | None:
        payload = json.dumps(
            {
                "selector": signature.selector,
                "text": [t.lower() for t in signature.text],
                "within": signature.within,
            }
        )
        found = await self.client.evaluate(_FIND_SCRIPT % payload)
        if not found:
            return None
        return Element(
            signature=signature,
            index=found["index"],
            visible=found["visible"],
            enabled=found["enabled"],
            text=found["text"],
            in_form=found["in_form"],
        )

    async def fill(self, element: Element, value: str) -> None:
        target = self._resolve(element)
        focused = await self.client.evaluate(
            f"(() => {{ const el = {target}; if (!el) return false; el.focus(); "
            "if ('value' in el) { el.value = ''; "
            "el.dispatchEvent(new Event('input', {bubbles: true})); } return true; })()"
        )
        if not focused:
            raise CDPError(f"Element vanished before fill: {element.signature.describe()}")
        await self.client.insert_text(value)
        await self.client.evaluate(
            f"(() => {{ const el = {target}; "
            "if (el) el.dispatchEvent(new Event('change', {bubbles: true})); })()"
        )

    async def click(self, element: Element) -> None:
        target = self._resolve(element)
        box = await self.client.evaluate(
            f"(() => {{ const el = {target}; if (!el) return null; "
            "el.scrollIntoView({block: 'center', inline: 'center'}); "
            "const r = el.getBoundingClientRect(); "
            "return {x: r.left + r.width / 2, y: r.top + r.height / 2, w: r.width, h: r.height}; })()"
        )
        if not box:
            raise CDPError(f"Element vanished before click: {element.signature.describe()}")
        if box["w"] > 0 and box["h"] > 0:
            await self.client.click_at(box["x"], box["y"])
        else:
            await self.client.evaluate(f"{target}.click()")

    async def submit_form(self, element: Element) -> bool:
        target = self._resolve(element)
        submitted: bool = await self.client.evaluate(
            f"(() => {{ const el = {target}; if (!el) return false; "
            "const form = el.form || el.closest('form'); if (!form) return false; "
            "if (typeof form.requestSubmit === 'function') form.requestSubmit(); "
            "else form.submit(); return true; })()"
        )
        return bool(submitted)

    async def hide(self, selectors: tuple[str, ...]) -> int:
        count = await self.client.evaluate(_HIDE_SCRIPT % json.dumps(list(selectors)))
        self._hidden = True
        logger.debug("Suppressed viewer chrome", elements=count)
        return int(count or 0)

    async def unhide(self) -> None:
        if self._hidden:
            await self.client.evaluate(_UNHIDE_SCRIPT)
            self._hidden = False

    async def screenshot(self) -> bytes:
        return await self.client.screenshot(format="png")
