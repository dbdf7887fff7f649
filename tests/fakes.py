"""Simulated document viewer and collaborators used by the unit tests."""

import io
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

from PIL import Image

from src.auth.gates import (
    ACCESS_DENIED_SIGNATURES,
    BLOCKED_SIGNATURES,
    CONSENT_SIGNATURES,
    EMAIL_SIGNATURES,
    EXPIRED_SIGNATURES,
    OTP_SIGNATURES,
    READY_SIGNATURES,
)
from src.browser.backend import Element, Signature
from src.browser.cdp import CDPError, NavigationError
from src.capture.pagination import COUNTER_SIGNATURES, NEXT_SIGNATURES, PREV_SIGNATURES

VIEWER_EMAIL = "viewer@example.com"

PAGE_COLORS = [
    (220, 30, 30),
    (30, 180, 30),
    (30, 30, 220),
    (230, 200, 20),
    (150, 30, 160),
    (20, 170, 170),
]


def solid_png(color: tuple[int, int, int], size: tuple[int, int] = (320, 200)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


@dataclass
class FakeViewer:
    """
    In-memory stand-in for a DocSend-style viewer.

    ``gates`` lists the gates shown in order ("email", "otp", "consent");
    each one is cleared by submitting an accepted value or clicking consent.
    """

    page_count: int = 3
    gates: list[str] = field(default_factory=list)
    accepted_emails: tuple[str, ...] = (VIEWER_EMAIL,)
    expected_code: str = "123456"
    consent_clicks_needed: int = 1
    deny_with_alert: bool = False
    show_counter: bool = False
    counter_text: str | None = None
    expired: bool = False
    blocked: bool = False
    never_ready: bool = False
    navigate_error: str | None = None
    slow_load: bool = False
    on_capture: Callable[[int], None] | None = None

    current_page: int = 1
    gate_index: int = 0
    consent_clicks: int = 0
    denied: bool = False
    navigated_to: list[str] = field(default_factory=list)
    filled: list[tuple[str, str]] = field(default_factory=list)
    clicks: list[str] = field(default_factory=list)
    screenshots: list[int] = field(default_factory=list)
    hidden: bool = False
    hidden_during_capture: list[bool] = field(default_factory=list)
    open: bool = False

    @property
    def gate(self) -> str | None:
        if self.gate_index < len(self.gates):
            return self.gates[self.gate_index]
        return None

    @property
    def ready(self) -> bool:
        return self.gate is None and not (self.expired or self.blocked or self.never_ready)

    async def navigate(self, url: str) -> None:
        if self.navigate_error:
            raise NavigationError(f"Navigation failed: {self.navigate_error}")
        self.navigated_to.append(url)
        if self.slow_load:
            raise CDPError("Timeout waiting for page load")

    async def wait_for_load(self, timeout: float) -> None:
        return None

    async def find(self, signature: Signature) -> Element | None:
        if signature == EMAIL_SIGNATURES[0] and self.gate == "email" and not self.denied:
            return Element(signature, 0, in_form=True)
        if signature == OTP_SIGNATURES[0] and self.gate == "otp":
            return Element(signature, 0, in_form=True)
        if signature == CONSENT_SIGNATURES[0] and self.gate == "consent":
            return Element(signature, 0, text="I agree")
        if signature == ACCESS_DENIED_SIGNATURES[0] and self.denied:
            return Element(signature, 0, text="Access denied for this e-mail")
        if signature == READY_SIGNATURES[0] and self.ready:
            return Element(signature, 0)
        if signature == EXPIRED_SIGNATURES[0] and self.expired:
            return Element(signature, 0, text="This link has expired")
        if signature == BLOCKED_SIGNATURES[1] and self.blocked:
            return Element(signature, 0, visible=False)
        if signature == COUNTER_SIGNATURES[0] and (self.show_counter or self.counter_text):
            text = self.counter_text or f"{self.current_page} / {self.page_count}"
            return Element(signature, 0, text=text)
        if signature == NEXT_SIGNATURES[0] and self.ready:
            return Element(signature, 0, enabled=self.current_page < self.page_count)
        if signature == PREV_SIGNATURES[0] and self.ready:
            return Element(signature, 0, enabled=self.current_page > 1)
        return None

    async def fill(self, element: Element, value: str) -> None:
        self.filled.append((element.signature.selector, value))

    async def submit_form(self, element: Element) -> bool:
        value = self.filled[-1][1]
        if element.signature == EMAIL_SIGNATURES[0]:
            if value in self.accepted_emails:
                self.gate_index += 1
            elif self.deny_with_alert:
                self.denied = True
        elif element.signature == OTP_SIGNATURES[0]:
            if value == self.expected_code:
                self.gate_index += 1
        return True

    async def click(self, element: Element) -> None:
        self.clicks.append(element.signature.selector)
        if element.signature == NEXT_SIGNATURES[0]:
            assert self.current_page < self.page_count, "clicked a disabled next control"
            self.current_page += 1
        elif element.signature == PREV_SIGNATURES[0]:
            assert self.current_page > 1, "clicked a disabled previous control"
            self.current_page -= 1
        elif element.signature == CONSENT_SIGNATURES[0]:
            self.consent_clicks += 1
            if self.consent_clicks >= self.consent_clicks_needed:
                self.gate_index += 1

    async def hide(self, selectors: tuple[str, ...]) -> int:
        self.hidden = True
        return len(selectors)

    async def unhide(self) -> None:
        self.hidden = False

    async def screenshot(self) -> bytes:
        self.screenshots.append(self.current_page)
        self.hidden_during_capture.append(self.hidden)
        if self.on_capture is not None:
            self.on_capture(self.current_page)
        return solid_png(PAGE_COLORS[(self.current_page - 1) % len(PAGE_COLORS)])

    @asynccontextmanager
    async def session(self, session_id: str) -> AsyncIterator["FakeViewer"]:
        self.open = True
        try:
            yield self
        finally:
            self.open = False


class StaticCodeSource:
    """Code source that yields ``codes`` in turn, then None."""

    def __init__(self, *codes: str | None, error: Exception | None = None) -> None:
        self.codes = list(codes)
        self.error = error
        self.calls = 0

    async def fetch_code(self) -> str | None:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.codes.pop(0) if self.codes else None
