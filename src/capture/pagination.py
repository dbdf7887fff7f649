"""Pagination capture controller."""

import re
from collections.abc import Iterable
from dataclasses import dataclass

from src.browser.backend import Element, RenderingBackend, Signature
from src.browser.probe import find_first
from src.config import settings
from src.errors import CaptureError, PageCaptureError
from src.models import PageCapture, PageCaptures
from src.utils.cancellation import CancellationToken
from src.utils.logging import get_logger

logger = get_logger(__name__)

COUNTER_SIGNATURES = (
    Signature(".page-counter span:last-child"),
    Signature(".slide-counter span:last-child"),
    Signature('[data-testid="page-counter"]'),
    Signature(".pagination .total"),
    Signature(".slides-nav .total"),
)

NEXT_SIGNATURES = (
    Signature("#nextPageIcon"),
    Signature('button[aria-label*="next" i]'),
    Signature(".next-button"),
    Signature(".arrow-right"),
    Signature('[data-react-class*="ChevronRight"]'),
)

PREV_SIGNATURES = (
    Signature("#prevPageIcon"),
    Signature('button[aria-label*="previous" i]'),
    Signature('button[aria-label*="prev" i]'),
    Signature(".prev-button"),
    Signature(".arrow-left"),
    Signature('[data-react-class*="ChevronLeft"]'),
)

# Viewer UI that would otherwise overlap the captured page
CHROME_SELECTORS = (
    ".toolbar",
    ".navigation",
    ".header",
    ".footer",
    ".floating-controls",
    ".ui-overlay",
    '[role="toolbar"]',
)

_INTEGER = re.compile(r"\d+")


def parse_counter_total(text: str) -> int | None:
    """Return the last integer in a page counter such as ``"3 / 12"``."""
    numbers = _INTEGER.findall(text or "")
    if not numbers:
        return None
    total = int(numbers[-1])
    return total if total > 0 else None


@dataclass(frozen=True)
class CaptureConfig:
    page_ceiling: int = 50
    page_settle_seconds: float = 1.5
    capture_settle_seconds: float = 2.0

    @classmethod
    def from_settings(cls) -> "CaptureConfig":
        return cls(
            page_ceiling=settings.page_ceiling,
            page_settle_seconds=settings.page_settle_seconds,
            capture_settle_seconds=settings.capture_settle_seconds,
        )


class PaginationController:
    """
    Walks a cleared viewer page by page and captures each page.

    The controller assumes it starts on page 1 and always leaves the viewer
    on page 1. Every walk is bounded by the effective page ceiling.
    """

    def __init__(
        self,
        backend: RenderingBackend,
        config: CaptureConfig | None = None,
        cancellation: CancellationToken | None = None,
    ) -> None:
        self.backend = backend
        self.config = config or CaptureConfig.from_settings()
        self.cancellation = cancellation or CancellationToken()
        self.current_page = 1

    @property
    def ceiling(self) -> int:
        return max(1, self.config.page_ceiling)

    async def _control(self, signatures: Iterable[Signature]) -> Element | None:
        element = await find_first(self.backend, tuple(signatures))
        if element is None or not element.usable:
            return None
        return element

    async def _step(self, signatures: tuple[Signature, ...], direction: str) -> None:
        self.cancellation.raise_if_cancelled()
        control = await self._control(signatures)
        if control is None:
            raise PageCaptureError(
                f"No usable {direction} control on page {self.current_page}"
            )
        await self.backend.click(control)
        self.current_page += 1 if direction == "next" else -1
        await self.cancellation.pause(self.config.page_settle_seconds)

    async def next_page(self) -> None:
        await self._step(NEXT_SIGNATURES, "next")

    async def previous_page(self) -> None:
        await self._step(PREV_SIGNATURES, "previous")

    async def has_next_page(self) -> bool:
        return await self._control(NEXT_SIGNATURES) is not None

    async def return_to_first_page(self) -> None:
        """Click "previous" until it is unavailable, bounded by the ceiling."""
        clicks = 0
        while clicks < self.ceiling and await self._control(PREV_SIGNATURES) is not None:
            await self.previous_page()
            clicks += 1
        self.current_page = 1

    async def navigate_to_page(self, page_number: int) -> None:
        """Go to ``page_number`` from page 1 by clicking "next" page_number - 1 times."""
        await self.return_to_first_page()
        for _ in range(page_number - 1):
            await self.next_page()

    async def get_page_count(self) -> int:
        """
        Determine how many pages the viewer holds, clamped to the ceiling.

        Reads the on-screen counter when present; otherwise counts by
        clicking "next" and then walks back to page 1.
        """
        counter = await find_first(self.backend, COUNTER_SIGNATURES, require_visible=False)
        if counter is not None:
            total = parse_counter_total(counter.text)
            if total is not None:
                if total > self.ceiling:
                    logger.warning(
                        "Page counter above ceiling, clamping",
                        counter=total,
                        ceiling=self.ceiling,
                    )
                    return self.ceiling
                logger.info("Page count from counter", page_count=total)
                return total

        if self.current_page != 1:
            await self.return_to_first_page()

        count = 1
        while count < self.ceiling and await self.has_next_page():
            await self.next_page()
            count += 1

        for _ in range(count - 1):
            await self.previous_page()
        self.current_page = 1

        logger.info("Page count by navigation", page_count=count, ceiling=self.ceiling)
        return count

    async def capture_page(self, page_number: int) -> PageCapture:
        """Settle, hide viewer chrome, screenshot the viewport and restore the chrome."""
        self.cancellation.raise_if_cancelled()
        await self.cancellation.pause(self.config.capture_settle_seconds)

        await self.backend.hide(CHROME_SELECTORS)
        try:
            image = await self.backend.screenshot()
        finally:
            await self.backend.unhide()

        if not image:
            raise PageCaptureError(f"Empty screenshot for page {page_number}")

        logger.debug("Captured page", page=page_number, bytes=len(image))
        return PageCapture(page_number=page_number, image=image)

    async def capture_all_pages(self, explicit_pages: Iterable[int] | None = None) -> PageCaptures:
        """
        Capture the requested pages, or every page up to the ceiling.

        Raises:
            PageCaptureError: On any navigation or capture failure, or when an
                explicit page is outside the document
            JobCancelledError: When cancellation is observed
        """
        captures = PageCaptures()
        try:
            if explicit_pages:
                await self._capture_explicit(sorted(set(explicit_pages)), captures)
            else:
                await self._capture_sequential(captures)
            await self.return_to_first_page()
        except CaptureError:
            raise
        except Exception as e:
            raise PageCaptureError(
                f"Capture failed on page {self.current_page}: {e}"
            ) from e

        logger.info("Captured pages", page_count=len(captures))
        return captures

    async def _capture_explicit(self, pages: list[int], captures: PageCaptures) -> None:
        total = await self.get_page_count()
        outside = [p for p in pages if p < 1 or p > total]
        if outside:
            raise PageCaptureError(f"Pages {outside} are outside the document (1-{total})")

        for page_number in pages:
            await self.navigate_to_page(page_number)
            captures.add(await self.capture_page(page_number))

    async def _capture_sequential(self, captures: PageCaptures) -> None:
        await self.return_to_first_page()
        page_number = 1
        while True:
            captures.add(await self.capture_page(page_number))
            if page_number >= self.ceiling:
                if await self.has_next_page():
                    logger.warning("Page ceiling reached", ceiling=self.ceiling)
                break
            if not await self.has_next_page():
                break
            await self.next_page()
            page_number += 1
