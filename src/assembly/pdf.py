"""Image-to-PDF document assembler."""

import io
from collections.abc import Sequence
from dataclasses import dataclass

import img2pdf
from PIL import Image, ImageDraw, ImageFont, UnidentifiedImageError

from src.config import settings
from src.errors import AssemblyError
from src.models import AssembledDocument, PageCapture
from src.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class PageFormat:
    """Landscape page dimensions in inches."""

    name: str
    width_in: float
    height_in: float

    def box(self, dpi: int) -> tuple[int, int]:
        """Page box in pixels at ``dpi``."""
        return round(self.width_in * dpi), round(self.height_in * dpi)


PAGE_FORMATS: dict[str, PageFormat] = {
    "a4": PageFormat("A4", 11.69, 8.27),
    "letter": PageFormat("Letter", 11.0, 8.5),
    "legal": PageFormat("Legal", 14.0, 8.5),
}


def resolve_page_format(name: str) -> PageFormat:
    page_format = PAGE_FORMATS.get((name or "").strip().lower())
    if page_format is None:
        logger.warning("Unknown page format, using A4", page_format=name)
        return PAGE_FORMATS["a4"]
    return page_format


class DocumentAssembler:
    """
    Converts ordered page screenshots into a single PDF.

    Every output page has exactly the configured page box; the screenshot is
    scaled down to fit (never enlarged), centered on white and JPEG-encoded.
    """

    def __init__(
        self,
        page_size: str | None = None,
        dpi: int | None = None,
        quality: int | None = None,
        show_page_numbers: bool | None = None,
    ) -> None:
        self.page_format = resolve_page_format(page_size or settings.pdf_page_size)
        self.dpi = dpi or settings.pdf_dpi
        self.quality = quality or settings.pdf_compression_quality
        self.show_page_numbers = (
            settings.pdf_show_page_numbers if show_page_numbers is None else show_page_numbers
        )

    @property
    def page_box(self) -> tuple[int, int]:
        return self.page_format.box(self.dpi)

    def render_page(self, capture: PageCapture) -> bytes:
        """Fit one screenshot onto a page-sized white canvas and encode it as JPEG."""
        try:
            with Image.open(io.BytesIO(capture.image)) as source:
                image = source.convert("RGB")
        except (UnidentifiedImageError, OSError) as e:
            raise AssemblyError(f"Page {capture.page_number} is not a decodable image") from e

        width, height = self.page_box
        image.thumbnail((width, height), Image.Resampling.LANCZOS)

        page = Image.new("RGB", (width, height), "white")
        page.paste(image, ((width - image.width) // 2, (height - image.height) // 2))

        if self.show_page_numbers:
            self._draw_label(page, f"Page {capture.page_number}")

        buffer = io.BytesIO()
        page.save(buffer, format="JPEG", quality=self.quality, optimize=True)
        return buffer.getvalue()

    def _draw_label(self, page: Image.Image, label: str) -> None:
        draw = ImageDraw.Draw(page)
        font = ImageFont.load_default()
        left, top, right, bottom = draw.textbbox((0, 0), label, font=font)
        margin = max(8, self.dpi // 10)
        position = (page.width - (right - left) - margin, page.height - (bottom - top) - margin)
        draw.text(position, label, fill=(90, 90, 90), font=font)

    def assemble(self, captures: Sequence[PageCapture]) -> AssembledDocument:
        """
        Build the PDF; page order and count follow ``captures``.

        Raises:
            AssemblyError: For empty input, undecodable images or PDF errors
        """
        if not captures:
            raise AssemblyError("No pages to assemble")

        logger.info(
            "Assembling document",
            page_count=len(captures),
            page_format=self.page_format.name,
            dpi=self.dpi,
        )

        pages = [self.render_page(capture) for capture in captures]

        try:
            data = img2pdf.convert(
                pages,
                layout_fun=img2pdf.get_fixed_dpi_layout_fun((self.dpi, self.dpi)),
            )
        except Exception as e:
            raise AssemblyError(f"PDF conversion failed: {e}") from e

        document = AssembledDocument(
            data=data,
            page_numbers=tuple(c.page_number for c in captures),
        )
        logger.info(
            "Document assembled",
            page_count=document.page_count,
            byte_size=document.byte_size,
        )
        return document
