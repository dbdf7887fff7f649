"""Tests for the image-to-PDF assembler."""

import io

import pytest
from PIL import Image
from pypdf import PdfReader

from src.assembly import DocumentAssembler
from src.assembly.pdf import PAGE_FORMATS, resolve_page_format
from src.errors import AssemblyError
from src.models import PageCapture
from tests.fakes import PAGE_COLORS, solid_png


def _captures(count: int) -> list[PageCapture]:
    return [PageCapture(page_number=i + 1, image=solid_png(PAGE_COLORS[i])) for i in range(count)]


def _assembler(**overrides) -> DocumentAssembler:
    options = {"page_size": "A4", "dpi": 72, "quality": 85, "show_page_numbers": False}
    options.update(overrides)
    return DocumentAssembler(**options)


def _center_color(reader: PdfReader, index: int) -> tuple[int, ...]:
    image = reader.pages[index].images[0].image.convert("RGB")
    return image.getpixel((image.width // 2, image.height // 2))


def test_page_box_sizes() -> None:
    assert PAGE_FORMATS["a4"].box(100) == (1169, 827)
    assert PAGE_FORMATS["letter"].box(100) == (1100, 850)
    assert PAGE_FORMATS["legal"].box(100) == (1400, 850)


def test_unknown_page_format_falls_back_to_a4() -> None:
    assert resolve_page_format("tabloid").name == "A4"
    assert resolve_page_format("Letter").name == "Letter"


def test_assemble_preserves_order_and_page_size() -> None:
    document = _assembler().assemble(_captures(3))
    reader = PdfReader(io.BytesIO(document.data))

    assert document.page_count == 3
    assert document.page_numbers == (1, 2, 3)
    assert document.byte_size == len(document.data)
    assert len(reader.pages) == 3

    width, height = PAGE_FORMATS["a4"].box(72)
    for index, page in enumerate(reader.pages):
        assert float(page.mediabox.width) == pytest.approx(width, abs=1)
        assert float(page.mediabox.height) == pytest.approx(height, abs=1)
        center = _center_color(reader, index)
        assert all(abs(a - b) < 20 for a, b in zip(center, PAGE_COLORS[index]))


def test_page_size_in_points_follows_dpi() -> None:
    """A page box of N pixels at D dpi is N * 72 / D points."""
    document = _assembler(page_size="Letter", dpi=150).assemble(_captures(1))
    page = PdfReader(io.BytesIO(document.data)).pages[0]

    width, height = PAGE_FORMATS["letter"].box(150)
    assert float(page.mediabox.width) == pytest.approx(width * 72 / 150, abs=1)
    assert float(page.mediabox.height) == pytest.approx(height * 72 / 150, abs=1)


def test_rendered_page_has_box_size_and_no_enlargement() -> None:
    assembler = _assembler()
    page = Image.open(io.BytesIO(assembler.render_page(_captures(1)[0])))

    assert page.size == assembler.page_box
    # 320x200 screenshot stays unscaled on a white page
    assert page.getpixel((5, 5))[0] > 240
    assert page.getpixel((page.width // 2, page.height // 2))[0] > 150


def test_assembling_twice_is_consistent() -> None:
    captures = _captures(4)
    first = _assembler().assemble(captures)
    second = _assembler().assemble(captures)

    assert first.page_count == second.page_count == 4
    assert first.page_numbers == second.page_numbers


def test_page_numbers_label() -> None:
    document = _assembler(show_page_numbers=True).assemble(_captures(2))

    assert len(PdfReader(io.BytesIO(document.data)).pages) == 2


def test_empty_input_fails() -> None:
    with pytest.raises(AssemblyError):
        _assembler().assemble([])


def test_undecodable_image_fails() -> None:
    with pytest.raises(AssemblyError, match="Page 2"):
        _assembler().assemble(
            [_captures(1)[0], PageCapture(page_number=2, image=b"not an image")]
        )
