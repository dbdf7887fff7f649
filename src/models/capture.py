"""Page capture and assembled document types."""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class PageCapture:
    """Raster snapshot of one document page."""

    page_number: int
    image: bytes

    def __post_init__(self) -> None:
        if self.page_number < 1:
            raise ValueError(f"Page numbers start at 1, got {self.page_number}")


@dataclass
class PageCaptures:
    """Ordered captures; insertion order is page order and page numbers are unique."""

    items: list[PageCapture] = field(default_factory=list)

    def add(self, capture: PageCapture) -> None:
        if any(c.page_number == capture.page_number for c in self.items):
            raise ValueError(f"Page {capture.page_number} was already captured")
        self.items.append(capture)

    @property
    def page_numbers(self) -> list[int]:
        return [c.page_number for c in self.items]

    def __len__(self) -> int:
        return len(self.items)


@dataclass(frozen=True)
class AssembledDocument:
    """Final paginated output plus derived metadata."""

    data: bytes
    page_numbers: tuple[int, ...]
    content_type: str = "application/pdf"

    @property
    def page_count(self) -> int:
        return len(self.page_numbers)

    @property
    def byte_size(self) -> int:
        return len(self.data)
