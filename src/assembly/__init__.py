"""Assembly of page captures into one document."""

from src.assembly.pdf import PAGE_FORMATS, DocumentAssembler, PageFormat

__all__ = ["PAGE_FORMATS", "DocumentAssembler", "PageFormat"]
