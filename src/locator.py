"""Document locator and page selection parsing."""

import re
from collections.abc import Iterable
from urllib.parse import urlsplit

from src.config import settings
from src.errors import InvalidLocatorError, PageSelectionError
from src.models import DocumentLocator

_VIEW_PATH = re.compile(r"^/view/(?P<doc>[A-Za-z0-9]{3,})(?:/d/(?P<sub>[A-Za-z0-9]{3,}))?/?$")
_RANGE_TOKEN = re.compile(r"^(\d+)\s*-\s*(\d+)$")


def parse_document_locator(
    url: str | None,
    allowed_hosts: Iterable[str] | None = None,
) -> DocumentLocator:
    """
    Validate a document link and extract its identifiers.

    Args:
        url: Link as submitted by the requester
        allowed_hosts: Hostnames accepted as viewers (defaults to settings)

    Returns:
        Parsed DocumentLocator

    Raises:
        InvalidLocatorError: If the link does not match the accepted grammar
    """
    if not url or not isinstance(url, str) or not url.strip():
        raise InvalidLocatorError("Document link must be a non-empty string")

    raw = url.strip()
    parts = urlsplit(raw)

    if parts.scheme != "https":
        raise InvalidLocatorError("Document link must use HTTPS")

    hosts = {h.lower() for h in (allowed_hosts or settings.allowed_hosts)}
    if (parts.hostname or "").lower() not in hosts:
        raise InvalidLocatorError(f"Unsupported viewer host: {parts.hostname!r}")

    match = _VIEW_PATH.match(parts.path)
    if match is None:
        raise InvalidLocatorError("Expected a link of the form /view/<id>")

    return DocumentLocator(
        url=raw,
        clean_url=f"{parts.scheme}://{parts.netloc}{parts.path}",
        document_id=match.group("doc"),
        sub_document_id=match.group("sub"),
    )


def parse_page_selection(
    selection: str | Iterable[int] | None,
    max_page: int | None = None,
) -> tuple[int, ...] | None:
    """
    Normalize an explicit page selection.

    Accepts a string such as ``"1,3-5,7"`` or an iterable of page numbers.
    The result is ascending with duplicates collapsed; ``None`` or an empty
    selection means "all pages".

    Raises:
        PageSelectionError: On malformed tokens, non-positive numbers,
            reversed ranges or pages above ``max_page``
    """
    if selection is None:
        return None

    pages: set[int] = set()

    if isinstance(selection, str):
        for token in selection.split(","):
            token = token.strip()
            if not token:
                continue
            if token.isdigit():
                pages.add(int(token))
                continue
            match = _RANGE_TOKEN.match(token)
            if match is None:
                raise PageSelectionError(f"Invalid page token: {token!r}")
            start, end = int(match.group(1)), int(match.group(2))
            if start > end:
                raise PageSelectionError(f"Reversed page range: {token!r}")
            if max_page is not None and end > max_page:
                raise PageSelectionError(f"Page {end} exceeds the limit of {max_page}")
            pages.update(range(start, end + 1))
    else:
        for page in selection:
            if isinstance(page, bool) or not isinstance(page, int):
                raise PageSelectionError(f"Invalid page number: {page!r}")
            pages.add(page)

    if not pages:
        return None

    if min(pages) < 1:
        raise PageSelectionError("Page numbers start at 1")
    if max_page is not None and max(pages) > max_page:
        raise PageSelectionError(f"Page {max(pages)} exceeds the limit of {max_page}")

    return tuple(sorted(pages))


def redact_locator(url: str | None) -> str:
    """Shorten a document link for logging, keeping only an id prefix."""
    if not url:
        return "[NO_URL]"
    parts = urlsplit(url)
    match = _VIEW_PATH.match(parts.path)
    if not parts.scheme or not parts.netloc:
        return "[INVALID_URL]"
    if match is None:
        return f"{parts.scheme}://{parts.netloc}{parts.path}"
    doc_id = match.group("doc")
    return f"{parts.scheme}://{parts.netloc}/view/{doc_id[:4]}..."
