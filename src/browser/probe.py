"""Prioritized capability probe over element signatures."""

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Generic, TypeVar

from src.browser.backend import Element, RenderingBackend, Signature
from src.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Detector(Generic[T]):
    """One independent detector: an outcome and the signatures that reveal it."""

    name: str
    outcome: T
    signatures: tuple[Signature, ...]
    require_visible: bool = True


@dataclass(frozen=True)
class ProbeMatch(Generic[T]):
    detector: Detector[T]
    element: Element

    @property
    def outcome(self) -> T:
        return self.detector.outcome


async def find_first(
    backend: RenderingBackend,
    signatures: Sequence[Signature],
    require_visible: bool = True,
) -> Element | None:
    """
    Return the first element matched by ``signatures``, tried in order.

    A signature whose lookup raises is skipped; lookups never fail the caller.
    """
    for signature in signatures:
        try:
            element = await backend.find(signature)
        except Exception as e:
            logger.debug("Signature lookup failed", signature=signature.describe(), error=str(e))
            continue

        if element is None:
            continue
        if require_visible and not element.visible:
            continue
        return element

    return None


class CapabilityProbe(Generic[T]):
    """Ordered list of detectors; the first one that matches wins."""

    def __init__(self, detectors: Sequence[Detector[T]]) -> None:
        self.detectors = list(detectors)

    async def probe(self, backend: RenderingBackend) -> ProbeMatch[T] | None:
        for detector in self.detectors:
            element = await find_first(backend, detector.signatures, detector.require_visible)
            if element is not None:
                logger.debug(
                    "Probe matched",
                    detector=detector.name,
                    signature=element.signature.describe(),
                )
                return ProbeMatch(detector=detector, element=element)
        return None
