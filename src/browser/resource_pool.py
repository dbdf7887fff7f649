"""DevTools port allocation for capture engines."""

import asyncio

from src.config import settings
from src.errors import ResourceInitError
from src.utils.logging import get_logger

logger = get_logger(__name__)


class PortPool:
    """
    Fixed range of DevTools ports, one per live capture engine.

    The range is sized to the admission ceiling.
    """

    def __init__(self, first_port: int, size: int) -> None:
        self.ports = range(first_port, first_port + size)
        self._leased: set[int] = set()
        self._lock = asyncio.Lock()

    async def acquire(self) -> int:
        """Lease the lowest free port; raises ResourceInitError when none is left."""
        async with self._lock:
            for port in self.ports:
                if port not in self._leased:
                    self._leased.add(port)
                    logger.debug("Leased DevTools port", port=port)
                    return port

        logger.warning("DevTools ports exhausted", leased=sorted(self._leased))
        raise ResourceInitError("No DevTools port available")

    async def release(self, port: int) -> None:
        async with self._lock:
            if port not in self._leased:
                logger.warning("Released a port that was not leased", port=port)
                return
            self._leased.discard(port)
        logger.debug("Returned DevTools port", port=port)

    @property
    def free_count(self) -> int:
        return len(self.ports) - len(self._leased)

    @property
    def leased_count(self) -> int:
        return len(self._leased)


# Global port pool; one port per concurrently admitted job
port_pool = PortPool(
    first_port=settings.devtools_port_base,
    size=settings.max_concurrent_jobs,
)
