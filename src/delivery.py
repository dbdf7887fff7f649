"""Progress notification and artifact delivery."""

import asyncio
from collections import OrderedDict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol

from src.config import settings
from src.errors import FAILURE_EXPLANATIONS, DeliveryError, FailureKind
from src.models import JobPhase
from src.utils.logging import get_logger

logger = get_logger(__name__)


class DeliveryChannel(Protocol):
    """Where progress, artifacts and failures of a job are reported."""

    async def notify(self, job_id: str, phase: JobPhase, details: dict[str, Any]) -> None: ...

    async def deliver_small(self, data: bytes, metadata: dict[str, Any]) -> None: ...

    async def deliver_large(self, data: bytes, metadata: dict[str, Any]) -> str: ...

    async def report_failure(
        self,
        job_id: str,
        kind: FailureKind,
        message: str,
        metadata: dict[str, Any],
    ) -> None: ...


class LocalDelivery:
    """
    Delivery channel served by this process.

    Small artifacts stay in memory until downloaded through the API, within a
    byte budget; the oldest are dropped first when it is exceeded. Large
    artifacts are written to the overflow directory and their path is the
    returned locator.
    """

    def __init__(
        self,
        overflow_dir: str | None = None,
        retention_bytes: int | None = None,
    ) -> None:
        self.overflow_dir = Path(overflow_dir or settings.overflow_dir)
        self.retention_bytes = (
            retention_bytes if retention_bytes is not None else settings.artifact_retention_bytes
        )
        self._artifacts: OrderedDict[str, bytes] = OrderedDict()
        self._retained = 0
        self.events: list[dict[str, Any]] = []

    async def notify(self, job_id: str, phase: JobPhase, details: dict[str, Any]) -> None:
        self.events.append({"job_id": job_id, "phase": phase.value, **details})
        logger.info("Job progress", job_id=job_id, phase=phase.value, **details)

    async def deliver_small(self, data: bytes, metadata: dict[str, Any]) -> None:
        job_id = metadata["job_id"]
        self.discard(job_id)
        self._artifacts[job_id] = data
        self._retained += len(data)
        logger.info("Artifact ready for download", job_id=job_id, byte_size=len(data))
        self._evict(keep=job_id)

    def _evict(self, keep: str) -> None:
        while self._retained > self.retention_bytes:
            oldest = next(iter(self._artifacts))
            if oldest == keep:
                break
            self.discard(oldest)
            logger.warning("Evicted undownloaded artifact", job_id=oldest)

    async def deliver_large(self, data: bytes, metadata: dict[str, Any]) -> str:
        job_id = metadata["job_id"]
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S")
        name = f"{metadata.get('document_id', 'document')}-{stamp}-{job_id[:8]}.pdf"
        path = self.overflow_dir / name

        def _write() -> None:
            self.overflow_dir.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)

        try:
            await asyncio.to_thread(_write)
        except OSError as e:
            raise DeliveryError(f"Could not store document in overflow storage: {e}") from e
        logger.info("Artifact written to overflow storage", job_id=job_id, path=str(path))
        return str(path)

    async def report_failure(
        self,
        job_id: str,
        kind: FailureKind,
        message: str,
        metadata: dict[str, Any],
    ) -> None:
        logger.error(
            "Job failed",
            job_id=job_id,
            kind=kind.value,
            error=message,
            explanation=FAILURE_EXPLANATIONS[kind],
        )

    def get_artifact(self, job_id: str) -> bytes | None:
        return self._artifacts.get(job_id)

    def discard(self, job_id: str) -> None:
        data = self._artifacts.pop(job_id, None)
        if data is not None:
            self._retained -= len(data)

    @property
    def retained_bytes(self) -> int:
        return self._retained

    @property
    def retained_count(self) -> int:
        return len(self._artifacts)


# Global delivery channel
local_delivery = LocalDelivery()
