"""Admission control: global concurrency ceiling and per-requester cooldown."""

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from src.config import settings
from src.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class AdmissionDecision:
    admitted: bool
    reason: str | None = None
    retry_after: float | None = None


class AdmissionScheduler:
    """
    Admits capture requests while bounding concurrent jobs.

    A single lock guards the in-flight counter and the per-requester start
    times, so check-and-increment is atomic. A denied request records nothing.
    """

    def __init__(
        self,
        max_concurrent: int | None = None,
        cooldown_seconds: float | None = None,
        global_retry_after: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_concurrent = max_concurrent if max_concurrent is not None else settings.max_concurrent_jobs
        self.cooldown_seconds = (
            cooldown_seconds if cooldown_seconds is not None else settings.user_cooldown_seconds
        )
        self.global_retry_after = (
            global_retry_after
            if global_retry_after is not None
            else settings.global_retry_after_seconds
        )
        self._clock = clock
        self._lock = threading.Lock()
        self._in_flight = 0
        self._last_start: dict[str, float] = {}

    def try_admit(self, requester_id: str) -> AdmissionDecision:
        with self._lock:
            if self._in_flight >= self.max_concurrent:
                logger.warning(
                    "Global concurrent job limit reached",
                    requester_id=requester_id,
                    in_flight=self._in_flight,
                )
                return AdmissionDecision(
                    admitted=False,
                    reason="Too many concurrent jobs",
                    retry_after=float(self.global_retry_after),
                )

            now = self._clock()
            last = self._last_start.get(requester_id)
            if last is not None and now - last < self.cooldown_seconds:
                remaining = self.cooldown_seconds - (now - last)
                logger.warning(
                    "Requester cooldown active",
                    requester_id=requester_id,
                    retry_after=round(remaining, 1),
                )
                return AdmissionDecision(
                    admitted=False,
                    reason="Please wait before starting another job",
                    retry_after=remaining,
                )

            self._in_flight += 1
            self._last_start[requester_id] = now
            logger.info("Job admitted", requester_id=requester_id, in_flight=self._in_flight)
            return AdmissionDecision(admitted=True)

    def release(self, requester_id: str) -> None:
        with self._lock:
            if self._in_flight == 0:
                logger.warning("Release without matching admission", requester_id=requester_id)
                return
            self._in_flight -= 1
            logger.info("Job released", requester_id=requester_id, in_flight=self._in_flight)

    @property
    def in_flight(self) -> int:
        return self._in_flight

    def status(self) -> dict[str, Any]:
        with self._lock:
            return {
                "active_jobs": self._in_flight,
                "max_concurrent_jobs": self.max_concurrent,
                "user_cooldown_seconds": self.cooldown_seconds,
            }


# Global scheduler instance
scheduler = AdmissionScheduler()


def has_permission(requester_id: str, allowed: list[str] | None = None) -> bool:
    """Check the requester against the allow-list; an empty list allows everyone."""
    allowed = settings.allowed_requesters if allowed is None else allowed
    if allowed and requester_id not in allowed:
        logger.warning("Requester not in allow-list", requester_id=requester_id)
        return False
    return True
