"""Cooperative cancellation for capture jobs."""

import asyncio

from src.errors import JobCancelledError


class CancellationToken:
    """
    Flag observed by a job at its suspension points.

    Setting it never interrupts an operation in progress; the next call to
    ``raise_if_cancelled`` or ``pause`` raises JobCancelledError.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise JobCancelledError("Cancelled by request")

    async def pause(self, seconds: float) -> None:
        """Sleep up to ``seconds``; wakes early and raises if cancelled."""
        self.raise_if_cancelled()
        if seconds > 0:
            try:
                await asyncio.wait_for(self._event.wait(), timeout=seconds)
            except TimeoutError:
                pass
        self.raise_if_cancelled()
