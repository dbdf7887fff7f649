"""One-time verification code retrieval contract."""

import asyncio
import re
from typing import Protocol

from src.errors import CredentialMismatchError, OtpTimeoutError
from src.utils.cancellation import CancellationToken
from src.utils.logging import get_logger

logger = get_logger(__name__)

_LABELLED_CODE = re.compile(r"\bcode\b\D{0,20}?(\d{4,6})\b", re.IGNORECASE)
_BARE_CODE = re.compile(r"\b(\d{4,6})\b")


class CodeSourceAuthError(Exception):
    """The code source rejected its own credentials."""


class OneTimeCodeSource(Protocol):
    """Mailbox-like collaborator that may hold a fresh verification code."""

    async def fetch_code(self) -> str | None: ...


class UnconfiguredCodeSource:
    """Code source used when no mailbox integration is configured."""

    async def fetch_code(self) -> str | None:
        raise CodeSourceAuthError("No verification code source is configured")


def extract_one_time_code(content: str) -> str | None:
    """Find a 4-6 digit verification code, preferring one labelled as a code."""
    if not content:
        return None
    match = _LABELLED_CODE.search(content) or _BARE_CODE.search(content)
    return match.group(1) if match else None


async def poll_one_time_code(
    source: OneTimeCodeSource,
    timeout: float,
    interval: float,
    cancellation: CancellationToken | None = None,
) -> str:
    """
    Poll ``source`` until it yields a code or ``timeout`` seconds elapse.

    Raises:
        OtpTimeoutError: No code arrived in time
        CredentialMismatchError: The source rejected its credentials
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    attempts = 0

    while True:
        attempts += 1
        try:
            code = await source.fetch_code()
        except CodeSourceAuthError as e:
            raise CredentialMismatchError(f"Code source authentication failed: {e}") from e
        except Exception as e:
            # Transient mailbox errors keep the poll going
            logger.warning("Code retrieval attempt failed", attempt=attempts, error=str(e))
            code = None

        if code:
            logger.info("One-time code retrieved", attempts=attempts, code_length=len(code))
            return code

        remaining = deadline - loop.time()
        if remaining <= 0:
            raise OtpTimeoutError(f"No verification code after {timeout:.0f}s")

        wait = min(interval, remaining)
        if cancellation is not None:
            await cancellation.pause(wait)
        else:
            await asyncio.sleep(wait)
