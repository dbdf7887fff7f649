"""Browser session manager."""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from src.browser.backend import STEALTH_SCRIPT, CDPBackend
from src.browser.cdp import CDPClient
from src.browser.chrome import ChromeProcess, chrome_launcher
from src.browser.resource_pool import port_pool
from src.config import settings
from src.errors import ResourceInitError
from src.utils.logging import get_logger
from src.utils.retry import with_retry

logger = get_logger(__name__)


class CaptureSession:
    """
    One browser engine, one browser context and one page, owned by a single job.

    Resources are released top-down: page, then context, then engine.
    """

    def __init__(self, session_id: str, proxy_server: str | None = None) -> None:
        self.session_id = session_id
        self.proxy_server = proxy_server
        self.chrome_process: ChromeProcess | None = None
        self.browser_client: CDPClient | None = None
        self.page_client: CDPClient | None = None
        self.backend: CDPBackend | None = None
        self._context_id: str | None = None
        self._target_id: str | None = None
        self._devtools_port: int | None = None

    async def start(self) -> None:
        """Start the engine, open an isolated context and a stealth-configured page."""
        self._devtools_port = await port_pool.acquire()

        try:
            self.chrome_process = await chrome_launcher.launch(
                session_id=self.session_id,
                devtools_port=self._devtools_port,
                proxy_server=self.proxy_server,
            )

            self.browser_client = CDPClient(self._devtools_port)
            await self.browser_client.connect()

            self._context_id = await self.browser_client.create_browser_context()
            self._target_id = await self.browser_client.create_target(
                "about:blank", context_id=self._context_id
            )

            self.page_client = CDPClient(self._devtools_port, target_id=self._target_id)
            await self.page_client.connect()

            await self.page_client.send("Page.enable")
            await self.page_client.add_init_script(STEALTH_SCRIPT)
            await self.page_client.set_user_agent(settings.user_agent)
            await self.page_client.set_viewport(settings.display_width, settings.display_height)

            self.backend = CDPBackend(
                client=self.page_client,
                navigation_timeout=settings.navigation_timeout_seconds,
            )

            logger.info(
                "Capture session started",
                session_id=self.session_id,
                port=self._devtools_port,
            )

        except asyncio.CancelledError:
            await self.stop()
            raise
        except Exception as e:
            await self.stop()
            raise RuntimeError(f"Failed to start capture session: {e}") from e

    async def stop(self) -> None:
        """Close page, context and engine, then release the DevTools port."""
        logger.info("Stopping capture session", session_id=self.session_id)
        self.backend = None

        # Page
        if self.page_client:
            try:
                await self.page_client.disconnect()
            except Exception as e:
                logger.error("Error disconnecting page", error=str(e))
            self.page_client = None
        if self.browser_client and self._target_id:
            try:
                await self.browser_client.close_target(self._target_id)
            except Exception as e:
                logger.error("Error closing page target", error=str(e))
        self._target_id = None

        # Context
        if self.browser_client and self._context_id:
            try:
                await self.browser_client.dispose_browser_context(self._context_id)
            except Exception as e:
                logger.error("Error disposing browser context", error=str(e))
        self._context_id = None

        if self.browser_client:
            try:
                await self.browser_client.disconnect()
            except Exception as e:
                logger.error("Error disconnecting CDP", error=str(e))
            self.browser_client = None

        # Engine
        await chrome_launcher.terminate(self.session_id)
        self.chrome_process = None

        if self._devtools_port is not None:
            await port_pool.release(self._devtools_port)
            self._devtools_port = None

        logger.info("Capture session stopped", session_id=self.session_id)


class BrowserManager:
    """Tracks live capture sessions; a session id is never reused."""

    def __init__(self) -> None:
        self._sessions: dict[str, CaptureSession] = {}
        self._lock = asyncio.Lock()

    async def _start_session(self, session_id: str) -> CaptureSession:
        session = CaptureSession(session_id, proxy_server=settings.proxy_server)
        await session.start()
        return session

    @asynccontextmanager
    async def open_session(self, session_id: str) -> AsyncIterator[CDPBackend]:
        """
        Open a capture session for the duration of the ``async with`` block.

        Transient start failures are retried with backoff; exhausting the
        attempts raises ResourceInitError. The session is closed on every exit.
        """
        async with self._lock:
            if session_id in self._sessions:
                raise ValueError(f"Session already exists: {session_id}")

        try:
            session = await with_retry(
                lambda: self._start_session(session_id),
                max_attempts=settings.browser_launch_attempts,
                backoff_factor=settings.browser_launch_backoff,
                initial_delay=settings.browser_launch_initial_delay,
                retry_on=(RuntimeError, OSError),
                operation="browser_launch",
            )
        except (RuntimeError, OSError) as e:
            raise ResourceInitError(str(e)) from e

        # Registered without suspending so a cancelled task still closes it below
        self._sessions[session_id] = session
        try:
            if session.backend is None:
                raise ResourceInitError("Capture session has no page")
            yield session.backend
        finally:
            await self.close_session(session_id)

    async def close_session(self, session_id: str) -> None:
        """Close and remove a capture session."""
        async with self._lock:
            session = self._sessions.pop(session_id, None)
        if session:
            await session.stop()

    async def cleanup(self) -> None:
        """Cleanup all sessions."""
        logger.info("Cleaning up all capture sessions")
        for session_id in list(self._sessions.keys()):
            await self.close_session(session_id)

    @property
    def active_session_count(self) -> int:
        """Number of live capture sessions."""
        return len(self._sessions)


# Global browser manager instance
browser_manager = BrowserManager()
