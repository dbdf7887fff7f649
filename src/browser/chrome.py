"""Chrome process management."""

import asyncio
import os
import shutil
import tempfile
from dataclasses import dataclass

import httpx

from src.config import settings
from src.utils.logging import get_logger

logger = get_logger(__name__)

# Flags that keep a fresh profile quiet and predictable for page capture
BASE_FLAGS = (
    "--no-first-run",
    "--no-default-browser-check",
    "--disable-background-networking",
    "--disable-client-side-phishing-detection",
    "--disable-default-apps",
    "--disable-extensions",
    "--disable-hang-monitor",
    "--disable-popup-blocking",
    "--disable-prompt-on-repost",
    "--disable-sync",
    "--disable-translate",
    "--metrics-recording-only",
    "--mute-audio",
    "--hide-scrollbars",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--disable-background-timer-throttling",
    "--disable-renderer-backgrounding",
    "--disable-backgrounding-occluded-windows",
)

# Best-effort stealth defaults; nothing here defeats dedicated bot detection
STEALTH_FLAGS = (
    "--disable-blink-features=AutomationControlled",
    "--disable-infobars",
    "--lang=en-US",
)


@dataclass
class ChromeProcess:
    """A running browser engine owned by one capture session."""

    process: asyncio.subprocess.Process
    devtools_port: int
    user_data_dir: str
    display: str | None = None

    @property
    def pid(self) -> int:
        return self.process.pid


def build_chrome_args(
    devtools_port: int,
    user_data_dir: str,
    proxy_server: str | None = None,
) -> list[str]:
    """Command line for one capture engine."""
    args = [
        settings.chrome_binary,
        f"--remote-debugging-port={devtools_port}",
        f"--user-data-dir={user_data_dir}",
        f"--window-size={settings.display_width},{settings.display_height}",
        "--window-position=0,0",
        f"--user-agent={settings.user_agent}",
        *BASE_FLAGS,
        *STEALTH_FLAGS,
    ]
    if settings.chrome_headless:
        args.append("--headless=new")
    if proxy_server:
        args.append(f"--proxy-server={proxy_server}")
    return args


class ChromeLauncher:
    """Starts and stops capture engines, one isolated profile each."""

    def __init__(self) -> None:
        self._processes: dict[str, ChromeProcess] = {}

    async def _wait_for_devtools(
        self,
        process: asyncio.subprocess.Process,
        devtools_port: int,
    ) -> None:
        """Poll the DevTools endpoint until it answers or the startup timeout passes."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + settings.chrome_startup_timeout_seconds
        url = f"http://localhost:{devtools_port}/json/version"

        async with httpx.AsyncClient(timeout=2.0) as client:
            while True:
                if process.returncode is not None:
                    stderr = await process.stderr.read() if process.stderr else b""
                    raise RuntimeError(
                        f"Chrome exited with code {process.returncode}: "
                        f"{stderr.decode(errors='replace')[-500:]}"
                    )
                try:
                    response = await client.get(url)
                    if response.status_code == 200:
                        return
                except httpx.TransportError:
                    pass

                if loop.time() >= deadline:
                    raise RuntimeError(
                        f"DevTools not reachable on port {devtools_port} after "
                        f"{settings.chrome_startup_timeout_seconds:.0f}s"
                    )
                await asyncio.sleep(0.25)

    async def launch(
        self,
        session_id: str,
        devtools_port: int,
        proxy_server: str | None = None,
    ) -> ChromeProcess:
        """
        Launch a capture engine and wait until DevTools is reachable.

        Raises:
            RuntimeError: If Chrome exits early or DevTools never answers
        """
        os.makedirs(settings.chrome_user_data_base, exist_ok=True)
        user_data_dir = tempfile.mkdtemp(
            prefix=f"capture_{session_id[:8]}_",
            dir=settings.chrome_user_data_base,
        )
        args = build_chrome_args(devtools_port, user_data_dir, proxy_server)

        # Headful engines render on the Xvfb display set by the entrypoint
        env = os.environ.copy()
        display = None if settings.chrome_headless else env.setdefault("DISPLAY", ":99")

        logger.info(
            "Launching Chrome",
            session_id=session_id,
            display=display,
            devtools_port=devtools_port,
            headless=settings.chrome_headless,
            proxy=bool(proxy_server),
        )

        process: asyncio.subprocess.Process | None = None
        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                env=env,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
            await self._wait_for_devtools(process, devtools_port)
        except Exception as e:
            if process is not None and process.returncode is None:
                process.kill()
                await process.wait()
            shutil.rmtree(user_data_dir, ignore_errors=True)
            raise RuntimeError(f"Failed to launch Chrome: {e}") from e

        chrome_process = ChromeProcess(
            process=process,
            devtools_port=devtools_port,
            user_data_dir=user_data_dir,
            display=display,
        )
        self._processes[session_id] = chrome_process
        logger.info("Chrome launched", session_id=session_id, pid=process.pid)
        return chrome_process

    async def terminate(self, session_id: str) -> None:
        """Stop the engine of ``session_id`` and delete its profile."""
        chrome_process = self._processes.pop(session_id, None)
        if chrome_process is None:
            logger.debug("No Chrome process found for session", session_id=session_id)
            return

        process = chrome_process.process
        logger.info("Terminating Chrome", session_id=session_id, pid=process.pid)

        try:
            if process.returncode is None:
                process.terminate()
                try:
                    await asyncio.wait_for(
                        process.wait(), timeout=settings.chrome_shutdown_timeout_seconds
                    )
                except TimeoutError:
                    logger.warning("Chrome required force kill", pid=process.pid)
                    process.kill()
                    await process.wait()
        except ProcessLookupError:
            logger.debug("Chrome process already terminated", pid=process.pid)
        finally:
            shutil.rmtree(chrome_process.user_data_dir, ignore_errors=True)
            logger.debug("Removed profile directory", path=chrome_process.user_data_dir)

    async def terminate_all(self) -> None:
        """Terminate all running Chrome processes."""
        for session_id in list(self._processes.keys()):
            await self.terminate(session_id)

    @property
    def running_count(self) -> int:
        return len(self._processes)


# Global Chrome launcher instance
chrome_launcher = ChromeLauncher()
