"""Chrome DevTools Protocol (CDP) client."""

import asyncio
import base64
import json
from typing import Any

import httpx
import websockets
from websockets import ClientConnection

from src.utils.logging import get_logger

logger = get_logger(__name__)


class CDPError(Exception):
    """CDP protocol error."""

    pass


class NavigationError(CDPError):
    """The browser reported an error text for a Page.navigate command."""


class CDPClient:
    """
    Client for Chrome DevTools Protocol communication.

    Without a ``target_id`` the client talks to the browser endpoint
    (contexts, targets); with one it attaches to that page target.
    """

    def __init__(self, devtools_port: int, target_id: str | None = None) -> None:
        self.devtools_port = devtools_port
        self.target_id = target_id
        self._ws: ClientConnection | None = None
        self._message_id = 0
        self._pending_responses: dict[int, asyncio.Future[Any]] = {}
        self._receive_task: asyncio.Task[None] | None = None

    @property
    def base_url(self) -> str:
        """Base URL for DevTools HTTP endpoints."""
        return f"http://localhost:{self.devtools_port}"

    async def _discover_ws_url(self, client: httpx.AsyncClient) -> str | None:
        if self.target_id is None:
            response = await client.get(f"{self.base_url}/json/version")
            if response.status_code == 200:
                ws_url: str | None = response.json().get("webSocketDebuggerUrl")
                return ws_url
            return None

        response = await client.get(f"{self.base_url}/json/list")
        if response.status_code == 200:
            for target in response.json():
                if target.get("id") == self.target_id:
                    url: str | None = target.get("webSocketDebuggerUrl")
                    return url
        return None

    async def connect(self, timeout: float = 10.0) -> None:
        """
        Connect to the browser or page DevTools endpoint.

        Args:
            timeout: Connection timeout in seconds
        """
        ws_url = None

        async with httpx.AsyncClient() as client:
            for _attempt in range(max(1, int(timeout))):
                try:
                    ws_url = await self._discover_ws_url(client)
                    if ws_url:
                        break
                    logger.debug("DevTools reachable but target not ready, waiting...")
                except httpx.ConnectError:
                    pass
                await asyncio.sleep(1)
            else:
                raise CDPError(f"Failed to connect to DevTools after {timeout}s")

        logger.debug("Connecting to DevTools WebSocket", target_id=self.target_id)

        self._ws = await websockets.connect(ws_url, max_size=100 * 1024 * 1024)
        self._receive_task = asyncio.create_task(self._receive_messages())

        logger.info("CDP connected", port=self.devtools_port, target_id=self.target_id)

    async def disconnect(self) -> None:
        """Disconnect from Chrome DevTools."""
        if self._receive_task:
            self._receive_task.cancel()
            try:
                await self._receive_task
            except asyncio.CancelledError:
                pass
            self._receive_task = None

        if self._ws:
            await self._ws.close()
            self._ws = None

        for future in self._pending_responses.values():
            if not future.done():
                future.set_exception(CDPError("Disconnected"))
        self._pending_responses.clear()

        logger.debug("CDP disconnected", target_id=self.target_id)

    def _resolve_reply(self, reply: dict[str, Any]) -> None:
        future = self._pending_responses.pop(reply["id"], None)
        if future is None or future.done():
            return
        if "error" in reply:
            future.set_exception(CDPError(reply["error"].get("message", "Unknown error")))
        else:
            future.set_result(reply.get("result", {}))

    async def _receive_messages(self) -> None:
        """Resolve pending commands from replies; events are only traced."""
        if not self._ws:
            return

        try:
            async for raw in self._ws:
                payload = json.loads(raw)
                if "id" in payload:
                    self._resolve_reply(payload)
                elif "method" in payload:
                    logger.debug("CDP event", method=payload["method"], target_id=self.target_id)
        except websockets.ConnectionClosed:
            logger.debug("DevTools socket closed", target_id=self.target_id)
        except Exception as e:
            logger.error("Error receiving CDP messages", error=str(e))

    async def send(
        self,
        method: str,
        params: dict[str, Any] | None = None,
        timeout: float = 30.0,
    ) -> Any:
        """
        Send a CDP command and wait for response.

        Args:
            method: CDP method name (e.g., "Page.navigate")
            params: Method parameters
            timeout: Seconds to wait for the response

        Returns:
            Command result
        """
        if not self._ws:
            raise CDPError("Not connected to DevTools")

        self._message_id += 1
        msg_id = self._message_id

        message = {
            "id": msg_id,
            "method": method,
            "params": params or {},
        }

        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._pending_responses[msg_id] = future

        await self._ws.send(json.dumps(message))
        logger.debug("CDP command sent", method=method, id=msg_id)

        try:
            return await asyncio.wait_for(future, timeout=timeout)
        except TimeoutError as e:
            self._pending_responses.pop(msg_id, None)
            raise CDPError(f"Timeout waiting for response to {method}") from e

    async def navigate(self, url: str) -> dict[str, Any]:
        """
        Navigate to a URL.

        Raises:
            NavigationError: If the browser reports a navigation error
        """
        logger.info("Navigating to URL", url=url)
        result: dict[str, Any] = await self.send("Page.navigate", {"url": url})
        if result.get("errorText"):
            raise NavigationError(f"Navigation failed: {result['errorText']}")
        return result

    async def wait_for_load(self, timeout: float = 30.0) -> None:
        """
        Wait for page to finish loading.

        Args:
            timeout: Maximum wait time in seconds
        """
        await self.send("Page.enable")

        loop = asyncio.get_running_loop()
        start_time = loop.time()

        while True:
            if loop.time() - start_time > timeout:
                raise CDPError("Timeout waiting for page load")

            try:
                state = await self.evaluate("document.readyState")
                if state == "complete":
                    break
            except CDPError:
                pass

            await asyncio.sleep(0.5)

        logger.debug("Page loaded")

    async def evaluate(self, expression: str, timeout: float = 30.0) -> Any:
        """
        Evaluate a JavaScript expression and return its JSON value.

        Raises:
            CDPError: If the expression throws
        """
        result = await self.send(
            "Runtime.evaluate",
            {"expression": expression, "returnByValue": True, "awaitPromise": True},
            timeout=timeout,
        )
        if "exceptionDetails" in result:
            details = result["exceptionDetails"]
            text = details.get("exception", {}).get("description") or details.get("text")
            raise CDPError(f"Script error: {text}")
        return result.get("result", {}).get("value")

    async def screenshot(self, format: str = "png", quality: int = 80) -> bytes:
        """
        Take a screenshot of the current viewport.

        Args:
            format: Image format ("png" or "jpeg")
            quality: JPEG quality (0-100)

        Returns:
            Screenshot as bytes
        """
        params: dict[str, Any] = {"format": format, "captureBeyondViewport": False}
        if format == "jpeg":
            params["quality"] = quality

        result = await self.send("Page.captureScreenshot", params)
        data = result.get("data", "")
        return base64.b64decode(data)

    async def add_init_script(self, source: str) -> None:
        """Run ``source`` in every new document before page scripts."""
        await self.send("Page.addScriptToEvaluateOnNewDocument", {"source": source})

    async def set_user_agent(self, user_agent: str, accept_language: str = "en-US,en") -> None:
        await self.send(
            "Emulation.setUserAgentOverride",
            {"userAgent": user_agent, "acceptLanguage": accept_language},
        )

    async def set_viewport(self, width: int, height: int) -> None:
        await self.send(
            "Emulation.setDeviceMetricsOverride",
            {"width": width, "height": height, "deviceScaleFactor": 1, "mobile": False},
        )

    async def insert_text(self, text: str) -> None:
        """Type text into the focused element."""
        await self.send("Input.insertText", {"text": text})

    async def click_at(self, x: float, y: float) -> None:
        """Dispatch a left mouse click at viewport coordinates."""
        for event_type in ("mousePressed", "mouseReleased"):
            await self.send(
                "Input.dispatchMouseEvent",
                {"type": event_type, "x": x, "y": y, "button": "left", "clickCount": 1},
            )

    async def create_browser_context(self) -> str:
        """Create an isolated browser context and return its id."""
        result = await self.send("Target.createBrowserContext", {"disposeOnDetach": True})
        context_id: str = result.get("browserContextId", "")
        logger.debug("Created browser context", context_id=context_id)
        return context_id

    async def dispose_browser_context(self, context_id: str) -> None:
        await self.send("Target.disposeBrowserContext", {"browserContextId": context_id})
        logger.debug("Disposed browser context", context_id=context_id)

    async def create_target(self, url: str = "about:blank", context_id: str | None = None) -> str:
        """
        Create a new browser target (tab).

        Args:
            url: Initial URL for the new tab
            context_id: Browser context to open the tab in

        Returns:
            Target ID
        """
        params: dict[str, Any] = {"url": url}
        if context_id:
            params["browserContextId"] = context_id
        result = await self.send("Target.createTarget", params)
        target_id: str = result.get("targetId", "")
        logger.debug("Created new target", target_id=target_id)
        return target_id

    async def close_target(self, target_id: str) -> None:
        await self.send("Target.closeTarget", {"targetId": target_id})
        logger.debug("Closed target", target_id=target_id)
