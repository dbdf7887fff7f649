"""Browser management module."""

from src.browser.backend import CDPBackend, Element, RenderingBackend, Signature
from src.browser.cdp import CDPClient, CDPError, NavigationError
from src.browser.chrome import ChromeLauncher, ChromeProcess, chrome_launcher
from src.browser.manager import BrowserManager, CaptureSession, browser_manager
from src.browser.probe import CapabilityProbe, Detector, ProbeMatch, find_first
from src.browser.resource_pool import PortPool, port_pool

__all__ = [
    "CDPBackend",
    "Element",
    "RenderingBackend",
    "Signature",
    "CDPClient",
    "CDPError",
    "NavigationError",
    "ChromeLauncher",
    "ChromeProcess",
    "chrome_launcher",
    "BrowserManager",
    "CaptureSession",
    "browser_manager",
    "CapabilityProbe",
    "Detector",
    "ProbeMatch",
    "find_first",
    "PortPool",
    "port_pool",
]
