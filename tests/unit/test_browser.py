"""Tests for the rendering backend layer."""

import pytest

from src.auth.gates import CONSENT_SIGNATURES, EMAIL_SIGNATURES, GATE_PROBE, AuthState
from src.browser import (
    CapabilityProbe,
    CDPBackend,
    Detector,
    Element,
    Signature,
    find_first,
)
from src.browser.chrome import build_chrome_args
from src.browser.resource_pool import PortPool
from src.config import settings
from src.errors import ResourceInitError
from tests.fakes import FakeViewer


class StubClient:
    """Records evaluated scripts and returns canned values."""

    def __init__(self, *values) -> None:
        self.values = list(values)
        self.expressions: list[str] = []
        self.inserted: list[str] = []
        self.clicked: list[tuple[float, float]] = []

    async def evaluate(self, expression: str, timeout: float = 30.0):
        self.expressions.append(expression)
        return self.values.pop(0) if self.values else None

    async def insert_text(self, text: str) -> None:
        self.inserted.append(text)

    async def click_at(self, x: float, y: float) -> None:
        self.clicked.append((x, y))


class BothGatesViewer(FakeViewer):
    """Shows the e-mail form and a consent dialog at once."""

    async def find(self, signature: Signature) -> Element | None:
        if signature in (EMAIL_SIGNATURES[0], CONSENT_SIGNATURES[0]):
            return Element(signature, 0, in_form=True)
        return None


def test_chrome_args(monkeypatch) -> None:
    monkeypatch.setattr(settings, "chrome_headless", True)

    args = build_chrome_args(9300, "/tmp/profile", proxy_server="http://proxy:3128")

    assert "--remote-debugging-port=9300" in args
    assert "--user-data-dir=/tmp/profile" in args
    assert "--headless=new" in args
    assert "--proxy-server=http://proxy:3128" in args
    assert "--disable-blink-features=AutomationControlled" in args


def test_chrome_args_headful_without_proxy(monkeypatch) -> None:
    monkeypatch.setattr(settings, "chrome_headless", False)

    args = build_chrome_args(9300, "/tmp/profile")

    assert "--headless=new" not in args
    assert not any(a.startswith("--proxy-server") for a in args)


@pytest.mark.asyncio
async def test_port_pool_leases_lowest_free_port() -> None:
    pool = PortPool(first_port=9222, size=2)

    assert await pool.acquire() == 9222
    assert await pool.acquire() == 9223
    with pytest.raises(ResourceInitError):
        await pool.acquire()

    await pool.release(9222)
    assert pool.free_count == 1
    assert await pool.acquire() == 9222
    assert pool.leased_count == 2


@pytest.mark.asyncio
async def test_port_pool_ignores_unleased_release() -> None:
    pool = PortPool(first_port=9222, size=1)

    await pool.release(9222)

    assert pool.free_count == 1


@pytest.mark.asyncio
async def test_probe_prefers_highest_priority_detector() -> None:
    """With e-mail and consent both showing, the e-mail gate wins."""
    viewer = BothGatesViewer()

    match = await GATE_PROBE.probe(viewer)

    assert match is not None
    assert match.outcome == AuthState.EMAIL_GATE_VISIBLE
    assert match.element.signature == EMAIL_SIGNATURES[0]


@pytest.mark.asyncio
async def test_probe_without_match(viewer) -> None:
    probe = CapabilityProbe([Detector("missing", "x", (Signature(".nothing"),))])

    assert await probe.probe(viewer) is None


@pytest.mark.asyncio
async def test_find_first_skips_invisible_elements() -> None:
    class HiddenViewer(FakeViewer):
        async def find(self, signature):
            element = await super().find(signature)
            if element is not None:
                return type(element)(signature, element.index, visible=False)
            return None

    viewer = HiddenViewer()

    assert await find_first(viewer, (Signature(".viewer"),)) is None
    assert await find_first(viewer, (Signature(".viewer"),), require_visible=False) is not None


@pytest.mark.asyncio
async def test_cdp_backend_find_maps_result() -> None:
    client = StubClient(
        {"index": 2, "visible": True, "enabled": False, "text": "Next", "in_form": False}
    )
    backend = CDPBackend(client=client)

    element = await backend.find(Signature("button", text=("Next",)))

    assert element is not None
    assert element.index == 2
    assert element.enabled is False
    assert element.usable is False
    assert '"next"' in client.expressions[0]


@pytest.mark.asyncio
async def test_cdp_backend_find_none() -> None:
    backend = CDPBackend(client=StubClient(None))

    assert await backend.find(Signature(".viewer")) is None


@pytest.mark.asyncio
async def test_cdp_backend_fill_types_text() -> None:
    client = StubClient(True, None)
    backend = CDPBackend(client=client)

    await backend.fill(Element(Signature("input#email"), 0), "viewer@example.com")

    assert client.inserted == ["viewer@example.com"]


@pytest.mark.asyncio
async def test_cdp_backend_click_uses_element_center() -> None:
    client = StubClient({"x": 50.0, "y": 20.0, "w": 100.0, "h": 40.0})
    backend = CDPBackend(client=client)

    await backend.click(Element(Signature("#nextPageIcon"), 0))

    assert client.clicked == [(50.0, 20.0)]


@pytest.mark.asyncio
async def test_cdp_backend_hide_and_unhide() -> None:
    client = StubClient(3, None)
    backend = CDPBackend(client=client)

    assert await backend.hide((".toolbar",)) == 3
    await backend.unhide()
    await backend.unhide()

    assert len(client.expressions) == 2
