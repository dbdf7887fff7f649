"""Shared fixtures for unit tests."""

import pytest

from src.auth.gates import GateConfig
from src.capture.pagination import CaptureConfig
from tests.fakes import VIEWER_EMAIL, FakeViewer


@pytest.fixture
def viewer() -> FakeViewer:
    return FakeViewer()


@pytest.fixture
def gate_config() -> GateConfig:
    return GateConfig(
        viewer_email=VIEWER_EMAIL,
        deadline_seconds=5.0,
        settle_seconds=0,
        ready_timeout_seconds=0,
        otp_timeout_seconds=1.0,
        otp_poll_interval_seconds=0,
        poll_interval_seconds=0,
    )


@pytest.fixture
def capture_config() -> CaptureConfig:
    return CaptureConfig(page_ceiling=50, page_settle_seconds=0, capture_settle_seconds=0)
