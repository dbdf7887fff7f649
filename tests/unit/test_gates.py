"""Tests for the authentication gate state machine."""

import dataclasses
import itertools

import pytest

from src.auth import AuthState, GateResolver, clear_gates
from src.auth.otp import CodeSourceAuthError
from src.errors import (
    AuthTimeoutError,
    AutomationBlockedError,
    ConsentBlockedError,
    CredentialMismatchError,
    DocumentUnavailableError,
    JobCancelledError,
    OtpTimeoutError,
    UnsupportedGateError,
)
from src.utils.cancellation import CancellationToken
from tests.fakes import VIEWER_EMAIL, FakeViewer, StaticCodeSource


@pytest.mark.asyncio
async def test_ungated_viewer_clears_immediately(viewer, gate_config) -> None:
    """No gate and ready content exits NoGate -> Cleared."""
    resolver = GateResolver(viewer, StaticCodeSource(), config=gate_config)

    state = await resolver.clear_gates()

    assert state == AuthState.CLEARED
    assert resolver.history == [AuthState.NO_GATE, AuthState.CLEARED]
    assert viewer.filled == []


@pytest.mark.asyncio
async def test_email_gate_submits_viewer_email(gate_config) -> None:
    viewer = FakeViewer(gates=["email"])

    state = await clear_gates(viewer, StaticCodeSource(), config=gate_config)

    assert state == AuthState.CLEARED
    assert viewer.filled == [('input[name="link_auth_form[email]"]', VIEWER_EMAIL)]


@pytest.mark.asyncio
async def test_rejected_email_is_credential_mismatch(gate_config) -> None:
    """The e-mail form still showing after submit means the identity was refused."""
    viewer = FakeViewer(gates=["email"], accepted_emails=("owner@example.com",))

    with pytest.raises(CredentialMismatchError):
        await clear_gates(viewer, StaticCodeSource(), config=gate_config)

    assert viewer.screenshots == []


@pytest.mark.asyncio
async def test_access_denied_alert_is_credential_mismatch(gate_config) -> None:
    viewer = FakeViewer(gates=["email"], accepted_emails=(), deny_with_alert=True)

    with pytest.raises(CredentialMismatchError, match="Access denied"):
        await clear_gates(viewer, StaticCodeSource(), config=gate_config)


@pytest.mark.asyncio
async def test_missing_viewer_email_is_credential_mismatch(gate_config) -> None:
    viewer = FakeViewer(gates=["email"])
    config = dataclasses.replace(gate_config, viewer_email="")

    with pytest.raises(CredentialMismatchError):
        await clear_gates(viewer, StaticCodeSource(), config=config)


@pytest.mark.asyncio
async def test_email_then_code_then_consent(gate_config) -> None:
    """Gates appearing one after another are all cleared in order."""
    viewer = FakeViewer(gates=["email", "otp", "consent"])
    source = StaticCodeSource(None, "123456")
    resolver = GateResolver(viewer, source, config=gate_config)

    assert await resolver.clear_gates() == AuthState.CLEARED

    assert resolver.history == [
        AuthState.NO_GATE,
        AuthState.EMAIL_GATE_VISIBLE,
        AuthState.EMAIL_SUBMITTED,
        AuthState.OTP_GATE_VISIBLE,
        AuthState.OTP_SUBMITTED,
        AuthState.CONSENT_VISIBLE,
        AuthState.CLEARED,
    ]
    assert [value for _, value in viewer.filled] == [VIEWER_EMAIL, "123456"]
    assert source.calls == 2


@pytest.mark.asyncio
async def test_wrong_code_is_credential_mismatch(gate_config) -> None:
    viewer = FakeViewer(gates=["otp"])

    with pytest.raises(CredentialMismatchError):
        await clear_gates(viewer, StaticCodeSource("000000", "000000"), config=gate_config)


@pytest.mark.asyncio
async def test_code_never_arrives_is_otp_timeout(gate_config) -> None:
    viewer = FakeViewer(gates=["otp"])
    config = dataclasses.replace(gate_config, otp_timeout_seconds=0)

    with pytest.raises(OtpTimeoutError):
        await clear_gates(viewer, StaticCodeSource(), config=config)


@pytest.mark.asyncio
async def test_code_source_auth_failure_is_credential_mismatch(gate_config) -> None:
    viewer = FakeViewer(gates=["otp"])
    source = StaticCodeSource(error=CodeSourceAuthError("bad mailbox password"))

    with pytest.raises(CredentialMismatchError):
        await clear_gates(viewer, source, config=gate_config)


@pytest.mark.asyncio
async def test_persistent_consent_is_blocked_after_two_clicks(gate_config) -> None:
    viewer = FakeViewer(gates=["consent"], consent_clicks_needed=5)

    with pytest.raises(ConsentBlockedError):
        await clear_gates(viewer, StaticCodeSource(), config=gate_config)

    assert viewer.consent_clicks == 2


@pytest.mark.asyncio
async def test_consent_needing_two_clicks_clears(gate_config) -> None:
    viewer = FakeViewer(gates=["consent"], consent_clicks_needed=2)

    assert await clear_gates(viewer, StaticCodeSource(), config=gate_config) == AuthState.CLEARED


@pytest.mark.asyncio
async def test_expired_document(gate_config) -> None:
    viewer = FakeViewer(expired=True)

    with pytest.raises(DocumentUnavailableError):
        await clear_gates(viewer, StaticCodeSource(), config=gate_config)


@pytest.mark.asyncio
async def test_captcha_page_is_automation_blocked(gate_config) -> None:
    viewer = FakeViewer(blocked=True)

    with pytest.raises(AutomationBlockedError):
        await clear_gates(viewer, StaticCodeSource(), config=gate_config)


@pytest.mark.asyncio
async def test_unknown_page_is_unsupported_gate(gate_config) -> None:
    viewer = FakeViewer(never_ready=True)

    with pytest.raises(UnsupportedGateError):
        await clear_gates(viewer, StaticCodeSource(), config=gate_config)


@pytest.mark.asyncio
async def test_deadline_exceeded_is_auth_timeout(viewer, gate_config) -> None:
    ticks = itertools.count(step=10)
    resolver = GateResolver(
        viewer,
        StaticCodeSource(),
        config=gate_config,
        clock=lambda: float(next(ticks)),
    )

    with pytest.raises(AuthTimeoutError):
        await resolver.clear_gates()


@pytest.mark.asyncio
async def test_cancelled_before_probe(gate_config) -> None:
    viewer = FakeViewer(gates=["email"])
    token = CancellationToken()
    token.cancel()

    with pytest.raises(JobCancelledError):
        await clear_gates(viewer, StaticCodeSource(), config=gate_config, cancellation=token)

    assert viewer.filled == []


@pytest.mark.asyncio
async def test_failing_signature_lookup_is_not_fatal(gate_config) -> None:
    """A lookup that raises falls through to the next signature."""

    class FlakyViewer(FakeViewer):
        async def find(self, signature):
            if signature.selector == "input#link_auth_form_email":
                raise RuntimeError("detached node")
            return await super().find(signature)

    viewer = FlakyViewer(gates=["email"])

    assert await clear_gates(viewer, StaticCodeSource(), config=gate_config) == AuthState.CLEARED
