"""Authentication gate state machine."""

import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from src.auth.otp import OneTimeCodeSource, poll_one_time_code
from src.browser.backend import Element, RenderingBackend, Signature
from src.browser.probe import CapabilityProbe, Detector, ProbeMatch, find_first
from src.config import settings
from src.errors import (
    AuthTimeoutError,
    AutomationBlockedError,
    CaptureError,
    ConsentBlockedError,
    CredentialMismatchError,
    DocumentUnavailableError,
    UnsupportedGateError,
)
from src.utils.cancellation import CancellationToken
from src.utils.logging import get_logger

logger = get_logger(__name__)


class AuthState(str, Enum):
    NO_GATE = "no_gate"
    EMAIL_GATE_VISIBLE = "email_gate_visible"
    EMAIL_SUBMITTED = "email_submitted"
    OTP_GATE_VISIBLE = "otp_gate_visible"
    OTP_SUBMITTED = "otp_submitted"
    CONSENT_VISIBLE = "consent_visible"
    CLEARED = "cleared"


EMAIL_SIGNATURES = (
    Signature('input[name="link_auth_form[email]"]'),
    Signature("input#link_auth_form_email"),
    Signature("input.js-auth-form_email-field"),
    Signature("input.js-viewer-email_input"),
    Signature('input[type="email"]', within="form.js-email-sniffing-auth-form"),
    Signature('input[type="email"]', within="form"),
    Signature('input[autocomplete="email"]', within="form"),
)

OTP_SIGNATURES = (
    Signature('input[autocomplete="one-time-code"]'),
    Signature('input[name*="otp"]'),
    Signature('input[name*="code"]'),
    Signature('input[inputmode="numeric"][maxlength="6"]'),
    Signature('input[type="text"][maxlength="6"]'),
    Signature('input[type="text"][maxlength="4"]'),
)

AFFIRMATIVE = ("accept", "agree", "continue", "i understand", "allow")

CONSENT_SIGNATURES = (
    Signature("button", text=AFFIRMATIVE, within='[role="dialog"]'),
    Signature("button", text=AFFIRMATIVE, within=".modal"),
    Signature("button", text=AFFIRMATIVE, within='[class*="consent"]'),
    Signature("button", text=AFFIRMATIVE, within='[class*="terms"]'),
    Signature('[role="button"]', text=AFFIRMATIVE, within='[role="dialog"]'),
    Signature('input[type="submit"]', text=AFFIRMATIVE, within="form"),
    Signature("button", text=AFFIRMATIVE, within="form"),
)

SUBMIT_SIGNATURES = (
    Signature('button[type="submit"]'),
    Signature('input[type="submit"]'),
    Signature("button", text=("continue", "submit", "verify")),
    Signature("button.dig-Button--primary"),
)

READY_SIGNATURES = (
    Signature(".viewer"),
    Signature(".document-viewer"),
    Signature('[data-testid="viewer"]'),
    Signature(".slides-container"),
    Signature("#viewer"),
    Signature(".preso-view"),
)

ACCESS_DENIED_SIGNATURES = (
    Signature(
        '.js-auth-form_error, .auth-form-error, .error-message, .flash-error, [role="alert"]',
        text=("access", "not authorized", "not allowed", "denied", "invalid", "incorrect"),
    ),
)

BLOCKED_SIGNATURES = (
    Signature('iframe[src*="captcha"]'),
    Signature(".g-recaptcha, .h-captcha, #challenge-form, #cf-challenge-running"),
    Signature(
        "h1, h2, h3, p",
        text=("unusual traffic", "verify you are human", "are you a robot", "automated requests"),
    ),
)

EXPIRED_SIGNATURES = (
    Signature(
        "h1, h2, h3, p, .error-page, .error-message",
        text=(
            "link has expired",
            "no longer available",
            "no longer active",
            "has been disabled",
            "has been removed",
            "document not found",
            "page not found",
        ),
    ),
)

GATE_PROBE: CapabilityProbe[AuthState] = CapabilityProbe(
    [
        Detector("email", AuthState.EMAIL_GATE_VISIBLE, EMAIL_SIGNATURES),
        Detector("otp", AuthState.OTP_GATE_VISIBLE, OTP_SIGNATURES),
        Detector("consent", AuthState.CONSENT_VISIBLE, CONSENT_SIGNATURES),
    ]
)

TERMINAL_PROBE: CapabilityProbe[type[CaptureError]] = CapabilityProbe(
    [
        Detector("expired", DocumentUnavailableError, EXPIRED_SIGNATURES),
        Detector("blocked", AutomationBlockedError, BLOCKED_SIGNATURES, require_visible=False),
    ]
)


@dataclass(frozen=True)
class GateConfig:
    """Timing and identity used while clearing gates."""

    viewer_email: str
    deadline_seconds: float = 120.0
    settle_seconds: float = 3.0
    ready_timeout_seconds: float = 30.0
    otp_timeout_seconds: float = 60.0
    otp_poll_interval_seconds: float = 2.0
    poll_interval_seconds: float = 0.5
    max_consent_attempts: int = 2

    @classmethod
    def from_settings(cls) -> "GateConfig":
        return cls(
            viewer_email=settings.viewer_email,
            deadline_seconds=settings.auth_deadline_seconds,
            settle_seconds=settings.gate_settle_seconds,
            ready_timeout_seconds=settings.viewer_ready_timeout_seconds,
            otp_timeout_seconds=settings.otp_timeout_seconds,
            otp_poll_interval_seconds=settings.otp_poll_interval_seconds,
        )


class GateResolver:
    """
    Drives a live viewer through its authentication gates.

    The current state is recomputed from the page on every iteration. Gates
    are handled highest priority first (email, one-time code, consent);
    anything else still showing is picked up on the next probe.
    """

    def __init__(
        self,
        backend: RenderingBackend,
        code_source: OneTimeCodeSource,
        config: GateConfig | None = None,
        cancellation: CancellationToken | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.backend = backend
        self.code_source = code_source
        self.config = config or GateConfig.from_settings()
        self.cancellation = cancellation or CancellationToken()
        self._clock = clock
        self.state = AuthState.NO_GATE
        self.history: list[AuthState] = [AuthState.NO_GATE]
        self._deadline = 0.0

    def _set_state(self, state: AuthState) -> None:
        if state != self.state:
            logger.info("Gate state changed", previous=self.state.value, state=state.value)
        self.state = state
        self.history.append(state)

    def _remaining(self) -> float:
        return self._deadline - self._clock()

    def _checkpoint(self) -> None:
        self.cancellation.raise_if_cancelled()
        if self._remaining() <= 0:
            raise AuthTimeoutError(
                f"Gates not cleared within {self.config.deadline_seconds:.0f}s "
                f"(last state: {self.state.value})"
            )

    async def _settle(self) -> None:
        await self.cancellation.pause(max(0.0, min(self.config.settle_seconds, self._remaining())))

    async def clear_gates(self) -> AuthState:
        """
        Clear every gate in front of the viewer.

        Returns:
            AuthState.CLEARED once viewer content is ready

        Raises:
            CaptureError: One of the gate failure kinds, or JobCancelledError
        """
        self._deadline = self._clock() + self.config.deadline_seconds
        consent_attempts = 0
        idle_since: float | None = None

        while True:
            self._checkpoint()

            if self.state in (AuthState.EMAIL_SUBMITTED, AuthState.OTP_SUBMITTED):
                denied = await find_first(self.backend, ACCESS_DENIED_SIGNATURES)
                if denied is not None:
                    raise CredentialMismatchError(f"Viewer rejected access: {denied.text}")

            match = await GATE_PROBE.probe(self.backend)
            if match is None:
                if await find_first(self.backend, READY_SIGNATURES) is not None:
                    self._set_state(AuthState.CLEARED)
                    return self.state

                now = self._clock()
                if idle_since is None:
                    idle_since = now
                elif now - idle_since >= self.config.ready_timeout_seconds:
                    await self._raise_terminal()
                await self.cancellation.pause(
                    max(0.0, min(self.config.poll_interval_seconds, self._remaining()))
                )
                continue

            idle_since = None
            if match.outcome is AuthState.EMAIL_GATE_VISIBLE:
                await self._handle_email(match)
            elif match.outcome is AuthState.OTP_GATE_VISIBLE:
                await self._handle_otp(match)
            else:
                consent_attempts += 1
                if consent_attempts > self.config.max_consent_attempts:
                    raise ConsentBlockedError(
                        f"Consent prompt persisted after {self.config.max_consent_attempts} attempts"
                    )
                self._set_state(AuthState.CONSENT_VISIBLE)
                await self.backend.click(match.element)

            await self._settle()

    async def _handle_email(self, match: ProbeMatch[AuthState]) -> None:
        if self.state == AuthState.EMAIL_SUBMITTED:
            raise CredentialMismatchError("Viewer e-mail was not accepted")
        if not self.config.viewer_email:
            raise CredentialMismatchError("No viewer e-mail configured")

        self._set_state(AuthState.EMAIL_GATE_VISIBLE)
        await self._submit_value(match.element, self.config.viewer_email)
        self._set_state(AuthState.EMAIL_SUBMITTED)

    async def _handle_otp(self, match: ProbeMatch[AuthState]) -> None:
        if self.state == AuthState.OTP_SUBMITTED:
            raise CredentialMismatchError("One-time code was not accepted")

        self._set_state(AuthState.OTP_GATE_VISIBLE)
        code = await poll_one_time_code(
            self.code_source,
            timeout=max(0.0, min(self.config.otp_timeout_seconds, self._remaining())),
            interval=self.config.otp_poll_interval_seconds,
            cancellation=self.cancellation,
        )
        # The code form may have re-rendered while we waited for the mailbox
        element = await find_first(self.backend, OTP_SIGNATURES) or match.element
        await self._submit_value(element, code)
        self._set_state(AuthState.OTP_SUBMITTED)

    async def _submit_value(self, element: Element, value: str) -> None:
        """Fill ``element`` and submit it, natively when it sits in a form."""
        await self.backend.fill(element, value)
        if element.in_form and await self.backend.submit_form(element):
            return

        button = await find_first(self.backend, SUBMIT_SIGNATURES)
        if button is None or not button.enabled:
            raise UnsupportedGateError(f"No submit control for {element.signature.describe()}")
        await self.backend.click(button)

    async def _raise_terminal(self) -> None:
        match = await TERMINAL_PROBE.probe(self.backend)
        if match is not None:
            raise match.outcome(f"Viewer shows {match.detector.name} page: {match.element.text}")
        raise UnsupportedGateError(
            f"Viewer content not ready after {self.config.ready_timeout_seconds:.0f}s "
            "and no known gate found"
        )


async def clear_gates(
    backend: RenderingBackend,
    code_source: OneTimeCodeSource,
    config: GateConfig | None = None,
    cancellation: CancellationToken | None = None,
) -> AuthState:
    """Clear all gates on ``backend``; see GateResolver.clear_gates."""
    resolver = GateResolver(backend, code_source, config=config, cancellation=cancellation)
    return await resolver.clear_gates()
