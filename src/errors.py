"""Failure taxonomy for capture jobs."""

from enum import Enum


class FailureKind(str, Enum):
    """Classified reasons a capture request can fail."""

    INVALID_LOCATOR = "invalid_locator"
    AUTH_TIMEOUT = "auth_timeout"
    CREDENTIAL_MISMATCH = "credential_mismatch"
    OTP_TIMEOUT = "otp_timeout"
    CONSENT_BLOCKED = "consent_blocked"
    AUTOMATION_BLOCKED = "automation_blocked"
    DOCUMENT_EXPIRED_OR_MISSING = "document_expired_or_missing"
    UNSUPPORTED_GATE = "unsupported_gate"
    PAGE_CAPTURE_FAILED = "page_capture_failed"
    ASSEMBLY_FAILED = "assembly_failed"
    DELIVERY_FAILED = "delivery_failed"
    RATE_LIMITED = "rate_limited"
    CANCELLED = "cancelled"
    RESOURCE_INIT_FAILED = "resource_init_failed"


FAILURE_EXPLANATIONS: dict[FailureKind, str] = {
    FailureKind.INVALID_LOCATOR: (
        "Please provide a valid document link, e.g. https://docsend.com/view/abc123."
    ),
    FailureKind.AUTH_TIMEOUT: (
        "The viewer did not finish its access checks in time. Please try again."
    ),
    FailureKind.CREDENTIAL_MISMATCH: (
        "This link is restricted to a different viewer. Ask the sender to grant "
        "access to the configured viewer e-mail."
    ),
    FailureKind.OTP_TIMEOUT: (
        "The verification code did not arrive in time. Re-run the request after "
        "the sender re-shares the link."
    ),
    FailureKind.CONSENT_BLOCKED: (
        "The viewer kept asking for consent after it was given. The document "
        "cannot be captured automatically."
    ),
    FailureKind.AUTOMATION_BLOCKED: (
        "The viewer blocked automated rendering. Try a different link or ask the "
        "owner to disable advanced link protection."
    ),
    FailureKind.DOCUMENT_EXPIRED_OR_MISSING: (
        "This link appears to be expired or invalid. Please check the link and "
        "try again."
    ),
    FailureKind.UNSUPPORTED_GATE: (
        "The viewer showed an access step that is not supported."
    ),
    FailureKind.PAGE_CAPTURE_FAILED: (
        "One of the pages could not be captured, so no document was produced."
    ),
    FailureKind.ASSEMBLY_FAILED: "The captured pages could not be combined into a PDF.",
    FailureKind.DELIVERY_FAILED: "The document was produced but could not be delivered.",
    FailureKind.RATE_LIMITED: "Too many requests. Please wait before trying again.",
    FailureKind.CANCELLED: "The request was cancelled.",
    FailureKind.RESOURCE_INIT_FAILED: (
        "The browser could not be started. Please try again later."
    ),
}


class CaptureError(Exception):
    """Base class for classified capture failures."""

    kind: FailureKind = FailureKind.UNSUPPORTED_GATE

    def __init__(self, message: str = "", kind: FailureKind | None = None) -> None:
        if kind is not None:
            self.kind = kind
        super().__init__(message or self.kind.value)

    @property
    def explanation(self) -> str:
        """Human-readable explanation for the requester."""
        return FAILURE_EXPLANATIONS[self.kind]


class InvalidLocatorError(CaptureError, ValueError):
    kind = FailureKind.INVALID_LOCATOR


class PageSelectionError(ValueError):
    """Raised for malformed explicit page selections."""


class AuthTimeoutError(CaptureError):
    kind = FailureKind.AUTH_TIMEOUT


class CredentialMismatchError(CaptureError):
    kind = FailureKind.CREDENTIAL_MISMATCH


class OtpTimeoutError(CaptureError):
    kind = FailureKind.OTP_TIMEOUT


class ConsentBlockedError(CaptureError):
    kind = FailureKind.CONSENT_BLOCKED


class AutomationBlockedError(CaptureError):
    kind = FailureKind.AUTOMATION_BLOCKED


class DocumentUnavailableError(CaptureError):
    kind = FailureKind.DOCUMENT_EXPIRED_OR_MISSING


class UnsupportedGateError(CaptureError):
    kind = FailureKind.UNSUPPORTED_GATE


class PageCaptureError(CaptureError):
    kind = FailureKind.PAGE_CAPTURE_FAILED


class AssemblyError(CaptureError):
    kind = FailureKind.ASSEMBLY_FAILED


class DeliveryError(CaptureError):
    kind = FailureKind.DELIVERY_FAILED


class JobCancelledError(CaptureError):
    kind = FailureKind.CANCELLED


class ResourceInitError(CaptureError):
    kind = FailureKind.RESOURCE_INIT_FAILED


class RateLimitedError(CaptureError):
    kind = FailureKind.RATE_LIMITED

    def __init__(self, message: str = "", retry_after: float | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after
