"""Authentication gate handling."""

from src.auth.gates import AuthState, GateConfig, GateResolver, clear_gates
from src.auth.otp import (
    CodeSourceAuthError,
    OneTimeCodeSource,
    UnconfiguredCodeSource,
    extract_one_time_code,
    poll_one_time_code,
)

__all__ = [
    "AuthState",
    "GateConfig",
    "GateResolver",
    "clear_gates",
    "CodeSourceAuthError",
    "OneTimeCodeSource",
    "UnconfiguredCodeSource",
    "extract_one_time_code",
    "poll_one_time_code",
]
