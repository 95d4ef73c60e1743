"""
OTP purposes and the document fields each one owns.

Signup verification and password reset keep separate code hashes, expiries
and attempt counters on the user document. OtpPurpose maps a purpose to
its field names so the engine handles both with one code path.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class OtpPurpose(str, Enum):
    SIGNUP = "signup"
    RESET = "reset"

    @property
    def hash_field(self) -> str:
        return f"{self.value}_code_hash"

    @property
    def expires_field(self) -> str:
        return f"{self.value}_code_expires_at"

    @property
    def attempts_field(self) -> str:
        return f"{self.value}_attempts"

    @property
    def revoked_field(self) -> str:
        return f"{self.value}_code_revoked_reason"

    def cleared_fields(self, reason: Optional[CodeRevokedReason] = None) -> dict:
        """Field values that drop this purpose's code and remember *reason*."""
        return {
            self.hash_field: None,
            self.expires_field: None,
            self.attempts_field: 0,
            self.revoked_field: reason.value if reason else None,
        }


class CodeRevokedReason(str, Enum):
    """Why a verification call destroyed the active code."""

    EXPIRED = "expired"
    TOO_MANY_ATTEMPTS = "too_many_attempts"
