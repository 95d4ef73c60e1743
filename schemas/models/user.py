"""
User document model.

Maps to the `users` MongoDB collection, keyed by lowercase email.

Only the account-security fields are modelled here: the OTP engine owns
them and nothing else writes them. Profile and role data live on the same
document but are carried through untouched (extra="allow").

Invariants kept by the engine:
- a code hash and its expiry are set or cleared together
- attempt counters go back to 0 whenever a code is issued or consumed
- the reset validated window is only ever set right after a reset code
  was verified
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import ConfigDict, Field, field_validator

from schemas.models.base import MongoBaseModel
from schemas.models.otp import CodeRevokedReason, OtpPurpose
from shared.datetime_utils import ensure_utc

RESET_FIELDS = (
    "reset_code_hash",
    "reset_code_expires_at",
    "reset_attempts",
    "reset_code_revoked_reason",
    "reset_validated_at",
    "reset_validated_expires_at",
)


class UserDoc(MongoBaseModel):
    """Document model for the `users` collection (account-security view)."""

    model_config = ConfigDict(
        populate_by_name=True,
        arbitrary_types_allowed=True,
        extra="allow",
    )

    email: str
    password_hash: Optional[str] = None
    is_verified: bool = False

    # Signup verification
    signup_code_hash: Optional[str] = None
    signup_code_expires_at: Optional[datetime] = None
    signup_attempts: int = Field(default=0, ge=0)
    signup_code_revoked_reason: Optional[CodeRevokedReason] = None

    # Password reset, phase one (code) and phase two (validated window)
    reset_code_hash: Optional[str] = None
    reset_code_expires_at: Optional[datetime] = None
    reset_attempts: int = Field(default=0, ge=0)
    reset_code_revoked_reason: Optional[CodeRevokedReason] = None
    reset_validated_at: Optional[datetime] = None
    reset_validated_expires_at: Optional[datetime] = None

    # Issuance throttle shared by both purposes
    otp_request_count: int = Field(default=0, ge=0)
    last_otp_request_at: Optional[datetime] = None

    @field_validator(
        "signup_code_expires_at",
        "reset_code_expires_at",
        "reset_validated_at",
        "reset_validated_expires_at",
        "last_otp_request_at",
    )
    @classmethod
    def _as_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)

    @field_validator("email")
    @classmethod
    def _lowercase_email(cls, v: str) -> str:
        return v.strip().lower()

    # ── per-purpose accessors ────────────────────────────────────────────────

    def code_hash(self, purpose: OtpPurpose) -> Optional[str]:
        return getattr(self, purpose.hash_field)

    def code_expires_at(self, purpose: OtpPurpose) -> Optional[datetime]:
        return getattr(self, purpose.expires_field)

    def attempts(self, purpose: OtpPurpose) -> int:
        return getattr(self, purpose.attempts_field)

    def revoked_reason(self, purpose: OtpPurpose) -> Optional[CodeRevokedReason]:
        return getattr(self, purpose.revoked_field)

    def has_active_code(self, purpose: OtpPurpose) -> bool:
        return bool(self.code_hash(purpose)) and self.code_expires_at(purpose) is not None
