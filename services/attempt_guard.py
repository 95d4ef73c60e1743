"""Brute-force guard: bounds wrong guesses against one issued code."""

from __future__ import annotations

from schemas.models.otp import OtpPurpose
from schemas.models.user import UserDoc


class AttemptGuard:
    def __init__(self, limit: int) -> None:
        self.limit = limit

    def is_exhausted(self, user: UserDoc, purpose: OtpPurpose) -> bool:
        return user.attempts(purpose) >= self.limit

    def remaining(self, user: UserDoc, purpose: OtpPurpose) -> int:
        return max(0, self.limit - user.attempts(purpose))
