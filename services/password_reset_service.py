"""
Second phase of password reset.

A verified reset code opens a short validated window on the account.
Inside it the password can be changed once without presenting the code
again; the change (or the window lapsing) closes it.
"""

from __future__ import annotations

from errors import (
    AccountNotFoundError,
    ResetNotValidatedError,
    ResetValidationExpiredError,
)
from repositories.protocol import AccountStore
from repositories.user_repository import normalize_email
from schemas.models.user import UserDoc
from shared.datetime_utils import Clock, is_expired, utcnow
from shared.logging import get_logger

log = get_logger(__name__)


class PasswordResetService:
    def __init__(self, store: AccountStore, clock: Clock = utcnow) -> None:
        self._store = store
        self._clock = clock

    async def update_password(self, email: str, new_password: str) -> UserDoc:
        normalized = normalize_email(email)
        user = await self._store.find_by_email(normalized)
        if user is None:
            raise AccountNotFoundError("No account found with this email")

        if user.reset_validated_at is None or user.reset_validated_expires_at is None:
            log.info("password_reset_not_validated", email=normalized)
            raise ResetNotValidatedError(
                "Password reset not verified. Please verify OTP first."
            )

        now = self._clock()
        if is_expired(user.reset_validated_expires_at, now):
            await self._store.clear_reset_validation(
                normalized, user.reset_validated_expires_at
            )
            log.info("password_reset_validation_expired", email=normalized)
            raise ResetValidationExpiredError(
                "Password reset validation expired. Please verify OTP again."
            )

        updated = await self._store.update_password(normalized, new_password, now)
        if updated is None:
            # Window consumed by a concurrent request
            raise ResetNotValidatedError(
                "Password reset not verified. Please verify OTP first."
            )

        log.info("password_updated", email=normalized)
        return updated
