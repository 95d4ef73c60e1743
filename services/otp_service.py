"""
OTP lifecycle: issuance and verification of signup and password-reset codes.

Per purpose a code moves NoCode -> Issued -> {verified | expired |
attempts exhausted} and back to NoCode. A verified reset code opens the
password-reset validated window instead (see password_reset_service).

The plaintext code only ever exists in memory and in the outgoing mail;
the user document holds its bcrypt hash.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Callable, NoReturn, Optional

from config import OtpSettings
from errors import (
    AccountNotFoundError,
    InvalidOtpError,
    NoActiveCodeError,
    OtpExpiredError,
    OtpOverrideDisabledError,
    OtpRateLimitError,
    TooManyAttemptsError,
    ValidationError,
)
from repositories.protocol import AccountStore
from repositories.user_repository import normalize_email
from schemas.models.otp import CodeRevokedReason, OtpPurpose
from schemas.models.user import UserDoc
from services.attempt_guard import AttemptGuard
from services.mailer_service import MailerService
from services.rate_limiter import OtpRateLimiter
from shared.crypto import OtpHasher
from shared.datetime_utils import Clock, is_expired, utcnow
from shared.generators import generate_otp_code, is_otp_code
from shared.logging import get_logger, log_with_context

log = get_logger(__name__)


class OtpService:
    def __init__(
        self,
        store: AccountStore,
        mailer: MailerService,
        settings: OtpSettings,
        hasher: Optional[OtpHasher] = None,
        clock: Clock = utcnow,
        code_generator: Callable[[], str] = generate_otp_code,
    ) -> None:
        self._store = store
        self._mailer = mailer
        self._settings = settings
        self._hasher = hasher or OtpHasher(rounds=settings.bcrypt_rounds)
        self._clock = clock
        self._generate = code_generator
        self.rate_limiter = OtpRateLimiter(
            window=timedelta(seconds=settings.otp_request_window_seconds),
            limit=settings.max_otp_requests_per_window,
        )
        self.attempt_guard = AttemptGuard(limit=settings.max_verification_attempts)

    # ── public, purpose-tagged API ───────────────────────────────────────────

    async def issue_signup_otp(
        self, email: str, provided_code: Optional[str] = None
    ) -> UserDoc:
        return await self.issue(email, OtpPurpose.SIGNUP, provided_code)

    async def verify_signup_otp(self, email: str, code: str) -> UserDoc:
        return await self.verify(email, OtpPurpose.SIGNUP, code)

    async def issue_reset_otp(
        self, email: str, provided_code: Optional[str] = None
    ) -> UserDoc:
        return await self.issue(email, OtpPurpose.RESET, provided_code)

    async def verify_reset_otp(self, email: str, code: str) -> UserDoc:
        """Verify a reset code and open the password-change window.

        Returns the updated account; the caller proceeds to
        PasswordResetService.update_password with it.
        """
        return await self.verify(email, OtpPurpose.RESET, code)

    # ── lifecycle ────────────────────────────────────────────────────────────

    def _code_ttl(self, purpose: OtpPurpose) -> timedelta:
        if purpose is OtpPurpose.SIGNUP:
            return timedelta(seconds=self._settings.signup_code_ttl_seconds)
        return timedelta(seconds=self._settings.reset_code_ttl_seconds)

    def _check_provided_code(self, provided_code: str) -> None:
        if not self._settings.allow_provided_otp:
            raise OtpOverrideDisabledError("Caller-supplied OTP codes are disabled")
        if not is_otp_code(provided_code):
            raise ValidationError("OTP must be exactly 6 digits", field="code")

    async def _load(self, email: str) -> UserDoc:
        user = await self._store.find_by_email(normalize_email(email))
        if user is None:
            raise AccountNotFoundError("No account found with this email")
        return user

    async def issue(
        self,
        email: str,
        purpose: OtpPurpose,
        provided_code: Optional[str] = None,
    ) -> UserDoc:
        """Issue a fresh code for *purpose* and mail it to the account.

        The new code replaces any previous one and resets the purpose's
        attempt counter. A notification failure surfaces as
        NotificationError, but the stored code stays valid.
        """
        if provided_code is not None:
            self._check_provided_code(provided_code)

        user = await self._load(email)
        now = self._clock()
        self.rate_limiter.check(user, now)

        code = provided_code if provided_code is not None else self._generate()
        code_hash = await self._hasher.hash(code)
        expires_at = now + self._code_ttl(purpose)

        updated = await self._store.record_issuance(
            user.email,
            purpose,
            code_hash=code_hash,
            expires_at=expires_at,
            now=now,
            window=self.rate_limiter.window,
            limit=self.rate_limiter.limit,
        )
        if updated is None:
            # Another request took the last slot between our read and write
            raise OtpRateLimitError(
                "OTP rate limit exceeded. Try again later.",
                details={
                    "retry_after_seconds": self.rate_limiter.retry_after_seconds(
                        user, now
                    )
                },
            )

        log.info(
            "otp_issued",
            email=updated.email,
            purpose=purpose.value,
            expires_at=expires_at.isoformat(),
            request_count=updated.otp_request_count,
        )

        if purpose is OtpPurpose.SIGNUP:
            await self._mailer.send_signup_code(updated.email, code)
        else:
            await self._mailer.send_reset_code(updated.email, code)
        return updated

    def _raise_for_missing_code(self, user: UserDoc, purpose: OtpPurpose) -> None:
        reason = user.revoked_reason(purpose)
        if reason == CodeRevokedReason.EXPIRED:
            raise OtpExpiredError("OTP expired")
        if reason == CodeRevokedReason.TOO_MANY_ATTEMPTS:
            raise TooManyAttemptsError(
                "Too many verification attempts. Please request a new code."
            )
        raise NoActiveCodeError("No verification code set")

    async def _exhaust(
        self, email: str, purpose: OtpPurpose, code_hash: str, vlog
    ) -> NoReturn:
        await self._store.clear_code(
            email, purpose, code_hash, reason=CodeRevokedReason.TOO_MANY_ATTEMPTS
        )
        vlog.warning("otp_attempts_exhausted")
        raise TooManyAttemptsError(
            "Too many verification attempts. Please request a new code."
        )

    async def verify(self, email: str, purpose: OtpPurpose, code: str) -> UserDoc:
        """Check *code* against the active code for *purpose*.

        Expired and exhausted codes are cleared (and that cleanup is
        persisted) before the failure is raised. A guess is counted before
        the hash comparison, so no more than the attempt limit of guesses
        is ever compared against one code, however many arrive at once.
        Every write is conditioned on the code hash read here; a code
        replaced in the meantime is never touched.
        """
        user = await self._load(email)
        vlog = log_with_context(log, email=user.email, purpose=purpose.value)

        if not user.has_active_code(purpose):
            vlog.info("otp_verify_without_code")
            self._raise_for_missing_code(user, purpose)

        code_hash = user.code_hash(purpose)
        now = self._clock()
        if is_expired(user.code_expires_at(purpose), now):
            await self._store.clear_code(
                user.email, purpose, code_hash, reason=CodeRevokedReason.EXPIRED
            )
            vlog.info("otp_expired")
            raise OtpExpiredError("OTP expired")

        if self.attempt_guard.is_exhausted(user, purpose):
            await self._exhaust(user.email, purpose, code_hash, vlog)

        counted = await self._store.increment_attempts(
            user.email, purpose, code_hash, limit=self.attempt_guard.limit
        )
        if counted is None:
            # Concurrent guesses used up the limit after our read
            await self._exhaust(user.email, purpose, code_hash, vlog)

        if not await self._hasher.verify(code, code_hash):
            vlog.warning("otp_invalid", attempts=counted.attempts(purpose))
            raise InvalidOtpError(
                "Invalid OTP",
                details={
                    "attempts_remaining": self.attempt_guard.remaining(counted, purpose)
                },
            )

        if purpose is OtpPurpose.SIGNUP:
            outcome = {"is_verified": True}
        else:
            outcome = {
                "reset_validated_at": now,
                "reset_validated_expires_at": now
                + timedelta(seconds=self._settings.reset_validated_ttl_seconds),
            }
        updated = await self._store.clear_code(
            user.email, purpose, code_hash, extra=outcome
        )
        if updated is None:
            # Consumed by a concurrent success, or replaced by a fresh issue
            vlog.info("otp_consumed_elsewhere")
            raise NoActiveCodeError("No verification code set")

        if purpose is OtpPurpose.SIGNUP:
            vlog.info("otp_verified")
        else:
            vlog.info(
                "password_reset_validated",
                validated_until=updated.reset_validated_expires_at.isoformat(),
            )
        return updated
