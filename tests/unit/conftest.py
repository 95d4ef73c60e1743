"""
Unit test configuration.

Patches dotenv so pydantic-settings never reads the project's real .env file
during unit tests. Tests control config exclusively through monkeypatch.setenv()
or explicit keyword arguments.

Also provides in-memory stand-ins for the engine's collaborators: an account
store that honours the same conditional-update contracts as UserRepository,
a notification sender that records what it was asked to send, and a clock
the test can move.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from config import EmailSettings, OtpSettings
from infrastructure.email.protocol import MailMessage
from schemas.models.otp import OtpPurpose
from schemas.models.user import RESET_FIELDS, UserDoc
from services.mailer_service import MailerService
from services.otp_service import OtpService
from services.password_reset_service import PasswordResetService
from shared.crypto import OtpHasher, hash_password

USER_EMAIL = "user@example.com"
START = datetime(2026, 3, 2, 9, 0, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def disable_dotenv_loading(monkeypatch):
    """Prevent pydantic-settings from loading .env files in all unit tests."""
    import pydantic_settings.sources.providers.dotenv as ps_dotenv

    monkeypatch.setattr(ps_dotenv, "dotenv_values", lambda *a, **kw: {})


# ── Fakes ─────────────────────────────────────────────────────────────────────


class FrozenClock:
    def __init__(self, now: datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class InMemoryAccountStore:
    def __init__(self) -> None:
        self.docs: dict[str, UserDoc] = {}
        self.writes = 0

    def add_user(self, email: str = USER_EMAIL, **fields) -> UserDoc:
        user = UserDoc(email=email, password_hash=hash_password("OldP@ss1"), **fields)
        self.docs[user.email] = user
        return user.model_copy(deep=True)

    def get(self, email: str = USER_EMAIL) -> UserDoc:
        return self.docs[email]

    def _set(self, email: str, fields: dict) -> UserDoc:
        self.writes += 1
        data = self.docs[email].model_dump()
        data.update(fields)
        self.docs[email] = UserDoc.model_validate(data)
        return self.docs[email].model_copy(deep=True)

    async def find_by_email(self, email: str) -> Optional[UserDoc]:
        doc = self.docs.get(email)
        return doc.model_copy(deep=True) if doc else None

    async def record_issuance(
        self, email, purpose, code_hash, expires_at, now, window, limit
    ) -> Optional[UserDoc]:
        doc = self.docs.get(email)
        if doc is None:
            return None
        last = doc.last_otp_request_at
        if last is not None and last >= now - window:
            if doc.otp_request_count >= limit:
                return None
            count = doc.otp_request_count + 1
        else:
            count = 1
        return self._set(
            email,
            {
                purpose.hash_field: code_hash,
                purpose.expires_field: expires_at,
                purpose.attempts_field: 0,
                purpose.revoked_field: None,
                "otp_request_count": count,
                "last_otp_request_at": now,
            },
        )

    async def increment_attempts(
        self, email, purpose: OtpPurpose, code_hash, limit
    ) -> Optional[UserDoc]:
        doc = self.docs.get(email)
        if doc is None or doc.code_hash(purpose) != code_hash:
            return None
        if doc.attempts(purpose) >= limit:
            return None
        return self._set(email, {purpose.attempts_field: doc.attempts(purpose) + 1})

    async def clear_code(
        self, email, purpose: OtpPurpose, code_hash, reason=None, extra=None
    ) -> Optional[UserDoc]:
        doc = self.docs.get(email)
        if doc is None or doc.code_hash(purpose) != code_hash:
            return None
        return self._set(email, {**purpose.cleared_fields(reason), **(extra or {})})

    async def clear_reset_validation(self, email, validated_expires_at) -> bool:
        doc = self.docs.get(email)
        if doc is None or doc.reset_validated_expires_at != validated_expires_at:
            return False
        self._set(email, {"reset_validated_at": None, "reset_validated_expires_at": None})
        return True

    async def update_password(self, email, new_password, now) -> Optional[UserDoc]:
        doc = self.docs.get(email)
        if doc is None or doc.reset_validated_expires_at is None:
            return None
        if doc.reset_validated_expires_at <= now:
            return None
        cleared = {field: None for field in RESET_FIELDS}
        cleared["reset_attempts"] = 0
        return self._set(email, {"password_hash": hash_password(new_password), **cleared})


class RecordingSender:
    def __init__(self, succeed: bool = True) -> None:
        self.succeed = succeed
        self.messages: list[MailMessage] = []

    async def send(self, message: MailMessage) -> bool:
        self.messages.append(message)
        return self.succeed

    @property
    def last_otp(self) -> str:
        return self.messages[-1].context["otp"]


# ── Fixtures ──────────────────────────────────────────────────────────────────


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def store() -> InMemoryAccountStore:
    return InMemoryAccountStore()


@pytest.fixture
def user(store) -> UserDoc:
    return store.add_user()


@pytest.fixture
def sender() -> RecordingSender:
    return RecordingSender()


@pytest.fixture
def email_settings() -> EmailSettings:
    return EmailSettings(mail_from_email="noreply@interns.example", mail_from_name="Intern Hub")


@pytest.fixture
def otp_settings() -> OtpSettings:
    return OtpSettings(bcrypt_rounds=4, allow_provided_otp=True)


@pytest.fixture
def mailer(email_settings, sender) -> MailerService:
    return MailerService(email_settings, sender)


@pytest.fixture
def otp_service(store, mailer, otp_settings, clock) -> OtpService:
    return OtpService(
        store=store,
        mailer=mailer,
        settings=otp_settings,
        hasher=OtpHasher(rounds=4),
        clock=clock,
    )


@pytest.fixture
def reset_service(store, clock) -> PasswordResetService:
    return PasswordResetService(store=store, clock=clock)
