"""Unit tests for UserRepository against a mocked async collection."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from pymongo import ReturnDocument

from repositories.user_repository import UserRepository, normalize_email
from schemas.models.otp import CodeRevokedReason, OtpPurpose
from shared.crypto import verify_password

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)
WINDOW = timedelta(hours=1)


def _doc(**fields) -> dict:
    base = {"_id": "507f1f77bcf86cd799439011", "email": "user@example.com"}
    base.update(fields)
    return base


@pytest.fixture
def col():
    c = AsyncMock()
    c.find_one.return_value = None
    c.find_one_and_update.return_value = None
    c.update_one.return_value = MagicMock(modified_count=1)
    return c


@pytest.fixture
def repo(col) -> UserRepository:
    return UserRepository(col)


def test_normalize_email():
    assert normalize_email("  Someone@Example.COM ") == "someone@example.com"


class TestFindAndIndexes:
    async def test_find_by_email_normalizes(self, repo, col):
        col.find_one.return_value = _doc(signup_attempts=2)
        user = await repo.find_by_email("USER@example.com")
        col.find_one.assert_awaited_once_with({"email": "user@example.com"})
        assert user.signup_attempts == 2

    async def test_find_missing_returns_none(self, repo):
        assert await repo.find_by_email("ghost@example.com") is None

    async def test_naive_datetimes_come_back_as_utc(self, repo, col):
        col.find_one.return_value = _doc(signup_code_expires_at=datetime(2026, 3, 2, 13, 0))
        user = await repo.find_by_email("user@example.com")
        assert user.signup_code_expires_at.tzinfo == timezone.utc

    async def test_ensure_indexes(self, repo, col):
        await repo.ensure_indexes()
        col.create_index.assert_awaited_once()
        assert col.create_index.call_args.kwargs["unique"] is True


class TestConditionalClears:
    async def test_clear_code_sets_only_the_purpose_fields(self, repo, col):
        col.find_one_and_update.return_value = _doc(signup_code_revoked_reason="expired")
        user = await repo.clear_code(
            "User@Example.com",
            OtpPurpose.SIGNUP,
            "$2b$10$seen",
            reason=CodeRevokedReason.EXPIRED,
        )

        assert user.signup_code_revoked_reason == CodeRevokedReason.EXPIRED
        flt, update = col.find_one_and_update.call_args[0]
        assert flt == {"email": "user@example.com", "signup_code_hash": "$2b$10$seen"}
        assert update == {
            "$set": {
                "signup_code_hash": None,
                "signup_code_expires_at": None,
                "signup_attempts": 0,
                "signup_code_revoked_reason": "expired",
            }
        }

    async def test_clear_code_never_writes_throttle_fields(self, repo, col):
        validated_until = NOW + timedelta(minutes=5)
        await repo.clear_code(
            "user@example.com",
            OtpPurpose.RESET,
            "$2b$10$seen",
            extra={"reset_validated_at": NOW, "reset_validated_expires_at": validated_until},
        )

        fields = col.find_one_and_update.call_args[0][1]["$set"]
        assert fields["reset_code_hash"] is None
        assert fields["reset_code_revoked_reason"] is None
        assert fields["reset_validated_expires_at"] == validated_until
        assert "otp_request_count" not in fields
        assert "last_otp_request_at" not in fields
        assert not any(key.startswith("signup_") for key in fields)

    async def test_clear_code_replaced_returns_none(self, repo):
        assert await repo.clear_code("user@example.com", OtpPurpose.SIGNUP, "$2b$10$old") is None

    async def test_clear_reset_validation_matches_the_window_read(self, repo, col):
        col.update_one.return_value = MagicMock(modified_count=1)
        assert await repo.clear_reset_validation("User@Example.com", NOW) is True

        flt, update = col.update_one.call_args[0]
        assert flt == {"email": "user@example.com", "reset_validated_expires_at": NOW}
        assert update == {
            "$set": {"reset_validated_at": None, "reset_validated_expires_at": None}
        }

    async def test_clear_reset_validation_reopened_window(self, repo, col):
        col.update_one.return_value = MagicMock(modified_count=0)
        assert await repo.clear_reset_validation("user@example.com", NOW) is False


class TestRecordIssuance:
    async def _issue(self, repo):
        return await repo.record_issuance(
            "User@Example.com",
            OtpPurpose.RESET,
            code_hash="$2b$10$hash",
            expires_at=NOW + timedelta(minutes=5),
            now=NOW,
            window=WINDOW,
            limit=5,
        )

    async def test_in_window_increments_with_cap(self, repo, col):
        col.find_one_and_update.return_value = _doc(otp_request_count=3)
        user = await self._issue(repo)

        assert user.otp_request_count == 3
        assert col.find_one_and_update.await_count == 1
        flt, update = col.find_one_and_update.call_args[0]
        assert flt == {
            "email": "user@example.com",
            "last_otp_request_at": {"$gte": NOW - WINDOW},
            "otp_request_count": {"$lt": 5},
        }
        assert update["$inc"] == {"otp_request_count": 1}
        assert update["$set"]["reset_code_hash"] == "$2b$10$hash"
        assert update["$set"]["reset_attempts"] == 0
        assert update["$set"]["reset_code_revoked_reason"] is None
        assert update["$set"]["last_otp_request_at"] == NOW
        assert (
            col.find_one_and_update.call_args.kwargs["return_document"]
            is ReturnDocument.AFTER
        )

    async def test_lapsed_window_restarts_at_one(self, repo, col):
        col.find_one_and_update.side_effect = [None, _doc(otp_request_count=1)]
        user = await self._issue(repo)

        assert user.otp_request_count == 1
        flt, update = col.find_one_and_update.call_args_list[1][0]
        assert flt["$or"] == [
            {"last_otp_request_at": None},
            {"last_otp_request_at": {"$lt": NOW - WINDOW}},
        ]
        assert update["$set"]["otp_request_count"] == 1
        assert "$inc" not in update

    async def test_cap_reached_returns_none(self, repo, col):
        col.find_one_and_update.side_effect = [None, None]
        assert await self._issue(repo) is None


class TestAttemptsAndPassword:
    async def test_increment_attempts_is_capped(self, repo, col):
        col.find_one_and_update.return_value = _doc(signup_attempts=4)
        user = await repo.increment_attempts(
            "user@example.com", OtpPurpose.SIGNUP, "$2b$10$seen", limit=5
        )

        assert user.signup_attempts == 4
        flt, update = col.find_one_and_update.call_args[0]
        assert flt == {
            "email": "user@example.com",
            "signup_code_hash": "$2b$10$seen",
            "signup_attempts": {"$lt": 5},
        }
        assert update == {"$inc": {"signup_attempts": 1}}

    async def test_increment_attempts_at_cap_returns_none(self, repo):
        assert (
            await repo.increment_attempts(
                "user@example.com", OtpPurpose.RESET, "$2b$10$seen", limit=5
            )
            is None
        )

    async def test_update_password_requires_open_window(self, repo, col):
        col.find_one_and_update.return_value = _doc()
        await repo.update_password("user@example.com", "NewP@ss1", NOW)

        flt, update = col.find_one_and_update.call_args[0]
        assert flt == {
            "email": "user@example.com",
            "reset_validated_expires_at": {"$gt": NOW},
        }
        fields = update["$set"]
        assert verify_password("NewP@ss1", fields["password_hash"])
        assert fields["reset_validated_at"] is None
        assert fields["reset_validated_expires_at"] is None
        assert fields["reset_code_hash"] is None
        assert fields["reset_attempts"] == 0

    async def test_update_password_window_gone(self, repo, col):
        assert await repo.update_password("user@example.com", "NewP@ss1", NOW) is None
