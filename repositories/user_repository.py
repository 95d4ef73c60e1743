"""
MongoDB repository for the account-security fields of the `users` collection.

Every lookup is by lowercase email. There is no whole-document write: each
method is a single conditional update that sets only the fields its step
owns, guarded on the value the caller read (the code hash, the validated
window, the counters). Two concurrent requests for the same account can't
both slip past the issuance or attempt caps, or roll back each other's
fields.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Optional

from pymongo import ASCENDING, ReturnDocument
from pymongo.asynchronous.collection import AsyncCollection

from schemas.models.otp import CodeRevokedReason, OtpPurpose
from schemas.models.user import RESET_FIELDS, UserDoc
from shared.crypto import hash_password_async
from shared.logging import get_logger

log = get_logger(__name__)


def normalize_email(email: str) -> str:
    return email.strip().lower()


class UserRepository:
    def __init__(self, collection: AsyncCollection) -> None:
        self._col = collection

    async def ensure_indexes(self) -> None:
        await self._col.create_index([("email", ASCENDING)], unique=True)

    async def find_by_email(self, email: str) -> Optional[UserDoc]:
        doc = await self._col.find_one({"email": normalize_email(email)})
        return UserDoc.from_mongo(doc)

    async def clear_code(
        self,
        email: str,
        purpose: OtpPurpose,
        code_hash: str,
        reason: Optional[CodeRevokedReason] = None,
        extra: Optional[dict[str, Any]] = None,
    ) -> Optional[UserDoc]:
        """Drop the purpose's code if it is still the one hashed as *code_hash*.

        *extra* is written in the same update (``is_verified`` or the reset
        validated window on success). Only these fields are touched, so a
        concurrent issuance of the other purpose and the shared throttle
        counter survive. Returns ``None`` when the code was already replaced
        or cleared.
        """
        doc = await self._col.find_one_and_update(
            {"email": normalize_email(email), purpose.hash_field: code_hash},
            {"$set": {**purpose.cleared_fields(reason), **(extra or {})}},
            return_document=ReturnDocument.AFTER,
        )
        return UserDoc.from_mongo(doc)

    async def clear_reset_validation(
        self, email: str, validated_expires_at: datetime
    ) -> bool:
        """Close the reset validated window read as *validated_expires_at*.

        A window reopened since that read is left alone.
        """
        result = await self._col.update_one(
            {
                "email": normalize_email(email),
                "reset_validated_expires_at": validated_expires_at,
            },
            {"$set": {"reset_validated_at": None, "reset_validated_expires_at": None}},
        )
        return result.modified_count == 1

    async def record_issuance(
        self,
        email: str,
        purpose: OtpPurpose,
        code_hash: str,
        expires_at: datetime,
        now: datetime,
        window: timedelta,
        limit: int,
    ) -> Optional[UserDoc]:
        """Count one issuance against the window and store the new code.

        Either the window is still open and the counter is under *limit*
        (increment it), or the window has lapsed / never started (restart
        it at 1). Anything else means the cap was hit and nothing is
        written; ``None`` is returned.
        """
        email = normalize_email(email)
        window_start = now - window
        code_fields = {
            purpose.hash_field: code_hash,
            purpose.expires_field: expires_at,
            purpose.attempts_field: 0,
            purpose.revoked_field: None,
            "last_otp_request_at": now,
        }

        doc = await self._col.find_one_and_update(
            {
                "email": email,
                "last_otp_request_at": {"$gte": window_start},
                "otp_request_count": {"$lt": limit},
            },
            {"$set": code_fields, "$inc": {"otp_request_count": 1}},
            return_document=ReturnDocument.AFTER,
        )
        if doc is None:
            doc = await self._col.find_one_and_update(
                {
                    "email": email,
                    "$or": [
                        {"last_otp_request_at": None},
                        {"last_otp_request_at": {"$lt": window_start}},
                    ],
                },
                {"$set": {**code_fields, "otp_request_count": 1}},
                return_document=ReturnDocument.AFTER,
            )
        if doc is None:
            log.warning("otp_issuance_cap_reached", email=email, purpose=purpose.value)
        return UserDoc.from_mongo(doc)

    async def increment_attempts(
        self, email: str, purpose: OtpPurpose, code_hash: str, limit: int
    ) -> Optional[UserDoc]:
        """Reserve one guess against the live code, capped at *limit*.

        Returns ``None`` once *limit* guesses were counted or the code hashed
        as *code_hash* is gone.
        """
        doc = await self._col.find_one_and_update(
            {
                "email": normalize_email(email),
                purpose.hash_field: code_hash,
                purpose.attempts_field: {"$lt": limit},
            },
            {"$inc": {purpose.attempts_field: 1}},
            return_document=ReturnDocument.AFTER,
        )
        return UserDoc.from_mongo(doc)

    async def update_password(
        self, email: str, new_password: str, now: datetime
    ) -> Optional[UserDoc]:
        """Set a new login password if the reset window is still open at *now*.

        Clears every reset field in the same write. Returns ``None`` when
        the window was consumed or lapsed in the meantime.
        """
        password_hash = await hash_password_async(new_password)
        cleared = {field: None for field in RESET_FIELDS}
        cleared["reset_attempts"] = 0

        doc = await self._col.find_one_and_update(
            {
                "email": normalize_email(email),
                "reset_validated_expires_at": {"$gt": now},
            },
            {"$set": {"password_hash": password_hash, **cleared}},
            return_document=ReturnDocument.AFTER,
        )
        return UserDoc.from_mongo(doc)
