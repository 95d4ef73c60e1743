"""AccountStore protocol: services depend on this, not the MongoDB implementation."""

from datetime import datetime, timedelta
from typing import Any, Optional, Protocol

from schemas.models.otp import CodeRevokedReason, OtpPurpose
from schemas.models.user import UserDoc


class AccountStore(Protocol):
    async def find_by_email(self, email: str) -> Optional[UserDoc]: ...

    async def record_issuance(
        self,
        email: str,
        purpose: OtpPurpose,
        code_hash: str,
        expires_at: datetime,
        now: datetime,
        window: timedelta,
        limit: int,
    ) -> Optional[UserDoc]: ...

    async def increment_attempts(
        self, email: str, purpose: OtpPurpose, code_hash: str, limit: int
    ) -> Optional[UserDoc]: ...

    async def clear_code(
        self,
        email: str,
        purpose: OtpPurpose,
        code_hash: str,
        reason: Optional[CodeRevokedReason] = None,
        extra: Optional[dict[str, Any]] = None,
    ) -> Optional[UserDoc]: ...

    async def clear_reset_validation(
        self, email: str, validated_expires_at: datetime
    ) -> bool: ...

    async def update_password(
        self, email: str, new_password: str, now: datetime
    ) -> Optional[UserDoc]: ...
