"""
OTP issuance throttle.

One counter per account, shared by signup and reset codes. The window is
lazy: a lapsed window is only treated as zero here, and actually reset in
storage by the next successful issuance.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta

from errors import OtpRateLimitError
from schemas.models.user import UserDoc
from shared.logging import get_logger

log = get_logger(__name__)


class OtpRateLimiter:
    def __init__(self, window: timedelta, limit: int) -> None:
        self.window = window
        self.limit = limit

    def window_lapsed(self, user: UserDoc, now: datetime) -> bool:
        last = user.last_otp_request_at
        return last is None or now - last > self.window

    def effective_count(self, user: UserDoc, now: datetime) -> int:
        if self.window_lapsed(user, now):
            return 0
        return user.otp_request_count

    def retry_after_seconds(self, user: UserDoc, now: datetime) -> int:
        if self.window_lapsed(user, now):
            return 0
        remaining = (user.last_otp_request_at + self.window - now).total_seconds()
        return max(0, math.ceil(remaining))

    def check(self, user: UserDoc, now: datetime) -> None:
        """Raise OtpRateLimitError if another issuance would exceed the limit.

        Read-only: the counter is never touched here.
        """
        count = self.effective_count(user, now)
        if count >= self.limit:
            retry_after = self.retry_after_seconds(user, now)
            log.warning(
                "otp_rate_limited",
                email=user.email,
                count=count,
                limit=self.limit,
                retry_after_seconds=retry_after,
            )
            raise OtpRateLimitError(
                "OTP rate limit exceeded. Try again later.",
                details={"retry_after_seconds": retry_after},
            )
