"""
Random code generators: pure, side-effect-free functions.

All generators draw from the ``secrets`` module (the OS CSPRNG).
"""

from __future__ import annotations

import secrets

OTP_LENGTH = 6
_OTP_SPACE = 10**OTP_LENGTH


def generate_otp_code() -> str:
    """Generate a cryptographically secure 6-digit numeric OTP.

    Drawn uniformly from ``[0, 1_000_000)`` and zero-padded, so ``"004217"``
    is as likely as any other code.

    Returns:
        String of exactly six decimal digits.
    """
    return str(secrets.randbelow(_OTP_SPACE)).zfill(OTP_LENGTH)


def is_otp_code(value: str) -> bool:
    """Return ``True`` if *value* has the shape of an OTP (six ASCII digits)."""
    return len(value) == OTP_LENGTH and value.isascii() and value.isdigit()
