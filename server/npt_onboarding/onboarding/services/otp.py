"""One-time passcode rules for establishing an employee session.

A single OTP is active at a time. It expires after ten minutes, allows three
wrong guesses before locking the onboarding for fifteen minutes, and can be
re-sent at most once a minute.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from ...core.exceptions import (
    ApplicationError,
    SessionRequiredError,
    TooManyRequestsError,
    ValidationError,
)
from ...core.services.tokens import generate_otp_code, hash_token, verify_token
from ..models.onboarding import OnboardingOtp

OTP_EXPIRES_MINUTES = 10
OTP_MAX_ATTEMPTS = 3
OTP_LOCK_MINUTES = 15
OTP_RESEND_THROTTLE_SECONDS = 60


@dataclass
class OtpCheck:
    otp: Optional[OnboardingOtp]
    error: Optional[ApplicationError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _seconds_until(moment: datetime, now: datetime) -> int:
    return max(1, math.ceil((moment - now).total_seconds()))


def release_expired_lock(otp: Optional[OnboardingOtp], now: datetime) -> Optional[OnboardingOtp]:
    """Drop a lock (and its attempt count) once the lock window has passed."""
    if otp is None or otp.locked_at is None:
        return otp
    if now >= otp.locked_at + timedelta(minutes=OTP_LOCK_MINUTES):
        return otp.model_copy(update={"locked_at": None, "attempts": 0})
    return otp


def ensure_not_locked(otp: Optional[OnboardingOtp], now: datetime) -> None:
    if otp is None or otp.locked_at is None:
        return
    unlock_at = otp.locked_at + timedelta(minutes=OTP_LOCK_MINUTES)
    if now < unlock_at:
        raise TooManyRequestsError(
            "Too many incorrect codes. Please try again later.",
            reason="OTP_LOCKED",
            meta={"retry_after_seconds": _seconds_until(unlock_at, now)},
        )


def ensure_resend_allowed(otp: Optional[OnboardingOtp], now: datetime) -> None:
    if otp is None or otp.last_sent_at is None:
        return
    next_allowed = otp.last_sent_at + timedelta(seconds=OTP_RESEND_THROTTLE_SECONDS)
    if now < next_allowed:
        raise TooManyRequestsError(
            "A code was sent recently. Please wait before requesting another.",
            reason="OTP_THROTTLED",
            meta={"retry_after_seconds": _seconds_until(next_allowed, now)},
        )


def issue_otp(now: datetime) -> tuple[str, OnboardingOtp]:
    """Return the plaintext code to email and the record to persist."""
    code = generate_otp_code()
    return code, OnboardingOtp(
        otp_hash=hash_token(code),
        expires_at=now + timedelta(minutes=OTP_EXPIRES_MINUTES),
        attempts=0,
        locked_at=None,
        last_sent_at=now,
    )


def check_otp(otp: Optional[OnboardingOtp], code: str, now: datetime) -> OtpCheck:
    """Check ``code`` against the active OTP.

    The returned ``otp`` is what must be persisted whether or not the check
    passed: wrong guesses bump the attempt counter and may lock, success
    consumes the code.
    """
    if otp is None or not otp.otp_hash:
        return OtpCheck(otp, ValidationError("No verification code has been issued", reason="OTP_NOT_ISSUED"))

    try:
        ensure_not_locked(otp, now)
    except TooManyRequestsError as exc:
        return OtpCheck(otp, exc)

    if otp.expires_at is None or otp.expires_at <= now:
        return OtpCheck(otp, SessionRequiredError(
            "Verification code has expired",
            reason="OTP_EXPIRED",
            clear_cookie=False,
        ))

    if not verify_token(code, otp.otp_hash):
        attempts = otp.attempts + 1
        if attempts >= OTP_MAX_ATTEMPTS:
            locked = otp.model_copy(update={"attempts": attempts, "locked_at": now})
            return OtpCheck(locked, TooManyRequestsError(
                "Too many incorrect codes. Please try again later.",
                reason="OTP_MAX_ATTEMPTS_EXCEEDED",
                meta={"retry_after_seconds": OTP_LOCK_MINUTES * 60},
            ))
        return OtpCheck(
            otp.model_copy(update={"attempts": attempts}),
            SessionRequiredError(
                "Incorrect verification code",
                reason="OTP_INVALID",
                meta={"remaining_attempts": OTP_MAX_ATTEMPTS - attempts},
                clear_cookie=False,
            ),
        )

    return OtpCheck(None)
