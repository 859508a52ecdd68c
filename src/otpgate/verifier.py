"""TOTP (RFC 6238) code verification.

The verifier is a pure predicate over (secret, code, time). It accepts
the code of the current time step and of ``valid_window`` steps on
either side, so small clock skew and typing delay do not lock users out.
"""

from __future__ import annotations

import hmac
import re
import time

import pyotp

from otpgate.config import settings

_DIGITS_RE = re.compile(r"[0-9]+")

# Authenticator apps show codes as "123 456"; users often type the space.
_SPACE_INDEX = 3


def normalize_code(code: str, digits: int = 6) -> str | None:
    """Return ``code`` as a zero-padded ``digits``-long string, or None if malformed."""
    if len(code) > _SPACE_INDEX and code[_SPACE_INDEX] == " ":
        code = code[:_SPACE_INDEX] + code[_SPACE_INDEX + 1:]
    if not _DIGITS_RE.fullmatch(code):
        return None
    significant = code.lstrip("0")
    if len(significant) > digits:
        return None
    return str(int(significant or "0")).zfill(digits)


class TOTPVerifier:
    """Computes and checks TOTP codes (HMAC-SHA1, dynamic truncation)."""

    def __init__(
        self,
        digits: int | None = None,
        interval: int | None = None,
        valid_window: int | None = None,
    ) -> None:
        self.digits = digits or settings.totp_digits
        self.interval = interval or settings.totp_interval
        self.valid_window = settings.totp_valid_window if valid_window is None else valid_window

    def time_step(self, now: float | None = None) -> int:
        if now is None:
            now = time.time()
        return int(now // self.interval)

    def remaining_seconds(self, now: float | None = None) -> int:
        """Seconds until the code for ``now`` rolls over."""
        if now is None:
            now = time.time()
        return self.interval - int(now % self.interval)

    def code_for_step(self, secret: str, step: int) -> str:
        return pyotp.TOTP(secret, digits=self.digits, interval=self.interval).generate_otp(step)

    def code_at(self, secret: str, now: float | None = None) -> str:
        """Current code for ``secret`` (what the user's app displays)."""
        return self.code_for_step(secret, self.time_step(now))

    def match_step(self, secret: str, code: str, now: float | None = None) -> int | None:
        """Return the time step whose code equals ``code``, or None.

        Every candidate in the window is compared, with no early exit,
        so timing does not reveal which step (if any) matched.
        """
        submitted = normalize_code(code, self.digits)
        if submitted is None:
            return None

        current = self.time_step(now)
        totp = pyotp.TOTP(secret, digits=self.digits, interval=self.interval)
        submitted_bytes = submitted.encode("ascii")
        matched: int | None = None
        for step in range(current - self.valid_window, current + self.valid_window + 1):
            if step < 0:
                continue
            candidate = totp.generate_otp(step).encode("ascii")
            if hmac.compare_digest(submitted_bytes, candidate) and matched is None:
                matched = step
        return matched

    def verify(self, secret: str, code: str, now: float | None = None) -> bool:
        return self.match_step(secret, code, now) is not None
