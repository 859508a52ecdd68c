"""Startup check of the local clock against an external time source.

TOTP only works while server and authenticator apps agree on the time.
The check is advisory: failures are logged and never propagate, and
nothing here affects verification.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable

import httpx

from otpgate import __version__
from otpgate.config import settings
from otpgate.models import DriftReport

logger = logging.getLogger(__name__)

USER_AGENT = f"otpgate/{__version__} (time check)"


def _read_bounded(resp: httpx.Response, max_bytes: int) -> bytes:
    """Read at most ``max_bytes`` of a streamed response body."""
    buf = bytearray()
    for chunk in resp.iter_bytes():
        buf.extend(chunk)
        if len(buf) >= max_bytes:
            break
    return bytes(buf[:max_bytes])


def check_clock_skew(
    url: str | None = None,
    *,
    max_drift_s: int | None = None,
    connect_timeout: float | None = None,
    read_timeout: float | None = None,
    max_bytes: int | None = None,
    clock: Callable[[], float] = time.time,
    transport: httpx.BaseTransport | None = None,
) -> DriftReport:
    """Compare local Unix time with a plain-text Unix time service."""
    url = url or settings.time_check_url
    max_drift_s = settings.max_clock_drift_s if max_drift_s is None else max_drift_s
    timeout = httpx.Timeout(
        read_timeout or settings.time_check_read_timeout,
        connect=connect_timeout or settings.time_check_connect_timeout,
    )
    max_bytes = max_bytes or settings.time_check_max_bytes

    report = DriftReport(reference_url=url, local_time=clock(), max_drift_s=max_drift_s)
    try:
        with httpx.Client(timeout=timeout, headers={"User-Agent": USER_AGENT}, transport=transport) as client:
            with client.stream("GET", url) as resp:
                if resp.status_code != 200:
                    report.error = f"HTTP {resp.status_code}"
                    logger.warning(
                        "Could not validate the server time against %s (HTTP %s); "
                        "make sure the system clock is correct or 2FA may fail",
                        url, resp.status_code,
                    )
                    return report
                body = _read_bounded(resp, max_bytes)
        reference = int(body.decode("ascii").strip())
    except (httpx.HTTPError, httpx.InvalidURL, ValueError) as e:
        report.error = str(e) or e.__class__.__name__
        logger.warning(
            "Was not able to validate the server time against %s; "
            "make sure the system clock is correct or 2FA may fail",
            url, exc_info=True,
        )
        return report

    local = clock()
    report.local_time = local
    report.reference_time = reference
    report.drift_s = int(local) - reference
    report.checked = True

    if not report.within_tolerance:
        logger.error(
            "Server Unix time is off by %d seconds (tolerance %ds)! 2FA codes may be rejected. "
            "Correct the system clock.",
            abs(report.drift_s), max_drift_s,
        )
    else:
        logger.info("Server clock within %ds of %s (drift %ds)", max_drift_s, url, report.drift_s)
    return report


def start_clock_check_thread(**kwargs) -> threading.Thread:
    """Run check_clock_skew() on a daemon thread so startup never waits on it."""
    t = threading.Thread(target=check_clock_skew, kwargs=kwargs, name="otpgate-clock-check", daemon=True)
    t.start()
    return t
