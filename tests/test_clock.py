"""Tests for the startup clock drift check."""

from __future__ import annotations

import logging

import httpx

from otpgate.clock import USER_AGENT, check_clock_skew, start_clock_check_thread

URL = "http://time.test/"
LOCAL = 1_700_000_000.0


def _transport(status: int = 200, body: bytes = b"1700000000\n", seen: list | None = None) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return httpx.Response(status, content=body)
    return httpx.MockTransport(handler)


def _check(transport: httpx.BaseTransport, **kwargs):
    return check_clock_skew(URL, clock=lambda: LOCAL, transport=transport, **kwargs)


def test_clock_in_sync():
    seen: list[httpx.Request] = []
    report = _check(_transport(body=b"1700000010\n", seen=seen))
    assert report.checked
    assert report.reference_time == 1_700_000_010
    assert report.drift_s == -10
    assert report.within_tolerance
    assert report.error is None
    assert seen[0].headers["User-Agent"] == USER_AGENT


def test_clock_drift_logged(caplog):
    with caplog.at_level(logging.WARNING, logger="otpgate.clock"):
        report = _check(_transport(body=b"1699999900"))
    assert report.checked
    assert report.drift_s == 100
    assert report.within_tolerance is False
    errors = [r for r in caplog.records if r.levelno == logging.ERROR]
    assert errors and "off by 100 seconds" in errors[0].getMessage()


def test_drift_threshold_is_inclusive():
    assert _check(_transport(body=b"1700000030")).within_tolerance
    assert not _check(_transport(body=b"1700000031")).within_tolerance


def test_non_200_is_warning_only(caplog):
    with caplog.at_level(logging.WARNING, logger="otpgate.clock"):
        report = _check(_transport(status=503, body=b"down"))
    assert not report.checked
    assert report.error == "HTTP 503"
    assert report.within_tolerance is None
    assert any(r.levelno == logging.WARNING for r in caplog.records)


def test_malformed_body_is_warning_only(caplog):
    with caplog.at_level(logging.WARNING, logger="otpgate.clock"):
        report = _check(_transport(body=b"<html>hello</html>"))
    assert not report.checked
    assert report.error
    assert "Was not able to validate" in caplog.text


def test_network_error_is_warning_only():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    report = _check(httpx.MockTransport(handler))
    assert not report.checked
    assert "connection refused" in report.error


def test_body_read_is_bounded():
    body = b"1700000000" + b" " * 4000 + b"trailing junk"
    report = _check(_transport(body=body))
    assert report.checked
    assert report.drift_s == 0

    report = _check(_transport(body=b"1700000000 trailing"), max_bytes=10)
    assert report.checked


def test_background_thread():
    t = start_clock_check_thread(url=URL, transport=_transport(), clock=lambda: LOCAL)
    t.join(timeout=5)
    assert not t.is_alive()
    assert t.daemon
