"""Tests for error classification and the retry policy."""

import asyncio

import httpx
import pytest

from imagestudio.core.errors import (
    NotFoundError,
    PermanentRemoteError,
    TransientRemoteError,
    ValidationError,
    is_transient,
)
from imagestudio.workers.base import InvalidStagedFileError, RetryPolicy
from tests.helpers import connection_reset


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


class FlakyOperation:
    """Raises the scripted errors in order, then returns "ok"."""

    def __init__(self, *errors):
        self.errors = list(errors)
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return "ok"


class TestIsTransient:
    @pytest.mark.parametrize("exc", [
        TransientRemoteError("upstream 503", status_code=503),
        connection_reset(),
        ConnectionResetError(104, "Connection reset by peer"),
        httpx.ConnectError("boom"),
        httpx.ReadTimeout("slow"),
        RuntimeError("socket hang up: ECONNRESET"),
        OSError(101, "Network is unreachable"),
    ])
    def test_transient(self, exc):
        assert is_transient(exc)

    def test_errno_style_code(self):
        exc = RuntimeError("read failed")
        exc.code = "ECONNRESET"
        assert is_transient(exc)

    @pytest.mark.parametrize("exc", [
        PermanentRemoteError("content policy violation", status_code=400),
        PermanentRemoteError("Connection error mentioned in a policy message"),
        ValidationError("bad input"),
        NotFoundError("Job not found"),
        InvalidStagedFileError("Staged image is not a valid PNG file: x.png"),
        RuntimeError("something else"),
        KeyError("url"),
        KeyError("network"),
        ValueError("invalid network mask"),
    ])
    def test_permanent(self, exc):
        assert not is_transient(exc)


class TestRetryPolicy:
    def test_success_first_try(self):
        sleep = RecordingSleep()
        op = FlakyOperation()

        assert asyncio.run(RetryPolicy(sleep=sleep).run(op)) == "ok"
        assert op.calls == 1
        assert sleep.delays == []

    def test_transient_twice_then_success(self):
        sleep = RecordingSleep()
        op = FlakyOperation(connection_reset(), connection_reset())

        assert asyncio.run(RetryPolicy(sleep=sleep).run(op)) == "ok"
        assert op.calls == 3
        assert sleep.delays == [2.0, 4.0]

    def test_gives_up_after_max_attempts(self):
        sleep = RecordingSleep()
        op = FlakyOperation(*(connection_reset() for _ in range(5)))

        with pytest.raises(TransientRemoteError):
            asyncio.run(RetryPolicy(max_attempts=3, sleep=sleep).run(op))

        assert op.calls == 3
        assert sleep.delays == [2.0, 4.0]

    def test_permanent_error_not_retried(self):
        sleep = RecordingSleep()
        op = FlakyOperation(PermanentRemoteError("bad prompt", status_code=400))

        with pytest.raises(PermanentRemoteError):
            asyncio.run(RetryPolicy(sleep=sleep).run(op))

        assert op.calls == 1
        assert sleep.delays == []

    def test_linear_delay(self):
        policy = RetryPolicy(base_delay=1.5)
        assert [policy.delay_for(n) for n in (1, 2, 3)] == [1.5, 3.0, 4.5]

    def test_single_attempt(self):
        op = FlakyOperation(connection_reset())

        with pytest.raises(TransientRemoteError):
            asyncio.run(RetryPolicy(max_attempts=1, sleep=RecordingSleep()).run(op))
        assert op.calls == 1

    def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)
