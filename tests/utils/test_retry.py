import pytest

from kubeseed.errors import ChecksumMismatchError, DownloadError, RetryError
from kubeseed.utils.retry import retry, with_retry


def test_success_on_first_attempt_never_resets():
    resets = []
    assert with_retry(3, lambda: "ok", lambda a, e: resets.append(a)) == "ok"
    assert resets == []


def test_reset_runs_between_attempts_only():
    calls = []
    attempts = []

    def body():
        calls.append("body")
        attempts.append(1)
        raise ValueError(len(attempts))

    with pytest.raises(ValueError) as exc:
        with_retry(3, body, lambda a, e: calls.append(f"reset{a}"))

    assert calls == ["body", "reset1", "body", "reset2", "body"]
    assert exc.value.args == (3,)


def test_unlisted_exception_aborts_immediately():
    calls = []

    def body():
        calls.append(1)
        raise DownloadError("transport")

    with pytest.raises(DownloadError):
        with_retry(5, body, retry_on=(ChecksumMismatchError,))
    assert calls == [1]


def test_attempts_must_be_positive():
    with pytest.raises(ValueError):
        with_retry(0, lambda: None)


def test_retry_decorator_wraps_exhaustion():
    seen = []

    @retry(retries=2, delay=0, retry_on=(OSError,), on_retry=lambda a, e: seen.append(a))
    def connect():
        raise OSError("refused")

    with pytest.raises(RetryError) as exc:
        connect()
    assert seen == [1, 2]
    assert isinstance(exc.value.__cause__, OSError)
