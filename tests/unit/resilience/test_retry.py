"""Unit tests for retry logic"""
import pytest
from unittest.mock import AsyncMock, patch

import httpx
import psycopg

from ecoquest.exceptions import ConnectionError, QueryError, StorageError
from ecoquest.resilience.retry import (
    BASE_DELAY,
    MAX_DELAY,
    calculate_backoff,
    is_retryable_error,
    retry_with_backoff,
)


@pytest.fixture(autouse=True)
def no_sleep():
    """Skip real backoff delays"""
    with patch("ecoquest.resilience.retry.asyncio.sleep", new=AsyncMock()) as mock_sleep:
        yield mock_sleep


def test_is_retryable_error_timeout():
    """Test that timeout errors are retryable"""
    assert is_retryable_error(httpx.TimeoutException("Timeout")) == True
    assert is_retryable_error(httpx.ConnectTimeout("Connect timeout")) == True
    assert is_retryable_error(httpx.ConnectError("Refused")) == True


def test_is_retryable_error_http_status():
    """Test that certain HTTP status codes are retryable"""
    retryable_codes = [429, 500, 502, 503, 504]
    non_retryable_codes = [400, 401, 403, 404, 413]

    for code in retryable_codes:
        response = httpx.Response(code)
        error = httpx.HTTPStatusError("Error", request=None, response=response)
        assert is_retryable_error(error) == True, f"HTTP {code} should be retryable"

    for code in non_retryable_codes:
        response = httpx.Response(code)
        error = httpx.HTTPStatusError("Error", request=None, response=response)
        assert is_retryable_error(error) == False, f"HTTP {code} should not be retryable"


def test_is_retryable_error_database():
    assert is_retryable_error(psycopg.OperationalError("server closed the connection")) == True
    assert is_retryable_error(ConnectionError()) == True
    assert is_retryable_error(QueryError("constraint violated")) == False


def test_is_retryable_error_storage():
    assert is_retryable_error(StorageError("busy", status_code=503)) == True
    assert is_retryable_error(StorageError("too big", status_code=413)) == False
    assert is_retryable_error(StorageError("slow", cause=httpx.ReadTimeout("slow"))) == True


def test_is_retryable_error_non_retryable():
    """Test that non-retryable errors are identified correctly"""
    assert is_retryable_error(ValueError("Bad value")) == False
    assert is_retryable_error(RuntimeError("write rejected")) == False


def test_calculate_backoff():
    """Test exponential backoff calculation"""
    delay_0 = calculate_backoff(0)
    assert 0.45 <= delay_0 <= 0.55  # 0.5s ± 10% jitter

    delay_1 = calculate_backoff(1)
    assert 0.9 <= delay_1 <= 1.1

    delay_2 = calculate_backoff(2)
    assert 1.8 <= delay_2 <= 2.2


def test_calculate_backoff_max_delay():
    """Test that backoff respects max delay"""
    delay = calculate_backoff(20)
    assert delay <= MAX_DELAY * 1.1
    assert BASE_DELAY > 0


@pytest.mark.asyncio
async def test_retry_with_backoff_success_first_try(no_sleep):
    """Test that function succeeds on first try"""
    func = AsyncMock(return_value="saved")

    result = await retry_with_backoff(func, "snapshot", max_retries=3)

    assert result == "saved"
    func.assert_awaited_once_with("snapshot")
    no_sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_retry_with_backoff_success_after_retries():
    """Test that function succeeds after some retries"""
    attempt = 0

    async def flaky_save():
        nonlocal attempt
        attempt += 1
        if attempt < 3:
            raise psycopg.OperationalError("connection dropped")
        return "saved"

    result = await retry_with_backoff(flaky_save, max_retries=3)

    assert result == "saved"
    assert attempt == 3


@pytest.mark.asyncio
async def test_retry_with_backoff_exhausted():
    """Test that retries are exhausted for persistent failures"""
    attempt = 0

    async def always_fails():
        nonlocal attempt
        attempt += 1
        raise httpx.TimeoutException("Always fails")

    with pytest.raises(httpx.TimeoutException, match="Always fails"):
        await retry_with_backoff(always_fails, max_retries=3, target="storage")

    # initial + 3 retries
    assert attempt == 4


@pytest.mark.asyncio
async def test_retry_with_backoff_non_retryable_error():
    """Test that non-retryable errors are not retried"""
    func = AsyncMock(side_effect=ValueError("Non-retryable error"))

    with pytest.raises(ValueError, match="Non-retryable error"):
        await retry_with_backoff(func, max_retries=3)

    assert func.await_count == 1


@pytest.mark.asyncio
async def test_retry_with_zero_retries():
    func = AsyncMock(side_effect=httpx.TimeoutException("slow"))

    with pytest.raises(httpx.TimeoutException):
        await retry_with_backoff(func, max_retries=0)

    assert func.await_count == 1

