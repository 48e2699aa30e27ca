"""
Unit tests for retry strategies.
"""

import pytest

from knowledge_rag.utils.retry_strategies import RetryConfig, create_retry_decorator


def test_retry_config_defaults():
    config = RetryConfig()
    assert config.max_attempts == 3
    assert config.initial_delay == 1.0
    assert config.retryable_exceptions == (Exception,)


@pytest.mark.asyncio
async def test_async_call_retried_until_success():
    calls = {"n": 0}
    retry = create_retry_decorator(
        RetryConfig(max_attempts=3, initial_delay=0.0, max_delay=0.0, retryable_exceptions=(ConnectionError,))
    )

    @retry
    async def flaky() -> str:
        calls["n"] += 1
        if calls["n"] < 3:
            raise ConnectionError("transient")
        return "ok"

    assert await flaky() == "ok"
    assert calls["n"] == 3


@pytest.mark.asyncio
async def test_final_failure_is_reraised_unchanged():
    retry = create_retry_decorator(RetryConfig(max_attempts=2, initial_delay=0.0, max_delay=0.0))

    @retry
    async def always_fails() -> None:
        raise TimeoutError("still down")

    with pytest.raises(TimeoutError):
        await always_fails()


@pytest.mark.asyncio
async def test_non_retryable_exception_fails_fast():
    calls = {"n": 0}
    retry = create_retry_decorator(
        RetryConfig(max_attempts=5, initial_delay=0.0, max_delay=0.0, retryable_exceptions=(ConnectionError,))
    )

    @retry
    async def bad_input() -> None:
        calls["n"] += 1
        raise ValueError("bad")

    with pytest.raises(ValueError):
        await bad_input()
    assert calls["n"] == 1

