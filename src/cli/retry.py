"""Retry utilities with exponential backoff."""

import logging

import structlog
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = structlog.stdlib.get_logger(__name__)


def action_retrying(
    max_attempts: int = 3,
    min_wait: float = 0.5,
    max_wait: float = 5.0,
    no_retry: tuple = (),
) -> AsyncRetrying:
    """Async retry controller for action executors.

    Usage::

        async for attempt in action_retrying():
            with attempt:
                await executor.execute(action, context)

    Args:
        max_attempts: Max attempts, including the first
        min_wait: Min wait between retries (seconds)
        max_wait: Max wait between retries (seconds)
        no_retry: Exception types that fail immediately
    """
    return AsyncRetrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=min_wait, min=min_wait, max=max_wait),
        retry=retry_if_not_exception_type(no_retry) if no_retry else retry_if_exception_type(),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )


def retry_settings(config: dict) -> dict:
    """Read action retry settings from the config's retry section."""
    retry_config = config.get("retry", {})
    return {
        "max_attempts": retry_config.get("max_attempts", 3),
        "min_wait": retry_config.get("min_wait", 0.5),
        "max_wait": retry_config.get("max_wait", 5.0),
    }
