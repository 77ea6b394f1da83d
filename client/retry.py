"""Bounded retry with exponential backoff for a single chunk transmission."""

import time
from typing import Callable, Optional, TypeVar

from common.constants import DEFAULT_MAX_RETRIES
from common.exceptions import (
    ChunkDeliveryExhaustedError,
    InvalidConfigurationError,
    TransientTransportError,
)
from common.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar('T')

ErrorObserver = Callable[[Exception, int], None]
RetryObserver = Callable[[int, float], None]


class RetryPolicy:
    """
    Runs one chunk attempt up to ``max_retries`` times.

    Waits 2 ** attempt_index seconds between attempts (1s, 2s, 4s, ...),
    without jitter or cap. Only TransientTransportError is retried.
    """

    def __init__(
        self,
        max_retries: int = DEFAULT_MAX_RETRIES,
        on_error: Optional[ErrorObserver] = None,
        on_retry: Optional[RetryObserver] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize retry policy.

        Args:
            max_retries: Total number of attempts per chunk
            on_error: Called with (last_error, chunk_index) once all attempts failed
            on_retry: Called with (attempt_index, delay) before each backoff wait
            sleep: Blocking sleep function (injectable for tests)

        Raises:
            InvalidConfigurationError: If max_retries is not a positive integer
        """
        if isinstance(max_retries, bool) or not isinstance(max_retries, int) or max_retries <= 0:
            raise InvalidConfigurationError(
                f"max_retries must be a positive integer, got {max_retries!r}"
            )
        self.max_retries = max_retries
        self.on_error = on_error
        self.on_retry = on_retry
        self._sleep = sleep

    @staticmethod
    def backoff_delay(attempt_index: int) -> float:
        """Seconds to wait after the 0-based attempt ``attempt_index`` fails."""
        return float(2 ** attempt_index)

    def execute(self, attempt: Callable[[], T], chunk_index: int) -> T:
        """
        Call ``attempt`` until it succeeds or attempts run out.

        Args:
            attempt: Zero-argument callable performing one transmission
            chunk_index: Index of the chunk being sent (for observers and logs)

        Returns:
            Whatever the successful attempt returned

        Raises:
            ChunkDeliveryExhaustedError: If every attempt raised TransientTransportError
        """
        last_error: Optional[TransientTransportError] = None

        for attempt_index in range(self.max_retries):
            try:
                return attempt()
            except TransientTransportError as e:
                last_error = e

                if attempt_index < self.max_retries - 1:
                    delay = self.backoff_delay(attempt_index)
                    logger.warning(
                        f"Chunk {chunk_index} attempt {attempt_index + 1}/{self.max_retries} failed: {e}, "
                        f"retrying in {delay:.0f}s"
                    )
                    if self.on_retry:
                        self.on_retry(attempt_index, delay)
                    self._sleep(delay)

        logger.error(
            f"Chunk {chunk_index} failed after {self.max_retries} attempt(s): {last_error}"
        )
        if self.on_error and last_error is not None:
            self.on_error(last_error, chunk_index)

        raise ChunkDeliveryExhaustedError(chunk_index, self.max_retries, last_error) from last_error
