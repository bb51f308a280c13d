"""
Retry wrapper for backend I/O.

Transient failures (network drops, refused connections, timeouts) are
retried with a fixed pause between attempts. Everything else fails on the
first attempt: retrying a constraint violation or a bad password only delays
the inevitable.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Iterator, Optional, Tuple, Type, TypeVar

from ..config import DEFAULT_BACKOFF_SECONDS, DEFAULT_MAX_ATTEMPTS
from ..errors import (
    AuthError,
    ConfigurationError,
    ConstraintError,
    DepsyncError,
    ExportConnectionError,
    ExportError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_KEYWORDS = ("connection", "network", "timeout", "timed out", "refused", "unreachable", "reset")

# SQLSTATE class 08: connection exception
CONNECTION_SQLSTATE_CLASS = "08"

_DEFAULT_TRANSIENT: Tuple[Type[BaseException], ...] = (ConnectionError, TimeoutError)
_DEFAULT_NON_TRANSIENT: Tuple[Type[BaseException], ...] = (ConfigurationError, ConstraintError, AuthError)


@dataclass(frozen=True)
class RetryPolicy:
    """
    How many times to try and how long to wait in between.

    Attributes:
        max_attempts: Total attempts, including the first.
        backoff_seconds: Fixed pause between attempts.
        transient_types: Extra exception types to retry (e.g. a driver's
            "service unavailable" error).
        non_transient_types: Extra exception types that must never be
            retried. These win over transient types anywhere in the chain.
    """
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    backoff_seconds: float = DEFAULT_BACKOFF_SECONDS
    transient_types: Tuple[Type[BaseException], ...] = ()
    non_transient_types: Tuple[Type[BaseException], ...] = ()

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.backoff_seconds < 0:
            raise ValueError(f"backoff_seconds must be >= 0, got {self.backoff_seconds}")

    def extend(
        self,
        transient: Tuple[Type[BaseException], ...] = (),
        non_transient: Tuple[Type[BaseException], ...] = (),
    ) -> "RetryPolicy":
        """Copy with additional exception types, as contributed by a sink."""
        return RetryPolicy(
            max_attempts=self.max_attempts,
            backoff_seconds=self.backoff_seconds,
            transient_types=self.transient_types + tuple(transient),
            non_transient_types=self.non_transient_types + tuple(non_transient),
        )


def iter_causes(error: BaseException) -> Iterator[BaseException]:
    """Yield the error and every exception chained behind it."""
    seen = set()
    current: Optional[BaseException] = error
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ or current.__context__


class RetryExecutor:
    """
    Runs an operation with retry on transient failures.

    Args:
        policy: Attempts, backoff and extra classification types.
        sleep: Blocking sleep, injectable for tests.
    """

    def __init__(self, policy: Optional[RetryPolicy] = None, sleep: Callable[[float], None] = time.sleep):
        self.policy = policy or RetryPolicy()
        self._sleep = sleep

    def with_types(
        self,
        transient: Tuple[Type[BaseException], ...] = (),
        non_transient: Tuple[Type[BaseException], ...] = (),
    ) -> "RetryExecutor":
        """New executor sharing this one's sleep, with extra classification types."""
        return RetryExecutor(self.policy.extend(transient, non_transient), sleep=self._sleep)

    def execute(self, operation: Callable[[], T], description: str) -> T:
        max_attempts = self.policy.max_attempts

        for attempt in range(1, max_attempts + 1):
            try:
                result = operation()
                if attempt > 1:
                    logger.info(f"{description} succeeded on attempt {attempt}")
                return result
            except Exception as e:
                if not self.is_transient(e):
                    logger.debug(f"{description} failed with non-transient error: {e}")
                    if isinstance(e, DepsyncError):
                        raise
                    raise ExportError(f"{description} failed: {e}") from e

                if attempt < max_attempts:
                    logger.warning(
                        f"{description} failed (attempt {attempt}/{max_attempts}): {e}. "
                        f"Retrying in {self.policy.backoff_seconds}s"
                    )
                    self._sleep(self.policy.backoff_seconds)
                    continue

                logger.error(f"{description} failed after {max_attempts} attempts: {e}")
                raise ExportConnectionError(
                    f"{description} failed after {max_attempts} attempts: {e}",
                    attempts=max_attempts,
                ) from e

        # range() above always runs at least once
        raise AssertionError("unreachable")

    def is_transient(self, error: BaseException) -> bool:
        """
        Classify an error by walking its whole cause chain.

        A non-transient type anywhere in the chain wins.
        """
        chain = list(iter_causes(error))
        non_transient = _DEFAULT_NON_TRANSIENT + self.policy.non_transient_types
        if any(isinstance(e, non_transient) for e in chain):
            return False
        return any(self._is_transient_single(e) for e in chain)

    def _is_transient_single(self, error: BaseException) -> bool:
        if isinstance(error, _DEFAULT_TRANSIENT + self.policy.transient_types):
            return True
        if isinstance(error, ExportConnectionError):
            return True

        sqlstate = getattr(error, "sqlstate", None) or getattr(error, "pgcode", None)
        if isinstance(sqlstate, str) and sqlstate.startswith(CONNECTION_SQLSTATE_CLASS):
            return True

        if isinstance(error, OSError):
            message = str(error).lower()
            return any(keyword in message for keyword in TRANSIENT_KEYWORDS)
        return False
