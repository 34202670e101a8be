"""
Retry policy for single remote calls against the AWS control plane.

A RetryPolicy re-invokes one remote call within a fixed time budget while
its errors are classified retryable, and propagates anything else
immediately. Classification is data driven: every call site passes an
ErrorClassifier holding the (code, message substring) pairs it considers
transient, so the tables can be audited and tested on their own.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Tuple, TypeVar

from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)

from .errors import FatalRequestError, TransientRequestError

logger = logging.getLogger(__name__)

T = TypeVar('T')

# Network level failures worth another attempt regardless of call site
CONNECTION_ERRORS = (
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)


def error_code(error: Exception) -> str:
    """Return the AWS error code of a ClientError, or '' for anything else."""
    if isinstance(error, ClientError):
        return error.response.get('Error', {}).get('Code', '') or ''
    return ''


def error_message(error: Exception) -> str:
    """Return the AWS error message of a ClientError, or str(error)."""
    if isinstance(error, ClientError):
        return error.response.get('Error', {}).get('Message', '') or ''
    return str(error)


def is_aws_error(error: Exception, code: str, message: str = '') -> bool:
    """
    Check whether an exception is an AWS error with a given code.

    Args:
        error: Raised exception
        code: Expected AWS error code
        message: Substring the error message must contain ('' matches any)

    Returns:
        True if the error matches
    """
    return (
        isinstance(error, ClientError)
        and error_code(error) == code
        and message in error_message(error)
    )


@dataclass(frozen=True)
class ErrorRule:
    """A retryable error: AWS error code plus a message substring."""
    code: str
    message_contains: str = ''

    def matches(self, error: Exception) -> bool:
        return is_aws_error(error, self.code, self.message_contains)


@dataclass(frozen=True)
class ErrorClassifier:
    """
    Static table of retryable errors for one call site.

    Errors not matched by any rule are fatal.

    Attributes:
        name: Table name used in log messages
        rules: Retryable (code, message substring) pairs
        retry_connection_errors: Treat network level failures as retryable
    """
    name: str
    rules: Tuple[ErrorRule, ...] = ()
    retry_connection_errors: bool = True

    def is_retryable(self, error: Exception) -> bool:
        if isinstance(error, TransientRequestError):
            return True
        if self.retry_connection_errors and isinstance(error, CONNECTION_ERRORS):
            return True
        return any(rule.matches(error) for rule in self.rules)

    def __add__(self, other: 'ErrorClassifier') -> 'ErrorClassifier':
        return ErrorClassifier(
            name=f'{self.name}+{other.name}',
            rules=self.rules + other.rules,
            retry_connection_errors=(
                self.retry_connection_errors or other.retry_connection_errors
            ),
        )


THROTTLING_ERRORS = ErrorClassifier(
    name='throttling',
    rules=(
        ErrorRule('ThrottlingException'),
        ErrorRule('Throttling'),
        ErrorRule('RequestLimitExceeded'),
        ErrorRule('TooManyRequestsException'),
    ),
)


class RetryPolicy:
    """
    Bounded-duration retry around one remote call.

    The operation is retried with exponential backoff while it raises
    retryable errors and the budget lasts. Once the budget is spent the
    policy optionally makes exactly one final unconditional attempt and
    propagates whatever that attempt produces.

    The attempts counter is reset by each run(), so one instance serves one
    call at a time. Reconcilers build a fresh policy per call.
    """

    def __init__(
        self,
        timeout: float,
        classifier: ErrorClassifier = THROTTLING_ERRORS,
        min_delay: float = 0.5,
        max_delay: float = 10.0,
        backoff: float = 2.0,
        final_attempt: bool = True,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    ):
        """
        Initialize retry policy.

        Args:
            timeout: Total retry budget in seconds
            classifier: Retryable error table for the call site
            min_delay: First backoff delay in seconds
            max_delay: Cap on the backoff delay
            backoff: Multiplier for the delay after each retry
            final_attempt: Make one unconditional attempt after the budget runs out
            clock: Monotonic clock returning seconds
            sleep: Coroutine function used to wait between attempts
        """
        self.timeout = timeout
        self.classifier = classifier
        self.min_delay = min_delay
        self.max_delay = max(max_delay, min_delay)
        self.backoff = backoff
        self.final_attempt = final_attempt
        self._clock = clock
        self._sleep = sleep
        self.attempts = 0

    @staticmethod
    def is_vendor_error(error: Exception) -> bool:
        """Check whether an exception came from the AWS SDK."""
        return isinstance(error, (BotoCoreError, ClientError))

    def wrap(self, error: Exception, action: str) -> Exception:
        """
        Convert a vendor error into the reconciler error taxonomy.

        Args:
            error: Exception raised by the AWS SDK
            action: Human readable action for the message

        Returns:
            TransientRequestError or FatalRequestError wrapping the error
        """
        if isinstance(error, (FatalRequestError, TransientRequestError)):
            return error
        code = error_code(error) or type(error).__name__
        if self.classifier.is_retryable(error):
            return TransientRequestError(f"{action} failed: {code}", original_error=error)
        return FatalRequestError(f"{action} failed: {code}", original_error=error)

    async def run(self, operation: Callable[[], Awaitable[T]], action: str = 'request') -> T:
        """
        Run an operation under this policy.

        The operation may also raise TransientRequestError itself to ask for
        another attempt (used to wait out eventually-consistent reads).

        Args:
            operation: Coroutine function performing one remote call
            action: Human readable action for logs and errors

        Returns:
            Result of the first successful attempt

        Raises:
            FatalRequestError: On the first non-retryable vendor error
            TransientRequestError: When the budget is exhausted and the final
                attempt is disabled, or the final attempt fails transiently
        """
        deadline = self._clock() + self.timeout
        delay = self.min_delay
        last_error = None
        self.attempts = 0

        while True:
            self.attempts += 1
            try:
                return await operation()
            except Exception as e:
                if not (self.is_vendor_error(e) or isinstance(e, TransientRequestError)):
                    raise
                if not self.classifier.is_retryable(e):
                    logger.error(f"{action} failed with non-retryable error: {e}")
                    raise self.wrap(e, action) from e
                last_error = e

            remaining = deadline - self._clock()
            if remaining <= delay:
                if remaining > 0:
                    await self._sleep(remaining)
                break

            logger.warning(
                f"Attempt {self.attempts} of {action} failed: {last_error}. "
                f"Retrying in {delay}s..."
            )
            await self._sleep(delay)
            delay = min(delay * self.backoff, self.max_delay)

        if self.final_attempt:
            logger.warning(
                f"{action} retry budget of {self.timeout}s exhausted after "
                f"{self.attempts} attempts, making one final attempt"
            )
            self.attempts += 1
            try:
                return await operation()
            except Exception as e:
                if self.is_vendor_error(e):
                    raise self.wrap(e, action) from e
                raise

        logger.error(f"{action} did not succeed within {self.timeout}s")
        if isinstance(last_error, TransientRequestError):
            raise last_error
        raise TransientRequestError(
            f"{action} did not succeed within {self.timeout}s",
            original_error=last_error
        ) from last_error


# Only TransientRequestError raised by the operation itself is retried
CONDITION_NOT_MET = ErrorClassifier(name='condition', retry_connection_errors=False)


async def retry_until(
    operation: Callable[[], Awaitable[T]],
    timeout: float,
    action: str = 'condition check',
    **policy_kwargs: Any
) -> T:
    """
    Re-run a check until it stops asking for another attempt.

    Used for eventually-consistent reads: the operation raises
    TransientRequestError while the condition does not hold yet and returns
    normally once it does. Vendor errors from the operation are fatal.

    Args:
        operation: Coroutine function checking the condition
        timeout: Budget in seconds
        action: Human readable action for logs and errors
        **policy_kwargs: Further RetryPolicy arguments (delays, final_attempt, ...)

    Returns:
        Result of the first check that succeeded
    """
    policy = RetryPolicy(timeout, classifier=CONDITION_NOT_MET, **policy_kwargs)
    return await policy.run(operation, action=action)
