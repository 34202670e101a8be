"""
Wait-for-state engine for eventually-consistent AWS resources.

A StateWaiter polls a refresh function until the observed status reaches a
target set, leaves the pending set, or the time budget runs out. Refresh
functions return `(observed_object, status)`; they report an object that no
longer exists as `(None, STATUS_NOT_FOUND)` and raise for everything else
that went wrong.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Iterable, Optional, Tuple

from .errors import (
    STATUS_NOT_FOUND,
    ReconcileCancelledError,
    UnexpectedStatusError,
    WaitTimeoutError,
)

logger = logging.getLogger(__name__)

RefreshFunc = Callable[[], Awaitable[Tuple[Any, str]]]
ReasonFunc = Callable[[Any], Optional[str]]


class StateWaiter:
    """
    Poll a resource until it reaches a target status.

    Polling starts after an optional delay, then repeats at an interval that
    starts at min_interval and doubles up to max_interval. Two polls are
    never closer together than min_interval. The budget covers the initial
    delay; it is fixed when wait() starts and never extended.

    An empty target set means "wait for the object to disappear": the wait
    succeeds as soon as the refresh function reports STATUS_NOT_FOUND.

    The polls counter is reset by each wait(), so one instance serves one
    wait at a time. Reconcilers build a fresh waiter per wait.
    """

    def __init__(
        self,
        pending: Iterable[str],
        target: Iterable[str],
        refresh: RefreshFunc,
        timeout: float,
        min_interval: float = 10.0,
        max_interval: float = 10.0,
        delay: float = 0.0,
        not_found_checks: int = 20,
        reason: Optional[ReasonFunc] = None,
        cancel_event: Optional[asyncio.Event] = None,
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    ):
        """
        Initialize state waiter.

        Args:
            pending: Statuses that mean "still in progress"
            target: Statuses that mean "arrived"; empty waits for disappearance
            refresh: Coroutine function returning (observed_object, status)
            timeout: Total budget in seconds, including the initial delay
            min_interval: Minimum seconds between two polls
            max_interval: Cap on the growing poll interval
            delay: Seconds to wait before the first poll
            not_found_checks: Consecutive not-found polls tolerated while a
                target status is expected
            reason: Extracts the vendor failure reason from an observed object
            cancel_event: Stops the wait before its next poll once set
            resource_type: Resource type for error context
            resource_id: Resource identity for error context
            clock: Monotonic clock returning seconds
            sleep: Coroutine function used to wait between polls
        """
        self.pending = frozenset(pending)
        self.target = frozenset(target)
        self.refresh = refresh
        self.timeout = timeout
        self.min_interval = min_interval
        self.max_interval = max(max_interval, min_interval)
        self.delay = delay
        self.not_found_checks = not_found_checks
        self.reason = reason
        self.cancel_event = cancel_event
        self.resource_type = resource_type
        self.resource_id = resource_id
        self._clock = clock
        self._sleep = sleep

        self.polls = 0
        self.last_status: Optional[str] = None
        self.last_reason: Optional[str] = None

    def _describe_target(self) -> str:
        if not self.target:
            return 'absent'
        return ', '.join(sorted(self.target))

    def _context(self) -> dict:
        return {
            'resource_type': self.resource_type,
            'resource_id': self.resource_id,
            'status': self.last_status,
        }

    def _check_cancelled(self) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise ReconcileCancelledError(
                f"Wait for {self._describe_target()} cancelled after {self.polls} polls",
                **self._context()
            )

    async def _pause(self, seconds: float) -> None:
        """Sleep, waking early if the cancel event is set."""
        if self.cancel_event is None:
            await self._sleep(seconds)
            return

        sleeper = asyncio.ensure_future(self._sleep(seconds))
        canceller = asyncio.ensure_future(self.cancel_event.wait())
        try:
            await asyncio.wait(
                {sleeper, canceller},
                return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            for task in (sleeper, canceller):
                if not task.done():
                    task.cancel()
        self._check_cancelled()

    def _timeout_error(self) -> WaitTimeoutError:
        return WaitTimeoutError(
            f"Timeout while waiting for state to become '{self._describe_target()}' "
            f"(last state: '{self.last_status}', timeout: {self.timeout}s)",
            timeout=self.timeout,
            reason=self.last_reason,
            **self._context()
        )

    async def wait(self) -> Any:
        """
        Poll until a terminal outcome is reached.

        Returns:
            The observed object once its status is in the target set, or
            None once the object disappeared when the target set is empty

        Raises:
            UnexpectedStatusError: Status left the pending set without
                reaching the target, or the object vanished for good
            WaitTimeoutError: Budget exhausted; carries the last status
            ReconcileCancelledError: Cancel event set
            Exception: Anything the refresh function raises
        """
        deadline = self._clock() + self.timeout
        interval = self.min_interval
        not_found = 0

        if self.delay > 0:
            await self._pause(min(self.delay, self.timeout))

        while True:
            self._check_cancelled()
            if self._clock() >= deadline:
                raise self._timeout_error()

            observed, status = await self.refresh()
            self.polls += 1
            self.last_status = status
            if observed is not None and self.reason is not None:
                self.last_reason = self.reason(observed)

            logger.debug(
                f"Poll {self.polls} of {self.resource_type} {self.resource_id}: "
                f"state '{status}', waiting for '{self._describe_target()}'"
            )

            if status in self.target:
                return observed

            if status == STATUS_NOT_FOUND and STATUS_NOT_FOUND not in self.pending:
                if not self.target:
                    return observed
                not_found += 1
                if not_found > self.not_found_checks:
                    raise UnexpectedStatusError(
                        f"Resource disappeared while waiting for state to become "
                        f"'{self._describe_target()}' ({not_found} not-found checks)",
                        **self._context()
                    )
            elif status in self.pending:
                not_found = 0
            else:
                raise UnexpectedStatusError(
                    f"Unexpected state '{status}', wanted target "
                    f"'{self._describe_target()}'",
                    reason=self.last_reason,
                    **self._context()
                )

            remaining = deadline - self._clock()
            if remaining <= interval:
                if remaining > 0:
                    await self._pause(remaining)
                raise self._timeout_error()

            await self._pause(interval)
            interval = min(interval * 2, self.max_interval)
