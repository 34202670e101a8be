"""
Base reconciler abstract class for AWS resource lifecycles.

This module defines the common reconciler configuration and the interface
every resource reconciler implements (create, read, update, delete),
together with the generic reconcile() driver built on top of it.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Tuple, Type

from pydantic import BaseModel

from awsreconcile.models.enums import ResourceType
from awsreconcile.utils.async_utils import gather_with_limit

from .errors import (
    ReconcilerConfigError,
    ReconcilerException,
    TransientRequestError,
)
from .retry import (
    CONDITION_NOT_MET,
    ErrorClassifier,
    RetryPolicy,
    THROTTLING_ERRORS,
    error_code,
)
from .state import ResourceData
from .waiter import ReasonFunc, RefreshFunc, StateWaiter

logger = logging.getLogger(__name__)


@dataclass
class ReconcilerConfig:
    """
    Common configuration for all reconcilers.

    Attributes:
        region: AWS region
        credentials: AWS credential dictionary
        dry_run: If True, log requests without executing them
        tags: Default tags applied to every resource at creation
        concurrency: Maximum resources reconcile_all() works on at once
        timeouts: Wait budgets in seconds keyed by '<resource_type>.<operation>'
            or '<operation>'; unset keys fall back to the reconciler defaults
        poll_min_interval: Minimum seconds between two status polls
        poll_max_interval: Cap on the growing poll interval
        not_found_checks: Consecutive not-found polls tolerated while waiting
            for a target status
        retry_min_delay: First retry backoff in seconds
        retry_max_delay: Cap on the retry backoff
        retry_final_attempt: Make one unconditional attempt once the retry
            budget is exhausted
        cancel_event: Event that stops wait loops before their next poll
        clock: Monotonic clock used for retry and wait budgets
        sleep: Coroutine function used to wait between attempts and polls
    """
    region: Optional[str] = None
    credentials: Dict[str, Any] = field(default_factory=dict)
    dry_run: bool = False
    tags: Dict[str, str] = field(default_factory=dict)
    concurrency: int = 5
    timeouts: Dict[str, float] = field(default_factory=dict)
    poll_min_interval: float = 10.0
    poll_max_interval: float = 10.0
    not_found_checks: int = 20
    retry_min_delay: float = 0.5
    retry_max_delay: float = 10.0
    retry_final_attempt: bool = True
    cancel_event: Optional[asyncio.Event] = None
    clock: Callable[[], float] = time.monotonic
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep

    @classmethod
    def from_config(cls, config_class: Any, **overrides: Any) -> 'ReconcilerConfig':
        """
        Build a reconciler configuration from a Config class.

        Args:
            config_class: Class from awsreconcile.config
            **overrides: Field values taking precedence over the class

        Returns:
            ReconcilerConfig instance
        """
        emr = ResourceType.EMR_CLUSTER.value
        credentials = {
            'aws_access_key_id': config_class.AWS_ACCESS_KEY_ID,
            'aws_secret_access_key': config_class.AWS_SECRET_ACCESS_KEY,
            'aws_session_token': config_class.AWS_SESSION_TOKEN,
        }
        values = {
            'region': config_class.AWS_REGION,
            'credentials': {k: v for k, v in credentials.items() if v},
            'dry_run': config_class.DRY_RUN,
            'concurrency': config_class.RECONCILE_CONCURRENCY,
            'timeouts': {
                'create': config_class.CREATE_TIMEOUT,
                'update': config_class.UPDATE_TIMEOUT,
                'delete': config_class.DELETE_TIMEOUT,
                f'{emr}.create': config_class.EMR_CREATE_TIMEOUT,
                f'{emr}.create_delay': config_class.EMR_CREATE_DELAY,
                f'{emr}.update': config_class.EMR_UPDATE_TIMEOUT,
                f'{emr}.delete': config_class.EMR_DELETE_TIMEOUT,
                f'{emr}.run_job_flow': config_class.EMR_RUN_JOB_FLOW_RETRY_TIMEOUT,
            },
            'poll_min_interval': config_class.POLL_MIN_INTERVAL,
            'poll_max_interval': config_class.POLL_MAX_INTERVAL,
            'not_found_checks': config_class.NOT_FOUND_CHECKS,
            'retry_min_delay': config_class.RETRY_MIN_DELAY,
            'retry_max_delay': config_class.RETRY_MAX_DELAY,
            'retry_final_attempt': config_class.RETRY_FINAL_ATTEMPT,
        }
        values.update(overrides)
        return cls(**values)


class BaseReconciler(ABC):
    """
    Abstract base class for AWS resource reconcilers.

    A reconciler drives one resource's lifecycle against the AWS control
    plane. Reconcilers hold no state about the resources they manage: the
    identity, desired configuration and observed state all live in the
    ResourceData passed to each call, so one reconciler instance may serve
    many resources as long as each call is awaited to completion.
    """

    resource_type: ResourceType
    config_model: Type[BaseModel]

    # Wait budgets in seconds, overridable through ReconcilerConfig.timeouts
    DEFAULT_TIMEOUTS: Dict[str, float] = {
        'create': 300,
        'update': 300,
        'delete': 300,
    }

    def __init__(self, client: Any, config: Optional[ReconcilerConfig] = None):
        """
        Initialize reconciler.

        Args:
            client: Remote client exposing `async call(service, operation, **params)`
            config: Reconciler configuration
        """
        self.client = client
        self.config = config or ReconcilerConfig()

    def new_resource(self, desired: BaseModel, resource_id: Optional[str] = None) -> ResourceData:
        """
        Wrap a desired configuration for this reconciler.

        Args:
            desired: Desired configuration model
            resource_id: Existing identity, for resources created earlier

        Returns:
            ResourceData ready to pass to reconcile()
        """
        if not isinstance(desired, self.config_model):
            raise ReconcilerConfigError(
                f"Expected {self.config_model.__name__}, got {type(desired).__name__}",
                resource_type=self.resource_type.value
            )
        return ResourceData(desired, resource_id=resource_id)

    @abstractmethod
    async def create(self, data: ResourceData) -> None:
        """
        Create the remote object and wait until it is usable.

        Sets data.id and populates the observed state.

        Raises:
            ReconcilerException: If creation fails
        """
        pass

    @abstractmethod
    async def read(self, data: ResourceData) -> bool:
        """
        Refresh the observed state of the remote object.

        Returns:
            True if the object exists; False if it is gone, in which case
            the identity has been cleared

        Raises:
            ReconcilerException: If the read fails
        """
        pass

    @abstractmethod
    async def update(self, data: ResourceData) -> None:
        """
        Apply changed facets of the desired configuration in place.

        Raises:
            ReconcilerException: If any facet update fails
        """
        pass

    @abstractmethod
    async def delete(self, data: ResourceData) -> None:
        """
        Delete the remote object and wait for it to disappear.

        Deleting an object that is already gone succeeds.

        Raises:
            ReconcilerException: If deletion fails or times out
        """
        pass

    async def reconcile(self, data: ResourceData) -> ResourceData:
        """
        Drive the remote object towards the desired configuration.

        Creates the object when it has no identity (or has vanished),
        replaces it when a force-new field changed, and updates it in place
        when any other field changed.

        Args:
            data: Resource data holding desired configuration and identity

        Returns:
            The same ResourceData with a fresh observed state
        """
        kind = self.resource_type.value

        if data.id is None:
            logger.info(f"Creating {kind}")
            await self.create(data)
            return data

        if not await self.read(data):
            logger.info(f"{kind} no longer exists, recreating")
            await self.create(data)
            return data

        replace_fields = data.force_new_changes()
        if replace_fields:
            logger.info(
                f"Replacing {kind} {data.id}: changed {', '.join(replace_fields)}"
            )
            await self.delete(data)
            await self.create(data)
        elif data.changed_fields():
            logger.info(
                f"Updating {kind} {data.id}: changed {', '.join(data.changed_fields())}"
            )
            await self.update(data)
        else:
            logger.debug(f"{kind} {data.id} is up to date")

        return data

    def resource_gone(self, data: ResourceData) -> bool:
        """
        Handle a read that found no remote object.

        Clears the identity and returns False, except right after creation
        where a missing object is an error.

        Raises:
            TransientRequestError: Object not visible yet after creation
        """
        kind = self.resource_type.value
        if data.is_new_resource:
            raise TransientRequestError(
                f"{kind} not found right after creation",
                resource_type=kind,
                resource_id=data.id
            )
        logger.warning(f"{kind} ({data.id}) not found, removing from state")
        data.clear()
        return False

    def timeout(self, operation: str) -> float:
        """
        Resolve the wait budget for an operation.

        Args:
            operation: Operation name (create, update, delete, ...)

        Returns:
            Budget in seconds
        """
        timeouts = self.config.timeouts
        specific = f'{self.resource_type.value}.{operation}'
        if specific in timeouts:
            return timeouts[specific]
        if operation in timeouts:
            return timeouts[operation]
        return self.DEFAULT_TIMEOUTS[operation]

    def new_waiter(
        self,
        data: ResourceData,
        pending: Iterable[str],
        target: Iterable[str],
        refresh: RefreshFunc,
        timeout: float,
        delay: float = 0.0,
        min_interval: Optional[float] = None,
        reason: Optional[ReasonFunc] = None
    ) -> StateWaiter:
        """Build a StateWaiter with this reconciler's polling settings."""
        return StateWaiter(
            reason=reason,
            pending=pending,
            target=target,
            refresh=refresh,
            timeout=timeout,
            min_interval=(
                self.config.poll_min_interval if min_interval is None else min_interval
            ),
            max_interval=self.config.poll_max_interval,
            delay=delay,
            not_found_checks=self.config.not_found_checks,
            cancel_event=self.config.cancel_event,
            resource_type=self.resource_type.value,
            resource_id=data.id,
            clock=self.config.clock,
            sleep=self.config.sleep,
        )

    def new_retry_policy(
        self,
        timeout: float,
        classifier: ErrorClassifier = THROTTLING_ERRORS
    ) -> RetryPolicy:
        """Build a RetryPolicy with this reconciler's backoff settings."""
        return RetryPolicy(
            timeout=timeout,
            classifier=classifier,
            min_delay=self.config.retry_min_delay,
            max_delay=self.config.retry_max_delay,
            final_attempt=self.config.retry_final_attempt,
            clock=self.config.clock,
            sleep=self.config.sleep,
        )

    async def retry_until(
        self,
        operation: Callable[[], Awaitable[Any]],
        timeout: float,
        action: str
    ) -> Any:
        """Re-run a check raising TransientRequestError until it passes."""
        policy = self.new_retry_policy(timeout, CONDITION_NOT_MET)
        return await policy.run(operation, action=action)

    async def call(
        self,
        service: str,
        operation: str,
        action: str,
        data: Optional[ResourceData] = None,
        retry_timeout: Optional[float] = None,
        classifier: ErrorClassifier = THROTTLING_ERRORS,
        **params: Any
    ) -> Dict[str, Any]:
        """
        Issue one remote call, optionally under a retry policy.

        Vendor errors are wrapped into FatalRequestError or
        TransientRequestError carrying this resource's context.

        Args:
            service: AWS service name (emr, cloudtrail, ssm)
            operation: Client method name (run_job_flow, ...)
            action: Human readable action for error messages
            data: Resource the call is about, for error context
            retry_timeout: Retry budget in seconds; None issues a single attempt
            classifier: Retryable error table for this call site
            **params: Request parameters

        Returns:
            Response dictionary
        """
        async def attempt():
            return await self.client.call(service, operation, **params)

        try:
            if retry_timeout:
                policy = self.new_retry_policy(retry_timeout, classifier)
                return await policy.run(attempt, action=action)
            return await attempt()
        except ReconcilerException as e:
            e.resource_type = e.resource_type or self.resource_type.value
            e.resource_id = e.resource_id or (data.id if data else None)
            raise
        except Exception as e:
            if not RetryPolicy.is_vendor_error(e):
                raise
            raise self.request_error(e, action, data, classifier) from e

    async def send(
        self,
        service: str,
        operation: str,
        action: str,
        data: Optional[ResourceData] = None,
        **params: Any
    ) -> Optional[Dict[str, Any]]:
        """
        Issue one mutating call unless running in dry-run mode.

        Accepts the same arguments as call().

        Returns:
            Response dictionary, or None when the call was skipped
        """
        request = {
            k: v for k, v in params.items() if k not in ('retry_timeout', 'classifier')
        }
        if self.dry_run(action, request):
            return None
        return await self.call(service, operation, action, data, **params)

    def request_error(
        self,
        error: Exception,
        action: str,
        data: Optional[ResourceData] = None,
        classifier: ErrorClassifier = THROTTLING_ERRORS
    ) -> ReconcilerException:
        """Wrap a vendor error as FatalRequestError or TransientRequestError."""
        wrapped = RetryPolicy(0, classifier).wrap(error, action)
        wrapped.resource_type = wrapped.resource_type or self.resource_type.value
        wrapped.resource_id = wrapped.resource_id or (data.id if data else None)
        return wrapped

    def refresh_error(
        self,
        error: Exception,
        action: str,
        data: ResourceData
    ) -> TransientRequestError:
        """Wrap a vendor error raised while polling for a status."""
        logger.warning(f"Error {action} ({data.id}) while waiting: {error}")
        return TransientRequestError(
            f"Error {action}: {error_code(error) or type(error).__name__}",
            resource_type=self.resource_type.value,
            resource_id=data.id,
            original_error=error
        )

    def dry_run(self, action: str, params: Dict[str, Any]) -> bool:
        """Log a skipped request when running in dry-run mode."""
        if self.config.dry_run:
            logger.info(f"[DRY RUN] Would {action}: {params}")
            return True
        return False


def get_reconciler(
    resource_type: Any,
    client: Any,
    config: Optional[ReconcilerConfig] = None
) -> BaseReconciler:
    """
    Factory function to instantiate the reconciler for a resource type.

    Args:
        resource_type: ResourceType or its value (aws_emr_cluster, ...)
        client: Remote client shared by all reconcilers
        config: Reconciler configuration

    Returns:
        Instantiated reconciler

    Raises:
        ReconcilerConfigError: If resource_type is unknown

    Examples:
        >>> async with AWSClient(region='us-east-1') as client:
        ...     reconciler = get_reconciler('aws_ssm_maintenance_window', client)
        ...     await reconciler.reconcile(reconciler.new_resource(window_config))
    """
    try:
        resource_type = ResourceType(resource_type)
    except ValueError:
        raise ReconcilerConfigError(
            f"Unknown resource type: {resource_type}",
            resource_type=str(resource_type)
        )

    # Import reconcilers lazily to avoid circular dependencies
    if resource_type == ResourceType.EMR_CLUSTER:
        from .emr import EMRClusterReconciler
        return EMRClusterReconciler(client, config)
    elif resource_type == ResourceType.CLOUDTRAIL_EVENT_DATA_STORE:
        from .cloudtrail import EventDataStoreReconciler
        return EventDataStoreReconciler(client, config)
    else:
        from .ssm import MaintenanceWindowReconciler
        return MaintenanceWindowReconciler(client, config)


async def reconcile_all(
    pairs: Iterable[Tuple[BaseReconciler, ResourceData]],
    limit: Optional[int] = None
) -> List[Any]:
    """
    Reconcile independent resources concurrently.

    One failing resource does not stop the others: its exception is returned
    in place of its ResourceData.

    Args:
        pairs: (reconciler, resource data) pairs
        limit: Maximum resources reconciled at the same time; defaults to the
            smallest concurrency among the reconcilers' configurations

    Returns:
        ResourceData or exception per pair, in input order
    """
    pairs = list(pairs)
    if limit is None:
        limit = min((reconciler.config.concurrency for reconciler, _ in pairs), default=5)
    results = await gather_with_limit(
        [reconciler.reconcile(data) for reconciler, data in pairs],
        limit=limit,
        return_exceptions=True
    )
    failed = [r for r in results if isinstance(r, Exception)]
    if failed:
        logger.error(f"{len(failed)} of {len(pairs)} resources failed to reconcile")
    return results
