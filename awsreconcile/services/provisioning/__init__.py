"""
Provisioning services for AWS resources.

This package provides the reconciliation engine (retry policy, wait-for-state
engine, resource data store) and the reconcilers built on it.

Supported resource types:
- aws_emr_cluster (Amazon EMR)
- aws_cloudtrail_event_data_store (CloudTrail Lake)
- aws_ssm_maintenance_window (Systems Manager)
"""

from .base import (
    BaseReconciler,
    ReconcilerConfig,
    get_reconciler,
    reconcile_all,
)
from .client import AWSClient
from .errors import (
    STATUS_NOT_FOUND,
    FatalRequestError,
    ReconcileCancelledError,
    ReconcilerConfigError,
    ReconcilerException,
    StatusMissingError,
    TransientRequestError,
    UnexpectedStatusError,
    WaitTimeoutError,
)
from .retry import ErrorClassifier, ErrorRule, RetryPolicy, retry_until
from .state import ResourceData
from .waiter import StateWaiter

__all__ = [
    'AWSClient',
    'BaseReconciler',
    'ErrorClassifier',
    'ErrorRule',
    'FatalRequestError',
    'ReconcileCancelledError',
    'ReconcilerConfig',
    'ReconcilerConfigError',
    'ReconcilerException',
    'ResourceData',
    'RetryPolicy',
    'STATUS_NOT_FOUND',
    'StateWaiter',
    'StatusMissingError',
    'TransientRequestError',
    'UnexpectedStatusError',
    'WaitTimeoutError',
    'get_reconciler',
    'reconcile_all',
    'retry_until',
]
