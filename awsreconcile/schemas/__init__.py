"""Pydantic models describing the desired configuration of each resource kind."""

from .cloudtrail import AdvancedEventSelector, EventDataStoreConfig, FieldSelector
from .emr import (
    BootstrapAction,
    EbsVolumeConfig,
    Ec2Attributes,
    EMRClusterConfig,
    InstanceGroupConfig,
)
from .ssm import MaintenanceWindowConfig

__all__ = [
    'AdvancedEventSelector',
    'BootstrapAction',
    'EbsVolumeConfig',
    'Ec2Attributes',
    'EMRClusterConfig',
    'EventDataStoreConfig',
    'FieldSelector',
    'InstanceGroupConfig',
    'MaintenanceWindowConfig',
]
