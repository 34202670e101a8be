"""Pydantic schemas for Amazon EMR cluster configuration."""

import json
from typing import Dict, List, Optional

from pydantic import Field, field_validator

from .common import FORCE_NEW, IGNORE_CHANGES, ResourceConfig


def _validate_json(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    try:
        json.loads(value)
    except ValueError as e:
        raise ValueError(f"must be valid JSON: {e}") from e
    return value


class EbsVolumeConfig(ResourceConfig):
    """EBS volumes attached to every instance of an instance group."""

    size: int = Field(..., gt=0, description="Volume size in GiB")
    volume_type: str = Field("gp3", description="EBS volume type")
    iops: Optional[int] = Field(None, gt=0, description="Provisioned IOPS")
    throughput: Optional[int] = Field(None, gt=0, description="Throughput in MiB/s (gp3)")
    volumes_per_instance: int = Field(1, ge=1, description="Volumes per instance")


class InstanceGroupConfig(ResourceConfig):
    """Master or core instance group.

    Attributes:
        instance_type: EC2 instance type
        instance_count: Number of instances; the only in-place updatable
            setting of the core group besides its autoscaling policy
        name: Friendly name of the group
        bid_price: Spot bid price; on-demand when unset
        ebs_config: EBS volumes per instance
        autoscaling_policy: Autoscaling policy document (JSON), core group only
    """

    instance_type: str = Field(
        ..., min_length=1, description="EC2 instance type",
        json_schema_extra=FORCE_NEW
    )
    instance_count: int = Field(1, ge=1, description="Number of instances")
    name: Optional[str] = Field(
        None, description="Instance group name", json_schema_extra=FORCE_NEW
    )
    bid_price: Optional[str] = Field(
        None, description="Spot bid price in USD", json_schema_extra=FORCE_NEW
    )
    ebs_config: List[EbsVolumeConfig] = Field(
        default_factory=list, description="EBS volumes",
        json_schema_extra=FORCE_NEW
    )
    autoscaling_policy: Optional[str] = Field(
        None, description="Autoscaling policy JSON"
    )

    @field_validator('autoscaling_policy')
    @classmethod
    def validate_policy(cls, v: Optional[str]) -> Optional[str]:
        return _validate_json(v)


class Ec2Attributes(ResourceConfig):
    """Network placement and access of the cluster instances."""

    key_name: Optional[str] = Field(None, description="EC2 key pair name")
    subnet_id: Optional[str] = Field(None, description="Subnet to launch into")
    emr_managed_master_security_group: Optional[str] = Field(
        None, description="Managed security group for the master node"
    )
    emr_managed_slave_security_group: Optional[str] = Field(
        None, description="Managed security group for core and task nodes"
    )
    service_access_security_group: Optional[str] = Field(
        None, description="Security group for EMR service access (private subnets)"
    )
    additional_master_security_groups: List[str] = Field(
        default_factory=list, description="Additional master security groups"
    )
    additional_slave_security_groups: List[str] = Field(
        default_factory=list, description="Additional core and task security groups"
    )


class BootstrapAction(ResourceConfig):
    """Script run on every node before applications start."""

    name: str = Field(..., min_length=1, description="Bootstrap action name")
    path: str = Field(..., min_length=1, description="Script location (s3://...)")
    args: List[str] = Field(default_factory=list, description="Script arguments")


class EMRClusterConfig(ResourceConfig):
    """Desired configuration of an EMR cluster.

    Most settings are fixed at cluster creation; changing them replaces the
    cluster. In-place updates cover the core instance count, the core
    autoscaling policy, step concurrency, termination protection and
    visibility.
    """

    name: str = Field(
        ..., min_length=1, max_length=256, description="Cluster name",
        json_schema_extra=FORCE_NEW
    )
    release_label: str = Field(
        ..., min_length=1, description="EMR release (emr-6.15.0)",
        json_schema_extra=FORCE_NEW
    )
    applications: List[str] = Field(
        default_factory=list, description="Applications to install (Spark, Hadoop, ...)",
        json_schema_extra=FORCE_NEW
    )
    service_role: str = Field(
        ..., min_length=1, description="IAM role assumed by the EMR service",
        json_schema_extra=FORCE_NEW
    )
    instance_profile: Optional[str] = Field(
        None, description="EC2 instance profile (job flow role)",
        json_schema_extra=FORCE_NEW
    )
    log_uri: Optional[str] = Field(
        None, description="S3 location for cluster logs", json_schema_extra=FORCE_NEW
    )
    autoscaling_role: Optional[str] = Field(
        None, description="IAM role for automatic scaling", json_schema_extra=FORCE_NEW
    )
    security_configuration: Optional[str] = Field(
        None, description="Security configuration name", json_schema_extra=FORCE_NEW
    )
    scale_down_behavior: Optional[str] = Field(
        None, description="TERMINATE_AT_INSTANCE_HOUR or TERMINATE_AT_TASK_COMPLETION",
        json_schema_extra=FORCE_NEW
    )
    ebs_root_volume_size: Optional[int] = Field(
        None, gt=0, description="Root volume size in GiB", json_schema_extra=FORCE_NEW
    )
    custom_ami_id: Optional[str] = Field(
        None, description="Custom Amazon Linux AMI", json_schema_extra=FORCE_NEW
    )
    additional_info: Optional[str] = Field(
        None, description="Additional job flow info (JSON)", json_schema_extra=FORCE_NEW
    )
    configurations_json: Optional[str] = Field(
        None, description="Application configuration classifications (JSON list)",
        json_schema_extra=FORCE_NEW
    )
    step_concurrency_level: int = Field(
        1, ge=1, le=256, description="Number of steps that can run concurrently"
    )
    keep_job_flow_alive_when_no_steps: bool = Field(
        True, description="Keep the cluster running after its last step",
        json_schema_extra=FORCE_NEW
    )
    termination_protection: bool = Field(
        False, description="Protect the cluster from termination"
    )
    visible_to_all_users: bool = Field(
        True, description="Visible to all IAM users of the account"
    )
    ec2_attributes: Optional[Ec2Attributes] = Field(
        None, description="EC2 network attributes", json_schema_extra=FORCE_NEW
    )
    master_instance_group: InstanceGroupConfig = Field(
        ..., description="Master instance group", json_schema_extra=FORCE_NEW
    )
    core_instance_group: Optional[InstanceGroupConfig] = Field(
        None, description="Core instance group"
    )
    bootstrap_actions: List[BootstrapAction] = Field(
        default_factory=list, description="Bootstrap actions",
        json_schema_extra=FORCE_NEW
    )
    tags: Dict[str, str] = Field(
        default_factory=dict, description="Cluster tags",
        json_schema_extra=IGNORE_CHANGES
    )

    @field_validator('additional_info', 'configurations_json')
    @classmethod
    def validate_json_documents(cls, v: Optional[str]) -> Optional[str]:
        return _validate_json(v)
