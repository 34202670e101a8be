"""AWS Resource Status Enumeration Types"""

from enum import Enum


class ResourceType(Enum):
    """Supported resource types"""
    EMR_CLUSTER = "aws_emr_cluster"
    CLOUDTRAIL_EVENT_DATA_STORE = "aws_cloudtrail_event_data_store"
    SSM_MAINTENANCE_WINDOW = "aws_ssm_maintenance_window"


class ClusterState(str, Enum):
    """EMR cluster states"""
    STARTING = "STARTING"
    BOOTSTRAPPING = "BOOTSTRAPPING"
    RUNNING = "RUNNING"
    WAITING = "WAITING"
    TERMINATING = "TERMINATING"
    TERMINATED = "TERMINATED"
    TERMINATED_WITH_ERRORS = "TERMINATED_WITH_ERRORS"


class InstanceGroupState(str, Enum):
    """EMR instance group states"""
    PROVISIONING = "PROVISIONING"
    BOOTSTRAPPING = "BOOTSTRAPPING"
    RUNNING = "RUNNING"
    RECONFIGURING = "RECONFIGURING"
    RESIZING = "RESIZING"
    SUSPENDED = "SUSPENDED"
    TERMINATING = "TERMINATING"
    TERMINATED = "TERMINATED"
    ARRESTED = "ARRESTED"
    SHUTTING_DOWN = "SHUTTING_DOWN"
    ENDED = "ENDED"


class InstanceRoleType(str, Enum):
    """EMR instance group roles"""
    MASTER = "MASTER"
    CORE = "CORE"
    TASK = "TASK"


class EventDataStoreStatus(str, Enum):
    """CloudTrail event data store statuses"""
    CREATED = "CREATED"
    ENABLED = "ENABLED"
    PENDING_DELETION = "PENDING_DELETION"
