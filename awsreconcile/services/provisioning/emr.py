"""
Amazon EMR cluster reconciler.

Creates clusters with RunJobFlow, waits for them to accept work, applies
the few settings EMR can change in place (core instance count, core
autoscaling policy, step concurrency, termination protection, visibility)
and terminates them. Everything else is fixed at creation and replaces the
cluster when it changes.
"""

import json
import logging
from collections import Counter
from typing import Any, Dict, List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from awsreconcile.models.enums import (
    ClusterState,
    InstanceGroupState,
    InstanceRoleType,
    ResourceType,
)
from awsreconcile.schemas.common import merge_tags, tags_from_list, tags_to_list
from awsreconcile.schemas.emr import (
    BootstrapAction,
    EbsVolumeConfig,
    Ec2Attributes,
    EMRClusterConfig,
    InstanceGroupConfig,
)

from .base import BaseReconciler
from .errors import (
    STATUS_NOT_FOUND,
    FatalRequestError,
    StatusMissingError,
    TransientRequestError,
)
from .retry import THROTTLING_ERRORS, ErrorClassifier, ErrorRule, is_aws_error
from .state import ResourceData, keep_unset
from .waiter import RefreshFunc

logger = logging.getLogger(__name__)

EMR = 'emr'

# IAM instance profiles take a while to become usable after creation
RUN_JOB_FLOW_ERRORS = ErrorClassifier(
    name='instance-profile-propagation',
    rules=(
        ErrorRule('ValidationException', 'Invalid InstanceProfile:'),
        ErrorRule('AccessDeniedException', 'Failed to authorize instance profile'),
    ),
) + THROTTLING_ERRORS

CREATE_PENDING = (ClusterState.STARTING.value, ClusterState.BOOTSTRAPPING.value)
CREATE_TARGET = (ClusterState.RUNNING.value, ClusterState.WAITING.value)
DELETE_PENDING = (
    ClusterState.STARTING.value,
    ClusterState.BOOTSTRAPPING.value,
    ClusterState.RUNNING.value,
    ClusterState.WAITING.value,
    ClusterState.TERMINATING.value,
)
GONE_STATES = (
    ClusterState.TERMINATED.value,
    ClusterState.TERMINATED_WITH_ERRORS.value,
)
FAILING_STATES = (
    ClusterState.TERMINATING.value,
    ClusterState.TERMINATED.value,
    ClusterState.TERMINATED_WITH_ERRORS.value,
)

GROUP_PENDING = (
    InstanceGroupState.BOOTSTRAPPING.value,
    InstanceGroupState.PROVISIONING.value,
    InstanceGroupState.RECONFIGURING.value,
    InstanceGroupState.RESIZING.value,
)
GROUP_TARGET = (InstanceGroupState.RUNNING.value,)

# Settings AWS picks on its own when the caller leaves them out
COMPUTED_CLUSTER_FIELDS = (
    'scale_down_behavior',
    'ebs_root_volume_size',
    'custom_ami_id',
    'instance_profile',
)
COMPUTED_GROUP_FIELDS = ('name', 'bid_price', 'ebs_config')
COMPUTED_EC2_FIELDS = (
    'subnet_id',
    'emr_managed_master_security_group',
    'emr_managed_slave_security_group',
    'service_access_security_group',
)


def cluster_not_found(error: Exception) -> bool:
    """Check whether an AWS error says the cluster does not exist."""
    return (
        is_aws_error(error, 'ClusterNotFound')
        or is_aws_error(error, 'InvalidRequestException', 'is not valid')
    )


def cluster_failure_reason(cluster: Dict[str, Any]) -> Optional[str]:
    """
    Describe why a cluster is shutting down.

    Args:
        cluster: Cluster description from DescribeCluster

    Returns:
        '<state>: <code>: <message>' for terminating clusters, else None
    """
    status = cluster.get('Status') or {}
    state = status.get('State')
    if state not in FAILING_STATES:
        return None
    reason = status.get('StateChangeReason')
    if not reason:
        return f"{state}: reason code and message not provided"
    return f"{state}: {reason.get('Code')}: {reason.get('Message')}"


def build_instance_group(group: InstanceGroupConfig, role: InstanceRoleType) -> Dict[str, Any]:
    """
    Build an EMR instance group request.

    Args:
        group: Instance group configuration
        role: Instance group role

    Returns:
        InstanceGroupConfig request dictionary
    """
    request = {
        'InstanceRole': role.value,
        'InstanceType': group.instance_type,
        'InstanceCount': group.instance_count,
        'Market': 'ON_DEMAND',
    }
    if group.name:
        request['Name'] = group.name
    if group.bid_price:
        request['BidPrice'] = group.bid_price
        request['Market'] = 'SPOT'
    if group.ebs_config:
        devices = []
        for volume in group.ebs_config:
            spec = {'VolumeType': volume.volume_type, 'SizeInGB': volume.size}
            if volume.iops:
                spec['Iops'] = volume.iops
            if volume.throughput:
                spec['Throughput'] = volume.throughput
            devices.append({
                'VolumeSpecification': spec,
                'VolumesPerInstance': volume.volumes_per_instance,
            })
        request['EbsConfiguration'] = {'EbsBlockDeviceConfigs': devices}
    if group.autoscaling_policy:
        request['AutoScalingPolicy'] = json.loads(group.autoscaling_policy)
    return request


def build_run_job_flow_request(
    config: EMRClusterConfig,
    tags: Dict[str, str]
) -> Dict[str, Any]:
    """
    Build the RunJobFlow request for a cluster configuration.

    Args:
        config: Desired cluster configuration
        tags: Tags to apply, defaults already merged in

    Returns:
        Request parameters
    """
    instance_groups = [
        build_instance_group(config.master_instance_group, InstanceRoleType.MASTER)
    ]
    if config.core_instance_group:
        instance_groups.append(
            build_instance_group(config.core_instance_group, InstanceRoleType.CORE)
        )

    instances: Dict[str, Any] = {
        'InstanceGroups': instance_groups,
        'KeepJobFlowAliveWhenNoSteps': config.keep_job_flow_alive_when_no_steps,
        'TerminationProtected': config.termination_protection,
    }
    ec2 = config.ec2_attributes
    if ec2:
        if ec2.key_name:
            instances['Ec2KeyName'] = ec2.key_name
        if ec2.subnet_id:
            instances['Ec2SubnetId'] = ec2.subnet_id
        if ec2.emr_managed_master_security_group:
            instances['EmrManagedMasterSecurityGroup'] = ec2.emr_managed_master_security_group
        if ec2.emr_managed_slave_security_group:
            instances['EmrManagedSlaveSecurityGroup'] = ec2.emr_managed_slave_security_group
        if ec2.service_access_security_group:
            instances['ServiceAccessSecurityGroup'] = ec2.service_access_security_group
        if ec2.additional_master_security_groups:
            instances['AdditionalMasterSecurityGroups'] = list(ec2.additional_master_security_groups)
        if ec2.additional_slave_security_groups:
            instances['AdditionalSlaveSecurityGroups'] = list(ec2.additional_slave_security_groups)

    params: Dict[str, Any] = {
        'Name': config.name,
        'ReleaseLabel': config.release_label,
        'Instances': instances,
        'ServiceRole': config.service_role,
        'VisibleToAllUsers': config.visible_to_all_users,
        'StepConcurrencyLevel': config.step_concurrency_level,
    }
    if config.applications:
        params['Applications'] = [{'Name': name} for name in config.applications]
    if config.instance_profile:
        params['JobFlowRole'] = config.instance_profile
    if config.log_uri:
        params['LogUri'] = config.log_uri
    if config.autoscaling_role:
        params['AutoScalingRole'] = config.autoscaling_role
    if config.security_configuration:
        params['SecurityConfiguration'] = config.security_configuration
    if config.scale_down_behavior:
        params['ScaleDownBehavior'] = config.scale_down_behavior
    if config.ebs_root_volume_size:
        params['EbsRootVolumeSize'] = config.ebs_root_volume_size
    if config.custom_ami_id:
        params['CustomAmiId'] = config.custom_ami_id
    if config.additional_info:
        params['AdditionalInfo'] = config.additional_info
    if config.configurations_json:
        params['Configurations'] = json.loads(config.configurations_json)
    if config.bootstrap_actions:
        params['BootstrapActions'] = [
            {
                'Name': action.name,
                'ScriptBootstrapAction': {'Path': action.path, 'Args': list(action.args)},
            }
            for action in config.bootstrap_actions
        ]
    if tags:
        params['Tags'] = tags_to_list(tags)
    return params


def flatten_autoscaling_policy(policy: Optional[Dict[str, Any]]) -> Optional[str]:
    """
    Convert an autoscaling policy description back into policy JSON.

    Drops the Status block and the JobFlowId alarm dimension EMR adds on its
    own, as well as empty values.
    """
    if not policy:
        return None

    def clean(value):
        if isinstance(value, dict):
            cleaned = {k: clean(v) for k, v in value.items()}
            return {k: v for k, v in cleaned.items() if v not in (None, [], {})}
        if isinstance(value, list):
            return [clean(v) for v in value]
        return value

    rules = []
    for rule in policy.get('Rules', []):
        rule = json.loads(json.dumps(rule, default=str))
        alarm = rule.get('Trigger', {}).get('CloudWatchAlarmDefinition', {})
        if 'Dimensions' in alarm:
            alarm['Dimensions'] = [
                d for d in alarm['Dimensions'] if d.get('Key') != 'JobFlowId'
            ]
        rules.append(clean(rule))
    document = {'Constraints': clean(policy.get('Constraints', {})), 'Rules': rules}
    return json.dumps(document, sort_keys=True)


def same_json(left: Optional[str], right: Optional[str]) -> bool:
    """Compare two JSON documents semantically."""
    if not left or not right:
        return not left and not right
    return json.loads(left) == json.loads(right)


def flatten_ebs_config(devices: List[Dict[str, Any]]) -> List[EbsVolumeConfig]:
    """Collapse per-volume EBS block devices into volume configurations."""
    counts: Counter = Counter()
    for device in devices:
        spec = device.get('VolumeSpecification') or {}
        key = (
            spec.get('SizeInGB'),
            spec.get('VolumeType'),
            spec.get('Iops'),
            spec.get('Throughput'),
        )
        counts[key] += 1
    return [
        EbsVolumeConfig.model_construct(
            size=size,
            volume_type=volume_type,
            iops=iops,
            throughput=throughput,
            volumes_per_instance=count,
        )
        for (size, volume_type, iops, throughput), count in counts.items()
    ]


def _same_items(left: List[Any], right: List[Any]) -> bool:
    return sorted(left, key=repr) == sorted(right, key=repr)


def same_ebs_config(desired: List[EbsVolumeConfig], observed: List[EbsVolumeConfig]) -> bool:
    """
    Compare EBS volume configurations.

    IOPS and throughput only count when the desired configuration sets them,
    since EMR reports the volume type defaults otherwise.
    """
    with_iops = any(v.iops for v in desired)
    with_throughput = any(v.throughput for v in desired)

    def key(volume):
        return repr((
            volume.size,
            volume.volume_type,
            volume.volumes_per_instance,
            volume.iops if with_iops else None,
            volume.throughput if with_throughput else None,
        ))

    return sorted(map(key, desired)) == sorted(map(key, observed))


def _normalize_log_uri(uri: Optional[str]) -> Optional[str]:
    if not uri:
        return uri
    if uri.startswith('s3n://'):
        uri = 's3://' + uri[len('s3n://'):]
    return uri.rstrip('/')


def flatten_instance_group(
    desired: Optional[InstanceGroupConfig],
    group: Optional[Dict[str, Any]]
) -> Optional[InstanceGroupConfig]:
    """
    Build the observed instance group configuration.

    Args:
        desired: Desired configuration of the group, if any
        group: Instance group from ListInstanceGroups, if any

    Returns:
        Observed instance group configuration, or None without a group
    """
    if group is None:
        return None

    ebs = flatten_ebs_config(group.get('EbsBlockDevices', []))
    values = {
        'instance_type': group.get('InstanceType'),
        'instance_count': group.get('RequestedInstanceCount', 0),
        'name': group.get('Name'),
        'bid_price': group.get('BidPrice'),
        'ebs_config': ebs,
        'autoscaling_policy': flatten_autoscaling_policy(group.get('AutoScalingPolicy')),
    }
    if desired is None:
        return InstanceGroupConfig.model_construct(**values)

    if same_ebs_config(desired.ebs_config, ebs):
        values['ebs_config'] = desired.ebs_config
    if same_json(desired.autoscaling_policy, values['autoscaling_policy']):
        values['autoscaling_policy'] = desired.autoscaling_policy
    values = keep_unset(desired, values, COMPUTED_GROUP_FIELDS)
    return desired.model_copy(update=values)


def find_instance_group(
    groups: List[Dict[str, Any]],
    role: InstanceRoleType
) -> Optional[Dict[str, Any]]:
    """Find the first instance group of a role."""
    for group in groups:
        if group.get('InstanceGroupType') == role.value:
            return group
    return None


class EMRClusterReconciler(BaseReconciler):
    """
    Reconciler for Amazon EMR clusters.

    The remote identity is the cluster (job flow) id. TERMINATED and
    TERMINATED_WITH_ERRORS clusters count as gone.
    """

    resource_type = ResourceType.EMR_CLUSTER
    config_model = EMRClusterConfig

    DEFAULT_TIMEOUTS = {
        'create': 75 * 60,
        'create_delay': 30,
        'update': 20 * 60,
        'delete': 20 * 60,
        'run_job_flow': 30,
        'autoscaling_policy_removal': 60,
    }

    def cluster_refresh(self, data: ResourceData, deleting: bool = False) -> RefreshFunc:
        """
        Build the refresh function polling a cluster's state.

        Args:
            data: Cluster resource data
            deleting: Treat terminated clusters as gone. Otherwise they are
                reported as a plain state so the wait fails at once

        Returns:
            Refresh function returning (cluster, state)
        """
        gone = GONE_STATES if deleting else ()

        async def refresh():
            try:
                response = await self.client.call(EMR, 'describe_cluster', ClusterId=data.id)
            except (BotoCoreError, ClientError) as e:
                if cluster_not_found(e):
                    return None, STATUS_NOT_FOUND
                raise self.refresh_error(e, 'reading EMR cluster', data) from e

            cluster = response.get('Cluster')
            if not cluster:
                return None, STATUS_NOT_FOUND

            state = (cluster.get('Status') or {}).get('State')
            if not state:
                raise StatusMissingError(
                    "EMR cluster status not provided",
                    resource_type=self.resource_type.value,
                    resource_id=data.id
                )
            logger.debug(f"EMR cluster status ({data.id}): {state}")

            if state in gone:
                return None, STATUS_NOT_FOUND
            return cluster, state

        return refresh

    def instance_group_refresh(self, data: ResourceData, group_id: str) -> RefreshFunc:
        """
        Build the refresh function polling one instance group's state.

        Args:
            data: Cluster resource data
            group_id: Instance group id

        Returns:
            Refresh function returning (instance_group, state)
        """
        async def refresh():
            try:
                groups = await self.fetch_instance_groups(data.id)
            except (BotoCoreError, ClientError) as e:
                if cluster_not_found(e):
                    return None, STATUS_NOT_FOUND
                raise self.refresh_error(e, 'reading EMR instance groups', data) from e

            for group in groups:
                if group.get('Id') != group_id:
                    continue
                state = (group.get('Status') or {}).get('State')
                if not state:
                    raise StatusMissingError(
                        f"EMR instance group {group_id} status not provided",
                        resource_type=self.resource_type.value,
                        resource_id=data.id
                    )
                return group, state
            return None, STATUS_NOT_FOUND

        return refresh

    async def fetch_instance_groups(self, cluster_id: str) -> List[Dict[str, Any]]:
        """
        List all instance groups of a cluster, following pagination.

        Raises:
            ClientError: AWS rejected the request
        """
        groups: List[Dict[str, Any]] = []
        params = {'ClusterId': cluster_id}
        while True:
            response = await self.client.call(EMR, 'list_instance_groups', **params)
            groups.extend(response.get('InstanceGroups', []))
            marker = response.get('Marker')
            if not marker:
                return groups
            params['Marker'] = marker

    async def create(self, data: ResourceData) -> None:
        """
        Run a new job flow and wait until the cluster is RUNNING or WAITING.

        Raises:
            FatalRequestError: RunJobFlow rejected
            UnexpectedStatusError: Cluster failed while starting
            WaitTimeoutError: Cluster did not start in time
        """
        desired: EMRClusterConfig = data.desired
        request = build_run_job_flow_request(
            desired, merge_tags(self.config.tags, desired.tags)
        )
        response = await self.send(
            EMR, 'run_job_flow', 'run EMR job flow', data,
            retry_timeout=self.timeout('run_job_flow'),
            classifier=RUN_JOB_FLOW_ERRORS,
            **request
        )
        if response is None:
            return

        data.id = response['JobFlowId']
        data.is_new_resource = True
        logger.info(f"Created EMR cluster {data.id}, waiting for it to become available")

        waiter = self.new_waiter(
            data,
            pending=CREATE_PENDING,
            target=CREATE_TARGET,
            refresh=self.cluster_refresh(data),
            timeout=self.timeout('create'),
            delay=self.timeout('create_delay'),
            reason=cluster_failure_reason,
        )
        cluster = await waiter.wait()

        # Clusters with several master nodes always start protected
        if bool(cluster.get('TerminationProtected')) != desired.termination_protection:
            logger.info(
                f"Setting EMR cluster {data.id} termination protection to "
                f"{desired.termination_protection} to match configuration"
            )
            await self.call(
                EMR, 'set_termination_protection', 'set EMR termination protection', data,
                JobFlowIds=[data.id],
                TerminationProtected=desired.termination_protection
            )

        await self.read(data)

    async def read(self, data: ResourceData) -> bool:
        """
        Refresh the observed cluster configuration.

        Returns:
            False if the cluster is gone or terminated
        """
        desired: EMRClusterConfig = data.desired
        try:
            response = await self.client.call(EMR, 'describe_cluster', ClusterId=data.id)
            cluster = response.get('Cluster')
            if not cluster:
                return self.resource_gone(data)

            state = (cluster.get('Status') or {}).get('State')
            if state in GONE_STATES:
                logger.warning(f"EMR cluster ({data.id}) was {state} already, removing from state")
                data.clear()
                return False

            groups = await self.fetch_instance_groups(data.id)
            bootstrap = await self.client.call(
                EMR, 'list_bootstrap_actions', ClusterId=data.id
            )
        except (BotoCoreError, ClientError) as e:
            if cluster_not_found(e):
                return self.resource_gone(data)
            raise self.request_error(e, 'read EMR cluster', data) from e

        master = find_instance_group(groups, InstanceRoleType.MASTER)
        core = find_instance_group(groups, InstanceRoleType.CORE)
        ec2 = cluster.get('Ec2InstanceAttributes') or {}

        observed: Dict[str, Any] = {
            'name': cluster.get('Name'),
            'release_label': cluster.get('ReleaseLabel'),
            'service_role': cluster.get('ServiceRole'),
            'instance_profile': ec2.get('IamInstanceProfile'),
            'log_uri': cluster.get('LogUri'),
            'autoscaling_role': cluster.get('AutoScalingRole'),
            'security_configuration': cluster.get('SecurityConfiguration'),
            'scale_down_behavior': cluster.get('ScaleDownBehavior'),
            'ebs_root_volume_size': cluster.get('EbsRootVolumeSize'),
            'custom_ami_id': cluster.get('CustomAmiId'),
            'step_concurrency_level': cluster.get('StepConcurrencyLevel', 1),
            'termination_protection': bool(cluster.get('TerminationProtected')),
            'visible_to_all_users': bool(cluster.get('VisibleToAllUsers')),
            'master_instance_group': flatten_instance_group(
                desired.master_instance_group, master
            ),
            'core_instance_group': flatten_instance_group(
                desired.core_instance_group, core
            ),
            'tags': tags_from_list(cluster.get('Tags')),
        }

        # Installed applications include the ones EMR adds on its own
        installed = [app.get('Name', '') for app in cluster.get('Applications', [])]
        wanted = {name.lower() for name in desired.applications}
        if wanted <= {name.lower() for name in installed}:
            observed['applications'] = desired.applications
        else:
            observed['applications'] = installed

        if _normalize_log_uri(observed['log_uri']) == _normalize_log_uri(desired.log_uri):
            observed['log_uri'] = desired.log_uri

        if desired.configurations_json:
            configurations = json.dumps(cluster.get('Configurations', []), default=str)
            if same_json(desired.configurations_json, configurations):
                configurations = desired.configurations_json
            observed['configurations_json'] = configurations

        if desired.ec2_attributes is not None:
            observed['ec2_attributes'] = self._observed_ec2_attributes(
                desired.ec2_attributes, ec2
            )

        actions = [
            BootstrapAction.model_construct(
                name=action.get('Name'),
                path=action.get('ScriptPath'),
                args=action.get('Args', []),
            )
            for action in bootstrap.get('BootstrapActions', [])
        ]
        if _same_items(desired.bootstrap_actions, actions):
            actions = desired.bootstrap_actions
        observed['bootstrap_actions'] = actions

        observed = keep_unset(desired, observed, COMPUTED_CLUSTER_FIELDS)
        computed = {
            'arn': cluster.get('ClusterArn'),
            'cluster_state': state,
            'master_public_dns': cluster.get('MasterPublicDnsName'),
            'master_instance_group_id': master.get('Id') if master else None,
            'core_instance_group_id': core.get('Id') if core else None,
            'tags_all': tags_from_list(cluster.get('Tags')),
        }
        data.set_state(desired.model_copy(update=observed), status=state, computed=computed)
        return True

    @staticmethod
    def _observed_ec2_attributes(
        desired: Ec2Attributes,
        ec2: Dict[str, Any]
    ) -> Ec2Attributes:
        values = {
            'key_name': ec2.get('Ec2KeyName'),
            'subnet_id': ec2.get('Ec2SubnetId'),
            'emr_managed_master_security_group': ec2.get('EmrManagedMasterSecurityGroup'),
            'emr_managed_slave_security_group': ec2.get('EmrManagedSlaveSecurityGroup'),
            'service_access_security_group': ec2.get('ServiceAccessSecurityGroup'),
            'additional_master_security_groups': ec2.get('AdditionalMasterSecurityGroups', []),
            'additional_slave_security_groups': ec2.get('AdditionalSlaveSecurityGroups', []),
        }
        for name in ('additional_master_security_groups', 'additional_slave_security_groups'):
            if sorted(values[name]) == sorted(getattr(desired, name)):
                values[name] = getattr(desired, name)
        values = keep_unset(desired, values, COMPUTED_EC2_FIELDS)
        return desired.model_copy(update=values)

    async def update(self, data: ResourceData) -> None:
        """
        Apply in-place changes facet by facet, then refresh.

        Raises:
            FatalRequestError: A facet update was rejected
            WaitTimeoutError: Core instance group resize did not finish in time
        """
        desired: EMRClusterConfig = data.desired

        if data.has_change('visible_to_all_users'):
            await self.send(
                EMR, 'set_visible_to_all_users', 'set EMR cluster visibility', data,
                JobFlowIds=[data.id],
                VisibleToAllUsers=desired.visible_to_all_users
            )

        if data.has_change('termination_protection'):
            await self.send(
                EMR, 'set_termination_protection', 'set EMR termination protection', data,
                JobFlowIds=[data.id],
                TerminationProtected=desired.termination_protection
            )

        group_id = data.get_observed('core_instance_group_id')

        if data.has_change('core_instance_group.autoscaling_policy'):
            await self._update_autoscaling_policy(data, group_id)

        if data.has_change('core_instance_group.instance_count'):
            response = await self.send(
                EMR, 'modify_instance_groups', 'modify EMR core instance group', data,
                InstanceGroups=[{
                    'InstanceGroupId': group_id,
                    'InstanceCount': desired.core_instance_group.instance_count,
                }]
            )
            if response is not None:
                logger.info(f"Waiting for EMR cluster {data.id} instance group {group_id} resize")
                waiter = self.new_waiter(
                    data,
                    pending=GROUP_PENDING,
                    target=GROUP_TARGET,
                    refresh=self.instance_group_refresh(data, group_id),
                    timeout=self.timeout('update'),
                    delay=10,
                )
                await waiter.wait()

        if data.has_change('step_concurrency_level'):
            await self.send(
                EMR, 'modify_cluster', 'modify EMR step concurrency', data,
                ClusterId=data.id,
                StepConcurrencyLevel=desired.step_concurrency_level
            )

        if not self.config.dry_run:
            await self.read(data)

    async def _update_autoscaling_policy(self, data: ResourceData, group_id: str) -> None:
        policy = data.get('core_instance_group.autoscaling_policy')

        if policy:
            await self.send(
                EMR, 'put_auto_scaling_policy', 'put EMR autoscaling policy', data,
                ClusterId=data.id,
                InstanceGroupId=group_id,
                AutoScalingPolicy=json.loads(policy)
            )
            return

        response = await self.send(
            EMR, 'remove_auto_scaling_policy', 'remove EMR autoscaling policy', data,
            ClusterId=data.id,
            InstanceGroupId=group_id
        )
        if response is None:
            return

        # Removal is eventually consistent
        async def policy_removed():
            groups = await self.fetch_instance_groups(data.id)
            core = find_instance_group(groups, InstanceRoleType.CORE)
            if core is None:
                raise FatalRequestError(
                    f"EMR cluster ({data.id}) core instance group not found",
                    resource_type=self.resource_type.value,
                    resource_id=data.id
                )
            if core.get('AutoScalingPolicy'):
                raise TransientRequestError(
                    f"EMR cluster ({data.id}) instance group ({group_id}) "
                    f"autoscaling policy still exists",
                    resource_type=self.resource_type.value,
                    resource_id=data.id
                )

        await self.retry_until(
            policy_removed,
            self.timeout('autoscaling_policy_removal'),
            action='wait for EMR autoscaling policy removal'
        )

    async def delete(self, data: ResourceData) -> None:
        """
        Terminate the cluster and wait until it is gone.

        Raises:
            FatalRequestError: TerminateJobFlows rejected
            WaitTimeoutError: Cluster still shutting down when the budget ran
                out; carries the last observed state
        """
        if data.id is None:
            logger.debug("EMR cluster already terminated")
            return

        try:
            response = await self.send(
                EMR, 'terminate_job_flows', 'terminate EMR cluster', data,
                JobFlowIds=[data.id]
            )
        except FatalRequestError as e:
            if cluster_not_found(e.original_error):
                logger.info(f"EMR cluster {data.id} already gone")
                data.clear()
                return
            raise
        if response is None:
            return

        logger.info(f"Terminating EMR cluster {data.id}")
        waiter = self.new_waiter(
            data,
            pending=DELETE_PENDING,
            target=(),
            refresh=self.cluster_refresh(data, deleting=True),
            timeout=self.timeout('delete'),
            reason=cluster_failure_reason,
        )
        await waiter.wait()
        logger.info(f"Terminated EMR cluster {data.id}")
        data.clear()
