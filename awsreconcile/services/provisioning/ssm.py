"""
SSM maintenance window reconciler.

Maintenance windows are managed through a synchronous API: every call takes
effect immediately, so this reconciler never waits for a status.
"""

import logging
from typing import Any, Dict

from botocore.exceptions import BotoCoreError, ClientError

from awsreconcile.models.enums import ResourceType
from awsreconcile.schemas.common import merge_tags, tags_from_list, tags_to_list
from awsreconcile.schemas.ssm import MaintenanceWindowConfig

from .base import BaseReconciler
from .errors import FatalRequestError
from .retry import is_aws_error
from .state import ResourceData

logger = logging.getLogger(__name__)

SSM = 'ssm'
NOT_FOUND_CODE = 'DoesNotExistException'

# Optional attributes: (field, API key)
OPTIONAL_FIELDS = (
    ('description', 'Description'),
    ('end_date', 'EndDate'),
    ('schedule_offset', 'ScheduleOffset'),
    ('schedule_timezone', 'ScheduleTimezone'),
    ('start_date', 'StartDate'),
)


def window_params(config: MaintenanceWindowConfig) -> Dict[str, Any]:
    """Request parameters shared by create and update."""
    params: Dict[str, Any] = {
        'Name': config.name,
        'Schedule': config.schedule,
        'Duration': config.duration,
        'Cutoff': config.cutoff,
        'AllowUnassociatedTargets': config.allow_unassociated_targets,
    }
    for field, key in OPTIONAL_FIELDS:
        value = getattr(config, field)
        if value:
            params[key] = value
    return params


class MaintenanceWindowReconciler(BaseReconciler):
    """Reconciler for SSM maintenance windows, identified by window id."""

    resource_type = ResourceType.SSM_MAINTENANCE_WINDOW
    config_model = MaintenanceWindowConfig

    async def create(self, data: ResourceData) -> None:
        """
        Create the maintenance window, disabling it afterwards if requested.

        Raises:
            FatalRequestError: CreateMaintenanceWindow rejected
        """
        desired: MaintenanceWindowConfig = data.desired
        params = window_params(desired)
        tags = merge_tags(self.config.tags, desired.tags)
        if tags:
            params['Tags'] = tags_to_list(tags)

        response = await self.send(
            SSM, 'create_maintenance_window',
            f'create SSM maintenance window ({desired.name})', data,
            **params
        )
        if response is None:
            return

        data.id = response['WindowId']
        data.is_new_resource = True
        logger.info(f"Created SSM maintenance window {data.id}")

        # Windows are always created enabled
        if not desired.enabled:
            await self.call(
                SSM, 'update_maintenance_window', 'disable SSM maintenance window', data,
                WindowId=data.id,
                Enabled=False
            )

        await self.read(data)

    async def read(self, data: ResourceData) -> bool:
        """
        Refresh the observed maintenance window configuration.

        Returns:
            False if the window does not exist
        """
        desired: MaintenanceWindowConfig = data.desired
        try:
            window = await self.client.call(SSM, 'get_maintenance_window', WindowId=data.id)
            tag_response = await self.client.call(
                SSM, 'list_tags_for_resource',
                ResourceType='MaintenanceWindow',
                ResourceId=data.id
            )
        except (BotoCoreError, ClientError) as e:
            if is_aws_error(e, NOT_FOUND_CODE):
                return self.resource_gone(data)
            raise self.request_error(e, 'read SSM maintenance window', data) from e

        observed = desired.model_copy(update={
            'name': window.get('Name'),
            'schedule': window.get('Schedule'),
            'duration': window.get('Duration'),
            'cutoff': window.get('Cutoff'),
            'allow_unassociated_targets': window.get('AllowUnassociatedTargets'),
            'enabled': window.get('Enabled'),
            'description': window.get('Description'),
            'start_date': window.get('StartDate'),
            'end_date': window.get('EndDate'),
            'schedule_offset': window.get('ScheduleOffset'),
            'schedule_timezone': window.get('ScheduleTimezone'),
            'tags': tags_from_list(tag_response.get('TagList')),
        })
        data.set_state(observed, status='enabled' if window.get('Enabled') else 'disabled')
        return True

    async def update(self, data: ResourceData) -> None:
        """
        Replace the window settings in one call.

        Replace=True lets optional attributes removed from the configuration
        be cleared remotely.

        Raises:
            FatalRequestError: UpdateMaintenanceWindow rejected
        """
        desired: MaintenanceWindowConfig = data.desired
        if not data.has_changes_except('tags'):
            return

        params = window_params(desired)
        params.update({
            'WindowId': data.id,
            'Enabled': desired.enabled,
            'Replace': True,
        })
        response = await self.send(
            SSM, 'update_maintenance_window', 'update SSM maintenance window', data,
            **params
        )
        if response is not None:
            await self.read(data)

    async def delete(self, data: ResourceData) -> None:
        """
        Delete the maintenance window.

        Raises:
            FatalRequestError: DeleteMaintenanceWindow rejected
        """
        if data.id is None:
            logger.debug("SSM maintenance window already deleted")
            return

        logger.info(f"Deleting SSM maintenance window: {data.id}")
        try:
            response = await self.send(
                SSM, 'delete_maintenance_window', 'delete SSM maintenance window', data,
                WindowId=data.id
            )
        except FatalRequestError as e:
            if is_aws_error(e.original_error, NOT_FOUND_CODE):
                data.clear()
                return
            raise
        if response is not None:
            data.clear()
