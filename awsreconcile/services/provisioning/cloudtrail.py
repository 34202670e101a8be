"""
CloudTrail Lake event data store reconciler.

The remote identity is the event data store ARN. A store scheduled for
deletion (PENDING_DELETION) counts as gone.
"""

import logging
from typing import Any, Dict, List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from awsreconcile.models.enums import EventDataStoreStatus, ResourceType
from awsreconcile.schemas.cloudtrail import (
    AdvancedEventSelector,
    EventDataStoreConfig,
    FieldSelector,
)
from awsreconcile.schemas.common import merge_tags, tags_from_list, tags_to_list

from .base import BaseReconciler
from .errors import STATUS_NOT_FOUND, FatalRequestError, StatusMissingError
from .retry import is_aws_error
from .state import ResourceData
from .waiter import RefreshFunc

logger = logging.getLogger(__name__)

CLOUDTRAIL = 'cloudtrail'
NOT_FOUND_CODE = 'EventDataStoreNotFoundException'

AVAILABLE_PENDING = (EventDataStoreStatus.CREATED.value,)
AVAILABLE_TARGET = (EventDataStoreStatus.ENABLED.value,)
DELETE_PENDING = (EventDataStoreStatus.CREATED.value, EventDataStoreStatus.ENABLED.value)

# Field selector operators: (configuration attribute, API key)
SELECTOR_OPERATORS = (
    ('equals', 'Equals'),
    ('not_equals', 'NotEquals'),
    ('starts_with', 'StartsWith'),
    ('not_starts_with', 'NotStartsWith'),
    ('ends_with', 'EndsWith'),
    ('not_ends_with', 'NotEndsWith'),
)

# Attributes sent by UpdateEventDataStore when changed: (field, API key)
UPDATABLE_FIELDS = (
    ('multi_region_enabled', 'MultiRegionEnabled'),
    ('name', 'Name'),
    ('organization_enabled', 'OrganizationEnabled'),
    ('retention_period', 'RetentionPeriod'),
    ('termination_protection_enabled', 'TerminationProtectionEnabled'),
)


def expand_advanced_event_selectors(
    selectors: List[AdvancedEventSelector]
) -> List[Dict[str, Any]]:
    """Convert advanced event selectors to the API form."""
    result = []
    for selector in selectors:
        field_selectors = []
        for field_selector in selector.field_selectors:
            item: Dict[str, Any] = {'Field': field_selector.field}
            for attr, key in SELECTOR_OPERATORS:
                values = getattr(field_selector, attr)
                if values:
                    item[key] = list(values)
            field_selectors.append(item)
        entry: Dict[str, Any] = {'FieldSelectors': field_selectors}
        if selector.name:
            entry['Name'] = selector.name
        result.append(entry)
    return result


def flatten_advanced_event_selectors(
    selectors: Optional[List[Dict[str, Any]]]
) -> List[AdvancedEventSelector]:
    """Convert advanced event selectors from the API form."""
    result = []
    for selector in selectors or []:
        field_selectors = []
        for item in selector.get('FieldSelectors', []):
            values = {attr: item.get(key, []) for attr, key in SELECTOR_OPERATORS}
            field_selectors.append(
                FieldSelector.model_construct(field=item.get('Field'), **values)
            )
        result.append(AdvancedEventSelector.model_construct(
            name=selector.get('Name'),
            field_selectors=field_selectors,
        ))
    return result


class EventDataStoreReconciler(BaseReconciler):
    """Reconciler for CloudTrail Lake event data stores."""

    resource_type = ResourceType.CLOUDTRAIL_EVENT_DATA_STORE
    config_model = EventDataStoreConfig

    DEFAULT_TIMEOUTS = {
        'create': 5 * 60,
        'update': 5 * 60,
        'delete': 5 * 60,
    }

    async def find_event_data_store(self, arn: str) -> Optional[Dict[str, Any]]:
        """
        Fetch an event data store.

        Returns:
            GetEventDataStore response, or None if the store does not exist
            or is pending deletion

        Raises:
            ClientError: AWS rejected the request
        """
        try:
            response = await self.client.call(CLOUDTRAIL, 'get_event_data_store', EventDataStore=arn)
        except ClientError as e:
            if is_aws_error(e, NOT_FOUND_CODE):
                return None
            raise
        if response.get('Status') == EventDataStoreStatus.PENDING_DELETION.value:
            return None
        return response

    def status_refresh(self, data: ResourceData) -> RefreshFunc:
        """Build the refresh function polling an event data store's status."""
        async def refresh():
            try:
                store = await self.find_event_data_store(data.id)
            except (BotoCoreError, ClientError) as e:
                raise self.refresh_error(e, 'reading CloudTrail event data store', data) from e
            if store is None:
                return None, STATUS_NOT_FOUND
            status = store.get('Status')
            if not status:
                raise StatusMissingError(
                    "CloudTrail event data store status not provided",
                    resource_type=self.resource_type.value,
                    resource_id=data.id
                )
            return store, status

        return refresh

    async def wait_available(self, data: ResourceData, operation: str) -> None:
        waiter = self.new_waiter(
            data,
            pending=AVAILABLE_PENDING,
            target=AVAILABLE_TARGET,
            refresh=self.status_refresh(data),
            timeout=self.timeout(operation),
        )
        await waiter.wait()

    async def create(self, data: ResourceData) -> None:
        """
        Create the event data store and wait until it is ENABLED.

        Raises:
            FatalRequestError: CreateEventDataStore rejected
            WaitTimeoutError: Store not enabled in time
        """
        desired: EventDataStoreConfig = data.desired
        params: Dict[str, Any] = {
            'Name': desired.name,
            'OrganizationEnabled': desired.organization_enabled,
            'MultiRegionEnabled': desired.multi_region_enabled,
            'TerminationProtectionEnabled': desired.termination_protection_enabled,
            'RetentionPeriod': desired.retention_period,
        }
        if desired.advanced_event_selectors:
            params['AdvancedEventSelectors'] = expand_advanced_event_selectors(
                desired.advanced_event_selectors
            )
        if desired.kms_key_id:
            params['KmsKeyId'] = desired.kms_key_id
        tags = merge_tags(self.config.tags, desired.tags)
        if tags:
            params['TagsList'] = tags_to_list(tags)

        response = await self.send(
            CLOUDTRAIL, 'create_event_data_store',
            f'create CloudTrail event data store ({desired.name})', data,
            **params
        )
        if response is None:
            return

        data.id = response['EventDataStoreArn']
        data.is_new_resource = True
        logger.info(f"Created CloudTrail event data store {data.id}")

        await self.wait_available(data, 'create')
        await self.read(data)

    async def read(self, data: ResourceData) -> bool:
        """
        Refresh the observed event data store configuration.

        Returns:
            False if the store is gone or pending deletion
        """
        desired: EventDataStoreConfig = data.desired
        try:
            store = await self.find_event_data_store(data.id)
            if store is None:
                return self.resource_gone(data)
            tag_response = await self.client.call(
                CLOUDTRAIL, 'list_tags', ResourceIdList=[data.id]
            )
        except (BotoCoreError, ClientError) as e:
            raise self.request_error(e, 'read CloudTrail event data store', data) from e

        tags: Dict[str, str] = {}
        for resource in tag_response.get('ResourceTagList', []):
            if resource.get('ResourceId') == data.id:
                tags = tags_from_list(resource.get('TagsList'))

        selectors: Optional[List[AdvancedEventSelector]] = None
        if desired.advanced_event_selectors is not None:
            selectors = flatten_advanced_event_selectors(store.get('AdvancedEventSelectors'))
            if selectors == list(desired.advanced_event_selectors):
                selectors = desired.advanced_event_selectors

        observed = desired.model_copy(update={
            'name': store.get('Name'),
            'kms_key_id': store.get('KmsKeyId'),
            'multi_region_enabled': store.get('MultiRegionEnabled'),
            'organization_enabled': store.get('OrganizationEnabled'),
            'retention_period': store.get('RetentionPeriod'),
            'termination_protection_enabled': store.get('TerminationProtectionEnabled'),
            'advanced_event_selectors': selectors,
            'tags': tags,
        })
        computed = {'arn': store.get('EventDataStoreArn')}
        data.set_state(observed, status=store.get('Status'), computed=computed)
        return True

    async def update(self, data: ResourceData) -> None:
        """
        Send one UpdateEventDataStore carrying only the changed attributes.

        Raises:
            FatalRequestError: UpdateEventDataStore rejected
            WaitTimeoutError: Store not enabled again in time
        """
        desired: EventDataStoreConfig = data.desired
        if not data.has_changes_except('tags'):
            return

        params: Dict[str, Any] = {'EventDataStore': data.id}
        if data.has_change('advanced_event_selectors'):
            params['AdvancedEventSelectors'] = expand_advanced_event_selectors(
                desired.advanced_event_selectors or []
            )
        for field, key in UPDATABLE_FIELDS:
            if data.has_change(field):
                params[key] = getattr(desired, field)

        response = await self.send(
            CLOUDTRAIL, 'update_event_data_store', 'update CloudTrail event data store', data,
            **params
        )
        if response is None:
            return

        await self.wait_available(data, 'update')
        await self.read(data)

    async def delete(self, data: ResourceData) -> None:
        """
        Delete the event data store and wait until it is gone.

        Raises:
            FatalRequestError: DeleteEventDataStore rejected (for instance
                while termination protection is enabled)
            WaitTimeoutError: Store still present when the budget ran out
        """
        if data.id is None:
            logger.debug("CloudTrail event data store already deleted")
            return

        logger.debug(f"Deleting CloudTrail event data store: {data.id}")
        try:
            response = await self.send(
                CLOUDTRAIL, 'delete_event_data_store', 'delete CloudTrail event data store', data,
                EventDataStore=data.id
            )
        except FatalRequestError as e:
            if is_aws_error(e.original_error, NOT_FOUND_CODE):
                data.clear()
                return
            raise
        if response is None:
            return

        waiter = self.new_waiter(
            data,
            pending=DELETE_PENDING,
            target=(),
            refresh=self.status_refresh(data),
            timeout=self.timeout('delete'),
        )
        await waiter.wait()
        data.clear()
