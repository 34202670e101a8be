"""Pydantic schemas for CloudTrail Lake event data stores."""

from typing import Dict, List, Optional

from pydantic import Field

from .common import FORCE_NEW, IGNORE_CHANGES, ResourceConfig


class FieldSelector(ResourceConfig):
    """Condition on one event field inside an advanced event selector."""

    field: str = Field(..., min_length=1, description="Event field (eventCategory, resources.type, ...)")
    equals: List[str] = Field(default_factory=list, description="Values the field must equal")
    not_equals: List[str] = Field(default_factory=list, description="Values the field must not equal")
    starts_with: List[str] = Field(default_factory=list, description="Required prefixes")
    not_starts_with: List[str] = Field(default_factory=list, description="Excluded prefixes")
    ends_with: List[str] = Field(default_factory=list, description="Required suffixes")
    not_ends_with: List[str] = Field(default_factory=list, description="Excluded suffixes")


class AdvancedEventSelector(ResourceConfig):
    """Advanced event selector choosing which events the store collects."""

    name: Optional[str] = Field(None, description="Selector name")
    field_selectors: List[FieldSelector] = Field(
        ..., min_length=1, description="Conditions, all of which must match"
    )


class EventDataStoreConfig(ResourceConfig):
    """Desired configuration of a CloudTrail Lake event data store.

    Attributes:
        name: Event data store name; changing it replaces the store
        kms_key_id: KMS key encrypting the store; changing it replaces the store
        multi_region_enabled: Collect events from all regions
        organization_enabled: Collect events from all organization accounts
        retention_period: Days events are kept (7-2555)
        termination_protection_enabled: Refuse deletion while enabled
        advanced_event_selectors: Event selectors; AWS picks its default
            management event selector when unset
        tags: Tags applied at creation
    """

    name: str = Field(
        ..., min_length=3, max_length=128, description="Event data store name",
        json_schema_extra=FORCE_NEW
    )
    kms_key_id: Optional[str] = Field(
        None, description="KMS key id or ARN", json_schema_extra=FORCE_NEW
    )
    multi_region_enabled: bool = Field(True, description="Collect events from all regions")
    organization_enabled: bool = Field(False, description="Collect events organization wide")
    retention_period: int = Field(2555, ge=7, le=2555, description="Retention in days")
    termination_protection_enabled: bool = Field(
        True, description="Protect the store from deletion"
    )
    advanced_event_selectors: Optional[List[AdvancedEventSelector]] = Field(
        None, description="Advanced event selectors"
    )
    tags: Dict[str, str] = Field(
        default_factory=dict, description="Event data store tags",
        json_schema_extra=IGNORE_CHANGES
    )
