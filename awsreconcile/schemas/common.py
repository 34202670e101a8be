"""Shared pieces of the desired configuration models.

This module contains the frozen base model every resource configuration
derives from, the field flags understood by the reconcilers, and helpers
converting tags between the dictionary form used in configuration and the
Key/Value list form used by the AWS APIs.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict

# Field flags, passed as Field(json_schema_extra=...)
FORCE_NEW = {'force_new': True}
IGNORE_CHANGES = {'ignore_changes': True}

# Tag keys reserved for AWS itself
AWS_TAG_PREFIX = 'aws:'


class ResourceConfig(BaseModel):
    """Base model for desired resource configuration.

    Instances are immutable so one desired configuration stays the same for
    a whole reconciliation pass.
    """

    model_config = ConfigDict(frozen=True, extra='forbid', str_strip_whitespace=True)


def merge_tags(*tag_sets: Optional[Dict[str, str]]) -> Dict[str, str]:
    """Merge tag dictionaries; later sets win."""
    merged: Dict[str, str] = {}
    for tags in tag_sets:
        merged.update(tags or {})
    return merged


def tags_to_list(tags: Dict[str, str]) -> List[Dict[str, str]]:
    """Convert a tag dictionary to the AWS Key/Value list form."""
    return [{'Key': key, 'Value': value} for key, value in tags.items()]


def tags_from_list(tags: Optional[List[Dict[str, Any]]]) -> Dict[str, str]:
    """Convert an AWS Key/Value tag list to a dictionary, dropping aws: tags."""
    return {
        tag['Key']: tag.get('Value', '')
        for tag in tags or []
        if not tag['Key'].startswith(AWS_TAG_PREFIX)
    }
