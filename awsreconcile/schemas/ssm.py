"""Pydantic schemas for SSM maintenance windows."""

from typing import Dict, Optional

from pydantic import Field, model_validator

from .common import IGNORE_CHANGES, ResourceConfig


class MaintenanceWindowConfig(ResourceConfig):
    """Desired configuration of an SSM maintenance window."""

    name: str = Field(..., min_length=3, max_length=128, description="Window name")
    schedule: str = Field(
        ..., min_length=1, description="cron() or rate() schedule expression"
    )
    duration: int = Field(..., ge=1, le=24, description="Window length in hours")
    cutoff: int = Field(
        ..., ge=0, le=23,
        description="Hours before the end of the window when no new tasks start"
    )
    allow_unassociated_targets: bool = Field(
        False, description="Allow tasks to run on unregistered targets"
    )
    enabled: bool = Field(True, description="Whether the window is enabled")
    description: Optional[str] = Field(None, max_length=128, description="Window description")
    start_date: Optional[str] = Field(None, description="ISO-8601 date the window becomes active")
    end_date: Optional[str] = Field(None, description="ISO-8601 date the window becomes inactive")
    schedule_offset: Optional[int] = Field(
        None, ge=1, le=6, description="Days to wait after the cron date"
    )
    schedule_timezone: Optional[str] = Field(None, description="IANA time zone of the schedule")
    tags: Dict[str, str] = Field(
        default_factory=dict, description="Window tags",
        json_schema_extra=IGNORE_CHANGES
    )

    @model_validator(mode='after')
    def validate_cutoff(self) -> 'MaintenanceWindowConfig':
        if self.cutoff >= self.duration:
            raise ValueError("cutoff must be shorter than duration")
        return self
