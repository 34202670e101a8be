"""Unit tests for ResourceData and the field flag helpers."""

from awsreconcile.schemas import (
    EMRClusterConfig,
    EventDataStoreConfig,
    InstanceGroupConfig,
    MaintenanceWindowConfig,
)
from awsreconcile.services.provisioning.state import (
    ResourceData,
    flagged_fields,
    force_new_fields,
    keep_unset,
)


def make_cluster(**overrides):
    values = {
        "name": "analytics",
        "release_label": "emr-6.15.0",
        "service_role": "EMR_DefaultRole",
        "master_instance_group": InstanceGroupConfig(instance_type="m5.xlarge"),
        "core_instance_group": InstanceGroupConfig(instance_type="m5.xlarge", instance_count=2),
    }
    values.update(overrides)
    return EMRClusterConfig(**values)


def make_store(**overrides):
    values = {"name": "audit-events"}
    values.update(overrides)
    return EventDataStoreConfig(**values)


# ==================== Field Flag Tests ====================


class TestFieldFlags:
    """Tests for force_new and ignore_changes field flags."""

    def test_flagged_fields(self):
        assert flagged_fields(EventDataStoreConfig, "force_new") == ["name", "kms_key_id"]
        assert flagged_fields(EventDataStoreConfig, "ignore_changes") == ["tags"]
        assert flagged_fields(MaintenanceWindowConfig, "force_new") == []

    def test_force_new_fields_descend_into_unflagged_blocks(self):
        paths = force_new_fields(EMRClusterConfig)

        assert "master_instance_group" in paths
        assert "core_instance_group.instance_type" in paths
        assert "core_instance_group.ebs_config" in paths
        assert "core_instance_group" not in paths
        assert "core_instance_group.instance_count" not in paths
        assert "core_instance_group.autoscaling_policy" not in paths
        assert "step_concurrency_level" not in paths
        assert "termination_protection" not in paths
        assert "visible_to_all_users" not in paths
        # Flagged blocks are compared whole
        assert "master_instance_group.instance_type" not in paths


# ==================== ResourceData Tests ====================


class TestResourceData:
    """Tests for the resource attribute store."""

    def test_everything_changed_before_first_read(self):
        data = ResourceData(make_store())

        assert data.has_change("retention_period")
        assert "tags" not in data.changed_fields()
        assert data.force_new_changes() == []

    def test_no_changes_when_observed_matches(self):
        desired = make_store(tags={"team": "security"})
        data = ResourceData(desired, resource_id="arn:store")
        data.set_state(desired.model_copy(update={"tags": {}}), status="ENABLED")

        assert data.changed_fields() == []
        assert not data.has_changes_except()

    def test_changed_fields_and_force_new(self):
        data = ResourceData(make_store(name="audit-events-v2", retention_period=90))
        data.set_state(make_store(), status="ENABLED")

        assert data.changed_fields() == ["name", "retention_period"]
        assert data.force_new_changes() == ["name"]
        assert data.has_changes_except("name")
        assert not data.has_changes_except("name", "retention_period")

    def test_nested_changes(self):
        desired = make_cluster(
            core_instance_group=InstanceGroupConfig(instance_type="m5.xlarge", instance_count=4)
        )
        data = ResourceData(desired, resource_id="j-1")
        data.set_state(make_cluster())

        assert data.has_change("core_instance_group.instance_count")
        assert not data.has_change("core_instance_group.instance_type")
        assert data.changed_fields() == ["core_instance_group"]
        assert data.force_new_changes() == []

    def test_get_and_get_observed(self):
        data = ResourceData(make_cluster(), resource_id="j-1")

        assert data.get("core_instance_group.instance_count") == 2
        assert data.get_observed("step_concurrency_level") is None
        assert data.get_observed("arn", "unknown") == "unknown"

        data.set_state(make_cluster(step_concurrency_level=3), computed={"arn": "arn:cluster"})

        assert data.get_observed("step_concurrency_level") == 3
        assert data.get_observed("arn") == "arn:cluster"

    def test_set(self):
        data = ResourceData(make_store())

        data.set("retention_period", 30)
        data.set("arn", "arn:store")

        assert data.state.retention_period == 30
        assert data.state.name == "audit-events"
        assert data.computed == {"arn": "arn:store"}

    def test_is_set(self):
        data = ResourceData(make_store(retention_period=2555))

        assert data.is_set("retention_period")
        assert not data.is_set("multi_region_enabled")

    def test_set_state_replaces_computed_and_new_flag(self):
        data = ResourceData(make_store(), resource_id="arn:store")
        data.is_new_resource = True
        data.set_state(make_store(), computed={"arn": "arn:store"})
        data.set_state(make_store(), status="ENABLED")

        assert data.computed == {}
        assert data.status == "ENABLED"
        assert not data.is_new_resource

    def test_clear(self):
        data = ResourceData(make_store(), resource_id="arn:store")
        data.set_state(make_store(), status="ENABLED", computed={"arn": "arn:store"})

        data.clear()

        assert data.id is None
        assert data.state is None
        assert data.status is None
        assert data.computed == {}
        assert data.desired.name == "audit-events"


class TestKeepUnset:
    """Tests for keep_unset()."""

    def test_unset_fields_take_desired_value(self):
        desired = make_cluster(custom_ami_id="ami-123")
        observed = {
            "custom_ami_id": "ami-456",
            "scale_down_behavior": "TERMINATE_AT_TASK_COMPLETION",
            "name": "other",
        }

        values = keep_unset(desired, observed, ("custom_ami_id", "scale_down_behavior"))

        assert values == {
            "custom_ami_id": "ami-456",
            "scale_down_behavior": None,
            "name": "other",
        }
        assert observed["scale_down_behavior"] == "TERMINATE_AT_TASK_COMPLETION"
