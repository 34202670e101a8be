"""Unit tests for the reconciler base class, factory and driver."""

import asyncio

import pytest

from awsreconcile.config import get_config
from awsreconcile.models.enums import ResourceType
from awsreconcile.schemas import EventDataStoreConfig, MaintenanceWindowConfig
from awsreconcile.services.provisioning.base import (
    BaseReconciler,
    ReconcilerConfig,
    get_reconciler,
    reconcile_all,
)
from awsreconcile.services.provisioning.cloudtrail import EventDataStoreReconciler
from awsreconcile.services.provisioning.emr import EMRClusterReconciler
from awsreconcile.services.provisioning.errors import (
    FatalRequestError,
    ReconcilerConfigError,
    TransientRequestError,
)
from awsreconcile.services.provisioning.ssm import MaintenanceWindowReconciler
from awsreconcile.services.provisioning.state import ResourceData

# ==================== Test Helpers ====================


class InMemoryReconciler(BaseReconciler):
    """Reconciler backed by a dictionary instead of AWS."""

    resource_type = ResourceType.CLOUDTRAIL_EVENT_DATA_STORE
    config_model = EventDataStoreConfig

    def __init__(self, client=None, config=None):
        super().__init__(client, config)
        self.remote = {}
        self.operations = []

    async def create(self, data):
        self.operations.append("create")
        data.id = f"arn:store/{len(self.remote) + len(self.operations)}"
        data.is_new_resource = True
        self.remote[data.id] = data.desired
        await self.read(data)

    async def read(self, data):
        if data.id not in self.remote:
            return self.resource_gone(data)
        data.set_state(self.remote[data.id], status="ENABLED")
        return True

    async def update(self, data):
        self.operations.append("update")
        self.remote[data.id] = data.desired
        await self.read(data)

    async def delete(self, data):
        self.operations.append("delete")
        self.remote.pop(data.id, None)
        data.clear()


class FailingReconciler(InMemoryReconciler):
    async def create(self, data):
        raise FatalRequestError("create rejected", resource_type=self.resource_type.value)


class CountingReconciler(InMemoryReconciler):
    """Records how many creates run at the same time."""

    def __init__(self, client=None, config=None):
        super().__init__(client, config)
        self.running = 0
        self.peak = 0

    async def create(self, data):
        self.running += 1
        self.peak = max(self.peak, self.running)
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        self.running -= 1
        await super().create(data)


def store(**overrides):
    values = {"name": "audit-events"}
    values.update(overrides)
    return EventDataStoreConfig(**values)


# ==================== Reconcile Driver Tests ====================


@pytest.mark.asyncio
class TestReconcile:
    """Tests for BaseReconciler.reconcile()."""

    async def test_create_without_identity(self):
        reconciler = InMemoryReconciler()
        data = reconciler.new_resource(store())

        result = await reconciler.reconcile(data)

        assert result is data
        assert reconciler.operations == ["create"]
        assert data.id is not None
        assert data.state == store()
        assert data.status == "ENABLED"

    async def test_up_to_date(self):
        reconciler = InMemoryReconciler()
        reconciler.remote["arn:store/1"] = store()
        data = reconciler.new_resource(store(), resource_id="arn:store/1")

        await reconciler.reconcile(data)

        assert reconciler.operations == []
        assert data.id == "arn:store/1"

    async def test_recreate_when_gone(self):
        reconciler = InMemoryReconciler()
        data = reconciler.new_resource(store(), resource_id="arn:store/deleted")

        await reconciler.reconcile(data)

        assert reconciler.operations == ["create"]
        assert data.id != "arn:store/deleted"

    async def test_update_in_place(self):
        reconciler = InMemoryReconciler()
        reconciler.remote["arn:store/1"] = store()
        data = reconciler.new_resource(store(retention_period=90), resource_id="arn:store/1")

        await reconciler.reconcile(data)

        assert reconciler.operations == ["update"]
        assert data.id == "arn:store/1"
        assert data.state.retention_period == 90

    async def test_replace_on_force_new_change(self):
        reconciler = InMemoryReconciler()
        reconciler.remote["arn:store/1"] = store()
        data = reconciler.new_resource(store(name="audit-events-v2"), resource_id="arn:store/1")

        await reconciler.reconcile(data)

        assert reconciler.operations == ["delete", "create"]
        assert "arn:store/1" not in reconciler.remote
        assert data.id != "arn:store/1"
        assert data.state.name == "audit-events-v2"

    async def test_tag_changes_are_ignored(self):
        reconciler = InMemoryReconciler()
        reconciler.remote["arn:store/1"] = store()
        data = reconciler.new_resource(store(tags={"team": "security"}), resource_id="arn:store/1")

        await reconciler.reconcile(data)

        assert reconciler.operations == []


class TestReconcilerHelpers:
    """Tests for BaseReconciler helpers."""

    def test_new_resource_checks_model(self):
        reconciler = InMemoryReconciler()
        window = MaintenanceWindowConfig(
            name="patching", schedule="rate(7 days)", duration=2, cutoff=1
        )

        with pytest.raises(ReconcilerConfigError):
            reconciler.new_resource(window)

    def test_resource_gone_clears_identity(self):
        reconciler = InMemoryReconciler()
        data = ResourceData(store(), resource_id="arn:store/1")
        data.set_state(store())

        assert reconciler.resource_gone(data) is False
        assert data.id is None
        assert data.state is None

    def test_resource_gone_right_after_create(self):
        reconciler = InMemoryReconciler()
        data = ResourceData(store(), resource_id="arn:store/1")
        data.is_new_resource = True

        with pytest.raises(TransientRequestError) as exc_info:
            reconciler.resource_gone(data)

        assert exc_info.value.resource_id == "arn:store/1"
        assert data.id == "arn:store/1"

    def test_timeout_resolution(self):
        config = ReconcilerConfig(timeouts={
            "aws_emr_cluster.create": 60,
            "delete": 30,
        })
        reconciler = EMRClusterReconciler(client=None, config=config)

        assert reconciler.timeout("create") == 60
        assert reconciler.timeout("delete") == 30
        assert reconciler.timeout("update") == 20 * 60
        assert reconciler.timeout("run_job_flow") == 30

    def test_default_timeouts(self):
        reconciler = EventDataStoreReconciler(client=None)

        assert reconciler.timeout("create") == 300
        assert reconciler.timeout("delete") == 300

    def test_waiter_uses_config(self, reconciler_config):
        reconciler = InMemoryReconciler(config=reconciler_config)
        data = ResourceData(store(), resource_id="arn:store/1")

        async def refresh():
            return None, "ENABLED"

        waiter = reconciler.new_waiter(
            data, pending=("CREATED",), target=("ENABLED",), refresh=refresh, timeout=60
        )

        assert waiter.min_interval == 10
        assert waiter.resource_id == "arn:store/1"
        assert waiter.resource_type == "aws_cloudtrail_event_data_store"
        assert waiter.not_found_checks == reconciler_config.not_found_checks

    def test_refresh_error(self, client_error):
        reconciler = InMemoryReconciler()
        data = ResourceData(store(), resource_id="arn:store/1")
        error = client_error("AccessDeniedException")

        wrapped = reconciler.refresh_error(error, "reading event data store", data)

        assert isinstance(wrapped, TransientRequestError)
        assert wrapped.original_error is error
        assert wrapped.resource_id == "arn:store/1"
        assert "AccessDeniedException" in str(wrapped)


# ==================== Remote Call Tests ====================


@pytest.mark.asyncio
class TestRemoteCalls:
    """Tests for call() and send()."""

    async def test_call_returns_response(self, aws):
        aws.script("cloudtrail", "get_event_data_store", {"Status": "ENABLED"})
        reconciler = InMemoryReconciler(aws)

        response = await reconciler.call(
            "cloudtrail", "get_event_data_store", "read store", EventDataStore="arn:store/1"
        )

        assert response == {"Status": "ENABLED"}
        assert aws.requests("get_event_data_store") == [{"EventDataStore": "arn:store/1"}]

    async def test_call_wraps_vendor_errors_with_context(self, aws, client_error):
        error = client_error("AccessDeniedException", "not authorized")
        aws.script("cloudtrail", "delete_event_data_store", error)
        reconciler = InMemoryReconciler(aws)
        data = ResourceData(store(), resource_id="arn:store/1")

        with pytest.raises(FatalRequestError) as exc_info:
            await reconciler.call(
                "cloudtrail", "delete_event_data_store", "delete store", data,
                EventDataStore=data.id
            )

        wrapped = exc_info.value
        assert wrapped.original_error is error
        assert wrapped.resource_id == "arn:store/1"
        assert wrapped.resource_type == "aws_cloudtrail_event_data_store"
        assert "Resource: arn:store/1" in str(wrapped)

    async def test_call_with_retry(self, aws, client_error, reconciler_config):
        aws.script(
            "cloudtrail", "list_tags",
            client_error("ThrottlingException"), {"ResourceTagList": []}
        )
        reconciler = InMemoryReconciler(aws, reconciler_config)

        response = await reconciler.call(
            "cloudtrail", "list_tags", "list tags", retry_timeout=10, ResourceIdList=["arn"]
        )

        assert response == {"ResourceTagList": []}
        assert len(aws.requests("list_tags")) == 2
        assert aws.requests("list_tags")[0] == {"ResourceIdList": ["arn"]}

    async def test_call_without_retry_is_single_attempt(self, aws, client_error):
        aws.script("cloudtrail", "list_tags", client_error("ThrottlingException"), {})
        reconciler = InMemoryReconciler(aws)

        with pytest.raises(TransientRequestError):
            await reconciler.call("cloudtrail", "list_tags", "list tags", ResourceIdList=["arn"])

        assert len(aws.requests("list_tags")) == 1

    async def test_send_in_dry_run(self, aws):
        reconciler = InMemoryReconciler(aws, ReconcilerConfig(dry_run=True))

        response = await reconciler.send(
            "cloudtrail", "delete_event_data_store", "delete store",
            retry_timeout=10, EventDataStore="arn:store/1"
        )

        assert response is None
        assert aws.calls == []

    async def test_send(self, aws):
        aws.script("cloudtrail", "delete_event_data_store", {})
        reconciler = InMemoryReconciler(aws)

        assert await reconciler.send(
            "cloudtrail", "delete_event_data_store", "delete store",
            EventDataStore="arn:store/1"
        ) == {}


# ==================== Factory Tests ====================


class TestGetReconciler:
    """Tests for the reconciler factory."""

    @pytest.mark.parametrize("resource_type,expected", [
        (ResourceType.EMR_CLUSTER, EMRClusterReconciler),
        ("aws_emr_cluster", EMRClusterReconciler),
        ("aws_cloudtrail_event_data_store", EventDataStoreReconciler),
        (ResourceType.SSM_MAINTENANCE_WINDOW, MaintenanceWindowReconciler),
    ])
    def test_known_types(self, aws, resource_type, expected):
        config = ReconcilerConfig(dry_run=True)

        reconciler = get_reconciler(resource_type, aws, config)

        assert isinstance(reconciler, expected)
        assert reconciler.client is aws
        assert reconciler.config is config

    def test_unknown_type(self, aws):
        with pytest.raises(ReconcilerConfigError) as exc_info:
            get_reconciler("aws_s3_bucket", aws)

        assert "Unknown resource type: aws_s3_bucket" in str(exc_info.value)


@pytest.mark.asyncio
class TestReconcileAll:
    """Tests for concurrent reconciliation of independent resources."""

    async def test_failures_do_not_stop_others(self):
        healthy = InMemoryReconciler()
        failing = FailingReconciler()
        pairs = [
            (healthy, healthy.new_resource(store(name="store-one"))),
            (failing, failing.new_resource(store(name="store-two"))),
            (healthy, healthy.new_resource(store(name="store-three"))),
        ]

        results = await reconcile_all(pairs, limit=2)

        assert isinstance(results[0], ResourceData)
        assert isinstance(results[1], FatalRequestError)
        assert results[2].state.name == "store-three"
        assert len(healthy.remote) == 2

    async def test_limit_defaults_to_configured_concurrency(self):
        reconciler = CountingReconciler(config=ReconcilerConfig(concurrency=2))
        pairs = [
            (reconciler, reconciler.new_resource(store(name=f"store-{i}")))
            for i in range(6)
        ]

        results = await reconcile_all(pairs)

        assert all(isinstance(r, ResourceData) for r in results)
        assert reconciler.peak == 2


class TestReconcilerConfig:
    """Tests for ReconcilerConfig.from_config()."""

    def test_from_config(self):
        class Settings(get_config("testing")):
            AWS_REGION = "eu-west-1"
            AWS_ACCESS_KEY_ID = "AKIAEXAMPLE"
            AWS_SECRET_ACCESS_KEY = "secret"
            AWS_SESSION_TOKEN = ""

        config = ReconcilerConfig.from_config(Settings, dry_run=True)

        assert config.region == "eu-west-1"
        assert config.credentials == {
            "aws_access_key_id": "AKIAEXAMPLE",
            "aws_secret_access_key": "secret",
        }
        assert config.dry_run is True
        assert config.timeouts["create"] == 1
        assert config.timeouts["aws_emr_cluster.create_delay"] == 0
        assert config.poll_min_interval == 0.01
        assert config.not_found_checks == 3
        assert config.concurrency == 5
