"""Unit tests for the Kubernetes adapters."""

import pytest
from unittest.mock import MagicMock, patch

import kubernetes
from kubernetes.client.exceptions import ApiException

from reconkit.backoff import BackoffPolicy
from reconkit.errors import (
    AlreadyExistsError,
    ConfigurationError,
    ConflictError,
    NotFoundError,
    OperatorError,
)
from reconkit.events import EventType
from reconkit.informer.watcher import ListOptions, WatchEventType
from reconkit.k8s.client import load_config, translate_api_error
from reconkit.k8s.crd_backend import KubernetesCRDBackend
from reconkit.k8s.finalizer import CustomObjectFinalizerPatcher
from reconkit.k8s.recorder import KubernetesEventRecorder
from reconkit.k8s.watcher import CustomObjectWatcher, to_watch_event

TOKEN = "reconkit.io/db-operator"


def api_error(status, reason="", body=None):
    e = ApiException(status=status, reason=reason)
    e.body = body
    return e


def raw_object(name="db", namespace="default", resource_version="1", finalizers=None):
    return {
        "apiVersion": "example.reconkit.io/v1",
        "kind": "Database",
        "metadata": {
            "name": name,
            "namespace": namespace,
            "resourceVersion": resource_version,
            "uid": f"uid-{name}",
            "finalizers": list(finalizers or []),
        },
        "spec": {"engine": "postgres"},
    }


class TestTranslateApiError:
    """Tests for translate_api_error function."""

    def test_not_found(self):
        assert isinstance(translate_api_error(api_error(404), "db"), NotFoundError)

    def test_already_exists(self):
        err = translate_api_error(
            api_error(409, "Conflict", '{"reason": "AlreadyExists"}'), "db"
        )
        assert isinstance(err, AlreadyExistsError)

    def test_conflict(self):
        err = translate_api_error(api_error(409, "Conflict", '{"reason": "Conflict"}'), "db")
        assert isinstance(err, ConflictError)

    def test_failed_patch_test(self):
        """Test that a failed resourceVersion test is a retryable conflict."""
        err = translate_api_error(api_error(422, "Unprocessable Entity"), "db")
        assert isinstance(err, ConflictError)

    def test_other_status(self):
        err = translate_api_error(api_error(500, "Internal Server Error"), "db")
        assert type(err) is OperatorError
        assert "500" in str(err)


class TestLoadConfig:
    """Tests for load_config function."""

    @patch("kubernetes.config.load_kube_config")
    @patch("kubernetes.config.load_incluster_config")
    def test_in_cluster(self, mock_incluster, mock_kube):
        load_config()
        mock_incluster.assert_called_once()
        mock_kube.assert_not_called()

    @patch("kubernetes.config.load_kube_config")
    @patch("kubernetes.config.load_incluster_config")
    def test_falls_back_to_kubeconfig(self, mock_incluster, mock_kube):
        mock_incluster.side_effect = kubernetes.config.ConfigException("not in cluster")
        load_config("/tmp/kubeconfig")
        mock_kube.assert_called_once_with(config_file="/tmp/kubeconfig")

    @patch("kubernetes.config.load_kube_config")
    @patch("kubernetes.config.load_incluster_config")
    def test_no_config(self, mock_incluster, mock_kube):
        mock_incluster.side_effect = kubernetes.config.ConfigException("not in cluster")
        mock_kube.side_effect = kubernetes.config.ConfigException("no kubeconfig")
        with pytest.raises(ConfigurationError):
            load_config()


class TestToWatchEvent:
    """Tests for to_watch_event function."""

    def test_added(self):
        event = to_watch_event({"type": "ADDED", "object": raw_object()})
        assert event.type == WatchEventType.ADDED
        assert event.object.key == "default/db"

    def test_error(self):
        event = to_watch_event(
            {"type": "ERROR", "object": {"kind": "Status", "message": "too old resource version"}}
        )
        assert event.type == WatchEventType.ERROR
        assert "too old resource version" in str(event.error)

    def test_unknown_type_passed_through(self):
        event = to_watch_event({"type": "BOOKMARK", "object": raw_object()})
        assert event.type == "BOOKMARK"
        assert event.object is None


@pytest.mark.asyncio
class TestCustomObjectWatcher:
    """Tests for CustomObjectWatcher."""

    @pytest.fixture
    def api(self):
        return MagicMock()

    async def test_list_namespaced(self, api):
        api.list_namespaced_custom_object.return_value = {
            "items": [raw_object("a"), raw_object("b")]
        }
        watcher = CustomObjectWatcher("example.reconkit.io", "v1", "databases", api)

        objects = await watcher.list(ListOptions(namespace="default", label_selector="app=db"))

        assert [o.key for o in objects] == ["default/a", "default/b"]
        api.list_namespaced_custom_object.assert_called_once_with(
            "example.reconkit.io", "v1", "default", "databases", label_selector="app=db"
        )

    async def test_list_cluster(self, api):
        api.list_cluster_custom_object.return_value = {"items": []}
        watcher = CustomObjectWatcher("example.reconkit.io", "v1", "databases", api)

        assert await watcher.list(ListOptions()) == []
        api.list_cluster_custom_object.assert_called_once_with(
            "example.reconkit.io", "v1", "databases"
        )

    async def test_list_error_translated(self, api):
        api.list_cluster_custom_object.side_effect = api_error(404, "Not Found")
        watcher = CustomObjectWatcher("example.reconkit.io", "v1", "databases", api)

        with pytest.raises(NotFoundError):
            await watcher.list(ListOptions())

    @patch("reconkit.k8s.watcher.watch.Watch")
    async def test_watch_stream(self, mock_watch_cls, api):
        mock_watch = mock_watch_cls.return_value
        mock_watch.stream.return_value = iter(
            [
                {"type": "ADDED", "object": raw_object("a")},
                {"type": "DELETED", "object": raw_object("a")},
            ]
        )
        watcher = CustomObjectWatcher("example.reconkit.io", "v1", "databases", api)

        events = [e async for e in watcher.watch(ListOptions())]

        assert [e.type for e in events] == [WatchEventType.ADDED, WatchEventType.DELETED]
        mock_watch.stream.assert_called_once_with(
            api.list_cluster_custom_object,
            "example.reconkit.io",
            "v1",
            "databases",
            timeout_seconds=300,
        )
        mock_watch.stop.assert_called_once()

    @patch("reconkit.k8s.watcher.watch.Watch")
    async def test_watch_error_raised(self, mock_watch_cls, api):
        mock_watch_cls.return_value.stream.side_effect = api_error(410, "Gone")
        watcher = CustomObjectWatcher("example.reconkit.io", "v1", "databases", api)

        with pytest.raises(OperatorError, match="410"):
            async for _ in watcher.watch(ListOptions()):
                pass


@pytest.mark.asyncio
class TestCustomObjectFinalizerPatcher:
    """Tests for CustomObjectFinalizerPatcher."""

    @pytest.fixture
    def api(self):
        return MagicMock()

    @pytest.fixture
    def patcher(self, api):
        return CustomObjectFinalizerPatcher(
            "example.reconkit.io",
            "v1",
            "databases",
            api,
            BackoffPolicy(max_attempts=3, initial_interval=0.0, max_interval=0.0),
        )

    async def test_add_patches_latest_version(self, api, patcher, make_object):
        api.get_namespaced_custom_object.return_value = raw_object("db", resource_version="5")
        api.patch_namespaced_custom_object.return_value = raw_object(
            "db", resource_version="6", finalizers=[TOKEN]
        )
        obj = make_object("db", resource_version="4")

        assert await patcher.add(obj, TOKEN)

        # The passed object reflects the patched version
        assert obj.finalizers == [TOKEN]
        assert obj.resource_version == "6"

        args = api.patch_namespaced_custom_object.call_args[0]
        assert args[:5] == ("example.reconkit.io", "v1", "default", "databases", "db")
        assert args[5][0] == {
            "op": "test",
            "path": "/metadata/resourceVersion",
            "value": "5",
        }
        assert args[5][-1]["value"] == TOKEN

    async def test_add_retries_conflict(self, api, patcher, make_object):
        api.get_namespaced_custom_object.return_value = raw_object("db")
        api.patch_namespaced_custom_object.side_effect = [
            api_error(422, "Unprocessable Entity"),
            None,
        ]

        assert await patcher.add(make_object("db"), TOKEN)
        assert api.get_namespaced_custom_object.call_count == 2

    async def test_add_noop_when_present(self, api, patcher, make_object):
        api.get_namespaced_custom_object.return_value = raw_object("db", finalizers=[TOKEN])
        obj = make_object("db")

        assert not await patcher.add(obj, TOKEN)
        api.patch_namespaced_custom_object.assert_not_called()
        assert obj.finalizers == [TOKEN]

    async def test_remove_gone_object(self, api, patcher, make_object):
        """Test that an object which disappeared counts as done."""
        api.get_namespaced_custom_object.side_effect = api_error(404, "Not Found")

        assert not await patcher.remove(make_object("db", finalizers=[TOKEN]), TOKEN)

    async def test_remove_cluster_scoped(self, api, patcher, make_object):
        api.get_cluster_custom_object.return_value = raw_object(
            "db", namespace=None, finalizers=[TOKEN, "other.io/keep"]
        )

        obj = make_object("db", namespace="", finalizers=[TOKEN])
        assert await patcher.remove(obj, TOKEN)
        assert obj.finalizers == ["other.io/keep"]

        args = api.patch_cluster_custom_object.call_args[0]
        assert args[:4] == ("example.reconkit.io", "v1", "databases", "db")
        assert args[4][-1] == {
            "op": "replace",
            "path": "/metadata/finalizers",
            "value": ["other.io/keep"],
        }


@pytest.mark.asyncio
class TestKubernetesCRDBackend:
    """Tests for KubernetesCRDBackend."""

    @pytest.fixture
    def api(self):
        return MagicMock()

    async def test_create(self, api, descriptor):
        await KubernetesCRDBackend(api).create(descriptor)
        body = api.create_custom_resource_definition.call_args[0][0]
        assert body["metadata"]["name"] == "databases.example.reconkit.io"

    async def test_create_existing(self, api, descriptor):
        api.create_custom_resource_definition.side_effect = api_error(
            409, "Conflict", '{"reason": "AlreadyExists"}'
        )
        with pytest.raises(AlreadyExistsError):
            await KubernetesCRDBackend(api).create(descriptor)

    async def test_get_status(self, api):
        api.api_client.sanitize_for_serialization.return_value = {
            "status": {"conditions": [{"type": "Established", "status": "True"}]}
        }
        status = await KubernetesCRDBackend(api).get("databases.example.reconkit.io")
        assert status.established

    async def test_delete_missing(self, api):
        api.delete_custom_resource_definition.side_effect = api_error(404, "Not Found")
        with pytest.raises(NotFoundError):
            await KubernetesCRDBackend(api).delete("databases.example.reconkit.io")

    async def test_update_carries_resource_version(self, api, descriptor):
        api.read_custom_resource_definition.return_value.metadata.resource_version = "77"

        await KubernetesCRDBackend(api).update(descriptor)

        name, body = api.replace_custom_resource_definition.call_args[0]
        assert name == descriptor.name
        assert body["metadata"]["resourceVersion"] == "77"


class TestKubernetesEventBody:
    """Tests for building core/v1 Event bodies."""

    def test_build_event(self, make_object):
        recorder = KubernetesEventRecorder("db-operator", MagicMock())
        body = recorder.build_event(
            make_object("db"), EventType.WARNING, "Conflict", "object was modified"
        )

        assert body["type"] == "Warning"
        assert body["reason"] == "Conflict"
        assert body["involvedObject"]["name"] == "db"
        assert body["involvedObject"]["uid"] == "uid-db"
        assert body["source"] == {"component": "db-operator"}
        assert body["firstTimestamp"].endswith("Z")


@pytest.mark.asyncio
class TestKubernetesEventRecorder:
    """Tests for KubernetesEventRecorder."""

    async def test_emit(self, make_object):
        api = MagicMock()
        recorder = KubernetesEventRecorder("db-operator", api)

        await recorder.emit(make_object("db"), EventType.NORMAL, "FinalizerRemoved", "done")

        namespace, body = api.create_namespaced_event.call_args[0]
        assert namespace == "default"
        assert body["reason"] == "FinalizerRemoved"

    async def test_emit_error_translated(self, make_object):
        api = MagicMock()
        api.create_namespaced_event.side_effect = api_error(403, "Forbidden")
        recorder = KubernetesEventRecorder("db-operator", api)

        with pytest.raises(OperatorError):
            await recorder.emit(make_object("db"), EventType.NORMAL, "Test", "")
