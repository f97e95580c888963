"""Unit tests for the application wiring."""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from reconkit.config import Config
from reconkit.errors import ConfigurationError
from reconkit.events import EventBus
from reconkit.main import Application
from reconkit.metrics import OperatorMetrics
from reconkit.registry import ResourceRegistry
from reconkit.resources import LogResource, MetricsResource, RetryResource

from conftest import RecordingResource


class SecretResource(RecordingResource):
    def __init__(self):
        super().__init__("secret")


class ServiceResource(RecordingResource):
    def __init__(self):
        super().__init__("service")


@pytest.fixture
def registry():
    registry = ResourceRegistry()
    registry.register_resource(SecretResource)
    registry.register_resource(ServiceResource)
    return registry


class TestBuildChain:
    """Tests for building the decorated resource chain."""

    @patch.object(ResourceRegistry, "discover", return_value=[])
    def test_all_registered_resources(self, mock_discover, registry):
        app = Application(Config.default(), registry)
        app.metrics = OperatorMetrics()

        chain = app.build_chain()

        mock_discover.assert_called_once()
        assert [r.name for r in chain] == ["secret", "service"]
        assert isinstance(chain[0], MetricsResource)
        assert isinstance(chain[0].underlying, RetryResource)
        assert isinstance(chain[0].underlying.underlying, LogResource)

    @patch.object(ResourceRegistry, "discover", return_value=[])
    def test_enabled_resources_order(self, mock_discover, registry):
        config = Config.default()
        config.resources.enabled_resources = ["service", "secret"]
        app = Application(config, registry)

        chain = app.build_chain()

        assert [r.name for r in chain] == ["service", "secret"]
        # No metrics yet, so the chain starts with the retry layer
        assert isinstance(chain[0], RetryResource)

    @patch.object(ResourceRegistry, "discover", return_value=[])
    def test_unknown_enabled_resource(self, mock_discover, registry):
        config = Config.default()
        config.resources.enabled_resources = ["missing"]

        with pytest.raises(ConfigurationError):
            Application(config, registry).build_chain()


@pytest.mark.asyncio
class TestApplicationLifecycle:
    """Tests for initialization and shutdown."""

    async def test_initialize_requires_manifest(self, registry):
        app = Application(Config.default(), registry)
        with pytest.raises(ConfigurationError, match="CRD_MANIFEST"):
            await app.initialize()

    async def test_stop_components(self, registry):
        app = Application(Config.default(), registry)
        app.running = True
        app.server = MagicMock()
        app.server.stop = AsyncMock()
        app.controller = MagicMock()
        app.controller.stop = AsyncMock()
        app.informer = MagicMock()
        app.informer.join = AsyncMock()
        app.metrics = MagicMock()
        app.event_bus = EventBus()
        subscription = app.event_bus.subscribe()

        await app.stop()

        assert app._cancel.is_set()
        assert [e async for e in subscription] == []
        assert app.server.ready is False
        app.server.stop.assert_awaited_once()
        app.controller.stop.assert_awaited_once()
        app.informer.join.assert_awaited_once()
        app.metrics.close.assert_called_once()

    async def test_stop_twice(self, registry):
        app = Application(Config.default(), registry)
        app.metrics = MagicMock()

        await app.stop()
        await app.stop()

        app.metrics.close.assert_called_once()
