"""
Resource Registry - Discovery and registration of resource classes.

Resource classes are registered by name, either directly or through the
``reconkit.resources`` entry-point group of installed packages, and
instantiated into an ordered chain from configuration.
"""

import logging
from importlib.metadata import entry_points
from typing import Any, Dict, List, Optional, Sequence, Type

from reconkit.errors import ConfigurationError
from reconkit.resources.base import Resource

logger = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "reconkit.resources"


class ResourceRegistry:
    """
    Central registry for resource classes.

    Classes are registered uninstantiated. Instances are created once per
    name when a chain is built.
    """

    def __init__(self):
        self._resources: Dict[str, Type[Resource]] = {}
        self._instances: Dict[str, Resource] = {}

    def register_resource(
        self, resource_class: Type[Resource], name: Optional[str] = None
    ) -> str:
        """
        Register a resource class.

        Args:
            resource_class: The Resource subclass to register
            name: Registration name. Defaults to the name of an instance.

        Returns:
            The name the class was registered under
        """
        if name is None:
            # Create temporary instance to get the name
            name = resource_class().name

        if name in self._resources:
            logger.warning(f"Overwriting existing resource: {name}")

        self._resources[name] = resource_class
        self._instances.pop(name, None)
        logger.info(f"Registered resource: {name}")
        return name

    def get_resource(self, name: str, config: Optional[Dict[str, Any]] = None) -> Resource:
        """
        Get a resource instance.

        Args:
            name: The resource name
            config: Keyword arguments for the first instantiation

        Returns:
            A Resource instance

        Raises:
            ConfigurationError: If the name is not registered
        """
        if name not in self._resources:
            available = ", ".join(self._resources.keys()) or "none"
            raise ConfigurationError(
                f"Unknown resource: {name}. Available resources: {available}"
            )

        if name not in self._instances:
            self._instances[name] = self._resources[name](**(config or {}))
            logger.info(f"Instantiated resource: {name}")

        return self._instances[name]

    def build_chain(
        self,
        names: Sequence[str],
        configs: Optional[Dict[str, Dict[str, Any]]] = None,
    ) -> List[Resource]:
        """
        Build a resource chain in the given order.

        Args:
            names: Resource names, in chain order
            configs: Per-resource keyword arguments keyed by name

        Raises:
            ConfigurationError: If a name is not registered or no name given
        """
        if not names:
            raise ConfigurationError("no resources enabled")
        configs = configs or {}
        return [self.get_resource(name, configs.get(name)) for name in names]

    def list_resources(self) -> List[str]:
        """List all registered resource names."""
        return list(self._resources.keys())

    def has_resource(self, name: str) -> bool:
        """Check if a resource is registered."""
        return name in self._resources

    def discover(self, group: str = ENTRY_POINT_GROUP) -> List[str]:
        """
        Register resource classes advertised through entry points.

        Entry points that fail to load are logged and skipped.

        Returns:
            The names registered
        """
        registered = []
        for ep in entry_points(group=group):
            try:
                resource_class = ep.load()
                registered.append(self.register_resource(resource_class, ep.name))
            except Exception as e:
                logger.warning(f"Could not load resource {ep.name}: {e}")
        return registered


# Global registry instance
_registry: Optional[ResourceRegistry] = None


def get_registry() -> ResourceRegistry:
    """Get the global resource registry singleton."""
    global _registry
    if _registry is None:
        _registry = ResourceRegistry()
    return _registry


def reset_registry() -> None:
    """Reset the global registry (mainly for testing)."""
    global _registry
    _registry = None
