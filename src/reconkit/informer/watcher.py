"""
Watcher - The list/watch primitive an informer is built on.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, List, Optional

from reconkit.objects import ObservedObject


@dataclass
class ListOptions:
    """Options narrowing a list or watch call."""

    namespace: str = ""
    label_selector: str = ""
    field_selector: str = ""
    timeout_seconds: Optional[int] = None


class WatchEventType(Enum):
    """Types of watch events."""

    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"
    ERROR = "ERROR"


@dataclass
class WatchEvent:
    """
    One event of a watch stream.

    ``type`` is normally a ``WatchEventType``. Watchers may pass through
    unknown type strings unchanged; the informer reports those as errors.
    """

    type: object
    object: Optional[ObservedObject] = None
    error: Optional[BaseException] = None


class Watcher(ABC):
    """Abstract list/watch source for one type of object."""

    @abstractmethod
    async def list(self, options: ListOptions) -> List[ObservedObject]:
        """
        List all objects matching the options.

        Args:
            options: List options

        Returns:
            The current objects
        """
        pass

    @abstractmethod
    def watch(self, options: ListOptions) -> AsyncIterator[WatchEvent]:
        """
        Open a watch stream.

        The returned async iterator ends when the server closes the stream.
        Errors opening or reading the stream are raised from the iterator.

        Args:
            options: Watch options

        Returns:
            An async iterator of watch events
        """
        pass
