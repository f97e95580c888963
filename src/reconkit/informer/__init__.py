"""
Informer - Watch-based event source feeding the controller.
"""

from reconkit.informer.informer import Informer, InformerStreams
from reconkit.informer.watcher import ListOptions, WatchEvent, WatchEventType, Watcher

__all__ = [
    "Informer",
    "InformerStreams",
    "ListOptions",
    "WatchEvent",
    "WatchEventType",
    "Watcher",
]
