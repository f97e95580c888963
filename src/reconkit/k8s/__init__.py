"""
Kubernetes adapters for the framework's external interfaces.
"""

from reconkit.k8s.client import load_config, translate_api_error
from reconkit.k8s.crd_backend import KubernetesCRDBackend
from reconkit.k8s.finalizer import CustomObjectFinalizerPatcher
from reconkit.k8s.recorder import KubernetesEventRecorder
from reconkit.k8s.watcher import CustomObjectWatcher, to_watch_event

__all__ = [
    "CustomObjectFinalizerPatcher",
    "CustomObjectWatcher",
    "KubernetesCRDBackend",
    "KubernetesEventRecorder",
    "load_config",
    "to_watch_event",
    "translate_api_error",
]
