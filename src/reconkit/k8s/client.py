"""Kubernetes client configuration."""

import logging
from typing import Optional

import kubernetes
from kubernetes.client.exceptions import ApiException

from reconkit.errors import (
    AlreadyExistsError,
    ConfigurationError,
    ConflictError,
    NotFoundError,
    OperatorError,
)

logger = logging.getLogger(__name__)


def load_config(kubeconfig: Optional[str] = None) -> None:
    """
    Load the in-cluster configuration, falling back to a kubeconfig file.

    Args:
        kubeconfig: Path of the kubeconfig file. Defaults to the client's
            default location.

    Raises:
        ConfigurationError: If neither configuration can be loaded.
    """
    try:
        kubernetes.config.load_incluster_config()
        logger.info("Loaded in-cluster Kubernetes config")
        return
    except kubernetes.config.ConfigException:
        pass

    try:
        kubernetes.config.load_kube_config(config_file=kubeconfig)
        logger.info("Loaded local Kubernetes config")
    except Exception as e:
        raise ConfigurationError(f"Could not load Kubernetes config: {e}")


def translate_api_error(e: ApiException, what: str) -> OperatorError:
    """Map an API error status to the framework's error types."""
    if e.status == 404:
        return NotFoundError(f"{what} not found")
    if e.status == 409:
        if "AlreadyExists" in (e.body or "") or e.reason == "AlreadyExists":
            return AlreadyExistsError(f"{what} already exists")
        return ConflictError(f"conflict on {what}: {e.reason}")
    if e.status == 422:
        return ConflictError(f"{what} changed concurrently: {e.reason}")
    return OperatorError(f"API error on {what} ({e.status}): {e.reason}")
