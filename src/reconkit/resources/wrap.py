"""Composition of the standard decorators around a resource chain."""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from reconkit.backoff import BackoffPolicy
from reconkit.errors import ConfigurationError
from reconkit.metrics import OperatorMetrics
from reconkit.resources.base import Resource
from reconkit.resources.logresource import LogResource
from reconkit.resources.metricsresource import MetricsResource
from reconkit.resources.retryresource import RetryNotifier, RetryResource


@dataclass
class WrapConfig:
    """Settings for :func:`wrap`."""

    name: str
    backoff_policy: BackoffPolicy
    metrics: Optional[OperatorMetrics] = None
    log: bool = True
    logger: Optional[logging.Logger] = None
    notify: Optional[RetryNotifier] = None


def wrap(resources: Sequence[Resource], config: WrapConfig) -> List[Resource]:
    """
    Decorate every resource as ``MetricsResource(RetryResource(LogResource(r)))``.

    Logging is innermost so every retry attempt is logged, metrics are
    outermost so one call is counted once. The metrics layer is skipped when
    no metrics are configured, the log layer when ``log`` is False.

    Raises:
        ConfigurationError: If the config has no name or no backoff policy.
    """
    if not config.name:
        raise ConfigurationError("wrap config requires a controller name")
    if config.backoff_policy is None:
        raise ConfigurationError("wrap config requires a backoff policy")

    wrapped = []
    for resource in resources:
        r = resource
        if config.log:
            r = LogResource(r, config.logger)
        r = RetryResource(r, config.backoff_policy, config.notify)
        if config.metrics is not None:
            r = MetricsResource(r, config.metrics, config.name)
        wrapped.append(r)
    return wrapped
