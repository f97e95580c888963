"""
Retry Resource - Retries every single operation of a resource with backoff.

Only the operation that failed is retried. A failing ``process_create_state``
never causes ``get_current_state`` to run again within the same pass.
"""

import logging
from typing import Any, Callable, Optional

from reconkit.backoff import BackoffPolicy, retry_notify
from reconkit.context import ReconcileContext
from reconkit.errors import ConfigurationError
from reconkit.resources.base import Resource
from reconkit.resources.decorator import ResourceDecorator

logger = logging.getLogger(__name__)

RetryNotifier = Callable[[str, BaseException, float], None]


class RetryResource(ResourceDecorator):
    """
    Decorator retrying failed operations under a backoff policy.

    Args:
        resource: The resource to wrap.
        policy: Backoff policy bounding the attempts of each operation.
        notify: Optional callback invoked as ``notify(operation, error, wait)``
            before every retry, after the warning was logged.
    """

    def __init__(
        self,
        resource: Resource,
        policy: BackoffPolicy,
        notify: Optional[RetryNotifier] = None,
    ):
        super().__init__(resource)
        if policy is None:
            raise ConfigurationError("RetryResource requires a backoff policy")
        self.policy = policy
        self._notify = notify

    async def _call(self, operation: str, ctx: ReconcileContext, *args: Any) -> Any:
        method = getattr(self._resource, operation)

        def on_retry(err: BaseException, wait: float) -> None:
            logger.warning(
                f"retrying '{operation}' of resource '{self.name}' in {wait:.2f}s "
                f"due to error ({err})",
                extra=ctx.log_extra(),
            )
            if self._notify is not None:
                self._notify(operation, err, wait)

        return await retry_notify(
            lambda: method(ctx, *args),
            self.policy,
            notify=on_retry,
            cancel=ctx.shutdown,
        )
