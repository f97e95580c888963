"""Log Resource - Logs before and after every resource operation."""

import logging
from typing import Any, Optional

from reconkit.context import ReconcileContext
from reconkit.resources.base import Resource
from reconkit.resources.decorator import ResourceDecorator

logger = logging.getLogger(__name__)


class LogResource(ResourceDecorator):
    """Decorator emitting a log record around each operation."""

    def __init__(self, resource: Resource, log: Optional[logging.Logger] = None):
        super().__init__(resource)
        self.logger = log if log is not None else logger

    async def _call(self, operation: str, ctx: ReconcileContext, *args: Any) -> Any:
        extra = dict(ctx.log_extra(), resource=self.name, operation=operation)

        self.logger.debug(
            f"start to execute resource operation '{operation}' of '{self.name}'",
            extra=extra,
        )
        try:
            result = await super()._call(operation, ctx, *args)
        except Exception as e:
            self.logger.error(
                f"failed to execute resource operation '{operation}' "
                f"of '{self.name}': {e}",
                extra=extra,
            )
            raise
        self.logger.debug(
            f"executed resource operation '{operation}' of '{self.name}' "
            "without errors",
            extra=extra,
        )
        return result
