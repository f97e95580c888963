"""
CRD Establishment - Create a custom type and wait until the API serves it.
"""

import asyncio
import logging
from typing import Optional

from reconkit.backoff import BackoffPolicy, retry_notify
from reconkit.crd.backend import CRDBackend
from reconkit.crd.descriptor import CRDDescriptor
from reconkit.errors import (
    AlreadyExistsError,
    CanceledError,
    NameConflictError,
    NotEstablishedError,
    NotFoundError,
)

logger = logging.getLogger(__name__)


async def ensure(
    descriptor: CRDDescriptor,
    backend: CRDBackend,
    policy: BackoffPolicy,
    cancel: Optional[asyncio.Event] = None,
    update_existing: bool = False,
) -> None:
    """
    Make sure the custom type exists and is established.

    1. Create the type. An existing type is accepted as is (or updated when
       ``update_existing`` is set).
    2. Poll its status under the backoff policy until it reports
       Established. Failed status reads are retried as well. A rejected name
       fails immediately.
    3. On failure delete the type again, but only if this call created it.

    Args:
        descriptor: The type to register.
        backend: The type-registration API.
        policy: Backoff policy bounding the status polling.
        cancel: Cancel token for the polling loop.
        update_existing: Submit the descriptor as an update if the type
            already exists.

    Raises:
        NameConflictError: If the API did not accept the names.
        NotEstablishedError: If the type was not established in time.
        CanceledError: If polling was canceled.
        Exception: Errors of the create call, or of the rollback delete which
            take precedence over the original error.
    """
    name = descriptor.name
    created = False
    try:
        await backend.create(descriptor)
        created = True
        logger.info(f"Created CRD {name}")
    except AlreadyExistsError:
        logger.info(f"CRD {name} already exists")
        if update_existing:
            await backend.update(descriptor)
            logger.info(f"Updated CRD {name}")

    async def poll() -> None:
        status = await backend.get(name)
        if status.established:
            return
        if status.names_rejected:
            condition = status.condition("NamesAccepted")
            raise NameConflictError(
                f"CRD {name} names not accepted: {condition.message or condition.reason}"
            )
        raise NotEstablishedError(f"CRD {name} is not established yet")

    def on_retry(err: BaseException, wait: float) -> None:
        logger.debug(f"Waiting {wait:.2f}s for CRD {name}: {err}")

    try:
        await retry_notify(
            poll,
            policy,
            notify=on_retry,
            cancel=cancel,
            retry_on=lambda e: not isinstance(e, NameConflictError),
        )
    except CanceledError:
        raise
    except Exception as e:
        if not created:
            raise
        logger.warning(f"Establishing CRD {name} failed, rolling back: {e}")
        try:
            await backend.delete(name)
        except NotFoundError:
            pass
        except Exception as delete_error:
            logger.error(f"Rollback of CRD {name} failed: {delete_error}")
            raise delete_error from e
        raise

    logger.info(f"CRD {name} is established")


async def ensure_deleted(
    descriptor: CRDDescriptor,
    backend: CRDBackend,
    policy: BackoffPolicy,
    cancel: Optional[asyncio.Event] = None,
) -> None:
    """
    Make sure the custom type is gone.

    The delete is retried under the backoff policy. A type which does not
    exist counts as deleted.

    Raises:
        CanceledError: If retrying was canceled.
        Exception: The last delete error once the policy gives up.
    """
    name = descriptor.name

    async def delete() -> None:
        try:
            await backend.delete(name)
        except NotFoundError:
            logger.info(f"CRD {name} does not exist")
            return
        logger.info(f"Deleted CRD {name}")

    def on_retry(err: BaseException, wait: float) -> None:
        logger.warning(f"Deleting CRD {name} failed, retrying in {wait:.2f}s: {err}")

    await retry_notify(delete, policy, notify=on_retry, cancel=cancel)
