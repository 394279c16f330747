"""Multi-device dispatch.

One logical notification is fanned out to every device the user registered.
Devices are sent to concurrently and independently; the call returns once all
of them have settled. At least one delivered device counts as success.
"""

import asyncio
import logging
from collections.abc import Callable
from uuid import UUID

from pydantic import BaseModel
from sqlalchemy.orm import Session

from .. import tasks
from ..config import settings
from ..database.base import SessionLocal
from .gateway import PushGateway, TransportError
from .messages import PushPayload
from .models import PushSubscription
from .subscriptions import list_subscriptions, remove_invalid_subscription

logger = logging.getLogger(__name__)

GONE_STATUS = 410


class SendResult(BaseModel):
    subscription_id: UUID
    success: bool
    status_code: int | None = None
    error: str | None = None
    should_remove: bool | None = None


class DispatchError(Exception):
    code = "DISPATCH_ERROR"


class NoSubscriptionsError(DispatchError):
    code = "NO_SUBSCRIPTIONS"

    def __init__(self, user_id: UUID) -> None:
        super().__init__(f"No push subscriptions for user {user_id}")
        self.user_id = user_id


class AllFailedError(DispatchError):
    code = "ALL_FAILED"

    def __init__(self, results: list[SendResult]) -> None:
        super().__init__(f"Delivery failed on all {len(results)} devices")
        self.results = results


def _failure(subscription_id: UUID, status_code: int | None, message: str) -> SendResult:
    if status_code == GONE_STATUS:
        return SendResult(
            subscription_id=subscription_id,
            success=False,
            status_code=status_code,
            error="Subscription has expired or is no longer valid",
            should_remove=True,
        )
    return SendResult(subscription_id=subscription_id, success=False, status_code=status_code, error=message)


def send_to_one_device(gateway: PushGateway, subscription: PushSubscription, payload: PushPayload) -> SendResult:
    """Deliver to a single device. Never raises; every failure becomes a SendResult."""
    target = subscription.to_webpush_dict()
    try:
        status_code = gateway.send(target["endpoint"], target["keys"], payload.to_json())
    except TransportError as exc:
        return _failure(subscription.id, exc.status_code, str(exc) or exc.body or "Unknown error")
    except Exception as exc:
        logger.warning("Unexpected transport error for subscription %s: %s", subscription.id, exc)
        return _failure(subscription.id, None, str(exc) or type(exc).__name__)

    if status_code >= 400:
        return _failure(subscription.id, status_code, f"Push service returned {status_code}")
    return SendResult(subscription_id=subscription.id, success=True, status_code=status_code)


async def _send_with_timeout(
    gateway: PushGateway, subscription: PushSubscription, payload: PushPayload, timeout: float
) -> SendResult:
    subscription_id = subscription.id
    try:
        return await asyncio.wait_for(
            asyncio.to_thread(send_to_one_device, gateway, subscription, payload),
            timeout,
        )
    except TimeoutError:
        return SendResult(subscription_id=subscription_id, success=False, error=f"Timed out after {timeout}s")


def _prune_subscription(session_factory: Callable[[], Session], subscription_id: UUID, reason: str) -> None:
    db = session_factory()
    try:
        remove_invalid_subscription(db, subscription_id, reason)
        db.commit()
    finally:
        db.close()


async def send_to_all_devices(
    db: Session,
    user_id: UUID,
    payload: PushPayload,
    gateway: PushGateway,
    *,
    session_factory: Callable[[], Session] | None = None,
    timeout: float | None = None,
) -> list[SendResult]:
    """Send ``payload`` to every device of ``user_id``.

    Raises NoSubscriptionsError when the user has no devices and AllFailedError
    when no device accepted the notification. Subscriptions reported gone are
    removed in the background; that cleanup never affects the outcome.
    """
    subscriptions = list_subscriptions(db, user_id)
    if not subscriptions:
        raise NoSubscriptionsError(user_id)

    timeout = settings.push_timeout_seconds if timeout is None else timeout
    results = list(
        await asyncio.gather(*(_send_with_timeout(gateway, sub, payload, timeout) for sub in subscriptions))
    )

    for result in results:
        if result.should_remove:
            tasks.spawn(
                asyncio.to_thread(
                    _prune_subscription,
                    session_factory or SessionLocal,
                    result.subscription_id,
                    f"{GONE_STATUS} Gone",
                ),
                name=f"prune-subscription-{result.subscription_id}",
            )

    delivered = sum(1 for r in results if r.success)
    logger.info("Dispatched %s to %d/%d devices for user %s", payload.data.type, delivered, len(results), user_id)
    if not delivered:
        raise AllFailedError(results)
    return results
