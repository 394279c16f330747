"""Push subscription registry: one row per device endpoint."""

import logging
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .models import PushSubscription
from .schemas import SubscriptionDescriptor

logger = logging.getLogger(__name__)


class SubscriptionError(Exception):
    code = "SUBSCRIPTION_ERROR"


class DuplicateEndpointError(SubscriptionError):
    """The endpoint is already registered. Callers treat this as success."""

    code = "DUPLICATE_ENDPOINT"

    def __init__(self, endpoint: str) -> None:
        super().__init__(f"Endpoint already registered: {endpoint[:60]}")
        self.endpoint = endpoint


def register_subscription(
    db: Session,
    user_id: UUID,
    descriptor: SubscriptionDescriptor,
    user_agent: str | None = None,
) -> PushSubscription:
    """Insert a device subscription and commit.

    A unique-constraint conflict means the device is already registered and is
    raised as DuplicateEndpointError rather than a storage error.
    """
    subscription = PushSubscription(
        user_id=user_id,
        endpoint=descriptor.endpoint,
        p256dh_key=descriptor.keys.p256dh,
        auth_key=descriptor.keys.auth,
        user_agent=user_agent,
    )
    try:
        db.add(subscription)
        db.commit()
    except IntegrityError:
        db.rollback()
        raise DuplicateEndpointError(descriptor.endpoint) from None
    logger.info("Registered push subscription %s for user %s", subscription.id, user_id)
    return subscription


def list_subscriptions(db: Session, user_id: UUID) -> list[PushSubscription]:
    return (
        db.query(PushSubscription)
        .filter(PushSubscription.user_id == user_id)
        .order_by(PushSubscription.created_at.asc())
        .all()
    )


def unregister_subscription(db: Session, user_id: UUID, endpoint: str) -> bool:
    """Remove a user's endpoint. Removing an unknown endpoint is not an error."""
    deleted = (
        db.query(PushSubscription)
        .filter(PushSubscription.user_id == user_id, PushSubscription.endpoint == endpoint)
        .delete(synchronize_session=False)
    )
    db.flush()
    return deleted > 0


def remove_invalid_subscription(db: Session, subscription_id: UUID, reason: str | None = None) -> bool:
    deleted = (
        db.query(PushSubscription)
        .filter(PushSubscription.id == subscription_id)
        .delete(synchronize_session=False)
    )
    db.flush()
    if deleted:
        logger.info("Removed invalid subscription %s (%s)", subscription_id, reason or "no reason given")
    return deleted > 0
