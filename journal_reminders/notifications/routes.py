"""Notification routes: settings, device subscriptions, entry hook and the internal tick."""

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from .. import tasks
from ..config import settings
from ..database.base import get_db, utcnow
from ..dependencies import get_current_user_id, get_push_gateway, get_session_factory, require_service_key
from ..rate_limit import limiter, user_or_ip_key
from .engine import TickSummary, handle_entry_created, run_tick
from .gateway import PushGateway
from .log import prune_older_than
from .schemas import (
    EntryCreatedRequest,
    NotificationSettingsUpdate,
    SubscribeRequest,
    TickRequest,
)
from .settings_service import get_settings, update_settings
from .subscriptions import DuplicateEndpointError, register_subscription, unregister_subscription
from .vapid import get_vapid_config, is_notification_enabled

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notifications", tags=["notifications"])
internal_router = APIRouter(
    prefix="/internal/notifications",
    tags=["internal"],
    dependencies=[Depends(require_service_key)],
)


@router.get("/settings")
def read_settings(
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
):
    return JSONResponse({"settings": get_settings(db, user_id).model_dump(mode="json")})


@router.put("/settings")
def save_settings(
    body: NotificationSettingsUpdate,
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
):
    saved = update_settings(db, user_id, body)
    db.commit()
    return JSONResponse({"ok": True, "settings": saved.model_dump(mode="json")})


@router.get("/vapid-public-key")
def vapid_public_key():
    if not is_notification_enabled():
        return JSONResponse({"error": "Push notifications are not configured"}, status_code=503)
    return JSONResponse({"publicKey": get_vapid_config().public_key})


@router.post("/subscribe")
@limiter.limit("10/minute", key_func=user_or_ip_key)
def subscribe(
    request: Request,
    body: SubscribeRequest,
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
):
    try:
        subscription = register_subscription(db, user_id, body.subscription, body.user_agent)
    except DuplicateEndpointError:
        return JSONResponse({"success": True, "subscriptionId": None, "alreadyRegistered": True})
    return JSONResponse(
        {"success": True, "subscriptionId": str(subscription.id), "alreadyRegistered": False},
        status_code=201,
    )


@router.delete("/subscribe")
@limiter.limit("10/minute", key_func=user_or_ip_key)
def unsubscribe(
    request: Request,
    endpoint: str,
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
):
    if not endpoint:
        return JSONResponse({"error": "endpoint is required"}, status_code=400)
    removed = unregister_subscription(db, user_id, endpoint)
    db.commit()
    return JSONResponse({"success": True, "removed": removed})


def _handle_entry_in_background(
    session_factory: Callable[[], Session], user_id: UUID, entry_id: UUID, created_at: datetime
) -> None:
    db = session_factory()
    try:
        result = handle_entry_created(db, user_id, entry_id, created_at)
        logger.debug(
            "Entry %s handled: log_updated=%s follow_ups_cancelled=%s",
            entry_id, result.log_updated, result.follow_ups_cancelled,
        )
    except Exception:
        logger.exception("Entry-created hook failed for entry %s", entry_id)
    finally:
        db.close()


@router.post("/entries", status_code=202)
def entry_created(
    body: EntryCreatedRequest,
    background_tasks: BackgroundTasks,
    user_id: UUID = Depends(get_current_user_id),
    session_factory: Callable[[], Session] = Depends(get_session_factory),
):
    background_tasks.add_task(_handle_entry_in_background, session_factory, user_id, body.entry_id, body.created_at)
    return JSONResponse({"accepted": True}, status_code=202)


def _tick_blocking(
    db: Session, now: datetime, gateway: PushGateway, session_factory: Callable[[], Session]
) -> TickSummary:
    """Drive one tick on a private event loop inside the request's worker thread."""

    async def _run() -> TickSummary:
        try:
            return await run_tick(
                db, now, gateway, session_factory=session_factory, timeout=settings.push_timeout_seconds
            )
        finally:
            # gone-device cleanup must finish before asyncio.run closes the loop
            await tasks.drain(timeout=settings.push_timeout_seconds)

    return asyncio.run(_run())


@internal_router.post("/tick")
def tick(
    body: TickRequest | None = None,
    db: Session = Depends(get_db),
    gateway: PushGateway = Depends(get_push_gateway),
    session_factory: Callable[[], Session] = Depends(get_session_factory),
):
    now = body.now if body and body.now else utcnow()
    summary = _tick_blocking(db, now, gateway, session_factory)
    return JSONResponse({"success": True, "stats": summary.model_dump(mode="json")})


@internal_router.post("/prune-logs")
def prune_logs(db: Session = Depends(get_db)):
    deleted = prune_older_than(db, settings.log_retention_days)
    db.commit()
    return JSONResponse({"success": True, "deleted": deleted})
