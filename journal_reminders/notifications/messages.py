"""Notification copy and push payload building.

Short, low-pressure prompts.
"""

import random
import uuid

from pydantic import BaseModel

from ..config import settings
from .models import NotificationType

APP_TITLE = "Hibioru"

MAIN_MESSAGES = [
    "How was your day today?",
    "Even a single line is worth keeping.",
]

# First follow-up
FOLLOW_UP_1_MESSAGES = [
    "There's still time.",
    "It only takes 30 seconds.",
]

# Second and later follow-ups
FOLLOW_UP_2_MESSAGES = [
    "Last chance for today.",
    "Want to use a streak freeze?",
]


class PushPayloadData(BaseModel):
    url: str
    type: NotificationType
    notificationId: str  # noqa: N815 - wire name read by the service worker


class PushPayload(BaseModel):
    title: str
    body: str
    icon: str | None = None
    data: PushPayloadData

    def to_json(self) -> str:
        return self.model_dump_json(exclude_none=True)


def get_main_message() -> str:
    return random.choice(MAIN_MESSAGES)


def get_follow_up_message(count: int) -> str:
    """Copy for follow-up number ``count`` (1-based); anything past the first uses the last-chance set."""
    if count <= 1:
        return random.choice(FOLLOW_UP_1_MESSAGES)
    return random.choice(FOLLOW_UP_2_MESSAGES)


def build_payload(notification_type: NotificationType, follow_up_number: int = 0) -> PushPayload:
    if notification_type == NotificationType.CHASE_REMINDER:
        body = get_follow_up_message(follow_up_number)
    else:
        body = get_main_message()
    return PushPayload(
        title=APP_TITLE,
        body=body,
        icon=settings.notification_icon or None,
        data=PushPayloadData(
            url=settings.notification_url,
            type=notification_type,
            notificationId=str(uuid.uuid4()),
        ),
    )
