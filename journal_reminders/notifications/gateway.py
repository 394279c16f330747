"""Push transport with Protocol pattern for dependency injection.

Provides WebPushGateway (real delivery through pywebpush) and
DisabledPushGateway (used when VAPID keys are not configured).
"""

import logging
from typing import Protocol

from pywebpush import WebPushException, webpush

from .vapid import VapidConfig, get_vapid_config, validate_vapid_config

logger = logging.getLogger(__name__)


class TransportError(Exception):
    """Delivery failed at the push service."""

    def __init__(self, message: str, status_code: int | None = None, body: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class PushGateway(Protocol):
    """Push transport interface. Returns the HTTP status code or raises TransportError."""

    def send(self, endpoint: str, keys: dict, payload: str) -> int: ...


class WebPushGateway:
    """Web Push (RFC 8030) delivery signed with VAPID."""

    def __init__(self, vapid: VapidConfig, ttl: int = 86400, timeout: float | None = None) -> None:
        self._vapid = vapid
        self._ttl = ttl
        self._timeout = timeout

    def send(self, endpoint: str, keys: dict, payload: str) -> int:
        try:
            response = webpush(
                subscription_info={"endpoint": endpoint, "keys": keys},
                data=payload,
                vapid_private_key=self._vapid.private_key,
                # pywebpush mutates the claims dict (adds "aud"/"exp"), so build a fresh one per call
                vapid_claims={"sub": self._vapid.subject},
                ttl=self._ttl,
                timeout=self._timeout,
            )
        except WebPushException as exc:
            response = exc.response
            status = response.status_code if response is not None else None
            body = response.text if response is not None else ""
            raise TransportError(str(exc), status_code=status, body=body) from exc
        return response.status_code


class DisabledPushGateway:
    """Refuses every send. Used when VAPID keys are missing."""

    def __init__(self, reason: str) -> None:
        self._reason = reason

    def send(self, endpoint: str, keys: dict, payload: str) -> int:
        raise TransportError(f"Push disabled: {self._reason}")


def create_push_gateway(ttl: int = 86400, timeout: float | None = None) -> PushGateway:
    """Factory: real web push when VAPID keys are configured, otherwise a disabled gateway."""
    vapid = get_vapid_config()
    is_valid, errors = validate_vapid_config(vapid)
    if not is_valid:
        logger.warning("Web push disabled: %s", ", ".join(errors))
        return DisabledPushGateway(", ".join(errors))
    return WebPushGateway(vapid, ttl=ttl, timeout=timeout)
