"""
Push notification service using web-push.
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Protocol, Sequence

from pywebpush import WebPushException, webpush

from gradebook_push.errors import ConfigurationError
from gradebook_push.services.payload import PlatformVariant, PushMessage, resolve_variant, shape_payload
from gradebook_push.services.vapid import VapidConfig

logger = logging.getLogger(__name__)

DEFAULT_TTL = 86400  # 24 hours
EXPIRED_STATUS_CODES = (404, 410)


class PushTransportError(Exception):
    """Push service rejected a message."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


@dataclass
class TransportResponse:
    status_code: int
    headers: dict[str, str] = field(default_factory=dict)


class PushTransport(Protocol):
    async def send(
        self,
        subscription_info: dict[str, Any],
        data: str,
        *,
        ttl: int,
        urgency: str,
    ) -> TransportResponse:
        ...


class WebPushTransport:
    """pywebpush-backed transport.

    pywebpush is blocking (requests), so each call runs in a worker thread.
    """

    def __init__(self, config: VapidConfig, timeout: float | None = 10):
        self.config = config
        self.timeout = timeout

    def _send_sync(self, subscription_info: dict, data: str, ttl: int, urgency: str) -> TransportResponse:
        try:
            response = webpush(
                subscription_info=subscription_info,
                data=data,
                vapid_private_key=self.config.private_key,
                # pywebpush writes "aud" into the claims, so each call gets its own dict
                vapid_claims=dict(self.config.claims),
                ttl=ttl,
                headers={"Urgency": urgency},
                timeout=self.timeout,
            )
        except WebPushException as e:
            status_code = e.response.status_code if e.response is not None else None
            raise PushTransportError(str(e), status_code=status_code) from e
        return TransportResponse(
            status_code=response.status_code,
            headers=dict(response.headers),
        )

    async def send(self, subscription_info, data, *, ttl, urgency) -> TransportResponse:
        return await asyncio.to_thread(self._send_sync, subscription_info, data, ttl, urgency)


@dataclass
class PushResult:
    """Outcome of one delivery attempt."""

    success: bool
    status_code: int | None = None
    headers: dict[str, str] | None = None
    expired: bool = False
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        if self.success:
            return {"success": True, "statusCode": self.status_code, "headers": self.headers or {}}
        if self.expired:
            return {"success": False, "expired": True, "statusCode": self.status_code}
        return {"success": False, "error": self.error, "statusCode": self.status_code}


@dataclass
class BatchSummary:
    """Aggregate outcome of a fan-out."""

    total: int = 0
    successful: int = 0
    failed: int = 0
    expired: int = 0
    expired_subscriptions: list[Any] = field(default_factory=list)
    # (subscription, result) in input order
    outcomes: list[tuple[Any, PushResult]] = field(default_factory=list)

    def to_dict(self) -> dict[str, int]:
        return {
            "total": self.total,
            "successful": self.successful,
            "failed": self.failed,
            "expired": self.expired,
        }


def _describe(subscription: Any) -> tuple[dict[str, Any], PlatformVariant]:
    """Transport descriptor and payload variant for a model row or a plain dict."""
    if isinstance(subscription, dict):
        info = {
            "endpoint": subscription["endpoint"] or "",
            "keys": subscription.get("keys") or {},
        }
        return info, resolve_variant(subscription.get("platform") or {})
    return subscription.subscription_info, subscription.platform_variant


class PushNotificationService:
    """Service for sending web push notifications.

    Built once at startup. When VAPID credentials are missing or invalid the
    service is constructed unconfigured and every send fails fast.
    """

    def __init__(
        self,
        config: VapidConfig | None,
        transport: PushTransport | None = None,
        default_ttl: int = DEFAULT_TTL,
    ):
        self.config = config
        self.default_ttl = default_ttl
        if transport is None and config is not None:
            transport = WebPushTransport(config)
        self.transport = transport

        if self.configured:
            logger.info("Push notifications enabled - VAPID keys configured")
        else:
            logger.warning("Push notifications disabled - VAPID keys not configured")

    @property
    def configured(self) -> bool:
        return self.config is not None and self.transport is not None

    def ensure_configured(self) -> None:
        if not self.configured:
            raise ConfigurationError()

    def get_public_key(self) -> str:
        self.ensure_configured()
        return self.config.public_key

    async def send_to_subscription(
        self,
        subscription: Any,
        message: PushMessage,
        ttl: int | None = None,
        urgency: str | None = None,
        now_ms: int | None = None,
    ) -> PushResult:
        """Send one message to one subscription.

        Transport failures come back as a PushResult, never as an exception,
        so one dead subscription cannot abort a batch.
        """
        self.ensure_configured()

        info, variant = _describe(subscription)
        endpoint = info["endpoint"] or ""
        logger.debug(
            "Sending push to %s... (variant=%s)", endpoint[:50], variant.value,
        )

        data = json.dumps(shape_payload(variant, message, now_ms=now_ms))
        try:
            response = await self.transport.send(
                info,
                data,
                ttl=ttl or self.default_ttl,
                urgency=urgency or ("high" if message.urgent else "normal"),
            )
        except PushTransportError as e:
            if e.status_code in EXPIRED_STATUS_CODES:
                logger.info(
                    "Subscription expired (status %s), marking for removal: %s...",
                    e.status_code, endpoint[:50],
                )
                return PushResult(success=False, expired=True, status_code=e.status_code)
            logger.warning(
                "Push send failed (status %s) for %s...: %s",
                e.status_code, endpoint[:50], e.message,
            )
            return PushResult(success=False, error=e.message, status_code=e.status_code)
        except Exception as e:
            # Malformed keys surface as crypto errors rather than WebPushException
            logger.error("Push send error for %s...: %s", endpoint[:50], e)
            return PushResult(success=False, error=str(e), status_code=getattr(e, "status_code", None))

        logger.debug("Push sent successfully (status %s)", response.status_code)
        return PushResult(success=True, status_code=response.status_code, headers=response.headers)

    async def send_to_many(
        self,
        subscriptions: Sequence[Any],
        message: PushMessage,
        ttl: int | None = None,
    ) -> BatchSummary:
        """Send to every subscription concurrently and tally the results."""
        self.ensure_configured()
        logger.info("Sending push to %d subscriptions", len(subscriptions))

        # One capture time per batch so every device gets the same tag
        now_ms = int(time.time() * 1000)
        results = await asyncio.gather(
            *(self.send_to_subscription(sub, message, ttl=ttl, now_ms=now_ms) for sub in subscriptions),
            return_exceptions=True,
        )

        summary = BatchSummary(total=len(subscriptions))
        for subscription, result in zip(subscriptions, results):
            if isinstance(result, BaseException):
                logger.error("Push send raised unexpectedly: %s", result)
                result = PushResult(success=False, error=str(result))
            summary.outcomes.append((subscription, result))

            if result.success:
                summary.successful += 1
                continue
            summary.failed += 1
            if result.expired:
                summary.expired += 1
                summary.expired_subscriptions.append(subscription)

        logger.info("Push batch completed: %s", summary.to_dict())
        return summary
