"""
Push subscription lifecycle and user-level delivery.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Any, Iterable

from sqlalchemy import case, delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from gradebook_push.errors import DuplicateSubscriptionError, NotFoundError, ValidationError
from gradebook_push.models.base import as_utc, utcnow
from gradebook_push.models.push_subscription import PushSubscription
from gradebook_push.services.payload import PushMessage
from gradebook_push.services.push import BatchSummary, PushNotificationService
from gradebook_push.settings import settings

logger = logging.getLogger(__name__)


def _coerce_expiration(value: Any) -> datetime | None:
    """Browsers report expirationTime as epoch milliseconds or null.

    ISO 8601 strings are accepted too. Anything else is a ValidationError.
    """
    if value is None or isinstance(value, datetime):
        return value
    try:
        if isinstance(value, str):
            try:
                value = float(value)
            except ValueError:
                return as_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
        return datetime.fromtimestamp(float(value) / 1000, tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError) as e:
        logger.warning("Rejected expirationTime %r: %s", value, e)
        raise ValidationError("Invalid subscription expiration time") from e


async def _find(db: AsyncSession, user_id: str, endpoint: str) -> PushSubscription | None:
    result = await db.execute(
        select(PushSubscription).where(
            PushSubscription.user_id == user_id,
            PushSubscription.endpoint == endpoint,
        )
    )
    return result.scalar_one_or_none()


def _refresh(
    subscription: PushSubscription,
    keys: dict,
    expiration_time: datetime | None,
    user_agent: str | None,
    platform: dict | None,
) -> None:
    subscription.p256dh_key = keys["p256dh"]
    subscription.auth_key = keys["auth"]
    subscription.expiration_time = expiration_time
    subscription.user_agent = user_agent or subscription.user_agent or ""
    subscription.apply_platform(platform)
    subscription.is_active = True
    now = utcnow()
    subscription.last_updated = now
    subscription.last_used = now


async def register(
    db: AsyncSession,
    user_id: str,
    endpoint: str | None,
    keys: dict | None,
    school_id: str | None = None,
    expiration_time: Any = None,
    user_agent: str | None = None,
    platform: dict | None = None,
) -> PushSubscription:
    """Create or refresh the subscription for (user_id, endpoint)."""
    keys = keys or {}
    if not endpoint or not keys.get("p256dh") or not keys.get("auth"):
        logger.warning(
            "Invalid subscription data from user %s: endpoint=%s p256dh=%s auth=%s",
            user_id, bool(endpoint), bool(keys.get("p256dh")), bool(keys.get("auth")),
        )
        raise ValidationError()

    expiration_time = _coerce_expiration(expiration_time)

    existing = await _find(db, user_id, endpoint)
    if existing:
        _refresh(existing, keys, expiration_time, user_agent, platform)
        await db.commit()
        logger.info("Updated existing push subscription %s for user %s", existing.id, user_id)
        return existing

    now = utcnow()
    subscription = PushSubscription(
        user_id=user_id,
        school_id=school_id,
        endpoint=endpoint,
        p256dh_key=keys["p256dh"],
        auth_key=keys["auth"],
        expiration_time=expiration_time,
        user_agent=user_agent or "",
        is_active=True,
        created_at=now,
        last_updated=now,
        last_used=now,
    )
    subscription.apply_platform(platform)
    db.add(subscription)

    try:
        await db.commit()
    except IntegrityError:
        # Lost a race with a concurrent registration of the same endpoint
        await db.rollback()
        existing = await _find(db, user_id, endpoint)
        if existing is None:
            logger.warning("Duplicate endpoint registered to another user: %s...", endpoint[:50])
            raise DuplicateSubscriptionError()
        _refresh(existing, keys, expiration_time, user_agent, platform)
        await db.commit()
        logger.info("Resolved concurrent registration for user %s as update", user_id)
        return existing

    logger.info(
        "Created push subscription %s for user %s (%s...)",
        subscription.id, user_id, endpoint[:50],
    )
    return subscription


async def unregister(db: AsyncSession, user_id: str, endpoint: str | None) -> None:
    """Delete the user's subscription for an endpoint."""
    if not endpoint:
        raise ValidationError("Endpoint is required")

    result = await db.execute(
        delete(PushSubscription).where(
            PushSubscription.user_id == user_id,
            PushSubscription.endpoint == endpoint,
        )
    )
    if not result.rowcount:
        raise NotFoundError()
    await db.commit()
    logger.info("Deleted push subscription for user %s", user_id)


async def get_active_subscriptions(db: AsyncSession, user_id: str) -> list[PushSubscription]:
    result = await db.execute(
        select(PushSubscription)
        .where(PushSubscription.user_id == user_id, PushSubscription.is_active.is_(True))
        .order_by(PushSubscription.created_at.desc())
    )
    return list(result.scalars().all())


async def list_active(db: AsyncSession, user_id: str) -> list[dict[str, Any]]:
    """Active subscriptions for display. Keys are never included."""
    return [sub.to_info() for sub in await get_active_subscriptions(db, user_id)]


async def list_active_for_school(db: AsyncSession, school_id: str) -> list[PushSubscription]:
    result = await db.execute(
        select(PushSubscription)
        .where(PushSubscription.school_id == school_id, PushSubscription.is_active.is_(True))
        .order_by(PushSubscription.created_at.desc())
    )
    return list(result.scalars().all())


async def cleanup_expired(db: AsyncSession, now: datetime | None = None) -> int:
    """Deactivate active subscriptions whose expiration time has passed."""
    now = now or utcnow()
    result = await db.execute(
        update(PushSubscription)
        .where(
            PushSubscription.expiration_time.is_not(None),
            PushSubscription.expiration_time < now,
            PushSubscription.is_active.is_(True),
        )
        .values(is_active=False, last_updated=now)
        .execution_options(synchronize_session="fetch")
    )
    await db.commit()
    if result.rowcount:
        logger.info("Deactivated %d expired push subscriptions", result.rowcount)
    return result.rowcount or 0


async def deactivate_endpoints(db: AsyncSession, endpoints: Iterable[str]) -> int:
    endpoints = list(endpoints)
    if not endpoints:
        return 0
    result = await db.execute(
        update(PushSubscription)
        .where(PushSubscription.endpoint.in_(endpoints), PushSubscription.is_active.is_(True))
        .values(is_active=False, last_updated=utcnow())
    )
    await db.commit()
    logger.info("Deactivated %d expired subscriptions", result.rowcount or 0)
    return result.rowcount or 0


async def get_stats(db: AsyncSession, school_id: str | None = None) -> dict[str, int]:
    """Aggregate subscription counts for reporting."""

    def count_if(condition):
        return func.coalesce(func.sum(case((condition, 1), else_=0)), 0)

    query = select(
        func.count(PushSubscription.id).label("total_subscriptions"),
        count_if(PushSubscription.is_active.is_(True)).label("active_subscriptions"),
        count_if(PushSubscription.is_ios.is_(True)).label("ios_subscriptions"),
        count_if(PushSubscription.is_android.is_(True)).label("android_subscriptions"),
        count_if(PushSubscription.is_windows.is_(True)).label("windows_subscriptions"),
        count_if(PushSubscription.is_pwa.is_(True)).label("pwa_subscriptions"),
        func.coalesce(func.sum(PushSubscription.total_pushes), 0).label("total_pushes"),
        func.coalesce(func.sum(PushSubscription.successful_pushes), 0).label("successful_pushes"),
        func.coalesce(func.sum(PushSubscription.failed_pushes), 0).label("failed_pushes"),
    )
    if school_id:
        query = query.where(PushSubscription.school_id == school_id)

    row = (await db.execute(query)).one()
    return {key: int(value or 0) for key, value in row._mapping.items()}


async def _record_outcomes(db: AsyncSession, summary: BatchSummary) -> None:
    """Persist per-subscription stats and deactivate expired endpoints."""
    for subscription, result in summary.outcomes:
        if not isinstance(subscription, PushSubscription):
            continue
        error = result.error or ("Subscription expired" if result.expired else None)
        subscription.record_push(result.success, error, result.status_code)
    await db.flush()

    if summary.expired_subscriptions:
        await deactivate_endpoints(db, [sub.endpoint for sub in summary.expired_subscriptions])
    else:
        await db.commit()


async def _deliver(
    db: AsyncSession,
    push: PushNotificationService,
    subscriptions: list[PushSubscription],
    message: PushMessage,
    category: str | None,
    ttl: int | None,
) -> BatchSummary:
    now = utcnow()
    # Browser-reported expiry passed; cleanup_expired will deactivate these
    targets = [sub for sub in subscriptions if sub.allows(category) and not sub.is_expired(now)]
    if not targets:
        return BatchSummary()
    summary = await push.send_to_many(targets, message, ttl=ttl)
    await _record_outcomes(db, summary)
    return summary


async def send_to_user(
    db: AsyncSession,
    push: PushNotificationService,
    user_id: str,
    message: PushMessage,
    category: str | None = None,
    ttl: int | None = None,
) -> BatchSummary:
    """Deliver a message to all of a user's active subscriptions."""
    push.ensure_configured()
    subscriptions = await get_active_subscriptions(db, user_id)
    if not subscriptions:
        logger.info("No active push subscriptions for user %s", user_id)
        return BatchSummary()
    return await _deliver(db, push, subscriptions, message, category, ttl)


async def send_to_users(
    db: AsyncSession,
    push: PushNotificationService,
    user_ids: Iterable[str],
    message: PushMessage,
    category: str | None = None,
    ttl: int | None = None,
) -> BatchSummary:
    """Recipient fan-out for a notification addressed to many users."""
    push.ensure_configured()
    user_ids = list(dict.fromkeys(user_ids))
    if not user_ids:
        return BatchSummary()

    result = await db.execute(
        select(PushSubscription).where(
            PushSubscription.user_id.in_(user_ids),
            PushSubscription.is_active.is_(True),
        )
    )
    subscriptions = list(result.scalars().all())
    logger.info(
        "Found %d push subscriptions for %d recipients", len(subscriptions), len(user_ids),
    )
    return await _deliver(db, push, subscriptions, message, category, ttl)


async def send_test(
    db: AsyncSession,
    push: PushNotificationService,
    user_id: str,
    title: str | None = None,
    body: str | None = None,
    ttl: int | None = None,
) -> BatchSummary:
    """Send a short-lived test notification to the user's devices."""
    push.ensure_configured()
    subscriptions = await get_active_subscriptions(db, user_id)
    if not subscriptions:
        raise NotFoundError("No active push subscriptions found")

    now_ms = int(time.time() * 1000)
    message = PushMessage(
        title=title or "Test Notification",
        body=body or f"Test push notification from GradeBook at {utcnow():%H:%M:%S}",
        url="/app/notifications",
        notification_id=f"test-{now_ms}",
        urgent=False,
    )
    logger.info("Sending test push to %d subscriptions for user %s", len(subscriptions), user_id)
    summary = await push.send_to_many(subscriptions, message, ttl=ttl or settings.push_test_ttl)
    await _record_outcomes(db, summary)
    return summary
