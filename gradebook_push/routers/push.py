"""
Push notifications router for web push subscriptions.
"""

import logging

from fastapi import APIRouter, HTTPException, status
from fastapi.responses import JSONResponse

from gradebook_push.deps import AdminUser, CurrentUser, DBSession, PushService
from gradebook_push.schemas.push import (
    PushSubscribeRequest,
    PushTestRequest,
    PushUnsubscribeRequest,
)
from gradebook_push.services import subscriptions

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/notifications", tags=["push"])


@router.get("/vapid-public-key")
async def get_vapid_public_key(user: CurrentUser, push: PushService):
    """Get the VAPID public key for push subscription."""
    logger.info("VAPID public key request from user %s", user.id)
    return JSONResponse({"success": True, "vapidPublicKey": push.get_public_key()})


@router.post("/subscription")
async def create_push_subscription(
    body: PushSubscribeRequest,
    user: CurrentUser,
    db: DBSession,
):
    """Create or update the caller's push subscription."""
    keys = body.keys.model_dump() if body.keys else None
    platform = body.platform.model_dump() if body.platform else None

    subscription = await subscriptions.register(
        db,
        user_id=user.id,
        school_id=user.school_id,
        endpoint=body.endpoint,
        keys=keys,
        expiration_time=body.expiration_time,
        user_agent=body.user_agent,
        platform=platform,
    )
    return JSONResponse({
        "success": True,
        "message": "Push subscription saved successfully",
        "subscriptionId": subscription.id,
    })


@router.delete("/subscription")
async def delete_push_subscription(
    body: PushUnsubscribeRequest,
    user: CurrentUser,
    db: DBSession,
):
    """Unsubscribe from push notifications."""
    await subscriptions.unregister(db, user.id, body.endpoint)
    return JSONResponse({
        "success": True,
        "message": "Push subscription deleted successfully",
    })


@router.get("/subscriptions")
async def get_user_subscriptions(user: CurrentUser, db: DBSession):
    """List the caller's active subscriptions (without keys)."""
    items = await subscriptions.list_active(db, user.id)
    return JSONResponse({"success": True, "subscriptions": items, "count": len(items)})


@router.post("/test")
async def send_test_notification(
    user: CurrentUser,
    db: DBSession,
    push: PushService,
    body: PushTestRequest | None = None,
):
    """Send a test push notification to the current user."""
    body = body or PushTestRequest()
    summary = await subscriptions.send_test(
        db,
        push,
        user.id,
        title=body.title,
        body=body.body,
    )
    return JSONResponse({
        "success": True,
        "message": "Test notification sent",
        "results": summary.to_dict(),
    })


@router.get("/push-stats")
async def get_push_stats(user: AdminUser, db: DBSession, push: PushService):
    """Subscription statistics; school admins only see their own school."""
    if user.is_superadmin:
        school_id = None
    elif user.school_id:
        school_id = user.school_id
    else:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="School admin access requires a school",
        )
    stats = await subscriptions.get_stats(db, school_id=school_id)
    return JSONResponse({"success": True, "push_configured": push.configured, "stats": stats})


@router.post("/cleanup-expired")
async def cleanup_expired_subscriptions(user: AdminUser, db: DBSession):
    """Deactivate subscriptions whose browser-reported expiry has passed."""
    deactivated = await subscriptions.cleanup_expired(db)
    logger.info("Expired subscription cleanup by %s: %d deactivated", user.id, deactivated)
    return JSONResponse({"success": True, "deactivated": deactivated})
