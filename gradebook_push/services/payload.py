"""
Platform-specific notification payloads.
"""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping

DEFAULT_TITLE = "GradeBook"
DEFAULT_BODY = "New notification"
DEFAULT_URL = "/app/notifications"
ICON_PATH = "/logo192.png"
BADGE_PATH = "/badge-icon.png"

URGENT_VIBRATE = [200, 100, 200]
NORMAL_VIBRATE = [100, 50, 100]


class PlatformVariant(str, Enum):
    """Delivery shape for a subscription's device."""
    IOS = "ios"
    ANDROID = "android"
    DESKTOP = "desktop"


@dataclass(frozen=True)
class PushMessage:
    """Generic notification input before platform shaping."""

    title: str | None = None
    body: str | None = None
    url: str | None = None
    notification_id: str | None = None
    urgent: bool = False


def resolve_variant(flags: Mapping[str, Any] | None) -> PlatformVariant:
    """Pick the variant from stored platform flags.

    iOS wins over Android, anything else is treated as desktop.
    """
    if not flags:
        return PlatformVariant.DESKTOP
    if flags.get("is_ios"):
        return PlatformVariant.IOS
    if flags.get("is_android"):
        return PlatformVariant.ANDROID
    return PlatformVariant.DESKTOP


def shape_payload(
    variant: PlatformVariant,
    message: PushMessage,
    now_ms: int | None = None,
) -> dict[str, Any]:
    """Build the JSON payload delivered to the service worker."""
    timestamp = now_ms if now_ms is not None else int(time.time() * 1000)
    urgent = bool(message.urgent)

    payload: dict[str, Any] = {
        "title": message.title or DEFAULT_TITLE,
        "body": message.body or DEFAULT_BODY,
        "icon": ICON_PATH,
        "badge": BADGE_PATH,
        "url": message.url or DEFAULT_URL,
        "notificationId": message.notification_id,
        "timestamp": timestamp,
        "tag": f"{variant.value}-{message.notification_id or timestamp}",
        "urgent": urgent,
    }

    # iOS ignores vibration patterns
    if variant is not PlatformVariant.IOS:
        payload["vibrate"] = list(URGENT_VIBRATE if urgent else NORMAL_VIBRATE)

    return payload
