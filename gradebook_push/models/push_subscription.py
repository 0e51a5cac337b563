"""
Push subscription model for web push notifications.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from gradebook_push.models.base import Base, TimestampMixin, as_utc, utcnow
from gradebook_push.services.payload import PlatformVariant, resolve_variant

PLATFORM_FLAGS = (
    "is_ios",
    "is_android",
    "is_windows",
    "is_safari",
    "is_chrome",
    "is_firefox",
    "is_pwa",
)

PREFERENCE_CATEGORIES = ("grades", "assignments", "announcements", "events", "urgent")


class PushSubscription(Base, TimestampMixin):
    """One browser/device registration for one user."""

    __tablename__ = "push_subscriptions"
    __table_args__ = (
        Index("ix_push_sub_user_active", "user_id", "is_active"),
        Index("ix_push_sub_school_active", "school_id", "is_active"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    # Null for super-admin users
    school_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)

    # Push subscription data
    endpoint: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    p256dh_key: Mapped[str] = mapped_column(String(255), nullable=False)  # Public key
    auth_key: Mapped[str] = mapped_column(String(255), nullable=False)  # Auth secret

    expiration_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    user_agent: Mapped[str] = mapped_column(String(500), default="", nullable=False)

    # Platform detection
    is_ios: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_android: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_windows: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_safari: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_chrome: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_firefox: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_pwa: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    browser_name: Mapped[str] = mapped_column(String(100), default="", nullable=False)
    os_name: Mapped[str] = mapped_column(String(100), default="", nullable=False)

    # Status
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Per-category preferences
    pref_grades: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    pref_assignments: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    pref_announcements: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    pref_events: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    pref_urgent: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Delivery stats
    total_pushes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    successful_pushes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    failed_pushes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_push_sent: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_push_success: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_error_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_error_status: Mapped[int | None] = mapped_column(Integer, nullable=True)

    last_used: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<PushSubscription user={self.user_id} active={self.is_active}>"

    @property
    def keys(self) -> dict[str, str]:
        return {"p256dh": self.p256dh_key, "auth": self.auth_key}

    @property
    def subscription_info(self) -> dict[str, Any]:
        """Descriptor in the shape the push transport expects."""
        return {"endpoint": self.endpoint, "keys": self.keys}

    @property
    def platform_flags(self) -> dict[str, bool]:
        return {flag: bool(getattr(self, flag)) for flag in PLATFORM_FLAGS}

    @property
    def platform_variant(self) -> PlatformVariant:
        return resolve_variant(self.platform_flags)

    def apply_platform(self, platform: dict[str, Any] | None) -> None:
        """Copy known platform fields, ignoring anything else the browser sent."""
        if not platform:
            return
        for flag in PLATFORM_FLAGS:
            if flag in platform:
                setattr(self, flag, bool(platform[flag]))
        if "browser_name" in platform:
            self.browser_name = platform["browser_name"] or ""
        if "os_name" in platform:
            self.os_name = platform["os_name"] or ""

    def is_expired(self, now: datetime | None = None) -> bool:
        if not self.expiration_time:
            return False
        return (now or utcnow()) > as_utc(self.expiration_time)

    def allows(self, category: str | None) -> bool:
        """Check the per-category preference. Unknown categories always pass."""
        if not category or category not in PREFERENCE_CATEGORIES:
            return True
        return bool(getattr(self, f"pref_{category}"))

    def platform_summary(self) -> dict[str, Any]:
        return {
            "os": self.os_name or "Unknown",
            "browser": self.browser_name or "Unknown",
            "is_pwa": bool(self.is_pwa),
            "is_ios": bool(self.is_ios),
            "is_android": bool(self.is_android),
            "is_windows": bool(self.is_windows),
        }

    def record_push(
        self,
        success: bool,
        error_message: str | None = None,
        status_code: int | None = None,
    ) -> None:
        """Update delivery stats after a send attempt."""
        now = utcnow()
        self.total_pushes = (self.total_pushes or 0) + 1
        self.last_push_sent = now
        self.last_used = now

        if success:
            self.successful_pushes = (self.successful_pushes or 0) + 1
            self.last_push_success = now
        else:
            self.failed_pushes = (self.failed_pushes or 0) + 1
            self.last_error_message = error_message or "Unknown error"
            self.last_error_at = now
            self.last_error_status = status_code or 0

    def to_info(self) -> dict[str, Any]:
        """Client-facing view. Keys are transport secrets and never included."""
        endpoint = self.endpoint or ""
        return {
            "id": self.id,
            "endpoint": endpoint[:50] + "..." if len(endpoint) > 50 else endpoint,
            "platform": self.platform_summary(),
            "user_agent": self.user_agent,
            "created_at": as_utc(self.created_at).isoformat() if self.created_at else None,
            "last_updated": as_utc(self.last_updated).isoformat() if self.last_updated else None,
            "expiration_time": as_utc(self.expiration_time).isoformat() if self.expiration_time else None,
        }
