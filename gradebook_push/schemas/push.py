"""Schemas for push notification endpoints."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
    """Accept the browser's camelCase keys as well as snake_case."""

    model_config = ConfigDict(populate_by_name=True)


class SubscriptionKeys(_CamelModel):
    p256dh: Optional[str] = None
    auth: Optional[str] = None


class PlatformInfo(_CamelModel):
    is_ios: bool = Field(False, alias="isIOS")
    is_android: bool = Field(False, alias="isAndroid")
    is_windows: bool = Field(False, alias="isWindows")
    is_safari: bool = Field(False, alias="isSafari")
    is_chrome: bool = Field(False, alias="isChrome")
    is_firefox: bool = Field(False, alias="isFirefox")
    is_pwa: bool = Field(False, alias="isPWA")
    browser_name: str = Field("", alias="browserName")
    os_name: str = Field("", alias="osName")


class PushSubscribeRequest(_CamelModel):
    """Subscription object from PushManager.subscribe() plus device metadata.

    Completeness is checked by the service so that missing fields produce
    the same error as any other invalid subscription.
    """

    endpoint: Optional[str] = Field(None, max_length=2048)
    keys: Optional[SubscriptionKeys] = None
    expiration_time: Optional[datetime] = Field(None, alias="expirationTime")
    user_agent: Optional[str] = Field(None, alias="userAgent", max_length=500)
    platform: Optional[PlatformInfo] = None


class PushUnsubscribeRequest(_CamelModel):
    endpoint: Optional[str] = None


class PushTestRequest(_CamelModel):
    title: Optional[str] = Field(None, max_length=200)
    body: Optional[str] = Field(None, max_length=1000)
