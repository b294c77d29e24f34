from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from fcm_push.models.notification import TokenValidation

MessageModeName = Literal["data_only", "notification_only", "notification_and_data"]
AndroidPriority = Literal["high", "normal", "low"]


class PlatformOverrides(BaseModel):
    android_channel: str | None = None
    android_priority: AndroidPriority | None = None
    android_sound: str | None = None
    ios_badge: int | None = Field(default=None, ge=0)
    ios_sound: str | None = None


class MessageRequest(BaseModel):
    title: str = ""
    body: str = ""
    image: str | None = None
    data: dict[str, str | int | float | bool] = {}
    mode: MessageModeName | None = None


class SendRequest(MessageRequest):
    tokens: list[str] = Field(min_length=1)
    platform: PlatformOverrides | None = None


class UserNotificationRequest(MessageRequest):
    token: str | None = None


class ValidateTokensRequest(BaseModel):
    tokens: list[str] = Field(min_length=1)


class ValidateTokensResponse(BaseModel):
    total: int
    valid_count: int
    invalid_count: int
    results: list[TokenValidation]
