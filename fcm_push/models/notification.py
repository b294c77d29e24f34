from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from fcm_push.utils.time import utc_now


class DeviceRegistration(BaseModel):
    user_id: str
    platform: str = Field(pattern="^(android|ios|web)$")
    token: str = Field(min_length=1)


class SendResult(BaseModel):
    success: bool
    token: str
    attempts: int = 0
    response: dict[str, Any] | None = None
    error: str | None = None
    error_category: str | None = None
    sent_at: datetime = Field(default_factory=utc_now)


class BatchSummary(BaseModel):
    total: int
    success_count: int
    failure_count: int
    invalid_tokens: list[str] = []


class BatchResult(BaseModel):
    results: list[SendResult]
    summary: BatchSummary


class TokenValidation(BaseModel):
    token: str
    valid: bool
    category: str | None = None
    message: str
