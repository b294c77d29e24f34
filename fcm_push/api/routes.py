from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException

from fcm_push.config import settings
from fcm_push.models.notification import BatchResult, DeviceRegistration
from fcm_push.models.schemas import (
    MessageRequest,
    SendRequest,
    UserNotificationRequest,
    ValidateTokensRequest,
    ValidateTokensResponse,
)
from fcm_push.notifications.cleanup import DatabaseTokenCleanup
from fcm_push.notifications.fcm_service import FcmService
from fcm_push.notifications.message import FcmMessage
from fcm_push.notifications.push import PushNotification
from fcm_push.notifications.service import NotificationService
from fcm_push.storage.repository import DeviceRepository

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["fcm-push"])

device_repository = DeviceRepository()
_fcm_service: FcmService | None = None


def get_fcm_service() -> FcmService:
    global _fcm_service
    if _fcm_service is None:
        _fcm_service = FcmService.from_settings(settings)
        if settings.auto_cleanup_tokens:
            _fcm_service.signal.subscribe(DatabaseTokenCleanup(device_repository))
    return _fcm_service


def get_notification_service(fcm: FcmService = Depends(get_fcm_service)) -> NotificationService:
    return NotificationService(repository=device_repository, fcm=fcm)


def _to_notification(payload: MessageRequest, token: str | None = None) -> PushNotification:
    notification = PushNotification(
        title=payload.title,
        body=payload.body,
        image=payload.image,
        data=payload.data,
        token=token,
    )
    if payload.mode == "data_only":
        notification.data_only()
    elif payload.mode == "notification_only":
        notification.notification_only()
    elif payload.mode == "notification_and_data":
        notification.with_notification_and_data()
    return notification


def _apply_platform(message: FcmMessage, payload: SendRequest) -> FcmMessage:
    overrides = payload.platform
    if overrides is None:
        return message
    if overrides.android_channel:
        message.set_android_channel(overrides.android_channel)
    if overrides.android_priority:
        message.set_android_priority(overrides.android_priority)
    if overrides.android_sound:
        message.set_android_sound(overrides.android_sound)
    if overrides.ios_badge is not None:
        message.set_ios_badge(overrides.ios_badge)
    if overrides.ios_sound:
        message.set_ios_sound(overrides.ios_sound)
    return message


@router.get("/health")
def health() -> dict:
    return {"status": "ok"}


@router.get("/config/status")
def config_status(fcm: FcmService = Depends(get_fcm_service)) -> dict:
    return fcm.status()


@router.post("/devices")
def register_device(payload: DeviceRegistration, service: NotificationService = Depends(get_notification_service)):
    return service.register_device(payload)


@router.post("/notifications/send", response_model=BatchResult)
def send_notification(payload: SendRequest, fcm: FcmService = Depends(get_fcm_service)):
    try:
        message = _to_notification(payload).to_message(fcm.settings.default_mode)
        message = _apply_platform(message, payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return fcm.send_to_many(payload.tokens, message)


@router.post("/notifications/users/{user_id}")
def send_user_notification(
    user_id: str,
    payload: UserNotificationRequest,
    service: NotificationService = Depends(get_notification_service),
):
    return service.send_to_user(user_id, _to_notification(payload, token=payload.token))


@router.post("/tokens/validate", response_model=ValidateTokensResponse)
def validate_tokens(payload: ValidateTokensRequest, fcm: FcmService = Depends(get_fcm_service)):
    results = fcm.validate_tokens(payload.tokens)
    valid_count = sum(1 for r in results if r.valid)
    return ValidateTokensResponse(
        total=len(results),
        valid_count=valid_count,
        invalid_count=len(results) - valid_count,
        results=results,
    )
