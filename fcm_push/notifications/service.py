from __future__ import annotations

import logging

from fcm_push.models.notification import DeviceRegistration
from fcm_push.notifications.fcm_service import FcmService
from fcm_push.notifications.push import PushNotification
from fcm_push.storage.repository import DeviceRepository

logger = logging.getLogger(__name__)


class NotificationService:
    def __init__(self, repository: DeviceRepository | None = None, fcm: FcmService | None = None) -> None:
        self.repository = repository or DeviceRepository()
        self.fcm = fcm or FcmService.from_settings()

    def register_device(self, registration: DeviceRegistration) -> dict:
        self.repository.register(registration.user_id, registration.platform, registration.token)
        return {"status": "registered", "user_id": registration.user_id, "platform": registration.platform}

    def send_to_user(self, user_id: str, notification: PushNotification) -> dict:
        message = notification.to_message(self.fcm.settings.default_mode)

        if notification.token:
            tokens = [notification.token]
        else:
            tokens = self.repository.list_tokens(user_id)

        if not tokens:
            logger.info("No device tokens registered", extra={"user_id": user_id})
            batch = self.fcm.summarize([])
        elif len(tokens) == 1:
            batch = self.fcm.summarize([self.fcm.send_to_device(tokens[0], message)])
        else:
            batch = self.fcm.send_to_many_with_cleanup(tokens, message, token_store=self.repository)

        return {"user_id": user_id, **batch.model_dump(mode="json")}

