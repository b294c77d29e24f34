from __future__ import annotations

from typing import Any, Mapping

from fcm_push.notifications.message import FcmMessage, MessageMode

DEFAULT_ANDROID_CHANNEL = "default_notifications"


class PushNotification:
    def __init__(
        self,
        title: str = "",
        body: str = "",
        image: str | None = None,
        data: Mapping[str, Any] | None = None,
        token: str | None = None,
    ) -> None:
        self.title = title
        self.body = body
        self.image = image
        self.data: dict[str, str] = {str(k): str(v) for k, v in (data or {}).items()}
        self.token = token
        self.mode: MessageMode | None = None

    def data_only(self) -> "PushNotification":
        self.mode = MessageMode.DATA_ONLY
        return self

    def notification_only(self) -> "PushNotification":
        self.mode = MessageMode.NOTIFICATION_ONLY
        return self

    def with_notification_and_data(self) -> "PushNotification":
        self.mode = MessageMode.NOTIFICATION_AND_DATA
        return self

    def add_data(self, key: str, value: Any) -> "PushNotification":
        self.data[str(key)] = str(value)
        return self

    def set_data(self, data: Mapping[str, Any]) -> "PushNotification":
        self.data.update({str(k): str(v) for k, v in data.items()})
        return self

    def to_message(self, default_mode: MessageMode | str = MessageMode.DATA_ONLY) -> FcmMessage:
        mode = self.mode or MessageMode(default_mode)

        if mode is MessageMode.NOTIFICATION_ONLY:
            message = FcmMessage.notification_only(self.title, self.body, self.image)
        elif mode is MessageMode.DATA_ONLY:
            # The app renders data-only messages itself, so it needs the text too.
            payload = dict(self.data)
            if self.title:
                payload["title"] = self.title
            if self.body:
                payload["body"] = self.body
            if self.image:
                payload["image"] = self.image
            message = FcmMessage.data_only(payload)
        else:
            message = FcmMessage.create(self.title, self.body, self.image)
            if self.data:
                message.set_data(self.data)

        return (
            message.set_android_priority("high")
            .set_android_sound("default")
            .set_android_channel(DEFAULT_ANDROID_CHANNEL)
            .set_ios_sound("default")
            .set_ios_badge(1)
        )
