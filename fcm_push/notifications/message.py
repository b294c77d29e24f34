from __future__ import annotations

import copy
from enum import Enum
from typing import Any, Mapping


class MessageMode(str, Enum):
    NOTIFICATION_ONLY = "notification_only"
    DATA_ONLY = "data_only"
    NOTIFICATION_AND_DATA = "notification_and_data"


ANDROID_PRIORITIES = {"high", "normal", "low"}


def _stringify(data: Mapping[str, Any]) -> dict[str, str]:
    # The gateway rejects non-string values in the data block.
    return {str(key): str(value) for key, value in data.items()}


class FcmMessage:
    def __init__(self, title: str = "", body: str = "", image: str | None = None) -> None:
        self.title = title
        self.body = body
        self.image = image
        self._notification: dict[str, str] = {"title": title, "body": body}
        if image:
            self._notification["image"] = image
        self._data: dict[str, str] = {}
        self._android: dict[str, Any] = {}
        self._apns: dict[str, Any] = {}
        self.mode = MessageMode.NOTIFICATION_AND_DATA

    @classmethod
    def create(cls, title: str, body: str, image: str | None = None) -> "FcmMessage":
        return cls(title, body, image)

    @classmethod
    def data_only(cls, data: Mapping[str, Any] | None = None) -> "FcmMessage":
        message = cls("", "", None)
        message.mode = MessageMode.DATA_ONLY
        message._notification = {}
        message._data = _stringify(data or {})
        return message

    @classmethod
    def notification_only(cls, title: str, body: str, image: str | None = None) -> "FcmMessage":
        message = cls(title, body, image)
        message.mode = MessageMode.NOTIFICATION_ONLY
        message._data = {}
        return message

    def set_title(self, title: str) -> "FcmMessage":
        self.title = title
        self._notification["title"] = title
        return self

    def set_body(self, body: str) -> "FcmMessage":
        self.body = body
        self._notification["body"] = body
        return self

    def set_image(self, image: str | None) -> "FcmMessage":
        self.image = image
        if image:
            self._notification["image"] = image
        else:
            self._notification.pop("image", None)
        return self

    def add_data(self, key: str, value: Any) -> "FcmMessage":
        self._data[str(key)] = str(value)
        return self

    def set_data(self, data: Mapping[str, Any]) -> "FcmMessage":
        self._data.update(_stringify(data))
        return self

    def set_android_channel(self, channel_id: str) -> "FcmMessage":
        self._android.setdefault("notification", {})["channel_id"] = channel_id
        return self

    def set_android_priority(self, priority: str = "high") -> "FcmMessage":
        clean = priority.strip().lower()
        if clean not in ANDROID_PRIORITIES:
            raise ValueError(f"Invalid Android priority: {priority}. Use one of {sorted(ANDROID_PRIORITIES)}")
        self._android["priority"] = clean
        return self

    def set_android_sound(self, sound: str = "default") -> "FcmMessage":
        self._android.setdefault("notification", {})["sound"] = sound
        return self

    def set_ios_badge(self, badge: int) -> "FcmMessage":
        self._apns.setdefault("payload", {}).setdefault("aps", {})["badge"] = int(badge)
        return self

    def set_ios_sound(self, sound: str = "default") -> "FcmMessage":
        self._apns.setdefault("payload", {}).setdefault("aps", {})["sound"] = sound
        return self

    def set_mode(self, mode: MessageMode | str) -> "FcmMessage":
        try:
            new_mode = MessageMode(mode)
        except ValueError as exc:
            raise ValueError(
                "Invalid mode. Use: notification_only, data_only, or notification_and_data"
            ) from exc

        self.mode = new_mode
        if new_mode is MessageMode.DATA_ONLY:
            self._notification = {}
        elif new_mode is MessageMode.NOTIFICATION_ONLY:
            self._data = {}
        return self

    @property
    def notification(self) -> dict[str, str]:
        return {key: value for key, value in self._notification.items() if value}

    @property
    def data(self) -> dict[str, str]:
        return dict(self._data)

    @property
    def android_config(self) -> dict[str, Any]:
        return self._android

    @property
    def apns_config(self) -> dict[str, Any]:
        return self._apns

    def to_wire_format(self) -> dict[str, Any]:
        message: dict[str, Any] = {}
        notification = self.notification
        data = self.data

        if self.mode is not MessageMode.DATA_ONLY and notification:
            message["notification"] = notification
        if self.mode is not MessageMode.NOTIFICATION_ONLY and data:
            message["data"] = data

        # Platform delivery hints apply whatever the payload mode.
        if self._android:
            message["android"] = copy.deepcopy(self._android)
        if self._apns:
            message["apns"] = copy.deepcopy(self._apns)
        return message

    def __repr__(self) -> str:
        return f"FcmMessage(mode={self.mode.value!r}, title={self.title!r})"
