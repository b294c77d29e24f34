from __future__ import annotations

import pytest

from fcm_push.notifications.message import FcmMessage, MessageMode


def test_notification_only_never_serializes_data() -> None:
    message = FcmMessage.notification_only("Hi", "there", "https://img.test/a.png")
    message.add_data("k", "v")

    wire = message.to_wire_format()

    assert "data" not in wire
    assert wire["notification"] == {"title": "Hi", "body": "there", "image": "https://img.test/a.png"}


def test_data_only_never_serializes_notification() -> None:
    message = FcmMessage.data_only({"k": "v"})
    message.set_title("late title")

    wire = message.to_wire_format()

    assert "notification" not in wire
    assert wire["data"] == {"k": "v"}
    assert message.mode is MessageMode.DATA_ONLY


def test_combined_mode_emits_both_blocks() -> None:
    wire = FcmMessage.create("Hi", "there").set_data({"k": "v"}).to_wire_format()

    assert wire["notification"] == {"title": "Hi", "body": "there"}
    assert wire["data"] == {"k": "v"}


def test_data_values_are_coerced_to_strings() -> None:
    message = FcmMessage.data_only({"count": 3, "flag": True, "ratio": 0.5})
    message.add_data("order_id", 991)

    assert message.to_wire_format()["data"] == {"count": "3", "flag": "True", "ratio": "0.5", "order_id": "991"}


def test_empty_blocks_are_omitted() -> None:
    assert FcmMessage.data_only().to_wire_format() == {}
    assert FcmMessage.create("", "").to_wire_format() == {}


def test_platform_overrides_are_emitted_regardless_of_mode() -> None:
    message = (
        FcmMessage.data_only({"k": "v"})
        .set_android_channel("alerts")
        .set_android_priority("high")
        .set_android_sound("ping")
        .set_ios_badge(4)
        .set_ios_sound("default")
    )

    wire = message.to_wire_format()

    assert wire["android"] == {"notification": {"channel_id": "alerts", "sound": "ping"}, "priority": "high"}
    assert wire["apns"] == {"payload": {"aps": {"badge": 4, "sound": "default"}}}
    assert "notification" not in wire


def test_invalid_android_priority_is_rejected() -> None:
    with pytest.raises(ValueError):
        FcmMessage.create("t", "b").set_android_priority("urgent")


def test_set_mode_clears_the_irrelevant_block_eagerly() -> None:
    message = FcmMessage.create("Hi", "there").set_data({"k": "v"})

    message.set_mode("notification_only")
    message.set_mode(MessageMode.NOTIFICATION_AND_DATA)

    wire = message.to_wire_format()
    assert "data" not in wire
    assert wire["notification"] == {"title": "Hi", "body": "there"}


def test_mode_filter_is_reapplied_at_serialization() -> None:
    message = FcmMessage.create("Hi", "there").set_data({"k": "v"})
    # Direct assignment skips the eager clearing done by set_mode.
    message.mode = MessageMode.DATA_ONLY

    assert message.to_wire_format() == {"data": {"k": "v"}}

    message.mode = MessageMode.NOTIFICATION_AND_DATA
    assert message.to_wire_format()["notification"] == {"title": "Hi", "body": "there"}


def test_invalid_mode_is_rejected() -> None:
    with pytest.raises(ValueError):
        FcmMessage.create("t", "b").set_mode("everything")


def test_clearing_image_removes_it_from_notification() -> None:
    message = FcmMessage.create("t", "b", "https://img.test/a.png").set_image(None)

    assert "image" not in message.to_wire_format()["notification"]


def test_wire_format_does_not_expose_builder_state() -> None:
    message = FcmMessage.create("t", "b").set_ios_badge(1)
    wire = message.to_wire_format()
    wire["apns"]["payload"]["aps"]["badge"] = 99

    assert message.apns_config["payload"]["aps"]["badge"] == 1
