"""Tests for Telegram webhook parsing."""

from __future__ import annotations

from roomrelay.providers.telegram import parse_telegram_webhook


def _update(message: dict | None = None, **extra: object) -> dict:
    payload: dict = {"update_id": 1}
    if message is not None:
        payload["message"] = message
    payload.update(extra)
    return payload


class TestParseTelegramWebhook:
    def test_plain_text(self) -> None:
        payload = _update(
            {
                "message_id": 77,
                "from": {"id": 5, "first_name": "Op"},
                "chat": {"id": 9000},
                "date": 1700000000,
                "text": "/status",
            }
        )

        [update] = parse_telegram_webhook(payload, "default")

        assert update.text == "/status"
        assert update.message_id == "77"
        assert update.credential_id == "default"
        assert update.chat_id == "9000"
        assert update.sender_id == "5"
        assert update.reply_to_message_id is None
        assert update.date == 1700000000

    def test_reply_reference(self) -> None:
        payload = _update(
            {
                "message_id": 78,
                "chat": {"id": 9000},
                "text": "approve",
                "reply_to_message_id": 1,
                "reply_to_message": {"message_id": 1000, "text": "🔔 Someone Knocked!"},
            }
        )

        [update] = parse_telegram_webhook(payload, "bot-0")

        assert update.reply_to_message_id == "1000"
        assert update.credential_id == "bot-0"

    def test_non_message_updates_skipped(self) -> None:
        assert parse_telegram_webhook(_update(edited_message={"text": "x"}), "default") == []
        assert parse_telegram_webhook(_update(callback_query={"id": "1"}), "default") == []

    def test_media_without_text_skipped(self) -> None:
        payload = _update({"message_id": 1, "chat": {"id": 1}, "photo": [{"file_id": "a"}]})
        assert parse_telegram_webhook(payload, "default") == []

    def test_missing_optional_fields(self) -> None:
        [update] = parse_telegram_webhook(_update({"text": "hi"}), "default")
        assert update.chat_id == ""
        assert update.sender_id == ""
        assert update.message_id == ""
