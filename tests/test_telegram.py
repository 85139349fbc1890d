"""Tests for the Bot API wrapper and QR rendering."""
import json
from unittest.mock import Mock, patch

import pytest
import requests

from xui_admin.qr import render_qr_png
from xui_admin.telegram import TelegramAPIError, TelegramBot, inline_keyboard, reply_keyboard


def api_response(payload):
    response = Mock()
    response.json.return_value = payload
    return response


class TestKeyboards:
    """Tests for keyboard markup builders."""

    def test_reply_keyboard(self):
        markup = reply_keyboard([["A", "B"], ["C"]])
        assert markup == {
            "keyboard": [[{"text": "A"}, {"text": "B"}], [{"text": "C"}]],
            "resize_keyboard": True,
        }

    def test_inline_keyboard(self):
        rows = [[{"text": "x", "callback_data": "remove_vpn_1"}]]
        assert inline_keyboard(rows) == {"inline_keyboard": rows}


class TestTelegramBot:
    """Tests for Bot API calls."""

    @patch("xui_admin.telegram.requests.post")
    def test_send_message_encodes_markup(self, mock_post):
        mock_post.return_value = api_response({"ok": True, "result": {"message_id": 1}})
        bot = TelegramBot("123:abc")

        bot.send_message(5, "hi", reply_markup=reply_keyboard([["A"]]))

        url = mock_post.call_args[0][0]
        data = mock_post.call_args[1]["data"]
        assert url == "https://api.telegram.org/bot123:abc/sendMessage"
        assert data["parse_mode"] == "HTML"
        assert json.loads(data["reply_markup"])["keyboard"] == [[{"text": "A"}]]

    @patch("xui_admin.telegram.requests.post")
    def test_send_photo_uploads_file(self, mock_post):
        mock_post.return_value = api_response({"ok": True, "result": {}})
        bot = TelegramBot("123:abc")

        bot.send_photo(5, b"png-bytes", caption="QR code for subscription")

        files = mock_post.call_args[1]["files"]
        assert files["photo"] == ("qr.png", b"png-bytes", "image/png")
        assert mock_post.call_args[1]["data"]["caption"] == "QR code for subscription"

    @patch("xui_admin.telegram.requests.post")
    def test_api_failure_raises(self, mock_post):
        mock_post.return_value = api_response({"ok": False, "description": "Bad Request: chat not found"})
        with pytest.raises(TelegramAPIError) as exc_info:
            TelegramBot("123:abc").send_message(5, "hi")
        assert "chat not found" in str(exc_info.value)

    @patch("xui_admin.telegram.requests.post")
    def test_network_failure_raises(self, mock_post):
        mock_post.side_effect = requests.exceptions.ConnectionError("down")
        with pytest.raises(TelegramAPIError):
            TelegramBot("123:abc").answer_callback_query("cb")

    @patch("xui_admin.telegram.requests.get")
    def test_get_updates_passes_offset(self, mock_get):
        mock_get.return_value = api_response({"ok": True, "result": [{"update_id": 7}]})

        updates = TelegramBot("123:abc").get_updates(offset=7, timeout=1)

        assert updates == [{"update_id": 7}]
        assert mock_get.call_args[1]["params"] == {"timeout": 1, "offset": 7}


class TestQRCode:
    """Tests for subscription QR images."""

    def test_renders_png(self):
        image = render_qr_png("https://sub.example.com/abc?name=abc")
        assert image.startswith(b"\x89PNG\r\n\x1a\n")
