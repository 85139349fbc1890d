"""Small wrapper around the Telegram Bot API using :mod:`requests`."""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, Iterable, List, Optional

import requests

LOGGER = logging.getLogger(__name__)

PARSE_MODE_HTML = "HTML"


class TelegramAPIError(RuntimeError):
    """Error raised when Telegram returns a failure."""


def json_dumps(value: Dict[str, Any]) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def reply_keyboard(rows: List[List[str]]) -> Dict[str, Any]:
    """Persistent keyboard whose buttons send their label as text."""

    return {
        "keyboard": [[{"text": label} for label in row] for row in rows],
        "resize_keyboard": True,
    }


def inline_keyboard(rows: List[List[Dict[str, str]]]) -> Dict[str, Any]:
    return {"inline_keyboard": rows}


class TelegramBot:
    """Calls the HTTP Bot API directly.

    Only the handful of methods the bot needs are implemented: polling for
    updates, sending text and photos and acknowledging callback queries.
    """

    def __init__(self, token: str, *, timeout: int = 20) -> None:
        self.base_url = f"https://api.telegram.org/bot{token}/"
        self.timeout = timeout

    def _request(
        self,
        method: str,
        *,
        data: Optional[Dict[str, Any]] = None,
        files: Optional[Dict[str, Any]] = None,
    ) -> Any:
        try:
            response = requests.post(self.base_url + method, data=data, files=files, timeout=self.timeout)
            payload = response.json()
        except (requests.exceptions.RequestException, ValueError) as exc:
            raise TelegramAPIError(f"{method} failed: {exc}") from exc
        if not payload.get("ok"):
            raise TelegramAPIError(str(payload.get("description") or payload))
        return payload["result"]

    def get_updates(self, *, offset: Optional[int] = None, timeout: int = 25) -> Iterable[Dict[str, Any]]:
        params: Dict[str, Any] = {"timeout": timeout}
        if offset is not None:
            params["offset"] = offset
        try:
            response = requests.get(self.base_url + "getUpdates", params=params, timeout=timeout + 5)
            data = response.json()
        except (requests.exceptions.RequestException, ValueError) as exc:
            raise TelegramAPIError(f"getUpdates failed: {exc}") from exc
        if not data.get("ok"):
            raise TelegramAPIError(str(data))
        return data.get("result", [])

    def send_message(
        self,
        chat_id: int,
        text: str,
        *,
        reply_markup: Optional[Dict[str, Any]] = None,
        parse_mode: Optional[str] = PARSE_MODE_HTML,
    ) -> Dict[str, Any]:
        data: Dict[str, Any] = {"chat_id": chat_id, "text": text, "disable_web_page_preview": "true"}
        if parse_mode:
            data["parse_mode"] = parse_mode
        if reply_markup is not None:
            data["reply_markup"] = json_dumps(reply_markup)
        return self._request("sendMessage", data=data)

    def send_photo(
        self,
        chat_id: int,
        photo: bytes,
        *,
        caption: Optional[str] = None,
        reply_markup: Optional[Dict[str, Any]] = None,
        filename: str = "qr.png",
    ) -> Dict[str, Any]:
        """Upload ``photo`` (PNG bytes) as a multipart form."""

        data: Dict[str, Any] = {"chat_id": chat_id}
        if caption:
            data["caption"] = caption
        if reply_markup is not None:
            data["reply_markup"] = json_dumps(reply_markup)
        files = {"photo": (filename, photo, "image/png")}
        return self._request("sendPhoto", data=data, files=files)

    def answer_callback_query(self, callback_query_id: str, *, text: Optional[str] = None) -> None:
        data: Dict[str, Any] = {"callback_query_id": callback_query_id}
        if text:
            data["text"] = text
        self._request("answerCallbackQuery", data=data)
