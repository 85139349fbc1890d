"""Canonical chat commands and their lookup.

Keyboard buttons carry a decorative emoji in front of the command text.
:func:`resolve_intent` maps either form to an :class:`Intent`; it knows
nothing about conversation stages.
"""
from __future__ import annotations

from enum import Enum
from typing import Dict, Optional


class Intent(Enum):
    START = "/start"
    CANCEL = "Cancel"
    RETURN = "Return to Main Menu"

    ADD_MEMBER = "Add Member"
    EDIT_MEMBER = "Edit Member"
    DELETE_MEMBER = "Delete Member"
    ONLINE_MEMBERS = "Online Members"
    NETWORK_USAGE = "Network Usage"
    DETAILED_USAGE = "Detailed Usage"
    RESET_NETWORK_USAGE = "Reset Network Usage"
    ADD_TRUSTED = "Add Trusted"
    REVOKE_TRUSTED = "Revoke Trusted"

    VIEW_CONFIG = "View Config"
    EXTEND_DURATION = "Extend Duration"
    RESET_TRAFFIC = "Reset Traffic"
    DELETE = "Delete"

    CONFIRM = "Confirm"
    INFINITE = "Infinite"


# Inputs that clear the conversation from any stage.
ESCAPE_INTENTS = frozenset({Intent.START, Intent.CANCEL, Intent.RETURN})

BUTTON_ICONS: Dict[Intent, str] = {
    Intent.RETURN: "↩️",
    Intent.CANCEL: "❌",
    Intent.ADD_MEMBER: "➕",
    Intent.EDIT_MEMBER: "✏️",
    Intent.DELETE_MEMBER: "🗑",
    Intent.ONLINE_MEMBERS: "🟢",
    Intent.NETWORK_USAGE: "📶",
    Intent.DETAILED_USAGE: "📊",
    Intent.RESET_NETWORK_USAGE: "♻️",
    Intent.ADD_TRUSTED: "🤝",
    Intent.REVOKE_TRUSTED: "🚫",
    Intent.VIEW_CONFIG: "🔗",
    Intent.EXTEND_DURATION: "⏳",
    Intent.RESET_TRAFFIC: "🔄",
    Intent.DELETE: "🗑",
    Intent.CONFIRM: "✅",
    Intent.INFINITE: "∞",
}

_BY_TEXT: Dict[str, Intent] = {intent.value.lower(): intent for intent in Intent}


def button(intent: Intent) -> str:
    """Keyboard label of ``intent``."""

    icon = BUTTON_ICONS.get(intent)
    return f"{icon} {intent.value}" if icon else intent.value


def _strip_icon(text: str) -> str:
    head, sep, rest = text.partition(" ")
    if sep and head and not any(ch.isalnum() for ch in head):
        return rest.strip()
    return text


def resolve_intent(text: Optional[str]) -> Optional[Intent]:
    """Return the command ``text`` stands for, or ``None`` for free text."""

    if not text:
        return None
    text = text.strip()
    intent = _BY_TEXT.get(text.lower())
    if intent is not None:
        return intent
    return _BY_TEXT.get(_strip_icon(text).lower())
