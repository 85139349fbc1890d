"""Telegram administration bot for 3x-ui / X-UI panels."""
