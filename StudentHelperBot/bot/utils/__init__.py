"""Утилиты бота."""

from bot.utils.content import is_command, payload_from_message

__all__ = ["is_command", "payload_from_message"]
