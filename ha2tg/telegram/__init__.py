"""Telegram integration for ha2tg."""
