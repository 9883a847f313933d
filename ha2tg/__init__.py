"""ha2tg - a live Telegram remote for Home Assistant."""

__version__ = "0.3.0"
