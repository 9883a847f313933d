"""Tests for the Config module."""
import os
from unittest.mock import patch

from ha2tg.core.config import Config


class TestConfigDefaults:
    """Test default configuration values."""

    def test_default_ha_url(self):
        """Test the supervisor proxy is the default Home Assistant URL."""
        with patch.dict(os.environ, {}, clear=True):
            config = Config()
        assert config.ha_url == "http://supervisor/core"

    def test_supervisor_token_wins(self):
        """Test SUPERVISOR_TOKEN is preferred over HA_TOKEN."""
        env = {"SUPERVISOR_TOKEN": "sup", "HA_TOKEN": "llat"}
        with patch.dict(os.environ, env, clear=True):
            config = Config()
        assert config.ha_token == "sup"

    def test_ha_token_fallback(self):
        """Test HA_TOKEN is used outside the add-on."""
        with patch.dict(os.environ, {"HA_TOKEN": "llat"}, clear=True):
            config = Config()
        assert config.ha_token == "llat"

    def test_default_timings(self):
        """Test default message lifetimes and loop timings."""
        config = Config()
        assert config.delete_notification_timeout_s == 5
        assert config.delete_error_timeout_s == 5
        assert config.event_log_retention_minutes == 100
        assert config.alert_window_minutes == 30
        assert config.maintenance_interval_s == 5.0
        assert config.event_queue_size == 32

    def test_default_reconnect_bounds(self):
        """Test the listener backoff bounds."""
        config = Config()
        assert config.reconnect_initial_delay_s == 0.5
        assert config.reconnect_max_delay_s == 30.0

    def test_bad_root_user_env(self):
        """Test a non-numeric ROOT_USER falls back to 0."""
        with patch.dict(os.environ, {"ROOT_USER": "admin"}, clear=True):
            config = Config()
        assert config.root_user == 0

    def test_default_verbose_is_false(self):
        """Test verbose mode is disabled by default."""
        config = Config()
        assert config.verbose is False


class TestAllowedChatIds:
    """Test parsing of the comma-separated allow-list."""

    def test_empty(self):
        """Test an empty list allows nobody."""
        config = Config()
        config.telegram_chat_ids = ""
        assert config.allowed_chat_ids == set()

    def test_parses_ids(self):
        """Test ids are parsed with whitespace and negative group ids."""
        config = Config()
        config.telegram_chat_ids = " 123, -100456 ,789"
        assert config.allowed_chat_ids == {123, -100456, 789}

    def test_skips_bad_entries(self):
        """Test non-numeric entries are ignored."""
        config = Config()
        config.telegram_chat_ids = "123,abc,,4-5"
        assert config.allowed_chat_ids == {123}


class TestConfigFromArgs:
    """Test command-line parsing."""

    def test_no_args_uses_defaults(self):
        """Test from_args without arguments."""
        with patch.dict(os.environ, {}, clear=True):
            config = Config.from_args([])
        assert config.ha_url == "http://supervisor/core"
        assert config.database_path == "bot_data.db"
        assert config.options_path == "options.json"
        assert config.event_queue_size == 32

    def test_environment_defaults(self):
        """Test arguments fall back to environment variables."""
        env = {
            "HA_URL": "http://ha.local:8123",
            "TELEGRAM_BOT_TOKEN": "123:abc",
            "ROOT_USER": "42",
            "DATABASE_PATH": "/data/bot.db",
        }
        with patch.dict(os.environ, env, clear=True):
            config = Config.from_args([])
        assert config.ha_url == "http://ha.local:8123"
        assert config.telegram_bot_token == "123:abc"
        assert config.root_user == 42
        assert config.database_path == "/data/bot.db"

    def test_explicit_args(self):
        """Test explicit arguments override defaults."""
        config = Config.from_args([
            "--ha-url", "https://ha.example.org",
            "--ha-token", "tok",
            "--telegram-token", "1:x",
            "--root-user", "7",
            "--telegram-chat-ids", "8,9",
            "--database", "/tmp/x.db",
            "--options", "/tmp/options.json",
            "--maintenance-interval", "2.5",
            "--retention", "60",
            "--queue-size", "8",
            "-v",
        ])
        assert config.ha_url == "https://ha.example.org"
        assert config.ha_token == "tok"
        assert config.telegram_bot_token == "1:x"
        assert config.root_user == 7
        assert config.allowed_chat_ids == {8, 9}
        assert config.database_path == "/tmp/x.db"
        assert config.options_path == "/tmp/options.json"
        assert config.maintenance_interval_s == 2.5
        assert config.event_log_retention_minutes == 60
        assert config.event_queue_size == 8
        assert config.verbose is True
