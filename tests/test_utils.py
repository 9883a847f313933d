"""Tests for the utils module."""
import asyncio
import json
import os
from unittest.mock import AsyncMock

import pytest

from conftest import create_json_file
from ha2tg.core import utils
from ha2tg.core.utils import (
    delete_message_after,
    load_json_file,
    load_options,
    spawn_background,
    spawn_delayed_delete,
    wait_background,
)


class TestLoadJsonFile:
    """Tests for load_json_file function."""

    def test_load_existing_json_file(self, temp_dir):
        """Test loading an existing valid JSON file."""
        filepath = os.path.join(temp_dir, "test.json")
        data = {"key": "value", "number": 42}
        create_json_file(filepath, data)

        assert load_json_file(filepath, {}) == data

    def test_load_nonexistent_file_returns_default(self, temp_dir):
        """Test loading a nonexistent file returns the default."""
        filepath = os.path.join(temp_dir, "nonexistent.json")
        assert load_json_file(filepath, {"default": True}) == {"default": True}

    def test_load_invalid_json_returns_default(self, temp_dir):
        """Test loading invalid JSON returns the default."""
        filepath = os.path.join(temp_dir, "invalid.json")
        with open(filepath, "w", encoding="utf-8") as f:
            f.write("not valid json {{{")

        assert load_json_file(filepath, {"fallback": True}) == {"fallback": True}


class TestLoadOptions:
    """Tests for the add-on options overlay."""

    def test_missing_file_keeps_config(self, config):
        """Test a missing options file changes nothing."""
        config.telegram_bot_token = "env-token"
        load_options(config)
        assert config.telegram_bot_token == "env-token"

    def test_options_override(self, config):
        """Test bot_token, root_user and allowed_users are applied."""
        create_json_file(config.options_path, {
            "bot_token": "123:abc",
            "root_user": "4242",
            "allowed_users": [1, 2, 3],
        })

        result = load_options(config)

        assert result is config
        assert config.telegram_bot_token == "123:abc"
        assert config.root_user == 4242
        assert config.allowed_chat_ids == {1, 2, 3}

    def test_single_allowed_user(self, config):
        """Test allowed_users may be a single id."""
        create_json_file(config.options_path, {"allowed_users": 77})
        load_options(config)
        assert config.allowed_chat_ids == {77}

    def test_invalid_root_user_is_ignored(self, config, caplog):
        """Test a bad root_user leaves the configured one."""
        create_json_file(config.options_path, {"root_user": "admin"})

        load_options(config)

        assert config.root_user == 1000
        assert "Invalid root_user" in caplog.text

    def test_non_object_options(self, config):
        """Test a JSON list in the options file is ignored."""
        config.telegram_bot_token = ""
        with open(config.options_path, "w", encoding="utf-8") as f:
            json.dump(["bot_token"], f)
        load_options(config)
        assert config.telegram_bot_token == ""


class TestBackgroundTasks:
    """Tests for detached tasks and delayed deletes."""

    @pytest.mark.asyncio
    async def test_spawn_background_runs(self):
        """Test a detached coroutine runs and is released."""
        done = asyncio.Event()

        async def work():
            done.set()

        task = spawn_background(work(), name="work")
        await asyncio.wait_for(done.wait(), timeout=1)
        await task
        await asyncio.sleep(0)

        assert task not in utils._BACKGROUND_TASKS

    @pytest.mark.asyncio
    async def test_spawn_background_failure_is_logged(self, caplog):
        """Test a failing detached task does not raise."""
        caplog.set_level("DEBUG")

        async def fail():
            raise RuntimeError("boom")

        task = spawn_background(fail(), name="failing")
        await asyncio.gather(task, return_exceptions=True)
        await asyncio.sleep(0)

        assert "Background task failing failed: boom" in caplog.text

    @pytest.mark.asyncio
    async def test_wait_background(self):
        """Test pending detached tasks are awaited up to the timeout."""
        quick = spawn_background(asyncio.sleep(0.01), name="quick")
        slow = spawn_background(asyncio.sleep(5), name="slow")

        pending = await wait_background(0.2)

        assert quick.done()
        assert pending == 1
        slow.cancel()
        await asyncio.gather(slow, return_exceptions=True)

    @pytest.mark.asyncio
    async def test_wait_background_nothing_pending(self):
        """Test waiting with no detached tasks returns at once."""
        assert await wait_background(0) == 0

    @pytest.mark.asyncio
    async def test_delete_message_after(self):
        """Test the message is deleted after the delay."""
        bot = AsyncMock()
        await delete_message_after(bot, 1, 2, 0)
        bot.delete_message.assert_awaited_once_with(chat_id=1, message_id=2)

    @pytest.mark.asyncio
    async def test_delete_already_gone(self):
        """Test a failed delete is swallowed."""
        bot = AsyncMock()
        bot.delete_message.side_effect = RuntimeError("message to delete not found")
        await delete_message_after(bot, 1, 2, 0)

    @pytest.mark.asyncio
    async def test_spawn_delayed_delete(self):
        """Test the scheduled delete runs in the background."""
        bot = AsyncMock()
        task = spawn_delayed_delete(bot, 5, 6, 0.01)

        assert not task.done()
        await asyncio.wait_for(task, timeout=1)
        bot.delete_message.assert_awaited_once_with(chat_id=5, message_id=6)
