"""Shared utility functions for ha2tg.

This module contains common utilities used across multiple modules:
JSON file loading, add-on options handling and detached background tasks.
"""
import asyncio
import json
import logging
from typing import Any, Coroutine, Optional, TypeVar

from ha2tg.core.config import Config

T = TypeVar('T')

# Strong references to detached tasks so they are not garbage collected
_BACKGROUND_TASKS: set[asyncio.Task] = set()


def load_json_file(filepath: str, default: T) -> T:
    """Load a JSON file, returning default if not found or invalid.

    Args:
        filepath: Path to the JSON file
        default: Default value to return if file doesn't exist or is invalid

    Returns:
        The loaded JSON data, or the default value
    """
    try:
        with open(filepath, "r", encoding="utf-8") as f:
            return json.load(f)
    except (FileNotFoundError, json.JSONDecodeError):
        return default


def load_options(config: Config) -> Config:
    """Overlay a Home Assistant add-on options.json onto the config.

    The add-on supervisor writes ``bot_token`` and ``root_user`` (and
    optionally ``allowed_users``) into the options file. Values present
    there win over environment defaults; missing keys leave the config as is.
    """
    options = load_json_file(config.options_path, {})
    if not isinstance(options, dict) or not options:
        logging.debug("No add-on options found at %s", config.options_path)
        return config

    if options.get("bot_token"):
        config.telegram_bot_token = str(options["bot_token"])
    if options.get("root_user"):
        try:
            config.root_user = int(options["root_user"])
        except (TypeError, ValueError):
            logging.warning("Invalid root_user in %s", config.options_path)
    allowed = options.get("allowed_users")
    if allowed:
        config.telegram_chat_ids = ",".join(
            str(uid) for uid in (allowed if isinstance(allowed, list) else [allowed])
        )

    logging.info("Loaded add-on options from %s", config.options_path)
    return config


def spawn_background(
    coro: Coroutine[Any, Any, Any],
    name: Optional[str] = None
) -> asyncio.Task:
    """Run a coroutine as a detached, fire-and-forget task.

    Detached tasks have no error contract: failures are logged at debug
    level and otherwise dropped. Used for delayed deletes and storage
    mirror writes.
    """
    task = asyncio.get_running_loop().create_task(coro, name=name)
    _BACKGROUND_TASKS.add(task)
    task.add_done_callback(_on_background_done)
    return task


def _on_background_done(task: asyncio.Task) -> None:
    _BACKGROUND_TASKS.discard(task)
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logging.debug("Background task %s failed: %s", task.get_name(), exc)



async def wait_background(timeout: float) -> int:
    """Wait up to ``timeout`` seconds for detached tasks.

    Returns the number still pending afterwards.
    """
    loop = asyncio.get_running_loop()
    pending = {
        task for task in _BACKGROUND_TASKS
        if not task.done() and task.get_loop() is loop
    }
    if not pending:
        return 0
    _, pending = await asyncio.wait(pending, timeout=timeout)
    return len(pending)


async def delete_message_after(bot, chat_id: int, message_id: int, delay_s: float) -> None:
    """Sleep, then delete a message. The message may already be gone."""
    await asyncio.sleep(delay_s)
    try:
        await bot.delete_message(chat_id=chat_id, message_id=message_id)
    except Exception as e:  # pylint: disable=broad-exception-caught
        logging.debug("Delayed delete of %s/%s failed: %s", chat_id, message_id, e)


def spawn_delayed_delete(bot, chat_id: int, message_id: int, delay_s: float) -> asyncio.Task:
    """Schedule deletion of a message after ``delay_s`` seconds."""
    logging.debug("Deleting message %s in %ss", message_id, delay_s)
    return spawn_background(
        delete_message_after(bot, chat_id, message_id, delay_s),
        name=f"delete-{chat_id}-{message_id}"
    )
