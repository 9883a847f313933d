"""Home Assistant WebSocket listener.

Keeps a subscription to ``state_changed`` events open for the lifetime of the
process. Connection state moves DISCONNECTED -> CONNECTING -> AUTHENTICATING
-> SUBSCRIBED and falls back to DISCONNECTED on any I/O or auth error, after
which it reconnects with exponential backoff.
"""
import asyncio
import contextlib
import json
import logging
from enum import Enum
from typing import Any, Callable, Optional
from urllib.parse import urlparse, urlunparse

import websockets

from ha2tg.core.constants import HassMessage, Reconnect
from ha2tg.core.event_bus import EventBus, EventType
from ha2tg.hass.client import HomeAssistantError
from ha2tg.hass.models import StateChangedEvent


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AUTHENTICATING = "authenticating"
    SUBSCRIBED = "subscribed"


class AuthenticationError(HomeAssistantError):
    """Home Assistant rejected the access token."""


class ReconnectBackoff:
    """Exponential backoff: initial, doubled per failure up to cap."""

    def __init__(
        self,
        initial: float = Reconnect.INITIAL_DELAY,
        cap: float = Reconnect.MAX_DELAY
    ):
        self.initial = initial
        self.cap = cap
        self._current = initial

    def next_delay(self) -> float:
        delay = self._current
        self._current = min(self._current * 2, self.cap)
        return delay

    def reset(self) -> None:
        self._current = self.initial


def build_ws_url(base_http_url: str) -> str:
    """http(s)://host[/prefix] -> ws(s)://host[/prefix]/api/websocket"""
    parsed = urlparse(base_http_url)
    scheme = "wss" if parsed.scheme == "https" else "ws"
    path = parsed.path.rstrip("/") + "/api/websocket"
    return urlunparse((scheme, parsed.netloc, path, "", "", ""))


def parse_frame(raw: Any) -> Optional[dict]:
    """Decode a frame to a message dict. Empty or malformed frames give None."""
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError:
            return None
    if not raw or not raw.strip():
        return None
    try:
        message = json.loads(raw)
    except ValueError:
        return None
    return message if isinstance(message, dict) else None


class EventListener:
    """Streams state changes from Home Assistant into a callback.

    Args:
        url: Home Assistant base URL (http or https)
        token: Long-lived access token
        on_event: Non-blocking callback receiving each StateChangedEvent
        shutdown: Event that stops the listener when set
    """

    def __init__(
        self,
        url: str,
        token: str,
        on_event: Callable[[StateChangedEvent], Any],
        shutdown: asyncio.Event,
        backoff: Optional[ReconnectBackoff] = None,
        event_bus: Optional[EventBus] = None,
        connect: Callable = websockets.connect
    ):
        self.ws_url = build_ws_url(url)
        self._token = token
        self._on_event = on_event
        self._shutdown = shutdown
        self.backoff = backoff or ReconnectBackoff()
        self._event_bus = event_bus
        self._connect = connect
        self._next_id = 1
        self._subscription_id: Optional[int] = None
        self.state = ConnectionState.DISCONNECTED

    def _set_state(self, state: ConnectionState) -> None:
        if state == self.state:
            return
        logging.debug("HA WebSocket: %s -> %s", self.state.value, state.value)
        self.state = state
        if self._event_bus is not None:
            self._event_bus.publish(EventType.LISTENER_STATE, {"state": state.value})

    async def run(self) -> None:
        """Connect, listen and reconnect until shutdown is set."""
        logging.info("Event listener started (%s)", self.ws_url)
        while not self._shutdown.is_set():
            session = asyncio.create_task(self._session())
            stop = asyncio.create_task(self._shutdown.wait())
            done, _ = await asyncio.wait({session, stop}, return_when=asyncio.FIRST_COMPLETED)

            if stop in done:
                session.cancel()
                with contextlib.suppress(asyncio.CancelledError, Exception):
                    await session
                break
            stop.cancel()

            try:
                session.result()
                logging.warning("HA WebSocket closed by server")
            except AuthenticationError as e:
                logging.error("HA WebSocket authentication failed: %s", e)
            except Exception as e:  # pylint: disable=broad-exception-caught
                logging.warning("HA WebSocket connection lost: %s", e)

            self._set_state(ConnectionState.DISCONNECTED)
            delay = self.backoff.next_delay()
            logging.info("Reconnecting to HA WebSocket in %.1fs", delay)
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(self._shutdown.wait(), timeout=delay)

        self._set_state(ConnectionState.DISCONNECTED)
        logging.info("Event listener stopped")

    async def _session(self) -> None:
        self._set_state(ConnectionState.CONNECTING)
        async with self._connect(self.ws_url) as websocket:
            self._set_state(ConnectionState.AUTHENTICATING)
            async for raw in websocket:
                message = parse_frame(raw)
                if message is None:
                    logging.debug("Skipping empty or malformed frame")
                    continue
                await self._handle(websocket, message)

    async def _handle(self, websocket, message: dict) -> None:
        msg_type = message.get("type")

        if msg_type == HassMessage.AUTH_REQUIRED:
            await websocket.send(json.dumps(
                {"type": HassMessage.AUTH, "access_token": self._token}
            ))
        elif msg_type == HassMessage.AUTH_OK:
            logging.info("HA WebSocket: auth complete")
            self._next_id += 1
            self._subscription_id = self._next_id
            await websocket.send(json.dumps({
                "id": self._subscription_id,
                "type": HassMessage.SUBSCRIBE_EVENTS,
                "event_type": HassMessage.STATE_CHANGED,
            }))
        elif msg_type == HassMessage.AUTH_INVALID:
            raise AuthenticationError(message.get("message", "invalid access token"))
        elif msg_type == HassMessage.RESULT:
            if message.get("id") != self._subscription_id:
                return
            if not message.get("success"):
                raise HomeAssistantError(f"Subscription rejected: {message.get('error')}")
            self._set_state(ConnectionState.SUBSCRIBED)
            self.backoff.reset()
            logging.info("HA WebSocket: subscribed to state changes")
        elif msg_type == HassMessage.EVENT:
            event = message.get("event")
            if not isinstance(event, dict) or event.get("event_type") != HassMessage.STATE_CHANGED:
                return
            data = event.get("data")
            parsed = StateChangedEvent.from_event_data(data) if isinstance(data, dict) else None
            if parsed is None:
                logging.debug("Skipping state_changed event without entity")
                return
            self._on_event(parsed)
