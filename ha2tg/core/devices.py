"""Device action executor.

Translates a button command into a Home Assistant call and reports a coarse
outcome the router can branch on.
"""
import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Optional, Union

from ha2tg.hass.client import HomeAssistantError
from ha2tg.nav import payload
from ha2tg.nav.dialogue import DefineGraphInterval, InputIntent, SetStateAlias
from ha2tg.storage import devices as device_repo
from ha2tg.storage.database import StorageError

if TYPE_CHECKING:
    from ha2tg.core.context import RuntimeContext


# --- Interaction results ---------------------------------------------------

@dataclass(frozen=True)
class Processed:
    """Action done; show the room with fresh states."""


@dataclass(frozen=True)
class RequiresDetail:
    """Nothing to do from the room list; open the device screen instead."""


@dataclass(frozen=True)
class RequiresInput:
    intent: InputIntent


@dataclass(frozen=True)
class Error:
    message: str


InteractionResult = Union[Processed, RequiresDetail, RequiresInput, Error]


# --- Domain actions --------------------------------------------------------

class ActionKind(Enum):
    TOGGLE = "toggle"
    TURN_ON = "turn_on"
    TURN_OFF = "turn_off"
    SET_LEVEL = "set_level"
    SET_TEMPERATURE = "set_temperature"
    GENERATE_CHART = "generate_chart"
    MANUAL_INPUT = "manual_input"


@dataclass(frozen=True)
class ChartParams:
    period_hours: int = 24
    offset_hours: int = 0


@dataclass(frozen=True)
class DeviceAction:
    kind: ActionKind
    level: Optional[int] = None
    temperature: Optional[float] = None
    chart: Optional[ChartParams] = None

    @classmethod
    def from_command(cls, cmd: payload.DeviceCommand) -> 'DeviceAction':
        if isinstance(cmd, payload.Toggle):
            return cls(ActionKind.TOGGLE)
        if isinstance(cmd, payload.TurnOn):
            return cls(ActionKind.TURN_ON)
        if isinstance(cmd, payload.TurnOff):
            return cls(ActionKind.TURN_OFF)
        if isinstance(cmd, payload.SetLevel):
            return cls(ActionKind.SET_LEVEL, level=cmd.level)
        if isinstance(cmd, payload.SetTemperature):
            return cls(ActionKind.SET_TEMPERATURE, temperature=cmd.value)
        if isinstance(cmd, payload.ShowChart):
            return cls(ActionKind.GENERATE_CHART, chart=ChartParams(cmd.hours, cmd.offset))
        if isinstance(cmd, payload.EnterManualInput):
            return cls(ActionKind.MANUAL_INPUT)
        raise TypeError(f"Unknown device command: {cmd!r}")


_SWITCH_SERVICES = {
    ActionKind.TOGGLE: "toggle",
    ActionKind.TURN_ON: "turn_on",
    ActionKind.TURN_OFF: "turn_off",
}


async def handle_device_interaction(
    ctx: 'RuntimeContext',
    device_id: int,
    action: DeviceAction
) -> InteractionResult:
    """Run an action on a device and report what the UI should do next."""
    try:
        device = await ctx.db.run(device_repo.get_device_by_id, device_id)
        if device is None:
            return Error("Device not found")
        entity = await ctx.hass.fetch_state(device.entity_id)
        if entity is None:
            return Error("Device is not available in Home Assistant")

        result = await _dispatch(ctx, entity.domain, entity.entity_id, entity.state, action)
    except HomeAssistantError as e:
        logging.warning("Action %s on device %d failed: %s", action.kind.value, device_id, e)
        return Error(f"Home Assistant error: {e}")
    except StorageError as e:
        logging.error("Storage error during action on device %d: %s", device_id, e)
        return Error("Database error")

    if isinstance(result, Processed) and ctx.config.action_settle_delay_s > 0:
        # Give Home Assistant time to publish the new state before re-rendering
        await asyncio.sleep(ctx.config.action_settle_delay_s)
    return result


async def _dispatch(
    ctx: 'RuntimeContext',
    domain: str,
    entity_id: str,
    state: str,
    action: DeviceAction
) -> InteractionResult:
    kind = action.kind

    if domain in ("light", "switch"):
        if kind in _SWITCH_SERVICES:
            await ctx.hass.call_service(domain, _SWITCH_SERVICES[kind], entity_id)
            return Processed()
        if kind == ActionKind.SET_LEVEL:
            if domain != "light":
                return Error("Switches have no level")
            await ctx.hass.call_service(
                domain, "turn_on", entity_id, {"brightness": action.level}
            )
            return Processed()
        if kind == ActionKind.MANUAL_INPUT:
            return RequiresInput(SetStateAlias(original_state=state))
        return RequiresDetail()

    if domain == "climate":
        if kind == ActionKind.SET_TEMPERATURE:
            await ctx.hass.call_service(
                domain, "set_temperature", entity_id, {"temperature": action.temperature}
            )
        elif kind in (ActionKind.TURN_ON, ActionKind.TURN_OFF):
            await ctx.hass.call_service(domain, kind.value, entity_id)
        return RequiresDetail()

    if domain == "sensor":
        if kind == ActionKind.MANUAL_INPUT:
            return RequiresInput(DefineGraphInterval())
        return RequiresDetail()

    if domain == "binary_sensor":
        if kind == ActionKind.MANUAL_INPUT:
            return RequiresInput(SetStateAlias(original_state=state))
        return RequiresDetail()

    return Processed()
