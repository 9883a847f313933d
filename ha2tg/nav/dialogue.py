"""Dialogue states: which free-text answer the bot is waiting for.

A dialogue state is separate from the navigation context. It lives only in
memory and is reset on every completed button press.
"""
from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class Idle:
    pass


@dataclass(frozen=True)
class WaitingForName:
    device: int
    room: int


@dataclass(frozen=True)
class WaitingForStateAlias:
    device: int
    room: int
    original_state: str


@dataclass(frozen=True)
class WaitingForGraphInterval:
    device: int
    room: int


@dataclass(frozen=True)
class AdminFlow:
    action: str


DialogueState = Union[
    Idle, WaitingForName, WaitingForStateAlias, WaitingForGraphInterval, AdminFlow
]

ADD_USER = "add_user"


# Input intents returned by the device executor when an action needs text
@dataclass(frozen=True)
class RenameDevice:
    pass


@dataclass(frozen=True)
class SetStateAlias:
    original_state: str


@dataclass(frozen=True)
class DefineGraphInterval:
    pass


InputIntent = Union[RenameDevice, SetStateAlias, DefineGraphInterval]


def from_input_intent(intent: InputIntent, device: int, room: int) -> DialogueState:
    """Build the waiting state for an input intent on a device."""
    if isinstance(intent, RenameDevice):
        return WaitingForName(device=device, room=room)
    if isinstance(intent, SetStateAlias):
        return WaitingForStateAlias(
            device=device, room=room, original_state=intent.original_state
        )
    if isinstance(intent, DefineGraphInterval):
        return WaitingForGraphInterval(device=device, room=room)
    raise TypeError(f"Unknown input intent: {intent!r}")
