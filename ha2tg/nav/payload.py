"""Compact navigation payloads carried in inline button callback data.

Telegram limits callback data to 64 bytes, so a navigation intent is packed
into a dense binary form and then URL-safe base64 encoded without padding.

Wire format (compatible with the postcard serializer):
- variant tags are LEB128 varints, defined once per family in the tables below
- signed ids and offsets are zig-zag varints
- unsigned counters are LEB128 varints
- ``SetLevel`` is a raw byte, ``SetTemperature`` a little-endian float32

Example: ``"AQMENAUYAA"`` is ``Control(QuickAction(2, 26, ShowChart(24, 0)))``.
"""
import base64
import binascii
import logging
import math
import struct
from dataclasses import dataclass
from typing import Optional, Union

from ha2tg.core.constants import TelegramLimits


class DecodeError(ValueError):
    """Raised when callback data is not a valid navigation payload."""


# --- Device commands -------------------------------------------------------

@dataclass(frozen=True)
class Toggle:
    pass


@dataclass(frozen=True)
class TurnOn:
    pass


@dataclass(frozen=True)
class TurnOff:
    pass


@dataclass(frozen=True)
class SetLevel:
    level: int


@dataclass(frozen=True)
class SetTemperature:
    """Target temperature, stored at float32 precision."""
    value: float

    def __post_init__(self):
        try:
            narrowed = struct.unpack("<f", struct.pack("<f", self.value))[0]
        except (OverflowError, struct.error, TypeError):
            # Left as is; encode() rejects it
            return
        object.__setattr__(self, "value", narrowed)


@dataclass(frozen=True)
class ShowChart:
    hours: int = 24
    offset: int = 0


@dataclass(frozen=True)
class EnterManualInput:
    pass


DeviceCommand = Union[
    Toggle, TurnOn, TurnOff, SetLevel, SetTemperature, ShowChart, EnterManualInput
]


# --- Screen payloads -------------------------------------------------------

@dataclass(frozen=True)
class ListRooms:
    pass


@dataclass(frozen=True)
class RoomDetail:
    room: int


@dataclass(frozen=True)
class DeviceControl:
    room: int
    device: int


@dataclass(frozen=True)
class QuickAction:
    room: int
    device: int
    cmd: DeviceCommand = Toggle()


@dataclass(frozen=True)
class DeviceDetail:
    room: int
    device: int


@dataclass(frozen=True)
class ToggleNotify:
    room: int
    device: int


@dataclass(frozen=True)
class ToggleHide:
    room: int
    device: int


@dataclass(frozen=True)
class EditName:
    room: int
    device: int


@dataclass(frozen=True)
class ListActions:
    pass


@dataclass(frozen=True)
class ListUsers:
    pass


@dataclass(frozen=True)
class AddUser:
    id: int


@dataclass(frozen=True)
class DeleteUser:
    id: int


ControlPayload = Union[ListRooms, RoomDetail, DeviceControl, QuickAction]
SettingsPayload = Union[
    ListRooms, RoomDetail, DeviceDetail, ToggleNotify, ToggleHide, EditName
]
AdminPayload = Union[ListActions, ListUsers, AddUser, DeleteUser]


# --- Top level intents -----------------------------------------------------

@dataclass(frozen=True)
class Home:
    pass


@dataclass(frozen=True)
class Control:
    sub: ControlPayload


@dataclass(frozen=True)
class Settings:
    sub: SettingsPayload


@dataclass(frozen=True)
class Admin:
    sub: AdminPayload


@dataclass(frozen=True)
class InDev:
    pass


NavigationIntent = Union[Home, Control, Settings, Admin, InDev]


# --- Wire tables -----------------------------------------------------------
# Tags are part of the persisted session format and of buttons already sent
# to users. Never renumber; append new variants at the end.

I64 = "i64"
I32 = "i32"
U32 = "u32"
U8 = "u8"
F32 = "f32"
CMD = "cmd"

PAYLOAD_TAGS = {Home: 0, Control: 1, Settings: 2, Admin: 3, InDev: 4}
CONTROL_TAGS = {ListRooms: 0, RoomDetail: 1, DeviceControl: 2, QuickAction: 3}
SETTINGS_TAGS = {
    ListRooms: 0,
    RoomDetail: 1,
    DeviceDetail: 2,
    ToggleNotify: 3,
    ToggleHide: 4,
    EditName: 5,
}
ADMIN_TAGS = {ListActions: 0, ListUsers: 1, AddUser: 2, DeleteUser: 3}
COMMAND_TAGS = {
    Toggle: 0,
    TurnOn: 1,
    TurnOff: 2,
    SetLevel: 3,
    SetTemperature: 4,
    ShowChart: 5,
    EnterManualInput: 6,
}

# Field order and wire kind of every variant with fields
FIELDS = {
    RoomDetail: (("room", I64),),
    DeviceControl: (("room", I64), ("device", I64)),
    QuickAction: (("room", I64), ("device", I64), ("cmd", CMD)),
    DeviceDetail: (("room", I64), ("device", I64)),
    ToggleNotify: (("room", I64), ("device", I64)),
    ToggleHide: (("room", I64), ("device", I64)),
    EditName: (("room", I64), ("device", I64)),
    AddUser: (("id", U32),),
    DeleteUser: (("id", U32),),
    SetLevel: (("level", U8),),
    SetTemperature: (("value", F32),),
    ShowChart: (("hours", U32), ("offset", I32)),
}

# Families of the nested payload carried by each top-level wrapper
SUB_TAGS = {Control: CONTROL_TAGS, Settings: SETTINGS_TAGS, Admin: ADMIN_TAGS}

_BITS = {I64: 64, I32: 32, U32: 32}


def _invert(table: dict) -> dict:
    return {tag: cls for cls, tag in table.items()}


_PAYLOAD_BY_TAG = _invert(PAYLOAD_TAGS)
_SUB_BY_TAG = {wrapper: _invert(table) for wrapper, table in SUB_TAGS.items()}
_COMMAND_BY_TAG = _invert(COMMAND_TAGS)


# --- Writer ----------------------------------------------------------------

def _put_varint(buf: bytearray, value: int) -> None:
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            buf.append(byte | 0x80)
        else:
            buf.append(byte)
            return


def _put_field(buf: bytearray, kind: str, value) -> None:
    if kind == CMD:
        _put_variant(buf, COMMAND_TAGS, value)
    elif kind == U8:
        if not isinstance(value, int) or not 0 <= value <= 0xFF:
            raise ValueError(f"u8 out of range: {value!r}")
        buf.append(value)
    elif kind == F32:
        if not isinstance(value, (int, float)) or not math.isfinite(value):
            raise ValueError(f"invalid float32: {value!r}")
        buf += struct.pack("<f", value)
    elif kind == U32:
        if not isinstance(value, int) or not 0 <= value < 1 << 32:
            raise ValueError(f"u32 out of range: {value!r}")
        _put_varint(buf, value)
    else:
        bits = _BITS[kind]
        if not isinstance(value, int) or not -(1 << (bits - 1)) <= value < 1 << (bits - 1):
            raise ValueError(f"{kind} out of range: {value!r}")
        _put_varint(buf, ((value << 1) ^ (value >> (bits - 1))) & ((1 << bits) - 1))


def _put_variant(buf: bytearray, table: dict, value) -> None:
    tag = table.get(type(value))
    if tag is None:
        raise ValueError(f"{type(value).__name__} is not valid here")
    _put_varint(buf, tag)
    for name, kind in FIELDS.get(type(value), ()):
        _put_field(buf, kind, getattr(value, name))


def pack(intent: NavigationIntent) -> bytes:
    """Serialize an intent to its binary wire form. Raises ValueError."""
    buf = bytearray()
    _put_variant(buf, PAYLOAD_TAGS, intent)
    table = SUB_TAGS.get(type(intent))
    if table is not None:
        _put_variant(buf, table, intent.sub)
    return bytes(buf)


# --- Reader ----------------------------------------------------------------

class _Reader:
    def __init__(self, data: bytes):
        self.data = data
        self.pos = 0

    def byte(self) -> int:
        if self.pos >= len(self.data):
            raise DecodeError("unexpected end of payload")
        value = self.data[self.pos]
        self.pos += 1
        return value

    def varint(self, bits: int) -> int:
        result = 0
        shift = 0
        while True:
            byte = self.byte()
            result |= (byte & 0x7F) << shift
            if not byte & 0x80:
                break
            shift += 7
            if shift >= bits + 7:
                raise DecodeError("varint too long")
        if result >> bits:
            raise DecodeError("varint out of range")
        return result

    def field(self, kind: str):
        if kind == CMD:
            return self.variant(_COMMAND_BY_TAG)
        if kind == U8:
            return self.byte()
        if kind == F32:
            if self.pos + 4 > len(self.data):
                raise DecodeError("unexpected end of payload")
            value = struct.unpack_from("<f", self.data, self.pos)[0]
            self.pos += 4
            if not math.isfinite(value):
                raise DecodeError("non-finite temperature")
            return value
        if kind == U32:
            return self.varint(32)
        raw = self.varint(_BITS[kind])
        return (raw >> 1) ^ -(raw & 1)

    def variant(self, by_tag: dict):
        tag = self.varint(32)
        cls = by_tag.get(tag)
        if cls is None:
            raise DecodeError(f"unknown variant tag {tag}")
        values = {name: self.field(kind) for name, kind in FIELDS.get(cls, ())}
        return cls(**values)




def unpack(data: bytes) -> NavigationIntent:
    """Parse the binary wire form. Raises DecodeError."""
    if not data:
        raise DecodeError("empty payload")
    reader = _Reader(data)
    tag = reader.varint(32)
    cls = _PAYLOAD_BY_TAG.get(tag)
    if cls is None:
        raise DecodeError(f"unknown payload tag {tag}")
    if cls in _SUB_BY_TAG:
        intent = cls(reader.variant(_SUB_BY_TAG[cls]))
    else:
        intent = cls()

    if reader.pos != len(data):
        raise DecodeError(f"{len(data) - reader.pos} trailing bytes")
    # Byte-stable: an over-long varint would re-encode differently
    if pack(intent) != data:
        raise DecodeError("non-canonical encoding")
    return intent


# --- Text form -------------------------------------------------------------

def encode(intent: NavigationIntent) -> str:
    """Encode an intent as callback data.

    Returns an empty string (and logs an error) when the intent cannot be
    encoded or would not fit in Telegram's callback data limit.
    """
    try:
        raw = pack(intent)
    except (ValueError, OverflowError, struct.error) as e:
        logging.error("Payload serialization failed for %r: %s", intent, e)
        return ""

    text = base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")
    if len(text) > TelegramLimits.CALLBACK_DATA_BYTES:
        logging.error(
            "Payload overflow: %d bytes used for %r, max is %d",
            len(text), intent, TelegramLimits.CALLBACK_DATA_BYTES
        )
        return ""
    return text


def decode(text: str) -> NavigationIntent:
    """Decode callback data. Raises DecodeError on any malformed input."""
    if not text:
        raise DecodeError("empty payload")
    if not isinstance(text, str) or len(text) > TelegramLimits.CALLBACK_DATA_BYTES:
        raise DecodeError("payload is not callback data")
    if len(text) % 4 == 1:
        raise DecodeError(f"bad base64 length {len(text)}")

    try:
        ascii_text = text.encode("ascii")
        raw = base64.b64decode(
            ascii_text + b"=" * (-len(ascii_text) % 4),
            altchars=b"-_",
            validate=True
        )
    except (UnicodeEncodeError, binascii.Error) as e:
        raise DecodeError(f"base64 decode failed for {text!r}: {e}") from e

    # Rejects '+', '/', padding and non-zero trailing bits
    if base64.urlsafe_b64encode(raw).rstrip(b"=") != ascii_text:
        raise DecodeError(f"non-canonical base64 {text!r}")

    try:
        return unpack(raw)
    except DecodeError as e:
        raise DecodeError(f"binary decode failed, bytes {raw.hex()}: {e}") from e


def decode_or_home(text: Optional[str]) -> NavigationIntent:
    """Lenient decode for top-level navigation: anything invalid goes Home."""
    try:
        return decode(text or "")
    except DecodeError as e:
        logging.debug("Falling back to Home: %s", e)
        return Home()


def intent_room(intent: NavigationIntent) -> Optional[int]:
    """Return the room a Control or Settings intent points into, if any."""
    if isinstance(intent, (Control, Settings)):
        return getattr(intent.sub, "room", None)
    return None
