"""Tests for the navigation payload codec."""
import base64

import pytest

from ha2tg.nav.payload import (
    AddUser,
    Admin,
    Control,
    DecodeError,
    DeleteUser,
    DeviceControl,
    DeviceDetail,
    EditName,
    EnterManualInput,
    Home,
    InDev,
    ListActions,
    ListRooms,
    ListUsers,
    QuickAction,
    RoomDetail,
    SetLevel,
    SetTemperature,
    Settings,
    ShowChart,
    Toggle,
    ToggleHide,
    ToggleNotify,
    TurnOff,
    TurnOn,
    decode,
    decode_or_home,
    encode,
    intent_room,
    pack,
)


def b64(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


class TestCompatibility:
    """Encodings shared with buttons that are already out there."""

    def test_known_vector_decodes(self):
        """Test the reference chart button payload."""
        assert decode("AQMENAUYAA") == Control(QuickAction(2, 26, ShowChart(24, 0)))

    def test_known_vector_encodes(self):
        """Test encoding reproduces the reference payload."""
        assert encode(Control(QuickAction(2, 26, ShowChart(24, 0)))) == "AQMENAUYAA"

    def test_home_is_single_zero_byte(self):
        assert pack(Home()) == b"\x00"
        assert encode(Home()) == "AA"

    def test_signed_ids_are_zigzag(self):
        """Test negative and positive ids use zig-zag varints."""
        assert pack(Control(RoomDetail(-1))) == b"\x01\x01\x01"
        assert pack(Control(RoomDetail(1))) == b"\x01\x01\x02"
        assert pack(Control(RoomDetail(64))) == b"\x01\x01\x80\x01"

    def test_temperature_is_little_endian_float32(self):
        raw = pack(Control(QuickAction(0, 0, SetTemperature(21.5))))
        assert raw[-4:] == b"\x00\x00\xac\x41"

    def test_level_is_raw_byte(self):
        assert pack(Control(QuickAction(0, 0, SetLevel(200))))[-1] == 200


class TestRoundTrip:
    """decode(encode(x)) == x for the intents the screens produce."""

    @pytest.mark.parametrize("intent", [
        Home(),
        InDev(),
        Control(ListRooms()),
        Control(RoomDetail(5)),
        Control(DeviceControl(5, 12)),
        Control(QuickAction(5, 12)),
        Control(QuickAction(5, 12, TurnOn())),
        Control(QuickAction(5, 12, TurnOff())),
        Control(QuickAction(5, 12, SetLevel(128))),
        Control(QuickAction(5, 12, SetTemperature(20.5))),
        Control(QuickAction(5, 12, ShowChart(72, -48))),
        Control(QuickAction(5, 12, EnterManualInput())),
        Settings(ListRooms()),
        Settings(RoomDetail(3)),
        Settings(DeviceDetail(3, 4)),
        Settings(ToggleNotify(3, 4)),
        Settings(ToggleHide(3, 4)),
        Settings(EditName(3, 4)),
        Admin(ListActions()),
        Admin(ListUsers()),
        Admin(AddUser(0)),
        Admin(DeleteUser(123456789)),
    ])
    def test_round_trip(self, intent):
        text = encode(intent)
        assert text
        assert decode(text) == intent

    def test_largest_chart_button_fits(self):
        """Test large ids with a week-long chart stay within 64 bytes."""
        intent = Control(QuickAction(1_000_000, 2_000_000, ShowChart(168, -168)))
        text = encode(intent)

        assert len(pack(intent)) == 14
        assert len(text) == 19
        assert decode(text) == intent

    def test_encoding_is_deterministic(self):
        intent = Settings(ToggleNotify(7, 8))
        assert encode(intent) == encode(Settings(ToggleNotify(7, 8)))

    def test_temperature_survives_round_trip_at_float32_precision(self):
        intent = Control(QuickAction(1, 1, SetTemperature(20.1)))
        decoded = decode(encode(intent))
        assert decoded == intent
        assert decoded.sub.cmd.value == pytest.approx(20.1, abs=1e-5)


class TestDecodeErrors:
    """Malformed callback data is rejected, never guessed at."""

    @pytest.mark.parametrize("text", [
        "",
        "!!!!",
        "AAAAA",               # impossible base64 length
        "AA==",                # padding is not used
        "AQME",                # truncated QuickAction
        b64(b"\x00\x00"),      # trailing byte after Home
        b64(b"\x09"),          # unknown payload tag
        b64(b"\x01\x09"),      # unknown Control variant
        b64(b"\x80\x00"),      # over-long varint
        b64(b"\x01\x03\x04\x34\x05\x18\x00\x00"),  # trailing byte after chart
        "A" * 65,
    ])
    def test_rejected(self, text):
        with pytest.raises(DecodeError):
            decode(text)

    def test_standard_base64_alphabet_is_rejected(self):
        """Test '+' and '/' are not accepted in place of '-' and '_'."""
        text = b64(b"\x03\x02\xfb\xff\x0f")
        assert "-" in text or "_" in text
        standard = text.replace("-", "+").replace("_", "/")
        with pytest.raises(DecodeError):
            decode(standard)

    def test_non_canonical_trailing_bits_rejected(self):
        # "AB" decodes to the same byte as "AA" with non-zero padding bits
        with pytest.raises(DecodeError):
            decode("AB")

    def test_decode_error_is_value_error(self):
        with pytest.raises(ValueError):
            decode("garbage!")


class TestLenientDecode:
    """Tests for decode_or_home."""

    @pytest.mark.parametrize("text", [None, "", "garbage", "AQME", b64(b"\x09")])
    def test_invalid_goes_home(self, text):
        assert decode_or_home(text) == Home()

    def test_valid_passes_through(self):
        assert decode_or_home(encode(Control(RoomDetail(5)))) == Control(RoomDetail(5))


class TestEncodeFailures:
    """Unencodable intents log an error and yield an empty string."""

    @pytest.mark.parametrize("intent", [
        Control(QuickAction(1, 1, SetLevel(300))),
        Admin(DeleteUser(-1)),
        Admin(AddUser(1 << 32)),
        Control(RoomDetail(1 << 63)),
        Control(QuickAction(1, 1, SetTemperature(float("nan")))),
        Control(Settings(ListRooms())),
    ])
    def test_invalid_values(self, intent, caplog):
        assert encode(intent) == ""
        assert "Payload serialization failed" in caplog.text

    def test_wrong_family_payload(self):
        """Test a Settings-only variant cannot ride in Control."""
        assert encode(Control(ToggleHide(1, 2))) == ""


class TestIntentRoom:
    """Tests for intent_room."""

    def test_room_of_control_and_settings(self):
        assert intent_room(Control(RoomDetail(5))) == 5
        assert intent_room(Control(QuickAction(3, 9))) == 3
        assert intent_room(Settings(DeviceDetail(4, 1))) == 4

    def test_no_room(self):
        assert intent_room(Home()) is None
        assert intent_room(Control(ListRooms())) is None
        assert intent_room(Admin(ListUsers())) is None
