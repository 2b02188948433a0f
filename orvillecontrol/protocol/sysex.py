from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, cast

import mido

from orvillecontrol.errors import FormatError


EVENTIDE_MANUFACTURER_ID = 0x1C
EVENTIDE_MODEL_ID_ORVILLE = 0x70

VENDOR_PREFIX = bytes([EVENTIDE_MANUFACTURER_ID, EVENTIDE_MODEL_ID_ORVILLE])

SYSEX_START = 0xF0
SYSEX_END = 0xF7


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SysexFrame:
    manufacturer_id: int
    model_id: int
    device_id: int
    command: int
    payload: bytes

    @property
    def text(self) -> str:
        """Payload decoded as printable ASCII (for the text-carrying commands)."""

        return payload_text(self.payload)


def payload_text(payload: bytes) -> str:
    # Dumps are ASCII-ish with CR/LF line ends and a trailing NUL; decode tolerantly.
    raw = payload.decode("ascii", errors="replace")
    return raw.replace("\x00", "").replace("\r", "").strip()


def _to_bytes(data: mido.Message | bytes | bytearray | Sequence[int]) -> bytes | None:
    if isinstance(data, (bytes, bytearray)):
        return bytes(data)

    msg = cast(Any, data)
    if getattr(msg, "type", None) is not None:
        # mido SysEx messages contain the data bytes WITHOUT 0xF0/0xF7.
        if msg.type != "sysex":
            return None
        return bytes(msg.data)

    return bytes(list(data))


def decode_frame(data: mido.Message | bytes | bytearray | Sequence[int]) -> SysexFrame | None:
    """Decode an inbound message into an Eventide `SysexFrame`.

    Accepts a mido message or raw bytes, framed (F0..F7) or unframed.
    Eventide format is: 1C 70 <id> <cmd> <payload...>
    Returns None for anything that isn't an Eventide frame.
    """

    raw = _to_bytes(data)
    if raw is None:
        return None

    if raw and raw[0] == SYSEX_START:
        raw = raw[1:]
    if raw and raw[-1] == SYSEX_END:
        raw = raw[:-1]

    if len(raw) < 4:
        return None

    if raw[0] != EVENTIDE_MANUFACTURER_ID or raw[1] != EVENTIDE_MODEL_ID_ORVILLE:
        return None

    return SysexFrame(
        manufacturer_id=raw[0],
        model_id=raw[1],
        device_id=raw[2],
        command=raw[3],
        payload=bytes(raw[4:]),
    )


def encode_frame(device_id: int, command: int, payload: bytes | bytearray = b"") -> bytes:
    """Build an *unframed* Eventide SysEx message.

    Output is: 1C 70 <id> <cmd> <payload...>
    The F0/F7 delimiters belong to the transport (mido adds them).
    """

    if device_id < 0 or device_id > 127:
        raise ValueError("device_id must be 0..127")

    if command < 0 or command > 127:
        raise ValueError("command must be 0..127")

    for b in payload:
        if b > 0x7F:
            raise ValueError(f"SysEx payload byte out of range (0-127): {b}")

    return VENDOR_PREFIX + bytes([device_id, command]) + bytes(payload)


def nibble(data: bytes | bytearray | Sequence[int]) -> bytes:
    """Split each byte into two 4-bit values, high nibble first."""

    out = bytearray()
    for b in data:
        out.append((b >> 4) & 0x0F)
        out.append(b & 0x0F)
    return bytes(out)


def denibble(nibbles: bytes | bytearray | Sequence[int]) -> bytes:
    """Inverse of `nibble`.

    A truncated capture (odd count) or a value wider than 4 bits is a
    `FormatError`; we never guess the missing half.
    """

    if len(nibbles) % 2 != 0:
        raise FormatError(f"Odd nibble count ({len(nibbles)}); capture is truncated")

    out = bytearray()
    for i in range(0, len(nibbles), 2):
        hi = nibbles[i]
        lo = nibbles[i + 1]
        if hi > 0x0F or lo > 0x0F:
            raise FormatError(f"Nibble out of range at offset {i}: {hi:#x} {lo:#x}")
        out.append((hi << 4) | lo)
    return bytes(out)


def format_sysex_bytes(data: bytes | bytearray | list[int], *, max_len: int = 64) -> str:
    """Format SysEx bytes as hex, truncated for logs.

    Accepts framed (F0..F7) or unframed payloads.
    """

    raw = bytes(data)

    truncated = raw[:max_len]
    hex_part = " ".join(f"{b:02X}" for b in truncated)
    if len(raw) > max_len:
        return f"{hex_part} …(+{len(raw) - max_len} bytes)"
    return hex_part


def parse_hex_command(text: str) -> tuple[int, bytes]:
    """Parse operator-typed hex ("2D 34 30", "2d3430") into (command, payload).

    The first byte is the command, the rest is sent as payload verbatim.
    """

    digits = "".join(text.split())
    if not digits:
        raise ValueError("Empty hex command")
    if len(digits) % 2 != 0:
        raise ValueError(f"Odd number of hex digits in {text!r}")
    try:
        raw = bytes.fromhex(digits)
    except ValueError as exc:
        raise ValueError(f"Not a hex string: {text!r}") from exc
    return raw[0], raw[1:]


class SysexCodec:
    """Frames outbound requests and decodes inbound ones for one device.

    When no device ID is configured, the ID byte of the first Eventide frame
    received is adopted. Operators often don't know the ID set on the unit.
    """

    def __init__(self, device_id: int | None = None) -> None:
        if device_id is not None and not 0 <= device_id <= 127:
            raise ValueError("device_id must be 0..127")
        self.device_id = device_id
        self._discovered = False

    @property
    def discovered(self) -> bool:
        return self._discovered

    def encode(self, command: int, payload: bytes | bytearray = b"") -> bytes:
        # Until discovery, 0 reaches a unit left at its default ID.
        device_id = self.device_id if self.device_id is not None else 0
        return encode_frame(device_id, command, payload)

    def decode(self, data: mido.Message | bytes | bytearray | Sequence[int]) -> SysexFrame | None:
        frame = decode_frame(data)
        if frame is None:
            return None

        if self.device_id is None:
            self.device_id = frame.device_id
            self._discovered = True
            logger.info("Discovered device id %d from inbound frame", frame.device_id)
            return frame

        # Accept broadcast responses (device_id 0) or exact match.
        if frame.device_id not in (0, self.device_id):
            logger.debug("Ignoring frame for device id %d", frame.device_id)
            return None
        return frame
