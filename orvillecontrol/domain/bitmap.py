from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

import numpy as np

from orvillecontrol.errors import FormatError
from orvillecontrol.protocol.sysex import denibble


LCD_WIDTH = 240
LCD_HEIGHT = 64
BYTES_PER_ROW = LCD_WIDTH // 8
RASTER_BYTES = BYTES_PER_ROW * LCD_HEIGHT  # 1920

SCREEN_DUMP_COMMAND_HEX = "17"


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BitmapCalibration:
    """Per-unit constants for turning the raster into a picture.

    These were found empirically against real captures; treat them as
    tunables rather than facts about the hardware.
    """

    header_bytes: int = 0
    # Cyclic shift (in columns) for the LCD controller's scan-start offset.
    column_rotation: int = 0
    # Vertical shift (in rows) applied only to the leftmost `shift_columns`.
    vertical_shift: int = 0
    shift_columns: int = 8


@dataclass(frozen=True, eq=False)
class Bitmap:
    """A 240x64 monochrome frame; `pixels[row, column]` is 1 for a lit pixel."""

    pixels: np.ndarray = field(repr=False)

    @classmethod
    def blank(cls) -> Bitmap:
        return cls(np.zeros((LCD_HEIGHT, LCD_WIDTH), dtype=np.uint8))

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    def pixel(self, x: int, y: int) -> bool:
        return bool(self.pixels[y, x])

    def lit_count(self) -> int:
        return int(self.pixels.sum())

    def to_text(self, *, on: str = "#", off: str = ".") -> str:
        return "\n".join("".join(on if px else off for px in row) for row in self.pixels)

    def to_pbm(self) -> bytes:
        """Binary PBM (P4): rows packed MSB first, 1 = black."""

        header = f"P4\n{self.width} {self.height}\n".encode("ascii")
        return header + np.packbits(self.pixels.astype(np.uint8), axis=1).tobytes()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Bitmap):
            return NotImplemented
        return bool(np.array_equal(self.pixels, other.pixels))

    __hash__ = None  # type: ignore[assignment]


class BitmapDecoder:
    def __init__(self, calibration: BitmapCalibration | None = None) -> None:
        self.calibration = calibration or BitmapCalibration()

    def decode(self, raw: bytes | bytearray, *, nibbled: bool = True) -> Bitmap:
        """Rebuild the LCD from a SCREEN_DUMP payload.

        Raises FormatError for odd nibble counts or when fewer than 1920 raster
        bytes remain after the header; a partial frame is never returned.
        """

        data = denibble(raw) if nibbled else bytes(raw)

        cal = self.calibration
        raster = data[cal.header_bytes : cal.header_bytes + RASTER_BYTES]
        if len(raster) < RASTER_BYTES:
            raise FormatError(
                f"Screen dump too short: {len(raster)} raster bytes after a "
                f"{cal.header_bytes}-byte header, need {RASTER_BYTES}"
            )

        rows = np.frombuffer(raster, dtype=np.uint8).reshape(LCD_HEIGHT, BYTES_PER_ROW)
        # Bit 7 of byte (row*30 + col/8) is the leftmost pixel of that byte.
        pixels = np.unpackbits(rows, axis=1, bitorder="big")

        if cal.column_rotation:
            pixels = np.roll(pixels, cal.column_rotation, axis=1)

        if cal.vertical_shift and cal.shift_columns > 0:
            pixels = pixels.copy()
            region = pixels[:, : cal.shift_columns]
            pixels[:, : cal.shift_columns] = np.roll(region, cal.vertical_shift, axis=0)

        logger.debug("Decoded screen bitmap: %d lit pixels", int(pixels.sum()))
        return Bitmap(pixels)


_HEX_TOKEN_RE = re.compile(r"[0-9a-f]{1,2}")


def extract_screen_nibbles(capture_text: str) -> bytes:
    """Pull the nibble stream of a screen dump out of a logged hex capture.

    Takes everything after the first `17` (SCREEN_DUMP command) token up to
    the closing `F7`.
    """

    tokens = _HEX_TOKEN_RE.findall(capture_text.lower())
    try:
        start = tokens.index(SCREEN_DUMP_COMMAND_HEX) + 1
    except ValueError:
        raise FormatError("No screen dump command (17) found in capture") from None

    try:
        end = tokens.index("f7", start)
    except ValueError:
        end = len(tokens)

    return bytes(int(t, 16) for t in tokens[start:end])
