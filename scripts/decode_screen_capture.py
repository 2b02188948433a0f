#!/usr/bin/env python3
"""
Rebuild the Orville LCD from a logged SCREEN_DUMP capture.

Usage:
    python scripts/decode_screen_capture.py capture.txt screen.pbm
    python scripts/decode_screen_capture.py capture.txt --ascii --rotation 0 --vshift 0

The capture is the hex text of the SysEx frame (as printed by monitor.py or a
MIDI monitor). Everything after the `17` command byte up to `F7` is decoded.
Use the calibration flags to line the picture up before putting them in config.json.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from orvillecontrol.domain.bitmap import BitmapCalibration, BitmapDecoder, extract_screen_nibbles
from orvillecontrol.errors import FormatError
from orvillecontrol.logging_setup import configure_logging


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("capture", type=Path, help="Text file holding the hex capture.")
    parser.add_argument("output", type=Path, nargs="?", default=None, help="PBM file to write.")
    parser.add_argument("--ascii", action="store_true", help="Print the picture as text.")
    parser.add_argument("--header", type=int, default=0, help="Bytes to skip before the raster.")
    parser.add_argument("--rotation", type=int, default=0, help="Cyclic column shift.")
    parser.add_argument("--vshift", type=int, default=0, help="Row shift for the leftmost columns.")
    parser.add_argument("--shift-columns", type=int, default=8, help="Width of the shifted region.")
    parser.add_argument("--log-level", default=None)
    args = parser.parse_args()

    configure_logging(cli_level=args.log_level)
    logger = logging.getLogger("decode_screen_capture")

    decoder = BitmapDecoder(
        BitmapCalibration(
            header_bytes=args.header,
            column_rotation=args.rotation,
            vertical_shift=args.vshift,
            shift_columns=args.shift_columns,
        )
    )

    try:
        nibbles = extract_screen_nibbles(args.capture.read_text())
        bitmap = decoder.decode(nibbles)
    except FormatError as exc:
        logger.error("Cannot decode %s: %s", args.capture, exc)
        return 1

    logger.info("Decoded %dx%d, %d lit pixels", bitmap.width, bitmap.height, bitmap.lit_count())
    if args.output is not None:
        args.output.write_bytes(bitmap.to_pbm())
        logger.info("Wrote %s", args.output)
    if args.ascii or args.output is None:
        print(bitmap.to_text())
    return 0


if __name__ == "__main__":
    sys.exit(main())
