"""Connect to an Orville, ask for the root menu, then print every incoming
MIDI message, decoding Eventide SysEx frames.

Usage: python monitor.py [--log-level LEVEL] [--port-prefix PREFIX] [--key KEY]
"""
from __future__ import annotations

import argparse
import logging
import time

from midi import OrvilleMidi
from orvillecontrol.logging_setup import configure_logging
from orvillecontrol.protocol.codes import OrvilleMenuKeys, OrvilleSysexCodes, command_name
from orvillecontrol.protocol.sysex import SysexCodec, SysexFrame, format_sysex_bytes
from orvillecontrol.transport.midi_transport import MidiTransport


_TEXT_COMMANDS = {
    OrvilleSysexCodes.SYSEXC_OBJECTINFO_DUMP,
    OrvilleSysexCodes.SYSEXC_VALUE_DUMP,
    OrvilleSysexCodes.SYSEXC_ERROR,
}


def _describe(frame: SysexFrame) -> str:
    head = f"device={frame.device_id} cmd={command_name(frame.command)}"
    if frame.command in _TEXT_COMMANDS:
        return f"{head}\n{frame.text}"
    return f"{head} payload={format_sysex_bytes(frame.payload)}"


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (DEBUG, INFO, WARNING, ERROR). Can also use ORVILLE_LOG_LEVEL env var.",
    )
    parser.add_argument("--port-prefix", default="Orville", help="MIDI port name prefix.")
    parser.add_argument("--key", default=OrvilleMenuKeys.ROOT, help="Menu key to request first.")
    args = parser.parse_args()

    configure_logging(cli_level=args.log_level)
    logger = logging.getLogger("monitor")

    transport = MidiTransport(OrvilleMidi(port_prefix=args.port_prefix))
    try:
        info = transport.connect()
    except Exception as exc:  # pragma: no cover - hardware dependent
        logger.error("Failed to connect to MIDI: %s", exc)
        raise

    logger.info("Connected to MIDI output: %s", info.output_name)

    codec = SysexCodec()
    transport.send_sysex(codec.encode(OrvilleSysexCodes.SYSEXC_OBJECTINFO_WANT, args.key.encode("ascii")))

    logger.info("Listening for incoming SysEx. Press Ctrl-C to quit.")
    try:  # pragma: no cover - interactive loop
        while True:
            for msg in transport.receive_pending():
                frame = codec.decode(msg)
                if frame is not None:
                    print(f"RX Eventide SysEx: {_describe(frame)}")
                else:
                    print(f"RX SysEx (other): {format_sysex_bytes(list(getattr(msg, 'data', [])))}")
            time.sleep(0.05)
    except KeyboardInterrupt:
        logger.info("Interrupted by user; closing MIDI connection.")
    finally:
        transport.close()


if __name__ == "__main__":
    main()
