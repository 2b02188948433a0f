from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Protocol, cast

import mido

from orvillecontrol.protocol.sysex import format_sysex_bytes


logger = logging.getLogger(__name__)


class MidiPort(Protocol):
    port_prefix: str

    def connect(self) -> str: ...

    def close(self) -> None: ...

    def send_sysex(self, data: Sequence[int] | bytes | bytearray) -> None: ...

    def receive_pending(self) -> list[mido.Message]: ...


@dataclass(frozen=True)
class ConnectionInfo:
    output_name: str
    input_name: str | None


class MidiTransport:
    """App-facing wrapper over `OrvilleMidi`: connect, send, drain inbound SysEx."""

    def __init__(self, midi: MidiPort) -> None:
        self._midi = midi

    def connect(self) -> ConnectionInfo:
        output_name = self._midi.connect()
        input_name = None
        list_ports = getattr(self._midi, "list_ports", None)
        if list_ports is not None:
            input_name = next(
                (name for name in list_ports().inputs if name.startswith(self._midi.port_prefix)),
                None,
            )
        if input_name is None:
            logger.warning("No MIDI input matching %r; responses will not be received", self._midi.port_prefix)
        logger.info("Connected MIDI: output=%r input=%r", output_name, input_name)
        return ConnectionInfo(output_name=output_name, input_name=input_name)

    def close(self) -> None:
        logger.info("Closing MIDI transport")
        self._midi.close()

    def send_sysex(self, data: bytes | bytearray | Sequence[int]) -> None:
        logger.debug("TX sysex: %s", format_sysex_bytes(list(data)))
        self._midi.send_sysex(data)

    def receive_pending(self) -> list[mido.Message]:
        """Inbound SysEx only; other MIDI traffic (clock, CC) is dropped here."""

        sysex: list[mido.Message] = []
        for msg in self._midi.receive_pending():
            m = cast(Any, msg)
            if getattr(m, "type", None) != "sysex":
                continue
            logger.debug("RX sysex: %s", format_sysex_bytes(list(m.data)))
            sysex.append(msg)
        return sysex
