from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, cast

import mido


@dataclass(frozen=True)
class MidiPorts:
    inputs: list[str]
    outputs: list[str]


class OrvilleMidi:
    """Raw MIDI I/O for an Eventide Orville (or the interface it hangs off).

    - Picks the first input and output whose names start with `port_prefix`.
    - Sends SysEx built by the protocol layer, framed (F0..F7) or not.
    - Hands back inbound messages by polling; nothing here blocks.

    mido wants SysEx data WITHOUT the 0xF0/0xF7 markers, and delivers it that way.
    """

    def __init__(
        self,
        port_prefix: str = "Orville",
        *,
        backend: str = "mido.backends.rtmidi",
        input_enabled: bool = True,
    ) -> None:
        self.port_prefix = port_prefix
        self.backend = backend
        self.input_enabled = input_enabled

        mido.set_backend(self.backend)

        self._out: mido.ports.BaseOutput | None = None
        self._in: mido.ports.BaseInput | None = None

    @property
    def connected(self) -> bool:
        return self._out is not None

    @property
    def has_input(self) -> bool:
        return self._in is not None

    def list_ports(self) -> MidiPorts:
        m = cast(Any, mido)
        return MidiPorts(inputs=m.get_input_names(), outputs=m.get_output_names())

    def _match(self, names: list[str]) -> str | None:
        return next((name for name in names if name.startswith(self.port_prefix)), None)

    def connect(self) -> str:
        """Open the matching output (and input, when enabled); returns the output name."""

        m = cast(Any, mido)
        outputs = m.get_output_names()
        output_name = self._match(outputs)
        if output_name is None:
            raise RuntimeError(
                f"No MIDI output port starts with {self.port_prefix!r}. Available outputs: {outputs}"
            )
        self._out = m.open_output(output_name)

        if self.input_enabled:
            input_name = self._match(m.get_input_names())
            if input_name is not None:
                self._in = m.open_input(input_name)

        return output_name

    def close(self) -> None:
        for port in (self._in, self._out):
            if port is not None:
                port.close()
        self._in = None
        self._out = None

    def send_sysex(self, data: Sequence[int] | bytes | bytearray) -> None:
        if self._out is None:
            raise RuntimeError("MIDI output not connected. Call connect() first.")

        body = self._to_int_list(data)
        if body and body[0] == 0xF0:
            body = body[1:]
        if body and body[-1] == 0xF7:
            body = body[:-1]

        self._out.send(mido.Message("sysex", data=body))

    def receive_pending(self) -> list[mido.Message]:
        if self._in is None:
            return []
        return list(self._in.iter_pending())

    @staticmethod
    def _to_int_list(data: Sequence[int] | bytes | bytearray) -> list[int]:
        if isinstance(data, (bytes, bytearray)):
            return list(data)

        out: list[int] = []
        for b in data:
            if not isinstance(b, int):
                raise TypeError(f"SysEx data items must be ints; got {type(b)}")
            if not 0 <= b <= 255:
                raise ValueError(f"SysEx byte out of range (0-255): {b}")
            out.append(b)
        return out
