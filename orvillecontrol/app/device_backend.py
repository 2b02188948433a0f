from __future__ import annotations

from collections.abc import Callable

from orvillecontrol.logging_setup import CategoryLog
from orvillecontrol.protocol.codes import OrvilleSysexCodes
from orvillecontrol.protocol.keypad import keypress_payload


class OrvilleBackend:
    """Request emission for common device operations.

    Everything here is fire-and-forget: responses come back through the
    inbound path and are matched by key and command byte only.
    """

    def __init__(
        self,
        *,
        send_eventide: Callable[[int, bytes], None],
        log: CategoryLog | None = None,
    ) -> None:
        self._send_eventide = send_eventide
        self._log = log or CategoryLog()

    def request_menu(self, key: str) -> None:
        self._log.debug("sysex_sent", "OBJECTINFO_WANT key=%s", key)
        self._send_eventide(OrvilleSysexCodes.SYSEXC_OBJECTINFO_WANT, key.encode("ascii"))

    def request_value(self, key: str) -> None:
        self._log.debug("sysex_sent", "VALUE_WANT key=%s", key)
        self._send_eventide(OrvilleSysexCodes.SYSEXC_VALUE_PUT, key.encode("ascii"))

    def put_value(self, key: str, value: str) -> None:
        # Same command as the read; the trailing " <value>" makes it a write.
        payload = bytearray()
        payload.extend(key.encode("ascii"))
        payload.append(0x20)
        payload.extend(value.encode("ascii"))

        self._log.info("value_change", "VALUE_PUT key=%s value=%s", key, value)
        self._send_eventide(OrvilleSysexCodes.SYSEXC_VALUE_PUT, bytes(payload))

    def request_screen(self) -> None:
        self._log.debug("sysex_sent", "SCREEN_WANT")
        self._send_eventide(OrvilleSysexCodes.SYSEXC_SCREEN_WANT, b"")

    def press_key(self, name: str) -> None:
        payload = keypress_payload(name)
        self._log.info("sysex_sent", "KEYPRESS %s", name)
        self._send_eventide(OrvilleSysexCodes.SYSEXC_KEYPRESS, payload)

    def send_raw(self, command: int, payload: bytes = b"") -> None:
        self._log.info("sysex_sent", "RAW command=%02X payload=%s", command, payload.hex(" ").upper())
        self._send_eventide(command, bytes(payload))
