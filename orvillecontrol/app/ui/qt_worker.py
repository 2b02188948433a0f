from __future__ import annotations

import logging
from collections.abc import Callable

from PySide6 import QtCore

from orvillecontrol.app.config import AppConfig
from orvillecontrol.app.session import OrvilleSession
from orvillecontrol.errors import OrvilleError
from orvillecontrol.protocol.sysex import parse_hex_command
from orvillecontrol.transport.midi_transport import MidiTransport
from midi import OrvilleMidi


logger = logging.getLogger(__name__)


class _QtTimerHandle:
    def __init__(self, timer: QtCore.QTimer) -> None:
        self._timer = timer
        self.active = True

    def cancel(self) -> None:
        if not self.active:
            return
        self.active = False
        self._timer.stop()
        self._timer.deleteLater()


class QtScheduler:
    """`Scheduler` backed by single-shot QTimers on the owner's thread."""

    def __init__(self, parent: QtCore.QObject | None = None) -> None:
        self._parent = parent

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> _QtTimerHandle:
        timer = QtCore.QTimer(self._parent)
        timer.setSingleShot(True)
        handle = _QtTimerHandle(timer)

        def _fire() -> None:
            if not handle.active:
                return
            handle.active = False
            try:
                callback()
            except Exception:
                logger.exception("Scheduled callback failed")
            finally:
                timer.deleteLater()

        timer.timeout.connect(_fire)
        timer.start(max(0, int(round(delay_s * 1000))))
        return handle


def _default_transport(port_prefix: str) -> MidiTransport:
    return MidiTransport(OrvilleMidi(port_prefix=port_prefix))


class OrvilleDeviceWorker(QtCore.QObject):
    """Owns the MIDI connection and the session; lives on one Qt thread.

    Inbound MIDI is drained by a QTimer rather than a reader thread so every
    session callback runs on this object's thread.
    """

    state_changed = QtCore.Signal(object)
    bitmap_changed = QtCore.Signal(object)
    value_changed = QtCore.Signal(str, str)
    status_changed = QtCore.Signal(str)
    error_occurred = QtCore.Signal(str)

    def __init__(
        self,
        *,
        config: AppConfig | None = None,
        transport_factory: Callable[[str], MidiTransport] = _default_transport,
        rx_interval_ms: int = 5,
    ) -> None:
        super().__init__()
        self._logger = logging.getLogger(self.__class__.__name__)

        self._config = config or AppConfig.default()
        self._transport_factory = transport_factory
        self._transport: MidiTransport | None = None

        self.session = OrvilleSession(
            self._send,
            config=self._config,
            scheduler=QtScheduler(self),
        )
        events = self.session.events
        events.menu_updated.connect(lambda _dump: self._mark_dirty())
        events.value_updated.connect(self._on_value_updated)
        events.bitmap_updated.connect(self._on_bitmap_updated)
        events.protocol_error.connect(self._on_protocol_error)
        events.warning.connect(lambda w: self._logger.debug("Session warning: %s", w))
        self._dirty = False

        self._rx_timer = QtCore.QTimer(self)
        self._rx_timer.setInterval(rx_interval_ms)
        self._rx_timer.timeout.connect(self._poll_rx)

    @property
    def connected(self) -> bool:
        return self._transport is not None

    @QtCore.Slot()
    def connect_device(self) -> None:
        if self._transport is None:
            self._connect()
        if self._transport is None:
            return
        self.session.start()

    @QtCore.Slot(str)
    def navigate_to(self, key: str) -> None:
        self.session.navigate_to(key)
        self._emit_state()

    @QtCore.Slot()
    def go_back(self) -> None:
        if self.session.go_back():
            self._emit_state()

    @QtCore.Slot()
    def switch_slot(self) -> None:
        self.session.switch_slot()
        self._emit_state()

    @QtCore.Slot(str, str)
    def set_value(self, key: str, value: str) -> None:
        if not self.session.set_value(key, value):
            self.status_changed.emit(f"Rejected {value!r} for {key}")

    @QtCore.Slot(str, int)
    def select_option(self, key: str, index: int) -> None:
        self.session.select_option(key, index)

    @QtCore.Slot(str)
    def press_key(self, name: str) -> None:
        try:
            self.session.press_key(name)
        except ValueError as exc:
            self._logger.warning("%s", exc)
            self.error_occurred.emit(str(exc))

    @QtCore.Slot()
    def request_bitmap(self) -> None:
        self.session.request_bitmap()

    @QtCore.Slot(str)
    def send_hex(self, text: str) -> None:
        try:
            command, payload = parse_hex_command(text)
            self.session.send_raw(command, payload)
        except ValueError as exc:
            self._logger.warning("%s", exc)
            self.error_occurred.emit(str(exc))

    @QtCore.Slot(bool)
    def set_meter_polling(self, enabled: bool) -> None:
        self.session.set_meter_polling(enabled)

    @QtCore.Slot()
    def shutdown(self) -> None:
        self._rx_timer.stop()
        self.session.close()

        if self._transport is not None:
            try:
                self._transport.close()
            except Exception:
                self._logger.exception("Error while closing transport")
        self._transport = None
        self.status_changed.emit("Disconnected")

    def _connect(self) -> None:
        prefix = self._config.device.port_prefix
        self.status_changed.emit("Connecting…")
        try:
            transport = self._transport_factory(prefix)
            info = transport.connect()
        except Exception as exc:
            self._logger.exception("Failed to connect")
            self._transport = None
            self.status_changed.emit(f"Connect failed: {exc}")
            return

        self._transport = transport
        self._rx_timer.start()
        self.status_changed.emit(f"Connected to {info.output_name}")

    def _send(self, data: bytes) -> None:
        if self._transport is None:
            self._logger.warning("Not connected; dropping %d-byte SysEx", len(data))
            return
        self._transport.send_sysex(data)

    @QtCore.Slot()
    def _poll_rx(self) -> None:
        transport = self._transport
        if transport is None:
            return

        try:
            messages = transport.receive_pending()
        except Exception:
            self._logger.exception("MIDI receive failed")
            return

        for msg in messages:
            self.session.handle_message(msg)

        if self._dirty:
            self._emit_state()

    def _mark_dirty(self) -> None:
        self._dirty = True

    def _emit_state(self) -> None:
        self._dirty = False
        self.state_changed.emit(self.session.current_state())

    def _on_value_updated(self, key: str, value: str) -> None:
        self._dirty = True
        self.value_changed.emit(key, value)

    def _on_bitmap_updated(self, bitmap: object) -> None:
        self._dirty = True
        self.bitmap_changed.emit(bitmap)

    def _on_protocol_error(self, error: OrvilleError) -> None:
        self.error_occurred.emit(str(error))
