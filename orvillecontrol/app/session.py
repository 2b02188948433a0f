from __future__ import annotations

from collections.abc import Callable, Sequence

import mido

from orvillecontrol.app.config import AppConfig
from orvillecontrol.app.device_backend import OrvilleBackend
from orvillecontrol.app.events import SessionEvents
from orvillecontrol.app.navigation import DumpOutcome, NavigationEngine
from orvillecontrol.app.scheduling import DeferredTasks, LoopScheduler, Scheduler
from orvillecontrol.app.state import NavigationState, SessionSnapshot
from orvillecontrol.app.value_sync import REFRESH_MENU, MismatchPolicy, ValueSync
from orvillecontrol.domain.bitmap import Bitmap, BitmapDecoder
from orvillecontrol.domain.keys import toggle_slot
from orvillecontrol.domain.objects import MenuDump, NumericObject, SetObject, TriggerObject
from orvillecontrol.errors import FormatError, OrvilleError, ProtocolError
from orvillecontrol.logging_setup import CategoryLog, LogSink
from orvillecontrol.protocol.codes import OrvilleMenuKeys, OrvilleSysexCodes, command_name
from orvillecontrol.protocol.sysex import SysexCodec, SysexFrame, format_sysex_bytes


_LOAD_TRIGGERS = frozenset({OrvilleMenuKeys.LOAD_A, OrvilleMenuKeys.LOAD_B})
_ROOT_REFRESH_TASK = (OrvilleMenuKeys.ROOT, "refresh_root")
_SCREEN_TASK = ("screen", "refresh_screen")


class OrvilleSession:
    """Everything between the MIDI port and a renderer.

    Outbound: the session turns operations into SysEx frames and hands them
    to `send` (unframed, mido adds F0/F7). Inbound: the transport feeds every
    received message to `handle_message`. Timers come from `scheduler`; all
    of it runs on one thread.
    """

    def __init__(
        self,
        send: Callable[[bytes], None],
        *,
        config: AppConfig | None = None,
        scheduler: Scheduler | None = None,
        log_sink: LogSink | None = None,
        state: NavigationState | None = None,
    ) -> None:
        self.config = config or AppConfig.default()
        self._send = send
        self._log = CategoryLog(log_sink)

        self.state = state or NavigationState(preset_key=self.config.device.preset_key)
        self.codec = SysexCodec(self.config.device.device_id)
        self.events = SessionEvents()
        self.scheduler = scheduler or LoopScheduler()
        self.tasks = DeferredTasks(self.scheduler)

        self.backend = OrvilleBackend(send_eventide=self._send_eventide, log=self._log)
        self.values = ValueSync(
            self.state,
            self.backend,
            self.tasks,
            self.events,
            settle_delay_s=self.config.timing.settle_delay_s,
            poll_interval_s=self.config.timing.poll_interval_s,
            mismatch_policy=MismatchPolicy(self.config.mismatch_policy),
            after_settle=self._after_settle,
            log=self._log,
        )
        self.navigation = NavigationEngine(self.state, self.values, self.events, log=self._log)
        self.decoder = BitmapDecoder(self.config.bitmap.calibration())
        self.bitmap: Bitmap | None = None

    # -- outbound ---------------------------------------------------------

    def _send_eventide(self, command: int, payload: bytes) -> None:
        data = self.codec.encode(command, payload)
        self._log.debug("sysex_sent", "TX %s: %s", command_name(command), format_sysex_bytes(data))
        self._send(data)

    def start(self) -> None:
        """Sync to the root menu, then enter the configured slot."""

        preset_key = self.state.preset_key
        self._log.info("general", "Starting session (preset slot %s)", preset_key)
        self.navigation.jump_to(OrvilleMenuKeys.ROOT)
        self.navigation.switch_slot(preset_key)

        # The other slot's dump only feeds the A/B tab names.
        self.values.request_menu(toggle_slot(preset_key))

        if self.config.bitmap.fetch_on_connect:
            self.request_bitmap()

    def current_state(self) -> SessionSnapshot:
        state = self.state
        return SessionSnapshot(
            current_key=state.current_key,
            preset_key=state.preset_key,
            breadcrumbs=tuple(state.key_stack),
            values=dict(state.cached_values),
            current_dump=state.current_dump,
            visible=self.navigation.visible_objects(),
            slot_names=dict(state.slot_names),
            meter_polling=state.meter_polling,
            bitmap=self.bitmap,
            device_id=self.codec.device_id,
        )

    def navigate_to(self, key: str) -> None:
        self.navigation.navigate_to(key)

    def jump_to(self, key: str) -> None:
        self.navigation.jump_to(key)

    def go_back(self, to_key: str | None = None) -> bool:
        return self.navigation.go_back(to_key)

    def switch_slot(self, target: str | None = None) -> None:
        self.navigation.switch_slot(target)

    def refresh(self) -> None:
        self.navigation.refresh()

    def set_value(self, key: str, value_text: str) -> bool:
        """Write a parameter. Returns False when the value was rejected locally."""

        obj = self.navigation.find_object(key)
        value_text = value_text.strip()

        if isinstance(obj, NumericObject) and not obj.accepts(value_text):
            self._log.warning(
                "value_change",
                "Rejected %s = %r (range %s..%s)",
                key,
                value_text,
                obj.minimum or "-",
                obj.maximum or "-",
            )
            return False

        if isinstance(obj, SetObject):
            index = obj.codec.decode(value_text.partition(" ")[0])
            if index is not None and obj.option_for(index) is not None:
                return self.select_option(key, index)

        if isinstance(obj, TriggerObject) or key in _LOAD_TRIGGERS:
            value_text = value_text or "1"

        self.values.put_value(key, value_text, obj=obj)

        if key in _LOAD_TRIGGERS:
            # A program load renames the slot shown on the A/B tabs.
            self.tasks.schedule(
                _ROOT_REFRESH_TASK,
                self.config.timing.load_refresh_s,
                lambda: self.values.request_menu(OrvilleMenuKeys.ROOT),
            )
        return True

    def trigger(self, key: str) -> bool:
        return self.set_value(key, "1")

    def select_option(self, key: str, index: int) -> bool:
        obj = self.navigation.find_object(key)
        if not isinstance(obj, SetObject):
            self._log.warning("value_change", "Key %s is not a SET parameter", key)
            return False
        if obj.option_for(index) is None:
            self._log.warning("value_change", "Key %s has no option %d", key, index)
            return False

        self.values.put_value(key, obj.encode_index(index), obj=obj, optimistic=obj.value_for_index(index))
        return True

    def request_bitmap(self) -> None:
        self.backend.request_screen()

    def send_raw(self, command: int, payload: bytes = b"") -> None:
        """Frame and send an arbitrary command; replies go through `handle_message` as usual."""

        self.backend.send_raw(command, payload)

    def press_key(self, name: str) -> None:
        """Send a front-panel key; the menu is re-read once the unit has reacted."""

        self.backend.press_key(name)
        menu_key = self.state.current_key
        self.tasks.schedule(
            (menu_key, REFRESH_MENU),
            self.config.timing.keypress_refresh_s,
            self._after_keypress,
        )

    def set_meter_polling(self, enabled: bool) -> None:
        self.values.set_polling_enabled(enabled)

    def close(self) -> None:
        self.tasks.cancel_all()

    def _after_keypress(self) -> None:
        self.navigation.refresh()
        if self.config.bitmap.update_on_change:
            self.request_bitmap()

    def _after_settle(self, key: str) -> None:
        if self.config.bitmap.update_on_change:
            self.tasks.schedule(_SCREEN_TASK, 0.0, self.request_bitmap)

    # -- inbound ----------------------------------------------------------

    def handle_message(self, data: mido.Message | bytes | bytearray | Sequence[int]) -> SysexFrame | None:
        """Route one inbound SysEx message. Never raises for bad device data."""

        frame = self.codec.decode(data)
        if frame is None:
            return None

        self._log.debug(
            "sysex_received",
            "RX %s (%d bytes payload)",
            command_name(frame.command),
            len(frame.payload),
        )

        try:
            self._dispatch(frame)
        except (FormatError, ProtocolError) as e:
            self._report(e)
        return frame

    def _dispatch(self, frame: SysexFrame) -> None:
        command = frame.command

        if command == OrvilleSysexCodes.SYSEXC_OBJECTINFO_DUMP:
            dump = MenuDump.from_text(frame.text)
            self._log.debug("parsed_dump", "Dump %s: %d children", dump.key, len(dump.children))
            outcome = self.navigation.apply_dump(dump)
            if outcome is DumpOutcome.STALE:
                self._log.debug("navigation", "Cached late dump %s", dump.key)
        elif command == OrvilleSysexCodes.SYSEXC_VALUE_DUMP:
            self.values.handle_value_dump(frame.text)
        elif command == OrvilleSysexCodes.SYSEXC_SCREEN_DUMP:
            self._on_screen_dump(frame.payload)
        elif command == OrvilleSysexCodes.SYSEXC_ERROR:
            text = frame.text
            raise ProtocolError(f"Device reported an error: {text or '(no text)'}", device_text=text)
        else:
            self._log.debug("sysex_received", "Unhandled command %s", command_name(command))

    def _on_screen_dump(self, payload: bytes) -> None:
        self._log.debug("screen_dump", "SCREEN_DUMP %d nibbles", len(payload))
        bitmap = self.decoder.decode(payload)
        self.bitmap = bitmap
        self._log.debug("bitmap", "Bitmap updated, %d lit pixels", bitmap.lit_count())
        self.events.bitmap_updated.emit(bitmap)

    def _report(self, error: OrvilleError) -> None:
        self._log.error("error", "%s", error)
        self.events.protocol_error.emit(error)
