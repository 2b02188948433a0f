from __future__ import annotations

import math
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum

from orvillecontrol.app.device_backend import OrvilleBackend
from orvillecontrol.app.events import SessionEvents
from orvillecontrol.app.scheduling import DeferredTasks
from orvillecontrol.app.state import NavigationState
from orvillecontrol.domain.objects import NumericObject, ParameterObject, SetObject
from orvillecontrol.errors import FormatError, ValueMismatchWarning
from orvillecontrol.logging_setup import CategoryLog


CONFIRM = "confirm"
REFRESH_MENU = "refresh_menu"
POLL = "poll"

_METER_TASK = ("meters", POLL)


class MismatchPolicy(str, Enum):
    """What to show when the device confirms a different value than we wrote."""

    ADOPT_DEVICE = "adopt_device"
    KEEP_OPTIMISTIC = "keep_optimistic"


@dataclass(frozen=True)
class ValueDump:
    key: str
    value: str


def parse_value_dump(text: str) -> ValueDump:
    """VALUE_DUMP payload: "<key> <value text...>"."""

    parts = text.strip().split(None, 1)
    if not parts:
        raise FormatError("Empty VALUE_DUMP payload")
    value = parts[1].strip() if len(parts) > 1 else ""
    return ValueDump(key=parts[0], value=value)


def values_match(expected: str, confirmed: str, obj: ParameterObject | None = None) -> bool:
    """Compare an optimistic value with the device's, in canonical form."""

    if isinstance(obj, SetObject):
        return obj.selected_index(expected) == obj.selected_index(confirmed)

    if isinstance(obj, NumericObject):
        try:
            a = float(expected)
            b = float(confirmed)
        except ValueError:
            return expected.strip() == confirmed.strip()
        step = obj.step_value or 0.0
        return math.isclose(a, b, rel_tol=1e-9, abs_tol=max(step / 2.0, 1e-6))

    return expected.strip() == confirmed.strip()


@dataclass
class _PendingWrite:
    value: str
    obj: ParameterObject | None
    confirm_requested: bool = False


class ValueSync:
    """Value read/write round trip and meter polling.

    Writes are optimistic: the cache shows the new value at once, then after
    `settle_delay_s` the menu and the value are re-requested and the device's
    answer is reconciled against what we wrote.
    """

    def __init__(
        self,
        state: NavigationState,
        backend: OrvilleBackend,
        tasks: DeferredTasks,
        events: SessionEvents,
        *,
        settle_delay_s: float = 0.2,
        poll_interval_s: float = 0.1,
        mismatch_policy: MismatchPolicy = MismatchPolicy.ADOPT_DEVICE,
        after_settle: Callable[[str], None] | None = None,
        log: CategoryLog | None = None,
    ) -> None:
        self.state = state
        self._backend = backend
        self._tasks = tasks
        self._events = events
        self.settle_delay_s = settle_delay_s
        self.poll_interval_s = poll_interval_s
        self.mismatch_policy = mismatch_policy
        self._after_settle = after_settle
        self._log = log or CategoryLog()

        self._pending: dict[str, _PendingWrite] = {}
        self._meter_keys: tuple[str, ...] = ()

    # -- requests ---------------------------------------------------------

    def request_value(self, key: str) -> None:
        self._backend.request_value(key)

    def request_menu(self, key: str) -> None:
        self._backend.request_menu(key)

    def request_missing(self, objects: Iterable[ParameterObject]) -> int:
        """Ask for the value of every parameter we have no cached value for."""

        count = 0
        for obj in objects:
            if not obj.is_parameter or obj.kind == "TRG":
                continue
            if obj.key in self.state.cached_values:
                continue
            self._backend.request_value(obj.key)
            count += 1
        return count

    # -- writes -----------------------------------------------------------

    def put_value(
        self,
        key: str,
        value_text: str,
        *,
        obj: ParameterObject | None = None,
        optimistic: str | None = None,
    ) -> None:
        """Send a write and show `optimistic` (default: `value_text`) immediately."""

        shown = value_text if optimistic is None else optimistic

        self._backend.put_value(key, value_text)
        self.state.cached_values[key] = shown
        self._pending[key] = _PendingWrite(value=shown, obj=obj)
        self._events.value_updated.emit(key, shown)

        menu_key = self.state.current_key
        self._tasks.schedule((key, CONFIRM), self.settle_delay_s, lambda: self._confirm(key))
        self._tasks.schedule((menu_key, REFRESH_MENU), self.settle_delay_s, lambda: self._refresh_menu(menu_key))

    def pending_writes(self) -> tuple[str, ...]:
        return tuple(self._pending)

    def _confirm(self, key: str) -> None:
        pending = self._pending.get(key)
        if pending is not None:
            pending.confirm_requested = True
        self._backend.request_value(key)
        if self._after_settle is not None:
            self._after_settle(key)

    def _refresh_menu(self, menu_key: str) -> None:
        # Dependent captions (e.g. preset names after a load) may have changed.
        self._backend.request_menu(menu_key)

    def cancel_menu_refreshes(self) -> None:
        self._tasks.cancel_operation(REFRESH_MENU)

    # -- inbound ----------------------------------------------------------

    def handle_value_dump(self, text: str) -> ValueDump | None:
        """Apply a VALUE_DUMP. Returns None when the dump was held back."""

        dump = parse_value_dump(text)
        pending = self._pending.get(dump.key)

        if pending is not None and not pending.confirm_requested:
            # Answer to a read sent before our write; showing it would undo the optimistic value.
            self._log.debug("value_change", "Holding back pre-write value for %s: %s", dump.key, dump.value)
            return None

        if pending is not None:
            del self._pending[dump.key]
            if not values_match(pending.value, dump.value, pending.obj):
                warning = ValueMismatchWarning(dump.key, pending.value, dump.value)
                self._log.warning("value_change", "%s", warning)
                self._events.warning.emit(warning)
                if self.mismatch_policy is MismatchPolicy.KEEP_OPTIMISTIC:
                    return dump
            else:
                self._log.debug("value_change", "Confirmed %s = %s", dump.key, dump.value)

        previous = self.state.cached_values.get(dump.key)
        self.state.cached_values[dump.key] = dump.value
        if previous != dump.value:
            self._log.debug("value_change", "VALUE_DUMP %s: %r -> %r", dump.key, previous, dump.value)
        self._events.value_updated.emit(dump.key, dump.value)
        return dump

    # -- meter polling ----------------------------------------------------

    @property
    def meter_keys(self) -> tuple[str, ...]:
        return self._meter_keys

    @property
    def polling_active(self) -> bool:
        return self._tasks.is_pending(_METER_TASK)

    def set_polling_enabled(self, enabled: bool) -> None:
        self.state.meter_polling = enabled
        self._log.info("general", "Meter polling %s", "enabled" if enabled else "disabled")
        if enabled:
            self._schedule_poll()
        else:
            self._tasks.cancel(_METER_TASK)

    def suspend_polling(self) -> None:
        """Stop polling right away; the visible meters are about to change."""

        self._meter_keys = ()
        self._tasks.cancel(_METER_TASK)

    def set_meter_keys(self, keys: Iterable[str]) -> None:
        self._meter_keys = tuple(keys)
        if self.state.meter_polling:
            self._schedule_poll()

    def _schedule_poll(self) -> None:
        if not self._meter_keys:
            self._tasks.cancel(_METER_TASK)
            return
        self._tasks.schedule(_METER_TASK, self.poll_interval_s, self._poll_tick)

    def _poll_tick(self) -> None:
        for key in self._meter_keys:
            self._backend.request_value(key)
        if self.state.meter_polling:
            self._schedule_poll()
