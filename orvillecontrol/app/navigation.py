from __future__ import annotations

from enum import Enum

from orvillecontrol.app.events import SessionEvents
from orvillecontrol.app.state import ArrivalReason, Breadcrumb, NavigationState
from orvillecontrol.app.value_sync import ValueSync
from orvillecontrol.domain.keys import is_slot_key, is_slot_root, toggle_slot
from orvillecontrol.domain.objects import MenuDump, MenuObject, ParameterObject
from orvillecontrol.errors import StaleResponseWarning
from orvillecontrol.logging_setup import CategoryLog
from orvillecontrol.protocol.codes import OrvilleMenuKeys


class DumpOutcome(Enum):
    APPLIED = "applied"
    AUTO_DESCENDED = "auto_descended"
    EMBEDDED_CHILD = "embedded_child"
    STALE = "stale"


class NavigationEngine:
    """Owns "where we are" in the menu tree.

    Navigation events (descend, ascend, slot switch, sibling/jump) change
    `current_key` and request a fresh dump. Inbound dumps only touch live
    state when their main key is the current key; anything else is cached
    for inline embedding and otherwise ignored.
    """

    def __init__(
        self,
        state: NavigationState,
        value_sync: ValueSync,
        events: SessionEvents,
        *,
        log: CategoryLog | None = None,
    ) -> None:
        self.state = state
        self._values = value_sync
        self._events = events
        self._log = log or CategoryLog()

    # -- navigation events ------------------------------------------------

    def navigate_to(self, key: str) -> None:
        """Go to `key`: a sibling softkey moves sideways, anything else descends."""

        if key == self.state.current_key:
            self.refresh()
            return

        parent = self.state.parent
        if parent is not None and parent.has_submenu(key):
            self._log.info("navigation", "Sibling softkey %s", key)
            self._arrive(key, ArrivalReason.SIBLING)
            return

        self.descend(key)

    def descend(self, key: str) -> None:
        self._push_current()
        self._log.info("navigation", "Descend %s -> %s", self.state.key_stack[-1].key, key)
        self._arrive(key, ArrivalReason.DESCEND)

    def go_back(self, to_key: str | None = None) -> bool:
        """Pop the breadcrumb stack (down to `to_key` when given)."""

        stack = self.state.key_stack
        if not stack:
            return False

        if to_key is not None:
            if all(frame.key != to_key for frame in stack):
                self._log.warning("navigation", "Back target %s not in breadcrumbs", to_key)
                return False
            while stack[-1].key != to_key:
                stack.pop()

        frame = stack.pop()
        self._log.info("navigation", "Back to %s", frame.key)
        self._arrive(frame.key, ArrivalReason.ASCEND)
        return True

    def switch_slot(self, target: str | None = None) -> None:
        """Enter the other DSP slot (or `target`, a slot root key)."""

        state = self.state
        target = target or toggle_slot(state.preset_key)
        if not is_slot_root(target):
            raise ValueError(f"{target!r} is not a DSP slot root")

        state.preset_key = target
        if not is_slot_key(state.current_key):
            self._push_current()

        self._log.info("navigation", "Switch to slot %s", target)
        self._arrive(target, ArrivalReason.SLOT_SWITCH)
        state.pending_auto_descend = True

    def jump_to(self, key: str) -> None:
        """Go to an arbitrary key, dropping the breadcrumbs."""

        self.state.key_stack.clear()
        self._log.info("navigation", "Jump to %s", key)
        self._arrive(key, ArrivalReason.JUMP)

    def refresh(self) -> None:
        self._values.request_menu(self.state.current_key)

    def _push_current(self) -> None:
        state = self.state
        dump = state.current_dump
        if dump is not None and dump.key == state.current_key:
            frame = Breadcrumb(key=state.current_key, tag=dump.main.caption, siblings=dump.children)
        else:
            frame = Breadcrumb(key=state.current_key, tag=state.current_key)
        state.key_stack.append(frame)

    def _arrive(self, key: str, reason: ArrivalReason) -> None:
        state = self.state
        state.current_key = key
        state.current_dump = None
        state.arrival += 1
        state.arrival_reason = reason
        state.pending_auto_descend = False
        state.clear_menu_caches()

        self._values.suspend_polling()
        self._values.cancel_menu_refreshes()
        self._values.request_menu(key)

    # -- inbound ----------------------------------------------------------

    def apply_dump(self, dump: MenuDump) -> DumpOutcome:
        state = self.state
        self._note_slot_names(dump)

        if dump.key != state.current_key:
            state.child_object_cache[dump.key] = dump
            candidate = self.embed_candidate()
            if candidate is not None and candidate.key == dump.key:
                self._log.debug("parsed_dump", "Embedded child %s cached", dump.key)
                self._values.request_missing(dump.parameters)
                self._refresh_meters()
                if state.current_dump is not None:
                    self._events.menu_updated.emit(state.current_dump)
                return DumpOutcome.EMBEDDED_CHILD

            warning = StaleResponseWarning(dump.key, state.current_key)
            self._log.debug("parsed_dump", "%s", warning)
            self._events.warning.emit(warning)
            return DumpOutcome.STALE

        first_for_arrival = state.auto_descend_checked_arrival != state.arrival
        state.auto_descend_checked_arrival = state.arrival
        state.current_dump = dump
        if is_slot_root(dump.key):
            state.preset_key = dump.key

        if first_for_arrival:
            target = self._auto_descend_target(dump)
            state.pending_auto_descend = False
            if target is not None:
                self._log.info("navigation", "Auto-descend %s -> %s (%s)", dump.key, target.key, target.tag)
                self._push_current()
                self._arrive(target.key, ArrivalReason.AUTO_DESCEND)
                return DumpOutcome.AUTO_DESCENDED

        candidate = self.embed_candidate()
        if candidate is not None and candidate.key not in state.child_object_cache:
            self._values.request_menu(candidate.key)

        self._values.request_missing(self.visible_objects())
        self._refresh_meters()
        self._events.menu_updated.emit(dump)
        return DumpOutcome.APPLIED

    def _auto_descend_target(self, dump: MenuDump) -> MenuObject | None:
        state = self.state
        if dump.has_parameters:
            return None
        if dump.key == OrvilleMenuKeys.ROOT:
            return None
        if state.arrival_reason is ArrivalReason.ASCEND:
            return None

        softkeys = dump.softkeys
        targets = softkeys or dump.submenus
        if not targets:
            return None

        if state.pending_auto_descend:
            return targets[0]
        if is_slot_root(dump.key) and len(softkeys) == 1:
            return softkeys[0]
        return None

    def _note_slot_names(self, dump: MenuDump) -> None:
        names = self.state.slot_names
        if dump.key == OrvilleMenuKeys.ROOT:
            for child in dump.submenus:
                if is_slot_root(child.key):
                    names[child.key] = child.label or child.tag
        elif is_slot_root(dump.key):
            names[dump.key] = dump.main.label or dump.main.tag

    def _refresh_meters(self) -> None:
        meters = [o.key for o in self.visible_objects() if o.kind == "CON"]
        self._values.set_meter_keys(meters)

    # -- views ------------------------------------------------------------

    def embed_candidate(self) -> MenuObject | None:
        """The single COL child of a wrapper menu, shown inline instead of as a softkey."""

        dump = self.state.current_dump
        if dump is None:
            return None
        own = [m for m in dump.submenus if m.parent_key == self.state.current_key]
        return own[0] if len(own) == 1 else None

    def embedded_dump(self) -> MenuDump | None:
        candidate = self.embed_candidate()
        if candidate is None:
            return None
        return self.state.child_object_cache.get(candidate.key)

    def visible_objects(self) -> tuple[ParameterObject, ...]:
        dump = self.state.current_dump
        if dump is None:
            return ()
        embedded = self.embedded_dump()
        if embedded is None:
            return dump.children
        return dump.children + embedded.parameters

    def find_object(self, key: str) -> ParameterObject | None:
        for obj in self.visible_objects():
            if obj.key == key:
                return obj
        for dump in self.state.child_object_cache.values():
            found = dump.find(key)
            if found is not None:
                return found
        return None
