from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from orvillecontrol.domain.bitmap import Bitmap
from orvillecontrol.domain.objects import MenuDump, ParameterObject
from orvillecontrol.protocol.codes import OrvilleMenuKeys


class ArrivalReason(Enum):
    START = "start"
    DESCEND = "descend"
    SIBLING = "sibling"
    ASCEND = "ascend"
    SLOT_SWITCH = "slot_switch"
    AUTO_DESCEND = "auto_descend"
    JUMP = "jump"


@dataclass(frozen=True)
class Breadcrumb:
    key: str
    tag: str
    siblings: tuple[ParameterObject, ...] = ()

    def has_submenu(self, key: str) -> bool:
        return any(s.key == key and s.is_menu for s in self.siblings)


@dataclass
class NavigationState:
    """Session-wide navigation state. Only the navigation engine and value sync mutate it."""

    current_key: str = OrvilleMenuKeys.ROOT
    preset_key: str = OrvilleMenuKeys.DSP_A
    key_stack: list[Breadcrumb] = field(default_factory=list)
    cached_values: dict[str, str] = field(default_factory=dict)
    child_object_cache: dict[str, MenuDump] = field(default_factory=dict)
    pending_auto_descend: bool = False

    current_dump: MenuDump | None = None
    slot_names: dict[str, str] = field(default_factory=dict)

    # Bumped on every navigation event; auto-descend is considered once per arrival.
    arrival: int = 0
    arrival_reason: ArrivalReason = ArrivalReason.START
    auto_descend_checked_arrival: int | None = None

    meter_polling: bool = False

    @property
    def depth(self) -> int:
        return len(self.key_stack)

    @property
    def parent(self) -> Breadcrumb | None:
        return self.key_stack[-1] if self.key_stack else None

    def clear_menu_caches(self) -> None:
        self.cached_values.clear()
        self.child_object_cache.clear()


@dataclass(frozen=True)
class SessionSnapshot:
    """Immutable copy of the session state handed to renderers."""

    current_key: str
    preset_key: str
    breadcrumbs: tuple[Breadcrumb, ...]
    values: dict[str, str]
    current_dump: MenuDump | None
    visible: tuple[ParameterObject, ...]
    slot_names: dict[str, str]
    meter_polling: bool
    bitmap: Bitmap | None = None
    device_id: int | None = None

    @property
    def title(self) -> str:
        if self.current_dump is None:
            return ""
        main = self.current_dump.main
        return main.label or main.tag or "Menu"

    def slot_name(self, slot_key: str) -> str:
        return self.slot_names.get(slot_key, "")
