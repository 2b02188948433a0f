from __future__ import annotations

from orvillecontrol.protocol.codes import OrvilleMenuKeys


# Leading digit of a key selects the DSP slot subtree.
SLOT_A_PREFIX = "4"
SLOT_B_PREFIX = "8"

SLOT_ROOT_SUFFIX = "000b"


def slot_of(key: str) -> str | None:
    """Return "A" or "B" for keys inside a slot subtree, else None."""

    if key.startswith(SLOT_A_PREFIX):
        return "A"
    if key.startswith(SLOT_B_PREFIX):
        return "B"
    return None


def is_slot_key(key: str) -> bool:
    return slot_of(key) is not None


def is_slot_root(key: str) -> bool:
    return is_slot_key(key) and key.endswith(SLOT_ROOT_SUFFIX)


def toggle_slot(key: str) -> str:
    """Map a key to the same menu in the other slot (4xxx <-> 8xxx)."""

    if key.startswith(SLOT_A_PREFIX):
        return SLOT_B_PREFIX + key[1:]
    if key.startswith(SLOT_B_PREFIX):
        return SLOT_A_PREFIX + key[1:]
    raise ValueError(f"Key {key!r} is not inside a DSP slot subtree")


def slot_root(slot: str) -> str:
    slot = slot.strip().upper()
    if slot == "A":
        return OrvilleMenuKeys.DSP_A
    if slot == "B":
        return OrvilleMenuKeys.DSP_B
    raise ValueError("slot must be 'A' or 'B'")


def load_trigger_for(preset_key: str) -> str:
    """The TRG key that loads the selected program into the given slot."""

    return OrvilleMenuKeys.LOAD_A if slot_of(preset_key) == "A" else OrvilleMenuKeys.LOAD_B
