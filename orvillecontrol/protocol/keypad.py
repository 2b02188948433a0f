from __future__ import annotations

from orvillecontrol.protocol.sysex import nibble


# Front-panel key masks (active low). Sent nibbled as SYSEXC_KEYPRESS.
KEYPRESS_MASKS: dict[str, tuple[int, int, int, int]] = {
    "up": (0xFE, 0xFF, 0xFD, 0xFF),
    "down": (0xFF, 0xFE, 0xFD, 0xFF),
    "left": (0xFF, 0xFE, 0xFF, 0xFF),
    "right": (0xFE, 0xFF, 0xFF, 0xFF),
    "enter": (0xFF, 0xFF, 0xFF, 0xEF),
    "select": (0xFF, 0xFF, 0xFE, 0xFF),
    "program": (0xF7, 0xFF, 0xFF, 0xFF),
    "parameter": (0xFF, 0xF7, 0xFF, 0xFF),
    "levels": (0xFF, 0xFF, 0xFF, 0xFD),
    "setup": (0xFF, 0xFF, 0xF7, 0xFF),
    "bypass": (0xFF, 0xFF, 0xFD, 0xFF),
    "inc": (0xFF, 0xFF, 0xFF, 0x7F),
    "dec": (0xFF, 0xFF, 0xFF, 0xBF),
    "soft1": (0xFB, 0xFF, 0xFF, 0xFF),
    "soft2": (0xFF, 0xFB, 0xFF, 0xFF),
    "soft3": (0xFF, 0xFF, 0xFB, 0xFF),
    "soft4": (0xFF, 0xFF, 0xFF, 0xFB),
    "ab": (0xFD, 0xFF, 0xFD, 0xFF),
    "program-hold": (0xF7, 0xFF, 0xFF, 0xFE),
    "parameter-hold": (0xFF, 0xF7, 0xFF, 0xFE),
    "select-hold": (0xFF, 0xFF, 0xFE, 0xFE),
    "1": (0x7F, 0xFF, 0xFF, 0xFF),
    "2": (0xFF, 0x7F, 0xFF, 0xFF),
    "3": (0xFF, 0xFF, 0x7F, 0xFF),
    "4": (0xBF, 0xFF, 0xFF, 0xFF),
    "5": (0xFF, 0xBF, 0xFF, 0xFF),
    "6": (0xFF, 0xFF, 0xBF, 0xFF),
    "7": (0xDF, 0xFF, 0xFF, 0xFF),
    "8": (0xFF, 0xDF, 0xFF, 0xFF),
    "9": (0xFF, 0xFF, 0xDF, 0xFF),
    "0": (0xFF, 0xEF, 0xFF, 0xFF),
    "dot": (0xEF, 0xFF, 0xFF, 0xFF),
    "minus": (0xFF, 0xFF, 0xEF, 0xFF),
    "cxl": (0xFF, 0xFF, 0xFF, 0xDF),
}


def keypress_payload(name: str) -> bytes:
    """Return the nibbled SYSEXC_KEYPRESS payload for a named key."""

    mask = KEYPRESS_MASKS.get(name.strip().lower())
    if mask is None:
        raise ValueError(f"Unknown key {name!r}. Known keys: {sorted(KEYPRESS_MASKS)}")
    return nibble(mask)


def softkey_name(index_0based: int) -> str:
    if not 0 <= index_0based <= 3:
        raise ValueError("softkey index must be 0..3")
    return f"soft{index_0based + 1}"
