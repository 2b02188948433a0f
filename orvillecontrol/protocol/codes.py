from __future__ import annotations

"""Eventide Orville SysEx constants.

Keep protocol constants here so the rest of the codebase doesn't duplicate them.
"""


class OrvilleSysexCodes:
    SYSEXC_KEYPRESS = 0x01

    # Response codes
    SYSEXC_ERROR = 0x0D

    # Screen raster
    SYSEXC_SCREEN_DUMP = 0x17
    SYSEXC_SCREEN_WANT = 0x18

    # Value/key operations. VALUE_PUT doubles as the read request when the
    # payload carries only the key.
    SYSEXC_VALUE_PUT = 0x2D
    SYSEXC_VALUE_DUMP = 0x2E

    # Menu/object info
    SYSEXC_OBJECTINFO_WANT = 0x31
    SYSEXC_OBJECTINFO_DUMP = 0x32


COMMAND_NAMES: dict[int, str] = {
    OrvilleSysexCodes.SYSEXC_KEYPRESS: "KEYPRESS",
    OrvilleSysexCodes.SYSEXC_ERROR: "ERROR",
    OrvilleSysexCodes.SYSEXC_SCREEN_DUMP: "SCREEN_DUMP",
    OrvilleSysexCodes.SYSEXC_SCREEN_WANT: "SCREEN_WANT",
    OrvilleSysexCodes.SYSEXC_VALUE_PUT: "VALUE_PUT",
    OrvilleSysexCodes.SYSEXC_VALUE_DUMP: "VALUE_DUMP",
    OrvilleSysexCodes.SYSEXC_OBJECTINFO_WANT: "OBJECTINFO_WANT",
    OrvilleSysexCodes.SYSEXC_OBJECTINFO_DUMP: "OBJECTINFO_DUMP",
}


def command_name(command: int) -> str:
    return COMMAND_NAMES.get(command, f"0x{command:02X}")


class OrvilleMenuKeys:
    """Well-known menu keys."""

    ROOT = "0"

    DSP_A = "401000b"
    DSP_B = "801000b"

    # Static bottom-row softkeys
    PROGRAM = "10020000"
    SETUP = "10010000"
    LEVELS = "10030000"
    BYPASS = "10030500"

    # Program load menu: the program select and the per-DSP load triggers.
    PROGRAM_SELECT = "10020011"
    LOAD_A = "1002001c"
    LOAD_B = "1002001d"


STATIC_SOFTKEYS: tuple[tuple[str, str], ...] = (
    (OrvilleMenuKeys.PROGRAM, "program"),
    (OrvilleMenuKeys.SETUP, "setup"),
    (OrvilleMenuKeys.LEVELS, "levels"),
    (OrvilleMenuKeys.BYPASS, "bypass"),
)
