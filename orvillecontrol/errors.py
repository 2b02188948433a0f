from __future__ import annotations


class OrvilleError(Exception):
    """Base class for errors raised while talking to an Orville."""


class FormatError(OrvilleError, ValueError):
    """Malformed inbound data: odd nibble count, truncated bitmap, bad dump line."""


class ProtocolError(OrvilleError):
    """The device answered with an error response (SYSEXC_ERROR, 0x0D)."""

    def __init__(self, message: str, *, device_text: str = "") -> None:
        super().__init__(message)
        self.device_text = device_text


class StaleResponseWarning(UserWarning):
    """A menu dump arrived for a key that is no longer displayed."""

    def __init__(self, key: str, current_key: str) -> None:
        super().__init__(f"Dump for key {key} arrived while showing {current_key}")
        self.key = key
        self.current_key = current_key


class ValueMismatchWarning(UserWarning):
    """The device confirmed a different value than the one we wrote."""

    def __init__(self, key: str, expected: str, confirmed: str) -> None:
        super().__init__(f"Value for key {key}: wrote {expected!r}, device reports {confirmed!r}")
        self.key = key
        self.expected = expected
        self.confirmed = confirmed
