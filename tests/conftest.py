"""Pytest fixtures for tests."""

from __future__ import annotations

import pytest

from orvillecontrol.app.scheduling import LoopScheduler
from orvillecontrol.app.session import OrvilleSession
from orvillecontrol.protocol.codes import OrvilleSysexCodes
from orvillecontrol.protocol.sysex import decode_frame, encode_frame


ROOT_DUMP = (
    "COL 0 0 0 'Root' 'Root'",
    "COL 0 401000b 0 'Crushing Delay' 'DSP A'",
    "COL 1 801000b 0 'Dual Shimmer' 'DSP B'",
)

DELAY_DUMP = (
    "COL 0 4010001b 401000b 'Delay Params' 'Delay'",
    "NUM 0 40100010 4010001b 'Mix %3.0f%%' 'Mix' 50 0 100 1",
    "SET 1 40100011 4010001b 'Mode %s' 'Mode' 1 'Stereo' 3 'Mono' 'Stereo' 'Ping'",
    "CON 2 40100012 4010001b 'Input' 'In' -20",
    "TRG 3 40100013 4010001b 'Tap Tempo' 'Tap'",
    "INF 4 40100014 4010001b 'Tempo' '120 BPM'",
)


class ManualClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class SentFrames:
    """Send sink that records every outbound frame."""

    def __init__(self) -> None:
        self.frames: list[bytes] = []

    def __call__(self, data: bytes) -> None:
        self.frames.append(bytes(data))

    def decoded(self):
        return [decode_frame(f) for f in self.frames]

    def commands(self) -> list[int]:
        return [f.command for f in self.decoded()]

    def texts(self, command: int) -> list[str]:
        return [f.text for f in self.decoded() if f.command == command]

    def menu_requests(self) -> list[str]:
        return self.texts(OrvilleSysexCodes.SYSEXC_OBJECTINFO_WANT)

    def value_requests(self) -> list[str]:
        return self.texts(OrvilleSysexCodes.SYSEXC_VALUE_PUT)

    def clear(self) -> None:
        self.frames.clear()


def eventide(command: int, payload: bytes = b"", device_id: int = 1) -> bytes:
    """A framed inbound message as it comes off the wire."""

    return bytes([0xF0]) + encode_frame(device_id, command, payload) + bytes([0xF7])


class FakeDevice:
    """Feeds device responses into a session and moves the clock."""

    def __init__(self, session: OrvilleSession, clock: ManualClock, scheduler: LoopScheduler) -> None:
        self.session = session
        self.clock = clock
        self.scheduler = scheduler

    def send(self, command: int, payload: bytes = b"", device_id: int = 1):
        return self.session.handle_message(eventide(command, payload, device_id))

    def dump(self, *lines: str):
        text = "\r\n".join(lines).encode("ascii") + b"\r\n\x00"
        return self.send(OrvilleSysexCodes.SYSEXC_OBJECTINFO_DUMP, text)

    def value(self, key: str, value: str):
        return self.send(OrvilleSysexCodes.SYSEXC_VALUE_DUMP, f"{key} {value}".encode("ascii"))

    def screen(self, nibbles: bytes):
        return self.send(OrvilleSysexCodes.SYSEXC_SCREEN_DUMP, nibbles)

    def error(self, text: str):
        return self.send(OrvilleSysexCodes.SYSEXC_ERROR, text.encode("ascii"))

    def advance(self, seconds: float) -> int:
        self.clock.now += seconds
        return self.scheduler.run_pending()


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def scheduler(clock):
    return LoopScheduler(clock)


@pytest.fixture
def sent():
    return SentFrames()


@pytest.fixture
def log_records():
    """(message, severity, category) tuples captured from the session's log sink."""
    return []


@pytest.fixture
def make_session(sent, scheduler, log_records):
    def _make(config=None, state=None):
        return OrvilleSession(
            sent,
            config=config,
            scheduler=scheduler,
            log_sink=lambda message, severity, category: log_records.append((message, severity, category)),
            state=state,
        )

    return _make


@pytest.fixture
def session(make_session):
    return make_session()


@pytest.fixture
def device(session, clock, scheduler):
    return FakeDevice(session, clock, scheduler)


@pytest.fixture
def delay_menu(session, device, sent):
    """Session showing the DSP A delay parameter menu, with the request log cleared."""

    session.jump_to("4010001b")
    device.dump(*DELAY_DUMP)
    sent.clear()
    return session
