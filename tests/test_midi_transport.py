"""Tests for the MIDI port wrapper and transport, with mido's port API faked."""

import mido
import pytest

from midi import OrvilleMidi
from orvillecontrol.transport.midi_transport import MidiTransport


class FakePort:
    def __init__(self, name, pending=()):
        self.name = name
        self.sent = []
        self.pending = list(pending)
        self.closed = False

    def send(self, msg):
        self.sent.append(msg)

    def iter_pending(self):
        while self.pending:
            yield self.pending.pop(0)

    def close(self):
        self.closed = True


@pytest.fixture
def fake_ports(monkeypatch):
    ports = {}

    def open_output(name):
        ports["out"] = FakePort(name)
        return ports["out"]

    def open_input(name):
        ports["in"] = FakePort(
            name,
            pending=[
                mido.Message("clock"),
                mido.Message("sysex", data=[0x1C, 0x70, 0x01, 0x2E, 0x41]),
            ],
        )
        return ports["in"]

    # set_backend rebinds mido's open_*/get_* functions, so keep it from undoing the fakes.
    monkeypatch.setattr(mido, "set_backend", lambda *args, **kwargs: None)
    monkeypatch.setattr(mido, "get_output_names", lambda: ["Midi Through", "Orville MIDI 1"], raising=False)
    monkeypatch.setattr(mido, "get_input_names", lambda: ["Orville MIDI 1"], raising=False)
    monkeypatch.setattr(mido, "open_output", open_output, raising=False)
    monkeypatch.setattr(mido, "open_input", open_input, raising=False)
    return ports


class TestOrvilleMidi:
    def test_connects_by_prefix(self, fake_ports):
        midi = OrvilleMidi(port_prefix="Orville")
        assert midi.connect() == "Orville MIDI 1"
        assert midi.connected
        assert midi.has_input

    def test_no_matching_port(self, fake_ports):
        with pytest.raises(RuntimeError):
            OrvilleMidi(port_prefix="H9").connect()

    def test_send_strips_framing(self, fake_ports):
        midi = OrvilleMidi()
        midi.connect()
        midi.send_sysex(bytes([0xF0, 0x1C, 0x70, 0x01, 0x18, 0xF7]))
        assert list(fake_ports["out"].sent[0].data) == [0x1C, 0x70, 0x01, 0x18]

    def test_send_before_connect(self):
        with pytest.raises(RuntimeError):
            OrvilleMidi().send_sysex(b"\x1c\x70\x01\x18")

    def test_bad_bytes(self, fake_ports):
        midi = OrvilleMidi()
        midi.connect()
        with pytest.raises(ValueError):
            midi.send_sysex([0x1C, 300])

    def test_close(self, fake_ports):
        midi = OrvilleMidi()
        midi.connect()
        midi.close()
        assert fake_ports["out"].closed
        assert fake_ports["in"].closed
        assert not midi.connected


class TestMidiTransport:
    def test_connect_reports_ports(self, fake_ports):
        info = MidiTransport(OrvilleMidi()).connect()
        assert info.output_name == "Orville MIDI 1"
        assert info.input_name == "Orville MIDI 1"

    def test_receive_keeps_only_sysex(self, fake_ports):
        transport = MidiTransport(OrvilleMidi())
        transport.connect()
        messages = transport.receive_pending()
        assert [m.type for m in messages] == ["sysex"]
        assert transport.receive_pending() == []

    def test_send(self, fake_ports):
        transport = MidiTransport(OrvilleMidi())
        transport.connect()
        transport.send_sysex(b"\x1c\x70\x01\x31\x30")
        assert list(fake_ports["out"].sent[0].data) == [0x1C, 0x70, 0x01, 0x31, 0x30]
