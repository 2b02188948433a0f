"""Unit tests for optimistic writes, reconciliation and meter polling."""

import pytest

from orvillecontrol.app.device_backend import OrvilleBackend
from orvillecontrol.app.events import SessionEvents
from orvillecontrol.app.scheduling import DeferredTasks
from orvillecontrol.app.state import NavigationState
from orvillecontrol.app.value_sync import (
    MismatchPolicy,
    ValueSync,
    parse_value_dump,
    values_match,
)
from orvillecontrol.domain.objects import parse_line
from orvillecontrol.errors import FormatError, ValueMismatchWarning
from orvillecontrol.protocol.codes import OrvilleSysexCodes


MIX = parse_line("NUM 0 mix menu 'Mix %3.0f%%' 'Mix' 50 0 100 1")
MODE = parse_line("SET 1 mode menu 'Mode %s' 'Mode' 1 'Stereo' 3 'Mono' 'Stereo' 'Ping'")


class Recorder:
    def __init__(self):
        self.sent = []

    def __call__(self, command, payload):
        self.sent.append((command, bytes(payload).decode("ascii")))

    def of(self, command):
        return [p for c, p in self.sent if c == command]


@pytest.fixture
def recorder():
    return Recorder()


@pytest.fixture
def events():
    return SessionEvents()


@pytest.fixture
def make_sync(recorder, scheduler, events):
    def _make(policy=MismatchPolicy.ADOPT_DEVICE, after_settle=None):
        state = NavigationState(current_key="menu")
        backend = OrvilleBackend(send_eventide=recorder)
        return ValueSync(
            state,
            backend,
            DeferredTasks(scheduler),
            events,
            mismatch_policy=policy,
            after_settle=after_settle,
        )

    return _make


@pytest.fixture
def sync(make_sync):
    return make_sync()


def advance(clock, scheduler, seconds):
    clock.now += seconds
    scheduler.run_pending()


class TestParsing:
    def test_value_dump(self):
        dump = parse_value_dump("40100010 75")
        assert (dump.key, dump.value) == ("40100010", "75")

    def test_value_with_spaces(self):
        assert parse_value_dump("k 1 Stereo").value == "1 Stereo"

    def test_key_only(self):
        assert parse_value_dump("k").value == ""

    def test_empty(self):
        with pytest.raises(FormatError):
            parse_value_dump("  ")


class TestValuesMatch:
    def test_set_compares_by_index(self):
        assert values_match("1 Stereo", "1", MODE)
        assert not values_match("1 Stereo", "2 Ping", MODE)

    def test_num_compares_numerically(self):
        assert values_match("50", "50.0", MIX)
        assert values_match("50", "50.4", MIX)
        assert not values_match("50", "51", MIX)

    def test_plain_text(self):
        assert values_match(" abc ", "abc")
        assert not values_match("abc", "abd")


class TestWrites:
    def test_put_is_optimistic(self, sync, recorder, events):
        seen = []
        events.value_updated.connect(lambda k, v: seen.append((k, v)))

        sync.put_value("mix", "75", obj=MIX)

        assert recorder.of(OrvilleSysexCodes.SYSEXC_VALUE_PUT) == ["mix 75"]
        assert sync.state.cached_values["mix"] == "75"
        assert seen == [("mix", "75")]
        assert sync.pending_writes() == ("mix",)

    def test_settle_requests_value_and_menu(self, sync, recorder, clock, scheduler):
        sync.put_value("mix", "75", obj=MIX)
        recorder.sent.clear()

        advance(clock, scheduler, 0.1)
        assert recorder.sent == []

        advance(clock, scheduler, 0.1)
        assert recorder.of(OrvilleSysexCodes.SYSEXC_VALUE_PUT) == ["mix"]
        assert recorder.of(OrvilleSysexCodes.SYSEXC_OBJECTINFO_WANT) == ["menu"]

    def test_rapid_writes_coalesce_confirmation(self, sync, recorder, clock, scheduler):
        sync.put_value("mix", "60", obj=MIX)
        advance(clock, scheduler, 0.1)
        sync.put_value("mix", "70", obj=MIX)
        recorder.sent.clear()

        advance(clock, scheduler, 0.1)
        assert recorder.sent == []
        advance(clock, scheduler, 0.1)
        assert recorder.of(OrvilleSysexCodes.SYSEXC_VALUE_PUT) == ["mix"]

    def test_pre_write_dump_is_held_back(self, sync):
        sync.put_value("mix", "75", obj=MIX)
        assert sync.handle_value_dump("mix 50") is None
        assert sync.state.cached_values["mix"] == "75"

    def test_confirmed_value_clears_pending(self, sync, clock, scheduler, events):
        warnings = []
        events.warning.connect(warnings.append)

        sync.put_value("mix", "75", obj=MIX)
        advance(clock, scheduler, 0.2)
        assert sync.handle_value_dump("mix 75.0") is not None

        assert sync.pending_writes() == ()
        assert warnings == []

    def test_mismatch_adopts_device_value(self, sync, clock, scheduler, events):
        warnings = []
        events.warning.connect(warnings.append)

        sync.put_value("mix", "75", obj=MIX)
        advance(clock, scheduler, 0.2)
        sync.handle_value_dump("mix 70")

        assert sync.state.cached_values["mix"] == "70"
        assert len(warnings) == 1
        assert isinstance(warnings[0], ValueMismatchWarning)
        assert (warnings[0].expected, warnings[0].confirmed) == ("75", "70")

    def test_mismatch_can_keep_optimistic_value(self, make_sync, clock, scheduler):
        sync = make_sync(policy=MismatchPolicy.KEEP_OPTIMISTIC)
        sync.put_value("mix", "75", obj=MIX)
        advance(clock, scheduler, 0.2)
        sync.handle_value_dump("mix 70")

        assert sync.state.cached_values["mix"] == "75"
        assert sync.pending_writes() == ()

    def test_after_settle_hook(self, make_sync, clock, scheduler):
        settled = []
        sync = make_sync(after_settle=settled.append)
        sync.put_value("mix", "75", obj=MIX)
        advance(clock, scheduler, 0.2)
        assert settled == ["mix"]

    def test_cancel_menu_refreshes_keeps_confirmation(self, sync, recorder, clock, scheduler):
        sync.put_value("mix", "75", obj=MIX)
        sync.cancel_menu_refreshes()
        recorder.sent.clear()
        advance(clock, scheduler, 0.2)
        assert recorder.of(OrvilleSysexCodes.SYSEXC_OBJECTINFO_WANT) == []
        assert recorder.of(OrvilleSysexCodes.SYSEXC_VALUE_PUT) == ["mix"]


class TestRequests:
    def test_request_missing_skips_triggers_and_cached(self, sync, recorder):
        objects = [
            MIX,
            MODE,
            parse_line("TRG 2 tap menu 'Tap' 'Tap'"),
            parse_line("COL 3 sub menu 'Sub' 'Sub'"),
            parse_line("INF 4 info menu 'Info' ''"),
        ]
        sync.state.cached_values["mode"] = "1 Stereo"

        assert sync.request_missing(objects) == 2
        assert recorder.of(OrvilleSysexCodes.SYSEXC_VALUE_PUT) == ["mix", "info"]

    def test_unsolicited_dump_updates_cache(self, sync, events):
        seen = []
        events.value_updated.connect(lambda k, v: seen.append((k, v)))
        sync.handle_value_dump("mode 2 Ping")
        assert sync.state.cached_values["mode"] == "2 Ping"
        assert seen == [("mode", "2 Ping")]


class TestMeterPolling:
    def test_polls_visible_meters(self, sync, recorder, clock, scheduler):
        sync.set_meter_keys(["in", "out"])
        sync.set_polling_enabled(True)
        assert sync.polling_active

        advance(clock, scheduler, 0.1)
        advance(clock, scheduler, 0.1)
        assert recorder.of(OrvilleSysexCodes.SYSEXC_VALUE_PUT) == ["in", "out", "in", "out"]

    def test_suspend_stops_at_once(self, sync, recorder, clock, scheduler):
        sync.set_meter_keys(["in"])
        sync.set_polling_enabled(True)
        sync.suspend_polling()
        assert not sync.polling_active

        advance(clock, scheduler, 0.5)
        assert recorder.sent == []

        sync.set_meter_keys(["other"])
        advance(clock, scheduler, 0.1)
        assert recorder.of(OrvilleSysexCodes.SYSEXC_VALUE_PUT) == ["other"]

    def test_disabled_polling_sends_nothing(self, sync, recorder, clock, scheduler):
        sync.set_meter_keys(["in"])
        advance(clock, scheduler, 0.5)
        assert recorder.sent == []

    def test_no_meters_no_timer(self, sync):
        sync.set_polling_enabled(True)
        assert not sync.polling_active
