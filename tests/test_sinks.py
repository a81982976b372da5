"""Winner formatting and notification sinks."""

import io
from datetime import datetime

from kartrace.race_engine import LapRecord, RaceEngine
from kartrace.sinks import ConsoleSink, MultiObserver, OscFinishOut, format_clock, winner_line

from conftest import RecordingObserver, at


def _winner():
    lap = LapRecord(lap_number=2, kart_id=3, start_time=at(61.125))
    lap.close(at(125.5))
    return lap


def test_format_clock():
    assert format_clock(datetime(2024, 5, 4, 9, 5, 7, 250000)) == "09:05:07.2500000"


def test_winner_line():
    assert winner_line(_winner()) == (
        "Winner identified as kart 3 by finishing lap 2 in duration 00:01:04.3750000, "
        "starting at 12:01:01.1250000"
    )


def test_console_sink_prints_once_on_finish():
    out = io.StringIO()
    engine = RaceEngine(total_laps=1, max_kart_count=2, observer=ConsoleSink(out))
    engine.process(1, at(0))
    engine.process(1, at(42))
    engine.process(1, at(50))
    assert out.getvalue().count("Winner identified as kart 1") == 1


def test_multi_observer_fans_out():
    a, b = RecordingObserver(), RecordingObserver()
    engine = RaceEngine(total_laps=1, max_kart_count=1, observer=MultiObserver([a, b]))
    engine.process(1, at(0))
    engine.process(1, at(10))
    assert a.finished == b.finished == [engine.winner]
    assert a.opened == b.opened == [(1, 1)]


class FakeClient:
    def __init__(self, host, port, fail=False):
        self.host, self.port, self.fail = host, port, fail
        self.sent = []

    def send_message(self, path, value):
        if self.fail:
            raise OSError("network unreachable")
        self.sent.append((path, value))


def _osc(cfg, fail=False):
    clients = []

    def factory(host, port):
        clients.append(FakeClient(host, port, fail))
        return clients[-1]

    out = OscFinishOut(cfg, client_factory=factory)
    out.start()
    return out, clients


def test_osc_disabled_sends_nothing():
    out, clients = _osc({"enabled": False})
    out.race_finished(_winner())
    assert clients == []


def test_osc_finish_message_with_repeat():
    out, clients = _osc({"enabled": True, "host": "10.0.0.5", "port": 9100,
                         "send_repeat": {"count": 2}})
    out.race_finished(_winner())
    client = clients[0]
    assert (client.host, client.port) == ("10.0.0.5", 9100)
    assert client.sent == [("/kartrace/finish", [3, 2, 64.375])] * 2


def test_osc_laps_only_when_asked():
    out, clients = _osc({"enabled": True, "send_laps": True, "addresses": {"lap": "/lap"}})
    out.lap_closed(_winner())
    assert clients[0].sent == [("/lap", [3, 2, 64.375])]

    quiet, quiet_clients = _osc({"enabled": True})
    quiet.lap_closed(_winner())
    assert quiet_clients[0].sent == []


def test_osc_failure_does_not_stop_race():
    out, _ = _osc({"enabled": True}, fail=True)
    engine = RaceEngine(total_laps=1, max_kart_count=1, observer=out)
    engine.process(1, at(0))
    engine.process(1, at(30))
    assert engine.finished
