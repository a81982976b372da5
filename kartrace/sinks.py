# kartrace/sinks.py
# -----------------------------------------------------------------------------
# Race observers: console winner line and OSC OUT.
# OSC frames go out as UDP unicast via python-osc's SimpleUDPClient
# (sync, tiny, reliable) so lighting/scoreboards can react to the finish.
# -----------------------------------------------------------------------------

from __future__ import annotations

import logging
import sys
import time
from typing import Callable, Dict, Iterable, List, Optional, TextIO

from pythonosc.udp_client import SimpleUDPClient

from .race_engine import LapRecord, RaceObserver, format_clock, format_ticks

log = logging.getLogger("kartrace.sinks")

format_duration = format_ticks


def winner_line(winner: LapRecord) -> str:
    return (
        f"Winner identified as kart {winner.kart_id} by finishing lap {winner.lap_number} "
        f"in duration {format_duration(winner.lap_duration)}, starting at {format_clock(winner.start_time)}"
    )


class ConsoleSink(RaceObserver):
    def __init__(self, stream: Optional[TextIO] = None):
        self.stream = stream

    def race_finished(self, winner: LapRecord) -> None:
        print(winner_line(winner), file=self.stream or sys.stdout, flush=True)


class MultiObserver(RaceObserver):
    """Forward each hook to every observer in order."""

    def __init__(self, observers: Iterable[RaceObserver]):
        self.observers: List[RaceObserver] = list(observers)

    def lap_opened(self, lap: LapRecord) -> None:
        for o in self.observers:
            o.lap_opened(lap)

    def lap_closed(self, lap: LapRecord) -> None:
        for o in self.observers:
            o.lap_closed(lap)

    def race_finished(self, winner: LapRecord) -> None:
        for o in self.observers:
            o.race_finished(winner)


class OscFinishOut(RaceObserver):
    def __init__(self, cfg: Dict, client_factory: Callable[[str, int], SimpleUDPClient] = SimpleUDPClient):
        # cfg structure:
        # integrations.osc_out: { enabled, host, port, send_repeat, send_laps, addresses{ finish, lap } }
        self.enabled = bool(cfg and cfg.get("enabled"))
        self.host = (cfg or {}).get("host", "127.0.0.1")
        self.port = int((cfg or {}).get("port", 9000))
        self.send_laps = bool((cfg or {}).get("send_laps", False))

        rep = (cfg or {}).get("send_repeat") or {}
        self.repeat_count = int(rep.get("count", 1))        # e.g. 2 -> send twice
        self.repeat_interval = float(rep.get("interval_ms", 0)) / 1000.0

        addrs = ((cfg or {}).get("addresses") or {})
        self.addr_finish: str = addrs.get("finish", "/kartrace/finish")
        self.addr_lap: str = addrs.get("lap", "/kartrace/lap")

        self._client_factory = client_factory
        self._client: Optional[SimpleUDPClient] = None

    def start(self) -> None:
        if not self.enabled:
            return
        if self._client is None:
            self._client = self._client_factory(self.host, self.port)

    def stop(self) -> None:
        self._client = None

    # --------------------- internal helper ---------------------

    def _send(self, path: str, values: list) -> None:
        """Fire-and-forget with optional repeats for UDP resiliency."""
        if not self.enabled or not self._client:
            return
        sends = max(1, self.repeat_count)
        for i in range(sends):
            try:
                self._client.send_message(path, values)
            except OSError as e:
                # lighting being offline must not stop race processing
                log.warning("osc_send_failed", extra={"path": path, "err": str(e)})
            if i + 1 < sends and self.repeat_interval > 0:
                time.sleep(self.repeat_interval)

    # ----------------------- observer hooks -----------------------

    def lap_closed(self, lap: LapRecord) -> None:
        if self.send_laps:
            self._send(self.addr_lap, [lap.kart_id, lap.lap_number, lap.lap_duration.total_seconds()])

    def race_finished(self, winner: LapRecord) -> None:
        self._send(self.addr_finish, [winner.kart_id, winner.lap_number, winner.lap_duration.total_seconds()])
