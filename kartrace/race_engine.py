# kartrace/race_engine.py
"""
Lap-tracking state machine for a fixed-lap-count kart race.

Each timing event says "kart K crossed the line at T". The engine keeps one
KartProgress per admitted kart and one LapRecord per (kart, lap), closes the
open lap on every crossing and opens the next one, and finishes the race the
moment any kart closes lap `total_laps`.

Winner rule
-----------
The winner is the completed lap with the LONGEST duration; ties go to the
record that was opened first. This matches the historical scoring and is
kept on purpose (see DESIGN.md).

Drops (never exceptions)
------------------------
- events after the race finished
- a new kart once `max_kart_count` karts are tracked
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple, Union

log = logging.getLogger("kartrace.engine")

STATE_RUNNING = "running"
STATE_FINISHED = "finished"

REASON_LAP_OPENED = "lap_opened"
REASON_CAPACITY = "capacity"
REASON_POST_FINISH = "post_finish"


# ----------------------------- Errors -----------------------------
class InvalidConfiguration(ValueError):
    """Race cannot be constructed with the given settings."""


class WinnerResolutionError(RuntimeError):
    """Race finished without a single completed lap to rank."""


# ----------------------------- Data structs -----------------------------
@dataclass(frozen=True)
class TimingEvent:
    kart_id: int
    timestamp: datetime


@dataclass
class KartProgress:
    kart_id: int
    current_lap_number: int = 1


@dataclass
class LapRecord:
    lap_number: int
    kart_id: int
    start_time: datetime
    end_time: Optional[datetime] = None
    lap_duration: Optional[timedelta] = None

    @property
    def is_complete(self) -> bool:
        return self.lap_duration is not None

    def close(self, end_time: datetime) -> None:
        # end and duration are always set together
        self.end_time = end_time
        self.lap_duration = end_time - self.start_time

    def as_dict(self) -> Dict:
        return {
            "kart_id": self.kart_id,
            "lap_number": self.lap_number,
            "start_time": self.start_time.isoformat(),
            "end_time": None if self.end_time is None else self.end_time.isoformat(),
            "lap_duration_s": None if self.lap_duration is None
                              else round(self.lap_duration.total_seconds(), 6),
        }


@dataclass(frozen=True)
class RaceConfig:
    total_laps: int = 4
    max_kart_count: int = 5


# ----------------------------- Outcomes -----------------------------
@dataclass(frozen=True)
class Continue:
    """Race still running (or already over and the event was dropped)."""
    kart_id: int
    reason: str
    lap_number: Optional[int] = None


@dataclass(frozen=True)
class RaceFinished:
    """The event closed the final lap; carries the resolved winner."""
    winner: LapRecord


Outcome = Union[Continue, RaceFinished]


# ----------------------------- Observer -----------------------------
class RaceObserver:
    """No-op hooks. Subclass and override what you need."""

    def lap_opened(self, lap: LapRecord) -> None:
        pass

    def lap_closed(self, lap: LapRecord) -> None:
        pass

    def race_finished(self, winner: LapRecord) -> None:
        pass


def select_winner(laps) -> LapRecord:
    """Longest completed lap; ties resolve to the earliest inserted record."""
    completed = [lap for lap in laps if lap.is_complete]
    if not completed:
        raise WinnerResolutionError("Race processing failed. No winner identified.")
    # sorted() is stable, so equal durations keep insertion order
    return sorted(completed, key=lambda lap: lap.lap_duration, reverse=True)[0]


def format_ticks(td: timedelta) -> str:
    """HH:MM:SS.fffffff for log lines (7 fraction digits, 100 ns ticks)."""
    total_us = (td.days * 86400 + td.seconds) * 1_000_000 + td.microseconds
    secs, us = divmod(total_us, 1_000_000)
    h, rem = divmod(secs, 3600)
    m, s = divmod(rem, 60)
    return f"{h:02d}:{m:02d}:{s:02d}.{us * 10:07d}"


def format_clock(ts: datetime) -> str:
    """Time of day as HH:MM:SS.fffffff."""
    return f"{ts:%H:%M:%S}.{ts.microsecond * 10:07d}"


# ----------------------------- Race Engine -----------------------------
class RaceEngine:
    def __init__(self, total_laps: int, max_kart_count: int,
                 observer: Optional[RaceObserver] = None):
        """
        total_laps      laps each kart must complete; the first kart to close
                        this lap finishes the race (>= 1)
        max_kart_count  distinct karts admitted; later newcomers are ignored.
                        0 admits nobody; a negative value means no cap.
        observer        optional hooks for lap open/close and race finish
        """
        if int(total_laps) < 1:
            raise InvalidConfiguration(f"Laps must be 1 or more (got {total_laps!r})")

        self.total_laps = int(total_laps)
        self.max_kart_count = int(max_kart_count)
        self.observer = observer

        self._karts: Dict[int, KartProgress] = {}
        self._open_laps: Dict[int, LapRecord] = {}
        self._laps: List[LapRecord] = []
        self._finished = False
        self.winner: Optional[LapRecord] = None

    @classmethod
    def from_config(cls, cfg: RaceConfig, observer: Optional[RaceObserver] = None) -> "RaceEngine":
        return cls(cfg.total_laps, cfg.max_kart_count, observer=observer)

    # ---------- queries ----------
    @property
    def finished(self) -> bool:
        return self._finished

    @property
    def state(self) -> str:
        return STATE_FINISHED if self._finished else STATE_RUNNING

    @property
    def karts(self) -> Mapping[int, KartProgress]:
        return MappingProxyType(self._karts)

    @property
    def laps(self) -> Tuple[LapRecord, ...]:
        return tuple(self._laps)

    @property
    def capped(self) -> bool:
        return self.max_kart_count >= 0

    def completed_laps(self) -> List[LapRecord]:
        return [lap for lap in self._laps if lap.is_complete]

    def laps_for(self, kart_id: int) -> List[LapRecord]:
        return [lap for lap in self._laps if lap.kart_id == kart_id]

    # ---------- input ----------
    def process(self, kart_id: int, timestamp: datetime) -> Outcome:
        return self.process_event(TimingEvent(int(kart_id), timestamp))

    def process_event(self, event: TimingEvent) -> Outcome:
        if self._finished:
            log.info(f"Race is already finished. Ignoring kart {event.kart_id} passing at {event.timestamp}.")
            return Continue(event.kart_id, REASON_POST_FINISH)

        kart = self._karts.get(event.kart_id)
        if kart is not None:
            self._close_lap(kart, event)
            if kart.current_lap_number == self.total_laps:
                return self._finish(event)
            kart.current_lap_number += 1
        else:
            if self.capped and len(self._karts) >= self.max_kart_count:
                log.warning(
                    "Number of karts entered into race are above maximum limit.",
                    extra={"kart_id": event.kart_id, "max_kart_count": self.max_kart_count},
                )
                return Continue(event.kart_id, REASON_CAPACITY)
            kart = KartProgress(event.kart_id, 1)
            self._karts[kart.kart_id] = kart

        self._open_lap(kart, event)
        return Continue(event.kart_id, REASON_LAP_OPENED, kart.current_lap_number)

    # ---------- internals ----------
    def _open_lap(self, kart: KartProgress, event: TimingEvent) -> None:
        lap = LapRecord(lap_number=kart.current_lap_number, kart_id=kart.kart_id,
                        start_time=event.timestamp)
        self._laps.append(lap)
        self._open_laps[kart.kart_id] = lap
        log.info(f"Kart {kart.kart_id} entered lap {lap.lap_number} at {event.timestamp}.")
        if self.observer is not None:
            self.observer.lap_opened(lap)

    def _close_lap(self, kart: KartProgress, event: TimingEvent) -> None:
        lap = self._open_laps.pop(kart.kart_id)
        lap.close(event.timestamp)
        log.info(f"Kart {lap.kart_id} finished lap {lap.lap_number} in duration of {format_ticks(lap.lap_duration)}.")
        if self.observer is not None:
            self.observer.lap_closed(lap)

    def _finish(self, event: TimingEvent) -> RaceFinished:
        self._finished = True
        log.info(f"Race finished by kart {event.kart_id} at {event.timestamp}.")
        self.winner = select_winner(self._laps)
        log.info("Race result processing finished.")
        w = self.winner
        log.info(
            f"Winner identified as kart {w.kart_id} by finishing lap {w.lap_number} "
            f"in duration {format_ticks(w.lap_duration)}, starting at {format_clock(w.start_time)}"
        )
        if self.observer is not None:
            self.observer.race_finished(w)
        return RaceFinished(w)

    # ---------- snapshot ----------
    def snapshot(self) -> Dict:
        return {
            "state": self.state,
            "total_laps": self.total_laps,
            "max_kart_count": self.max_kart_count,
            "karts": [
                {"kart_id": k.kart_id, "current_lap_number": k.current_lap_number}
                for k in self._karts.values()
            ],
            "laps": [lap.as_dict() for lap in self._laps],
            "winner": None if self.winner is None else self.winner.as_dict(),
        }
