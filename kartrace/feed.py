# kartrace/feed.py
"""
Timing feed reader.

Decodes a comma-delimited text feed into TimingEvents, one row per line
crossing:

    kart,time
    1,12:00:00.0000000
    2,12:00:01.5
    1,2024-05-04T12:01:02.25

The first row is a header and is skipped. The time column is either a full
ISO datetime or a time of day (HH:MM:SS[.fraction]); a time of day is pinned
to `base_date` (today when not given). Fractions longer than microseconds
are truncated. Rows are yielded in file order; nothing is re-sorted.
"""

from __future__ import annotations

import csv
import logging
import re
from datetime import date, datetime, time
from pathlib import Path
from typing import Iterable, Iterator, Optional, Union

from .race_engine import TimingEvent

log = logging.getLogger("kartrace.feed")

# HH:MM[:SS[.fraction]]
_TIME_RE = re.compile(r"^(?P<h>\d{1,2}):(?P<m>\d{2})(?::(?P<s>\d{2})(?:\.(?P<f>\d+))?)?$")


class FeedError(ValueError):
    """A feed row could not be decoded."""


def parse_timestamp(text: str, base_date: Optional[date] = None) -> datetime:
    raw = str(text).strip()
    m = _TIME_RE.match(raw)
    if m:
        frac = (m.group("f") or "")[:6].ljust(6, "0")
        try:
            tod = time(int(m.group("h")), int(m.group("m")), int(m.group("s") or 0), int(frac))
        except ValueError as e:
            raise FeedError(f"invalid time of day {raw!r}: {e}") from None
        return datetime.combine(base_date or date.today(), tod)

    # ISO datetime; trim a 7-digit fraction down to what datetime accepts
    iso = re.sub(r"(\.\d{6})\d+", r"\1", raw.replace(" ", "T", 1))
    try:
        return datetime.fromisoformat(iso)
    except ValueError:
        raise FeedError(f"unrecognised timestamp {raw!r}") from None


def parse_row(row, base_date: Optional[date] = None) -> TimingEvent:
    if len(row) < 2:
        raise FeedError(f"expected 'kart,time' but got {row!r}")
    try:
        kart_id = int(str(row[0]).strip())
    except ValueError:
        raise FeedError(f"invalid kart id {row[0]!r}") from None
    if kart_id < 1:
        raise FeedError(f"kart id must be positive, got {kart_id}")
    return TimingEvent(kart_id, parse_timestamp(row[1], base_date))


def iter_events(lines: Iterable[str], *, skip_header: bool = True,
                base_date: Optional[date] = None, strict: bool = False) -> Iterator[TimingEvent]:
    """Yield TimingEvents from text lines. Bad rows raise when strict, else are skipped."""
    reader = csv.reader(lines)
    if skip_header:
        next(reader, None)
    for row in reader:
        if not row or not any(cell.strip() for cell in row):
            continue
        try:
            yield parse_row(row, base_date)
        except FeedError as e:
            if strict:
                raise FeedError(f"line {reader.line_num}: {e}") from None
            log.warning("feed_row_skipped", extra={"line": reader.line_num, "row": row, "err": str(e)})


def read_events(path: Union[str, Path], *, skip_header: bool = True,
                base_date: Optional[date] = None, strict: bool = False) -> Iterator[TimingEvent]:
    p = Path(path)
    with p.open("r", encoding="utf-8", newline="") as f:
        log.info("feed_open", extra={"path": str(p)})
        yield from iter_events(f, skip_header=skip_header, base_date=base_date, strict=strict)
