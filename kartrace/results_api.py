"""
results_api.py
--------------
FastAPI router exposing one race engine's state read-only.

Nothing here feeds events; the engine is driven by the CLI replay (or any
other single writer) and these endpoints only look at it: snapshot, winner,
lap history, and a CSV export of the laps.
"""

from __future__ import annotations

import csv
import logging
from io import StringIO
from typing import Any, List, Optional

from fastapi import APIRouter, FastAPI, HTTPException
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from .race_engine import LapRecord, RaceEngine

log = logging.getLogger("kartrace.api")


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------

class LapOut(BaseModel):
    kart_id: int
    lap_number: int
    start_time: str
    end_time: Optional[str] = None
    lap_duration_s: Optional[float] = None


class KartOut(BaseModel):
    kart_id: int
    current_lap_number: int


class RaceOut(BaseModel):
    state: str
    total_laps: int
    max_kart_count: int
    karts: List[KartOut]
    laps: List[LapOut]
    winner: Optional[LapOut] = None


def _lap_out(lap: LapRecord) -> LapOut:
    return LapOut(**lap.as_dict())


def _csv_stream(rows: List[List[Any]], headers: List[str]) -> StreamingResponse:
    buf = StringIO()
    w = csv.writer(buf, lineterminator="\n")
    w.writerow(headers)
    for row in rows:
        w.writerow(row)
    buf.seek(0)
    return StreamingResponse(
        buf,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": 'attachment; filename="laps.csv"'},
    )


# ---------------------------------------------------------------------------
# Router
# ---------------------------------------------------------------------------

def build_router(engine: RaceEngine) -> APIRouter:
    router = APIRouter()

    @router.get("/health")
    def health():
        return {"ok": True, "state": engine.state}

    @router.get("/race", response_model=RaceOut)
    def get_race() -> RaceOut:
        return RaceOut(**engine.snapshot())

    @router.get("/race/winner", response_model=LapOut)
    def get_winner() -> LapOut:
        """Longest completed lap; 404 while the race is still running."""
        if engine.winner is None:
            raise HTTPException(status_code=404, detail="Race not finished")
        return _lap_out(engine.winner)

    @router.get("/race/laps", response_model=List[LapOut])
    def get_laps(kart_id: Optional[int] = None) -> List[LapOut]:
        laps = engine.laps if kart_id is None else engine.laps_for(kart_id)
        return [_lap_out(lap) for lap in laps]

    @router.get("/race/laps.csv")
    def laps_csv() -> StreamingResponse:
        payload: List[List[Any]] = []
        for lap in engine.laps:
            d = lap.as_dict()
            payload.append([
                d["kart_id"],
                d["lap_number"],
                d["start_time"],
                d["end_time"] or "",
                "" if d["lap_duration_s"] is None else d["lap_duration_s"],
            ])
        headers = ["kart_id", "lap_number", "start_time", "end_time", "lap_duration_s"]
        return _csv_stream(payload, headers)

    return router


def create_app(engine: RaceEngine) -> FastAPI:
    app = FastAPI(title="Kart Race Results", version="0.1.0")
    app.include_router(build_router(engine))
    log.info("results_api_ready", extra={"state": engine.state})
    return app
