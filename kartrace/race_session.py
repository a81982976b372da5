"""
Kart race session runner
========================

Replays a recorded timing feed through a RaceEngine and reports the winner.

Flow
----
  config/config.yaml → (operator prompts) → CLI flags → RaceEngine
  feed CSV → TimingEvents → engine.process_event() → ConsoleSink / OSC out

CLI
---
    kart-race --config config/config.yaml
    # Optional runtime overrides:
    --laps 4
    --max-karts 5
    --feed karttimes.csv
    --interactive          ask the operator (blank answer keeps the default)
    --osc                  enable OSC out even if disabled in YAML
    --serve                keep the results API up after the replay
    --host 127.0.0.1 --port 8000
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Callable, Optional, Sequence

from kartrace.config_loader import (
    get_feed_cfg,
    get_log_level,
    get_osc_cfg,
    get_race_cfg,
    get_server_bind,
    load_config,
)
from kartrace.feed import FeedError, read_events
from kartrace.race_engine import InvalidConfiguration, RaceConfig, RaceEngine, RaceFinished
from kartrace.sinks import ConsoleSink, MultiObserver, OscFinishOut

log = logging.getLogger("kartrace.session")

EXIT_OK = 0
EXIT_USAGE = 2


# ------------------------------------------------------------
# Operator prompts
# ------------------------------------------------------------
def _ask(prompt: str, default, cast=str, ask: Callable[[str], str] = input):
    raw = ask(f"{prompt} (Default {default}): ")
    raw = (raw or "").strip()
    if not raw:
        return default
    try:
        return cast(raw)
    except ValueError:
        raise InvalidConfiguration(f"{prompt}: {raw!r} is not a valid value") from None


def operator_path(p: str) -> Path:
    """Paths typed by the operator are relative to the working directory."""
    return Path(p).expanduser().resolve()


def prompt_settings(race: RaceConfig, feed_path: Path,
                    ask: Callable[[str], str] = input) -> tuple[RaceConfig, Path]:
    laps = _ask("Input total number of laps for the race", race.total_laps, int, ask)
    karts = _ask("Input maximum number of karts allowed in race", race.max_kart_count, int, ask)
    path = _ask("Input kart-times csv file path", str(feed_path), str, ask)
    return RaceConfig(total_laps=laps, max_kart_count=karts), operator_path(path)


# ------------------------------------------------------------
# Replay
# ------------------------------------------------------------
def run_replay(engine: RaceEngine, events) -> Optional[RaceFinished]:
    """Push every event through the engine; return the finish outcome if any."""
    finished: Optional[RaceFinished] = None
    seen = 0
    for ev in events:
        seen += 1
        outcome = engine.process_event(ev)
        if isinstance(outcome, RaceFinished):
            finished = outcome
    log.info("replay_done", extra={"events": seen, "laps": len(engine.laps), "state": engine.state})
    return finished


# ------------------------------------------------------------
# Entry point
# ------------------------------------------------------------
def _parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(description="Kart race lap tracker")
    ap.add_argument("--config", help="Path to config/config.yaml (optional)")
    ap.add_argument("--laps", type=int, help="Total laps (overrides YAML)")
    ap.add_argument("--max-karts", type=int, help="Maximum karts admitted (0 = nobody, negative = no cap)")
    ap.add_argument("--feed", help="Kart-times CSV file")
    ap.add_argument("--interactive", action="store_true", help="Prompt the operator for settings")
    ap.add_argument("--osc", action="store_true", help="Send the finish over OSC")
    ap.add_argument("--serve", action="store_true", help="Serve the results API after the replay")
    ap.add_argument("--host", help="Results API bind host")
    ap.add_argument("--port", type=int, help="Results API bind port")
    return ap.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None, ask: Callable[[str], str] = input) -> int:
    args = _parse_args(argv)

    try:
        if args.config:
            load_config(operator_path(args.config))
    except RuntimeError as e:
        print(f"config error: {e}", file=sys.stderr)
        return EXIT_USAGE

    logging.basicConfig(
        level=getattr(logging, get_log_level("INFO"), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    race_cfg = get_race_cfg()
    feed_cfg = get_feed_cfg()
    feed_path = feed_cfg["path"]

    try:
        if args.interactive:
            race_cfg, feed_path = prompt_settings(race_cfg, feed_path, ask)
        race_cfg = RaceConfig(
            total_laps=race_cfg.total_laps if args.laps is None else args.laps,
            max_kart_count=race_cfg.max_kart_count if args.max_karts is None else args.max_karts,
        )
        if args.feed:
            feed_path = operator_path(args.feed)

        osc_cfg = dict(get_osc_cfg())
        if args.osc:
            osc_cfg["enabled"] = True
        osc = OscFinishOut(osc_cfg)
        try:
            osc.start()
        except OSError as e:
            print(f"osc error: cannot reach {osc.host}:{osc.port}: {e}", file=sys.stderr)
            return EXIT_USAGE

        engine = RaceEngine.from_config(race_cfg, observer=MultiObserver([ConsoleSink(), osc]))
    except InvalidConfiguration as e:
        print(f"config error: {e}", file=sys.stderr)
        return EXIT_USAGE

    log.info("race_start", extra={"total_laps": race_cfg.total_laps,
                                  "max_kart_count": race_cfg.max_kart_count,
                                  "feed": str(feed_path)})
    try:
        events = read_events(feed_path, skip_header=bool(feed_cfg["skip_header"]),
                             strict=bool(feed_cfg["strict"]))
        run_replay(engine, events)
    except FileNotFoundError:
        print(f"feed error: no such file {feed_path}", file=sys.stderr)
        return EXIT_USAGE
    except FeedError as e:
        print(f"feed error: {e}", file=sys.stderr)
        return EXIT_USAGE
    finally:
        osc.stop()

    print("Completed feeding all kart times.")
    if not engine.finished:
        print("Race did not finish: no kart completed the final lap.")

    if args.serve:
        import uvicorn
        from kartrace.results_api import create_app

        host, port = get_server_bind()
        uvicorn.run(create_app(engine), host=args.host or host, port=args.port or port)
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
