"""End-to-end replay through the CLI entry point."""

import pytest

import kartrace.config_loader as config_loader
from kartrace.race_session import main, prompt_settings
from kartrace.race_engine import InvalidConfiguration, RaceConfig

FEED = """kart,passing_time
1,12:00:00.0000000
2,12:00:00.2500000
1,12:01:02.1250000
2,12:01:03.0000000
1,12:02:03.5000000
2,12:02:06.2500000
"""


@pytest.fixture(autouse=True)
def _restore_config(monkeypatch):
    monkeypatch.setattr(config_loader, "CONFIG", dict(config_loader.CONFIG))


@pytest.fixture
def setup(tmp_path):
    feed = tmp_path / "karttimes.csv"
    feed.write_text(FEED, encoding="utf-8")
    cfg = tmp_path / "config.yaml"
    cfg.write_text(
        f"race:\n  total_laps: 2\n  max_kart_count: 5\nfeed:\n  path: {feed}\n"
        "integrations:\n  osc_out:\n    enabled: false\n",
        encoding="utf-8",
    )
    return cfg, feed


def test_replay_prints_winner(setup, capsys):
    cfg, _ = setup
    assert main(["--config", str(cfg)]) == 0
    out = capsys.readouterr().out
    # kart 2 lap 1 (62.75s) is the longest lap when kart 1 closes lap 2
    assert "Winner identified as kart 2 by finishing lap 1 in duration 00:01:02.7500000" in out
    assert "Completed feeding all kart times." in out


def test_flags_override_yaml(setup, capsys):
    cfg, _ = setup
    assert main(["--config", str(cfg), "--laps", "5"]) == 0
    out = capsys.readouterr().out
    assert "Winner identified" not in out
    assert "Race did not finish" in out


def test_zero_laps_is_a_config_error(setup, capsys):
    cfg, _ = setup
    assert main(["--config", str(cfg), "--laps", "0"]) == 2
    assert "config error" in capsys.readouterr().err


def test_missing_feed(setup, tmp_path, capsys):
    cfg, _ = setup
    assert main(["--config", str(cfg), "--feed", str(tmp_path / "gone.csv")]) == 2
    assert "no such file" in capsys.readouterr().err


def test_interactive_prompts(setup, capsys):
    cfg, feed = setup
    answers = iter(["1", "", str(feed)])
    assert main(["--config", str(cfg), "--interactive"], ask=lambda _prompt: next(answers)) == 0
    # one lap: kart 1 finishes at 62.125s, the only completed lap
    assert "Winner identified as kart 1 by finishing lap 1" in capsys.readouterr().out


def test_prompt_defaults_on_blank(tmp_path):
    race, path = prompt_settings(RaceConfig(4, 5), tmp_path / "k.csv", ask=lambda _p: "  ")
    assert race == RaceConfig(4, 5)
    assert path == tmp_path / "k.csv"


def test_prompt_rejects_garbage(tmp_path):
    with pytest.raises(InvalidConfiguration):
        prompt_settings(RaceConfig(4, 5), tmp_path / "k.csv", ask=lambda _p: "many")


def test_feed_flag_relative_to_working_directory(setup, tmp_path, monkeypatch, capsys):
    cfg, feed = setup
    workdir = tmp_path / "pits"
    workdir.mkdir()
    (workdir / "mine.csv").write_text(FEED, encoding="utf-8")
    monkeypatch.chdir(workdir)
    assert main(["--config", str(cfg), "--feed", "mine.csv", "--laps", "1"]) == 0
    assert "Winner identified as kart 1 by finishing lap 1" in capsys.readouterr().out


def test_config_flag_relative_to_working_directory(setup, tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    assert main(["--config", "config.yaml"]) == 0
    assert "Completed feeding all kart times." in capsys.readouterr().out


def test_prompted_path_relative_to_working_directory(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    answers = iter(["", "", "sub/k.csv"])
    _, path = prompt_settings(RaceConfig(4, 5), tmp_path / "x.csv", ask=lambda _p: next(answers))
    assert path == (tmp_path / "sub" / "k.csv").resolve()


def test_unreachable_osc_host_is_a_usage_error(setup, monkeypatch, capsys):
    cfg, _ = setup

    def refuse(self):
        raise OSError("Name or service not known")

    monkeypatch.setattr("kartrace.race_session.OscFinishOut.start", refuse)
    assert main(["--config", str(cfg), "--osc"]) == 2
    assert "osc error" in capsys.readouterr().err
