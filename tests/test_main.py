"""
End-to-end tests for the command line entry point.
"""

import csv
import json
import os

import pytest

from main import main

SMALL = ["--agents", "10", "--resources", "20", "--minutes", "0.02",
         "--speed", "10", "--seed", "5"]


@pytest.mark.parametrize("engine", ["data-oriented", "legacy"])
def test_run_mode_writes_outputs(tmp_path, capsys, engine):
    main(SMALL + ["--engine", engine, "--outdir", str(tmp_path)])
    out = capsys.readouterr().out
    assert "Headless Simulation Summary" in out
    base = tmp_path / "run"
    with open(base / "diagnostics" / "diagnostics.json") as f:
        data = json.load(f)
    assert data["engine"] == engine
    assert data["seed"] == 5
    assert os.path.isfile(base / "snapshots" / "world_final.png")
    assert os.path.isfile(base / "charts" / "population.png")


def test_optimize_mode_logs_every_candidate(tmp_path, capsys):
    main(SMALL + ["--mode", "optimize", "--iterations", "1", "--variations", "2",
                  "--outdir", str(tmp_path)])
    assert "Optimised:" in capsys.readouterr().out
    with open(tmp_path / "optimize" / "sweep_log.csv", newline="") as f:
        rows = list(csv.DictReader(f))
    assert len(rows) == 2
    assert os.path.isfile(tmp_path / "optimize" / "charts" / "sweep.png")


def test_invalid_arguments_exit(tmp_path):
    with pytest.raises(SystemExit):
        main(SMALL + ["--workers", "0", "--outdir", str(tmp_path)])


def test_negative_seed_exits_cleanly(tmp_path):
    with pytest.raises(SystemExit) as exc:
        main(["--agents", "1", "--resources", "1", "--seed", "-5", "--outdir", str(tmp_path)])
    assert "seed must be >= 0" in str(exc.value)
