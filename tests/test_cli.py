"""Command line entry point."""

import json

import pandas as pd
import pytest

from vcd.cli import main


@pytest.fixture
def observation_csv(tmp_path, histories):
    records = []
    for (row, col), history in histories.items():
        for obs in history:
            records.append({"row": row, "col": col, "date": obs.timestamp.isoformat(),
                            "sensor": obs.sensor, "red": obs.red, "nir": obs.nir,
                            "qa_pixel": obs.qa_pixel})
    path = tmp_path / "observations.csv"
    pd.DataFrame(records).to_csv(path, index=False)
    return path


def test_run(no_env, tmp_path, observation_csv, capsys):
    out_dir = tmp_path / "out"
    code = main(["run", str(observation_csv), "--output-dir", str(out_dir),
                 "--env-file", "", "--no-rasters", "--tile-size", "2"])
    assert code == 0

    results = pd.read_csv(out_dir / "pixel_results.csv")
    assert len(results) == 20
    summary = pd.read_csv(out_dir / "change_class_summary.csv")
    assert summary["pixels"].sum() == 15
    assert "VEGETATION CHANGE SUMMARY REPORT" in capsys.readouterr().out


def test_run_writes_rasters(no_env, tmp_path, observation_csv):
    out_dir = tmp_path / "out"
    assert main(["run", str(observation_csv), "--output-dir", str(out_dir), "--env-file", ""]) == 0
    assert (out_dir / "vegetation_change_class.tif").exists()
    assert (out_dir / "vegetation_establishment_epoch.tif").exists()


def test_run_rejects_invalid_configuration(no_env, tmp_path, observation_csv, capsys):
    code = main(["run", str(observation_csv), "--output-dir", str(tmp_path),
                 "--env-file", "", "--start-year", "2030"])
    assert code == 2
    assert "start_year" in capsys.readouterr().out


def test_show_config(no_env, capsys):
    assert main(["show-config", "--env-file", "", "--start-year", "1990"]) == 0
    shown = json.loads(capsys.readouterr().out)
    assert shown["analysis"]["start_year"] == 1990
    assert shown["analysis"]["active_taxonomy"] == "edge"


def test_epochs(no_env, capsys):
    assert main(["epochs", "--env-file", ""]) == 0
    lines = capsys.readouterr().out.strip().splitlines()
    assert lines[0] == "1990: 1990-1994"
    assert lines[-1] == "2020: 2020-2025"


def test_run_with_no_observations(no_env, tmp_path, capsys):
    path = tmp_path / "empty.csv"
    path.write_text("row,col,date,sensor,red,nir,qa_pixel\n")
    code = main(["run", str(path), "--output-dir", str(tmp_path / "out"), "--env-file", ""])
    assert code == 2
    assert "No observations" in capsys.readouterr().out
    assert not (tmp_path / "out" / "vegetation_change_class.tif").exists()
