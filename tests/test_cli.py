import os
import csv
import subprocess
import sys


def test_cli_schedule(tmp_path):
    out_csv = tmp_path / "out.csv"
    cmd = [sys.executable, "-m", "dosetrack.cli", "schedule", "--pattern", "4,4,3", "--start", "2025-11-01", "--days", "14", "--csv", str(out_csv)]
    subprocess.check_call(cmd, cwd=os.getcwd())
    assert out_csv.exists()
    with open(out_csv, newline="") as f:
        rows = list(csv.reader(f))
        assert len(rows) == 15
        assert rows[0][0] == "date"
        assert [r[2] for r in rows[1:5]] == ["4", "4", "3", "4"]
        assert rows[4][3] == "1"


def test_cli_dose():
    cmd = [sys.executable, "-m", "dosetrack.cli", "dose", "--pattern", "4,4,3", "--start", "2025-11-01", "--date", "2025-11-03"]
    out = subprocess.check_output(cmd, cwd=os.getcwd(), text=True)
    assert "2025-11-03: 3mg (Day 3/3)" in out


def test_cli_rejects_invalid_pattern(tmp_path):
    cmd = [sys.executable, "-m", "dosetrack.cli", "schedule", "--pattern", "4,0", "--start", "2025-11-01", "--csv", str(tmp_path / "x.csv")]
    result = subprocess.run(cmd, cwd=os.getcwd(), capture_output=True, text=True)
    assert result.returncode != 0
    assert "error:" in result.stderr
