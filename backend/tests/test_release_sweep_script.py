"""
Tests for the cron release sweep runner (scripts/run_release_sweep.py)
"""

import importlib.util
import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

SCRIPT_PATH = Path(__file__).resolve().parent.parent / "scripts" / "run_release_sweep.py"


@pytest.fixture
def runner():
    spec = importlib.util.spec_from_file_location("run_release_sweep", SCRIPT_PATH)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


class _FakeSession:
    closed = False

    def close(self):
        self.closed = True


def _summary(**overrides):
    summary = {"found": 0, "released_count": 0, "errors_count": 0, "skipped": False}
    summary.update(overrides)
    return summary


def test_parse_as_of(runner):
    assert runner.parse_as_of("2025-01-27T12:00:00+02:00") == datetime(2025, 1, 27, 10, tzinfo=timezone.utc)
    assert runner.parse_as_of("2025-01-27T12:00:00") == datetime(2025, 1, 27, 12, tzinfo=timezone.utc)
    assert runner.parse_as_of(None).tzinfo is not None
    with pytest.raises(ValueError):
        runner.parse_as_of("yesterday")


def test_generate_trace_id(runner):
    trace_id = runner.generate_trace_id(datetime(2025, 1, 27, 12, 30, tzinfo=timezone.utc))
    assert trace_id.startswith("job-release-202501271230-")
    assert len(trace_id.rsplit("-", 1)[1]) == 8


def test_main_success(runner, monkeypatch, capsys):
    session = _FakeSession()
    calls = {}

    def fake_release(db, **kwargs):
        calls.update(kwargs)
        return _summary(found=1, released_count=1)

    monkeypatch.setattr(runner, "SessionLocal", lambda: session)
    monkeypatch.setattr(runner, "release_held_funds", fake_release)

    with pytest.raises(SystemExit) as exc_info:
        runner.main(["--as-of", "2025-01-27T12:00:00+00:00", "--dry-run", "--max-transactions", "5"])

    assert exc_info.value.code == 0
    output = json.loads(capsys.readouterr().out)
    assert output["job"] == "release_held_funds"
    assert output["dry_run"] is True
    assert output["summary"]["released_count"] == 1
    assert output["exit_code"] == 0
    assert calls["max_transactions"] == 5
    assert calls["publisher"] is None
    assert calls["now"] == datetime(2025, 1, 27, 12, tzinfo=timezone.utc)
    assert session.closed


@pytest.mark.parametrize("summary", [_summary(errors_count=1), _summary(skipped=True)])
def test_main_nonzero_exit(runner, monkeypatch, capsys, summary):
    monkeypatch.setattr(runner, "SessionLocal", _FakeSession)
    monkeypatch.setattr(runner, "release_held_funds", lambda db, **kwargs: summary)

    with pytest.raises(SystemExit) as exc_info:
        runner.main(["--dry-run"])

    assert exc_info.value.code == 1
    assert json.loads(capsys.readouterr().out)["exit_code"] == 1


def test_main_unexpected_error(runner, monkeypatch, capsys):
    def boom(db, **kwargs):
        raise RuntimeError("connection reset")

    monkeypatch.setattr(runner, "SessionLocal", _FakeSession)
    monkeypatch.setattr(runner, "release_held_funds", boom)

    with pytest.raises(SystemExit) as exc_info:
        runner.main(["--dry-run"])

    assert exc_info.value.code == 1
    error = json.loads(capsys.readouterr().err)
    assert "RuntimeError" in error["error"]


def test_main_invalid_as_of(runner, capsys):
    with pytest.raises(SystemExit) as exc_info:
        runner.main(["--as-of", "not-a-date"])
    assert exc_info.value.code == 1
    assert "Invalid datetime format" in json.loads(capsys.readouterr().err)["error"]
