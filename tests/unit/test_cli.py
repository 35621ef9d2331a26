import json
import sys
from unittest.mock import AsyncMock

import pytest

from redteam_agent.cli import run_scan
from redteam_agent.pipeline import PipelineResult
from redteam_agent.services.findings.normalizer import normalize


@pytest.fixture(autouse=True)
def _isolate(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(run_scan, "configure_logging", lambda level: None)
    for name in ("GITHUB_TOKEN", "GITHUB_REPOSITORY"):
        monkeypatch.delenv(name, raising=False)


def _run(monkeypatch, *argv):
    monkeypatch.setattr(sys, "argv", ["redteam-agent", *argv])
    return run_scan.main()


def test_no_issues_json_outputs_findings(monkeypatch, capsys, make_raw):
    captured = {}

    async def fake_pipeline(settings, tracker=None):  # noqa: ANN001
        captured["settings"] = settings
        return PipelineResult(findings=normalize([make_raw()]))

    monkeypatch.setattr(run_scan, "run_pipeline", fake_pipeline)

    assert _run(monkeypatch, "--no-issues", "--json") == 0

    output = json.loads(capsys.readouterr().out)
    assert captured["settings"].issues.enabled is False
    assert output[0]["tool"] == "secret-detection"
    assert output[0]["location"]["lines"] == {"start": 1, "end": 1}


def test_demo_sets_batch_label(monkeypatch, capsys):
    pipeline = AsyncMock(return_value=PipelineResult(findings=[]))
    monkeypatch.setattr(run_scan, "run_pipeline", pipeline)

    assert _run(monkeypatch, "--demo", "--no-issues") == 0

    settings = pipeline.call_args.args[0]
    assert settings.issues.batch_label == "demo:redteam-example"
    assert "Findings: 0" in capsys.readouterr().out


def test_missing_token_exits_with_config_error(monkeypatch, capsys):
    pipeline = AsyncMock()
    monkeypatch.setattr(run_scan, "run_pipeline", pipeline)

    assert _run(monkeypatch) == 2
    assert "GitHub token is required" in capsys.readouterr().err
    pipeline.assert_not_called()


def test_invalid_config_file_exits_with_config_error(monkeypatch, tmp_path, capsys):
    path = tmp_path / "bad.json"
    path.write_text("{not json")

    assert _run(monkeypatch, "--config", str(path)) == 2
    assert "ERROR" in capsys.readouterr().err


def test_unexpected_error_exits_1(monkeypatch):
    monkeypatch.setattr(
        run_scan, "run_pipeline", AsyncMock(side_effect=RuntimeError("kaboom"))
    )

    assert _run(monkeypatch, "--no-issues") == 1


def test_value_error_during_scan_exits_1(monkeypatch):
    monkeypatch.setattr(
        run_scan, "run_pipeline", AsyncMock(side_effect=ValueError("bad severity"))
    )

    assert _run(monkeypatch, "--no-issues") == 1


def test_tracker_is_passed_to_pipeline_and_closed(monkeypatch, capsys):
    monkeypatch.setenv("GITHUB_TOKEN", "ghs_test")
    monkeypatch.setenv("GITHUB_REPOSITORY", "acme/app")
    pipeline = AsyncMock(return_value=PipelineResult(findings=[]))
    monkeypatch.setattr(run_scan, "run_pipeline", pipeline)

    assert _run(monkeypatch) == 0

    tracker = pipeline.call_args.kwargs["tracker"]
    assert tracker.owner == "acme"
    assert tracker._client.is_closed
