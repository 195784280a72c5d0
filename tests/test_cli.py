"""Tests for the command line interface."""

import json
from pathlib import Path
from typing import Any, Dict, List

import pytest
from typer.testing import CliRunner

from bvt_reporter import cli

from tests.messages import StreamBuilder, two_case_stream

runner = CliRunner()


def _write_stream(path: Path, envelopes: List[Dict[str, Any]]) -> Path:
    path.write_text("\n".join(json.dumps(envelope) for envelope in envelopes) + "\n\n", encoding="utf-8")
    return path


@pytest.fixture
def local_settings(make_settings, monkeypatch):
    settings = make_settings()
    monkeypatch.setattr(cli, "settings", settings)
    return settings


def test_passing_replay_exits_zero(local_settings, tmp_path):
    builder = StreamBuilder()
    builder.add_scenario("Search", ["I search", "I see results"])
    envelopes = builder.preamble() + builder.run_case(0, [("PASSED", None), ("PASSED", None)])
    envelopes.append(builder.run_finished(True))
    messages = _write_stream(tmp_path / "messages.ndjson", envelopes)

    result = runner.invoke(cli.app, ["replay", "--messages", str(messages)])

    assert result.exit_code == 0
    assert "1 scenarios (1 passed)" in result.stdout
    assert "Overall: PASSED" in result.stdout


def test_failing_replay_exits_one_and_writes_report(local_settings, tmp_path):
    messages = _write_stream(tmp_path / "messages.ndjson", two_case_stream())
    output = tmp_path / "report.json"

    result = runner.invoke(
        cli.app, ["replay", "--messages", str(messages), "--report-output", str(output)]
    )

    assert result.exit_code == 1
    assert "2 scenarios (1 passed, 1 failed)" in result.stdout
    assert "element not found" in result.stdout
    report = json.loads(output.read_text(encoding="utf-8"))
    assert report["result"]["status"] == "FAILED"
    assert [case["scenarioName"] for case in report["testCases"]] == ["Valid login", "Invalid login"]


def test_malformed_line_exits_one(local_settings, tmp_path):
    messages = tmp_path / "messages.ndjson"
    messages.write_text('{"meta": {"protocolVersion": "22.0.0"}}\nnot json\n', encoding="utf-8")

    result = runner.invoke(cli.app, ["replay", "--messages", str(messages)])

    assert result.exit_code == 1


def test_missing_messages_file_is_a_usage_error(local_settings, tmp_path):
    result = runner.invoke(cli.app, ["replay", "--messages", str(tmp_path / "absent.ndjson")])

    assert result.exit_code == 2
