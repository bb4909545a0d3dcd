"""CLI tests for the `runpilot` command group."""

from __future__ import annotations

import json

import pytest
from click.testing import CliRunner

from runpilot.cli.commands.root import cli

pytestmark = pytest.mark.unit


@pytest.fixture(autouse=True)
def _isolated_dirs(tmp_path, monkeypatch):
    monkeypatch.setenv("RUNPILOT_CONFIG_DIR", str(tmp_path / "config"))
    monkeypatch.setenv("RUNPILOT_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)


def test_version_flag() -> None:
    result = CliRunner().invoke(cli, ["--version"])

    assert result.exit_code == 0
    assert result.output.startswith("runpilot ")


def test_config_init_then_show(tmp_path) -> None:
    runner = CliRunner()

    init = runner.invoke(cli, ["config", "--init"])
    again = runner.invoke(cli, ["config", "--init"])
    shown = runner.invoke(cli, ["config"])

    assert init.exit_code == 0
    assert (tmp_path / "config" / "config.toml").exists()
    assert again.exit_code != 0
    assert "use --force" in again.output
    assert "[timing]" in shown.output
    assert "(defaults)" not in shown.output


def test_run_completes_and_prints_json() -> None:
    result = CliRunner().invoke(cli, ["run", "Write the weekly report", "--fast", "--json"])

    assert result.exit_code == 0, result.output
    payload = json.loads(result.output)
    assert payload["run"]["status"] == "completed"
    assert payload["run"]["progressPct"] == 100
    assert payload["messages"][-1]["kind"] == "deliverable"


@pytest.mark.parametrize(("decision", "status"), [("approve", "completed"), ("deny", "failed")])
def test_run_answers_approval_gate(decision: str, status: str) -> None:
    result = CliRunner().invoke(
        cli,
        ["run", "Deploy the release to staging", "--fast", "--json", "--decision", decision],
    )

    assert result.exit_code == 0, result.output
    payload = json.loads(result.output)
    assert payload["run"]["status"] == status
    texts = [message["text"] for message in payload["messages"]]
    assert any(text.startswith("Approval gate:") for text in texts)


def test_run_prints_thread_in_text_mode() -> None:
    result = CliRunner().invoke(cli, ["run", "Summarize the channel", "--fast"])

    assert result.exit_code == 0, result.output
    assert "## Summarize the channel" in result.output
    assert "Status: completed (100%)" in result.output


def test_autopilot_preview_prints_draft() -> None:
    result = CliRunner().invoke(
        cli, ["autopilot-preview", "Post a recap every hour", "--channel", "eng", "--tz", "UTC"]
    )

    assert result.exit_code == 0, result.output
    draft = json.loads(result.output)
    assert draft["cadence"]["kind"] == "hourly"
    assert draft["destination"]["id"] == "eng"


def test_run_exports_debug_log(tmp_path) -> None:
    result = CliRunner().invoke(cli, ["run", "Summarize the channel", "--fast", "--export-logs"])

    assert result.exit_code == 0, result.output
    log_path = tmp_path / "data" / "debug.log"
    content = log_path.read_text(encoding="utf-8")
    assert "Run started" in content
    assert "Run completed" in content
    assert "Autopilot scheduler" not in content
