"""CLI tests for ocpipe -- list and show via Click's CliRunner.

Checkpoints are written with CheckpointStore into tmp_path and the CLI is
pointed at that directory with --checkpoint-dir.
"""

from __future__ import annotations

import pytest
from click.testing import CliRunner

from ocpipe import BaseState, CheckpointStore, ModelConfig, StepRecord, StepResult
from ocpipe.cli import cli


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def runner():
    """Create a Click test runner."""
    return CliRunner()


@pytest.fixture
def ckpt_dir(tmp_path) -> str:
    """Directory with two checkpoints for pipeline "review"."""
    store = CheckpointStore(tmp_path)
    older = BaseState(session_id="20260101_090000", phase="init")
    newer = BaseState(session_id="20260102_090000", phase="ranked", agent_session_id="ses_abc")
    newer.steps.append(
        StepRecord(
            step_name="FindIssues",
            result=StepResult(
                data={"issues": [{"line": 3, "why": "[bold]not markup[/bold]"}]},
                step_name="FindIssues",
                duration=1520.4,
                session_id="ses_abc",
                model=ModelConfig(provider_id="openai", model_id="gpt-4o"),
                attempt=2,
            ),
        )
    )
    store.save("review", older)
    store.save("review", newer)
    return str(tmp_path)


# ---------------------------------------------------------------------------
# list
# ---------------------------------------------------------------------------


class TestList:
    def test_lists_newest_first(self, runner, ckpt_dir):
        result = runner.invoke(cli, ["--checkpoint-dir", ckpt_dir, "list", "review"])
        assert result.exit_code == 0, result.output
        assert "Session" in result.output
        assert result.output.index("20260102_090000") < result.output.index("20260101_090000")
        assert "ranked" in result.output

    def test_empty(self, runner, tmp_path):
        result = runner.invoke(cli, ["--checkpoint-dir", str(tmp_path), "list", "review"])
        assert result.exit_code == 0
        assert "No checkpoints." in result.output

    def test_envvar(self, runner, ckpt_dir):
        result = runner.invoke(cli, ["list", "review"], env={"OCPIPE_CHECKPOINT_DIR": ckpt_dir})
        assert result.exit_code == 0
        assert "20260102_090000" in result.output

    def test_unreadable_checkpoint_is_listed(self, runner, tmp_path):
        (tmp_path / "review_20260105_000000.json").write_text("{oops", encoding="utf-8")
        result = runner.invoke(cli, ["--checkpoint-dir", str(tmp_path), "list", "review"])
        assert result.exit_code == 0
        assert "20260105_000000" in result.output


# ---------------------------------------------------------------------------
# show
# ---------------------------------------------------------------------------


class TestShow:
    def test_summary_and_steps(self, runner, ckpt_dir):
        result = runner.invoke(cli, ["--checkpoint-dir", ckpt_dir, "show", "review", "20260102_090000"])
        assert result.exit_code == 0, result.output
        assert "ranked" in result.output
        assert "ses_abc" in result.output
        assert "FindIssues" in result.output
        assert "1520ms" in result.output
        assert "openai/gpt-4o" in result.output
        assert '"line": 3' not in result.output

    def test_verbose_prints_data(self, runner, ckpt_dir):
        result = runner.invoke(
            cli, ["--checkpoint-dir", ckpt_dir, "show", "review", "20260102_090000", "-v"]
        )
        assert result.exit_code == 0, result.output
        assert '"line": 3' in result.output
        assert "[bold]not markup[/bold]" in result.output

    def test_no_steps(self, runner, ckpt_dir):
        result = runner.invoke(cli, ["--checkpoint-dir", ckpt_dir, "show", "review", "20260101_090000"])
        assert result.exit_code == 0
        assert "No steps recorded." in result.output

    def test_missing_checkpoint(self, runner, ckpt_dir):
        result = runner.invoke(cli, ["--checkpoint-dir", ckpt_dir, "show", "review", "nope"])
        assert result.exit_code == 1
        assert "Error:" in result.output
        assert "No checkpoint for review/nope" in result.output

    def test_corrupt_checkpoint(self, runner, tmp_path):
        (tmp_path / "review_bad.json").write_text("{oops", encoding="utf-8")
        result = runner.invoke(cli, ["--checkpoint-dir", str(tmp_path), "show", "review", "bad"])
        assert result.exit_code == 1
        assert "Cannot load checkpoint" in result.output
