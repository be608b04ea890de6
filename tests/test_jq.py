"""Tests for the restricted jq patch applier.

subprocess.run is mocked throughout; no jq binary is needed.
"""

from __future__ import annotations

import json
import subprocess
from unittest.mock import MagicMock, patch

import pytest

from ocpipe.patch.jq import (
    JqPatchApplier,
    apply_jq_patch,
    check_jq_patch,
    extract_jq_patch,
    resolve_jq_binary,
)


def _completed(stdout: str = "", returncode: int = 0, stderr: str = "") -> subprocess.CompletedProcess:
    return subprocess.CompletedProcess(args=["jq"], returncode=returncode, stdout=stdout, stderr=stderr)


# ---------------------------------------------------------------------------
# Screening
# ---------------------------------------------------------------------------


class TestCheckJqPatch:
    @pytest.mark.parametrize(
        "patch_text",
        [
            '.severity = "high"',
            '.severity = "high" | del(.priority)',
            ".items[0].name = .items[0].title | del(.items[0].title)",
            ".score = -1",
        ],
    )
    def test_allowed(self, patch_text):
        assert check_jq_patch(patch_text) is None

    @pytest.mark.parametrize(
        "patch_text",
        [
            ".foo = $ENV.SECRET",
            ".foo = env.HOME",
            ".foo = input",
            "[inputs]",
            '.x = ("ls" | system)',
            ".x = @base64d",
            "import \"a\" as a; .",
            ".x = `id`",
            ".x = (1 | error)",
            ".x | debug",
            "halt_error",
        ],
    )
    def test_denied(self, patch_text):
        assert check_jq_patch(patch_text) is not None

    def test_disallowed_characters(self):
        assert check_jq_patch(".a = 1; .b = 2") == "disallowed characters"


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------


class TestApplyJqPatch:
    def test_env_patch_rejected_without_running_jq(self):
        doc = {"foo": "bar"}
        with patch("ocpipe.patch.jq.subprocess.run") as run:
            result = apply_jq_patch(doc, ".foo = $ENV.SECRET")
        run.assert_not_called()
        assert result == {"foo": "bar"}

    def test_runs_with_argument_vector(self):
        doc = {"a": 1}
        with patch("ocpipe.patch.jq.subprocess.run", return_value=_completed('{"a": 2}\n')) as run:
            result = apply_jq_patch(doc, ".a = 2", jq_bin="/opt/jq")
        assert result == {"a": 2}
        args, kwargs = run.call_args
        assert args[0] == ["/opt/jq", "--", ".a = 2"]
        assert kwargs["input"] == json.dumps(doc)
        assert "shell" not in kwargs

    def test_binary_from_environment(self, monkeypatch):
        monkeypatch.setenv("OCPIPE_JQ_BIN", "/usr/local/bin/jq")
        assert resolve_jq_binary() == "/usr/local/bin/jq"
        assert resolve_jq_binary("/explicit/jq") == "/explicit/jq"
        monkeypatch.delenv("OCPIPE_JQ_BIN")
        assert resolve_jq_binary() == "jq"

    @pytest.mark.parametrize(
        "outcome",
        [
            _completed("", returncode=3, stderr="jq: error: syntax"),
            _completed("not json"),
            _completed("[1, 2]"),
            _completed('{"a": ' + "[" * 100_000 + "]" * 100_000 + "}"),
        ],
    )
    def test_bad_results_void_the_patch(self, outcome):
        with patch("ocpipe.patch.jq.subprocess.run", return_value=outcome):
            assert apply_jq_patch({"a": 1}, ".a = 2") == {"a": 1}

    @pytest.mark.parametrize(
        "error",
        [FileNotFoundError("jq"), subprocess.TimeoutExpired(cmd="jq", timeout=10), PermissionError("denied")],
    )
    def test_process_errors_void_the_patch(self, error):
        with patch("ocpipe.patch.jq.subprocess.run", side_effect=error):
            assert apply_jq_patch({"a": 1}, ".a = 2") == {"a": 1}

    def test_applier_passes_settings(self):
        applier = JqPatchApplier(jq_bin="/bin/jq", timeout=2.5)
        run = MagicMock(return_value=_completed('{"b": true}'))
        with patch("ocpipe.patch.jq.subprocess.run", run):
            assert applier.apply({"a": 1}, applier.extract(".b = true")) == {"b": True}
        assert run.call_args.kwargs["timeout"] == 2.5
        assert run.call_args.args[0][0] == "/bin/jq"


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------


class TestExtractJqPatch:
    def test_picks_filter_line(self):
        assert extract_jq_patch("Here is the fix:\n.age = 30\nThanks") == ".age = 30"

    def test_del_line(self):
        assert extract_jq_patch('del(.type) | .issue_type = "bug"') == 'del(.type) | .issue_type = "bug"'

    def test_strips_bullet_and_backticks(self):
        assert extract_jq_patch("- `.age = 30`") == ".age = 30"

    def test_falls_back_to_whole_reply(self):
        assert extract_jq_patch("  no idea  ") == "no idea"
