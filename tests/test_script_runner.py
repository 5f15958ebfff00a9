"""
Tests for the external content-filter script runner.
"""

import sys

import pytest
import yaml

from domain_sync.exceptions import ExternalScriptFailure, ScriptFailureReason
from domain_sync.script_runner import ExternalScriptRunner, default_command, parse_result_line
from domain_sync_cli.config import load_config
from domain_sync_cli.runtime import build_script_runner


def python(code: str):
    return [sys.executable, "-c", code]


class TestParseResultLine:
    """Tests for result line parsing."""

    def test_result_among_logs(self):
        """The result line is found among other output."""
        stdout = 'starting\nCONTENT_FILTER_RESULT={"checked": 12, "updated": 3}\ndone\n'
        result = parse_result_line(stdout)
        assert (result.checked, result.updated) == (12, 3)

    def test_missing(self):
        with pytest.raises(ExternalScriptFailure) as exc_info:
            parse_result_line("nothing here\n")
        assert exc_info.value.reason is ScriptFailureReason.MISSING_RESULT

    def test_malformed(self):
        with pytest.raises(ExternalScriptFailure) as exc_info:
            parse_result_line("CONTENT_FILTER_RESULT={checked: 1}\n")
        assert exc_info.value.reason is ScriptFailureReason.MALFORMED_RESULT

    def test_missing_keys(self):
        with pytest.raises(ExternalScriptFailure) as exc_info:
            parse_result_line('CONTENT_FILTER_RESULT={"checked": 1}\n')
        assert exc_info.value.reason is ScriptFailureReason.MALFORMED_RESULT


class TestExternalScriptRunner:
    """Tests for running real child processes."""

    @pytest.mark.asyncio
    async def test_success(self):
        """Counts are parsed from the child's stdout."""
        runner = ExternalScriptRunner(python(
            "import sys\n"
            "print('checking', file=sys.stderr)\n"
            "print('CONTENT_FILTER_RESULT={\"checked\": 5, \"updated\": 2}')"
        ))

        result = await runner.run()

        assert result.checked == 5
        assert result.updated == 2

    @pytest.mark.asyncio
    async def test_missing_result(self):
        runner = ExternalScriptRunner(python("print('all done')"))

        with pytest.raises(ExternalScriptFailure) as exc_info:
            await runner.run()

        assert exc_info.value.reason is ScriptFailureReason.MISSING_RESULT
        assert "all done" in exc_info.value.output_preview

    @pytest.mark.asyncio
    async def test_non_zero_exit(self):
        """Exit status and stderr are kept."""
        runner = ExternalScriptRunner(python(
            "import sys\nsys.stderr.write('boom')\nsys.exit(3)"
        ))

        with pytest.raises(ExternalScriptFailure) as exc_info:
            await runner.run()

        err = exc_info.value
        assert err.reason is ScriptFailureReason.NON_ZERO_EXIT
        assert err.returncode == 3
        assert err.code == "non_zero_exit"
        assert "boom" in err.stderr

    @pytest.mark.asyncio
    async def test_killed_by_signal(self):
        """Death by SIGKILL is reported distinctly."""
        runner = ExternalScriptRunner(python(
            "import os, signal\nos.kill(os.getpid(), signal.SIGKILL)"
        ))

        with pytest.raises(ExternalScriptFailure) as exc_info:
            await runner.run()

        err = exc_info.value
        assert err.reason is ScriptFailureReason.KILLED
        assert err.signal_name == "SIGKILL"
        assert "SIGKILL" in err.message

    @pytest.mark.asyncio
    async def test_timeout(self):
        """A child exceeding the ceiling is killed."""
        runner = ExternalScriptRunner(python("import time\ntime.sleep(30)"), timeout=0.5)

        with pytest.raises(ExternalScriptFailure) as exc_info:
            await runner.run()

        assert exc_info.value.reason is ScriptFailureReason.TIMEOUT

    @pytest.mark.asyncio
    async def test_spawn_failure(self):
        runner = ExternalScriptRunner(["/nonexistent/filter-script"])

        with pytest.raises(ExternalScriptFailure) as exc_info:
            await runner.run()

        assert exc_info.value.reason is ScriptFailureReason.SPAWN

    def test_empty_command(self):
        with pytest.raises(ValueError):
            ExternalScriptRunner([])

    def test_default_command(self):
        """The bundled entry point runs under the current interpreter."""
        command = default_command("/etc/domain-sync/config.yaml")
        assert command == [
            sys.executable, "-m", "domain_sync_cli.filter_cron",
            "--config", "/etc/domain-sync/config.yaml",
        ]

    def test_default_command_passes_profile(self):
        command = default_command("/etc/domain-sync/config.yaml", "sandbox")
        assert command[-4:] == ["--config", "/etc/domain-sync/config.yaml", "--profile", "sandbox"]

    @pytest.mark.asyncio
    async def test_timeout_keeps_partial_output(self):
        """Output written before the kill is attached to the failure."""
        code = (
            "import sys, time\n"
            "print('checked 10 of 40', flush=True)\n"
            "sys.stderr.write('batch 2 stalled\\n')\n"
            "sys.stderr.flush()\n"
            "time.sleep(30)"
        )
        runner = ExternalScriptRunner(python(code), timeout=2.0)

        with pytest.raises(ExternalScriptFailure) as exc_info:
            await runner.run()

        err = exc_info.value
        assert err.reason is ScriptFailureReason.TIMEOUT
        assert "checked 10 of 40" in err.stdout
        assert "batch 2 stalled" in err.stderr


class TestBuildScriptRunner:
    """Tests for the configured runner command."""

    def test_profile_reaches_child(self, tmp_path):
        """The child loads the same config file and profile as the parent."""
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump({"profiles": {"sandbox": {"database": {"path": str(tmp_path / "s.db")}}}}))
        config = load_config(str(path), "sandbox")

        command = build_script_runner(config).command

        assert command[command.index("--config") + 1] == config.source_path
        assert command[command.index("--profile") + 1] == "sandbox"

    def test_configured_command_wins(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump({"content_filter": {"script": {"command": "/usr/local/bin/check"}}}))

        assert build_script_runner(load_config(str(path))).command == ["/usr/local/bin/check"]
