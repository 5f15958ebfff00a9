"""
External Content Filter Script Runner

Runs the content-filter check in a separate process and parses the one
result line it prints. The child process does the check and the merge
itself; the parent only learns the counts.
"""

import asyncio
import json
import logging
import re
import signal
import sys
from dataclasses import dataclass
from typing import Dict, List, Optional

from domain_sync.exceptions import ExternalScriptFailure, ScriptFailureReason

logger = logging.getLogger("domain_sync.script_runner")

RESULT_PREFIX = "CONTENT_FILTER_RESULT="

DEFAULT_TIMEOUT = 300.0

# Seconds to keep reading a killed child's pipes
READER_GRACE = 5.0

_RESULT_LINE = re.compile(r"^" + re.escape(RESULT_PREFIX) + r"(.+)$", re.MULTILINE)


@dataclass
class ScriptResult:
    """Counts reported by the external script."""
    checked: int
    updated: int


async def _drain(stream: asyncio.StreamReader, sink: bytearray) -> None:
    while True:
        chunk = await stream.read(4096)
        if not chunk:
            return
        sink.extend(chunk)


def _decode(raw: bytearray) -> str:
    return bytes(raw).decode("utf-8", errors="replace")


def default_command(config_path: Optional[str] = None, profile: Optional[str] = None) -> List[str]:
    """Command line of the bundled filter_cron entry point."""
    command = [sys.executable, "-m", "domain_sync_cli.filter_cron"]
    if config_path:
        command += ["--config", config_path]
    if profile:
        command += ["--profile", profile]
    return command


def parse_result_line(stdout: str, stderr: str = "") -> ScriptResult:
    """
    Find and decode the CONTENT_FILTER_RESULT line.

    Raises:
        ExternalScriptFailure: MISSING_RESULT or MALFORMED_RESULT
    """
    matches = _RESULT_LINE.findall(stdout)
    if not matches:
        raise ExternalScriptFailure(
            ScriptFailureReason.MISSING_RESULT,
            "Script finished without a result line",
            stdout=stdout,
            stderr=stderr,
            returncode=0,
        )

    try:
        payload = json.loads(matches[-1].strip())
        return ScriptResult(checked=int(payload["checked"]), updated=int(payload["updated"]))
    except (ValueError, TypeError, KeyError) as e:
        raise ExternalScriptFailure(
            ScriptFailureReason.MALFORMED_RESULT,
            f"Could not parse script result: {e}",
            stdout=stdout,
            stderr=stderr,
            returncode=0,
        )


class ExternalScriptRunner:
    """
    Spawns the content-filter script and reports its outcome.

    Example:
        runner = ExternalScriptRunner(default_command("/etc/domain-sync/config.yaml"))
        result = await runner.run()
        print(result.checked, result.updated)
    """

    def __init__(
        self,
        command: List[str],
        timeout: float = DEFAULT_TIMEOUT,
        cwd: Optional[str] = None,
        env: Optional[Dict[str, str]] = None,
    ):
        """
        Initialize runner.

        Args:
            command: Program and arguments
            timeout: Seconds before the process is killed
            cwd: Working directory of the child
            env: Environment of the child (inherits ours if None)
        """
        if not command:
            raise ValueError("External script command is empty")
        self.command = list(command)
        self.timeout = timeout
        self.cwd = cwd
        self.env = env

    async def run(self) -> ScriptResult:
        """
        Run the script once.

        Raises:
            ExternalScriptFailure: On spawn error, timeout, non-zero exit,
                death by signal, or a missing/malformed result line
        """
        logger.info(f"Running content filter script: {' '.join(self.command)}")

        try:
            proc = await asyncio.create_subprocess_exec(
                *self.command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self.cwd,
                env=self.env,
            )
        except OSError as e:
            raise ExternalScriptFailure(
                ScriptFailureReason.SPAWN, f"Could not start script: {e}"
            )

        # Output is collected as it arrives so a killed child still leaves a preview
        raw_out, raw_err = bytearray(), bytearray()
        readers = asyncio.gather(_drain(proc.stdout, raw_out), _drain(proc.stderr, raw_err))
        try:
            await asyncio.wait_for(proc.wait(), timeout=self.timeout)
            await readers
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            await asyncio.wait([readers], timeout=READER_GRACE)
            readers.cancel()
            failure = ExternalScriptFailure(
                ScriptFailureReason.TIMEOUT,
                f"Script did not finish within {self.timeout:.0f}s and was killed",
                stdout=_decode(raw_out),
                stderr=_decode(raw_err),
                returncode=proc.returncode,
            )
            logger.error(f"{failure}: {failure.output_preview or '(no output)'}")
            raise failure

        stdout = _decode(raw_out)
        stderr = _decode(raw_err)
        rc = proc.returncode

        if rc is not None and rc < 0:
            try:
                signal_name = signal.Signals(-rc).name
            except ValueError:
                signal_name = f"signal {-rc}"
            if -rc == signal.SIGKILL:
                message = "Script was killed with SIGKILL (out of memory or external kill)"
            else:
                message = f"Script terminated by {signal_name}"
            raise ExternalScriptFailure(
                ScriptFailureReason.KILLED,
                message,
                stdout=stdout,
                stderr=stderr,
                returncode=rc,
                signal_name=signal_name,
            )

        if rc:
            failure = ExternalScriptFailure(
                ScriptFailureReason.NON_ZERO_EXIT,
                f"Script exited with code {rc}",
                stdout=stdout,
                stderr=stderr,
                returncode=rc,
            )
            logger.error(f"{failure}: {failure.output_preview}")
            raise failure

        result = parse_result_line(stdout, stderr)
        logger.info(f"Content filter script done: checked={result.checked} updated={result.updated}")
        return result
