import os
import subprocess
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from provsign.logger import debug
from provsign.src.core.errors import ToolInvocationError


@dataclass(frozen=True)
class ToolResult:
    """Captured result of an external tool run (stdout and stderr merged)"""

    command: List[str]
    returncode: Optional[int]
    output: List[str] = field(default_factory=list)
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return not self.timed_out and self.returncode == 0

    def contains(self, text: str) -> bool:
        return any(text in line for line in self.output)


def _split_output(text) -> List[str]:
    if not text:
        return []
    if isinstance(text, bytes):
        text = text.decode(errors="replace")
    return [line for line in text.splitlines() if line.strip()]


def run_tool(
    cmd: Sequence[str],
    timeout: Optional[float] = None,
    env: Optional[Dict[str, str]] = None,
    interactive: bool = False,
) -> ToolResult:
    """Run an external tool and capture its output.

    A tool that cannot be launched raises ToolInvocationError. A tool that
    exceeds ``timeout`` is abandoned and reported with ``timed_out=True``.
    Interactive runs keep stdin attached to the terminal so the tool can
    prompt the user (e.g. for a keychain password).
    """
    cmd = [str(part) for part in cmd]
    debug(f"Running: {' '.join(cmd)}")

    run_env = None
    if env:
        run_env = os.environ.copy()
        run_env.update(env)

    try:
        result = subprocess.run(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            stdin=None if interactive else subprocess.DEVNULL,
            text=True,
            timeout=timeout,
            env=run_env,
        )
    except subprocess.TimeoutExpired as e:
        debug(f"{cmd[0]} timed out after {timeout}s")
        return ToolResult(
            command=cmd, returncode=None, output=_split_output(e.output), timed_out=True
        )
    except OSError as e:
        raise ToolInvocationError(f"Could not run {cmd[0]}: {e}") from e

    output = _split_output(result.stdout)
    for line in output:
        debug(f"[{cmd[0]}] {line}")
    return ToolResult(command=cmd, returncode=result.returncode, output=output)
