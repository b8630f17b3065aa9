import sys

import pytest

from provsign.src.core.errors import ToolInvocationError
from provsign.src.core.process_runner import ToolResult, run_tool


def test_run_tool_merges_stderr_into_output() -> None:
    result = run_tool(
        [sys.executable, "-c", "import sys; print('out'); print('err', file=sys.stderr)"]
    )
    assert result.ok
    assert sorted(result.output) == ["err", "out"]


def test_run_tool_reports_exit_code() -> None:
    result = run_tool([sys.executable, "-c", "raise SystemExit(3)"])
    assert result.returncode == 3
    assert not result.ok


def test_run_tool_times_out() -> None:
    result = run_tool([sys.executable, "-c", "import time; time.sleep(5)"], timeout=0.2)
    assert result.timed_out
    assert not result.ok


def test_run_tool_passes_extra_environment() -> None:
    result = run_tool(
        [sys.executable, "-c", "import os; print(os.environ['PROVSIGN_TEST_VAR'])"],
        env={"PROVSIGN_TEST_VAR": "hello"},
    )
    assert result.output == ["hello"]


def test_run_tool_missing_binary() -> None:
    with pytest.raises(ToolInvocationError):
        run_tool(["provsign-no-such-tool-xyz"])


def test_contains_searches_every_line() -> None:
    result = ToolResult(["x"], 0, ["first", "second: valid on disk"])
    assert result.contains("valid on disk")
    assert not result.contains("explicit requirement satisfied")
