from pathlib import Path

from provsign.src.constants.platforms import IOS, MACOS
from provsign.src.core import process_runner
from provsign.src.core.errors import ToolInvocationError, VerificationMismatchError
from provsign.src.core.process_runner import ToolResult
from provsign.src.core.signing_executor import SigningExecutor, SigningState

from conftest import make_identity

VERIFY_OK = [
    "/tmp/App.app: valid on disk",
    "/tmp/App.app: satisfies its Designated Requirement",
]


class FakeTools:
    """Scripted replacement for process_runner.run_tool"""

    def __init__(self, sign_results=None, verify_result=None, xcrun_ok=True):
        self.sign_results = list(sign_results or [ToolResult([], 0, [])])
        self.verify_result = verify_result or ToolResult([], 0, VERIFY_OK)
        self.xcrun_ok = xcrun_ok
        self.calls = []
        self.envs = []

    def __call__(self, cmd, timeout=None, env=None, interactive=False):
        self.calls.append(list(cmd))
        if cmd[0] == "xcrun":
            if self.xcrun_ok:
                return ToolResult(cmd, 0, ["/Xcode/usr/bin/codesign_allocate"])
            return ToolResult(cmd, 1, ["error"])
        if "--verify" in cmd:
            return self.verify_result
        self.envs.append(env)
        return self.sign_results.pop(0)

    @property
    def sign_calls(self):
        return [c for c in self.calls if c[0] == "codesign" and "--verify" not in c]

    @property
    def verify_calls(self):
        return [c for c in self.calls if "--verify" in c]


def test_sign_and_verify_success(monkeypatch) -> None:
    tools = FakeTools()
    monkeypatch.setattr(process_runner, "run_tool", tools)
    executor = SigningExecutor(IOS)

    outcome = executor.execute(make_identity(fingerprint="F1"), Path("/tmp/App.app"), Path("/tmp/E.plist"))

    assert outcome.state is SigningState.SIGNED
    assert outcome.succeeded
    assert executor.state is SigningState.SIGNED
    assert tools.sign_calls == [
        [
            "codesign",
            "--generate-entitlement-der",
            "--force",
            "--sign",
            "F1",
            "--entitlements",
            "/tmp/E.plist",
            "/tmp/App.app",
        ]
    ]
    assert tools.envs == [{"CODESIGN_ALLOCATE": "/Xcode/usr/bin/codesign_allocate"}]
    assert tools.verify_calls[0][:3] == ["codesign", "--verify", "-vvvv"]


def test_codesign_allocate_is_optional(monkeypatch) -> None:
    tools = FakeTools(xcrun_ok=False)
    monkeypatch.setattr(process_runner, "run_tool", tools)

    outcome = SigningExecutor(IOS).execute(make_identity(), Path("/tmp/App.app"))
    assert outcome.succeeded
    assert tools.envs == [{}]


def test_verify_requires_an_accepted_phrase(monkeypatch) -> None:
    tools = FakeTools(verify_result=ToolResult([], 0, ["/tmp/App.app: something else"]))
    monkeypatch.setattr(process_runner, "run_tool", tools)

    outcome = SigningExecutor(IOS).execute(make_identity(), Path("/tmp/App.app"))

    assert outcome.state is SigningState.FAILED
    assert isinstance(outcome.error, VerificationMismatchError)
    assert outcome.output == ["/tmp/App.app: something else"]


def test_each_accepted_phrase_is_enough(monkeypatch) -> None:
    for phrase in IOS.verify_phrases:
        tools = FakeTools(verify_result=ToolResult([], 0, [f"x: {phrase}"]))
        monkeypatch.setattr(process_runner, "run_tool", tools)
        assert SigningExecutor(IOS).verify(Path("/tmp/App.app")).succeeded


def test_verify_non_zero_exit_fails_even_with_phrase(monkeypatch) -> None:
    tools = FakeTools(verify_result=ToolResult([], 3, VERIFY_OK))
    monkeypatch.setattr(process_runner, "run_tool", tools)

    outcome = SigningExecutor(IOS).verify(Path("/tmp/App.app"))
    assert outcome.state is SigningState.FAILED
    assert isinstance(outcome.error, ToolInvocationError)


def test_verify_timeout_fails(monkeypatch) -> None:
    tools = FakeTools(verify_result=ToolResult([], None, [], timed_out=True))
    monkeypatch.setattr(process_runner, "run_tool", tools)

    outcome = SigningExecutor(IOS, verify_timeout=1).verify(Path("/tmp/App.app"))
    assert not outcome.succeeded
    assert "timed out" in outcome.error.message


def test_sign_failure_skips_verification(monkeypatch) -> None:
    tools = FakeTools(sign_results=[ToolResult([], 1, ["no identity found"])])
    monkeypatch.setattr(process_runner, "run_tool", tools)

    outcome = SigningExecutor(IOS).execute(make_identity(), Path("/tmp/App.app"))

    assert outcome.state is SigningState.FAILED
    assert outcome.output == ["no identity found"]
    assert tools.verify_calls == []


def test_sign_timeout_fails(monkeypatch) -> None:
    tools = FakeTools(sign_results=[ToolResult([], None, [], timed_out=True)])
    monkeypatch.setattr(process_runner, "run_tool", tools)

    outcome = SigningExecutor(IOS, sign_timeout=2).execute(make_identity(), Path("/tmp/App.app"))
    assert outcome.state is SigningState.FAILED
    assert "timed out" in outcome.error.message


def test_missing_codesign_binary_fails(monkeypatch) -> None:
    def missing(cmd, **_kwargs):
        raise ToolInvocationError(f"Could not run {cmd[0]}")

    monkeypatch.setattr(process_runner, "run_tool", missing)
    outcome = SigningExecutor(MACOS).execute(make_identity(), Path("/tmp/App.app"))
    assert outcome.state is SigningState.FAILED


def test_locked_keychain_is_unlocked_and_signing_retried_once(monkeypatch) -> None:
    locked = ToolResult([], 1, ["App.app: errSecInternalComponent"])
    tools = FakeTools(sign_results=[locked, ToolResult([], 0, [])])
    monkeypatch.setattr(process_runner, "run_tool", tools)
    unlocks = []

    executor = SigningExecutor(IOS, unlock=lambda: unlocks.append(1) or True)
    outcome = executor.execute(make_identity(), Path("/tmp/App.app"))

    assert outcome.succeeded
    assert unlocks == [1]
    assert len(tools.sign_calls) == 2


def test_locked_keychain_retry_happens_only_once(monkeypatch) -> None:
    locked = ToolResult([], 1, ["App.app: errSecInternalComponent"])
    tools = FakeTools(sign_results=[locked, locked, ToolResult([], 0, [])])
    monkeypatch.setattr(process_runner, "run_tool", tools)
    unlocks = []

    executor = SigningExecutor(IOS, unlock=lambda: unlocks.append(1) or True)
    outcome = executor.execute(make_identity(), Path("/tmp/App.app"))

    assert outcome.state is SigningState.FAILED
    assert unlocks == [1]
    assert len(tools.sign_calls) == 2


def test_failed_unlock_fails_without_retry(monkeypatch) -> None:
    locked = ToolResult([], 1, ["App.app: errSecInternalComponent"])
    tools = FakeTools(sign_results=[locked])
    monkeypatch.setattr(process_runner, "run_tool", tools)

    outcome = SigningExecutor(IOS, unlock=lambda: False).execute(make_identity(), Path("/tmp/App.app"))

    assert outcome.state is SigningState.FAILED
    assert "keychain" in outcome.error.message
    assert len(tools.sign_calls) == 1


def test_macos_signs_inner_targets_first(monkeypatch) -> None:
    tools = FakeTools(sign_results=[ToolResult([], 0, []), ToolResult([], 0, [])])
    monkeypatch.setattr(process_runner, "run_tool", tools)

    exe = Path("/tmp/App.app/Contents/MacOS/App")
    outcome = SigningExecutor(MACOS).execute(
        make_identity(fingerprint="F1"), Path("/tmp/App.app"), inner_targets=[exe]
    )

    assert outcome.succeeded
    assert [c[-1] for c in tools.sign_calls] == [str(exe), "/tmp/App.app"]
    assert tools.sign_calls[0][:6] == ["codesign", "--timestamp", "--options", "runtime", "--force", "--sign"]
    assert not any(c[0] == "xcrun" for c in tools.calls)


def test_locked_keychain_detected_even_when_codesign_exits_zero(monkeypatch) -> None:
    locked = ToolResult([], 0, ["App.app: errSecInternalComponent"])
    tools = FakeTools(sign_results=[locked, ToolResult([], 0, [])])
    monkeypatch.setattr(process_runner, "run_tool", tools)
    unlocks = []

    executor = SigningExecutor(IOS, unlock=lambda: unlocks.append(1) or True)
    outcome = executor.execute(make_identity(), Path("/tmp/App.app"))

    assert outcome.succeeded
    assert unlocks == [1]
    assert len(tools.sign_calls) == 2


def test_failed_retry_reports_its_own_output(monkeypatch) -> None:
    locked = ToolResult([], 1, ["App.app: errSecInternalComponent"])
    retried = ToolResult([], 1, ["App.app: no identity found"])
    tools = FakeTools(sign_results=[locked, retried])
    monkeypatch.setattr(process_runner, "run_tool", tools)

    outcome = SigningExecutor(IOS, unlock=lambda: True).execute(make_identity(), Path("/tmp/App.app"))

    assert outcome.state is SigningState.FAILED
    assert outcome.output == ["App.app: no identity found"]
    assert outcome.error.output == ["App.app: no identity found"]
    assert tools.verify_calls == []
