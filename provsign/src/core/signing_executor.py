from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from rich.markup import escape

from provsign.logger import debug, get_console, is_verbose
from provsign.src.constants.platforms import KEYCHAIN_LOCKED_MESSAGE, SigningPlatform
from provsign.src.core import process_runner
from provsign.src.core.errors import (
    SigningError,
    ToolInvocationError,
    VerificationMismatchError,
)
from provsign.src.core.identity_catalog import Identity
from provsign.src.core.keychain import unlock_keychain

DEFAULT_SIGN_TIMEOUT = 30
DEFAULT_VERIFY_TIMEOUT = 5


class SigningState(Enum):
    IDLE = "idle"
    SIGNING = "signing"
    VERIFYING = "verifying"
    SIGNED = "signed"
    FAILED = "failed"


@dataclass
class SigningOutcome:
    state: SigningState
    target: Path
    output: List[str] = field(default_factory=list)
    error: Optional[SigningError] = None

    @property
    def succeeded(self) -> bool:
        return self.state is SigningState.SIGNED


class SigningExecutor:
    """Runs codesign on a target and verifies the result.

    Idle -> Signing -> Verifying -> Signed | Failed. Nothing is retried,
    except that a locked keychain is unlocked once and signing re-run once.
    """

    def __init__(
        self,
        platform: SigningPlatform,
        sign_timeout: float = DEFAULT_SIGN_TIMEOUT,
        verify_timeout: float = DEFAULT_VERIFY_TIMEOUT,
        unlock: Callable[[], bool] = unlock_keychain,
    ):
        self.console = get_console()
        self.platform = platform
        self.sign_timeout = sign_timeout
        self.verify_timeout = verify_timeout
        self.unlock = unlock
        self.state = SigningState.IDLE
        self._codesign_env: Optional[Dict[str, str]] = None

    def _codesign_environment(self) -> Dict[str, str]:
        """Point CODESIGN_ALLOCATE at the SDK's tool when the platform needs it"""
        if self._codesign_env is None:
            self._codesign_env = {}
            sdk = self.platform.codesign_allocate_sdk
            if sdk:
                try:
                    result = process_runner.run_tool(
                        ["xcrun", "--sdk", sdk, "-f", "codesign_allocate"]
                    )
                except ToolInvocationError as e:
                    debug(f"codesign_allocate lookup failed: {e}")
                else:
                    if result.ok and result.output:
                        self._codesign_env["CODESIGN_ALLOCATE"] = result.output[0].strip()
        return self._codesign_env

    def build_sign_command(
        self, identity: Identity, target: Path, entitlements: Optional[Path] = None
    ) -> List[str]:
        cmd = ["codesign", *self.platform.sign_flags, "--sign", identity.fingerprint]
        if entitlements is not None:
            cmd.extend(["--entitlements", str(entitlements)])
        if is_verbose():
            cmd.append("--verbose")
        cmd.append(str(target))
        return cmd

    def _fail(self, target: Path, error: SigningError) -> SigningOutcome:
        self.state = SigningState.FAILED
        self.console.log(f"[red]{escape(error.message)}")
        return SigningOutcome(
            state=SigningState.FAILED, target=target, output=error.output, error=error
        )

    def _run_codesign(
        self, identity: Identity, target: Path, entitlements: Optional[Path]
    ) -> process_runner.ToolResult:
        cmd = self.build_sign_command(identity, target, entitlements)
        self.console.log(f"[cyan]Signing:[/] {target}")
        return process_runner.run_tool(
            cmd, timeout=self.sign_timeout, env=self._codesign_environment()
        )

    def sign(
        self, identity: Identity, target: Path, entitlements: Optional[Path] = None
    ) -> Optional[SigningOutcome]:
        """Signing step only. Returns a failed outcome, or None when signing went through"""
        self.state = SigningState.SIGNING
        try:
            result = self._run_codesign(identity, target, entitlements)
            if result.contains(KEYCHAIN_LOCKED_MESSAGE):
                self.console.log(
                    "[yellow]Error signing the application: the keychain was locked. "
                    "You will be required now to unlock the keychain"
                )
                if not self.unlock():
                    return self._fail(
                        target,
                        ToolInvocationError(
                            "Codesign failed: the keychain is locked and could not be unlocked",
                            result.output,
                        ),
                    )
                result = self._run_codesign(identity, target, entitlements)
        except ToolInvocationError as e:
            return self._fail(target, e)

        if result.timed_out:
            return self._fail(
                target,
                ToolInvocationError(
                    f"Codesign timed out after {self.sign_timeout}s", result.output
                ),
            )
        if not result.ok:
            return self._fail(
                target,
                ToolInvocationError(
                    f"Codesign process failed with exit code {result.returncode}",
                    result.output,
                ),
            )
        return None

    def verify(self, target: Path) -> SigningOutcome:
        self.state = SigningState.VERIFYING
        debug("Validating codesign...")
        cmd = ["codesign", "--verify", "-vvvv", str(Path(target).absolute())]
        try:
            result = process_runner.run_tool(cmd, timeout=self.verify_timeout)
        except ToolInvocationError as e:
            return self._fail(target, e)

        if result.timed_out:
            return self._fail(
                target,
                ToolInvocationError(
                    f"Codesign verification timed out after {self.verify_timeout}s",
                    result.output,
                ),
            )
        if not result.ok:
            return self._fail(
                target,
                ToolInvocationError(
                    f"Codesign verification failed with exit code {result.returncode}",
                    result.output,
                ),
            )
        if not any(result.contains(phrase) for phrase in self.platform.verify_phrases):
            return self._fail(
                target,
                VerificationMismatchError(
                    "Codesign validation failed: the signature was not accepted",
                    result.output,
                ),
            )

        self.state = SigningState.SIGNED
        self.console.log(f"[green]Verified signature:[/] {target}")
        return SigningOutcome(state=SigningState.SIGNED, target=target, output=result.output)

    def execute(
        self,
        identity: Identity,
        target: Path,
        entitlements: Optional[Path] = None,
        inner_targets: Sequence[Path] = (),
    ) -> SigningOutcome:
        """Sign ``inner_targets`` then ``target`` with the same identity, then verify ``target``"""
        debug(f"Signing with identity: {identity}")
        for path in [*inner_targets, target]:
            failed = self.sign(identity, path, entitlements)
            if failed is not None:
                return failed
        return self.verify(target)
