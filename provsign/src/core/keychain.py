from pathlib import Path
from typing import Optional

from provsign.logger import debug, get_console
from provsign.src.core import process_runner
from provsign.src.core.errors import ToolInvocationError


def get_default_keychain() -> Optional[Path]:
    """Path of the user's default keychain, or None if it can't be found"""
    console = get_console()
    try:
        result = process_runner.run_tool(["security", "default-keychain", "-d", "user"])
    except ToolInvocationError as e:
        console.log(f"[red]Could not query the default keychain:[/] {e}")
        return None

    if not result.ok or not result.output:
        console.log("[red]User's keychain not found. Can't unlock")
        return None

    keychain = Path(result.output[0].strip().replace('"', ""))
    if not keychain.exists():
        console.log(f"[red]Invalid user's keychain at {keychain}")
        return None
    return keychain


def unlock_keychain() -> bool:
    """Unlock the user's default keychain.

    `security unlock-keychain` prompts for the password on the terminal, so
    this needs the user at the keyboard (e.g. when signing over SSH, where no
    system unlock dialog shows up).
    """
    console = get_console()
    keychain = get_default_keychain()
    if keychain is None:
        return False

    console.log(f"[yellow]Unlocking keychain: {keychain}")
    try:
        result = process_runner.run_tool(
            ["security", "unlock-keychain", str(keychain)], interactive=True
        )
    except ToolInvocationError as e:
        console.log(f"[red]Unlock failed:[/] {e}")
        return False

    if not result.ok or result.output:
        console.log("[red]Wrong keychain password. Can't unlock")
        return False

    debug("Keychain unlocked successfully")
    return True
