from provsign.arguments import create_signing_config
from provsign.commands.sign import print_failure
from provsign.logger import get_console, set_verbose
from provsign.src.constants.platforms import MACOS
from provsign.src.core.errors import SigningError
from provsign.src.core.session import SigningSession


def run_sign_dmg_command(args) -> int:
    """Entry point for the sign-dmg command from CLI"""
    console = get_console()
    try:
        config = create_signing_config(args).with_overrides(platform=MACOS.name)
    except ValueError as e:
        console.print(f"[red]Error:[/] {e}")
        return 1
    set_verbose(config.verbose)

    if not args.dmg_path.exists():
        console.print(f"[red]Error:[/] disk image not found: {args.dmg_path}")
        return 1

    try:
        outcome = SigningSession(config).sign_disk_image(
            args.dmg_path, entitlements=args.entitlements
        )
    except SigningError as e:
        print_failure(console, e)
        return 1

    if not outcome.succeeded:
        print_failure(console, outcome.error)
        return 1
    return 0
