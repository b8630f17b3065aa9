from provsign.arguments import create_signing_config
from provsign.commands.sign import print_failure
from provsign.logger import get_console, set_verbose
from provsign.src.core.session import SigningSession


def run_verify_command(args) -> int:
    console = get_console()
    try:
        config = create_signing_config(args)
    except ValueError as e:
        console.print(f"[red]Error:[/] {e}")
        return 1
    set_verbose(config.verbose)

    if not args.target.exists():
        console.print(f"[red]Error:[/] target not found: {args.target}")
        return 1

    try:
        outcome = SigningSession(config).verify(args.target)
    except ValueError as e:
        console.print(f"[red]Error:[/] {e}")
        return 1
    if outcome.succeeded:
        console.print("[bold green]✅ Signature verification PASSED[/]")
        return 0
    print_failure(console, outcome.error)
    console.print("[bold red]❌ Signature verification FAILED[/]")
    return 1
