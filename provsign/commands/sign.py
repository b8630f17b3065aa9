import sys
from rich.markup import escape

from provsign.arguments import create_signing_config
from provsign.logger import get_console, set_verbose
from provsign.src.core.errors import SigningError
from provsign.src.core.session import SigningSession


def print_failure(console, error: SigningError) -> None:
    """Print a signing failure together with the captured tool output."""
    console.print(f"\n[red]Signing failed:[/] {escape(error.message)}")
    if error.output:
        console.print("[red]Tool output:[/]")
        for line in error.output:
            console.print(f"  {escape(line)}")


def print_configuration_summary(console, args, config) -> None:
    """Print the configuration summary."""
    console.print("\n[bold blue]Signing Configuration:[/]")
    console.print(f"[cyan]Bundle:[/] {args.bundle_path}")
    console.print(f"[cyan]Platform:[/] {config.platform}")
    if args.bundle_id:
        console.print(f"[cyan]Bundle ID:[/] {args.bundle_id}")
    if config.identity:
        console.print(f"[cyan]Identity:[/] {config.identity}")
    if config.provisioning_profile:
        console.print(f"[cyan]Provisioning profile:[/] {config.provisioning_profile}")
    if args.entitlements:
        console.print(f"[cyan]Entitlements template:[/] {args.entitlements}")
    if args.task_allow is not None:
        console.print(f"[cyan]get-task-allow:[/] {args.task_allow}")


def main(parsed_args) -> int:
    """Sign the bundle described by the parsed arguments."""
    console = get_console()

    try:
        config = create_signing_config(parsed_args)
    except ValueError as e:
        console.print(f"[red]Error:[/] {e}")
        return 1
    set_verbose(config.verbose)

    if not parsed_args.bundle_path.exists():
        console.print(f"[red]Error:[/] bundle not found: {parsed_args.bundle_path}")
        return 1

    print_configuration_summary(console, parsed_args, config)

    try:
        session = SigningSession(config)
        outcome = session.sign_bundle(
            parsed_args.bundle_path,
            bundle_id=parsed_args.bundle_id,
            task_allow=parsed_args.task_allow,
            entitlements_template=parsed_args.entitlements,
        )
    except SigningError as e:
        print_failure(console, e)
        return 1
    except ValueError as e:
        console.print(f"[red]Error:[/] {e}")
        return 1

    if not outcome.succeeded:
        print_failure(console, outcome.error)
        return 1
    return 0


def run_sign_command(args):
    """Entry point for the sign command from CLI"""
    return main(parsed_args=args)


if __name__ == "__main__":
    from provsign.cli import main as cli_main

    sys.exit(cli_main())
