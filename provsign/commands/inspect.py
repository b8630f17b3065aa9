from datetime import date
from rich.markup import escape
from rich.table import Table

from provsign.arguments import create_signing_config
from provsign.commands.sign import print_failure
from provsign.logger import get_console, set_verbose
from provsign.src.core.errors import SigningError
from provsign.src.core.session import SigningSession


def _session(args):
    console = get_console()
    try:
        config = create_signing_config(args)
        set_verbose(config.verbose)
        return SigningSession(config)
    except ValueError as e:
        console.print(f"[red]Error:[/] {e}")
        return None


def run_identities_command(args) -> int:
    console = get_console()
    session = _session(args)
    if session is None:
        return 1

    identities = session.identities()
    if not identities:
        console.print("[red]No valid signing identity found[/]")
        return 1

    table = Table(title=f"Signing identities ({session.platform.name})")
    table.add_column("Name")
    table.add_column("SHA-1")
    for identity in identities:
        table.add_row(escape(identity.common_name), identity.fingerprint)
    console.print(table)
    return 0


def run_profiles_command(args) -> int:
    console = get_console()
    session = _session(args)
    if session is None:
        return 1

    today = date.today()
    catalog = session.profile_catalog
    profiles = catalog.profiles if args.show_all else catalog.valid_profiles(today)
    if not profiles:
        console.print("[yellow]No provisioning profiles found[/]")
        return 1

    table = Table(title=f"Provisioning profiles ({session.platform.name})")
    table.add_column("Name")
    table.add_column("App ID")
    table.add_column("Kind")
    table.add_column("Certificates", justify="right")
    table.add_column("Expires")
    for profile in profiles:
        valid = profile.is_valid_on(today)
        expires = str(profile.expiration_date) if profile.expiration_date else "-"
        table.add_row(
            escape(profile.name),
            escape(profile.app_identifier),
            profile.kind.label,
            str(len(profile.developer_certificate_fingerprints)),
            expires if valid else f"[red]{expires} (expired)[/]",
        )
    console.print(table)
    return 0


def run_resolve_command(args) -> int:
    console = get_console()
    session = _session(args)
    if session is None:
        return 1

    try:
        resolution = session.resolve(args.bundle_id)
    except SigningError as e:
        print_failure(console, e)
        return 1

    profile = resolution.profile
    console.print(f"[green]Identity:[/] {escape(str(resolution.identity))}")
    console.print(f"[green]Provisioning profile:[/] {escape(profile.name)}")
    console.print(f"[blue]App ID:[/] {escape(profile.app_identifier)}")
    console.print(f"[blue]Kind:[/] {profile.kind.label} ({profile.kind.description})")
    console.print(f"[blue]Expires:[/] {profile.expiration_date}")
    console.print(f"[blue]File:[/] {profile.path}")
    return 0
