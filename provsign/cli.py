import argparse
import sys
from dotenv import load_dotenv
from pathlib import Path
from rich.console import Console
from rich.text import Text
from rich.theme import Theme
from rich_argparse import RichHelpFormatter

from provsign import __version__
from provsign.arguments import (
    add_common_arguments,
    add_disk_image_arguments,
    add_signing_arguments,
)

APP_DESCRIPTION = "Find a matching identity and provisioning profile, then sign and verify"


class ProvSignHelpFormatter(RichHelpFormatter):
    """Custom formatter for the provsign CLI that enhances the output with rich styling."""

    def __init__(self, prog):
        super().__init__(prog, max_help_position=30, width=100)
        self.console = Console(
            theme=Theme(
                {
                    "command": "bold cyan",
                    "argument": "green",
                    "option": "yellow",
                    "version": "blue",
                    "title": "bold magenta",
                }
            )
        )

    def start_section(self, heading):
        # Make section headings more prominent
        heading_text = Text(heading, style="title")
        super().start_section(str(heading_text))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="provsign",
        description=f"provsign: {APP_DESCRIPTION}",
        formatter_class=ProvSignHelpFormatter,
    )
    parser.add_argument(
        "--version", action="version", version=f"provsign {__version__}"
    )

    subparsers = parser.add_subparsers(dest="command")

    sign_parser = subparsers.add_parser(
        "sign",
        help="Sign an application bundle",
        formatter_class=ProvSignHelpFormatter,
        description="Resolve an identity and provisioning profile, embed the profile, sign and verify the bundle.",
    )
    add_signing_arguments(sign_parser)

    sign_dmg_parser = subparsers.add_parser(
        "sign-dmg",
        help="Sign a macOS disk image",
        formatter_class=ProvSignHelpFormatter,
        description="Sign and verify a .dmg, preferring a Developer ID Application identity.",
    )
    add_disk_image_arguments(sign_dmg_parser)

    verify_parser = subparsers.add_parser(
        "verify",
        help="Verify the signature of a bundle",
        formatter_class=ProvSignHelpFormatter,
        description="Run the signature verification pass only.",
    )
    verify_parser.add_argument("target", type=Path, help="Signed bundle or binary")
    add_common_arguments(verify_parser)

    identities_parser = subparsers.add_parser(
        "identities",
        help="List usable signing identities",
        formatter_class=ProvSignHelpFormatter,
        description="List the keychain identities that can be used for signing.",
    )
    add_common_arguments(identities_parser)

    profiles_parser = subparsers.add_parser(
        "profiles",
        help="List installed provisioning profiles",
        formatter_class=ProvSignHelpFormatter,
        description="List the provisioning profiles found in the profiles folder.",
    )
    add_common_arguments(profiles_parser)
    profiles_parser.add_argument(
        "--all",
        action="store_true",
        dest="show_all",
        help="Include expired profiles [default: disabled]",
    )

    resolve_parser = subparsers.add_parser(
        "resolve",
        help="Show which identity and profile would sign a bundle id",
        formatter_class=ProvSignHelpFormatter,
        description="Run the identity and provisioning profile matching without signing anything.",
    )
    resolve_parser.add_argument("bundle_id", type=str, help="Bundle identifier, e.g. com.example.app")
    add_common_arguments(resolve_parser)

    return parser


def main(argv=None):
    load_dotenv()

    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "sign":
        from provsign.commands.sign import run_sign_command

        return run_sign_command(args)
    elif args.command == "sign-dmg":
        from provsign.commands.sign_dmg import run_sign_dmg_command

        return run_sign_dmg_command(args)
    elif args.command == "verify":
        from provsign.commands.verify import run_verify_command

        return run_verify_command(args)
    elif args.command == "identities":
        from provsign.commands.inspect import run_identities_command

        return run_identities_command(args)
    elif args.command == "profiles":
        from provsign.commands.inspect import run_profiles_command

        return run_profiles_command(args)
    elif args.command == "resolve":
        from provsign.commands.inspect import run_resolve_command

        return run_resolve_command(args)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
