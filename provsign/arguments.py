from pathlib import Path

from provsign.src.constants.platforms import PLATFORMS
from provsign.src.utils.config_loader import SigningConfig, get_signing_config


def add_common_arguments(parser):
    """Options shared by every command that looks at identities or profiles."""
    parser.add_argument(
        "--platform",
        choices=sorted(PLATFORMS),
        help="Target platform [default: ios, or [signing] platform in the config]",
    )
    parser.add_argument(
        "--identity",
        type=str,
        help="Exact common name of the signing identity to use [default: first matching identity]",
    )
    parser.add_argument(
        "--provisioning-profile",
        type=str,
        help="Exact name of the provisioning profile to use [default: first matching profile]",
    )
    parser.add_argument(
        "--signing-user",
        type=str,
        help="Only use identities whose name contains this text (macOS) [default: any]",
    )
    parser.add_argument(
        "--profiles-dir",
        type=Path,
        help="Folder with provisioning profiles [default: ~/Library/MobileDevice/Provisioning Profiles]",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        default=None,
        help="Show every matching step and tool invocation [default: disabled]",
    )


def add_signing_arguments(parser):
    """Add all signing-related arguments to an existing parser."""
    parser.add_argument("bundle_path", type=Path, help="Path to the .app bundle to sign")
    add_common_arguments(parser)

    parser.add_argument(
        "--bundle-id",
        type=str,
        help="Bundle identifier to sign for [default: CFBundleIdentifier from Info.plist]",
    )

    parser.add_argument(
        "--entitlements",
        type=Path,
        help="Entitlements plist used as the template [default: platform defaults]",
    )

    task_allow = parser.add_mutually_exclusive_group()
    task_allow.add_argument(
        "--distribution",
        action="store_false",
        dest="task_allow",
        default=None,
        help="Sign for distribution (get-task-allow = false) [default: follow the profile]",
    )
    task_allow.add_argument(
        "--debuggable",
        action="store_true",
        dest="task_allow",
        default=None,
        help="Sign for debugging (get-task-allow = true) [default: follow the profile]",
    )

    add_timeout_arguments(parser)


def add_timeout_arguments(parser):
    """codesign and verification timeouts."""
    parser.add_argument(
        "--sign-timeout",
        type=float,
        help="Seconds to wait for codesign [default: 30]",
    )

    parser.add_argument(
        "--verify-timeout",
        type=float,
        help="Seconds to wait for signature verification [default: 5]",
    )


def add_disk_image_arguments(parser):
    """Arguments for signing a macOS disk image."""
    parser.add_argument("dmg_path", type=Path, help="Path to the .dmg to sign")
    parser.add_argument(
        "--identity",
        type=str,
        help="Exact common name of the signing identity [default: first Developer ID Application identity]",
    )
    parser.add_argument(
        "--signing-user",
        type=str,
        help="Only use identities whose name contains this text [default: any]",
    )
    parser.add_argument(
        "--entitlements",
        type=Path,
        help="Entitlements plist to sign the image with [default: none]",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        default=None,
        help="Show every tool invocation [default: disabled]",
    )
    add_timeout_arguments(parser)


def create_signing_config(args) -> SigningConfig:
    """Convert parsed arguments to a SigningConfig (flags > env > config file)"""
    config = get_signing_config()
    return config.with_overrides(
        platform=getattr(args, "platform", None),
        identity=getattr(args, "identity", None),
        provisioning_profile=getattr(args, "provisioning_profile", None),
        signing_user=getattr(args, "signing_user", None),
        profiles_dir=getattr(args, "profiles_dir", None),
        sign_timeout=getattr(args, "sign_timeout", None),
        verify_timeout=getattr(args, "verify_timeout", None),
        verbose=getattr(args, "verbose", None),
    )
