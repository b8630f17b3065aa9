import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Pattern, Tuple

# https://developer.apple.com/library/archive/technotes/tn2318/_index.html
VERIFY_OK_PHRASES = (
    "satisfies its Designated Requirement",
    "valid on disk",
    "explicit requirement satisfied",
)

KEYCHAIN_LOCKED_MESSAGE = "errSecInternalComponent"

IDENTITY_ERROR_FLAG = "CSSMERR"

# Only Developer ID signed images can be notarized
NOTARIZABLE_IDENTITY_PREFIX = "Developer ID Application"

DEFAULT_PROFILES_DIR = Path.home() / "Library" / "MobileDevice" / "Provisioning Profiles"

SANDBOX_ENTITLEMENTS = (
    "com.apple.security.app-sandbox",
    "com.apple.security.cs.allow-unsigned-executable-memory",
    "com.apple.security.cs.disable-library-validation",
    "com.apple.security.cs.debugger",
    "com.apple.security.device.audio-input",
)


@dataclass(frozen=True)
class SigningPlatform:
    """Everything that differs between signing an iOS and a macOS bundle"""

    name: str
    profile_extension: str
    identity_name_pattern: Pattern
    default_entitlements: Dict[str, Any]
    embedded_profile_path: Path  # relative to the bundle
    info_plist_path: Path  # relative to the bundle
    sign_flags: Tuple[str, ...]
    profiles_dir: Path = DEFAULT_PROFILES_DIR
    verify_phrases: Tuple[str, ...] = VERIFY_OK_PHRASES
    codesign_allocate_sdk: Optional[str] = None
    profile_required: bool = True
    sign_executable_first: bool = False
    signs_disk_images: bool = False
    executable_dir: Path = field(default_factory=Path)  # relative to the bundle

    def default_template(self) -> Dict[str, Any]:
        return dict(self.default_entitlements)


IOS = SigningPlatform(
    name="ios",
    profile_extension=".mobileprovision",
    identity_name_pattern=re.compile(
        r"iPhone Developer|Apple Development|iOS Development|iPhone Distribution",
        re.IGNORECASE,
    ),
    default_entitlements={"get-task-allow": True},
    embedded_profile_path=Path("embedded.mobileprovision"),
    info_plist_path=Path("Info.plist"),
    sign_flags=("--generate-entitlement-der", "--force"),
    codesign_allocate_sdk="iphoneos",
)

MACOS = SigningPlatform(
    name="macos",
    profile_extension=".provisionprofile",
    identity_name_pattern=re.compile(
        r"Developer ID Application|Apple Distribution|3rd Party Mac Developer Application|Apple Development",
        re.IGNORECASE,
    ),
    default_entitlements={key: True for key in SANDBOX_ENTITLEMENTS},
    embedded_profile_path=Path("Contents") / "embedded.provisionprofile",
    info_plist_path=Path("Contents") / "Info.plist",
    sign_flags=("--timestamp", "--options", "runtime", "--force"),
    profile_required=False,
    sign_executable_first=True,
    signs_disk_images=True,
    executable_dir=Path("Contents") / "MacOS",
)

PLATFORMS = {platform.name: platform for platform in (IOS, MACOS)}


def get_platform(name: str) -> SigningPlatform:
    try:
        return PLATFORMS[name.lower()]
    except KeyError:
        raise ValueError(
            f"Unknown platform '{name}'. Expected one of: {', '.join(PLATFORMS)}"
        )
