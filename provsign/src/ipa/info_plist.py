import plistlib
from pathlib import Path
from typing import Any, Dict, Optional
from xml.parsers.expat import ExpatError

from provsign.src.constants.platforms import SigningPlatform
from provsign.src.core.errors import BundleError


def read_info_plist(bundle_path: Path, platform: SigningPlatform) -> Dict[str, Any]:
    plist_path = Path(bundle_path) / platform.info_plist_path
    if not plist_path.exists():
        return {}
    try:
        with open(plist_path, "rb") as f:
            data = plistlib.load(f)
    except (OSError, ValueError, ExpatError, plistlib.InvalidFileException) as e:
        raise BundleError(f"Could not read {plist_path}: {e}") from e
    return data if isinstance(data, dict) else {}


def get_bundle_id(
    bundle_path: Path, platform: SigningPlatform, fallback: Optional[str] = None
) -> str:
    """CFBundleIdentifier of the bundle, else ``fallback``"""
    bundle_id = read_info_plist(bundle_path, platform).get("CFBundleIdentifier") or fallback
    if not bundle_id:
        raise BundleError(
            f"Could not determine the bundle identifier of {bundle_path}. "
            "Pass it with --bundle-id."
        )
    return bundle_id


def get_executable_name(bundle_path: Path, platform: SigningPlatform) -> str:
    info = read_info_plist(bundle_path, platform)
    return info.get("CFBundleExecutable") or Path(bundle_path).stem
