import plistlib
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

from provsign.logger import debug
from provsign.src.ipa.provisioning_profile import Profile

APPLICATION_IDENTIFIER = "application-identifier"
GET_TASK_ALLOW = "get-task-allow"


def load_template(path: Path) -> Dict[str, Any]:
    """Read an entitlements plist (XML or binary) to use instead of the defaults"""
    with open(path, "rb") as f:
        template = plistlib.load(f)
    if not isinstance(template, dict):
        raise ValueError(f"Entitlements file {path} does not contain a dictionary")
    return template


def compose_entitlements(
    template: Dict[str, Any],
    profile: Optional[Profile],
    bundle_id: str,
    task_allow: bool,
    app_identifier_prefix: Optional[str] = None,
) -> Dict[str, Any]:
    """Build the entitlements to sign with.

    Starts from ``template``; profile entitlements only fill keys the template
    leaves unset. ``get-task-allow`` is always written last, and so is
    ``application-identifier`` when there is a profile. Without one (macOS
    signing with no matching profile) the document has no
    ``application-identifier`` at all.
    """
    entitlements = dict(template)

    if profile is not None:
        for key, value in profile.entitlements.items():
            if entitlements.get(key) is None:
                entitlements[key] = value
        prefix = app_identifier_prefix or profile.app_identifier_prefix
        entitlements[APPLICATION_IDENTIFIER] = f"{prefix}.{bundle_id}"

    entitlements[GET_TASK_ALLOW] = task_allow
    debug(f"Entitlements.plist = {entitlements}")
    return entitlements


def write_entitlements(entitlements: Dict[str, Any], directory: Optional[Path] = None) -> Path:
    """Serialize entitlements as an XML plist in a fresh temporary file"""
    with tempfile.NamedTemporaryFile(
        prefix="Entitlements-", suffix=".plist", dir=directory, delete=False
    ) as f:
        plistlib.dump(entitlements, f, fmt=plistlib.FMT_XML, sort_keys=False)
    return Path(f.name)
