import hashlib
import plistlib
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, FrozenSet, Iterable, List, Optional
from xml.parsers.expat import ExpatError

from asn1crypto.cms import ContentInfo

from provsign.logger import debug, get_console
from provsign.src.core.errors import ProfileDecodeError


class ProfileKind(Enum):
    DEVELOPMENT = ("Development", "Deploy via Xcode")
    AD_HOC = ("AdHoc", "Distribute via TestFlight")
    APP_STORE = ("AppStore", "Distribute via App Store")

    def __init__(self, label: str, description: str):
        self.label = label
        self.description = description


@dataclass(frozen=True)
class Profile:
    """A decoded provisioning profile"""

    path: Path
    name: str
    app_identifier_prefix: str
    app_identifier: str
    developer_certificate_fingerprints: FrozenSet[str]
    entitlements: Dict[str, Any]
    expiration_date: Optional[date]
    provisioned_devices: Optional[List[str]] = None
    uuid: Optional[str] = None
    app_id_name: Optional[str] = None
    team_identifier: Optional[str] = None
    team_name: Optional[str] = None
    platforms: List[str] = field(default_factory=list)
    creation_date: Optional[date] = None
    xcode_managed: bool = False
    time_to_live: Optional[int] = None
    version: Optional[int] = None

    @property
    def task_allow(self) -> bool:
        return self.entitlements.get("get-task-allow") is True

    @property
    def kind(self) -> ProfileKind:
        if self.task_allow:
            return ProfileKind.DEVELOPMENT
        if self.provisioned_devices is not None:
            return ProfileKind.AD_HOC
        return ProfileKind.APP_STORE

    def is_valid_on(self, day: date) -> bool:
        """Still valid on ``day``. A profile expiring that very day counts as valid."""
        return self.expiration_date is not None and not self.expiration_date < day

    def authorizes_scope(self, scope: str) -> bool:
        """True when the app identifier is exactly ``<own prefix>.<scope>``"""
        if not self.app_identifier_prefix or not self.app_identifier:
            return False
        return self.app_identifier == f"{self.app_identifier_prefix}.{scope}"

    def authorizes_certificate(self, fingerprint: str) -> bool:
        return fingerprint.upper() in self.developer_certificate_fingerprints


def unwrap_cms(data: bytes) -> bytes:
    """Return the plist payload embedded in a CMS SignedData container"""
    content_info = ContentInfo.load(data)
    signed_data = content_info["content"]
    payload = signed_data["encap_content_info"]["content"].native
    if not isinstance(payload, bytes):
        raise ValueError("Signed content is empty")
    return payload


def certificate_fingerprint(der: bytes) -> str:
    return hashlib.sha1(bytes(der)).hexdigest().upper()


def _first(value: Any) -> Optional[Any]:
    if isinstance(value, list):
        return value[0] if value else None
    return value


def _to_local_date(value: Any) -> Optional[date]:
    # plistlib hands back naive datetimes in UTC
    if isinstance(value, datetime):
        return value.replace(tzinfo=timezone.utc).astimezone().date()
    if isinstance(value, date):
        return value
    return None


def profile_from_plist(path: Path, data: Dict[str, Any]) -> Profile:
    """Build a Profile from an already decoded provisioning profile plist"""
    if not isinstance(data, dict):
        raise ProfileDecodeError(f"{path} does not contain a dictionary")

    entitlements = data.get("Entitlements") or {}
    if not isinstance(entitlements, dict):
        raise ProfileDecodeError(f"{path} has malformed Entitlements")

    certificates = data.get("DeveloperCertificates") or []
    fingerprints = frozenset(
        certificate_fingerprint(cert)
        for cert in certificates
        if isinstance(cert, (bytes, bytearray))
    )

    devices = data.get("ProvisionedDevices")
    platforms = data.get("Platform") or []

    return Profile(
        path=Path(path),
        name=str(data.get("Name") or Path(path).stem),
        app_identifier_prefix=str(_first(data.get("ApplicationIdentifierPrefix")) or ""),
        app_identifier=str(entitlements.get("application-identifier") or ""),
        developer_certificate_fingerprints=fingerprints,
        entitlements=dict(entitlements),
        expiration_date=_to_local_date(data.get("ExpirationDate")),
        provisioned_devices=list(devices) if isinstance(devices, list) else None,
        uuid=data.get("UUID"),
        app_id_name=data.get("AppIDName"),
        team_identifier=_first(data.get("TeamIdentifier")),
        team_name=data.get("TeamName"),
        platforms=list(platforms) if isinstance(platforms, list) else [platforms],
        creation_date=_to_local_date(data.get("CreationDate")),
        xcode_managed=bool(data.get("IsXcodeManaged", False)),
        time_to_live=data.get("TimeToLive"),
        version=data.get("Version"),
    )


def decode_profile(path: Path, data: Optional[bytes] = None) -> Profile:
    """Read a provisioning profile without using the macOS security command"""
    path = Path(path)
    try:
        if data is None:
            data = path.read_bytes()
        payload = unwrap_cms(data)
        plist = plistlib.loads(payload)
    except (
        OSError,
        ValueError,
        TypeError,
        KeyError,
        ExpatError,
        plistlib.InvalidFileException,
    ) as e:
        raise ProfileDecodeError(
            f"Could not decode provisioning profile {path}: {e}"
        ) from e
    return profile_from_plist(path, plist)


class ProvisioningProfileCatalog:
    """Every decodable profile of one directory, sorted by name.

    Files are parsed once. Expiry is evaluated on every call to valid_profiles().
    """

    def __init__(self, profiles: Iterable[Profile] = ()):
        self._profiles = tuple(sorted(profiles, key=lambda p: p.name.lower()))

    @classmethod
    def from_directory(cls, directory: Path, extension: str) -> "ProvisioningProfileCatalog":
        console = get_console()
        directory = Path(directory)
        if not directory.is_dir():
            console.print(
                f"[yellow]Warning: provisioning profiles folder not found at {directory}[/]"
            )
            return cls()

        profiles = []
        for file in sorted(directory.rglob(f"*{extension}")):
            if not file.is_file():
                continue
            try:
                profiles.append(decode_profile(file))
            except ProfileDecodeError as e:
                console.print(f"[yellow]Warning: skipping profile:[/] {e}")
                continue
            debug(f"Loaded provisioning profile {profiles[-1].name} from {file}")
        return cls(profiles)

    @property
    def profiles(self) -> List[Profile]:
        return list(self._profiles)

    def __len__(self) -> int:
        return len(self._profiles)

    def valid_profiles(self, today: Optional[date] = None) -> List[Profile]:
        today = today or date.today()
        return [p for p in self._profiles if p.is_valid_on(today)]

    def find_by_name(self, name: str) -> Optional[Profile]:
        return next((p for p in self._profiles if p.name == name), None)
