import hashlib
import plistlib
from datetime import date, datetime, timedelta
from pathlib import Path

import pytest
from asn1crypto import cms

from provsign import logger
from provsign.src.core.identity_catalog import Identity
from provsign.src.ipa.provisioning_profile import Profile


def fingerprint_of(cert: bytes) -> str:
    return hashlib.sha1(cert).hexdigest().upper()


def wrap_in_cms(payload: bytes) -> bytes:
    """Unsigned CMS SignedData carrying ``payload``, shaped like a .mobileprovision"""
    signed_data = cms.SignedData(
        {
            "version": "v1",
            "digest_algorithms": [],
            "encap_content_info": {"content_type": "data", "content": payload},
            "signer_infos": [],
        }
    )
    return cms.ContentInfo({"content_type": "signed_data", "content": signed_data}).dump()


def profile_plist(
    name="Example Dev",
    prefix="TEAM1",
    scope="com.example.*",
    certificates=(b"cert-1",),
    expires=None,
    task_allow=True,
    devices=None,
    extra_entitlements=None,
):
    expires = expires or datetime(2099, 1, 1, 12, 0, 0)
    entitlements = {
        "application-identifier": f"{prefix}.{scope}",
        "get-task-allow": task_allow,
        "com.apple.developer.team-identifier": prefix,
    }
    entitlements.update(extra_entitlements or {})
    data = {
        "AppIDName": "Example",
        "ApplicationIdentifierPrefix": [prefix],
        "CreationDate": datetime(2024, 1, 1, 12, 0, 0),
        "DeveloperCertificates": list(certificates),
        "Entitlements": entitlements,
        "ExpirationDate": expires,
        "IsXcodeManaged": False,
        "Name": name,
        "Platform": ["iOS"],
        "TeamIdentifier": [prefix],
        "TeamName": "Example Inc",
        "TimeToLive": 365,
        "UUID": f"uuid-{name}",
        "Version": 1,
    }
    if devices is not None:
        data["ProvisionedDevices"] = list(devices)
    return data


def write_profile(directory: Path, filename: str, fmt=plistlib.FMT_XML, **fields) -> Path:
    path = directory / filename
    payload = plistlib.dumps(profile_plist(**fields), fmt=fmt)
    path.write_bytes(wrap_in_cms(payload))
    return path


def make_profile(
    name="Example Dev",
    prefix="TEAM1",
    scope="com.example.*",
    fingerprints=("F1",),
    expires=None,
    entitlements=None,
    devices=None,
) -> Profile:
    ents = {"application-identifier": f"{prefix}.{scope}", "get-task-allow": True}
    ents.update(entitlements or {})
    return Profile(
        path=Path(f"/profiles/{name}.mobileprovision"),
        name=name,
        app_identifier_prefix=prefix,
        app_identifier=ents["application-identifier"],
        developer_certificate_fingerprints=frozenset(fingerprints),
        entitlements=ents,
        expiration_date=expires or date.today() + timedelta(days=30),
        provisioned_devices=devices,
    )


def make_identity(name="Apple Development: A", fingerprint="F1") -> Identity:
    return Identity(common_name=name, fingerprint=fingerprint)


@pytest.fixture(autouse=True)
def quiet_logger():
    logger.set_verbose(False)
    yield
    logger.set_verbose(False)


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch, tmp_path):
    for var in (
        "PROVSIGN_IDENTITY",
        "PROVSIGN_PROVISIONING_PROFILE",
        "PROVSIGN_PLATFORM",
        "PROVSIGN_PROFILES_DIR",
        "PROVSIGN_SIGNING_USER",
    ):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("PROVSIGN_CONFIG", str(tmp_path / "missing-config.toml"))
