import os
from dataclasses import dataclass, replace
from pathlib import Path
import toml
from typing import Dict, Any, Optional

from provsign.src.core.signing_executor import DEFAULT_SIGN_TIMEOUT, DEFAULT_VERIFY_TIMEOUT


@dataclass(frozen=True)
class SigningConfig:
    platform: str = "ios"
    identity: Optional[str] = None
    provisioning_profile: Optional[str] = None
    signing_user: Optional[str] = None
    profiles_dir: Optional[Path] = None
    sign_timeout: float = DEFAULT_SIGN_TIMEOUT
    verify_timeout: float = DEFAULT_VERIFY_TIMEOUT
    verbose: bool = False

    def with_overrides(self, **overrides) -> "SigningConfig":
        """Copy with every non-None override applied"""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


def get_config_path() -> Path:
    """Return the path to the configuration file."""
    env_path = os.environ.get("PROVSIGN_CONFIG")
    if env_path:
        return Path(env_path)
    return Path.home() / ".provsign" / "config.toml"


def load_config(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """Load configuration from TOML file."""
    config_path = config_path or get_config_path()
    if not config_path.exists():
        return {}

    try:
        return toml.load(config_path)
    except (toml.TomlDecodeError, OSError) as e:
        raise ValueError(f"Failed to load config {config_path}: {e}")


def get_signing_config(config_path: Optional[Path] = None) -> SigningConfig:
    """Merge the config file with PROVSIGN_* environment variables (env wins)."""
    config = load_config(config_path)
    signing = config.get("signing", {})
    paths = config.get("paths", {})
    timeouts = config.get("timeouts", {})

    profiles_dir = os.environ.get("PROVSIGN_PROFILES_DIR") or paths.get("profiles_dir")

    return SigningConfig(
        platform=os.environ.get("PROVSIGN_PLATFORM") or signing.get("platform", "ios"),
        identity=os.environ.get("PROVSIGN_IDENTITY") or signing.get("identity"),
        provisioning_profile=os.environ.get("PROVSIGN_PROVISIONING_PROFILE")
        or signing.get("provisioning_profile"),
        signing_user=os.environ.get("PROVSIGN_SIGNING_USER")
        or signing.get("signing_user"),
        profiles_dir=Path(profiles_dir).expanduser() if profiles_dir else None,
        sign_timeout=float(timeouts.get("sign", DEFAULT_SIGN_TIMEOUT)),
        verify_timeout=float(timeouts.get("verify", DEFAULT_VERIFY_TIMEOUT)),
        verbose=bool(signing.get("verbose", False)),
    )
