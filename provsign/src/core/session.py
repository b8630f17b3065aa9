import shutil
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional

from provsign.logger import debug, get_console
from provsign.src.constants.platforms import (
    NOTARIZABLE_IDENTITY_PREFIX,
    SigningPlatform,
    get_platform,
)
from provsign.src.core.errors import BundleError, NoIdentityError, NoMatchingProfileError
from provsign.src.core.identity_catalog import Identity, IdentityCatalog
from provsign.src.core.profile_resolver import ProfileResolver, Resolution
from provsign.src.core.signing_executor import SigningExecutor, SigningOutcome
from provsign.src.ipa import info_plist
from provsign.src.ipa.entitlements_composer import (
    compose_entitlements,
    load_template,
    write_entitlements,
)
from provsign.src.ipa.provisioning_profile import Profile, ProvisioningProfileCatalog
from provsign.src.utils.config_loader import SigningConfig


class SigningSession:
    """One build's worth of signing state.

    The keychain and the profiles folder are read at most once per session, so
    signing an app and then its extensions doesn't re-run the listing tools.
    """

    def __init__(
        self,
        config: SigningConfig,
        identity_catalog: Optional[IdentityCatalog] = None,
        profile_catalog: Optional[ProvisioningProfileCatalog] = None,
        executor: Optional[SigningExecutor] = None,
    ):
        self.console = get_console()
        self.config = config
        self.platform: SigningPlatform = get_platform(config.platform)
        self._identity_catalog = identity_catalog
        self._profile_catalog = profile_catalog
        self.executor = executor or SigningExecutor(
            self.platform,
            sign_timeout=config.sign_timeout,
            verify_timeout=config.verify_timeout,
        )

    @property
    def identity_catalog(self) -> IdentityCatalog:
        if self._identity_catalog is None:
            self._identity_catalog = IdentityCatalog.from_keychain()
        return self._identity_catalog

    @property
    def profile_catalog(self) -> ProvisioningProfileCatalog:
        if self._profile_catalog is None:
            directory = self.config.profiles_dir or self.platform.profiles_dir
            self._profile_catalog = ProvisioningProfileCatalog.from_directory(
                directory, self.platform.profile_extension
            )
        return self._profile_catalog

    def identities(self) -> List[Identity]:
        return self.identity_catalog.select(
            self.platform.identity_name_pattern,
            provided_name=self.config.identity,
            signing_user=self.config.signing_user,
        )

    def valid_profiles(self) -> List[Profile]:
        return self.profile_catalog.valid_profiles()

    def require_identities(self) -> List[Identity]:
        identities = self.identities()
        if not identities:
            wanted = f" named '{self.config.identity}'" if self.config.identity else ""
            raise NoIdentityError(
                f"No valid signing identity{wanted} found for {self.platform.name}. "
                "Check `security find-identity -p codesigning -v` and install a "
                "development or distribution certificate."
            )
        return identities

    def resolve(self, bundle_id: str) -> Resolution:
        resolver = ProfileResolver(
            self.valid_profiles(), provided_profile_name=self.config.provisioning_profile
        )
        return resolver.resolve(bundle_id, self.require_identities())

    def _embed_profile(self, bundle_path: Path, profile: Optional[Profile]) -> None:
        embedded = bundle_path / self.platform.embedded_profile_path
        if embedded.exists():
            embedded.unlink()
        if profile is None:
            return
        embedded.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(profile.path, embedded)
        debug(f'Provisioning profile "{profile.name}" copied to {embedded}')

    def _template(self, entitlements_template: Optional[Path]) -> Dict[str, Any]:
        if entitlements_template is not None:
            return load_template(entitlements_template)
        return self.platform.default_template()

    def sign_bundle(
        self,
        bundle_path: Path,
        bundle_id: Optional[str] = None,
        task_allow: Optional[bool] = None,
        entitlements_template: Optional[Path] = None,
    ) -> SigningOutcome:
        """Resolve, embed the profile, compose entitlements, sign and verify.

        ``task_allow`` defaults to the resolved profile's own get-task-allow.
        """
        bundle_path = Path(bundle_path)
        if not bundle_path.is_dir():
            raise BundleError(f"Bundle not found: {bundle_path}")

        bundle_id = bundle_id or info_plist.get_bundle_id(bundle_path, self.platform)
        self.console.print(f"[blue]Signing bundle:[/] {bundle_path} ({bundle_id})")

        identities = self.require_identities()
        try:
            resolution: Optional[Resolution] = self.resolve(bundle_id)
        except NoMatchingProfileError:
            if self.platform.profile_required:
                raise
            self.console.print(
                "[yellow]Provisioning profile not found. Signing without one.[/]"
            )
            resolution = None

        if resolution is not None:
            identity, profile = resolution.identity, resolution.profile
            self.console.print(f"[green]Identity:[/] {identity}")
            self.console.print(f"[green]Provisioning profile:[/] {profile.name}")
        else:
            identity, profile = identities[0], None
            self.console.print(f"[green]Identity:[/] {identity}")

        self._embed_profile(bundle_path, profile)

        if task_allow is None:
            task_allow = profile.task_allow if profile is not None else False

        entitlements = compose_entitlements(
            self._template(entitlements_template), profile, bundle_id, task_allow
        )

        inner_targets = []
        if self.platform.sign_executable_first:
            executable = (
                bundle_path
                / self.platform.executable_dir
                / info_plist.get_executable_name(bundle_path, self.platform)
            )
            if executable.exists():
                inner_targets.append(executable)

        with tempfile.TemporaryDirectory(prefix="provsign-") as temp_dir:
            entitlements_path = write_entitlements(entitlements, Path(temp_dir))
            debug(f"Signing with entitlements path: {entitlements_path}")
            outcome = self.executor.execute(
                identity, bundle_path, entitlements_path, inner_targets=inner_targets
            )

        if outcome.succeeded:
            self.console.print(f"[bold green]Successfully signed:[/] {bundle_path}")
        return outcome

    def verify(self, target: Path) -> SigningOutcome:
        return self.executor.verify(Path(target))

    def disk_image_identity(self) -> Identity:
        """First Developer ID Application identity, else the first usable one"""
        identities = self.require_identities()
        return next(
            (i for i in identities if i.common_name.startswith(NOTARIZABLE_IDENTITY_PREFIX)),
            identities[0],
        )

    def sign_disk_image(
        self, dmg_path: Path, entitlements: Optional[Path] = None
    ) -> SigningOutcome:
        dmg_path = Path(dmg_path)
        if not self.platform.signs_disk_images:
            raise BundleError(
                f"Disk images can't be signed for {self.platform.name}. Use --platform macos."
            )
        if not dmg_path.is_file():
            raise BundleError(f"Disk image not found: {dmg_path}")

        identity = self.disk_image_identity()
        self.console.print(f"[blue]Signing disk image:[/] {dmg_path}")
        self.console.print(f"[green]Identity:[/] {identity}")

        outcome = self.executor.execute(identity, dmg_path, entitlements)
        if outcome.succeeded:
            self.console.print(f"[bold green]Successfully signed:[/] {dmg_path}")
        return outcome
