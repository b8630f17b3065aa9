from dataclasses import dataclass
from typing import List, Optional, Sequence

from provsign.logger import debug, get_console
from provsign.src.core.errors import NoIdentityError, NoMatchingProfileError
from provsign.src.core.identity_catalog import Identity
from provsign.src.ipa.provisioning_profile import Profile

WILDCARD = "*"


@dataclass(frozen=True)
class Resolution:
    """A signing identity together with a profile that authorizes it"""

    identity: Identity
    profile: Profile


def generalize_scope(scope: str) -> Optional[str]:
    """Next, broader app identifier scope to try, or None once ``*`` was tried.

    com.example.app -> com.example.* -> com.* -> *
    """
    if scope == WILDCARD:
        return None
    if "." not in scope:
        return WILDCARD

    tokens = scope.split(".")
    last = len(tokens) - 1
    drop_index = last - 1 if tokens[last] == WILDCARD else last
    prefix = ".".join(tokens[:drop_index])
    return prefix + ".*" if prefix else WILDCARD


def scope_sequence(bundle_id: str) -> List[str]:
    """Every scope tried for ``bundle_id``, most specific first"""
    scopes = []
    scope: Optional[str] = bundle_id
    while scope is not None:
        scopes.append(scope)
        scope = generalize_scope(scope)
    return scopes


class ProfileResolver:
    """Finds the first (identity, profile) pair able to sign a bundle id.

    Identities are tried in catalog order. For each one the bundle id is
    matched against the profiles' app identifiers, broadening one segment at
    a time until ``*``. When several profiles match at the same level, the
    first one in catalog (alphabetical) order wins.
    """

    def __init__(
        self,
        valid_profiles: Sequence[Profile],
        provided_profile_name: Optional[str] = None,
    ):
        self.console = get_console()
        self.valid_profiles = list(valid_profiles)
        self.provided_profile_name = provided_profile_name

    def match_bundle_id(
        self, identity: Identity, scope: str, original_bundle_id: str
    ) -> Optional[Profile]:
        while True:
            debug(
                f"Looking for a provisioning profile with scope {scope} "
                f"(bundle id: {original_bundle_id})"
            )
            by_identifier = [p for p in self.valid_profiles if p.authorizes_scope(scope)]
            matches = [
                p for p in by_identifier if p.authorizes_certificate(identity.fingerprint)
            ]
            if matches:
                debug(f"{matches[0].name} matches {identity}")
                return matches[0]
            if by_identifier:
                debug(
                    f"App identifiers match for scope {scope}, "
                    "but there are no fingerprint matches"
                )

            next_scope = generalize_scope(scope)
            if next_scope is None:
                self.console.print(
                    f"[yellow]No provisioning profile found matching signing identity "
                    f"'{identity.common_name}' and bundle id '{original_bundle_id}'[/]"
                )
                return None
            scope = next_scope

    def find(self, bundle_id: str, identities: Sequence[Identity]) -> Optional[Resolution]:
        for identity in identities:
            profile = self.match_bundle_id(identity, bundle_id, bundle_id)
            if profile is None:
                continue
            if self.provided_profile_name and profile.name != self.provided_profile_name:
                debug(
                    f"Skipping {profile.name}: provisioning profile "
                    f"'{self.provided_profile_name}' was requested"
                )
                continue
            debug(f"Got provisioning profile: {profile.name}")
            return Resolution(identity=identity, profile=profile)
        return None

    def resolve(self, bundle_id: str, identities: Sequence[Identity]) -> Resolution:
        if not identities:
            raise NoIdentityError(
                "No valid signing identity (certificate) found in the keychain. "
                "Install a development or distribution certificate and try again."
            )
        resolution = self.find(bundle_id, identities)
        if resolution is None:
            raise NoMatchingProfileError(
                f"No matching provisioning profile for bundle id '{bundle_id}' "
                f"and any of the {len(identities)} signing identities."
            )
        return resolution
