import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Pattern

from provsign.logger import debug, get_console
from provsign.src.constants.platforms import IDENTITY_ERROR_FLAG
from provsign.src.core.errors import ToolInvocationError
from provsign.src.core import process_runner

# e.g.  1) 0123456789ABCDEF0123456789ABCDEF01234567 "Apple Development: Jane Doe (TEAM)"
IDENTITY_LINE_RE = re.compile(r'^\d+\)\s+([0-9A-F]+)\s+"([^"]*)"\s*(.*)')

LIST_IDENTITIES_CMD = ["security", "find-identity", "-p", "codesigning", "-v"]


@dataclass(frozen=True)
class Identity:
    """A code signing identity found in the keychain"""

    common_name: str
    fingerprint: str  # SHA-1 of the certificate, uppercase hex

    def __str__(self) -> str:
        return f"{self.common_name} ({self.fingerprint})"


def parse_identities(text: str) -> List[Identity]:
    """Parse `security find-identity` output, sorted case-insensitively by name.

    Lines that don't look like an identity (summary lines, blanks) are skipped,
    as are identities flagged with a CSSMERR_* policy error (revoked, expired...).
    """
    identities = []
    for line in text.splitlines():
        match = IDENTITY_LINE_RE.match(line.strip())
        if not match:
            continue
        fingerprint, common_name, flags = match.groups()
        if flags and flags.lstrip("(").startswith(IDENTITY_ERROR_FLAG):
            debug(f"Skipping invalid identity {common_name}: {flags}")
            continue
        identities.append(Identity(common_name=common_name, fingerprint=fingerprint))
    return sorted(identities, key=lambda identity: identity.common_name.lower())


class IdentityCatalog:
    """Immutable, ordered collection of the signing identities on this machine"""

    def __init__(self, identities: Iterable[Identity] = ()):
        self._identities = tuple(
            sorted(identities, key=lambda identity: identity.common_name.lower())
        )

    @classmethod
    def from_listing(cls, text: str) -> "IdentityCatalog":
        return cls(parse_identities(text))

    @classmethod
    def from_keychain(cls) -> "IdentityCatalog":
        """Query the keychain. Any failure yields an empty catalog."""
        console = get_console()
        try:
            result = process_runner.run_tool(LIST_IDENTITIES_CMD)
        except ToolInvocationError as e:
            console.print(f"[red]Error retrieving codesigning identities:[/] {e}")
            return cls()

        if not result.ok:
            console.print(
                "[red]Error retrieving codesigning identities:[/] "
                + "\n".join(result.output)
            )
            return cls()

        catalog = cls.from_listing("\n".join(result.output))
        debug(f"Found {len(catalog)} codesigning identities")
        return catalog

    @property
    def identities(self) -> List[Identity]:
        return list(self._identities)

    def __len__(self) -> int:
        return len(self._identities)

    def __iter__(self):
        return iter(self._identities)

    def find_by_name(self, name: str) -> List[Identity]:
        return [i for i in self._identities if i.common_name == name]

    def find_by_pattern(
        self, pattern: Pattern, signing_user: Optional[str] = None
    ) -> List[Identity]:
        return [
            i
            for i in self._identities
            if pattern.search(i.common_name)
            and (signing_user is None or signing_user in i.common_name)
        ]

    def select(
        self,
        pattern: Pattern,
        provided_name: Optional[str] = None,
        signing_user: Optional[str] = None,
    ) -> List[Identity]:
        """Identities usable for signing: the exact provided name wins over the pattern"""
        if provided_name:
            selected = self.find_by_name(provided_name)
        else:
            selected = self.find_by_pattern(pattern, signing_user)
        debug(f"{len(selected)} of {len(self)} identities are usable for signing")
        return selected
