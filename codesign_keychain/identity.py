"""Signing identity model and find-identity listing parser."""

from dataclasses import dataclass
from typing import Dict, Any, Iterable, List, Optional

DEFAULT_IDENTITY_PREFIX = "Apple Development"


@dataclass(frozen=True)
class SigningIdentity:
    """A certificate and private key usable by codesign."""

    index: int
    fingerprint: str  # SHA-1 hash of the certificate, hex
    display_name: str
    raw_line: str

    def matches(self, prefix: str) -> bool:
        """Check if the display name starts with prefix (literal comparison)."""
        return self.display_name.startswith(prefix)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for step outputs and diagnostics."""
        return {
            "index": self.index,
            "fingerprint": self.fingerprint,
            "display_name": self.display_name,
            "raw_line": self.raw_line,
        }


def parse_identity_line(line: str) -> Optional[SigningIdentity]:
    """
    Parse one record of `security find-identity` output.

    Records look like:

        1) 0123456789ABCDEF0123456789ABCDEF01234567 "Apple Development: Jane Doe (ABCDE12345)"

    The display name is everything between the first and the last double
    quote, so names containing quotes survive intact. Summary lines such as
    "1 valid identities found" are not records.

    Args:
        line: One line of listing output

    Returns:
        SigningIdentity, or None if the line is not an identity record
    """
    raw = line.strip()
    index_part, sep, rest = raw.partition(")")
    if not sep or not index_part.isdigit():
        return None

    rest = rest.strip()
    fingerprint, _, quoted = rest.partition(" ")
    quoted = quoted.strip()
    if not fingerprint or not quoted.startswith('"'):
        return None

    closing = quoted.rfind('"')
    if closing <= 0:
        return None

    return SigningIdentity(
        index=int(index_part),
        fingerprint=fingerprint,
        display_name=quoted[1:closing],
        raw_line=raw,
    )


def parse_identity_listing(output: str) -> List[SigningIdentity]:
    """
    Parse full `security find-identity` output.

    Args:
        output: Listing text

    Returns:
        Identities in listing order
    """
    identities = []
    for line in output.splitlines():
        identity = parse_identity_line(line)
        if identity is not None:
            identities.append(identity)
    return identities


def select_identity(
    identities: Iterable[SigningIdentity], prefix: str
) -> Optional[SigningIdentity]:
    """
    Pick the first identity whose display name starts with prefix.

    Multiple matches are not an error; listing order decides.
    """
    for identity in identities:
        if identity.matches(prefix):
            return identity
    return None
