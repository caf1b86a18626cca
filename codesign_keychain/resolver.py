"""Signing identity resolution with a single trust-repair retry."""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional

from cryptography import x509

from .backends.base import KeychainBackend, SecurityCommandError
from .identity import (
    DEFAULT_IDENTITY_PREFIX,
    SigningIdentity,
    parse_identity_listing,
    select_identity,
)
from .payload import certificate_common_name, pem_file

logger = logging.getLogger(__name__)


class ResolutionState(str, Enum):
    """States visited while resolving a signing identity."""

    LISTING = "listing"
    NO_MATCH = "no_match"
    TRUST_REPAIR_ATTEMPTED = "trust_repair_attempted"
    MATCHED = "matched"
    FAILED = "failed"


class IdentityNotFoundError(RuntimeError):
    """No signing identity matched the configured prefix, even after trust repair."""

    def __init__(
        self,
        prefix: str,
        listing: str,
        states: Optional[List[ResolutionState]] = None,
    ):
        self.prefix = prefix
        self.listing = listing
        self.states = list(states or [])
        super().__init__(f"No identity found with prefix: {prefix}")


@dataclass
class ResolutionResult:
    """Outcome of a successful resolution."""

    identity: SigningIdentity
    states: List[ResolutionState] = field(default_factory=list)
    listing: str = ""

    @property
    def repaired(self) -> bool:
        """True if the match needed the trust-repair pass."""
        return ResolutionState.TRUST_REPAIR_ATTEMPTED in self.states

    @property
    def identity_id(self) -> str:
        """Identity reference passed to codesign --sign."""
        return self.identity.display_name

    @property
    def identity_info(self) -> str:
        """Full listing line, for diagnostics."""
        return self.identity.raw_line


class IdentityResolver:
    """Finds the signing identity to use inside the ephemeral keychain."""

    def __init__(
        self,
        backend: KeychainBackend,
        prefix: Optional[str] = None,
        on_trust: Optional[Callable[[str], None]] = None,
    ):
        """
        Initialize resolver.

        Args:
            backend: Keychain command backend
            prefix: Display name prefix to match (default: "Apple Development")
            on_trust: Called with the certificate PEM before it is trusted;
                if it raises, trust is left unchanged
        """
        self.backend = backend
        self.prefix = prefix or DEFAULT_IDENTITY_PREFIX
        self.on_trust = on_trust
        self.trusted_certificate: Optional[str] = None

    def _list(self, keychain_path: str) -> str:
        return self.backend.find_identity(keychain_path)

    def repair_trust(self, keychain_path: str) -> bool:
        """
        Mark the leaf certificate matching the prefix as a trusted root.

        Extraction and trust failures are logged and reported as False; they
        never raise, since the following listing pass decides the outcome.

        Returns:
            True if a certificate was found and trusted
        """
        try:
            pem = self.backend.find_certificate(keychain_path, self.prefix)
        except SecurityCommandError as e:
            logger.warning("Trust repair skipped, certificate lookup failed: %s", e)
            return False

        if not pem.strip():
            logger.warning(
                "Trust repair skipped, no certificate named %r in keychain", self.prefix
            )
            return False

        try:
            cert = x509.load_pem_x509_certificate(pem.encode())
        except ValueError as e:
            logger.warning("Trust repair skipped, exported certificate is unreadable: %s", e)
            return False

        # Trust settings are per user, not per keychain; cleanup must hold
        # the certificate before they change.
        if self.on_trust is not None:
            try:
                self.on_trust(pem)
            except (OSError, RuntimeError) as e:
                logger.warning(
                    "Trust repair skipped, could not record certificate for cleanup: %s", e
                )
                return False

        try:
            with pem_file(pem) as cert_path:
                self.backend.add_trusted_cert(keychain_path, cert_path)
        except (OSError, SecurityCommandError) as e:
            logger.warning("Trust repair failed for %s: %s", certificate_common_name(cert), e)
            return False

        self.trusted_certificate = pem
        logger.info("Trusted certificate %s for code signing", certificate_common_name(cert))
        return True

    def resolve(self, keychain_path: str) -> ResolutionResult:
        """
        Resolve the signing identity.

        Lists identities, and when none matches the prefix, repairs trust for
        the matching certificate and lists once more.

        Args:
            keychain_path: Ephemeral keychain path

        Returns:
            ResolutionResult for the first matching identity

        Raises:
            IdentityNotFoundError: If nothing matched after the repair pass
            SecurityCommandError: If the identity listing itself fails
        """
        states = [ResolutionState.LISTING]
        listing = self._list(keychain_path)
        identity = select_identity(parse_identity_listing(listing), self.prefix)

        if identity is None:
            states.append(ResolutionState.NO_MATCH)
            logger.info("No identity matched %r, attempting trust repair", self.prefix)
            self.repair_trust(keychain_path)
            states.append(ResolutionState.TRUST_REPAIR_ATTEMPTED)

            listing = self._list(keychain_path)
            identity = select_identity(parse_identity_listing(listing), self.prefix)

        if identity is None:
            states.extend([ResolutionState.NO_MATCH, ResolutionState.FAILED])
            logger.warning(
                "No matching identity found. Identities in keychain:\n%s", listing
            )
            raise IdentityNotFoundError(self.prefix, listing, states)

        states.append(ResolutionState.MATCHED)
        logger.info("Resolved signing identity %s", identity.raw_line)
        return ResolutionResult(identity=identity, states=states, listing=listing)
