"""Setup orchestration: provision, import and resolve in one pass."""

import logging
from dataclasses import dataclass, replace
from typing import Dict, List, Optional

from . import actions
from .backends.base import KeychainBackend, SecurityCommandError
from .config import KeychainConfig
from .importer import IdentityImporter
from .keychain import (
    EphemeralKeychain,
    KeychainProvisioner,
    ProvisioningError,
    resolve_keychain_path,
)
from .payload import CertificatePayload, ScratchDirectory
from .resolver import IdentityResolver, ResolutionResult
from .search_list import SearchListManager, SearchListSnapshot
from .state import StateCarrier, TransferredState

logger = logging.getLogger(__name__)

OUTPUT_IDENTITY_ID = "cert-id"
OUTPUT_IDENTITY_INFO = "cert-info"


@dataclass
class SetupResult:
    """Everything the setup step produced."""

    keychain: EphemeralKeychain
    resolution: ResolutionResult
    search_list: List[str]
    snapshot: Optional[SearchListSnapshot] = None

    def outputs(self) -> Dict[str, str]:
        """Step outputs consumed by the signing step."""
        return {
            OUTPUT_IDENTITY_ID: self.resolution.identity_id,
            OUTPUT_IDENTITY_INFO: self.resolution.identity_info,
        }


class KeychainOrchestrator:
    """Runs the setup step against one keychain backend."""

    def __init__(
        self,
        backend: KeychainBackend,
        state_carrier: StateCarrier,
        config: Optional[KeychainConfig] = None,
    ):
        """
        Initialize orchestrator.

        Args:
            backend: Keychain command backend
            state_carrier: Where to leave state for the cleanup step
            config: Keychain configuration (defaults apply when omitted)
        """
        self.backend = backend
        self.state_carrier = state_carrier
        self.config = config or KeychainConfig({})

        self.provisioner = KeychainProvisioner(backend)
        self.search_list = SearchListManager(backend)
        self.importer = IdentityImporter(
            backend,
            grant_tools=self.config.grant_tools,
            partition_list=self.config.partition_list,
        )
        self.resolver = IdentityResolver(
            backend,
            prefix=self.config.identity_prefix,
            on_trust=self._record_trusted_certificate,
        )
        self.state: Optional[TransferredState] = None

    def _save_state(self, state: TransferredState) -> None:
        try:
            self.state_carrier.save(state)
        except (OSError, RuntimeError) as e:
            raise ProvisioningError(f"Failed to save cleanup state: {e}")
        self.state = state

    def _record_trusted_certificate(self, pem: str) -> None:
        self._save_state(replace(self.state or TransferredState(), trusted_certificate=pem))

    def setup(self, payload: CertificatePayload) -> SetupResult:
        """
        Provision the ephemeral keychain and resolve the signing identity.

        State for the cleanup step is saved before the keychain is created,
        and saved again before trust repair changes user trust settings, so
        every host change is known to cleanup before it happens.

        Args:
            payload: Decoded certificate payload

        Returns:
            SetupResult with the resolved identity

        Raises:
            PayloadError: If the payload cannot be opened
            ProvisioningError: If saving state, creating, configuring or
                importing fails
            IdentityNotFoundError: If no identity matches the prefix
        """
        summary = payload.inspect()
        logger.info(
            "Certificate payload: %s (private key: %s, chain: %d)",
            summary.common_name or "<no common name>",
            "yes" if summary.has_private_key else "no",
            summary.chain_length,
        )

        path = resolve_keychain_path(self.config.keychain_name, self.config.keychain_directory)
        keychain = self.provisioner.new_keychain(path, self.config.auto_lock_seconds)
        actions.mask(keychain.unlock_secret)

        # create-keychain adds the new keychain to the search list, so the
        # snapshot has to be taken first.
        snapshot = self.search_list.snapshot()
        default_keychain = self.search_list.default_keychain()

        self.provisioner.check_available(keychain)
        self._save_state(
            TransferredState(
                keychain_path=keychain.path,
                unlock_secret=keychain.unlock_secret,
                search_list=snapshot,
                default_keychain=default_keychain,
            )
        )
        self.provisioner.create(keychain)

        self.provisioner.configure(keychain)
        self.provisioner.unlock(keychain)
        search_list = self.search_list.insert(keychain.path, self.config.search_mode, snapshot)

        with ScratchDirectory() as scratch:
            payload_file = payload.materialize(scratch)
            self.importer.import_identity(keychain, payload_file, payload.passphrase)

        try:
            resolution = self.resolver.resolve(keychain.path)
        except SecurityCommandError as e:
            raise ProvisioningError(f"Failed to list signing identities: {e}")

        return SetupResult(
            keychain=keychain,
            resolution=resolution,
            search_list=search_list,
            snapshot=snapshot,
        )
