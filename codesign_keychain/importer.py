"""Import of signing identities into the ephemeral keychain."""

import logging
from typing import List, Optional, Sequence

from .backends.base import KeychainBackend, SecurityCommandError
from .keychain import EphemeralKeychain, ProvisioningError

logger = logging.getLogger(__name__)

DEFAULT_GRANT_TOOLS = ["/usr/bin/codesign"]
DEFAULT_PARTITION_LIST = ["apple-tool:", "apple:", "codesign:"]


class IdentityImporter:
    """Imports certificate and key material and opens key access to codesign."""

    def __init__(
        self,
        backend: KeychainBackend,
        grant_tools: Optional[Sequence[str]] = None,
        partition_list: Optional[Sequence[str]] = None,
    ):
        """
        Initialize importer.

        Args:
            backend: Keychain command backend
            grant_tools: Executables pre-authorized to use the imported key
            partition_list: Key partitions that may use the key without a prompt
        """
        self.backend = backend
        self.grant_tools: List[str] = list(grant_tools or DEFAULT_GRANT_TOOLS)
        self.partition_list: List[str] = list(partition_list or DEFAULT_PARTITION_LIST)

    def import_identity(
        self, keychain: EphemeralKeychain, payload_file: str, passphrase: str
    ) -> None:
        """
        Import a PKCS#12 file and grant codesign access to its private key.

        Args:
            keychain: Unlocked ephemeral keychain
            payload_file: PKCS#12 scratch file
            passphrase: Passphrase of the PKCS#12 file

        Raises:
            ProvisioningError: If the import or the partition list update fails
        """
        try:
            self.backend.import_pkcs12(
                keychain.path, payload_file, passphrase, self.grant_tools
            )
        except SecurityCommandError as e:
            raise ProvisioningError(f"Failed to import certificate into {keychain.name}: {e}")

        try:
            self.backend.set_key_partition_list(
                keychain.path, keychain.unlock_secret, self.partition_list
            )
        except SecurityCommandError as e:
            raise ProvisioningError(f"Failed to grant key access in {keychain.name}: {e}")

        logger.info(
            "Imported certificate into %s (tools: %s)",
            keychain.name,
            ", ".join(self.grant_tools),
        )
