"""Base keychain backend interface."""

from abc import ABC, abstractmethod
from typing import Dict, Any, List, Optional, Sequence


class SecurityCommandError(RuntimeError):
    """A keychain command exited with a non-zero status."""

    def __init__(self, command: Sequence[str], returncode: int, stderr: str = ""):
        self.command = list(command)
        self.returncode = returncode
        self.stderr = (stderr or "").strip()
        message = f"{' '.join(self.command)} exited with status {returncode}"
        if self.stderr:
            message += f": {self.stderr}"
        super().__init__(message)


class KeychainBackend(ABC):
    """
    Abstract base class for the credential-store command layer.

    Each method is one synchronous call into the platform tool. Failures are
    raised as SecurityCommandError; callers decide whether they are fatal.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """Initialize backend with configuration."""
        self.config = config or {}

    @abstractmethod
    def create_keychain(self, path: str, password: str) -> None:
        """Create a new, empty keychain at path protected by password."""
        pass

    @abstractmethod
    def delete_keychain(self, path: str) -> None:
        """Delete the keychain at path."""
        pass

    @abstractmethod
    def unlock_keychain(self, path: str, password: str) -> None:
        """Unlock the keychain at path."""
        pass

    @abstractmethod
    def set_keychain_settings(self, path: str, timeout_seconds: int) -> None:
        """Lock the keychain automatically after timeout_seconds of inactivity."""
        pass

    @abstractmethod
    def get_default_keychain(self) -> str:
        """
        Get the user's default keychain.

        Returns:
            Keychain path
        """
        pass

    @abstractmethod
    def set_default_keychain(self, path: str) -> None:
        """Make path the user's default keychain."""
        pass

    @abstractmethod
    def list_keychains(self) -> List[str]:
        """
        Get the user's keychain search list.

        Returns:
            Keychain paths in search order
        """
        pass

    @abstractmethod
    def set_search_list(self, paths: Sequence[str]) -> None:
        """Replace the user's keychain search list with paths, in order."""
        pass

    @abstractmethod
    def import_pkcs12(
        self,
        path: str,
        file_path: str,
        passphrase: str,
        authorized_tools: Sequence[str],
    ) -> None:
        """
        Import a PKCS#12 container into the keychain.

        Args:
            path: Keychain path
            file_path: PKCS#12 file to import
            passphrase: Passphrase protecting the PKCS#12 file
            authorized_tools: Executables allowed to use the imported key
        """
        pass

    @abstractmethod
    def set_key_partition_list(
        self, path: str, password: str, partitions: Sequence[str]
    ) -> None:
        """Grant the listed partitions access to private keys in the keychain."""
        pass

    @abstractmethod
    def find_identity(self, path: str) -> str:
        """
        List valid code-signing identities in the keychain.

        Returns:
            Raw listing text, one identity per line
        """
        pass

    @abstractmethod
    def find_certificate(self, path: str, name: str) -> str:
        """
        Export the first certificate whose name contains name.

        Returns:
            PEM text, or an empty string when nothing matched
        """
        pass

    @abstractmethod
    def add_trusted_cert(self, path: str, cert_path: str) -> None:
        """
        Trust the certificate in cert_path as a root.

        The trust setting is stored in the user trust domain, not in the
        keychain at path, and outlives the keychain.
        """
        pass

    @abstractmethod
    def remove_trusted_cert(self, cert_path: str) -> None:
        """Remove the user trust setting for the certificate in cert_path."""
        pass
