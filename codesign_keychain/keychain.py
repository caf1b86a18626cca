"""Ephemeral keychain model and provisioning."""

import logging
import os
import secrets
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .backends.base import KeychainBackend, SecurityCommandError
from .secret import generate_unlock_secret

logger = logging.getLogger(__name__)

DEFAULT_AUTO_LOCK_SECONDS = 3600
KEYCHAIN_SUFFIX = ".keychain-db"
LOGIN_KEYCHAIN_NAMES = ("login.keychain-db", "login.keychain")


class ProvisioningError(RuntimeError):
    """Setting up the ephemeral keychain failed."""
    pass


def keychains_directory(home: Optional[str] = None) -> Path:
    """Get the per-user keychains directory (~/Library/Keychains)."""
    home = home or os.environ.get("HOME") or str(Path.home())
    return Path(home) / "Library" / "Keychains"


def login_keychain_path(home: Optional[str] = None) -> str:
    """Get the path of the user's login keychain."""
    return str(keychains_directory(home) / LOGIN_KEYCHAIN_NAMES[0])


def generate_keychain_name(prefix: str = "codesign") -> str:
    """
    Generate a per-run keychain file name.

    Returns:
        Name like codesign-1700000000000-1a2b3c4d.keychain-db
    """
    millis = int(time.time() * 1000)
    return f"{prefix}-{millis}-{secrets.token_hex(4)}{KEYCHAIN_SUFFIX}"


def resolve_keychain_path(name: Optional[str] = None, directory: Optional[str] = None) -> str:
    """
    Build the absolute keychain path from configuration.

    Args:
        name: Keychain file name; a fresh per-run name is generated when unset.
            Names without an extension get .keychain-db appended.
        directory: Directory holding the keychain (default ~/Library/Keychains)

    Returns:
        Absolute keychain path
    """
    if not name:
        name = generate_keychain_name()
    elif not name.endswith((KEYCHAIN_SUFFIX, ".keychain")):
        name += KEYCHAIN_SUFFIX

    base = Path(os.path.expanduser(directory)) if directory else keychains_directory()
    return str(base / name)


@dataclass
class EphemeralKeychain:
    """A temporary, password-protected keychain owned by one job."""

    path: str
    unlock_secret: str = field(repr=False)
    auto_lock_seconds: int = DEFAULT_AUTO_LOCK_SECONDS

    @property
    def name(self) -> str:
        """Keychain file name."""
        return Path(self.path).name


class KeychainProvisioner:
    """Creates, configures and unlocks ephemeral keychains."""

    def __init__(self, backend: KeychainBackend):
        self.backend = backend

    def new_keychain(
        self, path: str, auto_lock_seconds: int = DEFAULT_AUTO_LOCK_SECONDS
    ) -> EphemeralKeychain:
        """Describe a keychain at path with a freshly generated unlock secret."""
        if auto_lock_seconds <= 0:
            raise ValueError("auto_lock_seconds must be positive")
        return EphemeralKeychain(
            path=path,
            unlock_secret=generate_unlock_secret(),
            auto_lock_seconds=auto_lock_seconds,
        )

    def check_available(self, keychain: EphemeralKeychain) -> None:
        """
        Make sure nothing exists at the keychain path yet.

        Raises:
            ProvisioningError: If a keychain already exists at the path
        """
        if Path(keychain.path).exists():
            raise ProvisioningError(f"Keychain already exists: {keychain.path}")

    def create(self, keychain: EphemeralKeychain) -> None:
        """
        Create the keychain file.

        Raises:
            ProvisioningError: If a keychain already exists at the path or the
                create call fails
        """
        self.check_available(keychain)

        try:
            self.backend.create_keychain(keychain.path, keychain.unlock_secret)
        except SecurityCommandError as e:
            raise ProvisioningError(f"Failed to create keychain {keychain.path}: {e}")

        logger.info("Created keychain %s", keychain.path)

    def configure(self, keychain: EphemeralKeychain) -> None:
        """Set the auto-lock timeout so the keychain relocks if the job hangs."""
        try:
            self.backend.set_keychain_settings(keychain.path, keychain.auto_lock_seconds)
        except SecurityCommandError as e:
            raise ProvisioningError(f"Failed to configure keychain {keychain.path}: {e}")

        logger.info(
            "Keychain %s locks after %d seconds", keychain.name, keychain.auto_lock_seconds
        )

    def unlock(self, keychain: EphemeralKeychain) -> None:
        """Unlock the keychain; imports into a locked keychain fail."""
        try:
            self.backend.unlock_keychain(keychain.path, keychain.unlock_secret)
        except SecurityCommandError as e:
            raise ProvisioningError(f"Failed to unlock keychain {keychain.path}: {e}")
