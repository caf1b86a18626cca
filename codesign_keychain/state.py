"""State handed from the setup step to the cleanup step."""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Any, Optional

from . import actions
from .search_list import SearchListSnapshot, deserialize_snapshot, serialize_snapshot

logger = logging.getLogger(__name__)

KEYCHAIN_PATH_KEY = "keychainPath"
KEYCHAIN_PASSWORD_KEY = "keychainPassword"
SEARCH_LIST_KEY = "prevKeychains"
DEFAULT_KEYCHAIN_KEY = "prevDefaultKeychain"
TRUSTED_CERTIFICATE_KEY = "trustedCertificate"

STATE_KEYS = (
    KEYCHAIN_PATH_KEY,
    KEYCHAIN_PASSWORD_KEY,
    SEARCH_LIST_KEY,
    DEFAULT_KEYCHAIN_KEY,
    TRUSTED_CERTIFICATE_KEY,
)


@dataclass(frozen=True)
class TransferredState:
    """
    Snapshot of what cleanup needs to undo setup.

    Every field is optional: setup may have aborted before a value was known,
    and cleanup skips the matching step when a field is missing.
    """

    keychain_path: Optional[str] = None
    unlock_secret: Optional[str] = None
    search_list: Optional[SearchListSnapshot] = None
    default_keychain: Optional[str] = None
    trusted_certificate: Optional[str] = None

    def __repr__(self) -> str:
        secret = "***" if self.unlock_secret else None
        return (
            f"TransferredState(keychain_path={self.keychain_path!r}, "
            f"unlock_secret={secret!r}, search_list={self.search_list!r}, "
            f"default_keychain={self.default_keychain!r}, "
            f"trusted_certificate={self.trusted_certificate is not None})"
        )

    @property
    def is_empty(self) -> bool:
        """True if no field was carried over."""
        return self.search_list is None and not any(
            [
                self.keychain_path,
                self.unlock_secret,
                self.default_keychain,
                self.trusted_certificate,
            ]
        )

    def to_mapping(self) -> Dict[str, str]:
        """
        Flatten to string key/value pairs, leaving out missing fields.

        Returns:
            Mapping using the keychainPath / keychainPassword / prevKeychains /
            prevDefaultKeychain / trustedCertificate keys
        """
        mapping = {}
        if self.keychain_path:
            mapping[KEYCHAIN_PATH_KEY] = self.keychain_path
        if self.unlock_secret:
            mapping[KEYCHAIN_PASSWORD_KEY] = self.unlock_secret
        if self.search_list is not None:
            mapping[SEARCH_LIST_KEY] = serialize_snapshot(self.search_list)
        if self.default_keychain:
            mapping[DEFAULT_KEYCHAIN_KEY] = self.default_keychain
        if self.trusted_certificate:
            mapping[TRUSTED_CERTIFICATE_KEY] = self.trusted_certificate
        return mapping

    @classmethod
    def from_mapping(cls, mapping: Dict[str, Any]) -> "TransferredState":
        """
        Rebuild from a string mapping; unknown keys are ignored.

        Empty or non-string values count as missing, except for prevKeychains
        where an empty string is an empty search list.
        """

        def _get(key: str) -> Optional[str]:
            value = mapping.get(key)
            if isinstance(value, str) and value.strip():
                return value
            return None

        # An empty value is a captured empty search list, not a missing one.
        search_list = mapping.get(SEARCH_LIST_KEY)
        snapshot = deserialize_snapshot(search_list) if isinstance(search_list, str) else None

        return cls(
            keychain_path=_get(KEYCHAIN_PATH_KEY),
            unlock_secret=_get(KEYCHAIN_PASSWORD_KEY),
            search_list=snapshot,
            default_keychain=_get(DEFAULT_KEYCHAIN_KEY),
            trusted_certificate=_get(TRUSTED_CERTIFICATE_KEY),
        )


class StateCarrier(ABC):
    """Moves TransferredState across the process boundary between steps."""

    @abstractmethod
    def save(self, state: TransferredState) -> None:
        """Persist state for the cleanup step."""
        pass

    @abstractmethod
    def load(self) -> TransferredState:
        """
        Read state saved by the setup step.

        Never raises for missing or unreadable state; returns an empty
        TransferredState instead.
        """
        pass


class GitHubStateCarrier(StateCarrier):
    """Action state: written to $GITHUB_STATE, read back as STATE_* variables."""

    def save(self, state: TransferredState) -> None:
        for key, value in state.to_mapping().items():
            if not actions.append_to_env_file("GITHUB_STATE", key, value):
                raise RuntimeError("GITHUB_STATE is not set; cannot save action state")

    def load(self) -> TransferredState:
        mapping = {}
        for key in STATE_KEYS:
            value = actions.get_state(key)
            if value is not None:
                mapping[key] = value
        return TransferredState.from_mapping(mapping)


class FileStateCarrier(StateCarrier):
    """State stored as a JSON object in a file readable only by the owner."""

    def __init__(self, path: str):
        self.path = Path(path)

    def save(self, state: TransferredState) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.touch(mode=0o600, exist_ok=True)
        self.path.chmod(0o600)
        with open(self.path, "w") as f:
            json.dump(state.to_mapping(), f, indent=2)

    def load(self) -> TransferredState:
        if not self.path.exists():
            logger.warning("State file not found: %s", self.path)
            return TransferredState()

        try:
            with open(self.path, "r") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Could not read state file %s: %s", self.path, e)
            return TransferredState()

        if not isinstance(data, dict):
            logger.warning("State file %s does not hold an object", self.path)
            return TransferredState()

        return TransferredState.from_mapping(data)

    def discard(self) -> None:
        """Remove the state file, which holds the unlock secret."""
        self.path.unlink(missing_ok=True)


def default_state_carrier(state_file: Optional[str] = None) -> StateCarrier:
    """
    Pick the state carrier for the current environment.

    Args:
        state_file: Explicit JSON state file; wins over runner detection

    Returns:
        FileStateCarrier when state_file is given, GitHubStateCarrier under
        GitHub Actions

    Raises:
        RuntimeError: If neither is available
    """
    if state_file:
        return FileStateCarrier(state_file)
    if actions.is_github_actions():
        return GitHubStateCarrier()
    raise RuntimeError("Not running in GitHub Actions; pass --state-file")
