"""Keychain search list capture, insertion and restoration."""

import logging
from enum import Enum
from typing import List, Optional, Tuple

from .backends.base import KeychainBackend, SecurityCommandError
from .keychain import ProvisioningError, login_keychain_path

logger = logging.getLogger(__name__)

SearchListSnapshot = Tuple[str, ...]


class SearchMode(str, Enum):
    """How the ephemeral keychain is made visible to the user's search list."""

    # Keep the existing keychains so issuer certificates and system roots
    # still resolve; codesign identities come from the ephemeral keychain.
    ALONGSIDE_DEFAULT = "alongside-default"
    # Only the ephemeral keychain is visible and it becomes the default.
    EXCLUSIVE = "exclusive"

    @classmethod
    def parse(cls, value: str) -> "SearchMode":
        """Parse a mode name, raising ValueError with the valid choices."""
        try:
            return cls(value)
        except ValueError:
            choices = ", ".join(m.value for m in cls)
            raise ValueError(f"Unknown search mode {value!r} (expected one of: {choices})")


def serialize_snapshot(snapshot: SearchListSnapshot) -> str:
    """Encode a snapshot as newline separated paths."""
    return "\n".join(snapshot)


def deserialize_snapshot(value: str) -> SearchListSnapshot:
    """Decode a snapshot written by serialize_snapshot or printed by security(1)."""
    paths = []
    for line in value.splitlines():
        entry = line.strip().strip('"')
        if entry:
            paths.append(entry)
    return tuple(paths)


class SearchListManager:
    """Manages the user's keychain search list and default keychain."""

    def __init__(self, backend: KeychainBackend, login_keychain: Optional[str] = None):
        self.backend = backend
        self.login_keychain = login_keychain or login_keychain_path()

    def snapshot(self) -> Optional[SearchListSnapshot]:
        """
        Capture the current search list by value.

        Returns:
            Tuple of keychain paths, or None if it could not be read
        """
        try:
            return tuple(self.backend.list_keychains())
        except SecurityCommandError as e:
            logger.warning("Could not read keychain search list, it will not be restored: %s", e)
            return None

    def default_keychain(self) -> Optional[str]:
        """Capture the current default keychain, or None if it could not be read."""
        try:
            return self.backend.get_default_keychain() or None
        except SecurityCommandError as e:
            logger.warning("Could not read default keychain: %s", e)
            return None

    def build_search_list(
        self,
        path: str,
        mode: SearchMode,
        snapshot: Optional[SearchListSnapshot],
    ) -> List[str]:
        """
        Compute the search list that makes path visible under mode.

        Args:
            path: Ephemeral keychain path
            mode: Insertion mode
            snapshot: Search list captured before insertion

        Returns:
            New search list, in order
        """
        if mode is SearchMode.EXCLUSIVE:
            return [path]

        base = list(snapshot) if snapshot is not None else [self.login_keychain]
        return [entry for entry in base if entry != path] + [path]

    def insert(
        self,
        path: str,
        mode: SearchMode = SearchMode.ALONGSIDE_DEFAULT,
        snapshot: Optional[SearchListSnapshot] = None,
    ) -> List[str]:
        """
        Add the ephemeral keychain to the search list.

        Returns:
            The search list that was set

        Raises:
            ProvisioningError: If the search list or default keychain cannot
                be changed
        """
        search_list = self.build_search_list(path, mode, snapshot)
        try:
            self.backend.set_search_list(search_list)
            if mode is SearchMode.EXCLUSIVE:
                self.backend.set_default_keychain(path)
        except SecurityCommandError as e:
            raise ProvisioningError(f"Failed to update keychain search list: {e}")

        logger.info("Keychain search list (%s): %s", mode.value, ", ".join(search_list))
        return search_list

    def restore(self, snapshot: SearchListSnapshot) -> None:
        """
        Put the search list back exactly as captured.

        Raises:
            SecurityCommandError: Callers in teardown record this as a failed step
        """
        self.backend.set_search_list(list(snapshot))
        logger.info("Restored keychain search list: %s", ", ".join(snapshot))
