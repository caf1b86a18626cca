"""Configuration file loading and validation."""

import copy
import os
import yaml
from pathlib import Path
from typing import Dict, Any, Optional, List
from .identity import DEFAULT_IDENTITY_PREFIX
from .importer import DEFAULT_GRANT_TOOLS, DEFAULT_PARTITION_LIST
from .keychain import DEFAULT_AUTO_LOCK_SECONDS
from .search_list import SearchMode

CONFIG_DIR = ".signing"
CONFIG_FILENAME = "keychain.yaml"


class ConfigError(Exception):
    """Configuration validation error."""
    pass


class KeychainConfig:
    """Configuration for ephemeral keychain setup."""

    SECTIONS = ("keychain", "identity", "import")

    def __init__(self, data: Dict[str, Any]):
        """
        Initialize configuration from dictionary.

        Args:
            data: Configuration dictionary from YAML
        """
        self.data = data
        self._validate()

    def _validate(self) -> None:
        """Validate configuration schema."""
        for section in self.SECTIONS:
            if section in self.data and not isinstance(self.data[section], dict):
                raise ConfigError(f"{section} must be a dictionary")

        keychain = self.data.get("keychain", {})

        name = keychain.get("name")
        if name is not None:
            if not isinstance(name, str) or not name:
                raise ConfigError("keychain.name must be a non-empty string")
            if "/" in name:
                raise ConfigError("keychain.name must be a file name, not a path")

        directory = keychain.get("directory")
        if directory is not None and not isinstance(directory, str):
            raise ConfigError("keychain.directory must be a string")

        if "auto_lock_seconds" in keychain:
            timeout = keychain["auto_lock_seconds"]
            # bool is an int subclass
            if isinstance(timeout, bool) or not isinstance(timeout, int) or timeout <= 0:
                raise ConfigError("keychain.auto_lock_seconds must be a positive integer")

        if "search_mode" in keychain:
            try:
                SearchMode.parse(str(keychain["search_mode"]))
            except ValueError as e:
                raise ConfigError(f"keychain.search_mode: {e}")

        prefix = self.data.get("identity", {}).get("prefix")
        if prefix is not None and (not isinstance(prefix, str) or not prefix):
            raise ConfigError("identity.prefix must be a non-empty string")

        import_section = self.data.get("import", {})
        for key in ("grant_tools", "partition_list"):
            if key in import_section:
                value = import_section[key]
                if not isinstance(value, list) or not all(
                    isinstance(item, str) and item for item in value
                ):
                    raise ConfigError(f"import.{key} must be a list of strings")

    def _section(self, name: str) -> Dict[str, Any]:
        return self.data.get(name, {})

    @property
    def keychain_name(self) -> Optional[str]:
        """Fixed keychain file name, or None for a per-run name."""
        return self._section("keychain").get("name")

    @property
    def keychain_directory(self) -> Optional[str]:
        return self._section("keychain").get("directory")

    @property
    def auto_lock_seconds(self) -> int:
        return self._section("keychain").get("auto_lock_seconds", DEFAULT_AUTO_LOCK_SECONDS)

    @property
    def search_mode(self) -> SearchMode:
        return SearchMode.parse(
            self._section("keychain").get("search_mode", SearchMode.ALONGSIDE_DEFAULT.value)
        )

    @property
    def identity_prefix(self) -> str:
        return self._section("identity").get("prefix") or DEFAULT_IDENTITY_PREFIX

    @property
    def grant_tools(self) -> List[str]:
        return list(self._section("import").get("grant_tools", DEFAULT_GRANT_TOOLS))

    @property
    def partition_list(self) -> List[str]:
        return list(self._section("import").get("partition_list", DEFAULT_PARTITION_LIST))

    def merge_with_cli_args(
        self,
        keychain_name: Optional[str] = None,
        search_mode: Optional[str] = None,
        auto_lock_seconds: Optional[int] = None,
        identity_prefix: Optional[str] = None,
    ) -> "KeychainConfig":
        """
        Merge configuration with CLI arguments.
        CLI arguments take precedence over config file and environment.

        Returns:
            New KeychainConfig with merged values
        """
        merged = copy.deepcopy(self.data)
        keychain = merged.setdefault("keychain", {})

        if keychain_name:
            keychain["name"] = keychain_name
        if search_mode:
            keychain["search_mode"] = search_mode
        if auto_lock_seconds is not None:
            keychain["auto_lock_seconds"] = auto_lock_seconds
        if identity_prefix:
            merged.setdefault("identity", {})["prefix"] = identity_prefix

        return KeychainConfig(merged)

    def apply_environment_overrides(self) -> "KeychainConfig":
        """
        Apply environment variable overrides.

        Environment variables:
        - CODESIGN_KEYCHAIN_SEARCH_MODE: Override keychain.search_mode
        - CODESIGN_KEYCHAIN_AUTO_LOCK: Override keychain.auto_lock_seconds
        - CODESIGN_KEYCHAIN_IDENTITY_PREFIX: Override identity.prefix

        Returns:
            New KeychainConfig with environment overrides applied

        Raises:
            ConfigError: If an override has an invalid value
        """
        merged = copy.deepcopy(self.data)

        search_mode = os.getenv("CODESIGN_KEYCHAIN_SEARCH_MODE")
        if search_mode:
            merged.setdefault("keychain", {})["search_mode"] = search_mode

        auto_lock = os.getenv("CODESIGN_KEYCHAIN_AUTO_LOCK")
        if auto_lock:
            try:
                merged.setdefault("keychain", {})["auto_lock_seconds"] = int(auto_lock)
            except ValueError:
                raise ConfigError(
                    f"CODESIGN_KEYCHAIN_AUTO_LOCK must be an integer, got {auto_lock!r}"
                )

        prefix = os.getenv("CODESIGN_KEYCHAIN_IDENTITY_PREFIX")
        if prefix:
            merged.setdefault("identity", {})["prefix"] = prefix

        return KeychainConfig(merged)


def load_config(config_path: str) -> KeychainConfig:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to configuration file

    Returns:
        KeychainConfig instance

    Raises:
        ConfigError: If config file is invalid
        FileNotFoundError: If config file doesn't exist
    """
    path = Path(config_path)

    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in config file: {e}")

    if data is None:
        data = {}

    if not isinstance(data, dict):
        raise ConfigError("Config file must contain a mapping")

    return KeychainConfig(data)


def find_default_config() -> Optional[Path]:
    """
    Find default configuration file.

    Searches for .signing/keychain.yaml in:
    1. Current directory
    2. Parent directories up to git root
    3. Home directory

    Returns:
        Path to config file, or None if not found
    """
    current = Path.cwd()
    while True:
        config_path = current / CONFIG_DIR / CONFIG_FILENAME
        if config_path.exists():
            return config_path

        if (current / ".git").exists():
            break

        parent = current.parent
        if parent == current:  # Reached filesystem root
            break
        current = parent

    home_config = Path.home() / CONFIG_DIR / CONFIG_FILENAME
    if home_config.exists():
        return home_config

    return None


def load_default_config() -> KeychainConfig:
    """
    Load configuration from default location.

    Returns:
        KeychainConfig from the default file, or an empty one if none exists
    """
    config_path = find_default_config()
    if config_path:
        return load_config(str(config_path))
    return KeychainConfig({})
