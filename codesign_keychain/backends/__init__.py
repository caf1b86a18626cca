"""Keychain command backends."""

from .base import KeychainBackend, SecurityCommandError

# Lazy imports for backends so tests can import the package off-macOS
__all__ = [
    "KeychainBackend",
    "SecurityCommandError",
    "SecurityCLIBackend",
]


def __getattr__(name):
    """Lazy import backends."""
    if name == "SecurityCLIBackend":
        from .security_cli import SecurityCLIBackend
        return SecurityCLIBackend
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
