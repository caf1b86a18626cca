"""
Ephemeral keychain provisioning for code signing on macOS build runners.

This package creates a throwaway keychain for a single CI job, imports a
signing certificate into it, resolves the signing identity, and tears the
keychain down again afterwards without touching the user's login keychain.
"""

__version__ = "0.1.0"
