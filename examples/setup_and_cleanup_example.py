#!/usr/bin/env python3
"""Example usage of the keychain setup and cleanup API on a macOS host."""

import base64
import os
import sys
import tempfile
from pathlib import Path

from codesign_keychain.backends import SecurityCLIBackend
from codesign_keychain.config import KeychainConfig
from codesign_keychain.orchestrator import KeychainOrchestrator
from codesign_keychain.payload import CertificatePayload
from codesign_keychain.resolver import IdentityNotFoundError
from codesign_keychain.state import FileStateCarrier
from codesign_keychain.teardown import TeardownExecutor

# Example 1: Setup from a local .p12 file
print("=== Keychain Setup Example ===")

p12_path = os.environ.get("P12_PATH", "certificate.p12")
passphrase = os.environ.get("P12_PASSWORD", "")
if not Path(p12_path).exists():
    sys.exit(f"Set P12_PATH to a PKCS#12 file (looked for {p12_path})")

# CI secrets carry the container base64-encoded
encoded = base64.b64encode(Path(p12_path).read_bytes()).decode()
payload = CertificatePayload.from_base64(encoded, passphrase)

summary = payload.inspect()
print(f"Certificate: {summary.common_name}")
print(f"Has private key: {summary.has_private_key}")

state_file = Path(tempfile.gettempdir()) / "codesign-keychain-example.json"
carrier = FileStateCarrier(str(state_file))
config = KeychainConfig({"keychain": {"auto_lock_seconds": 600}})
backend = SecurityCLIBackend()

try:
    result = KeychainOrchestrator(backend, carrier, config).setup(payload)
    print(f"Keychain: {result.keychain.path}")
    print(f"Sign with: codesign --sign \"{result.resolution.identity_id}\" ...")
except IdentityNotFoundError as e:
    print(f"{e}\nIdentities in keychain:\n{e.listing}")

# Example 2: Cleanup in a later process, from the saved state only
print("\n=== Keychain Cleanup Example ===")

report = TeardownExecutor(backend).run(FileStateCarrier(str(state_file)).load())
for step in report.results:
    print(f"{step.step}: {step.status.value} {step.reason}")

carrier.discard()
