"""Shared pytest fixtures for all tests."""

import base64
import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import NameOID

from codesign_keychain.backends.base import KeychainBackend, SecurityCommandError

IDENTITY_NAME = "Apple Development: Jane Doe (ABCDE12345)"
PAYLOAD_PASSPHRASE = "pw1"


def make_certificate(common_name: str):
    """Create a self-signed code-signing certificate and its key."""
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name(
        [
            x509.NameAttribute(NameOID.COMMON_NAME, common_name),
            x509.NameAttribute(NameOID.ORGANIZATIONAL_UNIT_NAME, "ABCDE12345"),
        ]
    )
    now = datetime.now(timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=30))
        .sign(key, hashes.SHA256())
    )
    return key, cert


def make_pkcs12(common_name: str = IDENTITY_NAME, passphrase: str = PAYLOAD_PASSPHRASE) -> bytes:
    """Create a PKCS#12 container holding one identity."""
    key, cert = make_certificate(common_name)
    return pkcs12.serialize_key_and_certificates(
        b"signing",
        key,
        cert,
        None,
        serialization.BestAvailableEncryption(passphrase.encode()),
    )


class FakeKeychainBackend(KeychainBackend):
    """
    In-memory stand-in for the security tool.

    Keeps keychains, the search list and the default keychain the way macOS
    does, including create-keychain adding the new keychain to the search
    list. Identities only show up in find-identity once their certificate is
    trusted; trusted_on_import controls whether imports start out trusted.
    """

    def __init__(
        self,
        search_list: Optional[List[str]] = None,
        default_keychain: str = "/Users/runner/Library/Keychains/login.keychain-db",
        trusted_on_import: bool = True,
    ):
        super().__init__()
        self.keychains: Dict[str, Dict] = {}
        self.search_list = list(
            search_list
            if search_list is not None
            else [
                "/Users/runner/Library/Keychains/login.keychain-db",
                "/Library/Keychains/System.keychain",
            ]
        )
        self.default_keychain = default_keychain
        self.trusted_on_import = trusted_on_import
        self.trust_settings: List[str] = []
        self.fail_on = set()
        self.calls: List[tuple] = []

    def _call(self, name: str, *args) -> None:
        self.calls.append((name, *args))
        if name in self.fail_on:
            raise SecurityCommandError(["security", name], 1, f"{name} failed")

    def call_names(self) -> List[str]:
        return [call[0] for call in self.calls]

    def _keychain(self, path: str) -> Dict:
        if path not in self.keychains:
            raise SecurityCommandError(
                ["security", "lookup", path],
                50,
                "The specified keychain could not be found.",
            )
        return self.keychains[path]

    def create_keychain(self, path: str, password: str) -> None:
        self._call("create_keychain", path)
        if path in self.keychains:
            raise SecurityCommandError(["security", "create-keychain", path], 48, "duplicate")
        self.keychains[path] = {
            "password": password,
            "locked": True,
            "timeout": None,
            "identities": [],
        }
        self.search_list.append(path)

    def delete_keychain(self, path: str) -> None:
        self._call("delete_keychain", path)
        self._keychain(path)
        del self.keychains[path]
        self.search_list = [entry for entry in self.search_list if entry != path]

    def unlock_keychain(self, path: str, password: str) -> None:
        self._call("unlock_keychain", path)
        keychain = self._keychain(path)
        if keychain["password"] != password:
            raise SecurityCommandError(["security", "unlock-keychain", path], 51, "bad password")
        keychain["locked"] = False

    def set_keychain_settings(self, path: str, timeout_seconds: int) -> None:
        self._call("set_keychain_settings", path, timeout_seconds)
        self._keychain(path)["timeout"] = timeout_seconds

    def get_default_keychain(self) -> str:
        self._call("get_default_keychain")
        return self.default_keychain

    def set_default_keychain(self, path: str) -> None:
        self._call("set_default_keychain", path)
        if "login.keychain" in path or path in self.keychains or path == self.default_keychain:
            self.default_keychain = path
            return
        raise SecurityCommandError(["security", "default-keychain", "-s", path], 50, "not found")

    def list_keychains(self) -> List[str]:
        self._call("list_keychains")
        return list(self.search_list)

    def set_search_list(self, paths: Sequence[str]) -> None:
        self._call("set_search_list", list(paths))
        self.search_list = list(paths)

    def import_pkcs12(self, path, file_path, passphrase, authorized_tools) -> None:
        self._call("import_pkcs12", path, file_path, list(authorized_tools))
        keychain = self._keychain(path)
        if keychain["locked"]:
            raise SecurityCommandError(["security", "import"], 1, "keychain is locked")
        data = Path(file_path).read_bytes()
        try:
            _, cert, _ = pkcs12.load_key_and_certificates(data, passphrase.encode())
        except ValueError:
            raise SecurityCommandError(["security", "import"], 1, "MAC verification failed")
        common_name = cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)[0].value
        keychain["identities"].append(
            {
                "name": common_name,
                "fingerprint": cert.fingerprint(hashes.SHA1()).hex().upper(),
                "pem": cert.public_bytes(serialization.Encoding.PEM).decode(),
                "trusted": self.trusted_on_import,
            }
        )

    def set_key_partition_list(self, path, password, partitions) -> None:
        self._call("set_key_partition_list", path, list(partitions))
        if self._keychain(path)["password"] != password:
            raise SecurityCommandError(["security", "set-key-partition-list"], 1, "bad password")

    def find_identity(self, path: str) -> str:
        self._call("find_identity", path)
        valid = [i for i in self._keychain(path)["identities"] if i["trusted"]]
        lines = [
            f'  {n}) {identity["fingerprint"]} "{identity["name"]}"'
            for n, identity in enumerate(valid, start=1)
        ]
        lines.append(f"     {len(valid)} valid identities found")
        return "\n".join(lines) + "\n"

    def find_certificate(self, path: str, name: str) -> str:
        self._call("find_certificate", path, name)
        for identity in self._keychain(path)["identities"]:
            if name in identity["name"]:
                return identity["pem"]
        return ""

    def add_trusted_cert(self, path: str, cert_path: str) -> None:
        self._call("add_trusted_cert", path)
        pem = Path(cert_path).read_text()
        for identity in self._keychain(path)["identities"]:
            if identity["pem"] == pem:
                identity["trusted"] = True
        if pem not in self.trust_settings:
            self.trust_settings.append(pem)

    def remove_trusted_cert(self, cert_path: str) -> None:
        self._call("remove_trusted_cert")
        pem = Path(cert_path).read_text()
        if pem not in self.trust_settings:
            raise SecurityCommandError(
                ["security", "remove-trusted-cert", cert_path], 1, "no trust settings found"
            )
        self.trust_settings.remove(pem)


@pytest.fixture(scope="session")
def pkcs12_bytes():
    """PKCS#12 container with the Jane Doe development identity, passphrase pw1."""
    return make_pkcs12()


@pytest.fixture
def pkcs12_base64(pkcs12_bytes):
    """Base64 form of the PKCS#12 container, as passed in CI secrets."""
    return base64.b64encode(pkcs12_bytes).decode()


@pytest.fixture
def fake_backend():
    """In-memory keychain backend."""
    return FakeKeychainBackend()


@pytest.fixture
def keychain_dir(tmp_path):
    """Directory for ephemeral keychains."""
    directory = tmp_path / "Keychains"
    directory.mkdir()
    return directory


@pytest.fixture
def sample_listing():
    """Sample `security find-identity -v -p codesigning` output."""
    return (
        '  1) 0123456789ABCDEF0123456789ABCDEF01234567 "Developer ID Application: Acme Inc (ZZZZZ99999)"\n'
        '  2) 89ABCDEF0123456789ABCDEF0123456789ABCDEF "Apple Development: Jane Doe (ABCDE12345)"\n'
        '  3) FEDCBA9876543210FEDCBA9876543210FEDCBA98 "Apple Development: John Roe (FGHIJ67890)"\n'
        "     3 valid identities found\n"
    )


@pytest.fixture(autouse=True)
def reset_environment(monkeypatch):
    """Isolate tests from the runner environment."""
    for name in (
        "GITHUB_ACTIONS",
        "GITHUB_OUTPUT",
        "GITHUB_STATE",
        "CODESIGN_KEYCHAIN_SEARCH_MODE",
        "CODESIGN_KEYCHAIN_AUTO_LOCK",
        "CODESIGN_KEYCHAIN_IDENTITY_PREFIX",
    ):
        monkeypatch.delenv(name, raising=False)
    for name in list(os.environ):
        if name.startswith("STATE_") or name.startswith("INPUT_"):
            monkeypatch.delenv(name, raising=False)

    original_env = dict(os.environ)

    yield

    os.environ.clear()
    os.environ.update(original_env)


def pytest_configure(config):
    config.addinivalue_line("markers", "integration: end-to-end flows across steps")
