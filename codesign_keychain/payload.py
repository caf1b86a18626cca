"""Certificate payload decoding and scratch file handling."""

import base64
import binascii
import logging
import os
import shutil
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, List, Optional

from cryptography import x509
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import NameOID

logger = logging.getLogger(__name__)

PAYLOAD_FILENAME = "certificate.p12"


class PayloadError(ValueError):
    """The certificate payload cannot be decoded or opened."""
    pass


@dataclass
class PayloadSummary:
    """What a PKCS#12 payload contains, for diagnostics."""

    common_name: str
    has_private_key: bool
    chain_length: int
    subjects: List[str] = field(default_factory=list)


@dataclass
class CertificatePayload:
    """Code-signing certificate and key in a PKCS#12 container."""

    data: bytes
    passphrase: str

    def __repr__(self) -> str:
        return f"CertificatePayload(<{len(self.data)} bytes>, passphrase=***)"

    @classmethod
    def from_base64(cls, encoded: str, passphrase: str) -> "CertificatePayload":
        """
        Decode a base64 PKCS#12 blob.

        Args:
            encoded: Base64 text; whitespace and line breaks are ignored
            passphrase: PKCS#12 passphrase

        Returns:
            CertificatePayload

        Raises:
            PayloadError: If the text is empty or not valid base64
        """
        compact = "".join(encoded.split())
        if not compact:
            raise PayloadError("Certificate payload is empty")

        try:
            data = base64.b64decode(compact, validate=True)
        except (binascii.Error, ValueError) as e:
            raise PayloadError(f"Certificate payload is not valid base64: {e}")

        return cls(data=data, passphrase=passphrase)

    def inspect(self) -> PayloadSummary:
        """
        Open the container locally to check the passphrase and contents.

        Returns:
            PayloadSummary

        Raises:
            PayloadError: If the passphrase is wrong, the blob is corrupt, or
                there is no certificate in it
        """
        password = self.passphrase.encode() if self.passphrase else None
        try:
            key, cert, additional = pkcs12.load_key_and_certificates(
                self.data, password
            )
        except ValueError as e:
            raise PayloadError(
                f"Could not open certificate payload (wrong passphrase or corrupt data): {e}"
            )

        if cert is None:
            raise PayloadError("Certificate payload contains no certificate")

        chain = list(additional or [])
        return PayloadSummary(
            common_name=certificate_common_name(cert),
            has_private_key=key is not None,
            chain_length=len(chain),
            subjects=[c.subject.rfc4514_string() for c in [cert, *chain]],
        )

    def materialize(self, directory: str) -> str:
        """
        Write the container to a scratch file readable only by the owner.

        Args:
            directory: Scratch directory

        Returns:
            Path to the written file
        """
        path = Path(directory) / PAYLOAD_FILENAME
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "wb") as f:
            f.write(self.data)
        return str(path)


def certificate_common_name(cert: x509.Certificate) -> str:
    """Get the subject common name of a certificate, or '' if it has none."""
    attributes = cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
    return str(attributes[0].value) if attributes else ""


class ScratchDirectory:
    """Per-job scratch directory, removed on exit."""

    def __init__(self, prefix: str = "codesign-keychain-", base: Optional[str] = None):
        self.prefix = prefix
        self.base = base
        self.path: Optional[str] = None

    def __enter__(self) -> str:
        self.path = tempfile.mkdtemp(prefix=self.prefix, dir=self.base)
        return self.path

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if self.path:
            shutil.rmtree(self.path, ignore_errors=True)
            logger.debug("Removed scratch directory %s", self.path)
            self.path = None
        return False


@contextmanager
def pem_file(pem: str) -> Iterator[str]:
    """
    Write a PEM certificate to an owner-only temporary file.

    Yields:
        Path to the file, which is removed on exit
    """
    fd, path = tempfile.mkstemp(suffix=".pem")
    try:
        with os.fdopen(fd, "w") as f:
            f.write(pem)
        yield path
    finally:
        Path(path).unlink(missing_ok=True)
