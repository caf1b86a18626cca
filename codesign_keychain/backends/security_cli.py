"""Keychain backend driving the macOS security(1) tool."""

import logging
import subprocess
from typing import Dict, Any, List, Sequence
from .base import KeychainBackend, SecurityCommandError

logger = logging.getLogger(__name__)

# security(1) exit status for errSecItemNotFound
ITEM_NOT_FOUND = 44


def parse_keychain_list(output: str) -> List[str]:
    """
    Parse keychain paths printed by list-keychains or default-keychain.

    Each path is printed on its own line, indented and double-quoted.

    Args:
        output: Raw command output

    Returns:
        Keychain paths in printed order
    """
    paths = []
    for line in output.splitlines():
        entry = line.strip()
        if len(entry) >= 2 and entry.startswith('"') and entry.endswith('"'):
            entry = entry[1:-1]
        if entry:
            paths.append(entry)
    return paths


class SecurityCLIBackend(KeychainBackend):
    """Keychain operations through /usr/bin/security."""

    def __init__(self, config: Dict[str, Any] = None):
        """Initialize security CLI backend."""
        super().__init__(config)
        self.executable = self.config.get("executable", "/usr/bin/security")
        self.domain = self.config.get("domain", "user")

    def _run(
        self,
        args: Sequence[str],
        secrets: Sequence[str] = (),
        check: bool = True,
    ) -> subprocess.CompletedProcess:
        """
        Run a security subcommand.

        Args:
            args: Arguments after the executable
            secrets: Values to redact from errors and logs
            check: Raise SecurityCommandError on non-zero exit

        Returns:
            Completed process with text stdout/stderr
        """
        cmd = [self.executable, *args]
        redacted = ["***" if arg in secrets else arg for arg in cmd]
        logger.debug("Running %s", " ".join(redacted))

        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
        )

        if check and result.returncode != 0:
            stderr = result.stderr or ""
            for secret in secrets:
                if secret:
                    stderr = stderr.replace(secret, "***")
            raise SecurityCommandError(redacted, result.returncode, stderr)

        return result

    def create_keychain(self, path: str, password: str) -> None:
        self._run(["create-keychain", "-p", password, path], secrets=[password])

    def delete_keychain(self, path: str) -> None:
        self._run(["delete-keychain", path])

    def unlock_keychain(self, path: str, password: str) -> None:
        self._run(["unlock-keychain", "-p", password, path], secrets=[password])

    def set_keychain_settings(self, path: str, timeout_seconds: int) -> None:
        self._run(["set-keychain-settings", "-t", str(timeout_seconds), "-u", path])

    def get_default_keychain(self) -> str:
        result = self._run(["default-keychain", "-d", self.domain])
        paths = parse_keychain_list(result.stdout)
        return paths[0] if paths else ""

    def set_default_keychain(self, path: str) -> None:
        self._run(["default-keychain", "-d", self.domain, "-s", path])

    def list_keychains(self) -> List[str]:
        result = self._run(["list-keychains", "-d", self.domain])
        return parse_keychain_list(result.stdout)

    def set_search_list(self, paths: Sequence[str]) -> None:
        self._run(["list-keychains", "-d", self.domain, "-s", *paths])

    def import_pkcs12(
        self,
        path: str,
        file_path: str,
        passphrase: str,
        authorized_tools: Sequence[str],
    ) -> None:
        args = ["import", file_path, "-k", path, "-f", "pkcs12", "-P", passphrase]
        for tool in authorized_tools:
            args.extend(["-T", tool])
        self._run(args, secrets=[passphrase])

    def set_key_partition_list(
        self, path: str, password: str, partitions: Sequence[str]
    ) -> None:
        self._run(
            [
                "set-key-partition-list",
                "-S",
                ",".join(partitions),
                "-s",
                "-k",
                password,
                path,
            ],
            secrets=[password],
        )

    def find_identity(self, path: str) -> str:
        result = self._run(["find-identity", "-v", "-p", "codesigning", path])
        return result.stdout

    def find_certificate(self, path: str, name: str) -> str:
        result = self._run(
            ["find-certificate", "-c", name, "-p", path],
            check=False,
        )
        if result.returncode == ITEM_NOT_FOUND:
            return ""
        if result.returncode != 0:
            raise SecurityCommandError(
                [self.executable, "find-certificate", "-c", name, "-p", path],
                result.returncode,
                result.stderr,
            )
        return result.stdout

    def add_trusted_cert(self, path: str, cert_path: str) -> None:
        self._run(["add-trusted-cert", "-r", "trustRoot", "-k", path, cert_path])

    def remove_trusted_cert(self, cert_path: str) -> None:
        self._run(["remove-trusted-cert", cert_path])
