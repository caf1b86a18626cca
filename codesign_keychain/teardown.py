"""Best-effort teardown of the ephemeral keychain."""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple

from .backends.base import KeychainBackend
from .keychain import LOGIN_KEYCHAIN_NAMES, keychains_directory
from .payload import pem_file
from .search_list import SearchListManager
from .state import TransferredState

logger = logging.getLogger(__name__)

RESTORE_SEARCH_LIST = "restore-search-list"
RESET_DEFAULT_KEYCHAIN = "reset-default-keychain"
UNLOCK_KEYCHAIN = "unlock-keychain"
DELETE_KEYCHAIN = "delete-keychain"
REMOVE_TRUSTED_CERT = "remove-trusted-cert"


class StepStatus(str, Enum):
    """Outcome of one teardown step."""

    OK = "ok"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class StepResult:
    """Result of one teardown step."""

    step: str
    status: StepStatus
    reason: str = ""

    @classmethod
    def ok(cls, step: str) -> "StepResult":
        return cls(step, StepStatus.OK)

    @classmethod
    def failed(cls, step: str, reason: str) -> "StepResult":
        return cls(step, StepStatus.FAILED, reason)

    @classmethod
    def skipped(cls, step: str, reason: str) -> "StepResult":
        return cls(step, StepStatus.SKIPPED, reason)


@dataclass
class TeardownReport:
    """All step results of one teardown run, in execution order."""

    results: List[StepResult] = field(default_factory=list)

    def add(self, result: StepResult) -> None:
        self.results.append(result)

    @property
    def failures(self) -> List[StepResult]:
        return [r for r in self.results if r.status is StepStatus.FAILED]

    @property
    def succeeded(self) -> bool:
        """True if no step failed (skipped steps do not count as failures)."""
        return not self.failures

    def status_of(self, step: str) -> Optional[StepStatus]:
        """Get the status of a step, or None if it was not recorded."""
        for result in self.results:
            if result.step == step:
                return result.status
        return None


class TeardownExecutor:
    """
    Undoes everything the setup step did to the host.

    Steps run in a fixed order and each one is guarded on its own: a failing
    step is recorded in the report and the next step still runs. run() never
    raises.
    """

    def __init__(self, backend: KeychainBackend, home: Optional[str] = None):
        self.backend = backend
        self.search_list = SearchListManager(backend)
        self.login_keychains = [
            str(keychains_directory(home) / name) for name in LOGIN_KEYCHAIN_NAMES
        ]

    def plan(self, state: TransferredState) -> List[Tuple[str, bool]]:
        """
        List the teardown steps and whether each would run for state.

        Returns:
            (step name, will run) pairs in execution order
        """
        return [
            (RESTORE_SEARCH_LIST, state.search_list is not None),
            (RESET_DEFAULT_KEYCHAIN, True),
            (UNLOCK_KEYCHAIN, bool(state.keychain_path and state.unlock_secret)),
            (DELETE_KEYCHAIN, bool(state.keychain_path)),
            (REMOVE_TRUSTED_CERT, bool(state.trusted_certificate)),
        ]

    def _guard(self, report: TeardownReport, step: str, action: Callable[[], None]) -> None:
        try:
            action()
        except Exception as e:
            logger.warning("Teardown step %s failed: %s", step, e)
            report.add(StepResult.failed(step, str(e)))
        else:
            report.add(StepResult.ok(step))

    def _reset_default_keychain(self, candidates: Sequence[str]) -> None:
        errors = []
        for candidate in candidates:
            try:
                self.backend.set_default_keychain(candidate)
            except Exception as e:
                errors.append(f"{candidate}: {e}")
                continue
            logger.info("Default keychain set to %s", candidate)
            return
        raise RuntimeError("; ".join(errors) or "no default keychain candidate")

    def _remove_trusted_cert(self, pem: str) -> None:
        with pem_file(pem) as cert_path:
            self.backend.remove_trusted_cert(cert_path)
        logger.info("Removed certificate trust setting")

    def run(self, state: TransferredState) -> TeardownReport:
        """
        Tear down the ephemeral keychain described by state.

        Args:
            state: State carried over from the setup step

        Returns:
            TeardownReport with one result per step
        """
        report = TeardownReport()

        if state.search_list is not None:
            snapshot = state.search_list
            self._guard(
                report, RESTORE_SEARCH_LIST, lambda: self.search_list.restore(snapshot)
            )
        else:
            report.add(StepResult.skipped(RESTORE_SEARCH_LIST, "no search list captured"))

        if state.default_keychain:
            candidates = [state.default_keychain]
        else:
            candidates = self.login_keychains
        self._guard(
            report, RESET_DEFAULT_KEYCHAIN, lambda: self._reset_default_keychain(candidates)
        )

        path = state.keychain_path
        secret = state.unlock_secret
        if path and secret:
            self._guard(
                report, UNLOCK_KEYCHAIN, lambda: self.backend.unlock_keychain(path, secret)
            )
        else:
            report.add(StepResult.skipped(UNLOCK_KEYCHAIN, "no keychain password"))

        if path:
            self._guard(report, DELETE_KEYCHAIN, lambda: self.backend.delete_keychain(path))
            if report.status_of(DELETE_KEYCHAIN) is StepStatus.OK:
                logger.info("Deleted keychain %s", path)
        else:
            report.add(StepResult.skipped(DELETE_KEYCHAIN, "no keychain path"))

        pem = state.trusted_certificate
        if pem:
            self._guard(report, REMOVE_TRUSTED_CERT, lambda: self._remove_trusted_cert(pem))
        else:
            report.add(StepResult.skipped(REMOVE_TRUSTED_CERT, "no certificate was trusted"))

        return report
