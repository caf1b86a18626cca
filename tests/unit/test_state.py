"""Unit tests for state.py module."""

import json
import os
import stat

import pytest

from codesign_keychain.state import (
    DEFAULT_KEYCHAIN_KEY,
    KEYCHAIN_PASSWORD_KEY,
    KEYCHAIN_PATH_KEY,
    SEARCH_LIST_KEY,
    TRUSTED_CERTIFICATE_KEY,
    FileStateCarrier,
    GitHubStateCarrier,
    TransferredState,
    default_state_carrier,
)

LOGIN = "/Users/runner/Library/Keychains/login.keychain-db"
SYSTEM = "/Library/Keychains/System.keychain"
EPHEMERAL = "/Users/runner/Library/Keychains/codesign-1-abcd.keychain-db"


@pytest.fixture
def full_state():
    return TransferredState(
        keychain_path=EPHEMERAL,
        unlock_secret="a" * 48,
        search_list=(LOGIN, SYSTEM),
        default_keychain=LOGIN,
    )


class TestTransferredState:
    """Tests for TransferredState."""

    def test_to_mapping(self, full_state):
        """Test flattening to the handoff keys."""
        assert full_state.to_mapping() == {
            KEYCHAIN_PATH_KEY: EPHEMERAL,
            KEYCHAIN_PASSWORD_KEY: "a" * 48,
            SEARCH_LIST_KEY: f"{LOGIN}\n{SYSTEM}",
            DEFAULT_KEYCHAIN_KEY: LOGIN,
        }

    def test_to_mapping_omits_missing(self):
        """Test missing fields are left out."""
        assert TransferredState(keychain_path=EPHEMERAL).to_mapping() == {
            KEYCHAIN_PATH_KEY: EPHEMERAL
        }

    def test_from_mapping(self, full_state):
        """Test rebuilding from the flat mapping."""
        assert TransferredState.from_mapping(full_state.to_mapping()) == full_state

    def test_from_mapping_every_field_optional(self):
        """Test an empty mapping gives an empty state."""
        state = TransferredState.from_mapping({})

        assert state == TransferredState()
        assert state.is_empty

    def test_from_mapping_ignores_blank_and_foreign_values(self):
        """Test blank, non-string and unknown entries count as missing."""
        state = TransferredState.from_mapping(
            {
                KEYCHAIN_PATH_KEY: "  ",
                KEYCHAIN_PASSWORD_KEY: 123,
                "unrelated": "x",
            }
        )

        assert state.is_empty

    def test_from_mapping_raw_list_keychains_output(self):
        """Test a snapshot saved as raw security output is understood."""
        state = TransferredState.from_mapping({SEARCH_LIST_KEY: f'    "{LOGIN}"\n    "{SYSTEM}"\n'})

        assert state.search_list == (LOGIN, SYSTEM)

    def test_repr_hides_secret(self, full_state):
        """Test repr does not show the unlock secret."""
        assert "a" * 48 not in repr(full_state)

    def test_immutable(self, full_state):
        """Test state cannot be changed after creation."""
        with pytest.raises(Exception):
            full_state.keychain_path = "/tmp/other"


class TestFileStateCarrier:
    """Tests for FileStateCarrier."""

    def test_round_trip(self, tmp_path, full_state):
        """Test save then load in a fresh carrier."""
        path = tmp_path / "state" / "keychain.json"
        FileStateCarrier(str(path)).save(full_state)

        assert FileStateCarrier(str(path)).load() == full_state
        assert stat.S_IMODE(os.stat(path).st_mode) == 0o600

    def test_missing_file(self, tmp_path):
        """Test a missing file loads as empty state."""
        assert FileStateCarrier(str(tmp_path / "missing.json")).load().is_empty

    def test_corrupt_file(self, tmp_path):
        """Test an unreadable file loads as empty state."""
        path = tmp_path / "state.json"
        path.write_text("{not json")

        assert FileStateCarrier(str(path)).load().is_empty

    def test_non_object_file(self, tmp_path):
        """Test a JSON file that is not an object loads as empty state."""
        path = tmp_path / "state.json"
        path.write_text(json.dumps(["a", "b"]))

        assert FileStateCarrier(str(path)).load().is_empty

    def test_partial_state(self, tmp_path):
        """Test setup that aborted early leaves a readable partial state."""
        path = tmp_path / "state.json"
        path.write_text(json.dumps({KEYCHAIN_PATH_KEY: EPHEMERAL}))

        state = FileStateCarrier(str(path)).load()

        assert state.keychain_path == EPHEMERAL
        assert state.unlock_secret is None
        assert state.search_list is None

    def test_discard(self, tmp_path, full_state):
        """Test discarding removes the file and tolerates repeats."""
        carrier = FileStateCarrier(str(tmp_path / "state.json"))
        carrier.save(full_state)

        carrier.discard()
        carrier.discard()

        assert not (tmp_path / "state.json").exists()


class TestGitHubStateCarrier:
    """Tests for GitHubStateCarrier."""

    def test_save_writes_state_file(self, tmp_path, monkeypatch, full_state):
        """Test state is appended to $GITHUB_STATE in delimiter form."""
        state_file = tmp_path / "state"
        state_file.write_text("")
        monkeypatch.setenv("GITHUB_STATE", str(state_file))

        GitHubStateCarrier().save(full_state)

        content = state_file.read_text()
        assert f"{KEYCHAIN_PATH_KEY}<<ghadelimiter_" in content
        assert f"\n{LOGIN}\n{SYSTEM}\n" in content

    def test_save_without_state_file(self, full_state):
        """Test saving outside a runner is an error."""
        with pytest.raises(RuntimeError, match="GITHUB_STATE"):
            GitHubStateCarrier().save(full_state)

    def test_load_from_environment(self, monkeypatch, full_state):
        """Test state is read back from STATE_* variables."""
        for key, value in full_state.to_mapping().items():
            monkeypatch.setenv(f"STATE_{key}", value)

        assert GitHubStateCarrier().load() == full_state

    def test_load_nothing_saved(self):
        """Test no STATE_* variables gives an empty state."""
        assert GitHubStateCarrier().load().is_empty


class TestDefaultStateCarrier:
    """Tests for default_state_carrier."""

    def test_state_file_wins(self, tmp_path, monkeypatch):
        """Test an explicit state file is used even under GitHub Actions."""
        monkeypatch.setenv("GITHUB_ACTIONS", "true")

        carrier = default_state_carrier(str(tmp_path / "s.json"))

        assert isinstance(carrier, FileStateCarrier)

    def test_github_actions(self, monkeypatch):
        """Test action state is used under GitHub Actions."""
        monkeypatch.setenv("GITHUB_ACTIONS", "true")

        assert isinstance(default_state_carrier(), GitHubStateCarrier)

    def test_no_carrier_available(self):
        """Test an error outside GitHub Actions without a state file."""
        with pytest.raises(RuntimeError, match="--state-file"):
            default_state_carrier()


class TestEmptySearchList:
    """A captured empty search list is kept apart from a failed capture."""

    def test_mapping_round_trip(self):
        state = TransferredState(keychain_path=EPHEMERAL, search_list=())

        mapping = state.to_mapping()

        assert mapping[SEARCH_LIST_KEY] == ""
        assert TransferredState.from_mapping(mapping).search_list == ()

    def test_not_empty_state(self):
        assert not TransferredState(search_list=()).is_empty

    def test_file_round_trip(self, tmp_path):
        path = tmp_path / "state.json"
        FileStateCarrier(str(path)).save(TransferredState(search_list=()))

        assert FileStateCarrier(str(path)).load().search_list == ()

    def test_github_round_trip(self, monkeypatch):
        monkeypatch.setenv(f"STATE_{SEARCH_LIST_KEY}", "")

        assert GitHubStateCarrier().load().search_list == ()


class TestTrustedCertificate:
    """Tests for carrying the trusted certificate to cleanup."""

    PEM = "-----BEGIN CERTIFICATE-----\nMIIB\n-----END CERTIFICATE-----\n"

    def test_mapping(self):
        state = TransferredState(trusted_certificate=self.PEM)

        assert state.to_mapping() == {TRUSTED_CERTIFICATE_KEY: self.PEM}
        assert TransferredState.from_mapping(state.to_mapping()) == state
        assert not state.is_empty

    def test_github_round_trip(self, tmp_path, monkeypatch):
        """Test a multi-line PEM survives $GITHUB_STATE and STATE_* variables."""
        state_file = tmp_path / "state"
        state_file.write_text("")
        monkeypatch.setenv("GITHUB_STATE", str(state_file))

        GitHubStateCarrier().save(TransferredState(trusted_certificate=self.PEM))

        content = state_file.read_text()
        assert f"{TRUSTED_CERTIFICATE_KEY}<<ghadelimiter_" in content
        assert self.PEM in content

        monkeypatch.setenv(f"STATE_{TRUSTED_CERTIFICATE_KEY}", self.PEM)
        assert GitHubStateCarrier().load().trusted_certificate == self.PEM

    def test_repr_hides_certificate(self):
        assert "MIIB" not in repr(TransferredState(trusted_certificate=self.PEM))
