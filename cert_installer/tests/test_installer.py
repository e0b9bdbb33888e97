"""Tests for the installer."""

import os
import stat
from pathlib import Path

import pytest

from cert_installer.lib.classifier import classify
from cert_installer.lib.installer import Ownership, build_fullchain, install, write_file_atomic
from cert_installer.lib.models import Role
from cert_installer.lib.validator import validate_candidate


@pytest.fixture
def ownership(installer_config) -> Ownership:
    return Ownership.for_role(installer_config, installer_config.server)


@pytest.fixture
def staging(tmp_path: Path) -> Path:
    path = tmp_path / "work"
    path.mkdir()
    return path


def _mode(path: Path) -> int:
    return stat.S_IMODE(path.stat().st_mode)


def _validated(staging: Path, installer_config):
    classification = classify(staging)
    candidate = classification.candidates(Role.SERVER)[0]
    return validate_candidate(candidate, installer_config.server, classification.staged)


class TestOwnership:
    """Tests for owner and group resolution."""

    def test_resolves_current_user_and_group(self, ownership: Ownership) -> None:
        """Owner and group names resolve to numeric ids with configured modes."""
        assert ownership.uid == os.getuid()
        assert ownership.gid == os.getgid()
        assert ownership.file_mode == 0o640
        assert ownership.directory_mode == 0o710

    def test_unknown_group(self, installer_config) -> None:
        """Unknown group raises KeyError."""
        installer_config.server.group = "no-such-group-for-tests"
        with pytest.raises(KeyError):
            Ownership.for_role(installer_config, installer_config.server)


class TestWriteFileAtomic:
    """Tests for atomic artifact writes."""

    def test_writes_content_and_mode(self, tmp_path: Path, ownership: Ownership) -> None:
        """Written file has the content, mode 0640 and role group."""
        path = tmp_path / "foo.pem"
        write_file_atomic(path, b"data", ownership)

        assert path.read_bytes() == b"data"
        assert _mode(path) == 0o640
        assert path.stat().st_gid == ownership.gid

    def test_overwrites_existing(self, tmp_path: Path, ownership: Ownership) -> None:
        """Existing file is replaced and its mode corrected."""
        path = tmp_path / "foo.pem"
        path.write_bytes(b"old")
        path.chmod(0o644)

        write_file_atomic(path, b"new", ownership)

        assert path.read_bytes() == b"new"
        assert _mode(path) == 0o640

    def test_no_temporary_left_behind(self, tmp_path: Path, ownership: Ownership) -> None:
        """Only the target remains after a successful write."""
        write_file_atomic(tmp_path / "foo.pem", b"data", ownership)
        assert [p.name for p in tmp_path.iterdir()] == ["foo.pem"]

    def test_failure_cleans_up(self, tmp_path: Path, ownership: Ownership) -> None:
        """Failed rename removes the temporary file."""
        target = tmp_path / "foo.pem"
        target.mkdir()
        with pytest.raises(OSError):
            write_file_atomic(target, b"data", ownership)
        assert sorted(p.name for p in tmp_path.iterdir()) == ["foo.pem"]


class TestBuildFullchain:
    """Tests for fullchain assembly."""

    def test_with_chain(self) -> None:
        """Fullchain is leaf bytes followed by chain bytes."""
        assert build_fullchain(b"leaf\n", b"chain\n") == b"leaf\nchain\n"

    def test_without_chain(self) -> None:
        """Fullchain is the leaf alone when there is no chain."""
        assert build_fullchain(b"leaf\n", None) == b"leaf\n"


class TestInstall:
    """Tests for installing a validated candidate."""

    def test_new_key_and_chain(
        self, staging: Path, installer_config, ownership, issue_leaf, chain_pem: bytes
    ) -> None:
        """Uploaded key and chain install all four artifacts with correct modes."""
        leaf = issue_leaf()
        (staging / "host.pem").write_bytes(leaf.cert_pem)
        (staging / "host.key").write_bytes(leaf.key_pem)
        (staging / "chain.pem").write_bytes(chain_pem)
        validated = _validated(staging, installer_config)

        install(validated, ownership)

        artifacts = validated.artifacts
        assert artifacts.certificate.read_bytes() == leaf.cert_pem
        assert artifacts.key.read_bytes() == leaf.key_pem
        assert artifacts.chain.read_bytes() == chain_pem
        assert artifacts.fullchain.read_bytes() == leaf.cert_pem + chain_pem
        for path in (artifacts.certificate, artifacts.key, artifacts.chain, artifacts.fullchain):
            assert _mode(path) == 0o640
        assert _mode(artifacts.directory) == 0o710

    def test_without_chain_fullchain_is_leaf(
        self, staging: Path, installer_config, ownership, issue_leaf
    ) -> None:
        """Chain-less install writes no chain file."""
        leaf = issue_leaf()
        (staging / "host.pem").write_bytes(leaf.cert_pem)
        (staging / "host.key").write_bytes(leaf.key_pem)
        validated = _validated(staging, installer_config)

        install(validated, ownership)

        assert not validated.artifacts.chain.exists()
        assert validated.artifacts.fullchain.read_bytes() == leaf.cert_pem

    def test_existing_key_and_chain_kept(
        self, staging: Path, installer_config, ownership, issue_leaf, chain_pem: bytes
    ) -> None:
        """Installed key and chain are reused in place; fullchain is regenerated."""
        leaf = issue_leaf()
        directory = installer_config.server.certificate_directory
        directory.mkdir()
        (directory / "foo.key").write_bytes(leaf.key_pem)
        (directory / "foo_chain.pem").write_bytes(chain_pem)
        (directory / "foo_fullchain.pem").write_bytes(b"stale")
        key_inode = (directory / "foo.key").stat().st_ino
        chain_inode = (directory / "foo_chain.pem").stat().st_ino
        (staging / "host.pem").write_bytes(leaf.cert_pem)
        validated = _validated(staging, installer_config)

        install(validated, ownership)

        assert (directory / "foo.key").stat().st_ino == key_inode
        assert (directory / "foo_chain.pem").stat().st_ino == chain_inode
        assert (directory / "foo_fullchain.pem").read_bytes() == leaf.cert_pem + chain_pem
