"""Installer: write the artifact set for a validated candidate."""

import grp
import os
import pwd
import tempfile
from dataclasses import dataclass
from pathlib import Path

from cert_installer.lib.config import InstallerConfig, RoleConfig
from cert_installer.lib.logging_config import LOGGER
from cert_installer.lib.models import ValidatedCandidate


@dataclass(frozen=True)
class Ownership:
    """Numeric owner, group and file mode applied to installed files."""

    uid: int
    gid: int
    file_mode: int
    directory_mode: int

    @classmethod
    def for_role(cls, config: InstallerConfig, role_config: RoleConfig) -> "Ownership":
        """Resolve ``owner:group`` names for a role.

        Raises:
            KeyError: If the owner or group does not exist
        """
        return cls(
            uid=pwd.getpwnam(config.owner).pw_uid,
            gid=grp.getgrnam(role_config.group).gr_gid,
            file_mode=config.file_mode,
            directory_mode=config.directory_mode,
        )


def ensure_directory(directory: Path, ownership: Ownership) -> None:
    """Create the destination directory if needed and enforce owner/mode."""
    directory.mkdir(parents=True, exist_ok=True)
    os.chown(directory, ownership.uid, ownership.gid)
    os.chmod(directory, ownership.directory_mode)


def write_file_atomic(path: Path, data: bytes, ownership: Ownership) -> None:
    """Write ``data`` to ``path`` via a temporary file and rename.

    Ownership and mode are set on the temporary file before the rename, so a
    reader never sees partial content or loose permissions.
    """
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as tmp:
            tmp.write(data)
            tmp.flush()
            os.fchown(tmp.fileno(), ownership.uid, ownership.gid)
            os.fchmod(tmp.fileno(), ownership.file_mode)
            os.fsync(tmp.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


def build_fullchain(leaf: bytes, chain: bytes | None) -> bytes:
    """Leaf followed by chain, or the leaf alone."""
    return leaf + chain if chain is not None else leaf


def install(validated: ValidatedCandidate, ownership: Ownership) -> None:
    """Install leaf, key, chain and regenerated fullchain for one CN.

    Each file is replaced atomically on its own; the set as a whole is not a
    transaction.

    Raises:
        OSError: If any write fails
    """
    artifacts = validated.artifacts
    ensure_directory(artifacts.directory, ownership)

    leaf = validated.candidate.staged.content
    write_file_atomic(artifacts.certificate, leaf, ownership)
    LOGGER.info("Installed certificate %s", artifacts.certificate)

    if validated.new_key:
        write_file_atomic(artifacts.key, validated.key_source.read_bytes(), ownership)
        LOGGER.info("Installed key %s", artifacts.key)

    if validated.new_chain:
        write_file_atomic(artifacts.chain, validated.chain_source.read_bytes(), ownership)
        LOGGER.info("Installed chain %s", artifacts.chain)

    chain = artifacts.chain.read_bytes() if artifacts.chain.is_file() else None
    write_file_atomic(artifacts.fullchain, build_fullchain(leaf, chain), ownership)
    LOGGER.info("Regenerated fullchain %s", artifacts.fullchain)
