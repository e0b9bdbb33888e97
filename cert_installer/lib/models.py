"""Data models for staged files, candidates and install results."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path

from cryptography import x509


class Role(str, Enum):
    """Role a leaf certificate is installed for."""

    SERVER = "server"
    CLIENT = "client"


class Purpose(str, Enum):
    """Purpose classification of a single-certificate PEM file."""

    CA = "ca"
    SERVER = "server"
    CLIENT = "client"


class SkipReason(str, Enum):
    """Why a candidate was not installed."""

    INVALID_CN = "invalid_cn"
    EXPIRED = "expired"
    KEY_MISSING = "key_missing"
    KEY_UNREADABLE = "key_unreadable"
    KEY_MISMATCH = "key_mismatch"
    CHAIN_MISMATCH = "chain_mismatch"
    MALFORMED = "malformed"
    INSTALL_FAILED = "install_failed"


@dataclass
class StagedFile:
    """Regular file copied from the upload directory into the working area."""

    path: Path
    content: bytes
    certificates: list[x509.Certificate] = field(default_factory=list)
    purposes: frozenset[Purpose] = frozenset()

    @property
    def first_certificate(self) -> x509.Certificate | None:
        return self.certificates[0] if self.certificates else None


@dataclass
class Candidate:
    """Staged single-certificate file classified as a leaf for one role."""

    staged: StagedFile
    certificate: x509.Certificate

    @property
    def path(self) -> Path:
        return self.staged.path

    @property
    def key_path(self) -> Path:
        """Same-named ``.key`` file alongside the candidate in staging."""
        return self.staged.path.with_suffix(".key")


@dataclass(frozen=True)
class ArtifactPaths:
    """File names of one installed artifact set.

    Naming is fixed: ``{cn}.pem``, ``{cn}.key``, ``{cn}_chain.pem`` and
    ``{cn}_fullchain.pem`` inside the role's certificate directory.
    """

    directory: Path
    cn: str

    @property
    def certificate(self) -> Path:
        return self.directory / f"{self.cn}.pem"

    @property
    def key(self) -> Path:
        return self.directory / f"{self.cn}.key"

    @property
    def chain(self) -> Path:
        return self.directory / f"{self.cn}_chain.pem"

    @property
    def fullchain(self) -> Path:
        return self.directory / f"{self.cn}_fullchain.pem"


@dataclass
class ValidatedCandidate:
    """Candidate that passed every check, with the sources to install from."""

    candidate: Candidate
    cn: str
    issuer: str
    not_after: datetime
    artifacts: ArtifactPaths
    key_source: Path
    chain_source: Path | None

    @property
    def new_key(self) -> bool:
        return self.key_source != self.artifacts.key

    @property
    def new_chain(self) -> bool:
        return self.chain_source is not None and self.chain_source != self.artifacts.chain


@dataclass
class InstallOutcome:
    """Result of validating and installing one candidate for one role."""

    role: Role
    source: Path
    installed: bool
    cn: str | None = None
    reason: SkipReason | None = None
    message: str = ""


@dataclass
class RoleResult:
    """Aggregated outcomes for one role, plus the reloads it triggered."""

    role: Role
    outcomes: list[InstallOutcome] = field(default_factory=list)
    reloaded: list[str] = field(default_factory=list)
    reload_failures: list[str] = field(default_factory=list)

    @property
    def installed_count(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.installed)

    @property
    def skipped_count(self) -> int:
        return sum(1 for outcome in self.outcomes if not outcome.installed)


@dataclass
class PipelineResult:
    """Result of one pipeline run."""

    ran: bool
    roles: dict[Role, RoleResult] = field(default_factory=dict)
    rejected_entries: list[str] = field(default_factory=list)

    @property
    def installed_count(self) -> int:
        return sum(result.installed_count for result in self.roles.values())
