"""Certificate classifier: sort staged PEM files into server and client candidates."""

from dataclasses import dataclass, field
from pathlib import Path

from cert_installer.lib.cert_utils import (
    CERTIFICATE_ERRORS,
    certificate_purposes,
    load_certificates,
)
from cert_installer.lib.logging_config import LOGGER
from cert_installer.lib.models import Candidate, Purpose, Role, StagedFile


@dataclass
class Classification:
    """Staged PEM files plus the candidate list for each role."""

    staged: list[StagedFile] = field(default_factory=list)
    server: list[Candidate] = field(default_factory=list)
    client: list[Candidate] = field(default_factory=list)

    def candidates(self, role: Role) -> list[Candidate]:
        return self.server if role is Role.SERVER else self.client


def load_staged_pem_files(working_area: Path) -> list[StagedFile]:
    """Read every ``*.pem`` in the working area (non-recursive), sorted by name."""
    staged: list[StagedFile] = []
    for path in sorted(working_area.glob("*.pem")):
        if not path.is_file():
            continue
        content = path.read_bytes()
        staged.append(StagedFile(path=path, content=content, certificates=load_certificates(content)))
    return staged


def classify(working_area: Path) -> Classification:
    """Classify staged PEM files by certificate purpose.

    Only files holding exactly one certificate are considered. Files with zero
    or several certificates stay in ``staged`` so the chain matcher can still
    find issuer chains among them.
    """
    result = Classification(staged=load_staged_pem_files(working_area))

    for staged in result.staged:
        if len(staged.certificates) != 1:
            LOGGER.debug(
                "Skipping %s: %d certificate block(s), not a host certificate",
                staged.path.name,
                len(staged.certificates),
            )
            continue

        certificate = staged.certificates[0]
        try:
            staged.purposes = certificate_purposes(certificate)
        except CERTIFICATE_ERRORS as e:
            LOGGER.warning(
                "Skipping %s: cannot decode certificate extensions: %s", staged.path.name, e
            )
            continue

        if Purpose.CA in staged.purposes:
            LOGGER.info("Skipping %s: CA certificate", staged.path.name)
            continue
        if Purpose.SERVER in staged.purposes:
            result.server.append(Candidate(staged=staged, certificate=certificate))
        if Purpose.CLIENT in staged.purposes:
            result.client.append(Candidate(staged=staged, certificate=certificate))
        if not staged.purposes:
            LOGGER.info("Skipping %s: neither SSL server nor SSL client purpose", staged.path.name)

    LOGGER.info(
        "Found %d server and %d client candidate(s) in %d PEM file(s)",
        len(result.server),
        len(result.client),
        len(result.staged),
    )
    return result
