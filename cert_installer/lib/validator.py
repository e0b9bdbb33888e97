"""Validator and matcher for host certificate candidates.

Checks run in a fixed order and the first failure rejects the candidate:

1. subject CN present and well formed
2. certificate not expired
3. private key found (staged, else installed) and matching the certificate
4. issuer chain found (staged, else installed) with subject equal to the issuer
"""

from datetime import datetime
from pathlib import Path

from cert_installer.lib.cert_utils import (
    CERTIFICATE_ERRORS,
    certificate_fingerprint,
    extract_common_name,
    is_expired,
    load_first_certificate,
    private_key_fingerprint,
    render_name,
)
from cert_installer.lib.config import RoleConfig
from cert_installer.lib.errors import CandidateRejected
from cert_installer.lib.logging_config import LOGGER
from cert_installer.lib.models import (
    ArtifactPaths,
    Candidate,
    SkipReason,
    StagedFile,
    ValidatedCandidate,
)


def check_common_name(candidate: Candidate) -> str:
    """Return the candidate CN or reject it."""
    try:
        return extract_common_name(candidate.certificate)
    except CERTIFICATE_ERRORS as e:
        raise CandidateRejected(SkipReason.INVALID_CN, str(e)) from e


def check_not_expired(candidate: Candidate, now: datetime | None = None) -> None:
    if is_expired(candidate.certificate, now):
        raise CandidateRejected(
            SkipReason.EXPIRED,
            f"certificate expired at {candidate.certificate.not_valid_after_utc.isoformat()}",
        )


def match_key(candidate: Candidate, artifacts: ArtifactPaths) -> Path:
    """Find the private key for the candidate and confirm it matches.

    A same-named ``.key`` file in staging wins. Otherwise the key already
    installed for this CN is reused, which permits renewal without re-uploading
    the key.

    Returns:
        Path of the matching key (staged or installed)
    """
    if candidate.key_path.is_file():
        key_source = candidate.key_path
    elif artifacts.key.is_file():
        key_source = artifacts.key
    else:
        raise CandidateRejected(
            SkipReason.KEY_MISSING,
            f"no key: neither {candidate.key_path.name} uploaded nor {artifacts.key} installed",
        )

    try:
        key_fingerprint = private_key_fingerprint(key_source.read_bytes())
    except (OSError, ValueError) as e:
        raise CandidateRejected(SkipReason.KEY_UNREADABLE, f"cannot load key {key_source}: {e}") from e

    try:
        certificate_key_fingerprint = certificate_fingerprint(candidate.certificate)
    except CERTIFICATE_ERRORS as e:
        raise CandidateRejected(
            SkipReason.MALFORMED, f"cannot decode certificate public key: {e}"
        ) from e

    if key_fingerprint != certificate_key_fingerprint:
        raise CandidateRejected(
            SkipReason.KEY_MISMATCH,
            f"key {key_source} does not match the certificate public key",
        )
    return key_source


def match_chain(
    candidate: Candidate,
    issuer: str,
    staged_files: list[StagedFile],
    artifacts: ArtifactPaths,
) -> Path | None:
    """Find the issuer chain for the candidate.

    Staged PEM files are searched first, by exact equality between the file's
    (first) certificate subject and the candidate issuer. Otherwise an installed
    chain is kept only if it still matches the issuer. No chain at all is valid.

    Returns:
        Path of the chain source, or None when the deployment is chain-less
    """
    for staged in staged_files:
        if staged.path == candidate.path or staged.first_certificate is None:
            continue
        try:
            subject = render_name(staged.first_certificate.subject)
        except CERTIFICATE_ERRORS as e:
            LOGGER.debug("Ignoring %s as a chain: cannot decode subject: %s", staged.path.name, e)
            continue
        if subject == issuer:
            return staged.path

    if not artifacts.chain.exists():
        return None

    installed = load_first_certificate(artifacts.chain)
    try:
        installed_subject = render_name(installed.subject) if installed is not None else None
    except CERTIFICATE_ERRORS:
        installed_subject = None
    if installed_subject != issuer:
        raise CandidateRejected(
            SkipReason.CHAIN_MISMATCH,
            f"installed chain {artifacts.chain} does not match issuer {issuer!r}",
        )
    return artifacts.chain


def validate_candidate(
    candidate: Candidate,
    role_config: RoleConfig,
    staged_files: list[StagedFile],
    now: datetime | None = None,
) -> ValidatedCandidate:
    """Run every check for one candidate in one role.

    Raises:
        CandidateRejected: On the first failing check
    """
    cn = check_common_name(candidate)
    check_not_expired(candidate, now)

    artifacts = ArtifactPaths(directory=role_config.certificate_directory, cn=cn)
    key_source = match_key(candidate, artifacts)

    try:
        issuer = render_name(candidate.certificate.issuer)
    except CERTIFICATE_ERRORS as e:
        raise CandidateRejected(
            SkipReason.MALFORMED, f"cannot decode certificate issuer: {e}"
        ) from e
    chain_source = match_chain(candidate, issuer, staged_files, artifacts)

    LOGGER.debug(
        "Validated %s for %s: cn=%s key=%s chain=%s",
        candidate.path.name,
        role_config.role.value,
        cn,
        key_source,
        chain_source,
    )
    return ValidatedCandidate(
        candidate=candidate,
        cn=cn,
        issuer=issuer,
        not_after=candidate.certificate.not_valid_after_utc,
        artifacts=artifacts,
        key_source=key_source,
        chain_source=chain_source,
    )
