"""Certificate installation pipeline.

Lock -> settle -> stage -> classify -> validate+install (server, then client)
-> wipe upload directory -> reload consumers -> unlock.
"""

import time
from collections.abc import Callable
from datetime import datetime

from cert_installer.lib.classifier import Classification, classify
from cert_installer.lib.config import InstallerConfig, RoleConfig
from cert_installer.lib.errors import CandidateRejected
from cert_installer.lib.installer import Ownership, install
from cert_installer.lib.lock import InstanceLock
from cert_installer.lib.logging_config import LOGGER
from cert_installer.lib.models import (
    Candidate,
    InstallOutcome,
    PipelineResult,
    Role,
    RoleResult,
    SkipReason,
    StagedFile,
)
from cert_installer.lib.reload import CommandReloader, ServiceReloader, dispatch_reloads
from cert_installer.lib.staging import (
    create_working_area,
    remove_working_area,
    stage_upload_directory,
    wipe_directory,
)
from cert_installer.lib.validator import validate_candidate


def validate_and_install(
    candidate: Candidate,
    role_config: RoleConfig,
    staged_files: list[StagedFile],
    ownership: Ownership | None,
    now: datetime | None = None,
    dry_run: bool = False,
) -> InstallOutcome:
    """Validate one candidate for one role and install it.

    Every failure is contained here and reported in the outcome.
    """
    role = role_config.role
    try:
        validated = validate_candidate(candidate, role_config, staged_files, now)
    except CandidateRejected as e:
        LOGGER.error("Skipping %s for %s: %s", candidate.path.name, role.value, e.message)
        return InstallOutcome(
            role=role, source=candidate.path, installed=False, reason=e.reason, message=e.message
        )

    if dry_run:
        LOGGER.info(
            "Dry run: would install %s as %s (new key: %s, chain: %s)",
            candidate.path.name,
            validated.artifacts.certificate,
            validated.new_key,
            validated.chain_source,
        )
        return InstallOutcome(role=role, source=candidate.path, installed=True, cn=validated.cn)

    try:
        if ownership is None:
            raise OSError(f"no ownership resolved for {role.value}")
        install(validated, ownership)
    except OSError as e:
        LOGGER.error("Failed to install %s for %s: %s", candidate.path.name, role.value, e)
        return InstallOutcome(
            role=role,
            source=candidate.path,
            installed=False,
            cn=validated.cn,
            reason=SkipReason.INSTALL_FAILED,
            message=str(e),
        )

    LOGGER.info(
        "Installed %s certificate for %s (expires %s)",
        role.value,
        validated.cn,
        validated.not_after.isoformat(),
    )
    return InstallOutcome(role=role, source=candidate.path, installed=True, cn=validated.cn)


def _resolve_ownership(config: InstallerConfig, role_config: RoleConfig) -> Ownership | None:
    try:
        return Ownership.for_role(config, role_config)
    except KeyError as e:
        LOGGER.error(
            "Cannot resolve %s:%s for %s: %s",
            config.owner,
            role_config.group,
            role_config.role.value,
            e,
        )
        return None


def process_role(
    config: InstallerConfig,
    role_config: RoleConfig,
    classification: Classification,
    now: datetime | None = None,
    dry_run: bool = False,
) -> RoleResult:
    """Validate and install every candidate of one role."""
    result = RoleResult(role=role_config.role)
    candidates = classification.candidates(role_config.role)
    if not candidates:
        return result

    ownership = None if dry_run else _resolve_ownership(config, role_config)
    for candidate in candidates:
        result.outcomes.append(
            validate_and_install(
                candidate,
                role_config,
                classification.staged,
                ownership,
                now=now,
                dry_run=dry_run,
            )
        )
    return result


def run_pipeline(
    config: InstallerConfig,
    reloader: ServiceReloader | None = None,
    now: datetime | None = None,
    dry_run: bool = False,
    sleep: Callable[[float], None] = time.sleep,
) -> PipelineResult:
    """Run one pipeline pass.

    Returns ``PipelineResult(ran=False)`` when another run holds the lock.

    Raises:
        ConfigError: If the configuration is invalid
        LockError: If the lock file cannot be opened
        StagingError: If the working area cannot be created or populated
    """
    config.validate()
    reloader = reloader or CommandReloader(config.reload_command, config.reload_timeout_seconds)

    with InstanceLock(config.lock_file) as lock:
        if not lock.acquired:
            LOGGER.info("Another certificate installation is running, exiting")
            return PipelineResult(ran=False)

        result = PipelineResult(ran=True)
        working_area = None
        try:
            if config.settle_delay_seconds:
                sleep(config.settle_delay_seconds)
            working_area = create_working_area(config.staging_parent)
            result.rejected_entries = stage_upload_directory(config.upload_directory, working_area)
            classification = classify(working_area)
            for role_config in config.role_configs():
                result.roles[role_config.role] = process_role(
                    config, role_config, classification, now=now, dry_run=dry_run
                )
        finally:
            if working_area is not None:
                remove_working_area(working_area)
            if dry_run:
                LOGGER.info("Dry run: leaving upload directory %s untouched", config.upload_directory)
            else:
                removed = wipe_directory(config.upload_directory)
                LOGGER.debug("Removed %d entr(ies) from %s", removed, config.upload_directory)

        for role_config in config.role_configs():
            role_result = result.roles[role_config.role]
            if dry_run:
                LOGGER.info(
                    "Dry run: %d %s certificate(s) valid, not reloading services",
                    role_result.installed_count,
                    role_config.role.value,
                )
                continue
            role_result.reloaded, role_result.reload_failures = dispatch_reloads(
                role_config, role_result.installed_count, reloader
            )

    LOGGER.info(
        "Certificate installation complete: %d server, %d client installed",
        result.roles[Role.SERVER].installed_count,
        result.roles[Role.CLIENT].installed_count,
    )
    return result
