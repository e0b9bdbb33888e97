"""Exception hierarchy for the certificate installer."""

from cert_installer.lib.models import SkipReason


class InstallerError(Exception):
    """Base class for installer errors."""


class ConfigError(InstallerError):
    """Configuration is missing, malformed or inconsistent."""


class StagingError(InstallerError):
    """Working area could not be created or populated."""


class LockError(InstallerError):
    """Lock file could not be opened (other than contention)."""


class ReloadError(InstallerError):
    """A consumer service failed to reload."""

    def __init__(self, service: str, message: str) -> None:
        super().__init__(f"{service}: {message}")
        self.service = service


class CandidateRejected(InstallerError):
    """Candidate failed a validation check and must be skipped."""

    def __init__(self, reason: SkipReason, message: str) -> None:
        super().__init__(message)
        self.reason = reason
        self.message = message
