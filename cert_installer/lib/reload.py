"""Reload dispatcher for consumer services."""

import subprocess
from typing import Protocol

from cert_installer.lib.config import RoleConfig
from cert_installer.lib.errors import ReloadError
from cert_installer.lib.logging_config import LOGGER, NOTICE


class ServiceReloader(Protocol):
    """Reloads one named service; raises ReloadError on failure."""

    def reload(self, service: str) -> None: ...


class CommandReloader:
    """Reload services by running a command such as ``systemctl reload {service}``."""

    def __init__(self, command: list[str], timeout: float = 60.0) -> None:
        self.command = command
        self.timeout = timeout

    def argv(self, service: str) -> list[str]:
        return [arg.replace("{service}", service) for arg in self.command]

    def reload(self, service: str) -> None:
        argv = self.argv(service)
        try:
            subprocess.run(argv, check=True, capture_output=True, timeout=self.timeout)
        except subprocess.CalledProcessError as e:
            stderr = e.stderr.decode(errors="replace").strip() if e.stderr else ""
            raise ReloadError(service, f"exit status {e.returncode}: {stderr}") from e
        except subprocess.TimeoutExpired as e:
            raise ReloadError(service, f"timed out after {self.timeout}s") from e
        except OSError as e:
            raise ReloadError(service, str(e)) from e


def dispatch_reloads(
    role_config: RoleConfig,
    installed_count: int,
    reloader: ServiceReloader,
) -> tuple[list[str], list[str]]:
    """Reload every consumer of a role if anything new was installed for it.

    Services are reloaded in configuration order. A failure is logged and the
    remaining services are still attempted.

    Returns:
        Tuple of (reloaded services, failed services)
    """
    role = role_config.role.value
    if installed_count == 0:
        LOGGER.log(NOTICE, "No %s certificate installed, not reloading services", role)
        return [], []

    reloaded: list[str] = []
    failed: list[str] = []
    for service in role_config.services:
        try:
            reloader.reload(service)
        except ReloadError as e:
            LOGGER.error("Failed to reload %s: %s", service, e)
            failed.append(service)
            continue
        LOGGER.info("Reloaded %s after %s certificate install", service, role)
        reloaded.append(service)
    return reloaded, failed
