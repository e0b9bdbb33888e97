"""Installer configuration dataclasses."""

import json
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

from cert_installer.lib.errors import ConfigError
from cert_installer.lib.models import Role


@dataclass
class RoleConfig:
    """Destination, owning group and consumer services for one role."""

    role: Role
    certificate_directory: Path
    group: str
    services: list[str] = field(default_factory=list)


def _default_server() -> RoleConfig:
    return RoleConfig(
        role=Role.SERVER,
        certificate_directory=Path("/etc/ssl/managed/server"),
        group="ssl-server-cert",
    )


def _default_client() -> RoleConfig:
    return RoleConfig(
        role=Role.CLIENT,
        certificate_directory=Path("/etc/ssl/managed/client"),
        group="ssl-client-cert",
    )


@dataclass
class InstallerConfig:
    """Certificate installer configuration.

    Defaults match a stock deployment; tests and the CLI override paths,
    owner and group as needed.
    """

    upload_directory: Path = Path("/var/lib/certificate-upload/upload")
    server: RoleConfig = field(default_factory=_default_server)
    client: RoleConfig = field(default_factory=_default_client)
    owner: str = "root"
    file_mode: int = 0o640
    directory_mode: int = 0o710
    lock_file: Path = Path("/run/lock/install_certificates.lock")
    settle_delay_seconds: float = 5.0
    staging_parent: Path | None = None
    reload_command: list[str] = field(default_factory=lambda: ["systemctl", "reload", "{service}"])
    reload_timeout_seconds: float = 60.0
    log_level: str = "INFO"
    syslog_facility: str | None = None
    syslog_address: str = "/dev/log"

    def role_configs(self) -> list[RoleConfig]:
        """Return role configurations in processing order (server, then client)."""
        return [self.server, self.client]

    def role_config(self, role: Role) -> RoleConfig:
        return self.server if role is Role.SERVER else self.client

    def validate(self) -> None:
        """Raise ConfigError if the configuration cannot drive a run."""
        if not self.upload_directory.is_absolute():
            raise ConfigError(f"upload_directory must be absolute: {self.upload_directory}")
        for role_config in self.role_configs():
            if not role_config.certificate_directory.is_absolute():
                raise ConfigError(
                    f"{role_config.role.value} certificate_directory must be absolute: "
                    f"{role_config.certificate_directory}"
                )
            if not role_config.group:
                raise ConfigError(f"{role_config.role.value} group must not be empty")
        if self.server.certificate_directory == self.client.certificate_directory:
            raise ConfigError("server and client certificate directories must differ")
        if not any("{service}" in arg for arg in self.reload_command):
            raise ConfigError("reload_command must contain a {service} placeholder")
        if self.settle_delay_seconds < 0:
            raise ConfigError("settle_delay_seconds must not be negative")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "InstallerConfig":
        """Build configuration from a parsed JSON document.

        Keys not present keep their defaults. Unknown keys are rejected so that
        typos do not silently fall back to defaults.
        """
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ConfigError(f"unknown configuration keys: {', '.join(sorted(unknown))}")

        config = cls()
        for name, value in data.items():
            if name in ("server", "client"):
                setattr(config, name, _role_from_dict(Role(name), getattr(config, name), value))
            elif name == "staging_parent" and value is None:
                config.staging_parent = None
            elif name in ("upload_directory", "lock_file", "staging_parent"):
                setattr(config, name, _path(_string(name, value)))
            elif name in ("file_mode", "directory_mode"):
                setattr(config, name, _mode(name, value))
            elif name in ("settle_delay_seconds", "reload_timeout_seconds"):
                setattr(config, name, _number(name, value))
            elif name == "reload_command":
                config.reload_command = _string_list(name, value)
            elif name == "syslog_facility" and value is None:
                config.syslog_facility = None
            else:
                setattr(config, name, _string(name, value))
        return config

    @classmethod
    def from_json_file(cls, path: Path) -> "InstallerConfig":
        """Load configuration from a JSON file."""
        try:
            data = json.loads(path.read_text())
        except (OSError, ValueError) as e:
            raise ConfigError(f"cannot read configuration {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"configuration {path} must be a JSON object")
        return cls.from_dict(data)


def _string(name: str, value: Any) -> str:
    if not isinstance(value, str):
        raise ConfigError(f"{name} must be a string: {value!r}")
    return value


def _number(name: str, value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"{name} must be a number: {value!r}")
    return float(value)


def _string_list(name: str, value: Any) -> list[str]:
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ConfigError(f"{name} must be a list of strings")
    return list(value)


def _path(value: str | Path) -> Path:
    # Strip trailing slashes; "/" itself stays "/"
    return Path(str(value).rstrip("/") or "/")


def _mode(name: str, value: int | str) -> int:
    try:
        return int(value, 8) if isinstance(value, str) else int(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{name} must be an octal mode: {value!r}") from e


def _role_from_dict(role: Role, default: RoleConfig, data: dict[str, Any]) -> RoleConfig:
    if not isinstance(data, dict):
        raise ConfigError(f"{role.value} must be a JSON object")
    unknown = set(data) - {"certificate_directory", "group", "services"}
    if unknown:
        raise ConfigError(f"unknown {role.value} keys: {', '.join(sorted(unknown))}")
    directory = data.get("certificate_directory", str(default.certificate_directory))
    return RoleConfig(
        role=role,
        certificate_directory=_path(_string(f"{role.value}.certificate_directory", directory)),
        group=_string(f"{role.value}.group", data.get("group", default.group)),
        services=_string_list(f"{role.value}.services", data.get("services", default.services)),
    )
