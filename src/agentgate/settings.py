"""
Persisted policy settings and the stores that hold them.

Two settings documents exist: permission settings (which tools are
permanently allowed, the strictness level, the deny-always record) and
security settings (risk pattern lists and the custom blocklist). Both are
immutable values; policies replace them wholesale on mutation so a reader
never observes a half-applied change.

Stores implement the SettingsStore protocol. JsonSettingsStore keeps one
JSON file per document in a config directory; concurrent writers follow
last-writer-wins semantics.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from agentgate.types import PermissionLevel

logger = logging.getLogger(__name__)

PERMISSIONS_FILE = "permissions.json"
SECURITY_FILE = "security.json"

DEFAULT_BLOCKED_COMMANDS = (
    "rm -rf",
    "del /s",
    "format",
    "sudo rm",
    "sudo chmod 777",
    "shutdown",
    "reboot",
    "mkfs",
)

DEFAULT_HIGH_RISK = (
    "rm -rf",
    "del /s",
    "format",
    "fdisk",
    "mkfs",
    "dd if=",
    "sudo",
    "runas",
    "shutdown",
    "reboot",
    "halt",
)

DEFAULT_MEDIUM_RISK = (
    "chmod 777",
    "chown",
    "systemctl",
    "service",
    "crontab",
    "reg add",
    "reg delete",
)

DEFAULT_LOW_RISK = (
    "ps aux",
    "netstat",
    "lsof",
    "top",
    "htop",
)


class SettingsError(Exception):
    """Settings could not be persisted."""
    pass


def _flag(data: dict[str, Any], key: str, default: bool) -> bool:
    """Read a JSON boolean; anything else falls back to the default."""
    value = data.get(key, default)
    if isinstance(value, bool):
        return value
    logger.warning(f"Ignoring non-boolean {key}={value!r}, using {default}")
    return default


@dataclass(frozen=True)
class PermissionSettings:
    """Permission state persisted across sessions."""
    permanently_allowed: tuple[str, ...] = ()
    auto_reject: tuple[str, ...] = ()
    blocked_commands: tuple[str, ...] = DEFAULT_BLOCKED_COMMANDS
    permission_level: PermissionLevel = PermissionLevel.STRICT

    def to_dict(self) -> dict[str, Any]:
        return {
            "permanently_allowed": list(self.permanently_allowed),
            "auto_reject": list(self.auto_reject),
            "blocked_commands": list(self.blocked_commands),
            "permission_level": self.permission_level.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PermissionSettings":
        defaults = cls()
        return cls(
            permanently_allowed=tuple(data.get("permanently_allowed", defaults.permanently_allowed)),
            auto_reject=tuple(data.get("auto_reject", defaults.auto_reject)),
            blocked_commands=tuple(data.get("blocked_commands", defaults.blocked_commands)),
            permission_level=PermissionLevel(data.get("permission_level", defaults.permission_level.value)),
        )


@dataclass(frozen=True)
class RiskPatterns:
    """Pattern lists per risk tier. See agentgate.safety for the syntax."""
    high: tuple[str, ...] = DEFAULT_HIGH_RISK
    medium: tuple[str, ...] = DEFAULT_MEDIUM_RISK
    low: tuple[str, ...] = DEFAULT_LOW_RISK

    def to_dict(self) -> dict[str, list[str]]:
        return {"high": list(self.high), "medium": list(self.medium), "low": list(self.low)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RiskPatterns":
        defaults = cls()
        return cls(
            high=tuple(data.get("high", defaults.high)),
            medium=tuple(data.get("medium", defaults.medium)),
            low=tuple(data.get("low", defaults.low)),
        )


@dataclass(frozen=True)
class SecuritySettings:
    """Security state persisted across sessions."""
    enable_blocklist: bool = True
    custom_blocklist: tuple[str, ...] = ()
    risk_levels: RiskPatterns = field(default_factory=RiskPatterns)
    show_security_warnings: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "enable_blocklist": self.enable_blocklist,
            "custom_blocklist": list(self.custom_blocklist),
            "risk_levels": self.risk_levels.to_dict(),
            "show_security_warnings": self.show_security_warnings,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SecuritySettings":
        defaults = cls()
        return cls(
            enable_blocklist=_flag(data, "enable_blocklist", defaults.enable_blocklist),
            custom_blocklist=tuple(data.get("custom_blocklist", defaults.custom_blocklist)),
            risk_levels=RiskPatterns.from_dict(data.get("risk_levels") or {}),
            show_security_warnings=_flag(data, "show_security_warnings", defaults.show_security_warnings),
        )


class SettingsStore(Protocol):
    """Where policy settings are read from and written to."""

    def get_permission_settings(self) -> PermissionSettings: ...

    def save_permission_settings(self, settings: PermissionSettings) -> None: ...

    def get_security_settings(self) -> SecuritySettings: ...

    def save_security_settings(self, settings: SecuritySettings) -> None: ...


class InMemorySettingsStore:
    """Settings store that never touches disk. Counts saves for inspection."""

    def __init__(
        self,
        permission_settings: PermissionSettings | None = None,
        security_settings: SecuritySettings | None = None,
    ):
        self.permission_settings = permission_settings or PermissionSettings()
        self.security_settings = security_settings or SecuritySettings()
        self.save_count = 0

    def get_permission_settings(self) -> PermissionSettings:
        return self.permission_settings

    def save_permission_settings(self, settings: PermissionSettings) -> None:
        self.permission_settings = settings
        self.save_count += 1

    def get_security_settings(self) -> SecuritySettings:
        return self.security_settings

    def save_security_settings(self, settings: SecuritySettings) -> None:
        self.security_settings = settings
        self.save_count += 1


class JsonSettingsStore:
    """
    Settings store backed by JSON files.

    Usage:
        store = JsonSettingsStore("~/.agentgate/config")
        settings = store.get_permission_settings()

    A missing file is created with defaults. A file that cannot be parsed
    is logged and defaults are returned without overwriting it, so a
    hand-edited file with a typo is not silently destroyed.
    """

    def __init__(self, config_dir: str | Path = "~/.agentgate/config"):
        self.config_dir = Path(config_dir).expanduser()

    def _path(self, filename: str) -> Path:
        return self.config_dir / filename

    def _load(self, filename: str, defaults: dict[str, Any]) -> dict[str, Any]:
        path = self._path(filename)
        if not path.exists():
            self._save(filename, defaults)
            return defaults

        try:
            with open(path) as f:
                stored = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Failed to read settings file {path}: {e}")
            return defaults

        if not isinstance(stored, dict):
            logger.warning(f"Settings file {path} does not contain an object, using defaults")
            return defaults

        return {**defaults, **stored}

    def _save(self, filename: str, data: dict[str, Any]) -> None:
        path = self._path(filename)
        try:
            self.config_dir.mkdir(parents=True, exist_ok=True)
            with open(path, "w") as f:
                json.dump(data, f, indent=2)
        except OSError as e:
            raise SettingsError(f"Failed to write settings file {path}: {e}") from e
        logger.debug(f"Saved settings to {path}")

    def get_permission_settings(self) -> PermissionSettings:
        data = self._load(PERMISSIONS_FILE, PermissionSettings().to_dict())
        try:
            return PermissionSettings.from_dict(data)
        except ValueError as e:
            logger.warning(f"Invalid permission settings, using defaults: {e}")
            return PermissionSettings()

    def save_permission_settings(self, settings: PermissionSettings) -> None:
        self._save(PERMISSIONS_FILE, settings.to_dict())

    def get_security_settings(self) -> SecuritySettings:
        data = self._load(SECURITY_FILE, SecuritySettings().to_dict())
        return SecuritySettings.from_dict(data)

    def save_security_settings(self, settings: SecuritySettings) -> None:
        self._save(SECURITY_FILE, settings.to_dict())
