"""
Safety Policy Layer.

Classifies the risk of a candidate tool call before it is authorized:

- RiskClassifier matches shell commands against high/medium/low pattern
  tiers and a custom blocklist.
- SecurityPolicy applies per-tool rules (sensitive path prefixes for
  writes, fixed tiers for reads and listings) and defers command execution
  to the classifier.

The layer classifies; it does not isolate. A command that passes still runs
with the user's full privileges.

Pattern syntax: a pattern written as /.../ is a case-insensitive regular
expression; anything else is a case-insensitive substring. The choice is
made once, when the pattern is compiled, and a regex that fails to compile
is downgraded to a substring match on the full pattern text.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, replace
from enum import Enum
from typing import TYPE_CHECKING, Any

from agentgate.types import RiskDecision, RiskLevel

if TYPE_CHECKING:
    from agentgate.settings import SecuritySettings, SettingsStore

logger = logging.getLogger(__name__)


COMMAND_TOOLS = frozenset({"execute_command"})
WRITE_TOOLS = frozenset({"write_to_file", "create_directory"})
MEDIUM_READ_TOOLS = frozenset({
    "read_file",
    "read_files",
    "search_files",
    "find_files_by_name",
    "search_content_in_files",
})
LOW_READ_TOOLS = frozenset({"list_directory"})

DANGEROUS_PATH_PREFIXES = (
    "/etc/",
    "/bin/",
    "/sbin/",
    "/usr/bin/",
    "/usr/sbin/",
    "/system/",
    "/windows/",
    "c:\\windows\\",
    "c:\\program files\\",
    "/boot/",
    "/dev/",
    "/proc/",
    "/sys/",
)

TOOL_WARNINGS = {
    "write_to_file": "This operation writes to a file",
    "create_directory": "This operation creates a directory",
    "read_file": "This operation reads a file",
    "read_files": "This operation reads multiple files",
    "search_files": "This operation searches files",
    "find_files_by_name": "This operation searches file names",
    "search_content_in_files": "This operation searches file contents",
}


def _normalize_path(path: str) -> str:
    return path.lower().replace("\\", "/")


_NORMALIZED_PREFIXES = tuple(_normalize_path(p) for p in DANGEROUS_PATH_PREFIXES)


def is_dangerous_path(path: str) -> bool:
    """Check whether a path falls under a sensitive OS location."""
    normalized = _normalize_path(path)
    return any(normalized.startswith(prefix) for prefix in _NORMALIZED_PREFIXES)


class MatchKind(Enum):
    """How a compiled pattern is tested."""

    REGEX = "regex"
    SUBSTRING = "substring"


@dataclass(frozen=True)
class CompiledPattern:
    """A risk pattern after its match strategy has been decided."""

    source: str
    kind: MatchKind
    regex: re.Pattern[str] | None = None

    def matches(self, text: str) -> bool:
        if self.kind is MatchKind.REGEX and self.regex is not None:
            return self.regex.search(text) is not None
        return self.source.lower() in text.lower()


def compile_pattern(pattern: str) -> CompiledPattern:
    """Choose regex or substring matching for a pattern by its delimiters."""
    if len(pattern) > 2 and pattern.startswith("/") and pattern.endswith("/"):
        try:
            return CompiledPattern(
                source=pattern,
                kind=MatchKind.REGEX,
                regex=re.compile(pattern[1:-1], re.IGNORECASE),
            )
        except re.error as e:
            logger.warning(f"Invalid regex pattern {pattern!r}, matching as substring: {e}")
    return CompiledPattern(source=pattern, kind=MatchKind.SUBSTRING)


def _first_match(text: str, patterns: tuple[CompiledPattern, ...]) -> str | None:
    for pattern in patterns:
        if pattern.matches(text):
            return pattern.source
    return None


class RiskClassifier:
    """Classifies shell commands against the configured pattern tiers."""

    def __init__(self, settings: SecuritySettings):
        self.enabled = settings.enable_blocklist
        self.show_warnings = settings.show_security_warnings
        self.high = tuple(compile_pattern(p) for p in settings.risk_levels.high)
        self.blocklist = tuple(compile_pattern(p) for p in settings.custom_blocklist)
        self.medium = tuple(compile_pattern(p) for p in settings.risk_levels.medium)
        self.low = tuple(compile_pattern(p) for p in settings.risk_levels.low)

    def check_command(self, command: str) -> RiskDecision:
        """
        Classify a command.

        Tiers are tested in order: high (deny), custom blocklist (deny),
        medium (allow with warning), low (allow). Anything unmatched is
        allowed as low risk.
        """
        if not self.enabled:
            return RiskDecision(allowed=True, risk_level=RiskLevel.LOW)

        match = _first_match(command, self.high)
        if match:
            return RiskDecision(
                allowed=False,
                risk_level=RiskLevel.HIGH,
                blocked_reason=f"High-risk command detected: {match}",
            )

        match = _first_match(command, self.blocklist)
        if match:
            return RiskDecision(
                allowed=False,
                risk_level=RiskLevel.HIGH,
                blocked_reason=f"Command matches custom blocklist: {match}",
            )

        match = _first_match(command, self.medium)
        if match:
            return RiskDecision(
                allowed=True,
                risk_level=RiskLevel.MEDIUM,
                warning=f"Command contains a medium-risk operation: {match}" if self.show_warnings else None,
            )

        match = _first_match(command, self.low)
        if match:
            logger.debug(f"Command matches low-risk pattern: {match}")
            return RiskDecision(allowed=True, risk_level=RiskLevel.LOW)

        return RiskDecision(allowed=True, risk_level=RiskLevel.LOW)


class SecurityPolicy:
    """
    Per-tool security rules layered over RiskClassifier.

    Settings are loaded from the store on first use and cached. Only the
    mutators below replace the cache, so a policy instance sees a stable
    view until it changes something itself or reload() is called.
    """

    def __init__(self, store: SettingsStore):
        self.store = store
        self._settings: SecuritySettings | None = None
        self._classifier: RiskClassifier | None = None

    @property
    def settings(self) -> SecuritySettings:
        if self._settings is None:
            self._apply(self.store.get_security_settings())
        assert self._settings is not None
        return self._settings

    @property
    def classifier(self) -> RiskClassifier:
        if self._classifier is None:
            self._apply(self.store.get_security_settings())
        assert self._classifier is not None
        return self._classifier

    def _apply(self, settings: SecuritySettings) -> None:
        self._classifier = RiskClassifier(settings)
        self._settings = settings

    def reload(self) -> None:
        """Drop the cached settings; the next check reads the store again."""
        self._settings = None
        self._classifier = None

    def check_command(self, command: str) -> RiskDecision:
        return self.classifier.check_command(command)

    def check_tool(self, tool_name: str, parameters: dict[str, Any]) -> RiskDecision:
        """Classify a tool call by its kind and parameters."""
        show_warnings = self.settings.show_security_warnings

        if tool_name in COMMAND_TOOLS:
            command = parameters.get("command")
            if isinstance(command, str) and command:
                return self.check_command(command)
            return RiskDecision(allowed=True, risk_level=RiskLevel.LOW)

        if tool_name in WRITE_TOOLS:
            path = parameters.get("path")
            if isinstance(path, str) and path and is_dangerous_path(path):
                return RiskDecision(
                    allowed=False,
                    risk_level=RiskLevel.HIGH,
                    blocked_reason=f"Write to a protected system path detected: {path}",
                )
            return RiskDecision(
                allowed=True,
                risk_level=RiskLevel.MEDIUM,
                warning=TOOL_WARNINGS[tool_name] if show_warnings else None,
            )

        if tool_name in MEDIUM_READ_TOOLS:
            return RiskDecision(
                allowed=True,
                risk_level=RiskLevel.MEDIUM,
                warning=TOOL_WARNINGS[tool_name] if show_warnings else None,
            )

        if tool_name in LOW_READ_TOOLS:
            return RiskDecision(allowed=True, risk_level=RiskLevel.LOW)

        return RiskDecision(allowed=True, risk_level=RiskLevel.LOW)

    def update_settings(self, settings: SecuritySettings) -> None:
        """Persist new settings, then swap them into the cache."""
        self.store.save_security_settings(settings)
        self._apply(settings)

    def add_to_blocklist(self, pattern: str) -> None:
        current = self.settings
        if pattern in current.custom_blocklist:
            return
        self.update_settings(replace(current, custom_blocklist=(*current.custom_blocklist, pattern)))

    def remove_from_blocklist(self, pattern: str) -> None:
        current = self.settings
        if pattern not in current.custom_blocklist:
            return
        self.update_settings(replace(
            current,
            custom_blocklist=tuple(p for p in current.custom_blocklist if p != pattern),
        ))

    def toggle_blocklist(self, enabled: bool) -> None:
        self.update_settings(replace(self.settings, enable_blocklist=enabled))
