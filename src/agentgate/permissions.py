"""
Permission policy: decides deny, auto-allow, or ask the human.

The decision is layered:

1. SecurityPolicy verdict. A denial is final and is never offered to the
   human for approval.
2. Permanently-allowed tools skip approval regardless of risk.
3. An explicit requires_approval flag on the invocation wins.
4. Otherwise the permission level maps risk to approval:
   strict -> always, normal -> medium or high, permissive -> high only.
"""

import logging
from dataclasses import replace

from agentgate.safety import SecurityPolicy
from agentgate.settings import PermissionSettings, SettingsStore
from agentgate.types import (
    PermissionDecision,
    PermissionLevel,
    RiskDecision,
    RiskLevel,
    ToolInvocation,
)

logger = logging.getLogger(__name__)


def approval_required(level: PermissionLevel, risk: RiskLevel) -> bool:
    """Whether a permission level requires approval for a risk level."""
    if level == PermissionLevel.STRICT:
        return True
    if level == PermissionLevel.PERMISSIVE:
        return risk == RiskLevel.HIGH
    return risk in (RiskLevel.MEDIUM, RiskLevel.HIGH)


class PermissionPolicy:
    """
    Combines security verdicts with persisted permission settings.

    Settings are read lazily from the store once and cached on the
    instance. Mutators save first and then replace the cached object, so a
    failed save leaves the cache untouched.
    """

    def __init__(self, store: SettingsStore, security: SecurityPolicy | None = None):
        self.store = store
        self.security = security or SecurityPolicy(store)
        self._settings: PermissionSettings | None = None

    def current_settings(self) -> PermissionSettings:
        if self._settings is None:
            self._settings = self.store.get_permission_settings()
        return self._settings

    def reload(self) -> None:
        """Drop cached settings in both this policy and its security policy."""
        self._settings = None
        self.security.reload()

    def check_permission(self, invocation: ToolInvocation) -> PermissionDecision:
        """Decide whether an invocation may run and whether a human must approve."""
        settings = self.current_settings()
        risk: RiskDecision = self.security.check_tool(invocation.name, invocation.parameters)

        if not risk.allowed:
            logger.warning(f"Security policy denied {invocation.name}: {risk.blocked_reason}")
            return PermissionDecision(
                allowed=False,
                requires_approval=False,
                risk_decision=risk,
                reason=risk.blocked_reason,
            )

        if invocation.name in settings.permanently_allowed:
            return PermissionDecision(allowed=True, requires_approval=False, risk_decision=risk)

        if invocation.requires_approval is not None:
            needs_approval = invocation.requires_approval
        else:
            needs_approval = approval_required(settings.permission_level, risk.risk_level)

        return PermissionDecision(allowed=True, requires_approval=needs_approval, risk_decision=risk)

    def _save(self, settings: PermissionSettings) -> None:
        self.store.save_permission_settings(settings)
        self._settings = settings

    def add_to_permanently_allowed(self, tool_name: str) -> None:
        current = self.current_settings()
        if tool_name in current.permanently_allowed:
            return
        self._save(replace(current, permanently_allowed=(*current.permanently_allowed, tool_name)))
        logger.info(f"Tool permanently allowed: {tool_name}")

    def remove_from_permanently_allowed(self, tool_name: str) -> None:
        current = self.current_settings()
        if tool_name not in current.permanently_allowed:
            return
        self._save(replace(
            current,
            permanently_allowed=tuple(t for t in current.permanently_allowed if t != tool_name),
        ))

    def set_permission_level(self, level: PermissionLevel | str) -> None:
        self._save(replace(self.current_settings(), permission_level=PermissionLevel(level)))

    def record_rejection(self, tool_name: str) -> None:
        """
        Persist a deny-always choice.

        The record is write-only: check_permission does not consult it.
        """
        current = self.current_settings()
        if tool_name in current.auto_reject:
            return
        self._save(replace(current, auto_reject=(*current.auto_reject, tool_name)))
