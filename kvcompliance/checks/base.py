from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Tuple

from ..scan.models import VaultSnapshot
from ..utils.controls import load_controls

SEVERITY_HIGH = "High"
SEVERITY_MEDIUM = "Medium"
SEVERITY_LOW = "Low"
SEVERITIES = (SEVERITY_HIGH, SEVERITY_MEDIUM, SEVERITY_LOW)


class ActionKind(str, Enum):
    ENABLE_SOFT_DELETE = "enable-soft-delete"
    ENABLE_PURGE_PROTECTION = "enable-purge-protection"
    ENABLE_RBAC = "enable-rbac"
    RESTRICT_NETWORK = "restrict-network"
    ENABLE_DIAGNOSTICS = "enable-diagnostics"
    SET_SECRET_EXPIRATION = "set-secret-expiration"
    SET_KEY_EXPIRATION = "set-key-expiration"


# Cannot be undone once applied, or changes who can reach the vault
IRREVERSIBLE_ACTIONS = frozenset(
    {
        ActionKind.ENABLE_PURGE_PROTECTION,
        ActionKind.ENABLE_RBAC,
        ActionKind.RESTRICT_NETWORK,
        ActionKind.ENABLE_DIAGNOSTICS,
        ActionKind.SET_SECRET_EXPIRATION,
        ActionKind.SET_KEY_EXPIRATION,
    }
)


@dataclass(frozen=True)
class RemediationAction:
    """Typed corrective step; executed by the planner or rendered as an az command."""
    kind: ActionKind
    object_names: Tuple[str, ...] = ()
    expiration_days: int = 0

    @property
    def irreversible(self) -> bool:
        return self.kind in IRREVERSIBLE_ACTIONS

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "object_names": list(self.object_names),
            "expiration_days": self.expiration_days,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RemediationAction":
        return cls(
            kind=ActionKind(data["kind"]),
            object_names=tuple(data.get("object_names") or ()),
            expiration_days=int(data.get("expiration_days") or 0),
        )


@dataclass(frozen=True)
class Issue:
    issue_id: str
    tag: str
    category: str
    description: str
    severity: str
    framework: str
    auto_remediable: bool
    action: RemediationAction
    vault: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "issue_id": self.issue_id,
            "tag": self.tag,
            "category": self.category,
            "description": self.description,
            "severity": self.severity,
            "framework": self.framework,
            "auto_remediable": self.auto_remediable,
            "action": self.action.to_dict(),
            "vault": self.vault,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Issue":
        return cls(
            issue_id=data["issue_id"],
            tag=data["tag"],
            category=data["category"],
            description=data["description"],
            severity=data["severity"],
            framework=data.get("framework", ""),
            auto_remediable=bool(data["auto_remediable"]),
            action=RemediationAction.from_dict(data["action"]),
            vault=data.get("vault", ""),
        )


class Check:
    """Base class for a single vault rule.

    Subclasses set `issue_id` to a key of the control catalogue and implement `run`.
    """
    issue_id: str = ""

    def run(self, snapshot: VaultSnapshot) -> List[Issue]:
        raise NotImplementedError

    def issue(self, snapshot: VaultSnapshot, action: RemediationAction, **fmt: Any) -> Issue:
        c = load_controls()[self.issue_id]
        return Issue(
            issue_id=c["issue_id"],
            tag=c["tag"],
            category=c["category"],
            description=c["title"].format(**fmt),
            severity=c["severity"],
            framework=c["framework"],
            auto_remediable=bool(c["auto_remediable"]),
            action=action,
            vault=snapshot.name,
        )
