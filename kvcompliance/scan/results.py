"""Aggregated outcome of one scan run, and its dict (de)serialization."""
from __future__ import annotations
from dataclasses import dataclass, field, fields
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Tuple

from ..checks.base import SEVERITIES, Issue
from ..checks.evaluator import common_violations
from .models import (
    CertificateSummary, KeySummary, NetworkConfig, SecretSummary, VaultSnapshot,
)

STATUS_REMEDIATED = "remediated"
STATUS_FAILED = "failed"
STATUS_MANUAL = "manual"
STATUS_DECLINED = "declined"
STATUS_PREVIEWED = "previewed"


@dataclass
class ScanError:
    vault: str
    message: str


@dataclass
class VaultResult:
    snapshot: VaultSnapshot
    issues: List[Issue] = field(default_factory=list)

    @property
    def is_compliant(self) -> bool:
        return not self.issues


@dataclass
class ScanSummary:
    total_vaults: int = 0
    compliant_vaults: int = 0
    non_compliant_vaults: int = 0
    total_issues: int = 0
    auto_remediable_issues: int = 0
    by_severity: Dict[str, int] = field(default_factory=dict)
    by_category: Dict[str, int] = field(default_factory=dict)
    common_violations: List[Tuple[str, int]] = field(default_factory=list)
    errors: int = 0


@dataclass
class RemediationOutcome:
    vault: str
    issue_id: str
    action: str
    status: str
    command: str = ""
    message: str = ""


@dataclass
class RemediationReport:
    mode: str
    dry_run: bool
    outcomes: List[RemediationOutcome] = field(default_factory=list)
    previews: List[str] = field(default_factory=list)
    # Re-inspected state of each vault that had a change applied
    verified: List[VaultResult] = field(default_factory=list)

    def count(self, status: str) -> int:
        return sum(1 for o in self.outcomes if o.status == status)

    @property
    def remediated(self) -> int:
        return self.count(STATUS_REMEDIATED)

    @property
    def manual_review(self) -> int:
        return self.count(STATUS_MANUAL)

    @property
    def declined(self) -> int:
        return self.count(STATUS_DECLINED)

    @property
    def errors(self) -> int:
        return self.count(STATUS_FAILED)

    def remediated_for(self, vault: str) -> int:
        return sum(1 for o in self.outcomes if o.vault == vault and o.status == STATUS_REMEDIATED)


@dataclass
class ScanResult:
    subscription_id: str
    resource_group: Optional[str]
    scanned_at: datetime
    vaults: List[VaultResult] = field(default_factory=list)
    errors: List[ScanError] = field(default_factory=list)
    summary: ScanSummary = field(default_factory=ScanSummary)
    remediation: Optional[RemediationReport] = None


def summarize(vaults: List[VaultResult], errors: Optional[List[ScanError]] = None) -> ScanSummary:
    all_issues = [i for v in vaults for i in v.issues]
    by_severity = {s: 0 for s in SEVERITIES}
    by_category: Dict[str, int] = {}
    for issue in all_issues:
        by_severity[issue.severity] = by_severity.get(issue.severity, 0) + 1
        by_category[issue.category] = by_category.get(issue.category, 0) + 1
    compliant = sum(1 for v in vaults if v.is_compliant)
    return ScanSummary(
        total_vaults=len(vaults),
        compliant_vaults=compliant,
        non_compliant_vaults=len(vaults) - compliant,
        total_issues=len(all_issues),
        auto_remediable_issues=sum(1 for i in all_issues if i.auto_remediable),
        by_severity=by_severity,
        by_category=by_category,
        common_violations=common_violations(v.issues for v in vaults),
        errors=len(errors or []),
    )


# ---------- dict conversion ----------

def _dt(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _object_to_dict(obj) -> Dict[str, Any]:
    out = {}
    for f in fields(obj):
        value = getattr(obj, f.name)
        out[f.name] = _dt(value) if isinstance(value, datetime) else value
    return out


def _object_from_dict(cls, data: Mapping[str, Any]):
    kwargs = {}
    for f in fields(cls):
        if f.name not in data:
            continue
        value = data[f.name]
        if f.name in ("expires_on", "created_on"):
            value = _parse_dt(value)
        kwargs[f.name] = value
    return cls(**kwargs)


def snapshot_to_dict(s: VaultSnapshot) -> Dict[str, Any]:
    return {
        "name": s.name,
        "resource_id": s.resource_id,
        "resource_group": s.resource_group,
        "location": s.location,
        "vault_uri": s.vault_uri,
        "tags": dict(s.tags),
        "soft_delete_enabled": s.soft_delete_enabled,
        "purge_protection_enabled": s.purge_protection_enabled,
        "rbac_enabled": s.rbac_enabled,
        "network": {
            "default_action": s.network.default_action,
            "bypass": s.network.bypass,
            "ip_rules": list(s.network.ip_rules),
            "vnet_rules": list(s.network.vnet_rules),
            "public_network_access": s.network.public_network_access,
        },
        "diagnostic_logging": s.diagnostic_logging,
        "secrets": [_object_to_dict(x) for x in s.secrets],
        "keys": [_object_to_dict(x) for x in s.keys],
        "certificates": [_object_to_dict(x) for x in s.certificates],
        "non_compliant_policies": list(s.non_compliant_policies) if s.non_compliant_policies is not None else None,
        "notes": list(s.notes),
    }


def snapshot_from_dict(data: Mapping[str, Any]) -> VaultSnapshot:
    net = data.get("network") or {}
    policies = data.get("non_compliant_policies")
    return VaultSnapshot(
        name=data["name"],
        resource_id=data["resource_id"],
        resource_group=data.get("resource_group", ""),
        location=data.get("location", ""),
        vault_uri=data.get("vault_uri", ""),
        tags=dict(data.get("tags") or {}),
        soft_delete_enabled=bool(data["soft_delete_enabled"]),
        purge_protection_enabled=bool(data["purge_protection_enabled"]),
        rbac_enabled=bool(data["rbac_enabled"]),
        network=NetworkConfig(
            default_action=net.get("default_action", "Allow"),
            bypass=net.get("bypass"),
            ip_rules=tuple(net.get("ip_rules") or ()),
            vnet_rules=tuple(net.get("vnet_rules") or ()),
            public_network_access=net.get("public_network_access"),
        ),
        diagnostic_logging=data.get("diagnostic_logging"),
        secrets=tuple(_object_from_dict(SecretSummary, x) for x in data.get("secrets") or ()),
        keys=tuple(_object_from_dict(KeySummary, x) for x in data.get("keys") or ()),
        certificates=tuple(_object_from_dict(CertificateSummary, x) for x in data.get("certificates") or ()),
        non_compliant_policies=tuple(policies) if policies is not None else None,
        notes=tuple(data.get("notes") or ()),
    )


def scan_result_to_dict(result: ScanResult) -> Dict[str, Any]:
    summary = result.summary
    payload: Dict[str, Any] = {
        "subscription_id": result.subscription_id,
        "resource_group": result.resource_group,
        "scanned_at": _dt(result.scanned_at),
        "summary": {
            "total_vaults": summary.total_vaults,
            "compliant_vaults": summary.compliant_vaults,
            "non_compliant_vaults": summary.non_compliant_vaults,
            "total_issues": summary.total_issues,
            "auto_remediable_issues": summary.auto_remediable_issues,
            "by_severity": dict(summary.by_severity),
            "by_category": dict(summary.by_category),
            "common_violations": [{"tag": t, "count": c} for t, c in summary.common_violations],
            "errors": summary.errors,
        },
        "vaults": [_vault_result_to_dict(v) for v in result.vaults],
        "errors": [{"vault": e.vault, "message": e.message} for e in result.errors],
        "remediation": None,
    }
    if result.remediation is not None:
        rem = result.remediation
        payload["remediation"] = {
            "mode": rem.mode,
            "dry_run": rem.dry_run,
            "remediated": rem.remediated,
            "manual_review": rem.manual_review,
            "declined": rem.declined,
            "errors": rem.errors,
            "outcomes": [_object_to_dict(o) for o in rem.outcomes],
            "previews": list(rem.previews),
            "verified": [_vault_result_to_dict(v) for v in rem.verified],
        }
    return payload


def _vault_result_to_dict(v: VaultResult) -> Dict[str, Any]:
    return {
        "snapshot": snapshot_to_dict(v.snapshot),
        "is_compliant": v.is_compliant,
        "issues": [i.to_dict() for i in v.issues],
    }


def _vault_result_from_dict(data: Mapping[str, Any]) -> VaultResult:
    return VaultResult(
        snapshot=snapshot_from_dict(data["snapshot"]),
        issues=[Issue.from_dict(i) for i in data.get("issues") or ()],
    )


def scan_result_from_dict(data: Mapping[str, Any]) -> ScanResult:
    vaults = [_vault_result_from_dict(v) for v in data.get("vaults") or ()]
    errors = [ScanError(vault=e["vault"], message=e["message"]) for e in data.get("errors") or ()]
    remediation = None
    rem = data.get("remediation")
    if rem:
        remediation = RemediationReport(
            mode=rem["mode"],
            dry_run=bool(rem["dry_run"]),
            outcomes=[_object_from_dict(RemediationOutcome, o) for o in rem.get("outcomes") or ()],
            previews=list(rem.get("previews") or ()),
            verified=[_vault_result_from_dict(v) for v in rem.get("verified") or ()],
        )
    return ScanResult(
        subscription_id=data["subscription_id"],
        resource_group=data.get("resource_group"),
        scanned_at=_parse_dt(data["scanned_at"]),
        vaults=vaults,
        errors=errors,
        summary=summarize(vaults, errors),
        remediation=remediation,
    )
