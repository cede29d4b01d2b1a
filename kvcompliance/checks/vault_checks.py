from __future__ import annotations
from typing import List

from .base import ActionKind, Check, Issue, RemediationAction
from ..scan.models import VaultSnapshot

DEFAULT_EXPIRATION_DAYS = 90


class KeyVaultSoftDeleteCheck(Check):
    issue_id = "KV-001"
    def run(self, snapshot: VaultSnapshot) -> List[Issue]:
        if snapshot.soft_delete_enabled:
            return []
        return [self.issue(snapshot, RemediationAction(ActionKind.ENABLE_SOFT_DELETE))]


class KeyVaultPurgeProtectionCheck(Check):
    issue_id = "KV-002"
    def run(self, snapshot: VaultSnapshot) -> List[Issue]:
        if snapshot.purge_protection_enabled:
            return []
        return [self.issue(snapshot, RemediationAction(ActionKind.ENABLE_PURGE_PROTECTION))]


class KeyVaultRbacAuthorizationCheck(Check):
    issue_id = "KV-003"
    def run(self, snapshot: VaultSnapshot) -> List[Issue]:
        if snapshot.rbac_enabled:
            return []
        return [self.issue(snapshot, RemediationAction(ActionKind.ENABLE_RBAC))]


class KeyVaultFirewallCheck(Check):
    issue_id = "KV-004"
    def run(self, snapshot: VaultSnapshot) -> List[Issue]:
        if snapshot.network.firewall_configured:
            return []
        return [self.issue(snapshot, RemediationAction(ActionKind.RESTRICT_NETWORK))]


class KeyVaultDiagnosticLoggingCheck(Check):
    issue_id = "KV-005"
    def run(self, snapshot: VaultSnapshot) -> List[Issue]:
        # None means the settings could not be read; only a known absence is a violation
        if snapshot.diagnostic_logging is not False:
            return []
        return [self.issue(snapshot, RemediationAction(ActionKind.ENABLE_DIAGNOSTICS))]


class SecretExpirationCheck(Check):
    issue_id = "KV-006"
    def run(self, snapshot: VaultSnapshot) -> List[Issue]:
        missing = snapshot.secrets_without_expiration
        if not missing:
            return []
        action = RemediationAction(
            ActionKind.SET_SECRET_EXPIRATION,
            object_names=tuple(s.name for s in missing),
            expiration_days=DEFAULT_EXPIRATION_DAYS,
        )
        return [self.issue(snapshot, action, count=len(missing))]


class KeyExpirationCheck(Check):
    issue_id = "KV-007"
    def run(self, snapshot: VaultSnapshot) -> List[Issue]:
        missing = snapshot.keys_without_expiration
        if not missing:
            return []
        action = RemediationAction(
            ActionKind.SET_KEY_EXPIRATION,
            object_names=tuple(k.name for k in missing),
            expiration_days=DEFAULT_EXPIRATION_DAYS,
        )
        return [self.issue(snapshot, action, count=len(missing))]
