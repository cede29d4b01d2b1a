from __future__ import annotations
from collections import Counter
from dataclasses import replace
from typing import Iterable, List, Optional, Tuple

from .base import Issue
from .vault_checks import (
    KeyVaultSoftDeleteCheck, KeyVaultPurgeProtectionCheck, KeyVaultRbacAuthorizationCheck,
    KeyVaultFirewallCheck, KeyVaultDiagnosticLoggingCheck, SecretExpirationCheck, KeyExpirationCheck,
)
from ..scan.models import VaultSnapshot

# Order is report order
VAULT_CHECKS = [
    KeyVaultSoftDeleteCheck(),
    KeyVaultPurgeProtectionCheck(),
    KeyVaultRbacAuthorizationCheck(),
    KeyVaultFirewallCheck(),
    KeyVaultDiagnosticLoggingCheck(),
    SecretExpirationCheck(),
    KeyExpirationCheck(),
]


def evaluate(snapshot: VaultSnapshot, expiration_days: Optional[int] = None) -> List[Issue]:
    """Run every check; `expiration_days` replaces the default window on expiration actions."""
    issues: List[Issue] = []
    for chk in VAULT_CHECKS:
        issues.extend(chk.run(snapshot))
    if expiration_days:
        issues = [
            replace(i, action=replace(i.action, expiration_days=expiration_days)) if i.action.expiration_days else i
            for i in issues
        ]
    return issues


def is_compliant(snapshot: VaultSnapshot) -> bool:
    return len(evaluate(snapshot)) == 0


def common_violations(issue_lists: Iterable[Iterable[Issue]]) -> List[Tuple[str, int]]:
    """Count each violation tag across vaults, most frequent first."""
    counts: Counter = Counter()
    for issues in issue_lists:
        counts.update(i.tag for i in issues)
    return counts.most_common()
