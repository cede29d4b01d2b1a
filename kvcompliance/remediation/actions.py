"""Execution and text rendering of typed remediation actions."""
from __future__ import annotations
import logging
import shlex
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from ..checks.base import ActionKind, RemediationAction
from ..checks.vault_checks import DEFAULT_EXPIRATION_DAYS
from ..errors import KeyVaultAuditError, RemediationError
from ..scan.models import VaultSnapshot

LOGGER = logging.getLogger(__name__)

DIAGNOSTIC_SETTING_NAME = "kv-compliance-audit-logs"
WORKSPACE_PLACEHOLDER = "<log-analytics-workspace-id>"
EXPIRY_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def expiry_date(action: RemediationAction, now: datetime, days: Optional[int] = None) -> datetime:
    days = days or action.expiration_days or DEFAULT_EXPIRATION_DAYS
    return (now + timedelta(days=days)).astimezone(timezone.utc).replace(microsecond=0)


def describe_action(action: RemediationAction, snapshot: VaultSnapshot, days: Optional[int] = None) -> str:
    """One-line human summary, used for previews and logs."""
    kind = action.kind
    if kind == ActionKind.ENABLE_SOFT_DELETE:
        return f"enable soft delete on {snapshot.name}"
    if kind == ActionKind.ENABLE_PURGE_PROTECTION:
        return f"enable purge protection on {snapshot.name}"
    if kind == ActionKind.ENABLE_RBAC:
        return f"switch {snapshot.name} to RBAC authorization"
    if kind == ActionKind.RESTRICT_NETWORK:
        return f"set network default action to Deny on {snapshot.name}"
    if kind == ActionKind.ENABLE_DIAGNOSTICS:
        return f"send AuditEvent logs of {snapshot.name} to Log Analytics"
    noun = "secret" if kind == ActionKind.SET_SECRET_EXPIRATION else "key"
    return (
        f"set a {days or action.expiration_days or DEFAULT_EXPIRATION_DAYS}-day expiration on {len(action.object_names)} "
        f"{noun}(s) in {snapshot.name}: {', '.join(action.object_names)}"
    )


def render_commands(
    action: RemediationAction,
    snapshot: VaultSnapshot,
    now: Optional[datetime] = None,
    days: Optional[int] = None,
    workspace_id: Optional[str] = None,
) -> List[str]:
    """az CLI command lines an operator can run by hand for this action."""
    q = shlex.quote
    name, rg = q(snapshot.name), q(snapshot.resource_group)
    kind = action.kind
    if kind == ActionKind.ENABLE_SOFT_DELETE:
        return [f"az resource update --ids {q(snapshot.resource_id)} --set properties.enableSoftDelete=true"]
    if kind == ActionKind.ENABLE_PURGE_PROTECTION:
        return [f"az keyvault update --name {name} --resource-group {rg} --enable-purge-protection true"]
    if kind == ActionKind.ENABLE_RBAC:
        return [f"az keyvault update --name {name} --resource-group {rg} --enable-rbac-authorization true"]
    if kind == ActionKind.RESTRICT_NETWORK:
        return [f"az keyvault update --name {name} --resource-group {rg} --default-action Deny --bypass AzureServices"]
    if kind == ActionKind.ENABLE_DIAGNOSTICS:
        logs = q('[{"category":"AuditEvent","enabled":true}]')
        return [
            f"az monitor diagnostic-settings create --name {DIAGNOSTIC_SETTING_NAME} "
            f"--resource {q(snapshot.resource_id)} --workspace {q(workspace_id or WORKSPACE_PLACEHOLDER)} --logs {logs}"
        ]
    expires = expiry_date(action, now or datetime.now(timezone.utc), days).strftime(EXPIRY_FORMAT)
    noun = "secret" if kind == ActionKind.SET_SECRET_EXPIRATION else "key"
    return [
        f"az keyvault {noun} set-attributes --vault-name {name} --name {q(obj)} --expires {expires}"
        for obj in action.object_names
    ]


def apply_action(
    gateway,
    action: RemediationAction,
    snapshot: VaultSnapshot,
    now: Optional[datetime] = None,
    days: Optional[int] = None,
) -> None:
    """Execute the action through the gateway. Raises RemediationError on failure."""
    kind = action.kind
    rg, name = snapshot.resource_group, snapshot.name
    try:
        if kind == ActionKind.ENABLE_SOFT_DELETE:
            gateway.enable_soft_delete(rg, name)
        elif kind == ActionKind.ENABLE_PURGE_PROTECTION:
            gateway.enable_purge_protection(rg, name)
        elif kind == ActionKind.ENABLE_RBAC:
            gateway.enable_rbac(rg, name)
        elif kind == ActionKind.RESTRICT_NETWORK:
            gateway.restrict_network(rg, name)
        elif kind == ActionKind.ENABLE_DIAGNOSTICS:
            workspace_id = gateway.ensure_log_workspace(rg, snapshot.location)
            gateway.create_diagnostic_setting(snapshot.resource_id, workspace_id)
        else:
            _backfill_expiration(gateway, action, snapshot, now, days)
    except RemediationError:
        raise
    except KeyVaultAuditError as e:
        raise RemediationError(name, str(e)) from e


def _backfill_expiration(gateway, action, snapshot, now, days) -> None:
    expires = expiry_date(action, now or datetime.now(timezone.utc), days)
    setter = gateway.set_secret_expiration if action.kind == ActionKind.SET_SECRET_EXPIRATION else gateway.set_key_expiration
    failed = []
    # Each object is independent; keep going and report the failures together
    for obj in action.object_names:
        try:
            setter(snapshot.vault_uri, obj, expires)
        except KeyVaultAuditError as e:
            LOGGER.error("Vault %s: could not set expiration on %s: %s", snapshot.name, obj, e)
            failed.append(obj)
    if failed:
        raise RemediationError(snapshot.name, f"expiration not set on {len(failed)} object(s): {', '.join(failed)}")
