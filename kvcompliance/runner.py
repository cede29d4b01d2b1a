from __future__ import annotations
import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence

from .azure.clients import credential_from_settings
from .azure.gateway import KeyVaultGateway
from .checks.evaluator import evaluate
from .config import Settings
from .errors import KeyVaultAuditError, SetupError
from .remediation.planner import MODE_SCAN_ONLY, remediate
from .scan.inspector import inspect_vault, sort_vaults
from .scan.results import STATUS_REMEDIATED, ScanError, ScanResult, VaultResult, summarize
from .utils.logging_utils import exc_to_text

LOGGER = logging.getLogger(__name__)


def open_gateway(settings: Settings) -> KeyVaultGateway:
    credential = credential_from_settings(settings)
    gateway = KeyVaultGateway(credential, settings)
    display_name = gateway.verify_scope(settings.resource_group)
    LOGGER.info("Connected to subscription %s (%s)", settings.subscription_id, display_name or "no display name")
    return gateway


def scan_vaults(
    gateway,
    *,
    subscription_id: str,
    resource_group: Optional[str] = None,
    vault_names: Optional[Sequence[str]] = None,
    require_vaults: bool = False,
    now: Optional[datetime] = None,
    expiration_days: Optional[int] = None,
) -> ScanResult:
    """Enumerate, inspect and evaluate vaults one at a time, in name order."""
    try:
        vaults = gateway.list_vaults(resource_group)
    except KeyVaultAuditError as e:
        raise SetupError(f"Could not enumerate Key Vaults: {e}") from e

    errors: List[ScanError] = []
    if vault_names:
        wanted = set(vault_names)
        found = {v.name for v in vaults}
        for missing in sorted(wanted - found):
            LOGGER.warning("Vault %s was not found in scope", missing)
            errors.append(ScanError(vault=missing, message="vault not found in scope"))
        vaults = [v for v in vaults if v.name in wanted]
    vaults = sort_vaults(vaults)

    if require_vaults and not vaults:
        scope = resource_group or subscription_id
        raise SetupError(f"No Key Vaults found in {scope}")
    LOGGER.info("Scanning %d vault(s)", len(vaults))

    results: List[VaultResult] = []
    for vault in vaults:
        try:
            snapshot = inspect_vault(gateway, vault)
        except KeyVaultAuditError as e:
            LOGGER.error("Vault %s: scan failed: %s", vault.name, e)
            LOGGER.debug(exc_to_text(e))
            errors.append(ScanError(vault=vault.name, message=str(e)))
            continue
        except Exception as e:
            LOGGER.error("Vault %s: unexpected error during scan: %s", vault.name, e)
            LOGGER.debug(exc_to_text(e))
            errors.append(ScanError(vault=vault.name, message=f"{type(e).__name__}: {e}"))
            continue
        issues = evaluate(snapshot, expiration_days)
        if issues:
            LOGGER.info("Vault %s: %d issue(s): %s", snapshot.name, len(issues), ", ".join(i.issue_id for i in issues))
        else:
            LOGGER.info("Vault %s: compliant", snapshot.name)
        results.append(VaultResult(snapshot=snapshot, issues=issues))

    return ScanResult(
        subscription_id=subscription_id,
        resource_group=resource_group,
        scanned_at=now or datetime.now(timezone.utc),
        vaults=results,
        errors=errors,
        summary=summarize(results, errors),
    )


def verify_remediation(gateway, result: ScanResult, expiration_days: Optional[int] = None) -> List[VaultResult]:
    """Re-inspect every vault that had at least one change applied and evaluate its new state."""
    if result.remediation is None:
        return []
    touched = {o.vault for o in result.remediation.outcomes if o.status == STATUS_REMEDIATED}
    verified: List[VaultResult] = []
    for v in result.vaults:
        if v.snapshot.name not in touched:
            continue
        try:
            vault = gateway.get_vault(v.snapshot.resource_group, v.snapshot.name)
            snapshot = inspect_vault(gateway, vault)
        except Exception as e:
            LOGGER.error("Vault %s: post-remediation check failed: %s", v.snapshot.name, e)
            LOGGER.debug(exc_to_text(e))
            continue
        after = VaultResult(snapshot=snapshot, issues=evaluate(snapshot, expiration_days))
        LOGGER.info("Vault %s after remediation: %s", snapshot.name,
                    "compliant" if after.is_compliant else f"{len(after.issues)} issue(s) remain")
        verified.append(after)
    return verified


def run_compliance(
    settings: Settings,
    *,
    mode: str = MODE_SCAN_ONLY,
    dry_run: bool = False,
    confirm: Optional[Callable[[str], bool]] = None,
    vault_names: Optional[Sequence[str]] = None,
    require_vaults: bool = False,
    gateway=None,
    now: Optional[datetime] = None,
) -> ScanResult:
    gateway = gateway or open_gateway(settings)
    result = scan_vaults(
        gateway,
        subscription_id=settings.subscription_id,
        resource_group=settings.resource_group,
        vault_names=vault_names,
        require_vaults=require_vaults,
        now=now,
        expiration_days=settings.expiration_days,
    )
    if mode != MODE_SCAN_ONLY or dry_run:
        result.remediation = remediate(
            result,
            gateway,
            mode,
            dry_run=dry_run,
            confirm=confirm,
            expiration_days=settings.expiration_days,
            mutation_delay=settings.mutation_delay,
            now=now,
        )
        if not dry_run:
            result.remediation.verified = verify_remediation(gateway, result, settings.expiration_days)
    return result
