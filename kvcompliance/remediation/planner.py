"""Decide, per issue, whether to run its corrective action now, and run it."""
from __future__ import annotations
import logging
import time
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

from .actions import apply_action, describe_action, render_commands
from ..checks.base import Issue
from ..errors import RemediationError
from ..scan.results import (
    STATUS_DECLINED, STATUS_FAILED, STATUS_MANUAL, STATUS_PREVIEWED, STATUS_REMEDIATED,
    RemediationOutcome, RemediationReport, ScanResult, VaultResult,
)
from ..utils.logging_utils import exc_to_text

LOGGER = logging.getLogger(__name__)

MODE_SCAN_ONLY = "scan-only"
MODE_AUTO_SAFE = "auto-safe"
MODE_FORCE_ALL = "force-all"
MODES = (MODE_SCAN_ONLY, MODE_AUTO_SAFE, MODE_FORCE_ALL)


def should_execute(issue: Issue, mode: str) -> bool:
    if mode == MODE_FORCE_ALL:
        return True
    if mode == MODE_AUTO_SAFE:
        return issue.auto_remediable
    return False


def plan(scan_result: ScanResult, mode: str) -> List[Tuple[VaultResult, Issue, bool]]:
    if mode not in MODES:
        raise ValueError(f"Unknown remediation mode '{mode}'")
    return [(v, i, should_execute(i, mode)) for v in scan_result.vaults for i in v.issues]


def remediate(
    scan_result: ScanResult,
    gateway,
    mode: str,
    *,
    dry_run: bool = False,
    confirm: Optional[Callable[[str], bool]] = None,
    expiration_days: Optional[int] = None,
    mutation_delay: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
    now: Optional[datetime] = None,
) -> RemediationReport:
    """Run the plan for `mode` and return the per-issue outcomes.

    Irreversible or access-breaking actions need one `confirm(prompt)` approval before the
    first mutating call; with no callback they are declined. In dry run nothing is executed
    or confirmed and one preview line is produced per issue.
    """
    now = now or datetime.now(timezone.utc)
    steps = plan(scan_result, mode)
    report = RemediationReport(mode=mode, dry_run=dry_run)

    if dry_run:
        for vault, issue, execute in steps:
            commands = render_commands(issue.action, vault.snapshot, now, expiration_days)
            verdict = "would execute" if execute else "manual review"
            line = f"WhatIf [{vault.snapshot.name}] {issue.issue_id} {verdict}: {describe_action(issue.action, vault.snapshot, expiration_days)}"
            LOGGER.info(line)
            report.previews.append(line)
            report.outcomes.append(RemediationOutcome(
                vault=vault.snapshot.name,
                issue_id=issue.issue_id,
                action=issue.action.kind.value,
                status=STATUS_PREVIEWED if execute else STATUS_MANUAL,
                command="\n".join(commands),
            ))
        return report

    gated = [(v, i) for v, i, execute in steps if execute and i.action.irreversible]
    approved = False
    if gated:
        vault_names = sorted({v.snapshot.name for v, _ in gated})
        prompt = (
            f"{len(gated)} irreversible or access-breaking change(s) on {len(vault_names)} vault(s) "
            f"({', '.join(vault_names)}). Proceed?"
        )
        approved = bool(confirm(prompt)) if confirm else False
        if not approved:
            LOGGER.warning("Operator did not confirm; %d irreversible change(s) will be skipped", len(gated))

    executed = 0
    for vault, issue, execute in steps:
        snapshot = vault.snapshot
        commands = render_commands(issue.action, snapshot, now, expiration_days)
        outcome = RemediationOutcome(
            vault=snapshot.name,
            issue_id=issue.issue_id,
            action=issue.action.kind.value,
            status=STATUS_MANUAL,
            command="\n".join(commands),
        )
        report.outcomes.append(outcome)
        if not execute:
            continue
        if issue.action.irreversible and not approved:
            outcome.status = STATUS_DECLINED
            outcome.message = "not confirmed by operator"
            continue

        if executed:
            sleep(mutation_delay)
        executed += 1
        LOGGER.info("Vault %s: %s", snapshot.name, describe_action(issue.action, snapshot, expiration_days),
                    extra={"vault": snapshot.name, "issue_id": issue.issue_id, "action": issue.action.kind.value})
        try:
            apply_action(gateway, issue.action, snapshot, now, expiration_days)
        except RemediationError as e:
            LOGGER.error("Vault %s: remediation %s failed: %s", snapshot.name, issue.issue_id, e)
            outcome.status = STATUS_FAILED
            outcome.message = str(e)
            continue
        except Exception as e:
            LOGGER.error("Vault %s: remediation %s raised %s: %s", snapshot.name, issue.issue_id, type(e).__name__, e)
            LOGGER.debug(exc_to_text(e))
            outcome.status = STATUS_FAILED
            outcome.message = f"{type(e).__name__}: {e}"
            continue
        outcome.status = STATUS_REMEDIATED

    LOGGER.info(
        "Remediation (%s): remediated=%d manual=%d declined=%d errors=%d",
        mode, report.remediated, report.manual_review, report.declined, report.errors,
    )
    return report
