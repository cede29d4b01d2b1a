from __future__ import annotations
import shlex
from datetime import datetime, timezone
from typing import List, Optional

from ..remediation.actions import describe_action, render_commands
from ..scan.results import STATUS_REMEDIATED, ScanResult


def render_remediation_script(result: ScanResult, now: Optional[datetime] = None, expiration_days: Optional[int] = None) -> str:
    """Bash script with the az command for every issue that still needs a human decision."""
    now = now or datetime.now(timezone.utc)
    fixed = set()
    if result.remediation is not None:
        fixed = {(o.vault, o.issue_id) for o in result.remediation.outcomes if o.status == STATUS_REMEDIATED}
    lines: List[str] = [
        "#!/usr/bin/env bash",
        "# Key Vault compliance follow-up: review each command before running it.",
        f"# Generated {now.strftime('%Y-%m-%d %H:%M:%S UTC')} for subscription {' '.join(result.subscription_id.split())}",
        "set -euo pipefail",
        f"az account set --subscription {shlex.quote(result.subscription_id)}",
        "",
    ]
    flagged = 0
    for v in result.vaults:
        manual = [i for i in v.issues if not i.auto_remediable and (v.snapshot.name, i.issue_id) not in fixed]
        if not manual:
            continue
        flagged += 1
        lines.append(f"# ===== {v.snapshot.name} (resource group {v.snapshot.resource_group}) =====")
        for issue in manual:
            lines.append(f"# {issue.issue_id} [{issue.severity}] {issue.description}")
            lines.append(f"# -> {describe_action(issue.action, v.snapshot, expiration_days)}")
            lines.extend(render_commands(issue.action, v.snapshot, now, expiration_days))
            lines.append("")
    if not flagged:
        lines.append("# No issues require manual remediation.")
    return "\n".join(lines) + "\n"
