from __future__ import annotations
from typing import Dict, Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.text import Text

from ..scan.results import ScanResult

SEVERITY_STYLE = {"High": "bold red", "Medium": "bold yellow", "Low": "green"}


def print_summary(result: ScanResult, report_paths: Optional[Dict[str, str]] = None, console: Optional[Console] = None) -> None:
    """Colourful end-of-run table of vaults followed by the saved report paths."""
    console = console or Console()
    s = result.summary
    rem = result.remediation

    table = Table(show_header=True, header_style="bold cyan", title="Key Vault compliance")
    table.add_column("Vault", style="cyan", overflow="fold")
    table.add_column("Resource group")
    table.add_column("Issues", justify="right")
    table.add_column("Worst severity")
    table.add_column("Remediated", justify="right")
    for v in result.vaults:
        worst = next((sev for sev in ("High", "Medium", "Low") if any(i.severity == sev for i in v.issues)), None)
        table.add_row(
            v.snapshot.name,
            v.snapshot.resource_group,
            str(len(v.issues)),
            Text(worst, style=SEVERITY_STYLE[worst]) if worst else Text("compliant", style="green"),
            str(rem.remediated_for(v.snapshot.name)) if rem else "-",
        )
    console.print(table)

    console.print(f"Vaults: {s.total_vaults}  compliant: {s.compliant_vaults}  non-compliant: {s.non_compliant_vaults}")
    console.print("Issues: " + ", ".join(f"{k} {v}" for k, v in s.by_severity.items()))
    if s.common_violations:
        console.print("Common violations: " + ", ".join(f"{tag} ({n})" for tag, n in s.common_violations))
    if rem is not None:
        console.print(
            f"Remediation ({rem.mode}{' dry run' if rem.dry_run else ''}): remediated {rem.remediated}, "
            f"manual review {rem.manual_review}, declined {rem.declined}, errors: {rem.errors}"
        )
        for v in rem.verified:
            state = "compliant" if v.is_compliant else "remaining " + ", ".join(i.issue_id for i in v.issues)
            console.print(f"After remediation {escape(v.snapshot.name)}: {state}")
    if result.errors:
        console.print(Text(f"Scan errors: {len(result.errors)}", style="bold red"))
    if report_paths:
        console.print("\nSaved reports:")
        for fmt, path in report_paths.items():
            console.print(f"- {fmt}: {escape(str(path))}")
