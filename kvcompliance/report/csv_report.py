from __future__ import annotations
import csv
import io
import json
from typing import Any, Dict, List, Mapping, Sequence

from ..scan.results import ScanResult

EMPTY_PLACEHOLDER = "status\nEmpty\n"


def render_csv(rows: Sequence[Mapping[str, Any]]) -> str:
    """Render rows with the first row's keys as columns; nested cells become JSON strings."""
    if not rows:
        return EMPTY_PLACEHOLDER
    fieldnames = list(rows[0].keys())
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=fieldnames, extrasaction="ignore", lineterminator="\n")
    writer.writeheader()
    for row in rows:
        writer.writerow({k: _cell(row.get(k)) for k in fieldnames})
    return buffer.getvalue()


def _cell(value: Any) -> Any:
    if isinstance(value, (list, tuple, dict)):
        return json.dumps(value, sort_keys=True, default=str)
    if value is None:
        return ""
    return value


def vault_rows(result: ScanResult) -> List[Dict[str, Any]]:
    rem = result.remediation
    rows = []
    for v in result.vaults:
        s = v.snapshot
        rows.append({
            "name": s.name,
            "resource_group": s.resource_group,
            "location": s.location,
            "compliant": v.is_compliant,
            "issue_count": len(v.issues),
            "remediated_count": rem.remediated_for(s.name) if rem else 0,
            "issues": [f"{i.issue_id} {i.description}" for i in v.issues],
            "notes": list(s.notes),
        })
    return rows
