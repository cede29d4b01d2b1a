from __future__ import annotations
import html
import json
from typing import Any, List, Mapping, Optional, Sequence

from .json_report import parse_scan_result
from ..errors import RenderError
from ..scan.results import ScanResult

EMPTY_NODE = "<div>Empty</div>"
SEVERITY_COLORS = {"High": "#c0392b", "Medium": "#d68910", "Low": "#2e86c1"}
STYLE = (
    "body{font-family:Arial,Helvetica,sans-serif;margin:20px}"
    "table{border-collapse:collapse;width:100%}th,td{border:1px solid #ddd;padding:8px}"
    "th{background:#f2f2f2;text-align:left}tr:nth-child(even){background:#fafafa}"
    ".badge{color:#fff;border-radius:3px;padding:2px 6px;font-size:0.85em}"
    ".error{color:#c0392b;border:1px solid #c0392b;padding:8px}"
    "pre{white-space:pre-wrap;word-wrap:break-word}"
)


def _e(value: Any) -> str:
    return html.escape("" if value is None else str(value))


def _page(title: str, body: List[str]) -> str:
    rows = ["<!doctype html>", f"<html><head><meta charset='utf-8'><title>{_e(title)}</title>",
            f"<style>{STYLE}</style>", "</head><body>"]
    rows.extend(body)
    rows.append("</body></html>")
    return "\n".join(rows)


def severity_badge(severity: str) -> str:
    color = SEVERITY_COLORS.get(severity, "#7f8c8d")
    return f"<span class='badge sev-{_e(severity).lower()}' style='background:{color}'>{_e(severity)}</span>"


def _errors_section(result: ScanResult) -> List[str]:
    if not result.errors:
        return []
    rows = ["<h3>Scan errors</h3><ul class='scan-errors'>"]
    for err in result.errors:
        rows.append(f"<li>{_e(err.vault)}: {_e(err.message)}</li>")
    rows.append("</ul>")
    return rows


def _verified_section(result: ScanResult) -> List[str]:
    rem = result.remediation
    if rem is None or not rem.verified:
        return []
    rows = ["<h3>After remediation</h3><ul class='verified'>"]
    for v in rem.verified:
        state = "compliant" if v.is_compliant else "remaining: " + ", ".join(_e(i.issue_id) for i in v.issues)
        rows.append(f"<li id='verified-{_e(v.snapshot.name)}'>{_e(v.snapshot.name)}: {state}</li>")
    rows.append("</ul>")
    return rows


def render_html(result: Optional[ScanResult]) -> str:
    title = "Key Vault Compliance Report"
    if result is None:
        return _page(title, [f"<h2>{title}</h2>", EMPTY_NODE])

    body = [f"<h2>{title}</h2>"]
    scope = result.subscription_id + (f" / {result.resource_group}" if result.resource_group else "")
    body.append(f"<p>Scope: {_e(scope)} &middot; Scanned: {_e(result.scanned_at.isoformat() if result.scanned_at else '')}</p>")
    if not result.vaults:
        body.append(EMPTY_NODE)
        body.extend(_errors_section(result))
        return _page(title, body)

    s = result.summary
    rem = result.remediation
    body.append("<div class='summary'><ul>")
    body.append(f"<li>Vaults: {s.total_vaults} (compliant {s.compliant_vaults}, non-compliant {s.non_compliant_vaults})</li>")
    body.append(f"<li>Issues: {s.total_issues} (auto-remediable {s.auto_remediable_issues})</li>")
    body.append("<li>By severity: " + ", ".join(f"{_e(k)} {v}" for k, v in s.by_severity.items()) + "</li>")
    if rem is not None:
        body.append(f"<li>Remediation ({_e(rem.mode)}{', dry run' if rem.dry_run else ''}): remediated {rem.remediated}, "
                    f"manual review {rem.manual_review}, declined {rem.declined}, errors {rem.errors}</li>")
    if result.errors:
        body.append(f"<li>Scan errors: {len(result.errors)}</li>")
    body.append("</ul></div>")

    body.append("<table id='vaults'><thead><tr><th>Name</th><th>Resource group</th><th>Issue count</th>"
                "<th>Remediated count</th></tr></thead><tbody>")
    for v in result.vaults:
        remediated = rem.remediated_for(v.snapshot.name) if rem else 0
        body.append(f"<tr><td>{_e(v.snapshot.name)}</td><td>{_e(v.snapshot.resource_group)}</td>"
                    f"<td>{len(v.issues)}</td><td>{remediated}</td></tr>")
    body.append("</tbody></table>")

    body.append("<h3>Details</h3>")
    for v in result.vaults:
        body.append(f"<div class='vault' id='vault-{_e(v.snapshot.name)}'><h4>{_e(v.snapshot.name)}</h4>")
        if v.is_compliant:
            body.append("<p>Compliant</p>")
        else:
            body.append("<ul>")
            for i in v.issues:
                body.append(f"<li>{severity_badge(i.severity)} <b>{_e(i.issue_id)}</b> [{_e(i.category)}] "
                            f"{_e(i.description)} <i>({_e(i.framework)})</i></li>")
            body.append("</ul>")
        for note in v.snapshot.notes:
            body.append(f"<p class='note'>Note: {_e(note)}</p>")
        body.append("</div>")

    body.extend(_verified_section(result))
    body.extend(_errors_section(result))
    return _page(title, body)


def render_html_from_json(text: str) -> str:
    """Render a stored JSON report; unparseable input yields an error node, not an exception."""
    try:
        result = parse_scan_result(text)
    except RenderError as e:
        return _page("Key Vault Compliance Report", [f"<div class='error'>Report could not be rendered: {_e(e)}</div>"])
    return render_html(result)


def render_html_table(rows: Sequence[Mapping[str, Any]], title: str = "Artifacts") -> str:
    if not rows:
        return _page(title, [f"<h2>{_e(title)}</h2>", EMPTY_NODE])
    columns = list(rows[0].keys())
    body = [f"<h2>{_e(title)}</h2>", "<table><thead><tr>"]
    body.append("".join(f"<th>{_e(c)}</th>" for c in columns) + "</tr></thead><tbody>")
    for row in rows:
        cells = []
        for c in columns:
            value = row.get(c)
            if isinstance(value, (list, tuple, dict)):
                value = json.dumps(value, sort_keys=True, default=str)
            cells.append(f"<td>{_e(value)}</td>")
        body.append("<tr>" + "".join(cells) + "</tr>")
    body.append("</tbody></table>")
    return _page(title, body)
