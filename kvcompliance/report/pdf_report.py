from __future__ import annotations
from datetime import datetime, timezone
from xml.sax.saxutils import escape

from reportlab.lib.pagesizes import A4
from reportlab.lib import colors
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.platypus import SimpleDocTemplate, Paragraph, Spacer, Table, TableStyle

from ..scan.results import ScanResult

SEVERITY_FILL = {"High": colors.HexColor("#f5b7b1"), "Medium": colors.HexColor("#fad7a0"), "Low": colors.HexColor("#aed6f1")}


def build_pdf(path: str, result: ScanResult, tool_version: str = "1.0"):
    styles = getSampleStyleSheet()
    doc = SimpleDocTemplate(path, pagesize=A4, rightMargin=28, leftMargin=28, topMargin=28, bottomMargin=28)

    story = []
    now = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")
    s = result.summary

    story.append(Paragraph("Azure Key Vault Compliance Report", styles["Title"]))
    story.append(Spacer(1, 10))
    story.append(Paragraph(f"<b>Generated:</b> {now}", styles["Normal"]))
    story.append(Paragraph(f"<b>Subscription:</b> {escape(result.subscription_id)}", styles["Normal"]))
    story.append(Paragraph(f"<b>Resource group:</b> {escape(result.resource_group or 'All')}", styles["Normal"]))
    story.append(Paragraph(f"<b>Tool version:</b> {tool_version}", styles["Normal"]))
    story.append(Spacer(1, 12))

    summary_data = [
        ["Measure", "Count"],
        ["Vaults", str(s.total_vaults)],
        ["Compliant", str(s.compliant_vaults)],
        ["Non-compliant", str(s.non_compliant_vaults)],
    ] + [[f"{k} issues", str(v)] for k, v in s.by_severity.items()] + [["Scan errors", str(s.errors)]]
    if result.remediation is not None:
        summary_data.append(["Remediated", str(result.remediation.remediated)])
        summary_data.append(["Remediation errors", str(result.remediation.errors)])
    t = Table(summary_data, hAlign="LEFT")
    t.setStyle(TableStyle([
        ("BACKGROUND", (0,0), (-1,0), colors.lightgrey),
        ("GRID", (0,0), (-1,-1), 0.5, colors.grey),
        ("FONTNAME", (0,0), (-1,0), "Helvetica-Bold"),
    ]))
    story.append(Paragraph("Executive Summary", styles["Heading2"]))
    story.append(t)
    story.append(Spacer(1, 14))

    if result.vaults:
        vault_rows = [["Vault", "Resource group", "Location", "Issues", "Remediated"]]
        for v in result.vaults:
            vault_rows.append([
                v.snapshot.name,
                v.snapshot.resource_group,
                v.snapshot.location,
                str(len(v.issues)),
                str(result.remediation.remediated_for(v.snapshot.name)) if result.remediation else "-",
            ])
        vt = Table(vault_rows, repeatRows=1, hAlign="LEFT")
        vt.setStyle(TableStyle([
            ("BACKGROUND", (0,0), (-1,0), colors.lightgrey),
            ("GRID", (0,0), (-1,-1), 0.3, colors.grey),
            ("FONTNAME", (0,0), (-1,0), "Helvetica-Bold"),
            ("FONTSIZE", (0,0), (-1,-1), 8),
        ]))
        story.append(Paragraph("Vaults", styles["Heading2"]))
        story.append(vt)
        story.append(Spacer(1, 14))

    story.append(Paragraph("Issues", styles["Heading2"]))
    if s.total_issues == 0:
        story.append(Paragraph("No issues were found in the scanned vaults.", styles["Normal"]))
        doc.build(story)
        return

    rows = [["Vault", "Issue ID", "Severity", "Category", "Framework", "Auto", "Description"]]
    fills = []
    for v in result.vaults:
        for i in v.issues:
            rows.append([
                v.snapshot.name,
                i.issue_id,
                i.severity,
                i.category,
                i.framework,
                "Yes" if i.auto_remediable else "No",
                Paragraph(escape(i.description), styles["BodyText"]),
            ])
            fills.append(("BACKGROUND", (2, len(rows) - 1), (2, len(rows) - 1), SEVERITY_FILL.get(i.severity, colors.white)))

    tbl = Table(rows, repeatRows=1, colWidths=[90, 45, 50, 75, 70, 30, 180])
    tbl.setStyle(TableStyle([
        ("BACKGROUND", (0,0), (-1,0), colors.lightgrey),
        ("GRID", (0,0), (-1,-1), 0.3, colors.grey),
        ("VALIGN", (0,0), (-1,-1), "TOP"),
        ("FONTNAME", (0,0), (-1,0), "Helvetica-Bold"),
        ("FONTSIZE", (0,0), (-1,0), 8),
        ("FONTSIZE", (0,1), (-1,-1), 7),
    ] + fills))
    story.append(tbl)

    doc.build(story)
