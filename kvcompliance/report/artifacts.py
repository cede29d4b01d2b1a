"""Artifact layout on disk and the summary built back from stored JSON reports."""
from __future__ import annotations
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from .csv_report import render_csv, vault_rows
from .html_report import render_html, render_html_table
from .json_report import parse_scan_result, render_json
from .pdf_report import build_pdf
from .script_report import render_remediation_script
from ..errors import RenderError
from ..scan.results import ScanResult

LOGGER = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y%m%d-%H%M%S"
REPORT_PREFIX = "kv-compliance"


def timestamp_token(when: Optional[datetime] = None) -> str:
    return (when or datetime.now(timezone.utc)).strftime(TIMESTAMP_FORMAT)


def render(result: ScanResult, now: Optional[datetime] = None, expiration_days: Optional[int] = None) -> Dict[str, str]:
    return {
        "json": render_json(result),
        "html": render_html(result),
        "csv": render_csv(vault_rows(result)),
        "remediation_script": render_remediation_script(result, now, expiration_days),
    }


def _write(path: Path, data: str) -> str:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(data, encoding="utf-8")
    return str(path)


def write_artifacts(
    result: ScanResult,
    root: str = "artifacts",
    now: Optional[datetime] = None,
    *,
    pdf: bool = True,
    expiration_days: Optional[int] = None,
) -> Dict[str, str]:
    """Write every report format under `root` and return their paths by format."""
    now = now or datetime.now(timezone.utc)
    base = Path(root)
    token = timestamp_token(now)
    rendered = render(result, now, expiration_days)
    paths = {
        "json": _write(base / "json" / f"{REPORT_PREFIX}-{token}.json", rendered["json"]),
        "html": _write(base / "html" / f"{REPORT_PREFIX}-{token}.html", rendered["html"]),
        "csv": _write(base / "csv" / f"{REPORT_PREFIX}-{token}.csv", rendered["csv"]),
        "remediation_script": _write(base / "scripts" / f"kv-remediation-{token}.sh", rendered["remediation_script"]),
    }
    if pdf:
        pdf_path = base / "pdf" / f"{REPORT_PREFIX}-{token}.pdf"
        pdf_path.parent.mkdir(parents=True, exist_ok=True)
        build_pdf(str(pdf_path), result)
        paths["pdf"] = str(pdf_path)
    for fmt, path in paths.items():
        LOGGER.info("Wrote %s report: %s", fmt, path)
    return paths


def build_artifact_summary(root: str = "artifacts") -> List[Dict[str, Any]]:
    """One entry per stored JSON report; unreadable reports become error entries."""
    entries: List[Dict[str, Any]] = []
    for path in sorted((Path(root) / "json").glob("*.json")):
        entry: Dict[str, Any] = {
            "file": path.name,
            "scanned_at": "",
            "subscription_id": "",
            "vaults": 0,
            "compliant_vaults": 0,
            "issues": 0,
            "error": "",
        }
        try:
            result = parse_scan_result(path.read_text(encoding="utf-8"))
            entry.update(
                scanned_at=result.scanned_at.isoformat() if result.scanned_at else "",
                subscription_id=result.subscription_id or "",
                vaults=result.summary.total_vaults,
                compliant_vaults=result.summary.compliant_vaults,
                issues=result.summary.total_issues,
            )
        except (RenderError, OSError, UnicodeDecodeError) as e:
            LOGGER.warning("Skipping unreadable report %s: %s", path, e)
            entry["error"] = str(e)
        entries.append(entry)
    return entries


def write_artifact_summary(root: str = "artifacts", now: Optional[datetime] = None) -> Dict[str, str]:
    entries = build_artifact_summary(root)
    token = timestamp_token(now)
    base = Path(root)
    return {
        "csv": _write(base / "csv" / f"artifact-summary-{token}.csv", render_csv(entries)),
        "html": _write(base / "html" / f"artifact-summary-{token}.html", render_html_table(entries, "Compliance report history")),
    }
