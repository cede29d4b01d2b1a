from __future__ import annotations
import json
from typing import Any, Dict

from ..errors import RenderError
from ..scan.results import ScanResult, scan_result_from_dict, scan_result_to_dict

REQUIRED_KEYS = ("subscription_id", "scanned_at", "summary", "vaults", "errors")


def render_json(result: ScanResult) -> str:
    return json.dumps(scan_result_to_dict(result), indent=2, sort_keys=True, default=str, ensure_ascii=False)


def load_report(text: str) -> Dict[str, Any]:
    """Parse and shape-check a JSON report. Raises RenderError."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise RenderError(f"Invalid JSON report: {e.msg} (line {e.lineno} column {e.colno})") from e
    if not isinstance(data, dict):
        raise RenderError("Invalid JSON report: top level is not an object")
    missing = [k for k in REQUIRED_KEYS if k not in data]
    if missing:
        raise RenderError(f"Invalid JSON report: missing {', '.join(missing)}")
    if not isinstance(data["vaults"], list):
        raise RenderError("Invalid JSON report: 'vaults' is not a list")
    return data


def parse_scan_result(text: str) -> ScanResult:
    data = load_report(text)
    try:
        return scan_result_from_dict(data)
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        raise RenderError(f"Invalid JSON report: {type(e).__name__}: {e}") from e
