"""Command-line interface for the Key Vault compliance scanner."""
from __future__ import annotations

import argparse
import logging
from typing import Optional, Sequence

from . import runner
from .config import AUTH_MODES, load_settings
from .errors import SetupError
from .remediation.planner import MODE_AUTO_SAFE, MODE_FORCE_ALL, MODE_SCAN_ONLY
from .report.artifacts import write_artifact_summary, write_artifacts
from .report.console import print_summary
from .utils.logging_utils import configure_logging, exc_to_text

LOGGER = logging.getLogger(__name__)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    try:
        settings = load_settings()
    except SetupError as e:
        configure_logging(args.log_level or "INFO", args.log_file, args.log_format)
        LOGGER.error("%s", e)
        return 2
    configure_logging(args.log_level or settings.log_level, args.log_file, args.log_format)

    if args.command == "summarize":
        paths = write_artifact_summary(args.output_path or settings.artifacts_dir)
        for fmt, path in paths.items():
            print(f"{fmt}: {path}")
        return 0

    settings = settings.with_overrides(
        subscription_id=args.subscription,
        resource_group=args.resource_group,
        auth_mode=args.auth_mode,
        tenant_id=args.tenant_id,
        client_id=args.client_id,
        client_secret=args.client_secret,
        artifacts_dir=args.output_path,
    )
    try:
        settings.validate()
        result = runner.run_compliance(
            settings,
            mode=args.mode,
            dry_run=args.what_if,
            confirm=_confirm,
            vault_names=args.vault or None,
            require_vaults=args.require_vaults,
        )
    except SetupError as e:
        LOGGER.error("Setup failed: %s", e)
        LOGGER.debug(exc_to_text(e))
        return 2

    paths = write_artifacts(
        result,
        settings.artifacts_dir,
        result.scanned_at,
        pdf=not args.no_pdf,
        expiration_days=settings.expiration_days,
    )
    print_summary(result, paths)
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="kv-compliance", description="Scan Azure Key Vaults for compliance and remediate findings")
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--output-path", help="Artifacts root directory (default: artifacts)", default=None)
    common.add_argument("--log-level", help="Logging level (default: INFO)", default=None)
    common.add_argument("--log-file", help="Also write logs to this file", default=None)
    common.add_argument("--log-format", choices=("text", "json"), default="text")

    sub = parser.add_subparsers(dest="command", required=True)

    scan = sub.add_parser("scan", parents=[common], help="Scan vaults and write reports")
    scan.add_argument("--subscription", help="Subscription id (default: AZURE_SUBSCRIPTION_ID)", default=None)
    scan.add_argument("--resource-group", help="Limit the scan to one resource group", default=None)
    scan.add_argument("--vault", action="append", help="Scan only this vault (repeatable)", default=[])
    modes = scan.add_mutually_exclusive_group()
    modes.add_argument("--scan-only", dest="mode", action="store_const", const=MODE_SCAN_ONLY)
    modes.add_argument("--auto-safe", dest="mode", action="store_const", const=MODE_AUTO_SAFE,
                       help="Apply low-risk fixes (soft delete, purge protection)")
    modes.add_argument("--force-all", dest="mode", action="store_const", const=MODE_FORCE_ALL,
                       help="Apply every available fix, after confirmation")
    scan.set_defaults(mode=MODE_SCAN_ONLY)
    scan.add_argument("--what-if", action="store_true", help="Describe intended changes without applying them")
    scan.add_argument("--auth-mode", choices=AUTH_MODES, default=None)
    scan.add_argument("--tenant-id", default=None)
    scan.add_argument("--client-id", default=None)
    scan.add_argument("--client-secret", default=None)
    scan.add_argument("--require-vaults", action="store_true", help="Fail when no vault is in scope")
    scan.add_argument("--no-pdf", action="store_true", help="Skip the PDF report")

    sub.add_parser("summarize", parents=[common], help="Summarize stored JSON reports")
    return parser


def _confirm(prompt: str) -> bool:
    try:
        answer = input(f"{prompt} [y/N]: ")
    except EOFError:
        return False
    return answer.strip().lower() in ("y", "yes")


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
