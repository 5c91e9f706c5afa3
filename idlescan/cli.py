"""
Command line entry point.

Example:
  idlescan scan --region us-east-1 --rules rules.yaml --json
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Sequence

import structlog
from pydantic import ValidationError

from idlescan.modules.detection.adapters.aws.detector import AWSScanner
from idlescan.modules.detection.domain.rules import load_rules
from idlescan.modules.detection.domain.service import ScanReport
from idlescan.modules.detection.domain.store import SQLAlchemyDetectionStore
from idlescan.shared.core.config import get_settings
from idlescan.shared.core.exceptions import ConfigurationError, IdleScanException
from idlescan.shared.core.logging import setup_logging
from idlescan.shared.db.session import dispose_engine, get_engine, get_session_maker

logger = structlog.get_logger()


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    settings = get_settings()
    parser = argparse.ArgumentParser(
        prog="idlescan",
        description="Detect underutilized and stale AWS resources.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    scan = sub.add_parser("scan", help="Run one scan cycle")
    scan.add_argument(
        "--region",
        dest="regions",
        action="append",
        default=None,
        help="Region to scan (repeatable). Defaults to AWS_DEFAULT_REGION.",
    )
    scan.add_argument(
        "--rules",
        dest="rules",
        default=settings.DETECTION_RULES_PATH,
        help="Path to a detection rules YAML document.",
    )
    scan.add_argument(
        "--skip-iam",
        dest="skip_iam",
        action="store_true",
        help="Do not check IAM access key staleness.",
    )
    scan.add_argument(
        "--iam-threshold-days",
        dest="iam_threshold_days",
        type=int,
        default=settings.IAM_KEY_THRESHOLD_DAYS,
    )
    scan.add_argument(
        "--iam-operator",
        dest="iam_operator",
        default=settings.IAM_KEY_OPERATOR,
    )
    scan.add_argument(
        "--json",
        dest="as_json",
        action="store_true",
        help="Print the full report as JSON instead of a summary.",
    )
    return parser.parse_args(argv)


def _print_summary(report: ScanReport) -> None:
    print(f"\nRegion {report.region}: {'completed' if report.completed else 'INCOMPLETE'}")
    for outcome in report.outcomes:
        status = "ok" if outcome.completed else f"error: {outcome.error}"
        print(f"  - {outcome.kind}: {len(outcome.findings)} finding(s) [{status}]")
    print(f"  Monthly waste: ${report.total_monthly_waste:,.2f}")
    if report.credentials_error is not None:
        print(f"  IAM access keys: error: {report.credentials_error}")
    elif report.stale_credentials:
        print(f"  IAM access keys: {len(report.stale_credentials)} stale")


async def _scan(args: argparse.Namespace) -> int:
    settings = get_settings()
    rules = load_rules(args.rules)
    store = SQLAlchemyDetectionStore(get_engine(), get_session_maker())
    regions = args.regions or [settings.AWS_DEFAULT_REGION]

    reports: list[ScanReport] = []
    try:
        for index, region in enumerate(regions):
            scanner = AWSScanner(region=region, rules=rules, store=store)
            # IAM is global; one pass is enough for a multi-region run.
            reports.append(
                await scanner.scan(
                    include_iam=not args.skip_iam and index == 0,
                    iam_threshold_days=args.iam_threshold_days,
                    iam_operator=args.iam_operator,
                )
            )
    finally:
        await dispose_engine()

    if args.as_json:
        print(json.dumps([r.to_dict() for r in reports], indent=2))
    else:
        for report in reports:
            _print_summary(report)

    return 0 if all(r.completed for r in reports) else 1


def _load_settings() -> None:
    try:
        get_settings()
    except ValidationError as exc:
        raise ConfigurationError(
            "Invalid idlescan settings",
            details={"errors": [error["msg"] for error in exc.errors()]},
        ) from exc


def main(argv: Sequence[str] | None = None) -> int:
    try:
        _load_settings()
        setup_logging()
        args = _parse_args(argv)
        if args.command == "scan":
            return asyncio.run(_scan(args))
    except IdleScanException as exc:
        logger.error("idlescan_failed", error=exc.message, code=exc.code, details=exc.details)
        return 2
    return 1


if __name__ == "__main__":
    sys.exit(main())
