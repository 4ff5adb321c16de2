#!/usr/bin/env python3
"""CLI entrypoint that runs one trust audit through the AuditManager."""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys

from dotenv import load_dotenv

# Ensure project root is on PYTHONPATH
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from core.audit_manager import AuditFailedError, AuditManager
from scoring.reconciler import generate_consistency_report
from scoring.trust_calculator import get_adjustments_summary, get_risk_level_details
from utils.deadline import Deadline

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Audit a project website and print its trust score")
    parser.add_argument("url", help="Project website (http or https)")
    parser.add_argument("--deadline", type=float, help="Overall audit deadline in seconds")
    parser.add_argument("--max-retries", type=int, help="Outer fetch attempts for the main page")
    parser.add_argument("--no-deep-crawl", action="store_true", help="Only analyze the main page")
    parser.add_argument("--summary", action="store_true", help="Print a text summary instead of JSON")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    return parser


def _print_summary(report) -> None:
    score = report.trust_score
    risk = get_risk_level_details(score.final_score)
    print(f"Trust score for {report.url}: {score.final_score}/100 ({risk['level']})")
    print(risk['description'])
    print(f"Confidence: {score.confidence}/100, base score {score.base_score}")
    print(get_adjustments_summary(score.adjustments)['summary'])
    for adjustment in score.adjustments:
        print(f"  {adjustment.adjustment:+g}  {adjustment.reason}")
    print()
    print(generate_consistency_report(report.consistency))


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    load_dotenv(os.path.join(PROJECT_ROOT, '.env'))
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="%(asctime)s [%(levelname)s] %(message)s")

    overrides = {}
    if args.no_deep_crawl:
        overrides['deep_crawl_enabled'] = False
    if args.max_retries is not None:
        overrides['max_retries'] = args.max_retries

    with AuditManager(settings=overrides) as manager:
        deadline = Deadline(args.deadline) if args.deadline else None
        try:
            report = manager.run_audit(args.url, deadline=deadline)
        except AuditFailedError as e:
            print(e.user_message(), file=sys.stderr)
            return 1

    if args.summary:
        _print_summary(report)
    else:
        print(json.dumps(report.to_dict(), indent=2, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
