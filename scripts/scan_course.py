#!/usr/bin/env python3
"""
Course Scan Script
Scans every scannable resource of a course in this process, without Celery

Usage:
    python scripts/scan_course.py course_id [--types wiki_page assignment] [--stale-only]

Example:
    python scripts/scan_course.py 42 --types wiki_page
"""

import argparse
import sys

from app.features.accessibility.exceptions import AccessibilityScanError
from app.features.accessibility.services.orchestrator import ScanOrchestrator
from app.features.accessibility.services.rule_engine import shared_rule_engine
from app.platform.config import settings
from app.platform.db.session import SessionLocal
from app.platform.logger import get_logger

logger = get_logger("scan_course")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Run accessibility scans for a course")
    parser.add_argument("course_id", help="Course to scan")
    parser.add_argument(
        "--types",
        nargs="+",
        dest="resource_types",
        help="Resource types to scan (wiki_page, assignment, attachment)",
    )
    parser.add_argument(
        "--stale-only",
        action="store_true",
        help="Only rescan resources edited since their last scan",
    )
    args = parser.parse_args(argv)

    orchestrator = ScanOrchestrator(SessionLocal, engine=shared_rule_engine())

    if args.stale_only:
        scan_ids = orchestrator.requeue_stale_scans(args.course_id)
        results = {scan_id: orchestrator.process_scan(scan_id) for scan_id in scan_ids}
    else:
        try:
            results = orchestrator.run_course_scan(
                args.course_id,
                resource_types=args.resource_types,
                scanning_enabled=settings.A11Y_SCANNING_ENABLED,
            )
        except (AccessibilityScanError, ValueError) as e:
            logger.error(f"Course scan failed: {e}")
            return 1

    failed = 0
    for scan_id, state in results.items():
        state_value = state.value if state else "missing"
        if state_value != "completed":
            failed += 1
        print(f"{scan_id}  {state_value}")

    print(f"\n✅ Scanned {len(results)} resources ({failed} not completed)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
