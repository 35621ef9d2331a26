#!/usr/bin/env python3
"""CLI command to scan a repository and file findings as GitHub issues.

Usage:
    redteam-agent [--config redteam.config.json] [--no-issues] [--json] [--demo]

Exit codes:
    0 - Scan completed
    1 - Unexpected fatal error
    2 - Configuration error (bad config file, missing GitHub token, etc.)
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from dataclasses import asdict
from typing import Optional

from ..config import DEMO_ISSUE_LABEL, RedTeamSettings, load_settings
from ..integrations.github_client import GitHubClient
from ..logging_config import configure_logging, truncate_error
from ..pipeline import PipelineResult, build_tracker, run_pipeline

logger = logging.getLogger(__name__)


def render_json(result: PipelineResult) -> str:
    # Issue results when filing ran, plain findings otherwise.
    if result.issues_enabled:
        payload = [asdict(item) for item in result.issues]
    else:
        payload = [asdict(item) for item in result.findings]
    return json.dumps(payload, indent=2, default=str)


def render_summary(result: PipelineResult) -> str:
    lines = [f"Findings: {len(result.findings)}"]
    if result.hypotheses_generated:
        lines.append(
            f"Hypotheses: {result.hypotheses_generated} generated, "
            f"{result.hypotheses_confirmed} confirmed"
        )
    if not result.issues_enabled:
        for finding in result.findings[:10]:
            lines.append(
                f"  [{finding.severity.value.upper()}] {finding.title} "
                f"({finding.location.display()})"
            )
        if len(result.findings) > 10:
            lines.append(f"  ... and {len(result.findings) - 10} more")
        return "\n".join(lines)

    for item in result.issues:
        lines.append(f"  Issue {item.action.value}: #{item.issue_number} {item.issue_url}")
    return "\n".join(lines)


async def _scan(
    settings: RedTeamSettings, tracker: Optional[GitHubClient]
) -> PipelineResult:
    try:
        return await run_pipeline(settings, tracker=tracker)
    finally:
        if tracker is not None:
            await tracker.aclose()


def main() -> int:
    """Main CLI entrypoint."""
    parser = argparse.ArgumentParser(
        description="Scan a repository and file security findings as GitHub issues"
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to JSON config file (default: redteam.config.json)",
    )
    parser.add_argument(
        "--no-issues",
        action="store_true",
        help="Only scan and report findings, do not touch GitHub issues",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Output full JSON result instead of summary",
    )
    parser.add_argument(
        "--demo",
        action="store_true",
        help=f"Scope filed issues to the '{DEMO_ISSUE_LABEL}' label",
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv("LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        type=str.upper,
        help="Log level (default: LOG_LEVEL or INFO)",
    )

    args = parser.parse_args()
    configure_logging(args.log_level)

    try:
        settings = load_settings(args.config)
    except (OSError, ValueError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 2

    if args.demo and not settings.issues.batch_label:
        settings.issues.batch_label = DEMO_ISSUE_LABEL
    if args.no_issues:
        settings.issues.enabled = False

    tracker: Optional[GitHubClient] = None
    if settings.issues.enabled:
        try:
            tracker = build_tracker(settings)
        except ValueError as exc:
            print(f"ERROR: {exc}", file=sys.stderr)
            return 2

    try:
        result = asyncio.run(_scan(settings, tracker))
    except Exception as exc:
        logger.exception("Fatal error", extra={"error": truncate_error(exc)})
        return 1

    if args.json:
        print(render_json(result))
    else:
        print(render_summary(result))
    return 0


if __name__ == "__main__":
    sys.exit(main())
