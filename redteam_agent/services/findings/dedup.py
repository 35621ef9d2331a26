from __future__ import annotations

import logging
from typing import Dict, List, Mapping, Sequence

from ...integrations.github_client import IssueTracker
from .issue_body import extract_fingerprint
from .types import DedupResult, ExistingFinding, Finding

logger = logging.getLogger(__name__)


async def fetch_issue_fingerprints(
    tracker: IssueTracker, labels: Sequence[str]
) -> Dict[str, int]:
    """Map fingerprint -> issue number for open issues carrying ``labels``."""
    fingerprints: Dict[str, int] = {}
    async for issue in tracker.iter_open_issues(labels):
        number = issue.get("number")
        if not isinstance(number, int):
            continue
        body = issue.get("body")
        fingerprint = extract_fingerprint(body if isinstance(body, str) else None)
        if fingerprint is None:
            continue
        if fingerprint in fingerprints:
            logger.warning(
                "Open issues #%d and #%d share fingerprint %s; keeping #%d",
                fingerprints[fingerprint],
                number,
                fingerprint[:12],
                fingerprints[fingerprint],
            )
            continue
        fingerprints[fingerprint] = number

    logger.info("Fetched existing issues", extra={"count": len(fingerprints)})
    return fingerprints


def reconcile(
    findings: Sequence[Finding], existing_issues: Mapping[str, int]
) -> DedupResult:
    current_fingerprints = {finding.fingerprint for finding in findings}

    new_findings: List[Finding] = []
    existing_findings: List[ExistingFinding] = []
    for finding in findings:
        issue_number = existing_issues.get(finding.fingerprint)
        if issue_number is None:
            new_findings.append(finding)
        else:
            existing_findings.append(ExistingFinding(finding, issue_number))

    resolved_issue_ids = [
        issue_number
        for fingerprint, issue_number in existing_issues.items()
        if fingerprint not in current_fingerprints
    ]

    logger.info(
        "Dedup complete",
        extra={
            "total_raw": len(findings),
            "new": len(new_findings),
            "existing": len(existing_findings),
            "resolved": len(resolved_issue_ids),
        },
    )
    return DedupResult(
        new_findings=new_findings,
        existing_findings=existing_findings,
        resolved_issue_ids=resolved_issue_ids,
        total_raw=len(findings),
    )


async def deduplicate(
    findings: Sequence[Finding],
    tracker: IssueTracker,
    labels: Sequence[str],
) -> DedupResult:
    existing_issues = await fetch_issue_fingerprints(tracker, labels)
    return reconcile(findings, existing_issues)
