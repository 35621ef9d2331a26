from __future__ import annotations

import logging
from typing import Dict, Iterable, List

import httpx

from ...config import IssueSettings
from ...integrations.github_client import GitHubError, IssueTracker
from ...logging_config import truncate_error
from .issue_body import AUTO_CLOSE_COMMENT, build_issue_body, build_issue_title
from .labels import labels_for_finding
from .types import (
    SEVERITY_ORDER,
    DedupResult,
    Finding,
    IssueAction,
    IssueResult,
)

logger = logging.getLogger(__name__)

TRACKER_ERRORS = (httpx.HTTPError, GitHubError)


def sort_by_severity(findings: Iterable[Finding]) -> List[Finding]:
    # sorted() is stable, so equal severities keep scan order.
    return sorted(findings, key=lambda finding: SEVERITY_ORDER[finding.severity])


async def create_issue_for_finding(
    tracker: IssueTracker, finding: Finding, issues: IssueSettings
) -> IssueResult:
    data = await tracker.create_issue(
        title=build_issue_title(finding),
        body=build_issue_body(finding),
        labels=labels_for_finding(finding, issues),
        assignees=issues.assignees,
    )
    number = data["number"]
    logger.info(
        "Created issue #%d",
        number,
        extra={"fingerprint": finding.fingerprint[:12]},
    )
    return IssueResult(
        issue_number=number,
        issue_url=data.get("html_url") or tracker.issue_url(number),
        action=IssueAction.created,
        finding=finding,
    )


async def close_resolved_issue(tracker: IssueTracker, issue_number: int) -> IssueResult:
    await tracker.create_comment(issue_number, AUTO_CLOSE_COMMENT)
    await tracker.update_issue_state(
        issue_number, state="closed", state_reason="completed"
    )
    logger.info("Closed resolved issue #%d", issue_number)
    return IssueResult(
        issue_number=issue_number,
        issue_url=tracker.issue_url(issue_number),
        action=IssueAction.closed,
    )


async def process_issues(
    dedup: DedupResult,
    tracker: IssueTracker,
    issues: IssueSettings,
) -> List[IssueResult]:
    """Create, skip and close issues for one reconciled scan.

    At most ``issues.max_per_run`` issues are created, most severe first.
    Findings past the cap are left alone: they were never filed, so the
    next run sees them as new again. A failed create or close is logged and
    the remaining items still run.
    """
    results: List[IssueResult] = []

    pending = sort_by_severity(dedup.new_findings)
    created = 0
    # Repeated matches of one fact share a fingerprint; file it once.
    filed: Dict[str, IssueResult] = {}
    for index, finding in enumerate(pending):
        first = filed.get(finding.fingerprint)
        if first is not None:
            results.append(
                IssueResult(
                    issue_number=first.issue_number,
                    issue_url=first.issue_url,
                    action=IssueAction.skipped,
                    finding=finding,
                )
            )
            continue
        if created >= issues.max_per_run:
            logger.warning(
                "Reached max_per_run limit, deferring remaining findings",
                extra={
                    "max_per_run": issues.max_per_run,
                    "deferred": len(pending) - index,
                },
            )
            break
        try:
            result = await create_issue_for_finding(tracker, finding, issues)
        except TRACKER_ERRORS as exc:
            logger.error(
                "Failed to create issue",
                extra={
                    "fingerprint": finding.fingerprint[:12],
                    "error": truncate_error(exc),
                },
            )
            continue
        results.append(result)
        filed[finding.fingerprint] = result
        created += 1

    for existing in dedup.existing_findings:
        results.append(
            IssueResult(
                issue_number=existing.issue_number,
                issue_url=tracker.issue_url(existing.issue_number),
                action=IssueAction.skipped,
                finding=existing.finding,
            )
        )

    if issues.auto_close:
        for issue_number in dedup.resolved_issue_ids:
            try:
                results.append(await close_resolved_issue(tracker, issue_number))
            except TRACKER_ERRORS as exc:
                logger.error(
                    "Failed to close issue #%d",
                    issue_number,
                    extra={"error": truncate_error(exc)},
                )

    return results
