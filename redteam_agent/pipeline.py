from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from .config import RedTeamSettings
from .integrations.github_client import GitHubClient, IssueTracker
from .services.findings.dedup import deduplicate
from .services.findings.issue_planner import process_issues
from .services.findings.labels import control_labels, ensure_labels
from .services.findings.normalizer import normalize
from .services.findings.types import DedupResult, Finding, IssueResult, RawFinding
from .services.intelligence.hypothesis_findings import confirm_hypotheses
from .services.intelligence.llm_service import LLMProvider, get_llm_provider
from .services.intelligence.planner import HypothesisPlanner
from .services.scanner import Scanner, default_scanners, run_scanners

logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    findings: List[Finding]
    dedup: Optional[DedupResult] = None
    issues: List[IssueResult] = field(default_factory=list)
    hypotheses_generated: int = 0
    hypotheses_confirmed: int = 0

    @property
    def issues_enabled(self) -> bool:
        return self.dedup is not None


def build_tracker(settings: RedTeamSettings) -> GitHubClient:
    owner, repo = settings.owner_and_repo
    return GitHubClient(
        token=settings.github_token,
        owner=owner,
        repo=repo,
        api_base=settings.github_api_base,
    )


async def run_planner(
    settings: RedTeamSettings, provider: Optional[LLMProvider]
) -> Tuple[int, List[RawFinding]]:
    """Generate hypotheses and return (generated, confirmed findings)."""
    planner = HypothesisPlanner(
        provider or get_llm_provider(settings.planner), settings.planner
    )
    hypotheses = await planner.generate_hypotheses(settings.repo_path)
    if not hypotheses:
        return 0, []

    confirmed = await confirm_hypotheses(
        hypotheses,
        settings.repo_path,
        dynamic_target=settings.planner.dynamic_target,
        allowlist=settings.planner.target_allowlist,
    )
    logger.info(
        "LLM planner: hypotheses confirmed",
        extra={"generated": len(hypotheses), "confirmed": len(confirmed)},
    )
    return len(hypotheses), confirmed


async def run_pipeline(
    settings: RedTeamSettings,
    *,
    scanners: Optional[Sequence[Scanner]] = None,
    tracker: Optional[IssueTracker] = None,
    provider: Optional[LLMProvider] = None,
) -> PipelineResult:
    """Scan, confirm hypotheses, normalize and reconcile against open issues.

    When issue filing is enabled and no tracker is given, a GitHub client is
    built from ``settings`` before anything runs, so a missing token fails
    the run up front with ``ValueError``.
    """
    owned_client: Optional[GitHubClient] = None
    if settings.issues.enabled and tracker is None:
        owned_client = build_tracker(settings)
        tracker = owned_client

    try:
        raw_findings = await run_scanners(
            settings, default_scanners() if scanners is None else scanners
        )
        generated, confirmed = await run_planner(settings, provider)
        raw_findings.extend(confirmed)

        findings = normalize(raw_findings)
        logger.info("Normalized findings", extra={"count": len(findings)})

        result = PipelineResult(
            findings=findings,
            hypotheses_generated=generated,
            hypotheses_confirmed=len(confirmed),
        )
        if not settings.issues.enabled or tracker is None:
            logger.info("Issue creation disabled", extra={"findings": len(findings)})
            return result

        result.dedup = await deduplicate(
            findings, tracker, control_labels(settings.issues)
        )
        logger.info(
            "Reconciled findings with open issues",
            extra={
                "new": len(result.dedup.new_findings),
                "existing": len(result.dedup.existing_findings),
                "resolved": len(result.dedup.resolved_issue_ids),
            },
        )
        await ensure_labels(tracker, settings.issues)
        result.issues = await process_issues(result.dedup, tracker, settings.issues)
        return result
    finally:
        if owned_client is not None:
            await owned_client.aclose()
