from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from ..findings.types import (
    Category,
    Confidence,
    Location,
    RawFinding,
    Severity,
    Tool,
)
from .checks import merge_check_results, run_dynamic_checks, run_static_checks
from .hypotheses import AttackHypothesis, HypothesisCheckResult

logger = logging.getLogger(__name__)

CATEGORY_MAP = {
    "injection": Category.code,
    "auth-bypass": Category.http,
    "info-disclosure": Category.http,
    "misconfiguration": Category.http,
    "secret-leak": Category.secret,
    "dependency": Category.dependency,
}


def map_category(category: str) -> Category:
    return CATEGORY_MAP.get(category, Category.code)


def hypothesis_to_finding(
    hypothesis: AttackHypothesis, check_result: HypothesisCheckResult
) -> Optional[RawFinding]:
    # No evidence, no finding, no issue.
    if not check_result.evidence_found:
        return None

    if check_result.locations:
        location_path = check_result.locations[0]
    else:
        location_path = hypothesis.likely_locations[0].split(":", 1)[0]

    return RawFinding(
        raw_id=f"llm-planner-{hypothesis.id}",
        title=hypothesis.title,
        severity=Severity(hypothesis.risk),
        confidence=Confidence(hypothesis.confidence),
        tool=Tool.llm_planner,
        category=map_category(hypothesis.category),
        location=Location(path=location_path),
        evidence=build_evidence_block(hypothesis, check_result),
        remediation=build_remediation(hypothesis),
        references=list(hypothesis.references),
    )


def build_evidence_block(
    hypothesis: AttackHypothesis, check_result: HypothesisCheckResult
) -> str:
    return "\n".join(
        [
            f"**Hypothesis:** {hypothesis.title}",
            f"**Category:** {hypothesis.category}",
            f"**Confidence:** {hypothesis.confidence}",
            "",
            "**Why the code suggests this:**",
            hypothesis.rationale,
            "",
            "**Evidence collected:**",
            check_result.details,
            "",
            f"**Files inspected:** {', '.join(check_result.locations) or 'N/A'}",
            "",
            "**Safe reproduction steps:**",
            hypothesis.safe_test_plan,
        ]
    )


def build_remediation(hypothesis: AttackHypothesis) -> str:
    text = "Review the identified code locations and apply appropriate security controls."
    if hypothesis.references:
        text += f"\n\nReferences: {', '.join(hypothesis.references)}"
    return text


async def confirm_hypotheses(
    hypotheses: Iterable[AttackHypothesis],
    repo_root: Path | str,
    *,
    dynamic_target: Optional[str] = None,
    allowlist: Sequence[str] = (),
) -> List[RawFinding]:
    """Run deterministic checks and keep only hypotheses with evidence."""
    confirmed: List[RawFinding] = []
    for hypothesis in hypotheses:
        result = run_static_checks(hypothesis, repo_root)
        if dynamic_target:
            dynamic = await run_dynamic_checks(hypothesis, dynamic_target, allowlist)
            result = merge_check_results(result, dynamic)

        finding = hypothesis_to_finding(hypothesis, result)
        if finding is None:
            logger.info("Hypothesis %s not confirmed, discarding", hypothesis.id)
            continue
        logger.info("Hypothesis %s confirmed", hypothesis.id)
        confirmed.append(finding)
    return confirmed
