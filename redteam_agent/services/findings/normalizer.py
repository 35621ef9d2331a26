from __future__ import annotations

from typing import Iterable, List

from .fingerprint import generate_fingerprint, generate_id
from .types import MAX_EVIDENCE_LENGTH, Finding, RawFinding


def finding_fingerprint(raw: RawFinding) -> str:
    # Line numbers and evidence are left out so the fingerprint survives churn.
    return generate_fingerprint(
        raw.tool.value,
        raw.category.value,
        raw.location.path,
        raw.title,
    )


def normalize_finding(raw: RawFinding) -> Finding:
    fingerprint = finding_fingerprint(raw)
    return Finding(
        id=generate_id(fingerprint),
        fingerprint=fingerprint,
        raw_id=raw.raw_id,
        title=raw.title,
        severity=raw.severity,
        confidence=raw.confidence,
        tool=raw.tool,
        category=raw.category,
        location=raw.location,
        evidence=raw.evidence[:MAX_EVIDENCE_LENGTH],
        remediation=raw.remediation,
        references=list(raw.references),
    )


def normalize(raw_findings: Iterable[RawFinding]) -> List[Finding]:
    return [normalize_finding(raw) for raw in raw_findings]
