from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class Severity(str, Enum):
    critical = "critical"
    high = "high"
    medium = "medium"
    low = "low"


class Confidence(str, Enum):
    high = "high"
    medium = "medium"
    low = "low"


class Tool(str, Enum):
    npm_audit = "npm-audit"
    secret_detection = "secret-detection"
    http_scan = "http-scan"
    llm_planner = "llm-planner"


class Category(str, Enum):
    dependency = "dependency"
    secret = "secret"
    http = "http"
    code = "code"


class IssueAction(str, Enum):
    created = "created"
    updated = "updated"
    skipped = "skipped"
    closed = "closed"


# Index is the filing priority: lower files first under a rate cap.
SEVERITY_ORDER = {
    Severity.critical: 0,
    Severity.high: 1,
    Severity.medium: 2,
    Severity.low: 3,
}

MAX_EVIDENCE_LENGTH = 1024


@dataclass(frozen=True)
class LineRange:
    start: int
    end: int


@dataclass(frozen=True)
class Location:
    """File path relative to the repo root, or a URL for HTTP findings.

    ``lines`` is absent for findings that are not line addressable
    (dependencies, URLs, model-derived findings).
    """

    path: str
    lines: Optional[LineRange] = None

    def display(self) -> str:
        if self.lines is None:
            return self.path
        return f"{self.path}:{self.lines.start}"


@dataclass(frozen=True)
class RawFinding:
    raw_id: str
    title: str
    severity: Severity
    confidence: Confidence
    tool: Tool
    category: Category
    location: Location
    evidence: str
    remediation: str
    references: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class Finding:
    id: str
    fingerprint: str
    raw_id: str
    title: str
    severity: Severity
    confidence: Confidence
    tool: Tool
    category: Category
    location: Location
    evidence: str
    remediation: str
    references: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class ExistingFinding:
    finding: Finding
    issue_number: int


@dataclass
class DedupResult:
    new_findings: List[Finding]
    existing_findings: List[ExistingFinding]
    resolved_issue_ids: List[int]
    total_raw: int


@dataclass
class IssueResult:
    issue_number: int
    issue_url: str
    action: IssueAction
    finding: Optional[Finding] = None
