from __future__ import annotations

import re
from typing import Optional

from .types import Category, Finding, Tool

FINGERPRINT_PREFIX = "<!-- redteam-fingerprint:"
FINGERPRINT_SUFFIX = " -->"
FINGERPRINT_REGEX = re.compile(r"<!-- redteam-fingerprint:([a-f0-9]{64}) -->")


def fingerprint_marker(fingerprint: str) -> str:
    return f"{FINGERPRINT_PREFIX}{fingerprint}{FINGERPRINT_SUFFIX}"


def extract_fingerprint(body: Optional[str]) -> Optional[str]:
    match = FINGERPRINT_REGEX.search(body or "")
    if match is None:
        return None
    return match.group(1)


def mask_secret(value: str) -> str:
    if len(value) <= 8:
        return "*" * len(value)
    return value[:4] + "*" * (len(value) - 8) + value[-4:]


def build_issue_title(finding: Finding) -> str:
    return f"[{finding.severity.value.upper()}] {finding.title}"


def build_issue_body(finding: Finding) -> str:
    # The marker must stay on its own line; reconciliation depends on it.
    evidence = finding.evidence
    # Planner evidence is prose about match counts, never the matched value.
    if finding.category == Category.secret and finding.tool != Tool.llm_planner:
        evidence = mask_secret(evidence)
    if finding.references:
        refs = "\n".join(f"- {ref}" for ref in finding.references)
    else:
        refs = "_None_"

    lines = [
        fingerprint_marker(finding.fingerprint),
        "",
        f"## {finding.title}",
        "",
        "| Field | Value |",
        "|-------|-------|",
        f"| **Severity** | `{finding.severity.value}` |",
        f"| **Confidence** | `{finding.confidence.value}` |",
        f"| **Tool** | `{finding.tool.value}` |",
        f"| **Category** | `{finding.category.value}` |",
        f"| **Location** | `{finding.location.display()}` |",
        "",
        "### Evidence",
        "",
        "```",
        evidence,
        "```",
        "",
        "### Remediation",
        "",
        finding.remediation,
        "",
        "### References",
        "",
        refs,
        "",
        "---",
        f"*Filed by RedTeam Agent • Finding ID: `{finding.id}` • "
        f"Fingerprint: `{finding.fingerprint[:12]}`*",
        "",
    ]
    return "\n".join(lines)


AUTO_CLOSE_COMMENT = (
    "**Auto-closed by RedTeam Agent**\n\n"
    "This finding is no longer detected in the latest scan. "
    "If this was closed in error, please reopen."
)
