from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List

from ...config import IssueSettings
from ...integrations.github_client import IssueTracker
from .types import Finding

logger = logging.getLogger(__name__)

CONTROL_LABEL = "redteam-agent"


@dataclass(frozen=True)
class LabelSpec:
    name: str
    color: str
    description: str


REQUIRED_LABELS: List[LabelSpec] = [
    LabelSpec("security", "d73a4a", "Security finding"),
    LabelSpec(CONTROL_LABEL, "5319e7", "Filed by RedTeam Agent"),
    LabelSpec("severity:critical", "b60205", "Critical severity"),
    LabelSpec("severity:high", "d93f0b", "High severity"),
    LabelSpec("severity:medium", "fbca04", "Medium severity"),
    LabelSpec("severity:low", "0e8a16", "Low severity"),
]

EXTRA_LABEL_COLOR = "c5def5"
BATCH_LABEL_COLOR = "e4e669"


def control_labels(issues: IssueSettings) -> List[str]:
    """Label filter used to list issues this agent owns."""
    labels = [CONTROL_LABEL]
    if issues.batch_label:
        labels.append(issues.batch_label)
    return labels


def labels_for_finding(finding: Finding, issues: IssueSettings) -> List[str]:
    labels = ["security", CONTROL_LABEL, f"severity:{finding.severity.value}"]
    labels.extend(issues.extra_labels)
    if issues.batch_label:
        labels.append(issues.batch_label)
    return labels


async def ensure_labels(tracker: IssueTracker, issues: IssueSettings) -> None:
    wanted = list(REQUIRED_LABELS)
    wanted.extend(
        LabelSpec(name, EXTRA_LABEL_COLOR, "Custom RedTeam label")
        for name in issues.extra_labels
    )
    if issues.batch_label:
        wanted.append(
            LabelSpec(
                issues.batch_label,
                BATCH_LABEL_COLOR,
                "Batch/demo run - safe to bulk-close",
            )
        )

    for label in wanted:
        await tracker.ensure_label(label.name, label.color, label.description)
