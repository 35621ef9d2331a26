from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

import pytest

from redteam_agent.integrations.github_client import GitHubError
from redteam_agent.services.findings.types import (
    Category,
    Confidence,
    LineRange,
    Location,
    RawFinding,
    Severity,
    Tool,
)


class FakeTracker:
    """In-memory stand-in for the GitHub issues API."""

    def __init__(self, issues: Optional[List[Dict[str, Any]]] = None):
        self.issues: List[Dict[str, Any]] = list(issues or [])
        self.created: List[Dict[str, Any]] = []
        self.comments: List[tuple] = []
        self.state_updates: List[tuple] = []
        self.labels: Dict[str, str] = {}
        self.fail_titles: set = set()
        self.list_calls: List[List[str]] = []
        self._next_number = 100

    def issue_url(self, number: int) -> str:
        return f"https://github.com/acme/app/issues/{number}"

    async def iter_open_issues(self, labels: Sequence[str]):
        self.list_calls.append(list(labels))
        for issue in list(self.issues):
            if issue.get("state", "open") != "open":
                continue
            if all(label in issue.get("labels", []) for label in labels):
                yield issue

    async def create_issue(self, *, title, body, labels, assignees):  # noqa: ANN001
        if title in self.fail_titles:
            raise GitHubError("boom", status_code=502)
        self._next_number += 1
        issue = {
            "number": self._next_number,
            "title": title,
            "body": body,
            "labels": list(labels),
            "assignees": list(assignees),
            "state": "open",
            "html_url": self.issue_url(self._next_number),
        }
        self.issues.append(issue)
        self.created.append(issue)
        return issue

    async def update_issue_state(self, number, *, state, state_reason=None):  # noqa: ANN001
        self.state_updates.append((number, state, state_reason))
        for issue in self.issues:
            if issue["number"] == number:
                issue["state"] = state

    async def create_comment(self, number, body):  # noqa: ANN001
        self.comments.append((number, body))

    async def ensure_label(self, name, color, description):  # noqa: ANN001
        if name in self.labels:
            return False
        self.labels[name] = color
        return True


@pytest.fixture
def fake_tracker():
    return FakeTracker()


@pytest.fixture
def make_raw():
    def _make(
        title: str = "Potential secret detected: aws-access-key",
        *,
        severity: Severity = Severity.high,
        tool: Tool = Tool.secret_detection,
        category: Category = Category.secret,
        path: str = "src/config.js",
        line: Optional[int] = 1,
        evidence: str = "AKIA************MPLE",
        raw_id: Optional[str] = None,
    ) -> RawFinding:
        return RawFinding(
            raw_id=raw_id or f"{tool.value}-{path}-{line}",
            title=title,
            severity=severity,
            confidence=Confidence.medium,
            tool=tool,
            category=category,
            location=Location(
                path=path, lines=LineRange(line, line) if line is not None else None
            ),
            evidence=evidence,
            remediation="Rotate the credential.",
            references=["https://owasp.org/"],
        )

    return _make


@pytest.fixture
def tracker_factory():
    return FakeTracker


@pytest.fixture
def hypothesis_data():
    def _make(**overrides: Any) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": "HYPO-001",
            "title": "SQL injection in user lookup",
            "category": "injection",
            "risk": "high",
            "confidence": "medium",
            "rationale": "queryUser builds SQL with `\"SELECT * FROM users WHERE id = '\" + id`.",
            "evidence_to_collect": "String-concatenated SQL reaching the database driver.",
            "safe_test_plan": "grep src/db.ts for concatenated SELECT statements.",
            "likely_locations": ["src/db.ts:queryUser"],
            "references": ["CWE-89"],
        }
        data.update(overrides)
        return data

    return _make
