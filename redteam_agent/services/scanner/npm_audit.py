from __future__ import annotations

import asyncio
import json
import logging
import subprocess
from pathlib import Path
from typing import Any, Dict, List

from ...config import RedTeamSettings
from ..findings.types import (
    SEVERITY_ORDER,
    Category,
    Confidence,
    Location,
    RawFinding,
    Severity,
    Tool,
)

logger = logging.getLogger(__name__)

SEVERITY_MAP = {
    "critical": Severity.critical,
    "high": Severity.high,
    "moderate": Severity.medium,
    "low": Severity.low,
    "info": Severity.low,
}

AUDIT_TIMEOUT_SECONDS = 120


class NpmAuditScanner:
    name = "npm-audit"

    def __init__(self, npm_path: str = "npm") -> None:
        self.npm_path = npm_path

    def is_available(self, settings: RedTeamSettings) -> bool:
        if not settings.scanners.npm_audit.enabled:
            return False
        return (settings.repo_path / "package.json").exists()

    async def scan(self, settings: RedTeamSettings) -> List[RawFinding]:
        output = await asyncio.to_thread(self._run_command, settings.repo_path)
        try:
            parsed = json.loads(output)
        except json.JSONDecodeError as exc:
            raise RuntimeError("npm audit returned invalid JSON output") from exc
        findings = self.parse_results(parsed, settings.scanners.npm_audit.min_severity)
        logger.info("npm audit complete", extra={"findings": len(findings)})
        return findings

    def _run_command(self, repo_path: Path) -> str:
        try:
            result = subprocess.run(
                [self.npm_path, "audit", "--json"],
                cwd=str(repo_path),
                capture_output=True,
                text=True,
                check=False,
                timeout=AUDIT_TIMEOUT_SECONDS,
            )
        except FileNotFoundError as exc:
            raise RuntimeError("npm is not installed or not in PATH") from exc
        except subprocess.TimeoutExpired as exc:
            raise RuntimeError("npm audit timed out") from exc

        # npm audit exits non-zero when vulnerabilities exist; stdout is still valid.
        stdout = result.stdout or ""
        if not stdout.strip():
            stderr = (result.stderr or "").strip()
            raise RuntimeError(f"npm audit produced no output: {stderr[:200]}")
        return stdout

    def parse_results(
        self, audit: Dict[str, Any], min_severity: Severity
    ) -> List[RawFinding]:
        findings: List[RawFinding] = []
        vulnerabilities = audit.get("vulnerabilities") if isinstance(audit, dict) else None
        if not isinstance(vulnerabilities, dict):
            return findings

        threshold = SEVERITY_ORDER[min_severity]
        for name, vuln in vulnerabilities.items():
            if not isinstance(vuln, dict):
                continue
            raw_severity = str(vuln.get("severity", "low")).lower()
            severity = SEVERITY_MAP.get(raw_severity, Severity.low)
            if SEVERITY_ORDER[severity] > threshold:
                continue

            advisory: Dict[str, Any] = {}
            for via in vuln.get("via") or []:
                # Entries are advisory objects or names of other vulnerable packages.
                if isinstance(via, dict) and isinstance(via.get("title"), str):
                    advisory = via
                    break

            title = advisory.get("title") or f"Vulnerability in {name}"
            url = advisory.get("url") or ""
            findings.append(
                RawFinding(
                    raw_id=f"npm-{name}-{advisory.get('source', 0)}",
                    title=title,
                    severity=severity,
                    confidence=Confidence.high,
                    tool=Tool.npm_audit,
                    category=Category.dependency,
                    location=Location(path=f"package.json ({name})"),
                    evidence=f"Package: {name}, Severity: {raw_severity}",
                    remediation=_remediation(vuln.get("fixAvailable")),
                    references=[url] if url else [],
                )
            )
        return findings


def _remediation(fix_available: Any) -> str:
    if isinstance(fix_available, dict):
        return f"Update to {fix_available.get('name')}@{fix_available.get('version')}"
    if fix_available is True:
        return "Run npm audit fix"
    return "No automatic fix available; update or replace the package manually"
