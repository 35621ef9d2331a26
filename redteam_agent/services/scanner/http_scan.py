from __future__ import annotations

import logging
from typing import List, Optional
from urllib.parse import urlsplit

import httpx

from ...config import DEFAULT_TARGET_ALLOWLIST, RedTeamSettings
from ..findings.types import Category, Confidence, Location, RawFinding, Severity, Tool
from ..intelligence.checks import SECURITY_HEADERS

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT_SECONDS = 5.0
SENSITIVE_PATHS = {"/.env", "/.git/config", "/debug", "/actuator"}
HEADERS_REFERENCE = "https://owasp.org/www-project-secure-headers/"


class HttpScanScanner:
    """Passive probes against a locally running app. Never leaves loopback."""

    name = "http-scan"

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self.transport = transport

    def is_available(self, settings: RedTeamSettings) -> bool:
        config = settings.scanners.http_scan
        if not config.enabled:
            return False
        try:
            hostname = urlsplit(config.target).hostname
        except ValueError:
            return False
        return hostname in DEFAULT_TARGET_ALLOWLIST

    async def scan(self, settings: RedTeamSettings) -> List[RawFinding]:
        config = settings.scanners.http_scan
        base = config.target.rstrip("/")
        findings: List[RawFinding] = []

        async with httpx.AsyncClient(
            timeout=REQUEST_TIMEOUT_SECONDS,
            follow_redirects=False,
            transport=self.transport,
        ) as client:
            for path in config.paths:
                url = f"{base}{path}"
                try:
                    response = await client.get(url)
                except httpx.HTTPError as exc:
                    logger.debug("HTTP probe to %s failed: %s", url, exc)
                    continue
                if not response.is_success:
                    continue
                findings.extend(self._check_response(path, url, response))
        return findings

    def _check_response(
        self, path: str, url: str, response: httpx.Response
    ) -> List[RawFinding]:
        findings: List[RawFinding] = []
        for header in SECURITY_HEADERS:
            if header in response.headers:
                continue
            findings.append(
                RawFinding(
                    raw_id=f"http-header-{header}-{path}",
                    title=f"Missing security header: {header}",
                    severity=Severity.medium,
                    confidence=Confidence.high,
                    tool=Tool.http_scan,
                    category=Category.http,
                    location=Location(path=url),
                    evidence=f"Response to {path} is missing the {header} header",
                    remediation=f"Add the {header} header to your server responses.",
                    references=[HEADERS_REFERENCE],
                )
            )

        if path in SENSITIVE_PATHS:
            findings.append(
                RawFinding(
                    raw_id=f"http-exposed-{path}",
                    title=f"Sensitive path exposed: {path}",
                    severity=Severity.high,
                    confidence=Confidence.high,
                    tool=Tool.http_scan,
                    category=Category.http,
                    location=Location(path=url),
                    evidence=f"{path} returned HTTP {response.status_code}",
                    remediation=f"Block access to {path} in your web server configuration.",
                    references=[],
                )
            )
        return findings
