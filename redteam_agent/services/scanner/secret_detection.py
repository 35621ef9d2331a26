from __future__ import annotations

import fnmatch
import logging
import os
import re
from pathlib import Path
from typing import Dict, Iterator, List, Sequence

from ...config import RedTeamSettings
from ..findings.issue_body import mask_secret
from ..findings.types import (
    MAX_EVIDENCE_LENGTH,
    Category,
    Confidence,
    LineRange,
    Location,
    RawFinding,
    Severity,
    Tool,
)

logger = logging.getLogger(__name__)

PATTERN_SEVERITY: Dict[str, Severity] = {
    "aws-access-key": Severity.critical,
    "aws-secret-key": Severity.critical,
    "github-token": Severity.critical,
    "generic-api-key": Severity.high,
    "private-key": Severity.critical,
    "generic-password": Severity.high,
}

BUILTIN_PATTERNS: Dict[str, re.Pattern] = {
    "aws-access-key": re.compile(r"AKIA[0-9A-Z]{16}"),
    "aws-secret-key": re.compile(
        r"""(?:aws_secret_access_key|aws_secret_key)\s*[=:]\s*["']?([A-Za-z0-9/+=]{40})["']?""",
        re.IGNORECASE,
    ),
    "github-token": re.compile(r"gh[pousr]_[A-Za-z0-9_]{36,255}"),
    "generic-api-key": re.compile(
        r"""(?:api[_-]?key|apikey|api[_-]?secret)["'\s:=]+["']?([A-Za-z0-9_\-]{20,})["']?""",
        re.IGNORECASE,
    ),
    "private-key": re.compile(r"-----BEGIN (?:RSA |EC |DSA |OPENSSH )?PRIVATE KEY-----"),
    "generic-password": re.compile(
        r"""(?:password|passwd|pwd)["'\s:=]+["']([^"'\s]{8,})["']""",
        re.IGNORECASE,
    ),
}

BINARY_EXTENSIONS = {
    ".png", ".jpg", ".jpeg", ".gif", ".bmp", ".ico", ".svg",
    ".woff", ".woff2", ".ttf", ".eot", ".otf",
    ".zip", ".gz", ".tar", ".bz2", ".7z", ".rar",
    ".pdf", ".doc", ".docx", ".xls", ".xlsx",
    ".exe", ".dll", ".so", ".dylib", ".o",
    ".mp3", ".mp4", ".avi", ".mov", ".webm",
    ".wasm", ".pyc", ".class",
}

BINARY_SNIFF_BYTES = 512

SECRET_REMEDIATION = (
    "Remove the secret from source code and rotate the credential. "
    "Use environment variables or a secrets manager instead."
)
SECRET_REFERENCE = "https://owasp.org/www-community/vulnerabilities/Use_of_hard-coded_password"


def glob_match(rel_path: str, pattern: str) -> bool:
    """Match a posix relative path against a glob where ``**/`` may match nothing."""
    if fnmatch.fnmatch(rel_path, pattern):
        return True
    if pattern.startswith("**/"):
        return fnmatch.fnmatch(rel_path, pattern[3:])
    return False


def iter_candidate_files(
    root: Path, include: Sequence[str], exclude: Sequence[str]
) -> Iterator[Path]:
    for dirpath, dirnames, filenames in os.walk(root):
        current = Path(dirpath)
        kept = []
        for name in sorted(dirnames):
            rel_dir = (current / name).relative_to(root).as_posix() + "/"
            if any(glob_match(rel_dir, pattern) for pattern in exclude):
                continue
            kept.append(name)
        dirnames[:] = kept

        for name in sorted(filenames):
            path = current / name
            rel_path = path.relative_to(root).as_posix()
            if any(glob_match(rel_path, pattern) for pattern in exclude):
                continue
            if not any(glob_match(rel_path, pattern) for pattern in include):
                continue
            yield path


def is_binary_content(data: bytes) -> bool:
    return b"\x00" in data[:BINARY_SNIFF_BYTES]


class SecretDetectionScanner:
    name = "secret-detection"

    def is_available(self, settings: RedTeamSettings) -> bool:
        return settings.scanners.secret_detection.enabled

    async def scan(self, settings: RedTeamSettings) -> List[RawFinding]:
        config = settings.scanners.secret_detection
        root = settings.repo_path

        patterns = dict(BUILTIN_PATTERNS)
        for name, pattern in config.custom_patterns.items():
            try:
                patterns[name] = re.compile(pattern, re.IGNORECASE)
            except re.error as exc:
                logger.warning("Ignoring invalid custom pattern %s: %s", name, exc)

        findings: List[RawFinding] = []
        files_scanned = 0
        for path in iter_candidate_files(root, config.include, config.exclude):
            if path.suffix.lower() in BINARY_EXTENSIONS:
                continue
            try:
                data = path.read_bytes()
            except OSError:
                continue
            if is_binary_content(data):
                continue

            files_scanned += 1
            rel_path = path.relative_to(root).as_posix()
            lines = data.decode("utf-8", errors="replace").split("\n")
            findings.extend(self.scan_lines(rel_path, lines, patterns))

        logger.info(
            "Secret scan complete",
            extra={"files_scanned": files_scanned, "findings": len(findings)},
        )
        return findings

    def scan_lines(
        self, rel_path: str, lines: Sequence[str], patterns: Dict[str, re.Pattern]
    ) -> List[RawFinding]:
        findings: List[RawFinding] = []
        for pattern_name, regex in patterns.items():
            severity = PATTERN_SEVERITY.get(pattern_name, Severity.high)
            for index, line in enumerate(lines):
                line_no = index + 1
                for match in regex.finditer(line):
                    findings.append(
                        RawFinding(
                            raw_id=f"secret-{pattern_name}-{rel_path}-{line_no}-{match.start()}",
                            title=f"Potential secret detected: {pattern_name}",
                            severity=severity,
                            confidence=Confidence.medium,
                            tool=Tool.secret_detection,
                            category=Category.secret,
                            location=Location(
                                path=rel_path, lines=LineRange(line_no, line_no)
                            ),
                            evidence=mask_secret(match.group(0)[:MAX_EVIDENCE_LENGTH]),
                            remediation=SECRET_REMEDIATION,
                            references=[SECRET_REFERENCE],
                        )
                    )
        return findings
