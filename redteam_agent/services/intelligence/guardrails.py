from __future__ import annotations

import logging
import re
from typing import Iterable, List, Sequence
from urllib.parse import urlsplit

from .hypotheses import AttackHypothesis

logger = logging.getLogger(__name__)

REDACTION_MARKER = "[REDACTED: unsafe command]"

_LOOPBACK = r"(?:localhost|127\.0\.0\.1|\[?::1\]?)"

UNSAFE_OUTPUT_PATTERNS = [
    # Shell blocks that aim network tooling at anything other than loopback.
    re.compile(
        r"```(?:bash|sh|shell|zsh)?\s*\n.*?\b(?:curl|wget|nc|netcat|nmap|sqlmap|nikto|burp|hydra)\s+"
        rf"(?!(?:-\S+\s+)*(?:https?://)?{_LOOPBACK}\b).*?```",
        re.IGNORECASE | re.DOTALL,
    ),
    re.compile(r"\brm\s+-(?:rf|fr|r)\s*\S*", re.IGNORECASE),
    re.compile(r"\bmkfs(?:\.\w+)?\s+\S+", re.IGNORECASE),
    re.compile(r"\bdd\s+if=\S+\s+of=/dev/\S+", re.IGNORECASE),
    re.compile(r";\s*(?:drop|delete|truncate)\s+", re.IGNORECASE),
]

_URL_HOST = re.compile(r"https?://([^/\s\"'<>]+)", re.IGNORECASE)


def _normalize_host(host: str) -> str:
    return host.strip().strip("[]").lower()


def is_target_allowed(target: str, allowlist: Sequence[str]) -> bool:
    try:
        hostname = urlsplit(target).hostname
    except ValueError:
        return False
    if not hostname:
        return False
    allowed = {_normalize_host(item) for item in allowlist}
    return _normalize_host(hostname) in allowed


def sanitize_llm_output(raw: str) -> str:
    sanitized = raw
    for pattern in UNSAFE_OUTPUT_PATTERNS:
        sanitized = pattern.sub(REDACTION_MARKER, sanitized)
    return sanitized


def referenced_hosts(text: str) -> List[str]:
    hosts: List[str] = []
    for match in _URL_HOST.finditer(text):
        netloc = match.group(1).rsplit("@", 1)[-1]
        if netloc.startswith("["):
            host = netloc[1 : netloc.find("]")] if "]" in netloc else netloc[1:]
        else:
            host = netloc.split(":", 1)[0]
        hosts.append(_normalize_host(host))
    return hosts


def filter_safe_hypotheses(
    hypotheses: Iterable[AttackHypothesis], allowlist: Sequence[str]
) -> List[AttackHypothesis]:
    allowed = {_normalize_host(item) for item in allowlist}
    safe: List[AttackHypothesis] = []
    for hypothesis in hypotheses:
        blocked = [h for h in referenced_hosts(hypothesis.safe_test_plan) if h not in allowed]
        if blocked:
            logger.warning(
                "Dropping hypothesis %s: test plan targets non-allowlisted host %s",
                hypothesis.id,
                blocked[0],
            )
            continue
        safe.append(hypothesis)
    return safe


def limit_hypotheses(
    hypotheses: Sequence[AttackHypothesis], max_count: int
) -> List[AttackHypothesis]:
    return list(hypotheses[:max_count])
