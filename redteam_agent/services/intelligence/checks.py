from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import httpx

from .guardrails import is_target_allowed
from .hypotheses import AttackHypothesis, HypothesisCheckResult

logger = logging.getLogger(__name__)

DYNAMIC_TIMEOUT_SECONDS = 5.0
MIN_FRAGMENT_LENGTH = 3

SECURITY_HEADERS = [
    "x-frame-options",
    "x-content-type-options",
    "strict-transport-security",
    "content-security-policy",
    "x-xss-protection",
]

DYNAMIC_CATEGORIES = {"misconfiguration", "info-disclosure"}


@dataclass(frozen=True)
class StaticPattern:
    name: str
    pattern: re.Pattern


def _p(name: str, pattern: str) -> StaticPattern:
    return StaticPattern(name, re.compile(pattern, re.IGNORECASE))


STATIC_CHECK_PATTERNS: Dict[str, List[StaticPattern]] = {
    "injection": [
        _p(
            "string-concatenated-query",
            r"""['"].*(?:SELECT|INSERT|UPDATE|DELETE)\b.*['"]\s*\+|\+\s*['"].*(?:SELECT|INSERT|UPDATE|DELETE)""",
        ),
        _p("formatted-query", r"""execute\s*\(\s*f['"].*(?:SELECT|INSERT|UPDATE|DELETE)"""),
        _p("unsanitized-input", r"req\.(?:body|query|params)\s*\["),
        _p("eval-usage", r"\beval\s*\("),
    ],
    "auth-bypass": [
        _p(
            "missing-auth-middleware",
            r"app\.(?:get|post|put|delete|patch)\s*\([^,]+,\s*(?:async\s+)?\(",
        ),
        _p("jwt-none-algorithm", r"algorithm.*none|none.*algorithm"),
        _p("hardcoded-token-check", r"""===?\s*['"][a-zA-Z0-9]{20,}['"]"""),
    ],
    "info-disclosure": [
        _p("stack-trace-exposure", r"(?:err|error)\.(?:stack|message)\s*[,)}\]]"),
        _p("verbose-error", r"res\.(?:json|send)\s*\(\s*(?:err|error)"),
        _p(
            "console-log-sensitive",
            r"console\.log\s*\(.*(?:password|secret|token|key|credential)",
        ),
    ],
    "misconfiguration": [
        _p("cors-wildcard", r"cors\s*\(\s*\)|\*.*origin|origin.*\*"),
        _p("debug-enabled", r"debug\s*[:=]\s*true|NODE_ENV.*development"),
        _p(
            "missing-helmet",
            r"app\.use\s*\(\s*(?:express\.static|morgan|bodyParser)",
        ),
    ],
    "secret-leak": [
        _p(
            "hardcoded-credential",
            r"""(?:password|secret|api_key|apikey|token)\s*[:=]\s*['"][^'"]{8,}['"]""",
        ),
        _p(
            "dotenv-in-source",
            r"""\.env.*committed|process\.env\.\w+\s*\|\|\s*['"][^'"]{8,}['"]""",
        ),
    ],
    "dependency": [
        _p("outdated-package", r'"version"\s*:\s*"[01]\.'),
        _p("no-lockfile-integrity", r"integrity"),
    ],
}


def extract_code_fragments(rationale: str) -> List[str]:
    """Backtick-quoted fragments the model claims exist in the code."""
    fragments = re.findall(r"`([^`]+)`", rationale)
    return [f for f in fragments if len(f) >= MIN_FRAGMENT_LENGTH]


def _resolve_location(repo_root: Path, location: str) -> Optional[Path]:
    # "src/db.ts:queryUser" -> "src/db.ts"
    rel_path = location.split(":", 1)[0].strip()
    if not rel_path:
        return None
    candidate = (repo_root / rel_path).resolve()
    # Model-supplied paths must not escape the repository.
    if candidate != repo_root and repo_root not in candidate.parents:
        logger.warning("Ignoring location outside repository: %s", rel_path)
        return None
    if not candidate.is_file():
        return None
    return candidate


def run_static_checks(
    hypothesis: AttackHypothesis, repo_root: Path | str
) -> HypothesisCheckResult:
    root = Path(repo_root).resolve()
    patterns = STATIC_CHECK_PATTERNS.get(hypothesis.category)
    if patterns is None:
        logger.warning(
            "No static checks for category %r; hypothesis %s cannot be confirmed",
            hypothesis.category,
            hypothesis.id,
        )
        patterns = []

    fragments = extract_code_fragments(hypothesis.rationale)
    locations: List[str] = []
    evidence_details: List[str] = []

    for location in hypothesis.likely_locations:
        path = _resolve_location(root, location)
        if path is None:
            continue
        rel_path = path.relative_to(root).as_posix()
        try:
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            logger.debug("Cannot read %s: %s", rel_path, exc)
            continue

        for check in patterns:
            matches = check.pattern.findall(content)
            if matches:
                locations.append(rel_path)
                evidence_details.append(
                    f"Pattern '{check.name}' matched {len(matches)} time(s) in {rel_path}"
                )

        # Weaker signal: can point at a file, never confirms on its own.
        lowered = content.lower()
        if any(fragment.lower() in lowered for fragment in fragments):
            locations.append(rel_path)

    evidence_found = bool(evidence_details)
    if evidence_found:
        details = "Static analysis found supporting evidence:\n" + "\n".join(
            evidence_details
        )
    else:
        details = "No supporting evidence found via static analysis."

    return HypothesisCheckResult(
        hypothesis_id=hypothesis.id,
        evidence_found=evidence_found,
        details=details,
        locations=list(dict.fromkeys(locations)),
    )


async def run_dynamic_checks(
    hypothesis: AttackHypothesis,
    target_url: str,
    allowlist: Sequence[str],
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> HypothesisCheckResult:
    if not is_target_allowed(target_url, allowlist):
        logger.warning(
            "Dynamic check blocked: target %s not on allowlist (hypothesis %s)",
            target_url,
            hypothesis.id,
        )
        return HypothesisCheckResult(
            hypothesis_id=hypothesis.id,
            evidence_found=False,
            details=f"Dynamic check skipped: target '{target_url}' is not on the allowlist.",
        )

    if hypothesis.category not in DYNAMIC_CATEGORIES:
        return HypothesisCheckResult(
            hypothesis_id=hypothesis.id,
            evidence_found=False,
            details="No safe dynamic probes for this category.",
        )

    try:
        async with httpx.AsyncClient(
            timeout=DYNAMIC_TIMEOUT_SECONDS,
            follow_redirects=False,
            transport=transport,
        ) as client:
            response = await client.get(target_url)
    except httpx.HTTPError as exc:
        logger.warning("Dynamic check could not reach %s: %s", target_url, exc)
        return HypothesisCheckResult(
            hypothesis_id=hypothesis.id,
            evidence_found=False,
            details=f"Could not reach target: {target_url}",
        )

    missing = [h for h in SECURITY_HEADERS if h not in response.headers]
    if not missing:
        return HypothesisCheckResult(
            hypothesis_id=hypothesis.id,
            evidence_found=False,
            details="No issues found via safe dynamic probes.",
        )
    return HypothesisCheckResult(
        hypothesis_id=hypothesis.id,
        evidence_found=True,
        details="\n".join(f"Missing security header: {h}" for h in missing),
        locations=[target_url],
    )


def merge_check_results(
    static: HypothesisCheckResult, dynamic: Optional[HypothesisCheckResult]
) -> HypothesisCheckResult:
    if dynamic is None or not dynamic.evidence_found:
        return static
    if not static.evidence_found:
        return dynamic
    return HypothesisCheckResult(
        hypothesis_id=static.hypothesis_id,
        evidence_found=True,
        details=f"{static.details}\n{dynamic.details}",
        locations=list(dict.fromkeys(static.locations + dynamic.locations)),
    )
