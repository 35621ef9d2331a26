import logging

import httpx
import pytest

from redteam_agent.config import DEFAULT_TARGET_ALLOWLIST
from redteam_agent.services.intelligence.checks import (
    SECURITY_HEADERS,
    extract_code_fragments,
    merge_check_results,
    run_dynamic_checks,
    run_static_checks,
)
from redteam_agent.services.intelligence.hypotheses import (
    AttackHypothesis,
    HypothesisCheckResult,
)

DB_SOURCE = """export function queryUser(id: string) {
  const sql = "SELECT * FROM users WHERE id = '" + id + "'";
  return db.query(sql);
}
"""


def _write(root, rel_path, content):
    path = root / rel_path
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


def test_extract_code_fragments():
    rationale = "Uses `eval(x)` and `ab` and `db.query(sql)`."
    assert extract_code_fragments(rationale) == ["eval(x)", "db.query(sql)"]


def test_static_check_confirms_quoted_fragment_in_cited_file(tmp_path, hypothesis_data):
    _write(tmp_path, "src/db.ts", DB_SOURCE)
    hypothesis = AttackHypothesis.model_validate(hypothesis_data())

    result = run_static_checks(hypothesis, tmp_path)

    assert result.evidence_found is True
    assert result.locations == ["src/db.ts"]
    assert "string-concatenated-query" in result.details


def test_fragment_alone_does_not_confirm(tmp_path, hypothesis_data):
    _write(tmp_path, "src/util.ts", "export const helper = () => lookupUser(1);\n")
    hypothesis = AttackHypothesis.model_validate(
        hypothesis_data(
            rationale="The helper calls `lookupUser` directly.",
            likely_locations=["src/util.ts"],
        )
    )

    result = run_static_checks(hypothesis, tmp_path)

    assert result.evidence_found is False
    assert result.locations == ["src/util.ts"]
    assert result.details == "No supporting evidence found via static analysis."


def test_missing_file_yields_no_evidence(tmp_path, hypothesis_data):
    hypothesis = AttackHypothesis.model_validate(
        hypothesis_data(likely_locations=["src/missing.ts:fn"])
    )

    result = run_static_checks(hypothesis, tmp_path)

    assert result.evidence_found is False
    assert result.locations == []


def test_location_outside_repository_is_ignored(tmp_path, hypothesis_data):
    repo = tmp_path / "repo"
    repo.mkdir()
    _write(tmp_path, "outside.ts", DB_SOURCE)
    hypothesis = AttackHypothesis.model_validate(
        hypothesis_data(likely_locations=["../outside.ts"])
    )

    result = run_static_checks(hypothesis, repo)

    assert result.evidence_found is False
    assert result.locations == []


def test_unknown_category_warns_and_does_not_confirm(tmp_path, hypothesis_data, caplog):
    _write(tmp_path, "src/db.ts", DB_SOURCE)
    hypothesis = AttackHypothesis.model_validate(hypothesis_data(category="race-condition"))

    with caplog.at_level(logging.WARNING):
        result = run_static_checks(hypothesis, tmp_path)

    assert result.evidence_found is False
    assert "race-condition" in caplog.text


@pytest.mark.asyncio
async def test_dynamic_check_blocked_for_external_target(hypothesis_data):
    hypothesis = AttackHypothesis.model_validate(hypothesis_data(category="misconfiguration"))

    def handler(request: httpx.Request) -> httpx.Response:  # pragma: no cover
        raise AssertionError("must not be called")

    result = await run_dynamic_checks(
        hypothesis,
        "https://example.com",
        DEFAULT_TARGET_ALLOWLIST,
        transport=httpx.MockTransport(handler),
    )

    assert result.evidence_found is False
    assert "not on the allowlist" in result.details


@pytest.mark.asyncio
async def test_dynamic_check_reports_missing_headers(hypothesis_data):
    hypothesis = AttackHypothesis.model_validate(hypothesis_data(category="misconfiguration"))

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, headers={"x-frame-options": "DENY"})

    result = await run_dynamic_checks(
        hypothesis,
        "http://localhost:3000",
        DEFAULT_TARGET_ALLOWLIST,
        transport=httpx.MockTransport(handler),
    )

    assert result.evidence_found is True
    assert result.locations == ["http://localhost:3000"]
    assert "x-frame-options" not in result.details
    assert "Missing security header: content-security-policy" in result.details


@pytest.mark.asyncio
async def test_dynamic_check_all_headers_present(hypothesis_data):
    hypothesis = AttackHypothesis.model_validate(hypothesis_data(category="info-disclosure"))

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, headers={h: "1" for h in SECURITY_HEADERS})

    result = await run_dynamic_checks(
        hypothesis,
        "http://127.0.0.1:3000",
        DEFAULT_TARGET_ALLOWLIST,
        transport=httpx.MockTransport(handler),
    )

    assert result.evidence_found is False


@pytest.mark.asyncio
async def test_dynamic_check_unreachable_target(hypothesis_data):
    hypothesis = AttackHypothesis.model_validate(hypothesis_data(category="misconfiguration"))

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    result = await run_dynamic_checks(
        hypothesis,
        "http://localhost:3000",
        DEFAULT_TARGET_ALLOWLIST,
        transport=httpx.MockTransport(handler),
    )

    assert result.evidence_found is False


@pytest.mark.asyncio
async def test_dynamic_check_skips_unsupported_category(hypothesis_data):
    hypothesis = AttackHypothesis.model_validate(hypothesis_data())

    result = await run_dynamic_checks(hypothesis, "http://localhost:3000", DEFAULT_TARGET_ALLOWLIST)

    assert result.evidence_found is False


def test_merge_check_results():
    static = HypothesisCheckResult("H", True, "static", ["src/a.ts"])
    dynamic = HypothesisCheckResult("H", True, "dynamic", ["http://localhost"])
    empty = HypothesisCheckResult("H", False, "none")

    assert merge_check_results(static, None) is static
    assert merge_check_results(static, empty) is static
    assert merge_check_results(empty, dynamic) is dynamic
    merged = merge_check_results(static, dynamic)
    assert merged.details == "static\ndynamic"
    assert merged.locations == ["src/a.ts", "http://localhost"]
