"""Schema for model-proposed attack hypotheses.

Everything here treats its input as untrusted: the decoded model response
can be any JSON value, and validation reports every violated constraint so
that a bad item can be dropped without discarding the rest of the batch.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError

RISK_LEVELS = ("critical", "high", "medium", "low")
CONFIDENCE_LEVELS = ("high", "medium", "low")

_FIELD_MESSAGES: Dict[str, str] = {
    "id": "id must be a non-empty string",
    "title": "title must be a non-empty string",
    "category": "category must be a non-empty string",
    "risk": f"risk must be one of: {', '.join(RISK_LEVELS)}",
    "confidence": f"confidence must be one of: {', '.join(CONFIDENCE_LEVELS)}",
    "rationale": "rationale must be a non-empty string",
    "evidence_to_collect": "evidence_to_collect must be a non-empty string",
    "safe_test_plan": "safe_test_plan must be a non-empty string",
    "likely_locations": "likely_locations must be a non-empty array of strings",
    "references": "references must be an array of strings",
}


class AttackHypothesis(BaseModel):
    model_config = ConfigDict(strict=True, frozen=True, extra="ignore")

    id: str = Field(min_length=1)
    title: str = Field(min_length=1)
    category: str = Field(min_length=1)
    risk: Literal["critical", "high", "medium", "low"]
    confidence: Literal["high", "medium", "low"]
    rationale: str = Field(min_length=1)
    evidence_to_collect: str = Field(min_length=1)
    safe_test_plan: str = Field(min_length=1)
    likely_locations: List[str] = Field(min_length=1)
    references: List[str]


@dataclass
class HypothesisCheckResult:
    hypothesis_id: str
    evidence_found: bool
    details: str
    locations: List[str] = field(default_factory=list)


def _messages_for(exc: ValidationError) -> List[str]:
    messages: List[str] = []
    for error in exc.errors():
        loc = error.get("loc") or ()
        key = str(loc[0]) if loc else ""
        message = _FIELD_MESSAGES.get(key, f"{key or 'hypothesis'}: {error['msg']}")
        if message not in messages:
            messages.append(message)
    return messages


def check_hypothesis(obj: Any) -> Tuple[AttackHypothesis | None, List[str]]:
    if not isinstance(obj, dict):
        return None, ["Hypothesis must be a non-null object"]
    try:
        return AttackHypothesis.model_validate(obj), []
    except ValidationError as exc:
        return None, _messages_for(exc)


def validate_hypothesis(obj: Any) -> List[str]:
    """Every constraint ``obj`` violates; empty when it is a valid hypothesis."""
    _, errors = check_hypothesis(obj)
    return errors


def _hypothesis_items(obj: Any) -> Tuple[List[Any], List[str]]:
    if not isinstance(obj, dict):
        return [], ["Response must be a non-null object"]
    items = obj.get("hypotheses")
    if not isinstance(items, list):
        return [], ["Response must contain a 'hypotheses' array"]
    return items, []


def validate_planner_response(obj: Any) -> List[str]:
    items, errors = _hypothesis_items(obj)
    for index, item in enumerate(items):
        errors.extend(f"hypotheses[{index}]: {e}" for e in validate_hypothesis(item))
    return errors


def parse_planner_response(obj: Any) -> Tuple[List[AttackHypothesis], List[str]]:
    """Split a decoded response into valid hypotheses and per-item errors."""
    items, errors = _hypothesis_items(obj)
    valid: List[AttackHypothesis] = []
    for index, item in enumerate(items):
        hypothesis, item_errors = check_hypothesis(item)
        if hypothesis is not None:
            valid.append(hypothesis)
        errors.extend(f"hypotheses[{index}]: {e}" for e in item_errors)
    return valid, errors
