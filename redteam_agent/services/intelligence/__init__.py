"""Model-proposed hypotheses and the deterministic checks that gate them."""

__all__ = [
    "checks",
    "guardrails",
    "hypotheses",
    "hypothesis_findings",
    "llm_service",
    "planner",
    "prompts",
]
