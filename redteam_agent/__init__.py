"""Security finding reconciliation and evidence-gated hypothesis planning."""

__all__ = [
    "cli",
    "config",
    "integrations",
    "pipeline",
    "services",
]
