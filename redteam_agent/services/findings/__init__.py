"""Finding normalization, reconciliation against the tracker, and issue planning."""

__all__ = [
    "dedup",
    "fingerprint",
    "issue_body",
    "issue_planner",
    "labels",
    "normalizer",
    "types",
]
