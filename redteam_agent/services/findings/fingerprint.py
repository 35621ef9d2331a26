from __future__ import annotations

import hashlib

FIELD_SEPARATOR = "|"
ID_LENGTH = 12


def generate_fingerprint(*fields: str) -> str:
    """Stable SHA-256 over case- and whitespace-normalized identity fields."""
    normalized = [value.lower().strip() for value in fields]
    return hashlib.sha256(FIELD_SEPARATOR.join(normalized).encode("utf-8")).hexdigest()


def generate_id(fingerprint: str) -> str:
    # Display only; matching always uses the full digest.
    return fingerprint[:ID_LENGTH]
