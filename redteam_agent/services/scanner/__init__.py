from .base import Scanner, run_scanners
from .http_scan import HttpScanScanner
from .npm_audit import NpmAuditScanner
from .secret_detection import SecretDetectionScanner

SCANNER_REGISTRY = [NpmAuditScanner, SecretDetectionScanner, HttpScanScanner]


def default_scanners():
    return [scanner_cls() for scanner_cls in SCANNER_REGISTRY]


__all__ = [
    "HttpScanScanner",
    "NpmAuditScanner",
    "SCANNER_REGISTRY",
    "Scanner",
    "SecretDetectionScanner",
    "default_scanners",
    "run_scanners",
]
