from __future__ import annotations

import logging
from typing import List, Protocol, Sequence

from ...config import RedTeamSettings
from ...logging_config import truncate_error
from ..findings.types import RawFinding

logger = logging.getLogger(__name__)


class Scanner(Protocol):
    name: str

    def is_available(self, settings: RedTeamSettings) -> bool: ...

    async def scan(self, settings: RedTeamSettings) -> List[RawFinding]: ...


async def run_scanners(
    settings: RedTeamSettings, scanners: Sequence[Scanner]
) -> List[RawFinding]:
    """Run each available scanner in turn; a failing scanner contributes nothing."""
    findings: List[RawFinding] = []
    for scanner in scanners:
        if not scanner.is_available(settings):
            logger.debug("Scanner %s not available, skipping", scanner.name)
            continue
        logger.info("Running scanner", extra={"scanner": scanner.name})
        try:
            results = await scanner.scan(settings)
        except Exception as exc:
            logger.error(
                "Scanner failed",
                extra={"scanner": scanner.name, "error": truncate_error(exc)},
            )
            continue
        findings.extend(results)
    return findings
