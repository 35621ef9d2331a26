from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import List, Tuple

import httpx

from ...config import PlannerSettings
from ...logging_config import truncate_error
from .guardrails import (
    filter_safe_hypotheses,
    limit_hypotheses,
    sanitize_llm_output,
)
from .hypotheses import AttackHypothesis, parse_planner_response
from .llm_service import LLMMessage, LLMProvider, LLMProviderConfig, ProviderError
from .prompts import PLANNER_SYSTEM_PROMPT, build_user_prompt

logger = logging.getLogger(__name__)

SECURITY_RELEVANT_EXTENSIONS = {
    ".ts", ".js", ".cjs", ".mjs",
    ".py", ".rb", ".go", ".java",
    ".json", ".yaml", ".yml", ".toml",
    ".env", ".cfg", ".conf", ".ini",
}

PRIORITY_DIRS = {
    "routes", "controllers", "auth", "middleware",
    "api", "db", "database", "config", "src",
    "lib", "server", "handlers", "services",
}

EXCLUDE_DIRS = {
    "node_modules", ".git", "dist", "build", "coverage",
    ".next", "__pycache__", "vendor", ".venv",
}

MAX_FILE_BYTES = 100_000
MAX_FILE_CHARS = 8192
TREE_DEPTH = 3


class HypothesisPlanner:
    """Asks a model for attack hypotheses about a repository.

    The result is untrusted: it is sanitized, schema-checked, filtered to
    allow-listed targets and capped before being returned. Nothing returned
    here is a finding until the evidence checker confirms it.
    """

    def __init__(self, provider: LLMProvider, settings: PlannerSettings):
        self.provider = provider
        self.settings = settings

    async def generate_hypotheses(self, repo_root: Path | str) -> List[AttackHypothesis]:
        if not self.settings.enabled:
            logger.info("LLM planner is disabled, skipping hypothesis generation")
            return []

        root = Path(repo_root)
        structure = self.collect_repo_structure(root)
        files = self.select_files(root)
        logger.info(
            "LLM planner: selected files for analysis",
            extra={"count": len(files), "files": [path for path, _ in files]},
        )

        messages = [
            LLMMessage(role="system", content=PLANNER_SYSTEM_PROMPT),
            LLMMessage(role="user", content=build_user_prompt(structure, files)),
        ]
        try:
            result = await self.provider.complete(
                messages, LLMProviderConfig.from_settings(self.settings)
            )
        except (httpx.HTTPError, ProviderError) as exc:
            logger.error(
                "LLM planner: provider call failed",
                extra={"provider": self.provider.name, "error": truncate_error(exc)},
            )
            return []

        if result.usage is not None:
            logger.info(
                "LLM planner: token usage",
                extra={
                    "prompt_tokens": result.usage.prompt_tokens,
                    "completion_tokens": result.usage.completion_tokens,
                },
            )

        return self.parse_response(result.content)

    def parse_response(self, content: str) -> List[AttackHypothesis]:
        sanitized = sanitize_llm_output(content)
        try:
            decoded = json.loads(sanitized)
        except json.JSONDecodeError:
            logger.error("LLM planner: failed to parse response as JSON")
            return []

        hypotheses, errors = parse_planner_response(decoded)
        if errors:
            logger.warning(
                "LLM planner: validation errors in response",
                extra={"errors": errors[:20]},
            )

        safe = filter_safe_hypotheses(hypotheses, self.settings.target_allowlist)
        limited = limit_hypotheses(safe, self.settings.max_hypotheses)
        logger.info(
            "LLM planner: generated hypotheses",
            extra={"valid": len(hypotheses), "after_filters": len(limited)},
        )
        return limited

    def collect_repo_structure(self, root: Path, prefix: str = "", depth: int = TREE_DEPTH) -> str:
        if depth <= 0:
            return ""
        try:
            entries = [
                entry
                for entry in root.iterdir()
                if not entry.name.startswith(".") and entry.name not in EXCLUDE_DIRS
            ]
        except OSError:
            return ""

        entries.sort(key=lambda entry: (not entry.is_dir(), entry.name))
        lines: List[str] = []
        for entry in entries:
            if entry.is_dir():
                lines.append(f"{prefix}{entry.name}/")
                sub = self.collect_repo_structure(entry, prefix + "  ", depth - 1)
                if sub:
                    lines.append(sub)
            else:
                lines.append(f"{prefix}{entry.name}")
        return "\n".join(lines)

    def select_files(self, root: Path) -> List[Tuple[str, str]]:
        candidates: List[Tuple[str, int]] = []
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames[:] = sorted(
                d for d in dirnames if not d.startswith(".") and d not in EXCLUDE_DIRS
            )
            for name in sorted(filenames):
                if name.startswith("."):
                    continue
                path = Path(dirpath) / name
                if path.suffix.lower() not in SECURITY_RELEVANT_EXTENSIONS:
                    continue
                try:
                    size = path.stat().st_size
                except OSError:
                    continue
                if size >= MAX_FILE_BYTES:
                    continue
                candidates.append((path.relative_to(root).as_posix(), size))

        # Priority directories first, then smaller files for more variety.
        candidates.sort(key=lambda item: (not _in_priority_dir(item[0]), item[1]))

        selected: List[Tuple[str, str]] = []
        for rel_path, _ in candidates[: self.settings.max_files]:
            try:
                content = (root / rel_path).read_text(encoding="utf-8", errors="replace")
            except OSError:
                content = "[Could not read file]"
            selected.append((rel_path, content[:MAX_FILE_CHARS]))
        return selected


def _in_priority_dir(rel_path: str) -> bool:
    return any(part.lower() in PRIORITY_DIRS for part in rel_path.split("/")[:-1])
