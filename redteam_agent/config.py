from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Type

from pydantic import AliasChoices, BaseModel, Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from .services.findings.types import Severity

DEFAULT_CONFIG_PATH = "redteam.config.json"
DEMO_ISSUE_LABEL = "demo:redteam-example"
DEFAULT_TARGET_ALLOWLIST = ["localhost", "127.0.0.1", "::1"]


class NpmAuditSettings(BaseModel):
    enabled: bool = True
    min_severity: Severity = Severity.medium


class SecretDetectionSettings(BaseModel):
    enabled: bool = True
    include: List[str] = Field(default_factory=lambda: ["**/*"])
    exclude: List[str] = Field(
        default_factory=lambda: ["node_modules/**", ".git/**", "*.lock", "dist/**"]
    )
    custom_patterns: Dict[str, str] = Field(default_factory=dict)


class HttpScanSettings(BaseModel):
    enabled: bool = False
    target: str = "http://localhost:3000"
    paths: List[str] = Field(
        default_factory=lambda: ["/", "/.env", "/.git/config", "/debug", "/api"]
    )


class ScannerSettings(BaseModel):
    npm_audit: NpmAuditSettings = Field(default_factory=NpmAuditSettings)
    secret_detection: SecretDetectionSettings = Field(
        default_factory=SecretDetectionSettings
    )
    http_scan: HttpScanSettings = Field(default_factory=HttpScanSettings)


class IssueSettings(BaseModel):
    enabled: bool = True
    extra_labels: List[str] = Field(default_factory=list)
    max_per_run: int = 10
    assignees: List[str] = Field(default_factory=list)
    auto_close: bool = False
    # Secondary label that scopes both filing and reconciliation, e.g. demo runs.
    batch_label: Optional[str] = None

    @field_validator("max_per_run")
    @classmethod
    def _non_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("max_per_run must be >= 0")
        return value


class PlannerSettings(BaseModel):
    enabled: bool = False
    provider: str = "auto"
    model: str = "gpt-4o-mini"
    endpoint: Optional[str] = None
    api_key: Optional[str] = None
    max_files: int = 20
    max_tokens: int = 4096
    timeout_ms: int = 60_000
    target_allowlist: List[str] = Field(
        default_factory=lambda: list(DEFAULT_TARGET_ALLOWLIST)
    )
    max_hypotheses: int = 10
    dynamic_target: Optional[str] = None

    @field_validator("max_files", "max_tokens", "timeout_ms", "max_hypotheses")
    @classmethod
    def _positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be a positive integer")
        return value

    @field_validator("target_allowlist", mode="before")
    @classmethod
    def _split_allowlist(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value


class RedTeamSettings(BaseSettings):
    repo_root: str = "."
    github_token: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("github_token", "GITHUB_TOKEN"),
    )
    github_repository: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("github_repository", "GITHUB_REPOSITORY"),
    )
    github_api_base: str = "https://api.github.com"

    scanners: ScannerSettings = Field(default_factory=ScannerSettings)
    issues: IssueSettings = Field(default_factory=IssueSettings)
    planner: PlannerSettings = Field(default_factory=PlannerSettings)

    model_config = SettingsConfigDict(
        env_prefix="REDTEAM_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        populate_by_name=True,
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        # Environment beats the JSON config file passed in as init kwargs.
        return env_settings, dotenv_settings, init_settings, file_secret_settings

    @property
    def repo_path(self) -> Path:
        return Path(self.repo_root).resolve()

    @property
    def owner_and_repo(self) -> Tuple[str, str]:
        value = (self.github_repository or "").strip()
        if "/" not in value:
            return "", ""
        owner, repo = value.split("/", 1)
        return owner, repo


def load_settings(config_path: Optional[str] = None) -> RedTeamSettings:
    path = Path(config_path or DEFAULT_CONFIG_PATH).resolve()
    file_config: Dict[str, Any] = {}
    if path.exists():
        loaded = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(loaded, dict):
            raise ValueError(f"Config file {path} must contain a JSON object")
        file_config = loaded
    return RedTeamSettings(**file_config)
