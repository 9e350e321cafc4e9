from __future__ import annotations

from typing import Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

# Config models map YAML sections to typed structures; unknown keys fail fast.


class EnvironmentConfig(BaseModel):
    # Target network identity, feature flags and named account bindings.
    model_config = ConfigDict(extra="forbid")
    network: str = Field(min_length=1)
    chain_id: int | None = None
    # Older configs call the flags "network_tags"; both names normalize to tags.
    tags: list[str] = Field(default_factory=list, validation_alias=AliasChoices("tags", "network_tags"))
    accounts: dict[str, str] = Field(default_factory=dict)


class SelectionConfig(BaseModel):
    # Which categories to run and which step names to re-run regardless of prior artifacts.
    model_config = ConfigDict(extra="forbid")
    tags: list[str] = Field(default_factory=list)
    force: list[str] = Field(default_factory=list)


class StoreConfig(BaseModel):
    # Artifact persistence backend.
    model_config = ConfigDict(extra="forbid")
    kind: Literal["json", "memory"] = "json"
    path: str | None = "deployments"

    @model_validator(mode="after")
    def _require_path(self) -> StoreConfig:
        # JSON store needs a directory; silent defaults would scatter files.
        if self.kind == "json" and not self.path:
            raise ValueError("store.path is required when kind is 'json'")
        return self


class ExecutionConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    max_workers: int = Field(default=1, ge=1)


class LoggingConfig(BaseModel):
    # Human-readable console lines plus an optional JSONL log file.
    model_config = ConfigDict(extra="forbid")
    console: bool = True
    level: Literal["debug", "info", "warning", "error"] = "info"
    jsonl_path: str | None = None


class StepsConfig(BaseModel):
    # Modules scanned for Step definitions and the factory for named client bindings.
    model_config = ConfigDict(extra="forbid")
    modules: list[str] = Field(min_length=1)
    wiring: str | None = None

    @field_validator("wiring")
    @classmethod
    def _wiring_reference(cls, value: str | None) -> str | None:
        if value is not None and value.count(":") != 1:
            raise ValueError("steps.wiring must look like 'package.module:callable'")
        return value


class AppConfig(BaseModel):
    # AppConfig is the top-level typed view of a deploy configuration file.
    model_config = ConfigDict(extra="forbid")
    version: int = 1
    environment: EnvironmentConfig
    steps: StepsConfig
    selection: SelectionConfig = Field(default_factory=SelectionConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    execution: ExecutionConfig = Field(default_factory=ExecutionConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("version")
    @classmethod
    def _supported_version(cls, value: int) -> int:
        if value != 1:
            raise ValueError(f"Unsupported config version: {value}")
        return value
