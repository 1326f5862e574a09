"""Environment settings for metric-ratchet."""

from __future__ import annotations

from pathlib import Path
import tempfile

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RatchetSettings(BaseSettings):
    """Runtime configuration sourced from CI-provided environment variables."""

    model_config = SettingsConfigDict(extra="ignore")

    runner_temp: Path | None = Field(default=None, validation_alias="RUNNER_TEMP")
    github_base_ref: str | None = Field(default=None, validation_alias="GITHUB_BASE_REF")
    log_level: str = Field(default="WARNING", validation_alias="RATCHET_LOG_LEVEL")

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(
                "RATCHET_LOG_LEVEL must be one of CRITICAL, ERROR, WARNING, INFO, DEBUG"
            )
        return normalized

    @field_validator("runner_temp", mode="before")
    @classmethod
    def _empty_temp_is_unset(cls, value):
        if value is None or (isinstance(value, str) and not value.strip()):
            return None
        return value

    @field_validator("github_base_ref", mode="before")
    @classmethod
    def _empty_ref_is_unset(cls, value):
        if isinstance(value, str):
            value = value.strip()
        return value or None

    @property
    def temp_root(self) -> Path:
        """Directory under which base worktrees are created."""

        if self.runner_temp is not None:
            return Path(self.runner_temp).expanduser()
        return Path(tempfile.gettempdir())


__all__ = ["RatchetSettings"]
