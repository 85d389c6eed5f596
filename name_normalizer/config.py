from __future__ import annotations

from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator


class StorageSettings(BaseModel):
    path: Path = Path("./cache/name-normalizer.sqlite3")
    namespace: str = "name_normalizer"

    @field_validator("path", mode="before")
    @classmethod
    def _expand_path(cls, value: str | Path) -> Path:
        return Path(value).expanduser().resolve()


class MatchingSettings(BaseModel):
    jaro_winkler_weight: float = Field(default=0.5, ge=0.0, le=1.0)
    lcs_weight: float = Field(default=0.3, ge=0.0, le=1.0)
    initials_weight: float = Field(default=0.2, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def _require_positive_weight(self) -> "MatchingSettings":
        if self.jaro_winkler_weight + self.lcs_weight + self.initials_weight <= 0:
            raise ValueError("at least one similarity weight must be positive")
        return self


class LearningSettings(BaseModel):
    similarity_threshold: float = Field(default=0.6, ge=0.0, le=1.0)
    max_suggestions: int = Field(default=5, ge=1)


class AnalysisSettings(BaseModel):
    surname_threshold: float = Field(default=0.8, ge=0.0, le=1.0)
    length_window: Optional[int] = Field(default=2, ge=0)
    chunk_size: int = Field(default=250, ge=1)
    filter_batch_size: int = Field(default=200, ge=1)
    given_names: bool = True


class Settings(BaseModel):
    storage: StorageSettings = StorageSettings()
    matching: MatchingSettings = MatchingSettings()
    learning: LearningSettings = LearningSettings()
    analysis: AnalysisSettings = AnalysisSettings()

    @classmethod
    def load(cls, path: Optional[Path]) -> "Settings":
        if path is None:
            return cls()
        with path.open("r", encoding="utf-8") as fh:
            raw = yaml.safe_load(fh)
        return cls.model_validate(raw or {})


def find_config(explicit_path: Optional[Path]) -> Optional[Path]:
    if explicit_path:
        return explicit_path
    cwd = Path.cwd()
    for candidate in (cwd / "config.yaml", cwd / "config.yml"):
        if candidate.exists():
            return candidate
    return None
