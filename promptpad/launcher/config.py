"""Configuration management for PromptPad."""

from pathlib import Path
from typing import Any, Dict, Literal, Optional

import yaml
from loguru import logger
from pydantic import BaseModel, Field, field_validator

from .matching import DEFAULT_CUTOFF, DEFAULT_FIELD_WEIGHTS
from .ranking import EMPTY_QUERY_LIMIT


DEFAULT_CONFIG_PATH = Path.home() / ".config" / "promptpad" / "config.yaml"


class SearchConfig(BaseModel):
    debounce_ms: int = 50
    cutoff: float = DEFAULT_CUTOFF
    empty_query_limit: int = EMPTY_QUERY_LIMIT
    field_weights: Dict[str, float] = Field(default_factory=lambda: dict(DEFAULT_FIELD_WEIGHTS))

    @field_validator('cutoff')
    @classmethod
    def validate_cutoff(cls, v: float) -> float:
        if not 0 <= v <= 1:
            raise ValueError("cutoff must be between 0 and 1")
        return v

    @field_validator('debounce_ms', 'empty_query_limit')
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("must not be negative")
        return v

    @field_validator('field_weights')
    @classmethod
    def validate_field_weights(cls, v: Dict[str, float]) -> Dict[str, float]:
        unknown = set(v) - set(DEFAULT_FIELD_WEIGHTS)
        if unknown:
            raise ValueError(f"unknown search fields: {sorted(unknown)}")
        if any(w < 0 for w in v.values()):
            raise ValueError("field weights must not be negative")
        return v


class PasteConfig(BaseModel):
    preserve_clipboard: bool = True
    restore_delay_ms: int = 500


class ApiConfig(BaseModel):
    host: str = "localhost"
    port: int = 8766


class Config(BaseModel):
    """Main configuration for the PromptPad daemon."""

    storage_path: Path = Field(default_factory=lambda: Path.home() / ".prompt-pad")
    hotkey: str = "CommandOrControl+Shift+P"
    theme: Literal["light", "dark", "system"] = "system"
    launch_at_startup: bool = False
    log_level: str = "INFO"
    search: SearchConfig = Field(default_factory=SearchConfig)
    paste: PasteConfig = Field(default_factory=PasteConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)

    @field_validator('storage_path')
    @classmethod
    def validate_storage_path(cls, v: Path) -> Path:
        return Path(v).expanduser()

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"unknown log level: {v}")
        return level

    @classmethod
    def locate(cls, config_path: Optional[Path] = None) -> Optional[Path]:
        """Explicit path, else the first existing search path, else None."""
        if config_path is not None:
            return Path(config_path)
        for candidate in (Path("promptpad.yaml"), DEFAULT_CONFIG_PATH):
            if candidate.exists():
                return candidate
        return None

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "Config":
        """Load configuration from YAML, falling back to defaults."""
        config_path = cls.locate(config_path)
        if config_path is None:
            logger.info("No config file found, using defaults")
            return cls()

        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        logger.info(f"Loading config from: {config_path}")
        with open(config_path, 'r') as f:
            data = yaml.safe_load(f) or {}

        return cls(**data)

    def updated(self, changes: Dict[str, Any]) -> "Config":
        """New config with ``changes`` applied; nested sections merge key by key."""
        data = self.model_dump(mode="json")
        for key, value in changes.items():
            if isinstance(value, dict) and isinstance(data.get(key), dict):
                data[key] = {**data[key], **value}
            else:
                data[key] = value
        return type(self).model_validate(data)

    def save(self, config_path: Path) -> None:
        """Save configuration to YAML file."""
        config_path = Path(config_path)
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, 'w') as f:
            yaml.safe_dump(self.model_dump(mode="json"), f, default_flow_style=False)
