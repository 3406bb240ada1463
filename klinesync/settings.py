"""Engine configuration."""

from __future__ import annotations

import tomllib
from datetime import timedelta
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import (
    DEFAULT_MAX_LENGTH,
    DEFAULT_REST_URL,
    DEFAULT_SNAPSHOT_LIMIT,
    DEFAULT_WINDOW_MS,
    DEFAULT_WS_URL,
    MAX_SNAPSHOT_LIMIT,
)
from .intervals import validate

__all__ = ["EngineSettings", "load_settings"]


class EngineSettings(BaseSettings):
    """Whitelists, bounds and endpoints consumed by the engine."""

    model_config = SettingsConfigDict(
        env_prefix="KLINESYNC_",
        env_nested_delimiter="__",
        env_file=".env",
        extra="ignore",
    )

    symbols: Dict[str, str] = Field(
        default_factory=lambda: {"ETH": "ETHUSDT", "BNB": "BNBUSDT", "DOT": "DOTUSDT"},
        description="Display alias -> exchange symbol",
    )
    intervals: List[str] = Field(default_factory=lambda: ["1m", "3m", "5m"])
    default_symbol: str = Field("ETH")
    default_interval: str = Field("1m")

    max_length: int = Field(DEFAULT_MAX_LENGTH, ge=1, description="Candles kept per target")
    window: timedelta = Field(
        timedelta(milliseconds=DEFAULT_WINDOW_MS), description="Visible trailing window"
    )
    snapshot_window: Optional[timedelta] = Field(
        None, description="History requested on a switch; defaults to the visible window"
    )
    snapshot_limit: int = Field(DEFAULT_SNAPSHOT_LIMIT, ge=1, le=MAX_SNAPSHOT_LIMIT)

    rest_url: str = Field(DEFAULT_REST_URL)
    ws_url: str = Field(DEFAULT_WS_URL)
    request_timeout: float = Field(10.0, gt=0)
    open_timeout: float = Field(10.0, gt=0)

    @field_validator("symbols")
    @classmethod
    def _upper_symbols(cls, value: Dict[str, str]) -> Dict[str, str]:
        if not value:
            raise ValueError("at least one symbol must be enabled")
        return {alias.upper(): symbol.upper() for alias, symbol in value.items()}

    @field_validator("intervals")
    @classmethod
    def _known_intervals(cls, value: List[str]) -> List[str]:
        if not value:
            raise ValueError("at least one interval must be enabled")
        return [validate(raw) for raw in value]

    @field_validator("window", "snapshot_window")
    @classmethod
    def _positive_window(cls, value: Optional[timedelta]) -> Optional[timedelta]:
        if value is not None and value <= timedelta(0):
            raise ValueError("window must be positive")
        return value

    @model_validator(mode="after")
    def _defaults_enabled(self) -> "EngineSettings":
        self.resolve_symbol(self.default_symbol)
        self.default_interval = self.resolve_interval(self.default_interval)
        return self

    @property
    def window_ms(self) -> int:
        return int(self.window.total_seconds() * 1000)

    @property
    def snapshot_window_ms(self) -> int:
        window = self.snapshot_window or self.window
        return int(window.total_seconds() * 1000)

    def resolve_symbol(self, raw: str) -> str:
        """Map an alias (``ETH``) or an enabled exchange symbol to the exchange symbol."""
        key = raw.strip().upper()
        if key in self.symbols:
            return self.symbols[key]
        if key in self.symbols.values():
            return key
        raise ValueError(f"Symbol not enabled: {raw}")

    def resolve_interval(self, raw: str) -> str:
        return validate(raw, self.intervals)


def load_settings(path: Optional[Path] = None) -> EngineSettings:
    """Load settings from a TOML file, falling back to environment variables."""

    if path is None:
        path = Path("config/klinesync.toml")

    try:
        if path.exists():
            return EngineSettings.model_validate(tomllib.loads(path.read_text()))
        return EngineSettings()
    except ValidationError as exc:
        raise ValueError(f"Invalid klinesync configuration: {exc}") from exc
