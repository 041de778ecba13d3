"""tradebench.core.config

Two config surfaces only:
1) `config/default.yaml` (or `config/user.yaml` when present)
2) Environment variables, prefixed ``TRADEBENCH_``

The ``strategy`` section is the strategy configuration document (id
``main``) that the live bot also trades from. It is a closed record:
unknown keys are an error, not an extension point.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource

from tradebench.core.exceptions import ConfigurationError

STRATEGY_DOCUMENT_ID = "main"


class NoAtrExit(BaseModel):
    """Strategy trades without ATR-based stop/target levels."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: Literal["none"] = "none"


class AtrExit(BaseModel):
    """ATR-scaled stop loss and take profit.

    Period and both multipliers travel together; a config cannot carry one
    without the others.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: Literal["atr"] = "atr"
    period: int = Field(default=14, ge=1)
    stop_loss_multiplier: float = Field(default=2.0, gt=0)
    take_profit_multiplier: float = Field(default=3.0, gt=0)


ExitPolicy = Annotated[NoAtrExit | AtrExit, Field(discriminator="kind")]


class StrategyConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str = "3 EMA + ATR"
    target_symbols: list[str] = ["BTC/USDT", "ETH/USDT", "ADA/USDT"]
    ema_short_period: int = Field(default=9, ge=1)
    ema_medium_period: int = Field(default=21, ge=1)
    ema_long_period: int | None = Field(default=55, ge=1)
    timeframe: str | None = "1h"
    trading_enabled: bool = False
    exit: ExitPolicy = Field(default_factory=AtrExit)

    @field_validator("target_symbols")
    @classmethod
    def symbols_are_normalized(cls, v: list[str]) -> list[str]:
        return [s.strip().upper() for s in v if s.strip()]


class BacktestDefaults(BaseModel):
    initial_capital: float = Field(default=10_000.0, gt=0)
    trade_amount_usd: float = Field(default=100.0, gt=0)


class LoggingConfig(BaseModel):
    level: str = "INFO"
    json_output: bool = False


class Config(BaseSettings):
    """Root configuration. Single source of truth."""

    config_dir: Path = Path("config")

    strategy: StrategyConfig = Field(default_factory=StrategyConfig)
    backtest: BacktestDefaults = Field(default_factory=BacktestDefaults)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"env_prefix": "TRADEBENCH_", "env_nested_delimiter": "__"}

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # YAML values arrive as init kwargs; environment wins over them.
        return env_settings, init_settings, dotenv_settings, file_secret_settings

    @classmethod
    def from_yaml(cls, path: Path) -> Config:
        if not path.exists():
            raise ConfigurationError(f"Config file not found: {path}")

        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        if not isinstance(raw, dict):
            raise ConfigurationError(f"Config file must contain a mapping: {path}")

        try:
            return cls(**raw)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid config {path}: {e}") from e

    @classmethod
    def from_repo_defaults(cls, repo_root: Path | None = None) -> Config:
        root = repo_root or Path.cwd()
        user = root / "config" / "user.yaml"
        if user.exists():
            return cls.from_yaml(user)
        return cls.from_yaml(root / "config" / "default.yaml")
