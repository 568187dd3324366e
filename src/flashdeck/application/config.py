from pathlib import Path
from typing import Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from flashdeck.domain.constants import (
    ASSUMED_CAPACITY_BYTES,
    DEFAULT_FORECAST_DAYS,
    DEFAULT_INSIGHT_LIMIT,
    DEFAULT_KEY_PREFIX,
    MAX_HISTORY_DAYS,
    QUOTA_CLEANUP_DAYS,
    READ_CACHE_TTL,
    WRITE_DEBOUNCE,
)


def config_files() -> list[Path]:
    return [
        Path.home() / ".config/flashdeck/config.toml",
        Path.home() / ".flashdeck.toml",
    ]


class AppConfig(BaseSettings):
    """
    Configuration model for flashdeck.
    Supports loading from:
    1. Environment variables (FLASHDECK_*)
    2. Config file (~/.config/flashdeck/config.toml or ~/.flashdeck.toml)
    3. Manual overrides (CLI)
    """

    model_config = SettingsConfigDict(
        env_prefix="FLASHDECK_",
        extra="ignore",
    )

    # Paths
    data_dir: Path = Field(default_factory=lambda: Path.home() / ".local/share/flashdeck")

    # Storage
    backend: Literal["file", "memory"] = "file"
    key_prefix: str = DEFAULT_KEY_PREFIX
    capacity_bytes: int = Field(default=ASSUMED_CAPACITY_BYTES, gt=0)
    write_debounce_ms: int = Field(default=int(WRITE_DEBOUNCE * 1000), ge=0)
    read_cache_ttl_seconds: float = Field(default=READ_CACHE_TTL, ge=0)
    history_retention_days: int = Field(default=MAX_HISTORY_DAYS, gt=0)
    quota_cleanup_days: int = Field(default=QUOTA_CLEANUP_DAYS, gt=0)

    # Statistics
    forecast_days: int = Field(default=DEFAULT_FORECAST_DAYS, gt=0)
    challenging_limit: int = Field(default=DEFAULT_INSIGHT_LIMIT, gt=0)

    verbose: int = 1

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        from pydantic_settings import TomlConfigSettingsSource

        # First existing config file wins
        toml_file = next((f for f in config_files() if f.exists()), None)

        if toml_file:
            return (
                init_settings,
                env_settings,
                TomlConfigSettingsSource(settings_cls, toml_file=toml_file),
            )
        return (init_settings, env_settings)

    @field_validator("data_dir", mode="before")
    @classmethod
    def resolve_path(cls, v: Any) -> Path:
        return Path(v).expanduser().resolve()

    @property
    def write_debounce(self) -> float:
        return self.write_debounce_ms / 1000


def resolve_config(cli_overrides: dict[str, Any] | None = None) -> AppConfig:
    """
    Multi-layered configuration resolution.
    1. Defaults in AppConfig
    2. ~/.config/flashdeck/config.toml (if exists)
    3. Environment variables (FLASHDECK_*)
    4. cli_overrides (passed from Typer)
    """
    overrides = {k: v for k, v in (cli_overrides or {}).items() if v is not None}
    return AppConfig(**overrides)
