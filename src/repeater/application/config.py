from pathlib import Path
from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from repeater.application.scheduler import SchedulerParameters
from repeater.domain.constants import (
    APP_NAME,
    DATA_SUBDIR,
    DB_FILE_NAME,
    DEFAULT_DESIRED_RETENTION,
    DEFAULT_MAXIMUM_INTERVAL,
    DEFAULT_MINIMUM_INTERVAL,
    DEFAULT_POOL_SIZE,
    FSRS_DEFAULT_WEIGHTS,
)


def config_files() -> list[Path]:
    return [
        Path.home() / f".config/{APP_NAME}/config.toml",
        Path.home() / f".{APP_NAME}.toml",
    ]


class AppConfig(BaseSettings):
    """
    Configuration model for repeater.
    Supports loading from:
    1. Manual overrides (CLI)
    2. Environment variables (REPEATER_*)
    3. Config file (~/.config/repeater/config.toml or ~/.repeater.toml)
    """

    model_config = SettingsConfigDict(
        env_prefix="REPEATER_",
        extra="ignore",
    )

    # Paths
    db_path: Path = Field(default_factory=lambda: Path.home() / DATA_SUBDIR / DB_FILE_NAME)

    # Storage
    pool_size: int = Field(default=DEFAULT_POOL_SIZE, ge=1)

    # Drill selection
    card_limit: int | None = Field(default=None, ge=1)
    new_card_limit: int | None = Field(default=None, ge=0)

    # Scheduler coefficients
    desired_retention: float = DEFAULT_DESIRED_RETENTION
    minimum_interval: int = DEFAULT_MINIMUM_INTERVAL
    maximum_interval: int = DEFAULT_MAXIMUM_INTERVAL
    weights: tuple[float, ...] = FSRS_DEFAULT_WEIGHTS

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

        # First existing file wins
        toml_file = next((f for f in config_files() if f.exists()), None)

        if toml_file:
            return (
                init_settings,
                env_settings,
                TomlConfigSettingsSource(settings_cls, toml_file=toml_file),
            )
        else:
            return (
                init_settings,
                env_settings,
            )

    @field_validator("db_path", mode="before")
    @classmethod
    def resolve_path(cls, v: Any) -> Path:
        return Path(v).expanduser().resolve()

    def scheduler_parameters(self) -> SchedulerParameters:
        """
        Build the validated scheduler coefficients.

        Raises:
            ValueError: The configured coefficients break the scheduling contract.
        """
        return SchedulerParameters(
            weights=tuple(self.weights),
            desired_retention=self.desired_retention,
            minimum_interval=self.minimum_interval,
            maximum_interval=self.maximum_interval,
        )


def resolve_config(cli_overrides: dict[str, Any] | None = None) -> AppConfig:
    """
    Multi-layered configuration resolution.
    1. Defaults in AppConfig
    2. ~/.config/repeater/config.toml (if exists)
    3. Environment variables (REPEATER_*)
    4. cli_overrides (passed from Typer)
    """
    # Typer passes None for options the user did not set; drop them so
    # lower layers still apply.
    overrides = {k: v for k, v in (cli_overrides or {}).items() if v is not None}
    return AppConfig(**overrides)
