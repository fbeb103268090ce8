from pydantic import Field
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from app.helpers.config_models.api import ApiModel
from app.helpers.config_models.database import DatabaseModel
from app.helpers.config_models.monitoring import MonitoringModel


class RootModel(BaseSettings):
    """
    Service configuration.

    Any value can be overridden by an env, nested fields joined by `__` (e.g. `DATABASE__MODE=memory`).
    """

    model_config = SettingsConfigDict(
        env_ignore_empty=True,
        env_nested_delimiter="__",
    )

    api: ApiModel = ApiModel()
    database: DatabaseModel
    monitoring: MonitoringModel = MonitoringModel()
    version: str = Field(default="0.0.0-unknown", frozen=True)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],  # noqa: ARG003
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Envs and secrets take precedence over the config file
        return env_settings, dotenv_settings, file_secret_settings, init_settings
