from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    DATABASE_URL: str = Field(
        default="sqlite+aiosqlite:///./control_plane.db",
        description="Async database URL used by the repositories"
    )

    CONTAINER_COUNT_MAX: int = Field(
        default=3,
        description="Default container_count_max for new container requests"
    )

    PREEMPTIBLE_INSTANCES: bool = Field(
        default=False,
        description="Whether this deployment offers preemptible capacity"
    )

    ARTIFACT_NAME_RETRIES: int = 5  # rename attempts on artifact name conflicts

    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool | None = None  # None = JSON unless stdout is a tty
    SERVICE_NAME: str = "container-request-control-plane"

    model_config = SettingsConfigDict(
        env_file=".env"
    )


settings = Settings()
