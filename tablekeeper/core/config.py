from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    PROJECT_NAME: str = "Tablekeeper Booking API"
    API_V1_STR: str = "/api/v1"
    SECRET_KEY: str = "changeme"
    LOG_LEVEL: str = "INFO"

    # Database
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "12345"
    POSTGRES_DB: str = "tablekeeper_db"
    POSTGRES_PORT: int = 5432
    DATABASE_URL: str = ""

    # Distributed locks. "redis" in production, "database" when only the
    # relational store is shared between instances.
    LOCK_BACKEND: str = "redis"
    REDIS_URL: str = "redis://localhost:6379/0"
    LOCK_KEY_PREFIX: str = "booking-lock:"
    LOCK_TTL_SECONDS: float = 10.0
    LOCK_MAX_WAIT_SECONDS: float = 5.0
    LOCK_BACKOFF_BASE_SECONDS: float = 0.02
    LOCK_BACKOFF_MAX_SECONDS: float = 0.5
    LOCK_SWEEP_INTERVAL_SECONDS: int = 300

    # Booking engine
    MAX_COMBINATION_TABLES: int = 3
    PERSISTENCE_RETRIES: int = 2
    POLICY_CACHE_TTL_SECONDS: float = 30.0

    # Lifecycle events: "memory" keeps them in-process, "redis" publishes them
    EVENT_BACKEND: str = "memory"
    EVENT_CHANNEL_PREFIX: str = "restaurant-events"

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore"
    )

    def assemble_db_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

settings = Settings()
settings.DATABASE_URL = settings.assemble_db_url()
