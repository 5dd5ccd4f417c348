# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Environment-driven settings for the API and the background workers.

Each concern reads its own prefix (``DB_``, ``REDIS_``, ``JWT_``, ``CORS_``,
``API_``, ``RISK_``); ``.env`` in the working directory is honored.

Example:
    >>> from academy_insights.core.config.settings import get_settings
    >>> settings = get_settings()
    >>> print(settings.risk.batch_concurrency)
    8
"""

from functools import lru_cache
from typing import Literal, Self

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_DEFAULT_JWT_SECRET = "change-this-in-production"


class DatabaseSettings(BaseSettings):
    """Academy database configuration.

    The academy database holds the source activity tables (students,
    study logs, test logs, consultations, funnel events) and the tables
    owned by the analytics core (risk scores, alerts, config versions).

    Attributes:
        user: PostgreSQL username.
        password: PostgreSQL password.
        host: Database host address.
        port: Database port number.
        database: Database name.
        pool_size: Persistent connections kept by the engine.
        max_overflow: Extra connections allowed under burst load.
        echo: Log emitted SQL statements.
    """

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        extra="ignore",
    )

    user: str = "academy"
    password: SecretStr = SecretStr("academy_password")
    host: str = "academy-db"
    port: int = 5432
    database: str = "academy"
    pool_size: int = 10
    max_overflow: int = 20
    echo: bool = False

    @property
    def url(self) -> str:
        """asyncpg URL for SQLAlchemy."""
        pwd = self.password.get_secret_value()
        return f"postgresql+asyncpg://{self.user}:{pwd}@{self.host}:{self.port}/{self.database}"


class RedisSettings(BaseSettings):
    """Redis configuration for message brokering.

    Attributes:
        host: Redis server host.
        port: Redis server port.
        password: Redis password.
        database: Logical Redis database index.
    """

    model_config = SettingsConfigDict(
        env_prefix="REDIS_",
        extra="ignore",
    )

    host: str = "academy-redis"
    port: int = 6379
    password: SecretStr = SecretStr("academy_redis_password")
    database: int = 0

    @property
    def url(self) -> str:
        """URL shared by the Dramatiq broker and its result backend."""
        pwd = self.password.get_secret_value()
        return f"redis://:{pwd}@{self.host}:{self.port}/{self.database}"


class JWTSettings(BaseSettings):
    """JWT verification configuration.

    Tokens are issued by the academy's auth provider; this service only
    verifies them.

    Attributes:
        secret_key: Secret key used to verify token signatures.
        algorithm: Signature algorithm the provider uses.
        audience: Expected audience claim, if any.
        access_token_expire_minutes: Lifetime of tokens minted for service calls.
    """

    model_config = SettingsConfigDict(
        env_prefix="JWT_",
        extra="ignore",
    )

    secret_key: SecretStr = SecretStr(_DEFAULT_JWT_SECRET)
    algorithm: str = "HS256"
    audience: str | None = None
    access_token_expire_minutes: int = 30


class CORSSettings(BaseSettings):
    """Browser origins allowed to call the API.

    Attributes:
        origins: Allowed origins, comma separated.
        allow_credentials: Let browsers send cookies and auth headers.
        allow_methods: Methods allowed cross-origin.
        allow_headers: Request headers allowed cross-origin.
    """

    model_config = SettingsConfigDict(
        env_prefix="CORS_",
        extra="ignore",
    )

    origins: str = "http://localhost:3000"
    allow_credentials: bool = True
    allow_methods: list[str] = ["*"]
    allow_headers: list[str] = ["*"]

    @property
    def origins_list(self) -> list[str]:
        """Origins as a list, blanks dropped."""
        return [origin.strip() for origin in self.origins.split(",") if origin.strip()]


class APISettings(BaseSettings):
    """Uvicorn options used by ``python -m academy_insights``.

    Attributes:
        host: Host to bind to.
        port: Port to listen on.
        workers: Uvicorn worker processes.
        reload: Restart on code changes (development only).
    """

    model_config = SettingsConfigDict(
        env_prefix="API_",
        extra="ignore",
    )

    host: str = "0.0.0.0"
    port: int = 8000
    workers: int = 2
    reload: bool = False


class RiskSettings(BaseSettings):
    """Risk batch and funnel job configuration.

    Scoring weights and thresholds are not here: they live in the
    versioned risk config stored in the database.

    Attributes:
        active_status: Student status that counts as actively enrolled.
        batch_concurrency: Students computed concurrently in one batch run.
        batch_time_budget_seconds: Worker runs of the batch stop starting new
            students after this long; kept under the actor's one hour time limit.
        read_timeout_seconds: Upper bound for each data store read.
        batch_cron: Cron expression for the nightly risk batch.
        funnel_refresh_cron: Cron expression for the days-in-funnel refresh.
        timezone: Timezone used by the scheduler.
        history_limit: Number of past scores returned with a student's score.
        scheduler_enabled: Whether the API process schedules the periodic jobs.
    """

    model_config = SettingsConfigDict(
        env_prefix="RISK_",
        extra="ignore",
    )

    active_status: str = "enrolled"
    batch_concurrency: int = Field(default=8, ge=1, le=64)
    batch_time_budget_seconds: float = Field(default=3300.0, gt=0, lt=3600)
    read_timeout_seconds: float = Field(default=10.0, gt=0)
    batch_cron: str = "0 3 * * *"
    funnel_refresh_cron: str = "30 3 * * *"
    timezone: str = "Asia/Seoul"
    history_limit: int = Field(default=12, ge=1)
    scheduler_enabled: bool = True


class Settings(BaseSettings):
    """Top-level settings; obtain it through get_settings().

    Attributes:
        environment: Deployment environment.
        debug: Enable debug mode.
        log_level: Logging level.
        database: Academy database settings.
        redis: Redis settings.
        jwt: JWT verification settings.
        cors: CORS settings.
        api: API server settings.
        risk: Risk batch and funnel job settings.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "DEBUG"

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    jwt: JWTSettings = Field(default_factory=JWTSettings)
    cors: CORSSettings = Field(default_factory=CORSSettings)
    api: APISettings = Field(default_factory=APISettings)
    risk: RiskSettings = Field(default_factory=RiskSettings)

    @model_validator(mode="after")
    def validate_production_settings(self) -> Self:
        """Refuse the default JWT secret in production.

        Raises:
            ValueError: If JWT_SECRET_KEY was left at its default.
        """
        if self.environment == "production":
            if self.jwt.secret_key.get_secret_value() == _DEFAULT_JWT_SECRET:
                raise ValueError("JWT_SECRET_KEY must be set to a non-default value in production")
        return self

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Settings read once per process; see clear_settings_cache()."""
    return Settings()


def clear_settings_cache() -> None:
    """Forget the cached settings so the environment is read again."""
    get_settings.cache_clear()
