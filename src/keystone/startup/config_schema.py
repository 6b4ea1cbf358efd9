"""Keystone Configuration Schema.

Pydantic-based validation of the environment snapshot with clear error
messages. The environment is captured once at startup; nothing outside
``capture_environment`` reads ``os.environ``.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import StrEnum
import logging
import os
from pathlib import Path
from types import MappingProxyType
from typing import Any, Literal

from dotenv import dotenv_values
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from keystone.core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

SECRET_MIN_LENGTH = 32
MIN_WORK_FACTOR = 10
MAX_PORT = 65535


class Environment(StrEnum):
    """Valid NODE_ENV values."""

    DEVELOPMENT = "development"
    PRODUCTION = "production"
    TEST = "test"
    STAGING = "staging"


class LogLevel(StrEnum):
    """Valid log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class EnvironmentSchema(BaseSettings):
    """Declarative rules for the raw environment snapshot.

    Only values passed to the constructor are considered; the process
    environment and ``.env`` files are folded into the snapshot beforehand by
    ``capture_environment``.
    """

    node_env: Environment = Field(default=Environment.DEVELOPMENT, alias="NODE_ENV")
    port: int = Field(default=3000, ge=0, le=MAX_PORT, alias="PORT")
    host: str = Field(default="0.0.0.0", alias="HOST")  # noqa: S104
    api_prefix: str = Field(default="api/v1", alias="API_PREFIX")
    log_level: LogLevel = Field(default=LogLevel.INFO, alias="LOG_LEVEL")

    # JWT
    jwt_secret: str = Field(
        min_length=SECRET_MIN_LENGTH, alias="JWT_SECRET", repr=False
    )
    jwt_expiration: str = Field(default="7d", alias="JWT_EXPIRATION")
    jwt_refresh_secret: str = Field(
        min_length=SECRET_MIN_LENGTH, alias="JWT_REFRESH_SECRET", repr=False
    )
    jwt_refresh_expiration: str = Field(default="30d", alias="JWT_REFRESH_EXPIRATION")

    # Security
    bcrypt_rounds: int = Field(
        default=MIN_WORK_FACTOR, ge=MIN_WORK_FACTOR, alias="BCRYPT_ROUNDS"
    )

    # Database
    database_host: str = Field(alias="DATABASE_HOST")
    database_port: int = Field(default=5432, ge=0, le=MAX_PORT, alias="DATABASE_PORT")
    database_user: str = Field(alias="DATABASE_USER")
    database_password: str = Field(alias="DATABASE_PASSWORD", repr=False)
    database_name: str = Field(alias="DATABASE_NAME")

    # Rate limiting
    rate_limit_max: int = Field(default=100, ge=1, alias="RATE_LIMIT_MAX")
    rate_limit_window_ms: int = Field(default=900000, ge=1, alias="RATE_LIMIT_WINDOW_MS")

    # CORS
    cors_origin: str = Field(default="*", alias="CORS_ORIGIN")
    cors_credentials: str | None = Field(default=None, alias="CORS_CREDENTIALS")

    model_config = SettingsConfigDict(
        case_sensitive=True,
        extra="ignore",
        populate_by_name=True,
        frozen=True,
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Read from the explicit snapshot only."""
        return (init_settings,)

    @field_validator("cors_credentials")
    @classmethod
    def validate_cors_credentials(cls, v: str | None) -> str | None:
        """CORS_CREDENTIALS must be a boolean literal when present."""
        if v is not None and v.lower() not in {"true", "false"}:
            msg = f"must be 'true' or 'false', got {v!r}"
            raise ValueError(msg)
        return v

    @classmethod
    def known_variables(cls) -> frozenset[str]:
        """Environment variable names this schema understands."""
        return frozenset(
            field.alias or name for name, field in cls.model_fields.items()
        )


class JwtConfig(BaseModel):
    """Token signing settings."""

    model_config = ConfigDict(frozen=True)

    secret: str = Field(repr=False)
    expires_in: str
    refresh_secret: str = Field(repr=False)
    refresh_expires_in: str


class RateLimitConfig(BaseModel):
    """Request ceiling per client within a fixed window."""

    model_config = ConfigDict(frozen=True)

    max: int
    window_ms: int


class CorsConfig(BaseModel):
    """Cross-origin settings."""

    model_config = ConfigDict(frozen=True)

    origin: Literal["*"] | tuple[str, ...]
    credentials: bool

    @property
    def allow_origins(self) -> list[str]:
        """Origins in the form expected by ``CORSMiddleware``."""
        if self.origin == "*":
            return ["*"]
        return list(self.origin)


class AppConfig(BaseModel):
    """The ``app`` configuration namespace."""

    model_config = ConfigDict(frozen=True)

    node_env: Environment
    port: int
    host: str
    api_prefix: str
    work_factor: int
    log_level: LogLevel
    jwt: JwtConfig
    rate_limit: RateLimitConfig
    cors: CorsConfig


class DatabaseConfig(BaseModel):
    """The ``database`` configuration namespace."""

    model_config = ConfigDict(frozen=True)

    host: str
    port: int
    user: str
    password: str = Field(repr=False)
    name: str


class KeystoneConfig(BaseModel):
    """Validated, immutable configuration for the process lifetime."""

    model_config = ConfigDict(frozen=True)

    app: AppConfig
    database: DatabaseConfig

    @classmethod
    def from_schema(cls, schema: EnvironmentSchema) -> KeystoneConfig:
        """Group validated environment values into typed namespaces."""
        return cls(
            app=AppConfig(
                node_env=schema.node_env,
                port=schema.port,
                host=schema.host,
                api_prefix=schema.api_prefix,
                work_factor=schema.bcrypt_rounds,
                log_level=schema.log_level,
                jwt=JwtConfig(
                    secret=schema.jwt_secret,
                    expires_in=schema.jwt_expiration,
                    refresh_secret=schema.jwt_refresh_secret,
                    refresh_expires_in=schema.jwt_refresh_expiration,
                ),
                rate_limit=RateLimitConfig(
                    max=schema.rate_limit_max,
                    window_ms=schema.rate_limit_window_ms,
                ),
                cors=CorsConfig(
                    origin=parse_cors_origin(schema.cors_origin),
                    credentials=schema.cors_credentials == "true",
                ),
            ),
            database=DatabaseConfig(
                host=schema.database_host,
                port=schema.database_port,
                user=schema.database_user,
                password=schema.database_password,
                name=schema.database_name,
            ),
        )

    @classmethod
    def validate_snapshot(
        cls, snapshot: Mapping[str, str]
    ) -> tuple[KeystoneConfig | None, list[str]]:
        """Validate configuration from an environment snapshot.

        Returns:
            Tuple of (config, errors). Config is None if validation fails.
        """
        try:
            return load_config(snapshot), []
        except ConfigurationError as e:
            return None, e.errors

    def get_startup_summary(self) -> dict[str, Any]:
        """Get startup configuration summary without secret material."""
        db = self.database
        return {
            "environment": self.app.node_env.value,
            "host": self.app.host,
            "port": self.app.port,
            "api_prefix": self.app.api_prefix,
            "log_level": self.app.log_level.value,
            "work_factor": self.app.work_factor,
            "rate_limit": {
                "max": self.app.rate_limit.max,
                "window_ms": self.app.rate_limit.window_ms,
            },
            "cors": {
                "origins": self.app.cors.allow_origins,
                "credentials": self.app.cors.credentials,
            },
            "database": f"{db.user}@{db.host}:{db.port}/{db.name}",
        }


def parse_cors_origin(raw: str) -> Literal["*"] | tuple[str, ...]:
    """Split a comma-separated CORS_ORIGIN value into origins."""
    if raw == "*":
        return "*"
    origins = tuple(o.strip() for o in raw.split(",") if o.strip())
    return origins or "*"


def capture_environment(
    environ: Mapping[str, str] | None = None, *, env_dir: str | Path = "."
) -> Mapping[str, str]:
    """Capture the environment snapshot used for the rest of the process.

    ``.env`` is read first, then ``.env.<NODE_ENV>`` when NODE_ENV is set;
    the process environment overrides both.

    Args:
        environ: Process environment (defaults to ``os.environ``)
        env_dir: Directory holding the ``.env`` files

    Returns:
        Read-only mapping of variable names to raw values
    """
    process_env = dict(os.environ if environ is None else environ)

    env_files = [Path(env_dir) / ".env"]
    node_env = process_env.get("NODE_ENV")
    if node_env:
        env_files.append(Path(env_dir) / f".env.{node_env}")

    snapshot: dict[str, str] = {}
    for path in env_files:
        if path.is_file():
            snapshot.update(
                {k: v for k, v in dotenv_values(path).items() if v is not None}
            )
            logger.debug("Loaded environment file %s", path)

    snapshot.update(process_env)
    return MappingProxyType(snapshot)


def _format_error(error: Mapping[str, Any]) -> str:
    field_path = ".".join(str(loc) for loc in error["loc"])
    return f"{field_path}: {error['msg']}" if field_path else str(error["msg"])


def validate_environment(snapshot: Mapping[str, str]) -> EnvironmentSchema:
    """Apply the schema to a raw snapshot.

    Empty values count as absent. Every violation is collected.

    Raises:
        ConfigurationError: listing each violated rule
    """
    known = EnvironmentSchema.known_variables()
    values = {k: v for k, v in snapshot.items() if k in known and v != ""}

    try:
        return EnvironmentSchema(**values)
    except ValidationError as e:
        raise ConfigurationError([_format_error(err) for err in e.errors()]) from e


def load_config(snapshot: Mapping[str, str]) -> KeystoneConfig:
    """Load and validate configuration with clear error reporting."""
    try:
        schema = validate_environment(snapshot)
    except ConfigurationError as e:
        logger.error("Configuration validation failed:")
        for error in e.errors:
            logger.error("  • %s", error)
        raise

    config = KeystoneConfig.from_schema(schema)
    logger.info("Configuration loaded successfully")
    return config
