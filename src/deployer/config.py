"""Application configuration using pydantic-settings."""

from __future__ import annotations

from enum import Enum
from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings

from deployer.domain.models.environment import (
    DEFAULT_BRANCH_MAP,
    DEFAULT_ENVIRONMENT_PROFILES,
    EnvironmentName,
    EnvironmentProfile,
)


class Environment(str, Enum):
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTING = "testing"


class HostKeyPolicy(str, Enum):
    """How the remote channel treats unknown host keys."""

    STRICT = "strict"
    ACCEPT_NEW = "accept-new"
    TRUST_ALL = "trust-all"


class ApplicationSettings(BaseSettings):
    """The application being deployed."""

    name: str = Field(default="petclinic", alias="APP_NAME")
    remote_dir: str = Field(default="/home/deploy/petclinic", alias="APP_REMOTE_DIR")
    jar_name: str = Field(default="app.jar", alias="APP_JAR_NAME")
    log_name: str = Field(default="app.log", alias="APP_LOG_NAME")
    container_port: int = Field(default=8080, alias="APP_CONTAINER_PORT")
    health_path: str = Field(default="/actuator/health", alias="APP_HEALTH_PATH")

    model_config = {"env_prefix": "APP_", "extra": "ignore", "populate_by_name": True}


class RemoteSettings(BaseSettings):
    """Remote command channel configuration."""

    host_key_policy: HostKeyPolicy = Field(
        default=HostKeyPolicy.ACCEPT_NEW, alias="REMOTE_HOST_KEY_POLICY"
    )
    connect_timeout: int = Field(default=10, alias="REMOTE_CONNECT_TIMEOUT")
    verbose: bool = Field(default=False, alias="REMOTE_VERBOSE")
    default_user: str = Field(default="deploy", alias="REMOTE_DEFAULT_USER")
    key_path: str = Field(default="", alias="REMOTE_KEY_PATH")
    ssh_binary: str = Field(default="ssh", alias="REMOTE_SSH_BINARY")
    scp_binary: str = Field(default="scp", alias="REMOTE_SCP_BINARY")

    model_config = {"env_prefix": "REMOTE_", "extra": "ignore", "populate_by_name": True}


class ContainerSettings(BaseSettings):
    """Container delivery configuration."""

    use_registry: bool = Field(default=True, alias="CONTAINER_USE_REGISTRY")
    transfer_dir: str = Field(default="/tmp", alias="CONTAINER_TRANSFER_DIR")  # noqa: S108
    remote_transfer_dir: str = Field(default="/tmp", alias="CONTAINER_REMOTE_TRANSFER_DIR")  # noqa: S108
    docker_binary: str = Field(default="docker", alias="CONTAINER_DOCKER_BINARY")

    model_config = {"env_prefix": "CONTAINER_", "extra": "ignore", "populate_by_name": True}


class ProbeSettings(BaseSettings):
    """Health probe defaults."""

    timeout_seconds: float = Field(default=120, alias="PROBE_TIMEOUT")
    interval_seconds: float = Field(default=5, alias="PROBE_INTERVAL")
    via_remote: bool = Field(default=False, alias="PROBE_VIA_REMOTE")

    model_config = {"env_prefix": "PROBE_", "extra": "ignore", "populate_by_name": True}


MEMORY_BUILD_LOG = ":memory:"


class PipelineSettings(BaseSettings):
    """Pipeline orchestration configuration."""

    run_timeout_seconds: float = Field(default=900, alias="PIPELINE_RUN_TIMEOUT_SECONDS")
    settle_seconds: float = Field(default=2, alias="PIPELINE_SETTLE_SECONDS")
    verify_rollback: bool = Field(default=False, alias="PIPELINE_VERIFY_ROLLBACK")
    archive_root: str = Field(default="./data/archive", alias="PIPELINE_ARCHIVE_ROOT")
    build_log: str = Field(default="", alias="PIPELINE_BUILD_LOG")
    lock_ttl_seconds: int = Field(default=3600, alias="PIPELINE_LOCK_TTL_SECONDS")
    artifact_root: str = Field(default="", alias="PIPELINE_ARTIFACT_ROOT")

    @property
    def build_log_path(self) -> Path | None:
        """Where the build log is kept; None keeps it in memory."""
        if self.build_log == MEMORY_BUILD_LOG:
            return None
        return Path(self.build_log) if self.build_log else Path(self.archive_root) / ".build-log.json"

    model_config = {"env_prefix": "PIPELINE_", "extra": "ignore", "populate_by_name": True}


class EnvironmentSettings(BaseSettings):
    """Static branch and environment tables."""

    default_environment: EnvironmentName = Field(
        default=EnvironmentName.TEST, alias="ENV_DEFAULT"
    )
    branch_map: dict[str, EnvironmentName] = Field(
        default_factory=lambda: dict(DEFAULT_BRANCH_MAP), alias="ENV_BRANCH_MAP"
    )
    profiles: dict[EnvironmentName, EnvironmentProfile] = Field(
        default_factory=lambda: dict(DEFAULT_ENVIRONMENT_PROFILES), alias="ENV_PROFILES"
    )

    model_config = {"env_prefix": "ENV_", "extra": "ignore", "populate_by_name": True}


class DatabaseSettings(BaseSettings):
    """Database configuration."""

    host: str = Field(default="localhost", alias="DB_HOST")
    port: int = Field(default=5432, alias="DB_PORT")
    name: str = Field(default="deployer", alias="DB_NAME")
    user: str = Field(default="deployer", alias="DB_USER")
    password: str = Field(default="", alias="DB_PASSWORD")
    pool_size: int = Field(default=5, alias="DB_POOL_SIZE")
    max_overflow: int = Field(default=5, alias="DB_MAX_OVERFLOW")
    pool_timeout: int = Field(default=30, alias="DB_POOL_TIMEOUT")
    enabled: bool = Field(default=False, alias="DB_ENABLED")

    @property
    def async_url(self) -> str:
        return (
            f"postgresql+asyncpg://{self.user}:{self.password}"
            f"@{self.host}:{self.port}/{self.name}"
        )

    model_config = {"env_prefix": "DB_", "extra": "ignore", "populate_by_name": True}


class RedisSettings(BaseSettings):
    """Redis configuration."""

    host: str = Field(default="localhost", alias="REDIS_HOST")
    port: int = Field(default=6379, alias="REDIS_PORT")
    password: str = Field(default="", alias="REDIS_PASSWORD")
    db: int = Field(default=0, alias="REDIS_DB")
    enabled: bool = Field(default=False, alias="REDIS_ENABLED")

    @property
    def url(self) -> str:
        auth = f":{self.password}@" if self.password else ""
        return f"redis://{auth}{self.host}:{self.port}/{self.db}"

    model_config = {"env_prefix": "REDIS_", "extra": "ignore", "populate_by_name": True}


class AuthSettings(BaseSettings):
    """Authentication configuration."""

    secret_key: str = Field(default="change-me-in-production", alias="AUTH_SECRET_KEY")
    algorithm: str = Field(default="HS256", alias="AUTH_ALGORITHM")
    access_token_expire_minutes: int = Field(default=30, alias="AUTH_TOKEN_EXPIRE_MINUTES")
    refresh_token_expire_days: int = Field(default=7, alias="AUTH_REFRESH_TOKEN_EXPIRE_DAYS")

    model_config = {"env_prefix": "AUTH_", "extra": "ignore", "populate_by_name": True}


class ObservabilitySettings(BaseSettings):
    """Observability configuration."""

    otlp_endpoint: str = Field(default="http://localhost:4317", alias="OTLP_ENDPOINT")
    service_name: str = Field(default="branch-deployer", alias="SERVICE_NAME")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    metrics_enabled: bool = Field(default=True, alias="METRICS_ENABLED")
    tracing_enabled: bool = Field(default=False, alias="TRACING_ENABLED")

    model_config = {"env_prefix": "OBS_", "extra": "ignore", "populate_by_name": True}


class RateLimitSettings(BaseSettings):
    """Rate limiting configuration."""

    requests_per_minute: int = Field(default=60, alias="RATE_LIMIT_RPM")
    burst_size: int = Field(default=10, alias="RATE_LIMIT_BURST")

    model_config = {"env_prefix": "RATE_LIMIT_", "extra": "ignore", "populate_by_name": True}


class Settings(BaseSettings):
    """Main application settings."""

    environment: Environment = Field(default=Environment.DEVELOPMENT, alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")
    api_prefix: str = Field(default="/api/v1", alias="API_PREFIX")
    host: str = Field(default="0.0.0.0", alias="HOST")  # noqa: S104
    port: int = Field(default=8000, alias="PORT")
    workers: int = Field(default=1, alias="WORKERS")

    application: ApplicationSettings = Field(default_factory=ApplicationSettings)
    remote: RemoteSettings = Field(default_factory=RemoteSettings)
    container: ContainerSettings = Field(default_factory=ContainerSettings)
    probe: ProbeSettings = Field(default_factory=ProbeSettings)
    pipeline: PipelineSettings = Field(default_factory=PipelineSettings)
    environments: EnvironmentSettings = Field(default_factory=EnvironmentSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    auth: AuthSettings = Field(default_factory=AuthSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)

    model_config = {"env_prefix": "", "extra": "ignore", "populate_by_name": True}


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
