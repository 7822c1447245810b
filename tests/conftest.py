"""Shared test fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from deployer.config import (
    ApplicationSettings,
    AuthSettings,
    ContainerSettings,
    Environment,
    ProbeSettings,
    Settings,
)
from deployer.domain.models.environment import (
    ConnectionProfile,
    DeliveryMethod,
    EnvironmentName,
)
from deployer.infrastructure.auth.jwt_handler import JWTHandler
from deployer.infrastructure.messaging.event_publisher import InMemoryEventPublisher
from deployer.infrastructure.persistence.repositories.in_memory import (
    InMemoryBuildRecordRepository,
    InMemoryPipelineRunRepository,
    InMemoryUserRepository,
)
from tests.fakes import FakeLocalRunner, FakeRemoteHost, FakeSleep


@pytest.fixture(autouse=True)
def clear_stores() -> None:
    """Clear in-memory stores before each test."""
    InMemoryBuildRecordRepository.clear()
    InMemoryPipelineRunRepository.clear()
    InMemoryUserRepository.clear()


@pytest.fixture
def settings() -> Settings:
    return Settings(environment=Environment.TESTING, debug=True)


@pytest.fixture
def auth_settings() -> AuthSettings:
    return AuthSettings(
        secret_key="test-secret-key",
        algorithm="HS256",
        access_token_expire_minutes=30,
    )


@pytest.fixture
def jwt_handler(auth_settings: AuthSettings) -> JWTHandler:
    return JWTHandler(auth_settings)


@pytest.fixture
def build_repo() -> InMemoryBuildRecordRepository:
    return InMemoryBuildRecordRepository()


@pytest.fixture
def run_repo() -> InMemoryPipelineRunRepository:
    return InMemoryPipelineRunRepository()


@pytest.fixture
def user_repo() -> InMemoryUserRepository:
    return InMemoryUserRepository()


@pytest.fixture
def event_publisher() -> InMemoryEventPublisher:
    return InMemoryEventPublisher()


@pytest.fixture
def remote_host() -> FakeRemoteHost:
    return FakeRemoteHost()


@pytest.fixture
def local_runner() -> FakeLocalRunner:
    return FakeLocalRunner()


@pytest.fixture
def fake_sleep() -> FakeSleep:
    return FakeSleep()


@pytest.fixture
def application() -> ApplicationSettings:
    return ApplicationSettings()


@pytest.fixture
def container_settings(tmp_path: Path) -> ContainerSettings:
    return ContainerSettings(transfer_dir=str(tmp_path))


@pytest.fixture
def probe_settings() -> ProbeSettings:
    return ProbeSettings(timeout_seconds=10, interval_seconds=2)


@pytest.fixture
def target_profile() -> ConnectionProfile:
    return ConnectionProfile(
        environment=EnvironmentName.TEST,
        host="10.0.0.10",
        port=8080,
        principal="deploy",
        runtime_profile="dev",
    )


@pytest.fixture
def stage_profile() -> ConnectionProfile:
    return ConnectionProfile(
        environment=EnvironmentName.STAGE,
        host="10.0.2.10",
        port=8080,
        principal="deploy",
        deploy_method=DeliveryMethod.CONTAINER,
        runtime_profile="staging",
    )


@pytest.fixture
def make_jar(tmp_path: Path):
    """Write a jar-shaped file whose content names the build."""

    def _make(name: str = "app.jar", content: str = "build-1") -> Path:
        path = tmp_path / "artifacts" / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
        return path

    return _make
