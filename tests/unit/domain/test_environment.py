"""Unit tests for environment models and branch resolution."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from deployer.domain.models.environment import (
    ConnectionProfile,
    DEFAULT_BRANCH_MAP,
    DEFAULT_ENVIRONMENT_PROFILES,
    DeliveryMethod,
    EnvironmentName,
    EnvironmentProfile,
)
from deployer.domain.services.resolver import EnvironmentResolver
from deployer.infrastructure.remote.credentials import KeyFileCredentialProvider


@pytest.fixture
def resolver() -> EnvironmentResolver:
    return EnvironmentResolver(
        branch_map=DEFAULT_BRANCH_MAP,
        profiles=DEFAULT_ENVIRONMENT_PROFILES,
        credentials=KeyFileCredentialProvider("/keys/deploy", {"prod": "/keys/prod"}),
    )


class TestConnectionProfile:
    def test_destination(self) -> None:
        profile = ConnectionProfile(
            environment=EnvironmentName.TEST, host="10.0.0.10", port=8080, principal="deploy",
        )
        assert profile.destination == "deploy@10.0.0.10"

    def test_health_url(self) -> None:
        profile = ConnectionProfile(
            environment=EnvironmentName.TEST, host="10.0.0.10", port=9090, principal="deploy",
        )
        assert profile.health_url("/actuator/health") == "http://10.0.0.10:9090/actuator/health"
        assert profile.health_url("health", host="localhost") == "http://localhost:9090/health"

    def test_local_targets(self) -> None:
        remote = ConnectionProfile(
            environment=EnvironmentName.TEST, host="10.0.0.10", port=8080, principal="deploy",
        )
        local = remote.model_copy(update={"host": ""})
        assert not remote.is_local
        assert local.is_local
        assert local.health_url("/actuator/health") == "http://localhost:8080/actuator/health"

    def test_frozen(self) -> None:
        profile = ConnectionProfile(
            environment=EnvironmentName.TEST, host="h", port=8080, principal="deploy",
        )
        with pytest.raises(ValidationError):
            profile.host = "other"

    def test_auth_handle_not_in_repr(self) -> None:
        profile = ConnectionProfile(
            environment=EnvironmentName.TEST, host="h", port=8080, principal="deploy",
            auth_handle="/secret/key",
        )
        assert "/secret/key" not in repr(profile)


class TestEnvironmentResolver:
    @pytest.mark.parametrize(
        ("branch", "expected"),
        [
            ("main", EnvironmentName.PROD),
            ("release", EnvironmentName.STAGE),
            ("uat", EnvironmentName.UAT),
            ("develop", EnvironmentName.TEST),
        ],
    )
    def test_mapped_branches(
        self, resolver: EnvironmentResolver, branch: str, expected: EnvironmentName
    ) -> None:
        assert resolver.resolve(branch).environment == expected

    def test_unmapped_branch_uses_default(self, resolver: EnvironmentResolver) -> None:
        profile = resolver.resolve("feature/login")
        assert profile.environment == EnvironmentName.TEST
        assert profile.host == "10.0.0.10"

    @pytest.mark.parametrize("branch", [None, "", "   "])
    def test_missing_branch_uses_default(
        self, resolver: EnvironmentResolver, branch: str | None
    ) -> None:
        assert resolver.resolve(branch).environment == EnvironmentName.TEST

    def test_prod_requires_approval(self, resolver: EnvironmentResolver) -> None:
        profile = resolver.resolve("main")
        assert profile.requires_approval is True
        assert profile.deploy_method == DeliveryMethod.CONTAINER
        assert resolver.resolve("develop").requires_approval is False

    def test_credentials_per_environment(self, resolver: EnvironmentResolver) -> None:
        assert resolver.resolve("main").auth_handle == "/keys/prod"
        assert resolver.resolve("develop").auth_handle == "/keys/deploy"

    def test_runtime_profile_falls_back_to_environment_name(self) -> None:
        resolver = EnvironmentResolver(
            branch_map={},
            profiles={
                EnvironmentName.TEST: EnvironmentProfile(name=EnvironmentName.TEST, host="h"),
            },
        )
        assert resolver.resolve("x").runtime_profile == "test"

    def test_environment_without_profile_uses_default_profile(self) -> None:
        resolver = EnvironmentResolver(
            branch_map={"main": EnvironmentName.PROD},
            profiles={
                EnvironmentName.TEST: EnvironmentProfile(name=EnvironmentName.TEST, host="t"),
            },
        )
        profile = resolver.resolve("main")
        assert profile.environment == EnvironmentName.TEST
        assert profile.host == "t"

    def test_default_environment_must_have_profile(self) -> None:
        with pytest.raises(ValueError):
            EnvironmentResolver(branch_map={}, profiles={})

    def test_resolution_is_repeatable(self, resolver: EnvironmentResolver) -> None:
        assert resolver.resolve("release") == resolver.resolve("release")
