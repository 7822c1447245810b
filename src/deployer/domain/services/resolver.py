"""Branch to environment resolution."""

from __future__ import annotations

from collections.abc import Mapping

import structlog

from deployer.domain.models.environment import (
    ConnectionProfile,
    EnvironmentName,
    EnvironmentProfile,
)
from deployer.domain.ports.services import CredentialProvider


logger = structlog.get_logger(__name__)


class EnvironmentResolver:
    """Maps a branch name to the connection profile of its environment.

    Unmapped or missing branches deploy to the default environment; an
    environment without a profile falls back to the default profile.
    """

    def __init__(
        self,
        branch_map: Mapping[str, EnvironmentName],
        profiles: Mapping[EnvironmentName, EnvironmentProfile],
        credentials: CredentialProvider | None = None,
        default_environment: EnvironmentName = EnvironmentName.TEST,
    ) -> None:
        if default_environment not in profiles:
            raise ValueError(f"No profile for default environment {default_environment.value}")
        self._branch_map = dict(branch_map)
        self._profiles = dict(profiles)
        self._credentials = credentials
        self._default = default_environment

    def environment_for(self, branch: str | None) -> EnvironmentName:
        if not branch:
            return self._default
        return self._branch_map.get(branch.strip(), self._default)

    def resolve(self, branch: str | None) -> ConnectionProfile:
        environment = self.environment_for(branch)
        static = self._profiles.get(environment) or self._profiles[self._default]
        auth_handle = (
            self._credentials.auth_handle_for(static.name.value) if self._credentials else ""
        )

        logger.debug(
            "branch_resolved",
            branch=branch,
            environment=static.name.value,
            host=static.host,
        )
        return ConnectionProfile(
            environment=static.name,
            host=static.host,
            port=static.port,
            principal=static.principal,
            auth_handle=auth_handle,
            ssh_port=static.ssh_port,
            deploy_method=static.deploy_method,
            runtime_profile=static.runtime_profile or static.name.value,
            requires_approval=static.requires_approval,
        )
