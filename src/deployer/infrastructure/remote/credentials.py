"""Credential provider backed by key files on the orchestrating host."""

from __future__ import annotations

from collections.abc import Mapping

from deployer.domain.ports.services import CredentialProvider


class KeyFileCredentialProvider(CredentialProvider):
    """Hands out a private key path, optionally per environment.

    An empty path leaves key selection to the ssh client configuration.
    """

    def __init__(self, default_key_path: str = "", overrides: Mapping[str, str] | None = None) -> None:
        self._default = default_key_path
        self._overrides = dict(overrides or {})

    def auth_handle_for(self, environment: str) -> str:
        return self._overrides.get(environment, self._default)
