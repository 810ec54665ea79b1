"""
Signing-key references.

Private keys never appear in configuration, the store or the journal.
Config holds a reference such as "env:DEPLOYER_PRIVATE_KEY"; the key is
resolved only when a signer is built.

The reference format is: "<provider>:<key>"
- env:VAR_NAME - environment variable
"""

from __future__ import annotations

import os
from typing import Mapping, Protocol

from .errors import ConfigError


class SecretsProvider(Protocol):
    """Protocol for resolving secret references to values."""

    def supports(self, ref: str) -> bool:
        ...

    def get(self, ref: str) -> str | None:
        ...


class EnvSecretsProvider:
    """
    Resolve secrets from environment variables.

    Example: "env:DEPLOYER_PRIVATE_KEY" resolves to os.environ["DEPLOYER_PRIVATE_KEY"]
    """

    PREFIX = "env:"

    def supports(self, ref: str) -> bool:
        return ref.startswith(self.PREFIX)

    def get(self, ref: str) -> str | None:
        if not self.supports(ref):
            return None
        return os.environ.get(ref[len(self.PREFIX) :])


class CompositeSecretsProvider:
    """Try each provider in order until one returns a value."""

    def __init__(self, providers: list[SecretsProvider] | None = None):
        self.providers = providers or [EnvSecretsProvider()]

    def supports(self, ref: str) -> bool:
        return any(p.supports(ref) for p in self.providers)

    def get(self, ref: str) -> str | None:
        for provider in self.providers:
            if provider.supports(ref):
                value = provider.get(ref)
                if value is not None:
                    return value
        return None


def is_secret_ref(value: str) -> bool:
    """A reference has a provider prefix; a bare hex string is a raw key."""
    prefix, sep, rest = value.partition(":")
    return bool(sep) and bool(rest) and prefix.isidentifier()


def resolve_signing_keys(
    refs: Mapping[str, str],
    provider: SecretsProvider | None = None,
) -> dict[str, str]:
    """
    Resolve role → key reference into role → private key.

    Raises:
        ConfigError: if a reference cannot be resolved
    """
    provider = provider or CompositeSecretsProvider()
    keys: dict[str, str] = {}
    for role, ref in refs.items():
        if not provider.supports(ref):
            raise ConfigError(f"Unsupported secret reference for role {role!r}: {ref.split(':', 1)[0]}:…")
        value = provider.get(ref)
        if value is None:
            raise ConfigError(f"Secret reference {ref} for role {role!r} is not set")
        keys[role] = value
    return keys
