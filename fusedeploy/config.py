"""
Deployment configuration (TOML).

    [deploy]
    state_dir = ".fusedeploy"
    artifacts_dir = "artifacts"
    salt = "fuse-local"
    receipt_timeout = 120

    [networks.localhost]
    rpc_url = "http://127.0.0.1:8545"
    chain_id = "1337"

    [networks.localhost.accounts]
    deployer = "0x..."

    [networks.localhost.keys]
    deployer = "env:DEPLOYER_PRIVATE_KEY"

Relative paths are resolved against the config file's directory.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .errors import ConfigError
from .secrets import is_secret_ref

DEFAULT_CONFIG_NAME = "fusedeploy.toml"
DEFAULT_SALT = "fuse-deploy"


def _coerce_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


@dataclass(frozen=True)
class NetworkConfig:
    name: str
    rpc_url: str
    chain_id: str | None = None
    accounts: dict[str, str] = field(default_factory=dict)
    keys: dict[str, str] = field(default_factory=dict)  # role -> secret reference


@dataclass(frozen=True)
class DeployConfig:
    state_dir: Path
    artifacts_dir: Path
    salt: str = DEFAULT_SALT
    receipt_timeout: float = 120.0
    networks: dict[str, NetworkConfig] = field(default_factory=dict)

    def network(self, name: str) -> NetworkConfig:
        try:
            return self.networks[name]
        except KeyError:
            known = ", ".join(sorted(self.networks)) or "none"
            raise ConfigError(f"Unknown network {name!r} (configured: {known})") from None


def _load_network(name: str, raw: dict[str, Any]) -> NetworkConfig:
    rpc_url = str(raw.get("rpc_url", "")).strip()
    if not rpc_url:
        raise ConfigError(f"networks.{name}.rpc_url is required")

    chain_id = raw.get("chain_id")
    chain_id_str = str(chain_id).strip() if chain_id is not None else None

    accounts = {str(role): str(addr) for role, addr in _coerce_dict(raw.get("accounts")).items()}

    keys: dict[str, str] = {}
    for role, ref in _coerce_dict(raw.get("keys")).items():
        ref_str = str(ref)
        if not is_secret_ref(ref_str):
            raise ConfigError(
                f"networks.{name}.keys.{role} must be a secret reference like 'env:VAR', not a raw key"
            )
        keys[str(role)] = ref_str

    return NetworkConfig(
        name=name,
        rpc_url=rpc_url,
        chain_id=chain_id_str or None,
        accounts=accounts,
        keys=keys,
    )


def load_config(path: Path) -> DeployConfig:
    """Load deployment configuration from TOML."""
    import tomllib

    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")
    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {path}: {e}") from e

    base_dir = path.resolve().parent
    deploy = _coerce_dict(data.get("deploy"))

    salt = str(deploy.get("salt", DEFAULT_SALT)).strip()
    if not salt:
        raise ConfigError("deploy.salt must not be empty")

    try:
        receipt_timeout = float(deploy.get("receipt_timeout", 120))
    except (TypeError, ValueError):
        raise ConfigError("deploy.receipt_timeout must be a number") from None
    if receipt_timeout <= 0:
        raise ConfigError("deploy.receipt_timeout must be positive")

    networks = {
        str(name): _load_network(str(name), _coerce_dict(raw))
        for name, raw in _coerce_dict(data.get("networks")).items()
    }

    return DeployConfig(
        state_dir=base_dir / str(deploy.get("state_dir", ".fusedeploy")),
        artifacts_dir=base_dir / str(deploy.get("artifacts_dir", "artifacts")),
        salt=salt,
        receipt_timeout=receipt_timeout,
        networks=networks,
    )
