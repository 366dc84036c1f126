"""Deployment config loading for starknet-deployments library."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml

from .accounts import resolve_account
from .constants import (
    DEFAULT_POLL_INTERVAL,
    DEFAULT_REGISTRY_DIRNAME,
    DEFAULT_RETRIES,
    DEFAULT_TIMEOUT,
    VARIABLE_PREFIX,
)
from .exceptions import ConfigError
from .paths import get_default_config_path
from .types import NetworkContext

NETWORK_OPTIONS = {"rpc", "account", "timeout", "retries", "poll_interval"}


def _load_yaml(filepath: Path) -> dict:
    """Loads a YAML file."""
    with open(filepath, "r") as file:
        return yaml.safe_load(file) or {}


def resolve_reference(value: Any, environ: Optional[Mapping[str, str]] = None) -> Optional[str]:
    """
    Resolve a "$ENV_VAR" config value; other values are returned as strings.

    Returns:
        The resolved value, or None if the value or variable is unset
    """
    if value is None:
        return None
    if environ is None:
        environ = os.environ
    value = str(value)
    if value.startswith(VARIABLE_PREFIX):
        return environ.get(value[len(VARIABLE_PREFIX):]) or None
    return value


@dataclass
class NetworkConfig:
    """Raw per-network settings, before environment resolution."""

    name: str
    rpc: Optional[str] = None
    account: Optional[str] = None  # Credential reference
    timeout: float = DEFAULT_TIMEOUT
    retries: int = DEFAULT_RETRIES
    poll_interval: float = DEFAULT_POLL_INTERVAL


@dataclass
class DeploymentConfig:
    """Networks, class hashes and plan steps loaded from a deployment file."""

    networks: Dict[str, NetworkConfig]
    registry_dir: Path
    default_network: Optional[str] = None
    classes: Dict[str, str] = field(default_factory=dict)
    steps: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    path: Optional[Path] = None

    @classmethod
    def from_yaml(cls, filepath: Optional[Union[Path, str]] = None) -> "DeploymentConfig":
        """
        Load a deployment config file.

        Args:
            filepath: Path to the YAML file (defaults to ./deployment.yml)

        Raises:
            ConfigError: If the file is missing or malformed
        """
        if filepath is None:
            filepath = get_default_config_path()
        filepath = Path(filepath)
        if not filepath.exists():
            raise ConfigError(f"Deployment config not found at {filepath}")

        try:
            data = _load_yaml(filepath)
        except yaml.YAMLError as e:
            raise ConfigError(f"Deployment config {filepath} is not valid YAML: {e}") from e

        return cls.from_dict(data, base_dir=filepath.parent, path=filepath)

    @classmethod
    def from_dict(
        cls,
        data: Dict[str, Any],
        base_dir: Optional[Path] = None,
        path: Optional[Path] = None,
    ) -> "DeploymentConfig":
        """
        Build a config from parsed YAML data.

        Relative registry directories are taken relative to base_dir
        (defaults to the current working directory).
        """
        if not isinstance(data, dict):
            raise ConfigError("Deployment config must be a mapping")
        base_dir = Path(base_dir) if base_dir is not None else Path.cwd()

        raw_networks = data.get("networks")
        if not raw_networks or not isinstance(raw_networks, dict):
            raise ConfigError("Deployment config missing 'networks' mapping")

        networks = {
            str(name): _parse_network(str(name), options or {})
            for name, options in raw_networks.items()
        }

        default_network = data.get("default_network")
        if default_network is not None and default_network not in networks:
            raise ConfigError(f"default_network '{default_network}' is not a configured network")

        classes = data.get("classes") or {}
        if not isinstance(classes, dict):
            raise ConfigError("'classes' must map contract names to class hashes")

        steps = data.get("steps") or {}
        if not isinstance(steps, dict):
            raise ConfigError("'steps' must map step names to step definitions")
        for step_name, step_data in steps.items():
            if not isinstance(step_data, dict):
                raise ConfigError(f"Malformed definition for step '{step_name}'")

        registry_dir = Path(data.get("registry") or DEFAULT_REGISTRY_DIRNAME)
        if not registry_dir.is_absolute():
            registry_dir = base_dir / registry_dir

        return cls(
            networks=networks,
            registry_dir=registry_dir.absolute(),
            default_network=default_network,
            classes={str(k): str(v) for k, v in classes.items()},
            steps={str(k): v for k, v in steps.items()},
            path=path,
        )

    def select_network(self, network: Optional[str] = None) -> str:
        """
        Pick the network for a run: the override, else the default, else the only one.

        Raises:
            ConfigError: If no network can be chosen or it is not configured
        """
        if network is None:
            network = self.default_network
        if network is None:
            if len(self.networks) != 1:
                raise ConfigError("No network given and no default_network configured")
            network = next(iter(self.networks))
        if network not in self.networks:
            raise ConfigError(f"Network '{network}' is not configured")
        return network

    def context(
        self, network: Optional[str] = None, environ: Optional[Mapping[str, str]] = None
    ) -> NetworkContext:
        """
        Build the immutable NetworkContext for a run.

        Raises:
            ConfigError: If the network or its RPC endpoint is not configured
            MissingCredential: If the network has no usable account
        """
        network = self.select_network(network)
        network_config = self.networks[network]

        rpc_url = resolve_reference(network_config.rpc, environ)
        if not rpc_url:
            raise ConfigError(f"No RPC endpoint configured for network '{network}'")

        return NetworkContext(
            network=network,
            rpc_url=rpc_url,
            account=resolve_account(network_config.account, network, environ),
            timeout=network_config.timeout,
            retries=network_config.retries,
            poll_interval=network_config.poll_interval,
        )


def _parse_network(name: str, options: Dict[str, Any]) -> NetworkConfig:
    if not isinstance(options, dict):
        raise ConfigError(f"Malformed settings for network '{name}'")

    unknown = set(options) - NETWORK_OPTIONS
    if unknown:
        raise ConfigError(f"Unknown options for network '{name}': {sorted(unknown)}")

    try:
        timeout = float(options.get("timeout", DEFAULT_TIMEOUT))
        retries = int(options.get("retries", DEFAULT_RETRIES))
        poll_interval = float(options.get("poll_interval", DEFAULT_POLL_INTERVAL))
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid numeric option for network '{name}': {e}") from e

    if timeout < 0 or retries < 0 or poll_interval <= 0:
        raise ConfigError(
            f"Network '{name}' needs timeout >= 0, retries >= 0 and poll_interval > 0"
        )

    return NetworkConfig(
        name=name,
        rpc=options.get("rpc"),
        account=options.get("account"),
        timeout=timeout,
        retries=retries,
        poll_interval=poll_interval,
    )
