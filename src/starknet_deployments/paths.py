"""Path management utilities for starknet-deployments library."""

from pathlib import Path
from typing import Optional, Union

from .constants import DEFAULT_CONFIG_FILENAME, DEFAULT_REGISTRY_DIRNAME


def get_default_registry_dir() -> Path:
    """
    Get default registry directory (current working directory).

    Returns:
        Path to ./deployments
    """
    return Path.cwd() / DEFAULT_REGISTRY_DIRNAME


def get_default_config_path() -> Path:
    """
    Get default deployment config path.

    Returns:
        Path to ./deployment.yml
    """
    return Path.cwd() / DEFAULT_CONFIG_FILENAME


def get_registry_path(
    network: str, registry_dir: Optional[Union[Path, str]] = None
) -> Path:
    """
    Get the registry file for a network.

    Args:
        network: Network name
        registry_dir: Custom registry directory (defaults to ./deployments)

    Returns:
        Absolute path to <registry_dir>/<network>.json

    Raises:
        ValueError: If the network name could escape the registry directory
    """
    if not network or network in (".", "..") or "/" in network or "\\" in network:
        raise ValueError(f"Invalid network name: {network!r}")

    if registry_dir is None:
        registry_dir = get_default_registry_dir()
    else:
        registry_dir = Path(registry_dir).absolute()

    return registry_dir / f"{network}.json"
