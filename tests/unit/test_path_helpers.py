"""Unit tests for path helper functions."""

from pathlib import Path

import pytest

from starknet_deployments.paths import (
    get_default_config_path,
    get_default_registry_dir,
    get_registry_path,
)


class TestDefaultPaths:
    """Test the default registry and config locations."""

    def test_registry_dir_in_working_directory(self, tmp_path: Path, monkeypatch):
        """Test that the default registry dir is ./deployments."""
        monkeypatch.chdir(tmp_path)
        registry_dir = get_default_registry_dir()

        assert isinstance(registry_dir, Path)
        assert registry_dir == tmp_path / "deployments"

    def test_config_path_in_working_directory(self, tmp_path: Path, monkeypatch):
        """Test that the default config is ./deployment.yml."""
        monkeypatch.chdir(tmp_path)
        assert get_default_config_path() == tmp_path / "deployment.yml"

    def test_returns_absolute_paths(self):
        """Test that returned paths are absolute."""
        assert get_default_registry_dir().is_absolute()
        assert get_default_config_path().is_absolute()


class TestGetRegistryPath:
    """Test the get_registry_path function."""

    def test_one_file_per_network(self, tmp_path: Path):
        """Test that each network gets its own JSON file."""
        testnet = get_registry_path("testnet", tmp_path)
        mainnet = get_registry_path("mainnet", tmp_path)

        assert testnet == tmp_path / "testnet.json"
        assert mainnet == tmp_path / "mainnet.json"

    def test_custom_dir_as_string(self, tmp_path: Path):
        """Test that the registry dir can be provided as string."""
        path = get_registry_path("testnet", str(tmp_path / "registry"))
        assert path == tmp_path / "registry" / "testnet.json"

    def test_default_dir(self, tmp_path: Path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        assert get_registry_path("testnet") == tmp_path / "deployments" / "testnet.json"

    @pytest.mark.parametrize("network", ["", ".", "..", "../mainnet", "a/b", "a\\b"])
    def test_rejects_names_escaping_the_directory(self, network: str, tmp_path: Path):
        """Test that a network name cannot point outside the registry dir."""
        with pytest.raises(ValueError):
            get_registry_path(network, tmp_path)
