"""Address registry: durable (network, name) -> address mapping."""

import json
import logging
import os
import tempfile
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from .constants import DEFAULT_MAX_WRITE_ATTEMPTS
from .encoding import to_felt, to_hex
from .exceptions import DeploymentError, RegistryWriteConflict, UnknownContract
from .paths import get_default_registry_dir, get_registry_path
from .types import DeploymentRecord

logger = logging.getLogger(__name__)

METADATA_FIELDS = ("class_hash", "constructor_args", "transaction_hash", "block_number")


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


def normalize_address(address: Union[str, int]) -> str:
    """Canonical registry form of an address: 0x-prefixed lowercase hex felt."""
    return to_hex(to_felt(address))


def write_json_atomic(path: Path, data: Dict[str, Any]) -> None:
    """
    Write JSON to path via a fsynced temp file and os.replace().

    A reader sees either the old file or the new one, never a partial write.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_fd, tmp_path = tempfile.mkstemp(prefix=f".{path.stem}.", suffix=".tmp", dir=str(path.parent))
    try:
        with os.fdopen(tmp_fd, "w") as f:
            json.dump(data, f, indent=2, sort_keys=True)
            f.write("\n")
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise


class AddressRegistry:
    """
    File-backed registry of deployed contract addresses.

    One JSON file per network lives under the registry directory:

        {
          "network": "testnet",
          "revision": 4,
          "contracts": {
            "Arbiter": {"address": "0x...", "recorded_at": "...", "history": [...], ...}
          }
        }

    Every commit bumps ``revision``. Upserts of a single (network, name) are
    serialized by a per-key lock, and each read-modify-commit holds the
    network's file lock. Writers outside this instance are caught by the
    revision check: a commit whose file revision moved since it was read
    raises RegistryWriteConflict and is retried from a fresh read.
    """

    def __init__(
        self,
        registry_dir: Optional[Union[Path, str]] = None,
        max_write_attempts: int = DEFAULT_MAX_WRITE_ATTEMPTS,
    ):
        """
        Initialize the registry.

        Args:
            registry_dir: Directory holding <network>.json files
                          If None, uses ./deployments
            max_write_attempts: Commits attempted per record() before a
                                RegistryWriteConflict surfaces
        """
        if registry_dir is None:
            registry_dir = get_default_registry_dir()
        if max_write_attempts < 1:
            raise ValueError("max_write_attempts must be at least 1")

        self.registry_dir = Path(registry_dir).absolute()
        self.max_write_attempts = max_write_attempts

        self._guard = threading.Lock()
        self._key_locks: Dict[Tuple[str, str], threading.Lock] = {}
        self._file_locks: Dict[str, threading.Lock] = {}

    # Storage

    def path(self, network: str) -> Path:
        return get_registry_path(network, self.registry_dir)

    def _load(self, network: str) -> Dict[str, Any]:
        path = self.path(network)
        try:
            with open(path) as f:
                data = json.load(f)
        except FileNotFoundError:
            return {"network": network, "revision": 0, "contracts": {}}
        except json.JSONDecodeError as e:
            raise DeploymentError(f"Registry file {path} is not valid JSON: {e}") from e

        if data.get("network", network) != network:
            raise DeploymentError(
                f"Registry file {path} belongs to network '{data['network']}', not '{network}'"
            )
        data.setdefault("network", network)
        data.setdefault("revision", 0)
        data.setdefault("contracts", {})
        return data

    def _key_lock(self, network: str, name: str) -> threading.Lock:
        with self._guard:
            return self._key_locks.setdefault((network, name), threading.Lock())

    def _file_lock(self, network: str) -> threading.Lock:
        with self._guard:
            return self._file_locks.setdefault(network, threading.Lock())

    def _commit(self, network: str, data: Dict[str, Any], read_revision: int) -> None:
        """
        Write data if the on-disk revision still equals read_revision.

        The caller holds the network's file lock.

        Raises:
            RegistryWriteConflict: If another writer committed in between
        """
        current_revision = self._load(network)["revision"]
        if current_revision != read_revision:
            raise RegistryWriteConflict(
                f"Registry for '{network}' moved from revision {read_revision} "
                f"to {current_revision} during write"
            )
        data["revision"] = read_revision + 1
        write_json_atomic(self.path(network), data)

    # Reads

    def get(self, network: str, name: str) -> DeploymentRecord:
        """
        Get the active record for a contract.

        Raises:
            UnknownContract: If no record exists for (network, name)
        """
        entry = self._load(network)["contracts"].get(name)
        if entry is None:
            raise UnknownContract(network, name)
        return _record_from_entry(network, name, entry)

    def resolve(self, network: str, name: str) -> str:
        """
        Resolve a logical contract name to its address on a network.

        Raises:
            UnknownContract: If no record exists for (network, name)
        """
        return self.get(network, name).address

    def resolve_int(self, network: str, name: str) -> int:
        """Resolve a contract address as a felt integer."""
        return to_felt(self.resolve(network, name))

    def has_contract(self, network: str, name: str) -> bool:
        return name in self._load(network)["contracts"]

    def contract_names(self, network: str) -> List[str]:
        """Sorted logical names recorded for a network."""
        return sorted(self._load(network)["contracts"])

    def networks(self) -> List[str]:
        """Networks with a registry file in the registry directory."""
        if not self.registry_dir.exists():
            return []
        return sorted(p.stem for p in self.registry_dir.glob("*.json") if not p.name.startswith("."))

    def history(self, network: str, name: str) -> List[Dict[str, Any]]:
        """
        Previous records for a contract, oldest first.

        Raises:
            UnknownContract: If no record exists for (network, name)
        """
        return list(self.get(network, name).history)

    # Writes

    def record(
        self,
        network: str,
        name: str,
        address: Union[str, int],
        metadata: Optional[Dict[str, Any]] = None,
    ) -> DeploymentRecord:
        """
        Upsert the active record for a contract.

        Recording the same address and metadata again is a no-op. Anything
        else replaces the active record and moves the old one into history.

        Args:
            network: Network name
            name: Logical contract name
            address: Deployed address (hex string or int)
            metadata: Optional class_hash, constructor_args, transaction_hash, block_number

        Returns:
            The active record after the write

        Raises:
            ValueError: If metadata has unknown keys or the address is malformed
            RegistryWriteConflict: If every write attempt raced another writer
        """
        metadata = dict(metadata or {})
        unknown = set(metadata) - set(METADATA_FIELDS)
        if unknown:
            raise ValueError(f"Unknown registry metadata fields: {sorted(unknown)}")
        if not name:
            raise ValueError("Contract name must not be empty")

        entry: Dict[str, Any] = {"address": normalize_address(address)}
        for key in METADATA_FIELDS:
            entry[key] = metadata.get(key)
        if entry["constructor_args"] is not None:
            entry["constructor_args"] = list(entry["constructor_args"])

        with self._key_lock(network, name):
            attempt = 0
            while True:
                attempt += 1
                with self._file_lock(network):
                    data = self._load(network)
                    read_revision = data["revision"]
                    existing = data["contracts"].get(name)

                    if existing is not None and _same_deployment(existing, entry):
                        logger.debug("%s on %s already recorded at %s", name, network, entry["address"])
                        return _record_from_entry(network, name, existing)

                    new_entry = dict(entry, recorded_at=_now(), history=[])
                    if existing is not None:
                        previous = {k: v for k, v in existing.items() if k != "history"}
                        new_entry["history"] = list(existing.get("history", [])) + [previous]
                        logger.warning(
                            "Replacing %s on %s: %s -> %s",
                            name,
                            network,
                            existing.get("address"),
                            entry["address"],
                        )

                    data["contracts"][name] = new_entry
                    try:
                        self._commit(network, data, read_revision)
                    except RegistryWriteConflict:
                        if attempt == self.max_write_attempts:
                            raise
                        logger.info(
                            "Registry write conflict for %s on %s (attempt %d/%d), retrying",
                            name,
                            network,
                            attempt,
                            self.max_write_attempts,
                        )
                        continue

                logger.info("Recorded %s on %s at %s", name, network, entry["address"])
                return _record_from_entry(network, name, new_entry)


def _same_deployment(existing: Dict[str, Any], entry: Dict[str, Any]) -> bool:
    return all(existing.get(key) == value for key, value in entry.items())


def _record_from_entry(network: str, name: str, entry: Dict[str, Any]) -> DeploymentRecord:
    return DeploymentRecord(
        network=network,
        name=name,
        address=entry["address"],
        recorded_at=entry.get("recorded_at", ""),
        class_hash=entry.get("class_hash"),
        constructor_args=entry.get("constructor_args"),
        transaction_hash=entry.get("transaction_hash"),
        block_number=entry.get("block_number"),
        history=list(entry.get("history", [])),
    )
