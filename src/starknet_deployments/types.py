"""Data types and dataclasses for starknet-deployments library."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence


@dataclass
class DeploymentRecord:
    """A deployed contract as stored in the address registry."""

    # Required fields
    network: str  # e.g., "testnet"
    name: str  # Logical contract name, e.g., "ModuleController"
    address: str  # 0x-prefixed felt hex
    recorded_at: str  # UTC timestamp of the registry write

    # Optional deployment metadata
    class_hash: Optional[str] = None
    constructor_args: Optional[List[Any]] = None
    transaction_hash: Optional[str] = None
    block_number: Optional[int] = None

    # Previous records for this name, oldest first
    history: List[Dict[str, Any]] = field(default_factory=list)


@dataclass(frozen=True)
class AccountRef:
    """Owner account resolved from configuration."""

    address: str
    credential: str  # The configured reference, e.g. "$STARKNET_ACCOUNT"


@dataclass(frozen=True)
class NetworkContext:
    """Per-run network settings, passed explicitly into every call."""

    network: str
    rpc_url: str
    account: AccountRef
    timeout: float = 300.0  # Max seconds to wait for confirmation
    retries: int = 0  # Bounded resubmission count for transport failures
    poll_interval: float = 5.0


@dataclass(frozen=True)
class CallSpec:
    """A single invoke of an entrypoint on a deployed contract."""

    target: str  # Contract address
    entrypoint: str  # Entrypoint name, e.g. "Set_module_access"
    calldata: Sequence[Any] = ()


class ReceiptStatus(Enum):
    """
    Transaction status as reported by the network.

    PENDING covers every non-final state (received, not yet accepted).
    """

    ACCEPTED = "accepted"
    REJECTED = "rejected"
    REVERTED = "reverted"
    PENDING = "pending"


@dataclass
class DeploymentReceipt:
    """Outcome of a deploy or invoke transaction."""

    transaction_hash: str
    status: ReceiptStatus
    contract_address: Optional[str] = None  # Only for creations
    block_number: Optional[int] = None
    revert_reason: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status is ReceiptStatus.ACCEPTED
