"""
starknet-deployments: Python library for deploying and wiring StarkNet contracts
"""

from importlib.metadata import PackageNotFoundError, version

from .accounts import AccountProvider, Signer, resolve_account
from .clients import DeploymentClient, ExecutionClient
from .config import DeploymentConfig
from .encoding import encode_calldata, encode_short_string, get_selector_from_name, to_felt
from .exceptions import (
    CalldataEncodingError,
    ConfigError,
    DeploymentError,
    DeploymentRejected,
    DeploymentTimeout,
    EntrypointNotFound,
    ExecutionReverted,
    ExecutionTimeout,
    MissingCredential,
    PlanError,
    RegistryWriteConflict,
    RpcError,
    StepFailed,
    TransportError,
    UnknownContract,
)
from .orchestrator import DeployStep, ExecuteStep, Orchestrator, StepResult, StepState
from .registry import AddressRegistry
from .types import (
    AccountRef,
    CallSpec,
    DeploymentReceipt,
    DeploymentRecord,
    NetworkContext,
    ReceiptStatus,
)

try:
    __version__ = version("starknet-deployments")
except PackageNotFoundError:
    __version__ = None

__all__ = [
    "AddressRegistry",
    "AccountProvider",
    "Signer",
    "resolve_account",
    "DeploymentClient",
    "ExecutionClient",
    "DeploymentConfig",
    "Orchestrator",
    "DeployStep",
    "ExecuteStep",
    "StepResult",
    "StepState",
    "AccountRef",
    "CallSpec",
    "DeploymentReceipt",
    "DeploymentRecord",
    "NetworkContext",
    "ReceiptStatus",
    "encode_calldata",
    "encode_short_string",
    "get_selector_from_name",
    "to_felt",
    "DeploymentError",
    "ConfigError",
    "PlanError",
    "UnknownContract",
    "MissingCredential",
    "CalldataEncodingError",
    "RegistryWriteConflict",
    "RpcError",
    "TransportError",
    "DeploymentRejected",
    "DeploymentTimeout",
    "EntrypointNotFound",
    "ExecutionReverted",
    "ExecutionTimeout",
    "StepFailed",
]
