"""Custom exception classes for starknet-deployments library."""

from typing import Any, List, Optional


class DeploymentError(Exception):
    """Base exception for deployment-related errors."""

    pass


class ConfigError(DeploymentError, ValueError):
    """Raised when the deployment config file is missing or malformed."""

    pass


class PlanError(DeploymentError, ValueError):
    """Raised when plan steps reference each other in a cycle or are malformed."""

    pass


class UnknownContract(DeploymentError, ValueError):
    """Raised when no registry record exists for a (network, name) pair."""

    def __init__(self, network: str, name: str):
        self.network = network
        self.name = name
        super().__init__(f"Contract '{name}' not found in registry for network '{network}'")


class MissingCredential(DeploymentError, ValueError):
    """Raised when a network has no usable owner account configured."""

    pass


class CalldataEncodingError(DeploymentError, ValueError):
    """Raised when a calldata value cannot be encoded as a field element."""

    pass


class RegistryWriteConflict(DeploymentError):
    """Raised when the registry file changed between read and commit."""

    pass


class RpcError(DeploymentError):
    """Raised when the RPC endpoint answers with a JSON-RPC error object."""

    def __init__(self, code: Optional[int], message: str, data: Any = None):
        self.code = code
        self.message = message
        self.data = data
        super().__init__(f"RPC error {code}: {message}")


class TransportError(DeploymentError, ConnectionError):
    """Raised when the RPC endpoint cannot be reached or answers non-200."""

    pass


class TransactionError(DeploymentError):
    """Base for failures of a submitted (or attempted) transaction."""

    def __init__(self, message: str, transaction_hash: Optional[str] = None):
        self.transaction_hash = transaction_hash
        super().__init__(message)


class DeploymentRejected(TransactionError):
    """Raised when the network rejects a contract creation."""

    pass


class DeploymentTimeout(TransactionError, TimeoutError):
    """Raised when a creation is not confirmed within the configured bound."""

    pass


class EntrypointNotFound(TransactionError):
    """Raised when the target contract does not expose the requested entrypoint."""

    pass


class ExecutionReverted(TransactionError):
    """Raised when an invoke fails on-chain."""

    pass


class ExecutionTimeout(TransactionError, TimeoutError):
    """Raised when an invoke is not confirmed within the configured bound."""

    pass


class StepFailed(DeploymentError):
    """
    Raised (or reported) when an orchestrated step fails.

    Carries enough context for an operator to inspect on-chain state by hand.
    The originating error is available as ``cause`` and ``__cause__``.
    """

    def __init__(
        self,
        step: str,
        network: str,
        cause: Exception,
        calldata: Optional[List[Any]] = None,
        transaction_hash: Optional[str] = None,
    ):
        self.step = step
        self.network = network
        self.cause = cause
        self.calldata = list(calldata) if calldata is not None else None
        self.transaction_hash = transaction_hash
        super().__init__(f"Step '{step}' failed on network '{network}': {cause}")

    @property
    def kind(self) -> str:
        """Name of the originating error class, e.g. ``DeploymentRejected``."""
        return type(self.cause).__name__
