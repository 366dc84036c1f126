"""Deployment and execution clients for the StarkNet JSON-RPC boundary."""

import logging
import secrets
import time
from typing import Any, Callable, Dict, List, Optional, Sequence

from .constants import (
    ACCEPTED_STATUSES,
    ENTRY_POINT_NOT_FOUND_MARKER,
    RPC_ADD_DEPLOY_TRANSACTION,
    RPC_ADD_INVOKE_TRANSACTION,
    RPC_CALL,
    RPC_ERROR_ENTRY_POINT_NOT_FOUND,
    RPC_ERROR_TXN_HASH_NOT_FOUND,
    RPC_GET_TRANSACTION_RECEIPT,
    REJECTED_STATUSES,
    REVERTED_STATUSES,
)
from .encoding import encode_calldata, get_selector_from_name, to_felt, to_hex
from .exceptions import (
    DeploymentRejected,
    DeploymentTimeout,
    EntrypointNotFound,
    ExecutionReverted,
    ExecutionTimeout,
    RpcError,
    TransportError,
)
from .rpc import rpc_request
from .types import CallSpec, DeploymentReceipt, NetworkContext, ReceiptStatus

logger = logging.getLogger(__name__)


def parse_receipt(transaction_hash: str, raw: Dict[str, Any]) -> DeploymentReceipt:
    """
    Build a DeploymentReceipt from a starknet_getTransactionReceipt result.

    Understands both the finality_status/execution_status pair and the older
    single "status" field.
    """
    finality = raw.get("finality_status") or raw.get("status")
    execution = raw.get("execution_status")

    if execution in REVERTED_STATUSES or finality in REVERTED_STATUSES:
        status = ReceiptStatus.REVERTED
    elif finality in REJECTED_STATUSES:
        status = ReceiptStatus.REJECTED
    elif finality in ACCEPTED_STATUSES:
        status = ReceiptStatus.ACCEPTED
    else:
        status = ReceiptStatus.PENDING

    contract_address = raw.get("contract_address")
    return DeploymentReceipt(
        transaction_hash=transaction_hash,
        status=status,
        contract_address=to_hex(to_felt(contract_address)) if contract_address else None,
        block_number=raw.get("block_number"),
        revert_reason=raw.get("revert_reason") or raw.get("status_data"),
        raw=raw,
    )


def _submitted_hash(result: Any) -> Optional[str]:
    if isinstance(result, dict) and result.get("transaction_hash"):
        return str(result["transaction_hash"])
    return None


def _is_entrypoint_missing(code: Optional[int], message: Optional[str]) -> bool:
    if code == RPC_ERROR_ENTRY_POINT_NOT_FOUND:
        return True
    return bool(message) and ENTRY_POINT_NOT_FOUND_MARKER in message


class _TransactionClient:
    """Receipt polling shared by the deployment and execution clients."""

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._clock = clock
        self._sleep = sleep

    def receipt(self, transaction_hash: str, context: NetworkContext) -> DeploymentReceipt:
        """
        Query the current status of a transaction once.

        An unknown transaction hash is reported as PENDING: the node may not
        have seen it yet.
        """
        try:
            raw = rpc_request(
                context.rpc_url,
                RPC_GET_TRANSACTION_RECEIPT,
                {"transaction_hash": transaction_hash},
            )
        except RpcError as e:
            if e.code == RPC_ERROR_TXN_HASH_NOT_FOUND:
                return DeploymentReceipt(transaction_hash=transaction_hash, status=ReceiptStatus.PENDING)
            raise
        return parse_receipt(transaction_hash, raw or {})

    def wait_for_receipt(
        self, transaction_hash: str, context: NetworkContext
    ) -> Optional[DeploymentReceipt]:
        """
        Poll until the transaction reaches a final status.

        Returns:
            The final receipt, or None if context.timeout elapsed first
        """
        deadline = self._clock() + context.timeout
        while True:
            try:
                receipt = self.receipt(transaction_hash, context)
            except (TransportError, RpcError) as e:
                # The transaction is already submitted; keep polling until the deadline
                logger.warning("Receipt poll for %s failed: %s", transaction_hash, e)
            else:
                if receipt.status is not ReceiptStatus.PENDING:
                    return receipt

            remaining = deadline - self._clock()
            if remaining <= 0:
                return None
            self._sleep(min(context.poll_interval, remaining))


class DeploymentClient(_TransactionClient):
    """Submits contract creations and waits for them to be confirmed."""

    def deploy(
        self,
        contract_reference: str,
        constructor_args: Sequence[Any],
        context: NetworkContext,
        salt: Optional[int] = None,
        on_submitted: Optional[Callable[[str], None]] = None,
    ) -> DeploymentReceipt:
        """
        Deploy a declared contract class.

        Args:
            contract_reference: Class hash of the declared contract
            constructor_args: Constructor calldata values
            context: Network to deploy on
            salt: Address salt (random if None)
            on_submitted: Called with the transaction hash before confirmation

        Returns:
            Accepted receipt with contract_address set

        Raises:
            CalldataEncodingError: If the class hash or arguments are malformed
            DeploymentRejected: If the network rejects or reverts the creation
            DeploymentTimeout: If no final status arrives within context.timeout
            TransportError: If the submission itself could not be delivered
        """
        class_hash = to_hex(to_felt(contract_reference))
        calldata = encode_calldata(constructor_args)
        if salt is None:
            salt = secrets.randbits(251)

        logger.info("Deploying class %s on %s", class_hash, context.network)
        logger.debug("Constructor calldata: %s", calldata)

        try:
            result = rpc_request(
                context.rpc_url,
                RPC_ADD_DEPLOY_TRANSACTION,
                {
                    "deploy_transaction": {
                        "class_hash": class_hash,
                        "contract_address_salt": to_hex(to_felt(salt)),
                        "constructor_calldata": calldata,
                        "sender_address": context.account.address,
                    }
                },
            )
        except RpcError as e:
            raise DeploymentRejected(f"Deployment of {class_hash} rejected: {e.message}") from e

        transaction_hash = _submitted_hash(result)
        if transaction_hash is None:
            raise DeploymentRejected(f"Deployment of {class_hash} returned no transaction hash: {result!r}")
        logger.info("Deploy transaction %s submitted, waiting for confirmation", transaction_hash)
        if on_submitted is not None:
            on_submitted(transaction_hash)

        receipt = self.wait_for_receipt(transaction_hash, context)
        if receipt is None:
            raise DeploymentTimeout(
                f"Deploy transaction {transaction_hash} not confirmed within {context.timeout}s",
                transaction_hash=transaction_hash,
            )
        if not receipt.succeeded:
            raise DeploymentRejected(
                f"Deploy transaction {transaction_hash} {receipt.status.value}: "
                f"{receipt.revert_reason or 'no reason given'}",
                transaction_hash=transaction_hash,
            )

        if receipt.contract_address is None and result.get("contract_address"):
            receipt.contract_address = to_hex(to_felt(result["contract_address"]))
        if receipt.contract_address is None:
            raise DeploymentRejected(
                f"Deploy transaction {transaction_hash} accepted without a contract address",
                transaction_hash=transaction_hash,
            )

        logger.info("Deployed %s at %s", class_hash, receipt.contract_address)
        return receipt


class ExecutionClient(_TransactionClient):
    """Submits invokes to deployed contracts; also serves read-only calls."""

    def call(
        self,
        call_spec: CallSpec,
        context: NetworkContext,
        on_submitted: Optional[Callable[[str], None]] = None,
    ) -> DeploymentReceipt:
        """
        Invoke a state-changing entrypoint and wait for confirmation.

        Raises:
            CalldataEncodingError: If the target or calldata is malformed
            EntrypointNotFound: If the target does not expose the entrypoint
            ExecutionReverted: If the invoke is rejected or fails on-chain
            ExecutionTimeout: If no final status arrives within context.timeout
            TransportError: If the submission itself could not be delivered
        """
        target = to_hex(to_felt(call_spec.target))
        calldata = encode_calldata(call_spec.calldata)
        selector = to_hex(get_selector_from_name(call_spec.entrypoint))

        logger.info("Invoking %s on %s (%s)", call_spec.entrypoint, target, context.network)
        logger.debug("Calldata: %s", calldata)

        try:
            result = rpc_request(
                context.rpc_url,
                RPC_ADD_INVOKE_TRANSACTION,
                {
                    "invoke_transaction": {
                        "sender_address": context.account.address,
                        "contract_address": target,
                        "entry_point_selector": selector,
                        "calldata": calldata,
                    }
                },
            )
        except RpcError as e:
            if _is_entrypoint_missing(e.code, e.message):
                raise EntrypointNotFound(
                    f"Contract {target} has no entrypoint '{call_spec.entrypoint}'"
                ) from e
            raise ExecutionReverted(f"Invoke of {call_spec.entrypoint} rejected: {e.message}") from e

        transaction_hash = _submitted_hash(result)
        if transaction_hash is None:
            raise ExecutionReverted(
                f"Invoke of {call_spec.entrypoint} returned no transaction hash: {result!r}"
            )
        logger.info("Invoke transaction %s submitted, waiting for confirmation", transaction_hash)
        if on_submitted is not None:
            on_submitted(transaction_hash)

        receipt = self.wait_for_receipt(transaction_hash, context)
        if receipt is None:
            raise ExecutionTimeout(
                f"Invoke transaction {transaction_hash} not confirmed within {context.timeout}s",
                transaction_hash=transaction_hash,
            )
        if not receipt.succeeded:
            if _is_entrypoint_missing(None, receipt.revert_reason):
                raise EntrypointNotFound(
                    f"Contract {target} has no entrypoint '{call_spec.entrypoint}'",
                    transaction_hash=transaction_hash,
                )
            raise ExecutionReverted(
                f"Invoke transaction {transaction_hash} {receipt.status.value}: "
                f"{receipt.revert_reason or 'no reason given'}",
                transaction_hash=transaction_hash,
            )

        return receipt

    def view(self, call_spec: CallSpec, context: NetworkContext) -> List[int]:
        """
        Call a view entrypoint at the latest block. No transaction, no polling.

        Raises:
            EntrypointNotFound: If the target does not expose the entrypoint
            ExecutionReverted: If the call fails
        """
        target = to_hex(to_felt(call_spec.target))
        try:
            result = rpc_request(
                context.rpc_url,
                RPC_CALL,
                {
                    "request": {
                        "contract_address": target,
                        "entry_point_selector": to_hex(get_selector_from_name(call_spec.entrypoint)),
                        "calldata": encode_calldata(call_spec.calldata),
                    },
                    "block_id": "latest",
                },
            )
        except RpcError as e:
            if _is_entrypoint_missing(e.code, e.message):
                raise EntrypointNotFound(
                    f"Contract {target} has no entrypoint '{call_spec.entrypoint}'"
                ) from e
            raise ExecutionReverted(f"Call to {call_spec.entrypoint} failed: {e.message}") from e

        return [int(value, 16) for value in result]
