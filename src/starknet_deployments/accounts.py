"""Owner account resolution and transaction signers."""

import logging
import os
from typing import TYPE_CHECKING, Callable, Mapping, Optional, Union

from .clients import ExecutionClient
from .constants import VARIABLE_PREFIX
from .encoding import encode_calldata, to_felt, to_hex
from .exceptions import CalldataEncodingError, MissingCredential
from .types import AccountRef, CallSpec, DeploymentReceipt, NetworkContext

if TYPE_CHECKING:
    from .config import DeploymentConfig

logger = logging.getLogger(__name__)


def resolve_account(
    credential: Optional[Union[str, int]], network: str, environ: Optional[Mapping[str, str]] = None
) -> AccountRef:
    """
    Resolve a configured credential reference to an account.

    Args:
        credential: Literal 0x address or "$ENV_VAR" naming one
        network: Network the credential is configured for (for messages)
        environ: Environment mapping (defaults to os.environ)

    Returns:
        AccountRef with a normalized address

    Raises:
        MissingCredential: If nothing is configured, the variable is unset,
                           or the value is not a valid address
    """
    if environ is None:
        environ = os.environ

    if not credential:
        raise MissingCredential(f"No account configured for network '{network}'")

    # YAML reads an unquoted 0x literal as an int
    if isinstance(credential, int) and not isinstance(credential, bool):
        credential = hex(credential)

    value: Optional[str] = str(credential)
    if value.startswith(VARIABLE_PREFIX):
        variable = value[len(VARIABLE_PREFIX):]
        value = environ.get(variable)
        if not value:
            raise MissingCredential(
                f"Account for network '{network}' reads ${variable}, which is not set"
            )

    if not value.lower().startswith("0x"):
        raise MissingCredential(
            f"Account for network '{network}' is not a 0x-prefixed address: {value!r}"
        )
    try:
        address = to_hex(to_felt(value))
    except CalldataEncodingError as e:
        raise MissingCredential(f"Account for network '{network}' is not a valid address: {e}") from e

    return AccountRef(address=address, credential=str(credential))


class Signer:
    """An account bound to a network, able to execute invokes."""

    def __init__(self, context: NetworkContext, client: ExecutionClient):
        self.context = context
        self.client = client

    @property
    def account(self) -> AccountRef:
        return self.context.account

    def execute(
        self, call_spec: CallSpec, on_submitted: Optional[Callable[[str], None]] = None
    ) -> DeploymentReceipt:
        """
        Serialize calldata to felts and submit the invoke.

        on_submitted is called with the transaction hash once the network
        accepted the submission, before confirmation.

        Raises:
            CalldataEncodingError: Before any network call, if calldata is malformed
            EntrypointNotFound, ExecutionReverted, ExecutionTimeout: From the client
        """
        calldata = encode_calldata(call_spec.calldata)
        encoded = CallSpec(target=call_spec.target, entrypoint=call_spec.entrypoint, calldata=calldata)
        logger.info(
            "%s executing %s on %s",
            self.account.address,
            call_spec.entrypoint,
            call_spec.target,
        )
        return self.client.call(encoded, self.context, on_submitted=on_submitted)


class AccountProvider:
    """Resolves owner accounts and signers from a deployment config."""

    def __init__(self, config: "DeploymentConfig", environ: Optional[Mapping[str, str]] = None):
        self.config = config
        self.environ = environ

    def owner_account(self, network: str) -> AccountRef:
        """
        Get the configured owner account for a network.

        Raises:
            MissingCredential: If the network has no usable account
        """
        network_config = self.config.networks.get(network)
        credential = network_config.account if network_config is not None else None
        return resolve_account(credential, network, self.environ)

    def owner_account_int(self, network: str) -> int:
        """Owner account address as a felt integer."""
        return to_felt(self.owner_account(network).address)

    def signer(self, network: str, client: Optional[ExecutionClient] = None) -> Signer:
        """
        Get a signer for the network's owner account.

        Raises:
            MissingCredential: If the network has no usable account
        """
        context = self.config.context(network, environ=self.environ)
        return Signer(context, client or ExecutionClient())
