"""JSON-RPC transport for starknet-deployments library."""

import itertools
import logging
from typing import Any

import requests

from .constants import DEFAULT_RPC_TIMEOUT
from .exceptions import RpcError, TransportError

logger = logging.getLogger(__name__)

_request_ids = itertools.count(1)


def rpc_request(rpc_url: str, method: str, params: Any, timeout: float = DEFAULT_RPC_TIMEOUT) -> Any:
    """
    Make a single JSON-RPC 2.0 call and return its result.

    Args:
        rpc_url: RPC endpoint URL
        method: JSON-RPC method name, e.g. "starknet_call"
        params: Method params (object or positional list)
        timeout: Seconds to wait for the HTTP response

    Returns:
        The "result" member of the response

    Raises:
        RpcError: If the endpoint returns a JSON-RPC error object
        TransportError: If the endpoint is unreachable or answers with a non-200 status
    """
    request_id = next(_request_ids)
    logger.debug("RPC %s #%d -> %s", method, request_id, rpc_url)

    try:
        response = requests.post(
            rpc_url,
            json={
                "jsonrpc": "2.0",
                "method": method,
                "params": params,
                "id": request_id,
            },
            timeout=timeout,
        )
    except requests.RequestException as e:
        raise TransportError(f"Network error during RPC call {method}: {e}") from e

    # Check for HTTP errors
    if response.status_code != 200:
        raise TransportError(f"RPC request {method} failed with status {response.status_code}")

    try:
        body = response.json()
    except ValueError as e:
        raise TransportError(f"RPC response to {method} is not valid JSON") from e

    # Check for RPC errors
    if "error" in body:
        error = body["error"]
        if not isinstance(error, dict):
            raise RpcError(None, str(error))
        raise RpcError(error.get("code"), error.get("message", ""), error.get("data"))

    if "result" not in body:
        raise TransportError(f"RPC response to {method} has neither result nor error")

    return body["result"]
