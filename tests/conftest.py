"""Shared pytest fixtures for starknet-deployments tests."""

import json
from pathlib import Path
from typing import Any, Callable, Dict, List, Tuple, Union

import pytest
import responses

from starknet_deployments.registry import AddressRegistry
from starknet_deployments.types import AccountRef, NetworkContext

RPC_URL = "http://starknet-rpc.example.com"
OWNER_ADDRESS = "0x5a11ce"

SUBMIT_METHODS = ("starknet_addDeployTransaction", "starknet_addInvokeTransaction")

Reply = Union[Dict[str, Any], Callable[[Any], Dict[str, Any]]]


class FakeClock:
    """Monotonic clock whose sleep() only advances time."""

    def __init__(self):
        self.now = 0.0
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class RpcStub:
    """
    Answers StarkNet JSON-RPC requests from per-method handlers.

    A reply is a dict ({"result": ...} or {"error": {...}}), a callable
    taking params and returning one, or an exception to raise from the
    transport. Several replies are consumed in order; the last one repeats.
    """

    def __init__(self, rsps: responses.RequestsMock, url: str = RPC_URL):
        self.calls: List[Tuple[str, Any]] = []
        self.handlers: Dict[str, Any] = {}
        rsps.add_callback(
            responses.POST, url, callback=self._callback, content_type="application/json"
        )

    def on(self, method: str, *replies: Reply) -> None:
        self.handlers[method] = list(replies)

    def submissions(self) -> List[Tuple[str, Any]]:
        return [call for call in self.calls if call[0] in SUBMIT_METHODS]

    def params(self, method: str) -> List[Any]:
        return [params for name, params in self.calls if name == method]

    def _callback(self, request):
        body = json.loads(request.body)
        method, params = body["method"], body["params"]
        self.calls.append((method, params))

        replies = self.handlers.get(method)
        if not replies:
            reply = {"error": {"code": -32601, "message": f"Method {method} not found"}}
        else:
            reply = replies.pop(0) if len(replies) > 1 else replies[0]
            if isinstance(reply, Exception):
                # responses raises exceptions returned by a callback
                return reply
            if callable(reply):
                reply = reply(params)

        payload = {"jsonrpc": "2.0", "id": body["id"]}
        payload.update(reply)
        return (200, {}, json.dumps(payload))


def accepted_receipt(contract_address: str = None, block_number: int = 7) -> Dict[str, Any]:
    """Receipt reply for a transaction accepted on L2."""
    result: Dict[str, Any] = {
        "finality_status": "ACCEPTED_ON_L2",
        "execution_status": "SUCCEEDED",
        "block_number": block_number,
    }
    if contract_address is not None:
        result["contract_address"] = contract_address
    return {"result": result}


def reverted_receipt(reason: str) -> Dict[str, Any]:
    """Receipt reply for a transaction that was included but reverted."""
    return {
        "result": {
            "finality_status": "ACCEPTED_ON_L2",
            "execution_status": "REVERTED",
            "revert_reason": reason,
            "block_number": 8,
        }
    }


def rpc_error(code: int, message: str) -> Dict[str, Any]:
    return {"error": {"code": code, "message": message}}


def submitted(transaction_hash: str, contract_address: str = None) -> Dict[str, Any]:
    result = {"transaction_hash": transaction_hash}
    if contract_address is not None:
        result["contract_address"] = contract_address
    return {"result": result}


@pytest.fixture
def registry_dir(tmp_path: Path) -> Path:
    """Return a temporary registry directory (not created yet)."""
    return tmp_path / "deployments"


@pytest.fixture
def registry(registry_dir: Path) -> AddressRegistry:
    """Create an empty registry in a temporary directory."""
    return AddressRegistry(registry_dir)


@pytest.fixture
def context() -> NetworkContext:
    """Return a testnet context with short timeouts and no retries."""
    return NetworkContext(
        network="testnet",
        rpc_url=RPC_URL,
        account=AccountRef(address=OWNER_ADDRESS, credential="$STARKNET_ACCOUNT"),
        timeout=10.0,
        retries=0,
        poll_interval=2.0,
    )


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def rpc():
    """Mock the RPC endpoint; unregistered URLs raise ConnectionError."""
    with responses.RequestsMock(assert_all_requests_are_fired=False) as rsps:
        yield RpcStub(rsps)


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    """Write a deployment.yml with a small Realms-style plan."""
    path = tmp_path / "deployment.yml"
    path.write_text(
        f"""
default_network: testnet
registry: deployments
networks:
  testnet:
    rpc: {RPC_URL}
    account: $STARKNET_ACCOUNT
    timeout: 10
    retries: 0
    poll_interval: 2
  mainnet:
    rpc: $MAINNET_RPC_URL
    account: $MAINNET_ACCOUNT
classes:
  Arbiter: "0xa4b1"
  ModuleController: "0xc0de"
steps:
  Arbiter:
    constructor: [$owner]
  ModuleController:
    constructor: [$Arbiter, $lords_erc20_mintable, $owner]
  set_controller:
    target: Arbiter
    entrypoint: set_address_of_controller
    calldata: [$ModuleController]
"""
    )
    return path
