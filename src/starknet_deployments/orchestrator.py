"""Deployment steps and the orchestrator that runs them."""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Set, Union

from .accounts import Signer
from .clients import DeploymentClient, ExecutionClient
from .constants import OWNER_VARIABLE, VARIABLE_PREFIX
from .encoding import encode_calldata, to_felt, to_hex
from .exceptions import (
    CalldataEncodingError,
    ConfigError,
    DeploymentError,
    DeploymentRejected,
    PlanError,
    StepFailed,
    TransportError,
)
from .registry import AddressRegistry
from .types import CallSpec, DeploymentReceipt, NetworkContext, ReceiptStatus

logger = logging.getLogger(__name__)

DEPLOY_STEP_KEYS = {"contract", "constructor", "salt"}
EXECUTE_STEP_KEYS = {"target", "entrypoint", "calldata"}


class StepState(Enum):
    """
    Lifecycle of one step run.

    PENDING -> RESOLVING_DEPENDENCIES -> SUBMITTING -> CONFIRMING -> RECORDED | FAILED

    SKIPPED is only used by plan runs, for steps that were not attempted.
    """

    PENDING = "pending"
    RESOLVING_DEPENDENCIES = "resolving_dependencies"
    SUBMITTING = "submitting"
    CONFIRMING = "confirming"
    RECORDED = "recorded"
    FAILED = "failed"
    SKIPPED = "skipped"


def is_reference(value: Any) -> bool:
    """Returns True if the value is a "$Name" reference."""
    return isinstance(value, str) and value.startswith(VARIABLE_PREFIX)


def argument_references(values: Sequence[Any]) -> List[str]:
    """Registry names referenced by step arguments, in order of first use."""
    names: List[str] = []
    for value in values:
        if isinstance(value, (list, tuple)):
            found = argument_references(value)
        elif is_reference(value):
            found = [value[len(VARIABLE_PREFIX):]]
        else:
            found = []
        for name in found:
            if name != OWNER_VARIABLE and name not in names:
                names.append(name)
    return names


@dataclass(frozen=True)
class DeployStep:
    """Deploy a contract class and record it under a logical name."""

    name: str
    contract: str  # Class hash or a name from the config's classes table
    constructor: Sequence[Any] = ()
    salt: Optional[int] = None

    @property
    def dependencies(self) -> List[str]:
        return argument_references(self.constructor)


@dataclass(frozen=True)
class ExecuteStep:
    """Invoke an entrypoint on an already deployed contract."""

    name: str
    target: str  # Logical name, "$Name" or a literal 0x address
    entrypoint: str
    calldata: Sequence[Any] = ()

    @property
    def target_name(self) -> Optional[str]:
        target = self.target
        if is_reference(target):
            target = target[len(VARIABLE_PREFIX):]
        if str(target).lower().startswith("0x"):
            return None
        return target

    @property
    def dependencies(self) -> List[str]:
        names = argument_references(self.calldata)
        if self.target_name is not None and self.target_name not in names:
            names.insert(0, self.target_name)
        return names


Step = Union[DeployStep, ExecuteStep]


@dataclass
class StepResult:
    """Outcome of running one step."""

    step: str
    state: StepState = StepState.PENDING
    receipt: Optional[DeploymentReceipt] = None
    error: Optional[StepFailed] = None
    transaction_hash: Optional[str] = None
    transitions: List[StepState] = field(default_factory=lambda: [StepState.PENDING])

    @property
    def ok(self) -> bool:
        """True if the step completed, or was skipped because it already had."""
        return self.state is StepState.RECORDED or (
            self.state is StepState.SKIPPED and self.error is None
        )

    def advance(self, state: StepState) -> None:
        logger.debug("Step %s: %s -> %s", self.step, self.state.value, state.value)
        self.state = state
        self.transitions.append(state)


def steps_from_config(steps: Mapping[str, Mapping[str, Any]]) -> Dict[str, Step]:
    """
    Parse the "steps" mapping of a deployment config.

    A step with an "entrypoint" is an ExecuteStep; anything else deploys
    "contract" (defaulting to the step name).

    Raises:
        ConfigError: If a step has unknown keys or misses required ones
    """
    parsed: Dict[str, Step] = {}
    for name, data in steps.items():
        if "entrypoint" in data:
            unknown = set(data) - EXECUTE_STEP_KEYS
            if unknown:
                raise ConfigError(f"Unknown keys for execute step '{name}': {sorted(unknown)}")
            if "target" not in data:
                raise ConfigError(f"Execute step '{name}' has no target")
            target = data["target"]
            # YAML reads an unquoted 0x literal as an int
            if isinstance(target, int) and not isinstance(target, bool):
                target = hex(target)
            parsed[name] = ExecuteStep(
                name=name,
                target=str(target),
                entrypoint=str(data["entrypoint"]),
                calldata=tuple(data.get("calldata") or ()),
            )
        else:
            unknown = set(data) - DEPLOY_STEP_KEYS
            if unknown:
                raise ConfigError(f"Unknown keys for deploy step '{name}': {sorted(unknown)}")
            parsed[name] = DeployStep(
                name=name,
                contract=str(data.get("contract", name)),
                constructor=tuple(data.get("constructor") or ()),
                salt=data.get("salt"),
            )
    return parsed


def order_steps(steps: Sequence[Step]) -> List[List[Step]]:
    """
    Group steps into layers; every step comes after the plan steps it depends on.

    Dependencies on names outside the plan are left to the registry.

    Raises:
        PlanError: If step names repeat or dependencies form a cycle
    """
    by_name: Dict[str, Step] = {}
    for step in steps:
        if step.name in by_name:
            raise PlanError(f"Duplicate step name '{step.name}'")
        by_name[step.name] = step

    pending = {
        step.name: {dep for dep in step.dependencies if dep in by_name and dep != step.name}
        for step in steps
    }
    layers: List[List[Step]] = []
    done: Set[str] = set()
    while pending:
        ready = [name for name, deps in pending.items() if deps <= done]
        if not ready:
            raise PlanError(f"Dependency cycle between steps: {sorted(pending)}")
        layers.append([by_name[name] for name in ready])
        done.update(ready)
        for name in ready:
            del pending[name]
    return layers


class Orchestrator:
    """
    Runs deployment steps against a registry and the network clients.

    Each run() is sequential: dependencies are resolved and calldata encoded
    before anything is submitted, and a deployment is recorded only after its
    receipt is confirmed.
    """

    def __init__(
        self,
        registry: AddressRegistry,
        deployment_client: Optional[DeploymentClient] = None,
        execution_client: Optional[ExecutionClient] = None,
        classes: Optional[Mapping[str, str]] = None,
    ):
        self.registry = registry
        self.deployment_client = deployment_client or DeploymentClient()
        self.execution_client = execution_client or ExecutionClient()
        self.classes = dict(classes or {})

    # Resolution

    def _resolve_argument(self, value: Any, context: NetworkContext) -> Any:
        if isinstance(value, (list, tuple)):
            return [self._resolve_argument(v, context) for v in value]
        if is_reference(value):
            name = value[len(VARIABLE_PREFIX):]
            if name == OWNER_VARIABLE:
                return to_felt(context.account.address)
            return self.registry.resolve_int(context.network, name)
        return value

    def resolve_arguments(self, values: Sequence[Any], context: NetworkContext) -> List[Any]:
        """
        Replace "$Name" references with registry addresses and "$owner" with the owner account.

        Raises:
            UnknownContract: If a referenced name is not recorded on the network
        """
        return [self._resolve_argument(value, context) for value in values]

    def class_hash(self, contract: str) -> str:
        """
        Map a contract reference to a class hash; hex references pass through.

        Raises:
            ConfigError: If the reference is neither configured nor a valid felt
        """
        try:
            return to_hex(to_felt(self.classes.get(contract, contract)))
        except CalldataEncodingError:
            raise ConfigError(f"No class hash configured for contract '{contract}'") from None

    # Running

    def run(self, step: Step, context: NetworkContext) -> StepResult:
        """
        Run one step to RECORDED or FAILED.

        Failures of the deployment taxonomy are reported in the result as a
        StepFailed; anything else propagates.
        """
        result = StepResult(step=step.name)
        calldata: Optional[List[str]] = None

        def submitted(transaction_hash: str) -> None:
            result.transaction_hash = transaction_hash
            result.advance(StepState.CONFIRMING)

        logger.info("Running step %s on %s", step.name, context.network)
        try:
            result.advance(StepState.RESOLVING_DEPENDENCIES)
            if isinstance(step, DeployStep):
                class_hash = self.class_hash(step.contract)
                calldata = encode_calldata(self.resolve_arguments(step.constructor, context))

                result.advance(StepState.SUBMITTING)
                receipt = self._submit(
                    result,
                    context,
                    lambda: self.deployment_client.deploy(
                        class_hash, calldata, context, salt=step.salt, on_submitted=submitted
                    ),
                )
                self._record(step.name, class_hash, calldata, receipt, context)
            else:
                target = self._resolve_target(step, context)
                calldata = encode_calldata(self.resolve_arguments(step.calldata, context))
                signer = Signer(context, self.execution_client)

                result.advance(StepState.SUBMITTING)
                receipt = self._submit(
                    result,
                    context,
                    lambda: signer.execute(
                        CallSpec(target=target, entrypoint=step.entrypoint, calldata=calldata),
                        on_submitted=submitted,
                    ),
                )
        except DeploymentError as e:
            transaction_hash = result.transaction_hash or getattr(e, "transaction_hash", None)
            result.error = StepFailed(
                step=step.name,
                network=context.network,
                cause=e,
                calldata=calldata,
                transaction_hash=transaction_hash,
            )
            result.error.__cause__ = e
            result.transaction_hash = transaction_hash
            result.advance(StepState.FAILED)
            logger.error("Step %s failed: %s: %s", step.name, type(e).__name__, e)
            if transaction_hash:
                logger.error(
                    "Transaction %s was submitted for %s; inspect it on-chain before re-running",
                    transaction_hash,
                    step.name,
                )
            return result

        result.receipt = receipt
        result.advance(StepState.RECORDED)
        logger.info("Step %s recorded (tx %s)", step.name, receipt.transaction_hash)
        return result

    def _resolve_target(self, step: ExecuteStep, context: NetworkContext) -> str:
        if step.target_name is None:
            target = step.target[len(VARIABLE_PREFIX):] if is_reference(step.target) else step.target
            return to_hex(to_felt(target))
        return self.registry.resolve(context.network, step.target_name)

    def _submit(
        self,
        result: StepResult,
        context: NetworkContext,
        submit: Callable[[], DeploymentReceipt],
    ) -> DeploymentReceipt:
        """
        Call submit(), resubmitting at most context.retries times.

        Only a TransportError raised before any transaction hash was seen is
        retried; once a hash is known the transaction may land, so it never is.
        """
        attempts = context.retries + 1
        attempt = 0
        while True:
            attempt += 1
            try:
                return submit()
            except TransportError as e:
                if result.transaction_hash is not None or attempt == attempts:
                    raise
                logger.warning(
                    "Submission of %s failed (%s); resubmitting (%d/%d). "
                    "If the first submission reached the network this creates a duplicate.",
                    result.step,
                    e,
                    attempt,
                    context.retries,
                )

    def _record(
        self,
        name: str,
        class_hash: str,
        calldata: List[str],
        receipt: DeploymentReceipt,
        context: NetworkContext,
    ) -> None:
        try:
            self.registry.record(
                context.network,
                name,
                receipt.contract_address,
                metadata={
                    "class_hash": class_hash,
                    "constructor_args": calldata,
                    "transaction_hash": receipt.transaction_hash,
                    "block_number": receipt.block_number,
                },
            )
        except DeploymentError:
            logger.critical(
                "%s is deployed at %s (tx %s) but could not be recorded; record it by hand",
                name,
                receipt.contract_address,
                receipt.transaction_hash,
            )
            raise

    def run_plan(
        self,
        steps: Sequence[Step],
        context: NetworkContext,
        max_workers: int = 1,
        skip_recorded: bool = False,
    ) -> List[StepResult]:
        """
        Run several steps in dependency order.

        Steps of one dependency layer run concurrently when max_workers > 1.
        A step whose plan dependency did not complete is SKIPPED with an error.

        Args:
            steps: Steps to run
            context: Network to run on
            max_workers: Threads per layer
            skip_recorded: Skip deploy steps whose name is already in the registry

        Returns:
            One result per step, in execution order

        Raises:
            PlanError: If step names repeat or dependencies form a cycle
        """
        layers = order_steps(steps)
        results: Dict[str, StepResult] = {}
        ordered: List[StepResult] = []

        with ThreadPoolExecutor(max_workers=max(1, max_workers)) as executor:
            for layer in layers:
                runnable: List[Step] = []
                for step in layer:
                    blocked = [
                        dep for dep in step.dependencies if dep in results and not results[dep].ok
                    ]
                    if blocked:
                        skipped = StepResult(step=step.name)
                        skipped.error = StepFailed(
                            step=step.name,
                            network=context.network,
                            cause=PlanError(f"Dependencies did not complete: {blocked}"),
                        )
                        skipped.advance(StepState.SKIPPED)
                        logger.warning("Skipping %s: dependencies %s did not complete", step.name, blocked)
                        results[step.name] = skipped
                        ordered.append(skipped)
                    elif (
                        skip_recorded
                        and isinstance(step, DeployStep)
                        and self.registry.has_contract(context.network, step.name)
                    ):
                        skipped = StepResult(step=step.name)
                        skipped.advance(StepState.SKIPPED)
                        logger.info("Skipping %s: already recorded on %s", step.name, context.network)
                        results[step.name] = skipped
                        ordered.append(skipped)
                    else:
                        runnable.append(step)

                for step_result in executor.map(lambda s: self.run(s, context), runnable):
                    results[step_result.step] = step_result
                    ordered.append(step_result)

        return ordered

    def reconcile(
        self, step: DeployStep, context: NetworkContext, transaction_hash: str
    ) -> StepResult:
        """
        Re-check a previously submitted deployment and record it if it landed.

        Use after a timeout or an interrupted run, before re-running the step.
        A still-pending transaction leaves the result in CONFIRMING.
        """
        result = StepResult(step=step.name, transaction_hash=transaction_hash)
        result.advance(StepState.CONFIRMING)
        calldata: Optional[List[str]] = None

        try:
            class_hash = self.class_hash(step.contract)
            receipt = self.deployment_client.receipt(transaction_hash, context)
            result.receipt = receipt

            if receipt.status is ReceiptStatus.PENDING:
                logger.warning(
                    "Transaction %s for %s is still pending or unknown; do not re-run yet",
                    transaction_hash,
                    step.name,
                )
                return result
            if not receipt.succeeded or receipt.contract_address is None:
                raise DeploymentRejected(
                    f"Deploy transaction {transaction_hash} {receipt.status.value}: "
                    f"{receipt.revert_reason or 'no contract address'}",
                    transaction_hash=transaction_hash,
                )

            try:
                calldata = encode_calldata(self.resolve_arguments(step.constructor, context))
            except DeploymentError as e:
                logger.warning("Constructor args of %s not recorded: %s", step.name, e)
            self.registry.record(
                context.network,
                step.name,
                receipt.contract_address,
                metadata={
                    "class_hash": class_hash,
                    "constructor_args": calldata,
                    "transaction_hash": transaction_hash,
                    "block_number": receipt.block_number,
                },
            )
        except DeploymentError as e:
            result.error = StepFailed(
                step=step.name,
                network=context.network,
                cause=e,
                calldata=calldata,
                transaction_hash=transaction_hash,
            )
            result.error.__cause__ = e
            result.advance(StepState.FAILED)
            logger.error("Reconcile of %s failed: %s: %s", step.name, type(e).__name__, e)
            return result

        result.advance(StepState.RECORDED)
        logger.info("Reconciled %s at %s", step.name, receipt.contract_address)
        return result
