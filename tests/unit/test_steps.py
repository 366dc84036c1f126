"""Unit tests for plan steps and dependency ordering."""

import pytest
import yaml

from starknet_deployments.exceptions import ConfigError, PlanError
from starknet_deployments.orchestrator import (
    DeployStep,
    ExecuteStep,
    StepResult,
    StepState,
    argument_references,
    order_steps,
    steps_from_config,
)


def names(layers):
    return [sorted(step.name for step in layer) for layer in layers]


class TestArgumentReferences:
    """Test extraction of registry references from arguments."""

    def test_references_in_order(self):
        assert argument_references(["$Arbiter", 5, "$lords", "$owner"]) == ["Arbiter", "lords"]

    def test_nested_and_repeated(self):
        assert argument_references([["$A", "$B"], "$A", ("$C",)]) == ["A", "B", "C"]

    def test_literals_only(self):
        assert argument_references([1, "0x2", "3"]) == []


class TestSteps:
    """Test step dependencies."""

    def test_deploy_dependencies(self):
        step = DeployStep("ModuleController", "0xc0de", constructor=("$Arbiter", "$lords", "$owner"))
        assert step.dependencies == ["Arbiter", "lords"]

    def test_execute_depends_on_target_first(self):
        step = ExecuteStep("wire", "Arbiter", "set_address_of_controller", calldata=("$ModuleController",))
        assert step.dependencies == ["Arbiter", "ModuleController"]

    def test_execute_reference_target(self):
        step = ExecuteStep("wire", "$Arbiter", "set_address_of_controller")
        assert step.target_name == "Arbiter"

    def test_execute_literal_target(self):
        step = ExecuteStep("wire", "0xa1", "set_address_of_controller", calldata=("$B",))

        assert step.target_name is None
        assert step.dependencies == ["B"]


class TestStepsFromConfig:
    """Test parsing of the config's steps mapping."""

    def test_deploy_and_execute_steps(self):
        steps = steps_from_config(
            {
                "Arbiter": {"constructor": ["$owner"]},
                "Controller": {"contract": "ModuleController", "constructor": ["$Arbiter"], "salt": 3},
                "wire": {"target": "Arbiter", "entrypoint": "set_address_of_controller", "calldata": ["$Controller"]},
            }
        )

        assert steps["Arbiter"] == DeployStep("Arbiter", "Arbiter", constructor=("$owner",))
        assert steps["Controller"] == DeployStep(
            "Controller", "ModuleController", constructor=("$Arbiter",), salt=3
        )
        assert steps["wire"] == ExecuteStep(
            "wire", "Arbiter", "set_address_of_controller", calldata=("$Controller",)
        )

    def test_empty_step_deploys_contract_of_same_name(self):
        assert steps_from_config({"Arbiter": {}})["Arbiter"].contract == "Arbiter"

    def test_unknown_deploy_key(self):
        with pytest.raises(ConfigError, match="entry"):
            steps_from_config({"Arbiter": {"entry": "x"}})

    def test_unknown_execute_key(self):
        with pytest.raises(ConfigError):
            steps_from_config({"wire": {"target": "A", "entrypoint": "f", "constructor": []}})

    def test_execute_needs_target(self):
        with pytest.raises(ConfigError, match="target"):
            steps_from_config({"wire": {"entrypoint": "f"}})

    def test_unquoted_hex_target_stays_an_address(self):
        """Test that YAML reading 0x5a11ce as an int still yields a literal address target."""
        plan = yaml.safe_load("steps: {wire: {target: 0x5a11ce, entrypoint: Set_module_access}}")

        step = steps_from_config(plan["steps"])["wire"]

        assert step.target == "0x5a11ce"
        assert step.target_name is None
        assert step.dependencies == []


class TestOrderSteps:
    """Test dependency layering."""

    def test_independent_steps_share_a_layer(self):
        layers = order_steps([DeployStep("A", "0x1"), DeployStep("B", "0x2")])
        assert names(layers) == [["A", "B"]]

    def test_dependents_come_later(self):
        steps = [
            ExecuteStep("wire", "Arbiter", "set_address_of_controller", calldata=("$ModuleController",)),
            DeployStep("ModuleController", "0xc0de", constructor=("$Arbiter",)),
            DeployStep("Arbiter", "0xa4b1"),
        ]

        assert names(order_steps(steps)) == [["Arbiter"], ["ModuleController"], ["wire"]]

    def test_outside_references_do_not_block(self):
        """Test that names not in the plan are left to the registry."""
        layers = order_steps([DeployStep("ModuleController", "0xc0de", constructor=("$Arbiter",))])
        assert names(layers) == [["ModuleController"]]

    def test_cycle_raises(self):
        steps = [
            DeployStep("A", "0x1", constructor=("$B",)),
            DeployStep("B", "0x2", constructor=("$A",)),
        ]

        with pytest.raises(PlanError, match="cycle"):
            order_steps(steps)

    def test_duplicate_names_raise(self):
        with pytest.raises(PlanError):
            order_steps([DeployStep("A", "0x1"), DeployStep("A", "0x2")])

    def test_plan_error_is_value_error(self):
        with pytest.raises(ValueError):
            order_steps([DeployStep("A", "0x1"), DeployStep("A", "0x2")])


class TestStepResult:
    """Test StepResult bookkeeping."""

    def test_starts_pending(self):
        result = StepResult("A")

        assert result.state is StepState.PENDING
        assert result.transitions == [StepState.PENDING]
        assert not result.ok

    def test_advance_records_transitions(self):
        result = StepResult("A")
        result.advance(StepState.RESOLVING_DEPENDENCIES)
        result.advance(StepState.SUBMITTING)

        assert result.state is StepState.SUBMITTING
        assert result.transitions == [
            StepState.PENDING,
            StepState.RESOLVING_DEPENDENCIES,
            StepState.SUBMITTING,
        ]

    def test_recorded_and_clean_skip_are_ok(self):
        recorded = StepResult("A", state=StepState.RECORDED)
        skipped = StepResult("B", state=StepState.SKIPPED)

        assert recorded.ok
        assert skipped.ok
