"""
Certification pipeline tests.

The staged and legacy pipelines are two instances of one Workflow.  These
tests pin their shape: forward-only advance, reject from any live state,
retire only out of the final stage, and absorbing terminal states.
"""

from decimal import Decimal

import pytest

from carbon_kernel.domain.certification import (
    ADVANCE,
    LEGACY_PIPELINE,
    PIPELINES,
    REJECT,
    RETIRE,
    STAGED_PIPELINE,
    can_transition,
    final_stage,
    find_transition,
    get_pipeline,
    initial_status,
    is_purchasable,
    is_terminal,
    next_status,
    stages,
    stamp_for,
)
from carbon_kernel.domain.workflow import Transition, Workflow
from carbon_kernel.models.project import CertificationPipeline, ProjectStatus

STAGED_ORDER = [
    "application",
    "registration",
    "pre_validation",
    "validation",
    "monitoring",
    "audited",
    "active",
]


class TestStagedPipeline:

    def test_stage_order(self):
        assert list(stages("staged")) == STAGED_ORDER
        assert initial_status("staged") == "application"
        assert final_stage("staged") == "active"

    def test_six_advances_reach_active(self):
        status = initial_status("staged")
        for _ in range(6):
            status = next_status("staged", status)
        assert status == "active"

    def test_advance_out_of_final_stage_is_not_an_edge(self):
        assert next_status("staged", "active") is None
        assert find_transition("staged", "active", ADVANCE) is None

    def test_no_backward_or_skipping_edges(self):
        for i, current in enumerate(STAGED_ORDER):
            for j, target in enumerate(STAGED_ORDER):
                expected = j == i + 1
                assert can_transition("staged", current, target) is expected, (current, target)

    @pytest.mark.parametrize("status", STAGED_ORDER)
    def test_reject_from_every_live_stage(self, status):
        transition = find_transition("staged", status, REJECT)
        assert transition is not None
        assert transition.to_state == "rejected"
        assert transition.guard is not None

    def test_retire_only_from_final_stage(self):
        for status in STAGED_ORDER[:-1]:
            assert find_transition("staged", status, RETIRE) is None
        transition = find_transition("staged", "active", RETIRE)
        assert transition.to_state == "retired"
        assert transition.guard.name == "pool_exhausted"

    @pytest.mark.parametrize("terminal", ["rejected", "retired"])
    def test_terminal_states_are_absorbing(self, terminal):
        assert is_terminal(terminal)
        for action in (ADVANCE, REJECT, RETIRE):
            assert find_transition("staged", terminal, action) is None
        assert next_status("staged", terminal) is None


class TestLegacyPipeline:

    def test_degenerate_two_step_shape(self):
        assert list(stages("legacy")) == ["pending_verification", "verified"]
        assert next_status("legacy", "pending_verification") == "verified"
        assert next_status("legacy", "verified") is None

    def test_shares_reject_and_retire_exits(self):
        assert find_transition("legacy", "pending_verification", REJECT).to_state == "rejected"
        assert find_transition("legacy", "verified", RETIRE).to_state == "retired"

    def test_cannot_cross_pipelines(self):
        assert not can_transition("legacy", "pending_verification", "registration")
        assert not can_transition("staged", "application", "verified")


class TestPurchasability:

    def test_only_final_stage_with_credits(self):
        assert is_purchasable("staged", "active", Decimal("1"))
        assert is_purchasable("legacy", "verified", Decimal("0.0001"))

    def test_sold_out_final_stage_not_purchasable(self):
        assert not is_purchasable("staged", "active", Decimal("0"))

    @pytest.mark.parametrize("status", STAGED_ORDER[:-1] + ["rejected", "retired"])
    def test_non_final_stages_not_purchasable(self, status):
        assert not is_purchasable("staged", status, Decimal("50"))


class TestEnumInterop:

    def test_orm_enums_are_accepted(self):
        assert get_pipeline(CertificationPipeline.STAGED) is STAGED_PIPELINE
        assert next_status(CertificationPipeline.LEGACY, ProjectStatus.PENDING_VERIFICATION) == "verified"
        assert is_terminal(ProjectStatus.REJECTED)

    def test_every_pipeline_state_is_a_project_status(self):
        known = {s.value for s in ProjectStatus}
        for workflow in PIPELINES.values():
            assert set(workflow.states) <= known

    def test_unknown_pipeline_rejected(self):
        with pytest.raises(ValueError, match="Unknown certification pipeline"):
            get_pipeline("express")


class TestStamps:

    def test_validation_and_verification_stamps(self):
        assert stamp_for("validation") == "validation"
        assert stamp_for("audited") == "verification"
        assert stamp_for("verified") == "verification"
        assert stamp_for("monitoring") is None


class TestWorkflowValidation:

    def test_transition_to_unknown_state_rejected(self):
        with pytest.raises(ValueError, match="unknown state"):
            Workflow(
                name="broken",
                description="",
                initial_state="a",
                states=("a",),
                transitions=(Transition("a", "b", "go"),),
            )

    def test_terminal_state_with_exit_rejected(self):
        with pytest.raises(ValueError, match="terminal state"):
            Workflow(
                name="broken",
                description="",
                initial_state="a",
                states=("a", "z"),
                transitions=(Transition("z", "a", "reopen"),),
                terminal_states=("z",),
            )

    def test_pipelines_are_well_formed(self):
        for workflow in (STAGED_PIPELINE, LEGACY_PIPELINE):
            assert workflow.initial_state in workflow.states
            assert set(workflow.terminal_states) == {"rejected", "retired"}
