"""
Project certification state machine (``carbon_kernel.domain.certification``).

Responsibility
--------------
Declares the certification pipelines as ``Workflow`` instances and answers
pure questions about them: what comes after a status, whether a move is an
edge of the machine, whether a project in a given state can be sold, and
which verification stamp a step sets.

Two pipelines share one definition:

    staged (default)
        application -> registration -> pre_validation -> validation
                    -> monitoring -> audited -> active

    legacy (degenerate two-step instance)
        pending_verification -> verified

Both add the same exits: ``reject`` from any non-terminal state to
``rejected`` (guarded by a non-empty reason) and ``retire`` from the final
stage to ``retired`` (guarded by an exhausted pool).

Architecture position
---------------------
**Kernel domain layer** -- pure.  Works on status *values* (``str``), so
it does not import the ORM enums; ``ProjectStatus`` members compare equal
to these strings.

Invariants enforced
-------------------
* Forward only: ``advance`` has exactly one successor per non-final stage.
* ``advance`` out of the final stage is not an edge (it is an error, not a
  no-op).
* ``rejected`` and ``retired`` are absorbing.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Any

from carbon_kernel.domain.workflow import Guard, Transition, Workflow

STAGED = "staged"
LEGACY = "legacy"

REJECTED = "rejected"
RETIRED = "retired"
TERMINAL_STATES: tuple[str, ...] = (REJECTED, RETIRED)

ADVANCE = "advance"
REJECT = "reject"
RETIRE = "retire"

STAGED_STAGES: tuple[str, ...] = (
    "application",
    "registration",
    "pre_validation",
    "validation",
    "monitoring",
    "audited",
    "active",
)

LEGACY_STAGES: tuple[str, ...] = (
    "pending_verification",
    "verified",
)

REASON_GIVEN = Guard(
    name="rejection_reason_given",
    description="A non-empty rejection reason accompanies the rejection",
)

POOL_EXHAUSTED = Guard(
    name="pool_exhausted",
    description="Every issued credit has been sold (available_credits == 0)",
)

# Entering these states stamps validation / verification metadata
VALIDATION_STAMP = "validation"
VERIFICATION_STAMP = "verification"
STAMPS: dict[str, str] = {
    "validation": VALIDATION_STAMP,
    "audited": VERIFICATION_STAMP,
    "verified": VERIFICATION_STAMP,
}


def _build_pipeline(name: str, description: str, stages: tuple[str, ...]) -> Workflow:
    transitions: list[Transition] = [
        Transition(from_state=current, to_state=following, action=ADVANCE)
        for current, following in zip(stages, stages[1:])
    ]
    transitions.extend(
        Transition(from_state=stage, to_state=REJECTED, action=REJECT, guard=REASON_GIVEN)
        for stage in stages
    )
    transitions.append(
        Transition(from_state=stages[-1], to_state=RETIRED, action=RETIRE, guard=POOL_EXHAUSTED)
    )
    return Workflow(
        name=name,
        description=description,
        initial_state=stages[0],
        states=stages + TERMINAL_STATES,
        transitions=tuple(transitions),
        terminal_states=TERMINAL_STATES,
    )


STAGED_PIPELINE = _build_pipeline(
    STAGED,
    "Registry certification: application through audit to active issuance",
    STAGED_STAGES,
)

LEGACY_PIPELINE = _build_pipeline(
    LEGACY,
    "Legacy single verification step",
    LEGACY_STAGES,
)

PIPELINES: dict[str, Workflow] = {
    STAGED: STAGED_PIPELINE,
    LEGACY: LEGACY_PIPELINE,
}

_STAGES: dict[str, tuple[str, ...]] = {
    STAGED: STAGED_STAGES,
    LEGACY: LEGACY_STAGES,
}


def _value(value: Any) -> str:
    return value.value if isinstance(value, Enum) else str(value)


def get_pipeline(pipeline: Any) -> Workflow:
    """Return the Workflow for a pipeline name (or CertificationPipeline member)."""
    try:
        return PIPELINES[_value(pipeline)]
    except KeyError:
        raise ValueError(f"Unknown certification pipeline: {pipeline!r}") from None


def stages(pipeline: Any) -> tuple[str, ...]:
    """Ordered forward stages of a pipeline, initial first."""
    get_pipeline(pipeline)
    return _STAGES[_value(pipeline)]


def initial_status(pipeline: Any) -> str:
    return get_pipeline(pipeline).initial_state


def final_stage(pipeline: Any) -> str:
    return stages(pipeline)[-1]


def is_terminal(status: Any) -> bool:
    return _value(status) in TERMINAL_STATES


def find_transition(pipeline: Any, status: Any, action: str) -> Transition | None:
    """The edge ``action`` takes out of ``status``, or None if there is none."""
    return get_pipeline(pipeline).find(_value(status), action)


def next_status(pipeline: Any, status: Any) -> str | None:
    """Successor of ``status`` under ``advance``; None when advance is illegal."""
    transition = find_transition(pipeline, status, ADVANCE)
    return transition.to_state if transition is not None else None


def can_transition(pipeline: Any, from_status: Any, to_status: Any) -> bool:
    """True iff from_status -> to_status is an edge of the pipeline."""
    return get_pipeline(pipeline).allows(_value(from_status), _value(to_status))


def is_purchasable(pipeline: Any, status: Any, available_credits: Decimal) -> bool:
    """A project sells only from its final stage and only while credits remain."""
    return _value(status) == final_stage(pipeline) and available_credits > 0


def stamp_for(status: Any) -> str | None:
    """Verification stamp set on entering ``status`` (validation/verification)."""
    return STAMPS.get(_value(status))
