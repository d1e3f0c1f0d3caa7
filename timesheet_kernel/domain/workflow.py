"""
Status state machines for Projects and Tasks.

Responsibility
--------------
Frozen transition tables and the lookup used by services before changing a
project's or task's status.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* Terminal states have no outgoing transitions.
* A transition to the current state is not a transition and is rejected.
* New records start in the workflow's initial state.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from timesheet_kernel.domain.values import ProjectStatus, TaskStatus
from timesheet_kernel.exceptions import InvalidInitialStatusError, InvalidStatusTransitionError


@dataclass(frozen=True)
class Transition:
    from_state: str
    to_state: str
    action: str


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for a record lifecycle.

    Contract: frozen; ``transitions`` reference only states in ``states``.
    Guarantees: ``initial_state`` is a member of ``states``.
    """
    name: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValueError(f"{self.name}: unknown initial state {self.initial_state}")
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(f"{self.name}: transition {t.action} uses unknown state")
            if t.from_state in self.terminal_states:
                raise ValueError(f"{self.name}: terminal state {t.from_state} has outgoing transition")

    def allowed_targets(self, from_state: str) -> frozenset[str]:
        return frozenset(t.to_state for t in self.transitions if t.from_state == from_state)

    def can_transition(self, from_state: str, to_state: str) -> bool:
        return to_state in self.allowed_targets(from_state)

    def find(self, from_state: str, to_state: str) -> Transition | None:
        for t in self.transitions:
            if t.from_state == from_state and t.to_state == to_state:
                return t
        return None


PROJECT_WORKFLOW = Workflow(
    name="project",
    initial_state=ProjectStatus.ACTIVE.value,
    states=tuple(s.value for s in ProjectStatus),
    transitions=(
        Transition(ProjectStatus.ACTIVE.value, ProjectStatus.ON_HOLD.value, "pause"),
        Transition(ProjectStatus.ACTIVE.value, ProjectStatus.COMPLETED.value, "complete"),
        Transition(ProjectStatus.ACTIVE.value, ProjectStatus.CANCELLED.value, "cancel"),
        Transition(ProjectStatus.ON_HOLD.value, ProjectStatus.ACTIVE.value, "resume"),
        Transition(ProjectStatus.ON_HOLD.value, ProjectStatus.CANCELLED.value, "cancel"),
    ),
    terminal_states=(ProjectStatus.COMPLETED.value, ProjectStatus.CANCELLED.value),
)

TASK_WORKFLOW = Workflow(
    name="task",
    initial_state=TaskStatus.TODO.value,
    states=tuple(s.value for s in TaskStatus),
    transitions=(
        Transition(TaskStatus.TODO.value, TaskStatus.IN_PROGRESS.value, "start"),
        Transition(TaskStatus.IN_PROGRESS.value, TaskStatus.TODO.value, "reset"),
        Transition(TaskStatus.IN_PROGRESS.value, TaskStatus.REVIEW.value, "submit"),
        Transition(TaskStatus.IN_PROGRESS.value, TaskStatus.DONE.value, "complete"),
        Transition(TaskStatus.REVIEW.value, TaskStatus.IN_PROGRESS.value, "return"),
        Transition(TaskStatus.REVIEW.value, TaskStatus.DONE.value, "approve"),
        Transition(TaskStatus.DONE.value, TaskStatus.IN_PROGRESS.value, "reopen"),
    ),
)


def _state(value: object) -> str:
    return value.value if isinstance(value, Enum) else str(value)


def require_transition(workflow: Workflow, from_state: object, to_state: object) -> Transition:
    """Return the matching transition or raise InvalidStatusTransitionError."""
    source, target = _state(from_state), _state(to_state)
    transition = workflow.find(source, target)
    if transition is None:
        raise InvalidStatusTransitionError(workflow.name.capitalize(), source, target)
    return transition


def require_initial_state(workflow: Workflow, state: object) -> str:
    """New records start in ``workflow.initial_state``; anything else raises."""
    value = _state(state)
    if value != workflow.initial_state:
        raise InvalidInitialStatusError(workflow.name.capitalize(), value, workflow.initial_state)
    return value
