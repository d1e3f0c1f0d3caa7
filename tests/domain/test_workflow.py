"""Tests for the project and task state machines (``timesheet_kernel.domain.workflow``)."""

import pytest

from timesheet_kernel.domain.values import ProjectStatus, TaskStatus
from timesheet_kernel.domain.workflow import (
    PROJECT_WORKFLOW,
    TASK_WORKFLOW,
    Transition,
    Workflow,
    require_initial_state,
    require_transition,
)
from timesheet_kernel.exceptions import InvalidInitialStatusError, InvalidStatusTransitionError


class TestWorkflowDefinition:
    @pytest.mark.parametrize("workflow", [PROJECT_WORKFLOW, TASK_WORKFLOW])
    def test_transitions_use_known_states(self, workflow):
        for t in workflow.transitions:
            assert t.from_state in workflow.states
            assert t.to_state in workflow.states

    def test_project_terminal_states_have_no_exits(self):
        for state in PROJECT_WORKFLOW.terminal_states:
            assert PROJECT_WORKFLOW.allowed_targets(state) == frozenset()

    def test_every_task_state_reachable_from_todo(self):
        reached = {TASK_WORKFLOW.initial_state}
        frontier = [TASK_WORKFLOW.initial_state]
        while frontier:
            for target in TASK_WORKFLOW.allowed_targets(frontier.pop()):
                if target not in reached:
                    reached.add(target)
                    frontier.append(target)
        assert reached == {s.value for s in TaskStatus}

    def test_unknown_initial_state_rejected(self):
        with pytest.raises(ValueError):
            Workflow(name="x", initial_state="nope", states=("a",), transitions=())

    def test_terminal_state_with_exit_rejected(self):
        with pytest.raises(ValueError):
            Workflow(
                name="x",
                initial_state="a",
                states=("a", "b"),
                transitions=(Transition("b", "a", "undo"),),
                terminal_states=("b",),
            )


class TestRequireTransition:
    @pytest.mark.parametrize(
        "source, target, action",
        [
            (ProjectStatus.ACTIVE, ProjectStatus.ON_HOLD, "pause"),
            (ProjectStatus.ON_HOLD, ProjectStatus.ACTIVE, "resume"),
            (ProjectStatus.ACTIVE, ProjectStatus.COMPLETED, "complete"),
        ],
    )
    def test_project_allowed(self, source, target, action):
        assert require_transition(PROJECT_WORKFLOW, source, target).action == action

    @pytest.mark.parametrize(
        "source, target",
        [
            (ProjectStatus.COMPLETED, ProjectStatus.ACTIVE),
            (ProjectStatus.CANCELLED, ProjectStatus.ON_HOLD),
            (ProjectStatus.ACTIVE, ProjectStatus.ACTIVE),
        ],
    )
    def test_project_rejected(self, source, target):
        with pytest.raises(InvalidStatusTransitionError) as exc_info:
            require_transition(PROJECT_WORKFLOW, source, target)
        assert exc_info.value.from_status == source.value
        assert exc_info.value.to_status == target.value

    def test_task_skip_from_todo_to_done_rejected(self):
        with pytest.raises(InvalidStatusTransitionError, match="task status transition"):
            require_transition(TASK_WORKFLOW, TaskStatus.TODO, TaskStatus.DONE)

    def test_task_reopen(self):
        assert require_transition(TASK_WORKFLOW, "DONE", "IN_PROGRESS").action == "reopen"


class TestRequireInitialState:
    def test_initial_states_accepted(self):
        assert require_initial_state(PROJECT_WORKFLOW, ProjectStatus.ACTIVE) == "ACTIVE"
        assert require_initial_state(TASK_WORKFLOW, "TODO") == "TODO"

    @pytest.mark.parametrize(
        "workflow, state",
        [
            (PROJECT_WORKFLOW, ProjectStatus.COMPLETED),
            (PROJECT_WORKFLOW, ProjectStatus.CANCELLED),
            (TASK_WORKFLOW, TaskStatus.DONE),
        ],
    )
    def test_other_states_rejected(self, workflow, state):
        with pytest.raises(InvalidInitialStatusError) as exc_info:
            require_initial_state(workflow, state)
        assert exc_info.value.status == state.value
        assert exc_info.value.initial_status == workflow.initial_state
