from __future__ import annotations
"""Finite state machine helper for enforcing allowed status transitions.

Usage:
    from repairpos.utils.fsm import TransitionValidator
    REPAIR_FSM = TransitionValidator({
        'RECEIVED': {'IN_PROGRESS', 'CANCELLED'},
        'IN_PROGRESS': {'READY'},
        'READY': set(),
    })
    REPAIR_FSM.assert_can_transition(job.status, 'IN_PROGRESS')

Raises StateConflictError if the transition is not in the graph.
"""
from typing import Dict, Set

from ..errors import StateConflictError


class TransitionValidator:
    def __init__(self, graph: Dict[str, Set[str]], field_name: str = 'status'):
        self.graph = graph
        self.field_name = field_name

    @property
    def states(self) -> Set[str]:
        return set(self.graph)

    def is_terminal(self, state: str) -> bool:
        return not self.graph.get(state)

    def can_transition(self, current: str, target: str) -> bool:
        return target in self.graph.get(current, set())

    def assert_can_transition(self, current: str, target: str):
        if not self.can_transition(current, target):
            raise StateConflictError(
                f"Invalid {self.field_name} transition {current} -> {target}",
                {"current": current, "target": target},
            )
        return True


__all__ = ['TransitionValidator']
