"""Allowed status transitions for lifecycle models.

Usage:
    from prorentals.utils.fsm import TransitionValidator
    REPORT_FSM = TransitionValidator({
        "draft": {"submitted"},
        "submitted": {"approved", "rejected"},
        "approved": {"billed"},
    }, label="damage report")
    REPORT_FSM.assert_can_transition(report.status, "submitted")

Raises InvalidStateError when the move is not in the graph.
"""
from prorentals.utils.errors import InvalidStateError


class TransitionValidator:
    def __init__(self, graph: dict[str, set[str]], label: str = "status"):
        self.graph = graph
        self.label = label

    def can_transition(self, current: str, target: str) -> bool:
        return target in self.graph.get(current, set())

    def assert_can_transition(self, current: str, target: str, message: str | None = None) -> bool:
        if not self.can_transition(current, target):
            raise InvalidStateError(
                message or f"Invalid {self.label} transition {current} -> {target}",
                payload={"currentStatus": current, "targetStatus": target},
            )
        return True

    def is_terminal(self, status: str) -> bool:
        return not self.graph.get(status)


__all__ = ["TransitionValidator"]
