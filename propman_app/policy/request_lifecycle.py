from enum import Enum
from typing import Dict, FrozenSet

from core.errors import Forbidden, ValidationFailed
from models.enums import RequestStatus, TemplateStatus

S = RequestStatus

REQUEST_TRANSITIONS: Dict[RequestStatus, FrozenSet[RequestStatus]] = {
    S.NEW: frozenset({S.TRIAGED, S.ASSIGNED, S.CANCELED}),
    S.TRIAGED: frozenset({S.ASSIGNED, S.CANCELED}),
    S.ASSIGNED: frozenset({S.IN_PROGRESS, S.ON_HOLD, S.CANCELED}),
    S.IN_PROGRESS: frozenset({S.COMPLETED, S.ON_HOLD, S.CANCELED}),
    S.ON_HOLD: frozenset({S.IN_PROGRESS, S.ASSIGNED, S.CANCELED}),
    S.COMPLETED: frozenset({S.VERIFIED, S.REOPENED}),
    S.VERIFIED: frozenset({S.REOPENED}),
    S.REOPENED: frozenset({S.ASSIGNED, S.IN_PROGRESS}),
    S.CANCELED: frozenset(),
    S.ARCHIVED: frozenset(),
}

PUBLIC_TARGETS = frozenset({S.IN_PROGRESS, S.COMPLETED})
ASSIGNEE_TARGETS = frozenset({S.IN_PROGRESS, S.ON_HOLD, S.COMPLETED})
MANAGER_ONLY_TARGETS = frozenset(
    {S.TRIAGED, S.ASSIGNED, S.VERIFIED, S.REOPENED, S.ARCHIVED}
)
FEEDBACK_STATES = frozenset({S.COMPLETED, S.VERIFIED})


class TransitionActor(str, Enum):
    MANAGER = "manager"
    ASSIGNEE = "assignee"
    REQUESTER = "requester"
    PUBLIC = "public"


def can_transition(current: RequestStatus, target: RequestStatus) -> bool:
    if target == S.ARCHIVED:
        return current != S.ARCHIVED
    return target in REQUEST_TRANSITIONS.get(current, frozenset())


def check_request_transition(
    current: RequestStatus,
    target: RequestStatus,
    *,
    actor: TransitionActor,
    has_assignee: bool,
) -> None:
    if current == target:
        raise ValidationFailed.field(
            "status", f"Request is already {current.value}", target.value
        )
    if not can_transition(current, target):
        raise ValidationFailed.field(
            "status",
            f"Cannot move a request from {current.value} to {target.value}",
            target.value,
        )

    if actor == TransitionActor.PUBLIC and target not in PUBLIC_TARGETS:
        raise Forbidden("Public links may only set in_progress or completed")
    if actor == TransitionActor.ASSIGNEE and target not in ASSIGNEE_TARGETS:
        raise Forbidden("Assignees may only progress, pause or complete work")
    if actor == TransitionActor.REQUESTER and not (
        target == S.CANCELED and current == S.NEW
    ):
        raise Forbidden("Requesters may only cancel a new request")
    if target in MANAGER_ONLY_TARGETS and actor != TransitionActor.MANAGER:
        raise Forbidden(f"Only property managers can set {target.value}")

    if target == S.ASSIGNED and not has_assignee:
        raise ValidationFailed.field(
            "assignedTo", "A request must have an assignee before it is assigned"
        )


def check_feedback_allowed(current: RequestStatus) -> None:
    if current not in FEEDBACK_STATES:
        raise ValidationFailed.field(
            "status", "Feedback can only be left on completed or verified requests"
        )


T = TemplateStatus

TEMPLATE_TRANSITIONS: Dict[TemplateStatus, FrozenSet[TemplateStatus]] = {
    T.ACTIVE: frozenset({T.PAUSED, T.COMPLETED, T.CANCELED}),
    T.PAUSED: frozenset({T.ACTIVE, T.CANCELED}),
    T.COMPLETED: frozenset(),
    T.CANCELED: frozenset(),
}


def check_template_transition(current: TemplateStatus, target: TemplateStatus) -> None:
    if target not in TEMPLATE_TRANSITIONS.get(current, frozenset()):
        raise ValidationFailed.field(
            "status",
            f"Cannot move scheduled maintenance from {current.value} to {target.value}",
            target.value,
        )
