"""Storage request and truck load lifecycles and their allowed transitions."""

from enum import Enum

from pipevault.services.errors import InvalidStatusTransition


class RequestStatus(str, Enum):
    """Lifecycle status of a storage request."""

    SUBMITTED = "SUBMITTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    ACTIVE = "ACTIVE"
    PICKUP_REQUESTED = "PICKUP_REQUESTED"
    COMPLETED = "COMPLETED"


class PipeStatus(str, Enum):
    """Status of a batch of joints."""

    PENDING_DELIVERY = "PENDING_DELIVERY"
    IN_STORAGE = "IN_STORAGE"
    PICKED_UP = "PICKED_UP"
    IN_TRANSIT = "IN_TRANSIT"


class LoadType(str, Enum):
    """Direction of a truck load."""

    DELIVERY = "DELIVERY"
    PICKUP = "PICKUP"


class LoadStatus(str, Enum):
    """Booking status of a truck load."""

    NEW = "NEW"
    APPROVED = "APPROVED"
    IN_TRANSIT = "IN_TRANSIT"
    COMPLETED = "COMPLETED"
    REJECTED = "REJECTED"


ALLOWED_TRANSITIONS: dict[RequestStatus, frozenset[RequestStatus]] = {
    RequestStatus.SUBMITTED: frozenset({RequestStatus.APPROVED, RequestStatus.REJECTED}),
    RequestStatus.APPROVED: frozenset({RequestStatus.ACTIVE}),
    # A partial pickup returns the request to ACTIVE
    RequestStatus.ACTIVE: frozenset({RequestStatus.PICKUP_REQUESTED}),
    RequestStatus.PICKUP_REQUESTED: frozenset(
        {RequestStatus.COMPLETED, RequestStatus.ACTIVE}
    ),
    RequestStatus.REJECTED: frozenset(),
    RequestStatus.COMPLETED: frozenset(),
}


def can_transition(current: RequestStatus | str, target: RequestStatus | str) -> bool:
    """Check whether a request may move from ``current`` to ``target``."""
    try:
        current_status = RequestStatus(current)
        target_status = RequestStatus(target)
    except ValueError:
        return False
    return target_status in ALLOWED_TRANSITIONS[current_status]


def ensure_transition(
    reference_id: str,
    current: RequestStatus | str,
    target: RequestStatus | str,
) -> RequestStatus:
    """Validate a transition and return the target status.

    Raises:
        InvalidStatusTransition: If the lifecycle forbids the move.
    """
    if not can_transition(current, target):
        raise InvalidStatusTransition(
            reference_id,
            str(getattr(current, "value", current)),
            str(getattr(target, "value", target)),
        )
    return RequestStatus(target)


def is_terminal(status: RequestStatus | str) -> bool:
    """Terminal statuses accept no further transitions."""
    return not ALLOWED_TRANSITIONS[RequestStatus(status)]


# A correction request keeps the load in NEW
LOAD_TRANSITIONS: dict[LoadStatus, frozenset[LoadStatus]] = {
    LoadStatus.NEW: frozenset({LoadStatus.APPROVED, LoadStatus.REJECTED}),
    LoadStatus.APPROVED: frozenset({LoadStatus.IN_TRANSIT}),
    LoadStatus.IN_TRANSIT: frozenset({LoadStatus.COMPLETED}),
    LoadStatus.COMPLETED: frozenset(),
    LoadStatus.REJECTED: frozenset(),
}


def ensure_load_transition(
    load_id: object,
    current: LoadStatus | str,
    target: LoadStatus,
) -> LoadStatus:
    """Validate a truck load status change and return the target status.

    Raises:
        InvalidStatusTransition: If the load cannot move to ``target``.
    """
    try:
        allowed = LOAD_TRANSITIONS[LoadStatus(current)]
    except ValueError:
        allowed = frozenset()
    if target not in allowed:
        raise InvalidStatusTransition(
            str(load_id),
            str(getattr(current, "value", current)),
            target.value,
            entity="Truck load",
        )
    return target
