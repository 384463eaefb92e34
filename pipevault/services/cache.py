"""Client cache invalidation contract.

Every mutating endpoint returns the query keys a client must refetch. The
mapping is explicit so that clients never have to guess which cached views
a mutation touched.
"""

from enum import Enum
from uuid import UUID


class MutationKind(str, Enum):
    """Kinds of state-changing operations exposed by the API."""

    REQUEST_SUBMITTED = "request_submitted"
    REQUEST_APPROVED = "request_approved"
    REQUEST_REJECTED = "request_rejected"
    RACK_ADJUSTED = "rack_adjusted"
    DELIVERY_RECORDED = "delivery_recorded"
    PICKUP_REQUESTED = "pickup_requested"
    PICKUP_RECORDED = "pickup_recorded"
    MANIFEST_PARSED = "manifest_parsed"
    LOAD_SCHEDULED = "load_scheduled"
    LOAD_STATUS_CHANGED = "load_status_changed"
    LOAD_COMPLETED = "load_completed"


PROJECT_SUMMARIES = "projectSummaries"
COMPANY_SUMMARIES = "companies:summaries"
REQUESTS = "requests"
YARDS = "yards"
INVENTORY = "inventory"
TRUCK_LOADS = "truckLoads"
DOCUMENTS = "documents"

_BASE_KEYS: dict[MutationKind, frozenset[str]] = {
    MutationKind.REQUEST_SUBMITTED: frozenset(
        {PROJECT_SUMMARIES, COMPANY_SUMMARIES, REQUESTS}
    ),
    MutationKind.REQUEST_APPROVED: frozenset(
        {PROJECT_SUMMARIES, COMPANY_SUMMARIES, REQUESTS, YARDS}
    ),
    MutationKind.REQUEST_REJECTED: frozenset(
        {PROJECT_SUMMARIES, COMPANY_SUMMARIES, REQUESTS}
    ),
    MutationKind.RACK_ADJUSTED: frozenset({YARDS}),
    MutationKind.DELIVERY_RECORDED: frozenset(
        {PROJECT_SUMMARIES, COMPANY_SUMMARIES, REQUESTS, INVENTORY, TRUCK_LOADS}
    ),
    MutationKind.PICKUP_REQUESTED: frozenset({PROJECT_SUMMARIES, REQUESTS}),
    MutationKind.PICKUP_RECORDED: frozenset(
        {PROJECT_SUMMARIES, COMPANY_SUMMARIES, REQUESTS, INVENTORY, TRUCK_LOADS, YARDS}
    ),
    MutationKind.MANIFEST_PARSED: frozenset({DOCUMENTS, PROJECT_SUMMARIES}),
    MutationKind.LOAD_SCHEDULED: frozenset({PROJECT_SUMMARIES, TRUCK_LOADS}),
    MutationKind.LOAD_STATUS_CHANGED: frozenset({PROJECT_SUMMARIES, TRUCK_LOADS}),
    MutationKind.LOAD_COMPLETED: frozenset(
        {PROJECT_SUMMARIES, COMPANY_SUMMARIES, REQUESTS, INVENTORY, TRUCK_LOADS}
    ),
}

# Mutations scoped to one company also invalidate its detail views
_COMPANY_SCOPED = frozenset(
    {
        MutationKind.REQUEST_SUBMITTED,
        MutationKind.REQUEST_APPROVED,
        MutationKind.REQUEST_REJECTED,
        MutationKind.DELIVERY_RECORDED,
        MutationKind.PICKUP_REQUESTED,
        MutationKind.PICKUP_RECORDED,
        MutationKind.MANIFEST_PARSED,
        MutationKind.LOAD_SCHEDULED,
        MutationKind.LOAD_STATUS_CHANGED,
        MutationKind.LOAD_COMPLETED,
    }
)


def invalidation_keys(
    kind: MutationKind | str,
    company_id: UUID | str | None = None,
) -> tuple[str, ...]:
    """Return the sorted cache keys invalidated by a mutation.

    Args:
        kind: The mutation that was applied.
        company_id: Company affected by the mutation, when known.

    Returns:
        Sorted tuple of query keys.
    """
    mutation = MutationKind(kind)
    keys = set(_BASE_KEYS[mutation])
    if company_id is not None and mutation in _COMPANY_SCOPED:
        keys.add(f"{PROJECT_SUMMARIES}:company:{company_id}")
        keys.add(f"companies:details:{company_id}")
    return tuple(sorted(keys))
