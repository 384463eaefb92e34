"""Domain errors shared by the PipeVault services.

Every operation either completes or raises one of these before committing;
API routers translate them into HTTP status codes.
"""


class PipeVaultError(Exception):
    """Base exception for PipeVault domain errors."""


class NotFound(PipeVaultError):
    """Raised when a referenced request, rack or document does not exist."""

    def __init__(self, entity: str, identifier: object) -> None:
        self.entity = entity
        self.identifier = identifier
        super().__init__(f"{entity} '{identifier}' not found")


class ValidationFailed(PipeVaultError):
    """Raised when caller input breaks a domain rule."""


class InvalidStatusTransition(PipeVaultError):
    """Raised when a request or truck load is moved to a status its lifecycle forbids."""

    def __init__(
        self,
        reference_id: str,
        current: str,
        target: str,
        entity: str = "Request",
    ) -> None:
        self.reference_id = reference_id
        self.current = current
        self.target = target
        self.entity = entity
        super().__init__(
            f"{entity} {reference_id} cannot move from {current} to {target}"
        )


class CapacityExceeded(PipeVaultError):
    """Raised when the selected racks cannot hold the required joints."""

    def __init__(self, required: int, available: int, rack_ids: list[str]) -> None:
        self.required = required
        self.available = available
        self.rack_ids = rack_ids
        super().__init__(
            f"Insufficient rack capacity: {required} joints required, "
            f"{available} available across racks: {', '.join(rack_ids) or 'none'}"
        )

    @property
    def shortfall(self) -> int:
        return self.required - self.available


class MixedYardAllocation(PipeVaultError):
    """Raised when an allocation spans racks in more than one yard."""

    def __init__(self, yard_ids: list[str]) -> None:
        self.yard_ids = yard_ids
        super().__init__(
            f"Racks must belong to a single yard, got: {', '.join(yard_ids)}"
        )


class ConcurrentModification(PipeVaultError):
    """Raised when a rack changed between snapshot and write.

    The whole operation is rolled back; callers may retry with a fresh
    snapshot.
    """

    def __init__(self, rack_id: str) -> None:
        self.rack_id = rack_id
        super().__init__(
            f"Rack '{rack_id}' was modified concurrently; retry the operation"
        )


class UpstreamServiceUnavailable(PipeVaultError):
    """Raised when an external service (Gemini, Resend, Slack) fails."""
