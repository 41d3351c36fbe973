from __future__ import annotations


class ReservationError(Exception):
    """Base class for business errors raised by the reservation core."""

    kind = "error"


class InvalidInputError(ReservationError):
    kind = "invalid_input"


class NotFoundError(ReservationError):
    kind = "not_found"


class CustomerNotFoundError(NotFoundError):
    def __init__(self, customer_id: int) -> None:
        super().__init__(f"customer not found: {customer_id}")
        self.customer_id = customer_id


class ReservationNotFoundError(NotFoundError):
    def __init__(self, reservation_id: int) -> None:
        super().__init__(f"reservation not found: {reservation_id}")
        self.reservation_id = reservation_id


class ConflictError(ReservationError):
    kind = "conflict"


class InsufficientCapacityError(ConflictError):
    def __init__(self, capacity: int, party_size: int) -> None:
        super().__init__(f"selected tables seat {capacity}, party size is {party_size}")
        self.capacity = capacity
        self.party_size = party_size


class TableOverlapError(ConflictError):
    def __init__(self, table_ids: list[int]) -> None:
        super().__init__(f"tables not available in this time window: {table_ids}")
        self.table_ids = table_ids


class InvalidTransitionError(ConflictError):
    def __init__(self, status_from: str, status_to: str) -> None:
        super().__init__(f"transition {status_from} -> {status_to} is not allowed")
        self.status_from = status_from
        self.status_to = status_to


class NoSuitableCombinationError(ConflictError):
    def __init__(self, party_size: int, available_capacity: int) -> None:
        super().__init__(
            f"no combination of available tables seats {party_size} "
            f"(available capacity {available_capacity})"
        )
        self.party_size = party_size
        self.available_capacity = available_capacity


class StorageError(ReservationError):
    """Raised when the storage layer fails below the business rules."""

    kind = "unexpected"
