"""Typed errors raised by the extra pay core and mapped to HTTP by the API layer."""


class DomainError(Exception):
    """Base exception for extra pay business rule violations."""
    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(DomainError):
    """Malformed input: missing rejection reason, out-of-enum status, bad reference."""
    status_code = 400


class ContractInUseError(ValidationError):
    """Raised when deleting a contract that requests still reference."""
    status_code = 409


class InvalidTransitionError(DomainError):
    """Raised when a status change is not in the transition table."""
    status_code = 400

    def __init__(self, from_status: str, to_status: str, reason: str = None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class NotFoundError(DomainError):
    """
    Entity absent or owned by another district.

    Both causes produce the same message so callers cannot discover
    other tenants' rows.
    """
    status_code = 404

    def __init__(self, entity_label: str):
        self.entity_label = entity_label
        super().__init__(f"{entity_label} not found")


class StorageUnavailable(DomainError):
    """The backing database could not complete the operation. Not retried here."""
    status_code = 503
