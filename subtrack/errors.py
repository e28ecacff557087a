class SubtrackError(Exception):
    """Base class for errors raised by subtrack services."""


class ValidationError(SubtrackError, ValueError):
    """A domain invariant was violated; nothing has been persisted."""


class NotFoundError(SubtrackError, LookupError):
    def __init__(self, kind: str, identifier):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} not found: {identifier}")


class OperationError(SubtrackError):
    """Unexpected failure of a mutation or analysis, prefixed with the operation."""

    def __init__(self, operation: str, cause: BaseException):
        self.operation = operation
        self.cause = cause
        super().__init__(f"Failed to {operation}: {cause}")
