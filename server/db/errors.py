# Typed engine failures
# Each error carries the RPC-style code returned to callers and its HTTP status


class EngineError(Exception):
    """Base class for failures surfaced synchronously to the caller."""
    code = "internal"
    http_status = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class UnauthenticatedError(EngineError):
    """Raised when no verified caller identity is present."""
    code = "unauthenticated"
    http_status = 401


class PermissionDeniedError(EngineError):
    """Raised when the caller is not the resource's owner or assignee."""
    code = "permission-denied"
    http_status = 403


class NotFoundError(EngineError):
    """Raised when a referenced order, run, group or request is absent."""
    code = "not-found"
    http_status = 404


class FailedPreconditionError(EngineError):
    """Raised on state-machine violations (group full, PIN mismatch, ...)."""
    code = "failed-precondition"
    http_status = 409


class InvalidArgumentError(EngineError):
    """Raised when a payload value is malformed."""
    code = "invalid-argument"
    http_status = 400


class TransactionAbortedError(EngineError):
    """Raised when a transaction keeps conflicting past its retry budget."""
    code = "aborted"
    http_status = 503
