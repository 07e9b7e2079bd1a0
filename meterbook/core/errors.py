"""Error taxonomy shared by the services and rendered by the API."""


class MeterbookError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 500

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class ValidationError(MeterbookError):
    """Bad or missing input, e.g. a non-numeric correction or an empty reason."""

    status_code = 422


class InvalidTransitionError(MeterbookError):
    """Operation attempted from a state that does not allow it."""

    status_code = 409

    def __init__(self, action: str, current_status: str):
        super().__init__(f"Cannot {action} a reading in status '{current_status}'")
        self.action = action
        self.current_status = current_status


class NotFoundError(MeterbookError):
    """Unknown reading or flat."""

    status_code = 404


class DependencyError(MeterbookError):
    """A store or collaborator failed; callers may retry."""

    status_code = 503
    retryable = True


class ConcurrencyError(DependencyError):
    """Another writer changed the flat's ledger while this transition was in flight."""
