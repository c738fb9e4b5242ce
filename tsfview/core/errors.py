class FetchError(RuntimeError):
    """Raised when the query service could not be reached or answered with
    a non-retryable status. ``__cause__`` carries the last underlying error."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class InvalidWindowError(ValueError):
    """Malformed start month, month count or pre-roll length."""


class DataInconsistencyError(ValueError):
    """Raw rows violate a rendering precondition (crossed bounds, bad dates)."""
