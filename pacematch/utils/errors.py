"""Custom exception types for consistent error handling."""


class StoreUnavailableError(Exception):
    """Raised when Realtime Database reads or writes fail or are unavailable."""


class InvalidInputError(Exception):
    """Raised when request input validation fails."""


class LocationPermissionDeniedError(Exception):
    """Raised when the platform refuses location access. Not retried."""


class LocationUnavailableError(Exception):
    """Raised when a position fix could not be acquired after all retries."""


class GraphExecutionError(Exception):
    """Raised when a graph fails to compile or execute."""
