"""Custom exception hierarchy."""

class AppError(Exception):
    """Base exception for application errors."""
    def __init__(self, message: str, original_error: Exception = None):
        super().__init__(message)
        self.original_error = original_error


class APIClientError(AppError):
    """Raised when an external API call fails."""
    pass


class APITimeoutError(APIClientError):
    """Raised when an external API call times out."""
    pass


class DatabaseError(AppError):
    """Raised when a database operation fails."""
    pass


class ConfigurationError(AppError):
    """Raised when configuration is invalid or missing."""
    pass


class GazetteerLoadError(ConfigurationError):
    """Raised when a reference yard dataset cannot be read or parsed."""
    pass


class DispatcherClosedError(AppError):
    """Raised when work is submitted to a dispatcher that has been shut down."""
    pass
