"""Custom exceptions for EventThreads."""


class EventThreadsError(Exception):
    """Base exception for EventThreads."""


class ConfigurationError(EventThreadsError):
    """Configuration-related errors."""


class InvalidConfigError(ConfigurationError):
    """Configuration is invalid."""


class ThreadsError(EventThreadsError):
    """Errors raised by thread and membership operations.

    All of them are recoverable: the failed operation leaves no
    observable state change and the caller may retry.
    """


class ValidationError(ThreadsError):
    """Malformed or empty input, or a duration outside the allowed set."""


class NotFoundError(ThreadsError):
    """Unknown thread or user."""


class ThreadExpiredError(NotFoundError):
    """Thread exists but is past its expiration time."""


class AuthorizationError(ThreadsError):
    """Role or ownership check failed."""


class ConflictError(ThreadsError):
    """Membership state precondition violated."""


class SecurityError(EventThreadsError):
    """Security-related errors."""


class AuthenticationError(SecurityError):
    """Authentication failed."""


class StorageError(EventThreadsError):
    """Storage-related errors."""


class DatabaseConnectionError(StorageError):
    """Database connection failed."""
