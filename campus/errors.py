"""Error kinds raised by the storage layer and the services."""


class PortalError(Exception):
    """Base class for every error the portal surfaces to its callers."""


class NotAuthenticatedError(PortalError):
    """Raised when the caller's session cannot be resolved to a user."""


class NotFoundError(PortalError):
    """Raised when a single-row lookup finds nothing."""


class ValidationError(PortalError):
    """Raised when a request is well-formed but not allowed."""


class DecodeError(PortalError):
    """Raised when a stored permission payload cannot be decoded."""


class StorageError(PortalError):
    """Raised when an underlying database read or write fails."""
