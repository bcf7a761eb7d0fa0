
class ApplicationError(Exception):
    """Base class for application-specific errors."""
    pass

class ValidationError(ApplicationError):
    """Raised when input is empty, malformed or missing a required field."""
    pass

class LocationRequiredError(ValidationError):
    """Raised when a scan arrives before a location is selected."""
    def __init__(self, message="Location required: select a location before scanning."):
        super().__init__(message)

class NotFoundError(ApplicationError):
    """Raised when a referenced entity does not exist."""
    pass

class ItemNotFoundError(NotFoundError):
    """Raised when a scanned or referenced item is not in the catalog."""
    pass

class LocationNotFoundError(NotFoundError):
    """Raised when a location id cannot be resolved."""
    pass

class QuestionNotFoundError(NotFoundError):
    """Raised when a question id cannot be resolved."""
    pass

class AccessDeniedError(ApplicationError):
    """Raised when the caller may not act on a location or operation."""
    pass

class ConflictError(ApplicationError):
    """Raised when an operation would break a uniqueness or reference rule."""
    pass

class LocationInUseError(ConflictError):
    """Raised when deleting or renaming a location still referenced by audit items."""
    pass

class LocationNameTakenError(ConflictError):
    """Raised when another location already uses the requested name."""
    pass

class PersistenceError(ApplicationError):
    """Raised for database errors; the original exception is kept for logging."""
    def __init__(self, message="A database error occurred.", original_exception=None):
        super().__init__(message)
        self.original_exception = original_exception

class PreconditionFailedError(PersistenceError):
    """Raised when a document changed since it was read (ETag mismatch)."""
    pass

class PartialFailureError(PersistenceError):
    """Raised when a multi-step write completed only some of its steps."""
    def __init__(self, message, completed=None, original_exception=None):
        super().__init__(message, original_exception=original_exception)
        self.completed = list(completed or [])
