"""
Errors raised by the entity store. Every error carries a stable ``code`` string so callers (e.g. a web service
translating errors into responses) can branch on the kind of failure without matching on messages.
"""


class EntityStoreError(Exception):
    """Base class for all errors raised by this package."""

    code = "ENTITY_STORE_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class StorageDriverMissing(EntityStoreError):
    """An entity type was registered without a storage driver. The type cannot be used."""

    code = "STORAGE_DRIVER_MISSING"


class EntityNotRegistered(EntityStoreError):
    """A storage operation was attempted on an entity type that was never registered with a storage registry."""

    code = "ENTITY_NOT_REGISTERED"


class CannotDeleteWithoutId(EntityStoreError):
    """Deleting an entity that was never saved."""

    code = "CANNOT_DELETE_NO_ID"


class MaxPerPageExceeded(EntityStoreError):
    code = "MAX_PER_PAGE_EXCEEDED"

    def __init__(self, max_per_page: int):
        super().__init__(f"Cannot query for more than {max_per_page} models per page.")
        self.max_per_page = max_per_page


class ValidationFailed(EntityStoreError):
    """
    An entity's field values did not pass validation. The underlying pydantic ``ValidationError`` is available as
    ``__cause__`` and through :attr:`errors`.
    """

    code = "VALIDATION_FAILED"

    def __init__(self, message: str, errors=None):
        super().__init__(message)
        self.errors = errors or []


class InvalidCursor(EntityStoreError):
    """A pagination cursor could not be decoded, or does not match the sort of the query it was passed to."""

    code = "INVALID_CURSOR"


class CursorConflict(EntityStoreError):
    """Both a ``before`` and an ``after`` cursor were passed to a single query."""

    code = "CURSOR_CONFLICT"
