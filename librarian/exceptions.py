"""Business errors raised across the librarian modules.

Every error carries a machine-readable code, a user-facing message and the HTTP
status the API layer should map it to.
"""


class LibrarianError(Exception):
    """Base class for librarian business errors.

    Attributes:
        code: machine-readable error code (e.g. "STORE_WRITE_ERROR").
        message: human-readable message.
        http_status: status code used when the error reaches the HTTP layer.
        extra: additional context (session_id, title, ...).
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class UsageError(LibrarianError):
    """A command matched but its parameters are unusable."""


class DuplicateBookError(UsageError):
    """The (title, author) pair is already in the catalog."""

    def __init__(self, title: str, author: str):
        super().__init__(
            "DUPLICATE_BOOK",
            f"Book already exists: {title} - {author}",
            http_status=409,
            title=title,
            author=author,
        )


class GenerationError(LibrarianError):
    """The text generation service failed or is not configured."""

    def __init__(self, message: str, **extra):
        super().__init__("GENERATION_ERROR", message, http_status=502, **extra)


class CatalogStoreError(LibrarianError):
    """The catalog store could not be read or written."""

    def __init__(self, message: str, **extra):
        super().__init__("STORE_ERROR", message, http_status=500, **extra)
