class LibraryError(Exception):
    """Base class for failures reported back to the caller as ``{success: False}``."""


class StoreError(LibraryError):
    """The embedded database rejected a statement or could not be read/written."""


class NotFoundError(LibraryError):
    pass


class LoanError(LibraryError):
    """A lending or copy-count business rule was violated."""
