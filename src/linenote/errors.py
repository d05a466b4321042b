class LinenoteError(Exception):
    """Base error for linenote."""


class DocumentError(LinenoteError):
    """The input could not be read or produced."""
