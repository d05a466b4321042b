from .diff import DiffFile, DiffLine, DiffView, DisplayRow, Hunk, LineType, RowKind
from .document import Document, DocumentMode
from .review import CellComment, RangeComment, ReviewSubmission

__all__ = [
    "DiffFile",
    "DiffLine",
    "DiffView",
    "DisplayRow",
    "Hunk",
    "LineType",
    "RowKind",
    "Document",
    "DocumentMode",
    "CellComment",
    "RangeComment",
    "ReviewSubmission",
]
