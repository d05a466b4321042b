from enum import Enum
from pydantic import BaseModel

from .diff import DiffView


class DocumentMode(str, Enum):
    CSV = "csv"
    TEXT = "text"
    MARKDOWN = "markdown"
    DIFF = "diff"


class Document(BaseModel):
    """A loaded input, ready to be rendered as a review page."""
    mode: DocumentMode
    title: str
    rows: list[list[str]]
    cols: int = 1
    preview_html: str | None = None
    diff: DiffView | None = None
