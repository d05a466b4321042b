from enum import Enum
from pydantic import BaseModel, ConfigDict


DEFAULT_COLLAPSE_THRESHOLD = 50


class LineType(str, Enum):
    CONTEXT = "context"
    ADDED = "added"
    REMOVED = "removed"


class RowKind(str, Enum):
    FILE = "file"
    HUNK = "hunk"
    LINE = "line"


class DiffLine(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: LineType
    content: str
    line_number: int  # display ordinal within the file, not a source line


class Hunk(BaseModel):
    model_config = ConfigDict(frozen=True)

    old_start: int
    new_start: int
    header_context: str = ""
    lines: tuple[DiffLine, ...] = ()

    @property
    def header(self) -> str:
        return f"@@ -{self.old_start} +{self.new_start} @@{self.header_context}"


class DiffFile(BaseModel):
    model_config = ConfigDict(frozen=True)

    old_path: str = ""
    new_path: str = ""
    is_new: bool = False
    is_deleted: bool = False
    is_binary: bool = False
    hunks: tuple[Hunk, ...] = ()

    @property
    def line_count(self) -> int:
        if self.is_binary:
            return 0
        return sum(len(hunk.lines) for hunk in self.hunks)

    def is_collapsed(self, threshold: int = DEFAULT_COLLAPSE_THRESHOLD) -> bool:
        return self.line_count > threshold

    @property
    def collapsed(self) -> bool:
        return self.is_collapsed()

    @property
    def label(self) -> str:
        """Display label: path plus (new)/(deleted)/(binary) markers."""
        label = self.new_path or self.old_path
        if self.is_new:
            label += " (new)"
        if self.is_deleted:
            label += " (deleted)"
        if self.is_binary:
            label += " (binary)"
        return label


class DisplayRow(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: RowKind
    row_index: int
    file_index: int
    # file rows
    label: str | None = None
    line_count: int | None = None
    collapsed: bool | None = None
    # hunk and line rows
    content: str | None = None
    line_type: LineType | None = None
    line_number: int | None = None


class DiffView(BaseModel):
    model_config = ConfigDict(frozen=True)

    rows: tuple[DisplayRow, ...] = ()
    files: tuple[DiffFile, ...] = ()
