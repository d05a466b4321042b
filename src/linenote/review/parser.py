import re
from dataclasses import dataclass, field
from enum import Enum

from linenote.models.diff import DiffFile, DiffLine, Hunk, LineType


FILE_HEADER_RE = re.compile(r"diff --git a/(.+?) b/(.+)")
HUNK_HEADER_RE = re.compile(r"@@ -(\d+)(,\d+)? \+(\d+)(,\d+)? @@(.*)")


class ParserState(Enum):
    NO_FILE = "no_file"
    IN_FILE = "in_file"
    IN_HUNK = "in_hunk"


class LineKind(Enum):
    FILE_HEADER = "file_header"
    NEW_FILE = "new_file"
    DELETED_FILE = "deleted_file"
    BINARY = "binary"
    METADATA = "metadata"
    HUNK_HEADER = "hunk_header"
    ADDED = "added"
    REMOVED = "removed"
    CONTEXT = "context"
    OTHER = "other"


CONTENT_KINDS = {
    LineKind.ADDED: LineType.ADDED,
    LineKind.REMOVED: LineType.REMOVED,
    LineKind.CONTEXT: LineType.CONTEXT,
}


def classify_line(line: str) -> LineKind:
    """Classify a raw diff line. Order matters: headers win over content markers."""
    if line.startswith("diff --git"):
        return LineKind.FILE_HEADER
    if line.startswith("new file mode"):
        return LineKind.NEW_FILE
    if line.startswith("deleted file mode"):
        return LineKind.DELETED_FILE
    if line.startswith("Binary files"):
        return LineKind.BINARY
    if line.startswith(("---", "+++", "index ")):
        return LineKind.METADATA
    if line.startswith("@@"):
        return LineKind.HUNK_HEADER
    if line.startswith("+"):
        return LineKind.ADDED
    if line.startswith("-"):
        return LineKind.REMOVED
    if line == "" or line.startswith(" "):
        return LineKind.CONTEXT
    return LineKind.OTHER


@dataclass
class _HunkBuilder:
    old_start: int
    new_start: int
    header_context: str
    lines: list[DiffLine] = field(default_factory=list)

    def build(self) -> Hunk:
        return Hunk(
            old_start=self.old_start,
            new_start=self.new_start,
            header_context=self.header_context,
            lines=tuple(self.lines),
        )


@dataclass
class _FileBuilder:
    old_path: str
    new_path: str
    is_new: bool = False
    is_deleted: bool = False
    is_binary: bool = False
    hunks: list[_HunkBuilder] = field(default_factory=list)
    line_counter: int = 0

    def build(self) -> DiffFile:
        return DiffFile(
            old_path=self.old_path,
            new_path=self.new_path,
            is_new=self.is_new,
            is_deleted=self.is_deleted,
            is_binary=self.is_binary,
            hunks=tuple(hunk.build() for hunk in self.hunks),
        )


class DiffParser:
    """Single-pass state machine over unified diff text.

    Malformed input never raises: unmatched file headers yield empty paths,
    bad hunk headers and stray lines are dropped, and text before the first
    ``diff --git`` line is ignored.
    """

    def __init__(self):
        self.state = ParserState.NO_FILE
        self._files: list[DiffFile] = []
        self._file: _FileBuilder | None = None

    def feed(self, line: str) -> None:
        kind = classify_line(line)

        if kind is LineKind.FILE_HEADER:
            self._open_file(line)
        elif self.state is ParserState.NO_FILE:
            return
        elif kind in (LineKind.NEW_FILE, LineKind.DELETED_FILE, LineKind.BINARY):
            self._set_flag(kind)
        elif kind is LineKind.METADATA:
            return
        elif kind is LineKind.HUNK_HEADER:
            self._open_hunk(line)
        elif kind in CONTENT_KINDS and self.state is ParserState.IN_HUNK:
            self._append_line(CONTENT_KINDS[kind], line[1:])
        # anything else is dropped

    def finish(self) -> list[DiffFile]:
        self._close_file()
        self.state = ParserState.NO_FILE
        files, self._files = self._files, []
        return files

    def _open_file(self, line: str) -> None:
        self._close_file()
        match = FILE_HEADER_RE.match(line)
        if match:
            self._file = _FileBuilder(old_path=match.group(1), new_path=match.group(2))
        else:
            self._file = _FileBuilder(old_path="", new_path="")
        self.state = ParserState.IN_FILE

    def _close_file(self) -> None:
        if self._file is not None:
            self._files.append(self._file.build())
            self._file = None

    def _set_flag(self, kind: LineKind) -> None:
        if kind is LineKind.NEW_FILE:
            self._file.is_new = True
        elif kind is LineKind.DELETED_FILE:
            self._file.is_deleted = True
        else:
            self._file.is_binary = True

    def _open_hunk(self, line: str) -> None:
        match = HUNK_HEADER_RE.match(line)
        if not match:
            return
        self._file.hunks.append(_HunkBuilder(
            old_start=int(match.group(1)),
            new_start=int(match.group(3)),
            header_context=match.group(5) or "",
        ))
        self.state = ParserState.IN_HUNK

    def _append_line(self, line_type: LineType, content: str) -> None:
        self._file.line_counter += 1
        self._file.hunks[-1].lines.append(DiffLine(
            type=line_type,
            content=content,
            line_number=self._file.line_counter,
        ))


def split_lines(diff_text: str) -> list[str]:
    """Split on newlines; a final newline does not produce an extra empty line."""
    lines = diff_text.split("\n")
    if len(lines) > 1 and lines[-1] == "":
        lines.pop()
    return lines


def parse_diff(diff_text: str) -> list[DiffFile]:
    """Parse unified diff text into files, hunks and lines."""
    parser = DiffParser()
    for line in split_lines(diff_text):
        parser.feed(line)
    return parser.finish()
