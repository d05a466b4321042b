import codecs
import csv
import io
import logging
import subprocess
from dataclasses import dataclass, field
from pathlib import Path

import markdown
from charset_normalizer import from_bytes

from linenote.errors import DocumentError
from linenote.models.diff import DEFAULT_COLLAPSE_THRESHOLD
from linenote.models.document import Document, DocumentMode
from .parser import parse_diff
from .projection import project_diff


logger = logging.getLogger(__name__)

ENCODING_ALIASES = {
    "utf-8": "utf-8",
    "utf8": "utf-8",
    "shift_jis": "shift_jis",
    "sjis": "shift_jis",
    "windows-31j": "cp932",
    "cp932": "cp932",
    "euc-jp": "euc_jp",
    "iso-8859-1": "latin-1",
    "latin1": "latin-1",
}

MODE_BY_EXTENSION = {
    ".csv": DocumentMode.CSV,
    ".tsv": DocumentMode.CSV,
    ".md": DocumentMode.MARKDOWN,
    ".markdown": DocumentMode.MARKDOWN,
    ".diff": DocumentMode.DIFF,
    ".patch": DocumentMode.DIFF,
}

MARKDOWN_EXTENSIONS = ["nl2br", "tables", "fenced_code"]


def normalize_encoding(name: str | None) -> str | None:
    """Map a user supplied encoding name to a Python codec, or None if unknown."""
    if not name:
        return None
    key = name.strip().lower()
    codec = ENCODING_ALIASES.get(key, key)
    try:
        return codecs.lookup(codec).name
    except LookupError:
        return None


def detect_encoding(raw: bytes) -> str | None:
    """Guess the codec of raw bytes, or None when nothing fits."""
    best = from_bytes(raw).best()
    if best is None:
        return None
    return normalize_encoding(best.encoding)


def decode_bytes(raw: bytes, encoding: str | None = None) -> str:
    """Decode input bytes, falling back to UTF-8 with replacement characters.

    Without a forced encoding, valid UTF-8 (with or without BOM) is used as-is
    and anything else goes through charset detection.
    """
    codec = normalize_encoding(encoding)
    if encoding and codec is None:
        logger.warning(f"Unknown encoding {encoding!r}, detecting instead")
    if codec is None:
        try:
            return raw.decode("utf-8-sig")
        except UnicodeDecodeError:
            codec = detect_encoding(raw)
        if codec is None:
            logger.warning("Could not detect encoding, falling back to utf-8")
            return raw.decode("utf-8", errors="replace")
        logger.info(f"Detected encoding: {codec}")
    try:
        return raw.decode(codec)
    except UnicodeDecodeError as e:
        logger.warning(f"Decode failed ({codec}): {e}, falling back to utf-8")
        return raw.decode("utf-8", errors="replace")


def parse_csv(text: str, separator: str = ",") -> list[list[str]]:
    """RFC4180 rows; blank lines become a single empty cell, a trailing blank row is dropped."""
    reader = csv.reader(io.StringIO(text, newline=""), delimiter=separator)
    rows = [row or [""] for row in reader]
    if rows and all(value == "" for value in rows[-1]):
        rows.pop()
    return rows


def split_text_lines(text: str) -> list[list[str]]:
    return [[line] for line in text.replace("\r\n", "\n").split("\n")]


def render_markdown(text: str) -> str:
    return markdown.markdown(text, extensions=MARKDOWN_EXTENSIONS)


def build_diff_document(
    diff_text: str,
    title: str,
    collapse_threshold: int = DEFAULT_COLLAPSE_THRESHOLD,
) -> Document:
    view = project_diff(parse_diff(diff_text), collapse_threshold=collapse_threshold)
    rows = [[row.label if row.label is not None else row.content or ""] for row in view.rows]
    return Document(mode=DocumentMode.DIFF, title=title, rows=rows, cols=1, diff=view)


def detect_mode(path: Path) -> DocumentMode:
    return MODE_BY_EXTENSION.get(path.suffix.lower(), DocumentMode.TEXT)


def _read_text(path: Path, encoding: str | None) -> str:
    try:
        raw = path.read_bytes()
    except FileNotFoundError:
        raise DocumentError(f"File not found: {path}")
    except OSError as e:
        raise DocumentError(f"Could not read {path}: {e}")
    return decode_bytes(raw, encoding)


def load_document(
    path: str | Path,
    encoding: str | None = None,
    collapse_threshold: int = DEFAULT_COLLAPSE_THRESHOLD,
) -> Document:
    """Load a file and pick its review mode from the extension."""
    path = Path(path)
    mode = detect_mode(path)
    text = _read_text(path, encoding)
    title = path.name

    if mode is DocumentMode.CSV:
        separator = "\t" if path.suffix.lower() == ".tsv" else ","
        rows = parse_csv(text, separator)
        cols = max((len(row) for row in rows), default=0)
        return Document(mode=mode, title=title, rows=rows, cols=max(1, cols))

    if mode is DocumentMode.MARKDOWN:
        return Document(
            mode=mode,
            title=title,
            rows=split_text_lines(text),
            preview_html=render_markdown(text),
        )

    if mode is DocumentMode.DIFF:
        return build_diff_document(text, title, collapse_threshold)

    return Document(mode=mode, title=title, rows=split_text_lines(text))


def run_git_diff(args: list[str], cwd: str | Path | None = None) -> str:
    """Run ``git diff`` and return its output."""
    cmd = ["git", "diff", *(args or ["HEAD"])]
    try:
        result = subprocess.run(cmd, capture_output=True, check=True, cwd=cwd)
    except FileNotFoundError:
        raise DocumentError("git executable not found")
    except subprocess.CalledProcessError as e:
        stderr = e.stderr.decode("utf-8", errors="replace").strip()
        logger.error(f"Command failed: {' '.join(cmd)}")
        raise DocumentError(f"git diff failed: {stderr}")
    return decode_bytes(result.stdout)


@dataclass
class FileSource:
    """A reviewed file on disk; reloaded on every page request."""
    path: Path
    encoding: str | None = None
    collapse_threshold: int = DEFAULT_COLLAPSE_THRESHOLD

    @property
    def name(self) -> str:
        return self.path.name

    @property
    def watch_path(self) -> Path | None:
        return self.path

    @property
    def asset_dir(self) -> Path | None:
        return self.path.parent

    def load(self) -> Document:
        return load_document(self.path, self.encoding, self.collapse_threshold)


@dataclass
class GitDiffSource:
    """Output of ``git diff`` in a working tree."""
    args: list[str] = field(default_factory=list)
    cwd: Path | None = None
    collapse_threshold: int = DEFAULT_COLLAPSE_THRESHOLD

    @property
    def name(self) -> str:
        return "git diff " + " ".join(self.args or ["HEAD"])

    @property
    def watch_path(self) -> Path | None:
        return None

    @property
    def asset_dir(self) -> Path | None:
        return None

    def load(self) -> Document:
        diff_text = run_git_diff(self.args, self.cwd)
        return build_diff_document(diff_text, self.name, self.collapse_threshold)
