from .parser import parse_diff, DiffParser
from .projection import project_diff
from .loader import load_document, FileSource, GitDiffSource
from .page import build_page

__all__ = [
    "parse_diff",
    "DiffParser",
    "project_diff",
    "load_document",
    "FileSource",
    "GitDiffSource",
    "build_page",
]
