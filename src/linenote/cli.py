import argparse
import asyncio
import logging
import sys
from pathlib import Path

from linenote.config import Settings, get_settings
from linenote.errors import DocumentError
from linenote.review.loader import FileSource, GitDiffSource
from linenote.session import ReviewSession


logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="linenote",
        description="Review CSV/TSV, Markdown, text or diff files in the browser and print the comments as YAML.",
    )
    parser.add_argument("files", nargs="*", help="Files to review; each opens on its own port")
    parser.add_argument("--port", type=int, default=None, help="First port to try (default 3000)")
    parser.add_argument("--encoding", "-e", default=None, help="Input encoding (utf8, shift_jis, cp932, ...)")
    parser.add_argument("--no-open", action="store_true", help="Do not open a browser")
    parser.add_argument(
        "--git",
        nargs="*",
        metavar="REF",
        default=None,
        help="Review `git diff` output (HEAD when no refs are given)",
    )
    parser.add_argument("--log-level", default=None, help="Logging level (default INFO)")
    return parser


def resolve_settings(args: argparse.Namespace, settings: Settings) -> Settings:
    """Apply command line overrides on top of environment settings."""
    overrides = {}
    if args.port is not None:
        overrides["base_port"] = args.port
    if args.encoding:
        overrides["encoding"] = args.encoding
    if args.no_open:
        overrides["open_browser"] = False
    if args.log_level:
        overrides["log_level"] = args.log_level
    return settings.model_copy(update=overrides)


def build_sources(args: argparse.Namespace, settings: Settings) -> list:
    sources = []
    for file_path in args.files:
        path = Path(file_path).resolve()
        if not path.is_file():
            raise DocumentError(f"File not found: {path}")
        sources.append(FileSource(
            path=path,
            encoding=settings.encoding,
            collapse_threshold=settings.collapse_threshold,
        ))

    if args.git is not None:
        source = GitDiffSource(args=args.git, cwd=Path.cwd(), collapse_threshold=settings.collapse_threshold)
        source.load()  # fail before any server starts
        sources.append(source)
    return sources


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.files and args.git is None:
        parser.print_usage(sys.stderr)
        print("Please specify at least one file", file=sys.stderr)
        return 1

    settings = resolve_settings(args, get_settings())
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        sources = build_sources(args, settings)
    except DocumentError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    session = ReviewSession(sources, settings)
    asyncio.run(session.run())
    print(session.report())
    return 0
