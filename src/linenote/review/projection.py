from linenote.models.diff import (
    DEFAULT_COLLAPSE_THRESHOLD,
    DiffFile,
    DiffView,
    DisplayRow,
    RowKind,
)


def sort_files(files: list[DiffFile]) -> list[DiffFile]:
    """Binary files last; sorted() is stable so ties keep their input order."""
    return sorted(files, key=lambda f: f.is_binary)


def _file_rows(file: DiffFile, file_index: int, start: int, threshold: int) -> list[DisplayRow]:
    rows = [DisplayRow(
        kind=RowKind.FILE,
        row_index=start,
        file_index=file_index,
        label=file.label,
        line_count=file.line_count,
        collapsed=file.is_collapsed(threshold),
    )]
    if file.is_binary:
        return rows

    for hunk in file.hunks:
        rows.append(DisplayRow(
            kind=RowKind.HUNK,
            row_index=start + len(rows),
            file_index=file_index,
            content=hunk.header,
        ))
        for line in hunk.lines:
            rows.append(DisplayRow(
                kind=RowKind.LINE,
                row_index=start + len(rows),
                file_index=file_index,
                content=line.content,
                line_type=line.type,
                line_number=line.line_number,
            ))
    return rows


def project_diff(
    files: list[DiffFile],
    collapse_threshold: int = DEFAULT_COLLAPSE_THRESHOLD,
) -> DiffView:
    """Flatten parsed files into display rows with contiguous row indices."""
    sorted_files = sort_files(files)
    rows: list[DisplayRow] = []
    for file_index, file in enumerate(sorted_files):
        rows.extend(_file_rows(file, file_index, len(rows), collapse_threshold))
    return DiffView(rows=tuple(rows), files=tuple(sorted_files))
