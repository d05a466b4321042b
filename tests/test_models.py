import pytest
from pydantic import ValidationError
from linenote.models.diff import DiffFile, Hunk
from linenote.models.review import CellComment, RangeComment, ReviewSubmission


def test_submission_with_cell_and_range_comments():
    submission = ReviewSubmission.model_validate({
        "file": "data.csv",
        "mode": "csv",
        "reason": "button",
        "at": "2026-01-01T00:00:00.000Z",
        "comments": [
            {"row": 1, "col": 2, "text": "Typo", "value": "teh"},
            {"start_row": 3, "start_col": 0, "end_row": 5, "end_col": 1, "text": "Whole block", "is_range": True},
        ],
    })

    assert isinstance(submission.comments[0], CellComment)
    assert isinstance(submission.comments[1], RangeComment)
    assert submission.comments[1].end_row == 5


def test_submission_output_omits_missing_summary():
    submission = ReviewSubmission(file="notes.txt", mode="text", comments=[CellComment(row=0, text="Fix")])

    output = submission.to_output()

    assert "summary" not in output
    assert "at" not in output
    assert output["comments"] == [{"row": 0, "col": 0, "text": "Fix", "value": ""}]


def test_submission_output_keeps_summary():
    submission = ReviewSubmission(file="a.diff", mode="diff", summary="Looks good")

    assert submission.to_output()["summary"] == "Looks good"
    assert submission.to_output()["comments"] == []


def test_range_comment_rejects_reversed_range():
    with pytest.raises(ValidationError):
        RangeComment(start_row=5, end_row=2, text="bad")


def test_submission_requires_file_and_mode():
    with pytest.raises(ValidationError):
        ReviewSubmission.model_validate({"comments": []})


def test_hunk_header_property():
    hunk = Hunk(old_start=10, new_start=12, header_context=" someFunc()")

    assert hunk.header == "@@ -10 +12 @@ someFunc()"


def test_diff_file_label_and_defaults():
    file = DiffFile(new_path="img.png", is_new=True, is_binary=True)

    assert file.label == "img.png (new) (binary)"
    assert file.line_count == 0
    assert file.collapsed is False
