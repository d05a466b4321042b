from typing import Literal
from pydantic import BaseModel, Field, model_validator


class CellComment(BaseModel):
    row: int
    col: int = 0
    text: str
    value: str = ""


class RangeComment(BaseModel):
    start_row: int
    start_col: int = 0
    end_row: int
    end_col: int = 0
    text: str
    is_range: Literal[True] = True

    @model_validator(mode="after")
    def check_order(self):
        if self.end_row < self.start_row or self.end_col < self.start_col:
            raise ValueError("Range end must not precede range start")
        return self


class ReviewSubmission(BaseModel):
    """Payload posted by the review page when the user finishes."""
    file: str
    mode: str
    reason: str = "button"
    at: str | None = None
    comments: list[RangeComment | CellComment] = Field(default_factory=list)
    summary: str | None = None

    def to_output(self) -> dict:
        return self.model_dump(mode="json", exclude_none=True)
