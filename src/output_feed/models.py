"""Data models for the output feed."""

import datetime
from dataclasses import dataclass, field
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from .errors import DecodeError

Difficulty = Literal["easy", "medium", "hard"]
DIFFICULTIES: tuple[str, ...] = ("easy", "medium", "hard")


class OutputContent(BaseModel):
    """Structured payload of an output: its questions and difficulty."""

    model_config = ConfigDict(frozen=True, extra="allow")

    questions: tuple[str, ...] = Field(min_length=1)
    difficulty: Difficulty = "easy"

    @field_validator("questions")
    @classmethod
    def _questions_not_blank(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        if any(not question.strip() for question in value):
            raise ValueError("questions must be non-empty strings")
        return value

    @field_validator("difficulty", mode="before")
    @classmethod
    def _default_difficulty(cls, value: object) -> object:
        if value is None or value == "":
            return "easy"
        if isinstance(value, str):
            return value.lower()
        return value


class Record(BaseModel):
    """One submitted output, as stored by the backend.

    Records are immutable once created. Field names follow the Python
    side; ``user_id`` and ``output_content`` are accepted as the wire names.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    id: int | str
    owner_id: int | str | None = Field(default=None, alias="user_id")
    tool_name: str = Field(min_length=1)
    content: OutputContent = Field(alias="output_content")
    created_at: datetime.datetime

    @classmethod
    def from_row(cls, row: object) -> "Record":
        """Parse a backend row, raising DecodeError if it is malformed."""
        if not isinstance(row, dict):
            raise DecodeError(f"Expected an output object, got {type(row).__name__}")
        try:
            return cls.model_validate(row)
        except PydanticValidationError as e:
            raise DecodeError(f"Malformed output record: {e}") from e

    def to_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


@dataclass(frozen=True)
class FeedFilter:
    """Optional tool-name substring and calendar-date filter."""

    tool: str = ""
    date: datetime.date | None = None

    @property
    def is_empty(self) -> bool:
        return not self.tool.strip() and self.date is None

    def to_params(self) -> dict[str, str]:
        params: dict[str, str] = {}
        if self.tool.strip():
            params["tool"] = self.tool.strip()
        if self.date is not None:
            params["date"] = self.date.isoformat()
        return params

    def to_dict(self) -> dict:
        return {
            "tool": self.tool,
            "date": self.date.isoformat() if self.date else None,
        }


@dataclass
class Page:
    """One page of records plus the backend's page count."""

    items: list[Record] = field(default_factory=list)
    total_pages: int = 1


@dataclass(frozen=True)
class Session:
    """Bearer token and user identifier supplied by the identity provider."""

    access_token: str
    user_id: str

    def __repr__(self) -> str:
        return f"Session(user_id={self.user_id!r})"
