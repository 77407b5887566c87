from __future__ import annotations

import re
from datetime import date, datetime
from typing import Annotated, Any, List, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictInt,
    field_validator,
)
from pydantic.alias_generators import to_camel

from taskhub.service.errors import ERROR_CODES

DEFAULT_CATEGORY_COLOR = "#4287f5"
HEX_COLOR_PATTERN = r"^#[0-9A-Fa-f]{6}$"


class ErrorBody(BaseModel):
    """Error part of the failure envelope; ``code`` is one of the stable codes."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    details: Optional[Any] = None

    @field_validator("code")
    @classmethod
    def _validate_error_code(cls, value: str) -> str:
        if value not in ERROR_CODES:
            raise ValueError(
                f"Invalid error code '{value}'. Must be one of: {', '.join(sorted(ERROR_CODES))}"
            )
        return value


class Envelope(BaseModel):
    """Uniform wire shape for every API response."""

    model_config = ConfigDict(frozen=True)

    success: bool
    data: Optional[Any] = None
    error: Optional[ErrorBody] = None

    def to_wire(self) -> dict:
        """Serialize without the keys that do not apply to this outcome."""
        if self.success:
            return {"success": True, "data": self.data}
        return {"success": False, "error": self.error.model_dump(exclude_none=True)}


def success(data: Any) -> Envelope:
    return Envelope(success=True, data=data)


def failure(code: str, message: str, details: Any = None) -> Envelope:
    return Envelope(
        success=False, error=ErrorBody(code=code, message=message, details=details)
    )


# Request shapes. Field names are snake_case; clients send camelCase.

PathId = Annotated[int, Field(gt=0, description="Positive integer identifier")]
BodyId = Annotated[StrictInt, Field(gt=0)]
HexColor = Annotated[str, Field(pattern=HEX_COLOR_PATTERN)]


class _Shape(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )


class CategoryList(_Shape):
    """Listing takes no input beyond the caller credential."""


class TaskList(_Shape):
    pass


class CategoryCreate(_Shape):
    name: str = Field(min_length=2, max_length=50)
    description: str = Field("", max_length=200)
    color: HexColor = DEFAULT_CATEGORY_COLOR
    icon: Optional[str] = Field(None, max_length=50)
    id_parent: Optional[BodyId] = None
    is_favorite: StrictBool = False


class CategoryKey(_Shape):
    id: PathId


class CategoryUpdate(CategoryKey):
    name: str = Field(min_length=2, max_length=50)
    description: str = Field("", max_length=200)
    color: HexColor
    icon: Optional[str] = Field(None, max_length=50)
    is_favorite: StrictBool


class CategoryDelete(CategoryKey):
    id_target_category: Optional[PathId] = None


class TaskCreate(_Shape):
    title: str = Field(min_length=3, max_length=100)
    description: str = Field("", max_length=1000)
    due_date: date
    priority: StrictInt = Field(ge=0, le=2)
    time_estimate: Optional[StrictInt] = Field(None, ge=5, le=1440)
    recurrence_config: Optional[str] = Field(None, max_length=4000)


class TaskKey(_Shape):
    id: PathId


class TaskUpdate(TaskCreate):
    id: PathId
    status: StrictInt = Field(ge=0, le=3)


_CATEGORY_ID_LIST = re.compile(r"^\s*[1-9]\d*\s*(,\s*[1-9]\d*\s*)*$")


class TaskCategoryAssign(TaskKey):
    category_ids: str = Field(min_length=1)

    @field_validator("category_ids")
    @classmethod
    def _normalize_ids(cls, value: str) -> str:
        if not _CATEGORY_ID_LIST.match(value):
            raise ValueError("must be a comma-separated list of positive integers")
        return ",".join(part.strip() for part in value.split(","))


class TaskCategoryRemove(TaskKey):
    id_category: PathId


# Response shapes. Storage rows are snake_case; the wire is camelCase.


class _Response(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class CategoryResponse(_Response):
    id_category: int
    id_account: int
    id_user: int
    name: str
    description: str = ""
    color: str
    icon: Optional[str] = None
    id_parent: Optional[int] = None
    is_default: bool = False
    sort_order: int = 0
    is_favorite: bool = False
    task_count: int = 0
    date_created: datetime
    date_modified: Optional[datetime] = None


class TaskResponse(_Response):
    id_task: int
    id_account: int
    id_user: int
    title: str
    description: str = ""
    due_date: date
    priority: int
    status: int
    time_estimate: Optional[int] = None
    recurrence_config: Optional[str] = None
    category_ids: List[int] = Field(default_factory=list)
    date_created: datetime
    date_modified: Optional[datetime] = None


class DeleteResponse(_Response):
    success: bool


class AssignResponse(_Response):
    success: bool
    assigned_count: int
