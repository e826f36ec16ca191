from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

Row = Dict[str, Any]


class Statement(BaseModel):
    """A statement request: SQL text plus positional values, optionally bound to a transaction."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    text: str
    values: List[Any] = Field(default_factory=list)
    transaction: Optional[Any] = None

    @field_validator("text")
    def text_must_not_be_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Statement text must not be empty")
        return v


class DeleteOptions(BaseModel):
    """Per-call delete options: soft delete override and auditing metadata."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid", frozen=True)

    soft_delete: Optional[bool] = Field(None, alias="softDelete")
    user_id: Optional[Any] = Field(None, alias="userId")
    user_name: Optional[str] = Field(None, alias="userName")


class InsertResult(BaseModel):
    """Outcome of an insert; ``id`` is set only for single-row inserts with a RETURNING key."""

    rows_inserted: int = Field(ge=0)
    id: Optional[Any] = None


class UpdateResult(BaseModel):
    """Outcome of an update."""

    rows_updated: int = Field(ge=0)

    @property
    def rows_affected(self) -> int:
        return self.rows_updated


class DeleteResult(BaseModel):
    """Outcome of a delete, physical or soft."""

    rows_deleted: int = Field(ge=0)

    @property
    def rows_affected(self) -> int:
        return self.rows_deleted
