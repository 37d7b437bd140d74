from datetime import datetime, timezone
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _not_blank(value: str) -> str:
    if not value.strip():
        raise ValueError("must not be empty")
    return value


def _not_null(value):
    if value is None:
        raise ValueError("must not be null")
    return value


def _assume_utc(value: datetime) -> datetime:
    # SQLite returns naive timestamps; everything is stored as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# Pydantic models for serialization and validation

class DiaryEntryBase(BaseModel):
    title: str = Field(..., description="Entry title")
    content: str = Field(..., description="Free-text entry body")
    emotion: str = Field(..., description="Emoji or short mood label")

class DiaryEntryCreate(DiaryEntryBase):
    check_blank = field_validator("title", "content")(_not_blank)

class DiaryEntryUpdate(BaseModel):
    title: Optional[str] = Field(None)
    content: Optional[str] = Field(None)
    emotion: Optional[str] = Field(None)

    # Only runs for fields present in the body
    check_null = field_validator("title", "content", "emotion", mode="before")(_not_null)
    check_blank = field_validator("title", "content")(_not_blank)

class DiaryEntryOut(DiaryEntryBase):
    id: str
    created_at: datetime = Field(..., serialization_alias="createdAt")

    model_config = ConfigDict(from_attributes=True)

    normalize_created_at = field_validator("created_at")(_assume_utc)

class MemoBase(BaseModel):
    content: str = Field(..., description="Memo text")

class MemoCreate(MemoBase):
    check_blank = field_validator("content")(_not_blank)

class MemoUpdate(BaseModel):
    content: Optional[str] = Field(None)

    check_null = field_validator("content", mode="before")(_not_null)
    check_blank = field_validator("content")(_not_blank)

class MemoOut(MemoBase):
    id: str
    created_at: datetime = Field(..., serialization_alias="createdAt")

    model_config = ConfigDict(from_attributes=True)

    normalize_created_at = field_validator("created_at")(_assume_utc)

class ErrorResponse(BaseModel):
    message: str
    errors: Optional[List[Any]] = None
