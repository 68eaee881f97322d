"""
SmartNotes Backend - Tag Schemas
=================================

What:  Pydantic request/response models for the tag endpoints.
Who:   routes/tags.py, and NoteResponse (which embeds resolved tags).
"""

import re
import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

HEX_COLOR_RE = re.compile(r"^#[0-9A-Fa-f]{6}$")


def _check_color(v: Optional[str]) -> Optional[str]:
    if v is not None and not HEX_COLOR_RE.match(v):
        raise ValueError("color must be a #RRGGBB hex string")
    return v


class TagCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    color: str = Field(default="#3B82F6")
    description: Optional[str] = Field(default=None)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        stripped = v.strip()
        if not stripped:
            raise ValueError("name must not be blank")
        return stripped

    @field_validator("color")
    @classmethod
    def validate_color(cls, v: str) -> str:
        return _check_color(v)


class TagUpdate(BaseModel):
    """Partial update; omitted fields are left unchanged."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    color: Optional[str] = None
    description: Optional[str] = None

    @field_validator("color")
    @classmethod
    def validate_color(cls, v: Optional[str]) -> Optional[str]:
        return _check_color(v)


class TagResponse(BaseModel):
    id: uuid.UUID
    name: str
    color: str
    description: Optional[str] = None
    is_auto_generated: bool = False
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
