"""Entity domain model."""

from pydantic import BaseModel, Field
from typing import Any, Optional
from datetime import datetime, timezone
from uuid import uuid4


class EntityCreate(BaseModel):
    """Payload for creating a world entity."""
    name: str
    type: str
    summary: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    attributes: dict[str, Any] = Field(default_factory=dict)
    status: str = "active"


class EntityUpdate(BaseModel):
    """Payload for updating an entity. All fields optional; only provided fields are patched.

    ``attributes`` is deep-merged into the stored attributes.
    """
    name: Optional[str] = None
    type: Optional[str] = None
    summary: Optional[str] = None
    tags: Optional[list[str]] = None
    attributes: Optional[dict[str, Any]] = None
    status: Optional[str] = None


class Entity(BaseModel):
    """A world entity node (character, location, faction, ...)."""
    id: str = Field(default_factory=lambda: str(uuid4()))
    name: str
    type: str
    summary: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    attributes: dict[str, Any] = Field(default_factory=dict)
    status: str = "active"
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
