from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class MessagePriority(str, Enum):
    NORMAL = "normal"
    URGENT = "urgent"


class Message(BaseModel):
    """Announcement shown on the building message board."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str
    content: str
    priority: MessagePriority = MessagePriority.NORMAL
    active: bool = True
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")


class MessageCreate(BaseModel):
    title: Optional[str] = None
    content: Optional[str] = None
    priority: MessagePriority = MessagePriority.NORMAL
    active: bool = True


class MessageUpdate(BaseModel):
    title: Optional[str] = None
    content: Optional[str] = None
    priority: Optional[MessagePriority] = None
    active: Optional[bool] = None
