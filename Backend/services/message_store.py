"""
In-memory key-value store behind the message board endpoints.

The board is a collaborator of the news display, not part of the news
engine; messages live for the process lifetime only.
"""

from __future__ import annotations

import secrets
from datetime import datetime, timezone
from typing import Dict, List, Optional

from app.core.logging import get_logger
from app.models.messages import Message, MessageCreate, MessageUpdate

logger = get_logger().bind(module="message_store")


def _new_message_id(now: datetime) -> str:
    return f"{int(now.timestamp() * 1000):x}{secrets.token_hex(4)}"


class MessageStore:
    def __init__(self) -> None:
        self._messages: Dict[str, Message] = {}

    def list(self) -> List[Message]:
        return sorted(self._messages.values(), key=lambda m: m.created_at, reverse=True)

    def get(self, message_id: str) -> Optional[Message]:
        return self._messages.get(message_id)

    def create(self, data: MessageCreate) -> Message:
        if not data.title or not data.content:
            raise ValueError("title and content are required")
        now = datetime.now(timezone.utc)
        message = Message(
            id=_new_message_id(now),
            title=data.title,
            content=data.content,
            priority=data.priority,
            active=data.active,
            created_at=now,
            updated_at=now,
        )
        self._messages[message.id] = message
        logger.info("message_created", message_id=message.id, priority=message.priority.value)
        return message

    def update(self, message_id: str, data: MessageUpdate) -> Optional[Message]:
        existing = self._messages.get(message_id)
        if existing is None:
            return None
        changes = data.model_dump(exclude_none=True)
        changes["updated_at"] = datetime.now(timezone.utc)
        updated = existing.model_copy(update=changes)
        self._messages[message_id] = updated
        return updated

    def delete(self, message_id: str) -> bool:
        return self._messages.pop(message_id, None) is not None
