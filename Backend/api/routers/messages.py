from __future__ import annotations

from typing import Dict, List

from fastapi import APIRouter, Depends, HTTPException, Path

from app.deps.services import get_message_store
from app.models.messages import Message, MessageCreate, MessageUpdate
from services.message_store import MessageStore

router = APIRouter(
    prefix="/messages",
    tags=["messages"],
)


@router.get("", response_model=List[Message])
async def list_messages(store: MessageStore = Depends(get_message_store)) -> List[Message]:
    return store.list()


@router.post("", response_model=Message, status_code=201)
async def create_message(
    payload: MessageCreate,
    store: MessageStore = Depends(get_message_store),
) -> Message:
    if not payload.title or not payload.content:
        raise HTTPException(status_code=400, detail="title and content are required")
    return store.create(payload)


@router.put("/{message_id}", response_model=Message)
async def update_message(
    payload: MessageUpdate,
    message_id: str = Path(..., min_length=1),
    store: MessageStore = Depends(get_message_store),
) -> Message:
    updated = store.update(message_id, payload)
    if updated is None:
        raise HTTPException(status_code=404, detail="Message not found")
    return updated


@router.delete("/{message_id}")
async def delete_message(
    message_id: str = Path(..., min_length=1),
    store: MessageStore = Depends(get_message_store),
) -> Dict[str, bool]:
    if not store.delete(message_id):
        raise HTTPException(status_code=404, detail="Message not found")
    return {"success": True}
