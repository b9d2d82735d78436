from typing import List

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ...api.deps import api_rate_limit, get_current_identity
from ...core.database import get_db
from ...core.security import Identity
from ...schemas.message import (
    ConversationRead, MessageCreate, MessageResponse, MessageStatistics,
    PaginatedMessages, UnreadCount
)
from ...services.appointment_service import paginate
from ...services.message_service import MessageService

router = APIRouter(
    prefix="/messages",
    tags=["Messages"],
    dependencies=[Depends(api_rate_limit)],
)


def _page(items, total: int, page: int, limit: int) -> dict:
    return paginate([MessageResponse.model_validate(m) for m in items], total, page, limit)


@router.post("/", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
def send_message(
    data: MessageCreate,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    """Send a message to another active user, optionally about an appointment."""
    message = MessageService(db).send(identity, data)
    return MessageResponse.model_validate(message)


@router.get("/", response_model=PaginatedMessages)
def my_messages(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    """Messages the caller sent or received, newest first."""
    items, total = MessageService(db).list_mine(identity, page, limit)
    return _page(items, total, page, limit)


@router.get("/search", response_model=PaginatedMessages)
def search_messages(
    q: str = Query(..., min_length=1, max_length=200),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    items, total = MessageService(db).search(identity, q, page, limit)
    return _page(items, total, page, limit)


@router.get("/unread", response_model=List[MessageResponse])
def unread_messages(
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    return [MessageResponse.model_validate(m) for m in MessageService(db).unread(identity)]


@router.get("/unread/count", response_model=UnreadCount)
def unread_count(
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    return {"unread_count": MessageService(db).unread_count(identity)}


@router.get("/statistics", response_model=MessageStatistics)
def message_statistics(
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    return MessageService(db).statistics(identity)


@router.get("/conversation/{user_a}/{user_b}", response_model=PaginatedMessages)
def conversation(
    user_a: int,
    user_b: int,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    """Messages between two users, oldest first. Participants and coordinators only."""
    items, total = MessageService(db).conversation(identity, user_a, user_b, page, limit)
    return _page(items, total, page, limit)


@router.put("/conversation/{sender_id}/read", response_model=ConversationRead)
def mark_conversation_read(
    sender_id: int,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    return {"marked_read": MessageService(db).mark_conversation_read(identity, sender_id)}


@router.get("/appointment/{appointment_id}", response_model=List[MessageResponse])
def appointment_messages(
    appointment_id: int,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    messages = MessageService(db).for_appointment(identity, appointment_id)
    return [MessageResponse.model_validate(m) for m in messages]


@router.get("/{message_id}", response_model=MessageResponse)
def get_message(
    message_id: int,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    return MessageResponse.model_validate(MessageService(db).get(identity, message_id))


@router.put("/{message_id}/read", response_model=MessageResponse)
def mark_read(
    message_id: int,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    return MessageResponse.model_validate(MessageService(db).mark_read(identity, message_id))


@router.delete("/{message_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_message(
    message_id: int,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    MessageService(db).delete(identity, message_id)
