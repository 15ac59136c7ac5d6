from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session, select
from pydantic import BaseModel
from typing import List, Optional
import logging
import uuid

from chatsync.core.auth import Identity, get_identity, require_identity
from chatsync.core.config import settings
from chatsync.db import models
from chatsync.db.database import get_session
from chatsync.services import message_tree
from chatsync.services.mutators import run_mutator

logger = logging.getLogger(__name__)
router = APIRouter()


def reader(identity: Optional[Identity] = Depends(get_identity)) -> Optional[Identity]:
    """Every table is world-readable unless READ_PERMISSION says otherwise"""
    if settings.READ_PERMISSION == "authenticated":
        require_identity(identity)
    return identity


# ==================== ROOMS & CHATS ====================

@router.get("/rooms", response_model=List[models.Room])
def list_rooms(session: Session = Depends(get_session), _=Depends(reader)):
    return session.exec(select(models.Room).order_by(models.Room.created_at.desc())).all()


@router.get("/rooms/{room_id}/members", response_model=List[models.RoomMember])
def list_room_members(room_id: str, session: Session = Depends(get_session), _=Depends(reader)):
    return session.exec(
        select(models.RoomMember)
        .where(models.RoomMember.room_id == room_id)
        .order_by(models.RoomMember.joined_at.asc())
    ).all()


@router.get("/rooms/{room_id}/chats", response_model=List[models.Chat])
def list_chats(room_id: str, session: Session = Depends(get_session), _=Depends(reader)):
    return session.exec(
        select(models.Chat)
        .where(models.Chat.room_id == room_id)
        .order_by(models.Chat.created_at.asc())
    ).all()


# ==================== MESSAGES ====================

@router.get("/chats/{chat_id}/messages", response_model=List[models.Message])
def list_messages(chat_id: str, session: Session = Depends(get_session), _=Depends(reader)):
    return session.exec(
        select(models.Message)
        .where(models.Message.chat_id == chat_id)
        .order_by(models.Message.timestamp.asc(), models.Message.id.asc())
    ).all()


@router.get("/messages/{message_id}/branches", response_model=List[models.Message])
def list_branches(message_id: str, session: Session = Depends(get_session), _=Depends(reader)):
    return message_tree.branches(session, message_id)


@router.get("/messages/{message_id}/thread", response_model=List[models.Message])
def get_thread(message_id: str, session: Session = Depends(get_session), _=Depends(reader)):
    """Root-to-message history of one branch"""
    thread = message_tree.thread(session, message_id)
    if not thread:
        raise HTTPException(status_code=404, detail="Message not found")
    return thread


# ==================== SHARE LINKS ====================

class ShareRequest(BaseModel):
    chat_id: str
    is_public: bool = True
    allow_collaboration: bool = False


def share_payload(link: models.ShareLink) -> dict:
    return {
        **link.model_dump(),
        "url": f"{settings.SITE_URL.rstrip('/')}/share/{link.id}",
    }


@router.post("/share")
def create_share(
    request: ShareRequest,
    identity: Optional[Identity] = Depends(get_identity),
    session: Session = Depends(get_session),
):
    """Create a share link for a chat through the shareLink.create mutator"""
    share_id = f"share_{uuid.uuid4().hex}"
    run_mutator(session, "shareLink.create", identity, {
        "id": share_id,
        "chat_id": request.chat_id,
        "created_by": identity.user_id if identity else "",
        "is_public": request.is_public,
        "allow_collaboration": request.allow_collaboration,
    })
    return share_payload(session.get(models.ShareLink, share_id))


@router.get("/share/{share_id}")
def get_share(share_id: str, session: Session = Depends(get_session), _=Depends(reader)):
    link = session.get(models.ShareLink, share_id)
    if not link:
        raise HTTPException(status_code=404, detail="Share link not found")
    return share_payload(link)
