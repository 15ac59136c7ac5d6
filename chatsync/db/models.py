# chatsync/db/models.py
from sqlmodel import SQLModel, Field, Relationship
from sqlalchemy import BigInteger, Text
from pydantic import field_validator
from typing import Optional, List, Any
import json
import time


def now_ms() -> int:
    """Milliseconds since epoch, the timestamp unit of every table."""
    return int(time.time() * 1000)


def _blank_to_none(value: Any) -> Any:
    # Clients send "" for "no reference"
    if value == "":
        return None
    return value


# ==================== USER ====================

class UserBase(SQLModel):
    id: str = Field(primary_key=True)
    name: str = ""
    email: str = ""
    external_auth_id: str = Field(default="", index=True)


class User(UserBase, table=True):
    pass


class UserUpdate(SQLModel):
    id: str
    name: Optional[str] = None
    email: Optional[str] = None


# ==================== ROOM ====================

class RoomBase(SQLModel):
    id: str = Field(primary_key=True)
    name: str
    created_at: int = Field(default_factory=now_ms, sa_type=BigInteger)
    owner_id: str = Field(index=True)
    is_public: bool = True


class Room(RoomBase, table=True):
    members: List["RoomMember"] = Relationship(
        back_populates="room",
        sa_relationship_kwargs={"cascade": "all, delete-orphan"},
    )
    chats: List["Chat"] = Relationship(
        back_populates="room",
        sa_relationship_kwargs={"cascade": "all, delete-orphan"},
    )
    messages: List["Message"] = Relationship(
        back_populates="room",
        sa_relationship_kwargs={"cascade": "all, delete"},
    )


class RoomUpdate(SQLModel):
    id: str
    name: Optional[str] = None
    is_public: Optional[bool] = None


class RoomMemberBase(SQLModel):
    room_id: str = Field(foreign_key="room.id", primary_key=True)
    # Not a foreign key: members are token identities that may have no User row
    user_id: str = Field(primary_key=True)
    joined_at: int = Field(default_factory=now_ms, sa_type=BigInteger)


class RoomMember(RoomMemberBase, table=True):
    room: Optional[Room] = Relationship(back_populates="members")


class RoomMemberKey(SQLModel):
    room_id: str
    user_id: str


# ==================== CHAT ====================

class ChatBase(SQLModel):
    id: str = Field(primary_key=True)
    title: str
    room_id: str = Field(foreign_key="room.id", index=True)
    owner_id: str = Field(index=True)
    created_at: int = Field(default_factory=now_ms, sa_type=BigInteger)


class Chat(ChatBase, table=True):
    room: Optional[Room] = Relationship(back_populates="chats")
    messages: List["Message"] = Relationship(
        back_populates="chat",
        sa_relationship_kwargs={"cascade": "all, delete-orphan"},
    )
    share_links: List["ShareLink"] = Relationship(
        back_populates="chat",
        sa_relationship_kwargs={"cascade": "all, delete-orphan"},
    )


class ChatUpdate(SQLModel):
    id: str
    title: Optional[str] = None


# ==================== MESSAGE ====================

class MessageBase(SQLModel):
    id: str = Field(primary_key=True)
    chat_id: str = Field(foreign_key="chat.id", index=True)
    room_id: str = Field(foreign_key="room.id", index=True)
    # Not a foreign key: assistant messages are sent by a non-user identity
    sender_id: str = Field(index=True)
    body: str = Field(default="", sa_type=Text)
    timestamp: int = Field(default_factory=now_ms, sa_type=BigInteger)
    model: str = ""
    # Deleting a parent turns its children into roots
    parent_id: Optional[str] = Field(default=None, foreign_key="message.id", ondelete="SET NULL", index=True)
    # Each attachment, search and image belongs to at most one message
    attachment_id: Optional[str] = Field(default=None, foreign_key="attachment.id", unique=True)
    web_search_id: Optional[str] = Field(default=None, foreign_key="websearch.id", unique=True)
    image_id: Optional[str] = Field(default=None, foreign_key="image.id", unique=True)
    stream_state: str = ""
    is_complete: bool = True

    @field_validator("parent_id", "attachment_id", "web_search_id", "image_id", mode="before")
    @classmethod
    def blank_reference(cls, value):
        return _blank_to_none(value)


class Message(MessageBase, table=True):
    # Server clock, set when a placeholder is inserted; the stale sweep reads it
    generation_started_at: Optional[int] = Field(default=None, sa_type=BigInteger)

    chat: Optional[Chat] = Relationship(back_populates="messages")
    room: Optional[Room] = Relationship(back_populates="messages")

    # Branch tree; deleting a parent re-roots its branches
    parent: Optional["Message"] = Relationship(
        back_populates="branches",
        sa_relationship_kwargs={"remote_side": "Message.id"},
    )
    branches: List["Message"] = Relationship(back_populates="parent")

    attachment: Optional["Attachment"] = Relationship()
    web_search: Optional["WebSearch"] = Relationship()
    image: Optional["Image"] = Relationship()


class MessageUpdate(SQLModel):
    """Fields a sender may edit. Lifecycle fields and parent_id are excluded."""

    id: str
    body: Optional[str] = None
    model: Optional[str] = None
    attachment_id: Optional[str] = None
    web_search_id: Optional[str] = None
    image_id: Optional[str] = None

    @field_validator("attachment_id", "web_search_id", "image_id", mode="before")
    @classmethod
    def blank_reference(cls, value):
        return _blank_to_none(value)


class MessageBranch(SQLModel):
    original_message_id: str
    message: MessageBase


class StreamStateUpdate(SQLModel):
    id: str
    stream_state: str
    is_complete: bool


# ==================== ATTACHMENTS, SEARCHES, IMAGES ====================

class AttachmentBase(SQLModel):
    id: str = Field(primary_key=True)
    url: str
    type: str
    filename: str
    uploader_id: str = Field(index=True)
    uploaded_at: int = Field(default_factory=now_ms, sa_type=BigInteger)
    message_id: Optional[str] = Field(default=None, index=True)

    @field_validator("message_id", mode="before")
    @classmethod
    def blank_reference(cls, value):
        return _blank_to_none(value)


class Attachment(AttachmentBase, table=True):
    pass


class WebSearchBase(SQLModel):
    id: str = Field(primary_key=True)
    query: str
    results: str = Field(default="[]", sa_type=Text)
    timestamp: int = Field(default_factory=now_ms, sa_type=BigInteger)
    message_id: Optional[str] = Field(default=None, index=True)

    @field_validator("results", mode="before")
    @classmethod
    def serialize_results(cls, value):
        if isinstance(value, (list, dict)):
            return json.dumps(value)
        return value

    @field_validator("message_id", mode="before")
    @classmethod
    def blank_reference(cls, value):
        return _blank_to_none(value)


class WebSearch(WebSearchBase, table=True):
    def get_results(self) -> list:
        return json.loads(self.results or "[]")


class ImageBase(SQLModel):
    id: str = Field(primary_key=True)
    url: str
    prompt: str = Field(sa_type=Text)
    model: str = ""
    generated_at: int = Field(default_factory=now_ms, sa_type=BigInteger)
    message_id: Optional[str] = Field(default=None, index=True)

    @field_validator("message_id", mode="before")
    @classmethod
    def blank_reference(cls, value):
        return _blank_to_none(value)


class Image(ImageBase, table=True):
    pass


# ==================== SHARE LINKS ====================

class ShareLinkBase(SQLModel):
    id: str = Field(primary_key=True)
    chat_id: str = Field(foreign_key="chat.id", index=True)
    created_by: str = Field(index=True)
    created_at: int = Field(default_factory=now_ms, sa_type=BigInteger)
    is_public: bool = True
    allow_collaboration: bool = False


class ShareLink(ShareLinkBase, table=True):
    chat: Optional[Chat] = Relationship(back_populates="share_links")


class EntityKey(SQLModel):
    id: str
