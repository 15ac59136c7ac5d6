# chatsync/services/mutators.py
"""
Named, transactional write operations.

Each mutator is a plain function ``(tx, identity, args)`` registered under
``"<entity>.<verb>"``. The caller's identity is passed on every call, so the
registry itself is stateless and shared by all requests.

Update and delete mutators read the target row inside the same transaction
before writing. A missing row is a silent no-op so that retried intents are
safe; a present row owned by someone else is rejected with ``Forbidden``.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Type, Any

from pydantic import ValidationError as PydanticValidationError
from sqlmodel import Session, SQLModel, select

from chatsync.core.auth import Identity, is_owner, require_identity, require_owner
from chatsync.core.errors import UnknownMutator, ValidationError
from chatsync.db import models
from chatsync.db.transaction import Transaction, transaction
from chatsync.services import lifecycle

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Mutator:
    name: str
    args_model: Type[SQLModel]
    fn: Callable[[Transaction, Optional[Identity], Any], None]


REGISTRY: Dict[str, Mutator] = {}


def mutator(name: str, args_model: Type[SQLModel]):
    def register(fn):
        REGISTRY[name] = Mutator(name=name, args_model=args_model, fn=fn)
        return fn
    return register


def parse_args(m: Mutator, args: Any):
    if isinstance(args, m.args_model):
        return args
    # Delete-style mutators also accept a bare id
    if isinstance(args, str) and m.args_model is models.EntityKey:
        args = {"id": args}
    try:
        return m.args_model.model_validate(args)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid arguments for {m.name}: {e.errors()}")


def run_mutator(session: Session, name: str, identity: Optional[Identity], args: Any) -> None:
    """Validate `args`, then run mutator `name` in its own transaction."""
    m = REGISTRY.get(name)
    if m is None:
        raise UnknownMutator(f"Unknown mutator: {name}")

    parsed = parse_args(m, args)
    with transaction(session) as tx:
        m.fn(tx, identity, parsed)


def _changes(update: SQLModel) -> dict:
    return update.model_dump(exclude_unset=True, exclude={"id"})


# ==================== USER ====================

@mutator("user.create", models.UserBase)
def create_user(tx: Transaction, identity: Optional[Identity], user: models.UserBase):
    # Profile self-registration runs before the caller holds a credential
    tx.insert(models.User.model_validate(user))
    logger.info(f"Inserted user {user.id}")


@mutator("user.update", models.UserUpdate)
def update_user(tx: Transaction, identity: Optional[Identity], update: models.UserUpdate):
    auth = require_identity(identity)
    user = tx.get(models.User, update.id)
    if not user:
        logger.debug(f"user.update: {update.id} not found, nothing to do")
        return
    require_owner(auth, user.id, "edit user profile")
    tx.update(user, **_changes(update))


# ==================== ROOM ====================

@mutator("room.create", models.RoomBase)
def create_room(tx: Transaction, identity: Optional[Identity], room: models.RoomBase):
    require_identity(identity)
    tx.insert(models.Room.model_validate(room))
    logger.info(f"Inserted room {room.id}")


@mutator("room.update", models.RoomUpdate)
def update_room(tx: Transaction, identity: Optional[Identity], update: models.RoomUpdate):
    auth = require_identity(identity)
    room = tx.get(models.Room, update.id)
    if not room:
        logger.debug(f"room.update: {update.id} not found, nothing to do")
        return
    require_owner(auth, room.owner_id, "edit room")
    tx.update(room, **_changes(update))


@mutator("room.delete", models.EntityKey)
def delete_room(tx: Transaction, identity: Optional[Identity], key: models.EntityKey):
    auth = require_identity(identity)
    room = tx.get(models.Room, key.id)
    if not room:
        logger.debug(f"room.delete: {key.id} not found, nothing to do")
        return
    require_owner(auth, room.owner_id, "delete room")
    tx.delete(room)
    logger.info(f"Deleted room {key.id}")


# ==================== ROOM MEMBER ====================

def _may_manage_membership(tx: Transaction, auth: Identity, room_id: str, user_id: str) -> None:
    """Members manage themselves; a room owner manages anyone."""
    if is_owner(auth, user_id):
        return
    room = tx.get(models.Room, room_id)
    require_owner(
        auth,
        room.owner_id if room else None,
        f"manage membership of {user_id} in {room_id}",
        role="the member or the room owner",
    )


@mutator("roomMember.join", models.RoomMemberBase)
def join_room(tx: Transaction, identity: Optional[Identity], member: models.RoomMemberBase):
    auth = require_identity(identity)
    _may_manage_membership(tx, auth, member.room_id, member.user_id)
    tx.insert(models.RoomMember.model_validate(member))
    logger.info(f"User {member.user_id} joined room {member.room_id}")


@mutator("roomMember.leave", models.RoomMemberKey)
def leave_room(tx: Transaction, identity: Optional[Identity], key: models.RoomMemberKey):
    auth = require_identity(identity)
    member = tx.get(models.RoomMember, (key.room_id, key.user_id))
    if not member:
        logger.debug(f"roomMember.leave: {key.user_id} not in {key.room_id}, nothing to do")
        return
    _may_manage_membership(tx, auth, key.room_id, key.user_id)
    # The room itself is kept; ownership lives on Room.owner_id
    tx.delete(member)
    logger.info(f"User {key.user_id} left room {key.room_id}")


# ==================== CHAT ====================

@mutator("chat.create", models.ChatBase)
def create_chat(tx: Transaction, identity: Optional[Identity], chat: models.ChatBase):
    require_identity(identity)
    tx.insert(models.Chat.model_validate(chat))
    logger.info(f"Inserted chat {chat.id} in room {chat.room_id}")


@mutator("chat.update", models.ChatUpdate)
def update_chat(tx: Transaction, identity: Optional[Identity], update: models.ChatUpdate):
    auth = require_identity(identity)
    chat = tx.get(models.Chat, update.id)
    if not chat:
        logger.debug(f"chat.update: {update.id} not found, nothing to do")
        return
    require_owner(auth, chat.owner_id, "edit chat")
    tx.update(chat, **_changes(update))


@mutator("chat.delete", models.EntityKey)
def delete_chat(tx: Transaction, identity: Optional[Identity], key: models.EntityKey):
    auth = require_identity(identity)
    chat = tx.get(models.Chat, key.id)
    if not chat:
        logger.debug(f"chat.delete: {key.id} not found, nothing to do")
        return
    require_owner(auth, chat.owner_id, "delete chat")
    tx.delete(chat)
    logger.info(f"Deleted chat {key.id}")


# ==================== MESSAGE ====================

REFERENCE_COLUMNS = ("attachment_id", "web_search_id", "image_id")


def _check_references_free(tx: Transaction, message_id: str, fields: dict) -> None:
    """An attachment, search or image may be held by one message only."""
    for column in REFERENCE_COLUMNS:
        reference = fields.get(column)
        if not reference:
            continue
        holders = tx.query(
            select(models.Message.id)
            .where(getattr(models.Message, column) == reference)
            .where(models.Message.id != message_id)
        )
        if holders:
            raise ValidationError(f"{column} {reference} is already used by message {holders[0]}")


def _insert_message(tx: Transaction, message: models.MessageBase) -> models.Message:
    phase = lifecycle.check_initial(message.stream_state, message.is_complete)
    if message.parent_id == message.id:
        raise ValidationError("A message cannot be its own parent")

    # Parents must already exist, so inserts can only extend the forest
    if message.parent_id:
        parent = tx.get(models.Message, message.parent_id)
        if parent is None:
            raise ValidationError(f"Parent message {message.parent_id} does not exist")
        if parent.chat_id != message.chat_id:
            raise ValidationError("A branch must stay in the chat of its parent")

    _check_references_free(tx, message.id, message.model_dump(include=set(REFERENCE_COLUMNS)))

    row = models.Message.model_validate(message)
    if phase is lifecycle.Phase.GENERATING:
        row.generation_started_at = models.now_ms()
    row = tx.insert(row)
    logger.info(f"Inserted message {row.id} in chat {row.chat_id}")
    return row


@mutator("message.create", models.MessageBase)
def create_message(tx: Transaction, identity: Optional[Identity], message: models.MessageBase):
    require_identity(identity)
    _insert_message(tx, message)


@mutator("message.update", models.MessageUpdate)
def update_message(tx: Transaction, identity: Optional[Identity], update: models.MessageUpdate):
    auth = require_identity(identity)
    message = tx.get(models.Message, update.id)
    if not message:
        logger.debug(f"message.update: {update.id} not found, nothing to do")
        return
    require_owner(auth, message.sender_id, "edit", role="sender of message")
    changes = _changes(update)
    _check_references_free(tx, message.id, changes)
    tx.update(message, **changes)


@mutator("message.delete", models.EntityKey)
def delete_message(tx: Transaction, identity: Optional[Identity], key: models.EntityKey):
    auth = require_identity(identity)
    message = tx.get(models.Message, key.id)
    if not message:
        logger.debug(f"message.delete: {key.id} not found, nothing to do")
        return
    require_owner(auth, message.sender_id, "delete", role="sender of message")
    tx.delete(message)
    logger.info(f"Deleted message {key.id}")


@mutator("message.branch", models.MessageBranch)
def branch_message(tx: Transaction, identity: Optional[Identity], branch: models.MessageBranch):
    """Insert an alternate continuation of `original_message_id`.

    The tree edge is owned here: whatever parent the caller supplied is
    replaced by the original message id.
    """
    require_identity(identity)
    message = branch.message.model_copy(update={"parent_id": branch.original_message_id})
    _insert_message(tx, message)


@mutator("message.updateStreamState", models.StreamStateUpdate)
def update_stream_state(tx: Transaction, identity: Optional[Identity], update: models.StreamStateUpdate):
    # No ownership check: assistant messages are sent by an identity the client does not hold
    require_identity(identity)
    requested = lifecycle.phase_of(update.stream_state, update.is_complete)

    message = tx.get(models.Message, update.id)
    if not message:
        logger.debug(f"message.updateStreamState: {update.id} not found, nothing to do")
        return

    current = lifecycle.phase_of(message.stream_state, message.is_complete)
    lifecycle.check_transition(current, requested)
    if current != requested:
        tx.update(message, stream_state=update.stream_state, is_complete=update.is_complete)
        logger.info(f"Message {update.id}: {current.value} -> {requested.value}")


# ==================== ATTACHMENT / WEB SEARCH / IMAGE ====================

@mutator("attachment.create", models.AttachmentBase)
def create_attachment(tx: Transaction, identity: Optional[Identity], attachment: models.AttachmentBase):
    require_identity(identity)
    tx.insert(models.Attachment.model_validate(attachment))
    logger.info(f"Inserted attachment {attachment.id}")


@mutator("attachment.delete", models.EntityKey)
def delete_attachment(tx: Transaction, identity: Optional[Identity], key: models.EntityKey):
    auth = require_identity(identity)
    attachment = tx.get(models.Attachment, key.id)
    if not attachment:
        logger.debug(f"attachment.delete: {key.id} not found, nothing to do")
        return
    require_owner(auth, attachment.uploader_id, "delete attachment", role="uploader")

    for message in tx.query(select(models.Message).where(models.Message.attachment_id == key.id)):
        tx.update(message, attachment_id=None)
    tx.delete(attachment)
    logger.info(f"Deleted attachment {key.id}")


@mutator("webSearch.create", models.WebSearchBase)
def create_web_search(tx: Transaction, identity: Optional[Identity], web_search: models.WebSearchBase):
    require_identity(identity)
    tx.insert(models.WebSearch.model_validate(web_search))
    logger.info(f"Inserted web search {web_search.id}")


@mutator("image.create", models.ImageBase)
def create_image(tx: Transaction, identity: Optional[Identity], image: models.ImageBase):
    require_identity(identity)
    tx.insert(models.Image.model_validate(image))
    logger.info(f"Inserted image {image.id}")


# ==================== SHARE LINK ====================

@mutator("shareLink.create", models.ShareLinkBase)
def create_share_link(tx: Transaction, identity: Optional[Identity], share_link: models.ShareLinkBase):
    require_identity(identity)
    tx.insert(models.ShareLink.model_validate(share_link))
    logger.info(f"Inserted share link {share_link.id} for chat {share_link.chat_id}")


@mutator("shareLink.delete", models.EntityKey)
def delete_share_link(tx: Transaction, identity: Optional[Identity], key: models.EntityKey):
    auth = require_identity(identity)
    share_link = tx.get(models.ShareLink, key.id)
    if not share_link:
        logger.debug(f"shareLink.delete: {key.id} not found, nothing to do")
        return
    require_owner(auth, share_link.created_by, "delete share link", role="creator")
    tx.delete(share_link)
    logger.info(f"Deleted share link {key.id}")
