# chatsync/services/message_tree.py
from typing import List
from sqlmodel import Session, select

from chatsync.core.errors import ValidationError
from chatsync.db import models


def ancestors(session: Session, message_id: str) -> List[models.Message]:
    """Parents of `message_id`, nearest first, up to the root of its branch tree."""
    chain = []
    seen = {message_id}
    message = session.get(models.Message, message_id)
    while message is not None and message.parent_id:
        if message.parent_id in seen:
            raise ValidationError(f"Cycle in branch tree at message {message.parent_id}")
        seen.add(message.parent_id)
        message = session.get(models.Message, message.parent_id)
        if message is not None:
            chain.append(message)
    return chain


def branches(session: Session, message_id: str) -> List[models.Message]:
    return list(session.exec(
        select(models.Message)
        .where(models.Message.parent_id == message_id)
        .order_by(models.Message.timestamp.asc(), models.Message.id.asc())
    ).all())


def thread(session: Session, message_id: str) -> List[models.Message]:
    """Root-to-message path, the history an alternate continuation is built on."""
    message = session.get(models.Message, message_id)
    if message is None:
        return []
    return list(reversed(ancestors(session, message_id))) + [message]
