from fastapi import APIRouter, Body, Depends
from sqlmodel import Session
from pydantic import BaseModel
from typing import Any, List, Optional, Union
import logging

from chatsync.core.auth import Identity, get_identity
from chatsync.core.errors import ChatSyncError
from chatsync.db.database import get_session
from chatsync.services.mutators import REGISTRY, run_mutator

logger = logging.getLogger(__name__)
router = APIRouter()


class MutationIntent(BaseModel):
    id: Union[int, str]
    name: str
    args: Any = None


class PushRequest(BaseModel):
    mutations: List[MutationIntent]


@router.post("/push")
def push(
    request: PushRequest,
    identity: Optional[Identity] = Depends(get_identity),
    session: Session = Depends(get_session),
):
    """Apply a batch of mutation intents, each in its own transaction"""
    results = []
    for intent in request.mutations:
        try:
            run_mutator(session, intent.name, identity, intent.args)
            results.append({"id": intent.id, "result": {}})
        except ChatSyncError as e:
            logger.warning(f"Mutation {intent.id} ({intent.name}) rejected: {e.kind}: {e.message}")
            results.append({"id": intent.id, "error": {"kind": e.kind, "message": e.message}})
    return {"mutations": results}


@router.post("/mutate/{name}")
def mutate(
    name: str,
    args: Any = Body(None),
    identity: Optional[Identity] = Depends(get_identity),
    session: Session = Depends(get_session),
):
    """Apply one named mutation; rejections answer with their HTTP status"""
    run_mutator(session, name, identity, args)
    return {"ok": True}


@router.get("/mutators")
def list_mutators():
    return {"mutators": sorted(REGISTRY)}
