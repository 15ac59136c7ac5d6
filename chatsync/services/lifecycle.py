# chatsync/services/lifecycle.py
"""
Streaming lifecycle of a message.

A message is either inserted whole (``created``) or inserted as an empty
placeholder (``generating``) that a later call completes. ``is_complete`` is
monotonic: once a message reaches a terminal phase it stays there.

    created     ("",           True)   terminal on insert
    generating  ("generating", False)
    complete    ("complete",   True)   terminal
    failed      ("failed",     True)   terminal, set by the stale sweep
"""

import asyncio
import logging
from enum import Enum
from typing import Optional

from sqlalchemy import func
from sqlmodel import Session, select

from chatsync.core.config import settings
from chatsync.core.errors import ValidationError
from chatsync.db import models
from chatsync.db.models import now_ms

logger = logging.getLogger(__name__)


class StreamState(str, Enum):
    NONE = ""
    GENERATING = "generating"
    COMPLETE = "complete"
    FAILED = "failed"


class Phase(str, Enum):
    CREATED = "created"
    GENERATING = "generating"
    COMPLETE = "complete"
    FAILED = "failed"


PHASES = {
    (StreamState.NONE, True): Phase.CREATED,
    (StreamState.GENERATING, False): Phase.GENERATING,
    (StreamState.COMPLETE, True): Phase.COMPLETE,
    (StreamState.FAILED, True): Phase.FAILED,
}

INITIAL_PHASES = {Phase.CREATED, Phase.GENERATING}

TRANSITIONS = {
    (Phase.GENERATING, Phase.COMPLETE),
    (Phase.GENERATING, Phase.FAILED),
}


def phase_of(stream_state: str, is_complete: bool) -> Phase:
    try:
        return PHASES[(StreamState(stream_state), bool(is_complete))]
    except (ValueError, KeyError):
        raise ValidationError(
            f"Invalid stream state {stream_state!r} with is_complete={is_complete}"
        )


def is_terminal(phase: Phase) -> bool:
    return phase is not Phase.GENERATING


def check_initial(stream_state: str, is_complete: bool) -> Phase:
    phase = phase_of(stream_state, is_complete)
    if phase not in INITIAL_PHASES:
        raise ValidationError(f"A message cannot be inserted as {phase.value}")
    return phase


def check_transition(current: Phase, requested: Phase) -> None:
    """Repeating the current phase is allowed so retried calls stay harmless."""
    if current == requested or (current, requested) in TRANSITIONS:
        return
    raise ValidationError(f"Illegal stream transition {current.value} -> {requested.value}")


# ==================== STALE GENERATIONS ====================

def reap_stale_generations(session: Session, timeout_ms: int, now: Optional[int] = None) -> list[str]:
    """
    Mark placeholders still generating after `timeout_ms` as failed.

    Age is measured on the server clock recorded at insert, not on the
    client-supplied `timestamp`.
    """
    cutoff = (now if now is not None else now_ms()) - timeout_ms
    started_at = func.coalesce(models.Message.generation_started_at, models.Message.timestamp)
    stale = session.exec(
        select(models.Message)
        .where(models.Message.stream_state == StreamState.GENERATING.value)
        .where(models.Message.is_complete == False)  # noqa: E712
        .where(started_at < cutoff)
    ).all()

    for message in stale:
        message.stream_state = StreamState.FAILED.value
        message.is_complete = True
        session.add(message)

    if stale:
        session.commit()
        logger.info(f"Marked {len(stale)} stale generating message(s) as failed")
    return [m.id for m in stale]


async def generation_supervisor(engine=None):
    """Background task: sweep stale generations until cancelled."""
    from chatsync.db.database import engine as default_engine

    engine = engine or default_engine
    timeout_ms = settings.GENERATION_TIMEOUT_SECONDS * 1000
    logger.info("🚀 Generation supervisor started")

    while True:
        try:
            await asyncio.sleep(settings.GENERATION_SWEEP_INTERVAL_SECONDS)
            with Session(engine) as session:
                await asyncio.to_thread(reap_stale_generations, session, timeout_ms)
        except asyncio.CancelledError:
            logger.info("Generation supervisor stopped")
            break
        except Exception as e:
            logger.error(f"Error in generation sweep: {e}", exc_info=True)
