import pytest

from chatsync.core.errors import ValidationError
from chatsync.db import models
from chatsync.services import lifecycle
from chatsync.services.lifecycle import Phase
from chatsync.services.mutators import run_mutator

from conftest import ALICE, BOB, message_args


def test_phases():
    assert lifecycle.phase_of("", True) is Phase.CREATED
    assert lifecycle.phase_of("generating", False) is Phase.GENERATING
    assert lifecycle.phase_of("complete", True) is Phase.COMPLETE
    assert lifecycle.phase_of("failed", True) is Phase.FAILED


@pytest.mark.parametrize("state,done", [("generating", True), ("complete", False), ("bogus", True)])
def test_inconsistent_pairs_rejected(state, done):
    with pytest.raises(ValidationError):
        lifecycle.phase_of(state, done)


def test_only_created_or_generating_on_insert():
    assert lifecycle.check_initial("", True) is Phase.CREATED
    assert lifecycle.check_initial("generating", False) is Phase.GENERATING
    with pytest.raises(ValidationError):
        lifecycle.check_initial("complete", True)


def test_transitions():
    lifecycle.check_transition(Phase.GENERATING, Phase.COMPLETE)
    lifecycle.check_transition(Phase.GENERATING, Phase.FAILED)
    lifecycle.check_transition(Phase.COMPLETE, Phase.COMPLETE)

    for current, requested in [
        (Phase.COMPLETE, Phase.GENERATING),
        (Phase.CREATED, Phase.GENERATING),
        (Phase.FAILED, Phase.COMPLETE),
        (Phase.CREATED, Phase.COMPLETE),
    ]:
        with pytest.raises(ValidationError):
            lifecycle.check_transition(current, requested)

    assert not lifecycle.is_terminal(Phase.GENERATING)
    assert lifecycle.is_terminal(Phase.FAILED)


def test_placeholder_completed_through_mutator(session, room):
    run_mutator(session, "message.create", ALICE, message_args(
        "m1", sender_id="assistant", body="", stream_state="generating", is_complete=False,
    ))
    assert session.get(models.Message, "m1").is_complete is False

    # Any authenticated caller may finish an assistant placeholder
    run_mutator(session, "message.updateStreamState", BOB, {
        "id": "m1", "stream_state": "complete", "is_complete": True,
    })
    message = session.get(models.Message, "m1")
    assert message.stream_state == "complete"
    assert message.is_complete is True


def test_is_complete_never_reverts(session, room):
    run_mutator(session, "message.create", ALICE, message_args(
        "m1", stream_state="generating", is_complete=False,
    ))
    run_mutator(session, "message.updateStreamState", ALICE, {
        "id": "m1", "stream_state": "complete", "is_complete": True,
    })
    with pytest.raises(ValidationError):
        run_mutator(session, "message.updateStreamState", ALICE, {
            "id": "m1", "stream_state": "generating", "is_complete": False,
        })

    session.expire_all()
    message = session.get(models.Message, "m1")
    assert message.stream_state == "complete"
    assert message.is_complete is True


def test_insert_as_complete_rejected(session, room):
    with pytest.raises(ValidationError):
        run_mutator(session, "message.create", ALICE, message_args(
            "m1", stream_state="complete", is_complete=True,
        ))
    assert session.get(models.Message, "m1") is None


def test_stream_state_update_of_missing_message_is_silent(session, room):
    run_mutator(session, "message.updateStreamState", ALICE, {
        "id": "ghost", "stream_state": "complete", "is_complete": True,
    })


def test_reap_stale_generations(session, room, monkeypatch):
    # Server clock at insert decides age; the client timestamps here are irrelevant
    monkeypatch.setattr(models, "now_ms", lambda: 1_000)
    run_mutator(session, "message.create", ALICE, message_args(
        "old", stream_state="generating", is_complete=False, timestamp=999_999,
    ))
    monkeypatch.setattr(models, "now_ms", lambda: 290_000)
    run_mutator(session, "message.create", ALICE, message_args(
        "fresh", stream_state="generating", is_complete=False, timestamp=1,
    ))
    run_mutator(session, "message.create", ALICE, message_args("done", timestamp=1))

    reaped = lifecycle.reap_stale_generations(session, timeout_ms=300_000, now=400_000)

    assert reaped == ["old"]
    assert lifecycle.phase_of(session.get(models.Message, "old").stream_state, True) is Phase.FAILED
    assert session.get(models.Message, "fresh").is_complete is False
    assert session.get(models.Message, "done").stream_state == ""


def test_backdated_placeholder_survives_sweep(session, room):
    run_mutator(session, "message.create", ALICE, message_args(
        "m1", stream_state="generating", is_complete=False, timestamp=1,
    ))
    message = session.get(models.Message, "m1")
    assert message.generation_started_at is not None

    assert lifecycle.reap_stale_generations(session, timeout_ms=300_000) == []
    assert session.get(models.Message, "m1").stream_state == "generating"


def test_created_messages_carry_no_generation_start(session, room):
    run_mutator(session, "message.create", ALICE, message_args("m1"))
    assert session.get(models.Message, "m1").generation_started_at is None
