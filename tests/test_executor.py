"""Tests for executor.py - preconditions, mutations and the idempotency boundary."""
import json
import pytest
from unittest.mock import patch


CREATE = {
    "intent": "create_block",
    "date_local": "2024-03-01",
    "start_time_local": "09:00",
    "duration_minutes": 45,
    "title": "Leg day",
    "workout_items": [{"name": "Squat", "sets": 5, "reps": 5, "weight": "100kg", "notes": ""}],
}


def _selector_target(date="2024-03-01", time="09:00"):
    return {"selector": {"date_local": date, "start_time_local": time}}


def _propose(db, action, user_id="user-1"):
    from voicesched.services import command_log_service
    from voicesched.services.intent_service import interpret_response

    parsed = interpret_response(json.dumps({**action, "confidence": 0.9}))
    return command_log_service.create_entry(db, user_id, "spoken words", parsed)


def _entry(db, command_id):
    from voicesched.models.command_log import CommandLogEntry
    db.expire_all()
    return db.get(CommandLogEntry, command_id)


def _live_blocks(db, user_id="user-1"):
    from voicesched.models.block import Block
    db.expire_all()
    return db.query(Block).filter(Block.user_id == user_id, Block.deleted_at.is_(None)).all()


class TestComputeEndTime:

    def test_same_day(self):
        from voicesched.services.executor import compute_end_time
        assert compute_end_time("09:00", 45) == "09:45"

    def test_wraps_past_midnight(self):
        from voicesched.services.executor import compute_end_time
        assert compute_end_time("23:50", 20) == "00:10"
        assert compute_end_time("22:30", 150) == "01:00"

    def test_full_day(self):
        from voicesched.services.executor import compute_end_time
        assert compute_end_time("00:00", 1440) == "00:00"


class TestCreate:

    def test_creates_block_with_provenance(self, db):
        from voicesched.services.executor import execute_command

        entry = _propose(db, CREATE)
        result = execute_command(db, entry.id, "user-1", CREATE)

        blocks = _live_blocks(db)
        assert len(blocks) == 1
        block = blocks[0]
        assert block.id == result.block_id
        assert block.date == "2024-03-01"
        assert block.start_time == "09:00"
        assert block.end_time == "09:45"
        assert block.block_type == "workout"
        assert block.payload["source"] == "voice"
        assert block.payload["voice"]["command_id"] == entry.id
        assert block.payload["workout"]["items"][0]["name"] == "Squat"

        logged = _entry(db, entry.id)
        assert logged.status == "executed"
        assert logged.block_id == block.id
        assert logged.executed_at is not None
        assert "Leg day" in result.summary

    def test_re_execution_is_rejected_without_second_mutation(self, db):
        from voicesched.services.errors import AlreadyProcessed
        from voicesched.services.executor import execute_command

        entry = _propose(db, CREATE)
        execute_command(db, entry.id, "user-1", CREATE)

        with pytest.raises(AlreadyProcessed) as exc:
            execute_command(db, entry.id, "user-1", CREATE)

        assert exc.value.current_status == "executed"
        assert exc.value.status_code == 409
        assert len(_live_blocks(db)) == 1

    def test_lost_compare_and_set_rolls_back_the_block(self, db):
        from voicesched.services.errors import AlreadyProcessed
        from voicesched.services.executor import execute_command

        entry = _propose(db, CREATE)

        with patch("voicesched.services.executor.command_log_service.claim_executed", return_value=False):
            with pytest.raises(AlreadyProcessed):
                execute_command(db, entry.id, "user-1", CREATE)

        assert _live_blocks(db) == []


class TestPreconditions:

    def test_missing_command(self, db):
        from voicesched.services.errors import CommandNotFound
        from voicesched.services.executor import execute_command

        with pytest.raises(CommandNotFound):
            execute_command(db, "nope", "user-1", CREATE)

    def test_other_users_command(self, db):
        from voicesched.services.errors import Forbidden
        from voicesched.services.executor import execute_command

        entry = _propose(db, CREATE, user_id="user-2")
        with pytest.raises(Forbidden):
            execute_command(db, entry.id, "user-1", CREATE)

        assert _entry(db, entry.id).status == "proposed"

    def test_unsupported_intent_mutates_nothing(self, db):
        from voicesched.services.errors import UnsupportedIntent
        from voicesched.services.executor import execute_command

        entry = _propose(db, CREATE)
        with pytest.raises(UnsupportedIntent):
            execute_command(db, entry.id, "user-1", {"intent": "delete_all"})

        assert _entry(db, entry.id).status == "proposed"
        assert _live_blocks(db) == []

    def test_intent_mismatch(self, db):
        from voicesched.services.errors import IntentMismatch
        from voicesched.services.executor import execute_command

        entry = _propose(db, CREATE)
        with pytest.raises(IntentMismatch):
            execute_command(db, entry.id, "user-1", {"intent": "cancel_block", "target": {"block_id": "x"}})

        assert _entry(db, entry.id).status == "proposed"

    def test_invalid_approved_time(self, db):
        from voicesched.services.errors import InvalidInput
        from voicesched.services.executor import execute_command

        entry = _propose(db, CREATE)
        with pytest.raises(InvalidInput):
            execute_command(db, entry.id, "user-1", {**CREATE, "start_time_local": "24:30"})

        assert _entry(db, entry.id).status == "proposed"


class TestReschedule:

    def test_moves_only_date_and_start(self, db, make_block):
        from voicesched.services.executor import execute_command

        block = make_block(end_time="10:00")
        action = {
            "intent": "reschedule_block",
            "target": _selector_target(),
            "new_time": {"date_local": "2024-03-02", "start_time_local": "18:00"},
        }
        entry = _propose(db, action)

        result = execute_command(db, entry.id, "user-1", action)

        db.expire_all()
        assert result.block_id == block.id
        moved = _live_blocks(db)[0]
        assert moved.date == "2024-03-02"
        assert moved.start_time == "18:00"
        assert moved.end_time == "10:00"
        assert moved.title == "Leg day"
        assert _entry(db, entry.id).status == "executed"

    def test_other_users_block_id_is_forbidden(self, db, make_block):
        from voicesched.services.errors import Forbidden
        from voicesched.services.executor import execute_command

        foreign = make_block(user_id="user-2")
        action = {
            "intent": "reschedule_block",
            "target": {"block_id": foreign.id},
            "new_time": {"date_local": "2024-03-02", "start_time_local": "18:00"},
        }
        entry = _propose(db, action)

        with pytest.raises(Forbidden):
            execute_command(db, entry.id, "user-1", action)

        untouched = _live_blocks(db, "user-2")[0]
        assert untouched.date == "2024-03-01"
        assert untouched.start_time == "09:00"
        assert _entry(db, entry.id).status == "failed"

    def test_ambiguous_target_fails_the_command(self, db, make_block):
        from voicesched.services.errors import AmbiguousTarget
        from voicesched.services.executor import execute_command

        make_block(title="Legs")
        make_block(title="Arms")
        action = {
            "intent": "reschedule_block",
            "target": _selector_target(),
            "new_time": {"date_local": "2024-03-02", "start_time_local": "18:00"},
        }
        entry = _propose(db, action)

        with pytest.raises(AmbiguousTarget):
            execute_command(db, entry.id, "user-1", action)

        logged = _entry(db, entry.id)
        assert logged.status == "failed"
        assert "Multiple workouts" in logged.error_message
        assert {b.start_time for b in _live_blocks(db)} == {"09:00"}


class TestCancel:

    def test_soft_deletes(self, db, make_block):
        from voicesched.models.block import Block
        from voicesched.services.executor import execute_command

        block = make_block()
        action = {"intent": "cancel_block", "target": _selector_target()}
        entry = _propose(db, action)

        execute_command(db, entry.id, "user-1", action)

        db.expire_all()
        row = db.get(Block, block.id)
        assert row is not None
        assert row.deleted_at is not None
        assert _entry(db, entry.id).block_id == block.id

    def test_already_deleted_target_is_not_found(self, db, make_block):
        from voicesched.services.errors import TargetNotFound
        from voicesched.services.executor import execute_command

        block = make_block(deleted=True)
        action = {"intent": "cancel_block", "target": {"block_id": block.id}}
        entry = _propose(db, action)

        with pytest.raises(TargetNotFound):
            execute_command(db, entry.id, "user-1", action)

        logged = _entry(db, entry.id)
        assert logged.status == "failed"
        assert logged.error_message


class TestUnexpectedFailure:

    def test_unexpected_error_marks_failed(self, db):
        from voicesched.services.errors import AlreadyProcessed, ExecutionFailed
        from voicesched.services.executor import execute_command

        entry = _propose(db, CREATE)

        with patch("voicesched.services.executor._create", side_effect=RuntimeError("disk full")):
            with pytest.raises(ExecutionFailed) as exc:
                execute_command(db, entry.id, "user-1", CREATE)

        assert exc.value.message == "disk full"
        logged = _entry(db, entry.id)
        assert logged.status == "failed"
        assert logged.error_message == "disk full"

        # A failed command is terminal
        with pytest.raises(AlreadyProcessed):
            execute_command(db, entry.id, "user-1", CREATE)
