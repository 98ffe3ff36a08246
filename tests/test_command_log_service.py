"""Tests for command_log_service.py - single terminal transition per command."""
import json


def _parsed(confidence=0.9):
    from voicesched.services.intent_service import interpret_response

    return interpret_response(json.dumps({
        "intent": "cancel_block",
        "target": {"block_id": "block-1"},
        "confidence": confidence,
    }))


class TestCreateEntry:

    def test_entry_is_proposed(self, db):
        from voicesched.services import command_log_service

        entry = command_log_service.create_entry(db, "user-1", "cancel it", _parsed(), input_type="audio")

        assert entry.status == "proposed"
        assert entry.intent == "cancel_block"
        assert entry.input_type == "audio"
        assert entry.proposed_action["target"]["block_id"] == "block-1"
        assert entry.executed_at is None

    def test_low_confidence_is_recorded(self, db):
        from voicesched.services import command_log_service

        entry = command_log_service.create_entry(db, "user-1", "umm", _parsed(confidence=0.2))

        assert entry.needs_clarification is True
        assert entry.clarification_questions


class TestTerminalTransitions:

    def test_claim_wins_once(self, db):
        from voicesched.services import command_log_service

        entry = command_log_service.create_entry(db, "user-1", "cancel it", _parsed())

        assert command_log_service.claim_executed(db, entry.id, "block-1") is True
        db.commit()
        assert command_log_service.claim_executed(db, entry.id, "block-1") is False
        assert command_log_service.mark_failed(db, entry.id, "late failure") is False
        assert command_log_service.current_status(db, entry.id) == "executed"

    def test_failed_is_final(self, db):
        from voicesched.services import command_log_service

        entry = command_log_service.create_entry(db, "user-1", "cancel it", _parsed())

        assert command_log_service.mark_failed(db, entry.id, "boom") is True
        assert command_log_service.claim_executed(db, entry.id, "block-1") is False
        db.rollback()
        assert command_log_service.current_status(db, entry.id) == "failed"

    def test_uncommitted_claim_is_undone_by_rollback(self, db):
        from voicesched.services import command_log_service

        entry = command_log_service.create_entry(db, "user-1", "cancel it", _parsed())

        command_log_service.claim_executed(db, entry.id, "block-1")
        db.rollback()
        assert command_log_service.current_status(db, entry.id) == "proposed"
