"""Tests for scheduler_service.py - capture session housekeeping job."""
from datetime import timedelta
from unittest.mock import patch


class TestSweepCaptureSessions:

    def test_expires_and_purges(self, db, session_factory):
        from voicesched.models.base import utcnow
        from voicesched.models.capture_session import CaptureSession
        from voicesched.services.scheduler_service import sweep_capture_sessions

        now = utcnow()
        db.add(CaptureSession(user_id="user-1", status="uploaded", expires_at=now - timedelta(minutes=1)))
        db.add(CaptureSession(user_id="user-1", status="created", expires_at=now - timedelta(days=3)))
        db.add(CaptureSession(user_id="user-1", status="created", expires_at=now + timedelta(minutes=5)))
        db.commit()

        with patch("voicesched.db.session.SessionLocal", session_factory):
            result = sweep_capture_sessions()

        assert result == {"expired": 2, "purged": 1}
        db.expire_all()
        statuses = sorted(s.status for s in db.query(CaptureSession).all())
        assert statuses == ["created", "expired"]

    def test_skipped_without_database(self):
        from voicesched.services.scheduler_service import sweep_capture_sessions

        with patch("voicesched.db.session.SessionLocal", None):
            assert sweep_capture_sessions() == {"expired": 0, "purged": 0}


class TestSchedulerLifecycle:

    def test_registers_sweep_job(self):
        from voicesched.services import scheduler_service

        with patch.object(scheduler_service.scheduler, "add_job") as add_job, \
                patch.object(scheduler_service.scheduler, "start") as start:
            scheduler_service.start_scheduler()

        start.assert_called_once()
        assert add_job.call_args[1]["id"] == "capture_session_sweep"
        assert add_job.call_args[0][1] == "interval"
