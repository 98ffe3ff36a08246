"""Shared test fixtures and configuration."""
import pytest
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool


@pytest.fixture(autouse=True)
def mock_env(monkeypatch):
    """Set minimum required environment variables for all tests."""
    monkeypatch.setenv("DATABASE_URL", "")
    monkeypatch.setenv("OPENAI_API_KEY", "")
    monkeypatch.setenv("AUTH_API_URL", "https://auth.test/auth/v1")


@pytest.fixture
def engine():
    from voicesched.db.session import create_tables

    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    create_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_block(db):
    """Insert a schedule entry and return it."""
    from voicesched.models.block import Block

    def _make(user_id="user-1", date="2024-03-01", start_time="09:00", block_type="workout", deleted=False, **kwargs):
        block = Block(
            user_id=user_id,
            date=date,
            start_time=start_time,
            end_time=kwargs.pop("end_time", "10:00"),
            block_type=block_type,
            title=kwargs.pop("title", "Leg day"),
            deleted_at=datetime(2024, 2, 1) if deleted else None,
            **kwargs,
        )
        db.add(block)
        db.commit()
        db.refresh(block)
        return block

    return _make


class FakeClock:
    """Controllable naive-UTC clock."""

    def __init__(self, now=None):
        self.now = now or datetime(2024, 3, 1, 8, 0, 0)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sessions(clock):
    from voicesched.services.capture_session_service import CaptureSessionService

    return CaptureSessionService(clock=clock)


@pytest.fixture
def fake_transcriber():
    transcriber = MagicMock()
    transcriber.transcribe = AsyncMock(return_value="move my leg day to 6pm")
    return transcriber


@pytest.fixture
def fake_parser():
    from voicesched.services.intent_service import interpret_response

    parser = MagicMock()
    parser.parse = AsyncMock(return_value=interpret_response(
        '{"intent": "create_block", "date_local": "2024-03-01", "start_time_local": "09:00", '
        '"duration_minutes": 45, "title": "Leg day", "confidence": 0.9, "needs_clarification": []}'
    ))
    return parser


@pytest.fixture
def pipeline(fake_transcriber, fake_parser, sessions):
    from voicesched.services.pipeline_service import VoicePipeline

    return VoicePipeline(transcriber=fake_transcriber, parser=fake_parser, sessions=sessions)


@pytest.fixture
def client(session_factory, pipeline):
    """TestClient with the database, pipeline and caller overridden."""
    from fastapi.testclient import TestClient
    from voicesched.main import app
    from voicesched.api.endpoints import voice
    from voicesched.db.session import get_db
    from voicesched.services.auth_service import AuthenticatedUser

    def _db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _db
    app.dependency_overrides[voice.get_pipeline] = lambda: pipeline
    app.dependency_overrides[voice.get_current_user] = lambda: AuthenticatedUser(id="user-1", email="a@example.com")

    yield TestClient(app, raise_server_exceptions=False)

    app.dependency_overrides.clear()
