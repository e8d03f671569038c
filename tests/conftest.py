import os
import uuid

import pytest
from dotenv import load_dotenv
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

load_dotenv(os.path.join(os.getcwd(), ".env"))

# The application engine is built at import time; keep it off the network in tests.
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite://")

from app.db import Base  # noqa: E402
from app.models.scorecard import AgentProfile  # noqa: E402


def _sqlite_engine():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, _connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(engine)
    return engine


@pytest.fixture(scope="session")
def engine():
    database_url = os.getenv("TEST_DATABASE_URL")
    if database_url:
        engine = create_engine(database_url)
        Base.metadata.create_all(engine)
        return engine
    return _sqlite_engine()


@pytest.fixture()
def db_session(engine):
    connection = engine.connect()
    transaction = connection.begin()
    SessionLocal = sessionmaker(bind=connection, autoflush=False, autocommit=False)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        transaction.rollback()
        connection.close()


@pytest.fixture()
def session_factory():
    """Committing session factory on a private in-memory database.

    Stores open and commit their own sessions per call, so they get a database
    that is discarded after the test instead of the rolled-back ``db_session``.
    """
    engine = _sqlite_engine()
    factory = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)
    try:
        yield factory
    finally:
        engine.dispose()


def _unique_employee_id() -> str:
    return f"EMP-{uuid.uuid4().hex[:8]}"


def make_agent(session, employee_id: str | None = None, is_active: bool = True) -> AgentProfile:
    agent = AgentProfile(
        employee_id=employee_id or _unique_employee_id(),
        display_name="Test Agent",
        is_active=is_active,
    )
    session.add(agent)
    session.commit()
    session.refresh(agent)
    return agent


@pytest.fixture()
def agent(db_session):
    return make_agent(db_session)


@pytest.fixture()
def agent_factory():
    return make_agent
