"""Shared test fixtures."""
from datetime import datetime, timezone
from typing import Generator

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

# Import all models so SQLModel.metadata knows about them
from analytics_exporter.models.host import (  # noqa: F401
    LoginSession, Module, Process, SystemInfo, Tab, UsageAudit, Window,
)
from analytics_exporter.models.sync import SyncState  # noqa: F401

UTC = timezone.utc


@pytest.fixture(name="engine")
def engine_fixture():
    """In-memory SQLite engine. Tables recreated fresh for each test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="test_session")
def test_session_fixture(engine) -> Generator[Session, None, None]:
    """Provides a DB session connected to in-memory SQLite."""
    with Session(engine) as session:
        yield session


@pytest.fixture(name="seeded_host")
def seeded_host_fixture(test_session: Session) -> Session:
    """
    A small host database:
      - core module "0" (3.0.1) and a sales module
      - window W1 (tab T1) and process P1, both owned by the sales module
      - sessions s1 (success, active), s2 (failed, logged out), pos (POS, excluded)
      - audits a1 (window via T1), a2 (process P1), a3 (POS session, excluded)
    """
    test_session.add(SystemInfo(system_identifier="acme-prod"))
    test_session.add(Module(
        id="0", javapackage="org.openbravo", name="Core", version="3.0.1",
        created=datetime(2024, 1, 1, tzinfo=UTC),
    ))
    test_session.add(Module(
        id="M1", javapackage="com.acme.sales", name="Sales", version="1.2.0",
        is_commercial=True, created=datetime(2025, 1, 10, tzinfo=UTC),
    ))
    test_session.add(Window(id="W1", name="Sales Order", module_id="M1"))
    test_session.add(Tab(id="T1", window_id="W1"))
    test_session.add(Process(id="P1", name="Post Invoices", module_id="M1"))

    test_session.add(LoginSession(
        id="s1", username="alice", login_status="S", session_active=True,
        server_url="https://erp.acme.test", remote_address="10.0.0.1",
        created=datetime(2025, 1, 15, 7, 30, tzinfo=UTC), created_by="U1",
        updated=datetime(2025, 1, 15, 8, 0, tzinfo=UTC), updated_by="U1",
    ))
    test_session.add(LoginSession(
        id="s2", username="bob", login_status="F", session_active=False,
        remote_address="10.0.0.2", last_ping=datetime(2025, 1, 15, 9, 45, tzinfo=UTC),
        created=datetime(2025, 1, 15, 9, 0, tzinfo=UTC), created_by="U2",
    ))
    test_session.add(LoginSession(
        id="pos", username="till", login_status="OBPOS_POS", session_active=True,
        created=datetime(2025, 1, 15, 10, 0, tzinfo=UTC),
    ))

    test_session.add(UsageAudit(
        id="a1", session_id="s1", command="SAVE", process_time=12.5,
        object_id="T1", created=datetime(2025, 1, 15, 7, 35, tzinfo=UTC), created_by="U1",
    ))
    test_session.add(UsageAudit(
        id="a2", session_id="s2", command="DEFAULT", process_time=300,
        object_id="P1", created=datetime(2025, 1, 15, 9, 5, tzinfo=UTC), created_by="U2",
    ))
    test_session.add(UsageAudit(
        id="a3", session_id="pos", command="SAVE",
        object_id="T1", created=datetime(2025, 1, 15, 10, 5, tzinfo=UTC),
    ))
    test_session.commit()
    return test_session
