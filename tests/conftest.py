"""
In-memory SQLite fixtures.

All sessions share one SQLite connection (StaticPool), so a test must not keep
a transaction open on its own session while another session (sweeper, API
request) is working. Commit first, then hand over.
"""

import pytest
from sqlalchemy.pool import StaticPool

from cleandispatch import models  # noqa: F401
from cleandispatch.database import Base, create_db_engine, make_session_factory

from _helper import FakeGateway, RecordingNotifier


@pytest.fixture
def engine():
    engine = create_db_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def gateway():
    return FakeGateway()
