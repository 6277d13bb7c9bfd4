"""Shared fixtures for crud unit tests"""

import pytest
from sqlalchemy import create_engine
from sqlmodel import SQLModel, Session

from blogpub.crud.models import BuildRecord


@pytest.fixture(name="engine")
def engine_fixture():
    """In-memory SQLite engine with all tables created."""
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False})
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="session")
def session_fixture(engine):
    """Fresh session per test; changes are not committed."""
    with Session(engine) as s:
        yield s


@pytest.fixture(name="record_data")
def record_data_fixture():
    return {
        "path": "_posts/2020-01-05-collection-view.md",
        "slug": "collection-view",
        "url": "/2020/01/05/collection-view.html",
        "output": "_site/2020/01/05/collection-view.html",
        "hash": "a" * 64,
        "content": "<p>Hello</p>\n",
    }


@pytest.fixture(name="record")
def record_fixture(session, record_data):
    """A BuildRecord persisted to the session."""
    r = BuildRecord(**record_data)
    session.add(r)
    session.flush()
    return r
