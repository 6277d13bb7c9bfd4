"""Engine construction and schema creation for the build state database"""

from __future__ import annotations

from pathlib import Path

from sqlalchemy.engine import make_url
from sqlmodel import SQLModel, create_engine

from blogpub.crud import models  # noqa: F401  registers tables on SQLModel.metadata


def make_engine(db_url: str):
    """Create an engine; file-backed SQLite URLs get their parent directory created."""
    url = make_url(db_url)
    if url.get_backend_name() == "sqlite" and url.database not in (None, "", ":memory:"):
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)
    return create_engine(db_url, echo=False)


def init_db(engine) -> None:
    SQLModel.metadata.create_all(engine)


def reset_db(engine) -> None:
    """Drop and recreate all tables."""
    SQLModel.metadata.drop_all(engine)
    SQLModel.metadata.create_all(engine)


def resolve_db_url(db_url: str, base: Path) -> str:
    """Anchor a relative SQLite file path at base (the site source directory)."""
    url = make_url(db_url)
    if (
        url.get_backend_name() == "sqlite"
        and url.database not in (None, "", ":memory:")
        and not Path(url.database).is_absolute()
    ):
        return url.set(database=str(Path(base) / url.database)).render_as_string(hide_password=False)
    return db_url
