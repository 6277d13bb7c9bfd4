"""Database table definitions for the incremental build state"""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import Column, DateTime, String, Text
from sqlmodel import Field, SQLModel


class BuildRecord(SQLModel, table=True):
    """Last successful build of one content file, keyed by its source path"""
    __tablename__ = "build_records"
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    path: str = Field(..., sa_column=Column(Text, nullable=False, unique=True))
    slug: str = Field(..., index=True, nullable=False)
    url: str = Field(..., sa_column=Column(Text, nullable=False))
    output: str = Field(..., sa_column=Column(Text, nullable=False, comment="Written output file"))
    hash: str = Field(..., sa_column=Column(String(64), nullable=False, comment="Build fingerprint"))
    content: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True, comment="Rendered body HTML"))
    built_at: datetime = Field(default_factory=datetime.now, sa_column=Column(DateTime(timezone=False), nullable=False))


class GeneratedOutput(SQLModel, table=True):
    """A page the build writes on its own (home, tag pages, feed), keyed by its output file"""
    __tablename__ = "generated_outputs"
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    output: str = Field(..., sa_column=Column(Text, nullable=False, unique=True))
    url: str = Field(..., sa_column=Column(Text, nullable=False))
    built_at: datetime = Field(default_factory=datetime.now, sa_column=Column(DateTime(timezone=False), nullable=False))
