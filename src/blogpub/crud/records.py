"""Build record persistence: lookup, upsert with change status, and pruning of removed sources"""

from __future__ import annotations

from datetime import datetime

from sqlmodel import Session, select

from blogpub.crud.models import BuildRecord, GeneratedOutput


def get_by_path(session: Session, path: str) -> BuildRecord | None:
    """Return the BuildRecord for a source path, or None if it was never built."""
    return session.exec(select(BuildRecord).where(BuildRecord.path == path)).one_or_none()


def list_records(session: Session) -> list[BuildRecord]:
    """Return all records ordered by source path."""
    return list(session.exec(select(BuildRecord).order_by(BuildRecord.path)).all())


def record_build(
    session: Session,
    data: dict,
    built_at: datetime | None = None,
    ) -> tuple[BuildRecord, str]:
    """Upsert the record for data['path'].

    Returns (record, status) where status is 'created', 'updated', or 'unchanged'
    (same fingerprint and output location). Flushes but does not commit.
    """
    record = get_by_path(session, data['path'])
    built_at = built_at or datetime.now()

    if record:
        if record.hash == data['hash'] and record.output == data['output']:
            if record.content is None and data.get('content') is not None:
                record.content = data['content']
                session.add(record)
                session.flush()
            return record, 'unchanged'
        record.slug = data['slug']
        record.url = data['url']
        record.output = data['output']
        record.hash = data['hash']
        record.content = data.get('content')
        record.built_at = built_at
        session.add(record)
        session.flush()
        return record, 'updated'

    record = BuildRecord(
        path=data['path'],
        slug=data['slug'],
        url=data['url'],
        output=data['output'],
        hash=data['hash'],
        content=data.get('content'),
        built_at=built_at,
    )
    session.add(record)
    session.flush()
    return record, 'created'


def remove_missing(session: Session, keep: set[str]) -> list[BuildRecord]:
    """Delete records whose source path is not in keep; return the deleted records."""
    removed = [r for r in list_records(session) if r.path not in keep]
    for r in removed:
        session.delete(r)
    session.flush()
    return removed


def list_generated(session: Session) -> list[GeneratedOutput]:
    return list(session.exec(select(GeneratedOutput).order_by(GeneratedOutput.output)).all())


def replace_generated(
    session: Session,
    outputs: dict[str, str],
    built_at: datetime | None = None,
    ) -> list[GeneratedOutput]:
    """Make {output file: url} the recorded set of generated pages.

    Returns the previously recorded outputs this build no longer produces.
    Flushes but does not commit.
    """
    built_at = built_at or datetime.now()
    current = {g.output: g for g in list_generated(session)}
    stale = [g for output, g in current.items() if output not in outputs]
    for g in stale:
        session.delete(g)
    for output, url in outputs.items():
        g = current.get(output) or GeneratedOutput(output=output, url=url)
        g.url = url
        g.built_at = built_at
        session.add(g)
    session.flush()
    return stale
