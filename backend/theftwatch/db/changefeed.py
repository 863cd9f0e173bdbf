"""
Change feed: turn committed ORM writes on realtime tables into change events.

Rows inserted or updated in a flush are snapshotted into session.info and published
once the transaction commits; a rollback discards them. Several flushes of the same row
in one transaction collapse into a single event carrying the final values.
"""
import logging
from typing import Callable

from sqlalchemy import event, inspect
from sqlalchemy.orm import Session, sessionmaker

from theftwatch.core.constants import REALTIME_HIDDEN_COLUMNS, REALTIME_TABLES
from theftwatch.db.types import utcnow
from theftwatch.services.realtime import ChangeEvent, registry

logger = logging.getLogger(__name__)

_PENDING_KEY = "realtime_pending"


def _snapshot(obj, table: str) -> dict:
    state = inspect(obj)
    hidden = REALTIME_HIDDEN_COLUMNS.get(table, frozenset())
    return {
        attr.key: state.dict.get(attr.key)
        for attr in state.mapper.column_attrs
        if attr.key not in hidden
    }


def _pending(session: Session) -> dict:
    return session.info.setdefault(_PENDING_KEY, {})


def _collect(session: Session, flush_context) -> None:
    pending = _pending(session)
    for obj, kind in [(o, "INSERT") for o in session.new] + [(o, "UPDATE") for o in session.dirty]:
        table = getattr(obj, "__tablename__", None)
        if table not in REALTIME_TABLES:
            continue
        if kind == "UPDATE" and not session.is_modified(obj, include_collections=False):
            continue
        # identity keys are assigned after this hook; primary key values are already set
        state = inspect(obj)
        key = (table, tuple(state.mapper.primary_key_from_instance(obj)))
        previous = pending.get(key)
        if previous is not None and previous.type == "INSERT":
            kind = "INSERT"
        pending[key] = ChangeEvent(table=table, type=kind, record=_snapshot(obj, table))


def _publish(session: Session, publish: Callable[[ChangeEvent], int]) -> None:
    pending = session.info.pop(_PENDING_KEY, None)
    if not pending:
        return
    committed_at = utcnow()
    for change in pending.values():
        change.commit_timestamp = committed_at
        try:
            publish(change)
        except Exception as e:
            logger.warning("Realtime publish failed for %s %s: %s", change.table, change.type, e, exc_info=True)


def _discard(session: Session) -> None:
    session.info.pop(_PENDING_KEY, None)


def install_change_feed(
    session_factory: sessionmaker,
    publish: Callable[[ChangeEvent], int] | None = None,
) -> None:
    """Attach the change feed to every session created by session_factory."""
    publish = publish or registry.publish

    @event.listens_for(session_factory, "after_flush")
    def _after_flush(session, flush_context):
        _collect(session, flush_context)

    @event.listens_for(session_factory, "after_commit")
    def _after_commit(session):
        _publish(session, publish)

    @event.listens_for(session_factory, "after_rollback")
    def _after_rollback(session):
        _discard(session)
