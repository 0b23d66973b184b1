import asyncio
import logging
from datetime import date, datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple

from sqlalchemy import event, inspect
from sqlalchemy.orm import Session, object_session

from townbook.dependencies.database import Base

logger = logging.getLogger(__name__)

WATCHED_TABLES = {
    "books",
    "book_copies",
    "rooms",
    "room_availability",
    "reservations",
    "activities",
    "notifications",
    "profiles",
}
USER_SCOPED_TABLES = {"reservations", "activities", "notifications"}

QUEUE_MAXSIZE = 100

_HIDDEN_COLUMNS = {"hashed_password"}
_PENDING_KEY = "townbook_pending_changes"


def _jsonable(value):
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def _row_snapshot(target) -> dict:
    # state.dict, щоб не тригерити завантаження атрибутів посеред flush
    state = inspect(target)
    return {
        attr.key: _jsonable(state.dict.get(attr.key))
        for attr in state.mapper.column_attrs
        if attr.key not in _HIDDEN_COLUMNS
    }


def _old_values(target) -> dict:
    state = inspect(target)
    old = {}
    for attr in state.mapper.column_attrs:
        if attr.key in _HIDDEN_COLUMNS:
            continue
        history = state.attrs[attr.key].history
        if history.has_changes() and history.deleted:
            old[attr.key] = _jsonable(history.deleted[0])
    return old


class ChangeFeedManager:
    """
    Розсилає зміни таблиць підписникам (обмежена черга asyncio на кожного).
    Працює в межах процесу API: коміти воркера Celery сюди не потрапляють.
    """

    def __init__(self):
        self.subscribers: Dict[str, List[Tuple[asyncio.Queue, Optional[int]]]] = {}

    def subscribe(self, table: str, user_id: Optional[int] = None) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=QUEUE_MAXSIZE)
        self.subscribers.setdefault(table, []).append((queue, user_id))
        return queue

    def unsubscribe(self, table: str, queue: asyncio.Queue):
        entries = self.subscribers.get(table, [])
        self.subscribers[table] = [entry for entry in entries if entry[0] is not queue]
        if not self.subscribers[table]:
            del self.subscribers[table]

    def publish(self, change: dict):
        table = change["table"]
        row = change.get("new") or change.get("old") or {}
        for queue, user_id in self.subscribers.get(table, []):
            if user_id is not None and row.get("user_id") != user_id:
                continue
            if queue.full():
                # повільний підписник втрачає найстаріші події
                queue.get_nowait()
                logger.warning(f"Change feed queue on '{table}' is full, oldest change dropped")
            queue.put_nowait(change)


change_feed = ChangeFeedManager()


def _record(target, event_type: str):
    table = getattr(target, "__tablename__", None)
    if table not in WATCHED_TABLES:
        return

    session = object_session(target)
    if session is None:
        return

    if event_type == "UPDATE":
        old = _old_values(target)
        if not old:
            return
        change = {"table": table, "eventType": event_type, "new": _row_snapshot(target), "old": old}
    elif event_type == "DELETE":
        change = {"table": table, "eventType": event_type, "new": None, "old": _row_snapshot(target)}
    else:
        change = {"table": table, "eventType": event_type, "new": _row_snapshot(target), "old": None}

    session.info.setdefault(_PENDING_KEY, []).append(change)


@event.listens_for(Base, "after_insert", propagate=True)
def _after_insert(mapper, connection, target):
    _record(target, "INSERT")


@event.listens_for(Base, "after_update", propagate=True)
def _after_update(mapper, connection, target):
    _record(target, "UPDATE")


@event.listens_for(Base, "after_delete", propagate=True)
def _after_delete(mapper, connection, target):
    _record(target, "DELETE")


@event.listens_for(Session, "after_commit")
def _publish_after_commit(session):
    for change in session.info.pop(_PENDING_KEY, []):
        try:
            change_feed.publish(change)
        except RuntimeError as e:
            logger.error(f"Could not deliver change on {change['table']}: {e}")


@event.listens_for(Session, "after_rollback")
def _discard_after_rollback(session):
    session.info.pop(_PENDING_KEY, None)
