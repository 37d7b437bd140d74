"""
Storage layer for the diary backend.

``Storage`` is the repository interface the API talks to. Two implementations
are provided: ``MemStorage`` keeps everything in process memory and
``SqlStorage`` persists through SQLAlchemy. Both hand back instances of the
mapped classes in ``diary_database.models``.
"""
import asyncio
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, or_, select
from sqlalchemy.exc import IntegrityError

from diary_database.db import get_database_url, make_engine, make_session_factory
from diary_database.models import Base, DiaryEntry, Memo, User

logger = logging.getLogger(__name__)

DIARY_ENTRY_FIELDS = ("title", "content", "emotion")
MEMO_FIELDS = ("content",)


class StorageError(Exception):
    """Base class for errors raised by the storage layer."""


class DuplicateUsernameError(StorageError):
    """Raised when creating a user whose username is already taken."""

    def __init__(self, username: str):
        super().__init__(f"Username already taken: {username}")
        self.username = username


class _Clock:
    """Issues strictly increasing UTC timestamps."""

    def __init__(self):
        self._lock = threading.Lock()
        self._last: Optional[datetime] = None

    def now(self) -> datetime:
        with self._lock:
            current = datetime.now(timezone.utc)
            if self._last is not None and current <= self._last:
                current = self._last + timedelta(microseconds=1)
            self._last = current
            return current


_clock = _Clock()


def _new_id() -> str:
    return str(uuid.uuid4())


def _writable(data: Dict[str, Any], fields) -> Dict[str, Any]:
    # id and created_at are never writable
    return {key: value for key, value in data.items() if key in fields}


def _clone(obj):
    return type(obj)(**{column.name: getattr(obj, column.name) for column in obj.__table__.columns})


def _newest_first(records) -> list:
    return sorted(records, key=lambda record: record.created_at, reverse=True)


# PUBLIC_INTERFACE
class Storage(ABC):
    """Async repository over users, diary entries and memos."""

    # Users
    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[User]: ...

    @abstractmethod
    async def get_user_by_username(self, username: str) -> Optional[User]: ...

    @abstractmethod
    async def create_user(self, username: str, password: str) -> User: ...

    # Diary entries
    @abstractmethod
    async def get_all_diary_entries(self) -> List[DiaryEntry]: ...

    @abstractmethod
    async def get_diary_entry(self, entry_id: str) -> Optional[DiaryEntry]: ...

    @abstractmethod
    async def create_diary_entry(self, data: Dict[str, Any]) -> DiaryEntry: ...

    @abstractmethod
    async def update_diary_entry(self, entry_id: str, data: Dict[str, Any]) -> Optional[DiaryEntry]: ...

    @abstractmethod
    async def delete_diary_entry(self, entry_id: str) -> bool: ...

    @abstractmethod
    async def search_diary_entries(self, query: str) -> List[DiaryEntry]: ...

    # Memos
    @abstractmethod
    async def get_all_memos(self) -> List[Memo]: ...

    @abstractmethod
    async def get_memo(self, memo_id: str) -> Optional[Memo]: ...

    @abstractmethod
    async def create_memo(self, data: Dict[str, Any]) -> Memo: ...

    @abstractmethod
    async def update_memo(self, memo_id: str, data: Dict[str, Any]) -> Optional[Memo]: ...

    @abstractmethod
    async def delete_memo(self, memo_id: str) -> bool: ...


# PUBLIC_INTERFACE
class MemStorage(Storage):
    """
    In-process storage backed by dicts keyed by id.

    Writers are serialized with an asyncio.Lock. Every record handed out is a
    copy, so callers cannot change stored state behind the store's back.
    """

    def __init__(self):
        self._users: Dict[str, User] = {}
        self._diary_entries: Dict[str, DiaryEntry] = {}
        self._memos: Dict[str, Memo] = {}
        self._lock = asyncio.Lock()

    async def get_user(self, user_id):
        user = self._users.get(user_id)
        return _clone(user) if user else None

    async def get_user_by_username(self, username):
        for user in list(self._users.values()):
            if user.username == username:
                return _clone(user)
        return None

    async def create_user(self, username, password):
        async with self._lock:
            if any(user.username == username for user in self._users.values()):
                raise DuplicateUsernameError(username)
            user = User(id=_new_id(), username=username, password=password)
            self._users[user.id] = user
        return _clone(user)

    async def get_all_diary_entries(self):
        return [_clone(entry) for entry in _newest_first(list(self._diary_entries.values()))]

    async def get_diary_entry(self, entry_id):
        entry = self._diary_entries.get(entry_id)
        return _clone(entry) if entry else None

    async def create_diary_entry(self, data):
        return await self._create(self._diary_entries, DiaryEntry, _writable(data, DIARY_ENTRY_FIELDS))

    async def update_diary_entry(self, entry_id, data):
        return await self._update(self._diary_entries, entry_id, _writable(data, DIARY_ENTRY_FIELDS))

    async def delete_diary_entry(self, entry_id):
        return await self._delete(self._diary_entries, entry_id)

    async def search_diary_entries(self, query):
        needle = query.lower()
        matches = [
            entry for entry in list(self._diary_entries.values())
            if needle in entry.title.lower() or needle in entry.content.lower()
        ]
        return [_clone(entry) for entry in _newest_first(matches)]

    async def get_all_memos(self):
        return [_clone(memo) for memo in _newest_first(list(self._memos.values()))]

    async def get_memo(self, memo_id):
        memo = self._memos.get(memo_id)
        return _clone(memo) if memo else None

    async def create_memo(self, data):
        return await self._create(self._memos, Memo, _writable(data, MEMO_FIELDS))

    async def update_memo(self, memo_id, data):
        return await self._update(self._memos, memo_id, _writable(data, MEMO_FIELDS))

    async def delete_memo(self, memo_id):
        return await self._delete(self._memos, memo_id)

    async def _create(self, table, model, values):
        async with self._lock:
            record = model(id=_new_id(), created_at=_clock.now(), **values)
            table[record.id] = record
        logger.debug("Created %s %s", model.__tablename__, record.id)
        return _clone(record)

    async def _update(self, table, record_id, values):
        async with self._lock:
            existing = table.get(record_id)
            if existing is None:
                return None
            updated = _clone(existing)
            for key, value in values.items():
                setattr(updated, key, value)
            table[record_id] = updated
        return _clone(updated)

    async def _delete(self, table, record_id):
        async with self._lock:
            return table.pop(record_id, None) is not None


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


# PUBLIC_INTERFACE
class SqlStorage(Storage):
    """
    SQLAlchemy-backed storage.

    Each operation runs in its own transaction on a worker thread. Updates lock
    the target row before merging, so concurrent updates to the same id do not
    lose writes on databases with row locking.
    """

    def __init__(self, session_factory):
        self._session_factory = session_factory

    async def get_user(self, user_id):
        return await asyncio.to_thread(self._get, User, user_id)

    async def get_user_by_username(self, username):
        return await asyncio.to_thread(self._get_user_by_username, username)

    async def create_user(self, username, password):
        return await asyncio.to_thread(self._create_user, username, password)

    async def get_all_diary_entries(self):
        return await asyncio.to_thread(self._get_all, DiaryEntry)

    async def get_diary_entry(self, entry_id):
        return await asyncio.to_thread(self._get, DiaryEntry, entry_id)

    async def create_diary_entry(self, data):
        return await asyncio.to_thread(self._create, DiaryEntry, _writable(data, DIARY_ENTRY_FIELDS))

    async def update_diary_entry(self, entry_id, data):
        return await asyncio.to_thread(self._update, DiaryEntry, entry_id, _writable(data, DIARY_ENTRY_FIELDS))

    async def delete_diary_entry(self, entry_id):
        return await asyncio.to_thread(self._delete, DiaryEntry, entry_id)

    async def search_diary_entries(self, query):
        return await asyncio.to_thread(self._search_diary_entries, query)

    async def get_all_memos(self):
        return await asyncio.to_thread(self._get_all, Memo)

    async def get_memo(self, memo_id):
        return await asyncio.to_thread(self._get, Memo, memo_id)

    async def create_memo(self, data):
        return await asyncio.to_thread(self._create, Memo, _writable(data, MEMO_FIELDS))

    async def update_memo(self, memo_id, data):
        return await asyncio.to_thread(self._update, Memo, memo_id, _writable(data, MEMO_FIELDS))

    async def delete_memo(self, memo_id):
        return await asyncio.to_thread(self._delete, Memo, memo_id)

    def _get_user_by_username(self, username):
        with self._session_factory() as session:
            return session.execute(
                select(User).where(User.username == username)
            ).scalars().first()

    def _create_user(self, username, password):
        user = User(id=_new_id(), username=username, password=password)
        try:
            with self._session_factory() as session, session.begin():
                session.add(user)
        except IntegrityError as exc:
            raise DuplicateUsernameError(username) from exc
        return user

    def _get_all(self, model):
        with self._session_factory() as session:
            return list(session.execute(
                select(model).order_by(model.created_at.desc())
            ).scalars())

    def _get(self, model, record_id):
        with self._session_factory() as session:
            return session.get(model, record_id)

    def _create(self, model, values):
        record = model(id=_new_id(), created_at=_clock.now(), **values)
        with self._session_factory() as session, session.begin():
            session.add(record)
        logger.debug("Created %s %s", model.__tablename__, record.id)
        return record

    def _update(self, model, record_id, values):
        with self._session_factory() as session, session.begin():
            record = session.execute(
                select(model).where(model.id == record_id).with_for_update()
            ).scalar_one_or_none()
            if record is None:
                return None
            for key, value in values.items():
                setattr(record, key, value)
        return record

    def _delete(self, model, record_id):
        with self._session_factory() as session, session.begin():
            result = session.execute(delete(model).where(model.id == record_id))
            return result.rowcount > 0

    def _search_diary_entries(self, query):
        pattern = f"%{_escape_like(query)}%"
        with self._session_factory() as session:
            return list(session.execute(
                select(DiaryEntry)
                .where(or_(
                    DiaryEntry.title.ilike(pattern, escape="\\"),
                    DiaryEntry.content.ilike(pattern, escape="\\"),
                ))
                .order_by(DiaryEntry.created_at.desc())
            ).scalars())


# PUBLIC_INTERFACE
def create_storage(database_url: Optional[str] = None) -> Storage:
    """
    Build the storage backend.
    Uses SQLAlchemy when a database URL is given or DATABASE_URL is set,
    otherwise falls back to the volatile in-memory store.
    """
    database_url = database_url or get_database_url()
    if not database_url:
        logger.info("Using in-memory storage")
        return MemStorage()
    engine = make_engine(database_url)
    Base.metadata.create_all(bind=engine)
    logger.info("Using SQL storage at %s", engine.url.render_as_string(hide_password=True))
    return SqlStorage(make_session_factory(engine))
