"""Contract tests run against every storage backend."""

import asyncio
from datetime import datetime, timezone

import pytest
from sqlalchemy.exc import IntegrityError

from diary_database.db import is_memory_sqlite
from diary_database.storage import DuplicateUsernameError, MemStorage, SqlStorage, create_storage


def entry(title="Day 1", content="Good day", emotion="😊"):
    return {"title": title, "content": content, "emotion": emotion}


@pytest.mark.asyncio
async def test_create_assigns_fresh_id_and_timestamp(storage):
    started = datetime.now(timezone.utc)
    first = await storage.create_diary_entry(entry())
    second = await storage.create_diary_entry(entry())

    assert first.id and second.id
    assert first.id != second.id
    assert first.created_at >= started
    assert second.created_at > first.created_at
    assert (first.title, first.content, first.emotion) == ("Day 1", "Good day", "😊")


@pytest.mark.asyncio
async def test_create_ignores_client_supplied_id_and_timestamp(storage):
    data = entry()
    data.update(id="chosen", created_at=datetime(2000, 1, 1, tzinfo=timezone.utc))
    created = await storage.create_diary_entry(data)
    assert created.id != "chosen"
    assert created.created_at.year != 2000


@pytest.mark.asyncio
async def test_get_all_newest_first(storage):
    for i in range(5):
        await storage.create_diary_entry(entry(title=f"entry-{i}"))
    entries = await storage.get_all_diary_entries()
    assert [e.title for e in entries] == [f"entry-{i}" for i in reversed(range(5))]


@pytest.mark.asyncio
async def test_get_missing_is_none(storage):
    assert await storage.get_diary_entry("missing") is None
    assert await storage.get_memo("missing") is None
    assert await storage.get_user("missing") is None


@pytest.mark.asyncio
async def test_update_changes_only_given_field(storage):
    created = await storage.create_diary_entry(entry())
    updated = await storage.update_diary_entry(created.id, {"content": "Better day"})

    assert updated.content == "Better day"
    assert updated.title == "Day 1"
    assert updated.emotion == "😊"
    assert updated.id == created.id

    fetched = await storage.get_diary_entry(created.id)
    assert fetched.content == "Better day"
    assert fetched.created_at.replace(tzinfo=None) == created.created_at.replace(tzinfo=None)


@pytest.mark.asyncio
async def test_update_never_touches_id_or_created_at(storage):
    created = await storage.create_diary_entry(entry())
    await storage.update_diary_entry(
        created.id, {"id": "hijack", "created_at": datetime(2000, 1, 1), "title": "New"}
    )
    assert await storage.get_diary_entry("hijack") is None
    fetched = await storage.get_diary_entry(created.id)
    assert fetched.title == "New"
    assert fetched.created_at.year != 2000


@pytest.mark.asyncio
async def test_update_missing_is_none(storage):
    assert await storage.update_diary_entry("missing", {"title": "x"}) is None
    assert await storage.update_memo("missing", {"content": "x"}) is None


@pytest.mark.asyncio
async def test_delete_true_exactly_once(storage):
    created = await storage.create_diary_entry(entry())
    assert await storage.delete_diary_entry(created.id) is True
    assert await storage.delete_diary_entry(created.id) is False
    assert await storage.get_diary_entry(created.id) is None
    assert await storage.get_all_diary_entries() == []


@pytest.mark.asyncio
async def test_search_matches_title_or_content_ignoring_case(storage):
    await storage.create_diary_entry(entry(title="Hello World", content="sunny"))
    await storage.create_diary_entry(entry(title="Evening", content="hello there"))
    await storage.create_diary_entry(entry(title="Work", content="meetings"))

    results = await storage.search_diary_entries("HELLO")
    assert [e.title for e in results] == ["Evening", "Hello World"]


@pytest.mark.asyncio
@pytest.mark.parametrize("titles, query, expected", [
    (["100% done", "1000 steps"], "0%", ["100% done"]),
    (["snake_case", "snakeXcase"], "e_c", ["snake_case"]),
    (["C:\\temp", "C:temp"], ":\\t", ["C:\\temp"]),
])
async def test_search_treats_wildcards_literally(storage, titles, query, expected):
    for title in titles:
        await storage.create_diary_entry(entry(title=title))
    results = await storage.search_diary_entries(query)
    assert [e.title for e in results] == expected


@pytest.mark.asyncio
async def test_memo_lifecycle(storage):
    first = await storage.create_memo({"content": "one"})
    second = await storage.create_memo({"content": "two"})
    assert [m.content for m in await storage.get_all_memos()] == ["two", "one"]

    updated = await storage.update_memo(first.id, {"content": "uno"})
    assert updated.content == "uno"
    assert updated.id == first.id

    assert await storage.delete_memo(second.id) is True
    assert await storage.delete_memo(second.id) is False
    assert [m.content for m in await storage.get_all_memos()] == ["uno"]


@pytest.mark.asyncio
async def test_collections_are_independent(storage):
    memo = await storage.create_memo({"content": "shared"})
    assert await storage.get_diary_entry(memo.id) is None
    assert await storage.delete_diary_entry(memo.id) is False
    assert await storage.get_memo(memo.id) is not None


@pytest.mark.asyncio
async def test_users(storage):
    user = await storage.create_user("alice", "secret")
    assert user.id
    assert user.password == "secret"
    assert (await storage.get_user(user.id)).username == "alice"
    assert (await storage.get_user_by_username("alice")).id == user.id
    assert await storage.get_user_by_username("bob") is None


@pytest.mark.asyncio
async def test_duplicate_username_rejected(storage):
    await storage.create_user("alice", "secret")
    with pytest.raises(DuplicateUsernameError):
        await storage.create_user("alice", "other")


@pytest.mark.asyncio
async def test_sql_duplicate_username_keeps_integrity_error_as_cause(sql_storage):
    await sql_storage.create_user("alice", "secret")
    with pytest.raises(DuplicateUsernameError) as excinfo:
        await sql_storage.create_user("alice", "other")
    assert isinstance(excinfo.value.__cause__, IntegrityError)


@pytest.mark.asyncio
async def test_concurrent_updates_to_one_entry_all_apply(mem_storage):
    created = await mem_storage.create_diary_entry(entry())
    await asyncio.gather(
        mem_storage.update_diary_entry(created.id, {"title": "A"}),
        mem_storage.update_diary_entry(created.id, {"content": "B"}),
        mem_storage.update_diary_entry(created.id, {"emotion": "😢"}),
    )
    fetched = await mem_storage.get_diary_entry(created.id)
    assert (fetched.title, fetched.content, fetched.emotion) == ("A", "B", "😢")


@pytest.mark.asyncio
async def test_mem_storage_hands_out_copies(mem_storage):
    created = await mem_storage.create_diary_entry(entry())
    created.title = "mutated"
    fetched = await mem_storage.get_diary_entry(created.id)
    assert fetched.title == "Day 1"


def test_create_storage_defaults_to_memory(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setattr("diary_database.storage.get_database_url", lambda: None)
    assert isinstance(create_storage(), MemStorage)


@pytest.mark.asyncio
async def test_create_storage_with_in_memory_sqlite_url():
    storage = create_storage("sqlite://")
    assert isinstance(storage, SqlStorage)

    created = await storage.create_diary_entry(entry())
    fetched = await storage.get_diary_entry(created.id)
    assert fetched.title == "Day 1"
    assert [e.id for e in await storage.get_all_diary_entries()] == [created.id]

    memo = await storage.create_memo({"content": "note"})
    updated = await storage.update_memo(memo.id, {"content": "note 2"})
    assert updated.content == "note 2"
    assert await storage.delete_memo(memo.id) is True


@pytest.mark.asyncio
async def test_create_storage_with_sqlite_file_url(tmp_path):
    url = f"sqlite:///{tmp_path / 'diary.db'}"
    created = await create_storage(url).create_memo({"content": "kept"})
    reopened = create_storage(url)
    assert (await reopened.get_memo(created.id)).content == "kept"


@pytest.mark.parametrize("url, expected", [
    ("sqlite://", True),
    ("sqlite:///:memory:", True),
    ("sqlite:///diary.db", False),
    ("postgresql://user:pw@localhost/diary", False),
])
def test_is_memory_sqlite(url, expected):
    assert is_memory_sqlite(url) is expected
