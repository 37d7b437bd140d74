"""Data layer for the diary backend: table definitions and storage backends."""

from diary_database.models import Base, DiaryEntry, Memo, User
from diary_database.storage import (
    DuplicateUsernameError,
    MemStorage,
    SqlStorage,
    Storage,
    StorageError,
    create_storage,
)

__all__ = [
    "Base",
    "DiaryEntry",
    "Memo",
    "User",
    "DuplicateUsernameError",
    "MemStorage",
    "SqlStorage",
    "Storage",
    "StorageError",
    "create_storage",
]
