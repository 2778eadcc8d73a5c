"""ORM-style helpers for database operations.

The models move opaque values in and out of SQLite. Encrypted fields are just
strings to them; validation covers enum columns and uniqueness only.
"""

import json
import logging
import sqlite3

from .connection import DatabaseConnection
from ..core.models import (
    Account,
    DiaryEntry,
    EntryMode,
    EntryType,
    FileKind,
    FileRecord,
    FileType,
    account_from_row,
    coerce_enum,
    utc_now_iso,
)
from ..core.exceptions import ConstraintError, RecordNotFoundError

logger = logging.getLogger(__name__)


class BaseModel:
    """Base class for DB models."""

    __slots__ = ("db",)

    def __init__(self, db: DatabaseConnection):
        """Initialize with a DatabaseConnection."""
        self.db = db

    def _serialize_json(self, data):
        """Serialize Python data to JSON string."""
        return json.dumps(data, ensure_ascii=False) if data else None

    def _write(self, query, params):
        try:
            return self.db.execute(query, params)
        except sqlite3.IntegrityError as e:
            raise ConstraintError(str(e)) from e


class AccountModel(BaseModel):
    """DB model for accounts."""

    def create(self, account: Account):
        """Insert an account; a duplicate email raises ConstraintError."""
        if self.get_by_email(account.email):
            raise ConstraintError("an account with this email already exists")

        query = """
            INSERT INTO users (id, email, password_hash, name, created_at)
            VALUES (?, ?, ?, ?, ?)
        """
        self._write(
            query,
            (account.user_id, account.email, account.password_hash, account.name, account.created_at),
        )
        return self.get(account.user_id)

    def get(self, user_id):
        """Get account by ID."""
        row = self.db.fetch_one("SELECT * FROM users WHERE id = ?", (user_id,))
        return account_from_row(row) if row else None

    def get_by_email(self, email):
        """Get account by email."""
        row = self.db.fetch_one("SELECT * FROM users WHERE email = ?", (email,))
        return account_from_row(row) if row else None

    def update_name(self, user_id, name):
        self._write("UPDATE users SET name = ? WHERE id = ?", (name or None, user_id))
        return True

    def update_password_hash(self, user_id, password_hash):
        self._write("UPDATE users SET password_hash = ? WHERE id = ?", (password_hash, user_id))
        return True


def row_to_diary_entry(row):
    """Convert a diary_entries row (ciphertext fields untouched) to a DiaryEntry."""
    return DiaryEntry(
        entry_id=row["id"],
        user_id=row["user_id"],
        title=row["title"],
        content=row["content"],
        entry_type=row["type"],
        entry_mode=row.get("entry_mode") or EntryMode.STANDALONE,
        linked_item_id=row.get("linked_item_id") or None,
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class DiaryEntryModel(BaseModel):
    """DB model for diary entries."""

    def create(self, entry: DiaryEntry):
        """Insert an entry whose title/content are already encrypted."""
        entry_type = coerce_enum(EntryType, entry.entry_type, "type")
        entry_mode = coerce_enum(EntryMode, entry.entry_mode, "entry_mode")

        query = """
            INSERT INTO diary_entries (id, user_id, title, content, type, entry_mode,
                                       linked_item_id, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """
        params = (
            entry.entry_id,
            entry.user_id,
            entry.title,
            entry.content,
            entry_type.value,
            entry_mode.value,
            entry.linked_item_id,
            entry.created_at,
            entry.updated_at,
        )
        self._write(query, params)
        return entry.entry_id

    def update(self, entry: DiaryEntry, touch=True):
        """Overwrite title/content/mode/link/created_at of an existing entry."""
        entry_mode = coerce_enum(EntryMode, entry.entry_mode, "entry_mode")
        updated_at = utc_now_iso() if touch else entry.updated_at

        query = """
            UPDATE diary_entries SET
                title = ?,
                content = ?,
                entry_mode = ?,
                linked_item_id = ?,
                created_at = ?,
                updated_at = ?
            WHERE id = ? AND user_id = ?
        """
        params = (
            entry.title,
            entry.content,
            entry_mode.value,
            entry.linked_item_id,
            entry.created_at,
            updated_at,
            entry.entry_id,
            entry.user_id,
        )
        if not self._write(query, params):
            raise RecordNotFoundError(f"diary entry {entry.entry_id} not found")
        return updated_at

    def get(self, entry_id, user_id):
        row = self.db.fetch_one(
            "SELECT * FROM diary_entries WHERE id = ? AND user_id = ?", (entry_id, user_id)
        )
        return row_to_diary_entry(row) if row else None

    def list_by_user(self, user_id):
        """List a user's entries, newest first."""
        query = "SELECT * FROM diary_entries WHERE user_id = ? ORDER BY created_at DESC"
        return [row_to_diary_entry(row) for row in self.db.fetch_all(query, (user_id,))]

    def delete(self, entry_id, user_id):
        query = "DELETE FROM diary_entries WHERE id = ? AND user_id = ?"
        if not self.db.execute(query, (entry_id, user_id)):
            raise RecordNotFoundError(f"diary entry {entry_id} not found")
        return True


def row_to_file_record(row):
    """Convert a files row to a FileRecord; unreadable metadata becomes {}."""
    try:
        metadata = json.loads(row["metadata"]) if row.get("metadata") else {}
    except ValueError:
        logger.warning("File record %s has unreadable metadata", row["id"])
        metadata = {}
    if not isinstance(metadata, dict):
        metadata = {}

    return FileRecord(
        file_id=row["id"],
        user_id=row["user_id"],
        name=row["name"],
        path=row["path"],
        file_type=row["type"],
        created_at=row["created_at"],
        metadata=metadata,
    )


class FileRecordModel(BaseModel):
    """DB model for the unified files table."""

    def create(self, record: FileRecord):
        file_type = coerce_enum(FileType, record.file_type, "type")
        metadata = dict(record.metadata)
        metadata.setdefault("uploadedAt", utc_now_iso())

        query = """
            INSERT INTO files (id, user_id, name, path, type, created_at, metadata)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """
        params = (
            record.file_id,
            record.user_id,
            record.name,
            record.path,
            file_type.value,
            record.created_at,
            self._serialize_json(metadata),
        )
        self._write(query, params)
        return record.file_id

    def get(self, file_id, user_id):
        row = self.db.fetch_one("SELECT * FROM files WHERE id = ? AND user_id = ?", (file_id, user_id))
        return row_to_file_record(row) if row else None

    def get_by_path(self, path, user_id):
        row = self.db.fetch_one(
            "SELECT * FROM files WHERE path = ? AND user_id = ?", (str(path), user_id)
        )
        return row_to_file_record(row) if row else None

    def list_by_user(self, user_id, kind=None):
        """List a user's files, newest first, optionally filtered by FileKind."""
        query = "SELECT * FROM files WHERE user_id = ? ORDER BY created_at DESC"
        records = [row_to_file_record(row) for row in self.db.fetch_all(query, (user_id,))]
        if kind is not None:
            kind = coerce_enum(FileKind, kind, "kind")
            records = [r for r in records if r.kind is kind]
        return records

    def update_metadata(self, file_id, user_id, metadata):
        query = "UPDATE files SET metadata = ? WHERE id = ? AND user_id = ?"
        if not self._write(query, (self._serialize_json(metadata), file_id, user_id)):
            raise RecordNotFoundError(f"file record {file_id} not found")
        return True

    def update_created_at(self, file_id, user_id, created_at):
        query = "UPDATE files SET created_at = ? WHERE id = ? AND user_id = ?"
        if not self._write(query, (created_at, file_id, user_id)):
            raise RecordNotFoundError(f"file record {file_id} not found")
        return True

    def delete(self, file_id, user_id):
        query = "DELETE FROM files WHERE id = ? AND user_id = ?"
        if not self.db.execute(query, (file_id, user_id)):
            raise RecordNotFoundError(f"file record {file_id} not found")
        return True
