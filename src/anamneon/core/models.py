"""
Base data models for accounts, diary entries and file records

Values held by these objects are whatever the caller put there: ciphertext
blobs when read straight from the store, plaintext once the archive layer has
decrypted them in memory.
"""

from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Optional, Dict, Any
import uuid

from .exceptions import ConstraintError


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string (the store's timestamp format)."""
    return datetime.now(timezone.utc).isoformat()


def new_id() -> str:
    return str(uuid.uuid4())


def coerce_enum(enum_cls, value, column):
    """Return `value` as a member of `enum_cls` or raise ConstraintError."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ConstraintError(f"invalid {column} {value!r}; expected one of: {allowed}")


class EntryType(Enum):
    # How a diary entry was captured
    TEXT = "text"
    AUDIO = "audio"


class EntryMode(Enum):
    # Standalone entries stand alone; linked entries annotate a file record
    STANDALONE = "standalone"
    LINKED = "linked"


class FileKind(Enum):
    # Tagged variant over the former media/file split
    PHOTO = "photo"
    VIDEO = "video"
    AUDIO = "audio"
    DOCUMENT = "document"


class FileType(Enum):
    # Stored value of files.type
    PHOTO = "photo"
    VIDEO = "video"
    AUDIO = "audio"
    PDF = "pdf"
    TXT = "txt"
    DOCX = "docx"
    SPREADSHEET = "spreadsheet"

    @property
    def kind(self) -> FileKind:
        if self in (FileType.PHOTO, FileType.VIDEO, FileType.AUDIO):
            return FileKind(self.value)
        return FileKind.DOCUMENT

    @property
    def is_media(self) -> bool:
        return self.kind is not FileKind.DOCUMENT

    @classmethod
    def from_extension(cls, filename) -> "FileType":
        """Guess the type from a filename's extension.

        Raises ``ValueError`` for extensions the archive does not accept.
        """
        ext = Path(filename).suffix.lower().lstrip(".")
        for file_type, extensions in _EXTENSIONS.items():
            if ext in extensions:
                return file_type
        raise ValueError(f"unsupported file extension: {ext!r}")


_EXTENSIONS = {
    FileType.PHOTO: ("jpg", "jpeg", "png", "gif"),
    FileType.VIDEO: ("mp4", "mov", "avi"),
    FileType.AUDIO: ("mp3", "wav", "m4a"),
    FileType.PDF: ("pdf",),
    FileType.TXT: ("txt",),
    FileType.DOCX: ("doc", "docx"),
    FileType.SPREADSHEET: ("xls", "xlsx", "csv", "ods"),
}


class Account:
    """
        A registered user. ``password_hash`` is one-way and never key material.
    """

    __slots__ = ('user_id', 'email', 'password_hash', 'name', 'created_at')

    def __init__(self, user_id=None, email="", password_hash="", name=None, created_at=None):
        self.user_id = user_id if user_id is not None else new_id()
        self.email = email
        self.password_hash = password_hash
        self.name = name
        self.created_at = created_at if created_at is not None else utc_now_iso()

    def to_public_dict(self):
        """Profile view handed to the UI; the hash never leaves the core."""
        return {
            'id': self.user_id,
            'email': self.email,
            'name': self.name,
            'created_at': self.created_at,
        }

    def __repr__(self):
        return f"Account(user_id={self.user_id!r}, email={self.email!r})"


def account_from_row(row):
    return Account(
        user_id=row['id'],
        email=row['email'],
        password_hash=row['password_hash'],
        name=row.get('name'),
        created_at=row['created_at'],
    )


class DiaryEntry:
    """
        A diary entry. ``title``/``content`` are ciphertext at rest.
    """

    __slots__ = (
        'entry_id',
        'user_id',
        'title',
        'content',
        'entry_type',
        'entry_mode',
        'linked_item_id',
        'created_at',
        'updated_at',
        'decryption_failed',
    )

    def __init__(
        self,
        entry_id=None,
        user_id="",
        title="",
        content="",
        entry_type=EntryType.TEXT,
        entry_mode=EntryMode.STANDALONE,
        linked_item_id=None,
        created_at=None,
        updated_at=None,
        decryption_failed=False,
    ):
        now = utc_now_iso()
        self.entry_id = entry_id if entry_id is not None else new_id()
        self.user_id = user_id
        self.title = title
        self.content = content
        self.entry_type = coerce_enum(EntryType, entry_type, "type")
        self.entry_mode = coerce_enum(EntryMode, entry_mode, "entry_mode")
        self.linked_item_id = linked_item_id
        self.created_at = created_at if created_at is not None else now
        self.updated_at = updated_at if updated_at is not None else self.created_at
        self.decryption_failed = decryption_failed

    def copy_with(self, **changes):
        """Return a copy with some fields replaced (used to swap plaintext/ciphertext)."""
        values = {name: getattr(self, name) for name in self.__slots__}
        values.update(changes)
        return DiaryEntry(**values)

    def to_dict(self):
        return {
            'id': self.entry_id,
            'user_id': self.user_id,
            'title': self.title,
            'content': self.content,
            'type': self.entry_type.value,
            'entry_mode': self.entry_mode.value,
            'linked_item_id': self.linked_item_id,
            'created_at': self.created_at,
            'updated_at': self.updated_at,
            'decryption_failed': self.decryption_failed,
        }

    def __repr__(self):
        return f"DiaryEntry(entry_id={self.entry_id!r}, user_id={self.user_id!r})"

    def __eq__(self, other):
        if not isinstance(other, DiaryEntry):
            return NotImplemented
        return self.entry_id == other.entry_id

    def __hash__(self):
        return hash(self.entry_id)


def diary_entry_from_dict(data):
    """
        Build an entry from a UI payload or a DB row (both use snake_case keys)
    """
    return DiaryEntry(
        entry_id=data.get('id'),
        user_id=data.get('user_id', ''),
        title=data.get('title', ''),
        content=data.get('content', ''),
        entry_type=data.get('type') or EntryType.TEXT,
        entry_mode=data.get('entry_mode') or EntryMode.STANDALONE,
        linked_item_id=data.get('linked_item_id') or None,
        created_at=data.get('created_at'),
        updated_at=data.get('updated_at'),
    )


class FileRecord:
    """
        An uploaded file. ``path`` points at the encrypted body and
        ``metadata['title']`` is ciphertext at rest.
    """

    __slots__ = ('file_id', 'user_id', 'name', 'path', 'file_type', 'created_at', 'metadata', 'decryption_failed')

    def __init__(
        self,
        file_id=None,
        user_id="",
        name="",
        path="",
        file_type=FileType.PHOTO,
        created_at=None,
        metadata: Optional[Dict[str, Any]] = None,
        decryption_failed=False,
    ):
        self.file_id = file_id if file_id is not None else new_id()
        self.user_id = user_id
        self.name = name
        self.path = str(path)
        self.file_type = coerce_enum(FileType, file_type, "type")
        self.created_at = created_at if created_at is not None else utc_now_iso()
        self.metadata = dict(metadata) if metadata else {}
        self.decryption_failed = decryption_failed

    @property
    def kind(self) -> FileKind:
        return self.file_type.kind

    @property
    def title(self):
        return self.metadata.get('title')

    def copy_with(self, **changes):
        values = {name: getattr(self, name) for name in self.__slots__}
        values.update(changes)
        return FileRecord(**values)

    def to_dict(self):
        return {
            'id': self.file_id,
            'user_id': self.user_id,
            'name': self.name,
            'path': self.path,
            'type': self.file_type.value,
            'kind': self.kind.value,
            'created_at': self.created_at,
            'metadata': dict(self.metadata),
            'decryption_failed': self.decryption_failed,
        }

    def __repr__(self):
        return f"FileRecord(file_id={self.file_id!r}, name={self.name!r})"

    def __eq__(self, other):
        if not isinstance(other, FileRecord):
            return NotImplemented
        return self.file_id == other.file_id

    def __hash__(self):
        return hash(self.file_id)
