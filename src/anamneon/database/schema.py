"""SQLite schema definitions for the Anamneon record store.

Only ciphertext blobs and non-secret bookkeeping columns are stored here; the
store never sees passwords or keys.
"""

# Highest migration version in anamneon.database.migrations
SCHEMA_VERSION = 3

ENTRY_TYPES = ("text", "audio")
ENTRY_MODES = ("standalone", "linked")
FILE_TYPES = ("photo", "video", "audio", "pdf", "txt", "docx", "spreadsheet")


def _in_list(values):
    return ", ".join(f"'{v}'" for v in values)


USERS_TABLE = """
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        email TEXT UNIQUE NOT NULL,
        password_hash TEXT NOT NULL,
        name TEXT,
        created_at TEXT NOT NULL
    )
"""

# title/content hold salt:iv:tag:ciphertext blobs
DIARY_ENTRIES_TABLE = f"""
    CREATE TABLE IF NOT EXISTS diary_entries (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        title TEXT NOT NULL,
        content TEXT NOT NULL,
        type TEXT CHECK(type IN ({_in_list(ENTRY_TYPES)})) NOT NULL,
        entry_mode TEXT CHECK(entry_mode IN ({_in_list(ENTRY_MODES)})) DEFAULT 'standalone' NOT NULL,
        linked_item_id TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
    )
"""

DIARY_ENTRY_COLUMNS = (
    "id",
    "user_id",
    "title",
    "content",
    "type",
    "entry_mode",
    "linked_item_id",
    "created_at",
    "updated_at",
)

# Unified media + document table; path points at the .enc body and
# metadata is JSON whose "title" is a ciphertext blob
FILES_TABLE = f"""
    CREATE TABLE IF NOT EXISTS files (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        name TEXT NOT NULL,
        path TEXT NOT NULL,
        type TEXT CHECK(type IN ({_in_list(FILE_TYPES)})) NOT NULL,
        created_at TEXT NOT NULL,
        metadata TEXT,
        FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
    )
"""

SCHEMA_VERSION_TABLE = """
    CREATE TABLE IF NOT EXISTS schema_version (
        version INTEGER PRIMARY KEY,
        name TEXT,
        applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
"""

CREATE_TABLES = [
    USERS_TABLE,
    DIARY_ENTRIES_TABLE,
    FILES_TABLE,
]

DIARY_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_diary_entries_user_id ON diary_entries(user_id)",
    "CREATE INDEX IF NOT EXISTS idx_diary_entries_created_at ON diary_entries(created_at)",
]

FILE_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_files_user_id ON files(user_id)",
    "CREATE INDEX IF NOT EXISTS idx_files_created_at ON files(created_at)",
]

CREATE_INDEXES = DIARY_INDEXES + FILE_INDEXES

BASE_TABLES = ("users", "diary_entries", "files")

# Legacy rows the files table rejects (bad type, missing name, unknown user,
# duplicate id) are parked here verbatim instead of being lost
FILES_QUARANTINE_TABLE = """
    CREATE TABLE IF NOT EXISTS files_quarantine (
        source_table TEXT NOT NULL,
        id TEXT,
        user_id TEXT,
        name TEXT,
        path TEXT,
        type TEXT,
        created_at TEXT,
        metadata TEXT,
        reason TEXT
    )
"""

# Tables from before media and documents were unified
LEGACY_FILE_TABLES = {
    # legacy table -> column that becomes files.name
    "media_items": "title",
    "file_items": "name",
}


def get_init_schema():
    """
    Get the statements creating the current tables and indexes

    Returns:
        List of SQL statements to execute
    """
    statements = []
    statements.extend(CREATE_TABLES)
    statements.extend(CREATE_INDEXES)
    return statements
