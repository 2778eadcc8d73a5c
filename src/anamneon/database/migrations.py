"""Versioned, idempotent schema migrations run at startup.

Each step knows how to tell whether it still has work to do (``needed``) and
whether the store already has the shape the step produces (``satisfied``).
The runner applies steps in version order, records them in
``schema_version`` and treats a failing step as success when the target
shape is already in place. Rows are copied verbatim; ciphertext is never
decrypted here.
"""

import logging
import sqlite3
from typing import Callable, List, NamedTuple

from .schema import (
    BASE_TABLES,
    DIARY_ENTRIES_TABLE,
    DIARY_ENTRY_COLUMNS,
    DIARY_INDEXES,
    FILES_QUARANTINE_TABLE,
    LEGACY_FILE_TABLES,
    SCHEMA_VERSION_TABLE,
    get_init_schema,
)
from ..core.exceptions import StorageError

logger = logging.getLogger(__name__)


def table_names(conn) -> set:
    rows = conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'").fetchall()
    return {row[0] for row in rows}


def column_names(conn, table: str) -> List[str]:
    return [row[1] for row in conn.execute(f"PRAGMA table_info({table})").fetchall()]


def applied_versions(conn) -> set:
    if "schema_version" not in table_names(conn):
        return set()
    return {row[0] for row in conn.execute("SELECT version FROM schema_version").fetchall()}


# ----------------------------------------------------------------------
# 1: base tables
# ----------------------------------------------------------------------

def _base_needed(conn) -> bool:
    return not set(BASE_TABLES) <= table_names(conn)


def _base_apply(conn) -> None:
    for statement in get_init_schema():
        conn.execute(statement)


# ----------------------------------------------------------------------
# 2: fold media_items / file_items into files
# ----------------------------------------------------------------------

def _legacy_tables(conn) -> List[str]:
    present = table_names(conn)
    return [name for name in LEGACY_FILE_TABLES if name in present]


def _fold_needed(conn) -> bool:
    return bool(_legacy_tables(conn))


def _fold_satisfied(conn) -> bool:
    return not _legacy_tables(conn) and "files" in table_names(conn)


def _fold_apply(conn) -> None:
    conn.execute(FILES_QUARANTINE_TABLE)
    for legacy in _legacy_tables(conn):
        name_column = LEGACY_FILE_TABLES[legacy]
        rows = conn.execute(
            f"SELECT id, user_id, {name_column}, path, type, created_at, metadata FROM {legacy}"
        ).fetchall()

        copied = quarantined = 0
        for row in rows:
            try:
                conn.execute(
                    "INSERT INTO files (id, user_id, name, path, type, created_at, metadata)"
                    " VALUES (?, ?, ?, ?, ?, ?, ?)",
                    tuple(row),
                )
                copied += 1
            except sqlite3.IntegrityError as e:
                conn.execute(
                    "INSERT INTO files_quarantine (source_table, id, user_id, name, path, type,"
                    " created_at, metadata, reason) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (legacy, *tuple(row), str(e)),
                )
                quarantined += 1

        # every row must be in files or quarantine before the source goes
        if copied + quarantined != len(rows):
            raise sqlite3.OperationalError(f"{legacy}: {len(rows)} rows but {copied + quarantined} accounted for")
        if quarantined:
            logger.warning(
                "Folded %d of %d rows from %s; %d moved to files_quarantine",
                copied,
                len(rows),
                legacy,
                quarantined,
            )
        else:
            logger.info("Folded %d rows from %s into files", copied, legacy)
        conn.execute(f"DROP TABLE {legacy}")


# ----------------------------------------------------------------------
# 3: drop obsolete diary_entries columns (rebuild and copy)
# ----------------------------------------------------------------------

def _obsolete_diary_columns(conn) -> List[str]:
    if "diary_entries" not in table_names(conn):
        return []
    return [c for c in column_names(conn, "diary_entries") if c not in DIARY_ENTRY_COLUMNS]


def _rebuild_needed(conn) -> bool:
    return bool(_obsolete_diary_columns(conn))


def _rebuild_satisfied(conn) -> bool:
    return not _obsolete_diary_columns(conn)


def _rebuild_apply(conn) -> None:
    obsolete = _obsolete_diary_columns(conn)
    logger.info("Removing obsolete diary_entries columns: %s", ", ".join(obsolete))

    kept = [c for c in column_names(conn, "diary_entries") if c in DIARY_ENTRY_COLUMNS]
    cols = ", ".join(kept)
    conn.execute("DROP TABLE IF EXISTS diary_entries_new")
    conn.execute(DIARY_ENTRIES_TABLE.replace("diary_entries", "diary_entries_new", 1))
    conn.execute(f"INSERT INTO diary_entries_new ({cols}) SELECT {cols} FROM diary_entries")
    conn.execute("DROP TABLE diary_entries")
    conn.execute("ALTER TABLE diary_entries_new RENAME TO diary_entries")
    for statement in DIARY_INDEXES:
        conn.execute(statement)


class Migration(NamedTuple):
    version: int
    name: str
    needed: Callable
    satisfied: Callable
    apply: Callable


MIGRATIONS = [
    Migration(1, "base tables", _base_needed, lambda conn: not _base_needed(conn), _base_apply),
    Migration(2, "fold legacy media/file tables", _fold_needed, _fold_satisfied, _fold_apply),
    Migration(3, "drop obsolete diary columns", _rebuild_needed, _rebuild_satisfied, _rebuild_apply),
]


def _record(conn, migration: Migration) -> None:
    conn.execute(
        "INSERT OR IGNORE INTO schema_version (version, name) VALUES (?, ?)",
        (migration.version, migration.name),
    )


def apply_migrations(conn, migrations=None) -> List[int]:
    """Bring ``conn`` (an autocommit sqlite3 connection) to the current shape.

    Returns the versions whose ``apply`` actually ran; an up-to-date store
    returns an empty list.
    """
    migrations = sorted(migrations or MIGRATIONS, key=lambda m: m.version)
    conn.execute(SCHEMA_VERSION_TABLE)
    done = applied_versions(conn)
    ran = []

    for migration in migrations:
        if not migration.needed(conn):
            if migration.version not in done:
                _record(conn, migration)
            continue

        logger.info("Applying migration %d (%s)", migration.version, migration.name)
        try:
            conn.execute("BEGIN")
            migration.apply(conn)
            _record(conn, migration)
            conn.execute("COMMIT")
            ran.append(migration.version)
        except sqlite3.Error as e:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            if migration.satisfied(conn):
                # already migrated by an earlier run
                logger.warning("Migration %d failed but target shape matches: %s", migration.version, e)
                _record(conn, migration)
                continue
            raise StorageError(f"Migration {migration.version} ({migration.name}) failed: {e}") from e

    return ran
