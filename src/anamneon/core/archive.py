"""
Archive: the request handlers the desktop shell calls into.

Every method is a coroutine. Key derivation and file streaming run on the
CryptoWorker pool; SQLite access stays on the calling thread. The store only
ever receives ciphertext; plaintext exists in the returned objects and, for
``open_file`` and ``export_all``, in files the caller asked for.

Auth handlers return ``{"success", "token"?, "error"?}`` dicts with generic
error text. Everything else raises from :mod:`anamneon.core.exceptions`;
listing and export isolate per-item decryption failures instead of raising.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import contextlib
import logging
import os
import re
import shutil
import sqlite3
import tempfile
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, List, Optional

from .exceptions import (
    AnamneonError,
    AuthenticationError,
    ConstraintError,
    FormatError,
    RecordNotFoundError,
    UserNotFoundError,
)
from .export import ExportWriter
from .models import (
    Account,
    DiaryEntry,
    EntryMode,
    FileRecord,
    FileType,
    coerce_enum,
    diary_entry_from_dict,
    utc_now_iso,
)
from ..config import ArchiveConfig
from ..database.connection import DatabaseConnection
from ..database.models import AccountModel, DiaryEntryModel, FileRecordModel
from ..security.crypto import encrypted_path_for, plain_name
from ..security.session import InMemoryKeyStore, KeyStore
from ..security.worker import CryptoWorker

logger = logging.getLogger(__name__)

DECRYPTION_PLACEHOLDER = "[decryption failed]"
CONTENT_PLACEHOLDER = "[content could not be decrypted]"
AUTH_FAILED_MESSAGE = "Invalid email or password"
REGISTER_EXISTS_MESSAGE = "An account with this email already exists"
BACKUP_SUFFIX = ".anm"
REKEY_STAGING_SUFFIX = ".rekey"
REKEY_BACKUP_SUFFIX = ".bak"

# Verified against when the email is unknown so both paths cost one PBKDF2 run
_UNKNOWN_USER_HASH = "0" * 32 + ":" + "0" * 128

_DATA_URL_PREFIX = re.compile(r"^data:image/[\w.+-]+;base64,")

# Errors that mean "this one item cannot be decrypted"
_ITEM_ERRORS = (AuthenticationError, FormatError)


class Archive:
    """High-level encrypted archive operations over the record store."""

    def __init__(
        self,
        config: ArchiveConfig,
        keystore: Optional[KeyStore] = None,
        worker: Optional[CryptoWorker] = None,
        opener: Optional[Callable[[Path], None]] = None,
    ):
        self.config = config
        self.db = DatabaseConnection(config.db_path)
        self.keys = keystore if keystore is not None else InMemoryKeyStore(ttl_seconds=config.session_ttl)
        self.worker = worker or CryptoWorker(config.crypto_workers, config.crypto_timeout)
        self.opener = opener

        self.accounts = AccountModel(self.db)
        self.diary = DiaryEntryModel(self.db)
        self.files = FileRecordModel(self.db)

        self._temp_dir: Optional[Path] = None
        self._temp_files: Dict[Path, asyncio.TimerHandle] = {}

    def initialize(self) -> None:
        """Open (and migrate) the store and create the media directory."""
        self.db.initialize()
        self.config.media_dir.mkdir(parents=True, exist_ok=True)

    async def __aenter__(self):
        self.initialize()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.shutdown()

    # ------------------------------------------------------------------
    # Accounts and sessions
    # ------------------------------------------------------------------

    async def register(self, email: str, password: str, name: Optional[str] = None) -> Dict:
        email = (email or "").strip()
        if not email or not password:
            return {"success": False, "error": "Email and password are required"}

        try:
            if self.accounts.get_by_email(email):
                return {"success": False, "error": REGISTER_EXISTS_MESSAGE}

            password_hash = await self.worker.hash_password(password)
            account = self.accounts.create(Account(email=email, password_hash=password_hash, name=name))
        except ConstraintError:
            return {"success": False, "error": REGISTER_EXISTS_MESSAGE}
        except (AnamneonError, sqlite3.Error):
            logger.exception("Registration failed")
            return {"success": False, "error": "Registration failed"}

        self.keys.set_key(account.user_id, password)
        logger.info("Registered user %s", account.user_id)
        return {"success": True, "token": account.user_id}

    async def login(self, email: str, password: str) -> Dict:
        try:
            account = self.accounts.get_by_email((email or "").strip())
            stored = account.password_hash if account else _UNKNOWN_USER_HASH
            verified = await self.worker.verify_password(password or "", stored)
        except (AnamneonError, sqlite3.Error):
            logger.exception("Login failed")
            return {"success": False, "error": "Login failed"}

        if account is None or not verified:
            return {"success": False, "error": AUTH_FAILED_MESSAGE}

        self.keys.set_key(account.user_id, password)
        logger.info("User %s logged in", account.user_id)
        return {"success": True, "token": account.user_id}

    async def logout(self, user_id: str) -> Dict:
        if user_id:
            self.keys.clear_key(user_id)
            logger.info("User %s logged out", user_id)
        return {"success": True}

    async def verify_token(self, token: str) -> bool:
        """A token is valid while its account exists and its session key is cached."""
        if not token or not self.keys.has_key(token):
            return False
        return self.accounts.get(token) is not None

    async def get_user(self, user_id: str) -> Optional[Dict]:
        account = self.accounts.get(user_id)
        return account.to_public_dict() if account else None

    async def update_user(
        self,
        user_id: str,
        name: Optional[str] = None,
        current_password: Optional[str] = None,
        new_password: Optional[str] = None,
    ) -> Dict:
        """Update the display name and/or change the password.

        A password change re-encrypts every diary field, file title and file
        body of the user under the new password before the stored hash is
        replaced, so existing data stays readable.
        """
        account = self.accounts.get(user_id)
        if account is None:
            return {"success": False, "error": "User not found"}

        if new_password:
            if not current_password or not await self.worker.verify_password(
                current_password, account.password_hash
            ):
                return {"success": False, "error": AUTH_FAILED_MESSAGE}
            await self._rekey(user_id, current_password, new_password)
            self.keys.set_key(user_id, new_password)

        if name is not None:
            self.accounts.update_name(user_id, name)
        return {"success": True}

    async def _rekey(self, user_id: str, old: str, new: str) -> None:
        entries = self.diary.list_by_user(user_id)
        records = self.files.list_by_user(user_id)

        resealed_entries = []
        for entry in entries:
            try:
                title = await self.worker.decrypt_text(entry.title, old)
                content = await self.worker.decrypt_text(entry.content, old)
            except _ITEM_ERRORS as e:
                logger.warning("Diary entry %s left as-is during password change: %s", entry.entry_id, e)
                continue
            resealed_entries.append(
                entry.copy_with(
                    title=await self.worker.encrypt_text(title, new),
                    content=await self.worker.encrypt_text(content, new),
                )
            )

        resealed_records = []
        staged: Dict[Path, Path] = {}
        swapped: Dict[Path, Path] = {}
        try:
            for record in records:
                metadata = dict(record.metadata)
                try:
                    if record.title is not None:
                        title = await self.worker.decrypt_text(record.title, old)
                        metadata["title"] = await self.worker.encrypt_text(title, new)
                    body = Path(record.path)
                    if body.exists():
                        staging = body.with_name(body.name + REKEY_STAGING_SUFFIX)
                        plain = self._new_temp_path(plain_name(body))
                        try:
                            await self.worker.decrypt_file(body, plain, old)
                            await self.worker.encrypt_file(plain, staging, new)
                        finally:
                            with contextlib.suppress(FileNotFoundError):
                                plain.unlink()
                        staged[body] = staging
                except _ITEM_ERRORS as e:
                    logger.warning("File record %s left as-is during password change: %s", record.file_id, e)
                    continue
                resealed_records.append((record, metadata))

            photo = self._profile_photo_path(user_id)
            if photo.exists():
                try:
                    data = await self.worker.decrypt_bytes(photo, old)
                    staging = photo.with_name(photo.name + REKEY_STAGING_SUFFIX)
                    await self.worker.encrypt_bytes(data, staging, new)
                    staged[photo] = staging
                except _ITEM_ERRORS as e:
                    logger.warning("Profile photo of user %s left as-is during password change: %s", user_id, e)

            password_hash = await self.worker.hash_password(new)

            # bodies are swapped before the hash commits; the .bak copies stay
            # readable with the old password until the commit succeeds
            for body, staging in staged.items():
                backup = body.with_name(body.name + REKEY_BACKUP_SUFFIX)
                os.replace(body, backup)
                swapped[body] = backup
                os.replace(staging, body)
                logger.info("Re-encrypted body %s, previous copy kept at %s", body.name, backup.name)

            with self.db.get_transaction_context():
                for entry in resealed_entries:
                    self.diary.update(entry, touch=False)
                for record, metadata in resealed_records:
                    self.files.update_metadata(record.file_id, user_id, metadata)
                self.accounts.update_password_hash(user_id, password_hash)
        except BaseException:
            for body, backup in swapped.items():
                os.replace(backup, body)
            for staging in staged.values():
                with contextlib.suppress(FileNotFoundError):
                    staging.unlink()
            raise

        for backup in swapped.values():
            with contextlib.suppress(FileNotFoundError):
                backup.unlink()
        logger.info(
            "Re-encrypted %d entries and %d files for user %s",
            len(resealed_entries),
            len(resealed_records),
            user_id,
        )

    # ------------------------------------------------------------------
    # Diary entries
    # ------------------------------------------------------------------

    def _check_link(self, entry: DiaryEntry) -> None:
        if entry.entry_mode is EntryMode.LINKED and not entry.linked_item_id:
            raise ConstraintError("a linked diary entry needs linked_item_id")

    async def save_diary_entry(self, entry, user_id: str) -> str:
        """Encrypt title/content and insert the entry; returns its id."""
        password = self.keys.require_key(user_id)
        if isinstance(entry, dict):
            entry = diary_entry_from_dict(entry)
        self._check_link(entry)

        title, content = await asyncio.gather(
            self.worker.encrypt_text(entry.title or "", password),
            self.worker.encrypt_text(entry.content or "", password),
        )
        entry_id = self.diary.create(entry.copy_with(user_id=user_id, title=title, content=content))
        logger.info("Saved diary entry %s for user %s", entry_id, user_id)
        return entry_id

    async def update_diary_entry(self, entry_id: str, changes, user_id: str) -> None:
        """Re-encrypt and overwrite an entry. ``changes`` is a DiaryEntry or a
        dict carrying title, content, entry_mode, linked_item_id and created_at."""
        password = self.keys.require_key(user_id)
        if isinstance(changes, DiaryEntry):
            changes = changes.to_dict()
        current = self.diary.get(entry_id, user_id)
        if current is None:
            raise RecordNotFoundError(f"diary entry {entry_id} not found")

        updated = current.copy_with(
            entry_mode=coerce_enum(EntryMode, changes.get("entry_mode") or current.entry_mode, "entry_mode"),
            linked_item_id=changes.get("linked_item_id", current.linked_item_id),
            created_at=changes.get("created_at") or current.created_at,
        )
        self._check_link(updated)

        # absent fields keep their stored plaintext
        plain = {}
        for field in ("title", "content"):
            if changes.get(field) is not None:
                plain[field] = changes[field]
            else:
                plain[field] = await self.worker.decrypt_text(getattr(current, field), password)

        title, content = await asyncio.gather(
            self.worker.encrypt_text(plain["title"], password),
            self.worker.encrypt_text(plain["content"], password),
        )
        self.diary.update(updated.copy_with(title=title, content=content))

    async def delete_diary_entry(self, entry_id: str, user_id: str) -> None:
        self.keys.require_key(user_id)
        self.diary.delete(entry_id, user_id)

    async def _open_entry(self, entry: DiaryEntry, password: str) -> DiaryEntry:
        try:
            title, content = await asyncio.gather(
                self.worker.decrypt_text(entry.title, password),
                self.worker.decrypt_text(entry.content, password),
            )
        except _ITEM_ERRORS as e:
            logger.error("Error decrypting diary entry %s: %s", entry.entry_id, type(e).__name__)
            return entry.copy_with(
                title=DECRYPTION_PLACEHOLDER,
                content=CONTENT_PLACEHOLDER,
                decryption_failed=True,
            )
        return entry.copy_with(title=title, content=content)

    async def get_diary_entries(self, user_id: str) -> List[DiaryEntry]:
        """All of a user's entries, newest first, decrypted in memory."""
        password = self.keys.require_key(user_id)
        entries = self.diary.list_by_user(user_id)
        return list(await asyncio.gather(*(self._open_entry(e, password) for e in entries)))

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    async def upload_file(
        self,
        raw_file_path,
        file_type,
        user_id: str,
        title: Optional[str] = None,
    ) -> FileRecord:
        """Encrypt an uploaded file into the media directory and record it.

        The plaintext original is deleted once the encrypted body and the
        record exist. ``file_type`` None guesses from the extension.
        """
        password = self.keys.require_key(user_id)
        if self.accounts.get(user_id) is None:
            raise UserNotFoundError(f"user {user_id} not found")

        source = Path(raw_file_path)
        if not source.is_file():
            raise FileNotFoundError(f"upload source not found: {source}")
        if file_type is None:
            try:
                file_type = FileType.from_extension(source.name)
            except ValueError as e:
                raise ConstraintError(str(e)) from e
        record = FileRecord(user_id=user_id, name=source.name, file_type=coerce_enum(FileType, file_type, "type"))

        encrypted = encrypted_path_for(self.config.media_dir / f"{record.file_id}_{source.name}")
        display_title = title or source.stem
        await self.worker.encrypt_file(source, encrypted, password)
        try:
            title_blob = await self.worker.encrypt_text(display_title, password)
            uploaded_at = utc_now_iso()
            sealed = record.copy_with(path=str(encrypted), metadata={"title": title_blob, "uploadedAt": uploaded_at})
            self.files.create(sealed)
        except BaseException:
            with contextlib.suppress(FileNotFoundError):
                encrypted.unlink()
            raise

        source.unlink()
        logger.info("Uploaded %s file %s for user %s", sealed.file_type.value, sealed.file_id, user_id)
        return sealed.copy_with(metadata={"title": display_title, "uploadedAt": uploaded_at})

    async def _open_record(self, record: FileRecord, password: str) -> FileRecord:
        try:
            title = await self.worker.decrypt_text(record.title, password)
        except _ITEM_ERRORS as e:
            logger.error("Error decrypting file record %s: %s", record.file_id, type(e).__name__)
            return record.copy_with(
                metadata={
                    "title": DECRYPTION_PLACEHOLDER,
                    "uploadedAt": record.metadata.get("uploadedAt"),
                },
                decryption_failed=True,
            )
        return record.copy_with(metadata={**record.metadata, "title": title})

    async def get_file_records(self, user_id: str, kind=None) -> List[FileRecord]:
        """A user's file records with decrypted titles, newest first."""
        password = self.keys.require_key(user_id)
        records = self.files.list_by_user(user_id, kind=kind)
        return list(await asyncio.gather(*(self._open_record(r, password) for r in records)))

    async def update_file_title(self, file_id: str, title: str, user_id: str) -> None:
        password = self.keys.require_key(user_id)
        record = self.files.get(file_id, user_id)
        if record is None:
            raise RecordNotFoundError(f"file record {file_id} not found")
        metadata = dict(record.metadata)
        metadata["title"] = await self.worker.encrypt_text(title, password)
        self.files.update_metadata(file_id, user_id, metadata)

    async def update_file_date(self, file_id: str, created_at: str, user_id: str) -> None:
        self.keys.require_key(user_id)
        self.files.update_created_at(file_id, user_id, created_at)

    async def delete_file_record(self, file_id: str, user_id: str) -> None:
        """Remove the record and its encrypted body."""
        self.keys.require_key(user_id)
        record = self.files.get(file_id, user_id)
        if record is None:
            raise RecordNotFoundError(f"file record {file_id} not found")
        self.files.delete(file_id, user_id)
        with contextlib.suppress(FileNotFoundError):
            Path(record.path).unlink()

    # ------------------------------------------------------------------
    # Profile photo
    # ------------------------------------------------------------------

    def _profile_photo_path(self, user_id: str) -> Path:
        return encrypted_path_for(self.config.profile_photo_dir / f"{user_id}.jpg")

    async def save_profile_photo(self, user_id: str, data) -> Path:
        """Seal the user's avatar under ``profile_photos/<id>.jpg.enc``.

        ``data`` is raw image bytes or a base64 string, optionally with a
        ``data:image/...;base64,`` prefix as browsers produce it.
        """
        password = self.keys.require_key(user_id)
        if self.accounts.get(user_id) is None:
            raise UserNotFoundError(f"user {user_id} not found")

        if isinstance(data, str):
            encoded = _DATA_URL_PREFIX.sub("", data.strip(), count=1)
            try:
                data = base64.b64decode(encoded, validate=True)
            except binascii.Error as e:
                raise FormatError(f"profile photo is not valid base64: {e}") from e

        target = self._profile_photo_path(user_id)
        await self.worker.encrypt_bytes(data, target, password)
        logger.info("Saved profile photo for user %s", user_id)
        return target

    async def load_profile_photo(self, user_id: str) -> Optional[bytes]:
        """The decrypted avatar bytes, or None when none was saved."""
        password = self.keys.require_key(user_id)
        target = self._profile_photo_path(user_id)
        if not target.exists():
            return None
        return await self.worker.decrypt_bytes(target, password)

    # ------------------------------------------------------------------
    # Temporary plaintext for viewing
    # ------------------------------------------------------------------

    def _new_temp_path(self, name: str) -> Path:
        if self._temp_dir is None or not self._temp_dir.exists():
            self._temp_dir = Path(tempfile.mkdtemp(prefix="anamneon_"))
        fd, temp_name = tempfile.mkstemp(
            prefix=f"{int(time.time() * 1000)}_", suffix=f"_{name}", dir=self._temp_dir
        )
        os.close(fd)
        return Path(temp_name)

    def _remove_temp(self, path: Path) -> None:
        self._temp_files.pop(path, None)
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error("Error cleaning up temp file %s: %s", path, e)

    async def open_file(self, encrypted_path, user_id: str) -> Path:
        """Decrypt a stored file for external viewing.

        The plaintext copy is deleted after ``config.temp_file_ttl`` seconds
        (or at shutdown, whichever comes first).
        """
        password = self.keys.require_key(user_id)
        if self.files.get_by_path(encrypted_path, user_id) is None:
            raise RecordNotFoundError(f"no file record for {Path(encrypted_path).name}")

        temp_path = self._new_temp_path(plain_name(encrypted_path))
        await self.worker.decrypt_file(encrypted_path, temp_path, password)

        loop = asyncio.get_running_loop()
        self._temp_files[temp_path] = loop.call_later(self.config.temp_file_ttl, self._remove_temp, temp_path)

        if self.opener is not None:
            self.opener(temp_path)
        return temp_path

    # ------------------------------------------------------------------
    # Export, backup, restore
    # ------------------------------------------------------------------

    async def export_all(self, user_id: str, destination_dir) -> Dict:
        """Decrypt everything into an export tree; failed items are skipped."""
        password = self.keys.require_key(user_id)
        writer = ExportWriter(destination_dir, user_id)
        writer.prepare()

        entries = self.diary.list_by_user(user_id)
        records = self.files.list_by_user(user_id)

        for entry in entries:
            try:
                title = await self.worker.decrypt_text(entry.title, password)
                content = await self.worker.decrypt_text(entry.content, password)
                writer.add_diary_entry(entry.copy_with(title=title, content=content))
            except _ITEM_ERRORS + (OSError,) as e:
                logger.error("Error exporting diary entry %s: %s", entry.entry_id, type(e).__name__)

        for record in records:
            try:
                title = await self.worker.decrypt_text(record.title, password)
                if not Path(record.path).exists():
                    logger.warning("Encrypted body missing for file record %s", record.file_id)
                    continue
                await self.worker.decrypt_file(record.path, writer.file_target(record), password)
                writer.add_file(record.copy_with(metadata={**record.metadata, "title": title}))
            except _ITEM_ERRORS + (OSError,) as e:
                logger.error("Error exporting file record %s: %s", record.file_id, type(e).__name__)

        media = sum(1 for r in records if r.file_type.is_media)
        root = writer.finish({"diary": len(entries), "media": media, "files": len(records) - media})
        return {"success": True, "path": str(root), "count": writer.count}

    async def backup_store(self, destination) -> Path:
        """Copy the raw (ciphertext-only) store file.

        ``destination`` may be a directory, in which case a dated
        ``anamneon-backup-<date>.anm`` file is created inside it.
        """
        destination = Path(destination)
        if destination.is_dir():
            date = datetime.now(timezone.utc).date().isoformat()
            destination = destination / f"anamneon-backup-{date}{BACKUP_SUFFIX}"
        return self.db.backup_to(destination)

    async def restore_store(self, backup_path) -> None:
        """Replace the store with a backup, then reopen and migrate it."""
        self.db.restore_from(backup_path)

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    def shutdown(self) -> None:
        """Forget all keys, delete pending plaintext copies and stop the pool."""
        self.keys.clear_all()
        for path, handle in list(self._temp_files.items()):
            handle.cancel()
            self._remove_temp(path)
        if self._temp_dir is not None:
            shutil.rmtree(self._temp_dir, ignore_errors=True)
            self._temp_dir = None
        self.worker.shutdown()
        self.db.close()
        logger.info("Archive shut down")
