"""
Plaintext export tree for a user's archive

Layout under ``<destination>/AnamneonExport_v1_<date>/``:

    diary/text/<date>_<id>.json      diary/audio/<date>_<id>.json
    media/{photo,video,audio}/<id><ext>
    files/{pdf,docx,spreadsheet,other}/<id><ext>
    schema/object.schema.json
    objects.jsonl                    one line per exported object
    manifest.json                    totals and per-type record counts

The writer only lays out already-decrypted data; the archive decides what to
decrypt and skips items that fail.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from .hashing import content_hash
from .models import DiaryEntry, FileRecord, FileType
from ..security.crypto import plain_name

logger = logging.getLogger(__name__)

EXPORT_VERSION = "1.0"
EXPORT_DIR_PREFIX = "AnamneonExport_v1_"
SUMMARY_LENGTH = 100

EXPORT_DIRS = (
    "diary/text",
    "diary/audio",
    "media/photo",
    "media/video",
    "media/audio",
    "files/pdf",
    "files/docx",
    "files/spreadsheet",
    "files/other",
    "schema",
)

_DOCUMENT_DIRS = {
    FileType.PDF: "pdf",
    FileType.DOCX: "docx",
    FileType.TXT: "docx",
    FileType.SPREADSHEET: "spreadsheet",
}

OBJECT_SCHEMA = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "properties": {
        "uuid": {"type": "string"},
        "type": {"enum": ["diary", "media", "file"]},
        "subtype": {"type": "string"},
        "date": {"type": "string", "format": "date"},
        "title": {"type": "string"},
        "description": {"type": "string"},
        "file_path": {"type": "string"},
        "text_path": {"type": "string"},
        "summary": {"type": "string"},
        "tags": {"type": "array", "items": {"type": "string"}},
        "hash": {
            "type": "object",
            "properties": {
                "algo": {"type": "string"},
                "value": {"type": "string"},
            },
        },
        "created_at": {"type": "string"},
        "updated_at": {"type": "string"},
    },
    "required": ["uuid", "type", "date", "created_at"],
}


def date_part(timestamp: str) -> str:
    """``2024-03-01T10:00:00.000Z`` -> ``2024-03-01``"""
    try:
        return datetime.fromisoformat(timestamp.replace("Z", "+00:00")).date().isoformat()
    except (AttributeError, ValueError):
        return str(timestamp)[:10]


def _summary(text: str) -> str:
    if len(text) > SUMMARY_LENGTH:
        return text[:SUMMARY_LENGTH] + "..."
    return text


def file_export_relpath(record: FileRecord) -> str:
    """Relative path inside the export tree for a file record's plaintext."""
    ext = Path(plain_name(record.path)).suffix
    if record.file_type.is_media:
        folder = f"media/{record.file_type.value}"
    else:
        folder = f"files/{_DOCUMENT_DIRS.get(record.file_type, 'other')}"
    return f"{folder}/{record.file_id}{ext}"


class ExportWriter:
    """Accumulates exported objects and writes the index files at the end."""

    def __init__(self, destination_dir, user_id: str, now: Optional[datetime] = None):
        self.now = now or datetime.now(timezone.utc)
        self.user_id = user_id
        self.root = Path(destination_dir) / f"{EXPORT_DIR_PREFIX}{self.now.date().isoformat()}"
        self.objects: List[Dict] = []

    @property
    def count(self) -> int:
        return len(self.objects)

    def prepare(self) -> Path:
        for rel in EXPORT_DIRS:
            (self.root / rel).mkdir(parents=True, exist_ok=True)
        return self.root

    def add_diary_entry(self, entry: DiaryEntry) -> Path:
        """Write a decrypted entry as JSON and index it."""
        date = date_part(entry.created_at)
        subtype = entry.entry_type.value
        rel = f"diary/{subtype}/{date}_{entry.entry_id}.json"
        payload = {
            "uuid": entry.entry_id,
            "date": date,
            "title": entry.title,
            "content": entry.content,
            "created_at": entry.created_at,
            "updated_at": entry.updated_at,
        }
        target = self.root / rel
        target.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")

        obj = {
            "uuid": entry.entry_id,
            "type": "diary",
            "subtype": subtype,
            "date": date,
            "text_path": rel,
            "title": entry.title,
            "summary": _summary(entry.content),
            "hash": content_hash(target),
            "tags": [],
            "created_at": entry.created_at,
            "updated_at": entry.updated_at,
        }
        self.objects.append(obj)
        return target

    def file_target(self, record: FileRecord) -> Path:
        return self.root / file_export_relpath(record)

    def add_file(self, record: FileRecord) -> Dict:
        """Index a file already decrypted to :meth:`file_target`."""
        rel = file_export_relpath(record)
        obj = {
            "uuid": record.file_id,
            "type": "media" if record.file_type.is_media else "file",
            "subtype": record.file_type.value,
            "date": date_part(record.created_at),
            "title": record.title,
            "file_path": rel,
            "hash": content_hash(self.root / rel),
            "created_at": record.created_at,
            "updated_at": record.created_at,
            "tags": [],
        }
        description = record.metadata.get("description")
        if description:
            obj["description"] = description
        self.objects.append(obj)
        return obj

    def finish(self, record_types: Dict[str, int]) -> Path:
        """Write objects.jsonl, manifest.json and the object schema."""
        lines = "\n".join(json.dumps(obj, ensure_ascii=False) for obj in self.objects)
        (self.root / "objects.jsonl").write_text(lines, encoding="utf-8")

        manifest = {
            "version": EXPORT_VERSION,
            "export_date": self.now.isoformat(),
            "user_id": self.user_id,
            "total_records": self.count,
            "record_types": record_types,
            "description": "Anamneon archive export",
        }
        (self.root / "manifest.json").write_text(
            json.dumps(manifest, ensure_ascii=False, indent=2), encoding="utf-8"
        )
        (self.root / "schema" / "object.schema.json").write_text(
            json.dumps(OBJECT_SCHEMA, indent=2), encoding="utf-8"
        )
        logger.info("Exported %d records to %s", self.count, self.root)
        return self.root
