"""Physical deletion of files attached to retired records.

Every deletion is jailed to the upload root:
- Symlinks are never followed or removed
- The canonical path must be a strict descendant of the canonical root
- A missing file is a no-op, so repeated runs are idempotent
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import unquote

from .ports import RecordStorePort, RetentionRecord
from .schemas import FileCleanupStats

logger = logging.getLogger(__name__)

# Upload values are at most a few levels deep; anything deeper is malformed
MAX_REFERENCE_DEPTH = 10

# Keys of structured upload entries, in lookup order
_PATH_KEYS = ("file_path", "path")
_URL_KEYS = ("file_url", "url")

_NOOP = FileCleanupStats()
_DELETED = FileCleanupStats(deleted=1)
_ERROR = FileCleanupStats(errors=1)


def normalize_references(raw: Any) -> List[Any]:
    """Turn a stored field value into a list of file references.

    Handles None/empty values, plain strings, lists, single structured
    mappings and JSON-encoded arrays or objects.
    """
    if raw is None:
        return []

    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")

    if isinstance(raw, str):
        value = raw.strip()
        if not value:
            return []
        if value[0] in "[{":
            try:
                decoded = json.loads(value)
            except ValueError:
                return [value]
            return normalize_references(decoded)
        return [value]

    if isinstance(raw, dict):
        return [raw]

    if isinstance(raw, (list, tuple)):
        return [item for item in raw if item not in (None, "", [], {})]

    return []


class FileDeleter:
    """Deletes file references inside a sandboxed upload root.

    Args:
        upload_root: Directory files may be deleted from
        upload_base_url: Public URL prefix mapping onto upload_root; URLs
            outside it are ignored
    """

    def __init__(self, upload_root: str, upload_base_url: Optional[str] = None):
        self.upload_root = Path(upload_root).resolve()
        self.upload_base_url = upload_base_url.rstrip("/") if upload_base_url else None

    def delete_file(self, ref: Any, _depth: int = 0) -> FileCleanupStats:
        """Delete one reference (or a nested collection of them).

        Returns summed counts; a single reference yields deleted=1, errors=1
        or both zero when there was nothing to delete.
        """
        if _depth > MAX_REFERENCE_DEPTH:
            logger.warning(
                "File reference nesting too deep, skipping",
                extra={"depth": _depth, "max_depth": MAX_REFERENCE_DEPTH},
            )
            return _ERROR

        if isinstance(ref, (list, tuple)):
            total = FileCleanupStats()
            for item in ref:
                total = total + self.delete_file(item, _depth + 1)
            return total

        candidate = self._resolve_candidate(ref)
        if candidate is None:
            return _NOOP

        return self._delete_path(candidate)

    def cleanup_files(
        self,
        store: RecordStorePort,
        record: RetentionRecord,
        field_keys: List[str],
    ) -> FileCleanupStats:
        """Delete every file referenced by the record's file fields.

        Args:
            store: Host store used to read field values
            record: Record whose files are removed
            field_keys: File-bearing field keys of the record's category

        Returns:
            Summed deleted/error counts over all fields
        """
        total = FileCleanupStats()

        for field_key in field_keys:
            references = normalize_references(store.get_field_value(record.id, field_key))
            if not references:
                continue

            total = total + self.delete_file(references)

        if total.deleted or total.errors:
            logger.info(
                f"Cleaned up files of record {record.id}",
                extra={
                    "record_id": record.id,
                    "category_id": record.category_id,
                    "files_deleted": total.deleted,
                    "file_errors": total.errors,
                },
            )

        return total

    def _resolve_candidate(self, ref: Any) -> Optional[Path]:
        if isinstance(ref, dict):
            return self._resolve_structured(ref)

        if not isinstance(ref, str) or not ref.strip():
            return None

        value = ref.strip()
        if os.path.lexists(value):
            return Path(value)

        if "://" in value:
            return self._url_to_path(value)

        return None

    def _resolve_structured(self, ref: Dict[str, Any]) -> Optional[Path]:
        for key in _PATH_KEYS + _URL_KEYS:
            value = ref.get(key)
            if isinstance(value, str) and value:
                return self._resolve_candidate(value)

        file_name = ref.get("file_name")
        if isinstance(file_name, str) and file_name:
            return self.upload_root / file_name.lstrip("/\\")

        return None

    def _url_to_path(self, url: str) -> Optional[Path]:
        clean_url = url.split("?", 1)[0].split("#", 1)[0]
        if not self.upload_base_url or not clean_url.startswith(self.upload_base_url + "/"):
            return None

        relative = unquote(clean_url[len(self.upload_base_url) + 1:])
        return self.upload_root / relative

    def _delete_path(self, path: Path) -> FileCleanupStats:
        if not os.path.lexists(path):
            return _NOOP

        # Checked before resolving so a crafted link is never followed
        if path.is_symlink():
            logger.warning("Refusing to delete symlink", extra={"path": str(path)})
            return _ERROR

        real_path = path.resolve()
        if not self._inside_root(real_path):
            logger.warning(
                "Refusing to delete file outside the upload root",
                extra={"path": str(real_path), "upload_root": str(self.upload_root)},
            )
            return _ERROR

        if not real_path.is_file():
            logger.warning("Not a regular file, skipping", extra={"path": str(real_path)})
            return _ERROR

        if not os.access(real_path.parent, os.W_OK):
            logger.warning("File not writable, skipping", extra={"path": str(real_path)})
            return _ERROR

        try:
            real_path.unlink()
        except FileNotFoundError:
            # Removed concurrently
            return _NOOP
        except OSError as e:
            logger.error(
                "File deletion failed",
                exc_info=True,
                extra={"path": str(real_path), "error": str(e)},
            )
            return _ERROR

        if os.path.lexists(real_path):
            return _ERROR

        logger.debug(f"Deleted file: {real_path}")
        return _DELETED

    def _inside_root(self, real_path: Path) -> bool:
        return real_path != self.upload_root and self.upload_root in real_path.parents
