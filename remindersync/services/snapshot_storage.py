"""Durable on-device storage for cache snapshots (one JSON file per owner)."""

import hashlib
import os
import re
import tempfile
from datetime import datetime
from typing import Optional
from pydantic import ValidationError

from remindersync.models.snapshot import CacheSnapshot
from remindersync.utils.errors import CacheStorageError
from remindersync.utils.logging import get_structured_logger, mask_user_id

logger = get_structured_logger(__name__)


class SnapshotStorage:
    """Reads and atomically overwrites per-owner snapshot files."""

    def __init__(self, directory: str):
        self.directory = directory

    def path_for(self, owner: str) -> str:
        """File path for an owner; unsafe characters are replaced and a hash keeps names unique."""
        safe = re.sub(r"[^A-Za-z0-9_.-]", "_", str(owner))[:40]
        digest = hashlib.sha1(str(owner).encode()).hexdigest()[:8]
        return os.path.join(self.directory, f"tasks_{safe}_{digest}.json")

    def load(self, owner: str) -> Optional[CacheSnapshot]:
        """Return the stored snapshot, or None when nothing usable is stored."""
        path = self.path_for(owner)
        try:
            with open(path, "r", encoding="utf-8") as fh:
                raw = fh.read()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise CacheStorageError(f"Failed to read snapshot {path}: {e}")

        try:
            snapshot = CacheSnapshot.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(
                "Discarding unreadable snapshot",
                owner=mask_user_id(owner),
                path=path,
                error=str(e)
            )
            return None

        if snapshot.owner != str(owner):
            logger.warning(
                "Discarding snapshot stored for another owner",
                owner=mask_user_id(owner),
                path=path
            )
            return None
        return snapshot

    def save(self, snapshot: CacheSnapshot) -> None:
        """Overwrite the owner's snapshot (write to a temp file, then replace)."""
        path = self.path_for(snapshot.owner)
        snapshot = snapshot.model_copy(update={"saved_at": datetime.now()})
        tmp_path = None
        try:
            os.makedirs(self.directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(prefix=".snapshot-", dir=self.directory)
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(snapshot.model_dump_json())
            os.replace(tmp_path, path)
        except OSError as e:
            if tmp_path and os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise CacheStorageError(f"Failed to write snapshot {path}: {e}")
