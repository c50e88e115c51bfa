"""SQLite-backed record of emails already folded into the history."""

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path
from typing import Optional

import sqlite_utils


class ProcessedLedger:
    """Store which email (by checksum) produced which commit."""

    TABLE = "processed_emails"

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.db = sqlite_utils.Database(str(db_path))
        self._ensure_schema()

    def _ensure_schema(self) -> None:
        self.db[self.TABLE].create(
            {
                "checksum": str,
                "source_path": str,
                "archive_path": str,
                "commit_id": str,
                "event_count": int,
                "processed_at": str,
            },
            pk="checksum",
            if_not_exists=True,
        )

    def seen(self, checksum: str) -> bool:
        return self.db[self.TABLE].count_where("checksum = ?", [checksum]) > 0

    def commit_for(self, checksum: str) -> Optional[str]:
        rows = list(self.db[self.TABLE].rows_where("checksum = ?", [checksum], limit=1))
        return rows[0]["commit_id"] if rows else None

    def record(
        self,
        *,
        checksum: str,
        source_path: Path,
        archive_path: Path,
        commit_id: Optional[str],
        event_count: int,
    ) -> None:
        self.db[self.TABLE].upsert(
            {
                "checksum": checksum,
                "source_path": str(source_path),
                "archive_path": str(archive_path),
                "commit_id": commit_id,
                "event_count": event_count,
                "processed_at": datetime.now(tz=UTC).isoformat(),
            },
            pk="checksum",
        )
