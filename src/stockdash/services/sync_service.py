from __future__ import annotations

import logging
from typing import Iterable, Optional

from stockdash.domain.errors import HostedBackendError
from stockdash.repositories.sqlite_repo import TABLE_COLUMNS

log = logging.getLogger("stockdash.hosted")

SYNC_TABLES = tuple(TABLE_COLUMNS)


class SyncService:
    """Push local tables to the hosted backend or replace them from it."""

    def __init__(self, repo, client):
        self.repo = repo
        self.client = client

    @staticmethod
    def _tables(tables: Optional[Iterable[str]]) -> list[str]:
        chosen = list(tables) if tables else list(SYNC_TABLES)
        unknown = [t for t in chosen if t not in TABLE_COLUMNS]
        if unknown:
            raise HostedBackendError(f"Unknown tables: {', '.join(unknown)}")
        return [t for t in SYNC_TABLES if t in chosen]

    def push(self, tables: Optional[Iterable[str]] = None) -> dict[str, int]:
        pushed: dict[str, int] = {}
        for table in self._tables(tables):
            rows = self.repo.table_rows(table)
            if rows:
                self.client.insert(table, rows, upsert=True)
            pushed[table] = len(rows)
            log.info("sync_push table=%s rows=%s", table, len(rows))
        return pushed

    def pull(self, tables: Optional[Iterable[str]] = None) -> dict[str, int]:
        """Fetch every table first, then replace the local copies in one transaction."""
        fetched: dict[str, list[dict]] = {}
        for table in self._tables(tables):
            cols = TABLE_COLUMNS[table]
            fetched[table] = [{k: v for k, v in row.items() if k in cols} for row in self.client.select(table, order="id")]
        restored = self.repo.replace_tables(fetched)
        log.warning("sync_pull counts=%s", restored)
        return restored
