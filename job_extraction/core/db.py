"""SQLite document store for job records.

Each job is one JSON document keyed by id. ``status`` and the timestamps are
mirrored into columns so the batch runner can pick the least recently touched
discovered jobs without decoding every document.
"""

import json
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any

from job_extraction.core.errors import StorageConflict
from job_extraction.core.schemas import JobRecord, JobStatus

_JOBS_TABLE = """
CREATE TABLE IF NOT EXISTS jobs (
    id          TEXT PRIMARY KEY,
    status      TEXT NOT NULL,
    document    TEXT NOT NULL,
    created_at  TEXT NOT NULL,
    updated_at  TEXT NOT NULL
);
"""

_STATUS_INDEX = "CREATE INDEX IF NOT EXISTS idx_jobs_status_updated ON jobs (status, updated_at);"


def init_db(path: str | Path) -> sqlite3.Connection:
    """Create the database and tables, returning a connection."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute(_JOBS_TABLE)
    conn.execute(_STATUS_INDEX)
    conn.commit()
    return conn


def _now() -> str:
    return datetime.now().isoformat()


def _encode(document: dict[str, Any]) -> str:
    return json.dumps(document, default=str, sort_keys=True)


class JobStore:
    """Key-based get/put/update over the jobs table.

    Usage::

        store = JobStore(init_db("data/jobs.db"))
        store.put({"id": "job-1", "url": "https://...", "status": "discovered"})
        store.update("job-1", {"status": "extracted"})
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def get(self, key: str) -> dict[str, Any] | None:
        """Return the stored document, or None if absent."""
        try:
            row = self._conn.execute(
                "SELECT document FROM jobs WHERE id = ?", (key,),
            ).fetchone()
        except sqlite3.Error as e:
            msg = f"Failed to read job '{key}': {e}"
            raise StorageConflict(msg) from e
        if row is None:
            return None
        return json.loads(row["document"])

    def put(self, item: dict[str, Any]) -> dict[str, Any]:
        """Insert a new document. Raises StorageConflict if the id already exists."""
        key = item.get("id")
        if not key:
            msg = "Cannot store a document without an 'id'"
            raise StorageConflict(msg)
        document = dict(item)
        document.setdefault("created_at", _now())
        document.setdefault("updated_at", document["created_at"])
        try:
            self._conn.execute(
                """
                INSERT INTO jobs (id, status, document, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    key,
                    str(document.get("status", JobStatus.DISCOVERED.value)),
                    _encode(document),
                    str(document["created_at"]),
                    str(document["updated_at"]),
                ),
            )
            self._conn.commit()
        except sqlite3.IntegrityError as e:
            msg = f"Job '{key}' already exists"
            raise StorageConflict(msg) from e
        except sqlite3.Error as e:
            msg = f"Failed to insert job '{key}': {e}"
            raise StorageConflict(msg) from e
        return document

    def update(self, key: str, patch: dict[str, Any]) -> dict[str, Any]:
        """Apply a top-level patch to an existing document and return the result.

        The id is never rewritten even if the patch carries one.
        """
        existing = self.get(key)
        if existing is None:
            msg = f"Cannot update missing job '{key}'"
            raise StorageConflict(msg)
        document = {**existing, **{k: v for k, v in patch.items() if k != "id"}}
        document["id"] = key
        if "updated_at" not in patch:
            document["updated_at"] = _now()
        try:
            self._conn.execute(
                """
                UPDATE jobs
                SET status = ?, document = ?, updated_at = ?
                WHERE id = ?
                """,
                (
                    str(document.get("status", JobStatus.DISCOVERED.value)),
                    _encode(document),
                    str(document["updated_at"]),
                    key,
                ),
            )
            self._conn.commit()
        except sqlite3.Error as e:
            msg = f"Failed to update job '{key}': {e}"
            raise StorageConflict(msg) from e
        return document

    def list_by_status(self, status: JobStatus | str, limit: int | None = None) -> list[dict[str, Any]]:
        """Return documents with the given status, least recently updated first.

        A job that was never touched after insert sorts by its creation time;
        one updated after a failed attempt moves behind untouched jobs.
        """
        value = status.value if isinstance(status, JobStatus) else status
        query = "SELECT document FROM jobs WHERE status = ? ORDER BY updated_at ASC, created_at ASC"
        params: tuple[Any, ...] = (value,)
        if limit is not None:
            query += " LIMIT ?"
            params = (value, limit)
        rows = self._conn.execute(query, params).fetchall()
        return [json.loads(row["document"]) for row in rows]


def add_discovered_job(store: JobStore, job_id: str, url: str, **extra: Any) -> dict[str, Any]:
    """Seed a job in ``discovered`` state, the precondition for extraction."""
    record = JobRecord(id=job_id, url=url)
    document = {**extra, **record.model_dump(mode="json")}
    return store.put(document)


def job_record_from_document(document: dict[str, Any]) -> JobRecord:
    """Build the pipeline's JobRecord from a stored document.

    Older discovery records may carry the link as ``source_url``.
    """
    return JobRecord.model_validate({
        "id": document["id"],
        "url": document.get("url") or document.get("source_url", ""),
        "status": document.get("status", JobStatus.DISCOVERED.value),
        **{k: document[k] for k in ("created_at", "updated_at") if document.get(k)},
    })
