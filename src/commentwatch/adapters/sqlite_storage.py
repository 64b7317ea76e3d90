"""SQLite storage adapter.

Implements the core StoragePort using a simple SQLite database.
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, Optional

from commentwatch.core.errors import PersistenceError
from commentwatch.core.models import CommentRecord


class SQLiteStorage:
    """Thin SQLite wrapper that satisfies the StoragePort contract.

    One connection is kept for the lifetime of the storage so that
    ``transaction()`` can group several writes, and so ``:memory:``
    databases survive between calls.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._conn: Optional[sqlite3.Connection] = None
        self._in_transaction = False

    def _connect(self) -> sqlite3.Connection:
        if self._conn is None:
            try:
                conn = sqlite3.connect(self._db_path)
            except sqlite3.Error as exc:
                raise PersistenceError(f"Unable to open database {self._db_path}: {exc}") from exc
            conn.row_factory = sqlite3.Row
            self._conn = conn
        return self._conn

    @contextmanager
    def _writing(self) -> Iterator[sqlite3.Connection]:
        conn = self._connect()
        try:
            if self._in_transaction:
                yield conn
            else:
                # Connection as context manager commits on success, rolls back on error.
                with conn:
                    yield conn
        except sqlite3.Error as exc:
            raise PersistenceError(str(exc)) from exc

    def init_db(self) -> None:
        """Create tables if they do not exist.

        Tables:
        - comments: latest observed state of every comment already notified
        """

        with self._writing() as conn:
            # comments is keyed by the remote comment id; the account and
            # claim name are denormalized onto each row for the notification.
            # Fields:
            # - id: remote comment id (PRIMARY KEY)
            # - account_id: account the claim belongs to
            # - claim_id / claim_name: claim the comment was posted on
            # - commenter_id / commenter_name / commenter_url: channel of the author
            # - comment: last observed text, compared to detect edits
            # - is_hidden: moderation flag at the time of observation
            # - timestamp: comment creation time (UTC, ISO-8601)
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS comments (
                    id VARCHAR PRIMARY KEY NOT NULL,
                    account_id VARCHAR NOT NULL,
                    claim_id VARCHAR NOT NULL,
                    claim_name VARCHAR NOT NULL,
                    commenter_id VARCHAR NOT NULL,
                    commenter_name VARCHAR NOT NULL,
                    commenter_url VARCHAR NOT NULL,
                    comment TEXT NOT NULL,
                    is_hidden BOOLEAN NOT NULL DEFAULT 0,
                    timestamp TIMESTAMP NOT NULL
                )
                """
            )

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Group writes so they commit together or not at all."""

        if self._in_transaction:
            yield
            return

        conn = self._connect()
        self._in_transaction = True
        try:
            with conn:
                yield
        except sqlite3.Error as exc:
            raise PersistenceError(str(exc)) from exc
        finally:
            self._in_transaction = False

    def get_comment(self, comment_id: str) -> Optional[CommentRecord]:
        """Return the stored record for a comment id, if any."""

        try:
            row = self._connect().execute(
                "SELECT * FROM comments WHERE id = ?",
                (comment_id,),
            ).fetchone()
        except sqlite3.Error as exc:
            raise PersistenceError(str(exc)) from exc
        return self._row_to_record(row) if row else None

    def insert_comment(self, record: CommentRecord) -> None:
        """Insert a new record; fails if the id is already stored."""

        with self._writing() as conn:
            conn.execute(
                """
                INSERT INTO comments (
                    id,
                    account_id,
                    claim_id,
                    claim_name,
                    commenter_id,
                    commenter_name,
                    commenter_url,
                    comment,
                    is_hidden,
                    timestamp
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.id,
                    record.account_id,
                    record.claim_id,
                    record.claim_name,
                    record.commenter_id,
                    record.commenter_name,
                    record.commenter_url,
                    record.text,
                    record.is_hidden,
                    record.timestamp.isoformat(),
                ),
            )

    def delete_comment(self, comment_id: str) -> None:
        """Delete the record for a comment id."""

        with self._writing() as conn:
            conn.execute("DELETE FROM comments WHERE id = ?", (comment_id,))

    def count_comments(self) -> int:
        """Return the number of stored records."""

        try:
            row = self._connect().execute("SELECT COUNT(*) AS total FROM comments").fetchone()
        except sqlite3.Error as exc:
            raise PersistenceError(str(exc)) from exc
        return int(row["total"])

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> CommentRecord:
        return CommentRecord(
            id=row["id"],
            account_id=row["account_id"],
            claim_id=row["claim_id"],
            claim_name=row["claim_name"],
            commenter_id=row["commenter_id"],
            commenter_name=row["commenter_name"],
            commenter_url=row["commenter_url"],
            text=row["comment"],
            is_hidden=bool(row["is_hidden"]),
            timestamp=datetime.fromisoformat(row["timestamp"]),
        )
