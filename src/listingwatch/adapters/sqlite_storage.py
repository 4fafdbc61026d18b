"""SQLite storage adapter.

Implements the core SubscriberStore port using a simple SQLite database.
"""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Callable, Generic, Iterator, List

from listingwatch.core.errors import StorageFailure
from listingwatch.core.models import ClientId, Subscriber, Subscription


class SQLiteSubscriberStore(Generic[ClientId]):
    """Thin SQLite wrapper that satisfies the SubscriberStore contract.

    Client ids are stored as text and turned back into the transport's id
    type with `id_parser`.
    """

    def __init__(self, db_path: str, id_parser: Callable[[str], ClientId] = int) -> None:
        self._db_path = db_path
        self._id_parser = id_parser

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = self._connect()
        except sqlite3.Error as exc:
            raise StorageFailure(f"Cannot open {self._db_path}: {exc}") from exc
        try:
            # The connection context manager commits, or rolls back on error.
            with conn:
                yield conn
        except sqlite3.Error as exc:
            raise StorageFailure(f"SQLite error: {exc}") from exc
        finally:
            conn.close()

    def init_db(self) -> None:
        """Create tables if they do not exist.

        Tables:
        - subscribers: one row per known client id
        - subscriptions: ordered subscriptions owned by a subscriber
        """

        with self._transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS subscribers (
                    client_id TEXT PRIMARY KEY,
                    created_at TIMESTAMP NOT NULL
                )
                """
            )
            # Keyword lists are JSON arrays; position keeps the user's order.
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS subscriptions (
                    client_id TEXT NOT NULL REFERENCES subscribers(client_id) ON DELETE CASCADE,
                    position INTEGER NOT NULL,
                    title TEXT NOT NULL,
                    query_url TEXT NOT NULL,
                    include_keywords TEXT NOT NULL,
                    exclude_keywords TEXT NOT NULL,
                    enabled INTEGER NOT NULL,
                    PRIMARY KEY (client_id, position),
                    UNIQUE (client_id, query_url)
                )
                """
            )

    def get(self, client_id: ClientId) -> Subscriber[ClientId]:
        """Return the subscriber, inserting an empty record on first access."""

        key = str(client_id)
        with self._transaction() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO subscribers (client_id, created_at) VALUES (?, ?)",
                (key, datetime.now(timezone.utc).isoformat()),
            )
            rows = conn.execute(
                """
                SELECT title, query_url, include_keywords, exclude_keywords, enabled
                FROM subscriptions WHERE client_id = ? ORDER BY position
                """,
                (key,),
            ).fetchall()
        try:
            subscriptions = [
                Subscription(
                    title=row["title"],
                    query_url=row["query_url"],
                    include_keywords=json.loads(row["include_keywords"]),
                    exclude_keywords=json.loads(row["exclude_keywords"]),
                    enabled=bool(row["enabled"]),
                )
                for row in rows
            ]
        except ValueError as exc:
            raise StorageFailure(f"Corrupt subscription row for {key}: {exc}") from exc
        return Subscriber(client_id=client_id, subscriptions=subscriptions)

    def save(self, subscriber: Subscriber[ClientId]) -> None:
        """Replace all subscriptions of one subscriber in a single transaction."""

        key = str(subscriber.client_id)
        with self._transaction() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO subscribers (client_id, created_at) VALUES (?, ?)",
                (key, datetime.now(timezone.utc).isoformat()),
            )
            conn.execute("DELETE FROM subscriptions WHERE client_id = ?", (key,))
            conn.executemany(
                """
                INSERT INTO subscriptions (
                    client_id,
                    position,
                    title,
                    query_url,
                    include_keywords,
                    exclude_keywords,
                    enabled
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        key,
                        position,
                        sub.title,
                        sub.query_url,
                        json.dumps(sub.include_keywords, ensure_ascii=False),
                        json.dumps(sub.exclude_keywords, ensure_ascii=False),
                        int(sub.enabled),
                    )
                    for position, sub in enumerate(subscriber.subscriptions)
                ],
            )

    def client_ids(self) -> List[ClientId]:
        """Return every known client id in creation order."""

        with self._transaction() as conn:
            rows = conn.execute("SELECT client_id FROM subscribers ORDER BY created_at, rowid").fetchall()
        try:
            return [self._id_parser(row["client_id"]) for row in rows]
        except ValueError as exc:
            raise StorageFailure(f"Cannot decode stored client id: {exc}") from exc
