"""SQLiteStore — the live store.

One database file holds everything that has to survive a restart: the
active token, the rate-limit window and the last fetched PRs. The
connection is shared between the refresh thread and dashboard threads, so
every public method takes the store lock.

Schema:
  credentials  — tokens ever configured; at most one row is active.
  rate_limit   — a single row with the time GitHub unblocks us.
  pull_requests — the last fetched PRs, replaced wholesale on every fetch.
  meta         — key/value pairs (last_fetched).
"""

from __future__ import annotations

import json
import logging
import os
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path

from prpulse_core.models import ZERO_TIME, PullRequest, format_timestamp, parse_timestamp
from prpulse_store.base import BaseStore
from prpulse_store.models import Credential, StoredState

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS credentials (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    token       TEXT NOT NULL,
    username    TEXT NOT NULL,
    expires_at  TEXT,
    active      INTEGER NOT NULL DEFAULT 1,
    created_at  TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS rate_limit (
    id      INTEGER PRIMARY KEY CHECK (id = 1),
    until   TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS pull_requests (
    url                     TEXT PRIMARY KEY,
    title                   TEXT,
    author                  TEXT,
    repo_name               TEXT,
    repo_owner              TEXT,
    repo_url                TEXT,
    review_status           TEXT,
    is_draft                INTEGER DEFAULT 0,
    additions               INTEGER DEFAULT 0,
    deletions               INTEGER DEFAULT 0,
    last_updated            TEXT,
    last_commenter          TEXT,
    review_requested_from   TEXT DEFAULT '[]',
    threads_actionable      INTEGER DEFAULT 0,
    threads_waiting         INTEGER DEFAULT 0,
    buried                  INTEGER DEFAULT 0,
    buried_last_updated     TEXT,
    raw_json                TEXT
);
CREATE TABLE IF NOT EXISTS meta (
    key     TEXT PRIMARY KEY,
    value   TEXT
);
"""


def default_db_path() -> str:
    """$XDG_CACHE_HOME/prpulse/prpulse.db, falling back to ~/.cache."""
    cache_home = os.environ.get("XDG_CACHE_HOME") or str(Path.home() / ".cache")
    return str(Path(cache_home) / "prpulse" / "prpulse.db")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SQLiteStore(BaseStore):
    """Stores state in a local SQLite file.

    Pass ``":memory:"`` for a throwaway store (tests, one-off runs).
    """

    def __init__(self, db_path: str = ":memory:"):
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(_SCHEMA)
        self._conn.commit()

    # ------------------------------------------------------------------ #
    # Credentials                                                          #
    # ------------------------------------------------------------------ #

    def get_credential(self) -> Credential | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT token, username, expires_at FROM credentials WHERE active=1 ORDER BY id DESC LIMIT 1"
            ).fetchone()
        if row is None:
            return None
        expires_at = parse_timestamp(row["expires_at"]) if row["expires_at"] else None
        return Credential(token=row["token"], username=row["username"], expires_at=expires_at)

    def store_credential(self, token: str, username: str, expires_at: datetime | None = None) -> None:
        with self._lock:
            self._conn.execute("UPDATE credentials SET active=0 WHERE active=1")
            self._conn.execute(
                "INSERT INTO credentials (token, username, expires_at, active, created_at) VALUES (?, ?, ?, 1, ?)",
                (token, username, format_timestamp(expires_at) or None, _utcnow().isoformat()),
            )
            self._conn.commit()
        logger.info("Stored GitHub credential for %s", username)

    def clear_credential(self) -> None:
        with self._lock:
            self._conn.execute("UPDATE credentials SET active=0 WHERE active=1")
            self._conn.commit()

    # ------------------------------------------------------------------ #
    # Rate limiting                                                        #
    # ------------------------------------------------------------------ #

    def set_rate_limit_until(self, until: datetime) -> None:
        with self._lock:
            self._conn.execute(
                "INSERT INTO rate_limit (id, until) VALUES (1, ?) ON CONFLICT(id) DO UPDATE SET until=excluded.until",
                (format_timestamp(until),),
            )
            self._conn.commit()

    def get_rate_limit_until(self) -> datetime | None:
        with self._lock:
            return self._rate_limit_until_locked()

    def is_rate_limit_active(self, now: datetime) -> bool:
        with self._lock:
            until = self._rate_limit_until_locked()
            if until is None:
                return False
            if now < until:
                return True
            self._conn.execute("DELETE FROM rate_limit")
            self._conn.commit()
        logger.info("Rate limit window ended at %s", until.isoformat())
        return False

    def clear_rate_limit(self) -> None:
        with self._lock:
            self._conn.execute("DELETE FROM rate_limit")
            self._conn.commit()

    def _rate_limit_until_locked(self) -> datetime | None:
        row = self._conn.execute("SELECT until FROM rate_limit WHERE id=1").fetchone()
        if row is None or not row["until"]:
            return None
        return parse_timestamp(row["until"])

    # ------------------------------------------------------------------ #
    # Pull requests                                                        #
    # ------------------------------------------------------------------ #

    def replace_pull_requests(self, prs: list[PullRequest], fetched_at: datetime | None = None) -> None:
        fetched_at = fetched_at or _utcnow()
        with self._lock:
            # A PR that stays buried keeps the snapshot from when it was buried.
            snapshots = {
                r["url"]: r["buried_last_updated"]
                for r in self._conn.execute("SELECT url, buried_last_updated FROM pull_requests WHERE buried=1")
            }
            self._conn.execute("DELETE FROM pull_requests")
            for pr in prs:
                snapshot = None
                if pr.buried:
                    snapshot = snapshots.get(pr.url) or format_timestamp(pr.last_updated)
                self._conn.execute(
                    """
                    INSERT OR REPLACE INTO pull_requests
                      (url, title, author, repo_name, repo_owner, repo_url, review_status,
                       is_draft, additions, deletions, last_updated, last_commenter,
                       review_requested_from, threads_actionable, threads_waiting,
                       buried, buried_last_updated, raw_json)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        pr.url,
                        pr.title,
                        pr.author,
                        pr.repo_name,
                        pr.repo_owner,
                        pr.repo_url,
                        pr.review_status,
                        int(pr.is_draft),
                        pr.additions,
                        pr.deletions,
                        format_timestamp(pr.last_updated),
                        pr.last_commenter,
                        json.dumps(pr.review_requested_from),
                        pr.threads_actionable,
                        pr.threads_waiting,
                        int(pr.buried),
                        snapshot,
                        pr.raw_json,
                    ),
                )
            self._conn.execute(
                "INSERT INTO meta (key, value) VALUES ('last_fetched', ?) "
                "ON CONFLICT(key) DO UPDATE SET value=excluded.value",
                (fetched_at.isoformat(),),
            )
            self._conn.commit()
        logger.info("Stored %d PRs", len(prs))

    def list_pull_requests(self) -> StoredState:
        with self._lock:
            rows = self._conn.execute("SELECT * FROM pull_requests ORDER BY url").fetchall()
            last_fetched = self._last_fetch_time_locked()
        return StoredState(pull_requests=[self._row_to_pr(r) for r in rows], last_fetched=last_fetched)

    def get_pull_request(self, url: str) -> PullRequest | None:
        with self._lock:
            row = self._conn.execute("SELECT * FROM pull_requests WHERE url=?", (url,)).fetchone()
        return self._row_to_pr(row) if row is not None else None

    def get_last_fetch_time(self) -> datetime | None:
        with self._lock:
            return self._last_fetch_time_locked()

    def _last_fetch_time_locked(self) -> datetime | None:
        row = self._conn.execute("SELECT value FROM meta WHERE key='last_fetched'").fetchone()
        if row is None or not row["value"]:
            return None
        return parse_timestamp(row["value"])

    def get_buried(self) -> dict[str, datetime]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT url, buried_last_updated, last_updated FROM pull_requests WHERE buried=1"
            ).fetchall()
        return {r["url"]: parse_timestamp(r["buried_last_updated"] or r["last_updated"]) for r in rows}

    def bury(self, url: str) -> bool:
        with self._lock:
            cur = self._conn.execute(
                "UPDATE pull_requests SET buried=1, buried_last_updated=last_updated WHERE url=?",
                (url,),
            )
            self._conn.commit()
        return cur.rowcount > 0

    def unbury(self, url: str) -> bool:
        with self._lock:
            cur = self._conn.execute(
                "UPDATE pull_requests SET buried=0, buried_last_updated=NULL WHERE url=?",
                (url,),
            )
            self._conn.commit()
        return cur.rowcount > 0

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    @staticmethod
    def _row_to_pr(row: sqlite3.Row) -> PullRequest:
        return PullRequest(
            url=row["url"],
            title=row["title"] or "",
            author=row["author"] or "",
            repo_name=row["repo_name"] or "",
            repo_owner=row["repo_owner"] or "",
            repo_url=row["repo_url"] or "",
            review_status=row["review_status"] or "",
            is_draft=bool(row["is_draft"]),
            additions=row["additions"] or 0,
            deletions=row["deletions"] or 0,
            last_updated=parse_timestamp(row["last_updated"]) if row["last_updated"] else ZERO_TIME,
            last_commenter=row["last_commenter"] or "",
            review_requested_from=json.loads(row["review_requested_from"] or "[]"),
            threads_actionable=row["threads_actionable"] or 0,
            threads_waiting=row["threads_waiting"] or 0,
            buried=bool(row["buried"]),
            raw_json=row["raw_json"],
        )
