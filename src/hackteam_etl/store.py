"""hackteam_etl.store

Team document store.

Teams are kept as JSON documents in the ``team_document`` table (see
migrations/0001_team_document.sql) with a unique index on the lowercased
team name.  Documents handed out by the store are plain dicts carrying the
row id under ``_id`` and the creation timestamp under ``createdAt``; both
live in columns rather than inside the JSON body.

The connection is owned by the caller.  It is expected to be in autocommit
mode so that each write below is its own transaction.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Iterable, Protocol

import psycopg
from psycopg.types.json import Jsonb

log = logging.getLogger(__name__)

_COLUMN_KEYS = ("_id", "createdAt")


class TeamStore(Protocol):
    def find_all(self) -> list[dict[str, Any]]:
        """Return every team, oldest first."""
        ...

    def find_by_name_pattern(self, pattern: str) -> list[dict[str, Any]]:
        """Return teams whose name matches *pattern* case-insensitively, oldest first."""
        ...

    def find_by_emails(self, emails: Iterable[str]) -> list[dict[str, Any]]:
        """Return teams whose leader or any member email is in *emails*."""
        ...

    def insert_one(self, doc: dict[str, Any]) -> str:
        """Insert *doc* and return its new id."""
        ...

    def update_one(self, doc_id: str, fields: dict[str, Any]) -> bool:
        """Overwrite only *fields* on the team with *doc_id*."""
        ...

    def delete_one(self, doc_id: str) -> bool:
        ...


def _row_to_doc(row: tuple[Any, Any, datetime]) -> dict[str, Any]:
    doc_id, body, created_at = row
    doc = dict(body or {})
    doc["_id"] = str(doc_id)
    doc["createdAt"] = created_at
    return doc


def _body(doc: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in doc.items() if k not in _COLUMN_KEYS}


class PgTeamStore:
    """TeamStore backed by a psycopg connection."""

    def __init__(self, conn: psycopg.Connection) -> None:
        self._conn = conn

    def find_all(self) -> list[dict[str, Any]]:
        rows = self._conn.execute(
            "SELECT id, doc, created_at FROM team_document ORDER BY created_at ASC, id ASC"
        ).fetchall()
        return [_row_to_doc(r) for r in rows]

    def find_by_name_pattern(self, pattern: str) -> list[dict[str, Any]]:
        rows = self._conn.execute(
            """
            SELECT id, doc, created_at FROM team_document
            WHERE doc->>'teamName' ~* %s
            ORDER BY created_at ASC, id ASC
            """,
            (pattern,),
        ).fetchall()
        return [_row_to_doc(r) for r in rows]

    def find_by_emails(self, emails: Iterable[str]) -> list[dict[str, Any]]:
        wanted = sorted({e.lower().strip() for e in emails if e and e.strip()})
        if not wanted:
            return []
        rows = self._conn.execute(
            """
            SELECT id, doc, created_at FROM team_document
            WHERE lower(doc->>'leaderEmail') = ANY(%s)
               OR EXISTS (
                    SELECT 1
                    FROM jsonb_array_elements(COALESCE(doc->'members', '[]'::jsonb)) AS m
                    WHERE lower(m->>'email') = ANY(%s)
               )
            ORDER BY created_at ASC, id ASC
            """,
            (wanted, wanted),
        ).fetchall()
        return [_row_to_doc(r) for r in rows]

    def insert_one(self, doc: dict[str, Any]) -> str:
        created_at = doc.get("createdAt") or datetime.now(timezone.utc)
        with self._conn.transaction():
            row = self._conn.execute(
                """
                INSERT INTO team_document (doc, created_at)
                VALUES (%s, %s)
                RETURNING id
                """,
                (Jsonb(_body(doc)), created_at),
            ).fetchone()
        log.debug("inserted team %r as %s", doc.get("teamName"), row[0])
        return str(row[0])

    def update_one(self, doc_id: str, fields: dict[str, Any]) -> bool:
        with self._conn.transaction():
            cur = self._conn.execute(
                "UPDATE team_document SET doc = doc || %s WHERE id = %s",
                (Jsonb(_body(fields)), doc_id),
            )
        log.debug("updated team %s: %s", doc_id, sorted(fields))
        return cur.rowcount == 1

    def delete_one(self, doc_id: str) -> bool:
        with self._conn.transaction():
            cur = self._conn.execute(
                "DELETE FROM team_document WHERE id = %s",
                (doc_id,),
            )
        log.debug("deleted team %s", doc_id)
        return cur.rowcount == 1
