"""Unit test fixtures.

InMemoryTeamStore implements the TeamStore protocol over a list of dicts so
reconciliation and maintenance logic can be tested without PostgreSQL.
Every read hands out deep copies, like a real round-trip would, and every
write is logged in ``writes``.
"""

from __future__ import annotations

import copy
import re
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable

import pytest

BASE_TIME = datetime(2025, 2, 1, 9, 0, tzinfo=timezone.utc)


class InMemoryTeamStore:
    def __init__(self, docs: Iterable[dict[str, Any]] = ()) -> None:
        self.docs: list[dict[str, Any]] = []
        self.writes: list[tuple[str, Any]] = []
        for i, doc in enumerate(docs):
            seeded = copy.deepcopy(doc)
            seeded.setdefault("_id", str(uuid.uuid4()))
            seeded.setdefault("createdAt", BASE_TIME + timedelta(minutes=i))
            self.docs.append(seeded)

    # -- reads --------------------------------------------------------------

    def _sorted(self, docs: list[dict[str, Any]]) -> list[dict[str, Any]]:
        return [copy.deepcopy(d) for d in sorted(docs, key=lambda d: (d["createdAt"], d["_id"]))]

    def find_all(self) -> list[dict[str, Any]]:
        return self._sorted(self.docs)

    def find_by_name_pattern(self, pattern: str) -> list[dict[str, Any]]:
        rx = re.compile(pattern, re.IGNORECASE)
        return self._sorted([d for d in self.docs if rx.search(d.get("teamName", ""))])

    def find_by_emails(self, emails: Iterable[str]) -> list[dict[str, Any]]:
        wanted = {e.lower().strip() for e in emails if e and e.strip()}
        hits = []
        for d in self.docs:
            held = {(d.get("leaderEmail") or "").lower()}
            held |= {(m.get("email") or "").lower() for m in d.get("members") or []}
            if held & wanted:
                hits.append(d)
        return self._sorted(hits)

    # -- writes -------------------------------------------------------------

    def insert_one(self, doc: dict[str, Any]) -> str:
        name = doc["teamName"].lower()
        if any(d["teamName"].lower() == name for d in self.docs):
            raise ValueError(f"duplicate team name: {doc['teamName']!r}")
        stored = copy.deepcopy({k: v for k, v in doc.items() if k != "_id"})
        stored["_id"] = str(uuid.uuid4())
        stored.setdefault("createdAt", datetime.now(timezone.utc))
        self.docs.append(stored)
        self.writes.append(("insert", stored["_id"]))
        return stored["_id"]

    def update_one(self, doc_id: str, fields: dict[str, Any]) -> bool:
        for d in self.docs:
            if d["_id"] == doc_id:
                d.update(copy.deepcopy(fields))
                self.writes.append(("update", doc_id))
                return True
        return False

    def delete_one(self, doc_id: str) -> bool:
        before = len(self.docs)
        self.docs = [d for d in self.docs if d["_id"] != doc_id]
        self.writes.append(("delete", doc_id))
        return len(self.docs) < before

    # -- test helpers -------------------------------------------------------

    def by_name(self, name: str) -> dict[str, Any]:
        return next(d for d in self.docs if d["teamName"] == name)

    def snapshot(self) -> list[dict[str, Any]]:
        return self._sorted(self.docs)


@pytest.fixture
def make_store():
    return InMemoryTeamStore


def member(name: str, email: str, **overrides: Any) -> dict[str, Any]:
    doc = {
        "name": name,
        "email": email,
        "whatsApp": "9000000000",
        "rollNumber": "2024BTECH001",
        "residency": "Hosteller",
        "messFood": False,
        "course": "BTech",
        "batch": "2024",
    }
    doc.update(overrides)
    return doc


def team_doc(team_name: str, prefix: str | None = None, **overrides: Any) -> dict[str, Any]:
    """A complete stored team with leader <prefix>lead@jklu.edu.in and members m1..m3."""
    p = prefix if prefix is not None else team_name.lower().replace(" ", "")
    doc = {
        "teamName": team_name,
        "leaderName": f"{team_name} Lead",
        "leaderEmail": f"{p}lead@jklu.edu.in",
        "leaderWhatsApp": "9000000000",
        "leaderRollNumber": "2024BTECH100",
        "leaderResidency": "Hosteller",
        "leaderMessFood": False,
        "leaderCourse": "BTech",
        "leaderBatch": "2024",
        "isCheckedIn": False,
        "extensionBoardGiven": False,
        "members": [member(f"{team_name} M{i}", f"{p}m{i}@jklu.edu.in") for i in (1, 2, 3)],
    }
    doc.update(overrides)
    return doc


@pytest.fixture
def make_team_doc():
    return team_doc
