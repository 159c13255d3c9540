"""Integration tests for PgTeamStore against the team_document schema."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

import psycopg
import pytest

from hackteam_etl.maintenance import team_name_pattern
from hackteam_etl.store import PgTeamStore


def team(name: str, prefix: str, **extra) -> dict:
    doc = {
        "teamName": name,
        "leaderName": f"{name} Lead",
        "leaderEmail": f"{prefix}lead@jklu.edu.in",
        "isCheckedIn": False,
        "extensionBoardGiven": False,
        "members": [
            {"name": f"M{i}", "email": f"{prefix}m{i}@jklu.edu.in"} for i in (1, 2, 3)
        ],
    }
    doc.update(extra)
    return doc


def at(day: int) -> datetime:
    return datetime(2025, 2, day, 9, 0, tzinfo=timezone.utc)


class TestInsertAndRead:
    def test_round_trip_columns(self, db_conn):
        conn, _ = db_conn
        store = PgTeamStore(conn)
        doc_id = store.insert_one(team("Akira", "akira", createdAt=at(1)))

        (doc,) = store.find_all()
        assert doc["_id"] == doc_id
        assert doc["createdAt"] == at(1)
        assert doc["teamName"] == "Akira"
        assert doc["members"][2]["email"] == "akiram3@jklu.edu.in"

        body = conn.execute("SELECT doc FROM team_document").fetchone()[0]
        assert "_id" not in body
        assert "createdAt" not in body

    def test_find_all_oldest_first(self, db_conn):
        conn, _ = db_conn
        store = PgTeamStore(conn)
        store.insert_one(team("Later", "l", createdAt=at(3)))
        store.insert_one(team("Earlier", "e", createdAt=at(1)))
        assert [d["teamName"] for d in store.find_all()] == ["Earlier", "Later"]

    def test_team_name_unique_ignoring_case(self, db_conn):
        conn, _ = db_conn
        store = PgTeamStore(conn)
        store.insert_one(team("Akira", "a"))
        with pytest.raises(psycopg.errors.UniqueViolation):
            store.insert_one(team("AKIRA", "b"))
        assert len(store.find_all()) == 1

    def test_blank_team_name_rejected(self, db_conn):
        conn, _ = db_conn
        with pytest.raises(psycopg.errors.CheckViolation):
            PgTeamStore(conn).insert_one(team("", "x"))


class TestUpdateAndDelete:
    def test_update_merges_only_given_fields(self, db_conn):
        conn, _ = db_conn
        store = PgTeamStore(conn)
        doc_id = store.insert_one(team("Akira", "akira", roomNumber="EB2 - 105"))

        assert store.update_one(doc_id, {"isCheckedIn": True, "roomNumber": "EB2 - 204"})

        (doc,) = store.find_all()
        assert doc["isCheckedIn"] is True
        assert doc["roomNumber"] == "EB2 - 204"
        assert doc["leaderEmail"] == "akiralead@jklu.edu.in"
        assert len(doc["members"]) == 3

    def test_update_replaces_member_list_whole(self, db_conn):
        conn, _ = db_conn
        store = PgTeamStore(conn)
        doc_id = store.insert_one(team("Akira", "akira"))
        store.update_one(doc_id, {"members": [{"name": "Solo", "email": "solo@jklu.edu.in"}]})
        assert store.find_all()[0]["members"] == [{"name": "Solo", "email": "solo@jklu.edu.in"}]

    def test_update_unknown_id(self, db_conn):
        conn, _ = db_conn
        assert PgTeamStore(conn).update_one(str(uuid.uuid4()), {"isCheckedIn": True}) is False

    def test_delete(self, db_conn):
        conn, _ = db_conn
        store = PgTeamStore(conn)
        doc_id = store.insert_one(team("Akira", "akira"))
        assert store.delete_one(doc_id) is True
        assert store.find_all() == []
        assert store.delete_one(doc_id) is False


class TestLookups:
    def test_name_pattern_any_spacing_any_case(self, db_conn):
        conn, _ = db_conn
        store = PgTeamStore(conn)
        store.insert_one(team("GhostProtocol", "g2", createdAt=at(2)))
        store.insert_one(team("Ghost Protocol", "g1", createdAt=at(1)))
        store.insert_one(team("Ghost Protocol Two", "g3", createdAt=at(3)))

        hits = store.find_by_name_pattern(team_name_pattern("ghost protocol"))
        assert [d["teamName"] for d in hits] == ["Ghost Protocol", "GhostProtocol"]

    def test_find_by_emails_leader_and_member(self, db_conn):
        conn, _ = db_conn
        store = PgTeamStore(conn)
        store.insert_one(team("Akira", "akira", createdAt=at(1)))
        store.insert_one(team("Team VAD", "vad", createdAt=at(2)))
        store.insert_one(team("Fresh", "fresh", createdAt=at(3)))

        hits = store.find_by_emails(["AkiraLead@jklu.edu.in", "vadm2@jklu.edu.in", "nobody@x"])
        assert [d["teamName"] for d in hits] == ["Akira", "Team VAD"]

    def test_find_by_emails_empty(self, db_conn):
        conn, _ = db_conn
        assert PgTeamStore(conn).find_by_emails(["", "  "]) == []
