"""Unit tests for hackteam_etl.shared."""

from __future__ import annotations

import csv
import json
from pathlib import Path

from hackteam_etl.shared import (
    RejectWriter,
    RunCounters,
    TeamChange,
    build_change_report,
    write_run_report,
)


class TestRejectWriter:
    def test_no_file_until_first_write(self, tmp_path: Path):
        writer = RejectWriter(tmp_path / "sub" / "rejects.csv")
        writer.close()
        assert not (tmp_path / "sub" / "rejects.csv").exists()
        assert writer.written == 0

    def test_header_from_first_row(self, tmp_path: Path):
        path = tmp_path / "sub" / "rejects.csv"
        writer = RejectWriter(path)
        writer.write({"team_name": "Tiny", "member_count": 2}, "incomplete_team")
        writer.write({"team_name": "Lost", "extra": "ignored"}, "no_leader")
        writer.close()

        with open(path, newline="", encoding="utf-8") as fh:
            rows = list(csv.DictReader(fh))
        assert list(rows[0]) == ["team_name", "member_count", "_reject_reason"]
        assert rows[1] == {"team_name": "Lost", "member_count": "", "_reject_reason": "no_leader"}
        assert writer.path == path
        assert writer.written == 2


class TestTeamChange:
    def test_headline_same_name(self):
        assert TeamChange("insert", "Fresh", source_name="Fresh").headline() == 'INSERT "Fresh"'

    def test_to_dict_lists_field_names(self):
        change = TeamChange(
            "update", "Akira", "akira", "direct",
            fields={"roomNumber": "EB2 - 204", "isCheckedIn": True},
            descriptions=["isCheckedIn: false -> true"],
        )
        assert change.to_dict() == {
            "action": "update",
            "team_name": "Akira",
            "source_name": "akira",
            "match_method": "direct",
            "fields": ["isCheckedIn", "roomNumber"],
            "descriptions": ["isCheckedIn: false -> true"],
        }


class TestRunCounters:
    def test_to_dict_truncates_warnings(self):
        counters = RunCounters(warnings=[str(i) for i in range(60)])
        counters.record(TeamChange("delete", "Dup"))
        d = counters.to_dict()
        assert len(d["warnings"]) == 50
        assert d["changes"][0]["action"] == "delete"
        assert d["writes_applied"] == 0


class TestBuildChangeReport:
    def test_no_changes(self):
        report = build_change_report(RunCounters(), "Room Normalization", dry_run=True)
        assert "Room Normalization" in report
        assert "No changes." in report

    def test_changes_listed(self):
        counters = RunCounters()
        counters.record(TeamChange("update", "Akira", descriptions=['roomNumber: "204" -> "EB2 - 204"']))
        report = build_change_report(counters, "Room Normalization", dry_run=False)
        assert 'UPDATE "Akira"' in report
        assert '  - roomNumber: "204" -> "EB2 - 204"' in report


class TestWriteRunReport:
    def test_writes_json(self, tmp_path: Path):
        counters = RunCounters(rows_read=5, teams_inserted=1)
        path = write_run_report(
            "run-1", "2025-02-07T10:00:00+00:00", "full_sync", True,
            {"roster_path": "final.csv", "submissions_path": None},
            counters,
            reports_dir=tmp_path / "reports",
        )
        assert path == tmp_path / "reports" / "run-1.json"
        report = json.loads(path.read_text())
        assert report["run_id"] == "run-1"
        assert report["mode"] == "full_sync"
        assert report["dry_run"] is True
        assert report["roster_path"] == "final.csv"
        assert report["submissions_path"] is None
        assert report["counters"]["rows_read"] == 5
        assert report["counters"]["teams_inserted"] == 1
        assert "finished_at" in report
