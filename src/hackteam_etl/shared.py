"""hackteam_etl.shared

Run bookkeeping shared by every sync and maintenance mode: the rejects
writer, run counters, the per-team change record, and the JSON run report.
"""

from __future__ import annotations

import csv
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, TextIO

REJECT_REASON_COLUMN = "_reject_reason"


# ---------------------------------------------------------------------------
# RejectWriter
# ---------------------------------------------------------------------------

class RejectWriter:
    """CSV of the teams and submission rows a run could not reconcile.

    Each record is a small dict describing the team or row (team name,
    member count, email) plus the reason it was skipped.  The column set is
    taken from the first record; later records with other keys leave those
    columns blank.  The file is only created once something is rejected, so
    a clean run leaves no rejects file behind.
    """

    def __init__(self, path: Path) -> None:
        self._path = path
        self._fh: TextIO | None = None
        self._writer: csv.DictWriter | None = None
        self.written = 0

    @property
    def path(self) -> Path:
        return self._path

    def write(self, record: dict[str, Any], reason: str) -> None:
        if self._writer is None:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._fh = open(self._path, "w", newline="", encoding="utf-8")
            self._writer = csv.DictWriter(
                self._fh,
                fieldnames=[*record, REJECT_REASON_COLUMN],
                extrasaction="ignore",
            )
            self._writer.writeheader()
        self._writer.writerow({**record, REJECT_REASON_COLUMN: reason})
        self.written += 1

    def close(self) -> None:
        if self._fh is not None:
            self._fh.close()
            self._fh = None
            self._writer = None


# ---------------------------------------------------------------------------
# Change record
# ---------------------------------------------------------------------------

@dataclass
class TeamChange:
    """One intended write: an insert, an update, or a delete.

    Built identically in dry-run and apply mode; only whether it is written
    differs.
    """

    action: str                      # 'insert' | 'update' | 'delete'
    team_name: str                   # stored (or to-be-stored) spelling
    source_name: str = ""
    match_method: str | None = None
    fields: dict[str, Any] = field(default_factory=dict)
    descriptions: list[str] = field(default_factory=list)

    def headline(self) -> str:
        label = self.action.upper()
        if self.source_name and self.source_name != self.team_name:
            return f'{label} "{self.team_name}" (source: "{self.source_name}", {self.match_method})'
        return f'{label} "{self.team_name}"'

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action,
            "team_name": self.team_name,
            "source_name": self.source_name,
            "match_method": self.match_method,
            "fields": sorted(self.fields),
            "descriptions": self.descriptions,
        }


# ---------------------------------------------------------------------------
# RunCounters
# ---------------------------------------------------------------------------

@dataclass
class RunCounters:
    # Roster pass
    rows_read: int = 0
    rows_dropped: int = 0
    standalone_rows: int = 0
    teams_grouped: int = 0
    teams_no_leader: int = 0
    teams_matched: int = 0
    teams_updated: int = 0
    teams_unchanged: int = 0
    teams_inserted: int = 0
    teams_skipped_incomplete: int = 0
    teams_not_found: int = 0
    ambiguous_matches: int = 0
    # Submission pass
    submission_rows_read: int = 0
    submission_rows_dropped: int = 0
    submissions_blank_team: int = 0
    submissions_matched: int = 0
    submissions_updated: int = 0
    submissions_not_found: int = 0
    submission_conflicts: int = 0
    # Maintenance modes
    rooms_normalized: int = 0
    rooms_cleared: int = 0
    duplicates_deleted: int = 0
    duplicate_emails_found: int = 0
    batch_fixes: int = 0
    # Store writes actually performed (always 0 in dry-run)
    writes_applied: int = 0
    warnings: list[str] = field(default_factory=list)
    changes: list[TeamChange] = field(default_factory=list)

    def record(self, change: TeamChange) -> None:
        self.changes.append(change)

    def to_dict(self) -> dict[str, Any]:
        return {
            "rows_read": self.rows_read,
            "rows_dropped": self.rows_dropped,
            "standalone_rows": self.standalone_rows,
            "teams_grouped": self.teams_grouped,
            "teams_no_leader": self.teams_no_leader,
            "teams_matched": self.teams_matched,
            "teams_updated": self.teams_updated,
            "teams_unchanged": self.teams_unchanged,
            "teams_inserted": self.teams_inserted,
            "teams_skipped_incomplete": self.teams_skipped_incomplete,
            "teams_not_found": self.teams_not_found,
            "ambiguous_matches": self.ambiguous_matches,
            "submission_rows_read": self.submission_rows_read,
            "submission_rows_dropped": self.submission_rows_dropped,
            "submissions_blank_team": self.submissions_blank_team,
            "submissions_matched": self.submissions_matched,
            "submissions_updated": self.submissions_updated,
            "submissions_not_found": self.submissions_not_found,
            "submission_conflicts": self.submission_conflicts,
            "rooms_normalized": self.rooms_normalized,
            "rooms_cleared": self.rooms_cleared,
            "duplicates_deleted": self.duplicates_deleted,
            "duplicate_emails_found": self.duplicate_emails_found,
            "batch_fixes": self.batch_fixes,
            "writes_applied": self.writes_applied,
            "warnings": self.warnings[:50],
            "changes": [c.to_dict() for c in self.changes],
        }


# ---------------------------------------------------------------------------
# Report writers
# ---------------------------------------------------------------------------

def build_change_report(counters: RunCounters, title: str, dry_run: bool) -> str:
    lines = [
        "=" * 60,
        title,
        f"  dry_run: {dry_run}",
        "=" * 60,
    ]
    for change in counters.changes:
        lines.append(change.headline())
        for d in change.descriptions:
            lines.append(f"  - {d}")
    if not counters.changes:
        lines.append("No changes.")
    if counters.warnings:
        lines.append(f"\nWarnings ({len(counters.warnings)}):")
        for w in counters.warnings[:20]:
            lines.append(f"  {w}")
        if len(counters.warnings) > 20:
            lines.append(f"  ... and {len(counters.warnings) - 20} more")
    lines.append("=" * 60)
    return "\n".join(lines)


def write_run_report(
    run_id: str,
    started_at: str,
    mode: str,
    dry_run: bool,
    source_paths: dict[str, str | None],
    counters: RunCounters,
    reports_dir: Path = Path("./artifacts/reports"),
) -> Path:
    report = {
        "run_id": run_id,
        "mode": mode,
        "started_at": started_at,
        "finished_at": datetime.now(timezone.utc).isoformat(),
        "dry_run": dry_run,
        **source_paths,
        "counters": counters.to_dict(),
    }
    report_path = reports_dir / f"{run_id}.json"
    report_path.parent.mkdir(parents=True, exist_ok=True)
    report_path.write_text(json.dumps(report, indent=2, default=str))
    return report_path
