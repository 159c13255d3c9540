"""hackteam_etl.sync_team_csv

Unified CLI entrypoint for team-roster reconciliation and store maintenance.

Modes (--mode):
  full_sync           roster pass, then submission pass (default)
  roster_sync         roster export only (check-in, board, room, team #, people)
  submission_sync     submissions export only (problem statement, repo, room, team #)
  normalize_rooms     re-normalize every stored room number
                      (--clear-invalid-rooms also blanks values that are not a room)
  cleanup_duplicates  keep the earliest of the teams named --team-name
  duplicate_emails    report emails registered more than once (read-only)
  fix_batch_course    repair known bad batch/course values

Nothing is written unless --apply is given.

Usage (full_sync):
    python -m hackteam_etl.sync_team_csv \\
        --mode full_sync \\
        --db-dsn "$DB_DSN" \\
        --roster-path "exports/final.csv" \\
        --submissions-path "exports/Pre-Hack Submission of PS and GitHub Repo.csv" \\
        --apply

Usage (cleanup_duplicates):
    python -m hackteam_etl.sync_team_csv \\
        --mode cleanup_duplicates \\
        --team-name "Ghost Protocol" \\
        --apply
"""

from __future__ import annotations

import json
import logging
import sys
import uuid
from datetime import datetime, timezone
from pathlib import Path

import click
import psycopg

from hackteam_etl.aliases import AliasFileError, resolve_alias_table
from hackteam_etl.csv_lines import read_roster, read_submissions
from hackteam_etl.maintenance import (
    cleanup_duplicate_teams,
    find_duplicate_emails,
    fix_batch_course,
    normalize_stored_rooms,
)
from hackteam_etl.reconcile import (
    aggregate_roster,
    build_sync_report,
    run_full_sync,
    run_roster_sync,
    run_submission_sync,
)
from hackteam_etl.shared import (
    RejectWriter,
    RunCounters,
    build_change_report,
    write_run_report,
)
from hackteam_etl.store import PgTeamStore

SYNC_MODES = ("full_sync", "roster_sync", "submission_sync")
MAINTENANCE_MODES = (
    "normalize_rooms", "cleanup_duplicates", "duplicate_emails", "fix_batch_course",
)


def _fatal(run_id: str, message: str) -> None:
    click.echo(f"[{run_id}] FATAL: {message}", err=True)
    sys.exit(1)


# ---------------------------------------------------------------------------
# Flag validation
# ---------------------------------------------------------------------------

def _validate_sync_flags(
    mode: str,
    roster_path: str | None,
    submissions_path: str | None,
    run_id: str,
) -> None:
    required: dict[str, str | None] = {}
    if mode in ("full_sync", "roster_sync"):
        required["--roster-path"] = roster_path
    if mode in ("full_sync", "submission_sync"):
        required["--submissions-path"] = submissions_path
    missing = [k for k, v in required.items() if v is None]
    if missing:
        _fatal(run_id, f"{mode} mode requires: {', '.join(missing)}")
    for flag, value in required.items():
        if not Path(value).is_file():  # type: ignore[arg-type]
            _fatal(run_id, f"{flag} not found: {value}")


def _validate_cleanup_flags(team_name: str | None, run_id: str) -> None:
    if not team_name or not team_name.strip():
        _fatal(run_id, "cleanup_duplicates mode requires: --team-name")


# ---------------------------------------------------------------------------
# Unified CLI
# ---------------------------------------------------------------------------

@click.command()
@click.option(
    "--mode",
    default="full_sync",
    type=click.Choice(SYNC_MODES + MAINTENANCE_MODES),
    show_default=True,
    help="Run mode",
)
@click.option("--db-dsn", envvar="DB_DSN", required=True, help="PostgreSQL DSN (or $DB_DSN)")
@click.option("--roster-path", default=None, type=click.Path(), help="[full_sync|roster_sync] Roster export CSV")
@click.option("--submissions-path", default=None, type=click.Path(), help="[full_sync|submission_sync] Submissions export CSV")
@click.option("--alias-file", default=None, type=click.Path(), help="[sync modes] YAML file extending the built-in team-name aliases")
@click.option("--team-name", default=None, help="[cleanup_duplicates] Team name whose duplicates are removed")
@click.option(
    "--clear-invalid-rooms",
    is_flag=True,
    default=False,
    help="[normalize_rooms] Blank room values that are not a full room (e.g. a roll number)",
)
@click.option("--apply", is_flag=True, default=False, help="Write changes; without it the run only reports")
@click.option(
    "--rejects-path",
    default="./artifacts/rejects/team_sync_rejects.csv",
    show_default=True,
)
@click.option("--run-id", default=None, help="Override UUID for log correlation")
@click.option("--verbose", is_flag=True, default=False, help="Log store statements and skips")
def main(
    mode: str,
    db_dsn: str,
    roster_path: str | None,
    submissions_path: str | None,
    alias_file: str | None,
    team_name: str | None,
    clear_invalid_rooms: bool,
    apply: bool,
    rejects_path: str,
    run_id: str | None,
    verbose: bool,
) -> None:
    """Hackathon team sync CLI."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    run_id = run_id or str(uuid.uuid4())
    started_at = datetime.now(timezone.utc).isoformat()
    dry_run = not apply
    counters = RunCounters()

    click.echo(f"[{run_id}] Starting {mode} run (dry_run={dry_run})")

    aliases: dict[str, str] = {}
    if mode in SYNC_MODES:
        _validate_sync_flags(mode, roster_path, submissions_path, run_id)
        try:
            aliases = resolve_alias_table(Path(alias_file) if alias_file else None)
        except (AliasFileError, FileNotFoundError) as exc:
            _fatal(run_id, f"alias file: {exc}")
    elif mode == "cleanup_duplicates":
        _validate_cleanup_flags(team_name, run_id)

    try:
        conn = psycopg.connect(db_dsn, autocommit=True)
    except psycopg.OperationalError as exc:
        _fatal(run_id, f"cannot connect to store: {exc}")

    rejects = RejectWriter(Path(rejects_path))
    try:
        store = PgTeamStore(conn)
        if mode in SYNC_MODES:
            _run_sync(
                mode, store, counters, rejects, aliases,
                roster_path=roster_path,
                submissions_path=submissions_path,
                dry_run=dry_run,
                run_id=run_id,
            )
            click.echo(build_sync_report(counters, dry_run=dry_run))
        else:
            title = _run_maintenance(
                mode, store, counters, team_name, dry_run,
                clear_invalid_rooms=clear_invalid_rooms,
            )
            click.echo(build_change_report(counters, title, dry_run=dry_run))
    finally:
        conn.close()
        rejects.close()

    report_path = write_run_report(
        run_id, started_at, mode, dry_run,
        {
            "roster_path": roster_path,
            "submissions_path": submissions_path,
            "alias_file": alias_file,
        },
        counters,
    )
    if rejects.written:
        click.echo(f"[{run_id}] Rejects: {rejects.written} row(s) -> {rejects.path}")
    click.echo(f"[{run_id}] Run report: {report_path}")
    if dry_run:
        click.echo(f"[{run_id}] DRY RUN -- nothing written.")
    else:
        click.echo(f"[{run_id}] Done. {counters.writes_applied} write(s) applied.")


# ---------------------------------------------------------------------------
# Sync modes
# ---------------------------------------------------------------------------

def _run_sync(
    mode: str,
    store: PgTeamStore,
    counters: RunCounters,
    rejects: RejectWriter,
    aliases: dict[str, str],
    roster_path: str | None,
    submissions_path: str | None,
    dry_run: bool,
    run_id: str,
) -> None:
    teams = []
    submissions = []

    if mode in ("full_sync", "roster_sync"):
        rows, read = read_roster(Path(roster_path))  # type: ignore[arg-type]
        counters.rows_read += read.lines_read
        counters.rows_dropped += read.rows_dropped
        teams = aggregate_roster(rows, counters, rejects)
        click.echo(
            f"[{run_id}] Roster: {read.lines_read} lines, {read.rows_dropped} dropped, "
            f"{len(teams)} teams, {counters.standalone_rows} standalone"
        )

    if mode in ("full_sync", "submission_sync"):
        submissions, read = read_submissions(Path(submissions_path))  # type: ignore[arg-type]
        counters.submission_rows_read += read.lines_read
        counters.submission_rows_dropped += read.rows_dropped
        click.echo(
            f"[{run_id}] Submissions: {read.lines_read} lines, {read.rows_dropped} dropped"
        )

    if mode == "full_sync":
        run_full_sync(store, teams, submissions, aliases, counters, dry_run, rejects)
    elif mode == "roster_sync":
        run_roster_sync(store, teams, aliases, counters, dry_run, rejects)
    else:
        run_submission_sync(store, submissions, aliases, counters, dry_run, rejects)


# ---------------------------------------------------------------------------
# Maintenance modes
# ---------------------------------------------------------------------------

def _run_maintenance(
    mode: str,
    store: PgTeamStore,
    counters: RunCounters,
    team_name: str | None,
    dry_run: bool,
    clear_invalid_rooms: bool = False,
) -> str:
    if mode == "normalize_rooms":
        normalize_stored_rooms(store, counters, dry_run, clear_unrecognized=clear_invalid_rooms)
        return "Room Number Normalization Report"
    if mode == "cleanup_duplicates":
        cleanup_duplicate_teams(store, team_name or "", counters, dry_run)
        return f'Duplicate Cleanup Report: "{team_name}"'
    if mode == "duplicate_emails":
        dupes = find_duplicate_emails(store, counters)
        click.echo(json.dumps(dupes, indent=2, sort_keys=True))
        return f"Duplicate Email Report ({len(dupes)} found)"
    fix_batch_course(store, counters, dry_run)
    return "Batch/Course Repair Report"


if __name__ == "__main__":
    main()
