"""hackteam_etl.reconcile

Reconciliation of spreadsheet exports into the team store.

Roster pass (per source team):
  1. Resolve the stored team (direct, alias, fuzzy; see aliases.TeamIndex).
  2. Found: diff and, if anything changed, overwrite only the changed fields.
       - isCheckedIn / extensionBoardGiven only ever go false -> true
       - roomNumber / allocatedTeamId when the source value is non-empty
         and differs
       - the leader block, as a unit, when the leader email differs
       - the member list, as a unit, when the source team is complete and
         the member email sets differ
  3. Not found, complete (3 members): insert a new team document.
  4. Not found, incomplete: skip and report the member count.

Submission pass (per submission row): resolve by team name only and
update problemStatement, githubRepo, roomNumber and allocatedTeamId with
the same non-empty-and-different rule.  Unmatched names are reported.
In full_sync the roster wins: a submission room or team number that
differs from the value the roster pass set is dropped with a warning.

Dry run builds exactly the same TeamChange records but never writes.
Store errors propagate and abort the run; per-team problems are counted,
warned about and written to the rejects file.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from hackteam_etl.aliases import MATCH_FUZZY, TeamIndex, TeamMatch
from hackteam_etl.csv_lines import SourceRow, SubmissionRow
from hackteam_etl.normalize import (
    normalize_email,
    normalize_room_number,
    normalize_space,
    normalize_team_name,
    trim,
)
from hackteam_etl.shared import RejectWriter, RunCounters, TeamChange
from hackteam_etl.store import TeamStore
from hackteam_etl.teams import (
    TEAM_SIZE,
    SourceTeam,
    group_into_teams,
    leader_fields,
    member_document,
)

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _stored_str(doc: dict[str, Any], key: str) -> str:
    value = doc.get(key)
    return "" if value is None else str(value)


def _note_ambiguity(match: TeamMatch, source_name: str, counters: RunCounters) -> None:
    if match.method != MATCH_FUZZY or not match.ambiguous_with:
        return
    counters.ambiguous_matches += 1
    msg = (
        f'ambiguous fuzzy match for "{source_name}": used "{match.team_name}", '
        f"also matches {match.ambiguous_with!r}"
    )
    counters.warnings.append(msg)
    log.warning(msg)


def _apply_update(
    store: TeamStore,
    index: TeamIndex,
    doc: dict[str, Any],
    updates: dict[str, Any],
    dry_run: bool,
    counters: RunCounters,
) -> None:
    if not dry_run and doc.get("_id") is not None:
        store.update_one(doc["_id"], updates)
        counters.writes_applied += 1
    # Keep the in-memory copy current so a later source row that resolves to
    # the same team diffs against the new state in both modes.
    doc.update(updates)
    index.touch(doc)


def _doc_emails(doc: dict[str, Any]) -> set[str]:
    emails = {normalize_email(doc.get("leaderEmail"))}
    emails |= {normalize_email(m.get("email")) for m in doc.get("members") or []}
    emails.discard("")
    return emails


def _reject(rejects: RejectWriter | None, row: dict[str, Any], reason: str) -> None:
    if rejects is not None:
        rejects.write(row, reason)


# ---------------------------------------------------------------------------
# Roster diff
# ---------------------------------------------------------------------------

def _describe_people(docs: list[dict[str, Any]]) -> str:
    return ", ".join(f"{d.get('name', '')} ({d.get('email', '')})" for d in docs)


def diff_roster_team(
    source: SourceTeam,
    stored: dict[str, Any],
) -> tuple[dict[str, Any], list[str]]:
    """Return (updates, descriptions) needed to bring *stored* in line with *source*."""
    updates: dict[str, Any] = {}
    changes: list[str] = []

    if source.checked_in and not stored.get("isCheckedIn"):
        updates["isCheckedIn"] = True
        changes.append("isCheckedIn: false -> true")

    if source.board_allotted and not stored.get("extensionBoardGiven"):
        updates["extensionBoardGiven"] = True
        changes.append("extensionBoardGiven: false -> true")

    old_room = _stored_str(stored, "roomNumber")
    if source.room_number and source.room_number != old_room:
        updates["roomNumber"] = source.room_number
        changes.append(f'roomNumber: "{old_room}" -> "{source.room_number}"')

    old_team_no = _stored_str(stored, "allocatedTeamId")
    if source.team_number and source.team_number != old_team_no:
        updates["allocatedTeamId"] = source.team_number
        changes.append(f'allocatedTeamId: "{old_team_no}" -> "{source.team_number}"')

    old_leader_email = _stored_str(stored, "leaderEmail").lower().strip()
    if source.leader_email and source.leader_email != old_leader_email:
        block = leader_fields(source.leader)
        updates.update(block)
        changes.append(
            f'leader: "{_stored_str(stored, "leaderName")}" ({old_leader_email}) '
            f'-> "{block["leaderName"]}" ({block["leaderEmail"]})'
        )

    if source.is_complete:
        stored_members: list[dict[str, Any]] = list(stored.get("members") or [])
        stored_emails = {normalize_email(m.get("email")) for m in stored_members}
        source_docs = [member_document(m) for m in source.members]
        source_emails = {d["email"] for d in source_docs}
        if stored_emails ^ source_emails:
            updates["members"] = source_docs
            removed = [m for m in stored_members if normalize_email(m.get("email")) not in source_emails]
            added = [d for d in source_docs if d["email"] not in stored_emails]
            if removed:
                changes.append(f"members removed: {_describe_people(removed)}")
            if added:
                changes.append(f"members added: {_describe_people(added)}")

    return updates, changes


def build_team_document(source: SourceTeam, now: datetime) -> dict[str, Any]:
    doc: dict[str, Any] = {"teamName": source.team_name}
    doc.update(leader_fields(source.leader))
    doc.update({
        "isCheckedIn": source.checked_in,
        "extensionBoardGiven": source.board_allotted,
        "members": [member_document(m) for m in source.members],
        "createdAt": now,
    })
    if source.room_number:
        doc["roomNumber"] = source.room_number
    if source.team_number:
        doc["allocatedTeamId"] = source.team_number
    return doc


def _describe_insert(source: SourceTeam) -> list[str]:
    lines = [
        f"leader: {trim(source.leader.name)} ({source.leader_email})",
        f"members: {', '.join(trim(m.name) for m in source.members)}",
        f"checked in: {source.checked_in}, board: {source.board_allotted}",
    ]
    if source.room_number:
        lines.append(f"room: {source.room_number}")
    if source.team_number:
        lines.append(f"team #: {source.team_number}")
    return lines


def _insert_warnings(store: TeamStore, index: TeamIndex, source: SourceTeam) -> list[str]:
    """Flag email collisions a new team would introduce; nothing is blocked.

    Teams inserted or updated earlier in the run are checked in memory, so a
    dry run sees the same collisions an applied run would.
    """
    warnings: list[str] = []
    emails = [e for e in source.all_emails() if e]
    if len(set(emails)) != len(emails):
        warnings.append(f'insert "{source.team_name}": duplicate email within team')
    clashes = {
        str(d.get("teamName", ""))
        for d in store.find_by_emails(emails)
        if not index.is_touched(str(d.get("teamName", "")))
    }
    clashes |= {
        str(d.get("teamName", ""))
        for d in index.touched()
        if _doc_emails(d) & set(emails)
    }
    if clashes:
        names = sorted(clashes)
        warnings.append(
            f'insert "{source.team_name}": email(s) already registered to {names!r}'
        )
    return warnings


# ---------------------------------------------------------------------------
# Roster pass
# ---------------------------------------------------------------------------

def aggregate_roster(
    rows: list[SourceRow],
    counters: RunCounters,
    rejects: RejectWriter | None = None,
) -> list[SourceTeam]:
    """Group roster rows into teams, counting and rejecting the skip categories."""
    agg = group_into_teams(rows)
    counters.standalone_rows += len(agg.standalone)
    for row in agg.standalone:
        _reject(rejects, {"name": row.name, "email": row.email}, "standalone_individual")
    counters.teams_no_leader += len(agg.no_leader)
    for name in agg.no_leader:
        counters.warnings.append(f'skip "{name}": no leader row')
        _reject(rejects, {"team_name": name}, "no_leader")
    return agg.teams


def _pin_roster_values(
    pinned: dict[str, dict[str, str]] | None,
    team_name: str,
    source: SourceTeam,
) -> None:
    if pinned is None:
        return
    values = {"roomNumber": source.room_number, "allocatedTeamId": source.team_number}
    pinned[normalize_team_name(team_name)] = {k: v for k, v in values.items() if v}


def _sync_roster_team(
    store: TeamStore,
    index: TeamIndex,
    team: SourceTeam,
    aliases: dict[str, str],
    counters: RunCounters,
    rejects: RejectWriter | None,
    dry_run: bool,
    pinned: dict[str, dict[str, str]] | None,
) -> None:
    match = index.resolve(team.team_name, aliases)

    if match is not None:
        counters.teams_matched += 1
        _pin_roster_values(pinned, match.team_name, team)
        _note_ambiguity(match, team.team_name, counters)
        updates, descriptions = diff_roster_team(team, match.doc)
        if not updates:
            counters.teams_unchanged += 1
            return
        counters.record(TeamChange(
            action="update",
            team_name=match.team_name,
            source_name=team.team_name,
            match_method=match.method,
            fields=updates,
            descriptions=descriptions,
        ))
        counters.teams_updated += 1
        _apply_update(store, index, match.doc, updates, dry_run, counters)
        return

    counters.teams_not_found += 1
    if not team.is_complete:
        counters.teams_skipped_incomplete += 1
        reason = f"incomplete_team: {len(team.members)} member(s) instead of {TEAM_SIZE}"
        counters.warnings.append(f'skip "{team.team_name}": {reason}')
        log.info("skip %r: %s", team.team_name, reason)
        _reject(rejects, {"team_name": team.team_name, "member_count": len(team.members)}, reason)
        return

    for w in _insert_warnings(store, index, team):
        counters.warnings.append(w)
        log.warning(w)

    doc = build_team_document(team, datetime.now(timezone.utc))
    counters.record(TeamChange(
        action="insert",
        team_name=team.team_name,
        source_name=team.team_name,
        fields={k: v for k, v in doc.items() if k != "createdAt"},
        descriptions=_describe_insert(team),
    ))
    counters.teams_inserted += 1
    if not dry_run:
        doc["_id"] = store.insert_one(doc)
        counters.writes_applied += 1
    # Later source teams whose names collide with this one update it
    # instead of inserting a second copy.
    index.add(doc)
    index.touch(doc)
    _pin_roster_values(pinned, team.team_name, team)


def run_roster_sync(
    store: TeamStore,
    teams: list[SourceTeam],
    aliases: dict[str, str],
    counters: RunCounters,
    dry_run: bool = True,
    rejects: RejectWriter | None = None,
    index: TeamIndex | None = None,
    pinned: dict[str, dict[str, str]] | None = None,
) -> TeamIndex:
    """Reconcile source teams into the store and return the team index used.

    The index is built from the store unless one is passed in.  When
    *pinned* is given it is filled with the non-empty roster room and team
    numbers of every matched or inserted team, keyed by normalized name.
    """
    if index is None:
        index = TeamIndex.build(store.find_all())
    counters.teams_grouped += len(teams)
    for team in teams:
        _sync_roster_team(store, index, team, aliases, counters, rejects, dry_run, pinned)
    return index


# ---------------------------------------------------------------------------
# Submission pass
# ---------------------------------------------------------------------------

def diff_submission(
    row: SubmissionRow,
    stored: dict[str, Any],
) -> tuple[dict[str, Any], list[str]]:
    updates: dict[str, Any] = {}
    changes: list[str] = []

    problem = normalize_space(row.problem_statement)
    if problem and problem != _stored_str(stored, "problemStatement"):
        updates["problemStatement"] = problem
        preview = problem if len(problem) <= 60 else problem[:60] + "..."
        changes.append(f'problemStatement: "{preview}"')

    repo = trim(row.repo_link)
    if repo and repo != _stored_str(stored, "githubRepo"):
        updates["githubRepo"] = repo
        changes.append(f"githubRepo: {repo}")

    old_room = _stored_str(stored, "roomNumber")
    room = normalize_room_number(row.room_number)
    if room and room != old_room:
        updates["roomNumber"] = room
        changes.append(f'roomNumber: "{old_room}" -> "{room}"')

    old_team_no = _stored_str(stored, "allocatedTeamId")
    team_no = trim(row.team_number)
    if team_no and team_no != old_team_no:
        updates["allocatedTeamId"] = team_no
        changes.append(f'allocatedTeamId: "{old_team_no}" -> "{team_no}"')

    return updates, changes


def _drop_pinned_conflicts(
    team_name: str,
    updates: dict,
    descriptions: list[str],
    roster_values: dict[str, str],
    counters: RunCounters,
) -> tuple[dict, list[str]]:
    for field, roster_value in roster_values.items():
        value = updates.get(field)
        if value is None or value == roster_value:
            continue
        del updates[field]
        descriptions = [d for d in descriptions if not d.startswith(f"{field}:")]
        counters.submission_conflicts += 1
        counters.warnings.append(
            f'conflict "{team_name}": {field} roster "{roster_value}" vs '
            f'submission "{value}", keeping roster value'
        )
        log.warning("team %r: %s conflict, keeping roster value %r", team_name, field, roster_value)
    return updates, descriptions


def run_submission_sync(
    store: TeamStore,
    rows: list[SubmissionRow],
    aliases: dict[str, str],
    counters: RunCounters,
    dry_run: bool = True,
    rejects: RejectWriter | None = None,
    index: TeamIndex | None = None,
    pinned: dict[str, dict[str, str]] | None = None,
) -> TeamIndex:
    """Apply submission rows to matched teams.

    ``pinned`` holds the roster's room and team number per team (keyed by
    normalized name).  A submission value that disagrees with a pinned one
    is dropped with a conflict warning, so the roster value stays stored.
    """
    if index is None:
        index = TeamIndex.build(store.find_all())

    for row in rows:
        name = trim(row.team_name)
        if not name:
            counters.submissions_blank_team += 1
            continue

        match = index.resolve(name, aliases)
        if match is None:
            counters.submissions_not_found += 1
            counters.warnings.append(f'not found: "{name}"')
            log.info("submission team %r not found in store", name)
            _reject(rejects, {"team_name": name, "email": row.email}, "team_not_found")
            continue

        counters.submissions_matched += 1
        _note_ambiguity(match, name, counters)
        updates, descriptions = diff_submission(row, match.doc)
        if pinned:
            updates, descriptions = _drop_pinned_conflicts(
                match.team_name, updates, descriptions,
                pinned.get(normalize_team_name(match.team_name), {}), counters,
            )
        if not updates:
            continue
        counters.record(TeamChange(
            action="update",
            team_name=match.team_name,
            source_name=name,
            match_method=match.method,
            fields=updates,
            descriptions=descriptions,
        ))
        counters.submissions_updated += 1
        _apply_update(store, index, match.doc, updates, dry_run, counters)

    return index


# ---------------------------------------------------------------------------
# Both passes
# ---------------------------------------------------------------------------

def run_full_sync(
    store: TeamStore,
    teams: list[SourceTeam],
    submissions: list[SubmissionRow],
    aliases: dict[str, str],
    counters: RunCounters,
    dry_run: bool = True,
    rejects: RejectWriter | None = None,
) -> None:
    """Roster pass, then submission pass against the post-roster state.

    In apply mode the index is rebuilt from the store between passes.  A dry
    run never wrote anything, so it carries its in-memory index forward
    instead; both modes therefore report the same second-pass changes.

    Where the roster and a submission disagree on room or team number the
    roster wins and the conflict is reported as a warning.
    """
    pinned: dict[str, dict[str, str]] = {}
    index = run_roster_sync(
        store, teams, aliases, counters, dry_run, rejects, pinned=pinned,
    )
    run_submission_sync(
        store, submissions, aliases, counters, dry_run, rejects,
        index=index if dry_run else None,
        pinned=pinned,
    )


# ---------------------------------------------------------------------------
# Report
# ---------------------------------------------------------------------------

def build_sync_report(counters: RunCounters, dry_run: bool = False) -> str:
    lines = [
        "=" * 60,
        "Team Sync Report",
        f"  dry_run: {dry_run}",
        "=" * 60,
    ]
    for change in counters.changes:
        lines.append(change.headline())
        for d in change.descriptions:
            lines.append(f"  - {d}")
    lines += [
        "-" * 60,
        f"  roster rows read:        {counters.rows_read}",
        f"  roster rows dropped:     {counters.rows_dropped}",
        f"  standalone individuals:  {counters.standalone_rows}",
        f"  teams grouped:           {counters.teams_grouped}",
        f"    -> no leader:          {counters.teams_no_leader}",
        f"    -> updated:            {counters.teams_updated}",
        f"    -> unchanged:          {counters.teams_unchanged}",
        f"    -> inserted:           {counters.teams_inserted}",
        f"    -> skipped incomplete: {counters.teams_skipped_incomplete}",
        f"  submission rows read:    {counters.submission_rows_read}",
        f"    -> updated:            {counters.submissions_updated}",
        f"    -> not found:          {counters.submissions_not_found}",
        f"    -> roster conflicts:   {counters.submission_conflicts}",
        f"  ambiguous fuzzy matches: {counters.ambiguous_matches}",
        f"  writes applied:          {counters.writes_applied}",
    ]
    if counters.warnings:
        lines.append(f"\nWarnings ({len(counters.warnings)}):")
        for w in counters.warnings[:20]:
            lines.append(f"  {w}")
        if len(counters.warnings) > 20:
            lines.append(f"  ... and {len(counters.warnings) - 20} more")
    if dry_run:
        lines.append("\nDRY RUN -- no changes written. Re-run with --apply to commit.")
    lines.append("=" * 60)
    return "\n".join(lines)
