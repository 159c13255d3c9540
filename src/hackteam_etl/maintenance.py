"""hackteam_etl.maintenance

One-shot store maintenance modes:

  normalize_rooms     re-normalize every stored roomNumber
  cleanup_duplicates  keep the earliest team among name collisions, delete the rest
  duplicate_emails    read-only audit of emails registered more than once
  fix_batch_course    repair known bad batch values (and the course they imply)

All writing modes honour dry_run the same way the sync passes do: the
TeamChange records are identical, only the store writes are skipped.
"""

from __future__ import annotations

import copy
import logging
import re
from typing import Any

from hackteam_etl.normalize import (
    is_room_number,
    normalize_email,
    normalize_room_number,
    trim,
)
from hackteam_etl.shared import RunCounters, TeamChange
from hackteam_etl.store import TeamStore

log = logging.getLogger(__name__)

# batch value -> (replacement batch, implied course or None to leave as is)
BATCH_FIXES: dict[str, tuple[str, str | None]] = {
    "2024(HSB)": ("2024", "HSB"),
    "2028": ("2024", None),
}


# ---------------------------------------------------------------------------
# normalize_rooms
# ---------------------------------------------------------------------------

def normalize_stored_rooms(
    store: TeamStore,
    counters: RunCounters,
    dry_run: bool = True,
    clear_unrecognized: bool = False,
) -> None:
    """Rewrite every stored roomNumber into canonical form.

    Values that do not normalize to a full room (a roll number typed into
    the room column, a building with no room) are left alone unless
    *clear_unrecognized* is set, in which case they are blanked.
    """
    for doc in store.find_all():
        old = doc.get("roomNumber") or ""
        if not old:
            continue
        new = normalize_room_number(old)
        cleared = clear_unrecognized and not is_room_number(new)
        if cleared:
            new = ""
        elif not new or new == old:
            continue
        counters.record(TeamChange(
            action="update",
            team_name=str(doc.get("teamName", "")),
            fields={"roomNumber": new},
            descriptions=[f'roomNumber: "{old}" -> "{new}"'],
        ))
        if cleared:
            counters.rooms_cleared += 1
        else:
            counters.rooms_normalized += 1
        if not dry_run:
            store.update_one(doc["_id"], {"roomNumber": new})
            counters.writes_applied += 1


# ---------------------------------------------------------------------------
# cleanup_duplicates
# ---------------------------------------------------------------------------

def team_name_pattern(team_name: str) -> str:
    """Anchored, case-insensitive-ready pattern allowing any spacing between words.

    "Ghost Protocol" -> ^ghost\\s*protocol$
    """
    words = trim(team_name).lower().split()
    if not words:
        raise ValueError("team_name must not be blank")
    return "^" + r"\s*".join(re.escape(w) for w in words) + "$"


def cleanup_duplicate_teams(
    store: TeamStore,
    team_name: str,
    counters: RunCounters,
    dry_run: bool = True,
) -> dict[str, Any] | None:
    """Delete all but the earliest-created team whose name matches *team_name*.

    Returns the kept team document, or None when nothing matched.
    """
    dupes = sorted(
        store.find_by_name_pattern(team_name_pattern(team_name)),
        key=lambda d: (d.get("createdAt") is None, d.get("createdAt") or 0, d.get("_id")),
    )
    if not dupes:
        counters.warnings.append(f'no team matches "{team_name}"')
        return None

    keep, extra = dupes[0], dupes[1:]
    for doc in extra:
        counters.record(TeamChange(
            action="delete",
            team_name=str(doc.get("teamName", "")),
            descriptions=[
                f"id {doc.get('_id')}, created {doc.get('createdAt')}",
                f"kept id {keep.get('_id')} (\"{keep.get('teamName')}\")",
            ],
        ))
        counters.duplicates_deleted += 1
        if not dry_run:
            store.delete_one(doc["_id"])
            counters.writes_applied += 1
    return keep


# ---------------------------------------------------------------------------
# duplicate_emails
# ---------------------------------------------------------------------------

def find_duplicate_emails(
    store: TeamStore,
    counters: RunCounters,
) -> dict[str, list[str]]:
    """Return {email: [role, ...]} for every email held by more than one role."""
    holders: dict[str, list[str]] = {}
    for doc in store.find_all():
        name = doc.get("teamName", "")
        leader_email = normalize_email(doc.get("leaderEmail"))
        if leader_email:
            holders.setdefault(leader_email, []).append(f'leader of "{name}"')
        for i, member in enumerate(doc.get("members") or [], start=1):
            email = normalize_email(member.get("email"))
            if email:
                holders.setdefault(email, []).append(f'member {i} of "{name}"')

    dupes = {email: roles for email, roles in holders.items() if len(roles) > 1}
    counters.duplicate_emails_found = len(dupes)
    for email, roles in sorted(dupes.items()):
        counters.warnings.append(f"{email}: {'; '.join(roles)}")
    return dupes


# ---------------------------------------------------------------------------
# fix_batch_course
# ---------------------------------------------------------------------------

def _fixed_batch(batch: Any) -> tuple[str, str | None] | None:
    if not isinstance(batch, str):
        return None
    return BATCH_FIXES.get(batch.strip())


def fix_batch_course(
    store: TeamStore,
    counters: RunCounters,
    dry_run: bool = True,
) -> None:
    for doc in store.find_all():
        updates: dict[str, Any] = {}
        changes: list[str] = []

        fix = _fixed_batch(doc.get("leaderBatch"))
        if fix:
            batch, course = fix
            updates["leaderBatch"] = batch
            changes.append(f'leaderBatch: "{doc.get("leaderBatch")}" -> "{batch}"')
            if course:
                updates["leaderCourse"] = course
                changes.append(f'leaderCourse: "{doc.get("leaderCourse")}" -> "{course}"')

        members = copy.deepcopy(doc.get("members") or [])
        members_changed = False
        for i, member in enumerate(members, start=1):
            fix = _fixed_batch(member.get("batch"))
            if not fix:
                continue
            batch, course = fix
            changes.append(f'member {i} batch: "{member.get("batch")}" -> "{batch}"')
            member["batch"] = batch
            if course:
                member["course"] = course
            members_changed = True
        if members_changed:
            updates["members"] = members

        if not updates:
            continue
        counters.record(TeamChange(
            action="update",
            team_name=str(doc.get("teamName", "")),
            fields=updates,
            descriptions=changes,
        ))
        counters.batch_fixes += 1
        if not dry_run:
            store.update_one(doc["_id"], updates)
            counters.writes_applied += 1
