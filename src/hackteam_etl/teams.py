"""hackteam_etl.teams

Team aggregation: groups flat roster rows into source teams.

Rows are grouped by their trimmed team name (no further normalization).
Rows with a blank team name are standalone individuals and are reported
separately.  Each group needs exactly one leader row; groups without one
are skipped.  A source team is complete when it has exactly three members.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from hackteam_etl.csv_lines import SourceRow
from hackteam_etl.normalize import (
    normalize_batch,
    normalize_course,
    normalize_email,
    normalize_mess_food,
    normalize_phone,
    normalize_residency,
    normalize_roll_number,
    normalize_room_number,
    parse_board_allotted,
    parse_check_in,
    trim,
)

log = logging.getLogger(__name__)

TEAM_SIZE = 3


# ---------------------------------------------------------------------------
# Source team
# ---------------------------------------------------------------------------

@dataclass
class SourceTeam:
    team_name: str
    leader: SourceRow
    members: list[SourceRow]
    checked_in: bool
    board_allotted: bool
    room_number: str
    team_number: str

    @property
    def is_complete(self) -> bool:
        return len(self.members) == TEAM_SIZE

    @property
    def leader_email(self) -> str:
        return normalize_email(self.leader.email)

    def member_emails(self) -> set[str]:
        return {normalize_email(m.email) for m in self.members}

    def all_emails(self) -> list[str]:
        return [self.leader_email] + [normalize_email(m.email) for m in self.members]


@dataclass
class Aggregation:
    teams: list[SourceTeam] = field(default_factory=list)
    standalone: list[SourceRow] = field(default_factory=list)
    no_leader: list[str] = field(default_factory=list)


def group_into_teams(rows: list[SourceRow]) -> Aggregation:
    result = Aggregation()
    groups: dict[str, list[SourceRow]] = {}

    for row in rows:
        key = trim(row.team_name)
        if not key:
            result.standalone.append(row)
            continue
        groups.setdefault(key, []).append(row)

    for team_name, group in groups.items():
        leader = next((r for r in group if r.is_leader), None)
        if leader is None:
            log.warning("team %r has no leader row, skipping", team_name)
            result.no_leader.append(team_name)
            continue

        members = [r for r in group if r is not leader and not r.is_leader]
        extra_leaders = [r for r in group if r is not leader and r.is_leader]
        if extra_leaders:
            log.warning(
                "team %r has %d extra leader row(s); using the first",
                team_name, len(extra_leaders),
            )

        result.teams.append(SourceTeam(
            team_name=team_name,
            leader=leader,
            members=members,
            checked_in=parse_check_in(leader.check_in),
            board_allotted=parse_board_allotted(leader.board_allotted),
            room_number=normalize_room_number(leader.room_number),
            team_number=trim(leader.team_number),
        ))

    return result


# ---------------------------------------------------------------------------
# Document fragments
# ---------------------------------------------------------------------------

def member_document(row: SourceRow) -> dict[str, Any]:
    """Return the normalized stored form of one member row."""
    return {
        "name": trim(row.name),
        "email": normalize_email(row.email),
        "whatsApp": normalize_phone(row.whatsapp),
        "rollNumber": normalize_roll_number(row.roll_number),
        "residency": normalize_residency(row.residency),
        "messFood": normalize_mess_food(row.mess_food),
        "course": normalize_course(row.course),
        "batch": normalize_batch(row.batch),
    }


def leader_fields(row: SourceRow) -> dict[str, Any]:
    """Return the leader attribute block, keyed as stored on the team."""
    m = member_document(row)
    return {
        "leaderName": m["name"],
        "leaderEmail": m["email"],
        "leaderWhatsApp": m["whatsApp"],
        "leaderRollNumber": m["rollNumber"],
        "leaderResidency": m["residency"],
        "leaderMessFood": m["messFood"],
        "leaderCourse": m["course"],
        "leaderBatch": m["batch"],
    }
