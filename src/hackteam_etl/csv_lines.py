"""hackteam_etl.csv_lines

Line-oriented reader for the spreadsheet exports.

The exports are read positionally: one header line, then one record per
line.  Double quotes only toggle "inside a quoted field"; they are consumed
and never emitted, so a comma inside quotes stays part of its field.
Rows with fewer than the required number of fields are dropped and only
counted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from hackteam_etl.normalize import trim

ROSTER_MIN_FIELDS = 10
SUBMISSION_MIN_FIELDS = 9


# ---------------------------------------------------------------------------
# Line parser
# ---------------------------------------------------------------------------

def parse_csv_line(line: str) -> list[str]:
    fields: list[str] = []
    current: list[str] = []
    in_quotes = False
    for char in line:
        if char == '"':
            in_quotes = not in_quotes
        elif char == "," and not in_quotes:
            fields.append("".join(current).strip())
            current = []
        else:
            current.append(char)
    fields.append("".join(current).strip())
    return fields


# ---------------------------------------------------------------------------
# File reader
# ---------------------------------------------------------------------------

@dataclass
class CsvReadResult:
    rows: list[list[str]] = field(default_factory=list)
    lines_read: int = 0
    rows_dropped: int = 0


def read_csv_lines(path: Path, min_fields: int) -> CsvReadResult:
    """Read *path* and return the parsed data rows.

    Raises FileNotFoundError if the file does not exist.
    """
    content = path.read_text(encoding="utf-8-sig")
    result = CsvReadResult()
    for raw in content.split("\n")[1:]:
        line = raw.rstrip("\r").strip()
        if not line:
            continue
        result.lines_read += 1
        fields = parse_csv_line(line)
        if len(fields) < min_fields:
            result.rows_dropped += 1
            continue
        result.rows.append(fields)
    return result


# ---------------------------------------------------------------------------
# Typed rows
# ---------------------------------------------------------------------------

def _col(fields: list[str], idx: int) -> str:
    return trim(fields[idx]) if idx < len(fields) else ""


@dataclass
class SourceRow:
    """One person's record from the roster export."""

    name: str
    email: str
    whatsapp: str
    roll_number: str
    course: str
    batch: str
    residency: str
    mess_food: str
    role: str
    team_name: str
    check_in: str = ""
    board_allotted: str = ""
    room_number: str = ""
    team_number: str = ""

    @classmethod
    def from_fields(cls, fields: list[str]) -> SourceRow:
        return cls(
            name=_col(fields, 0),
            email=_col(fields, 1),
            whatsapp=_col(fields, 2),
            roll_number=_col(fields, 3),
            course=_col(fields, 4),
            batch=_col(fields, 5),
            residency=_col(fields, 6),
            mess_food=_col(fields, 7),
            role=_col(fields, 8),
            team_name=_col(fields, 9),
            check_in=_col(fields, 10),
            board_allotted=_col(fields, 11),
            room_number=_col(fields, 12),
            team_number=_col(fields, 13),
        )

    @property
    def is_leader(self) -> bool:
        return self.role.lower() == "leader"


@dataclass
class SubmissionRow:
    """One row of the problem-statement / repository submission export.

    Columns: Id, Start time, Completion time, Email, Name, Team Name,
    Team No., Room No., Problem Statement, GitHub Repo Link.
    """

    email: str
    name: str
    team_name: str
    team_number: str
    room_number: str
    problem_statement: str
    repo_link: str

    @classmethod
    def from_fields(cls, fields: list[str]) -> SubmissionRow:
        return cls(
            email=_col(fields, 3),
            name=_col(fields, 4),
            team_name=_col(fields, 5),
            team_number=_col(fields, 6),
            room_number=_col(fields, 7),
            problem_statement=_col(fields, 8),
            repo_link=_col(fields, 9),
        )


def read_roster(path: Path) -> tuple[list[SourceRow], CsvReadResult]:
    result = read_csv_lines(path, ROSTER_MIN_FIELDS)
    return [SourceRow.from_fields(f) for f in result.rows], result


def read_submissions(path: Path) -> tuple[list[SubmissionRow], CsvReadResult]:
    result = read_csv_lines(path, SUBMISSION_MIN_FIELDS)
    return [SubmissionRow.from_fields(f) for f in result.rows], result
