"""Normalization functions for hackathon roster and submission exports.

Every function here is total over str input: unknown values fall back to a
default (course, residency, mess food) or are returned unchanged (room
number) rather than raising.
"""

from __future__ import annotations

import re

# ---------------------------------------------------------------------------
# Vocabularies
# ---------------------------------------------------------------------------

COURSE_VOCABULARY: dict[str, str] = {
    "btech": "BTech",
    "b.tech": "BTech",
    "bba": "BBA",
    "bdes": "BDes",
    "hsb": "HSB",
}
DEFAULT_COURSE = "BTech"

HOSTELLER = "Hosteller"
DAY_SCHOLAR = "Day Scholar"

CHECKED_IN_VALUES = frozenset({"in"})

# "yers" and "yez" are typos that occur in the volunteer-maintained sheet.
BOARD_ALLOTTED_VALUES = frozenset({"yes", "yers", "yez"})

DEFAULT_BUILDING = "2"

_BARE_ROOM_RE = re.compile(r"^\d{3,4}$")
_BUILDING_ROOM_RE = re.compile(
    r"^eb\s*-?\s*0?([12])\s*[-\s]*\(?\s*(\d{3,4})\s*\)?$", re.IGNORECASE
)
_BUILDING_ONLY_RE = re.compile(r"^eb\s*-?\s*\d$", re.IGNORECASE)
_CANONICAL_ROOM_RE = re.compile(r"^EB[12] - \d{3,4}$")
_TEAM_NAME_SEPARATORS_RE = re.compile(r"[\s_-]+")
_FUZZY_STRIP_RE = re.compile(r"[\s_\-.]+")


# ---------------------------------------------------------------------------
# Generic string helpers
# ---------------------------------------------------------------------------

def trim(value: str | None) -> str:
    """Strip leading/trailing whitespace; None becomes the empty string."""
    if value is None:
        return ""
    return value.strip()


def normalize_space(value: str | None) -> str:
    """Collapse internal runs of whitespace (including newlines) to one space."""
    return re.sub(r"\s+", " ", trim(value))


# ---------------------------------------------------------------------------
# Person attributes
# ---------------------------------------------------------------------------

def normalize_course(value: str | None) -> str:
    return COURSE_VOCABULARY.get(trim(value).lower(), DEFAULT_COURSE)


def normalize_residency(value: str | None) -> str:
    if "host" in trim(value).lower():
        return HOSTELLER
    return DAY_SCHOLAR


def normalize_mess_food(value: str | None) -> bool:
    return trim(value).lower() == "yes"


def normalize_email(value: str | None) -> str:
    return trim(value).lower()


def normalize_phone(value: str | None) -> str:
    """Drop every whitespace character; the number itself is kept verbatim."""
    return re.sub(r"\s", "", value or "")


def normalize_roll_number(value: str | None) -> str:
    return trim(value).upper()


def normalize_batch(value: str | None) -> str:
    return trim(value)


# ---------------------------------------------------------------------------
# Team-level flags
# ---------------------------------------------------------------------------

def parse_check_in(value: str | None) -> bool:
    return trim(value).lower() in CHECKED_IN_VALUES


def parse_board_allotted(value: str | None) -> bool:
    return trim(value).lower() in BOARD_ALLOTTED_VALUES


# ---------------------------------------------------------------------------
# Team names (lookup keys only, never stored)
# ---------------------------------------------------------------------------

def normalize_team_name(value: str | None) -> str:
    """Lowercase, trim, and collapse space/underscore/hyphen runs to one space."""
    return _TEAM_NAME_SEPARATORS_RE.sub(" ", trim(value).lower())


def fuzzy_team_key(value: str | None) -> str:
    """Lowercase and remove every space, underscore, hyphen and period."""
    return _FUZZY_STRIP_RE.sub("", trim(value).lower())


# ---------------------------------------------------------------------------
# Room numbers
# ---------------------------------------------------------------------------

def normalize_room_number(value: str | None) -> str:
    """Return a room number as ``EB{building} - {room}``.

    Accepted spellings include "204", "EB2-206", "Eb2 - 104", "EB-2 104",
    "EB 2 -202", "EB02-205", "EB-2 (202)" and "EB1 105".  A bare building
    ("EB2", "eb 1") is uppercased with whitespace removed.  Anything else is
    returned trimmed but otherwise unchanged.
    """
    v = trim(value)
    if not v:
        return ""

    if _BARE_ROOM_RE.match(v):
        return f"EB{DEFAULT_BUILDING} - {v}"

    m = _BUILDING_ROOM_RE.match(v)
    if m:
        return f"EB{m.group(1)} - {m.group(2)}"

    if _BUILDING_ONLY_RE.match(v):
        return re.sub(r"\s", "", v.upper())

    return v


def is_room_number(value: str | None) -> bool:
    """True for a full room in canonical form, e.g. "EB2 - 204"."""
    return bool(_CANONICAL_ROOM_RE.match(trim(value)))
