"""hackteam_etl.aliases

Team-name resolution between spreadsheet spellings and stored teams.

Lookup order for a source team name:
  1. direct   normalize_team_name(source) equals a stored team's key
  2. alias    the alias table maps the source key to a canonical spelling,
              which is then looked up by its own normalized key
  3. fuzzy    fuzzy_team_key(source) equals a stored team's fuzzy key

The first hit wins.  Fuzzy keys shared by several stored teams are flagged
on the returned TeamMatch so the run can report them for manual review.

The built-in alias table can be extended from a YAML file:

    aliases:
      "brain codes": "Braincodes"
      "webwarriors": "Web warriors"
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from hackteam_etl.normalize import fuzzy_team_key, normalize_team_name

# ---------------------------------------------------------------------------
# Built-in alias table: spreadsheet spelling -> stored spelling
# ---------------------------------------------------------------------------

TEAM_NAME_ALIASES: dict[str, str] = {
    "vad": "Team VAD",
    "errror404": "Error 404",
    "error 404": "Error 404",
    "akira": "Akira",
    "knight vision": "Knight Vision",
    "jklufiles": "Jklufi",
    "wi-wi club": "Wi-Wi Club",
    "she codes": "SheCodes",
    "runtime t.error": "Runtime T.EEROR",
    "hackathon_tech": "Hackathon_tech",
    "brain codes": "Braincodes",
    "next gen innovators": "NextGen Innovators",
    "webwarriors": "Web warriors",
    "team sparkx": "spark x",
    "team paradise": "Team Paradise",
    "codera clan": "Codera Clan",
    "logic loop": "Logicloop",
    "not coders": "Not coders",
    "bug slayers": "Bugslayers",
    "ghost protocol": "ghost protocol",
    "the 404s": "THE 404s",
    "ai avengers": "AI Avengers",
    "terminal stackers": "TERMINAL STACKERS",
    "out of bounds": "out of bounce",
    "dream debuggers": "Dream debugger",
    "fantastic 4": "Fantastic 4",
    "rapid resolve": "Rapid resolve",
    "syntax error": "syntax error",
}

MATCH_DIRECT = "direct"
MATCH_ALIAS = "alias"
MATCH_FUZZY = "fuzzy"


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class AliasFileError(ValueError):
    """Raised when an alias YAML file does not have the expected structure."""


# ---------------------------------------------------------------------------
# Alias table
# ---------------------------------------------------------------------------

def build_alias_table(raw: dict[str, str]) -> dict[str, str]:
    """Key an alias mapping by normalize_team_name of its source spelling."""
    return {normalize_team_name(k): v for k, v in raw.items()}


def load_alias_file(yaml_path: Path) -> dict[str, str]:
    """Load and validate the ``aliases`` mapping from a YAML file.

    Raises:
        AliasFileError: If the root or the ``aliases`` value is not a mapping
            of non-empty strings.
        FileNotFoundError: If the file does not exist.
    """
    data: Any = yaml.safe_load(yaml_path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise AliasFileError("YAML root must be a mapping.")
    if "aliases" not in data:
        raise AliasFileError("Missing required YAML key: 'aliases'.")
    aliases = data["aliases"] or {}
    if not isinstance(aliases, dict):
        raise AliasFileError("'aliases' must be a mapping of source name to stored name.")
    out: dict[str, str] = {}
    for source, target in aliases.items():
        if not isinstance(source, str) or not isinstance(target, str):
            raise AliasFileError(f"Alias {source!r} -> {target!r} must map string to string.")
        if not source.strip() or not target.strip():
            raise AliasFileError(f"Alias {source!r} -> {target!r} has an empty side.")
        out[source] = target
    return out


def resolve_alias_table(alias_file: Path | None = None) -> dict[str, str]:
    """Return the built-in alias table, extended by *alias_file* if given."""
    raw = dict(TEAM_NAME_ALIASES)
    if alias_file is not None:
        raw.update(load_alias_file(alias_file))
    return build_alias_table(raw)


# ---------------------------------------------------------------------------
# Stored-team index
# ---------------------------------------------------------------------------

@dataclass
class TeamMatch:
    doc: dict[str, Any]
    method: str
    ambiguous_with: list[str] = field(default_factory=list)

    @property
    def team_name(self) -> str:
        return str(self.doc.get("teamName", ""))


class TeamIndex:
    """Lookup of stored team documents by normalized and fuzzy name keys."""

    def __init__(self) -> None:
        self._by_key: dict[str, dict[str, Any]] = {}
        self._by_fuzzy: dict[str, list[dict[str, Any]]] = {}
        # Documents inserted or updated during the current run, by name key.
        self._touched: dict[str, dict[str, Any]] = {}

    @classmethod
    def build(cls, docs: list[dict[str, Any]]) -> TeamIndex:
        index = cls()
        for doc in docs:
            index.add(doc)
        return index

    def __len__(self) -> int:
        return len(self._by_key)

    def add(self, doc: dict[str, Any]) -> None:
        name = doc.get("teamName") or ""
        key = normalize_team_name(name)
        # Later documents win on exact-key collisions, as a map rebuilt in
        # store order would.
        self._by_key[key] = doc
        self._by_fuzzy.setdefault(fuzzy_team_key(name), []).append(doc)

    def touch(self, doc: dict[str, Any]) -> None:
        """Mark *doc* as written (or, in a dry run, as would-be written) this run."""
        self._touched[normalize_team_name(doc.get("teamName"))] = doc

    def is_touched(self, team_name: str) -> bool:
        return normalize_team_name(team_name) in self._touched

    def touched(self) -> list[dict[str, Any]]:
        return list(self._touched.values())

    def resolve(self, name: str, aliases: dict[str, str]) -> TeamMatch | None:
        key = normalize_team_name(name)

        doc = self._by_key.get(key)
        if doc is not None:
            return TeamMatch(doc, MATCH_DIRECT)

        target = aliases.get(key)
        if target is not None:
            doc = self._by_key.get(normalize_team_name(target))
            if doc is not None:
                return TeamMatch(doc, MATCH_ALIAS)

        candidates = self._by_fuzzy.get(fuzzy_team_key(name)) or []
        if candidates:
            others = [str(d.get("teamName", "")) for d in candidates[1:]]
            return TeamMatch(candidates[0], MATCH_FUZZY, ambiguous_with=others)

        return None
