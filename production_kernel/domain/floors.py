"""
Floors -- canonical floor names, boundary normalization, and floor sequences.

Responsibility:
    Names every production floor, maps the many spellings callers use onto
    those canonical names, and supplies the ordered floor sequence an
    article must pass through.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Every floor name that reaches an engine is canonical.  Aliasing is a
      boundary concern handled by ``normalize_floor`` before the engines
      see the request.
    - A floor sequence is non-empty and never repeats a floor.

Failure modes:
    - UnknownFloorError when a name matches no canonical floor or alias.
    - InvalidFloorSequenceError for an empty or repeating sequence.

Audit relevance:
    Article logs always record canonical floor names, so history queries
    never need to know which spelling a caller used.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Protocol

from production_kernel.exceptions import InvalidFloorSequenceError, UnknownFloorError


class Floor:
    """Canonical floor names."""

    KNITTING = "Knitting"
    LINKING = "Linking"
    CHECKING = "Checking"
    WASHING = "Washing"
    BOARDING = "Boarding"
    SILICON = "Silicon"
    SECONDARY_CHECKING = "Secondary Checking"
    BRANDING = "Branding"
    FINAL_CHECKING = "Final Checking"
    WAREHOUSE = "Warehouse"
    DISPATCH = "Dispatch"


ALL_FLOORS: tuple[str, ...] = (
    Floor.KNITTING,
    Floor.LINKING,
    Floor.CHECKING,
    Floor.WASHING,
    Floor.BOARDING,
    Floor.SILICON,
    Floor.SECONDARY_CHECKING,
    Floor.BRANDING,
    Floor.FINAL_CHECKING,
    Floor.WAREHOUSE,
    Floor.DISPATCH,
)

# Hard-coded fallback used when nothing better is known about an article.
DEFAULT_FLOOR_SEQUENCE: tuple[str, ...] = ALL_FLOORS[:-1]

INSPECTION_FLOORS: frozenset[str] = frozenset(
    {Floor.CHECKING, Floor.SECONDARY_CHECKING, Floor.FINAL_CHECKING}
)


class LinkingType:
    """Linking methods; Auto Linking machines make the Linking floor redundant."""

    AUTO = "Auto Linking"
    HAND = "Hand Linking"
    ROSSO = "Rosso Linking"


LINKING_TYPE_SEQUENCES: dict[str, tuple[str, ...]] = {
    LinkingType.AUTO: tuple(f for f in ALL_FLOORS if f != Floor.LINKING),
    LinkingType.HAND: ALL_FLOORS,
    LinkingType.ROSSO: ALL_FLOORS,
}


# ---------------------------------------------------------------------------
# Boundary normalization
# ---------------------------------------------------------------------------


def _alias_key(name: str) -> str:
    return re.sub(r"[\s_\-]+", "", name).lower()


_CANONICAL_BY_KEY: dict[str, str] = {_alias_key(f): f for f in ALL_FLOORS}

# Shop-floor process names that do not reduce to a floor by spelling alone.
PROCESS_ALIASES: dict[str, str] = {
    "knit": Floor.KNITTING,
    "link": Floor.LINKING,
    "check": Floor.CHECKING,
    "wash": Floor.WASHING,
    "board": Floor.BOARDING,
    "silicone": Floor.SILICON,
    "secondary check": Floor.SECONDARY_CHECKING,
    "brand": Floor.BRANDING,
    "final check": Floor.FINAL_CHECKING,
}


def normalize_floor(name: str, aliases: Mapping[str, str] | None = None) -> str:
    """Map any accepted spelling of a floor onto its canonical name.

    Matching ignores case, whitespace, hyphens and underscores, so
    ``"final_checking"``, ``"FinalChecking"`` and ``"final-checking"`` all
    resolve to ``"Final Checking"``.  ``aliases`` adds deployment-specific
    spellings on top of the built-in ones.

    Raises:
        UnknownFloorError: nothing matched.
    """
    if not isinstance(name, str) or not name.strip():
        raise UnknownFloorError(repr(name))
    stripped = name.strip()
    if stripped in ALL_FLOORS:
        return stripped

    key = _alias_key(stripped)
    if aliases:
        for alias, canonical in aliases.items():
            if _alias_key(alias) == key:
                return normalize_floor(canonical)

    canonical = _CANONICAL_BY_KEY.get(key)
    if canonical is None:
        raise UnknownFloorError(name)
    return canonical


def map_process_to_floor(process_name: str | None) -> str | None:
    """Best-effort mapping of a product process name to a floor.

    Tries, in order: exact floor spelling, the process alias table, then
    substring containment in either direction.  Returns None when nothing
    matches; unlike ``normalize_floor`` this never raises.
    """
    if not process_name or not isinstance(process_name, str):
        return None
    lowered = process_name.strip().lower()

    canonical = _CANONICAL_BY_KEY.get(_alias_key(lowered))
    if canonical is not None:
        return canonical
    if lowered in PROCESS_ALIASES:
        return PROCESS_ALIASES[lowered]

    # Longest key first so "secondary check" wins over "check".
    candidates = sorted(
        [(f.lower(), f) for f in ALL_FLOORS] + list(PROCESS_ALIASES.items()),
        key=lambda item: len(item[0]),
        reverse=True,
    )
    for key, floor in candidates:
        if key in lowered or lowered in key:
            return floor
    return None


def validate_sequence(
    sequence: Iterable[str],
    aliases: Mapping[str, str] | None = None,
) -> tuple[str, ...]:
    """Normalize every floor in ``sequence`` and reject empties and repeats."""
    raw = list(sequence)
    normalized = tuple(normalize_floor(f, aliases) for f in raw)
    if not normalized:
        raise InvalidFloorSequenceError(raw, "sequence is empty")
    if len(set(normalized)) != len(normalized):
        raise InvalidFloorSequenceError(raw, "sequence repeats a floor")
    return normalized


# ---------------------------------------------------------------------------
# Floor policy
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FloorPolicy:
    """
    Which floors behave specially.

    Contract:
        Inspection floors grade output into M1-M4 and forward only M1.
        Overproduction floors may complete more than they received.
        The final inspection floor keeps its article-level quality flags
        when the article arrives there.
    """

    inspection_floors: frozenset[str] = INSPECTION_FLOORS
    overproduction_floors: frozenset[str] = frozenset({Floor.KNITTING})
    final_inspection_floor: str = Floor.FINAL_CHECKING

    def is_inspection(self, floor: str) -> bool:
        return floor in self.inspection_floors

    def allows_overproduction(self, floor: str) -> bool:
        return floor in self.overproduction_floors


DEFAULT_FLOOR_POLICY = FloorPolicy()


# ---------------------------------------------------------------------------
# Floor sequence providers
# ---------------------------------------------------------------------------


class SequenceSubject(Protocol):
    """What a provider may look at when choosing a floor sequence."""

    article_number: str
    linking_type: str | None
    floor_sequence: list[str] | None


class FloorSequenceProvider(Protocol):
    """Returns the ordered floors an article must pass through."""

    def sequence_for(self, article: SequenceSubject) -> tuple[str, ...]:
        ...


@dataclass(frozen=True)
class LinkingTypeSequenceProvider:
    """Fallback provider keyed by the article's linking type."""

    sequences: Mapping[str, Sequence[str]] = field(
        default_factory=lambda: dict(LINKING_TYPE_SEQUENCES)
    )
    default: Sequence[str] = DEFAULT_FLOOR_SEQUENCE

    def sequence_for(self, article: SequenceSubject) -> tuple[str, ...]:
        linking_type = getattr(article, "linking_type", None)
        if linking_type and linking_type in self.sequences:
            return tuple(self.sequences[linking_type])
        return tuple(self.default)


@dataclass(frozen=True)
class OverrideSequenceProvider:
    """Explicit per-article-number sequences with a fallback provider."""

    overrides: Mapping[str, Sequence[str]]
    fallback: FloorSequenceProvider = field(default_factory=LinkingTypeSequenceProvider)

    def sequence_for(self, article: SequenceSubject) -> tuple[str, ...]:
        override = self.overrides.get(article.article_number)
        if override:
            return tuple(override)
        return self.fallback.sequence_for(article)


@dataclass(frozen=True)
class StoredSequenceProvider:
    """Uses the sequence captured on the article when it was created."""

    fallback: FloorSequenceProvider = field(default_factory=LinkingTypeSequenceProvider)

    def sequence_for(self, article: SequenceSubject) -> tuple[str, ...]:
        stored = getattr(article, "floor_sequence", None)
        if stored:
            return tuple(stored)
        return self.fallback.sequence_for(article)
