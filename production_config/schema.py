"""
Production configuration schema.

Defines the typed, frozen form of a production configuration file.  YAML
is parsed into these types by ``production_config.loader`` and turned
into kernel inputs by ``production_config.bridges``.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from production_engines.propagation import PropagationMode
from production_kernel.domain.floors import (
    DEFAULT_FLOOR_SEQUENCE,
    INSPECTION_FLOORS,
    LINKING_TYPE_SEQUENCES,
    Floor,
)

# ---------------------------------------------------------------------------
# Floors
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FloorSettings:
    """Floor vocabulary and sequences."""

    default_sequence: tuple[str, ...] = DEFAULT_FLOOR_SEQUENCE
    linking_sequences: tuple[tuple[str, tuple[str, ...]], ...] = tuple(
        LINKING_TYPE_SEQUENCES.items()
    )
    inspection_floors: frozenset[str] = INSPECTION_FLOORS
    overproduction_floor: str = Floor.KNITTING
    final_inspection_floor: str = Floor.FINAL_CHECKING
    aliases: tuple[tuple[str, str], ...] = ()


# ---------------------------------------------------------------------------
# Articles
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ArticleSettings:
    """Per-article-number explicit floor sequences."""

    sequence_overrides: tuple[tuple[str, tuple[str, ...]], ...] = ()


# ---------------------------------------------------------------------------
# Propagation and bulk processing
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PropagationSettings:
    mode: PropagationMode = PropagationMode.FIXED_POINT
    max_iterations: int = 64


@dataclass(frozen=True)
class BulkSettings:
    batch_size: int = 50
    max_workers: int = 4
    lock_timeout_seconds: float = 30.0


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ProductionConfig:
    """Complete, validated production configuration."""

    config_id: str
    version: int
    floors: FloorSettings = field(default_factory=FloorSettings)
    articles: ArticleSettings = field(default_factory=ArticleSettings)
    propagation: PropagationSettings = field(default_factory=PropagationSettings)
    bulk: BulkSettings = field(default_factory=BulkSettings)
    checksum: str = ""

    @property
    def alias_map(self) -> dict[str, str]:
        return dict(self.floors.aliases)
