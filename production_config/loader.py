"""
Configuration Loader (``production_config.loader``).

Responsibility
--------------
Loads a production configuration YAML file and parses it into the frozen
``production_config.schema`` dataclasses.  Runtime callers go through
``production_config.get_active_config()`` instead of calling this module.

Invariants enforced
-------------------
* Every floor name in the file is normalized to its canonical spelling;
  unknown floors and repeated floors are rejected.
* ``propagation.mode`` is one of the ``PropagationMode`` values.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the raw
  document for configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing ``config_id`` -> ``KeyError`` propagates.
* Invalid values -> ``ValueError`` with a descriptive message.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from production_config.schema import (
    ArticleSettings,
    BulkSettings,
    FloorSettings,
    ProductionConfig,
    PropagationSettings,
)
from production_engines.propagation import PropagationMode
from production_kernel.domain.floors import normalize_floor, validate_sequence
from production_kernel.exceptions import FloorError
from production_kernel.utils.hashing import hash_payload


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON form of ``data``."""
    return hash_payload(data)


def _sequence(value: Any, where: str, aliases: dict[str, str]) -> tuple[str, ...]:
    if not isinstance(value, list):
        raise ValueError(f"{where} must be a list of floor names, got {value!r}")
    try:
        return validate_sequence(value, aliases)
    except FloorError as exc:
        raise ValueError(f"{where}: {exc}") from exc


def _floor(value: Any, where: str, aliases: dict[str, str]) -> str:
    try:
        return normalize_floor(value, aliases)
    except FloorError as exc:
        raise ValueError(f"{where}: {exc}") from exc


def _positive_int(value: Any, where: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValueError(f"{where} must be a positive integer, got {value!r}")
    return value


def parse_floor_settings(data: dict[str, Any]) -> FloorSettings:
    """Parse the ``floors`` section."""
    defaults = FloorSettings()
    raw_aliases = data.get("aliases") or {}
    if not isinstance(raw_aliases, dict):
        raise ValueError("floors.aliases must be a mapping")
    aliases = {
        str(alias): _floor(canonical, f"floors.aliases.{alias}", {})
        for alias, canonical in raw_aliases.items()
    }

    default_sequence = defaults.default_sequence
    if "default_sequence" in data:
        default_sequence = _sequence(
            data["default_sequence"], "floors.default_sequence", aliases
        )

    linking_sequences = defaults.linking_sequences
    if "linking_sequences" in data:
        linking_sequences = tuple(
            (str(linking_type), _sequence(seq, f"floors.linking_sequences.{linking_type}", aliases))
            for linking_type, seq in (data["linking_sequences"] or {}).items()
        )

    inspection_floors = defaults.inspection_floors
    if "inspection_floors" in data:
        inspection_floors = frozenset(
            _sequence(data["inspection_floors"], "floors.inspection_floors", aliases)
        )

    overproduction_floor = defaults.overproduction_floor
    if "overproduction_floor" in data:
        overproduction_floor = _floor(
            data["overproduction_floor"], "floors.overproduction_floor", aliases
        )

    final_inspection_floor = defaults.final_inspection_floor
    if "final_inspection_floor" in data:
        final_inspection_floor = _floor(
            data["final_inspection_floor"], "floors.final_inspection_floor", aliases
        )
    if final_inspection_floor not in inspection_floors:
        raise ValueError(
            f"floors.final_inspection_floor {final_inspection_floor!r} "
            "is not one of floors.inspection_floors"
        )

    return FloorSettings(
        default_sequence=default_sequence,
        linking_sequences=linking_sequences,
        inspection_floors=inspection_floors,
        overproduction_floor=overproduction_floor,
        final_inspection_floor=final_inspection_floor,
        aliases=tuple(sorted(aliases.items())),
    )


def parse_article_settings(data: dict[str, Any], aliases: dict[str, str]) -> ArticleSettings:
    """Parse the ``articles`` section."""
    overrides = data.get("sequence_overrides") or {}
    if not isinstance(overrides, dict):
        raise ValueError("articles.sequence_overrides must be a mapping")
    return ArticleSettings(
        sequence_overrides=tuple(
            (str(number), _sequence(seq, f"articles.sequence_overrides.{number}", aliases))
            for number, seq in sorted(overrides.items(), key=lambda item: str(item[0]))
        )
    )


def parse_propagation_settings(data: dict[str, Any]) -> PropagationSettings:
    """Parse the ``propagation`` section."""
    defaults = PropagationSettings()
    raw_mode = data.get("mode", defaults.mode.value)
    try:
        mode = PropagationMode(raw_mode)
    except ValueError:
        allowed = ", ".join(m.value for m in PropagationMode)
        raise ValueError(
            f"propagation.mode must be one of {allowed}, got {raw_mode!r}"
        ) from None
    return PropagationSettings(
        mode=mode,
        max_iterations=_positive_int(
            data.get("max_iterations", defaults.max_iterations),
            "propagation.max_iterations",
        ),
    )


def parse_bulk_settings(data: dict[str, Any]) -> BulkSettings:
    """Parse the ``bulk`` section."""
    defaults = BulkSettings()
    timeout = data.get("lock_timeout_seconds", defaults.lock_timeout_seconds)
    if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
        raise ValueError(f"bulk.lock_timeout_seconds must be positive, got {timeout!r}")
    return BulkSettings(
        batch_size=_positive_int(data.get("batch_size", defaults.batch_size), "bulk.batch_size"),
        max_workers=_positive_int(
            data.get("max_workers", defaults.max_workers), "bulk.max_workers"
        ),
        lock_timeout_seconds=float(timeout),
    )


def parse_config(data: dict[str, Any]) -> ProductionConfig:
    """
    Parse a raw configuration document.

    Preconditions:
        ``data`` is the mapping produced by ``load_yaml_file``.
    Postconditions:
        Returns a frozen ``ProductionConfig`` whose ``checksum`` is
        ``compute_checksum(data)``.
    Raises:
        KeyError: ``config_id`` is missing.
        ValueError: any section holds an invalid value.
    """
    floors = parse_floor_settings(data.get("floors") or {})
    return ProductionConfig(
        config_id=str(data["config_id"]),
        version=_positive_int(data.get("version", 1), "version"),
        floors=floors,
        articles=parse_article_settings(data.get("articles") or {}, dict(floors.aliases)),
        propagation=parse_propagation_settings(data.get("propagation") or {}),
        bulk=parse_bulk_settings(data.get("bulk") or {}),
        checksum=compute_checksum(data),
    )


def load_config(path: Path) -> ProductionConfig:
    """Load and parse one configuration file."""
    return parse_config(load_yaml_file(path))
