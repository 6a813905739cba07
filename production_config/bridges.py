"""
Config -> Kernel Bridges.

Functions that convert a ``ProductionConfig`` into kernel and engine
inputs.  These live in production_config (the producer) because the
kernel must never import production_config.

Usage:
    from production_config.bridges import build_floor_policy, build_sequence_provider

    config = get_active_config()
    policy = build_floor_policy(config)
    provider = build_sequence_provider(config)
"""

from __future__ import annotations

from production_config.schema import ProductionConfig
from production_engines.floor_lifecycle import FloorLifecycle
from production_engines.propagation import TransferPropagator
from production_kernel.domain.floors import (
    FloorPolicy,
    FloorSequenceProvider,
    LinkingTypeSequenceProvider,
    OverrideSequenceProvider,
)


def build_floor_policy(config: ProductionConfig) -> FloorPolicy:
    """Inspection, overproduction and final-inspection floors from config."""
    return FloorPolicy(
        inspection_floors=frozenset(config.floors.inspection_floors),
        overproduction_floors=frozenset({config.floors.overproduction_floor}),
        final_inspection_floor=config.floors.final_inspection_floor,
    )


def build_sequence_provider(config: ProductionConfig) -> FloorSequenceProvider:
    """Per-article overrides first, then linking type, then the default."""
    fallback = LinkingTypeSequenceProvider(
        sequences=dict(config.floors.linking_sequences),
        default=config.floors.default_sequence,
    )
    return OverrideSequenceProvider(
        overrides=dict(config.articles.sequence_overrides),
        fallback=fallback,
    )


def build_floor_lifecycle(
    config: ProductionConfig,
    policy: FloorPolicy | None = None,
) -> FloorLifecycle:
    """Lifecycle engine wired with the configured propagation mode."""
    policy = policy or build_floor_policy(config)
    return FloorLifecycle(
        policy=policy,
        propagator=TransferPropagator(policy),
        mode=config.propagation.mode,
        max_iterations=config.propagation.max_iterations,
    )
