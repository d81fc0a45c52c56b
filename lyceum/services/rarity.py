"""Rarity tier draws.

Pure functions: callers pass the rate table and, for reproducible draws, their own
``random.Random``. Rate tables are validated once when a pool is defined, not on
every draw.
"""

import math
import random
from collections.abc import Mapping

from lyceum.core.enums import PITY_FLOOR, RarityTier
from lyceum.core.errors import ConfigurationError

RATE_TOLERANCE = 0.001

# Highest tier first: the cumulative walk hands boundary values to the rarer tier
_DRAW_ORDER = sorted(RarityTier, reverse=True)


def validate_rates(rates: Mapping[str, float]) -> dict[RarityTier, float]:
    """Check a pool's rate table and return it keyed by tier.

    Raises:
        ConfigurationError: Unknown or missing tiers, a probability outside [0, 1],
            or probabilities not summing to 1.0.
    """
    try:
        parsed = {RarityTier(tier): float(p) for tier, p in rates.items()}
    except ValueError as e:
        raise ConfigurationError(f"Invalid rate table: {e}") from None

    missing = set(RarityTier) - parsed.keys()
    if missing:
        names = ", ".join(sorted(missing))
        raise ConfigurationError(f"Rate table is missing tiers: {names}")

    for tier, p in parsed.items():
        if not 0.0 <= p <= 1.0 or math.isnan(p):
            raise ConfigurationError(f"Rate for {tier} must be between 0 and 1, got {p}")

    total = sum(parsed.values())
    if abs(total - 1.0) > RATE_TOLERANCE:
        raise ConfigurationError(f"Rates must sum to 1.0, got {total:.4f}")

    return parsed


def _walk(weights: Mapping[RarityTier, float], r: float, fallback: RarityTier) -> RarityTier:
    cumulative = 0.0
    for tier in _DRAW_ORDER:
        if tier not in weights:
            continue
        cumulative += weights[tier]
        if r < cumulative:
            return tier
    return fallback


def resolve(
    rates: Mapping[RarityTier, float],
    forced_floor: RarityTier | None = None,
    rng: random.Random | None = None,
) -> RarityTier:
    """Draw a rarity tier.

    Without a floor, ``r`` in [0, 1) is walked from legendary down to common.
    With ``forced_floor`` (the pity draw) the mass of every tier below the floor
    is dropped and the rest renormalised, so the result can never be below it.
    """
    r = (rng or random).random()

    if forced_floor is None:
        return _walk(rates, r, RarityTier.COMMON)

    eligible = {tier: p for tier, p in rates.items() if tier >= forced_floor}
    remaining = sum(eligible.values())
    if remaining <= 0:
        # Nothing above the floor carries weight; the floor itself is the guarantee
        return forced_floor

    normalized = {tier: p / remaining for tier, p in eligible.items()}
    return _walk(normalized, r, forced_floor)


def should_force_pity(pity_counter: int, pity_threshold: int) -> bool:
    """Whether the next draw is the ``pity_threshold``-th without a rare-or-better."""
    return (pity_counter + 1) % pity_threshold == 0


def meets_pity_floor(tier: RarityTier) -> bool:
    return tier >= PITY_FLOOR
