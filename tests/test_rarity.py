"""
Tests for the rarity resolver.

Distribution checks use a seeded RNG so they are reproducible.
"""

import random
from collections import Counter

import pytest

from lyceum.core.enums import RarityTier
from lyceum.core.errors import ConfigurationError
from lyceum.services.rarity import resolve, should_force_pity, validate_rates

STANDARD_RATES = {
    RarityTier.COMMON: 0.60,
    RarityTier.RARE: 0.30,
    RarityTier.EPIC: 0.08,
    RarityTier.LEGENDARY: 0.02,
}


class FixedRandom(random.Random):
    def __init__(self, value: float) -> None:
        super().__init__()
        self.value = value

    def random(self) -> float:
        return self.value


class TestResolve:
    def test_distribution_matches_rates(self):
        rng = random.Random(42)
        draws = 20_000
        counts = Counter(resolve(STANDARD_RATES, rng=rng) for _ in range(draws))

        for tier, p in STANDARD_RATES.items():
            assert counts[tier] / draws == pytest.approx(p, abs=0.015)

    def test_forced_floor_never_yields_common(self):
        rng = random.Random(7)
        counts = Counter(resolve(STANDARD_RATES, RarityTier.RARE, rng) for _ in range(5_000))

        assert counts[RarityTier.COMMON] == 0
        # Renormalised: rare keeps 0.30 / 0.40 of the mass
        assert counts[RarityTier.RARE] / 5_000 == pytest.approx(0.75, abs=0.03)

    def test_forced_floor_with_all_mass_on_common(self):
        rates = {
            RarityTier.COMMON: 1.0,
            RarityTier.RARE: 0.0,
            RarityTier.EPIC: 0.0,
            RarityTier.LEGENDARY: 0.0,
        }
        assert resolve(rates, RarityTier.RARE, random.Random(1)) == RarityTier.RARE

    @pytest.mark.parametrize(
        ("r", "expected"),
        [
            (0.0, RarityTier.LEGENDARY),
            (0.02, RarityTier.EPIC),
            (0.0999, RarityTier.EPIC),
            (0.1001, RarityTier.RARE),
            (0.4001, RarityTier.COMMON),
            (0.999999, RarityTier.COMMON),
        ],
    )
    def test_walks_from_legendary_down(self, r, expected):
        assert resolve(STANDARD_RATES, rng=FixedRandom(r)) == expected

    def test_float_shortfall_falls_back_to_floor(self):
        rates = {
            RarityTier.COMMON: 0.5995,
            RarityTier.RARE: 0.30,
            RarityTier.EPIC: 0.08,
            RarityTier.LEGENDARY: 0.02,
        }
        assert resolve(rates, rng=FixedRandom(0.9999)) == RarityTier.COMMON


class TestValidateRates:
    def test_accepts_standard_rates(self):
        assert validate_rates({"common": 0.6, "rare": 0.3, "epic": 0.08, "legendary": 0.02}) == (
            STANDARD_RATES
        )

    def test_accepts_sum_within_tolerance(self):
        validate_rates({"common": 0.6005, "rare": 0.3, "epic": 0.08, "legendary": 0.02})

    @pytest.mark.parametrize(
        "rates",
        [
            {"common": 0.7, "rare": 0.3, "epic": 0.08, "legendary": 0.02},
            {"common": 0.6, "rare": 0.3, "epic": 0.1},
            {"common": 1.2, "rare": -0.2, "epic": 0.0, "legendary": 0.0},
            {"common": 0.6, "rare": 0.3, "epic": 0.08, "mythic": 0.02},
        ],
    )
    def test_rejects_bad_tables(self, rates):
        with pytest.raises(ConfigurationError):
            validate_rates(rates)


class TestPityRule:
    def test_tenth_draw_is_forced(self):
        assert not should_force_pity(8, 10)
        assert should_force_pity(9, 10)

    def test_threshold_of_one_forces_every_draw(self):
        assert should_force_pity(0, 1)
