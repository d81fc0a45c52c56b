from loguru import logger
from sqlmodel.ext.asyncio.session import AsyncSession

from lyceum.core.enums import AchievementCriterion, RarityTier
from lyceum.models.achievement import Achievement
from lyceum.models.collectible_item import CollectibleItem
from lyceum.models.reward_pool import RewardPool
from lyceum.services.reward_pool import RewardPoolService, standard_pool


def _stats(
    wisdom: int, logic: int, rhetoric: int, influence: int, originality: int
) -> dict[str, float]:
    return {
        "wisdom": wisdom,
        "logic": logic,
        "rhetoric": rhetoric,
        "influence": influence,
        "originality": originality,
    }


PHILOSOPHERS = [
    dict(
        id="socrates",
        name="Socrates",
        school="Ethics",
        rarity=RarityTier.LEGENDARY,
        base_attributes=_stats(100, 85, 90, 95, 80),
    ),
    dict(
        id="marcus-aurelius",
        name="Marcus Aurelius",
        school="Stoicism",
        rarity=RarityTier.LEGENDARY,
        base_attributes=_stats(95, 85, 75, 90, 70),
    ),
    dict(
        id="albert-camus",
        name="Albert Camus",
        school="Absurdism",
        rarity=RarityTier.LEGENDARY,
        base_attributes=_stats(70, 85, 85, 80, 95),
    ),
    dict(
        id="simone-de-beauvoir",
        name="Simone de Beauvoir",
        school="Existentialism",
        rarity=RarityTier.EPIC,
        base_attributes=_stats(85, 80, 85, 80, 85),
    ),
    dict(
        id="diogenes",
        name="Diogenes",
        school="Cynicism",
        rarity=RarityTier.EPIC,
        base_attributes=_stats(90, 70, 80, 70, 90),
    ),
    dict(
        id="john-locke",
        name="John Locke",
        school="Empiricism",
        rarity=RarityTier.EPIC,
        base_attributes=_stats(90, 80, 70, 85, 75),
    ),
    dict(
        id="avicenna",
        name="Avicenna",
        school="Metaphysics",
        rarity=RarityTier.RARE,
        base_attributes=_stats(65, 85, 70, 75, 65),
    ),
    dict(
        id="epictetus",
        name="Epictetus",
        school="Stoicism",
        rarity=RarityTier.RARE,
        base_attributes=_stats(80, 70, 65, 70, 75),
    ),
    dict(
        id="hypatia",
        name="Hypatia",
        school="Neoplatonism",
        rarity=RarityTier.RARE,
        base_attributes=_stats(75, 80, 70, 65, 70),
    ),
    dict(
        id="thales",
        name="Thales",
        school="Presocratics",
        rarity=RarityTier.COMMON,
        base_attributes=_stats(60, 65, 50, 55, 70),
    ),
    dict(
        id="zeno-of-citium",
        name="Zeno of Citium",
        school="Stoicism",
        rarity=RarityTier.COMMON,
        base_attributes=_stats(65, 60, 55, 60, 60),
    ),
    dict(
        id="epicurus",
        name="Epicurus",
        school="Epicureanism",
        rarity=RarityTier.COMMON,
        base_attributes=_stats(60, 55, 60, 65, 60),
    ),
    dict(
        id="xenophanes",
        name="Xenophanes",
        school="Presocratics",
        rarity=RarityTier.COMMON,
        base_attributes=_stats(55, 60, 55, 50, 65),
    ),
]

ACHIEVEMENTS = [
    dict(
        id="perfect_quiz",
        name="Flawless Reasoning",
        description="Score 100% on a quiz",
        criterion=AchievementCriterion.PERFECT_SCORE,
        reward_experience=100,
        reward_currency=3,
    ),
    dict(
        id="speed_thinker",
        name="Speed Thinker",
        description="Finish a quiz in under five minutes",
        criterion=AchievementCriterion.TIME_LIMIT,
        threshold=300,
        reward_experience=50,
        reward_currency=2,
    ),
    dict(
        id="debate_champion",
        name="Debate Champion",
        description="Win three debates in a single quiz",
        criterion=AchievementCriterion.DEBATE_WINS,
        threshold=3,
        reward_experience=150,
        reward_currency=3,
    ),
    dict(
        id="philosopher_collector",
        name="Philosopher Collector",
        description="Own ten different philosophers",
        criterion=AchievementCriterion.COLLECTION_SIZE,
        threshold=10,
        reward_experience=200,
        reward_currency=5,
    ),
    dict(
        id="weekly_streak",
        name="Weekly Devotion",
        description="Study seven days in a row",
        criterion=AchievementCriterion.DAILY_STREAK,
        threshold=7,
        reward_experience=300,
        reward_currency=5,
    ),
]


async def seed_catalog(db: AsyncSession) -> None:
    """Insert the baseline philosophers, achievements and standard pool.

    Existing rows are left untouched. Every active pool is then checked against
    the catalog, so a pool that cannot be served stops startup.

    Raises:
        ConfigurationError: If an active pool references an empty tier.
    """
    added = 0
    for model, rows in ((CollectibleItem, PHILOSOPHERS), (Achievement, ACHIEVEMENTS)):
        for data in rows:
            if await db.get(model, data["id"]) is None:
                db.add(model(**data))
                added += 1

    pool = standard_pool()
    if await db.get(RewardPool, pool.id) is None:
        db.add(pool)
        added += 1
    await db.commit()
    if added:
        logger.info(f"Seeded {added} catalog rows")

    service = RewardPoolService(db)
    for pool in await service.list_pools():
        await service.validate_pool_catalog(pool.rates, pool.featured_item_ids)
