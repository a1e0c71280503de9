"""
Achievement catalog and condition evaluation
"""
from typing import List

from meta_progression.models.achievements import (
    Achievement,
    AchievementCategory,
    AchievementCondition,
    AchievementKind,
    AchievementMetric,
)
from meta_progression.models.progress import PlayerProgress, UnlockableItem, UnlockableType
from meta_progression.models.rewards import RewardRarity

M = AchievementMetric


def _achievement(id, name, description, category, kind, metric, target, score, coins,
                 icon, rarity=RewardRarity.COMMON, unlock=None, secret=False) -> Achievement:
    return Achievement(
        id=id,
        name=name,
        description=description,
        category=category,
        kind=kind,
        target=target,
        condition=AchievementCondition(metric=metric),
        score_reward=score,
        coin_reward=coins,
        unlock_reward=unlock,
        icon=icon,
        rarity=rarity,
        secret_achievement=secret,
    )


ACHIEVEMENTS: List[Achievement] = [
    # Balloon popping
    _achievement("first_pop", "First Pop", "Pop your first balloon",
                 AchievementCategory.GAMEPLAY, AchievementKind.MILESTONE, M.BALLOONS_POPPED, 1, 10, 10, "🎈"),
    _achievement("balloon_buster", "Balloon Buster", "Pop 100 balloons",
                 AchievementCategory.GAMEPLAY, AchievementKind.CUMULATIVE, M.BALLOONS_POPPED, 100, 50, 50, "💥"),
    _achievement("balloon_master", "Balloon Master", "Pop 1,000 balloons",
                 AchievementCategory.GAMEPLAY, AchievementKind.CUMULATIVE, M.BALLOONS_POPPED, 1000, 200, 250,
                 "🏆", RewardRarity.RARE,
                 unlock=UnlockableItem(type=UnlockableType.COLOR, item_id="color_gold")),

    # Shooting
    _achievement("trigger_happy", "Trigger Happy", "Fire 500 shots",
                 AchievementCategory.GAMEPLAY, AchievementKind.CUMULATIVE, M.SHOTS_FIRED, 500, 25, 25, "🔫"),
    _achievement("combo_starter", "Combo Starter", "Hit 5 shots in a row",
                 AchievementCategory.GAMEPLAY, AchievementKind.STREAK, M.CONSECUTIVE_HITS, 5, 25, 25, "🎯"),
    _achievement("combo_king", "Combo King", "Hit 20 shots in a row",
                 AchievementCategory.GAMEPLAY, AchievementKind.STREAK, M.CONSECUTIVE_HITS, 20, 100, 150,
                 "👑", RewardRarity.EPIC,
                 unlock=UnlockableItem(type=UnlockableType.TRAIL, item_id="trail_rainbow")),

    # Levels
    _achievement("level_one", "Getting Started", "Complete your first level",
                 AchievementCategory.PROGRESSION, AchievementKind.MILESTONE, M.LEVELS_COMPLETED, 1, 10, 20, "🚀"),
    _achievement("level_veteran", "Veteran", "Complete 25 levels",
                 AchievementCategory.PROGRESSION, AchievementKind.CUMULATIVE, M.LEVELS_COMPLETED, 25, 100, 100,
                 "🎖️", RewardRarity.UNCOMMON),
    _achievement("flawless", "Flawless", "Complete a level without missing a shot",
                 AchievementCategory.MASTERY, AchievementKind.CHALLENGE, M.PERFECT_LEVELS, 1, 50, 75, "✨",
                 RewardRarity.UNCOMMON),
    _achievement("perfectionist", "Perfectionist", "Complete 10 different levels without missing a shot",
                 AchievementCategory.MASTERY, AchievementKind.CUMULATIVE, M.PERFECT_LEVELS, 10, 250, 300, "💎",
                 RewardRarity.EPIC,
                 unlock=UnlockableItem(type=UnlockableType.SHOOTING_EFFECT, item_id="effect_laser")),

    # Stars
    _achievement("star_collector", "Star Collector", "Earn 10 mastery stars",
                 AchievementCategory.MASTERY, AchievementKind.CUMULATIVE, M.STARS_EARNED, 10, 50, 50, "⭐"),
    _achievement("star_hoarder", "Star Hoarder", "Earn 50 mastery stars",
                 AchievementCategory.MASTERY, AchievementKind.CUMULATIVE, M.STARS_EARNED, 50, 200, 200, "🌟",
                 RewardRarity.RARE),
    _achievement("sharp_eye", "Sharp Eye", "Keep lifetime accuracy at 90% or better",
                 AchievementCategory.MASTERY, AchievementKind.CHALLENGE, M.ACCURACY_PERCENTAGE, 90, 75, 100, "🦅",
                 RewardRarity.RARE, secret=True),

    # Engagement
    _achievement("regular", "Regular", "Play on 7 different days",
                 AchievementCategory.PROGRESSION, AchievementKind.CUMULATIVE, M.DAYS_PLAYED, 7, 50, 75, "📅"),
    _achievement("marathon", "Marathon", "Play for a total of one hour",
                 AchievementCategory.PROGRESSION, AchievementKind.CUMULATIVE, M.TIME_PLAYED, 60 * 60 * 1000,
                 50, 50, "⏱️"),
    _achievement("fashionista", "Fashionista", "Own 15 cosmetic items",
                 AchievementCategory.COLLECTION, AchievementKind.CUMULATIVE, M.CUSTOMIZATIONS_UNLOCKED, 15,
                 75, 100, "🎨", RewardRarity.UNCOMMON),
]

# Accuracy is meaningless before a handful of shots
MIN_SHOTS_FOR_ACCURACY = 50


def metric_value(progress: PlayerProgress, metric: AchievementMetric) -> float:
    """Current cumulative value of a metric for the player"""
    match metric:
        case AchievementMetric.BALLOONS_POPPED:
            return progress.balloons_popped
        case AchievementMetric.LEVELS_COMPLETED:
            return progress.levels_completed
        case AchievementMetric.PERFECT_LEVELS:
            return progress.perfect_levels_completed
        case AchievementMetric.CONSECUTIVE_HITS:
            return progress.longest_combo
        case AchievementMetric.TIME_PLAYED:
            return progress.total_playtime_ms
        case AchievementMetric.DAYS_PLAYED:
            return progress.days_played
        case AchievementMetric.STARS_EARNED:
            return progress.total_stars_earned
        case AchievementMetric.SHOTS_FIRED:
            return progress.shots_fired
        case AchievementMetric.ACCURACY_PERCENTAGE:
            if progress.shots_fired < MIN_SHOTS_FOR_ACCURACY:
                return 0.0
            return progress.lifetime_accuracy
        case AchievementMetric.CUSTOMIZATIONS_UNLOCKED:
            return progress.unlocked_customizations.total()
    return 0.0


def is_satisfied(achievement: Achievement, value: float) -> bool:
    return achievement.condition.comparison.compare(value, achievement.target)
