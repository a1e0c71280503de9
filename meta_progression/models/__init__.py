"""
Data models
"""
from .rewards import (
    RewardRarity,
    MysteryRewardType,
    CelebrationLevel,
    CoinsReward,
    ExperienceReward,
    CustomizationReward,
    ScoreMultiplierReward,
    MysteryBoxReward,
    MysteryReward,
    MysteryBalloonInstance,
)
from .progress import (
    PlayerProgress,
    LevelMasteryRecord,
    MasteryThresholds,
    BattlePassProgress,
    AchievementProgress,
    UnlockableItem,
    UnlockableType,
    XPSourceType,
    XPBonus,
    XPBonusType,
    CustomizationCategory,
    SessionStats,
)
from .achievements import Achievement, AchievementCondition, AchievementMetric, ComparisonOperator
from .challenges import (
    ChallengeDifficulty,
    ChallengeObjectiveType,
    ChallengeReward,
    ChallengeTemplate,
    DailyChallenge,
    DailyChallengeProgress,
    ChallengeHistory,
)

__all__ = [
    "RewardRarity", "MysteryRewardType", "CelebrationLevel", "CoinsReward", "ExperienceReward",
    "CustomizationReward", "ScoreMultiplierReward", "MysteryBoxReward", "MysteryReward",
    "MysteryBalloonInstance", "PlayerProgress", "LevelMasteryRecord", "MasteryThresholds",
    "BattlePassProgress", "AchievementProgress", "UnlockableItem", "UnlockableType", "XPSourceType",
    "XPBonus", "XPBonusType", "CustomizationCategory", "SessionStats", "Achievement",
    "AchievementCondition", "AchievementMetric", "ComparisonOperator", "ChallengeDifficulty",
    "ChallengeObjectiveType", "ChallengeReward", "ChallengeTemplate", "DailyChallenge",
    "DailyChallengeProgress", "ChallengeHistory",
]
