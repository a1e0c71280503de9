"""
Achievement catalog data model
"""
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from meta_progression.models.progress import UnlockableItem
from meta_progression.models.rewards import RewardRarity


class AchievementCategory(str, Enum):
    """Achievement grouping for display"""
    GAMEPLAY = "gameplay"
    MASTERY = "mastery"
    PROGRESSION = "progression"
    COLLECTION = "collection"
    SOCIAL = "social"
    SPECIAL = "special"
    DAILY = "daily"


class AchievementKind(str, Enum):
    """How progress toward an achievement accrues"""
    CUMULATIVE = "cumulative"  # Track progress over time (pop 1000 balloons)
    MILESTONE = "milestone"    # Single moment achievement
    STREAK = "streak"          # Consecutive actions
    CHALLENGE = "challenge"    # Special conditions
    DISCOVERY = "discovery"    # Hidden content


class AchievementMetric(str, Enum):
    """Cumulative statistic an achievement condition is evaluated against"""
    BALLOONS_POPPED = "balloons_popped"
    LEVELS_COMPLETED = "levels_completed"
    PERFECT_LEVELS = "perfect_levels"
    CONSECUTIVE_HITS = "consecutive_hits"
    TIME_PLAYED = "time_played"
    DAYS_PLAYED = "days_played"
    STARS_EARNED = "stars_earned"
    SHOTS_FIRED = "shots_fired"
    ACCURACY_PERCENTAGE = "accuracy_percentage"
    CUSTOMIZATIONS_UNLOCKED = "customizations_unlocked"


class ComparisonOperator(str, Enum):
    EQUALS = "equals"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    GREATER_EQUAL = "greater_equal"
    LESS_EQUAL = "less_equal"

    def compare(self, current: float, target: float) -> bool:
        match self:
            case ComparisonOperator.EQUALS:
                return current == target
            case ComparisonOperator.GREATER_THAN:
                return current > target
            case ComparisonOperator.LESS_THAN:
                return current < target
            case ComparisonOperator.GREATER_EQUAL:
                return current >= target
            case ComparisonOperator.LESS_EQUAL:
                return current <= target


class AchievementCondition(BaseModel):
    metric: AchievementMetric
    comparison: ComparisonOperator = ComparisonOperator.GREATER_EQUAL


class Achievement(BaseModel):
    """Achievement definition"""
    id: str
    name: str
    description: str
    category: AchievementCategory
    kind: AchievementKind
    target: float = Field(..., ge=0)
    condition: AchievementCondition

    # Rewards
    score_reward: int = 0
    coin_reward: int = 0
    unlock_reward: Optional[UnlockableItem] = None

    # Display
    icon: str = ""
    rarity: RewardRarity = RewardRarity.COMMON
    secret_achievement: bool = False
