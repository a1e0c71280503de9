"""
Daily challenge data model
"""
from datetime import datetime
from enum import Enum
from typing import List, Optional, Set

from pydantic import BaseModel, Field

from meta_progression.models.progress import UnlockableItem


class ChallengeDifficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"
    EXPERT = "expert"


class ChallengeObjectiveType(str, Enum):
    COMPLETE_LEVELS = "complete_levels"              # Complete X levels
    POP_BALLOONS = "pop_balloons"                    # Pop X balloons
    ACHIEVE_ACCURACY = "achieve_accuracy"            # Reach X% accuracy in a level
    EARN_SCORE = "earn_score"                        # Earn X points
    PERFECT_LEVELS = "perfect_levels"                # Complete X levels perfectly
    CONSECUTIVE_HITS = "consecutive_hits"            # Hit X consecutive shots
    SPEED_COMPLETION = "speed_completion"            # Complete a level in under X seconds
    SPECIFIC_LEVEL_MASTERY = "specific_level_mastery"  # Earn X stars on a level


# Objectives whose progress is a running count for the day
COUNTING_OBJECTIVES = {
    ChallengeObjectiveType.COMPLETE_LEVELS,
    ChallengeObjectiveType.POP_BALLOONS,
    ChallengeObjectiveType.EARN_SCORE,
    ChallengeObjectiveType.PERFECT_LEVELS,
}


class ChallengeRefreshType(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    SPECIAL_EVENT = "special_event"


class ContextFilter(BaseModel):
    level_ids: Optional[List[int]] = None

    def matches_level(self, level_id: Optional[int]) -> bool:
        if not self.level_ids:
            return True
        return level_id is not None and level_id in self.level_ids


class ChallengeObjective(BaseModel):
    type: ChallengeObjectiveType
    target: float = Field(..., gt=0)
    context_filter: Optional[ContextFilter] = None
    allowed_attempts: Optional[int] = None


class ChallengeReward(BaseModel):
    coins: int = Field(0, ge=0)
    gems: int = Field(0, ge=0)
    experience_points: int = Field(0, ge=0)
    unlockable_item: Optional[UnlockableItem] = None


class ChallengeTemplate(BaseModel):
    """Blueprint a daily challenge is instantiated from"""
    name: str
    description: str
    objective: ChallengeObjective
    difficulty: ChallengeDifficulty
    base_reward: ChallengeReward
    weight: float = Field(..., gt=0)  # Probability weight for selection


class DailyChallenge(BaseModel):
    """A challenge generated for one calendar day; immutable once generated"""
    id: str
    name: str
    description: str
    objective: ChallengeObjective
    difficulty: ChallengeDifficulty
    base_reward: ChallengeReward
    streak_bonus: ChallengeReward = Field(default_factory=ChallengeReward)
    start_date: datetime
    end_date: datetime
    refresh_type: ChallengeRefreshType = ChallengeRefreshType.DAILY

    # Analytics estimates
    completion_rate: float = 0.5
    average_attempts: float = 2.5


class DailyChallengeProgress(BaseModel):
    challenge_id: str
    current_progress: float = 0.0
    target_progress: float
    completed: bool = False
    claimed: bool = False
    completion_date: Optional[datetime] = None
    attempts: int = 0


class ChallengeHistory(BaseModel):
    completed_challenges: Set[str] = Field(default_factory=set)
    current_streak: int = 0
    longest_streak: int = 0
    total_challenges_completed: int = 0
