"""
Player progress data model

PlayerProgress is the root aggregate owned by the progression ledger. Set-valued
fields are real sets in memory and serialize to JSON arrays.
"""
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Set

from pydantic import BaseModel, Field


class CustomizationCategory(str, Enum):
    """Cosmetic categories; the value is also the active-selection field name"""
    COLOR = "color"
    TRAIL = "trail"
    SHOOTING_EFFECT = "shooting_effect"
    POSE = "pose"
    EMOTE = "emote"
    BACKGROUND = "background"

    @property
    def unlocked_field(self) -> str:
        return UNLOCKED_FIELDS[self]


UNLOCKED_FIELDS = {
    CustomizationCategory.COLOR: "colors",
    CustomizationCategory.TRAIL: "trails",
    CustomizationCategory.SHOOTING_EFFECT: "shooting_effects",
    CustomizationCategory.POSE: "poses",
    CustomizationCategory.EMOTE: "emotes",
    CustomizationCategory.BACKGROUND: "backgrounds",
}

# Item id prefix -> category ("color_red", "effect_laser", ...)
ITEM_PREFIXES = {
    "color": CustomizationCategory.COLOR,
    "trail": CustomizationCategory.TRAIL,
    "effect": CustomizationCategory.SHOOTING_EFFECT,
    "pose": CustomizationCategory.POSE,
    "emote": CustomizationCategory.EMOTE,
    "background": CustomizationCategory.BACKGROUND,
}


def category_for_item(item_id: str) -> Optional[CustomizationCategory]:
    """Resolve a cosmetic's category from its id prefix"""
    prefix, _, rest = item_id.partition("_")
    if not rest:
        return None
    return ITEM_PREFIXES.get(prefix)


class UnlockableType(str, Enum):
    COLOR = "color"
    TRAIL = "trail"
    SHOOTING_EFFECT = "shooting_effect"
    POSE = "pose"
    EMOTE = "emote"
    BACKGROUND = "background"
    FEATURE = "feature"
    CURRENCY = "currency"
    BOOSTER = "booster"


class UnlockableItem(BaseModel):
    """Cosmetic, currency, feature or booster granted as a reward"""
    type: UnlockableType
    item_id: str
    quantity: int = 1


class XPSourceType(str, Enum):
    LEVEL_COMPLETION = "level_completion"
    STAR_EARNED = "star_earned"
    ACHIEVEMENT_UNLOCK = "achievement_unlock"
    DAILY_CHALLENGE = "daily_challenge"
    PERFECT_ACCURACY = "perfect_accuracy"
    SPEED_BONUS = "speed_bonus"
    COMBO_BONUS = "combo_bonus"
    DAILY_FIRST_GAME = "daily_first_game"
    MYSTERY_BALLOON = "mystery_balloon"


class XPBonusType(str, Enum):
    PREMIUM_PASS = "premium_pass"
    WEEKEND_BOOST = "weekend_boost"
    ACHIEVEMENT_BOOSTER = "achievement_booster"
    SPECIAL_EVENT = "special_event"


class XPBonus(BaseModel):
    """Multiplier applied to XP grants; ``applies_to=None`` means every source"""
    type: XPBonusType
    multiplier: float = Field(..., gt=0)
    source: str = ""  # What provides this bonus
    applies_to: Optional[Set[XPSourceType]] = None

    def applies(self, source: XPSourceType) -> bool:
        return self.applies_to is None or source in self.applies_to


class MasteryThresholds(BaseModel):
    """Gold thresholds for the three mastery stars of one level"""
    gold_time_ms: int
    gold_accuracy: float = 95.0
    gold_style: float = 1000.0
    perfect_completion_multiplier: float = 2.0


class LevelMasteryRecord(BaseModel):
    """Best performance on one level; created on first completion, never deleted"""
    level_id: int

    # Star flags (0 or 1 each), derived from the best values
    time_stars: int = 0
    accuracy_stars: int = 0
    style_stars: int = 0
    total_stars: int = 0

    # Performance metrics
    best_time_ms: int
    best_accuracy: float = 0.0
    best_style_score: float = 0.0
    max_combo: int = 0

    first_completion_date: datetime
    last_attempt_date: datetime
    total_attempts: int = 0


class AchievementProgressData(BaseModel):
    current_value: float = 0.0
    target_value: float
    progress_percentage: float = 0.0
    first_progress_date: datetime
    last_progress_date: datetime


class AchievementProgress(BaseModel):
    unlocked_achievements: Set[str] = Field(default_factory=set)
    achievement_progress: Dict[str, AchievementProgressData] = Field(default_factory=dict)
    unlock_dates: Dict[str, datetime] = Field(default_factory=dict)
    total_achievement_score: int = 0


class UnlockedCustomizations(BaseModel):
    colors: Set[str] = Field(default_factory=lambda: {"default"})
    trails: Set[str] = Field(default_factory=lambda: {"none"})
    shooting_effects: Set[str] = Field(default_factory=lambda: {"basic"})
    poses: Set[str] = Field(default_factory=lambda: {"default"})
    emotes: Set[str] = Field(default_factory=lambda: {"wave"})
    backgrounds: Set[str] = Field(default_factory=lambda: {"gradient"})

    def for_category(self, category: CustomizationCategory) -> Set[str]:
        return getattr(self, category.unlocked_field)

    def total(self) -> int:
        return sum(len(self.for_category(c)) for c in CustomizationCategory)


class ActiveCustomizations(BaseModel):
    color: str = "default"
    trail: str = "none"
    shooting_effect: str = "basic"
    pose: str = "default"
    emote: str = "wave"
    background: str = "gradient"


class BattlePassProgress(BaseModel):
    current_season: str = "season_1"
    current_tier: int = 0
    current_xp: int = 0
    xp_to_next_tier: int = 100

    # Track progression
    free_track_rewards: Set[int] = Field(default_factory=set)
    premium_track_rewards: Set[int] = Field(default_factory=set)
    has_premium_pass: bool = False

    # XP sources
    xp_this_session: int = 0
    xp_this_week: int = 0
    total_xp_earned: int = 0


class PlayerProgress(BaseModel):
    """Root aggregate of everything the player has earned"""

    # Core statistics
    total_score: int = 0
    total_playtime_ms: int = 0
    balloons_popped: int = 0
    shots_fired: int = 0
    shots_hit: int = 0

    # Streak & combo records
    longest_combo: int = 0
    perfect_levels_completed: int = 0
    levels_completed: int = 0
    days_played: int = 0
    current_login_streak: int = 0

    # Mastery
    total_stars_earned: int = 0
    perfect_levels: Set[int] = Field(default_factory=set)

    # Timestamps
    first_play_date: Optional[datetime] = None
    last_play_date: Optional[datetime] = None

    # Customization
    unlocked_customizations: UnlockedCustomizations = Field(default_factory=UnlockedCustomizations)
    active_customizations: ActiveCustomizations = Field(default_factory=ActiveCustomizations)

    achievements: AchievementProgress = Field(default_factory=AchievementProgress)
    battle_pass_progress: BattlePassProgress = Field(default_factory=BattlePassProgress)

    # Currency
    coins: int = Field(0, ge=0)
    gems: int = Field(0, ge=0)

    unlocked_features: List[str] = Field(default_factory=lambda: ["achievements"])

    @property
    def lifetime_accuracy(self) -> float:
        """Percentage of fired shots that hit"""
        if self.shots_fired == 0:
            return 0.0
        return self.shots_hit / self.shots_fired * 100


class SessionStats(BaseModel):
    """Per-session counters; reset on session boundaries, never persisted"""
    balloons_popped: int = 0
    shots_fired: int = 0
    shots_hit: int = 0
    session_start_time: Optional[datetime] = None
    xp_earned_this_session: int = 0
