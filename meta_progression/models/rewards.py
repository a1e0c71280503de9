"""
Mystery reward data model.

A mystery reward is an immutable value. Each reward kind is its own model and
``MysteryReward`` is the discriminated union over them, so consumers can match
exhaustively on the concrete class.
"""
from datetime import datetime
from enum import Enum
from typing import Annotated, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class RewardRarity(str, Enum):
    """Reward rarity, ordered from most to least common"""
    COMMON = "common"
    UNCOMMON = "uncommon"
    RARE = "rare"
    EPIC = "epic"
    LEGENDARY = "legendary"

    @property
    def rank(self) -> int:
        return RARITY_ORDER.index(self)


RARITY_ORDER = [
    RewardRarity.COMMON,
    RewardRarity.UNCOMMON,
    RewardRarity.RARE,
    RewardRarity.EPIC,
    RewardRarity.LEGENDARY,
]


class MysteryRewardType(str, Enum):
    """Kinds of reward a mystery balloon can hold"""
    COINS = "coins"
    EXPERIENCE = "experience"
    CUSTOMIZATION = "customization"
    SCORE_MULTIPLIER = "score_multiplier"
    MYSTERY_BOX = "mystery_box"


class CelebrationLevel(str, Enum):
    SUBTLE = "subtle"
    MEDIUM = "medium"
    DRAMATIC = "dramatic"
    SPECTACULAR = "spectacular"


class RewardBase(BaseModel):
    """Fields shared by every reward kind"""
    model_config = ConfigDict(frozen=True)

    id: str
    rarity: RewardRarity
    base_drop_rate: float = 0.0
    scaling_factor: float = 1.0  # Template-specific value multiplier

    # Player feedback
    celebration_intensity: CelebrationLevel = CelebrationLevel.SUBTLE
    announcement_text: str = ""
    particle_effect: str = ""


class CoinsReward(RewardBase):
    type: Literal["coins"] = "coins"
    value: int


class ExperienceReward(RewardBase):
    type: Literal["experience"] = "experience"
    value: int


class CustomizationReward(RewardBase):
    type: Literal["customization"] = "customization"
    value: str  # Cosmetic pool id, e.g. "random_color"


class ScoreMultiplierReward(RewardBase):
    type: Literal["score_multiplier"] = "score_multiplier"
    value: float


class MysteryBoxReward(RewardBase):
    type: Literal["mystery_box"] = "mystery_box"
    value: str  # Box id, e.g. "rare_box"


MysteryReward = Annotated[
    Union[CoinsReward, ExperienceReward, CustomizationReward, ScoreMultiplierReward, MysteryBoxReward],
    Field(discriminator="type"),
]


class MysteryBalloonInstance(BaseModel):
    """A spawned mystery balloon; transient, never persisted"""
    id: str
    spawn_time: datetime
    position: Dict[str, float]
    reward: MysteryReward
    is_popped: bool = False
    popped_time: Optional[datetime] = None
