"""
Reward Catalog & Sampler

Mystery balloon rewards are drawn in two weighted stages: first a reward type
from the type-probability table, then a rarity from that type's own rarity
weights. A template matching (type, rarity) is picked uniformly and its value
is scaled by the current level.

The catalog also owns the cosmetic pools that customization rewards resolve
against and the fixed contents of each mystery box.
"""
import logging
import math
import random
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from meta_progression.core.config import ConfigurationError, Settings, load_json_table
from meta_progression.models.rewards import (
    RARITY_ORDER,
    CelebrationLevel,
    CoinsReward,
    CustomizationReward,
    ExperienceReward,
    MysteryBoxReward,
    MysteryReward,
    MysteryRewardType,
    RewardRarity,
    ScoreMultiplierReward,
)

logger = logging.getLogger(__name__)

R = RewardRarity
C = CelebrationLevel


class RewardTypeWeights(BaseModel):
    """Probability (in percent) of each reward type; must sum to 100"""
    probabilities: Dict[MysteryRewardType, float]

    @field_validator("probabilities")
    @classmethod
    def check_probabilities(cls, v: Dict[MysteryRewardType, float]) -> Dict[MysteryRewardType, float]:
        if not v:
            raise ValueError("reward type table is empty")
        for reward_type, probability in v.items():
            if probability <= 0:
                raise ValueError(f"probability for {reward_type.value} must be positive")
        total = sum(v.values())
        if not math.isclose(total, 100.0, abs_tol=1e-6):
            raise ValueError(f"reward type probabilities sum to {total}, expected 100")
        return v


class RarityWeights(BaseModel):
    """Relative rarity weights for one reward type, normalized by their own total"""
    weights: Dict[RewardRarity, float]

    @field_validator("weights")
    @classmethod
    def check_weights(cls, v: Dict[RewardRarity, float]) -> Dict[RewardRarity, float]:
        for rarity, weight in v.items():
            if weight < 0:
                raise ValueError(f"weight for {rarity.value} must not be negative")
        if sum(v.values()) <= 0:
            raise ValueError("rarity weights must have a positive total")
        return v


class BoxContent(BaseModel):
    """One sub-reward inside a mystery box: ``amount`` plus a random extra below ``spread``"""
    type: MysteryRewardType
    amount: float = 0
    spread: int = Field(0, ge=0)
    item: Optional[str] = None  # Cosmetic pool for customization contents


class RewardTables(BaseModel):
    """Complete, validated reward configuration"""
    type_weights: RewardTypeWeights
    rarity_weights: Dict[MysteryRewardType, RarityWeights]
    templates: List[MysteryReward]
    cosmetic_pools: Dict[str, List[str]] = Field(default_factory=dict)
    mystery_boxes: Dict[str, List[BoxContent]] = Field(default_factory=dict)

    @model_validator(mode="after")
    def check_coverage(self) -> "RewardTables":
        missing = [t.value for t in self.type_weights.probabilities if t not in self.rarity_weights]
        if missing:
            raise ValueError(f"no rarity weights for reward types: {', '.join(missing)}")
        return self


DEFAULT_TYPE_PROBABILITIES = {
    MysteryRewardType.COINS: 45,
    MysteryRewardType.EXPERIENCE: 25,
    MysteryRewardType.CUSTOMIZATION: 15,
    MysteryRewardType.SCORE_MULTIPLIER: 10,
    MysteryRewardType.MYSTERY_BOX: 5,
}

DEFAULT_RARITY_WEIGHTS = {
    MysteryRewardType.COINS: {R.COMMON: 60, R.UNCOMMON: 25, R.RARE: 12, R.EPIC: 2.5, R.LEGENDARY: 0.5},
    MysteryRewardType.EXPERIENCE: {R.COMMON: 70, R.UNCOMMON: 20, R.RARE: 8, R.EPIC: 2, R.LEGENDARY: 0},
    MysteryRewardType.CUSTOMIZATION: {R.COMMON: 40, R.UNCOMMON: 35, R.RARE: 20, R.EPIC: 4.5, R.LEGENDARY: 0.5},
    MysteryRewardType.SCORE_MULTIPLIER: {R.COMMON: 50, R.UNCOMMON: 30, R.RARE: 15, R.EPIC: 5, R.LEGENDARY: 0},
    MysteryRewardType.MYSTERY_BOX: {R.COMMON: 0, R.UNCOMMON: 60, R.RARE: 30, R.EPIC: 9, R.LEGENDARY: 1},
}

DEFAULT_TEMPLATES: List[Any] = [
    # Coins
    CoinsReward(id="coins_small_1", value=25, rarity=R.COMMON, base_drop_rate=0.6, scaling_factor=1.0,
                celebration_intensity=C.SUBTLE, announcement_text="+25 Coins!", particle_effect="coin_sparkle"),
    CoinsReward(id="coins_small_2", value=50, rarity=R.COMMON, base_drop_rate=0.6, scaling_factor=1.0,
                celebration_intensity=C.SUBTLE, announcement_text="+50 Coins!", particle_effect="coin_sparkle"),
    CoinsReward(id="coins_medium_1", value=100, rarity=R.UNCOMMON, base_drop_rate=0.25, scaling_factor=1.1,
                celebration_intensity=C.MEDIUM, announcement_text="+100 Coins!", particle_effect="coin_burst"),
    CoinsReward(id="coins_medium_2", value=150, rarity=R.UNCOMMON, base_drop_rate=0.25, scaling_factor=1.1,
                celebration_intensity=C.MEDIUM, announcement_text="+150 Coins!", particle_effect="coin_burst"),
    CoinsReward(id="coins_large_1", value=250, rarity=R.RARE, base_drop_rate=0.12, scaling_factor=1.2,
                celebration_intensity=C.DRAMATIC, announcement_text="+250 Coins!", particle_effect="coin_explosion"),
    CoinsReward(id="coins_large_2", value=400, rarity=R.RARE, base_drop_rate=0.12, scaling_factor=1.2,
                celebration_intensity=C.DRAMATIC, announcement_text="+400 Coins!", particle_effect="coin_explosion"),
    CoinsReward(id="coins_huge", value=750, rarity=R.EPIC, base_drop_rate=0.025, scaling_factor=1.3,
                celebration_intensity=C.SPECTACULAR, announcement_text="+750 COINS!", particle_effect="coin_fountain"),
    CoinsReward(id="coins_jackpot", value=1500, rarity=R.LEGENDARY, base_drop_rate=0.005, scaling_factor=1.5,
                celebration_intensity=C.SPECTACULAR, announcement_text="JACKPOT! +1500 COINS!",
                particle_effect="coin_jackpot"),

    # Experience
    ExperienceReward(id="xp_small", value=50, rarity=R.COMMON, base_drop_rate=0.7, scaling_factor=1.0,
                     celebration_intensity=C.SUBTLE, announcement_text="+50 XP", particle_effect="xp_glow"),
    ExperienceReward(id="xp_medium", value=100, rarity=R.UNCOMMON, base_drop_rate=0.2, scaling_factor=1.1,
                     celebration_intensity=C.MEDIUM, announcement_text="+100 XP", particle_effect="xp_burst"),
    ExperienceReward(id="xp_large", value=200, rarity=R.RARE, base_drop_rate=0.08, scaling_factor=1.2,
                     celebration_intensity=C.DRAMATIC, announcement_text="+200 XP!", particle_effect="xp_explosion"),
    ExperienceReward(id="xp_huge", value=500, rarity=R.EPIC, base_drop_rate=0.02, scaling_factor=1.3,
                     celebration_intensity=C.SPECTACULAR, announcement_text="+500 XP!", particle_effect="xp_fountain"),

    # Customization
    CustomizationReward(id="color_unlock", value="random_color", rarity=R.UNCOMMON, base_drop_rate=0.35,
                        celebration_intensity=C.MEDIUM, announcement_text="New Color Unlocked!",
                        particle_effect="rainbow_burst"),
    CustomizationReward(id="trail_unlock", value="random_trail", rarity=R.RARE, base_drop_rate=0.2,
                        celebration_intensity=C.DRAMATIC, announcement_text="New Trail Unlocked!",
                        particle_effect="trail_sparkle"),
    CustomizationReward(id="effect_unlock", value="random_effect", rarity=R.EPIC, base_drop_rate=0.045,
                        celebration_intensity=C.SPECTACULAR, announcement_text="Special Effect Unlocked!",
                        particle_effect="effect_burst"),
    CustomizationReward(id="legendary_unlock", value="legendary_cosmetic", rarity=R.LEGENDARY,
                        base_drop_rate=0.005, celebration_intensity=C.SPECTACULAR,
                        announcement_text="LEGENDARY COSMETIC!", particle_effect="legendary_explosion"),

    # Score multipliers
    ScoreMultiplierReward(id="score_2x", value=2, rarity=R.COMMON, base_drop_rate=0.5,
                          celebration_intensity=C.MEDIUM, announcement_text="2x Score Boost!",
                          particle_effect="score_glow"),
    ScoreMultiplierReward(id="score_3x", value=3, rarity=R.UNCOMMON, base_drop_rate=0.3,
                          celebration_intensity=C.DRAMATIC, announcement_text="3x Score Boost!",
                          particle_effect="score_burst"),
    ScoreMultiplierReward(id="score_5x", value=5, rarity=R.RARE, base_drop_rate=0.15,
                          celebration_intensity=C.SPECTACULAR, announcement_text="5x SCORE BOOST!",
                          particle_effect="score_explosion"),
    ScoreMultiplierReward(id="score_10x", value=10, rarity=R.EPIC, base_drop_rate=0.05,
                          celebration_intensity=C.SPECTACULAR, announcement_text="10x MEGA BOOST!",
                          particle_effect="score_mega"),

    # Mystery boxes
    MysteryBoxReward(id="mystery_common", value="common_box", rarity=R.UNCOMMON, base_drop_rate=0.6,
                     celebration_intensity=C.MEDIUM, announcement_text="Mystery Box!",
                     particle_effect="mystery_glow"),
    MysteryBoxReward(id="mystery_rare", value="rare_box", rarity=R.RARE, base_drop_rate=0.3,
                     celebration_intensity=C.DRAMATIC, announcement_text="Rare Mystery Box!",
                     particle_effect="mystery_burst"),
    MysteryBoxReward(id="mystery_epic", value="epic_box", rarity=R.EPIC, base_drop_rate=0.09,
                     celebration_intensity=C.SPECTACULAR, announcement_text="Epic Mystery Box!",
                     particle_effect="mystery_explosion"),
    MysteryBoxReward(id="mystery_legendary", value="legendary_box", rarity=R.LEGENDARY, base_drop_rate=0.01,
                     celebration_intensity=C.SPECTACULAR, announcement_text="LEGENDARY MYSTERY!",
                     particle_effect="mystery_legendary"),
]

COLOR_POOL = ["color_red", "color_blue", "color_green", "color_purple", "color_orange"]
TRAIL_POOL = ["trail_sparkle", "trail_rainbow", "trail_fire", "trail_ice"]
EFFECT_POOL = ["effect_laser", "effect_starburst", "effect_bubbles"]

DEFAULT_COSMETIC_POOLS = {
    "random_color": COLOR_POOL,
    "random_trail": TRAIL_POOL,
    "random_effect": EFFECT_POOL,
    "random_cosmetic": COLOR_POOL + TRAIL_POOL,
    "rare_cosmetic": TRAIL_POOL + EFFECT_POOL,
    "legendary_cosmetic": ["color_gold", "trail_comet", "effect_supernova", "background_galaxy"],
}

DEFAULT_MYSTERY_BOXES = {
    "common_box": [
        BoxContent(type=MysteryRewardType.COINS, amount=100, spread=100),
        BoxContent(type=MysteryRewardType.EXPERIENCE, amount=50, spread=50),
    ],
    "rare_box": [
        BoxContent(type=MysteryRewardType.COINS, amount=200, spread=200),
        BoxContent(type=MysteryRewardType.EXPERIENCE, amount=100, spread=100),
        BoxContent(type=MysteryRewardType.CUSTOMIZATION, item="random_cosmetic"),
    ],
    "epic_box": [
        BoxContent(type=MysteryRewardType.COINS, amount=500, spread=300),
        BoxContent(type=MysteryRewardType.EXPERIENCE, amount=200, spread=200),
        BoxContent(type=MysteryRewardType.CUSTOMIZATION, item="rare_cosmetic"),
        BoxContent(type=MysteryRewardType.SCORE_MULTIPLIER, amount=3),
    ],
    "legendary_box": [
        BoxContent(type=MysteryRewardType.COINS, amount=1000, spread=500),
        BoxContent(type=MysteryRewardType.EXPERIENCE, amount=500, spread=300),
        BoxContent(type=MysteryRewardType.CUSTOMIZATION, item="legendary_cosmetic"),
        BoxContent(type=MysteryRewardType.SCORE_MULTIPLIER, amount=5),
    ],
}

# Used when neither the drawn bucket nor the most common type has a template
SAFE_DEFAULT_REWARD = CoinsReward(
    id="coins_fallback",
    value=25,
    rarity=R.COMMON,
    base_drop_rate=0.6,
    celebration_intensity=C.SUBTLE,
    announcement_text="+25 Coins!",
    particle_effect="coin_sparkle",
)


class RewardCatalog:
    """Validated reward tables with lookup helpers"""

    def __init__(self, tables: RewardTables):
        self.tables = tables
        self.type_probabilities = tables.type_weights.probabilities
        self.rarity_weights = {t: w.weights for t, w in tables.rarity_weights.items()}
        self.templates = list(tables.templates)
        self._warn_empty_buckets()

    @classmethod
    def default(cls) -> "RewardCatalog":
        return cls.from_dict({})

    @classmethod
    def from_dict(cls, overrides: Dict[str, Any]) -> "RewardCatalog":
        """
        Build a catalog from built-in defaults with optional overrides.

        ``overrides`` may replace any of ``type_probabilities``,
        ``rarity_weights``, ``templates``, ``cosmetic_pools`` and
        ``mystery_boxes``. Invalid tables raise ConfigurationError.
        """
        raw = {
            "type_weights": {"probabilities": overrides.get("type_probabilities", DEFAULT_TYPE_PROBABILITIES)},
            "rarity_weights": {
                t: {"weights": w}
                for t, w in overrides.get("rarity_weights", DEFAULT_RARITY_WEIGHTS).items()
            },
            "templates": overrides.get("templates", DEFAULT_TEMPLATES),
            "cosmetic_pools": overrides.get("cosmetic_pools", DEFAULT_COSMETIC_POOLS),
            "mystery_boxes": overrides.get("mystery_boxes", DEFAULT_MYSTERY_BOXES),
        }
        try:
            tables = RewardTables.model_validate(raw)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid reward tables: {e}") from e
        return cls(tables)

    @classmethod
    def from_settings(cls, config: Settings) -> "RewardCatalog":
        overrides = load_json_table(config.REWARD_TABLES_PATH)
        if overrides is not None:
            logger.info(f"Loading reward tables from {config.REWARD_TABLES_PATH}")
        return cls.from_dict(overrides or {})

    def _warn_empty_buckets(self) -> None:
        for reward_type, weights in self.rarity_weights.items():
            for rarity, weight in weights.items():
                if weight > 0 and not self.templates_for(reward_type, rarity):
                    logger.warning(
                        f"No {rarity.value} templates for reward type {reward_type.value}; "
                        f"draws will use the fallback reward"
                    )

    def templates_for(self, reward_type: MysteryRewardType, rarity: RewardRarity) -> List[MysteryReward]:
        return [t for t in self.templates if t.type == reward_type.value and t.rarity == rarity]

    def fallback_template(self) -> MysteryReward:
        """Lowest-rarity template of the most common reward type, or the safe default"""
        most_common = max(self.type_probabilities, key=self.type_probabilities.get)
        candidates = [t for t in self.templates if t.type == most_common.value]
        if not candidates:
            return SAFE_DEFAULT_REWARD
        return min(candidates, key=lambda t: t.rarity.rank)

    def resolve_cosmetic(self, pool_id: str, rng: random.Random) -> str:
        """Pick a concrete cosmetic id from a pool; unknown pools are item ids themselves"""
        pool = self.tables.cosmetic_pools.get(pool_id)
        if not pool:
            return pool_id
        return rng.choice(pool)

    def open_box(self, box: MysteryBoxReward, rng: random.Random) -> List[MysteryReward]:
        """Expand a mystery box into its concrete sub-rewards"""
        contents = self.tables.mystery_boxes.get(box.value)
        if contents is None:
            logger.warning(f"Unknown mystery box {box.value}; granting fallback reward")
            return [self.fallback_template()]

        rewards = []
        for index, content in enumerate(contents):
            extra = rng.randrange(content.spread) if content.spread else 0
            common = {
                "id": f"{box.id}_{content.type.value}_{index}",
                "rarity": box.rarity,
                "celebration_intensity": box.celebration_intensity,
                "particle_effect": box.particle_effect,
            }
            match content.type:
                case MysteryRewardType.COINS:
                    value = int(content.amount) + extra
                    rewards.append(CoinsReward(value=value, announcement_text=f"+{value} Coins!", **common))
                case MysteryRewardType.EXPERIENCE:
                    value = int(content.amount) + extra
                    rewards.append(ExperienceReward(value=value, announcement_text=f"+{value} XP", **common))
                case MysteryRewardType.CUSTOMIZATION:
                    rewards.append(CustomizationReward(
                        value=content.item or "random_color", announcement_text="New Cosmetic!", **common
                    ))
                case MysteryRewardType.SCORE_MULTIPLIER:
                    value = content.amount + extra
                    rewards.append(ScoreMultiplierReward(
                        value=value, announcement_text=f"{value:g}x Score Boost!", **common
                    ))
                case MysteryRewardType.MYSTERY_BOX:
                    # Nested boxes are not expanded further
                    logger.warning(f"Ignoring nested box entry in {box.value}")
        return rewards


class RewardSampler:
    """
    Draws level-scaled rewards from a catalog.

    The sampler is a pure function of the catalog, the level and the state of
    its injected random generator.
    """

    def __init__(
        self,
        catalog: RewardCatalog,
        rng: Optional[random.Random] = None,
        level_scaling_factor: float = 0.1,
    ):
        self.catalog = catalog
        self.rng = rng or random.Random()
        self.level_scaling_factor = level_scaling_factor

    def select_reward_type(self) -> MysteryRewardType:
        types = list(self.catalog.type_probabilities)
        weights = [self.catalog.type_probabilities[t] for t in types]
        return self.rng.choices(types, weights=weights, k=1)[0]

    def select_rarity(self, reward_type: MysteryRewardType) -> RewardRarity:
        table = self.catalog.rarity_weights.get(reward_type)
        if not table:
            return RewardRarity.COMMON
        rarities = [r for r in RARITY_ORDER if r in table]
        weights = [table[r] for r in rarities]
        return self.rng.choices(rarities, weights=weights, k=1)[0]

    def level_multiplier(self, level: int) -> float:
        return 1 + (level - 1) * self.level_scaling_factor

    def scale_reward(self, template: MysteryReward, level: int) -> MysteryReward:
        """Apply level and template scaling; non-numeric values pass through"""
        factor = self.level_multiplier(level) * template.scaling_factor
        match template:
            case CoinsReward() | ExperienceReward():
                return template.model_copy(update={"value": math.floor(round(template.value * factor, 9))})
            case ScoreMultiplierReward():
                return template.model_copy(update={"value": template.value * factor})
            case _:
                return template

    def sample_reward(self, current_level: int) -> MysteryReward:
        reward_type = self.select_reward_type()
        rarity = self.select_rarity(reward_type)

        templates = self.catalog.templates_for(reward_type, rarity)
        if templates:
            template = self.rng.choice(templates)
        else:
            template = self.catalog.fallback_template()
            logger.debug(f"No template for {reward_type.value}/{rarity.value}, using {template.id}")

        return self.scale_reward(template, current_level)

