"""
Composition root.

MetaProgressionRuntime builds every service from settings and routes
gameplay events between them. It is the only place that knows how the
reward sampler, spawn scheduler, challenge scheduler and ledger fit together.
"""
import logging
import random
from typing import List, Optional

from meta_progression.core.clock import Clock, build_clock
from meta_progression.core.config import Settings, settings as default_settings
from meta_progression.gamification.catalog import RewardCatalog, RewardSampler
from meta_progression.gamification.daily_challenges import DailyChallengeScheduler
from meta_progression.gamification.engine import LevelCompletionResult, ProgressionLedger
from meta_progression.gamification.mastery import MasteryThresholdResolver
from meta_progression.gamification.variable_rewards import MysteryBalloonManager, VariableRatioScheduler
from meta_progression.models.challenges import (
    ChallengeObjectiveType,
    ChallengeReward,
    DailyChallenge,
    DailyChallengeProgress,
)
from meta_progression.models.progress import XPSourceType
from meta_progression.models.rewards import MysteryBalloonInstance, MysteryReward
from meta_progression.services.refresh_poller import ChallengeRefreshPoller
from meta_progression.services.storage import SlotStore, build_slot_store

logger = logging.getLogger(__name__)


class MetaProgressionRuntime:
    """Owns one instance of every engine service"""

    def __init__(
        self,
        config: Optional[Settings] = None,
        store: Optional[SlotStore] = None,
        clock: Optional[Clock] = None,
        rng: Optional[random.Random] = None,
    ):
        self.config = config or default_settings
        self.store = store or build_slot_store(self.config)
        self.clock = clock or build_clock(self.config)
        self.rng = rng or random.Random()

        self.catalog = RewardCatalog.from_settings(self.config)
        self.sampler = RewardSampler(
            self.catalog,
            rng=self.rng,
            level_scaling_factor=self.config.LEVEL_SCALING_FACTOR,
        )
        self.spawn_scheduler = VariableRatioScheduler(
            min_interval=self.config.MIN_SPAWN_INTERVAL,
            average_interval=self.config.AVERAGE_SPAWN_INTERVAL,
            max_interval=self.config.MAX_SPAWN_INTERVAL,
            rng=self.rng,
        )
        self.balloons = MysteryBalloonManager(
            self.spawn_scheduler,
            self.sampler,
            self.clock,
            rng=self.rng,
            max_age_seconds=self.config.MYSTERY_BALLOON_MAX_AGE_SECONDS,
        )
        self.challenges = DailyChallengeScheduler(
            self.store,
            self.clock,
            rng=self.rng,
            max_daily_challenges=self.config.MAX_DAILY_CHALLENGES,
            streak_bonus_per_day=self.config.STREAK_BONUS_PER_DAY,
            streak_bonus_cap=self.config.CHALLENGE_STREAK_BONUS_CAP,
        )
        self.ledger = ProgressionLedger(
            self.store,
            self.clock,
            catalog=self.catalog,
            thresholds=MasteryThresholdResolver.from_settings(self.config),
            rng=self.rng,
            season_id=self.config.SEASON_ID,
            base_xp_per_tier=self.config.BASE_XP_PER_TIER,
            xp_scaling_factor=self.config.XP_SCALING_FACTOR,
            max_tier=self.config.MAX_BATTLE_PASS_TIERS,
            level_completion_xp=self.config.LEVEL_COMPLETION_XP,
            xp_per_new_star=self.config.XP_PER_NEW_STAR,
        )
        self.poller = ChallengeRefreshPoller(
            self.refresh_challenges,
            interval=self.config.CHALLENGE_REFRESH_INTERVAL_SECONDS,
        )

        self.challenges.add_completion_handler(self._on_challenge_completed)
        self._initialized = False

    def initialize(self) -> None:
        if self._initialized:
            return
        self.ledger.initialize()
        self.challenges.initialize()
        self._initialized = True

    async def start(self) -> None:
        self.initialize()
        await self.poller.start()

    async def stop(self) -> None:
        await self.poller.stop()
        self.ledger.save()
        self.challenges.save()

    # ------------------------------------------------------------------
    # Inbound gameplay events
    # ------------------------------------------------------------------

    def balloon_popped(self) -> None:
        self.ledger.record_balloon_pop()
        self.challenges.record_objective_event(ChallengeObjectiveType.POP_BALLOONS, 1)

    def shot_fired(self) -> None:
        self.ledger.record_shot_fired()

    def shot_hit(self) -> None:
        self.ledger.record_shot_hit()

    def combo_achieved(self, combo: int) -> None:
        self.ledger.record_combo(combo)
        self.challenges.record_objective_event(ChallengeObjectiveType.CONSECUTIVE_HITS, combo)

    def level_completed(
        self,
        level_id: int,
        time_ms: int,
        accuracy: float,
        style_score: float,
        max_combo: int = 0,
        score: int = 0,
    ) -> LevelCompletionResult:
        # A level finished after midnight counts toward the new day's set
        self.challenges.check_and_refresh()

        result = self.ledger.record_level_completion(
            level_id, time_ms, accuracy, style_score, max_combo=max_combo, score=score
        )

        record = self.challenges.record_objective_event
        record(ChallengeObjectiveType.COMPLETE_LEVELS, 1, level_id=level_id)
        record(ChallengeObjectiveType.ACHIEVE_ACCURACY, accuracy, level_id=level_id)
        record(ChallengeObjectiveType.SPEED_COMPLETION, time_ms / 1000, level_id=level_id)
        record(ChallengeObjectiveType.SPECIFIC_LEVEL_MASTERY, result.record.total_stars, level_id=level_id)
        if result.perfect:
            record(ChallengeObjectiveType.PERFECT_LEVELS, 1, level_id=level_id)
        if score > 0:
            record(ChallengeObjectiveType.EARN_SCORE, score, level_id=level_id)
        if max_combo > 0:
            record(ChallengeObjectiveType.CONSECUTIVE_HITS, max_combo, level_id=level_id)
        return result

    def ordinary_enemy_spawned(self) -> Optional[MysteryBalloonInstance]:
        """Count a spawn; returns a mystery balloon when the schedule fires"""
        self.balloons.cleanup_old_balloons()
        return self.balloons.on_balloon_spawned()

    def mystery_balloon_popped(self, balloon_id: str) -> Optional[List[MysteryReward]]:
        reward = self.balloons.on_mystery_balloon_popped(balloon_id)
        if reward is None:
            return None
        return self.ledger.process_mystery_reward(reward)

    def start_level(self, level_id: int) -> None:
        self.balloons.set_current_level(level_id)
        self.balloons.reset_session()

    def start_session(self) -> None:
        self.ledger.start_session()
        self.challenges.check_and_refresh()

    def end_session(self) -> int:
        self.balloons.reset_session()
        return self.ledger.end_session()

    # ------------------------------------------------------------------
    # Daily challenges
    # ------------------------------------------------------------------

    def refresh_challenges(self) -> bool:
        """Periodic housekeeping: expire stale balloons and roll the challenge day"""
        self.balloons.cleanup_old_balloons()
        return self.challenges.check_and_refresh()

    def claim_challenge(self, challenge_id: str) -> Optional[ChallengeReward]:
        challenge = self.challenges.get_challenge(challenge_id)
        reward = self.challenges.claim_reward(challenge_id)
        if reward is None or challenge is None:
            return None

        bonus_xp = reward.experience_points - challenge.base_reward.experience_points
        self.ledger.grant_challenge_reward(reward, bonus_xp=bonus_xp)
        return reward

    def _on_challenge_completed(self, challenge: DailyChallenge, progress: DailyChallengeProgress) -> None:
        self.ledger.earn_xp(challenge.base_reward.experience_points, XPSourceType.DAILY_CHALLENGE)
