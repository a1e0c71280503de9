"""
Variable Reward Engine - mystery balloons on a variable-ratio schedule.

A mystery balloon appears after an unpredictable number of ordinary balloon
spawns. The interval is drawn from a bounded pseudo-Gaussian around the
configured average, so bonuses feel frequent enough to anticipate but never
become predictable.
"""
import logging
import math
import random
from datetime import datetime
from typing import Dict, List, Optional

from meta_progression.core.clock import Clock
from meta_progression.core.config import ConfigurationError
from meta_progression.gamification.catalog import RewardSampler
from meta_progression.models.rewards import MysteryBalloonInstance, MysteryReward

logger = logging.getLogger(__name__)

# Standard deviation of the interval draw as a share of the [min, max] range
SPREAD_SHARE = 0.15


class VariableRatioScheduler:
    """Counts ordinary spawns and decides when the next bonus spawn is due"""

    def __init__(
        self,
        min_interval: int = 8,
        average_interval: int = 15,
        max_interval: int = 25,
        rng: Optional[random.Random] = None,
    ):
        self.rng = rng or random.Random()
        self._validate(min_interval, average_interval, max_interval)
        self.min_interval = min_interval
        self.average_interval = average_interval
        self.max_interval = max_interval

        self.events_since_last_bonus = 0
        self.session_bonus_count = 0
        self.next_threshold = self.recompute_threshold()

    @staticmethod
    def _validate(min_interval: int, average_interval: int, max_interval: int) -> None:
        if min_interval < 1:
            raise ConfigurationError("Minimum spawn interval must be at least 1")
        if not min_interval <= average_interval <= max_interval:
            raise ConfigurationError(
                f"Spawn intervals must satisfy min <= average <= max, "
                f"got {min_interval}/{average_interval}/{max_interval}"
            )

    def _gaussian(self) -> float:
        """Standard normal sample via the Box-Muller transform"""
        u1 = 1.0 - self.rng.random()  # (0, 1], keeps log() finite
        u2 = self.rng.random()
        return math.sqrt(-2.0 * math.log(u1)) * math.cos(2.0 * math.pi * u2)

    def recompute_threshold(self) -> int:
        spread = SPREAD_SHARE * (self.max_interval - self.min_interval)
        draw = self.average_interval + self._gaussian() * spread
        clamped = max(self.min_interval, min(self.max_interval, draw))
        self.next_threshold = int(round(clamped))
        return self.next_threshold

    def on_ordinary_spawn(self) -> None:
        self.events_since_last_bonus += 1

    def should_spawn_bonus_now(self) -> bool:
        return self.events_since_last_bonus >= self.next_threshold

    def register_bonus_spawn(self) -> None:
        self.events_since_last_bonus = 0
        self.session_bonus_count += 1
        self.recompute_threshold()

    @property
    def events_until_bonus(self) -> int:
        return max(0, self.next_threshold - self.events_since_last_bonus)

    def reset_session(self) -> None:
        self.events_since_last_bonus = 0
        self.session_bonus_count = 0
        self.recompute_threshold()

    def update_intervals(
        self,
        min_interval: Optional[int] = None,
        average_interval: Optional[int] = None,
        max_interval: Optional[int] = None,
    ) -> None:
        new_min = self.min_interval if min_interval is None else min_interval
        new_avg = self.average_interval if average_interval is None else average_interval
        new_max = self.max_interval if max_interval is None else max_interval
        self._validate(new_min, new_avg, new_max)

        self.min_interval, self.average_interval, self.max_interval = new_min, new_avg, new_max
        self.recompute_threshold()


class MysteryBalloonManager:
    """
    Binds sampled rewards to spawned mystery balloons and tracks their
    lifecycle for the current session.
    """

    def __init__(
        self,
        scheduler: VariableRatioScheduler,
        sampler: RewardSampler,
        clock: Clock,
        rng: Optional[random.Random] = None,
        max_age_seconds: float = 30.0,
    ):
        self.scheduler = scheduler
        self.sampler = sampler
        self.clock = clock
        self.rng = rng or random.Random()
        self.max_age_seconds = max_age_seconds

        self.current_level = 1
        self.active_balloons: Dict[str, MysteryBalloonInstance] = {}
        self.rewards_collected = 0

    def set_current_level(self, level: int) -> None:
        self.current_level = max(1, level)

    def on_balloon_spawned(self) -> Optional[MysteryBalloonInstance]:
        """Count an ordinary spawn; returns the mystery balloon when one is due"""
        self.scheduler.on_ordinary_spawn()
        if not self.scheduler.should_spawn_bonus_now():
            return None
        return self._spawn_mystery_balloon()

    def _spawn_mystery_balloon(self) -> MysteryBalloonInstance:
        reward = self.sampler.sample_reward(self.current_level)
        balloon = MysteryBalloonInstance(
            id=self._new_balloon_id(),
            spawn_time=self.clock.now(),
            position={"x": 0.1 + self.rng.random() * 0.8, "y": 0.1},
            reward=reward,
        )
        self.active_balloons[balloon.id] = balloon
        self.scheduler.register_bonus_spawn()

        logger.info(
            f"Mystery balloon spawned: {balloon.id} reward={reward.type}/{reward.rarity.value} "
            f"value={reward.value} level={self.current_level} "
            f"session_count={self.scheduler.session_bonus_count}"
        )
        return balloon

    def _new_balloon_id(self) -> str:
        while True:
            balloon_id = f"mystery_{self.rng.getrandbits(32):08x}"
            if balloon_id not in self.active_balloons:
                return balloon_id

    def on_mystery_balloon_popped(self, balloon_id: str) -> Optional[MysteryReward]:
        """Return the balloon's reward exactly once; unknown or popped ids give None"""
        balloon = self.active_balloons.get(balloon_id)
        if balloon is None or balloon.is_popped:
            return None

        balloon.is_popped = True
        balloon.popped_time = self.clock.now()
        self.rewards_collected += 1

        time_to_collect = (balloon.popped_time - balloon.spawn_time).total_seconds()
        logger.info(
            f"Mystery balloon popped: {balloon.id} reward={balloon.reward.type} "
            f"after {time_to_collect:.1f}s (total collected {self.rewards_collected})"
        )
        return balloon.reward

    def get_active_mystery_balloons(self) -> List[MysteryBalloonInstance]:
        return [b for b in self.active_balloons.values() if not b.is_popped]

    def cleanup_old_balloons(self, now: Optional[datetime] = None) -> int:
        """Drop balloons older than the max age; returns how many were removed"""
        now = now or self.clock.now()
        expired = [
            balloon_id
            for balloon_id, balloon in self.active_balloons.items()
            if (now - balloon.spawn_time).total_seconds() > self.max_age_seconds
        ]
        for balloon_id in expired:
            del self.active_balloons[balloon_id]
        return len(expired)

    def get_session_stats(self) -> Dict[str, int]:
        return {
            "mystery_balloons_spawned": self.scheduler.session_bonus_count,
            "mystery_rewards_collected": self.rewards_collected,
            "next_spawn_in": self.scheduler.events_until_bonus,
        }

    def reset_session(self) -> None:
        self.scheduler.reset_session()
        self.active_balloons.clear()
        self.rewards_collected = 0

    def update_config(
        self,
        min_spawn_interval: Optional[int] = None,
        average_spawn_interval: Optional[int] = None,
        max_spawn_interval: Optional[int] = None,
        level_scaling_factor: Optional[float] = None,
        max_age_seconds: Optional[float] = None,
    ) -> None:
        self.scheduler.update_intervals(min_spawn_interval, average_spawn_interval, max_spawn_interval)
        if level_scaling_factor is not None:
            self.sampler.level_scaling_factor = level_scaling_factor
        if max_age_seconds is not None:
            self.max_age_seconds = max_age_seconds
        logger.info(
            f"Mystery balloon config updated: intervals {self.scheduler.min_interval}/"
            f"{self.scheduler.average_interval}/{self.scheduler.max_interval}"
        )
