"""
Tests for the variable-ratio spawn scheduler and mystery balloon manager
"""
import random
from unittest.mock import patch

import pytest

from meta_progression.core.config import ConfigurationError
from meta_progression.gamification.variable_rewards import MysteryBalloonManager, VariableRatioScheduler


@pytest.fixture
def scheduler(rng):
    return VariableRatioScheduler(min_interval=8, average_interval=15, max_interval=25, rng=rng)


@pytest.fixture
def manager(scheduler, sampler, clock, rng):
    return MysteryBalloonManager(scheduler, sampler, clock, rng=rng)


def spawn_until_bonus(manager, limit=100):
    for count in range(1, limit + 1):
        balloon = manager.on_balloon_spawned()
        if balloon is not None:
            return balloon, count
    raise AssertionError("no mystery balloon within limit")


class TestVariableRatioScheduler:
    """Threshold draws and counter bookkeeping"""

    def test_thresholds_stay_within_bounds(self, scheduler):
        thresholds = [scheduler.recompute_threshold() for _ in range(10_000)]
        assert min(thresholds) >= 8
        assert max(thresholds) <= 25

    def test_thresholds_centre_on_average(self, scheduler):
        thresholds = [scheduler.recompute_threshold() for _ in range(10_000)]
        mean = sum(thresholds) / len(thresholds)
        assert mean == pytest.approx(15, abs=0.3)
        assert len(set(thresholds)) > 3

    def test_spawn_signal_after_threshold(self, scheduler):
        threshold = scheduler.next_threshold
        for _ in range(threshold - 1):
            scheduler.on_ordinary_spawn()
            assert not scheduler.should_spawn_bonus_now()

        scheduler.on_ordinary_spawn()
        assert scheduler.should_spawn_bonus_now()

    def test_bonus_spawn_resets_counter_and_draws_threshold(self, scheduler):
        for _ in range(scheduler.next_threshold):
            scheduler.on_ordinary_spawn()

        scheduler.register_bonus_spawn()

        assert scheduler.events_since_last_bonus == 0
        assert scheduler.session_bonus_count == 1
        assert 8 <= scheduler.next_threshold <= 25
        assert not scheduler.should_spawn_bonus_now()

    def test_reset_session_clears_bonus_count(self, scheduler):
        scheduler.register_bonus_spawn()
        scheduler.register_bonus_spawn()
        scheduler.on_ordinary_spawn()

        scheduler.reset_session()

        assert scheduler.session_bonus_count == 0
        assert scheduler.events_since_last_bonus == 0

    def test_degenerate_range_is_fixed_interval(self):
        scheduler = VariableRatioScheduler(10, 10, 10, rng=random.Random(3))
        assert {scheduler.recompute_threshold() for _ in range(100)} == {10}

    @pytest.mark.parametrize("bounds", [(0, 5, 10), (10, 5, 20), (8, 30, 25)])
    def test_invalid_intervals_rejected(self, bounds):
        with pytest.raises(ConfigurationError):
            VariableRatioScheduler(*bounds)


class TestMysteryBalloonManager:
    """Balloon lifecycle on top of the scheduler"""

    def test_balloon_spawns_at_threshold(self, manager):
        threshold = manager.scheduler.next_threshold
        balloon, count = spawn_until_bonus(manager)

        assert count == threshold
        assert balloon.id.startswith("mystery_")
        assert 0.1 <= balloon.position["x"] <= 0.9
        assert balloon.position["y"] == 0.1
        assert manager.get_active_mystery_balloons() == [balloon]

    def test_pop_returns_reward_once(self, manager):
        balloon, _ = spawn_until_bonus(manager)

        reward = manager.on_mystery_balloon_popped(balloon.id)

        assert reward == balloon.reward
        assert manager.on_mystery_balloon_popped(balloon.id) is None
        assert manager.get_active_mystery_balloons() == []
        assert manager.get_session_stats()["mystery_rewards_collected"] == 1

    def test_balloon_id_collision_draws_again(self, scheduler, sampler, clock):
        id_rng = random.Random(7)
        manager = MysteryBalloonManager(scheduler, sampler, clock, rng=id_rng)

        with patch.object(id_rng, "getrandbits", side_effect=[0xABC, 0xABC, 0xDEF]):
            first, _ = spawn_until_bonus(manager)
            second, _ = spawn_until_bonus(manager)

        assert first.id == "mystery_00000abc"
        assert second.id == "mystery_00000def"
        assert len(manager.get_active_mystery_balloons()) == 2

    def test_unknown_balloon_returns_none(self, manager):
        assert manager.on_mystery_balloon_popped("mystery_missing") is None

    def test_cleanup_drops_expired_balloons(self, manager, clock):
        balloon, _ = spawn_until_bonus(manager)

        clock.advance(seconds=29)
        assert manager.cleanup_old_balloons() == 0

        clock.advance(seconds=2)
        assert manager.cleanup_old_balloons() == 1
        assert manager.on_mystery_balloon_popped(balloon.id) is None

    def test_session_stats(self, manager):
        spawn_until_bonus(manager)
        manager.on_balloon_spawned()

        stats = manager.get_session_stats()

        assert stats["mystery_balloons_spawned"] == 1
        assert stats["next_spawn_in"] == manager.scheduler.next_threshold - 1

    def test_reward_scales_with_current_level(self, catalog, clock):
        from meta_progression.gamification.catalog import RewardSampler

        low = MysteryBalloonManager(
            VariableRatioScheduler(1, 1, 1, rng=random.Random(5)),
            RewardSampler(catalog, rng=random.Random(5)), clock, rng=random.Random(5),
        )
        high = MysteryBalloonManager(
            VariableRatioScheduler(1, 1, 1, rng=random.Random(5)),
            RewardSampler(catalog, rng=random.Random(5)), clock, rng=random.Random(5),
        )
        high.set_current_level(11)

        low_reward = low.on_balloon_spawned().reward
        high_reward = high.on_balloon_spawned().reward

        assert low_reward.id == high_reward.id
        if isinstance(low_reward.value, (int, float)):
            assert high_reward.value > low_reward.value

    def test_reset_session_clears_active_balloons(self, manager):
        spawn_until_bonus(manager)

        manager.reset_session()

        assert manager.get_active_mystery_balloons() == []
        assert manager.get_session_stats()["mystery_balloons_spawned"] == 0

    def test_update_config(self, manager):
        manager.update_config(min_spawn_interval=2, average_spawn_interval=3, max_spawn_interval=4,
                              level_scaling_factor=0.5)

        assert 2 <= manager.scheduler.next_threshold <= 4
        assert manager.sampler.level_scaling_factor == 0.5
