"""
Tests for the daily challenge scheduler
"""
import pytest

from meta_progression.gamification.daily_challenges import (
    CHALLENGE_HISTORY_KEY,
    CHALLENGE_SLOTS,
    DAILY_CHALLENGES_KEY,
    LAST_CHALLENGE_REFRESH_KEY,
    DailyChallengeScheduler,
    day_start_from_challenge_id,
)
from meta_progression.models.challenges import (
    ChallengeDifficulty,
    ChallengeObjective,
    ChallengeObjectiveType,
    ChallengeReward,
    ChallengeTemplate,
    ContextFilter,
)
from meta_progression.models.progress import UnlockableItem, UnlockableType


def make_template(objective_type, target, difficulty=ChallengeDifficulty.EASY, coins=100, xp=50, weight=1,
                  level_ids=None, item=None):
    return ChallengeTemplate(
        name=f"{objective_type.value} x{target}",
        description="test challenge",
        objective=ChallengeObjective(
            type=objective_type,
            target=target,
            context_filter=ContextFilter(level_ids=level_ids) if level_ids else None,
        ),
        difficulty=difficulty,
        base_reward=ChallengeReward(coins=coins, experience_points=xp, unlockable_item=item),
        weight=weight,
    )


@pytest.fixture
def mixed_templates():
    return [
        make_template(ChallengeObjectiveType.POP_BALLOONS, 25, ChallengeDifficulty.EASY),
        make_template(ChallengeObjectiveType.SPEED_COMPLETION, 30, ChallengeDifficulty.MEDIUM, level_ids=[1]),
        make_template(ChallengeObjectiveType.PERFECT_LEVELS, 2, ChallengeDifficulty.EXPERT),
    ]


@pytest.fixture
def mixed(store, clock, rng, mixed_templates):
    scheduler = DailyChallengeScheduler(store, clock, rng=rng, templates=mixed_templates)
    scheduler.initialize()
    return scheduler


@pytest.fixture
def single(store, clock, rng):
    """Scheduler whose only template pays 100 coins for one balloon"""
    scheduler = DailyChallengeScheduler(
        store, clock, rng=rng,
        templates=[make_template(ChallengeObjectiveType.POP_BALLOONS, 1, coins=100, xp=50)],
    )
    scheduler.initialize()
    return scheduler


def dumped(challenges):
    return [c.model_dump() for c in challenges]


def complete_first(scheduler):
    challenge = scheduler.get_current_challenges()[0]
    scheduler.update_progress(challenge.id, challenge.objective.target)
    return challenge


class TestGeneration:
    """Daily set composition and refresh"""

    def test_one_challenge_per_difficulty_tier(self, challenges, clock):
        generated = challenges.generate()

        assert len(generated) == 3
        assert generated[0].difficulty == ChallengeDifficulty.EASY
        assert generated[1].difficulty == ChallengeDifficulty.MEDIUM
        assert generated[2].difficulty in (ChallengeDifficulty.HARD, ChallengeDifficulty.EXPERT)

    def test_ids_encode_day_and_slot(self, challenges, clock):
        generated = challenges.generate()
        day_ms = clock.day_start_ms()

        assert [c.id for c in generated] == [f"daily_{day_ms}_{i}" for i in range(3)]
        assert day_start_from_challenge_id(generated[0].id) == day_ms

    def test_challenge_metadata(self, challenges, clock):
        generated = challenges.generate()
        easy = generated[0]

        assert easy.objective.allowed_attempts == 5
        assert easy.completion_rate == 0.85
        assert easy.start_date == clock.day_start()
        assert (easy.end_date - easy.start_date).days == 1

    def test_progress_reset_on_generation(self, challenges):
        generated = challenges.generate()
        progress = challenges.get_challenge_progress()

        assert set(progress) == {c.id for c in generated}
        assert all(p.current_progress == 0 and not p.completed for p in progress.values())

    def test_respects_max_daily_challenges(self, store, clock, rng):
        scheduler = DailyChallengeScheduler(store, clock, rng=rng, max_daily_challenges=2)
        assert len(scheduler.generate()) == 2

    def test_refresh_only_on_new_day(self, mixed, clock):
        first_ids = [c.id for c in mixed.get_current_challenges()]

        clock.advance(hours=11)  # 23:00 the same day
        assert mixed.check_and_refresh() is False
        assert [c.id for c in mixed.get_current_challenges()] == first_ids

        clock.advance(hours=2)
        assert mixed.check_and_refresh() is True
        assert [c.id for c in mixed.get_current_challenges()] != first_ids

    def test_weighted_selection_favours_heavy_templates(self, store, clock, rng):
        heavy = make_template(ChallengeObjectiveType.POP_BALLOONS, 10, weight=9)
        light = make_template(ChallengeObjectiveType.COMPLETE_LEVELS, 1)
        scheduler = DailyChallengeScheduler(store, clock, rng=rng, templates=[heavy, light])

        picks = [scheduler.select_templates()[0].name for _ in range(5000)]

        assert picks.count(heavy.name) / len(picks) == pytest.approx(0.9, abs=0.02)


class TestStreaks:
    """Streak continuity across calendar days"""

    def test_completion_extends_streak_next_day(self, mixed, clock):
        complete_first(mixed)

        clock.advance(days=1)
        mixed.check_and_refresh()

        history = mixed.get_challenge_history()
        assert history.current_streak == 1
        assert history.longest_streak == 1

    def test_day_without_completion_resets_streak(self, mixed, clock):
        complete_first(mixed)
        clock.advance(days=1)
        mixed.check_and_refresh()

        clock.advance(days=1)
        mixed.check_and_refresh()

        history = mixed.get_challenge_history()
        assert history.current_streak == 0
        assert history.longest_streak == 1

    def test_skipped_day_resets_streak(self, mixed, clock):
        complete_first(mixed)
        clock.advance(days=1)
        mixed.check_and_refresh()
        complete_first(mixed)

        clock.advance(days=2)
        mixed.check_and_refresh()

        assert mixed.get_challenge_history().current_streak == 0

    def test_late_night_to_early_morning_is_one_day(self, mixed, clock):
        clock.advance(hours=11, minutes=59)  # 23:59
        complete_first(mixed)

        clock.advance(minutes=2)  # 00:01 the next day
        assert mixed.check_and_refresh() is True
        assert mixed.get_challenge_history().current_streak == 1

    def test_streak_builds_over_consecutive_days(self, mixed, clock):
        for _ in range(4):
            complete_first(mixed)
            clock.advance(days=1)
            mixed.check_and_refresh()

        history = mixed.get_challenge_history()
        assert history.current_streak == 4
        assert history.total_challenges_completed == 4

    def test_history_keeps_only_running_day_ids(self, mixed, clock):
        old = complete_first(mixed)
        clock.advance(days=1)
        mixed.check_and_refresh()
        today = complete_first(mixed)

        clock.advance(days=1)
        mixed.check_and_refresh()

        history = mixed.get_challenge_history()
        assert old.id not in history.completed_challenges
        assert today.id not in history.completed_challenges
        assert history.current_streak == 2
        assert history.total_challenges_completed == 2

    def test_same_day_regeneration_keeps_todays_ids(self, mixed):
        challenge = complete_first(mixed)

        mixed.generate()

        assert challenge.id in mixed.get_challenge_history().completed_challenges

    def test_streak_bonus_preview_on_new_challenges(self, single, clock):
        for _ in range(2):
            complete_first(single)
            clock.advance(days=1)
            single.check_and_refresh()

        challenge = single.get_current_challenges()[0]
        assert challenge.streak_bonus.coins == 20
        assert challenge.streak_bonus.experience_points == 10


class TestProgressAndClaims:
    """Progress monotonicity, completion and claim idempotence"""

    def test_progress_never_decreases(self, mixed):
        challenge = mixed.get_current_challenges()[0]

        mixed.update_progress(challenge.id, 10)
        mixed.update_progress(challenge.id, 4)

        progress = mixed.get_challenge_progress()[challenge.id]
        assert progress.current_progress == 10
        assert progress.attempts == 2
        assert not progress.completed

    def test_completion_fires_once(self, mixed):
        seen = []
        mixed.add_completion_handler(lambda challenge, progress: seen.append(challenge.id))
        challenge = mixed.get_current_challenges()[0]

        assert mixed.update_progress(challenge.id, 25) is True
        assert mixed.update_progress(challenge.id, 30) is False

        assert seen == [challenge.id]
        progress = mixed.get_challenge_progress()[challenge.id]
        assert progress.completed and progress.completion_date is not None
        assert challenge.id in mixed.get_challenge_history().completed_challenges

    def test_failing_handler_does_not_block_completion(self, mixed):
        def broken(challenge, progress):
            raise RuntimeError("listener down")

        mixed.add_completion_handler(broken)
        challenge = mixed.get_current_challenges()[0]

        assert mixed.update_progress(challenge.id, 25) is True

    def test_unknown_challenge_ignored(self, mixed):
        assert mixed.update_progress("daily_0_9", 100) is False
        assert mixed.claim_reward("daily_0_9") is None

    def test_claim_requires_completion(self, single):
        challenge = single.get_current_challenges()[0]
        assert single.claim_reward(challenge.id) is None

    def test_second_claim_returns_none(self, single):
        challenge = complete_first(single)

        first = single.claim_reward(challenge.id)
        second = single.claim_reward(challenge.id)

        assert first is not None and first.coins == 100
        assert second is None
        assert single.get_challenge_progress()[challenge.id].claimed

    def test_streak_of_four_pays_140_coins(self, single):
        single.history.current_streak = 4
        challenge = complete_first(single)

        reward = single.claim_reward(challenge.id)

        assert reward.coins == 140
        assert reward.experience_points == 70

    def test_streak_bonus_capped(self, single):
        single.history.current_streak = 12
        challenge = complete_first(single)

        assert single.claim_reward(challenge.id).coins == 150

    def test_claim_carries_unlockable_item(self, store, clock, rng):
        item = UnlockableItem(type=UnlockableType.TRAIL, item_id="trail_fire")
        scheduler = DailyChallengeScheduler(
            store, clock, rng=rng,
            templates=[make_template(ChallengeObjectiveType.COMPLETE_LEVELS, 1, item=item)],
        )
        scheduler.initialize()
        challenge = complete_first(scheduler)

        assert scheduler.claim_reward(challenge.id).unlockable_item == item


class TestObjectiveRouting:
    """Gameplay results mapped onto active objectives"""

    def test_counting_objective_accumulates(self, mixed):
        pop = mixed.get_current_challenges()[0]

        for _ in range(24):
            assert mixed.record_objective_event(ChallengeObjectiveType.POP_BALLOONS, 1) == []
        completed = mixed.record_objective_event(ChallengeObjectiveType.POP_BALLOONS, 1)

        assert [c.id for c in completed] == [pop.id]
        assert mixed.get_challenge_progress()[pop.id].current_progress == 25

    def test_speed_objective_honours_level_filter(self, mixed):
        speed = mixed.get_current_challenges()[1]

        mixed.record_objective_event(ChallengeObjectiveType.SPEED_COMPLETION, 12, level_id=2)
        assert mixed.get_challenge_progress()[speed.id].attempts == 0

        mixed.record_objective_event(ChallengeObjectiveType.SPEED_COMPLETION, 35, level_id=1)
        assert not mixed.get_challenge_progress()[speed.id].completed

        completed = mixed.record_objective_event(ChallengeObjectiveType.SPEED_COMPLETION, 28.5, level_id=1)
        assert [c.id for c in completed] == [speed.id]

    def test_threshold_objective_reports_value(self, store, clock, rng):
        scheduler = DailyChallengeScheduler(
            store, clock, rng=rng,
            templates=[make_template(ChallengeObjectiveType.ACHIEVE_ACCURACY, 80)],
        )
        scheduler.initialize()
        challenge = scheduler.get_current_challenges()[0]

        scheduler.record_objective_event(ChallengeObjectiveType.ACHIEVE_ACCURACY, 60)
        scheduler.record_objective_event(ChallengeObjectiveType.ACHIEVE_ACCURACY, 70)
        assert scheduler.get_challenge_progress()[challenge.id].current_progress == 70

        scheduler.record_objective_event(ChallengeObjectiveType.ACHIEVE_ACCURACY, 85)
        assert scheduler.get_challenge_progress()[challenge.id].completed

    def test_other_objectives_untouched(self, mixed):
        mixed.record_objective_event(ChallengeObjectiveType.CONSECUTIVE_HITS, 50)
        assert all(p.attempts == 0 for p in mixed.get_challenge_progress().values())


class TestPersistence:
    """Slot round trips and corrupt-slot recovery"""

    def test_state_survives_reload(self, mixed, store, clock, rng, mixed_templates):
        challenge = complete_first(mixed)

        reloaded = DailyChallengeScheduler(store, clock, rng=rng, templates=mixed_templates)
        reloaded.initialize()

        assert dumped(reloaded.get_current_challenges()) == dumped(mixed.get_current_challenges())
        assert reloaded.get_challenge_progress()[challenge.id].completed
        assert challenge.id in reloaded.get_challenge_history().completed_challenges
        assert reloaded.last_refresh_ms == mixed.last_refresh_ms

    def test_corrupt_challenge_slot_regenerates(self, mixed, store, clock, rng, mixed_templates):
        store.set(DAILY_CHALLENGES_KEY, "{not json")

        reloaded = DailyChallengeScheduler(store, clock, rng=rng, templates=mixed_templates)
        reloaded.initialize()

        assert len(reloaded.get_current_challenges()) == 3
        assert all(not p.completed for p in reloaded.get_challenge_progress().values())

    def test_corrupt_history_slot_keeps_challenges(self, mixed, store, clock, rng, mixed_templates):
        mixed.history.current_streak = 3
        mixed.save()
        store.set(CHALLENGE_HISTORY_KEY, '{"current_streak": "lots"}')

        reloaded = DailyChallengeScheduler(store, clock, rng=rng, templates=mixed_templates)
        reloaded.initialize()

        assert dumped(reloaded.get_current_challenges()) == dumped(mixed.get_current_challenges())
        assert reloaded.get_challenge_history().current_streak == 0

    @pytest.mark.parametrize("raw", ["Infinity", "1e400", "\"yesterday\"", "12.5.3"])
    def test_corrupt_refresh_slot_regenerates(self, mixed, store, clock, rng, mixed_templates, raw):
        store.set(LAST_CHALLENGE_REFRESH_KEY, raw)

        reloaded = DailyChallengeScheduler(store, clock, rng=rng, templates=mixed_templates)
        reloaded.initialize()

        assert len(reloaded.get_current_challenges()) == 3
        assert reloaded.last_refresh_ms == clock.day_start_ms(clock.now())

    def test_failing_store_does_not_block_play(self, clock, rng):
        from unittest.mock import MagicMock

        broken = MagicMock()
        broken.get.side_effect = OSError("disk gone")
        broken.set.side_effect = OSError("disk gone")

        scheduler = DailyChallengeScheduler(broken, clock, rng=rng)
        scheduler.initialize()

        challenge = complete_first(scheduler)
        assert scheduler.claim_reward(challenge.id) is not None

    def test_clear_all_data(self, mixed, store):
        complete_first(mixed)

        mixed.clear_all_data()

        assert all(store.get(key) is None for key in CHALLENGE_SLOTS)
        assert mixed.get_current_challenges() == []
        assert mixed.get_challenge_history().total_challenges_completed == 0
