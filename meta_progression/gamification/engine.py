"""
Progression Ledger

Owns everything the player keeps between sessions: lifetime statistics,
currency, cosmetics, achievements, level mastery records and battle-pass
progress. It is the only component that writes the player aggregate to
storage.

Every public action runs synchronously, then notifies subscribers with an
immutable snapshot. Storage writes are best-effort: a failed write is logged
and the in-memory state stands.
"""
import logging
import random
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from meta_progression.core.clock import Clock, to_millis
from meta_progression.gamification.achievements import ACHIEVEMENTS, is_satisfied, metric_value
from meta_progression.gamification.catalog import RewardCatalog
from meta_progression.gamification.mastery import MasteryThresholdResolver, merge_completion
from meta_progression.models.achievements import Achievement
from meta_progression.models.challenges import ChallengeReward
from meta_progression.models.progress import (
    AchievementProgressData,
    BattlePassProgress,
    CustomizationCategory,
    LevelMasteryRecord,
    PlayerProgress,
    SessionStats,
    UnlockableItem,
    UnlockableType,
    XPBonus,
    XPSourceType,
    category_for_item,
)
from meta_progression.models.rewards import (
    CoinsReward,
    CustomizationReward,
    ExperienceReward,
    MysteryBoxReward,
    MysteryReward,
    ScoreMultiplierReward,
)
from meta_progression.services.storage import SlotStore

logger = logging.getLogger(__name__)

# Storage slots
META_PROGRESS_KEY = "psp_meta_progress"
MASTERY_RECORDS_KEY = "psp_mastery_records"
BATTLE_PASS_KEY = "psp_battle_pass"

MAX_REWARD_HISTORY = 100

_mastery_adapter = TypeAdapter(Dict[int, LevelMasteryRecord])


class LedgerSnapshot(BaseModel):
    """Read-only copy of the ledger handed to subscribers"""
    model_config = ConfigDict(frozen=True)

    progress: PlayerProgress
    mastery_records: Dict[int, LevelMasteryRecord] = Field(default_factory=dict)
    session: SessionStats
    new_achievements: List[Achievement] = Field(default_factory=list)
    pending_boosters: List[ScoreMultiplierReward] = Field(default_factory=list)


@dataclass
class LevelCompletionResult:
    record: LevelMasteryRecord
    new_stars: int
    xp_earned: int
    first_completion: bool
    perfect: bool


Listener = Callable[[LedgerSnapshot], None]


class ProgressionLedger:
    """Persistent player aggregate and the rules that change it"""

    def __init__(
        self,
        store: SlotStore,
        clock: Clock,
        catalog: Optional[RewardCatalog] = None,
        thresholds: Optional[MasteryThresholdResolver] = None,
        rng: Optional[random.Random] = None,
        achievements: Optional[List[Achievement]] = None,
        season_id: str = "season_1",
        base_xp_per_tier: int = 100,
        xp_scaling_factor: float = 1.1,
        max_tier: int = 50,
        level_completion_xp: int = 100,
        xp_per_new_star: int = 50,
    ):
        self.store = store
        self.clock = clock
        self.catalog = catalog or RewardCatalog.default()
        self.thresholds = thresholds or MasteryThresholdResolver()
        self.rng = rng or random.Random()
        self.achievements = list(achievements if achievements is not None else ACHIEVEMENTS)

        self.season_id = season_id
        self.base_xp_per_tier = base_xp_per_tier
        self.xp_scaling_factor = xp_scaling_factor
        self.max_tier = max_tier
        self.level_completion_xp = level_completion_xp
        self.xp_per_new_star = xp_per_new_star

        self.progress = self._fresh_progress()
        self.mastery_records: Dict[int, LevelMasteryRecord] = {}
        self.session = SessionStats()
        self.new_achievements: List[Achievement] = []
        self.pending_boosters: List[ScoreMultiplierReward] = []
        self.reward_history: List[MysteryReward] = []
        self.active_bonuses: List[XPBonus] = []

        self._listeners: List[Listener] = []

    def _fresh_progress(self) -> PlayerProgress:
        progress = PlayerProgress()
        progress.battle_pass_progress = self._fresh_battle_pass()
        return progress

    def _fresh_battle_pass(self) -> BattlePassProgress:
        return BattlePassProgress(
            current_season=self.season_id,
            xp_to_next_tier=self.xp_requirement(0),
        )

    # ------------------------------------------------------------------
    # Lifecycle and subscriptions
    # ------------------------------------------------------------------

    def initialize(self) -> None:
        """Load persisted state, then catch up on achievements earned while offline"""
        self.load()
        self.check_achievements()
        self._commit()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a snapshot listener; returns a function that unsubscribes it"""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def snapshot(self) -> LedgerSnapshot:
        return LedgerSnapshot(
            progress=self.progress.model_copy(deep=True),
            mastery_records={k: v.model_copy() for k, v in self.mastery_records.items()},
            session=self.session.model_copy(),
            new_achievements=list(self.new_achievements),
            pending_boosters=list(self.pending_boosters),
        )

    def _notify(self) -> None:
        if not self._listeners:
            return
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                logger.error(f"Ledger listener failed: {e}")

    def _commit(self, persist: bool = True) -> None:
        if persist:
            self.save()
        self._notify()

    # ------------------------------------------------------------------
    # Gameplay statistics
    # ------------------------------------------------------------------

    def record_balloon_pop(self) -> None:
        self.progress.balloons_popped += 1
        self.session.balloons_popped += 1
        unlocked = self._check_achievements()
        self._commit(persist=bool(unlocked))

    def record_shot_fired(self) -> None:
        self.progress.shots_fired += 1
        self.session.shots_fired += 1
        unlocked = self._check_achievements()
        self._commit(persist=bool(unlocked))

    def record_shot_hit(self) -> None:
        self.progress.shots_hit += 1
        self.session.shots_hit += 1
        self._commit(persist=False)

    def record_combo(self, combo: int) -> None:
        if combo <= self.progress.longest_combo:
            return
        self.progress.longest_combo = combo
        unlocked = self._check_achievements()
        self._commit(persist=bool(unlocked))

    def add_playtime(self, duration_ms: int) -> None:
        if duration_ms <= 0:
            return
        self.progress.total_playtime_ms += duration_ms
        self._check_achievements()
        self._commit()

    def record_level_completion(
        self,
        level_id: int,
        time_ms: float,
        accuracy: float,
        style_score: float,
        max_combo: int = 0,
        score: int = 0,
    ) -> LevelCompletionResult:
        """
        Fold a finished level into mastery records, statistics and XP.

        Awards flat completion XP plus XP for every star earned for the first
        time on this level. Fractional times are rounded to whole milliseconds.
        """
        time_ms = int(round(time_ms))
        thresholds = self.thresholds.for_level(level_id)
        existing = self.mastery_records.get(level_id)
        record, new_stars = merge_completion(
            existing, level_id, time_ms, accuracy, style_score, max_combo, thresholds, self.clock.now()
        )
        self.mastery_records[level_id] = record

        progress = self.progress
        progress.total_stars_earned += new_stars
        progress.levels_completed += 1
        progress.total_score += max(0, score)
        progress.longest_combo = max(progress.longest_combo, max_combo)

        perfect = accuracy >= 100
        if perfect and level_id not in progress.perfect_levels:
            progress.perfect_levels.add(level_id)
            progress.perfect_levels_completed += 1

        xp = self._earn_xp(self.level_completion_xp, XPSourceType.LEVEL_COMPLETION)
        if new_stars > 0:
            xp += self._earn_xp(new_stars * self.xp_per_new_star, XPSourceType.STAR_EARNED)

        self._check_achievements()
        self._commit()

        logger.info(
            f"Level {level_id} completed: stars {record.total_stars}/3 (+{new_stars}), "
            f"best time {record.best_time_ms}ms, xp +{xp}"
        )
        return LevelCompletionResult(
            record=record.model_copy(),
            new_stars=new_stars,
            xp_earned=xp,
            first_completion=existing is None,
            perfect=perfect,
        )

    def get_mastery_record(self, level_id: int) -> Optional[LevelMasteryRecord]:
        record = self.mastery_records.get(level_id)
        return record.model_copy() if record else None

    # ------------------------------------------------------------------
    # Battle pass
    # ------------------------------------------------------------------

    def xp_requirement(self, tier: int) -> int:
        """XP needed to advance from ``tier`` to the next one"""
        return round(self.base_xp_per_tier * self.xp_scaling_factor ** tier)

    def add_active_bonus(self, bonus: XPBonus) -> None:
        self.active_bonuses.append(bonus)

    def clear_active_bonuses(self) -> None:
        self.active_bonuses.clear()

    def earn_xp(self, amount: int, source: XPSourceType, bonuses: Optional[Iterable[XPBonus]] = None) -> int:
        """Grant battle-pass XP; returns the amount after bonus multipliers"""
        granted = self._earn_xp(amount, source, bonuses)
        self._commit()
        return granted

    def _earn_xp(self, amount: int, source: XPSourceType, bonuses: Optional[Iterable[XPBonus]] = None) -> int:
        if amount <= 0:
            return 0

        multiplier = 1.0
        for bonus in [*(bonuses or []), *self.active_bonuses]:
            if bonus.applies(source):
                multiplier *= bonus.multiplier
        granted = int(round(amount * multiplier))

        bp = self.progress.battle_pass_progress
        start_tier = bp.current_tier
        bp.current_xp += granted
        while bp.current_tier < self.max_tier:
            requirement = self.xp_requirement(bp.current_tier)
            if bp.current_xp < requirement:
                break
            bp.current_xp -= requirement
            bp.current_tier += 1

        if bp.current_tier < self.max_tier:
            bp.xp_to_next_tier = self.xp_requirement(bp.current_tier) - bp.current_xp
        else:
            bp.xp_to_next_tier = 0

        bp.xp_this_session += granted
        bp.xp_this_week += granted
        bp.total_xp_earned += granted
        self.session.xp_earned_this_session += granted

        if bp.current_tier > start_tier:
            logger.info(f"Battle pass tier up: {start_tier} -> {bp.current_tier} ({source.value})")
        return granted

    # ------------------------------------------------------------------
    # Achievements
    # ------------------------------------------------------------------

    def check_achievements(self) -> List[Achievement]:
        """Evaluate every locked achievement; returns the ones unlocked now"""
        unlocked = self._check_achievements()
        if unlocked:
            self._commit()
        return unlocked

    def _check_achievements(self) -> List[Achievement]:
        unlocked: List[Achievement] = []
        # Unlock rewards can move other metrics, so evaluate until nothing changes
        while True:
            newly = []
            for achievement in self.achievements:
                if achievement.id in self.progress.achievements.unlocked_achievements:
                    continue
                value = metric_value(self.progress, achievement.condition.metric)
                self._record_achievement_progress(achievement, value)
                if is_satisfied(achievement, value):
                    self._unlock_achievement(achievement)
                    newly.append(achievement)
            if not newly:
                return unlocked
            unlocked.extend(newly)

    def _record_achievement_progress(self, achievement: Achievement, value: float) -> None:
        records = self.progress.achievements.achievement_progress
        existing = records.get(achievement.id)
        now = self.clock.now()
        current = max(existing.current_value if existing else 0.0, value)
        if existing and existing.current_value == current:
            return

        percentage = 100.0 if achievement.target == 0 else min(100.0, current / achievement.target * 100)
        records[achievement.id] = AchievementProgressData(
            current_value=current,
            target_value=achievement.target,
            progress_percentage=percentage,
            first_progress_date=existing.first_progress_date if existing else now,
            last_progress_date=now,
        )

    def update_achievement_progress(self, achievement_id: str, value: float) -> bool:
        achievement = self._find_achievement(achievement_id)
        if achievement is None:
            return False
        self._record_achievement_progress(achievement, value)
        self._commit(persist=False)
        return True

    def _find_achievement(self, achievement_id: str) -> Optional[Achievement]:
        return next((a for a in self.achievements if a.id == achievement_id), None)

    def _unlock_achievement(self, achievement: Achievement) -> None:
        state = self.progress.achievements
        state.unlocked_achievements.add(achievement.id)
        state.unlock_dates[achievement.id] = self.clock.now()
        state.total_achievement_score += achievement.score_reward

        self._add_coins(achievement.coin_reward)
        if achievement.unlock_reward:
            self._process_unlockable_item(achievement.unlock_reward)

        self.new_achievements.append(achievement)
        logger.info(f"Achievement unlocked: {achievement.id} (+{achievement.coin_reward} coins)")

    def clear_new_achievements(self) -> List[Achievement]:
        cleared = self.new_achievements
        self.new_achievements = []
        self._commit(persist=False)
        return cleared

    # ------------------------------------------------------------------
    # Currency
    # ------------------------------------------------------------------

    def _add_coins(self, amount: int) -> bool:
        if amount < 0:
            logger.warning(f"Ignoring negative coin grant of {amount}")
            return False
        self.progress.coins += amount
        return True

    def _add_gems(self, amount: int) -> bool:
        if amount < 0:
            logger.warning(f"Ignoring negative gem grant of {amount}")
            return False
        self.progress.gems += amount
        return True

    def add_coins(self, amount: int) -> bool:
        if not self._add_coins(amount):
            return False
        self._commit()
        return True

    def spend_coins(self, amount: int) -> bool:
        if amount < 0 or self.progress.coins < amount:
            return False
        self.progress.coins -= amount
        self._commit()
        return True

    def add_gems(self, amount: int) -> bool:
        if not self._add_gems(amount):
            return False
        self._commit()
        return True

    def spend_gems(self, amount: int) -> bool:
        if amount < 0 or self.progress.gems < amount:
            return False
        self.progress.gems -= amount
        self._commit()
        return True

    # ------------------------------------------------------------------
    # Cosmetics and unlockables
    # ------------------------------------------------------------------

    def _unlock_in_category(self, category: CustomizationCategory, item_id: str) -> bool:
        owned = self.progress.unlocked_customizations.for_category(category)
        if item_id in owned:
            return False
        owned.add(item_id)
        logger.info(f"Unlocked {category.value} cosmetic {item_id}")
        return True

    def _unlock_customization(self, item_id: str) -> bool:
        category = category_for_item(item_id)
        if category is None:
            logger.warning(f"Cannot infer cosmetic category for {item_id}")
            return False
        return self._unlock_in_category(category, item_id)

    def unlock_customization(self, item_id: str) -> bool:
        """Unlock a cosmetic by id (``color_red``); False if unknown or already owned"""
        if not self._unlock_customization(item_id):
            return False
        self._check_achievements()
        self._commit()
        return True

    def set_active_customization(self, category: CustomizationCategory, item_id: str) -> bool:
        if item_id not in self.progress.unlocked_customizations.for_category(category):
            logger.warning(f"Customization {item_id} not unlocked for category {category.value}")
            return False
        setattr(self.progress.active_customizations, category.value, item_id)
        self._commit()
        return True

    def _process_unlockable_item(self, item: UnlockableItem) -> None:
        match item.type:
            case (UnlockableType.COLOR | UnlockableType.TRAIL | UnlockableType.SHOOTING_EFFECT
                  | UnlockableType.POSE | UnlockableType.EMOTE | UnlockableType.BACKGROUND):
                self._unlock_in_category(CustomizationCategory(item.type.value), item.item_id)
            case UnlockableType.CURRENCY:
                if item.item_id == "coins":
                    self._add_coins(item.quantity)
                elif item.item_id == "gems":
                    self._add_gems(item.quantity)
                else:
                    logger.warning(f"Unknown currency {item.item_id}")
            case UnlockableType.FEATURE:
                if item.item_id not in self.progress.unlocked_features:
                    self.progress.unlocked_features.append(item.item_id)
            case UnlockableType.BOOSTER:
                self.pending_boosters.append(ScoreMultiplierReward(
                    id=item.item_id, value=float(item.quantity), rarity="common"
                ))

    def process_unlockable_item(self, item: UnlockableItem) -> None:
        self._process_unlockable_item(item)
        self._check_achievements()
        self._commit()

    def grant_challenge_reward(self, reward: ChallengeReward, bonus_xp: int = 0) -> None:
        """Credit a claimed daily challenge; base XP was already granted on completion"""
        self._add_coins(reward.coins)
        self._add_gems(reward.gems)
        if reward.unlockable_item:
            self._process_unlockable_item(reward.unlockable_item)
        if bonus_xp > 0:
            self._earn_xp(bonus_xp, XPSourceType.DAILY_CHALLENGE)
        self._check_achievements()
        self._commit()

    # ------------------------------------------------------------------
    # Mystery rewards
    # ------------------------------------------------------------------

    def process_mystery_reward(self, reward: MysteryReward) -> List[MysteryReward]:
        """
        Apply a mystery reward to the player.

        Returns every reward actually applied, which for a mystery box is
        the box followed by its contents.
        """
        applied = self._process_reward(reward)
        self._check_achievements()
        self._commit()
        return applied

    def _process_reward(self, reward: MysteryReward) -> List[MysteryReward]:
        applied: List[MysteryReward] = [reward]
        match reward:
            case CoinsReward():
                self._add_coins(reward.value)
            case ExperienceReward():
                self._earn_xp(reward.value, XPSourceType.MYSTERY_BALLOON)
            case CustomizationReward():
                item_id = self.catalog.resolve_cosmetic(reward.value, self.rng)
                self._unlock_customization(item_id)
            case ScoreMultiplierReward():
                # Consumed by the game loop for the current level
                self.pending_boosters.append(reward)
            case MysteryBoxReward():
                for content in self.catalog.open_box(reward, self.rng):
                    applied.extend(self._process_reward(content))

        self.reward_history.append(reward)
        del self.reward_history[:-MAX_REWARD_HISTORY]
        return applied

    def take_pending_boosters(self) -> List[ScoreMultiplierReward]:
        boosters = self.pending_boosters
        self.pending_boosters = []
        self._commit(persist=False)
        return boosters

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def start_session(self, now: Optional[datetime] = None) -> None:
        now = now or self.clock.now()
        self._track_play_day(now)
        self.session = SessionStats(session_start_time=now)
        self.progress.battle_pass_progress.xp_this_session = 0
        self._check_achievements()
        self._commit()

    def _track_play_day(self, now: datetime) -> None:
        progress = self.progress
        if progress.first_play_date is None:
            progress.first_play_date = now

        last = progress.last_play_date
        if last is None:
            progress.days_played = 1
            progress.current_login_streak = 1
        else:
            days = self.clock.calendar_days_between(to_millis(last), now)
            if days == 1:
                progress.days_played += 1
                progress.current_login_streak += 1
            elif days > 1:
                progress.days_played += 1
                progress.current_login_streak = 1

            if self.clock.localize(last).isocalendar()[:2] != self.clock.localize(now).isocalendar()[:2]:
                progress.battle_pass_progress.xp_this_week = 0

        progress.last_play_date = now

    def end_session(self, now: Optional[datetime] = None) -> int:
        """Flush session playtime into the ledger and save; returns the duration in ms"""
        now = now or self.clock.now()
        duration = 0
        if self.session.session_start_time is not None:
            duration = max(0, int((now - self.session.session_start_time).total_seconds() * 1000))
            self.progress.total_playtime_ms += duration
        self.progress.last_play_date = now
        self.session = SessionStats()
        self._check_achievements()
        self._commit()
        return duration

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self) -> None:
        """Write the three ledger slots; failures are logged and state is kept"""
        payloads = {
            META_PROGRESS_KEY: self.progress.model_dump_json(exclude={"battle_pass_progress"}),
            MASTERY_RECORDS_KEY: _mastery_adapter.dump_json(self.mastery_records).decode(),
            BATTLE_PASS_KEY: self.progress.battle_pass_progress.model_dump_json(),
        }
        for key, payload in payloads.items():
            try:
                self.store.set(key, payload)
            except Exception as e:
                logger.error(f"Failed to save ledger slot {key}: {e}")

    def _read(self, key: str) -> Optional[str]:
        try:
            return self.store.get(key)
        except Exception as e:
            logger.error(f"Failed to read ledger slot {key}: {e}")
            return None

    def load(self) -> None:
        """Load each slot independently, falling back to defaults per slot"""
        progress = self._fresh_progress()
        raw = self._read(META_PROGRESS_KEY)
        if raw:
            try:
                progress = PlayerProgress.model_validate_json(raw)
            except ValidationError as e:
                logger.warning(f"Discarding corrupt player progress: {e}")

        battle_pass = self._fresh_battle_pass()
        raw = self._read(BATTLE_PASS_KEY)
        if raw:
            try:
                battle_pass = BattlePassProgress.model_validate_json(raw)
            except ValidationError as e:
                logger.warning(f"Discarding corrupt battle pass progress: {e}")
        progress.battle_pass_progress = battle_pass

        mastery: Dict[int, LevelMasteryRecord] = {}
        raw = self._read(MASTERY_RECORDS_KEY)
        if raw:
            try:
                mastery = _mastery_adapter.validate_json(raw)
            except ValidationError as e:
                logger.warning(f"Discarding corrupt mastery records: {e}")

        self.progress = progress
        self.mastery_records = mastery
        logger.info(
            f"Ledger loaded: {progress.levels_completed} levels, {len(mastery)} mastery records, "
            f"tier {battle_pass.current_tier}"
        )
