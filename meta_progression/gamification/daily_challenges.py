"""
Daily Challenge Scheduler

Each calendar day gets a fresh set of challenges: one easy, one medium and
one hard-or-expert, each drawn by weight from the template pool. Completing
at least one challenge on consecutive days builds a streak, and the streak
raises the coin and XP payout of every claimed challenge up to a cap.

Challenge state lives in four storage slots that are written after every
mutation and loaded independently, so a corrupt slot never blocks play.
"""
import logging
import math
import random
from datetime import datetime
from typing import Callable, Dict, List, Optional

from pydantic import TypeAdapter, ValidationError

from meta_progression.core.clock import Clock
from meta_progression.models.challenges import (
    COUNTING_OBJECTIVES,
    ChallengeDifficulty,
    ChallengeHistory,
    ChallengeObjective,
    ChallengeObjectiveType,
    ChallengeReward,
    ChallengeTemplate,
    ContextFilter,
    DailyChallenge,
    DailyChallengeProgress,
)
from meta_progression.services.storage import SlotStore

logger = logging.getLogger(__name__)

# Storage slots
DAILY_CHALLENGES_KEY = "psp_daily_challenges"
CHALLENGE_PROGRESS_KEY = "psp_challenge_progress"
CHALLENGE_HISTORY_KEY = "psp_challenge_history"
LAST_CHALLENGE_REFRESH_KEY = "psp_last_challenge_refresh"

CHALLENGE_SLOTS = (
    DAILY_CHALLENGES_KEY,
    CHALLENGE_PROGRESS_KEY,
    CHALLENGE_HISTORY_KEY,
    LAST_CHALLENGE_REFRESH_KEY,
)

# One template is drawn from each tier, in this order
DIFFICULTY_TIERS = [
    {ChallengeDifficulty.EASY},
    {ChallengeDifficulty.MEDIUM},
    {ChallengeDifficulty.HARD, ChallengeDifficulty.EXPERT},
]

ALLOWED_ATTEMPTS = {
    ChallengeDifficulty.EASY: 5,
    ChallengeDifficulty.MEDIUM: 3,
    ChallengeDifficulty.HARD: 2,
    ChallengeDifficulty.EXPERT: 1,
}

# Analytics estimates: (completion rate, average attempts)
DIFFICULTY_ESTIMATES = {
    ChallengeDifficulty.EASY: (0.85, 1.2),
    ChallengeDifficulty.MEDIUM: (0.65, 2.1),
    ChallengeDifficulty.HARD: (0.35, 3.8),
    ChallengeDifficulty.EXPERT: (0.15, 4.5),
}


def _template(name, description, objective_type, target, difficulty, coins, xp, weight, level_ids=None):
    return ChallengeTemplate(
        name=name,
        description=description,
        objective=ChallengeObjective(
            type=objective_type,
            target=target,
            context_filter=ContextFilter(level_ids=level_ids) if level_ids else None,
        ),
        difficulty=difficulty,
        base_reward=ChallengeReward(coins=coins, experience_points=xp),
        weight=weight,
    )


O = ChallengeObjectiveType
D = ChallengeDifficulty

DEFAULT_CHALLENGE_TEMPLATES = [
    # Easy: high completion rate, keeps streaks alive
    _template("Balloon Buster", "Pop 25 balloons", O.POP_BALLOONS, 25, D.EASY, 50, 75, 25),
    _template("Level Runner", "Complete 3 levels", O.COMPLETE_LEVELS, 3, D.EASY, 75, 100, 20),

    # Medium
    _template("Sharp Shooter", "Achieve 80% accuracy in any level", O.ACHIEVE_ACCURACY, 80, D.MEDIUM,
              100, 125, 15),
    _template("Perfect Performance", "Complete any level with 100% accuracy", O.ACHIEVE_ACCURACY, 100,
              D.MEDIUM, 150, 200, 12),
    _template("Combo Master", "Achieve a 5-hit combo", O.CONSECUTIVE_HITS, 5, D.MEDIUM, 125, 175, 15),
    _template("Speed Runner", "Complete level 1 in under 30 seconds", O.SPEED_COMPLETION, 30, D.MEDIUM,
              175, 225, 10, level_ids=[1]),

    # Hard and expert
    _template("Three Star Elite", "Get 3 stars on any level", O.SPECIFIC_LEVEL_MASTERY, 3, D.HARD,
              250, 300, 8),
    _template("Precision Master", "Complete 2 levels without missing a shot", O.PERFECT_LEVELS, 2, D.HARD,
              300, 400, 5),
    _template("Chain Reaction", "Achieve a 10-hit combo", O.CONSECUTIVE_HITS, 10, D.EXPERT, 500, 600, 3),
]

CompletionHandler = Callable[[DailyChallenge, DailyChallengeProgress], None]

_challenges_adapter = TypeAdapter(List[DailyChallenge])
_progress_adapter = TypeAdapter(Dict[str, DailyChallengeProgress])
_refresh_time_adapter = TypeAdapter(int)


def day_start_from_challenge_id(challenge_id: str) -> Optional[int]:
    """Epoch ms of the day a challenge was generated for (ids are ``daily_{dayStart}_{slot}``)"""
    parts = challenge_id.split("_")
    if len(parts) != 3 or parts[0] != "daily":
        return None
    try:
        return int(parts[1])
    except ValueError:
        return None


class DailyChallengeScheduler:
    """Generates, tracks and pays out the daily challenge set"""

    def __init__(
        self,
        store: SlotStore,
        clock: Clock,
        rng: Optional[random.Random] = None,
        templates: Optional[List[ChallengeTemplate]] = None,
        max_daily_challenges: int = 3,
        streak_bonus_per_day: float = 0.1,
        streak_bonus_cap: float = 1.5,
    ):
        self.store = store
        self.clock = clock
        self.rng = rng or random.Random()
        self.templates = list(templates if templates is not None else DEFAULT_CHALLENGE_TEMPLATES)
        self.max_daily_challenges = max_daily_challenges
        self.streak_bonus_per_day = streak_bonus_per_day
        self.streak_bonus_cap = streak_bonus_cap

        self.current_challenges: List[DailyChallenge] = []
        self.challenge_progress: Dict[str, DailyChallengeProgress] = {}
        self.history = ChallengeHistory()
        self.last_refresh_ms = 0

        self._completion_handlers: List[CompletionHandler] = []

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self, now: Optional[datetime] = None) -> None:
        """Load persisted state and make sure today's set exists"""
        self.load()
        if not self.current_challenges:
            self.generate(now)
        else:
            self.check_and_refresh(now)

    def add_completion_handler(self, handler: CompletionHandler) -> None:
        self._completion_handlers.append(handler)

    def check_and_refresh(self, now: Optional[datetime] = None) -> bool:
        """Regenerate when a new calendar day began since the last refresh"""
        now = now or self.clock.now()
        if self.last_refresh_ms and self.last_refresh_ms >= self.clock.day_start_ms(now):
            return False
        self.generate(now)
        return True

    def generate(self, now: Optional[datetime] = None) -> List[DailyChallenge]:
        now = now or self.clock.now()
        day_start = self.clock.day_start(now)
        day_start_ms = self.clock.day_start_ms(now)
        day_end = self.clock.next_day_start(now)

        self._update_streak(now)
        self._prune_completed(day_start_ms)

        self.current_challenges = []
        for slot, template in enumerate(self.select_templates()):
            completion_rate, average_attempts = DIFFICULTY_ESTIMATES[template.difficulty]
            objective = template.objective.model_copy(
                update={"allowed_attempts": ALLOWED_ATTEMPTS[template.difficulty]}
            )
            self.current_challenges.append(DailyChallenge(
                id=f"daily_{day_start_ms}_{slot}",
                name=template.name,
                description=template.description,
                objective=objective,
                difficulty=template.difficulty,
                base_reward=template.base_reward,
                streak_bonus=self.calculate_streak_bonus(template.base_reward),
                start_date=day_start,
                end_date=day_end,
                completion_rate=completion_rate,
                average_attempts=average_attempts,
            ))

        self.challenge_progress = {
            c.id: DailyChallengeProgress(challenge_id=c.id, target_progress=c.objective.target)
            for c in self.current_challenges
        }
        self.last_refresh_ms = day_start_ms
        self.save()

        logger.info(
            f"Generated {len(self.current_challenges)} daily challenges for {day_start.date()} "
            f"(streak {self.history.current_streak})"
        )
        return self.get_current_challenges()

    def _update_streak(self, now: datetime) -> None:
        if not self.last_refresh_ms:
            return

        days_since = self.clock.calendar_days_between(self.last_refresh_ms, now)
        if days_since == 1 and self._completed_any_on(self.last_refresh_ms):
            self.history.current_streak += 1
            self.history.longest_streak = max(self.history.longest_streak, self.history.current_streak)
        elif days_since >= 1:
            if self.history.current_streak:
                logger.info(f"Challenge streak of {self.history.current_streak} reset after {days_since} day(s)")
            self.history.current_streak = 0

    def _prune_completed(self, day_start_ms: int) -> None:
        # Only the running day's ids feed the next streak check
        self.history.completed_challenges = {
            challenge_id
            for challenge_id in self.history.completed_challenges
            if (day_start_from_challenge_id(challenge_id) or 0) >= day_start_ms
        }

    def _completed_any_on(self, day_ms: int) -> bool:
        day = self.clock.from_millis(day_ms).date()
        for challenge_id in self.history.completed_challenges:
            challenge_day_ms = day_start_from_challenge_id(challenge_id)
            if challenge_day_ms is not None and self.clock.from_millis(challenge_day_ms).date() == day:
                return True
        return False

    def select_templates(self) -> List[ChallengeTemplate]:
        selected = []
        for tier in DIFFICULTY_TIERS:
            candidates = [t for t in self.templates if t.difficulty in tier]
            if candidates:
                weights = [t.weight for t in candidates]
                selected.append(self.rng.choices(candidates, weights=weights, k=1)[0])
        return selected[:self.max_daily_challenges]

    # ------------------------------------------------------------------
    # Rewards
    # ------------------------------------------------------------------

    def streak_multiplier(self, streak: Optional[int] = None) -> float:
        streak = self.history.current_streak if streak is None else streak
        return min(1 + streak * self.streak_bonus_per_day, self.streak_bonus_cap)

    def calculate_streak_bonus(self, base: ChallengeReward, streak: Optional[int] = None) -> ChallengeReward:
        extra = self.streak_multiplier(streak) - 1

        def bonus(value: int) -> int:
            # Rounded first so float noise like 39.999999 does not floor a whole coin away
            return math.floor(round(value * extra, 9))

        return ChallengeReward(
            coins=bonus(base.coins),
            gems=bonus(base.gems),
            experience_points=bonus(base.experience_points),
        )

    def claim_reward(self, challenge_id: str) -> Optional[ChallengeReward]:
        """
        Mark a completed challenge as claimed and return base reward plus
        streak bonus. Returns None if the challenge is unknown, not yet
        completed, or already claimed.
        """
        progress = self.challenge_progress.get(challenge_id)
        challenge = self.get_challenge(challenge_id)
        if progress is None or challenge is None or not progress.completed or progress.claimed:
            return None

        progress.claimed = True
        base = challenge.base_reward
        streak_bonus = self.calculate_streak_bonus(base)
        total = ChallengeReward(
            coins=base.coins + streak_bonus.coins,
            gems=base.gems + streak_bonus.gems,
            experience_points=base.experience_points + streak_bonus.experience_points,
            unlockable_item=base.unlockable_item,
        )
        self.save()

        logger.info(f"Challenge reward claimed: {challenge_id} coins={total.coins} xp={total.experience_points}")
        return total

    # ------------------------------------------------------------------
    # Progress
    # ------------------------------------------------------------------

    def update_progress(self, challenge_id: str, new_value: float) -> bool:
        """
        Record a progress report for one challenge.

        Progress only ever increases. Returns True when this report completed
        the challenge.
        """
        progress = self.challenge_progress.get(challenge_id)
        if progress is None:
            return False

        progress.current_progress = max(progress.current_progress, new_value)
        progress.attempts += 1

        just_completed = False
        if not progress.completed and progress.current_progress >= progress.target_progress:
            progress.completed = True
            progress.completion_date = self.clock.now()
            just_completed = True
            self._on_challenge_completed(challenge_id, progress)

        self.save()
        return just_completed

    def _on_challenge_completed(self, challenge_id: str, progress: DailyChallengeProgress) -> None:
        challenge = self.get_challenge(challenge_id)
        if challenge is None:
            return

        self.history.completed_challenges.add(challenge_id)
        self.history.total_challenges_completed += 1

        logger.info(
            f"Challenge completed: {challenge_id} ({challenge.difficulty.value}) "
            f"attempts={progress.attempts} streak={self.history.current_streak}"
        )
        for handler in list(self._completion_handlers):
            try:
                handler(challenge, progress)
            except Exception as e:
                logger.error(f"Challenge completion handler failed: {e}")

    def record_objective_event(
        self,
        objective_type: ChallengeObjectiveType,
        value: float,
        level_id: Optional[int] = None,
    ) -> List[DailyChallenge]:
        """
        Route a gameplay result to every open challenge with that objective.

        Counting objectives add ``value`` to today's total; threshold
        objectives report ``value`` directly; speed objectives take ``value``
        as the completion time in seconds. Returns the challenges this event
        completed.
        """
        completed = []
        for challenge in self.current_challenges:
            objective = challenge.objective
            if objective.type != objective_type:
                continue
            if objective.context_filter and not objective.context_filter.matches_level(level_id):
                continue
            progress = self.challenge_progress.get(challenge.id)
            if progress is None or progress.completed:
                continue

            if objective_type in COUNTING_OBJECTIVES:
                reported = progress.current_progress + value
            elif objective_type == ChallengeObjectiveType.SPEED_COMPLETION:
                reported = objective.target if value <= objective.target else 0
            else:
                reported = value

            if self.update_progress(challenge.id, reported):
                completed.append(challenge)
        return completed

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_challenge(self, challenge_id: str) -> Optional[DailyChallenge]:
        return next((c for c in self.current_challenges if c.id == challenge_id), None)

    def get_current_challenges(self) -> List[DailyChallenge]:
        return [c.model_copy(deep=True) for c in self.current_challenges]

    def get_challenge_progress(self) -> Dict[str, DailyChallengeProgress]:
        return {k: v.model_copy() for k, v in self.challenge_progress.items()}

    def get_challenge_history(self) -> ChallengeHistory:
        return self.history.model_copy(deep=True)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self) -> None:
        """Write all four slots; failures are logged and state is kept"""
        payloads = {
            DAILY_CHALLENGES_KEY: _challenges_adapter.dump_json(self.current_challenges).decode(),
            CHALLENGE_PROGRESS_KEY: _progress_adapter.dump_json(self.challenge_progress).decode(),
            CHALLENGE_HISTORY_KEY: self.history.model_dump_json(),
            LAST_CHALLENGE_REFRESH_KEY: str(self.last_refresh_ms),
        }
        for key, payload in payloads.items():
            try:
                self.store.set(key, payload)
            except Exception as e:
                logger.error(f"Failed to save daily challenge slot {key}: {e}")

    def _read(self, key: str) -> Optional[str]:
        try:
            return self.store.get(key)
        except Exception as e:
            logger.error(f"Failed to read daily challenge slot {key}: {e}")
            return None

    def load(self) -> None:
        """Load each slot independently, keeping defaults for any missing or corrupt slot"""
        raw = self._read(DAILY_CHALLENGES_KEY)
        if raw:
            try:
                self.current_challenges = _challenges_adapter.validate_json(raw)
            except ValidationError as e:
                logger.warning(f"Discarding corrupt daily challenges: {e}")
                self.current_challenges = []

        raw = self._read(CHALLENGE_PROGRESS_KEY)
        if raw:
            try:
                self.challenge_progress = _progress_adapter.validate_json(raw)
            except ValidationError as e:
                logger.warning(f"Discarding corrupt challenge progress: {e}")
                self.challenge_progress = {}

        raw = self._read(CHALLENGE_HISTORY_KEY)
        if raw:
            try:
                self.history = ChallengeHistory.model_validate_json(raw)
            except ValidationError as e:
                logger.warning(f"Discarding corrupt challenge history: {e}")
                self.history = ChallengeHistory()

        raw = self._read(LAST_CHALLENGE_REFRESH_KEY)
        if raw:
            try:
                self.last_refresh_ms = _refresh_time_adapter.validate_json(raw)
            except ValidationError as e:
                logger.warning(f"Discarding corrupt last refresh time {raw!r}: {e}")
                self.last_refresh_ms = 0

        # Progress without its challenge cannot be claimed
        if not self.current_challenges:
            self.challenge_progress = {}

    def clear_all_data(self) -> None:
        try:
            self.store.delete(*CHALLENGE_SLOTS)
        except Exception as e:
            logger.error(f"Failed to clear daily challenge data: {e}")

        self.current_challenges = []
        self.challenge_progress = {}
        self.history = ChallengeHistory()
        self.last_refresh_ms = 0
