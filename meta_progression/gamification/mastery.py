"""
Level mastery stars.

Every level has three stars: one for finishing under the gold time, one for
gold accuracy and one for gold style. Stars are always derived from the best
values ever recorded, so a worse run can never take a star away.
"""
import logging
from datetime import datetime
from typing import Dict, Optional, Tuple

from pydantic import TypeAdapter, ValidationError

from meta_progression.core.config import ConfigurationError, Settings, load_json_table
from meta_progression.models.progress import LevelMasteryRecord, MasteryThresholds

logger = logging.getLogger(__name__)

DEFAULT_ACCURACY_GOLD = 95.0
DEFAULT_STYLE_GOLD = 1000.0

_thresholds_adapter = TypeAdapter(Dict[int, MasteryThresholds])


def fallback_thresholds(level_id: int) -> MasteryThresholds:
    """Gold time shrinks by 5s per level from 2 minutes, never below 30s"""
    return MasteryThresholds(
        gold_time_ms=max(30000, 120000 - (level_id - 1) * 5000),
        gold_accuracy=DEFAULT_ACCURACY_GOLD,
        gold_style=DEFAULT_STYLE_GOLD,
        perfect_completion_multiplier=2.0,
    )


class MasteryThresholdResolver:
    """Per-level thresholds with a deterministic fallback for unconfigured levels"""

    def __init__(self, overrides: Optional[Dict[int, MasteryThresholds]] = None):
        self.overrides = dict(overrides or {})

    @classmethod
    def from_settings(cls, config: Settings) -> "MasteryThresholdResolver":
        raw = load_json_table(config.MASTERY_THRESHOLDS_PATH)
        if raw is None:
            return cls()
        try:
            overrides = _thresholds_adapter.validate_python(raw)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid mastery thresholds: {e}") from e
        logger.info(f"Loaded mastery thresholds for {len(overrides)} levels")
        return cls(overrides)

    def for_level(self, level_id: int) -> MasteryThresholds:
        return self.overrides.get(level_id) or fallback_thresholds(level_id)


def star_flags(
    time_ms: float, accuracy: float, style_score: float, thresholds: MasteryThresholds
) -> Tuple[int, int, int]:
    return (
        int(time_ms <= thresholds.gold_time_ms),
        int(accuracy >= thresholds.gold_accuracy),
        int(style_score >= thresholds.gold_style),
    )


def calculate_mastery_stars(
    time_ms: float, accuracy: float, style_score: float, thresholds: MasteryThresholds
) -> int:
    return sum(star_flags(time_ms, accuracy, style_score, thresholds))


def merge_completion(
    existing: Optional[LevelMasteryRecord],
    level_id: int,
    time_ms: int,
    accuracy: float,
    style_score: float,
    max_combo: int,
    thresholds: MasteryThresholds,
    now: datetime,
) -> Tuple[LevelMasteryRecord, int]:
    """
    Fold one completion into a level's mastery record.

    Returns the new record and the number of stars newly earned (never
    negative). The existing record is left untouched.
    """
    if existing is None:
        best_time, best_accuracy, best_style, best_combo = time_ms, accuracy, style_score, max_combo
        first_completion, attempts, previous_stars = now, 0, 0
        earned = (0, 0, 0)
    else:
        best_time = min(existing.best_time_ms, time_ms)
        best_accuracy = max(existing.best_accuracy, accuracy)
        best_style = max(existing.best_style_score, style_score)
        best_combo = max(existing.max_combo, max_combo)
        first_completion = existing.first_completion_date
        attempts = existing.total_attempts
        previous_stars = existing.total_stars
        earned = (existing.time_stars, existing.accuracy_stars, existing.style_stars)

    # Thresholds can change between runs; a star once shown is kept
    time_star, accuracy_star, style_star = (
        max(old, new) for old, new in zip(earned, star_flags(best_time, best_accuracy, best_style, thresholds))
    )
    total = time_star + accuracy_star + style_star

    record = LevelMasteryRecord(
        level_id=level_id,
        time_stars=time_star,
        accuracy_stars=accuracy_star,
        style_stars=style_star,
        total_stars=total,
        best_time_ms=best_time,
        best_accuracy=best_accuracy,
        best_style_score=best_style,
        max_combo=best_combo,
        first_completion_date=first_completion,
        last_attempt_date=now,
        total_attempts=attempts + 1,
    )
    return record, max(total - previous_stars, 0)
