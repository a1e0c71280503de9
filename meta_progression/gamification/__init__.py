"""
Reward, challenge and progression rules
"""
from .catalog import RewardCatalog, RewardSampler
from .variable_rewards import MysteryBalloonManager, VariableRatioScheduler
from .daily_challenges import DailyChallengeScheduler
from .engine import LedgerSnapshot, LevelCompletionResult, ProgressionLedger

__all__ = [
    "RewardCatalog",
    "RewardSampler",
    "MysteryBalloonManager",
    "VariableRatioScheduler",
    "DailyChallengeScheduler",
    "LedgerSnapshot",
    "LevelCompletionResult",
    "ProgressionLedger",
]
