"""
Progression API Endpoints
Gameplay events in, rewards, challenges and progress snapshots out
"""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from meta_progression.models.achievements import Achievement
from meta_progression.models.challenges import ChallengeReward, DailyChallenge, DailyChallengeProgress
from meta_progression.models.progress import LevelMasteryRecord
from meta_progression.models.rewards import MysteryBalloonInstance, MysteryReward
from meta_progression.gamification.engine import LedgerSnapshot
from meta_progression.runtime import MetaProgressionRuntime

router = APIRouter()


def get_runtime(request: Request) -> MetaProgressionRuntime:
    return request.app.state.runtime


class ComboRequest(BaseModel):
    """Longest run of consecutive hits reached"""
    combo: int = Field(..., ge=0)


class LevelCompletedRequest(BaseModel):
    """Result of a finished level"""
    level_id: int = Field(..., ge=1)
    time_ms: int = Field(..., ge=0)
    accuracy: float = Field(..., ge=0, le=100)
    style_score: float = Field(0, ge=0)
    max_combo: int = Field(0, ge=0)
    score: int = Field(0, ge=0)


class LevelCompletedResponse(BaseModel):
    record: LevelMasteryRecord
    new_stars: int
    xp_earned: int
    first_completion: bool
    perfect: bool


class ChallengesResponse(BaseModel):
    challenges: List[DailyChallenge]
    progress: Dict[str, DailyChallengeProgress]
    current_streak: int
    longest_streak: int


# ----------------------------------------------------------------------
# Gameplay events
# ----------------------------------------------------------------------

@router.post("/events/balloon-popped", status_code=204)
async def balloon_popped(runtime: MetaProgressionRuntime = Depends(get_runtime)):
    runtime.balloon_popped()


@router.post("/events/shot-fired", status_code=204)
async def shot_fired(runtime: MetaProgressionRuntime = Depends(get_runtime)):
    runtime.shot_fired()


@router.post("/events/shot-hit", status_code=204)
async def shot_hit(runtime: MetaProgressionRuntime = Depends(get_runtime)):
    runtime.shot_hit()


@router.post("/events/combo", status_code=204)
async def combo_achieved(request: ComboRequest, runtime: MetaProgressionRuntime = Depends(get_runtime)):
    runtime.combo_achieved(request.combo)


@router.post("/events/level-completed", response_model=LevelCompletedResponse)
async def level_completed(
    request: LevelCompletedRequest,
    runtime: MetaProgressionRuntime = Depends(get_runtime)
):
    """
    Record a finished level

    Updates mastery stars, battle-pass XP, achievements and daily challenges
    """
    result = runtime.level_completed(
        request.level_id,
        request.time_ms,
        request.accuracy,
        request.style_score,
        max_combo=request.max_combo,
        score=request.score,
    )
    return LevelCompletedResponse(
        record=result.record,
        new_stars=result.new_stars,
        xp_earned=result.xp_earned,
        first_completion=result.first_completion,
        perfect=result.perfect,
    )


@router.post("/events/enemy-spawned", response_model=Optional[MysteryBalloonInstance])
async def enemy_spawned(runtime: MetaProgressionRuntime = Depends(get_runtime)):
    """Count an ordinary spawn; returns a mystery balloon when one is due, else null"""
    return runtime.ordinary_enemy_spawned()


@router.post("/mystery-balloons/{balloon_id}/pop", response_model=List[MysteryReward])
async def pop_mystery_balloon(balloon_id: str, runtime: MetaProgressionRuntime = Depends(get_runtime)):
    rewards = runtime.mystery_balloon_popped(balloon_id)
    if rewards is None:
        raise HTTPException(status_code=404, detail="Mystery balloon not found or already popped")
    return rewards


@router.get("/mystery-balloons", response_model=List[MysteryBalloonInstance])
async def active_mystery_balloons(runtime: MetaProgressionRuntime = Depends(get_runtime)):
    return runtime.balloons.get_active_mystery_balloons()


# ----------------------------------------------------------------------
# Progress
# ----------------------------------------------------------------------

@router.get("/progress", response_model=LedgerSnapshot)
async def get_progress(runtime: MetaProgressionRuntime = Depends(get_runtime)):
    return runtime.ledger.snapshot()


@router.get("/mastery/{level_id}", response_model=LevelMasteryRecord)
async def get_mastery(level_id: int, runtime: MetaProgressionRuntime = Depends(get_runtime)):
    record = runtime.ledger.get_mastery_record(level_id)
    if record is None:
        raise HTTPException(status_code=404, detail=f"No mastery record for level {level_id}")
    return record


@router.get("/achievements/new", response_model=List[Achievement])
async def get_new_achievements(runtime: MetaProgressionRuntime = Depends(get_runtime)):
    return runtime.ledger.new_achievements


@router.delete("/achievements/new", response_model=List[Achievement])
async def clear_new_achievements(runtime: MetaProgressionRuntime = Depends(get_runtime)):
    return runtime.ledger.clear_new_achievements()


# ----------------------------------------------------------------------
# Daily challenges
# ----------------------------------------------------------------------

@router.get("/challenges", response_model=ChallengesResponse)
async def get_challenges(runtime: MetaProgressionRuntime = Depends(get_runtime)):
    history = runtime.challenges.get_challenge_history()
    return ChallengesResponse(
        challenges=runtime.challenges.get_current_challenges(),
        progress=runtime.challenges.get_challenge_progress(),
        current_streak=history.current_streak,
        longest_streak=history.longest_streak,
    )


@router.post("/challenges/{challenge_id}/claim", response_model=ChallengeReward)
async def claim_challenge(challenge_id: str, runtime: MetaProgressionRuntime = Depends(get_runtime)):
    reward = runtime.claim_challenge(challenge_id)
    if reward is None:
        raise HTTPException(status_code=409, detail="Challenge is not claimable")
    return reward


# ----------------------------------------------------------------------
# Sessions
# ----------------------------------------------------------------------

@router.post("/session/start", status_code=204)
async def start_session(runtime: MetaProgressionRuntime = Depends(get_runtime)):
    runtime.start_session()


@router.post("/session/end")
async def end_session(runtime: MetaProgressionRuntime = Depends(get_runtime)) -> Dict[str, Any]:
    duration_ms = runtime.end_session()
    return {"session_duration_ms": duration_ms}


@router.post("/levels/{level_id}/start", status_code=204)
async def start_level(level_id: int, runtime: MetaProgressionRuntime = Depends(get_runtime)):
    runtime.start_level(level_id)
