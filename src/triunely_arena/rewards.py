"""Reward calculation for drill completions."""
import math

from triunely_arena.models import Attempt, Drill, Grade, Reward


def safe_num(value) -> float:
    """Coerce to a finite number, 0 otherwise."""
    try:
        n = float(value)
    except (TypeError, ValueError):
        return 0
    return n if math.isfinite(n) else 0


def compute_reward(drill: Drill, attempt: Attempt | None) -> Reward:
    """Rewards are paid on the first completion only; later completions earn nothing."""
    already_completed = bool(attempt and attempt.completed)
    if already_completed:
        return Reward(xp=0, light_points=0, already_completed=True)
    return Reward(
        xp=int(safe_num(drill.xp_reward)),
        light_points=int(safe_num(drill.light_points_bonus)),
        already_completed=False,
    )


def score_from_grade(grade: Grade | None) -> float:
    if grade is None:
        return 0
    return min(100, max(0, safe_num(grade.score)))
