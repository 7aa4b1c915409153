"""Data classes for the arena domain model."""
import json
import math
from dataclasses import dataclass, field
from typing import Any, Optional


def _json_value(raw, default):
    """Decode a JSON column, falling back to ``default`` on NULL or bad data."""
    if raw is None or raw == "":
        return default
    if not isinstance(raw, str):
        return raw
    try:
        return json.loads(raw)
    except ValueError:
        return default


def _json_list(raw) -> list:
    value = _json_value(raw, [])
    return value if isinstance(value, list) else []


def _json_dict(raw) -> dict:
    value = _json_value(raw, {})
    return value if isinstance(value, dict) else {}


def _int(value, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _float(value, default: float = 0.0) -> float:
    try:
        result = float(value)
    except (TypeError, ValueError):
        return default
    return result if math.isfinite(result) else default


@dataclass
class Pack:
    id: int
    name: str
    starts_on: Optional[str] = None
    is_active: bool = True
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass(frozen=True)
class DrillDay:
    """Day/week context resolved from the active pack for one calendar day."""
    pack_id: int
    computed_day_number: int
    day_number: int
    week_number: int
    day_of_week: int
    used_override: bool = False


@dataclass
class Drill:
    id: int
    title: str
    prompt: str
    opponent_type: str = ""
    key_points: list = field(default_factory=list)
    scripture_refs: list = field(default_factory=list)
    xp_reward: int = 0
    light_points_bonus: int = 0
    why_it_matters: str = ""
    fallback_variant: Optional[str] = None
    opponent_exhibits: Optional[list] = None
    defense_exhibits: Optional[list] = None
    fault_lines: Optional[list] = None
    pack_id: Optional[int] = None
    week_number: Optional[int] = None
    day_number: Optional[int] = None
    slot: Optional[int] = None

    @classmethod
    def from_row(cls, row) -> "Drill":
        row = dict(row)
        return cls(
            id=row["id"],
            title=row.get("title") or "",
            prompt=row.get("prompt") or "",
            opponent_type=row.get("opponent_type") or "",
            key_points=[p for p in _json_list(row.get("key_points")) if p],
            scripture_refs=[r for r in _json_list(row.get("scripture_refs")) if r],
            xp_reward=_int(row.get("xp_reward")),
            light_points_bonus=_int(row.get("light_points_bonus")),
            why_it_matters=row.get("why_it_matters") or "",
            fallback_variant=row.get("fallback_variant"),
            opponent_exhibits=_json_value(row.get("opponent_exhibits"), None),
            defense_exhibits=_json_value(row.get("defense_exhibits"), None),
            fault_lines=_json_value(row.get("fault_lines"), None),
            pack_id=row.get("pack_id"),
            week_number=row.get("week_number"),
            day_number=row.get("day_number"),
            slot=row.get("slot"),
        )


@dataclass(frozen=True)
class Exhibit:
    key: str
    side: str  # "prosecution" or "defense"
    title: str
    lane: str = ""
    summary: str = ""
    proof: str = ""
    how_to_use: str = ""
    muslim_angle: str = ""
    refs: tuple = ()


@dataclass
class Attempt:
    user_id: str
    drill_id: int
    user_answer: Optional[str] = None
    used_faith_coach: bool = False
    coach_feedback: dict = field(default_factory=dict)
    score: float = 0.0
    completed: bool = False
    xp_earned: int = 0
    light_points_earned: int = 0
    updated_at: Optional[str] = None

    @classmethod
    def from_row(cls, row) -> "Attempt":
        row = dict(row)
        return cls(
            user_id=row["user_id"],
            drill_id=row["drill_id"],
            user_answer=row.get("user_answer"),
            used_faith_coach=bool(row.get("used_faith_coach")),
            coach_feedback=_json_dict(row.get("coach_feedback")),
            score=_float(row.get("score")),
            completed=bool(row.get("completed")),
            xp_earned=_int(row.get("xp_earned")),
            light_points_earned=_int(row.get("light_points_earned")),
            updated_at=row.get("updated_at"),
        )


@dataclass
class BossBattle:
    id: int
    title: str
    week_number: int
    description: str = ""
    rounds: list = field(default_factory=list)
    xp_reward_total: int = 0
    light_points_bonus_total: int = 0

    @classmethod
    def from_row(cls, row) -> "BossBattle":
        row = dict(row)
        return cls(
            id=row["id"],
            title=row.get("title") or "",
            week_number=_int(row.get("week_number"), 1),
            description=row.get("description") or "",
            rounds=_json_list(row.get("rounds")),
            xp_reward_total=_int(row.get("xp_reward_total")),
            light_points_bonus_total=_int(row.get("light_points_bonus_total")),
        )


@dataclass
class BossAttempt:
    user_id: str
    boss_id: int
    state: dict = field(default_factory=dict)
    completed: bool = False
    xp_earned: int = 0
    light_points_earned: int = 0

    @classmethod
    def from_row(cls, row) -> "BossAttempt":
        row = dict(row)
        return cls(
            user_id=row["user_id"],
            boss_id=row["boss_id"],
            state=_json_dict(row.get("state")),
            completed=bool(row.get("completed")),
            xp_earned=_int(row.get("xp_earned")),
            light_points_earned=_int(row.get("light_points_earned")),
        )


@dataclass
class Grade:
    """Score and feedback returned by the Faith Coach grader."""
    score: Any = None
    summary: str = ""
    raw: dict = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload) -> "Grade":
        payload = payload if isinstance(payload, dict) else {}
        return cls(
            score=payload.get("score"),
            summary=str(payload.get("summary") or payload.get("feedback") or ""),
            raw=payload,
        )


@dataclass(frozen=True)
class Reward:
    xp: int
    light_points: int
    already_completed: bool


@dataclass
class Verdict:
    drill_id: int
    score: float
    grade: Grade
    reward: Reward
