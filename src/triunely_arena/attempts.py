"""Attempt persistence and the signed-in user context."""
import json
import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime

from triunely_arena.db import get_connection
from triunely_arena.models import Attempt, BossAttempt

logger = logging.getLogger(__name__)

NOT_LOGGED_IN = "Not logged in."


@dataclass
class SaveResult:
    ok: bool
    error: str | None = None


def get_setting(db_path: str, key: str, default: str = None) -> str | None:
    conn = get_connection(db_path)
    row = conn.execute("SELECT value FROM user_settings WHERE key = ?", (key,)).fetchone()
    conn.close()
    return row["value"] if row else default


def set_setting(db_path: str, key: str, value: str) -> None:
    conn = get_connection(db_path)
    conn.execute(
        "INSERT INTO user_settings (key, value) VALUES (?, ?) ON CONFLICT(key) DO UPDATE SET value=?",
        (key, value, value),
    )
    conn.commit()
    conn.close()


def delete_setting(db_path: str, key: str) -> None:
    conn = get_connection(db_path)
    conn.execute("DELETE FROM user_settings WHERE key = ?", (key,))
    conn.commit()
    conn.close()


def sign_in(db_path: str, user_id: str) -> None:
    user_id = str(user_id or "").strip()
    if not user_id:
        raise ValueError("user_id must not be empty")
    set_setting(db_path, "current_user_id", user_id)


def sign_out(db_path: str) -> None:
    delete_setting(db_path, "current_user_id")


def get_current_user_id(db_path: str) -> str | None:
    return get_setting(db_path, "current_user_id") or None


def get_attempt(db_path: str, drill_id: int) -> Attempt | None:
    """The signed-in user's attempt for a drill, if any."""
    user_id = get_current_user_id(db_path)
    if not user_id:
        return None
    conn = get_connection(db_path)
    row = conn.execute(
        "SELECT * FROM apologetics_attempts WHERE user_id = ? AND drill_id = ?",
        (user_id, drill_id),
    ).fetchone()
    conn.close()
    return Attempt.from_row(row) if row else None


def get_boss_attempt(db_path: str, boss_id: int) -> BossAttempt | None:
    user_id = get_current_user_id(db_path)
    if not user_id:
        return None
    conn = get_connection(db_path)
    row = conn.execute(
        "SELECT * FROM boss_attempts WHERE user_id = ? AND boss_id = ?",
        (user_id, boss_id),
    ).fetchone()
    conn.close()
    return BossAttempt.from_row(row) if row else None


def upsert_attempt(
    db_path: str,
    drill_id: int,
    user_answer: str | None,
    used_faith_coach: bool,
    completed: bool,
    score: float,
    xp_earned: int,
    light_points_earned: int,
    coach_feedback: dict | None = None,
) -> SaveResult:
    """Insert or update the signed-in user's attempt, keyed by (user_id, drill_id)."""
    user_id = get_current_user_id(db_path)
    if not user_id:
        return SaveResult(ok=False, error=NOT_LOGGED_IN)
    if not drill_id:
        return SaveResult(ok=False, error="Missing drill id.")

    now = datetime.now().isoformat()
    values = (
        user_id, drill_id, user_answer, int(bool(used_faith_coach)),
        json.dumps(coach_feedback or {}), score, int(bool(completed)),
        xp_earned, light_points_earned, now, now,
    )
    try:
        conn = get_connection(db_path)
        try:
            conn.execute(
                """INSERT INTO apologetics_attempts
                (user_id, drill_id, user_answer, used_faith_coach, coach_feedback, score,
                 completed, xp_earned, light_points_earned, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(user_id, drill_id) DO UPDATE SET
                    user_answer=excluded.user_answer,
                    used_faith_coach=excluded.used_faith_coach,
                    coach_feedback=excluded.coach_feedback,
                    score=excluded.score,
                    completed=excluded.completed,
                    xp_earned=excluded.xp_earned,
                    light_points_earned=excluded.light_points_earned,
                    updated_at=excluded.updated_at""",
                values,
            )
            if xp_earned or light_points_earned:
                conn.execute(
                    """INSERT OR IGNORE INTO reward_ledger
                    (user_id, drill_id, xp, light_points, created_at) VALUES (?, ?, ?, ?, ?)""",
                    (user_id, drill_id, xp_earned, light_points_earned, now),
                )
            conn.commit()
        finally:
            conn.close()
    except sqlite3.Error as e:
        logger.warning(f"Saving attempt for drill {drill_id} failed: {e}")
        return SaveResult(ok=False, error=str(e))
    return SaveResult(ok=True)


def initial_boss_state() -> dict:
    return {"current_round": 0, "answers": {}, "used_faith_coach_rounds": {}}


def start_boss_attempt(db_path: str, boss_id: int, state: dict | None = None) -> SaveResult:
    """Enter a boss battle. An existing attempt is resumed as-is."""
    user_id = get_current_user_id(db_path)
    if not user_id:
        return SaveResult(ok=False, error=NOT_LOGGED_IN)
    if not boss_id:
        return SaveResult(ok=False, error="Missing boss id.")

    now = datetime.now().isoformat()
    try:
        conn = get_connection(db_path)
        try:
            conn.execute(
                """INSERT INTO boss_attempts
                (user_id, boss_id, state, completed, xp_earned, light_points_earned, created_at, updated_at)
                VALUES (?, ?, ?, 0, 0, 0, ?, ?)
                ON CONFLICT(user_id, boss_id) DO UPDATE SET updated_at=excluded.updated_at""",
                (user_id, boss_id, json.dumps(state or initial_boss_state()), now, now),
            )
            conn.commit()
        finally:
            conn.close()
    except sqlite3.Error as e:
        logger.warning(f"Starting boss attempt {boss_id} failed: {e}")
        return SaveResult(ok=False, error=str(e))
    return SaveResult(ok=True)
