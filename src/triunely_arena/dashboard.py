"""Progress summary for the signed-in user."""
from triunely_arena.attempts import get_current_user_id
from triunely_arena.board import Board
from triunely_arena.db import get_connection


def get_lifetime_stats(db_path: str) -> dict:
    user_id = get_current_user_id(db_path)
    if not user_id:
        return {"drills_completed": 0, "xp_earned": 0, "light_points_earned": 0, "avg_score": 0.0}
    conn = get_connection(db_path)
    row = conn.execute(
        """SELECT SUM(CASE WHEN completed = 1 THEN 1 ELSE 0 END) as completed, AVG(score) as avg
        FROM apologetics_attempts WHERE user_id = ?""",
        (user_id,),
    ).fetchone()
    # Attempt rows are overwritten on replay; earned rewards come from the ledger.
    earned = conn.execute(
        "SELECT SUM(xp) as xp, SUM(light_points) as lp FROM reward_ledger WHERE user_id = ?",
        (user_id,),
    ).fetchone()
    boss = conn.execute(
        "SELECT SUM(xp_earned) as xp, SUM(light_points_earned) as lp FROM boss_attempts WHERE user_id = ?",
        (user_id,),
    ).fetchone()
    conn.close()
    return {
        "drills_completed": row["completed"] or 0,
        "xp_earned": (earned["xp"] or 0) + (boss["xp"] or 0),
        "light_points_earned": (earned["lp"] or 0) + (boss["lp"] or 0),
        "avg_score": round(row["avg"], 1) if row["avg"] is not None else 0.0,
    }


def get_boss_status(board: Board) -> str:
    if board.boss is None:
        return "NOT SEEDED"
    if board.boss_attempt is None:
        return "AVAILABLE"
    return "COMPLETED" if board.boss_attempt.completed else "IN PROGRESS"


def get_progress_summary(db_path: str, board: Board) -> dict:
    """Today's drill progress combined with lifetime totals."""
    stats = get_lifetime_stats(db_path)
    nxt = board.next_drill()
    return {
        "day_number": board.day.day_number if board.day else None,
        "week_number": board.day.week_number if board.day else None,
        "completed_today": board.completed_count(),
        "total_today": len(board.drills),
        "next_drill": nxt.title if nxt and not board.is_completed(nxt.id) else None,
        "boss_status": get_boss_status(board),
        **stats,
    }
