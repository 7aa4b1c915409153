"""Board loading: today's pack, drills, boss battle and the user's attempts."""
import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import date

from triunely_arena.attempts import get_current_user_id
from triunely_arena.db import get_connection
from triunely_arena.models import Attempt, BossAttempt, BossBattle, Drill, DrillDay, Pack

logger = logging.getLogger(__name__)

NO_PACK_NOTE = "No ACTIVE formation pack found."
NO_CONTENT_NOTE = "No apologetics content seeded for this week/day yet."


def compute_day_number(starts_on: str | None, override=None, today: date | None = None) -> tuple[int, bool]:
    """Return (day_number, used_override). Day 1 is the pack's start date; never below 1."""
    if override is not None:
        try:
            return max(1, int(override)), True
        except (TypeError, ValueError):
            pass
    if not starts_on:
        return 1, False
    start = date.fromisoformat(str(starts_on)[:10])
    today = today or date.today()
    return max(1, (today - start).days + 1), False


def day_to_week_and_dow(day_number: int) -> tuple[int, int]:
    dn = max(1, int(day_number or 1))
    return (dn - 1) // 7 + 1, (dn - 1) % 7 + 1


def resolve_drill_day(pack: Pack, override=None, today: date | None = None) -> DrillDay:
    computed, used_override = compute_day_number(pack.starts_on, None, today)
    day_number = computed
    if override is not None:
        day_number, used_override = compute_day_number(pack.starts_on, override, today)
    week_number, day_of_week = day_to_week_and_dow(day_number)
    return DrillDay(
        pack_id=pack.id,
        computed_day_number=computed,
        day_number=day_number,
        week_number=week_number,
        day_of_week=day_of_week,
        used_override=used_override,
    )


@dataclass
class Board:
    ok: bool
    error: str | None = None
    note: str | None = None
    pack: Pack | None = None
    day: DrillDay | None = None
    drills: list = field(default_factory=list)
    attempts_by_drill_id: dict = field(default_factory=dict)
    boss: BossBattle | None = None
    boss_attempt: BossAttempt | None = None

    def attempt_for(self, drill_id) -> Attempt | None:
        return self.attempts_by_drill_id.get(drill_id)

    def is_completed(self, drill_id) -> bool:
        attempt = self.attempt_for(drill_id)
        return bool(attempt and attempt.completed)

    def completed_count(self) -> int:
        return sum(1 for d in self.drills if self.is_completed(d.id))

    def find_drill(self, drill_id) -> Drill | None:
        return next((d for d in self.drills if d.id == drill_id), None)

    def next_drill(self) -> Drill | None:
        """First uncompleted drill, else the first drill."""
        if not self.drills:
            return None
        return next((d for d in self.drills if not self.is_completed(d.id)), self.drills[0])

    def choose_drill(self, preferred_id=None) -> Drill | None:
        if preferred_id is not None:
            found = self.find_drill(preferred_id)
            if found:
                return found
        return self.next_drill()


def _active_pack(conn) -> Pack | None:
    row = conn.execute(
        """SELECT id, name, starts_on, is_active, created_at, updated_at
        FROM formation_packs
        WHERE is_active = 1
        ORDER BY updated_at DESC NULLS LAST, created_at DESC
        LIMIT 1"""
    ).fetchone()
    if not row:
        return None
    return Pack(
        id=row["id"],
        name=row["name"],
        starts_on=row["starts_on"],
        is_active=bool(row["is_active"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def load_board(
    db_path: str,
    day_number_override: int | None = None,
    drills_limit: int = 5,
    today: date | None = None,
) -> Board:
    """Load today's board. Query errors and unreadable pack dates give ``ok=False``; missing content gives a note."""
    try:
        conn = get_connection(db_path)
        try:
            pack = _active_pack(conn)
            if pack is None:
                return Board(ok=True, note=NO_PACK_NOTE)

            day = resolve_drill_day(pack, day_number_override, today)

            try:
                limit = max(1, int(drills_limit))
            except (TypeError, ValueError):
                limit = 5
            drill_rows = conn.execute(
                """SELECT * FROM apologetics_drills
                WHERE pack_id = ? AND week_number = ? AND day_number = ? AND is_active = 1
                ORDER BY slot ASC NULLS LAST, created_at ASC, id ASC
                LIMIT ?""",
                (pack.id, day.week_number, day.day_of_week, limit),
            ).fetchall()
            drills = [Drill.from_row(r) for r in drill_rows]

            boss_row = conn.execute(
                """SELECT * FROM boss_battles
                WHERE pack_id = ? AND week_number = ? AND is_active = 1
                ORDER BY created_at DESC, id DESC
                LIMIT 1""",
                (pack.id, day.week_number),
            ).fetchone()
            boss = BossBattle.from_row(boss_row) if boss_row else None

            user_id = get_current_user_id(db_path)
            attempts = {}
            boss_attempt = None
            if user_id and drills:
                ids = [d.id for d in drills]
                placeholders = ",".join("?" * len(ids))
                rows = conn.execute(
                    f"""SELECT * FROM apologetics_attempts
                    WHERE user_id = ? AND drill_id IN ({placeholders})""",
                    (user_id, *ids),
                ).fetchall()
                attempts = {r["drill_id"]: Attempt.from_row(r) for r in rows}
            if user_id and boss:
                row = conn.execute(
                    "SELECT * FROM boss_attempts WHERE user_id = ? AND boss_id = ? LIMIT 1",
                    (user_id, boss.id),
                ).fetchone()
                boss_attempt = BossAttempt.from_row(row) if row else None
        finally:
            conn.close()
    except (sqlite3.Error, ValueError) as e:
        logger.warning(f"Loading the arena board failed: {e}")
        return Board(ok=False, error=str(e))

    logger.info(
        f"Board loaded: pack {pack.id}, day {day.day_number} "
        f"(week {day.week_number}, dow {day.day_of_week}), {len(drills)} drills"
    )
    return Board(
        ok=True,
        note=NO_CONTENT_NOTE if not drills and boss is None else None,
        pack=pack,
        day=day,
        drills=drills,
        attempts_by_drill_id=attempts,
        boss=boss,
        boss_attempt=boss_attempt,
    )
