"""Database initialization and connection management."""
import sqlite3
from pathlib import Path

from triunely_arena.config import settings

DEFAULT_DB_PATH = settings.db_path

SCHEMA = """
CREATE TABLE IF NOT EXISTS formation_packs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    starts_on TEXT,
    is_active INTEGER DEFAULT 1,
    created_at TEXT,
    updated_at TEXT
);

CREATE TABLE IF NOT EXISTS apologetics_drills (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    pack_id INTEGER NOT NULL REFERENCES formation_packs(id),
    week_number INTEGER NOT NULL,
    day_number INTEGER NOT NULL,
    slot INTEGER,
    title TEXT NOT NULL,
    prompt TEXT NOT NULL,
    why_it_matters TEXT,
    opponent_type TEXT,
    fallback_variant TEXT,
    key_points TEXT DEFAULT '[]',
    scripture_refs TEXT DEFAULT '[]',
    opponent_exhibits TEXT,
    defense_exhibits TEXT,
    fault_lines TEXT,
    xp_reward INTEGER DEFAULT 0,
    light_points_bonus INTEGER DEFAULT 0,
    is_active INTEGER DEFAULT 1,
    created_at TEXT
);

CREATE TABLE IF NOT EXISTS boss_battles (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    pack_id INTEGER NOT NULL REFERENCES formation_packs(id),
    week_number INTEGER NOT NULL,
    title TEXT NOT NULL,
    description TEXT,
    rounds TEXT DEFAULT '[]',
    xp_reward_total INTEGER DEFAULT 0,
    light_points_bonus_total INTEGER DEFAULT 0,
    is_active INTEGER DEFAULT 1,
    created_at TEXT
);

CREATE TABLE IF NOT EXISTS apologetics_attempts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    drill_id INTEGER NOT NULL REFERENCES apologetics_drills(id),
    user_answer TEXT,
    used_faith_coach INTEGER DEFAULT 0,
    coach_feedback TEXT DEFAULT '{}',
    score REAL DEFAULT 0,
    completed INTEGER DEFAULT 0,
    xp_earned INTEGER DEFAULT 0,
    light_points_earned INTEGER DEFAULT 0,
    created_at TEXT,
    updated_at TEXT,
    UNIQUE(user_id, drill_id)
);

CREATE TABLE IF NOT EXISTS boss_attempts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    boss_id INTEGER NOT NULL REFERENCES boss_battles(id),
    state TEXT DEFAULT '{}',
    completed INTEGER DEFAULT 0,
    xp_earned INTEGER DEFAULT 0,
    light_points_earned INTEGER DEFAULT 0,
    created_at TEXT,
    updated_at TEXT,
    UNIQUE(user_id, boss_id)
);

-- Rewards granted for a drill; written once, never overwritten by replays
CREATE TABLE IF NOT EXISTS reward_ledger (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    drill_id INTEGER NOT NULL REFERENCES apologetics_drills(id),
    xp INTEGER DEFAULT 0,
    light_points INTEGER DEFAULT 0,
    created_at TEXT,
    UNIQUE(user_id, drill_id)
);

CREATE TABLE IF NOT EXISTS user_settings (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    key TEXT NOT NULL UNIQUE,
    value TEXT
);
"""


def get_connection(db_path: str = DEFAULT_DB_PATH) -> sqlite3.Connection:
    """Return a SQLite connection with row factory and foreign keys enabled."""
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def init_db(db_path: str = DEFAULT_DB_PATH) -> None:
    """Initialize the database, creating all tables if they don't exist."""
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = get_connection(db_path)
    conn.executescript(SCHEMA)
    conn.commit()
    conn.close()
