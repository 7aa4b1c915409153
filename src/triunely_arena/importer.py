"""Import a content pack (pack, drills, boss battles) from a JSON or YAML file."""
import json
from datetime import date, datetime
from pathlib import Path

from triunely_arena.db import get_connection

JSON_LIST_FIELDS = ("key_points", "scripture_refs")
JSON_OPTIONAL_FIELDS = ("opponent_exhibits", "defense_exhibits", "fault_lines")


def read_pack_file(file_path: str) -> dict:
    path = Path(file_path)
    suffix = path.suffix.lower()

    if suffix == ".json":
        data = json.loads(path.read_text(encoding="utf-8"))
    elif suffix in (".yaml", ".yml"):
        import yaml
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    else:
        raise ValueError(f"Unsupported pack format: {suffix or path.name}")

    if not isinstance(data, dict) or not isinstance(data.get("pack"), dict):
        raise ValueError("Pack file must contain a 'pack' mapping")
    return data


def _dump_optional(value):
    return json.dumps(value) if value is not None else None


def import_pack_data(db_path: str, data: dict, activate: bool = True) -> dict:
    """Insert a pack with its drills and boss battles. Activating it deactivates older packs."""
    pack = data["pack"]
    drills = data.get("drills") or []
    bosses = data.get("boss_battles") or []
    now = datetime.now().isoformat()
    starts_on = str(pack.get("starts_on") or date.today().isoformat())
    try:
        date.fromisoformat(starts_on[:10])
    except ValueError:
        raise ValueError(f"Pack starts_on must be an ISO date (YYYY-MM-DD), got {starts_on!r}")

    conn = get_connection(db_path)
    try:
        if activate:
            conn.execute("UPDATE formation_packs SET is_active = 0 WHERE is_active = 1")
        cur = conn.execute(
            "INSERT INTO formation_packs (name, starts_on, is_active, created_at, updated_at) VALUES (?, ?, ?, ?, ?)",
            (pack.get("name") or "Untitled pack", starts_on, int(activate), now, now),
        )
        pack_id = cur.lastrowid

        for d in drills:
            conn.execute(
                """INSERT INTO apologetics_drills
                (pack_id, week_number, day_number, slot, title, prompt, why_it_matters, opponent_type,
                 fallback_variant, key_points, scripture_refs, opponent_exhibits, defense_exhibits,
                 fault_lines, xp_reward, light_points_bonus, is_active, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    pack_id, int(d.get("week_number", 1)), int(d.get("day_number", 1)), d.get("slot"),
                    d["title"], d["prompt"], d.get("why_it_matters"), d.get("opponent_type"),
                    d.get("fallback_variant"),
                    *(json.dumps(d.get(f) or []) for f in JSON_LIST_FIELDS),
                    *(_dump_optional(d.get(f)) for f in JSON_OPTIONAL_FIELDS),
                    int(d.get("xp_reward", 0)), int(d.get("light_points_bonus", 0)),
                    int(d.get("is_active", True)), now,
                ),
            )

        for b in bosses:
            conn.execute(
                """INSERT INTO boss_battles
                (pack_id, week_number, title, description, rounds, xp_reward_total,
                 light_points_bonus_total, is_active, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    pack_id, int(b.get("week_number", 1)), b["title"], b.get("description"),
                    json.dumps(b.get("rounds") or []), int(b.get("xp_reward_total", 0)),
                    int(b.get("light_points_bonus_total", 0)), int(b.get("is_active", True)), now,
                ),
            )
        conn.commit()
    finally:
        conn.close()
    return {"pack_id": pack_id, "name": pack.get("name"), "drills": len(drills), "boss_battles": len(bosses)}


def import_pack(db_path: str, file_path: str, activate: bool = True) -> dict:
    """Import a pack file into the database."""
    return import_pack_data(db_path, read_pack_file(file_path), activate=activate)
