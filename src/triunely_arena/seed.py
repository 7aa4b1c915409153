"""Seed the database with the bundled demo content pack."""
import json
from datetime import date

from triunely_arena.db import get_connection
from triunely_arena.exhibits import CONTENT_DIR
from triunely_arena.importer import import_pack_data


def is_seeded(db_path: str) -> bool:
    """Check whether any content pack exists."""
    conn = get_connection(db_path)
    count = conn.execute("SELECT COUNT(*) FROM formation_packs").fetchone()[0]
    conn.close()
    return count > 0


def seed_demo_pack(db_path: str, starts_on: date | None = None) -> dict:
    """Insert the demo pack, starting today unless told otherwise."""
    data = json.loads((CONTENT_DIR / "demo_pack.json").read_text(encoding="utf-8"))
    data["pack"]["starts_on"] = (starts_on or date.today()).isoformat()
    return import_pack_data(db_path, data)


def seed_all(db_path: str) -> None:
    if is_seeded(db_path):
        return
    seed_demo_pack(db_path)
