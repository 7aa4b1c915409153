from datetime import date

import pytest

from triunely_arena.attempts import sign_in
from triunely_arena.db import init_db
from triunely_arena.grader import GradeResult
from triunely_arena.importer import import_pack_data
from triunely_arena.models import Grade


@pytest.fixture
def tmp_db(tmp_path):
    """Provide a temporary SQLite database path for tests."""
    db_path = str(tmp_path / "test_arena.db")
    return db_path


def make_pack(starts_on=None, drills=None, boss_battles=None, name="Test pack"):
    return {
        "pack": {"name": name, "starts_on": (starts_on or date.today()).isoformat()},
        "drills": drills if drills is not None else [
            {
                "week_number": 1, "day_number": 1, "slot": 1,
                "title": "Corrupted text",
                "prompt": "The Bible has been changed over the centuries.",
                "opponent_type": "muslim",
                "key_points": ["Manuscripts", "Variants are minor"],
                "scripture_refs": ["Isaiah 40:8"],
                "xp_reward": 10, "light_points_bonus": 2,
            },
            {
                "week_number": 1, "day_number": 1, "slot": 2,
                "title": "Divinity",
                "prompt": "Jesus never claimed to be God.",
                "opponent_type": "muslim",
                "xp_reward": 8, "light_points_bonus": 1,
            },
        ],
        "boss_battles": boss_battles if boss_battles is not None else [],
    }


@pytest.fixture
def arena_db(tmp_db):
    """Initialized database with a pack starting today and a signed-in user."""
    init_db(tmp_db)
    import_pack_data(tmp_db, make_pack())
    sign_in(tmp_db, "user-1")
    return tmp_db


class StubGrader:
    """Grader double that records calls and returns canned results."""

    def __init__(self, *results):
        self.results = list(results) or [GradeResult(ok=True, grade=Grade(score=87, raw={"score": 87}))]
        self.calls = []

    def grade(self, drill, user_answer):
        self.calls.append((drill, user_answer))
        if len(self.results) > 1:
            return self.results.pop(0)
        return self.results[0]


@pytest.fixture
def stub_grader():
    return StubGrader()
