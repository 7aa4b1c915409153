"""Tests for the drill session: steps, evidence gate, selections and submission."""
from unittest.mock import patch

import pytest

from conftest import StubGrader, make_pack
from triunely_arena.arena import (
    ArenaError, ArenaSession, ArenaState, BoardLoadError, EvidenceGateLocked, GradingFailed,
    MissingDefenseSelection, SaveFailed, Step,
)
from triunely_arena.attempts import get_attempt, sign_out
from triunely_arena.board import Board
from triunely_arena.db import get_connection, init_db
from triunely_arena.grader import GradeResult
from triunely_arena.importer import import_pack_data
from triunely_arena.models import Grade


def _session(db_path, grader=None, **kwargs):
    session = ArenaSession(db_path, grader or StubGrader(), **kwargs)
    session.load()
    return session


def _to_cross_exam(session):
    session.next_step()
    session.open_exhibit(session.prosecution_exhibits[0])
    session.next_step()
    assert session.step == Step.CROSS_EXAM


def test_load_opens_first_uncompleted_drill(arena_db):
    session = _session(arena_db)
    assert session.drill.title == "Corrupted text"
    assert session.step == Step.CHARGE
    assert session.state == ArenaState()


def test_load_with_requested_drill(arena_db):
    first = _session(arena_db)
    second_id = first.board.drills[1].id
    session = _session(arena_db, drill_id=second_id)
    assert session.drill.id == second_id


def test_load_failure_raises(tmp_db):
    init_db(tmp_db)
    import_pack_data(tmp_db, make_pack(drills=[]))
    conn = get_connection(tmp_db)
    conn.execute("DROP TABLE boss_battles")
    conn.commit()
    conn.close()
    with pytest.raises(BoardLoadError):
        ArenaSession(tmp_db, StubGrader()).load()


def test_load_without_content_has_no_drill(tmp_db):
    init_db(tmp_db)
    session = _session(tmp_db)
    assert session.drill is None
    assert session.board.note


def test_charge_to_evidence_is_unconditional(arena_db):
    session = _session(arena_db)
    assert session.next_step() == Step.EVIDENCE


def test_evidence_gate_blocks_without_opened_exhibit(arena_db):
    session = _session(arena_db)
    session.next_step()
    events = []
    session.subscribe(events.append)
    with pytest.raises(EvidenceGateLocked):
        session.next_step()
    assert session.step == Step.EVIDENCE
    assert events[-1].kind == "locked"


def test_selecting_without_opening_does_not_pass_gate(arena_db):
    session = _session(arena_db)
    session.next_step()
    session.select_best(session.prosecution_exhibits[0])
    assert session.state.selected_prosecution == session.prosecution_exhibits[0].key
    assert session.can_advance_from_evidence() is False
    with pytest.raises(EvidenceGateLocked):
        session.next_step()


def test_opening_defense_exhibit_does_not_pass_gate(arena_db):
    session = _session(arena_db)
    session.next_step()
    session.mark_opened(session.defense_exhibits[0].key)
    assert session.can_advance_from_evidence() is False


def test_mark_opened_without_selecting(arena_db):
    session = _session(arena_db)
    session.next_step()
    key = session.prosecution_exhibits[1].key
    session.mark_opened(key)
    session.mark_opened(key)
    assert session.state.opened == {key}
    assert session.state.selected_prosecution is None
    assert session.next_step() == Step.CROSS_EXAM


def test_open_exhibit_marks_and_selects(arena_db):
    session = _session(arena_db)
    exhibit = session.prosecution_exhibits[0]
    session.open_exhibit(exhibit)
    assert exhibit.key in session.state.opened
    assert session.state.selected_prosecution == exhibit.key


def test_selection_is_one_per_side(arena_db):
    session = _session(arena_db)
    p1, p2 = session.prosecution_exhibits[:2]
    d1, d2 = session.defense_exhibits[:2]
    session.open_exhibit(p1)
    session.open_exhibit(p2)
    session.select_best(d1)
    session.select_best(d2)
    assert session.state.selected_prosecution == p2.key
    assert session.state.selected_defense == d2.key
    assert session.state.opened == {p1.key, p2.key}


def test_back_is_floored_and_never_gated(arena_db):
    session = _session(arena_db)
    assert session.prev_step() == Step.CHARGE
    _to_cross_exam(session)
    assert session.prev_step() == Step.EVIDENCE
    assert session.prev_step() == Step.CHARGE
    assert session.prev_step() == Step.CHARGE


def test_next_does_not_leave_cross_exam(arena_db):
    session = _session(arena_db)
    _to_cross_exam(session)
    assert session.next_step() == Step.CROSS_EXAM


def test_fault_line_and_notes_never_gate(arena_db):
    session = _session(arena_db)
    session.next_step()
    session.select_fault_line(session.fault_lines[0])
    session.select_fault_line(session.fault_lines[1])
    session.set_notes("thinking")
    assert session.state.fault_line == session.fault_lines[1]
    with pytest.raises(EvidenceGateLocked):
        session.next_step()


def test_reset_for_drill_clears_everything(arena_db):
    session = _session(arena_db)
    first_id = session.drill.id
    second_id = session.board.drills[1].id
    _to_cross_exam(session)
    session.select_best(session.defense_exhibits[0])
    session.select_fault_line(session.fault_lines[0])
    session.set_notes("notes")

    session.reset_for_drill(second_id)
    assert session.drill.id == second_id
    assert session.state == ArenaState()
    assert session.step == Step.CHARGE

    fresh = _session(arena_db, drill_id=first_id)
    session.reset_for_drill(first_id)
    assert session.state == fresh.state


def test_reset_emits_event(arena_db):
    session = _session(arena_db)
    events = []
    session.subscribe(events.append)
    session.next_step()
    session.reset_for_drill(session.board.drills[1].id)
    assert [e.kind for e in events] == ["advance", "reset"]
    assert events[-1].from_step == Step.EVIDENCE
    assert events[-1].to_step == Step.CHARGE


def test_submit_without_defense_is_refused(arena_db):
    grader = StubGrader()
    session = _session(arena_db, grader)
    _to_cross_exam(session)
    with pytest.raises(MissingDefenseSelection):
        session.submit()
    assert grader.calls == []
    assert session.step == Step.CROSS_EXAM
    assert get_attempt(arena_db, session.drill.id) is None


def test_submit_only_during_cross_exam(arena_db):
    session = _session(arena_db)
    session.select_best(session.defense_exhibits[0])
    with pytest.raises(ArenaError):
        session.submit()


def test_submit_ignored_while_busy(arena_db):
    grader = StubGrader()
    session = _session(arena_db, grader)
    _to_cross_exam(session)
    session.select_best(session.defense_exhibits[0])
    session.busy = True
    assert session.submit() is None
    assert grader.calls == []


def test_compose_answer(arena_db):
    session = _session(arena_db)
    _to_cross_exam(session)
    session.select_best(session.defense_exhibits[0])
    answer = session.compose_answer()
    assert answer.splitlines() == [
        "ARENA_MODE: evidence_selection_v2",
        "CLAIM: The Bible has been changed over the centuries.",
        f"SELECTED_OPPONENT_EXHIBIT: {session.prosecution_exhibits[0].title}",
        "OPENED_OPPONENT_EXHIBITS: 1",
        "FAULT_LINE: (not selected)",
        f"SELECTED_DEFENSE_EXHIBIT: {session.defense_exhibits[0].title}",
        "NOTES: (none)",
    ]


def test_compose_answer_with_fault_line_and_notes(arena_db):
    session = _session(arena_db)
    session.next_step()
    session.mark_opened(session.prosecution_exhibits[0].key)
    session.mark_opened(session.prosecution_exhibits[2].key)
    session.select_fault_line("If there are variants, the original message is unknowable.")
    session.set_notes("  ask for a specific manuscript  ")
    answer = session.compose_answer()
    assert "SELECTED_OPPONENT_EXHIBIT: (none)" in answer
    assert "OPENED_OPPONENT_EXHIBITS: 2" in answer
    assert "FAULT_LINE: If there are variants, the original message is unknowable." in answer
    assert "NOTES: ask for a specific manuscript" in answer


def test_successful_submit_rewards_and_reaches_verdict(arena_db):
    grader = StubGrader()
    session = _session(arena_db, grader)
    drill = session.drill
    _to_cross_exam(session)
    session.select_best(session.defense_exhibits[0])
    session.set_notes("test")

    verdict = session.submit()

    assert session.step == Step.VERDICT
    assert verdict.score == 87
    assert (verdict.reward.xp, verdict.reward.light_points) == (10, 2)
    assert grader.calls[0][0].id == drill.id
    attempt = get_attempt(arena_db, drill.id)
    assert attempt.completed is True
    assert attempt.score == 87
    assert (attempt.xp_earned, attempt.light_points_earned) == (10, 2)
    assert attempt.coach_feedback["notes_provided"] is True
    assert attempt.coach_feedback["opened_opponent_exhibits"] == 1
    assert attempt.coach_feedback["defense_selected_key"] == session.state.selected_defense
    assert session.board.is_completed(drill.id)


def test_resubmission_earns_no_rewards(arena_db):
    grader = StubGrader(
        GradeResult(ok=True, grade=Grade(score=87, raw={"score": 87})),
        GradeResult(ok=True, grade=Grade(score=95, raw={"score": 95})),
    )
    session = _session(arena_db, grader)
    drill_id = session.drill.id

    _to_cross_exam(session)
    session.select_best(session.defense_exhibits[0])
    session.set_notes("test")
    session.submit()

    session.reset_for_drill(drill_id)
    _to_cross_exam(session)
    session.select_best(session.defense_exhibits[0])
    session.set_notes("test")
    verdict = session.submit()

    assert verdict.reward.already_completed is True
    assert verdict.reward.xp == 0
    assert verdict.reward.light_points == 0
    attempt = get_attempt(arena_db, drill_id)
    assert attempt.completed is True
    assert attempt.score == 95
    assert attempt.xp_earned == 0
    assert attempt.light_points_earned == 0


def test_grading_failure_saves_nothing(arena_db):
    grader = StubGrader(GradeResult(ok=False, error="Edge function returned non-2xx", status=500))
    session = _session(arena_db, grader)
    _to_cross_exam(session)
    session.select_best(session.defense_exhibits[0])
    with pytest.raises(GradingFailed) as exc:
        session.submit()
    assert exc.value.status == 500
    assert "non-2xx" in str(exc.value)
    assert session.step == Step.CROSS_EXAM
    assert session.busy is False
    assert session.pending_save is None
    assert get_attempt(arena_db, session.drill.id) is None


def test_save_failure_keeps_grade_for_retry(arena_db):
    grader = StubGrader()
    session = _session(arena_db, grader)
    drill_id = session.drill.id
    _to_cross_exam(session)
    session.select_best(session.defense_exhibits[0])

    sign_out(arena_db)
    with pytest.raises(SaveFailed) as exc:
        session.submit()
    assert "Not logged in" in str(exc.value)
    assert session.step == Step.CROSS_EXAM
    assert session.pending_save.grade.score == 87

    from triunely_arena.attempts import sign_in
    sign_in(arena_db, "user-1")
    verdict = session.retry_save()
    assert len(grader.calls) == 1
    assert verdict.score == 87
    assert session.step == Step.VERDICT
    assert session.pending_save is None
    assert get_attempt(arena_db, drill_id).completed is True


def test_retry_save_without_pending(arena_db):
    session = _session(arena_db)
    with pytest.raises(ArenaError):
        session.retry_save()


def test_reset_discards_pending_save(arena_db):
    session = _session(arena_db)
    _to_cross_exam(session)
    session.select_best(session.defense_exhibits[0])
    sign_out(arena_db)
    with pytest.raises(SaveFailed):
        session.submit()
    session.reset_for_drill(session.board.drills[1].id)
    assert session.pending_save is None


def test_start_next_drill_after_verdict(arena_db):
    session = _session(arena_db)
    first_id = session.drill.id
    _to_cross_exam(session)
    session.select_best(session.defense_exhibits[0])
    session.submit()
    nxt = session.start_next_drill()
    assert nxt.id != first_id
    assert session.step == Step.CHARGE
    assert session.verdict is None


def test_reload_failure_after_save_still_reaches_verdict(arena_db):
    grader = StubGrader()
    session = _session(arena_db, grader)
    drill_id = session.drill.id
    _to_cross_exam(session)
    session.select_best(session.defense_exhibits[0])

    with patch("triunely_arena.arena.load_board", return_value=Board(ok=False, error="offline")):
        verdict = session.submit()
    assert session.step == Step.VERDICT
    assert verdict.reward.xp == 10
    assert session.reload_error == "offline"
    assert session.pending_save is None
    assert get_attempt(arena_db, drill_id).completed is True

    # The next submission refreshes the board first, so no second reward.
    session.reset_for_drill(drill_id)
    _to_cross_exam(session)
    session.select_best(session.defense_exhibits[0])
    verdict = session.submit()
    assert session.reload_error is None
    assert verdict.reward.xp == 0
    assert verdict.reward.already_completed is True


def test_submit_refuses_while_board_stays_stale(arena_db):
    grader = StubGrader()
    session = _session(arena_db, grader)
    drill_id = session.drill.id
    _to_cross_exam(session)
    session.select_best(session.defense_exhibits[0])

    with patch("triunely_arena.arena.load_board", return_value=Board(ok=False, error="offline")):
        session.submit()
        session.reset_for_drill(drill_id)
        _to_cross_exam(session)
        session.select_best(session.defense_exhibits[0])
        with pytest.raises(BoardLoadError):
            session.submit()
    assert len(grader.calls) == 1
    assert session.busy is False
