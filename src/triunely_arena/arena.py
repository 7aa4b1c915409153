"""Apologetics Arena drill session: steps, exhibit selection and submission.

A session walks one drill through four steps (Charge, Evidence, Cross-exam,
Verdict). All selection state lives in a single ``ArenaState``; the board
loaded from the database is never patched locally, only reloaded.
"""
import logging
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Callable

from triunely_arena.attempts import upsert_attempt
from triunely_arena.board import Board, load_board
from triunely_arena.exhibits import (
    DEFENSE, PROSECUTION, build_defense_exhibits, build_fault_lines,
    build_prosecution_exhibits, build_study_pack, build_suggested_answer,
)
from triunely_arena.models import Drill, Exhibit, Grade, Reward, Verdict
from triunely_arena.rewards import compute_reward, score_from_grade

logger = logging.getLogger(__name__)

ANSWER_MODE = "evidence_selection_v2"
FEEDBACK_MODE = "arena_evidence_selection_v2"


class Step(IntEnum):
    CHARGE = 1
    EVIDENCE = 2
    CROSS_EXAM = 3
    VERDICT = 4

    @property
    def title(self) -> str:
        return STEP_META[self][0]

    @property
    def subtitle(self) -> str:
        return STEP_META[self][1]


STEP_META = {
    Step.CHARGE: ("Charge", "Hear the claim. Understand the target."),
    Step.EVIDENCE: ("Evidence", "Review their strongest exhibits and find the fault line."),
    Step.CROSS_EXAM: ("Cross-exam", "Select the best rebuttal exhibit (notes optional)."),
    Step.VERDICT: ("Verdict", "Get scored and claim rewards."),
}


class ArenaError(Exception):
    """Base class for arena errors shown to the user."""


class BoardLoadError(ArenaError):
    pass


class EvidenceGateLocked(ArenaError):
    def __init__(self):
        super().__init__("Open at least one opponent exhibit before continuing.")


class MissingDefenseSelection(ArenaError):
    def __init__(self):
        super().__init__("Choose the strongest defense exhibit before submitting.")


class GradingFailed(ArenaError):
    def __init__(self, error, status=None):
        self.error = error or "Unknown"
        self.status = status if status is not None else "unknown"
        super().__init__(f"Faith Coach grading failed: {self.error} (status: {self.status})")


class SaveFailed(ArenaError):
    def __init__(self, error):
        self.error = error or "Try again."
        super().__init__(f"Couldn't save: {self.error}")


@dataclass
class TransitionEvent:
    kind: str  # advance, back, reset, locked, verdict
    from_step: Step
    to_step: Step


@dataclass
class ArenaState:
    step: Step = Step.CHARGE
    opened: set = field(default_factory=set)
    selected_prosecution: str | None = None
    selected_defense: str | None = None
    fault_line: str | None = None
    notes: str = ""


@dataclass
class PendingSave:
    """A graded submission whose attempt has not been stored yet."""
    drill: Drill
    user_answer: str
    grade: Grade
    reward: Reward
    coach_feedback: dict


class ArenaSession:
    def __init__(self, db_path: str, grader, day_number_override=None, drills_limit: int = 5, drill_id=None):
        self.db_path = db_path
        self.grader = grader
        self.day_number_override = day_number_override
        self.drills_limit = drills_limit
        self.preferred_drill_id = drill_id

        self.board: Board | None = None
        self.drill: Drill | None = None
        self.state = ArenaState()
        self.prosecution_exhibits: list[Exhibit] = []
        self.defense_exhibits: list[Exhibit] = []
        self.fault_lines: list[str] = []
        self.verdict: Verdict | None = None
        self.pending_save: PendingSave | None = None
        self.busy = False
        self.reload_error: str | None = None
        self._listeners: list[Callable[[TransitionEvent], None]] = []

    # -- events --

    def subscribe(self, listener: Callable[[TransitionEvent], None]) -> None:
        self._listeners.append(listener)

    def _emit(self, kind: str, from_step: Step, to_step: Step) -> None:
        event = TransitionEvent(kind, from_step, to_step)
        for listener in list(self._listeners):
            listener(event)

    @property
    def step(self) -> Step:
        return self.state.step

    def _move_to(self, step: Step, kind: str) -> None:
        previous = self.state.step
        self.state.step = step
        self._emit(kind, previous, step)

    # -- board --

    def _reload_board(self) -> Board:
        board = load_board(self.db_path, self.day_number_override, self.drills_limit)
        if not board.ok:
            raise BoardLoadError(board.error or "Failed to load apologetics.")
        self.board = board
        self.reload_error = None
        return board

    def load(self) -> Board:
        """Load the board and open the preferred drill (or the next uncompleted one)."""
        board = self._reload_board()
        chosen = board.choose_drill(self.preferred_drill_id)
        self.reset_for_drill(chosen.id if chosen else None)
        return board

    def reset_for_drill(self, drill_id) -> None:
        """Switch to a drill and clear every selection made for the previous one."""
        previous = self.state.step
        self.drill = self.board.find_drill(drill_id) if self.board and drill_id is not None else None
        self.preferred_drill_id = self.drill.id if self.drill else None
        self.state = ArenaState()
        self.verdict = None
        self.pending_save = None

        study_pack = build_study_pack(self.drill)
        self.prosecution_exhibits = build_prosecution_exhibits(self.drill) if self.drill else []
        self.defense_exhibits = build_defense_exhibits(self.drill, study_pack) if self.drill else []
        self.fault_lines = build_fault_lines(self.drill) if self.drill else []
        self._emit("reset", previous, Step.CHARGE)

    @property
    def attempt(self):
        if not self.board or not self.drill:
            return None
        return self.board.attempt_for(self.drill.id)

    # -- exhibits --

    def find_exhibit(self, key: str) -> Exhibit | None:
        for exhibit in self.prosecution_exhibits + self.defense_exhibits:
            if exhibit.key == key:
                return exhibit
        return None

    def mark_opened(self, key: str) -> None:
        if key:
            self.state.opened.add(key)

    def select_best(self, exhibit: Exhibit) -> None:
        if not exhibit or not exhibit.key:
            return
        if exhibit.side == PROSECUTION:
            self.state.selected_prosecution = exhibit.key
        elif exhibit.side == DEFENSE:
            self.state.selected_defense = exhibit.key

    def open_exhibit(self, exhibit: Exhibit) -> None:
        """Reading an exhibit also picks it as the best one on its side."""
        if not exhibit or not exhibit.key:
            return
        self.mark_opened(exhibit.key)
        self.select_best(exhibit)

    def select_fault_line(self, fault_line: str | None) -> None:
        self.state.fault_line = fault_line or None

    def set_notes(self, notes: str | None) -> None:
        self.state.notes = notes or ""

    def opened_opponent_count(self) -> int:
        return sum(1 for e in self.prosecution_exhibits if e.key in self.state.opened)

    # -- steps --

    def can_advance_from_evidence(self) -> bool:
        # Selecting without opening never counts.
        return any(e.key in self.state.opened for e in self.prosecution_exhibits)

    def next_step(self) -> Step:
        step = self.state.step
        if step == Step.CHARGE:
            self._move_to(Step.EVIDENCE, "advance")
        elif step == Step.EVIDENCE:
            if not self.can_advance_from_evidence():
                self._emit("locked", step, step)
                raise EvidenceGateLocked()
            self._move_to(Step.CROSS_EXAM, "advance")
        return self.state.step

    def prev_step(self) -> Step:
        step = self.state.step
        if step > Step.CHARGE:
            self._move_to(Step(step - 1), "back")
        return self.state.step

    # -- submission --

    def _selected(self, key, exhibits) -> Exhibit | None:
        if not key:
            return None
        return next((e for e in exhibits if e.key == key), None)

    def compose_answer(self) -> str:
        prosecution = self._selected(self.state.selected_prosecution, self.prosecution_exhibits)
        defense = self._selected(self.state.selected_defense, self.defense_exhibits)
        notes = self.state.notes.strip()
        return "\n".join([
            f"ARENA_MODE: {ANSWER_MODE}",
            f"CLAIM: {(self.drill.prompt if self.drill else '').strip()}",
            f"SELECTED_OPPONENT_EXHIBIT: {prosecution.title if prosecution else '(none)'}",
            f"OPENED_OPPONENT_EXHIBITS: {self.opened_opponent_count()}",
            f"FAULT_LINE: {self.state.fault_line or '(not selected)'}",
            f"SELECTED_DEFENSE_EXHIBIT: {defense.title if defense else '(unknown)'}",
            f"NOTES: {notes or '(none)'}",
        ])

    def coach_feedback(self, grade: Grade) -> dict:
        return {
            "mode": FEEDBACK_MODE,
            "prosecution_selected_key": self.state.selected_prosecution,
            "defense_selected_key": self.state.selected_defense,
            "fault_line_selected": self.state.fault_line,
            "opened_opponent_exhibits": self.opened_opponent_count(),
            "read_map": {key: True for key in sorted(self.state.opened)},
            "notes_provided": bool(self.state.notes.strip()),
            "suggested_answer": build_suggested_answer(self.drill),
            "grade": grade.raw,
        }

    def submit(self) -> Verdict | None:
        """Grade the cross-examination and record the attempt.

        Returns None when a submission is already running.
        """
        if self.busy:
            return None
        if self.drill is None:
            raise ArenaError("No drill is active.")
        if self.state.step != Step.CROSS_EXAM:
            raise ArenaError("Submit is only available during cross-examination.")
        if not self.state.selected_defense:
            raise MissingDefenseSelection()

        drill = self.drill
        user_answer = self.compose_answer()
        self.busy = True
        try:
            if self.reload_error:
                # Rewards must be computed from a board that reflects the last save.
                self._reload_board()
            result = self.grader.grade(drill, user_answer)
            if not result.ok:
                logger.warning(f"Grading drill {drill.id} failed: {result.error} (status {result.status})")
                raise GradingFailed(result.error, result.status)

            self.pending_save = PendingSave(
                drill=drill,
                user_answer=user_answer,
                grade=result.grade or Grade(),
                reward=compute_reward(drill, self.attempt),
                coach_feedback=self.coach_feedback(result.grade or Grade()),
            )
            return self._persist()
        finally:
            self.busy = False

    def retry_save(self) -> Verdict:
        """Store a graded submission whose save failed, without grading it again."""
        if self.pending_save is None:
            raise ArenaError("Nothing to save.")
        if self.busy:
            raise ArenaError("A submission is already in progress.")
        self.busy = True
        try:
            return self._persist()
        finally:
            self.busy = False

    def _persist(self) -> Verdict:
        pending = self.pending_save
        score = score_from_grade(pending.grade)
        res = upsert_attempt(
            self.db_path,
            drill_id=pending.drill.id,
            user_answer=pending.user_answer,
            used_faith_coach=True,
            completed=True,
            score=score,
            xp_earned=pending.reward.xp,
            light_points_earned=pending.reward.light_points,
            coach_feedback=pending.coach_feedback,
        )
        if not res.ok:
            raise SaveFailed(res.error)

        self.pending_save = None
        self.verdict = Verdict(drill_id=pending.drill.id, score=score, grade=pending.grade, reward=pending.reward)
        try:
            self._reload_board()
        except BoardLoadError as e:
            self.reload_error = str(e)
            logger.warning(f"Attempt for drill {pending.drill.id} saved but the board reload failed: {e}")
        logger.info(
            f"Drill {pending.drill.id} scored {score}: +{pending.reward.xp} XP, +{pending.reward.light_points} LP"
        )
        self._move_to(Step.VERDICT, "verdict")
        return self.verdict

    def start_next_drill(self) -> Drill | None:
        """From the verdict, open the next uncompleted drill at step one."""
        if self.reload_error:
            self._reload_board()
        nxt = self.board.next_drill() if self.board else None
        self.reset_for_drill(nxt.id if nxt else None)
        return self.drill
