"""Exhibit and fault-line resolution for a drill.

Seeded content on the drill always wins. When a drill carries none, a
default set is picked from the bundled fallback content by the drill's
``fallback_variant``.
"""
import json
import re
from functools import lru_cache
from pathlib import Path

from triunely_arena.models import Drill, Exhibit

CONTENT_DIR = Path(__file__).parent / "content"

PROSECUTION = "prosecution"
DEFENSE = "defense"

MAX_SEEDED_PROSECUTION = 6
MAX_SEEDED_DEFENSE = 8
MAX_SYNTHESIZED_DEFENSE = 7
MAX_SEEDED_FAULT_LINES = 6
MAX_FALLBACK_FAULT_LINES = 4

VARIANTS = ("divinity_claim", "generic")


@lru_cache(maxsize=1)
def load_fallback_content() -> dict:
    return json.loads((CONTENT_DIR / "fallback_content.json").read_text(encoding="utf-8"))


def clamp_text(text, limit: int = 140) -> str:
    t = str(text or "").strip()
    if len(t) <= limit:
        return t
    return t[: limit - 1].strip() + "…"


def _slug(title) -> str:
    return re.sub(r"\s+", "-", str(title or "exhibit").lower())


def fallback_variant(drill: Drill | None) -> str:
    """Which fallback set to use. Rows without an explicit variant are sniffed from the prompt."""
    if drill is not None and drill.fallback_variant in VARIANTS:
        return drill.fallback_variant
    prompt = str(drill.prompt if drill else "").lower()
    if "never claimed" in prompt and "god" in prompt:
        return "divinity_claim"
    return "generic"


def _field(item: dict, *names, default=""):
    for name in names:
        value = item.get(name)
        if value:
            return value
    return default


def _to_exhibit(item: dict, idx: int, side: str, lane: str, seen: set, summarize: bool = False) -> Exhibit:
    prefix = "pros" if side == PROSECUTION else "def"
    label = "Opponent Exhibit" if side == PROSECUTION else "Defense Exhibit"
    title = str(item.get("title") or f"{label} {idx + 1}")
    base = str(item.get("key") or f"{prefix}-{idx}-{_slug(item.get('title'))}")
    key, n = base, idx
    while key in seen:
        key = f"{base}-{n}"
        n += 1
    seen.add(key)

    proof = _field(item, "proof", "summary")
    if summarize:
        summary = clamp_text(_field(item, "proof", "how_to_use", "howToUse"))
    else:
        summary = str(_field(item, "summary", "proof")).strip()
    refs = item.get("refs")
    return Exhibit(
        key=key,
        side=side,
        title=title,
        lane=lane,
        summary=summary,
        proof=proof,
        how_to_use=_field(item, "how_to_use", "howToUse"),
        muslim_angle=_field(item, "muslim_angle", "muslimAngle"),
        refs=tuple(refs) if isinstance(refs, list) else (),
    )


def _seeded(items) -> list:
    if not isinstance(items, list):
        return []
    return [x for x in items if x]


def build_prosecution_exhibits(drill: Drill | None) -> list[Exhibit]:
    seen = set()
    seeded = _seeded(drill.opponent_exhibits if drill else None)
    if seeded:
        items = seeded[:MAX_SEEDED_PROSECUTION]
    else:
        items = load_fallback_content()["prosecution"][fallback_variant(drill)]
    return [
        _to_exhibit(x if isinstance(x, dict) else {"title": str(x)}, idx, PROSECUTION, "Opponent Evidence", seen)
        for idx, x in enumerate(items)
    ]


def build_study_pack(drill: Drill | None) -> dict:
    pack = load_fallback_content()["study_pack"]
    opponent = str(drill.opponent_type if drill else "").lower()
    sources = pack["sources"]["muslim" if opponent == "muslim" else "generic"]
    return {"sources": sources, "moves": pack["moves"], "evidence": pack["evidence"]}


def build_defense_exhibits(drill: Drill | None, study_pack: dict | None = None) -> list[Exhibit]:
    seen = set()
    seeded = _seeded(drill.defense_exhibits if drill else None)
    if seeded:
        return [
            _to_exhibit(x if isinstance(x, dict) else {"title": str(x)}, idx, DEFENSE, "Defense Evidence", seen)
            for idx, x in enumerate(seeded[:MAX_SEEDED_DEFENSE])
        ]

    study_pack = study_pack if study_pack is not None else build_study_pack(drill)
    pool = (
        list(study_pack.get("evidence", []))
        + list(study_pack.get("sources", []))
        + list(study_pack.get("moves", []))
    )
    return [
        _to_exhibit(item, idx, DEFENSE, "Defense Evidence", seen, summarize=True)
        for idx, item in enumerate(pool[:MAX_SYNTHESIZED_DEFENSE])
    ]


def build_fault_lines(drill: Drill | None) -> list[str]:
    seeded = _seeded(drill.fault_lines if drill else None)
    if seeded:
        return [str(x) for x in seeded[:MAX_SEEDED_FAULT_LINES]]
    return list(load_fallback_content()["fault_lines"][fallback_variant(drill)][:MAX_FALLBACK_FAULT_LINES])


def build_suggested_answer(drill: Drill) -> str:
    lines = [
        "Suggested response (calm + clear):",
        "",
        "1) Acknowledge the question respectfully, then answer with clarity and confidence.",
        "",
        "2) Key points to include:",
    ]
    if drill.key_points:
        lines.extend(f"• {p}" for p in drill.key_points)
    else:
        lines.append("• (No key points seeded yet for this drill.)")
    lines.append("")
    lines.append("3) Scripture anchors:")
    if drill.scripture_refs:
        lines.append(" • ".join(drill.scripture_refs))
    else:
        lines.append("(No scripture refs seeded yet for this drill.)")
    return "\n".join(lines)
