"""
Story seeds: concrete, scenario-matched secrets NPCs can reveal.

Each seed has a witness who knows it and a subject it is about. The
witness carries the revelation; the subject never confesses unprompted.

Revelation pressure is driven by how many messages THIS NPC has sent in
the conversation, not the total, so participants don't all peak at once.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path

import yaml

from ..config import NARRATIVE_CONFIG
from ..prompts.templates import get_template_engine
from ..rules.emotions import seed_goal_for
from ..rules.relationships import StatusTone, classify_status
from ..state.narrative import get_rng
from ..state.schema import (
    PLAYER_ID,
    NPCProfile,
    NPCTier,
    PlaythroughProfile,
    RevelationDirective,
    SeedConflict,
    SeedSeverity,
    SeedType,
    StorySeed,
)

logger = logging.getLogger(__name__)

SEEDS_PATH = Path(__file__).parent.parent / "data" / "story_seeds.yaml"
GENERIC = "generic"


# ─── Scenario Detection ──────────────────────────────────────

# Checked in order; first family with a matching keyword wins
SCENARIO_KEYWORDS: list[tuple[str, tuple[str, ...]]] = [
    ("espionage", ("spy", "cia", "agent", "operative", "intelligence", "mi6",
                   "black widow", "assassin", "undercover")),
    ("underworld", ("mafia", "cartel", "gang", "crime", "dealer", "kingpin",
                    "underground", "trafficker", "mob")),
    ("corporate", ("ceo", "executive", "corporate", "lawyer", "banker",
                   "wall street", "business", "startup", "finance")),
    ("creative", ("actor", "actress", "musician", "artist", "writer",
                  "celebrity", "influencer", "model", "director")),
    ("domestic", ("parent", "spouse", "family", "homemaker", "caregiver", "teacher")),
]


def detect_scenario_category(profession: str, persona_type: str = "") -> str:
    text = f"{profession} {persona_type}".lower()
    for category, keywords in SCENARIO_KEYWORDS:
        if any(k in text for k in keywords):
            return category
    return GENERIC


# ─── Templates ───────────────────────────────────────────────

@dataclass(frozen=True)
class SeedTemplate:
    text: str
    player_is_subject: bool = False


@lru_cache(maxsize=None)
def _load_seed_templates(path: str) -> dict[str, dict[str, tuple[SeedTemplate, ...]]]:
    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}
    return {
        scenario: {
            family: tuple(SeedTemplate(**entry) for entry in entries)
            for family, entries in families.items()
        }
        for scenario, families in raw.items()
    }


def load_seed_templates(path: Path | str | None = None) -> dict[str, dict[str, tuple[SeedTemplate, ...]]]:
    """Seed templates keyed by scenario, then seed family."""
    return _load_seed_templates(str(path or SEEDS_PATH))


# Seed family -> stored seed type
SEED_TYPE_BY_FAMILY: dict[str, SeedType] = {
    "double_agent": SeedType.BETRAYAL,
    "blown_cover": SeedType.BETRAYAL,
    "fraud": SeedType.CRIME,
    "power": SeedType.CRIME,
    "scandal": SeedType.AFFAIR,
    "secrets": SeedType.SECRET,
    "crime": SeedType.CRIME,
    "affair": SeedType.AFFAIR,
    "betrayal": SeedType.BETRAYAL,
    "evidence": SeedType.EVIDENCE,
    "secret": SeedType.SECRET,
}

SEVERITY_BY_FAMILY: dict[str, SeedSeverity] = {
    "double_agent": SeedSeverity.EXPLOSIVE,
    "blown_cover": SeedSeverity.EXPLOSIVE,
    "fraud": SeedSeverity.EXPLOSIVE,
    "crime": SeedSeverity.MAJOR,
    "betrayal": SeedSeverity.MAJOR,
    "power": SeedSeverity.MAJOR,
    "scandal": SeedSeverity.MAJOR,
    "affair": SeedSeverity.MODERATE,
    "evidence": SeedSeverity.MODERATE,
}

SEVERITY_RANK: dict[SeedSeverity, int] = {
    SeedSeverity.EXPLOSIVE: 4,
    SeedSeverity.MAJOR: 3,
    SeedSeverity.MODERATE: 2,
    SeedSeverity.MINOR: 1,
}


def _severity_for(family: str, rng: random.Random) -> SeedSeverity:
    if family == "secret":
        return SeedSeverity.EXPLOSIVE if rng.random() > 0.5 else SeedSeverity.MAJOR
    return SEVERITY_BY_FAMILY.get(family, SeedSeverity.MODERATE)


# ─── Generation ──────────────────────────────────────────────

def generate_story_seeds(
    profile: PlaythroughProfile,
    seed_count: int = 8,
    rng: random.Random | None = None,
    config: dict | None = None,
    templates: dict[str, dict[str, tuple[SeedTemplate, ...]]] | None = None,
) -> list[StorySeed]:
    """
    Generate concrete secrets for a new playthrough.

    Needs at least two living, active NPCs. Witness and subject always
    differ, and the same (family, witness, subject) is never used twice,
    so fewer than seed_count seeds may come back.
    """
    cfg = (config or NARRATIVE_CONFIG)["seeds"]
    rng = get_rng(rng)
    templates = templates if templates is not None else load_seed_templates()

    npcs = profile.available_npcs()
    if len(npcs) < 2:
        return []

    scenario = detect_scenario_category(
        profile.scenario.profession,
        profile.scenario.persona_type,
    )
    generic = templates[GENERIC]
    scenario_templates = templates.get(scenario, generic)
    workplace = profile.scenario.workplace or "the office"

    seeds: list[StorySeed] = []
    used: set[tuple[str, str, str]] = set()

    for i in range(min(seed_count, cfg["max_count"])):
        use_scenario = scenario != GENERIC and rng.random() < cfg["scenario_template_chance"]
        pool = scenario_templates if use_scenario else generic

        family = rng.choice(list(pool))
        options = pool[family]
        if not options:
            continue
        template = rng.choice(options)

        witness = rng.choice(npcs)
        if template.player_is_subject:
            subject_id, subject_name = None, profile.name
        else:
            subject = rng.choice(npcs)
            attempts = 0
            while subject.id == witness.id and attempts < cfg["max_subject_attempts"]:
                subject = rng.choice(npcs)
                attempts += 1
            if subject.id == witness.id:
                continue
            subject_id, subject_name = subject.id, subject.name

        key = (family, witness.id, subject_id or PLAYER_ID)
        if key in used:
            continue
        used.add(key)

        fact = (
            template.text
            .replace("{witness}", witness.name)
            .replace("{subject}", subject_name)
            .replace("{player}", profile.name)
            .replace("{workplace}", workplace)
        )

        known_by = [witness.id]
        if rng.random() < cfg["third_party_chance"]:
            third = next((n for n in npcs if n.id not in (witness.id, subject_id)), None)
            if third is not None:
                known_by.append(third.id)

        seeds.append(StorySeed(
            fact=fact,
            known_by=known_by,
            subject_id=subject_id,
            type=SEED_TYPE_BY_FAMILY.get(family, SeedType.SECRET),
            severity=_severity_for(family, rng),
            narrative_priority=i + 1,
        ))

    logger.debug(f"Generated {len(seeds)} story seeds ({scenario} scenario)")
    return seeds


# ─── Revelation Directives ───────────────────────────────────

@dataclass
class RevelationOptions:
    """Conversation context for revelation pressure."""
    npc_message_count: int                   # Messages THIS NPC has sent
    total_message_count: int = 0
    major_revealed_this_round: bool = False  # Another NPC already dropped a bombshell
    already_revealed_seed_ids: list[str] = field(default_factory=list)


def _conversation_goal(
    npc: NPCProfile,
    others: list[NPCProfile],
    rng: random.Random,
) -> str:
    goals = [seed_goal_for(npc.emotions)]
    if others and classify_status(npc.relationship_status) in (StatusTone.TENSE, StatusTone.HOSTILE):
        target = rng.choice(others)
        goals.append(f"You have unfinished business with {target.name}. Address it directly.")
    return " ".join(goals)


def _conflicts(
    npc: NPCProfile,
    others: list[NPCProfile],
    seeds: list[StorySeed],
    profile: PlaythroughProfile,
    limit: int,
) -> list[SeedConflict]:
    conflicts: list[SeedConflict] = []
    for other in others[:limit]:
        connecting = next((
            s for s in seeds
            if (npc.id in s.known_by and other.name in s.fact)
            or (other.id in s.known_by and npc.name in s.fact)
        ), None)

        if connecting is not None:
            if npc.id in connecting.known_by:
                text = f"You know something damaging about {other.name}. Use it as leverage."
            else:
                text = f"{other.name} knows something about you. Find out what and neutralize them."
            conflicts.append(SeedConflict(npc_name=other.name, conflict=text))
        elif npc.tier == NPCTier.CORE and other.tier == NPCTier.CORE:
            conflicts.append(SeedConflict(
                npc_name=other.name,
                conflict=f"You and {other.name} are competing for {profile.name}'s attention/loyalty.",
            ))
    return conflicts


def select_revelation_for_npc(
    npc: NPCProfile,
    all_npcs: list[NPCProfile],
    seeds: list[StorySeed],
    options: RevelationOptions | int,
    profile: PlaythroughProfile,
    rng: random.Random | None = None,
    config: dict | None = None,
) -> RevelationDirective:
    """
    Decide what an NPC must reveal in the current conversation.

    Pressure by the NPC's own message count:
    - another participant already made a major reveal: hint only
    - 4+ messages: reveal the most severe known seed now
    - 2-3 messages: reveal the top-priority seed soon
    - 1 message in a conversation of 4+: start hinting
    """
    full_cfg = config or NARRATIVE_CONFIG
    cfg = full_cfg["revelation"]
    rng = get_rng(rng)
    if isinstance(options, int):
        options = RevelationOptions(npc_message_count=options, total_message_count=options)

    known = sorted(
        (
            s for s in seeds
            if npc.id in s.known_by
            and not s.revealed_to_player
            and s.id not in options.already_revealed_seed_ids
        ),
        key=lambda s: s.narrative_priority,
    )

    must_reveal: str | None = None
    reveal_after = cfg["never"]
    own = options.npc_message_count

    if known:
        if options.major_revealed_this_round:
            must_reveal, reveal_after = known[0].fact, cfg["hint_countdown"]
        elif own >= cfg["force_at"]:
            # Stable sort keeps priority order among equal severities
            top = max(known, key=lambda s: SEVERITY_RANK[s.severity])
            must_reveal, reveal_after = top.fact, 0
        elif own >= cfg["soon_at"]:
            must_reveal, reveal_after = known[0].fact, cfg["soon_countdown"]
        elif own >= 1 and options.total_message_count >= cfg["late_total_min"]:
            must_reveal, reveal_after = known[0].fact, cfg["late_countdown"]

    others = [n for n in all_npcs if n.id != npc.id]
    return RevelationDirective(
        npc_id=npc.id,
        must_reveal=must_reveal,
        reveal_after_messages=reveal_after,
        conversation_goal=_conversation_goal(npc, others, rng),
        conflicts=_conflicts(npc, others, seeds, profile, full_cfg["seeds"]["max_conflicts"]),
    )


def build_revelation_prompt(
    directive: RevelationDirective,
    message_count: int,
    engine=None,
) -> str:
    """Prompt fragment placed at the end of an NPC's system prompt."""
    engine = engine or get_template_engine()
    return engine.render("revelation.txt.j2", {
        "directive": directive,
        "message_count": message_count,
        "remaining": directive.reveal_after_messages - message_count,
    })


# ─── Revelation Tracking ─────────────────────────────────────

def mark_seed_revealed(seeds: list[StorySeed], seed_id: str, revealed_to: str) -> list[StorySeed]:
    updated = []
    for seed in seeds:
        if seed.id == seed_id:
            seed = seed.model_copy(update={
                "revealed_to_player": seed.revealed_to_player or revealed_to == PLAYER_ID,
                "revealed_to": [*seed.revealed_to, revealed_to],
            })
        updated.append(seed)
    return updated


def detect_and_mark_revelation(
    message: str,
    npc_id: str,
    seeds: list[StorySeed],
    config: dict | None = None,
) -> tuple[StorySeed | None, list[StorySeed]]:
    """
    Check whether a message revealed one of the speaker's seeds.

    A seed counts as revealed when more than 30% of its words longer than
    four characters appear in the message.
    """
    ratio = (config or NARRATIVE_CONFIG)["revelation"]["seed_match_ratio"]
    text = message.lower()

    for seed in seeds:
        if npc_id not in seed.known_by or seed.revealed_to_player:
            continue
        words = [w for w in seed.fact.lower().split() if len(w) > 4]
        if not words:
            continue
        matched = sum(1 for w in words if w in text)
        if matched / len(words) > ratio:
            return seed, mark_seed_revealed(seeds, seed.id, PLAYER_ID)

    return None, seeds


NPC_DYNAMICS: list[str] = [
    "rivals for the same thing",
    "former allies now distrustful",
    "one owes the other a favor",
    "shared a secret that binds them",
    "one betrayed the other in the past",
    "competing for someone's affection",
    "one knows something the other desperately needs",
    "have history nobody else knows about",
]


def generate_npc_dynamics(
    npcs: list[NPCProfile],
    rng: random.Random | None = None,
) -> dict[str, dict[str, str]]:
    """A random dynamic for every ordered NPC pair."""
    rng = get_rng(rng)
    return {
        a.id: {b.id: rng.choice(NPC_DYNAMICS) for b in npcs if b.id != a.id}
        for a in npcs
    }
