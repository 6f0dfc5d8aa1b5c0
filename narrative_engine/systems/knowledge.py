"""
Knowledge graph for the narrative engine.

Tracks who knows which WorldFact, spreads facts along relationships,
manages suspicions, and picks what a character should reveal under
conversational pressure.

Pure function design: (state, args) -> new state.
Facts are referenced by id from NPCKnowledge, never nested.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass

from ..config import NARRATIVE_CONFIG
from ..state.narrative import (
    add_fact_to_npc_knowledge,
    add_world_fact,
    get_known_facts,
    get_relationship,
    get_rng,
)
from ..state.schema import (
    IMPORTANCE_RANK,
    PLAYER_ID,
    FactCategory,
    FactImportance,
    NarrativeState,
    StoryArc,
    StoryRole,
    Suspicion,
    Veracity,
    WorldFact,
)

logger = logging.getLogger(__name__)


# ─── Fact Creation ───────────────────────────────────────────

def create_npc_action_fact(
    state: NarrativeState,
    npc_id: str,
    npc_name: str,
    action: str,
    witnesses: list[str],
) -> tuple[NarrativeState, str]:
    """Record something an NPC did. Known by the actor and any witnesses."""
    knowers = [npc_id, *[w for w in witnesses if w != npc_id]]
    return add_world_fact(state, WorldFact(
        content=f"{npc_name} {action}",
        category=FactCategory.EVENT,
        importance=FactImportance.SIGNIFICANT,
        known_by=knowers,
        learned_when={k: state.current_day for k in knowers},
        can_spread=True,
        spread_probability=0.4,
        source="npc_action",
    ))


def create_secret_fact(
    state: NarrativeState,
    content: str,
    known_by: list[str],
    importance: FactImportance = FactImportance.MAJOR,
) -> tuple[NarrativeState, str]:
    """A secret known only to the given characters. Secrets do not spread on their own."""
    return add_world_fact(state, WorldFact(
        content=content,
        category=FactCategory.SECRET,
        importance=importance,
        known_by=list(known_by),
        learned_when={k: state.current_day for k in known_by},
        can_spread=False,
        spread_probability=0.0,
        source="story_arc",
    ))


def create_relationship_fact(
    state: NarrativeState,
    npc1_name: str,
    npc2_name: str,
    relationship: str,
    known_by: list[str],
) -> tuple[NarrativeState, str]:
    return add_world_fact(state, WorldFact(
        content=f"{npc1_name} and {npc2_name} {relationship}",
        category=FactCategory.RELATIONSHIP,
        importance=FactImportance.SIGNIFICANT,
        known_by=list(known_by),
        learned_when={k: state.current_day for k in known_by},
        can_spread=True,
        spread_probability=0.5,
        source="relationship",
    ))


# ─── Queries ─────────────────────────────────────────────────

def get_npc_facts(state: NarrativeState, npc_id: str) -> list[WorldFact]:
    return get_known_facts(state, npc_id)


def get_npc_secret_facts(state: NarrativeState, npc_id: str) -> list[WorldFact]:
    """Facts an NPC knows that the player doesn't."""
    return [f for f in get_npc_facts(state, npc_id) if PLAYER_ID not in f.known_by]


def get_facts_about(
    state: NarrativeState,
    knower_id: str,
    about_id: str,
    about_name: str,
) -> list[WorldFact]:
    """Facts one NPC knows that name another, or that the other also knows."""
    name = about_name.lower()
    return [
        f for f in get_npc_facts(state, knower_id)
        if name in f.content.lower() or about_id in f.known_by
    ]


def get_shared_facts(state: NarrativeState, npc_ids: list[str]) -> list[WorldFact]:
    """Facts every listed NPC knows."""
    if not npc_ids:
        return []

    def fact_ids(npc_id: str) -> list[str]:
        knowledge = state.npc_knowledge.get(npc_id)
        return knowledge.facts if knowledge else []

    shared = fact_ids(npc_ids[0])
    for npc_id in npc_ids[1:]:
        others = set(fact_ids(npc_id))
        shared = [fid for fid in shared if fid in others]

    by_id = {f.id: f for f in state.world_facts}
    return [by_id[fid] for fid in shared if fid in by_id]


def _is_dangerous(fact: WorldFact) -> bool:
    return fact.category == FactCategory.SECRET or fact.importance in (
        FactImportance.MAJOR,
        FactImportance.CRITICAL,
    )


def get_conflicting_facts(
    state: NarrativeState,
    npc1_id: str,
    npc2_id: str,
    npc1_name: str,
    npc2_name: str,
) -> list[WorldFact]:
    """
    Facts either NPC holds about the other that could cause trouble:
    secrets, or major/critical facts naming the other.
    """
    conflicting: list[WorldFact] = []
    seen: set[str] = set()

    for knower, other_name in ((npc1_id, npc2_name), (npc2_id, npc1_name)):
        other = other_name.lower()
        for fact in get_npc_facts(state, knower):
            if fact.id in seen:
                continue
            if other in fact.content.lower() and _is_dangerous(fact):
                conflicting.append(fact)
                seen.add(fact.id)

    return conflicting


# ─── Propagation ─────────────────────────────────────────────

def spread_chance(fact: WorldFact, trust: float, affection: float, config: dict | None = None) -> float:
    cfg = (config or NARRATIVE_CONFIG)["propagation"]
    chance = fact.spread_probability

    if trust > cfg["high_trust"]:
        chance *= cfg["high_trust_multiplier"]
    elif trust < cfg["low_trust"]:
        chance *= cfg["low_trust_multiplier"]

    if affection > cfg["high_affection"]:
        chance *= cfg["high_affection_multiplier"]

    if fact.category == FactCategory.SECRET:
        chance *= cfg["secret_multiplier"]

    return chance


def propagate_knowledge(
    state: NarrativeState,
    rng: random.Random | None = None,
    config: dict | None = None,
) -> NarrativeState:
    """
    Spread facts between NPCs along relationships.

    Only knowers at the start of the pass spread; NPCs who learn a fact
    during this pass pass it on next time. The player never spreads.
    """
    rng = get_rng(rng)
    new_state = state

    for fact in state.world_facts:
        if not fact.can_spread or fact.spread_probability <= 0:
            continue

        for knower_id in fact.known_by:
            if knower_id == PLAYER_ID:
                continue

            for target_id in state.npc_knowledge:
                if target_id == knower_id or target_id in fact.known_by:
                    continue

                rel = get_relationship(state, knower_id, target_id)
                if rel is None:
                    continue

                chance = spread_chance(fact, rel.metrics.trust, rel.metrics.affection, config)
                if rng.random() < chance:
                    before = new_state
                    new_state = add_fact_to_npc_knowledge(new_state, target_id, fact.id)
                    if new_state is not before:
                        logger.debug(f"Fact {fact.id[:8]} spread {knower_id} -> {target_id}")

    return new_state


def reveal_fact_to_player(state: NarrativeState, fact_id: str) -> NarrativeState:
    fact = state.get_fact(fact_id)
    if fact is None or PLAYER_ID in fact.known_by:
        return state

    revealed = fact.model_copy(update={
        "known_by": [*fact.known_by, PLAYER_ID],
        "learned_when": {**fact.learned_when, PLAYER_ID: state.current_day},
    })
    return state.model_copy(update={
        "world_facts": [revealed if f.id == fact_id else f for f in state.world_facts],
    })


# ─── Suspicions ──────────────────────────────────────────────

def _clamp_confidence(value: float) -> float:
    return max(0.0, min(100.0, value))


def _with_suspicions(state: NarrativeState, npc_id: str, suspicions: list[Suspicion]) -> NarrativeState:
    knowledge = state.npc_knowledge[npc_id]
    return state.model_copy(update={
        "npc_knowledge": {
            **state.npc_knowledge,
            npc_id: knowledge.model_copy(update={"suspicions": suspicions}),
        },
    })


def add_suspicion(
    state: NarrativeState,
    npc_id: str,
    about: str,
    content: str,
    confidence: float,
    evidence: list[str] | None = None,
) -> NarrativeState:
    knowledge = state.npc_knowledge.get(npc_id)
    if knowledge is None:
        return state

    suspicion = Suspicion(
        about=about,
        content=content,
        confidence=_clamp_confidence(confidence),
        evidence=list(evidence or []),
        day_formed=state.current_day,
    )
    return _with_suspicions(state, npc_id, [*knowledge.suspicions, suspicion])


def update_suspicion(
    state: NarrativeState,
    npc_id: str,
    suspicion_id: str,
    confidence_change: float,
    new_evidence: str | None = None,
) -> NarrativeState:
    knowledge = state.npc_knowledge.get(npc_id)
    if knowledge is None:
        return state

    suspicions = []
    for s in knowledge.suspicions:
        if s.id == suspicion_id:
            s = s.model_copy(update={
                "confidence": _clamp_confidence(s.confidence + confidence_change),
                "evidence": [*s.evidence, new_evidence] if new_evidence else list(s.evidence),
            })
        suspicions.append(s)
    return _with_suspicions(state, npc_id, suspicions)


CONFIRM_THRESHOLD = 80


def confirm_suspicion(state: NarrativeState, npc_id: str, suspicion_id: str) -> NarrativeState:
    """
    Turn a high-confidence suspicion into a known (partially true) secret.

    Requires confidence >= 80; otherwise the state is returned unchanged.
    """
    knowledge = state.npc_knowledge.get(npc_id)
    if knowledge is None:
        return state

    suspicion = next((s for s in knowledge.suspicions if s.id == suspicion_id), None)
    if suspicion is None or suspicion.confidence < CONFIRM_THRESHOLD:
        return state

    new_state, fact_id = add_world_fact(state, WorldFact(
        content=suspicion.content,
        category=FactCategory.SECRET,
        importance=FactImportance.MAJOR,
        known_by=[npc_id],
        learned_when={npc_id: state.current_day},
        related_facts=list(suspicion.evidence),
        source="confirmed_suspicion",
        veracity=Veracity.PARTIALLY_TRUE,
    ))
    new_state = add_fact_to_npc_knowledge(new_state, npc_id, fact_id)

    remaining = [s for s in new_state.npc_knowledge[npc_id].suspicions if s.id != suspicion_id]
    return _with_suspicions(new_state, npc_id, remaining)


# ─── Arc Integration ─────────────────────────────────────────

def generate_role_facts(
    state: NarrativeState,
    arc: StoryArc,
    npc_names: dict[str, str],
) -> NarrativeState:
    """
    Seed the secrets implied by an arc's roles.

    The antagonist knows they are involved, a witness has seen something,
    and an enabler shares the full truth with the antagonist.
    """
    antagonist = arc.holder_of(StoryRole.ANTAGONIST)
    witness = arc.holder_of(StoryRole.WITNESS)
    enabler = arc.holder_of(StoryRole.ENABLER)
    new_state = state

    def name(npc_id: str) -> str:
        return npc_names.get(npc_id, npc_id)

    if antagonist:
        new_state, fid = create_secret_fact(
            new_state,
            f"{name(antagonist)} is involved in {arc.title}",
            [antagonist],
            FactImportance.CRITICAL,
        )
        new_state = add_fact_to_npc_knowledge(new_state, antagonist, fid, is_secret=True)

    if witness and antagonist:
        new_state, fid = create_secret_fact(
            new_state,
            f"{name(witness)} has seen something suspicious involving {name(antagonist)}",
            [witness],
            FactImportance.MAJOR,
        )
        new_state = add_fact_to_npc_knowledge(new_state, witness, fid)

    if enabler and antagonist:
        new_state, fid = create_secret_fact(
            new_state,
            f"{name(enabler)} is helping {name(antagonist)} with their scheme",
            [enabler, antagonist],
            FactImportance.CRITICAL,
        )
        new_state = add_fact_to_npc_knowledge(new_state, enabler, fid, is_secret=True)
        new_state = add_fact_to_npc_knowledge(new_state, antagonist, fid, is_secret=True)

    return new_state


# ─── Revelation Selection ────────────────────────────────────

@dataclass
class RevelationChoice:
    fact_id: str
    content: str


def revelation_threshold(message_count: int, global_tension: float, config: dict | None = None) -> float:
    cfg = (config or NARRATIVE_CONFIG)["revelation"]
    threshold = cfg["base_threshold"]
    for min_messages, value in cfg["message_thresholds"]:
        if message_count >= min_messages:
            threshold = value
            break
    return threshold + global_tension / 200


def select_revelation(
    state: NarrativeState,
    npc_id: str,
    message_count: int,
    other_npc_ids: list[str],
    rng: random.Random | None = None,
    exclude: set[str] | None = None,
    config: dict | None = None,
) -> RevelationChoice | None:
    """
    Pick the fact an NPC should reveal, if pressure is high enough.

    Candidates are facts the NPC knows and the player doesn't, minus any
    in `exclude` (facts already revealed in the scene). Ranked by importance,
    with a bonus when another participant also knows the fact.
    """
    cfg = (config or NARRATIVE_CONFIG)["revelation"]
    rng = get_rng(rng)
    exclude = exclude or set()

    candidates = [f for f in get_npc_secret_facts(state, npc_id) if f.id not in exclude]
    if not candidates:
        return None

    def score(fact: WorldFact) -> int:
        relevance = any(
            other in fact.known_by
            or fact.id in getattr(state.npc_knowledge.get(other), "facts", [])
            for other in other_npc_ids
        )
        return IMPORTANCE_RANK.get(fact.importance, 0) + (cfg["shared_bonus"] if relevance else 0)

    ranked = sorted(candidates, key=score, reverse=True)

    if rng.random() < revelation_threshold(message_count, state.global_tension, config):
        return RevelationChoice(fact_id=ranked[0].id, content=ranked[0].content)
    return None


def get_group_chat_revelations(
    state: NarrativeState,
    participant_ids: list[str],
    message_count: int,
    rng: random.Random | None = None,
    exclude: set[str] | None = None,
) -> dict[str, RevelationChoice | None]:
    rng = get_rng(rng)
    return {
        npc_id: select_revelation(
            state,
            npc_id,
            message_count,
            [p for p in participant_ids if p != npc_id],
            rng=rng,
            exclude=exclude,
        )
        for npc_id in participant_ids
    }
