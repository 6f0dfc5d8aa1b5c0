"""
Narrative state store.

Creation, mutation and query of NarrativeState as pure functions.
Every mutator takes a state and returns a new one; the input is never
modified. Unknown ids are no-ops that return the state unchanged.
"""

from __future__ import annotations

import logging
import math
import random
from datetime import datetime

from ..config import NARRATIVE_CONFIG
from ..rules.relationships import apply_deltas, classify_history, infer_metrics
from .schema import (
    IMPORTANCE_RANK,
    PHASE_ORDER,
    PLAYER_ID,
    Difficulty,
    LearnedFact,
    NarrativeState,
    NPCKnowledge,
    NPCTier,
    PendingConsequence,
    PlayerAction,
    PlaythroughProfile,
    Relationship,
    RelationshipEvent,
    RelationshipMetrics,
    StoryArc,
    StoryBeat,
    StoryPhase,
    StorySeed,
    TimelineEvent,
    WorldFact,
)

logger = logging.getLogger(__name__)


def get_rng(rng: random.Random | None) -> random.Random:
    """Use the injected random source, or a fresh unseeded one."""
    return rng if rng is not None else random.Random()


def _touch(state: NarrativeState, **update) -> NarrativeState:
    update["last_updated"] = datetime.now()
    return state.model_copy(update=update)


# -----------------------------------------------------------------------------
# Creation
# -----------------------------------------------------------------------------

def _initial_relationships(
    profile: PlaythroughProfile,
    rng: random.Random,
    config: dict,
) -> list[Relationship]:
    rel_cfg = config["relationships"]
    npcs = [n for n in profile.npcs if not n.is_dead]
    relationships: list[Relationship] = []

    for npc in npcs:
        relationships.append(Relationship(
            from_id=PLAYER_ID,
            to_id=npc.id,
            metrics=infer_metrics(npc),
            status=npc.relationship_status,
            current_dynamic=f"{profile.name} and {npc.name} have a {npc.relationship_status} relationship",
        ))

        # NPCs may feel differently than the player realises
        npc_view = apply_deltas(infer_metrics(npc), {
            "trust": (rng.random() - 0.5) * rel_cfg["npc_player_trust_jitter"],
            "affection": (rng.random() - 0.5) * rel_cfg["npc_player_affection_jitter"],
        })
        relationships.append(Relationship(
            from_id=npc.id,
            to_id=PLAYER_ID,
            metrics=npc_view,
            status=npc.relationship_status,
            current_dynamic=f"{npc.name} views {profile.name} as their {npc.role.lower()}",
        ))

    variance = rel_cfg["npc_npc_variance"]
    for i, first in enumerate(npcs):
        for second in npcs[i + 1:]:
            for a, b in ((first, second), (second, first)):
                deltas = {
                    "trust": (rng.random() - 0.5) * variance,
                    "affection": (rng.random() - 0.5) * variance,
                }
                if first.tier == NPCTier.CORE and second.tier == NPCTier.CORE:
                    deltas["rivalry"] = rng.random() * rel_cfg["core_rivalry_max"]

                relationships.append(Relationship(
                    from_id=a.id,
                    to_id=b.id,
                    metrics=apply_deltas(RelationshipMetrics(), deltas),
                    status=f"acquaintances through {profile.name}",
                    current_dynamic=f"{a.name} knows {b.name} through {profile.name}",
                ))

    return relationships


def base_tension(difficulty: Difficulty | str, config: dict | None = None) -> float:
    table = (config or NARRATIVE_CONFIG)["base_tension"]
    key = difficulty.value if isinstance(difficulty, Difficulty) else str(difficulty)
    return table.get(key, table["fallback"])


def create_narrative_state(
    profile: PlaythroughProfile,
    rng: random.Random | None = None,
    config: dict | None = None,
) -> NarrativeState:
    """
    Create a fresh state for a playthrough.

    Arcs and seeds start empty; see systems.arcs.initialize_narrative for
    the fully seeded version.
    """
    cfg = config or NARRATIVE_CONFIG
    rng = get_rng(rng)

    knowledge = {
        npc.id: NPCKnowledge(npc_id=npc.id)
        for npc in profile.npcs
        if not npc.is_dead
    }

    return NarrativeState(
        identity_id=profile.id,
        difficulty=profile.difficulty,
        current_day=profile.current_day,
        npc_knowledge=knowledge,
        relationships=_initial_relationships(profile, rng, cfg),
        global_tension=base_tension(profile.difficulty, cfg),
    )


# -----------------------------------------------------------------------------
# Mutators
# -----------------------------------------------------------------------------

def add_timeline_event(state: NarrativeState, event: TimelineEvent) -> NarrativeState:
    return _touch(state, timeline=[*state.timeline, event])


def add_player_action(state: NarrativeState, action: PlayerAction) -> NarrativeState:
    return _touch(state, player_actions=[*state.player_actions, action])


def add_world_fact(state: NarrativeState, fact: WorldFact) -> tuple[NarrativeState, str]:
    """Append a fact. Returns the new state and the fact's id."""
    return _touch(state, world_facts=[*state.world_facts, fact]), fact.id


def add_fact_to_npc_knowledge(
    state: NarrativeState,
    npc_id: str,
    fact_id: str,
    is_secret: bool = False,
) -> NarrativeState:
    """
    Record that an NPC learned a fact.

    Also grows the fact's known_by set so both sides of the index agree.
    """
    knowledge = state.npc_knowledge.get(npc_id)
    if knowledge is None or fact_id in knowledge.facts:
        return state

    updated = knowledge.model_copy(update={
        "facts": [*knowledge.facts, fact_id],
        "recent_learned": [
            *knowledge.recent_learned,
            LearnedFact(fact_id=fact_id, day=state.current_day),
        ],
        "secrets": [*knowledge.secrets, fact_id] if is_secret else list(knowledge.secrets),
    })

    facts = [
        _with_knower(f, npc_id, state.current_day) if f.id == fact_id else f
        for f in state.world_facts
    ]

    return _touch(
        state,
        npc_knowledge={**state.npc_knowledge, npc_id: updated},
        world_facts=facts,
    )


def _with_knower(fact: WorldFact, knower_id: str, day: int) -> WorldFact:
    if knower_id in fact.known_by:
        return fact
    return fact.model_copy(update={
        "known_by": [*fact.known_by, knower_id],
        "learned_when": {**fact.learned_when, knower_id: day},
    })


def update_relationship(
    state: NarrativeState,
    from_id: str,
    to_id: str,
    changes: dict[str, float],
    description: str | None = None,
) -> NarrativeState:
    """
    Apply a partial metric delta to one directed relationship.

    Metrics are clamped to their bounds. A history entry is appended only
    when a description is given.
    """
    if get_relationship(state, from_id, to_id) is None:
        return state

    relationships = []
    for rel in state.relationships:
        if rel.from_id == from_id and rel.to_id == to_id:
            history = list(rel.history)
            if description:
                history.append(RelationshipEvent(
                    day=state.current_day,
                    type=classify_history(changes),
                    description=description,
                    impact_on_metrics=dict(changes),
                ))
            rel = rel.model_copy(update={
                "metrics": apply_deltas(rel.metrics, changes),
                "history": history,
            })
        relationships.append(rel)

    return _touch(state, relationships=relationships)


def add_story_arc(state: NarrativeState, arc: StoryArc) -> NarrativeState:
    return _touch(state, active_arcs=[*state.active_arcs, arc])


def _replace_arc(state: NarrativeState, arc: StoryArc) -> NarrativeState:
    return _touch(state, active_arcs=[
        arc if a.id == arc.id else a for a in state.active_arcs
    ])


def progress_arc_phase(state: NarrativeState, arc_id: str) -> NarrativeState:
    """Move an arc one phase forward. Aftermath is terminal."""
    arc = state.get_arc(arc_id)
    if arc is None or arc.phase == StoryPhase.AFTERMATH:
        return state

    next_phase = PHASE_ORDER[PHASE_ORDER.index(arc.phase) + 1]
    logger.info(f"Arc {arc.title} advanced: {arc.phase.value} -> {next_phase.value}")
    return _replace_arc(state, arc.model_copy(update={"phase": next_phase}))


def complete_arc(state: NarrativeState, arc_id: str) -> NarrativeState:
    arc = state.get_arc(arc_id)
    if arc is None:
        return state

    done = arc.model_copy(update={
        "is_active": False,
        "resolved_day": state.current_day,
    })
    logger.info(f"Arc completed: {arc.title} (day {state.current_day})")
    return _touch(
        state,
        active_arcs=[a for a in state.active_arcs if a.id != arc_id],
        completed_arcs=[*state.completed_arcs, done],
    )


def trigger_beat(state: NarrativeState, arc_id: str, beat_id: str) -> NarrativeState:
    """Mark a beat triggered on the current day. Already-triggered beats are left alone."""
    arc = state.get_arc(arc_id)
    if arc is None:
        return state
    beat = arc.get_beat(beat_id)
    if beat is None or beat.triggered:
        return state

    fired = beat.model_copy(update={"triggered": True, "triggered_day": state.current_day})
    logger.debug(f"Beat fired: {beat.title}")
    return _replace_arc(state, arc.model_copy(update={
        "beats": [fired if b.id == beat_id else b for b in arc.beats],
    }))


def add_pending_consequence(
    state: NarrativeState,
    consequence: PendingConsequence,
) -> NarrativeState:
    return _touch(state, pending_consequences=[*state.pending_consequences, consequence])


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves toward +infinity (4.5 -> 5, -0.5 -> 0)."""
    return math.floor(value + 0.5)


def update_global_tension(state: NarrativeState, change: float) -> NarrativeState:
    return _touch(state, global_tension=max(0, min(100, state.global_tension + change)))


def advance_day(state: NarrativeState, new_day: int) -> NarrativeState:
    return _touch(state, current_day=new_day)


def add_story_seeds(state: NarrativeState, seeds: list[StorySeed]) -> NarrativeState:
    return _touch(state, story_seeds=[*state.story_seeds, *seeds])


# -----------------------------------------------------------------------------
# Queries
# -----------------------------------------------------------------------------

def get_relationship(state: NarrativeState, from_id: str, to_id: str) -> Relationship | None:
    for rel in state.relationships:
        if rel.from_id == from_id and rel.to_id == to_id:
            return rel
    return None


def get_known_facts(state: NarrativeState, npc_id: str) -> list[WorldFact]:
    knowledge = state.npc_knowledge.get(npc_id)
    if knowledge is None:
        return []
    by_id = {f.id: f for f in state.world_facts}
    return [by_id[fid] for fid in knowledge.facts if fid in by_id]


def get_revealable_facts(state: NarrativeState, npc_id: str) -> list[WorldFact]:
    """Facts the NPC knows that the player does not."""
    return [f for f in get_known_facts(state, npc_id) if PLAYER_ID not in f.known_by]


def get_arcs_for_npc(state: NarrativeState, npc_id: str) -> list[StoryArc]:
    return [a for a in state.active_arcs if npc_id in a.participants]


def get_pending_beats(state: NarrativeState) -> list[tuple[StoryArc, StoryBeat]]:
    """Untriggered beats whose prerequisites have all fired."""
    pending = []
    for arc in state.active_arcs:
        for beat in arc.beats:
            if not beat.triggered and arc.prerequisites_met(beat):
                pending.append((arc, beat))
    return pending


def get_events_for_day(state: NarrativeState, day: int) -> list[TimelineEvent]:
    return [e for e in state.timeline if e.day == day]


def get_recent_events(state: NarrativeState, days: int = 3) -> list[TimelineEvent]:
    cutoff = state.current_day - days
    return [e for e in state.timeline if e.day >= cutoff]


def calculate_tension(
    state: NarrativeState,
    npc1_id: str,
    npc2_id: str,
    config: dict | None = None,
) -> float:
    """
    Pairwise tension from both directions of a relationship.

    (100 - avg trust) * 0.4 + avg rivalry * 0.4 + avg fear * 0.2,
    clamped to 0-100. Returns the neutral default when either direction
    is missing.
    """
    weights = (config or NARRATIVE_CONFIG)["tension"]
    forward = get_relationship(state, npc1_id, npc2_id)
    backward = get_relationship(state, npc2_id, npc1_id)
    if forward is None or backward is None:
        return float(weights["undefined_pair"])

    avg_trust = (forward.metrics.trust + backward.metrics.trust) / 2
    avg_rivalry = (forward.metrics.rivalry + backward.metrics.rivalry) / 2
    avg_fear = (forward.metrics.fear + backward.metrics.fear) / 2

    tension = (
        (100 - avg_trust) * weights["trust_weight"]
        + avg_rivalry * weights["rivalry_weight"]
        + avg_fear * weights["fear_weight"]
    )
    return max(0.0, min(100.0, tension))


# -----------------------------------------------------------------------------
# Summaries (prompt context)
# -----------------------------------------------------------------------------

def get_narrative_summary(state: NarrativeState) -> dict:
    return {
        "active_arcs": len(state.active_arcs),
        "completed_arcs": len(state.completed_arcs),
        "world_facts": len(state.world_facts),
        "player_actions": len(state.player_actions),
        "timeline_events": len(state.timeline),
        "global_tension": state.global_tension,
        "current_themes": list(state.current_themes),
    }


def get_active_story_summary(state: NarrativeState, npc_id: str) -> str | None:
    """One-line story context for an NPC's chat prompt, or None if uninvolved."""
    arcs = [a for a in get_arcs_for_npc(state, npc_id) if a.is_active]
    if not arcs:
        return None

    arc = arcs[0]
    triggered = [b for b in arc.beats if b.triggered]
    upcoming = next((b for b in arc.beats if not b.triggered), None)

    summary = f'Story: "{arc.title}" ({arc.phase.value} phase)'
    if triggered:
        summary += f" - Recent: {triggered[-1].content}"
    if upcoming:
        summary += f" - Building toward: {upcoming.content}"
    return summary


def get_relevant_facts_for_npc(state: NarrativeState, npc_id: str, limit: int = 5) -> list[str]:
    """Content of the NPC's most important known facts."""
    facts = sorted(
        get_known_facts(state, npc_id),
        key=lambda f: IMPORTANCE_RANK.get(f.importance, 0),
        reverse=True,
    )
    return [f.content for f in facts[:limit]]
