"""
Group conversation dynamics.

When several NPCs share a scene, each gets an agenda: goals, who they are
in conflict with, who they might ally with, an optional fact they must
reveal, and a strategy. Tense groups can spawn emergent arcs. Messages
update the scene's tension and revealed-fact set.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from enum import Enum

from ..config import NARRATIVE_CONFIG
from ..prompts.templates import get_template_engine
from ..rules.emotions import choose_strategy, group_goals_for
from ..state.narrative import _touch, calculate_tension, get_relationship, get_rng
from ..state.schema import (
    ConversationAgenda,
    ConversationStrategy,
    GroupAlliance,
    GroupConversationState,
    NarrativeState,
    PlaythroughProfile,
    StoryArcType,
    StoryRole,
)
from .arcs import apply_generated_arc, generate_emergent_arc
from .knowledge import get_conflicting_facts, get_shared_facts, select_revelation

logger = logging.getLogger(__name__)


def group_id_for(participant_ids: list[str]) -> str:
    return "group-" + "-".join(sorted(participant_ids))


# ─── Analysis ────────────────────────────────────────────────

class ConflictType(str, Enum):
    RIVALRY = "rivalry"
    DISTRUST = "distrust"
    RESENTMENT = "resentment"
    SECRET = "secret"


@dataclass
class GroupConflict:
    npc1_id: str
    npc2_id: str
    type: ConflictType
    intensity: float
    description: str

    def other(self, npc_id: str) -> str:
        return self.npc2_id if self.npc1_id == npc_id else self.npc1_id

    def involves(self, npc_id: str) -> bool:
        return npc_id in (self.npc1_id, self.npc2_id)


def _pairs(ids: list[str]):
    for i, first in enumerate(ids):
        for second in ids[i + 1:]:
            yield first, second


def analyze_group_conflicts(
    state: NarrativeState,
    participant_ids: list[str],
    profile: PlaythroughProfile,
    config: dict | None = None,
) -> list[GroupConflict]:
    """Pairwise conflicts from relationship metrics and dangerous shared facts."""
    th = (config or NARRATIVE_CONFIG)["group"]["thresholds"]
    conflicts: list[GroupConflict] = []

    for a_id, b_id in _pairs(participant_ids):
        a, b = profile.get_npc(a_id), profile.get_npc(b_id)
        if a is None or b is None:
            continue
        ab = get_relationship(state, a_id, b_id)
        ba = get_relationship(state, b_id, a_id)
        if ab is None or ba is None:
            continue

        if ab.metrics.rivalry > th["rivalry_conflict"] or ba.metrics.rivalry > th["rivalry_conflict"]:
            conflicts.append(GroupConflict(
                a_id, b_id, ConflictType.RIVALRY,
                max(ab.metrics.rivalry, ba.metrics.rivalry),
                f"{a.name} and {b.name} are competing for something",
            ))

        if ab.metrics.trust < th["trust_conflict"] or ba.metrics.trust < th["trust_conflict"]:
            conflicts.append(GroupConflict(
                a_id, b_id, ConflictType.DISTRUST,
                100 - min(ab.metrics.trust, ba.metrics.trust),
                f"{a.name} and {b.name} don't trust each other",
            ))

        secrets = get_conflicting_facts(state, a_id, b_id, a.name, b.name)
        if secrets:
            conflicts.append(GroupConflict(
                a_id, b_id, ConflictType.SECRET,
                len(secrets) * 25,
                f"There are secrets between {a.name} and {b.name}",
            ))

        if ab.metrics.affection < th["affection_conflict"] or ba.metrics.affection < th["affection_conflict"]:
            conflicts.append(GroupConflict(
                a_id, b_id, ConflictType.RESENTMENT,
                100 - min(ab.metrics.affection, ba.metrics.affection),
                f"{a.name} and {b.name} have negative feelings",
            ))

    return conflicts


def analyze_shared_knowledge(
    state: NarrativeState,
    participant_ids: list[str],
) -> dict[str, list[str]]:
    """Fact id -> participants who know it, for facts all participants share."""
    return {
        fact.id: [k for k in fact.known_by if k in participant_ids]
        for fact in get_shared_facts(state, participant_ids)
    }


def analyze_potential_alliances(
    state: NarrativeState,
    participant_ids: list[str],
    config: dict | None = None,
) -> list[GroupAlliance]:
    th = (config or NARRATIVE_CONFIG)["group"]["thresholds"]
    alliances: list[GroupAlliance] = []

    for a_id, b_id in _pairs(participant_ids):
        ab = get_relationship(state, a_id, b_id)
        ba = get_relationship(state, b_id, a_id)
        if ab is None or ba is None:
            continue

        avg_trust = (ab.metrics.trust + ba.metrics.trust) / 2
        avg_affection = (ab.metrics.affection + ba.metrics.affection) / 2
        if avg_trust > th["ally_trust"] and avg_affection > th["ally_affection"]:
            alliances.append(GroupAlliance(npc1_id=a_id, npc2_id=b_id, strength=(avg_trust + avg_affection) / 2))

    return alliances


def calculate_group_tension(
    state: NarrativeState,
    participant_ids: list[str],
    config: dict | None = None,
) -> float:
    """Mean pairwise tension averaged with global tension."""
    tensions = [calculate_tension(state, a, b, config) for a, b in _pairs(participant_ids)]
    pair_avg = sum(tensions) / len(tensions) if tensions else 0.0
    return (pair_avg + state.global_tension) / 2


# ─── Agendas ─────────────────────────────────────────────────

ROLE_GOALS: dict[StoryRole, str] = {
    StoryRole.ANTAGONIST: "Advance your scheme without raising suspicion",
    StoryRole.WITNESS: "Decide whether to reveal what you know",
    StoryRole.VICTIM: "Understand what's been happening to you",
}

CONFLICT_GOALS: dict[ConflictType, str] = {
    ConflictType.RIVALRY: "Assert dominance over {name}",
    ConflictType.DISTRUST: "Watch {name} for signs of betrayal",
    ConflictType.SECRET: "Probe {name} about what they know",
    ConflictType.RESENTMENT: "Make {name} feel your displeasure",
}

DEFAULT_GOAL = "Engage in the conversation and gather information"
UNKNOWN_NPC_GOAL = "Observe and gather information"


def _agenda_goals(
    state: NarrativeState,
    npc_id: str,
    emotions,
    conflicts: list[GroupConflict],
    profile: PlaythroughProfile,
) -> list[str]:
    goals = group_goals_for(emotions)

    for conflict in conflicts[:2]:
        other = profile.get_npc(conflict.other(npc_id))
        if other is not None:
            goals.append(CONFLICT_GOALS[conflict.type].format(name=other.name))

    for arc in state.active_arcs:
        if npc_id in arc.participants:
            role_goal = ROLE_GOALS.get(arc.roles.get(npc_id))
            if role_goal:
                goals.append(role_goal)
            break

    return goals or [DEFAULT_GOAL]


def generate_conversation_agenda(
    state: NarrativeState,
    npc_id: str,
    participant_ids: list[str],
    profile: PlaythroughProfile,
    conflicts: list[GroupConflict],
    rng: random.Random | None = None,
    revealed: set[str] | None = None,
    config: dict | None = None,
) -> ConversationAgenda:
    cfg = config or NARRATIVE_CONFIG
    group_cfg = cfg["group"]
    rng = get_rng(rng)

    npc = profile.get_npc(npc_id)
    if npc is None:
        return ConversationAgenda(npc_id=npc_id, goals=[UNKNOWN_NPC_GOAL])

    others = [p for p in participant_ids if p != npc_id]
    mine = [c for c in conflicts if c.involves(npc_id)]

    allies = []
    for other in others:
        rel = get_relationship(state, npc_id, other)
        if (
            rel is not None
            and rel.metrics.trust > group_cfg["thresholds"]["ally_trust"]
            and rel.metrics.affection > group_cfg["thresholds"]["ally_affection"]
        ):
            allies.append(other)

    emotions = npc.emotions
    revelation = select_revelation(state, npc_id, 0, others, rng=rng, exclude=revealed, config=cfg)

    return ConversationAgenda(
        npc_id=npc_id,
        goals=_agenda_goals(state, npc_id, emotions, mine, profile),
        must_reveal=revelation.fact_id if revelation else None,
        reveal_after_messages=(
            rng.randint(group_cfg["reveal_after_min"], group_cfg["reveal_after_max"])
            if revelation else cfg["revelation"]["never"]
        ),
        conflicts_with=[c.other(npc_id) for c in mine],
        allied_with=allies,
        current_strategy=choose_strategy(emotions, len(mine), len(allies)),
    )


# ─── Emergent Arcs ───────────────────────────────────────────

def check_for_emergent_arcs(
    state: NarrativeState,
    participant_ids: list[str],
    profile: PlaythroughProfile,
    rng: random.Random | None = None,
    config: dict | None = None,
) -> tuple[NarrativeState, list[str]]:
    """
    Maybe spawn arcs from this group. Returns the new state and the ids
    of arcs created.
    """
    cfg = config or NARRATIVE_CONFIG
    group_cfg = cfg["group"]
    rng = get_rng(rng)

    if len(state.active_arcs) >= group_cfg["max_active_arcs"]:
        return state, []

    candidates: list[list[str]] = []
    if (
        calculate_group_tension(state, participant_ids, cfg) > group_cfg["high_tension"]
        and rng.random() < group_cfg["high_tension_arc_chance"]
    ):
        candidates.append(list(participant_ids))

    for a_id, b_id in _pairs(participant_ids):
        a, b = profile.get_npc(a_id), profile.get_npc(b_id)
        if a is None or b is None:
            continue
        secrets = get_conflicting_facts(state, a_id, b_id, a.name, b.name)
        if len(secrets) >= group_cfg["conflicting_facts_min"] and rng.random() < group_cfg["conflict_arc_chance"]:
            candidates.append([a_id, b_id])

    new_state = state
    created: list[str] = []
    for npc_ids in candidates:
        generated = generate_emergent_arc(npc_ids, new_state, profile, rng, config=cfg)
        if generated is None:
            continue
        generated.arc = generated.arc.model_copy(update={"type": StoryArcType.EMERGENT})
        new_state = apply_generated_arc(new_state, generated, profile)
        created.append(generated.arc.id)
        logger.debug(f"Emergent arc {generated.arc.id} from {', '.join(npc_ids)}")

    return new_state, created


# ─── Scene Lifecycle ─────────────────────────────────────────

def initialize_group_conversation(
    state: NarrativeState,
    participant_ids: list[str],
    profile: PlaythroughProfile,
    rng: random.Random | None = None,
    config: dict | None = None,
) -> tuple[NarrativeState, GroupConversationState]:
    """
    Start a multi-NPC scene.

    Agendas are built against the state before any emergent arc is added;
    the group's tension is likewise measured on the incoming state.
    """
    cfg = config or NARRATIVE_CONFIG
    rng = get_rng(rng)
    group_id = group_id_for(participant_ids)

    conflicts = analyze_group_conflicts(state, participant_ids, profile, cfg)
    shared_facts = analyze_shared_knowledge(state, participant_ids)
    alliances = analyze_potential_alliances(state, participant_ids, cfg)
    agendas = [
        generate_conversation_agenda(state, npc_id, participant_ids, profile, conflicts, rng, config=cfg)
        for npc_id in participant_ids
    ]
    tension = calculate_group_tension(state, participant_ids, cfg)

    new_state, emergent = check_for_emergent_arcs(state, participant_ids, profile, rng, cfg)

    group = GroupConversationState(
        group_id=group_id,
        participant_ids=list(participant_ids),
        agendas=agendas,
        shared_facts=shared_facts,
        alliances=alliances,
        emergent_arcs=emergent,
        tension_level=tension,
    )
    conversations = {**new_state.active_group_conversations, group_id: group}
    return _touch(new_state, active_group_conversations=conversations), group


def _message_tension_delta(message: str, config: dict) -> float:
    text = message.lower()
    delta = 0.0
    for category in config["group"]["message_tension"].values():
        if any(k in text for k in category["keywords"]):
            delta += category["delta"]
    return delta


def _reveals(fact_content: str, message: str, config: dict) -> bool:
    group_cfg = config["group"]
    text = message.lower()
    matched = [
        w for w in fact_content.lower().split(" ")
        if len(w) >= group_cfg["reveal_word_min_length"] and w in text
    ]
    return len(matched) >= group_cfg["reveal_word_matches"]


def update_group_conversation(
    state: NarrativeState,
    group_id: str,
    speaker_npc_id: str,
    message: str,
    config: dict | None = None,
) -> NarrativeState:
    """
    Fold one NPC message into the scene.

    Once the speaker's countdown has passed, their must-reveal fact counts
    as revealed if enough of its key words appear in the message. A
    revealed fact is cleared from every participant's agenda.
    """
    cfg = config or NARRATIVE_CONFIG
    group = state.active_group_conversations.get(group_id)
    if group is None:
        return state

    message_count = group.message_count + 1
    revealed = list(group.revealed_facts)

    speaker = group.get_agenda(speaker_npc_id)
    if speaker is not None and speaker.must_reveal and message_count >= speaker.reveal_after_messages:
        fact = state.get_fact(speaker.must_reveal)
        if fact is not None and _reveals(fact.content, message, cfg):
            revealed.append(fact.id)
            logger.debug(f"{speaker_npc_id} revealed {fact.id} in {group_id}")

    agendas = [
        a.model_copy(update={"must_reveal": None}) if a.must_reveal in revealed else a
        for a in group.agendas
    ]
    tension = max(0.0, min(100.0, group.tension_level + _message_tension_delta(message, cfg)))

    updated = group.model_copy(update={
        "message_count": message_count,
        "agendas": agendas,
        "revealed_facts": revealed,
        "tension_level": tension,
    })
    conversations = {**state.active_group_conversations, group_id: updated}
    return _touch(state, active_group_conversations=conversations)


def get_npc_agenda(
    state: NarrativeState,
    group_id: str,
    npc_id: str,
) -> ConversationAgenda | None:
    group = state.active_group_conversations.get(group_id)
    return group.get_agenda(npc_id) if group else None


def end_group_conversation(state: NarrativeState, group_id: str) -> NarrativeState:
    if group_id not in state.active_group_conversations:
        return state
    conversations = {
        gid: g for gid, g in state.active_group_conversations.items() if gid != group_id
    }
    return _touch(state, active_group_conversations=conversations)


# ─── Prompt ──────────────────────────────────────────────────

STRATEGY_TEXT: dict[ConversationStrategy, str] = {
    ConversationStrategy.AGGRESSIVE: "Be confrontational. Push for answers. Don't back down.",
    ConversationStrategy.DEFENSIVE: "Protect yourself. Deflect questions. Don't reveal too much.",
    ConversationStrategy.MANIPULATIVE: "Play people against each other. Use information strategically.",
    ConversationStrategy.SUPPORTIVE: "Build alliances. Support your friends. Unite against threats.",
    ConversationStrategy.NEUTRAL: "Observe and react. Gather information before committing.",
}


def build_group_dynamics_prompt(
    state: NarrativeState,
    group_id: str,
    npc_id: str,
    profile: PlaythroughProfile,
    engine=None,
) -> str:
    """Agenda section for one NPC's group-chat system prompt, or "" if none."""
    group = state.active_group_conversations.get(group_id)
    if group is None:
        return ""
    agenda = group.get_agenda(npc_id)
    if agenda is None or profile.get_npc(npc_id) is None:
        return ""

    def names(ids: list[str]) -> list[str]:
        return [n.name for n in (profile.get_npc(i) for i in ids) if n is not None]

    reveal_fact = None
    urgency = None
    if agenda.must_reveal and group.message_count >= agenda.reveal_after_messages - 2:
        reveal_fact = state.get_fact(agenda.must_reveal)
        urgency = "NOW" if group.message_count >= agenda.reveal_after_messages else "SOON"

    engine = engine or get_template_engine()
    return engine.render("group_dynamics.txt.j2", {
        "goals": agenda.goals,
        "conflict_names": names(agenda.conflicts_with),
        "ally_names": names(agenda.allied_with),
        "reveal_fact": reveal_fact,
        "urgency": urgency,
        "strategy_text": STRATEGY_TEXT[agenda.current_strategy],
        "tension": group.tension_level,
    })
