"""
Player action tracking.

Classifies what the player said or did, records it, and applies the
immediate fallout: relationship shifts toward the player, facts for
witnesses, pending consequences, story beats the action sets off, and
a global tension nudge.
"""

from __future__ import annotations

import logging
import random
from datetime import datetime

from ..config import NARRATIVE_CONFIG
from ..state.narrative import (
    add_fact_to_npc_knowledge,
    add_pending_consequence,
    add_player_action,
    add_timeline_event,
    add_world_fact,
    get_rng,
    round_half_up,
    trigger_beat,
    update_global_tension,
    update_relationship,
)
from ..state.schema import (
    PLAYER_ID,
    ActionImpact,
    ActionSource,
    ConsequenceType,
    EventSource,
    FactCategory,
    FactImportance,
    NarrativeState,
    PendingConsequence,
    PlayerAction,
    PlayerActionType,
    PlaythroughProfile,
    StoryBeat,
    StoryBeatType,
    TimelineEvent,
    TimelineEventType,
    TriggerType,
    Veracity,
    Visibility,
    WorldFact,
)

logger = logging.getLogger(__name__)


# ─── Classification ──────────────────────────────────────────

# Checked in order; first family with a matching phrase wins
ACTION_KEYWORDS: list[tuple[PlayerActionType, tuple[str, ...]]] = [
    (PlayerActionType.VIOLENCE, (
        "kill", "attack", "hit", "punch", "stab", "murder", "shoot", "strangle",
    )),
    (PlayerActionType.ACCUSATION, (
        "accuse", "you did", "you stole", "you lied", "i know you", "you're hiding",
    )),
    (PlayerActionType.THREAT, (
        "i'll tell", "or else", "i'll expose", "threatening", "i'll make you",
    )),
    (PlayerActionType.CONFESSION, (
        "i admit", "i confess", "i did it", "it was me", "i'm sorry i", "i have to tell you",
    )),
    (PlayerActionType.LIE, ("i didn't", "i wasn't", "that's not true")),
    (PlayerActionType.SUPPORT, (
        "i'm here for you", "i support", "i believe you", "i'll help", "we'll get through",
    )),
    (PlayerActionType.REJECTION, (
        "leave me alone", "get out", "i don't want", "we're done", "stay away",
    )),
    (PlayerActionType.REVELATION, (
        "i need to tell you", "you should know", "the truth is", "i found out",
    )),
    (PlayerActionType.ALLIANCE, (
        "let's work together", "we should", "on my side", "i'm with you",
    )),
    (PlayerActionType.INVESTIGATION, (
        "what happened", "tell me about", "where were you", "who was",
    )),
]


def classify_action(content: str) -> PlayerActionType:
    text = content.lower()
    for action_type, phrases in ACTION_KEYWORDS:
        if any(p in text for p in phrases):
            return action_type
        if action_type == PlayerActionType.LIE and "trust me" in text:
            return action_type
    return PlayerActionType.CONVERSATION


IMPACT_BY_TYPE: dict[PlayerActionType, ActionImpact] = {
    PlayerActionType.VIOLENCE: ActionImpact.CRITICAL,
    PlayerActionType.BETRAYAL: ActionImpact.CRITICAL,
    PlayerActionType.CONFESSION: ActionImpact.MAJOR,
    PlayerActionType.REVELATION: ActionImpact.MAJOR,
    PlayerActionType.ACCUSATION: ActionImpact.MODERATE,
    PlayerActionType.THREAT: ActionImpact.MODERATE,
    PlayerActionType.ALLIANCE: ActionImpact.MODERATE,
    PlayerActionType.REJECTION: ActionImpact.MODERATE,
    PlayerActionType.DECISION: ActionImpact.MODERATE,
    PlayerActionType.LIE: ActionImpact.MINOR,
    PlayerActionType.SUPPORT: ActionImpact.MINOR,
    PlayerActionType.INVESTIGATION: ActionImpact.MINOR,
    PlayerActionType.GIFT: ActionImpact.MINOR,
    PlayerActionType.SILENCE: ActionImpact.TRIVIAL,
    PlayerActionType.CONVERSATION: ActionImpact.TRIVIAL,
}


def determine_impact(action_type: PlayerActionType) -> ActionImpact:
    return IMPACT_BY_TYPE.get(action_type, ActionImpact.TRIVIAL)


# First matching row wins
TONE_KEYWORDS: list[tuple[str, tuple[str, ...]]] = [
    ("loving", ("love", "care", "miss")),
    ("angry", ("hate", "angry", "furious")),
    ("apologetic", ("sorry", "apologize", "forgive")),
    ("fearful", ("scared", "afraid", "worried")),
    ("trusting", ("trust", "believe", "honest")),
    ("suspicious", ("suspicious", "don't trust")),
]


def infer_emotional_tone(content: str) -> str:
    text = content.lower()
    for tone, words in TONE_KEYWORDS:
        if any(w in text for w in words):
            return tone
    return "neutral"


def determine_witnesses(
    state: NarrativeState,
    target_npc_id: str | None,
    source: ActionSource,
    group_participants: list[str] | None = None,
    rng: random.Random | None = None,
    config: dict | None = None,
) -> list[str]:
    """
    Everyone in a group chat sees the action. Otherwise the target does,
    and occasionally one bystander.
    """
    cfg = (config or NARRATIVE_CONFIG)["actions"]
    rng = get_rng(rng)

    if source == ActionSource.GROUP_CHAT and group_participants:
        return list(group_participants)
    if target_npc_id is None:
        return []

    witnesses = [target_npc_id]
    if rng.random() < cfg["bystander_witness_chance"]:
        bystanders = [npc_id for npc_id in state.npc_knowledge if npc_id != target_npc_id]
        if bystanders:
            witnesses.append(rng.choice(bystanders))
    return witnesses


# ─── Effects ─────────────────────────────────────────────────

def _player_fact(
    state: NarrativeState,
    action: PlayerAction,
    content: str,
    importance: FactImportance,
    spread: float,
    veracity: Veracity = Veracity.TRUE,
    player_knows: bool = False,
) -> NarrativeState:
    knowers = ([PLAYER_ID] if player_knows else []) + list(action.witnesses)
    new_state, fact_id = add_world_fact(state, WorldFact(
        content=content,
        category=FactCategory.EVENT,
        importance=importance,
        known_by=knowers,
        learned_when={k: state.current_day for k in knowers},
        can_spread=True,
        spread_probability=spread,
        source="player_action",
        veracity=veracity,
    ))
    for witness_id in action.witnesses:
        new_state = add_fact_to_npc_knowledge(new_state, witness_id, fact_id)
    return new_state


def _violence(state: NarrativeState, action: PlayerAction, target_name: str, rng: random.Random) -> NarrativeState:
    new_state = update_relationship(state, action.target, PLAYER_ID, {
        "trust": -50, "affection": -40, "fear": 60, "respect": -30,
    }, f"Player attacked {target_name}")

    new_state = _player_fact(
        new_state, action, "The player attacked someone", FactImportance.CRITICAL, 0.8,
    )
    new_state = add_pending_consequence(new_state, PendingConsequence(
        source_action_id=action.id,
        description="NPCs react to the violence",
        target_npcs=list(action.witnesses),
        manifest_day=state.current_day + 1,
        severity=ActionImpact.CRITICAL,
        type=ConsequenceType.IMMEDIATE,
    ))

    for witness_id in action.witnesses:
        if witness_id != action.target:
            new_state = update_relationship(new_state, witness_id, PLAYER_ID, {
                "trust": -30, "fear": 40,
            }, "Witnessed player violence")
    return new_state


def _accusation(state: NarrativeState, action: PlayerAction, target_name: str, rng: random.Random) -> NarrativeState:
    new_state = update_relationship(state, action.target, PLAYER_ID, {
        "trust": -15, "affection": -10,
    }, "Player accused them")
    return update_relationship(new_state, PLAYER_ID, action.target, {
        "trust": -10,
    }, "Was accused by player")


def _confession(state: NarrativeState, action: PlayerAction, target_name: str, rng: random.Random) -> NarrativeState:
    new_state = update_relationship(state, action.target, PLAYER_ID, {
        "trust": 10, "respect": 5,
    }, "Player confessed something")
    return _player_fact(
        new_state, action, f"The player confessed: {action.content[:100]}",
        FactImportance.SIGNIFICANT, 0.5,
    )


def _revelation(state: NarrativeState, action: PlayerAction, target_name: str, rng: random.Random) -> NarrativeState:
    return _player_fact(
        state, action, f"Player revealed: {action.content[:100]}",
        FactImportance.SIGNIFICANT, 0.6, Veracity.UNKNOWN, player_knows=True,
    )


def _threat(state: NarrativeState, action: PlayerAction, target_name: str, rng: random.Random) -> NarrativeState:
    new_state = update_relationship(state, action.target, PLAYER_ID, {
        "trust": -20, "affection": -15, "fear": 30,
    }, "Player threatened them")
    return add_pending_consequence(new_state, PendingConsequence(
        source_action_id=action.id,
        description=f"{target_name} reacts to being threatened",
        target_npcs=[action.target],
        manifest_day=state.current_day + rng.randint(1, 3),
        severity=ActionImpact.MODERATE,
        type=ConsequenceType.DELAYED,
    ))


def _alliance(state: NarrativeState, action: PlayerAction, target_name: str, rng: random.Random) -> NarrativeState:
    new_state = update_relationship(state, action.target, PLAYER_ID, {
        "trust": 15, "affection": 10,
    }, "Formed alliance with player")
    return update_relationship(new_state, PLAYER_ID, action.target, {
        "trust": 15, "affection": 10,
    }, "Formed alliance")


def _betrayal(state: NarrativeState, action: PlayerAction, target_name: str, rng: random.Random) -> NarrativeState:
    new_state = update_relationship(state, action.target, PLAYER_ID, {
        "trust": -60, "affection": -40, "rivalry": 30,
    }, "Player betrayed them")
    return _player_fact(
        new_state, action, f"The player betrayed {target_name}", FactImportance.MAJOR, 0.9,
    )


def _support(state: NarrativeState, action: PlayerAction, target_name: str, rng: random.Random) -> NarrativeState:
    return update_relationship(state, action.target, PLAYER_ID, {
        "trust": 10, "affection": 15, "dependency": 5,
    }, "Player supported them")


def _rejection(state: NarrativeState, action: PlayerAction, target_name: str, rng: random.Random) -> NarrativeState:
    return update_relationship(state, action.target, PLAYER_ID, {
        "trust": -10, "affection": -20,
    }, "Player rejected them")


ACTION_EFFECTS = {
    PlayerActionType.VIOLENCE: _violence,
    PlayerActionType.ACCUSATION: _accusation,
    PlayerActionType.CONFESSION: _confession,
    PlayerActionType.REVELATION: _revelation,
    PlayerActionType.THREAT: _threat,
    PlayerActionType.ALLIANCE: _alliance,
    PlayerActionType.BETRAYAL: _betrayal,
    PlayerActionType.SUPPORT: _support,
    PlayerActionType.REJECTION: _rejection,
}

# Revelation needs no target; the rest act on one
UNTARGETED_EFFECTS = {PlayerActionType.REVELATION}


def process_action_effects(
    state: NarrativeState,
    action: PlayerAction,
    profile: PlaythroughProfile | None = None,
    rng: random.Random | None = None,
) -> NarrativeState:
    rng = get_rng(rng)
    new_state = state

    effect = ACTION_EFFECTS.get(action.type)
    if effect is not None and (action.target or action.type in UNTARGETED_EFFECTS):
        target_name = action.target or ""
        if profile is not None and action.target:
            npc = profile.get_npc(action.target)
            target_name = npc.name if npc else action.target
        new_state = effect(new_state, action, target_name, rng)

    if action.impact != ActionImpact.TRIVIAL:
        participants = [action.target] if action.target else []
        participants += [t for t in action.secondary_targets if t not in participants]
        new_state = add_timeline_event(new_state, TimelineEvent(
            day=action.day,
            timestamp=action.timestamp,
            type=TimelineEventType.PLAYER_ACTION,
            source=(
                EventSource.GROUP_CHAT if action.source == ActionSource.GROUP_CHAT
                else EventSource.SIMULATION if action.source == ActionSource.SIMULATION_CHOICE
                else EventSource.CHAT
            ),
            title=f"Player {action.type.value}",
            description=action.content,
            participants=participants,
            visibility=(
                Visibility.PRIVATE if action.type == PlayerActionType.VIOLENCE
                else Visibility.PUBLIC
            ),
        ))

    return new_state


# ─── Beat Triggers ───────────────────────────────────────────

# Action type -> (content keywords, beat types) that let it fire a beat
BEAT_TRIGGERS: dict[PlayerActionType, tuple[tuple[str, ...], tuple[StoryBeatType, ...]]] = {
    PlayerActionType.ACCUSATION: (("confront", "accuse"), (StoryBeatType.CONFRONTATION,)),
    PlayerActionType.REVELATION: (("reveal",), (StoryBeatType.REVELATION,)),
    PlayerActionType.VIOLENCE: (("attack", "violence"), ()),
    PlayerActionType.THREAT: (("threat", "intimidate"), ()),
    PlayerActionType.CONFESSION: (("confess", "admit"), ()),
}


def action_triggers_beat(action_type: PlayerActionType, beat: StoryBeat) -> bool:
    entry = BEAT_TRIGGERS.get(action_type)
    if entry is None:
        return False
    keywords, beat_types = entry
    content = beat.content.lower()
    return beat.type in beat_types or any(k in content for k in keywords)


def check_beat_triggers(state: NarrativeState, action: PlayerAction) -> tuple[NarrativeState, list[str]]:
    """Fire player-triggerable beats this action matches. Returns fired beat ids."""
    new_state = state
    fired: list[str] = []

    for arc in state.active_arcs:
        for beat in arc.beats:
            if beat.triggered or not beat.player_can_trigger:
                continue
            if beat.trigger_condition.type != TriggerType.PLAYER_ACTION:
                continue
            if not arc.prerequisites_met(beat):
                continue
            if action_triggers_beat(action.type, beat):
                new_state = trigger_beat(new_state, arc.id, beat.id)
                fired.append(beat.id)

    return new_state, fired


# ─── Tension ─────────────────────────────────────────────────

def calculate_tension_change(
    action_type: PlayerActionType,
    impact: ActionImpact,
    config: dict | None = None,
) -> int:
    """Base change for the action type scaled by impact, rounded half up."""
    cfg = (config or NARRATIVE_CONFIG)["actions"]
    raw = cfg["tension_base"].get(action_type.value, 0) * cfg["impact_multiplier"][impact.value]
    return round_half_up(raw)


# ─── Recording ───────────────────────────────────────────────

def record_player_action(
    state: NarrativeState,
    content: str,
    target_npc_id: str | None = None,
    source: ActionSource = ActionSource.CHAT,
    group_participants: list[str] | None = None,
    profile: PlaythroughProfile | None = None,
    action_type: PlayerActionType | None = None,
    rng: random.Random | None = None,
    config: dict | None = None,
) -> NarrativeState:
    """
    Record a player action and apply its immediate effects.

    The type is classified from the text unless given (action menus pass
    it explicitly, e.g. for betrayal or gifts).
    """
    rng = get_rng(rng)
    action_type = action_type or classify_action(content)
    impact = determine_impact(action_type)

    action = PlayerAction(
        type=action_type,
        day=state.current_day,
        timestamp=datetime.now(),
        source=source,
        target=target_npc_id,
        secondary_targets=[p for p in (group_participants or []) if p != target_npc_id],
        content=content,
        context=f"Day {state.current_day} interaction",
        witnesses=determine_witnesses(state, target_npc_id, source, group_participants, rng, config),
        impact=impact,
        emotional_tone=infer_emotional_tone(content),
    )

    new_state = process_action_effects(state, action, profile, rng)
    new_state, fired = check_beat_triggers(new_state, action)
    if fired:
        action = action.model_copy(update={"consequences_triggered": fired})
    new_state = add_player_action(new_state, action)

    change = calculate_tension_change(action_type, impact, config)
    if change:
        new_state = update_global_tension(new_state, change)

    logger.debug(f"Player {action_type.value} ({impact.value}) -> {target_npc_id}, tension {change:+d}")
    return new_state
