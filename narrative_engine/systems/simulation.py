"""
Simulation directives and result processing.

Before a time jump the engine builds a SimulationDirective: beats that
must happen, beats that may happen, what each NPC is up to off-screen,
consequences coming due, world guidance, and a tension target. The
caller turns it into a prompt, runs the external completion, parses the
reply into a SimulationResult, and hands it back here.

Result processing is purely structural. No text is generated.
"""

from __future__ import annotations

import logging
import random
from datetime import datetime

from ..config import NARRATIVE_CONFIG
from ..prompts.templates import get_template_engine
from ..rules.emotions import offscreen_agenda_for
from ..state.narrative import (
    _touch,
    add_timeline_event,
    complete_arc,
    get_relationship,
    get_rng,
    progress_arc_phase,
    round_half_up,
    trigger_beat,
    update_global_tension,
    update_relationship,
)
from ..state.schema import (
    PLAYER_ID,
    Difficulty,
    EventSource,
    NarrativeState,
    NPCAgenda,
    NPCChange,
    NPCChangeType,
    NPCTier,
    PendingConsequence,
    PlaythroughProfile,
    SimulationDirective,
    SimulationEvent,
    SimulationResult,
    StoryArc,
    StoryArcType,
    StoryBeat,
    StoryPhase,
    StoryRole,
    TimelineEvent,
    TimelineEventType,
    TriggerType,
    Visibility,
)
from .knowledge import propagate_knowledge

logger = logging.getLogger(__name__)


# ─── Beats ───────────────────────────────────────────────────

def _as_int(value, default: int) -> int:
    try:
        return int(value) if value is not None else default
    except (TypeError, ValueError):
        return default


def get_mandatory_beats(
    state: NarrativeState,
    target_day: int,
    config: dict | None = None,
) -> list[StoryBeat]:
    """
    Beats whose prerequisites have fired and whose day or tension trigger
    is satisfied by the target day. Heaviest first.
    """
    cfg = (config or NARRATIVE_CONFIG)["simulation"]
    mandatory: list[StoryBeat] = []

    for arc in state.active_arcs:
        for beat in arc.beats:
            if beat.triggered or not arc.prerequisites_met(beat):
                continue

            trigger = beat.trigger_condition
            if trigger.type == TriggerType.DAY:
                offset = _as_int(trigger.value, cfg["day_trigger_default"])
                if target_day >= arc.start_day + offset:
                    mandatory.append(beat)
            elif trigger.type == TriggerType.TENSION_THRESHOLD:
                threshold = _as_int(trigger.value, cfg["tension_trigger_default"])
                if arc.tension >= threshold:
                    mandatory.append(beat)

    return sorted(mandatory, key=lambda b: b.narrative_weight, reverse=True)


def get_possible_beats(
    state: NarrativeState,
    rng: random.Random | None = None,
    config: dict | None = None,
) -> list[StoryBeat]:
    """NPC-triggerable random beats that pass their probability roll."""
    cfg = (config or NARRATIVE_CONFIG)["simulation"]
    rng = get_rng(rng)
    possible: list[StoryBeat] = []

    for arc in state.active_arcs:
        for beat in arc.beats:
            if beat.triggered or not beat.npc_can_trigger or not arc.prerequisites_met(beat):
                continue
            if beat.trigger_condition.type != TriggerType.RANDOM:
                continue
            probability = beat.trigger_condition.probability or cfg["possible_default_probability"]
            if rng.random() < probability:
                possible.append(beat)

    return possible


# ─── NPC Agendas ─────────────────────────────────────────────

# Arc role -> (goal template, will-do lines)
ROLE_AGENDAS: dict[StoryRole, tuple[str, list[str]]] = {
    StoryRole.ANTAGONIST: ("Continue {title} scheme", [
        "Take actions to advance their plan",
        "Cover their tracks",
    ]),
    StoryRole.WITNESS: ("Decide what to do about {title}", [
        "Gather more information",
        "Consider who to trust",
    ]),
    StoryRole.VICTIM: ("Deal with consequences of {title}", [
        "Seek support from others",
    ]),
    StoryRole.ENABLER: ("Support the {title} scheme", [
        "Assist the antagonist",
        "Keep secrets",
    ]),
    StoryRole.MANIPULATOR: ("Use {title} for personal gain", [
        "Play both sides",
    ]),
}

DEFAULT_AGENDA_GOALS = ["Go about daily routine", "Maintain relationships"]


def _role_agenda(npc_id: str, arcs: list[StoryArc]) -> tuple[list[str], list[str]]:
    goals: list[str] = []
    will_do: list[str] = []
    for arc in arcs:
        entry = ROLE_AGENDAS.get(arc.roles.get(npc_id))
        if entry is None:
            continue
        goal, actions = entry
        goals.append(goal.format(title=arc.title))
        will_do.extend(actions)
    return goals, will_do


def _player_priorities(state: NarrativeState, npc_id: str) -> list[str]:
    rel = get_relationship(state, npc_id, PLAYER_ID)
    if rel is None:
        return []

    priorities = []
    if rel.metrics.trust < 30:
        priorities.append("Be cautious around the player")
    if rel.metrics.fear > 50:
        priorities.append("Avoid the player or seek protection")
    if rel.metrics.affection > 70:
        priorities.append("Support and protect the player")
    return priorities


def _focus_for(tier: NPCTier, arcs: list[StoryArc]) -> str:
    if tier == NPCTier.CORE:
        return f"Focused on {arcs[0].title}" if arcs else "Managing important matters"
    if tier == NPCTier.SECONDARY:
        return "Balancing work and personal life"
    return "Daily activities"


def generate_npc_agendas(
    state: NarrativeState,
    profile: PlaythroughProfile | None = None,
) -> list[NPCAgenda]:
    """
    Off-screen agendas for a time jump.

    With a profile, every living active NPC gets one, informed by arc
    role, emotional state and how they feel about the player. Without a
    profile, agendas cover NPCs with knowledge records and use arc roles only.
    """
    agendas: list[NPCAgenda] = []

    if profile is None:
        for npc_id in state.npc_knowledge:
            arcs = [a for a in state.active_arcs if npc_id in a.participants]
            goals, will_do = _role_agenda(npc_id, arcs)
            agendas.append(NPCAgenda(
                npc_id=npc_id,
                goals=goals or DEFAULT_AGENDA_GOALS[:1],
                will_do=will_do,
                current_focus=f"Involved in {arcs[0].title}" if arcs else "Daily activities",
            ))
        return agendas

    for npc in profile.available_npcs():
        arcs = [a for a in state.active_arcs if npc.id in a.participants]
        goals, will_do = _role_agenda(npc.id, arcs)

        fragment = offscreen_agenda_for(npc.emotions)
        goals.extend(fragment.goals)
        will_do.extend(fragment.will_do)

        agendas.append(NPCAgenda(
            npc_id=npc.id,
            goals=goals or list(DEFAULT_AGENDA_GOALS),
            priorities=_player_priorities(state, npc.id),
            will_do=will_do,
            wont_do=list(fragment.wont_do),
            current_focus=_focus_for(npc.tier, arcs),
        ))

    return agendas


# ─── Guidance ────────────────────────────────────────────────

METER_GUIDANCE: dict[str, str] = {
    "family_harmony": "Family tensions should escalate",
    "career_standing": "Work problems should compound",
    "mental_health": "Mental health struggles should manifest",
    "wealth": "Financial pressures should increase",
    "reputation": "Social standing should deteriorate",
}

DIFFICULTY_GUIDANCE: dict[Difficulty, list[str]] = {
    Difficulty.CRAZY: [
        "Extreme events are acceptable",
        "Multiple crises can occur simultaneously",
    ],
    Difficulty.DRAMATIC: ["Dramatic revelations and confrontations encouraged"],
    Difficulty.REALISTIC: ["Keep events grounded and believable"],
}


def generate_world_guidance(
    state: NarrativeState,
    profile: PlaythroughProfile | None = None,
    config: dict | None = None,
) -> list[str]:
    cfg = (config or NARRATIVE_CONFIG)["simulation"]
    guidance: list[str] = []

    if profile is not None:
        for meter, line in METER_GUIDANCE.items():
            if getattr(profile.meters, meter) < cfg["low_meter"]:
                guidance.append(line)

    for arc in state.active_arcs:
        if arc.phase == StoryPhase.RISING:
            guidance.append(f"{arc.title}: Tension should build toward climax")
        elif arc.phase == StoryPhase.CLIMAX:
            guidance.append(f"{arc.title}: Major confrontation or revelation expected")

    if state.global_tension > 70:
        guidance.append("High tension environment - conflicts likely to erupt")
    elif state.global_tension > 50:
        guidance.append("Moderate tension - minor conflicts possible")

    if profile is not None:
        guidance.extend(DIFFICULTY_GUIDANCE.get(profile.difficulty, []))

    return guidance


def calculate_tension_target(
    state: NarrativeState,
    jump_days: int,
    config: dict | None = None,
) -> float:
    """current + 2/day, adjusted per arc phase, clamped to 10-95."""
    cfg = (config or NARRATIVE_CONFIG)["simulation"]
    target = state.global_tension + jump_days * cfg["tension_per_day"]

    for arc in state.active_arcs:
        if arc.phase == StoryPhase.RISING:
            target += cfg["rising_bonus"]
        elif arc.phase == StoryPhase.CLIMAX:
            target += cfg["climax_bonus"]
        elif arc.phase == StoryPhase.RESOLUTION:
            target += cfg["resolution_penalty"]

    return max(cfg["target_min"], min(cfg["target_max"], target))


def identify_focus_arcs(state: NarrativeState, config: dict | None = None) -> list[str]:
    """Climax and hot rising arcs first, then main arcs. At most three."""
    cfg = (config or NARRATIVE_CONFIG)["simulation"]
    prioritized = [
        arc.id for arc in state.active_arcs
        if arc.phase == StoryPhase.CLIMAX
        or (arc.phase == StoryPhase.RISING and arc.tension > cfg["focus_tension"])
    ]
    main = [
        arc.id for arc in state.active_arcs
        if arc.type == StoryArcType.MAIN and arc.id not in prioritized
    ]
    return (prioritized + main)[:cfg["max_focus_arcs"]]


def get_manifesting_consequences(state: NarrativeState, target_day: int) -> list[PendingConsequence]:
    return [c for c in state.pending_consequences if c.manifest_day <= target_day]


def generate_simulation_directive(
    state: NarrativeState,
    jump_days: int,
    profile: PlaythroughProfile | None = None,
    rng: random.Random | None = None,
    config: dict | None = None,
) -> SimulationDirective:
    """Build the directive for a jump of `jump_days` from the current day."""
    rng = get_rng(rng)
    target_day = state.current_day + jump_days

    return SimulationDirective(
        day=target_day,
        mandatory_beats=get_mandatory_beats(state, target_day, config),
        possible_beats=get_possible_beats(state, rng, config),
        npc_agendas=generate_npc_agendas(state, profile),
        pending_consequences=get_manifesting_consequences(state, target_day),
        world_state_guidance=generate_world_guidance(state, profile, config),
        tension_target=calculate_tension_target(state, jump_days, config),
        focus_arcs=identify_focus_arcs(state, config),
    )


def build_simulation_prompt(
    directive: SimulationDirective,
    profile: PlaythroughProfile,
    current_tension: float | None = None,
    engine=None,
) -> str:
    """Render a directive as prompt text for the simulation request."""
    agendas = []
    for agenda in directive.npc_agendas[:5]:
        npc = profile.get_npc(agenda.npc_id)
        if npc is not None:
            agendas.append({"name": npc.name, "focus": agenda.current_focus, "goals": agenda.goals[:2]})

    engine = engine or get_template_engine()
    return engine.render("simulation.txt.j2", {
        "mandatory_beats": directive.mandatory_beats[:3],
        "possible_beats": directive.possible_beats[:2],
        "agendas": agendas,
        "consequences": directive.pending_consequences,
        "guidance": directive.world_state_guidance,
        "tension_target": directive.tension_target,
        "current_tension": current_tension,
    })


# ─── Result Processing ───────────────────────────────────────

def _simulation_timeline_event(
    day: int,
    event_type: TimelineEventType,
    title: str,
    description: str,
    participants: list[str],
    visibility: Visibility = Visibility.PUBLIC,
) -> TimelineEvent:
    return TimelineEvent(
        day=day,
        timestamp=datetime.now(),
        type=event_type,
        source=EventSource.SIMULATION,
        title=title,
        description=description,
        participants=participants,
        visibility=visibility,
    )


def _matching_words(beat: StoryBeat, text: str) -> int:
    words = [w for w in beat.content.lower().split(" ") if len(w) > 4]
    return sum(1 for w in words if w in text)


def process_simulation_event(
    state: NarrativeState,
    event: SimulationEvent,
    config: dict | None = None,
) -> NarrativeState:
    """Record an event on the timeline and fire any beat it plainly describes."""
    cfg = (config or NARRATIVE_CONFIG)["simulation"]
    new_state = add_timeline_event(state, _simulation_timeline_event(
        state.current_day,
        TimelineEventType.SIMULATION_EVENT,
        event.title,
        event.description,
        list(event.involved_npcs),
    ))

    text = f"{event.title} {event.description}".lower()
    for arc in state.active_arcs:
        for beat in arc.beats:
            if not beat.triggered and _matching_words(beat, text) >= cfg["beat_word_matches"]:
                new_state = trigger_beat(new_state, arc.id, beat.id)

    return new_state


def _relationship_deltas(description: str) -> dict[str, float]:
    text = description.lower()
    trust = 10 if "closer" in text else -10 if "distant" in text else 0
    affection = 10 if "loving" in text else -10 if "cold" in text else 0
    return {"trust": trust, "affection": affection}


def process_npc_change(state: NarrativeState, change: NPCChange) -> NarrativeState:
    if change.change_type == NPCChangeType.RELATIONSHIP:
        return update_relationship(
            state, change.npc_id, PLAYER_ID,
            _relationship_deltas(change.description),
            change.description,
        )

    if change.change_type == NPCChangeType.DEATH:
        arcs = [
            arc.model_copy(update={
                "participants": [p for p in arc.participants if p != change.npc_id],
            }) if change.npc_id in arc.participants else arc
            for arc in state.active_arcs
        ]
        new_state = _touch(state, active_arcs=arcs)
        return add_timeline_event(new_state, _simulation_timeline_event(
            state.current_day, TimelineEventType.DEATH,
            "Death", change.description, [change.npc_id],
        ))

    if change.change_type == NPCChangeType.KNOWLEDGE:
        return add_timeline_event(state, _simulation_timeline_event(
            state.current_day, TimelineEventType.REVELATION,
            "Knowledge gained", change.description, [change.npc_id],
            Visibility.PRIVATE,
        ))

    return state


def check_arc_progressions(state: NarrativeState, config: dict | None = None) -> NarrativeState:
    """
    Advance arcs whose current phase is mostly played out, and complete
    late-phase arcs whose beats are mostly triggered.

    Both checks read each arc as it was at the start of the pass.
    """
    cfg = (config or NARRATIVE_CONFIG)["progression"]
    new_state = state

    for arc in state.active_arcs:
        in_phase = [b for b in arc.beats if b.phase == arc.phase]
        if in_phase:
            done = sum(1 for b in in_phase if b.triggered)
            if done / len(in_phase) >= cfg["phase_advance_ratio"]:
                new_state = progress_arc_phase(new_state, arc.id)

        if arc.phase in (StoryPhase.RESOLUTION, StoryPhase.AFTERMATH) and arc.beats:
            done = sum(1 for b in arc.beats if b.triggered)
            if done / len(arc.beats) >= cfg["completion_ratio"]:
                new_state = complete_arc(new_state, arc.id)

    return new_state


def process_simulation_results(
    state: NarrativeState,
    result: SimulationResult,
    rng: random.Random | None = None,
    config: dict | None = None,
) -> NarrativeState:
    """
    Fold a parsed simulation result back into the state.

    Events go on the timeline (firing matching beats), NPC changes are
    applied, arcs progress, knowledge spreads, consequences up to the
    result's end day are dropped, and global tension moves halfway
    toward the target.
    """
    cfg = config or NARRATIVE_CONFIG
    rng = get_rng(rng)
    new_state = state

    for event in result.events:
        new_state = process_simulation_event(new_state, event, cfg)

    for change in result.npc_changes:
        new_state = process_npc_change(new_state, change)

    new_state = check_arc_progressions(new_state, cfg)
    new_state = propagate_knowledge(new_state, rng, cfg)

    new_state = _touch(new_state, pending_consequences=[
        c for c in new_state.pending_consequences if c.manifest_day > result.to_day
    ])

    target = calculate_tension_target(state, result.to_day - result.from_day, cfg)
    pull = round_half_up((target - state.global_tension) * cfg["simulation"]["tension_pull"])
    new_state = update_global_tension(new_state, pull)

    logger.debug(
        f"Processed simulation {result.from_day}->{result.to_day}: "
        f"{len(result.events)} events, tension {new_state.global_tension:.0f}"
    )
    return new_state
