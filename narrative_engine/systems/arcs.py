"""
Story arc generation.

Instantiates multi-beat arcs from data templates: picks a template for the
difficulty tier, casts NPCs into roles, writes beats with names filled in,
chains beat prerequisites by phase, and seeds the arc's initial facts.

Templates live in data/story_templates.yaml.

A failed generation (too few eligible NPCs) returns None; callers skip
and may retry with different arguments.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from uuid import uuid4

import yaml

from ..config import NARRATIVE_CONFIG
from ..state.narrative import (
    add_fact_to_npc_knowledge,
    add_story_arc,
    add_story_seeds,
    add_world_fact,
    base_tension,
    create_narrative_state,
    get_rng,
)
from ..state.schema import (
    DIFFICULTY_ORDER,
    PHASE_ORDER,
    Difficulty,
    FactCategory,
    FactImportance,
    NarrativeState,
    NPCProfile,
    PlayerInvolvement,
    PlaythroughProfile,
    StoryArc,
    StoryArcType,
    StoryBeat,
    StoryCategory,
    StoryPhase,
    StoryRole,
    StoryTemplate,
    TriggerCondition,
    TriggerType,
    WorldFact,
)
from .knowledge import generate_role_facts
from .seeds import generate_story_seeds

logger = logging.getLogger(__name__)

TEMPLATES_PATH = Path(__file__).parent.parent / "data" / "story_templates.yaml"

# Categories cycled through for subplots of a new game
SUBPLOT_CATEGORIES: list[StoryCategory] = [
    StoryCategory.BETRAYAL,
    StoryCategory.CONFLICT,
    StoryCategory.MYSTERY,
    StoryCategory.CRISIS,
    StoryCategory.SECRET,
    StoryCategory.REVENGE,
]

# Stand-in for optional roles nobody was cast in
UNCAST_ROLE = "someone"


# ─── Templates ───────────────────────────────────────────────

@lru_cache(maxsize=None)
def _load_templates(path: str) -> tuple[StoryTemplate, ...]:
    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or []
    return tuple(StoryTemplate.model_validate(t) for t in raw)


def load_story_templates(path: Path | str | None = None) -> list[StoryTemplate]:
    """Load arc templates (cached per path)."""
    return list(_load_templates(str(path or TEMPLATES_PATH)))


def get_templates_for_difficulty(
    difficulty: Difficulty,
    templates: list[StoryTemplate] | None = None,
) -> list[StoryTemplate]:
    """Templates whose minimum difficulty is at or below the given tier."""
    templates = templates if templates is not None else load_story_templates()
    tier = DIFFICULTY_ORDER.index(difficulty)
    return [t for t in templates if DIFFICULTY_ORDER.index(t.difficulty_min) <= tier]


# ─── Data Structures ─────────────────────────────────────────

@dataclass
class ArcGenerationParams:
    """Inputs for one arc generation."""
    player_involvement: PlayerInvolvement
    difficulty: Difficulty
    existing_arcs: list[StoryArc] = field(default_factory=list)
    current_day: int = 1
    global_tension: float = 30.0
    category: StoryCategory | None = None
    involved_npcs: list[str] | None = None   # Restrict casting to these NPC ids
    template_id: str | None = None           # Force a specific template


@dataclass
class GeneratedArc:
    """A generated arc plus the facts and knowledge it brings into the world."""
    arc: StoryArc
    initial_facts: list[WorldFact] = field(default_factory=list)
    npc_knowledge_updates: dict[str, list[str]] = field(default_factory=dict)

    def model_dump(self) -> dict:
        """Serialize for JSON (matches Pydantic convention)."""
        return {
            "arc": self.arc.model_dump(mode="json"),
            "initial_facts": [f.model_dump(mode="json") for f in self.initial_facts],
            "npc_knowledge_updates": {k: list(v) for k, v in self.npc_knowledge_updates.items()},
        }


# ─── Casting ─────────────────────────────────────────────────

def _arc_involvement(existing_arcs: list[StoryArc]) -> dict[str, int]:
    counts: dict[str, int] = {}
    for arc in existing_arcs:
        for npc_id in arc.participants:
            counts[npc_id] = counts.get(npc_id, 0) + 1
    return counts


def assign_roles(
    template: StoryTemplate,
    npcs: list[NPCProfile],
    existing_arcs: list[StoryArc],
    rng: random.Random | None = None,
    config: dict | None = None,
) -> dict[str, StoryRole] | None:
    """
    Cast NPCs into a template's roles.

    Least-involved NPCs are cast first, ties broken randomly. Required roles
    are filled before optional ones; each optional role is cast with a 50%
    chance. Returns None if required roles cannot all be filled.
    """
    cfg = config or NARRATIVE_CONFIG
    rng = get_rng(rng)

    available = [n for n in npcs if n.is_available]
    rng.shuffle(available)
    counts = _arc_involvement(existing_arcs)
    available.sort(key=lambda n: counts.get(n.id, 0))

    if len(available) < len(template.required_roles):
        return None

    roles: dict[str, StoryRole] = {}
    index = 0
    for role in template.required_roles:
        roles[available[index].id] = role
        index += 1

    for role in template.optional_roles:
        if index >= len(available):
            break
        if rng.random() > cfg["arc_generation"]["optional_role_chance"]:
            roles[available[index].id] = role
            index += 1

    return roles


def _placeholder_names(
    template: StoryTemplate,
    roles: dict[str, StoryRole],
    npcs: list[NPCProfile],
    profile: PlaythroughProfile,
) -> dict[str, str]:
    names = {n.id: n.name for n in npcs}
    mapping = {r.value: UNCAST_ROLE for r in (*template.required_roles, *template.optional_roles)}
    for npc_id, role in roles.items():
        mapping[role.value] = names.get(npc_id, npc_id)
    mapping["player"] = profile.name
    mapping["workplace"] = profile.scenario.workplace or "the office"
    return mapping


def fill_placeholders(text: str, mapping: dict[str, str]) -> str:
    for key, value in mapping.items():
        text = text.replace("{" + key + "}", value)
    return text


# ─── Beats ───────────────────────────────────────────────────

def _default_trigger(trigger_type: TriggerType, config: dict) -> TriggerCondition:
    defaults = config["arc_generation"]["default_triggers"]
    value = {
        TriggerType.DAY: defaults["day"],
        TriggerType.MESSAGE_COUNT: defaults["message_count"],
        TriggerType.TENSION_THRESHOLD: defaults["tension_threshold"],
    }.get(trigger_type)
    probability = defaults["random_probability"] if trigger_type == TriggerType.RANDOM else None
    return TriggerCondition(type=trigger_type, value=value, probability=probability)


def generate_beats(
    template: StoryTemplate,
    roles: dict[str, StoryRole],
    arc_id: str,
    names: dict[str, str],
    config: dict | None = None,
) -> list[StoryBeat]:
    """
    Build an arc's beats from its template.

    Each beat requires every beat from a strictly earlier phase.
    """
    cfg = config or NARRATIVE_CONFIG
    holder = {role: npc_id for npc_id, role in roles.items()}
    beats: list[StoryBeat] = []

    for bt in template.beat_templates:
        beats.append(StoryBeat(
            arc_id=arc_id,
            phase=bt.phase,
            type=bt.type,
            title=f"{template.name} - {bt.phase.value}",
            content=fill_placeholders(bt.template, names),
            participants=[holder[r] for r in bt.required_roles if r in holder],
            trigger_condition=_default_trigger(bt.trigger_type, cfg),
            player_can_trigger=True,
            # Climax needs the player
            npc_can_trigger=bt.phase != StoryPhase.CLIMAX,
            narrative_weight=bt.narrative_weight,
        ))

    for beat in beats:
        rank = PHASE_ORDER.index(beat.phase)
        beat.prerequisite_beats = [
            earlier.id for earlier in beats
            if PHASE_ORDER.index(earlier.phase) < rank
        ]

    return beats


# ─── Facts ───────────────────────────────────────────────────

def generate_arc_facts(
    template: StoryTemplate,
    roles: dict[str, StoryRole],
    names: dict[str, str],
    current_day: int = 1,
) -> list[WorldFact]:
    """Category-specific facts that exist from the moment an arc begins."""
    holder = {role: npc_id for npc_id, role in roles.items()}
    antagonist = holder.get(StoryRole.ANTAGONIST)
    rival = holder.get(StoryRole.RIVAL)
    facts: list[WorldFact] = []

    if template.category == StoryCategory.BETRAYAL and antagonist:
        facts.append(WorldFact(
            content=f"{names['antagonist']} has been secretly betraying trust",
            category=FactCategory.SECRET,
            importance=FactImportance.MAJOR,
            known_by=[antagonist],
            learned_when={antagonist: current_day},
            can_spread=True,
            spread_probability=0.2,
            source="story_generation",
        ))
    elif template.category == StoryCategory.MYSTERY and antagonist:
        facts.append(WorldFact(
            content=f"{names['antagonist']} is hiding something significant about their past",
            category=FactCategory.SECRET,
            importance=FactImportance.MAJOR,
            known_by=[antagonist],
            learned_when={antagonist: current_day},
            source="story_generation",
        ))
    elif template.category == StoryCategory.CONFLICT and antagonist and rival:
        facts.append(WorldFact(
            content=f"{names['antagonist']} and {names['rival']} are competing for power/influence",
            category=FactCategory.RELATIONSHIP,
            importance=FactImportance.SIGNIFICANT,
            known_by=[antagonist, rival],
            learned_when={antagonist: current_day, rival: current_day},
            can_spread=True,
            spread_probability=0.4,
            source="story_generation",
        ))

    return facts


# ─── Generation ──────────────────────────────────────────────

def _pick_template(
    params: ArcGenerationParams,
    templates: list[StoryTemplate],
    rng: random.Random,
) -> StoryTemplate | None:
    eligible = get_templates_for_difficulty(params.difficulty, templates)
    if params.template_id:
        forced = [t for t in eligible if t.id == params.template_id]
        if forced:
            return forced[0]

    candidates = eligible
    if params.category:
        candidates = [t for t in candidates if t.category == params.category]

    in_use = {a.template_id for a in params.existing_arcs}
    candidates = [t for t in candidates if t.id not in in_use]

    if not candidates:
        logger.debug("No unused template matches; falling back to all for difficulty")
        candidates = eligible

    return rng.choice(candidates) if candidates else None


def generate_story_arc(
    params: ArcGenerationParams,
    profile: PlaythroughProfile,
    rng: random.Random | None = None,
    templates: list[StoryTemplate] | None = None,
    config: dict | None = None,
) -> GeneratedArc | None:
    """
    Generate one arc, or None if it cannot be cast.

    Initial tension sits between the template's min and max, weighted by
    the current global tension.
    """
    cfg = config or NARRATIVE_CONFIG
    rng = get_rng(rng)
    templates = templates if templates is not None else load_story_templates()

    template = _pick_template(params, templates, rng)
    if template is None:
        return None

    if params.involved_npcs is not None:
        npcs = [n for n in profile.npcs if n.id in params.involved_npcs]
    else:
        npcs = profile.available_npcs()

    roles = assign_roles(template, npcs, params.existing_arcs, rng, cfg)
    if roles is None:
        logger.debug(f"Could not cast {template.id}: {len(npcs)} NPCs available")
        return None

    arc_id = f"{template.id}-{str(uuid4())[:8]}"
    names = _placeholder_names(template, roles, npcs, profile)

    tension_range = template.max_tension - template.min_tension
    tension = (
        template.min_tension
        + (params.global_tension / 100) * tension_range * cfg["arc_generation"]["tension_weight"]
    )

    arc = StoryArc(
        id=arc_id,
        type=StoryArcType.MAIN if not params.existing_arcs else StoryArcType.SUBPLOT,
        category=template.category,
        title=template.name,
        premise=fill_placeholders(template.premise, names),
        participants=list(roles),
        roles=roles,
        beats=generate_beats(template, roles, arc_id, names, cfg),
        tension=tension,
        player_involvement=params.player_involvement,
        start_day=params.current_day,
    )

    initial_facts = generate_arc_facts(template, roles, names, params.current_day)
    updates: dict[str, list[str]] = {}
    for fact in initial_facts:
        for npc_id in fact.known_by:
            updates.setdefault(npc_id, []).append(fact.id)

    logger.debug(f"Generated arc {arc_id} with {len(roles)} roles")
    return GeneratedArc(arc=arc, initial_facts=initial_facts, npc_knowledge_updates=updates)


def generate_initial_arcs(
    profile: PlaythroughProfile,
    rng: random.Random | None = None,
    templates: list[StoryTemplate] | None = None,
    config: dict | None = None,
) -> list[GeneratedArc]:
    """
    Arcs for a new game: one central main arc, then subplots in unused
    categories until the difficulty's target count or until casting fails.
    """
    cfg = config or NARRATIVE_CONFIG
    rng = get_rng(rng)
    target = cfg["initial_arcs"][profile.difficulty.value]
    tension = base_tension(profile.difficulty, cfg)

    arcs: list[GeneratedArc] = []
    main = generate_story_arc(ArcGenerationParams(
        player_involvement=PlayerInvolvement.CENTRAL,
        difficulty=profile.difficulty,
        current_day=profile.current_day,
        global_tension=tension,
    ), profile, rng, templates, cfg)
    if main is None:
        return arcs
    arcs.append(main)

    used = {main.arc.category}
    while len(arcs) < target:
        unused = [c for c in SUBPLOT_CATEGORIES if c not in used]
        category = rng.choice(unused or SUBPLOT_CATEGORIES)
        involvement = (
            PlayerInvolvement.PERIPHERAL if rng.random() > 0.5
            else PlayerInvolvement.DISCOVERING
        )

        subplot = generate_story_arc(ArcGenerationParams(
            player_involvement=involvement,
            difficulty=profile.difficulty,
            existing_arcs=[g.arc for g in arcs],
            current_day=profile.current_day,
            global_tension=tension,
            category=category,
        ), profile, rng, templates, cfg)

        if subplot is None:
            break
        arcs.append(subplot)
        used.add(category)

    return arcs


def generate_emergent_arc(
    trigger_npcs: list[str],
    state: NarrativeState,
    profile: PlaythroughProfile,
    rng: random.Random | None = None,
    templates: list[StoryTemplate] | None = None,
    config: dict | None = None,
) -> GeneratedArc | None:
    """An arc that grows out of a scene, cast only from the given NPCs."""
    rng = get_rng(rng)
    templates = templates if templates is not None else load_story_templates()

    suitable = [
        t for t in get_templates_for_difficulty(state.difficulty, templates)
        if len(t.required_roles) <= len(trigger_npcs)
    ]
    if not suitable:
        return None

    template = rng.choice(suitable)
    return generate_story_arc(ArcGenerationParams(
        player_involvement=PlayerInvolvement.DISCOVERING,
        difficulty=state.difficulty,
        existing_arcs=list(state.active_arcs),
        current_day=state.current_day,
        global_tension=state.global_tension,
        involved_npcs=list(trigger_npcs),
        template_id=template.id,
    ), profile, rng, templates, config)


# ─── State Integration ───────────────────────────────────────

def apply_generated_arc(
    state: NarrativeState,
    generated: GeneratedArc,
    profile: PlaythroughProfile,
) -> NarrativeState:
    """Add an arc, its facts, and the role secrets it implies to the state."""
    new_state = add_story_arc(state, generated.arc)

    secret_ids = set()
    for fact in generated.initial_facts:
        new_state, _ = add_world_fact(new_state, fact)
        if fact.category == FactCategory.SECRET:
            secret_ids.add(fact.id)

    for npc_id, fact_ids in generated.npc_knowledge_updates.items():
        for fact_id in fact_ids:
            new_state = add_fact_to_npc_knowledge(
                new_state, npc_id, fact_id, is_secret=fact_id in secret_ids
            )

    new_state = generate_role_facts(new_state, generated.arc, profile.npc_names())

    themes = list(new_state.current_themes)
    if generated.arc.category.value not in themes:
        themes.append(generated.arc.category.value)
    return new_state.model_copy(update={"current_themes": themes})


def initialize_narrative(
    profile: PlaythroughProfile,
    rng: random.Random | None = None,
    seed_count: int | None = None,
    config: dict | None = None,
) -> NarrativeState:
    """
    Complete narrative state for a new game: relationships, initial arcs
    with their facts, and scenario-matched story seeds.
    """
    cfg = config or NARRATIVE_CONFIG
    rng = get_rng(rng)

    state = create_narrative_state(profile, rng, cfg)
    for generated in generate_initial_arcs(profile, rng, config=cfg):
        state = apply_generated_arc(state, generated, profile)

    count = seed_count if seed_count is not None else cfg["seeds"]["default_count"]
    state = add_story_seeds(state, generate_story_seeds(profile, count, rng, cfg))

    logger.info(
        f"Initialized narrative: {len(state.active_arcs)} arcs, "
        f"{len(state.world_facts)} facts, {len(state.story_seeds)} seeds"
    )
    return state
