"""Narrative state: models, pure store operations, serialization and saves."""

from .schema import (
    PLAYER_ID,
    NarrativeState,
    PlaythroughProfile,
    NPCProfile,
    Meters,
    ScenarioInfo,
    StoryArc,
    StoryBeat,
    StoryTemplate,
    WorldFact,
    NPCKnowledge,
    StorySeed,
    Relationship,
    RelationshipMetrics,
    TimelineEvent,
    PlayerAction,
    PendingConsequence,
    ConversationAgenda,
    GroupAlliance,
    GroupConversationState,
    RevelationDirective,
    SimulationDirective,
    SimulationResult,
    SimulationEvent,
    NPCChange,
    Difficulty,
    StoryPhase,
    StoryCategory,
    StoryRole,
)
from .narrative import (
    create_narrative_state,
    add_timeline_event,
    add_player_action,
    add_world_fact,
    add_fact_to_npc_knowledge,
    update_relationship,
    add_story_arc,
    progress_arc_phase,
    complete_arc,
    trigger_beat,
    add_pending_consequence,
    update_global_tension,
    round_half_up,
    advance_day,
    add_story_seeds,
    get_relationship,
    get_known_facts,
    get_revealable_facts,
    get_arcs_for_npc,
    get_pending_beats,
    get_events_for_day,
    get_recent_events,
    calculate_tension,
    get_narrative_summary,
    get_active_story_summary,
    get_relevant_facts_for_npc,
)
from .serialization import (
    CURRENT_SCHEMA_VERSION,
    StateDeserializationError,
    serialize_state,
    deserialize_state,
    migrate_state_data,
)
from .store import NarrativeStore, JsonNarrativeStore, MemoryNarrativeStore

__all__ = [
    # Schema
    "PLAYER_ID",
    "NarrativeState",
    "PlaythroughProfile",
    "NPCProfile",
    "Meters",
    "ScenarioInfo",
    "StoryArc",
    "StoryBeat",
    "StoryTemplate",
    "WorldFact",
    "NPCKnowledge",
    "StorySeed",
    "Relationship",
    "RelationshipMetrics",
    "TimelineEvent",
    "PlayerAction",
    "PendingConsequence",
    "ConversationAgenda",
    "GroupAlliance",
    "GroupConversationState",
    "RevelationDirective",
    "SimulationDirective",
    "SimulationResult",
    "SimulationEvent",
    "NPCChange",
    "Difficulty",
    "StoryPhase",
    "StoryCategory",
    "StoryRole",
    # Store operations
    "create_narrative_state",
    "add_timeline_event",
    "add_player_action",
    "add_world_fact",
    "add_fact_to_npc_knowledge",
    "update_relationship",
    "add_story_arc",
    "progress_arc_phase",
    "complete_arc",
    "trigger_beat",
    "add_pending_consequence",
    "update_global_tension",
    "round_half_up",
    "advance_day",
    "add_story_seeds",
    "get_relationship",
    "get_known_facts",
    "get_revealable_facts",
    "get_arcs_for_npc",
    "get_pending_beats",
    "get_events_for_day",
    "get_recent_events",
    "calculate_tension",
    "get_narrative_summary",
    "get_active_story_summary",
    "get_relevant_facts_for_npc",
    # Serialization
    "CURRENT_SCHEMA_VERSION",
    "StateDeserializationError",
    "serialize_state",
    "deserialize_state",
    "migrate_state_data",
    # Saves
    "NarrativeStore",
    "JsonNarrativeStore",
    "MemoryNarrativeStore",
]
