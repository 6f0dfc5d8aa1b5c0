"""Narrative systems built on the state store."""

from .knowledge import (
    propagate_knowledge,
    select_revelation,
    get_group_chat_revelations,
    reveal_fact_to_player,
    get_conflicting_facts,
    get_shared_facts,
)
from .seeds import (
    generate_story_seeds,
    select_revelation_for_npc,
    build_revelation_prompt,
    detect_and_mark_revelation,
    RevelationOptions,
)
from .arcs import (
    generate_story_arc,
    generate_initial_arcs,
    generate_emergent_arc,
    apply_generated_arc,
    initialize_narrative,
    ArcGenerationParams,
    GeneratedArc,
)
from .group import (
    initialize_group_conversation,
    update_group_conversation,
    get_npc_agenda,
    build_group_dynamics_prompt,
    end_group_conversation,
)
from .simulation import (
    generate_simulation_directive,
    process_simulation_results,
    build_simulation_prompt,
)
from .actions import record_player_action, classify_action

__all__ = [
    # Knowledge
    "propagate_knowledge",
    "select_revelation",
    "get_group_chat_revelations",
    "reveal_fact_to_player",
    "get_conflicting_facts",
    "get_shared_facts",
    # Seeds
    "generate_story_seeds",
    "select_revelation_for_npc",
    "build_revelation_prompt",
    "detect_and_mark_revelation",
    "RevelationOptions",
    # Arcs
    "generate_story_arc",
    "generate_initial_arcs",
    "generate_emergent_arc",
    "apply_generated_arc",
    "initialize_narrative",
    "ArcGenerationParams",
    "GeneratedArc",
    # Group
    "initialize_group_conversation",
    "update_group_conversation",
    "get_npc_agenda",
    "build_group_dynamics_prompt",
    "end_group_conversation",
    # Simulation
    "generate_simulation_directive",
    "process_simulation_results",
    "build_simulation_prompt",
    # Actions
    "record_player_action",
    "classify_action",
]
