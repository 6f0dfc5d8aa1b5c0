"""Tests for group conversation dynamics."""

import random

import pytest

from narrative_engine.state import (
    add_fact_to_npc_knowledge,
    add_world_fact,
    calculate_tension,
    update_relationship,
)
from narrative_engine.state.schema import (
    ConversationAgenda,
    FactCategory,
    FactImportance,
    GroupConversationState,
    StoryArcType,
    WorldFact,
)
from narrative_engine.systems.group import (
    UNKNOWN_NPC_GOAL,
    ConflictType,
    analyze_group_conflicts,
    analyze_potential_alliances,
    analyze_shared_knowledge,
    build_group_dynamics_prompt,
    calculate_group_tension,
    check_for_emergent_arcs,
    end_group_conversation,
    generate_conversation_agenda,
    get_npc_agenda,
    group_id_for,
    initialize_group_conversation,
    update_group_conversation,
)

from conftest import make_arc

GROUP = ["sarah", "mark", "julia"]


def _with_secret(state):
    """Sarah knows Mark's secret. Returns (state, fact_id)."""
    state, fact_id = add_world_fact(state, WorldFact(
        content="Mark embezzled company pension funds",
        category=FactCategory.SECRET,
        importance=FactImportance.MAJOR,
    ))
    return add_fact_to_npc_knowledge(state, "sarah", fact_id, is_secret=True), fact_id


def _with_common_fact(state):
    """Everyone in GROUP knows about the layoffs. Returns (state, fact_id)."""
    state, fact_id = add_world_fact(state, WorldFact(
        content="Layoffs are coming next month",
        category=FactCategory.EVENT,
        importance=FactImportance.MAJOR,
    ))
    for npc_id in GROUP:
        state = add_fact_to_npc_knowledge(state, npc_id, fact_id)
    return state, fact_id


def _with_group(state, agendas, tension=30.0, message_count=0):
    group = GroupConversationState(
        group_id=group_id_for(GROUP),
        participant_ids=list(GROUP),
        agendas=agendas,
        tension_level=tension,
        message_count=message_count,
    )
    return state.model_copy(update={"active_group_conversations": {group.group_id: group}})


class TestAnalysis:
    """Test pairwise conflict and alliance analysis."""

    def test_group_id_sorted(self):
        assert group_id_for(["b", "a"]) == "group-a-b"

    def test_rivalry_conflict(self, state, profile):
        state = update_relationship(state, "sarah", "julia", {"rivalry": 100})
        conflicts = analyze_group_conflicts(state, GROUP, profile)

        rivalry = [c for c in conflicts if c.type == ConflictType.RIVALRY]
        assert any(c.involves("sarah") and c.involves("julia") for c in rivalry)
        assert all(c.intensity > 50 for c in rivalry)

    def test_distrust_conflict(self, state, profile):
        state = update_relationship(state, "mark", "julia", {"trust": -100})
        conflicts = analyze_group_conflicts(state, ["mark", "julia"], profile)

        distrust = [c for c in conflicts if c.type == ConflictType.DISTRUST]
        assert len(distrust) == 1
        assert distrust[0].intensity == 100
        assert distrust[0].other("mark") == "julia"

    def test_secret_conflict(self, state, profile):
        """A secret naming the other side is a conflict."""
        state, _ = _with_secret(state)
        conflicts = analyze_group_conflicts(state, ["sarah", "mark"], profile)
        assert ConflictType.SECRET in {c.type for c in conflicts}

    def test_unknown_npcs_skipped(self, state, profile):
        assert analyze_group_conflicts(state, ["ghost", "sarah"], profile) == []

    def test_alliance_needs_trust_and_affection(self, state):
        state = update_relationship(state, "sarah", "julia", {"trust": 100, "affection": 100})
        state = update_relationship(state, "julia", "sarah", {"trust": 100, "affection": 100})

        alliances = analyze_potential_alliances(state, GROUP)
        strong = {(a.npc1_id, a.npc2_id): a.strength for a in alliances}
        assert strong[("sarah", "julia")] == 100

    def test_shared_knowledge(self, state):
        state, fact_id = _with_common_fact(state)
        state, _ = _with_secret(state)

        shared = analyze_shared_knowledge(state, GROUP)
        assert list(shared) == [fact_id]
        assert sorted(shared[fact_id]) == sorted(GROUP)

    def test_group_tension(self, state):
        """Mean pairwise tension averaged with global tension."""
        pairs = [("sarah", "mark"), ("sarah", "julia"), ("mark", "julia")]
        pair_avg = sum(calculate_tension(state, a, b) for a, b in pairs) / 3

        assert calculate_group_tension(state, GROUP) == pytest.approx((pair_avg + 40) / 2)

    def test_group_tension_single_npc(self, state):
        assert calculate_group_tension(state, ["sarah"]) == 20


class TestAgendas:
    """Test generate_conversation_agenda."""

    def test_emotion_goal(self, state, profile, rng):
        agenda = generate_conversation_agenda(state, "sarah", GROUP, profile, [], rng)
        assert "Figure out what others are hiding" in agenda.goals

    def test_unknown_npc(self, state, profile, rng):
        agenda = generate_conversation_agenda(state, "ghost", GROUP, profile, [], rng)
        assert agenda.goals == [UNKNOWN_NPC_GOAL]
        assert agenda.must_reveal is None

    def test_conflicts_become_goals(self, state, profile, rng):
        """The first conflicts name the other side."""
        state = update_relationship(state, "julia", "mark", {"trust": -100})
        conflicts = analyze_group_conflicts(state, GROUP, profile)

        agenda = generate_conversation_agenda(state, "julia", GROUP, profile, conflicts, rng)
        assert "mark" in agenda.conflicts_with
        assert "Watch Mark for signs of betrayal" in agenda.goals

    def test_revealed_facts_excluded(self, state, profile, rng):
        """A fact already revealed in the scene is never reassigned."""
        state, fact_id = _with_secret(state)
        agenda = generate_conversation_agenda(
            state, "sarah", GROUP, profile, [], rng, revealed={fact_id},
        )
        assert agenda.must_reveal is None
        assert agenda.reveal_after_messages == 999


class TestGroupLifecycle:
    """Test starting, updating and ending a scene."""

    def test_initialize_stores_group(self, state, profile, rng):
        new_state, group = initialize_group_conversation(state, GROUP, profile, rng)

        assert group.group_id == "group-julia-mark-sarah"
        assert [a.npc_id for a in group.agendas] == GROUP
        assert new_state.active_group_conversations[group.group_id] == group
        assert get_npc_agenda(new_state, group.group_id, "mark") is not None
        assert state.active_group_conversations == {}

    def test_initialize_tension_from_incoming_state(self, state, profile, rng):
        expected = calculate_group_tension(state, GROUP)
        _, group = initialize_group_conversation(state, GROUP, profile, rng)
        assert group.tension_level == pytest.approx(expected)

    def test_initialize_keeps_shared_facts_and_alliances(self, state, profile, rng):
        """The scene records what everyone knows and who is allied."""
        state, fact_id = _with_common_fact(state)
        state = update_relationship(state, "sarah", "julia", {"trust": 100, "affection": 100})
        state = update_relationship(state, "julia", "sarah", {"trust": 100, "affection": 100})

        new_state, group = initialize_group_conversation(state, GROUP, profile, rng)

        assert sorted(group.shared_facts[fact_id]) == sorted(GROUP)
        pairs = {(a.npc1_id, a.npc2_id): a.strength for a in group.alliances}
        assert pairs[("sarah", "julia")] == 100
        assert new_state.active_group_conversations[group.group_id].alliances == group.alliances

    def test_accusatory_message_raises_tension(self, state):
        state = _with_group(state, [], tension=30.0)
        new_state = update_group_conversation(state, group_id_for(GROUP), "mark", "You're a liar!")
        group = new_state.active_group_conversations[group_id_for(GROUP)]

        assert group.tension_level == 35
        assert group.message_count == 1

    def test_keyword_categories_stack(self, state):
        """Accusatory and violent keywords in one message both count."""
        state = _with_group(state, [], tension=30.0)
        new_state = update_group_conversation(
            state, group_id_for(GROUP), "mark", "You betrayed me and I want revenge",
        )
        assert new_state.active_group_conversations[group_id_for(GROUP)].tension_level == 45

    def test_tension_clamped(self, state):
        state = _with_group(state, [], tension=98.0)
        new_state = update_group_conversation(state, group_id_for(GROUP), "mark", "I will kill you")
        assert new_state.active_group_conversations[group_id_for(GROUP)].tension_level == 100

    def test_unknown_group_no_op(self, state):
        assert update_group_conversation(state, "group-nobody", "mark", "hi") is state

    def test_revelation_clears_every_agenda(self, state):
        """Once revealed, the fact is no longer anyone's directive."""
        state, fact_id = _with_secret(state)
        state = _with_group(state, [
            ConversationAgenda(npc_id="sarah", must_reveal=fact_id, reveal_after_messages=1),
            ConversationAgenda(npc_id="julia", must_reveal=fact_id, reveal_after_messages=4),
            ConversationAgenda(npc_id="mark"),
        ])

        new_state = update_group_conversation(
            state, group_id_for(GROUP), "sarah", "Mark embezzled from the pension plan!",
        )
        group = new_state.active_group_conversations[group_id_for(GROUP)]

        assert group.revealed_facts == [fact_id]
        assert all(a.must_reveal is None for a in group.agendas)

    def test_revelation_waits_for_countdown(self, state):
        """Saying it early doesn't count as the directed revelation."""
        state, fact_id = _with_secret(state)
        state = _with_group(state, [
            ConversationAgenda(npc_id="sarah", must_reveal=fact_id, reveal_after_messages=5),
        ])
        new_state = update_group_conversation(
            state, group_id_for(GROUP), "sarah", "Mark embezzled from the pension plan!",
        )
        group = new_state.active_group_conversations[group_id_for(GROUP)]

        assert group.revealed_facts == []
        assert group.agendas[0].must_reveal == fact_id

    def test_end(self, state, profile, rng):
        new_state, group = initialize_group_conversation(state, GROUP, profile, rng)
        ended = end_group_conversation(new_state, group.group_id)

        assert ended.active_group_conversations == {}
        assert end_group_conversation(ended, group.group_id) is ended


class TestGroupPrompt:
    """Test build_group_dynamics_prompt."""

    def test_strategy_and_goals(self, state, profile):
        state = _with_group(state, [
            ConversationAgenda(npc_id="mark", goals=["Stay calm"], conflicts_with=["sarah"]),
        ])
        text = build_group_dynamics_prompt(state, group_id_for(GROUP), "mark", profile)

        assert "1. Stay calm" in text
        assert "=== PEOPLE YOU'RE IN CONFLICT WITH ===\nSarah" in text
        assert "=== YOUR STRATEGY ===" in text

    def test_revelation_urgency(self, state, profile):
        """Past the countdown the directive is marked NOW."""
        state, fact_id = _with_secret(state)
        state = _with_group(state, [
            ConversationAgenda(npc_id="sarah", must_reveal=fact_id, reveal_after_messages=2),
        ], message_count=3)
        text = build_group_dynamics_prompt(state, group_id_for(GROUP), "sarah", profile)

        assert "[NOW]" in text
        assert "Mark embezzled company pension funds" in text

    def test_revelation_soon(self, state, profile):
        state, fact_id = _with_secret(state)
        state = _with_group(state, [
            ConversationAgenda(npc_id="sarah", must_reveal=fact_id, reveal_after_messages=4),
        ], message_count=2)
        assert "[SOON]" in build_group_dynamics_prompt(state, group_id_for(GROUP), "sarah", profile)

    def test_high_tension_warning(self, state, profile):
        state = _with_group(state, [ConversationAgenda(npc_id="mark")], tension=80.0)
        text = build_group_dynamics_prompt(state, group_id_for(GROUP), "mark", profile)
        assert "TENSION IS HIGH" in text

    def test_missing_agenda_empty(self, state, profile):
        assert build_group_dynamics_prompt(state, "group-nobody", "mark", profile) == ""


class TestEmergentArcs:
    """Test check_for_emergent_arcs."""

    def test_cap_on_active_arcs(self, state, profile, rng):
        arcs = [make_arc(f"testarc-{i:04d}") for i in range(5)]
        state = state.model_copy(update={"active_arcs": arcs})
        assert check_for_emergent_arcs(state, GROUP, profile, rng) == (state, [])

    def test_tense_group_spawns_emergent_arc(self, state, profile, config):
        config["group"]["high_tension"] = 0
        config["group"]["high_tension_arc_chance"] = 1.0

        new_state, created = check_for_emergent_arcs(
            state, GROUP, profile, random.Random(8), config,
        )
        assert len(created) == 1
        arc = new_state.get_arc(created[0])
        assert arc.type == StoryArcType.EMERGENT
        assert set(arc.participants) <= set(GROUP)

    def test_calm_group_spawns_nothing(self, state, profile, config):
        config["group"]["high_tension"] = 100
        new_state, created = check_for_emergent_arcs(state, GROUP, profile, random.Random(8), config)
        assert created == []
        assert new_state is state
