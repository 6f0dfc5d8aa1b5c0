"""
Tests for time-jump simulation.

Directive building is deterministic given a seeded random source; result
processing is structural and never generates text.
"""

import random

from narrative_engine.state import get_relationship
from narrative_engine.state.schema import (
    PLAYER_ID,
    EventSource,
    NPCChange,
    NPCChangeType,
    PendingConsequence,
    SimulationEvent,
    SimulationResult,
    StoryArcType,
    StoryPhase,
    StoryRole,
    TimelineEventType,
    TriggerType,
    Visibility,
)
from narrative_engine.systems.simulation import (
    DEFAULT_AGENDA_GOALS,
    build_simulation_prompt,
    calculate_tension_target,
    check_arc_progressions,
    generate_npc_agendas,
    generate_simulation_directive,
    generate_world_guidance,
    get_mandatory_beats,
    get_possible_beats,
    identify_focus_arcs,
    process_npc_change,
    process_simulation_results,
)

from conftest import make_arc, make_beat


def _with_arcs(state, *arcs):
    return state.model_copy(update={"active_arcs": list(arcs)})


class TestMandatoryBeats:
    """Test get_mandatory_beats."""

    def test_day_trigger_relative_to_arc_start(self, state):
        """A day-1 beat of an arc started on day 1 is due from day 2."""
        beat = make_beat("a-1", StoryPhase.SETUP, trigger_type=TriggerType.DAY, trigger={"value": 1})
        state = _with_arcs(state, make_arc("a-1", [beat], start_day=1))

        assert get_mandatory_beats(state, 1) == []
        assert [b.id for b in get_mandatory_beats(state, 2)] == [beat.id]

    def test_tension_trigger(self, state):
        beat = make_beat(
            "a-1", StoryPhase.RISING,
            trigger_type=TriggerType.TENSION_THRESHOLD, trigger={"value": 60},
        )
        hot = _with_arcs(state, make_arc("a-1", [beat], tension=70))
        cold = _with_arcs(state, make_arc("a-1", [beat], tension=50))

        assert len(get_mandatory_beats(hot, 1)) == 1
        assert get_mandatory_beats(cold, 1) == []

    def test_heaviest_first(self, state):
        light = make_beat("a-1", StoryPhase.SETUP, trigger_type=TriggerType.DAY, narrative_weight=3)
        heavy = make_beat("a-1", StoryPhase.SETUP, trigger_type=TriggerType.DAY, narrative_weight=8)
        state = _with_arcs(state, make_arc("a-1", [light, heavy]))

        assert [b.id for b in get_mandatory_beats(state, 5)] == [heavy.id, light.id]

    def test_unmet_prerequisites_skipped(self, state):
        """A beat waits until its prerequisite beats have fired."""
        first = make_beat("a-1", StoryPhase.SETUP)
        second = make_beat(
            "a-1", StoryPhase.RISING, trigger_type=TriggerType.DAY,
            prerequisite_beats=[first.id],
        )
        state = _with_arcs(state, make_arc("a-1", [first, second]))
        assert get_mandatory_beats(state, 10) == []

    def test_triggered_skipped(self, state):
        beat = make_beat("a-1", StoryPhase.SETUP, trigger_type=TriggerType.DAY, triggered=True)
        state = _with_arcs(state, make_arc("a-1", [beat]))
        assert get_mandatory_beats(state, 10) == []


class TestPossibleBeats:
    """Test get_possible_beats."""

    def test_random_beats_roll(self, state, rng):
        certain = make_beat(
            "a-1", StoryPhase.SETUP, trigger_type=TriggerType.RANDOM, trigger={"probability": 1.0},
        )
        state = _with_arcs(state, make_arc("a-1", [certain]))
        assert [b.id for b in get_possible_beats(state, rng)] == [certain.id]

    def test_player_only_beats_excluded(self, state, rng):
        beat = make_beat(
            "a-1", StoryPhase.CLIMAX, trigger_type=TriggerType.RANDOM,
            trigger={"probability": 1.0}, npc_can_trigger=False,
        )
        state = _with_arcs(state, make_arc("a-1", [beat]))
        assert get_possible_beats(state, rng) == []

    def test_other_trigger_types_excluded(self, state, rng):
        beat = make_beat("a-1", StoryPhase.SETUP, trigger_type=TriggerType.DAY)
        state = _with_arcs(state, make_arc("a-1", [beat]))
        assert get_possible_beats(state, rng) == []


class TestTensionAndFocus:
    """Test tension targets and focus arcs."""

    def test_target_per_day(self, state):
        assert calculate_tension_target(state, 3) == 46

    def test_phase_adjustments(self, state):
        state = _with_arcs(
            state,
            make_arc("a-1", phase=StoryPhase.RISING),
            make_arc("b-1", phase=StoryPhase.CLIMAX),
            make_arc("c-1", phase=StoryPhase.RESOLUTION),
        )
        assert calculate_tension_target(state, 1) == 40 + 2 + 5 + 10 - 10

    def test_target_clamped(self, state):
        assert calculate_tension_target(state.model_copy(update={"global_tension": 0}), 0) == 10
        assert calculate_tension_target(state.model_copy(update={"global_tension": 100}), 5) == 95

    def test_focus_arcs(self, state):
        """Climax and hot rising arcs first, then main arcs."""
        state = _with_arcs(
            state,
            make_arc("main-1", type=StoryArcType.MAIN),
            make_arc("cool-1", phase=StoryPhase.RISING, tension=30),
            make_arc("hot-1", phase=StoryPhase.RISING, tension=70),
            make_arc("peak-1", phase=StoryPhase.CLIMAX),
        )
        assert identify_focus_arcs(state) == ["hot-1", "peak-1", "main-1"]

    def test_focus_capped(self, state):
        arcs = [make_arc(f"peak-{i}", phase=StoryPhase.CLIMAX) for i in range(5)]
        assert len(identify_focus_arcs(_with_arcs(state, *arcs))) == 3


class TestNpcAgendas:
    """Test generate_npc_agendas."""

    def test_with_profile(self, state, profile):
        state = _with_arcs(state, make_arc(roles={"mark": StoryRole.ANTAGONIST}))
        agendas = {a.npc_id: a for a in generate_npc_agendas(state, profile)}

        assert set(agendas) == {"sarah", "mark", "julia"}
        mark = agendas["mark"]
        assert mark.goals[0] == "Continue Test Arc scheme"
        assert "Seek confrontation or vindication" in mark.goals
        assert "Cover their tracks" in mark.will_do
        assert mark.current_focus == "Focused on Test Arc"

        assert agendas["julia"].wont_do == ["Take unnecessary risks"]
        assert agendas["julia"].current_focus == "Balancing work and personal life"

    def test_defaults_for_uninvolved(self, state, profile):
        """No arcs and no matching emotion: routine goals."""
        agendas = {a.npc_id: a for a in generate_npc_agendas(state, profile)}
        assert agendas["sarah"].goals == DEFAULT_AGENDA_GOALS
        assert agendas["sarah"].current_focus == "Managing important matters"

    def test_dead_npcs_skipped(self, state, profile):
        profile.npcs[2].is_dead = True
        assert "julia" not in {a.npc_id for a in generate_npc_agendas(state, profile)}

    def test_without_profile(self, state):
        """Role rows only, one per known NPC."""
        state = _with_arcs(state, make_arc())
        agendas = {a.npc_id: a for a in generate_npc_agendas(state)}

        assert set(agendas) == set(state.npc_knowledge)
        assert agendas["sarah"].goals == ["Go about daily routine"]
        assert agendas["sarah"].current_focus == "Involved in Test Arc"
        assert agendas["julia"].current_focus == "Daily activities"


class TestWorldGuidance:
    """Test generate_world_guidance."""

    def test_low_meters_phases_and_difficulty(self, state, profile):
        profile.meters.wealth = 20
        state = _with_arcs(state, make_arc(phase=StoryPhase.RISING))
        guidance = generate_world_guidance(state, profile)

        assert guidance == [
            "Financial pressures should increase",
            "Test Arc: Tension should build toward climax",
            "Dramatic revelations and confrontations encouraged",
        ]

    def test_high_tension(self, state):
        state = state.model_copy(update={"global_tension": 80})
        assert generate_world_guidance(state) == ["High tension environment - conflicts likely to erupt"]


class TestDirectiveAndPrompt:
    """Test generate_simulation_directive and build_simulation_prompt."""

    def _state(self, state):
        beat = make_beat(
            "a-1", StoryPhase.SETUP, "Mark is caught shredding documents",
            trigger_type=TriggerType.DAY, trigger={"value": 1},
        )
        return _with_arcs(state, make_arc("a-1", [beat]))

    def test_directive(self, state, profile, rng):
        directive = generate_simulation_directive(self._state(state), 3, profile, rng)

        assert directive.day == 4
        assert len(directive.mandatory_beats) == 1
        assert directive.tension_target == 46
        assert len(directive.npc_agendas) == 3

    def test_prompt(self, state, profile, rng):
        directive = generate_simulation_directive(self._state(state), 3, profile, rng)
        text = build_simulation_prompt(directive, profile, current_tension=40)

        assert "=== MANDATORY STORY EVENTS ===" in text
        assert "- Mark is caught shredding documents" in text
        assert "Sarah: Focused on Test Arc" in text
        assert "Current: 40, Target: 46" in text

    def test_prompt_without_current(self, state, profile, rng):
        directive = generate_simulation_directive(state, 1, profile, rng)
        text = build_simulation_prompt(directive, profile)

        assert "Target: 42" in text
        assert "Current:" not in text
        assert "MANDATORY" not in text


class TestProcessResults:
    """Test process_simulation_results."""

    def test_event_fires_matching_beat(self, state, rng):
        """Three or more long content words in the event fire the beat."""
        beat = make_beat("a-1", StoryPhase.SETUP, "Sarah finds discrepancies in the financial records")
        state = _with_arcs(state, make_arc("a-1", [beat]))
        result = SimulationResult(from_day=1, to_day=3, events=[SimulationEvent(
            title="Audit",
            description="Sarah found discrepancies in the financial records at work",
            involved_npcs=["sarah"],
        )])

        new_state = process_simulation_results(state, result, rng)
        arc = new_state.get_arc("a-1")

        assert arc.beats[0].triggered is True
        # Only setup beat fired, so the arc moves on
        assert arc.phase == StoryPhase.RISING
        assert new_state.timeline[-1].source == EventSource.SIMULATION
        assert new_state.timeline[-1].type == TimelineEventType.SIMULATION_EVENT

    def test_unrelated_event_does_not_fire(self, state, rng):
        beat = make_beat("a-1", StoryPhase.SETUP, "Sarah finds discrepancies in the financial records")
        state = _with_arcs(state, make_arc("a-1", [beat]))
        result = SimulationResult(from_day=1, to_day=2, events=[SimulationEvent(
            title="Lunch", description="Sarah had lunch with friends",
        )])
        assert process_simulation_results(state, result, rng).get_arc("a-1").beats[0].triggered is False

    def test_consequences_drop_by_end_day(self, state, rng):
        due = PendingConsequence(source_action_id="x", description="Due", manifest_day=2)
        later = PendingConsequence(source_action_id="x", description="Later", manifest_day=5)
        state = state.model_copy(update={"pending_consequences": [due, later]})

        new_state = process_simulation_results(state, SimulationResult(from_day=1, to_day=3), rng)
        assert [c.description for c in new_state.pending_consequences] == ["Later"]

    def test_tension_moves_halfway_to_target(self, state, rng):
        """Target 44 from 40 over two days: pulled by 2."""
        new_state = process_simulation_results(state, SimulationResult(from_day=1, to_day=3), rng)
        assert new_state.global_tension == 42

    def test_odd_gap_pull_rounds_up(self, state, rng):
        """Target 49 from 40: a pull of 4.5 rounds to 5, not to the even 4."""
        state = _with_arcs(state, make_arc("a-1", phase=StoryPhase.RISING))
        new_state = process_simulation_results(state, SimulationResult(from_day=1, to_day=3), rng)
        assert new_state.global_tension == 45

    def test_day_not_advanced(self, state, rng):
        new_state = process_simulation_results(state, SimulationResult(from_day=1, to_day=3), rng)
        assert new_state.current_day == state.current_day

    def test_missing_optional_fields(self, state, rng):
        """Upstream parsers may send nulls."""
        result = SimulationResult(
            from_day=1, to_day=2, npc_changes=None,
            events=[SimulationEvent(title="Storm", involved_npcs=None)],
        )
        new_state = process_simulation_results(state, result, rng)
        assert new_state.timeline[-1].participants == []


class TestNpcChanges:
    """Test process_npc_change."""

    def test_death_leaves_arcs(self, state):
        state = _with_arcs(state, make_arc(participants=["sarah", "mark"]))
        new_state = process_npc_change(state, NPCChange(
            npc_id="mark", change_type=NPCChangeType.DEATH, description="Mark died in a crash",
        ))

        assert new_state.active_arcs[0].participants == ["sarah"]
        assert new_state.timeline[-1].type == TimelineEventType.DEATH
        assert new_state.timeline[-1].participants == ["mark"]

    def test_relationship_closer(self, state):
        before = get_relationship(state, "sarah", PLAYER_ID).metrics
        new_state = process_npc_change(state, NPCChange(
            npc_id="sarah", change_type=NPCChangeType.RELATIONSHIP,
            description="Sarah and Alex grew closer",
        ))
        rel = get_relationship(new_state, "sarah", PLAYER_ID)

        assert rel.metrics.trust == min(100, before.trust + 10)
        assert rel.metrics.affection == before.affection
        assert rel.history[-1].description == "Sarah and Alex grew closer"

    def test_knowledge_is_private(self, state):
        new_state = process_npc_change(state, NPCChange(
            npc_id="julia", change_type=NPCChangeType.KNOWLEDGE, description="Julia overheard a call",
        ))
        assert new_state.timeline[-1].type == TimelineEventType.REVELATION
        assert new_state.timeline[-1].visibility == Visibility.PRIVATE

    def test_status_ignored(self, state):
        change = NPCChange(npc_id="julia", change_type=NPCChangeType.STATUS, description="Promoted")
        assert process_npc_change(state, change) is state


class TestArcProgression:
    """Test check_arc_progressions."""

    def test_phase_advances(self, state):
        beats = [
            make_beat("a-1", StoryPhase.SETUP, triggered=True),
            make_beat("a-1", StoryPhase.RISING),
            make_beat("a-1", StoryPhase.RISING),
            make_beat("a-1", StoryPhase.CLIMAX),
            make_beat("a-1", StoryPhase.RESOLUTION),
        ]
        state = _with_arcs(state, make_arc("a-1", beats))
        assert check_arc_progressions(state).get_arc("a-1").phase == StoryPhase.RISING

    def test_phase_holds(self, state):
        beats = [
            make_beat("a-1", StoryPhase.RISING, triggered=True),
            make_beat("a-1", StoryPhase.RISING),
        ]
        state = _with_arcs(state, make_arc("a-1", beats, phase=StoryPhase.RISING))
        assert check_arc_progressions(state).get_arc("a-1").phase == StoryPhase.RISING

    def test_late_arc_completes(self, state):
        """Four of five beats done during resolution: the arc is over."""
        beats = [
            make_beat("a-1", StoryPhase.SETUP, triggered=True),
            make_beat("a-1", StoryPhase.RISING, triggered=True),
            make_beat("a-1", StoryPhase.RISING, triggered=True),
            make_beat("a-1", StoryPhase.CLIMAX, triggered=True),
            make_beat("a-1", StoryPhase.RESOLUTION),
        ]
        state = _with_arcs(state, make_arc("a-1", beats, phase=StoryPhase.RESOLUTION))
        new_state = check_arc_progressions(state)

        assert new_state.active_arcs == []
        assert new_state.completed_arcs[0].id == "a-1"
        assert new_state.completed_arcs[0].is_active is False

    def test_determinism(self, state):
        """Same state and seed, same result."""
        beat = make_beat(
            "a-1", StoryPhase.SETUP, trigger_type=TriggerType.RANDOM, trigger={"probability": 0.5},
        )
        state = _with_arcs(state, make_arc("a-1", [beat]))
        first = generate_simulation_directive(state, 2, rng=random.Random(9))
        second = generate_simulation_directive(state, 2, rng=random.Random(9))
        assert [b.id for b in first.possible_beats] == [b.id for b in second.possible_beats]
