"""
Pytest fixtures for narrative engine tests.

Provides a small cast of characters, seeded random sources and fresh
states built from them.
"""

import copy
import random

import pytest

from narrative_engine.config import NARRATIVE_CONFIG
from narrative_engine.state import create_narrative_state
from narrative_engine.state.schema import (
    Difficulty,
    NPCProfile,
    NPCTier,
    PlaythroughProfile,
    ScenarioInfo,
    StoryArc,
    StoryBeat,
    StoryBeatType,
    StoryCategory,
    StoryPhase,
    TriggerCondition,
    TriggerType,
)


@pytest.fixture
def rng():
    """Seeded random source for reproducible runs."""
    return random.Random(1234)


@pytest.fixture
def config():
    """Deep copy of the engine tuning, safe to modify per test."""
    return copy.deepcopy(NARRATIVE_CONFIG)


@pytest.fixture
def npcs():
    """Three characters around the player."""
    return [
        NPCProfile(
            id="sarah",
            name="Sarah",
            role="Wife",
            tier=NPCTier.CORE,
            emotional_state="suspicious",
            relationship_status="tense",
        ),
        NPCProfile(
            id="mark",
            name="Mark",
            role="Boss",
            tier=NPCTier.CORE,
            emotional_state=["angry"],
            relationship_status="strained professional",
        ),
        NPCProfile(
            id="julia",
            name="Julia",
            role="Friend",
            tier=NPCTier.SECONDARY,
            emotional_state="anxious",
            relationship_status="close",
        ),
    ]


@pytest.fixture
def profile(npcs):
    """Dramatic playthrough for an accountant."""
    return PlaythroughProfile(
        id="pt-1",
        name="Alex",
        difficulty=Difficulty.DRAMATIC,
        scenario=ScenarioInfo(
            profession="Accountant",
            workplace="Hartley & Co",
            persona_type="Ambitious Professional",
        ),
        npcs=npcs,
    )


@pytest.fixture
def state(profile, rng):
    """Fresh state: relationships only, no arcs or seeds."""
    return create_narrative_state(profile, rng)


def make_beat(
    arc_id: str,
    phase: StoryPhase,
    content: str = "Something happens",
    trigger_type: TriggerType = TriggerType.MANUAL,
    triggered: bool = False,
    beat_type: StoryBeatType = StoryBeatType.ESCALATION,
    **kwargs,
) -> StoryBeat:
    """Beat with sensible defaults for tests. `trigger` holds extra condition fields."""
    trigger = kwargs.pop("trigger", {})
    return StoryBeat(
        arc_id=arc_id,
        phase=phase,
        type=beat_type,
        title=f"Test Arc - {phase.value}",
        content=content,
        trigger_condition=TriggerCondition(type=trigger_type, **trigger),
        triggered=triggered,
        **kwargs,
    )


def make_arc(arc_id: str = "testarc-0001", beats=None, **kwargs) -> StoryArc:
    """Arc with sensible defaults for tests."""
    fields = {
        "id": arc_id,
        "category": StoryCategory.BETRAYAL,
        "title": "Test Arc",
        "premise": "Something is going on",
        "participants": ["sarah", "mark"],
        "beats": beats or [],
    }
    fields.update(kwargs)
    return StoryArc(**fields)
