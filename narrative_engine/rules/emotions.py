"""
Emotion tags and their behavioural mappings as pure data.

Free-text emotional state ("quietly furious, a bit guilty") is parsed once
at the profile boundary into a closed set of tags. Everything downstream
dispatches on tags through the tables below, never on raw strings.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from ..state.schema import ConversationStrategy


class Emotion(str, Enum):
    ANGRY = "angry"
    FURIOUS = "furious"
    BITTER = "bitter"
    RESENTFUL = "resentful"
    SUSPICIOUS = "suspicious"
    PARANOID = "paranoid"
    CALCULATING = "calculating"
    SCARED = "scared"
    ANXIOUS = "anxious"
    GUILTY = "guilty"
    SAD = "sad"
    GRIEVING = "grieving"
    LOVING = "loving"
    SUPPORTIVE = "supportive"
    HAPPY = "happy"
    CONTENT = "content"
    NEUTRAL = "neutral"


def parse_emotions(value: str | list[str] | None) -> list[Emotion]:
    """
    Parse free-text emotional state into tags.

    Matching is by substring, case-insensitive, in enum order. Text with no
    recognised word parses as [NEUTRAL].
    """
    if value is None:
        return [Emotion.NEUTRAL]
    if isinstance(value, str):
        value = [value]

    text = " ".join(value).lower()
    found = [
        emotion for emotion in Emotion
        if emotion is not Emotion.NEUTRAL and emotion.value in text
    ]
    return found or [Emotion.NEUTRAL]


def _any(emotions: list[Emotion], wanted: frozenset[Emotion]) -> bool:
    return any(e in wanted for e in emotions)


# -----------------------------------------------------------------------------
# Conversation strategy
# -----------------------------------------------------------------------------

# First matching row wins
STRATEGY_TABLE: list[tuple[frozenset[Emotion], ConversationStrategy]] = [
    (frozenset({Emotion.ANGRY, Emotion.FURIOUS}), ConversationStrategy.AGGRESSIVE),
    (frozenset({Emotion.SCARED, Emotion.ANXIOUS}), ConversationStrategy.DEFENSIVE),
    (frozenset({Emotion.SUSPICIOUS, Emotion.CALCULATING}), ConversationStrategy.MANIPULATIVE),
    (frozenset({Emotion.LOVING, Emotion.SUPPORTIVE}), ConversationStrategy.SUPPORTIVE),
]


def choose_strategy(
    emotions: list[Emotion],
    conflict_count: int,
    ally_count: int,
) -> ConversationStrategy:
    """Pick a group-scene strategy from emotion, then from the social position."""
    for wanted, strategy in STRATEGY_TABLE:
        if _any(emotions, wanted):
            return strategy

    if conflict_count > 2:
        return ConversationStrategy.DEFENSIVE
    if ally_count > 1:
        return ConversationStrategy.AGGRESSIVE
    return ConversationStrategy.NEUTRAL


# -----------------------------------------------------------------------------
# Goals
# -----------------------------------------------------------------------------

# Every matching row contributes its goal
GROUP_GOAL_TABLE: list[tuple[frozenset[Emotion], str]] = [
    (frozenset({Emotion.ANGRY}), "Confront someone about what's making you angry"),
    (frozenset({Emotion.SUSPICIOUS}), "Figure out what others are hiding"),
    (frozenset({Emotion.SCARED}), "Seek protection or allies"),
    (frozenset({Emotion.SAD, Emotion.GRIEVING}), "Seek comfort or express your pain"),
    (frozenset({Emotion.GUILTY}), "Consider confessing or deflecting blame"),
]


def group_goals_for(emotions: list[Emotion]) -> list[str]:
    return [goal for wanted, goal in GROUP_GOAL_TABLE if _any(emotions, wanted)]


# First matching row wins
SEED_GOAL_TABLE: list[tuple[frozenset[Emotion], str]] = [
    (
        frozenset({Emotion.ANGRY, Emotion.FURIOUS}),
        "Confront someone about what's making you angry. NAME the specific thing.",
    ),
    (
        frozenset({Emotion.SUSPICIOUS}),
        "Get someone to slip up and reveal what they're hiding. Ask pointed questions.",
    ),
    (
        frozenset({Emotion.GUILTY}),
        "You're close to confessing something. The pressure is getting to you.",
    ),
    (
        frozenset({Emotion.SCARED, Emotion.ANXIOUS}),
        "Warn others about what you've seen or heard. Be specific about the danger.",
    ),
    (
        frozenset({Emotion.BITTER, Emotion.RESENTFUL}),
        "Make a cutting remark about someone's past actions. Bring up old wounds.",
    ),
    (
        frozenset({Emotion.SAD, Emotion.GRIEVING}),
        "Share what's really bothering you. Open up about the actual problem.",
    ),
]

DEFAULT_SEED_GOAL = "Push someone to reveal what they know. Don't let them deflect."


def seed_goal_for(emotions: list[Emotion]) -> str:
    for wanted, goal in SEED_GOAL_TABLE:
        if _any(emotions, wanted):
            return goal
    return DEFAULT_SEED_GOAL


# -----------------------------------------------------------------------------
# Relationship inference
# -----------------------------------------------------------------------------

# First matching row wins; deltas applied on top of role-derived metrics
EMOTION_METRIC_TABLE: list[tuple[frozenset[Emotion], dict[str, float]]] = [
    (
        frozenset({Emotion.ANGRY, Emotion.BITTER, Emotion.RESENTFUL}),
        {"affection": -15, "trust": -10},
    ),
    (
        frozenset({Emotion.LOVING, Emotion.HAPPY, Emotion.CONTENT}),
        {"affection": 10, "trust": 5},
    ),
    (frozenset({Emotion.SUSPICIOUS, Emotion.PARANOID}), {"trust": -20}),
    (frozenset({Emotion.SCARED, Emotion.ANXIOUS}), {"fear": 15}),
]


def emotion_metric_adjustment(emotions: list[Emotion]) -> dict[str, float]:
    for wanted, deltas in EMOTION_METRIC_TABLE:
        if _any(emotions, wanted):
            return dict(deltas)
    return {}


# -----------------------------------------------------------------------------
# Off-screen agendas
# -----------------------------------------------------------------------------

@dataclass
class AgendaFragment:
    """Agenda lines contributed by one emotion row."""
    goals: list[str] = field(default_factory=list)
    will_do: list[str] = field(default_factory=list)
    wont_do: list[str] = field(default_factory=list)


OFFSCREEN_AGENDA_TABLE: list[tuple[frozenset[Emotion], AgendaFragment]] = [
    (
        frozenset({Emotion.ANGRY, Emotion.BITTER}),
        AgendaFragment(
            goals=["Seek confrontation or vindication"],
            will_do=["Pick fights or make accusations"],
        ),
    ),
    (
        frozenset({Emotion.SCARED, Emotion.ANXIOUS}),
        AgendaFragment(
            goals=["Seek safety and reassurance"],
            will_do=["Avoid dangerous situations"],
            wont_do=["Take unnecessary risks"],
        ),
    ),
    (
        frozenset({Emotion.GUILTY}),
        AgendaFragment(
            goals=["Deal with guilt - confess or rationalize"],
            will_do=["Act erratically or make mistakes"],
        ),
    ),
]


def offscreen_agenda_for(emotions: list[Emotion]) -> AgendaFragment:
    """Merge every matching off-screen agenda row."""
    merged = AgendaFragment()
    for wanted, fragment in OFFSCREEN_AGENDA_TABLE:
        if _any(emotions, wanted):
            merged.goals.extend(fragment.goals)
            merged.will_do.extend(fragment.will_do)
            merged.wont_do.extend(fragment.wont_do)
    return merged
