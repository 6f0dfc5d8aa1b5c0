"""
Relationship metric rules as pure functions.

Role and status text from the scenario boundary is classified once into
closed enums; metric inference is driven by the tables below.
"""

from __future__ import annotations

from enum import Enum

from ..state.schema import NPCProfile, RelationshipEventType, RelationshipMetrics
from .emotions import emotion_metric_adjustment


# Declared metric bounds
METRIC_BOUNDS: dict[str, tuple[float, float]] = {
    "trust": (-100, 100),
    "affection": (-100, 100),
    "fear": (0, 100),
    "respect": (-100, 100),
    "rivalry": (0, 100),
    "dependency": (0, 100),
}


class RoleKind(str, Enum):
    SPOUSE = "spouse"
    BOSS = "boss"
    FRIEND = "friend"
    RIVAL = "rival"
    PARENT = "parent"
    SIBLING = "sibling"
    OTHER = "other"


class StatusTone(str, Enum):
    TENSE = "tense"
    CLOSE = "close"
    HOSTILE = "hostile"
    NEUTRAL = "neutral"


# Keyword rows are checked in order; first match wins
ROLE_KEYWORDS: list[tuple[RoleKind, tuple[str, ...]]] = [
    (RoleKind.SPOUSE, ("spouse", "partner", "wife", "husband")),
    (RoleKind.BOSS, ("boss", "supervisor", "manager")),
    (RoleKind.FRIEND, ("friend",)),
    (RoleKind.RIVAL, ("rival", "enemy")),
    (RoleKind.PARENT, ("parent", "mother", "father")),
    (RoleKind.SIBLING, ("sibling", "brother", "sister")),
]

STATUS_KEYWORDS: list[tuple[StatusTone, tuple[str, ...]]] = [
    (StatusTone.TENSE, ("tense", "strained")),
    (StatusTone.CLOSE, ("close", "loving", "strong")),
    (StatusTone.HOSTILE, ("hostile", "cold")),
]

# Absolute values replacing the defaults
ROLE_METRICS: dict[RoleKind, dict[str, float]] = {
    RoleKind.SPOUSE: {"affection": 70, "trust": 65, "dependency": 40},
    RoleKind.BOSS: {"respect": 60, "fear": 20, "dependency": 30},
    RoleKind.FRIEND: {"affection": 60, "trust": 60},
    RoleKind.RIVAL: {"rivalry": 70, "trust": 20, "affection": 20},
    RoleKind.PARENT: {"affection": 60, "respect": 55, "dependency": 25},
    RoleKind.SIBLING: {"affection": 55, "rivalry": 30},
    RoleKind.OTHER: {},
}

# Deltas
STATUS_METRICS: dict[StatusTone, dict[str, float]] = {
    StatusTone.TENSE: {"trust": -15, "affection": -10},
    StatusTone.CLOSE: {"trust": 15, "affection": 15},
    StatusTone.HOSTILE: {"trust": -25, "affection": -20, "rivalry": 20},
    StatusTone.NEUTRAL: {},
}


def classify_role(role: str) -> RoleKind:
    text = role.lower()
    for kind, keywords in ROLE_KEYWORDS:
        if any(k in text for k in keywords):
            return kind
    return RoleKind.OTHER


def classify_status(status: str) -> StatusTone:
    text = status.lower()
    for tone, keywords in STATUS_KEYWORDS:
        if any(k in text for k in keywords):
            return tone
    return StatusTone.NEUTRAL


def clamp_metric(name: str, value: float) -> float:
    low, high = METRIC_BOUNDS[name]
    return max(low, min(high, value))


def clamp_metrics(metrics: RelationshipMetrics) -> RelationshipMetrics:
    """Return a copy with every metric inside its declared bounds."""
    return RelationshipMetrics(**{
        name: clamp_metric(name, value)
        for name, value in metrics.model_dump().items()
    })


def apply_deltas(
    metrics: RelationshipMetrics,
    deltas: dict[str, float],
) -> RelationshipMetrics:
    """Add partial deltas and clamp. Unknown metric names are ignored."""
    values = metrics.model_dump()
    for name, delta in deltas.items():
        if name in values and delta:
            values[name] += delta
    return clamp_metrics(RelationshipMetrics(**values))


def infer_metrics(npc: NPCProfile) -> RelationshipMetrics:
    """
    Derive player-facing starting metrics from an NPC's role, emotional
    state and relationship status text.

    Role sets absolute values; emotion and status then shift them.
    """
    values = RelationshipMetrics().model_dump()
    values.update(ROLE_METRICS[classify_role(npc.role)])

    for name, delta in emotion_metric_adjustment(npc.emotions).items():
        values[name] += delta
    for name, delta in STATUS_METRICS[classify_status(npc.relationship_status)].items():
        values[name] += delta

    return clamp_metrics(RelationshipMetrics(**values))


def classify_history(deltas: dict[str, float]) -> RelationshipEventType:
    """Classify a history entry by the net change of its deltas."""
    net = sum(deltas.values())
    if net > 0:
        return RelationshipEventType.POSITIVE
    if net < 0:
        return RelationshipEventType.NEGATIVE
    return RelationshipEventType.NEUTRAL
