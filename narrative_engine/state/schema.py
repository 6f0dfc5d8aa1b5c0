"""
Pydantic models for narrative engine state.

All state is versioned for migration support.
Designed to serialize to JSON but structured like database tables:
arcs, facts, relationships and timeline entries live in flat lists and
reference each other by id.
"""

from datetime import datetime
from enum import Enum
from pydantic import BaseModel, Field, field_validator
from uuid import uuid4


PLAYER_ID = "player"


# -----------------------------------------------------------------------------
# Enums
# -----------------------------------------------------------------------------

class Difficulty(str, Enum):
    REALISTIC = "realistic"
    DRAMATIC = "dramatic"
    CRAZY = "crazy"


DIFFICULTY_ORDER: list[Difficulty] = [
    Difficulty.REALISTIC,
    Difficulty.DRAMATIC,
    Difficulty.CRAZY,
]


class NPCTier(str, Enum):
    CORE = "core"
    SECONDARY = "secondary"
    TERTIARY = "tertiary"


class StoryPhase(str, Enum):
    SETUP = "setup"
    RISING = "rising"
    CLIMAX = "climax"
    RESOLUTION = "resolution"
    AFTERMATH = "aftermath"


PHASE_ORDER: list[StoryPhase] = list(StoryPhase)


class PlayerInvolvement(str, Enum):
    CENTRAL = "central"
    PERIPHERAL = "peripheral"
    UNAWARE = "unaware"
    DISCOVERING = "discovering"


class StoryArcType(str, Enum):
    MAIN = "main"
    SUBPLOT = "subplot"
    EMERGENT = "emergent"
    CONSEQUENCE = "consequence"


class StoryCategory(str, Enum):
    BETRAYAL = "betrayal"
    CONFLICT = "conflict"
    MYSTERY = "mystery"
    ROMANCE = "romance"
    CRISIS = "crisis"
    POWER = "power"
    SECRET = "secret"
    REVENGE = "revenge"


class StoryRole(str, Enum):
    PROTAGONIST = "protagonist"
    ANTAGONIST = "antagonist"
    VICTIM = "victim"
    ENABLER = "enabler"
    WITNESS = "witness"
    MANIPULATOR = "manipulator"
    MEDIATOR = "mediator"
    CATALYST = "catalyst"
    ALLY = "ally"
    RIVAL = "rival"


class StoryBeatType(str, Enum):
    REVELATION = "revelation"        # Information is revealed
    CONFRONTATION = "confrontation"  # Characters clash
    DECISION = "decision"            # Choice must be made
    CONSEQUENCE = "consequence"      # Results of previous action
    TWIST = "twist"                  # Unexpected development
    ALLIANCE = "alliance"            # Characters team up
    BETRAYAL = "betrayal"            # Trust is broken
    DISCOVERY = "discovery"          # Something is found
    ESCALATION = "escalation"        # Tension increases
    RESOLUTION = "resolution"        # Conflict is resolved


class TriggerType(str, Enum):
    DAY = "day"
    MESSAGE_COUNT = "message_count"
    TENSION_THRESHOLD = "tension_threshold"
    PLAYER_ACTION = "player_action"
    NPC_ACTION = "npc_action"
    MANUAL = "manual"
    RANDOM = "random"


class PlayerActionType(str, Enum):
    CONVERSATION = "conversation"
    ACCUSATION = "accusation"
    REVELATION = "revelation"
    VIOLENCE = "violence"
    ALLIANCE = "alliance"
    BETRAYAL = "betrayal"
    INVESTIGATION = "investigation"
    DECISION = "decision"
    GIFT = "gift"
    THREAT = "threat"
    CONFESSION = "confession"
    LIE = "lie"
    SILENCE = "silence"
    SUPPORT = "support"
    REJECTION = "rejection"


class ActionImpact(str, Enum):
    TRIVIAL = "trivial"
    MINOR = "minor"
    MODERATE = "moderate"
    MAJOR = "major"
    CRITICAL = "critical"


class ActionSource(str, Enum):
    CHAT = "chat"
    GROUP_CHAT = "group_chat"
    ACTION_MENU = "action_menu"
    SIMULATION_CHOICE = "simulation_choice"


class FactCategory(str, Enum):
    SECRET = "secret"
    EVENT = "event"
    RELATIONSHIP = "relationship"
    HISTORY = "history"
    RUMOR = "rumor"
    EVIDENCE = "evidence"


class FactImportance(str, Enum):
    TRIVIAL = "trivial"
    MINOR = "minor"
    SIGNIFICANT = "significant"
    MAJOR = "major"
    CRITICAL = "critical"


IMPORTANCE_RANK: dict[FactImportance, int] = {
    FactImportance.CRITICAL: 5,
    FactImportance.MAJOR: 4,
    FactImportance.SIGNIFICANT: 3,
    FactImportance.MINOR: 2,
    FactImportance.TRIVIAL: 1,
}


class Veracity(str, Enum):
    TRUE = "true"
    FALSE = "false"
    PARTIALLY_TRUE = "partially_true"
    UNKNOWN = "unknown"


class RelationshipEventType(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"
    COMPLEX = "complex"


class TimelineEventType(str, Enum):
    PLAYER_ACTION = "player_action"
    NPC_ACTION = "npc_action"
    SIMULATION_EVENT = "simulation_event"
    STORY_BEAT = "story_beat"
    REVELATION = "revelation"
    WORLD_CHANGE = "world_change"
    RELATIONSHIP_CHANGE = "relationship_change"
    DEATH = "death"
    ARRIVAL = "arrival"              # New NPC appears


class EventSource(str, Enum):
    CHAT = "chat"
    GROUP_CHAT = "group_chat"
    SIMULATION = "simulation"
    SYSTEM = "system"
    STORY_ARC = "story_arc"


class Visibility(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"
    SECRET = "secret"


class ConversationStrategy(str, Enum):
    AGGRESSIVE = "aggressive"
    DEFENSIVE = "defensive"
    MANIPULATIVE = "manipulative"
    SUPPORTIVE = "supportive"
    NEUTRAL = "neutral"


class ConsequenceType(str, Enum):
    IMMEDIATE = "immediate"
    DELAYED = "delayed"
    GRADUAL = "gradual"


class SeedType(str, Enum):
    SECRET = "secret"
    EVIDENCE = "evidence"
    RELATIONSHIP = "relationship"
    EVENT = "event"
    BETRAYAL = "betrayal"
    CRIME = "crime"
    AFFAIR = "affair"


class SeedSeverity(str, Enum):
    MINOR = "minor"
    MODERATE = "moderate"
    MAJOR = "major"
    EXPLOSIVE = "explosive"


class SimulationEventSeverity(str, Enum):
    MINOR = "minor"
    MODERATE = "moderate"
    MAJOR = "major"
    LIFE_CHANGING = "life-changing"


class NPCChangeType(str, Enum):
    RELATIONSHIP = "relationship"
    STATUS = "status"
    KNOWLEDGE = "knowledge"
    EMOTIONAL = "emotional"
    DEATH = "death"


# -----------------------------------------------------------------------------
# Playthrough Profile (caller-supplied, read-only to the engine)
# -----------------------------------------------------------------------------

def generate_id() -> str:
    return str(uuid4())[:8]


class Meters(BaseModel):
    """Five external 0-100 game meters. Read for guidance only."""
    family_harmony: int = 70
    career_standing: int = 50
    wealth: int = 50
    mental_health: int = 70
    reputation: int = 60


class ScenarioInfo(BaseModel):
    profession: str = ""
    workplace: str = ""
    living_situation: str = ""
    persona_type: str = ""              # e.g. "Ambitious Professional"


class NPCProfile(BaseModel):
    """
    A character as authored by the scenario/persona collaborator.

    Emotional state is free text at this boundary; engine code reads the
    parsed `emotions` list instead.
    """
    id: str = Field(default_factory=generate_id)
    name: str
    role: str = ""                      # "Wife", "Boss", "Coworker"
    tier: NPCTier = NPCTier.SECONDARY
    personality: str = ""
    emotional_state: list[str] = Field(default_factory=lambda: ["neutral"])
    relationship_status: str = ""       # with player
    is_active: bool = True
    is_dead: bool = False

    @field_validator("emotional_state", mode="before")
    @classmethod
    def _coerce_emotional_state(cls, value):
        if value is None:
            return ["neutral"]
        if isinstance(value, str):
            return [value]
        return value

    @property
    def is_available(self) -> bool:
        """Alive and reachable in play."""
        return self.is_active and not self.is_dead

    @property
    def emotions(self) -> list:
        """Closed emotion tags parsed from the free-text state."""
        from ..rules.emotions import parse_emotions
        return parse_emotions(self.emotional_state)


class PlaythroughProfile(BaseModel):
    """The player identity a narrative state belongs to."""
    id: str = Field(default_factory=generate_id)
    name: str
    difficulty: Difficulty = Difficulty.DRAMATIC
    current_day: int = 1
    scenario: ScenarioInfo = Field(default_factory=ScenarioInfo)
    meters: Meters = Field(default_factory=Meters)
    npcs: list[NPCProfile] = Field(default_factory=list)

    def get_npc(self, npc_id: str) -> NPCProfile | None:
        for npc in self.npcs:
            if npc.id == npc_id:
                return npc
        return None

    def available_npcs(self) -> list[NPCProfile]:
        return [n for n in self.npcs if n.is_available]

    def npc_names(self) -> dict[str, str]:
        return {n.id: n.name for n in self.npcs}


# -----------------------------------------------------------------------------
# Story Arcs
# -----------------------------------------------------------------------------

class TriggerCondition(BaseModel):
    type: TriggerType
    value: int | str | None = None
    probability: float | None = None    # 0-1, for random triggers


class StoryBeat(BaseModel):
    """A specific moment in a story arc."""
    id: str = Field(default_factory=lambda: str(uuid4()))
    arc_id: str
    phase: StoryPhase = StoryPhase.SETUP
    type: StoryBeatType
    title: str
    content: str
    participants: list[str] = Field(default_factory=list)
    triggered: bool = False
    triggered_day: int | None = None
    trigger_condition: TriggerCondition
    player_can_trigger: bool = True
    npc_can_trigger: bool = True
    consequences: list[str] = Field(default_factory=list)        # Beat ids this can trigger
    prerequisite_beats: list[str] = Field(default_factory=list)  # Beats that must fire first
    narrative_weight: int = 5                                    # 1-10, importance


class StoryArc(BaseModel):
    """A multi-beat plot thread that unfolds over time."""
    id: str
    type: StoryArcType = StoryArcType.SUBPLOT
    category: StoryCategory
    title: str
    premise: str
    participants: list[str] = Field(default_factory=list)        # NPC ids
    roles: dict[str, StoryRole] = Field(default_factory=dict)    # NPC id -> role
    phase: StoryPhase = StoryPhase.SETUP
    beats: list[StoryBeat] = Field(default_factory=list)
    tension: float = 0.0                                         # 0-100
    player_involvement: PlayerInvolvement = PlayerInvolvement.PERIPHERAL
    start_day: int = 1
    resolved_day: int | None = None
    parent_arc_id: str | None = None
    child_arc_ids: list[str] = Field(default_factory=list)
    is_active: bool = True

    @property
    def template_id(self) -> str:
        """Arc ids are '<template id>-<suffix>'."""
        return self.id.split("-")[0]

    def get_beat(self, beat_id: str) -> StoryBeat | None:
        for beat in self.beats:
            if beat.id == beat_id:
                return beat
        return None

    def holder_of(self, role: StoryRole) -> str | None:
        """NPC id holding a role in this arc, if any."""
        for npc_id, held in self.roles.items():
            if held == role:
                return npc_id
        return None

    def prerequisites_met(self, beat: StoryBeat) -> bool:
        for prereq_id in beat.prerequisite_beats:
            prereq = self.get_beat(prereq_id)
            if prereq is None or not prereq.triggered:
                return False
        return True


class BeatTemplate(BaseModel):
    phase: StoryPhase
    type: StoryBeatType
    template: str                                   # "{witness} confronts {antagonist}"
    trigger_type: TriggerType
    required_roles: list[StoryRole] = Field(default_factory=list)
    narrative_weight: int = 5


class StoryTemplate(BaseModel):
    """Template for procedurally generating a story arc."""
    id: str
    category: StoryCategory
    name: str
    premise: str
    required_roles: list[StoryRole]
    optional_roles: list[StoryRole] = Field(default_factory=list)
    beat_templates: list[BeatTemplate]
    min_tension: int
    max_tension: int
    typical_duration: int = 7                       # In days
    difficulty_min: Difficulty = Difficulty.REALISTIC
    tags: list[str] = Field(default_factory=list)


# -----------------------------------------------------------------------------
# Knowledge Graph
# -----------------------------------------------------------------------------

class WorldFact(BaseModel):
    """
    An atomic world truth.

    Immutable except for growth of `known_by` / `learned_when`.
    """
    id: str = Field(default_factory=lambda: str(uuid4()))
    content: str
    category: FactCategory
    importance: FactImportance
    known_by: list[str] = Field(default_factory=list)        # NPC ids + "player"
    learned_when: dict[str, int] = Field(default_factory=dict)
    can_spread: bool = False
    spread_probability: float = 0.0                          # 0-1
    related_facts: list[str] = Field(default_factory=list)
    source: str = ""
    veracity: Veracity = Veracity.TRUE
    expires_day: int | None = None


class Suspicion(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    about: str                                # NPC id or "player"
    content: str
    confidence: float = 0.0                   # 0-100
    evidence: list[str] = Field(default_factory=list)
    day_formed: int = 1


class LearnedFact(BaseModel):
    fact_id: str
    day: int


class NPCKnowledge(BaseModel):
    """What one character knows."""
    npc_id: str
    facts: list[str] = Field(default_factory=list)           # Fact ids
    suspicions: list[Suspicion] = Field(default_factory=list)
    secrets: list[str] = Field(default_factory=list)         # Known facts kept secret
    recent_learned: list[LearnedFact] = Field(default_factory=list)


class StorySeed(BaseModel):
    """
    A concrete, scenario-matched fact an NPC can reveal in conversation.

    The witness knows it; the subject is who it concerns and will not
    confess it unprompted.
    """
    id: str = Field(default_factory=lambda: str(uuid4()))
    fact: str
    known_by: list[str] = Field(default_factory=list)
    subject_id: str | None = None             # None when the player is the subject
    type: SeedType = SeedType.SECRET
    severity: SeedSeverity = SeedSeverity.MODERATE
    revealed_to_player: bool = False
    revealed_to: list[str] = Field(default_factory=list)
    narrative_priority: int = 1               # Lower = reveal sooner


# -----------------------------------------------------------------------------
# Relationships
# -----------------------------------------------------------------------------

class RelationshipMetrics(BaseModel):
    trust: float = 50.0        # -100 to 100
    affection: float = 50.0    # -100 to 100
    fear: float = 0.0          # 0 to 100
    respect: float = 50.0      # -100 to 100
    rivalry: float = 0.0       # 0 to 100
    dependency: float = 0.0    # 0 to 100


class RelationshipEvent(BaseModel):
    day: int
    type: RelationshipEventType
    description: str
    impact_on_metrics: dict[str, float] = Field(default_factory=dict)


class Relationship(BaseModel):
    """One direction of a relationship. Both directions are stored separately."""
    from_id: str
    to_id: str
    metrics: RelationshipMetrics = Field(default_factory=RelationshipMetrics)
    status: str = ""                          # "loving spouse", "bitter rival"
    history: list[RelationshipEvent] = Field(default_factory=list)
    secrets: list[str] = Field(default_factory=list)
    current_dynamic: str = ""


# -----------------------------------------------------------------------------
# Timeline and Player Actions
# -----------------------------------------------------------------------------

class EventImpact(BaseModel):
    meters_affected: list[dict] = Field(default_factory=list)
    relationships_affected: list[dict] = Field(default_factory=list)
    stories_affected: list[str] = Field(default_factory=list)
    facts_created: list[str] = Field(default_factory=list)
    facts_revealed: list[dict] = Field(default_factory=list)


class TimelineEvent(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    day: int
    timestamp: datetime = Field(default_factory=datetime.now)
    type: TimelineEventType
    source: EventSource
    title: str
    description: str = ""
    participants: list[str] = Field(default_factory=list)
    impact: EventImpact = Field(default_factory=EventImpact)
    linked_events: list[str] = Field(default_factory=list)
    visibility: Visibility = Visibility.PUBLIC


class PlayerAction(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    type: PlayerActionType
    day: int
    timestamp: datetime = Field(default_factory=datetime.now)
    source: ActionSource = ActionSource.CHAT
    target: str | None = None
    secondary_targets: list[str] = Field(default_factory=list)
    content: str
    context: str = ""
    witnesses: list[str] = Field(default_factory=list)
    impact: ActionImpact = ActionImpact.TRIVIAL
    consequences_triggered: list[str] = Field(default_factory=list)  # Beat ids
    emotional_tone: str = "neutral"


class PendingConsequence(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    source_action_id: str
    description: str
    target_npcs: list[str] = Field(default_factory=list)
    manifest_day: int
    severity: ActionImpact = ActionImpact.MODERATE
    type: ConsequenceType = ConsequenceType.DELAYED


class ScheduledBeat(BaseModel):
    beat_id: str
    day: int


# -----------------------------------------------------------------------------
# Group Conversations (ephemeral)
# -----------------------------------------------------------------------------

class ConversationAgenda(BaseModel):
    npc_id: str
    goals: list[str] = Field(default_factory=list)
    must_reveal: str | None = None            # Fact id
    reveal_after_messages: int = 999
    conflicts_with: list[str] = Field(default_factory=list)
    allied_with: list[str] = Field(default_factory=list)
    current_strategy: ConversationStrategy = ConversationStrategy.NEUTRAL


class GroupAlliance(BaseModel):
    """Two participants who trust and like each other on average."""
    npc1_id: str
    npc2_id: str
    strength: float


class GroupConversationState(BaseModel):
    group_id: str
    participant_ids: list[str]
    agendas: list[ConversationAgenda] = Field(default_factory=list)
    shared_facts: dict[str, list[str]] = Field(default_factory=dict)  # Fact id -> participants who know it
    alliances: list[GroupAlliance] = Field(default_factory=list)
    emergent_arcs: list[str] = Field(default_factory=list)
    tension_level: float = 0.0
    revealed_facts: list[str] = Field(default_factory=list)
    message_count: int = 0
    significant_moments: list[str] = Field(default_factory=list)  # Timeline event ids

    def get_agenda(self, npc_id: str) -> ConversationAgenda | None:
        for agenda in self.agendas:
            if agenda.npc_id == npc_id:
                return agenda
        return None


class SeedConflict(BaseModel):
    npc_name: str
    conflict: str


class RevelationDirective(BaseModel):
    """What one NPC must do in the current conversation."""
    npc_id: str
    must_reveal: str | None = None            # Seed fact text
    reveal_after_messages: int = 999
    conversation_goal: str = ""
    conflicts: list[SeedConflict] = Field(default_factory=list)


# -----------------------------------------------------------------------------
# Simulation (directive out, parsed result in)
# -----------------------------------------------------------------------------

class NPCAgenda(BaseModel):
    """Off-screen agenda for a time jump."""
    npc_id: str
    goals: list[str] = Field(default_factory=list)
    priorities: list[str] = Field(default_factory=list)
    will_do: list[str] = Field(default_factory=list)
    wont_do: list[str] = Field(default_factory=list)
    current_focus: str = "Daily activities"


class SimulationDirective(BaseModel):
    day: int
    mandatory_beats: list[StoryBeat] = Field(default_factory=list)
    possible_beats: list[StoryBeat] = Field(default_factory=list)
    npc_agendas: list[NPCAgenda] = Field(default_factory=list)
    pending_consequences: list[PendingConsequence] = Field(default_factory=list)
    world_state_guidance: list[str] = Field(default_factory=list)
    tension_target: float = 0.0
    focus_arcs: list[str] = Field(default_factory=list)


class SimulationEvent(BaseModel):
    """One upstream-parsed event. Missing optional fields default to empty."""
    id: str = Field(default_factory=generate_id)
    title: str = ""
    description: str = ""
    involved_npcs: list[str] = Field(default_factory=list)
    consequence_chain: str = ""
    severity: SimulationEventSeverity = SimulationEventSeverity.MODERATE

    @field_validator("involved_npcs", mode="before")
    @classmethod
    def _none_is_empty(cls, value):
        return value or []


class NPCChange(BaseModel):
    npc_id: str
    change_type: NPCChangeType
    description: str = ""


class MeterChange(BaseModel):
    meter: str
    previous_value: int = 0
    new_value: int = 0
    reason: str = ""


class SimulationResult(BaseModel):
    id: str = Field(default_factory=generate_id)
    identity_id: str = ""
    from_day: int
    to_day: int
    jump_type: str = "day"
    events: list[SimulationEvent] = Field(default_factory=list)
    meter_changes: list[MeterChange] = Field(default_factory=list)
    npc_changes: list[NPCChange] = Field(default_factory=list)

    @field_validator("events", "meter_changes", "npc_changes", mode="before")
    @classmethod
    def _none_is_empty(cls, value):
        return value or []


# -----------------------------------------------------------------------------
# Root State
# -----------------------------------------------------------------------------

def default_reputation() -> dict[str, float]:
    return {
        "trustworthy": 50,
        "dangerous": 0,
        "generous": 50,
        "manipulative": 0,
        "reliable": 50,
    }


class NarrativeState(BaseModel):
    """
    Complete narrative state for one playthrough.

    This is the root model that gets serialized. Every engine operation
    takes one and returns a new one; nothing mutates it in place.
    """
    schema_version: str = "1.1.0"  # Added beat phases and story seeds

    identity_id: str
    difficulty: Difficulty = Difficulty.DRAMATIC
    current_day: int = 1

    # Story management
    active_arcs: list[StoryArc] = Field(default_factory=list)
    completed_arcs: list[StoryArc] = Field(default_factory=list)
    arc_queue: list[StoryArc] = Field(default_factory=list)

    # Knowledge management
    world_facts: list[WorldFact] = Field(default_factory=list)
    npc_knowledge: dict[str, NPCKnowledge] = Field(default_factory=dict)
    story_seeds: list[StorySeed] = Field(default_factory=list)

    # Relationships
    relationships: list[Relationship] = Field(default_factory=list)

    # Timeline and player tracking
    timeline: list[TimelineEvent] = Field(default_factory=list)
    player_actions: list[PlayerAction] = Field(default_factory=list)
    player_reputation: dict[str, float] = Field(default_factory=default_reputation)

    # Pending items
    pending_consequences: list[PendingConsequence] = Field(default_factory=list)
    scheduled_beats: list[ScheduledBeat] = Field(default_factory=list)

    # Group conversations, keyed by group id
    active_group_conversations: dict[str, GroupConversationState] = Field(default_factory=dict)

    # World state
    global_tension: float = 30.0
    current_themes: list[str] = Field(default_factory=list)

    last_updated: datetime = Field(default_factory=datetime.now)

    def get_fact(self, fact_id: str) -> WorldFact | None:
        for fact in self.world_facts:
            if fact.id == fact_id:
                return fact
        return None

    def get_arc(self, arc_id: str) -> StoryArc | None:
        for arc in self.active_arcs:
            if arc.id == arc_id:
                return arc
        return None
