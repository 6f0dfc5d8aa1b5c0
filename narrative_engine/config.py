"""
Engine tuning and user configuration.

NARRATIVE_CONFIG is the single source for thresholds and probabilities
used by the systems. Engine functions take an optional `config` argument
with the same shape to override it (tests, alternate pacing).

The user config file stores CLI preferences in a JSON file.
"""

import json
from pathlib import Path
from typing import TypedDict


# ─── Engine Tuning ───────────────────────────────────────────

NARRATIVE_CONFIG = {
    "base_tension": {
        "realistic": 20,
        "dramatic": 40,
        "crazy": 60,
        "fallback": 30,
    },
    "initial_arcs": {
        "realistic": 2,
        "dramatic": 3,
        "crazy": 5,
    },
    "arc_generation": {
        "optional_role_chance": 0.5,     # Per optional role
        "tension_weight": 0.5,           # Share of template range driven by global tension
        "default_triggers": {
            "day": 1,
            "message_count": 5,
            "tension_threshold": 60,
            "random_probability": 0.3,
        },
    },
    "progression": {
        "phase_advance_ratio": 0.7,      # Current-phase beats triggered
        "completion_ratio": 0.8,         # All beats triggered, resolution/aftermath only
    },
    "relationships": {
        "npc_player_trust_jitter": 20,   # Full width, centred on zero
        "npc_player_affection_jitter": 15,
        "npc_npc_variance": 30,
        "core_rivalry_max": 30,
    },
    "tension": {
        "trust_weight": 0.4,
        "rivalry_weight": 0.4,
        "fear_weight": 0.2,
        "undefined_pair": 50,
    },
    "group": {
        "max_active_arcs": 5,            # No emergent arcs at or above this
        "high_tension": 60,
        "high_tension_arc_chance": 0.3,
        "conflict_arc_chance": 0.2,
        "conflicting_facts_min": 2,
        "reveal_after_min": 3,
        "reveal_after_max": 7,
        "reveal_word_min_length": 5,     # Words longer than 4 chars
        "reveal_word_matches": 2,
        "message_tension": {
            "accusatory": {"keywords": ["accuse", "liar", "betrayed"], "delta": 5},
            "cooperative": {"keywords": ["trust", "together", "help"], "delta": -3},
            "violent": {"keywords": ["kill", "destroy", "revenge"], "delta": 10},
        },
        "thresholds": {
            "rivalry_conflict": 50,
            "trust_conflict": 30,
            "affection_conflict": 30,
            "ally_trust": 60,
            "ally_affection": 50,
        },
    },
    "revelation": {
        # Own-message thresholds for seed revelation pressure
        "force_at": 4,
        "soon_at": 2,
        "soon_countdown": 2,
        "late_countdown": 3,
        "late_total_min": 4,
        "hint_countdown": 3,
        "never": 999,
        # Fact-based selection thresholds by conversation length
        "message_thresholds": [(10, 1.0), (8, 0.8), (5, 0.5), (3, 0.3)],
        "base_threshold": 0.1,
        "shared_bonus": 2,
        "seed_match_ratio": 0.3,
    },
    "seeds": {
        "default_count": 8,
        "max_count": 15,
        "scenario_template_chance": 0.7,
        "third_party_chance": 0.3,
        "max_subject_attempts": 10,
        "max_conflicts": 3,
    },
    "propagation": {
        "high_trust": 60,
        "high_trust_multiplier": 1.5,
        "low_trust": 30,
        "low_trust_multiplier": 0.5,
        "high_affection": 60,
        "high_affection_multiplier": 1.3,
        "secret_multiplier": 0.3,
    },
    "simulation": {
        "tension_per_day": 2,
        "rising_bonus": 5,
        "climax_bonus": 10,
        "resolution_penalty": -10,
        "target_min": 10,
        "target_max": 95,
        "tension_pull": 0.5,
        "max_focus_arcs": 3,
        "focus_tension": 60,
        "low_meter": 30,
        "beat_word_matches": 3,
        "possible_default_probability": 0.3,
        "day_trigger_default": 0,
        "tension_trigger_default": 50,
    },
    "actions": {
        "bystander_witness_chance": 0.2,
        "tension_base": {
            "violence": 20,
            "betrayal": 15,
            "threat": 10,
            "accusation": 8,
            "revelation": 5,
            "rejection": 3,
            "lie": 2,
            "investigation": 1,
            "decision": 0,
            "silence": 0,
            "conversation": 0,
            "support": -2,
            "gift": -2,
            "alliance": -3,
            "confession": -5,
        },
        "impact_multiplier": {
            "trivial": 0.5,
            "minor": 0.75,
            "moderate": 1.0,
            "major": 1.5,
            "critical": 2.0,
        },
    },
}


# ─── User Config File ────────────────────────────────────────

class Config(TypedDict, total=False):
    """User configuration."""
    difficulty: str  # realistic, dramatic, crazy
    seed_count: int  # Story seeds per new playthrough
    random_seed: int | None  # Fixed seed for reproducible runs
    template_dir: str | None  # Override directory for prompt templates
    saves_dir: str  # Where the CLI keeps state files


DEFAULT_CONFIG: Config = {
    "difficulty": "dramatic",
    "seed_count": 8,
    "random_seed": None,
    "template_dir": None,
    "saves_dir": "saves",
}


def get_config_path(saves_dir: Path | str = "saves") -> Path:
    """Get path to config file."""
    return Path(saves_dir) / ".narrative_config.json"


def load_config(saves_dir: Path | str = "saves") -> Config:
    """Load config from file, or return defaults if not found."""
    path = get_config_path(saves_dir)

    if not path.exists():
        return DEFAULT_CONFIG.copy()

    try:
        with open(path, "r", encoding="utf-8") as f:
            saved = json.load(f)
        # Merge with defaults to handle missing keys
        config = DEFAULT_CONFIG.copy()
        config.update(saved)
        return config
    except (json.JSONDecodeError, IOError):
        return DEFAULT_CONFIG.copy()


def save_config(config: Config, saves_dir: Path | str = "saves") -> bool:
    """Save config to file. Returns True on success."""
    path = get_config_path(saves_dir)
    path.parent.mkdir(parents=True, exist_ok=True)

    try:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(config, f, indent=2)
        return True
    except IOError:
        return False
