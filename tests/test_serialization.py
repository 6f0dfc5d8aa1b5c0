"""Tests for state serialization and migration."""

import json
from datetime import datetime

import pytest

from narrative_engine.state import (
    CURRENT_SCHEMA_VERSION,
    StateDeserializationError,
    deserialize_state,
    migrate_state_data,
    serialize_state,
)
from narrative_engine.state.schema import StoryPhase
from narrative_engine.systems.actions import record_player_action
from narrative_engine.systems.arcs import initialize_narrative


class TestRoundTrip:
    """serialize -> deserialize gives back the same state."""

    def test_fresh_state(self, state):
        """Relationships and timestamps survive."""
        restored = deserialize_state(serialize_state(state))
        assert restored.model_dump() == state.model_dump()
        assert restored.last_updated == state.last_updated

    def test_played_state(self, profile, rng):
        """Arcs, facts, seeds, actions and timeline survive."""
        state = initialize_narrative(profile, rng)
        state = record_player_action(state, "I'm going to punch you", "mark", profile=profile, rng=rng)
        state = record_player_action(state, "The truth is I found out everything", profile=profile, rng=rng)

        restored = deserialize_state(serialize_state(state, indent=2))
        assert restored.model_dump() == state.model_dump()
        assert isinstance(restored.timeline[0].timestamp, datetime)

    def test_timestamps_are_tagged(self, state):
        """Datetimes are written as tagged objects, not bare strings."""
        data = json.loads(serialize_state(state))
        assert data["last_updated"]["__type"] == "Date"
        assert datetime.fromisoformat(data["last_updated"]["value"]) == state.last_updated


class TestDeserializeErrors:
    """Empty versus corrupt payloads."""

    @pytest.mark.parametrize("payload", [None, "", "   \n"])
    def test_empty_is_none(self, payload):
        """No saved state reads as None."""
        assert deserialize_state(payload) is None

    def test_malformed_json(self):
        """Broken JSON raises and keeps the payload."""
        with pytest.raises(StateDeserializationError) as exc:
            deserialize_state("{not json")
        assert exc.value.payload == "{not json"

    def test_not_an_object(self):
        """A JSON list is not a state."""
        with pytest.raises(StateDeserializationError):
            deserialize_state("[1, 2, 3]")

    def test_schema_mismatch(self):
        """Valid JSON missing required fields raises."""
        with pytest.raises(StateDeserializationError):
            deserialize_state('{"current_day": "abc"}')

    def test_is_value_error(self):
        """Callers catching ValueError also see corrupt states."""
        with pytest.raises(ValueError):
            deserialize_state("{")


class TestMigration:
    """Old payloads are brought up to date."""

    def _old_payload(self) -> dict:
        return {
            "version": 1,
            "identity_id": "old",
            "active_arcs": [{
                "id": "embezzlement-abc",
                "category": "betrayal",
                "title": "The Embezzlement",
                "premise": "Money is missing",
                "beats": [
                    {
                        "arc_id": "embezzlement-abc",
                        "type": "discovery",
                        "title": "The Embezzlement - rising",
                        "content": "Records are found",
                        "trigger_condition": {"type": "day", "value": 1},
                    },
                    {
                        "arc_id": "embezzlement-abc",
                        "type": "decision",
                        "title": "Untitled",
                        "content": "A choice",
                        "trigger_condition": {"type": "manual"},
                    },
                ],
            }],
        }

    def test_version_field_replaced(self):
        """Legacy `version` becomes schema_version at the current version."""
        data = migrate_state_data(self._old_payload())
        assert "version" not in data
        assert data["schema_version"] == CURRENT_SCHEMA_VERSION
        assert data["story_seeds"] == []

    def test_beat_phase_recovered(self):
        """Beat phases come from their titles, defaulting to setup."""
        state = deserialize_state(json.dumps(self._old_payload()))
        beats = state.active_arcs[0].beats
        assert beats[0].phase == StoryPhase.RISING
        assert beats[1].phase == StoryPhase.SETUP

    def test_current_payload_untouched(self, state):
        """Up-to-date payloads pass through unchanged."""
        data = json.loads(serialize_state(state))
        assert migrate_state_data(data) == data

    def test_does_not_mutate_input(self):
        """The caller's dict keeps its fields."""
        payload = self._old_payload()
        migrate_state_data(payload)
        assert payload["version"] == 1
