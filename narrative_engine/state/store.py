"""
Narrative state storage abstraction.

The engine itself exchanges plain values; these stores are a convenience
at the persistence boundary, one slot per playthrough.
"""

from pathlib import Path
from typing import Protocol, runtime_checkable

from .schema import NarrativeState
from .serialization import deserialize_state, serialize_state


@runtime_checkable
class NarrativeStore(Protocol):
    """
    Storage interface for narrative states.

    Implementations:
    - JsonNarrativeStore: File-based persistence
    - MemoryNarrativeStore: In-memory storage (testing)
    """

    def save(self, state: NarrativeState) -> None:
        """Persist a state under its identity id."""
        ...

    def load(self, identity_id: str) -> NarrativeState | None:
        """Load a state. Returns None if no state is saved yet."""
        ...

    def delete(self, identity_id: str) -> bool:
        """Delete a state. Returns True if deleted."""
        ...

    def list_all(self) -> list[dict]:
        """List saved states with metadata."""
        ...

    def exists(self, identity_id: str) -> bool:
        ...


def _summary(state: NarrativeState) -> dict:
    return {
        "id": state.identity_id,
        "day": state.current_day,
        "difficulty": state.difficulty.value,
        "active_arcs": len(state.active_arcs),
        "tension": state.global_tension,
        "updated_at": state.last_updated,
    }


class JsonNarrativeStore:
    """
    File-based storage, one JSON file per playthrough.

    The previous save is kept as a .bak file. A corrupt file raises
    StateDeserializationError from load() rather than reading as empty.
    """

    def __init__(self, saves_dir: Path | str = "saves"):
        self.saves_dir = Path(saves_dir)
        self.saves_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, identity_id: str) -> Path:
        return self.saves_dir / f"{identity_id}.json"

    def save(self, state: NarrativeState) -> None:
        """Save state to JSON file with backup."""
        state_file = self._path(state.identity_id)

        # Backup previous save
        if state_file.exists():
            backup = state_file.with_suffix(".json.bak")
            backup.write_text(state_file.read_text(encoding="utf-8"), encoding="utf-8")

        state_file.write_text(serialize_state(state, indent=2), encoding="utf-8")

    def load(self, identity_id: str) -> NarrativeState | None:
        state_file = self._path(identity_id)
        if not state_file.exists():
            return None
        return deserialize_state(state_file.read_text(encoding="utf-8"))

    def delete(self, identity_id: str) -> bool:
        state_file = self._path(identity_id)
        if state_file.exists():
            state_file.unlink()
            return True
        return False

    def list_all(self) -> list[dict]:
        """List saved states, most recently modified first. Unreadable files are skipped."""
        states = []
        for f in sorted(
            self.saves_dir.glob("*.json"),
            key=lambda x: x.stat().st_mtime,
            reverse=True,
        ):
            if f.name.startswith("."):
                continue
            try:
                state = deserialize_state(f.read_text(encoding="utf-8"))
            except ValueError:
                continue
            if state is not None:
                states.append(_summary(state))
        return states

    def exists(self, identity_id: str) -> bool:
        return self._path(identity_id).exists()


class MemoryNarrativeStore:
    """
    In-memory storage for testing.

    Stores serialized text so loads go through the same round-trip as files.
    """

    def __init__(self):
        self.payloads: dict[str, str] = {}

    def save(self, state: NarrativeState) -> None:
        self.payloads[state.identity_id] = serialize_state(state)

    def load(self, identity_id: str) -> NarrativeState | None:
        return deserialize_state(self.payloads.get(identity_id))

    def delete(self, identity_id: str) -> bool:
        if identity_id in self.payloads:
            del self.payloads[identity_id]
            return True
        return False

    def list_all(self) -> list[dict]:
        return [
            _summary(deserialize_state(payload))
            for payload in self.payloads.values()
        ]

    def exists(self, identity_id: str) -> bool:
        return identity_id in self.payloads
