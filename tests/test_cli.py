"""Tests for the narrative-engine command line."""

import pytest
import yaml

from narrative_engine.interface.cli import build_parser, load_profile, main
from narrative_engine.state import deserialize_state
from narrative_engine.state.schema import Difficulty


@pytest.fixture
def profile_file(tmp_path, profile):
    path = tmp_path / "profile.yaml"
    path.write_text(yaml.safe_dump(profile.model_dump(mode="json")), encoding="utf-8")
    return path


@pytest.fixture
def state_file(tmp_path, profile_file):
    """A state written by `new` with a fixed seed."""
    out = tmp_path / "state.json"
    assert main(["--saves-dir", str(tmp_path), "new", str(profile_file), "--seed", "7", "--out", str(out)]) == 0
    return out


class TestParser:
    """Test argument parsing."""

    def test_directive_defaults(self):
        args = build_parser().parse_args(["directive", "state.json"])
        assert args.days == 1
        assert args.profile is None

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


class TestLoadProfile:
    """Test load_profile."""

    def test_round_trip(self, profile_file, profile):
        loaded = load_profile(profile_file)
        assert loaded.name == "Alex"
        assert [n.id for n in loaded.npcs] == ["sarah", "mark", "julia"]

    def test_default_difficulty_fills_gap(self, tmp_path):
        path = tmp_path / "bare.yaml"
        path.write_text("id: bare\nname: Sam\n", encoding="utf-8")
        assert load_profile(path, "crazy").difficulty == Difficulty.CRAZY


class TestCommands:
    """Test the new / show / directive commands."""

    def test_new_writes_state(self, state_file):
        state = deserialize_state(state_file.read_text(encoding="utf-8"))
        assert state.identity_id == "pt-1"
        assert state.active_arcs
        assert state.story_seeds

    def test_new_is_reproducible(self, tmp_path, profile_file, state_file):
        again = tmp_path / "again.json"
        main(["--saves-dir", str(tmp_path), "new", str(profile_file), "--seed", "7", "--out", str(again)])

        first = deserialize_state(state_file.read_text(encoding="utf-8"))
        second = deserialize_state(again.read_text(encoding="utf-8"))
        assert [a.title for a in first.active_arcs] == [a.title for a in second.active_arcs]

    def test_new_saves_to_store(self, tmp_path, profile_file):
        saves = tmp_path / "saves"
        assert main(["--saves-dir", str(saves), "new", str(profile_file), "--seed", "3"]) == 0
        assert (saves / "pt-1.json").exists()

    def test_show(self, tmp_path, state_file):
        assert main(["--saves-dir", str(tmp_path), "show", str(state_file)]) == 0

    def test_show_empty_file(self, tmp_path):
        empty = tmp_path / "empty.json"
        empty.write_text("", encoding="utf-8")
        assert main(["--saves-dir", str(tmp_path), "show", str(empty)]) == 1

    def test_show_corrupt_state(self, tmp_path):
        """Unreadable state is an error, not an empty slot."""
        broken = tmp_path / "broken.json"
        broken.write_text("{oops", encoding="utf-8")
        assert main(["--saves-dir", str(tmp_path), "show", str(broken)]) == 2

    def test_missing_profile(self, tmp_path):
        assert main(["--saves-dir", str(tmp_path), "new", str(tmp_path / "nope.yaml")]) == 2

    def test_directive_prompt(self, tmp_path, state_file, profile_file, capsys):
        code = main([
            "--saves-dir", str(tmp_path), "directive", str(state_file),
            "--days", "3", "--profile", str(profile_file), "--seed", "1",
        ])
        assert code == 0
        assert "TENSION TARGET" in capsys.readouterr().out

    def test_directive_json(self, tmp_path, state_file, capsys):
        """Without a profile the directive is printed as JSON."""
        assert main(["--saves-dir", str(tmp_path), "directive", str(state_file)]) == 0
        assert '"tension_target"' in capsys.readouterr().out
