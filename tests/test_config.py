"""Tests for engine tuning and the user config file."""

from narrative_engine.config import (
    DEFAULT_CONFIG,
    NARRATIVE_CONFIG,
    get_config_path,
    load_config,
    save_config,
)


class TestUserConfig:
    """Test load_config / save_config."""

    def test_defaults_when_missing(self, tmp_path):
        assert load_config(tmp_path) == DEFAULT_CONFIG

    def test_defaults_are_copies(self, tmp_path):
        config = load_config(tmp_path)
        config["seed_count"] = 99
        assert DEFAULT_CONFIG["seed_count"] == 8

    def test_save_and_load(self, tmp_path):
        """Saved values win; missing keys come from defaults."""
        assert save_config({"difficulty": "crazy", "random_seed": 7}, tmp_path)

        config = load_config(tmp_path)
        assert config["difficulty"] == "crazy"
        assert config["random_seed"] == 7
        assert config["seed_count"] == DEFAULT_CONFIG["seed_count"]

    def test_save_creates_directory(self, tmp_path):
        saves = tmp_path / "nested" / "saves"
        assert save_config(DEFAULT_CONFIG, saves)
        assert get_config_path(saves).exists()

    def test_corrupt_file_gives_defaults(self, tmp_path):
        get_config_path(tmp_path).write_text("{not json", encoding="utf-8")
        assert load_config(tmp_path) == DEFAULT_CONFIG


class TestEngineTuning:
    """Sanity checks on NARRATIVE_CONFIG."""

    def test_base_tension_per_difficulty(self):
        assert NARRATIVE_CONFIG["base_tension"] == {
            "realistic": 20,
            "dramatic": 40,
            "crazy": 60,
            "fallback": 30,
        }

    def test_simulation_target_bounds(self):
        sim = NARRATIVE_CONFIG["simulation"]
        assert sim["target_min"] < sim["target_max"]
