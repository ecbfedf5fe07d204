from pathlib import Path

import pytest
import yaml

from songbird.config import (
    CONFIG_DIR_ENV,
    ConfigError,
    ConfigPaths,
    GlobalConfig,
    bootstrap,
    load_global_config,
)


def test_bootstrap_creates_starter_config(tmp_path):
    paths = ConfigPaths.from_base_dir(tmp_path / "songbird")

    report = bootstrap(paths)

    assert report.base_created is True
    assert report.state_dir_created is True
    assert report.global_config_created is True
    assert report.global_config_overwritten is False

    config = load_global_config(paths.global_config)
    assert config.yoto.access_token == "SET_ME"
    assert config.location.placeholder.city == "London"
    assert config.location.placeholder.timezone == "Europe/London"
    assert config.runtime.storage_dir == paths.state_dir
    assert config.cache_path == paths.state_dir / "update_cache.json"


def test_bootstrap_keeps_existing_config_unless_forced(tmp_path):
    paths = ConfigPaths.from_base_dir(tmp_path)
    bootstrap(paths)
    paths.global_config.write_text("yoto:\n  default_card_id: abc\n", encoding="utf-8")

    report = bootstrap(paths)
    assert report.global_config_created is False
    assert load_global_config(paths.global_config).yoto.default_card_id == "abc"

    report = bootstrap(paths, overwrite=True)
    assert report.global_config_overwritten is True
    assert load_global_config(paths.global_config).yoto.default_card_id is None


def test_default_paths_honour_environment(tmp_path, monkeypatch):
    monkeypatch.setenv(CONFIG_DIR_ENV, str(tmp_path / "custom"))

    paths = ConfigPaths.default()

    assert paths.base_dir == tmp_path / "custom"
    assert paths.global_config == tmp_path / "custom" / "config.yml"


def test_missing_config_file_raises(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        load_global_config(tmp_path / "config.yml")


def test_unknown_keys_are_rejected(tmp_path):
    path = tmp_path / "config.yml"
    path.write_text(yaml.safe_dump({"yoto": {"pasword": "x"}}), encoding="utf-8")

    with pytest.raises(ConfigError, match="Invalid configuration"):
        load_global_config(path)


def test_empty_rotation_is_rejected(tmp_path):
    path = tmp_path / "config.yml"
    path.write_text(yaml.safe_dump({"location": {"rotation": []}}), encoding="utf-8")

    with pytest.raises(ConfigError):
        load_global_config(path)


def test_non_mapping_config_is_rejected(tmp_path):
    path = tmp_path / "config.yml"
    path.write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(ConfigError, match="Expected mapping"):
        load_global_config(path)


def test_sweep_cards_fall_back_to_default_card():
    config = GlobalConfig.model_validate({"yoto": {"default_card_id": "card-9"}})

    assert [card.id for card in config.sweep_cards()] == ["card-9"]


def test_sweep_cards_prefer_schedule_entries():
    config = GlobalConfig.model_validate(
        {
            "yoto": {"default_card_id": "card-9"},
            "schedule": {"cards": [{"id": "card-1", "timezone": "Asia/Tokyo"}, {"id": "card-2", "ip": "8.8.8.8"}]},
        }
    )

    cards = config.sweep_cards()

    assert [card.id for card in cards] == ["card-1", "card-2"]
    assert cards[0].timezone == "Asia/Tokyo"
    assert cards[1].ip == "8.8.8.8"


def test_relative_cache_path_lives_in_storage_dir(tmp_path):
    config = GlobalConfig.model_validate(
        {"cache": {"path": "ledger.json"}, "runtime": {"storage_dir": str(tmp_path)}}
    )

    assert config.cache_path == Path(tmp_path) / "ledger.json"


def test_default_rotation_is_worldwide():
    config = GlobalConfig()

    countries = {place.country for place in config.location.rotation}
    assert len(config.location.rotation) == 38
    assert len(countries) > 10
