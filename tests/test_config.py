from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from lexideck.config import DEFAULT_CONFIG, load_config, require_completion_settings
from lexideck.errors import ConfigurationError


def write_config(path: Path, data: dict) -> Path:
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


def test_explicit_config_merges_over_defaults_and_resolves_paths(tmp_path: Path) -> None:
    config_dir = tmp_path / "cfg"
    config_dir.mkdir()
    config_path = write_config(
        config_dir / "lexideck.yaml",
        {
            "completion": {"model": "openai/gpt-4o-mini"},
            "scheduler": {"max_retries": 2},
            "paths": {"words": "lists/czech.txt"},
        },
    )

    result = load_config(config_path, include_sources=True, environ={})
    config = result.config

    assert result.sources == (str(config_path.resolve()),)
    assert config["completion"]["model"] == "openai/gpt-4o-mini"
    assert config["completion"]["base_url"] == DEFAULT_CONFIG["completion"]["base_url"]
    assert config["scheduler"]["max_retries"] == 2
    assert config["scheduler"]["max_backoff_seconds"] == 60.0
    assert config["paths"]["words"] == str(config_dir.resolve() / "lists" / "czech.txt")
    assert Path(config["paths"]["audio"]).is_dir()
    assert Path(config["paths"]["logs"]).is_dir()


def test_environment_overrides_completion_settings(tmp_path: Path) -> None:
    config_path = write_config(tmp_path / "config.yaml", {})
    environ = {"OPENAI_API_KEY": "sk-test", "OPENAI_BASE_URL": "http://llm.local/v1", "MODEL_NAME": "tiny"}

    config = load_config(config_path, environ=environ)

    completion = require_completion_settings(config)
    assert completion["api_key"] == "sk-test"
    assert completion["base_url"] == "http://llm.local/v1"
    assert completion["model"] == "tiny"


def test_missing_completion_settings_name_the_variables(tmp_path: Path) -> None:
    config = load_config(write_config(tmp_path / "config.yaml", {}), environ={})
    with pytest.raises(ConfigurationError, match="OPENAI_API_KEY"):
        require_completion_settings(config)


def test_missing_explicit_file_is_an_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError, match="not found"):
        load_config(tmp_path / "nope.yaml", environ={})


@pytest.mark.parametrize(
    "overrides",
    [
        {"scheduler": {"min_backoff_seconds": 0}},
        {"scheduler": {"max_retries": -1}},
        {"translation": {"concurrency": "many"}},
        {"deck": {"new_items_per_group": 0}},
        {"audio": {"backends": []}},
        {"audio": {"backends": [{"name": "x", "kind": "morse"}]}},
        {"audio": {"backends": [{"name": "x", "kind": "http", "concurrency": 1}]}},
    ],
)
def test_invalid_values_are_rejected(tmp_path: Path, overrides: dict) -> None:
    with pytest.raises(ConfigurationError):
        load_config(write_config(tmp_path / "config.yaml", overrides), environ={})


def test_root_must_be_a_mapping(tmp_path: Path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ConfigurationError, match="mapping"):
        load_config(path, environ={})
