"""Configuration loading and validation for LexiDeck."""

from __future__ import annotations

import copy
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, MutableMapping, Tuple

import yaml

from .errors import ConfigurationError


PROJECT_ROOT = Path(__file__).resolve().parents[1]
CONFIG_DIR = PROJECT_ROOT / "config"
CONFIG_PATH = CONFIG_DIR / "config.yaml"
ENV_CONFIG_PATH = "LEXIDECK_CONFIG"

# Environment variables that override the completion section.
ENV_OVERRIDES = {
    "OPENAI_API_KEY": "api_key",
    "OPENAI_BASE_URL": "base_url",
    "MODEL_NAME": "model",
}

BACKEND_KINDS = ("cli", "http")


DEFAULT_CONFIG: Dict[str, Any] = {
    "completion": {
        "base_url": "https://openrouter.ai/api/v1",
        "model": "",
        "api_key": "",
        "key_info_url": "https://openrouter.ai/api/v1/auth/key",
        "timeout": 120,
        "prompt_file": "flashcard_prompt.txt",
        # Set to false for gateways that reject additionalProperties or $schema.
        "strict_schema": True,
    },
    "scheduler": {
        "initial_requests_per_second": 1,
        "refresh_interval": 10,
        "max_retries": 5,
        "min_backoff_seconds": 1.0,
        "max_backoff_seconds": 60.0,
    },
    "translation": {
        "concurrency": 4,
        "poll_interval": 0.5,
    },
    "audio": {
        "extension": "wav",
        "max_attempts": 3,
        "backoff_seconds": 2.0,
        "poll_interval": 0.5,
        "backends": [
            {
                "name": "local-cli",
                "kind": "cli",
                "cli_path": ".venv/bin/tts",
                "model_name": "tts_models/cs/cv/vits",
                "concurrency": 1,
            },
        ],
    },
    "monitor": {
        "interval": 1.0,
        "grace_period": 5.0,
    },
    "deck": {
        "new_items_per_group": 10,
        "entries_per_group_item": 1,
    },
    "paths": {
        "data": "data",
        "words": "data/words.txt",
        "deck": "data/translations.csv",
        "audio": "data/audio",
        "jobs_db": "data/jobs.db",
        "summaries": "data/summaries",
        "prompts": "prompts",
        "logs": "logs",
    },
    "logging": {
        "console_level": "INFO",
        "file_level": "DEBUG",
        "json_logs": False,
        "color": True,
    },
}


@dataclass(frozen=True)
class ConfigLoadResult:
    """Container for the merged configuration."""

    config: Dict[str, Any]
    sources: Tuple[str, ...]


_DEFAULT_HEADER = (
    "# LexiDeck configuration. Generated with the built-in defaults;\n"
    "# edit freely, missing keys fall back to the defaults.\n"
)


def _write_default_config(path: Path) -> None:
    if path.exists():
        return
    path.parent.mkdir(parents=True, exist_ok=True)
    body = yaml.safe_dump(DEFAULT_CONFIG, sort_keys=False, allow_unicode=True)
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_text(_DEFAULT_HEADER + body, encoding="utf-8")
    tmp.replace(path)


def _read_layer(path: Path) -> Dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        mark = getattr(exc, "problem_mark", None)
        where = f" (line {mark.line + 1})" if mark is not None else ""
        raise ConfigurationError(f"Invalid YAML in {path}{where}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, MutableMapping):
        raise ConfigurationError(f"Configuration file {path} must contain a mapping at the root")
    return dict(data)


def _overlay(base: Mapping[str, Any], layer: Mapping[str, Any]) -> Dict[str, Any]:
    """Merge ``layer`` into a copy of ``base``; nested sections merge key by key."""

    merged = copy.deepcopy(dict(base))
    for key, value in layer.items():
        current = merged.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            merged[key] = _overlay(current, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _resolve_paths(config: Dict[str, Any], base_dir: Path) -> None:
    resolved: Dict[str, Any] = {}
    for key, value in config.get("paths", {}).items():
        if isinstance(value, str) and value:
            path = Path(value).expanduser()
            value = str(path if path.is_absolute() else (base_dir / path).resolve())
        resolved[key] = value
    config["paths"] = resolved


def _apply_env_overrides(config: Dict[str, Any], environ: Mapping[str, str]) -> None:
    completion = config.setdefault("completion", {})
    for variable, key in ENV_OVERRIDES.items():
        if environ.get(variable):
            completion[key] = environ[variable]


def _ensure_directories(config: Mapping[str, Any]) -> None:
    paths = config.get("paths", {})
    directories = [paths.get(key) for key in ("data", "audio", "summaries", "logs")]
    parents = [Path(paths[key]).parent for key in ("jobs_db", "deck") if paths.get(key)]
    for directory in [Path(value) for value in directories if value] + parents:
        directory.mkdir(parents=True, exist_ok=True)


def _collect_sources(config_path: str | Path | None) -> Iterable[Tuple[Path, bool]]:
    if config_path is not None:
        yield Path(config_path).expanduser(), False
        return
    yield CONFIG_PATH, True
    env_path = os.getenv(ENV_CONFIG_PATH)
    if env_path:
        yield Path(env_path).expanduser(), False


def _positive(section: Mapping[str, Any], key: str, label: str) -> None:
    try:
        value = float(section.get(key))
    except (TypeError, ValueError):
        raise ConfigurationError(f"{label}.{key} must be a number") from None
    if value <= 0:
        raise ConfigurationError(f"{label}.{key} must be > 0")


def _validate_config(config: Mapping[str, Any]) -> None:
    scheduler = config.get("scheduler", {})
    for key in ("initial_requests_per_second", "min_backoff_seconds", "max_backoff_seconds"):
        _positive(scheduler, key, "scheduler")
    for key in ("max_retries", "refresh_interval"):
        value = scheduler.get(key)
        if not isinstance(value, int) or isinstance(value, bool) or value < 0:
            raise ConfigurationError(f"scheduler.{key} must be a non-negative integer")

    _positive(config.get("translation", {}), "concurrency", "translation")
    _positive(config.get("monitor", {}), "interval", "monitor")
    _positive(config.get("monitor", {}), "grace_period", "monitor")
    _positive(config.get("deck", {}), "new_items_per_group", "deck")

    audio = config.get("audio", {})
    _positive(audio, "max_attempts", "audio")
    backends = audio.get("backends")
    if not isinstance(backends, list) or not backends:
        raise ConfigurationError("At least one text-to-speech backend must be configured in audio.backends")
    for index, backend in enumerate(backends):
        if not isinstance(backend, Mapping):
            raise ConfigurationError(f"audio.backends[{index}] must be a mapping")
        kind = backend.get("kind")
        if kind not in BACKEND_KINDS:
            raise ConfigurationError(
                f"audio.backends[{index}].kind must be one of {', '.join(BACKEND_KINDS)}, got {kind!r}"
            )
        if kind == "http" and not backend.get("base_url"):
            raise ConfigurationError(f"audio.backends[{index}] requires base_url")
        _positive(backend, "concurrency", f"audio.backends[{index}]")


def require_completion_settings(config: Mapping[str, Any]) -> Mapping[str, Any]:
    """Return the completion section, failing fast when credentials are missing."""

    completion = config.get("completion", {})
    missing = [key for key in ("api_key", "base_url", "model") if not completion.get(key)]
    if missing:
        names = [name for name, key in ENV_OVERRIDES.items() if key in missing]
        raise ConfigurationError(
            f"Missing completion settings: {', '.join(missing)} (set {', '.join(names)} or edit the config file)"
        )
    return completion


def load_config(
    config_path: str | Path | None = None,
    *,
    include_sources: bool = False,
    environ: Mapping[str, str] | None = None,
) -> ConfigLoadResult | Dict[str, Any]:
    """Load and validate configuration settings.

    Without ``config_path`` the project's ``config/config.yaml`` (created on
    first use) and the file named by ``LEXIDECK_CONFIG`` are merged over the
    defaults. With an explicit path only that file is used, and relative paths
    inside it resolve against its directory.
    """

    config: Dict[str, Any] = copy.deepcopy(DEFAULT_CONFIG)
    sources: list[str] = []
    base_dir = PROJECT_ROOT

    for path, is_project_file in _collect_sources(config_path):
        if is_project_file:
            _write_default_config(path)
        if not path.exists():
            if config_path is not None:
                raise ConfigurationError(f"Configuration file not found: {path}")
            continue
        config = _overlay(config, _read_layer(path))
        sources.append(str(path.resolve()))
        if config_path is not None:
            base_dir = path.resolve().parent

    _apply_env_overrides(config, os.environ if environ is None else environ)
    _resolve_paths(config, base_dir)
    _validate_config(config)
    _ensure_directories(config)

    result = ConfigLoadResult(config=config, sources=tuple(sources))
    if include_sources:
        return result
    return result.config


__all__ = [
    "DEFAULT_CONFIG",
    "ConfigLoadResult",
    "load_config",
    "require_completion_settings",
]
