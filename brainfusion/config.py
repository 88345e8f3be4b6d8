"""Layered run configuration: preset, file, environment, command line."""

from __future__ import annotations

import json
import os
from copy import deepcopy
from pathlib import Path
from typing import Any, Iterable, Mapping

from .core.errors import ConfigurationError

ENV_PREFIX = "BRAINFUSION__"
REQUIRED_SECTIONS = frozenset({"data", "model", "train"})


def load_file(path: str | Path) -> dict:
    """Read a JSON or YAML mapping from ``path``."""

    path = Path(path)
    text = path.read_text()
    if path.suffix.lower() in {".yml", ".yaml"}:
        try:
            import yaml  # type: ignore
        except Exception as exc:  # pragma: no cover - optional dependency
            raise RuntimeError("PyYAML is required to load YAML configs") from exc
        data = yaml.safe_load(text) or {}
    elif path.suffix.lower() == ".json":
        data = json.loads(text or "{}")
    else:
        raise ValueError(f"Unsupported config file type: {path.suffix}")
    if not isinstance(data, Mapping):
        raise TypeError(f"Config {path.name} must decode to a mapping")
    return dict(data)


def merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict:
    """Recursively merge ``override`` into a copy of ``base``."""

    merged = deepcopy(dict(base))
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = merge(merged[key], value)
        else:
            merged[key] = deepcopy(value)
    return merged


def parse_value(text: str) -> Any:
    """JSON-decode ``text`` when possible, otherwise keep it as a string."""

    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return text


def _nest(path: Iterable[str], value: Any) -> dict:
    keys = [k for k in path if k]
    if not keys:
        raise ConfigurationError("Empty configuration key")
    out: dict = {}
    cursor = out
    for key in keys[:-1]:
        cursor = cursor.setdefault(key, {})
    cursor[keys[-1]] = value
    return out


def env_overrides(environ: Mapping[str, str] | None = None) -> dict:
    """Collect ``BRAINFUSION__SECTION__KEY=value`` variables into a nested mapping."""

    environ = os.environ if environ is None else environ
    result: dict = {}
    for name in sorted(environ):
        if not name.startswith(ENV_PREFIX):
            continue
        path = name[len(ENV_PREFIX) :].lower().split("__")
        result = merge(result, _nest(path, parse_value(environ[name])))
    return result


def parse_assignment(assignment: str) -> dict:
    """Turn ``"train.lr=0.05"`` into ``{"train": {"lr": 0.05}}``."""

    key, sep, raw = assignment.partition("=")
    if not sep or not key.strip():
        raise ConfigurationError(f"Expected key=value, got {assignment!r}")
    return _nest(key.strip().split("."), parse_value(raw.strip()))


def resolve_config(
    base: Mapping[str, Any],
    *,
    config_file: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
    assignments: Iterable[str] = (),
) -> dict:
    """Apply every configuration layer on top of ``base``.

    An override file that carries all of ``data``, ``model`` and ``train``
    replaces ``base`` instead of being merged into it.
    """

    config = deepcopy(dict(base))
    if config_file is not None:
        override = load_file(config_file)
        if REQUIRED_SECTIONS <= set(override):
            config = override
        else:
            config = merge(config, override)
    config = merge(config, env_overrides(environ))
    for assignment in assignments:
        config = merge(config, parse_assignment(assignment))
    return config


__all__ = [
    "ENV_PREFIX",
    "env_overrides",
    "load_file",
    "merge",
    "parse_assignment",
    "parse_value",
    "resolve_config",
]
