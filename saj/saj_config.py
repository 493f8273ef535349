"""
Host configuration: model selection, RLM limits, credentials and fetch options.

Values come from `~/.saj/config.yaml` (or `config.json`), overlaid by
environment variables. A missing file is an empty config.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from saj.saj_serialize import deserialize

DEFAULT_CONFIG_DIR = os.path.join("~", ".saj")
CONFIG_FILENAMES = ("config.yaml", "config.yml", "config.json")

_ENV_OVERRIDES = {
    "ANTHROPIC_API_KEY": "api_key",
    "SAJ_TOKEN": "token",
    "SAJ_API_URL": "api_url",
    "SAJ_MODEL": "model",
    "SAJ_MAX_DEPTH": "max_depth",
}


@dataclass
class SajConfig:
    model: str = "claude-sonnet-4-20250514"
    max_depth: int = 10
    max_tokens: int = 4096
    api_key: Optional[str] = None
    api_url: str = "https://api.anthropic.com"
    token: Optional[str] = None
    http: Dict[str, Any] = field(default_factory=dict)
    base_dir: Optional[str] = None

    @property
    def has_credentials(self) -> bool:
        return bool(self.api_key or self.token)

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> 'SajConfig':
        # Unknown keys are ignored so older files keep loading
        known = {k: v for k, v in dict(data or {}).items() if k in cls.__dataclass_fields__}
        cfg = cls(**known)
        cfg.max_depth = int(cfg.max_depth)
        cfg.max_tokens = int(cfg.max_tokens)
        cfg.http = dict(cfg.http or {})
        return cfg

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _default_path() -> Optional[Path]:
    base = Path(os.path.expanduser(DEFAULT_CONFIG_DIR))
    for name in CONFIG_FILENAMES:
        candidate = base / name
        if candidate.is_file():
            return candidate
    return None


def load_config(path: Optional[str] = None, env: Optional[Mapping[str, str]] = None) -> SajConfig:
    """
    Reads the config file (if any) and applies environment overrides.

    An explicit `path` that does not exist raises FileNotFoundError; the
    default location is optional.
    """
    env = os.environ if env is None else env
    data: Dict[str, Any] = {}
    p = Path(os.path.expanduser(path)) if path else _default_path()
    if p is not None:
        text = p.read_text(encoding="utf-8")
        fmt = "json" if p.suffix == ".json" else "yaml"
        loaded = deserialize(text, fmt=fmt) if text.strip() else {}
        if not isinstance(loaded, dict):
            raise ValueError(f"config file {p} must hold a mapping, got {type(loaded).__name__}")
        data.update(loaded)

    for var, key in _ENV_OVERRIDES.items():
        value = env.get(var)
        if value:
            data[key] = value
    return SajConfig.from_dict(data)


def save_config(config: SajConfig, path: Optional[str] = None) -> Path:
    """Writes the config as YAML and returns the path written."""
    p = Path(os.path.expanduser(path or os.path.join(DEFAULT_CONFIG_DIR, CONFIG_FILENAMES[0])))
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(yaml.safe_dump(config.to_dict(), sort_keys=False), encoding="utf-8")
    return p


__all__ = ["SajConfig", "load_config", "save_config"]
