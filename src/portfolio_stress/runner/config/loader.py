from __future__ import annotations

import json
import os
from pathlib import Path

import yaml
from pydantic import ValidationError

from portfolio_stress.runner.config.models import StressLabConfig

TOKEN_ENV_VAR = "TINKOFF_TOKEN"


def load_config(path: str | Path) -> StressLabConfig:
    """
    Load a StressLabConfig from YAML or JSON.

    Automatically validates using Pydantic v2. Relative data paths are
    resolved against the config file's directory.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file does not exist: {path}")

    text = path.read_text()

    try:
        if path.suffix.lower() in {".yaml", ".yml"}:
            raw = yaml.safe_load(text)
        elif path.suffix.lower() == ".json":
            raw = json.loads(text)
        else:
            raise ValueError("Config path must be YAML or JSON.")
    except Exception as e:
        raise ValueError(f"Failed to parse config: {e}") from e

    try:
        cfg = StressLabConfig.model_validate(raw or {})
    except ValidationError as e:
        raise ValueError(f"Invalid StressLabConfig: {e}") from e

    return _resolve_paths(apply_env_overrides(cfg), path.parent)


def apply_env_overrides(cfg: StressLabConfig) -> StressLabConfig:
    """The token environment variable takes precedence over the file."""
    token = os.environ.get(TOKEN_ENV_VAR, "").strip()
    if token:
        cfg.broker.token = token
    return cfg


def _resolve_paths(cfg: StressLabConfig, base: Path) -> StressLabConfig:
    for field in ("snapshot_path", "candles_path"):
        value = getattr(cfg.data, field)
        if value and not Path(value).is_absolute():
            setattr(cfg.data, field, str(base / value))
    return cfg
