"""Global app configuration (decision tuning, AI connection settings).

The API key is never stored here; it comes from AI_API_KEY in the
environment.
"""

import json
from pathlib import Path
from typing import Any

from boot_hill.config import AIClientConfig, DecisionConfig

from .core import data_dir

_SECTIONS = ("decisions", "ai")


def _defaults() -> dict[str, Any]:
    return {
        "decisions": DecisionConfig().model_dump(),
        "ai": AIClientConfig().model_dump(exclude={"api_key"}),
    }


def _config_path() -> Path:
    return data_dir() / "config.json"


def _merge(config: dict[str, Any], fields: dict[str, Any]) -> None:
    for section in _SECTIONS:
        vals = fields.get(section)
        if isinstance(vals, dict):
            config[section].update({k: v for k, v in vals.items() if k in config[section]})


def get_config() -> dict[str, Any]:
    """Read config, returning defaults merged with stored values."""
    config = _defaults()
    path = _config_path()
    if path.is_file():
        _merge(config, json.loads(path.read_text()))
    return config


def update_config(fields: dict[str, Any]) -> dict[str, Any]:
    """Merge fields into config and persist. Returns full config.

    Raises pydantic.ValidationError if a merged section is out of range;
    nothing is written in that case.
    """
    config = get_config()
    _merge(config, fields)
    DecisionConfig(**config["decisions"])
    AIClientConfig(**config["ai"])
    _config_path().write_text(json.dumps(config, indent=2))
    return config


def decision_config() -> DecisionConfig:
    return DecisionConfig(**get_config()["decisions"])


def ai_client_config() -> AIClientConfig:
    """Stored connection settings, with AI_* environment variables on top."""
    env = AIClientConfig.from_env().model_dump(exclude_unset=True)
    return AIClientConfig.model_validate({**get_config()["ai"], **env})
