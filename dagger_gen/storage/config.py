"""Global app configuration (LLM connections, role assignments, context budgets)."""

import json
from pathlib import Path
from typing import Any

from .core import data_dir

_CONFIG_DEFAULTS: dict[str, Any] = {
    "llm_connections": [],
    "chat_connection": "",
    "generation_connection": "",
    "compression": {
        "recent_window": 10,
        "max_total_messages": 30,
        "max_compressed_length": 200,
    },
    "autosave_delay_seconds": 2.5,
    "max_tool_rounds": 5,
}

_SCALARS = ("chat_connection", "generation_connection", "autosave_delay_seconds", "max_tool_rounds")


def _config_path() -> Path:
    return data_dir() / "config.json"


def get_config() -> dict[str, Any]:
    """Read config, returning defaults merged with stored values."""
    config: dict[str, Any] = {
        "llm_connections": list(_CONFIG_DEFAULTS["llm_connections"]),
        "compression": dict(_CONFIG_DEFAULTS["compression"]),
        **{key: _CONFIG_DEFAULTS[key] for key in _SCALARS},
    }
    path = _config_path()
    if path.is_file():
        stored = json.loads(path.read_text())
        if "llm_connections" in stored:
            config["llm_connections"] = stored["llm_connections"]
        if isinstance(stored.get("compression"), dict):
            config["compression"].update(stored["compression"])
        for key in _SCALARS:
            if key in stored:
                config[key] = stored[key]
    return config


def update_config(fields: dict[str, Any]) -> dict[str, Any]:
    """Merge fields into config and persist. Returns full config."""
    config = get_config()
    if "llm_connections" in fields:
        config["llm_connections"] = fields["llm_connections"]
    if isinstance(fields.get("compression"), dict):
        config["compression"].update(fields["compression"])
    for key in _SCALARS:
        if key in fields:
            config[key] = fields[key]
    _config_path().write_text(json.dumps(config, indent=2))
    return config
