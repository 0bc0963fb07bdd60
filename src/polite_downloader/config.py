"""Configuration loader."""
from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict

import yaml

USER_AGENT_ENV = "POLITE_DOWNLOADER_USER_AGENT"


def load_config(path: str | Path) -> Dict[str, Any]:
    """Load downloader configuration from YAML.

    Args:
        path: Path to configuration file.

    Returns:
        Parsed configuration dictionary.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config not found: {config_path}")

    with config_path.open("r", encoding="utf-8") as handle:
        config = yaml.safe_load(handle) or {}

    if not isinstance(config, dict):
        raise ValueError(f"Config must be a mapping: {config_path}")

    user_agent = os.getenv(USER_AGENT_ENV)
    if user_agent:
        config["user_agent"] = user_agent

    return config
