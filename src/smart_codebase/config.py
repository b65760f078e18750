"""
Plugin configuration loaded from ``smart-codebase.json`` at the project root.

The file is read as JSON5, so ``//`` and ``/* */`` comments and trailing
commas are accepted. Keys are camelCase in the file and merged over the
defaults; anything missing, unknown or malformed falls back to the default
value.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path

import json5

from smart_codebase.knowledge.paths import PathLike

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "smart-codebase.json"

LINK_STRATEGIES = ("first", "ranked")

# file key -> dataclass attribute
_KEY_MAP = {
    "enabled": "enabled",
    "debounceMs": "debounce_ms",
    "autoExtract": "auto_extract",
    "autoInject": "auto_inject",
    "maxRelevantFacts": "max_relevant_facts",
    "lockTimeoutMs": "lock_timeout_ms",
    "linkStrategy": "link_strategy",
    "disabledCommands": "disabled_commands",
}


@dataclass
class PluginConfig:
    """Merged plugin settings.

    ``debounce_ms`` and ``auto_extract`` are not read by this package. They
    are carried for the session-idle extraction hook that calls
    ``learn_fact``, so every key of the shared config file has a home.
    """

    enabled: bool = True
    debounce_ms: int = 15000
    auto_extract: bool = True
    auto_inject: bool = True
    max_relevant_facts: int = 5
    lock_timeout_ms: int = 5000
    link_strategy: str = "first"
    disabled_commands: list[str] = field(default_factory=list)

    @property
    def lock_timeout(self) -> float:
        """Lock timeout in seconds."""
        return self.lock_timeout_ms / 1000.0

    @property
    def ranked_linking(self) -> bool:
        return self.link_strategy == "ranked"

    def is_command_enabled(self, name: str) -> bool:
        return self.enabled and name not in self.disabled_commands


def _valid(attr: str, value) -> bool:
    default = getattr(PluginConfig(), attr)
    if isinstance(default, bool):
        return isinstance(value, bool)
    if isinstance(default, int):
        return isinstance(value, int) and not isinstance(value, bool) and value >= 0
    if isinstance(default, list):
        return isinstance(value, list) and all(isinstance(v, str) for v in value)
    if attr == "link_strategy":
        return value in LINK_STRATEGIES
    return isinstance(value, type(default))


def config_from_dict(data: dict) -> PluginConfig:
    config = PluginConfig()
    for key, value in data.items():
        attr = _KEY_MAP.get(key)
        if attr is None:
            logger.debug(f"Ignoring unknown config key: {key}")
            continue
        if not _valid(attr, value):
            logger.warning(f"Invalid value for {key!r} in {CONFIG_FILE_NAME}: {value!r}, using default")
            continue
        setattr(config, attr, value)
    return config


def load_config(project_root: PathLike) -> PluginConfig:
    config_path = Path(project_root) / CONFIG_FILE_NAME
    if not config_path.exists():
        return PluginConfig()

    try:
        data = json5.loads(config_path.read_text(encoding="utf-8"))
    except (ValueError, OSError) as e:
        logger.error(f"Failed to parse {config_path}: {e}")
        return PluginConfig()

    if not isinstance(data, dict):
        logger.error(f"Failed to parse {config_path}: expected a JSON object")
        return PluginConfig()

    return config_from_dict(data)
