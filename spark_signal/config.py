"""Spark configuration and persisted client state.

Config is read once at startup and handed to the collaborators that need
it; nothing here is consulted implicitly from elsewhere.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = Path.home() / ".spark"
DEFAULT_CONFIG_PATH = DEFAULT_CONFIG_DIR / "config.json"
DEFAULT_STATE_PATH = DEFAULT_CONFIG_DIR / "state.json"

LINKED_FLAG_KEY = "linked"


@dataclass
class SparkConfig:
    """Account and signal-cli connection settings."""

    account: str = ""
    signal_cli: str = "signal-cli"
    # Bundled runtime: when both are set, signal-cli runs as
    # `<java_home>/bin/java -cp <signal_cli_home>/lib/* org.asamk.signal.Main`
    java_home: Optional[str] = None
    signal_cli_home: Optional[str] = None
    socket_path: str = "/tmp/spark.sock"
    device_name: str = "Spark"
    receive_timeout: int = 10

    def require_account(self) -> str:
        if not self.account:
            raise ValueError(
                "No Signal account configured. Either:\n"
                "  • Run: spark-signal set-account +4475...\n"
                "  • Or:  export SPARK_ACCOUNT='+4475...'"
            )
        return self.account

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> SparkConfig:
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            logger.warning("Ignoring unknown config keys: %s", ", ".join(sorted(unknown)))
        return cls(**{k: v for k, v in data.items() if k in known})


def _config_path(path: Optional[Path]) -> Path:
    if path:
        return path
    env_path = os.environ.get("SPARK_CONFIG")
    if env_path:
        return Path(env_path)
    return DEFAULT_CONFIG_PATH


def load_config(path: Optional[Path] = None) -> SparkConfig:
    """Load config from disk, falling back to defaults.

    Priority for the account:
    1. SPARK_ACCOUNT environment variable
    2. "account" in the config file
    """
    config_path = _config_path(path)
    config = SparkConfig()
    if config_path.exists():
        try:
            data = json.loads(config_path.read_text())
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning("Cannot read config %s, using defaults: %s", config_path, exc)
        else:
            if isinstance(data, dict):
                config = SparkConfig.from_dict(data)
            else:
                logger.warning("Config %s is not a JSON object, using defaults", config_path)

    env_account = os.environ.get("SPARK_ACCOUNT")
    if env_account:
        config.account = env_account

    return config


def save_config(config: SparkConfig, path: Optional[Path] = None):
    """Save config to disk."""
    config_path = _config_path(path)
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(json.dumps(asdict(config), indent=2))


class StateStore:
    """Small typed key/value store persisted as JSON.

    Holds client state that must survive restarts, such as whether this
    installation has already been linked as a device.
    """

    def __init__(self, path: Optional[Path] = None):
        self._path = path or DEFAULT_STATE_PATH

    def _load(self) -> Dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text())
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning("Cannot read state %s: %s", self._path, exc)
            return {}
        return data if isinstance(data, dict) else {}

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = self._load().get(key, default)
        return value if isinstance(value, bool) else default

    def set_bool(self, key: str, value: bool):
        data = self._load()
        data[key] = bool(value)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(data, indent=2))

    @property
    def linked(self) -> bool:
        return self.get_bool(LINKED_FLAG_KEY)

    @linked.setter
    def linked(self, value: bool):
        self.set_bool(LINKED_FLAG_KEY, value)
