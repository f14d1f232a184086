"""
Task Board Configuration

Settings are read from environment variables. When TASKBOARD_CONFIG points at a
YAML file, keys found in that file override the environment values.

Environment variables:
- TASKBOARD_DATA_DIR: directory holding the project store (projects.json)
- TASKBOARD_AUDIT_LOG: path of the append-only task audit log
- TASKBOARD_LOG_LEVEL: logging level name (default INFO)
- TASKBOARD_PERSIST: "false" keeps the store in memory only
- TASKBOARD_URL: base URL used by the board client
- TASKBOARD_HTTP_TIMEOUT: board client request timeout in seconds
"""

import logging
import os
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger("taskboard_config")

# -----------------------------------------------------------------------------
# Defaults
# -----------------------------------------------------------------------------
DEFAULT_DATA_DIR = "/tmp/taskboard/data"
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_SERVICE_URL = "http://127.0.0.1:8000"
DEFAULT_HTTP_TIMEOUT = 30.0

TRUE_VALUES = frozenset({"1", "true", "yes", "on"})


@dataclass
class Settings:
    """Runtime settings for the service and the board client."""
    data_dir: Path
    audit_log: Path
    log_level: str = DEFAULT_LOG_LEVEL
    persist: bool = True
    service_url: str = DEFAULT_SERVICE_URL
    http_timeout: float = DEFAULT_HTTP_TIMEOUT

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["data_dir"] = str(self.data_dir)
        data["audit_log"] = str(self.audit_log)
        return data


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in TRUE_VALUES


def _read_config_file(path: Path) -> Dict[str, Any]:
    """Read the optional YAML override file."""
    if not path.exists():
        logger.warning(f"Config file not found, using environment only: {path}")
        return {}
    with open(path, "r") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping, got {type(data).__name__}")
    return data


def load_settings(config_path: Optional[str] = None) -> Settings:
    """
    Build Settings from the environment and the optional YAML file.

    Precedence: YAML file > environment > defaults.
    """
    values: Dict[str, Any] = {
        "data_dir": os.getenv("TASKBOARD_DATA_DIR", DEFAULT_DATA_DIR),
        "audit_log": os.getenv("TASKBOARD_AUDIT_LOG"),
        "log_level": os.getenv("TASKBOARD_LOG_LEVEL", DEFAULT_LOG_LEVEL),
        "persist": os.getenv("TASKBOARD_PERSIST", "true"),
        "service_url": os.getenv("TASKBOARD_URL", DEFAULT_SERVICE_URL),
        "http_timeout": os.getenv("TASKBOARD_HTTP_TIMEOUT", str(DEFAULT_HTTP_TIMEOUT)),
    }

    config_path = config_path or os.getenv("TASKBOARD_CONFIG")
    if config_path:
        overrides = _read_config_file(Path(config_path))
        values.update({k: v for k, v in overrides.items() if k in values})

    data_dir = Path(values["data_dir"])
    audit_log = Path(values["audit_log"]) if values["audit_log"] else data_dir / "task_audit.log"

    return Settings(
        data_dir=data_dir,
        audit_log=audit_log,
        log_level=str(values["log_level"]).upper(),
        persist=_parse_bool(values["persist"]),
        service_url=str(values["service_url"]).rstrip("/"),
        http_timeout=float(values["http_timeout"]),
    )
