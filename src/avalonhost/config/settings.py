"""Host configuration loaded from config/host.local.json and the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import orjson
from dotenv import load_dotenv

DEFAULT_CONFIG_PATH = Path("config/host.local.json")

ENV_PREFIX = "AVALON_"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(slots=True)
class HostConfig:
    """Settings for the room server."""

    host: str = "0.0.0.0"
    port: int = 3000
    room_code_length: int = 6
    idle_room_ttl: float = 3600.0  # seconds an all-offline lobby may linger
    cleanup_interval: float = 300.0
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    static_dir: Optional[Path] = None
    log_level: str = "INFO"
    seed: Optional[int] = None

    def __post_init__(self) -> None:
        if self.room_code_length < 4:
            raise ValueError("Room codes must be at least 4 characters long")
        if self.idle_room_ttl <= 0 or self.cleanup_interval <= 0:
            raise ValueError("Idle TTL and cleanup interval must be positive")
        if self.log_level.upper() not in LOG_LEVELS:
            raise ValueError(f"Unknown log level {self.log_level!r}")
        self.log_level = self.log_level.upper()


def _optional_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    return int(value)


def _from_mapping(data: Mapping[str, Any]) -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    if "host" in data:
        values["host"] = str(data["host"])
    if "port" in data:
        values["port"] = int(data["port"])
    if "room_code_length" in data:
        values["room_code_length"] = int(data["room_code_length"])
    if "idle_room_ttl" in data:
        values["idle_room_ttl"] = float(data["idle_room_ttl"])
    if "cleanup_interval" in data:
        values["cleanup_interval"] = float(data["cleanup_interval"])
    if "cors_origins" in data:
        origins = data["cors_origins"]
        if isinstance(origins, str):
            origins = [origin.strip() for origin in origins.split(",") if origin.strip()]
        values["cors_origins"] = [str(origin) for origin in origins]
    if data.get("static_dir"):
        values["static_dir"] = Path(str(data["static_dir"]))
    if "log_level" in data:
        values["log_level"] = str(data["log_level"]).upper()
    if "seed" in data:
        values["seed"] = _optional_int(data["seed"])
    return values


def _from_environment(environ: Mapping[str, str]) -> Dict[str, Any]:
    data: Dict[str, Any] = {}
    # PORT is honoured for hosting platforms that inject it.
    if environ.get("PORT"):
        data["port"] = environ["PORT"]
    for key in (
        "host",
        "port",
        "room_code_length",
        "idle_room_ttl",
        "cleanup_interval",
        "cors_origins",
        "static_dir",
        "log_level",
        "seed",
    ):
        env_key = f"{ENV_PREFIX}{key.upper()}"
        if environ.get(env_key):
            data[key] = environ[env_key]
    return _from_mapping(data)


def load_host_config(
    path: Path = DEFAULT_CONFIG_PATH,
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> HostConfig:
    """Load host configuration from disk and environment, falling back to defaults.

    Values from the JSON file are applied first; ``AVALON_*`` variables (and
    ``PORT``) override them. A ``.env`` file is read into the process
    environment beforehand when no explicit ``environ`` is given.
    """
    if environ is None:
        load_dotenv()
        environ = os.environ

    values: Dict[str, Any] = {}
    if path.exists():
        data = orjson.loads(path.read_bytes())
        if not isinstance(data, dict):
            raise ValueError(f"{path} must contain a JSON object")
        values.update(_from_mapping(data))

    values.update(_from_environment(environ))
    return HostConfig(**values)
