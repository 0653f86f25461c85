# Area: Shared
"""
live_battle._engine_config — Engine Configuration
=================================================

Configuration model, validation and loading for BattleArena.

Sources, lowest priority first:
    1. Defaults on ``EngineConfig``
    2. JSON config file
    3. Environment variables (a ``.env`` file in the working directory is
       loaded first)
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

logger = logging.getLogger("live_battle.config")

# Environment variable -> config key
ENV_MAPPINGS = {
    "LIVE_BATTLE_COUNTDOWN_SECONDS": "countdown_seconds",
    "LIVE_BATTLE_REVEAL_SECONDS": "reveal_seconds",
    "LIVE_BATTLE_HOST_PACED_REVEAL": "host_paced_reveal",
    "LIVE_BATTLE_REVEAL_MAX_WAIT_SECONDS": "reveal_max_wait_seconds",
    "LIVE_BATTLE_LATENCY_ALLOWANCE_MS": "latency_allowance_ms",
    "LIVE_BATTLE_MIN_PARTICIPANTS": "min_participants",
    "LIVE_BATTLE_FINISHED_ROOM_TTL_SECONDS": "finished_room_ttl_seconds",
    "LIVE_BATTLE_DB_PATH": "db_path",
    "LIVE_BATTLE_LOG_FILE": "log_file",
    "LIVE_BATTLE_LOG_LEVEL": "log_level",
}

LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class EngineConfig(BaseModel):
    """Timing and storage settings shared by every room of an arena."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    countdown_seconds: float = Field(default=3.0, ge=0)
    reveal_seconds: float = Field(default=5.0, ge=0)
    # Host-paced rooms wait for hostAdvance, capped at reveal_max_wait_seconds
    host_paced_reveal: bool = False
    reveal_max_wait_seconds: float = Field(default=30.0, gt=0)
    latency_allowance_ms: int = Field(default=1000, ge=0)
    min_participants: int = Field(default=2, ge=2, le=4)
    # Finished rooms stay queryable in memory this long, then are released
    finished_room_ttl_seconds: float = Field(default=60.0, ge=0)
    db_path: str = ":memory:"
    log_file: str = "live_battle.log"
    log_level: str = "INFO"

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        value = value.upper()
        if value not in LOG_LEVELS:
            raise ValueError(f"must be one of {sorted(LOG_LEVELS)}")
        return value

    @model_validator(mode="after")
    def _check_reveal_cap(self) -> "EngineConfig":
        if self.reveal_max_wait_seconds < self.reveal_seconds:
            raise ValueError("reveal_max_wait_seconds must be >= reveal_seconds")
        return self


def validate_config(config: Mapping[str, Any]) -> EngineConfig:
    """
    Validate a configuration dict.

    Args:
        config: Raw configuration values

    Returns:
        The validated EngineConfig

    Raises:
        ValueError: Naming every offending key
    """
    try:
        return EngineConfig(**dict(config))
    except ValidationError as exc:
        problems = []
        for err in exc.errors():
            key = ".".join(str(p) for p in err["loc"]) or "config"
            problems.append(f"{key}: {err['msg']}")
        raise ValueError(f"Invalid engine config: {problems}") from exc


def load_config(
    config_path: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
    dotenv: bool = True,
) -> EngineConfig:
    """
    Load engine config from a JSON file and the environment.

    Args:
        config_path: Optional JSON file; a missing file is ignored
        environ: Environment to read, defaults to ``os.environ``
        dotenv: Load ``.env`` into the process environment first

    Raises:
        ValueError: On unreadable JSON or invalid values
    """
    config: Dict[str, Any] = {}

    if config_path:
        path = Path(config_path)
        if path.exists():
            try:
                with open(path, encoding="utf-8") as f:
                    config = json.load(f)
            except json.JSONDecodeError as exc:
                raise ValueError(f"Config file {path} is not valid JSON: {exc}") from exc
            logger.debug(f"Loaded config file {path}")
        else:
            logger.warning(f"Config file {path} not found, using defaults")

    if environ is None:
        if dotenv:
            load_dotenv()
        environ = os.environ

    for env_key, config_key in ENV_MAPPINGS.items():
        if env_key in environ:
            config[config_key] = environ[env_key]

    return validate_config(config)
