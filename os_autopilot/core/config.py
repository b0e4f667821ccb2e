# os_autopilot/core/config.py
import logging
from pathlib import Path
from typing import Literal, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError

from os_autopilot.core.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parents[2] / "configs" / "autopilot.yaml"


class ModelConfig(BaseModel):
    provider: Literal["anthropic", "openai"] = "anthropic"
    # None means the adapter's own default model
    name: Optional[str] = None
    max_tokens: int = Field(default=1024, gt=0)


class AutopilotConfig(BaseModel):
    model: ModelConfig = Field(default_factory=ModelConfig)
    input_backend: str = "pyautogui"
    screen_backend: str = "pyautogui"

    # Step budget: history is capped at 2 * max_steps turns
    max_steps: int = Field(default=50, gt=0)
    # Executor retries after the first attempt, for kinds with a fallback
    max_retries: int = Field(default=3, ge=0)

    settle_delay_s: float = Field(default=1.0, ge=0)
    key_hold_s: float = Field(default=0.1, ge=0)
    type_delay_ms: int = Field(default=0, ge=0)
    fallback_char_delay_s: float = Field(default=0.05, ge=0)
    move_steps: int = Field(default=5, gt=0)
    move_step_delay_s: float = Field(default=0.1, ge=0)


def load_config(path: Optional[Union[str, Path]] = None) -> AutopilotConfig:
    """
    Read an ``AutopilotConfig`` from YAML.

    Without an explicit path the packaged ``configs/autopilot.yaml`` is used
    when present; a missing default file means all defaults. An explicit path
    that does not exist is an error.
    """
    cfg_path = Path(path) if path else DEFAULT_CONFIG_PATH
    if not cfg_path.exists():
        if path:
            raise ConfigError(f"Config file not found: {cfg_path}")
        return AutopilotConfig()

    try:
        with open(cfg_path, "r") as f:
            raw = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {cfg_path}: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigError(f"{cfg_path} must contain a mapping at the top level")

    try:
        cfg = AutopilotConfig.model_validate(raw)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {cfg_path}: {e}") from e

    logger.debug("Loaded config from %s", cfg_path)
    return cfg
