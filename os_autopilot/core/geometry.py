# os_autopilot/core/geometry.py
"""
Physical display pixels <-> agent space.

The agent always sees (and answers in) a bounded, aspect-preserving
coordinate system no larger than 1280x800. Every coordinate that leaves the
agent for a native input call goes through ``from_agent_space``; every
coordinate reported back to the agent goes through ``to_agent_space``.
"""
import math
from typing import Callable, Tuple

from pydantic import BaseModel, ConfigDict, Field

AGENT_MAX_WIDTH = 1280
AGENT_MAX_HEIGHT = 800


class DisplayInfo(BaseModel):
    """Primary display size in physical pixels plus its device pixel ratio."""

    model_config = ConfigDict(frozen=True)

    width: int = Field(gt=0)
    height: int = Field(gt=0)
    scale_factor: float = Field(default=1.0, gt=0)


def _round_half_up(value: float) -> int:
    # round() is banker's rounding; .5 must always go up
    return int(math.floor(value + 0.5))


def agent_dimensions(display: DisplayInfo) -> Tuple[int, int]:
    aspect_ratio = display.width / display.height

    if aspect_ratio > AGENT_MAX_WIDTH / AGENT_MAX_HEIGHT:
        return AGENT_MAX_WIDTH, _round_half_up(AGENT_MAX_WIDTH / aspect_ratio)
    return _round_half_up(AGENT_MAX_HEIGHT * aspect_ratio), AGENT_MAX_HEIGHT


def to_agent_space(display: DisplayInfo, x: float, y: float) -> Tuple[float, float]:
    agent_w, agent_h = agent_dimensions(display)
    return (
        x * agent_w * display.scale_factor / display.width,
        y * agent_h * display.scale_factor / display.height,
    )


def from_agent_space(display: DisplayInfo, x: float, y: float) -> Tuple[float, float]:
    agent_w, agent_h = agent_dimensions(display)
    return (
        x * display.width / (agent_w * display.scale_factor),
        y * display.height / (agent_h * display.scale_factor),
    )


class Geometry:
    """
    The same conversions bound to a live display-info provider, so a change of
    resolution between steps is picked up on the next call.
    """

    def __init__(self, display_info: Callable[[], DisplayInfo]):
        self._display_info = display_info

    @property
    def display(self) -> DisplayInfo:
        return self._display_info()

    def agent_dimensions(self) -> Tuple[int, int]:
        return agent_dimensions(self.display)

    def to_agent_space(self, x: float, y: float) -> Tuple[float, float]:
        return to_agent_space(self.display, x, y)

    def from_agent_space(self, x: float, y: float) -> Tuple[float, float]:
        return from_agent_space(self.display, x, y)
