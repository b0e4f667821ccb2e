# os_autopilot/agents/executor_agent.py
import logging
import time
from typing import Callable, Dict, List, Optional

from os_autopilot.core.adapters import BaseInputAdapter, Button
from os_autopilot.core.config import AutopilotConfig
from os_autopilot.core.errors import (ActionExecutionError, UnknownKeyError,
                                      UnsupportedActionError)
from os_autopilot.core.geometry import Geometry
from os_autopilot.core.tal import (Action, ActionOutcome, CursorPosition,
                                   DoubleClick, KeyPress, LeftClick,
                                   LeftClickDrag, MiddleClick, MouseMove,
                                   RightClick, Screenshot, TypeText)

logger = logging.getLogger(__name__)

# Agent key symbols -> input backend key names
KEY_MAP: Dict[str, str] = {
    "Return": "enter",
    "Tab": "tab",
    "Enter": "enter",
    "ArrowUp": "up",
    "ArrowDown": "down",
    "ArrowLeft": "left",
    "ArrowRight": "right",
}

_CLICK_BUTTONS = {
    "left_click": Button.LEFT,
    "right_click": Button.RIGHT,
    "middle_click": Button.MIDDLE,
}


def map_keys(text: str) -> List[str]:
    """Translate a ``+``-joined key chord; any unknown token fails the whole chord."""
    keys = []
    for token in text.split("+"):
        mapped = KEY_MAP.get(token)
        if mapped is None:
            raise UnknownKeyError(token)
        keys.append(mapped)
    return keys


# ========================================================================
#                           EXECUTOR AGENT
# ========================================================================
class ExecutorAgent:
    """
    Performs one agent Action as real input.

    - Agent-space coordinates are converted with ``Geometry.from_agent_space``
      before they reach the input adapter.
    - Kinds with a fallback (type, click family, mouse_move) get
      ``max_retries + 1`` primary+fallback attempts before
      ``ActionExecutionError``; every other kind gets exactly one.
    - ``UnknownKeyError`` / ``UnsupportedActionError`` are never retried.
    """

    def __init__(
        self,
        input_adapter: BaseInputAdapter,
        geometry: Geometry,
        config: Optional[AutopilotConfig] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.input = input_adapter
        self.geometry = geometry
        self.config = config or AutopilotConfig()
        self.max_retries = int(self.config.max_retries)
        self._sleep = sleep

    # ====================================================================
    # PUBLIC
    # ====================================================================
    def execute(self, action: Action) -> ActionOutcome:
        fallback = self._fallback_for(action)
        max_attempts = self.max_retries + 1 if fallback else 1
        last_error: Optional[BaseException] = None

        for attempt in range(max_attempts):
            try:
                output = self._perform(action)
                return ActionOutcome(action=action, attempts=attempt + 1, output=output)
            except (UnknownKeyError, UnsupportedActionError):
                raise
            except Exception as e:
                last_error = e
                if fallback is None:
                    break
                logger.warning(
                    "Action %s failed (%s), trying alternative method (attempt %d/%d)",
                    action.type, e, attempt + 1, max_attempts,
                )

            try:
                fallback(action)
                return ActionOutcome(action=action, attempts=attempt + 1)
            except Exception as e:
                logger.debug("Alternative method for %s failed: %s", action.type, e)
                last_error = e

        raise ActionExecutionError(action.type, max_attempts, last_error) from last_error

    # ====================================================================
    # PRIMARY METHODS
    # ====================================================================
    def _perform(self, action: Action) -> Optional[str]:
        if isinstance(action, MouseMove):
            x, y = self.geometry.from_agent_space(action.x, action.y)
            logger.debug("AI coordinates (%s, %s) -> screen (%.1f, %.1f)", action.x, action.y, x, y)
            self.input.set_pointer_position(x, y)
        elif isinstance(action, LeftClickDrag):
            x, y = self.geometry.from_agent_space(action.x, action.y)
            start = self.input.get_pointer_position()
            self.input.drag(start, (x, y))
        elif isinstance(action, CursorPosition):
            px, py = self.input.get_pointer_position()
            ax, ay = self.geometry.to_agent_space(px, py)
            return f"Cursor position: ({round(ax)}, {round(ay)})"
        elif isinstance(action, (LeftClick, RightClick, MiddleClick)):
            self.input.click(_CLICK_BUTTONS[action.type])
        elif isinstance(action, DoubleClick):
            self.input.double_click(Button.LEFT)
        elif isinstance(action, TypeText):
            self.input.type_text(action.text, delay_ms=self.config.type_delay_ms)
        elif isinstance(action, KeyPress):
            self._press_chord(action.text)
        elif isinstance(action, Screenshot):
            # Capture happens after every action anyway
            pass
        else:
            raise UnsupportedActionError(action.type)
        return None

    def _press_chord(self, text: str) -> None:
        keys = map_keys(text)
        self.input.press_keys(keys)
        try:
            self._sleep(self.config.key_hold_s)
        finally:
            self.input.release_keys(keys)

    # ====================================================================
    # ALTERNATIVE METHODS
    # ====================================================================
    def _fallback_for(self, action: Action) -> Optional[Callable[[Action], None]]:
        if isinstance(action, TypeText):
            return self._retype_slowly
        if isinstance(action, (LeftClick, RightClick, MiddleClick, DoubleClick)):
            return self._double_click_instead
        if isinstance(action, MouseMove):
            return self._move_in_steps
        return None

    def _retype_slowly(self, action: TypeText) -> None:
        for char in action.text:
            self.input.type_text(char, delay_ms=0)
            self._sleep(self.config.fallback_char_delay_s)

    def _double_click_instead(self, action: Action) -> None:
        self.input.double_click(Button.LEFT)

    def _move_in_steps(self, action: MouseMove) -> None:
        target_x, target_y = self.geometry.from_agent_space(action.x, action.y)
        start_x, start_y = self.input.get_pointer_position()
        steps = self.config.move_steps
        for i in range(1, steps + 1):
            self.input.set_pointer_position(
                start_x + (target_x - start_x) * i / steps,
                start_y + (target_y - start_y) * i / steps,
            )
            self._sleep(self.config.move_step_delay_s)


