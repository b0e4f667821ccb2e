# os_autopilot/tools/pyautogui/py_auto_tool.py
import logging
from typing import Sequence, Tuple

import pyautogui
from PIL import Image

logger = logging.getLogger(__name__)


class PyAutoTool:
    """Thin pyautogui wrapper; all positions are pyautogui (logical) points."""

    def __init__(self, pause: float = 0.05, drag_duration: float = 0.3):
        self.drag_duration = drag_duration
        logger.debug("PyAutoGUI tool initialized")
        # Agent targets may sit in screen corners
        pyautogui.FAILSAFE = False
        pyautogui.PAUSE = pause

    def position(self) -> Tuple[int, int]:
        pos = pyautogui.position()
        return pos.x, pos.y

    def move_to(self, x: int, y: int):
        logger.debug("🖱️ move_to(%s, %s)", x, y)
        pyautogui.moveTo(x, y)

    def click(self, button: str = "left"):
        logger.debug("🖱️ click(%s)", button)
        pyautogui.click(button=button)

    def double_click(self, button: str = "left"):
        logger.debug("🖱️ double_click(%s)", button)
        pyautogui.doubleClick(button=button)

    def drag(self, start: Tuple[int, int], end: Tuple[int, int]):
        logger.debug("🖱️ drag(%s -> %s)", start, end)
        pyautogui.moveTo(*start)
        pyautogui.dragTo(end[0], end[1], duration=self.drag_duration, button="left")

    def type_text(self, text: str, interval: float = 0.0):
        logger.debug("⌨️ type_text(%r, interval=%s)", text, interval)
        pyautogui.write(text, interval=interval)

    def key_down(self, keys: Sequence[str]):
        logger.debug("⌨️ key_down(%s)", keys)
        for key in keys:
            pyautogui.keyDown(key)

    def key_up(self, keys: Sequence[str]):
        logger.debug("⌨️ key_up(%s)", keys)
        for key in reversed(list(keys)):
            pyautogui.keyUp(key)

    def screen_size(self) -> Tuple[int, int]:
        size = pyautogui.size()
        return size.width, size.height

    def screenshot(self) -> Image.Image:
        return pyautogui.screenshot()
