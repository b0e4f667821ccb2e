# os_autopilot/repos/pyautogui_adapter.py
from typing import List, Optional, Sequence, Tuple

from os_autopilot.core.adapters import (BaseInputAdapter, BaseScreenAdapter,
                                        Button, DisplaySource)
from os_autopilot.core.geometry import DisplayInfo
from os_autopilot.core.integration_contract import AdapterKind
from os_autopilot.tools.pyautogui.py_auto_tool import PyAutoTool


class PyAutoGUIAdapter(BaseInputAdapter, BaseScreenAdapter):
    """
    Input injection and screen grabs through pyautogui.

    pyautogui moves the pointer in logical points while its screenshots are in
    device pixels. ``primary_display_info`` therefore reports the screenshot
    size as the physical size and ``screenshot / logical`` as the scale factor,
    which makes ``from_agent_space`` land on logical points.
    """

    kinds = [AdapterKind.INPUT, AdapterKind.SCREEN]

    def __init__(self, tool: Optional[PyAutoTool] = None):
        self.tool = tool or PyAutoTool()
        self._display: Optional[DisplayInfo] = None

    # -----------------------------------------------------
    # Input
    # -----------------------------------------------------
    def get_pointer_position(self) -> Tuple[float, float]:
        return self.tool.position()

    def set_pointer_position(self, x: float, y: float) -> None:
        self.tool.move_to(round(x), round(y))

    def click(self, button: Button) -> None:
        self.tool.click(Button(button).value)

    def double_click(self, button: Button) -> None:
        self.tool.double_click(Button(button).value)

    def drag(self, start: Tuple[float, float], end: Tuple[float, float]) -> None:
        self.tool.drag(
            (round(start[0]), round(start[1])),
            (round(end[0]), round(end[1])),
        )

    def type_text(self, text: str, delay_ms: int = 0) -> None:
        self.tool.type_text(text, interval=delay_ms / 1000.0)

    def press_keys(self, keys: Sequence[str]) -> None:
        self.tool.key_down(keys)

    def release_keys(self, keys: Sequence[str]) -> None:
        self.tool.key_up(keys)

    # -----------------------------------------------------
    # Screen
    # -----------------------------------------------------
    def list_display_sources(self) -> List[DisplaySource]:
        shot = self.tool.screenshot()
        if shot is None:
            return []
        self._display = self._display_from(shot.size)
        return [DisplaySource(thumbnail=shot)]

    def primary_display_info(self) -> DisplayInfo:
        if self._display is None:
            self._display = self._display_from(self.tool.screenshot().size)
        return self._display

    def _display_from(self, pixel_size: Tuple[int, int]) -> DisplayInfo:
        logical_w, _ = self.tool.screen_size()
        width, height = pixel_size
        return DisplayInfo(width=width, height=height, scale_factor=width / logical_w)
