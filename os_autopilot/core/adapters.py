# os_autopilot/core/adapters.py
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, List, Sequence, Tuple

from PIL import Image
from pydantic import BaseModel, ConfigDict

from os_autopilot.core.geometry import DisplayInfo
from os_autopilot.core.integration_contract import AdapterKind
from os_autopilot.core.tal import Turn


class Button(str, Enum):
    LEFT = "left"
    RIGHT = "right"
    MIDDLE = "middle"


class DisplaySource(BaseModel):
    """One capturable display; ``thumbnail`` is a full-resolution still."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    thumbnail: Image.Image


class BaseInputAdapter(ABC):
    """Native pointer/keyboard injection. Positions are physical pixels."""

    kinds = [AdapterKind.INPUT]

    @abstractmethod
    def get_pointer_position(self) -> Tuple[float, float]:
        pass

    @abstractmethod
    def set_pointer_position(self, x: float, y: float) -> None:
        pass

    @abstractmethod
    def click(self, button: Button) -> None:
        pass

    @abstractmethod
    def double_click(self, button: Button) -> None:
        pass

    @abstractmethod
    def drag(self, start: Tuple[float, float], end: Tuple[float, float]) -> None:
        pass

    @abstractmethod
    def type_text(self, text: str, delay_ms: int = 0) -> None:
        pass

    @abstractmethod
    def press_keys(self, keys: Sequence[str]) -> None:
        pass

    @abstractmethod
    def release_keys(self, keys: Sequence[str]) -> None:
        pass


class BaseScreenAdapter(ABC):
    kinds = [AdapterKind.SCREEN]

    @abstractmethod
    def list_display_sources(self) -> List[DisplaySource]:
        pass

    @abstractmethod
    def primary_display_info(self) -> DisplayInfo:
        pass


class BaseModelAdapter(ABC):
    """Agent-model transport: one call turns a Turn log into one assistant Turn."""

    kinds = [AdapterKind.MODEL]

    @abstractmethod
    def create_turn(
        self,
        history: Sequence[Turn],
        display_size: Tuple[int, int],
        system_prompt: str,
    ) -> Turn:
        pass


def finish_run_schema() -> Dict[str, Any]:
    """JSON schema of the ``finish_run`` tool input, shared by every transport."""
    return {
        "type": "object",
        "properties": {
            "success": {
                "type": "boolean",
                "description": "Whether the task was successful",
            },
            "error": {
                "type": "string",
                "description": "The error message if the task was not successful",
            },
        },
        "required": ["success"],
    }


COMPUTER_TOOL = "computer"
FINISH_TOOL = "finish_run"

# Actions the ``computer`` tool accepts (Anthropic computer_20241022 vocabulary)
COMPUTER_ACTIONS = (
    "key",
    "type",
    "mouse_move",
    "left_click",
    "left_click_drag",
    "right_click",
    "middle_click",
    "double_click",
    "screenshot",
    "cursor_position",
)
