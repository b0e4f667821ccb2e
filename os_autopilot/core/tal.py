# os_autopilot/core/tal.py
"""
Typed vocabulary shared by every layer: conversation content, turns, the
actions the agent may request, and the run session itself.

Content blocks serialize (``model_dump(exclude_none=True)``) to the same
shapes the Anthropic messages API uses, so a stored history can be sent as-is.
"""
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


# ====================================================================
# CONTENT BLOCKS
# ====================================================================
class TextBlock(_Frozen):
    type: Literal["text"] = "text"
    text: str


class ImageSource(_Frozen):
    type: Literal["base64"] = "base64"
    media_type: str = "image/png"
    data: str


class ImageBlock(_Frozen):
    type: Literal["image"] = "image"
    source: ImageSource

    @classmethod
    def from_base64(cls, data: str, media_type: str = "image/png") -> "ImageBlock":
        return cls(source=ImageSource(data=data, media_type=media_type))


ToolResultContent = Annotated[Union[TextBlock, ImageBlock], Field(discriminator="type")]


class ToolUseBlock(_Frozen):
    type: Literal["tool_use"] = "tool_use"
    id: str
    name: str
    input: Dict[str, Any] = Field(default_factory=dict)


class ToolResultBlock(_Frozen):
    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str
    content: Tuple[ToolResultContent, ...] = ()

    def text_only(self) -> "ToolResultBlock":
        """Copy of this result with every image entry removed."""
        return self.model_copy(
            update={"content": tuple(c for c in self.content if isinstance(c, TextBlock))}
        )


ContentBlock = Annotated[
    Union[TextBlock, ImageBlock, ToolUseBlock, ToolResultBlock],
    Field(discriminator="type"),
]


class Turn(_Frozen):
    role: Role
    content: Union[str, Tuple[ContentBlock, ...]]

    @classmethod
    def user_text(cls, text: str) -> "Turn":
        return cls(role=Role.USER, content=text)

    @classmethod
    def tool_result(cls, tool_use_id: str, *content: Union[TextBlock, ImageBlock]) -> "Turn":
        return cls(
            role=Role.USER,
            content=(ToolResultBlock(tool_use_id=tool_use_id, content=tuple(content)),),
        )

    @property
    def blocks(self) -> Tuple[Any, ...]:
        if isinstance(self.content, str):
            return (TextBlock(text=self.content),)
        return self.content

    def tool_uses(self) -> List[ToolUseBlock]:
        return [b for b in self.blocks if isinstance(b, ToolUseBlock)]

    def tool_results(self) -> List[ToolResultBlock]:
        return [b for b in self.blocks if isinstance(b, ToolResultBlock)]

    def text(self) -> str:
        return "\n".join(b.text for b in self.blocks if isinstance(b, TextBlock))

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


# ====================================================================
# ACTIONS  (coordinates are always agent-space)
# ====================================================================
class MouseMove(_Frozen):
    type: Literal["mouse_move"] = "mouse_move"
    x: float
    y: float


class LeftClick(_Frozen):
    type: Literal["left_click"] = "left_click"


class RightClick(_Frozen):
    type: Literal["right_click"] = "right_click"


class MiddleClick(_Frozen):
    type: Literal["middle_click"] = "middle_click"


class DoubleClick(_Frozen):
    type: Literal["double_click"] = "double_click"


class LeftClickDrag(_Frozen):
    type: Literal["left_click_drag"] = "left_click_drag"
    x: float
    y: float


class CursorPosition(_Frozen):
    type: Literal["cursor_position"] = "cursor_position"


class TypeText(_Frozen):
    type: Literal["type"] = "type"
    text: str


class KeyPress(_Frozen):
    type: Literal["key"] = "key"
    text: str


class Screenshot(_Frozen):
    type: Literal["screenshot"] = "screenshot"


class Finish(_Frozen):
    type: Literal["finish"] = "finish"
    success: bool
    error: Optional[str] = None


class ErrorAction(_Frozen):
    type: Literal["error"] = "error"
    message: str


Action = Annotated[
    Union[
        MouseMove,
        LeftClick,
        RightClick,
        MiddleClick,
        DoubleClick,
        LeftClickDrag,
        CursorPosition,
        TypeText,
        KeyPress,
        Screenshot,
        Finish,
        ErrorAction,
    ],
    Field(discriminator="type"),
]


class ExtractedAction(_Frozen):
    action: Action
    reasoning: str = ""
    tool_use_id: Optional[str] = None


class ActionOutcome(_Frozen):
    action: Action
    attempts: int = 1
    output: Optional[str] = None


# ====================================================================
# SESSION
# ====================================================================
class RunStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    ERRORED = "errored"


class Session(_Frozen):
    instructions: str = ""
    status: RunStatus = RunStatus.IDLE
    error: Optional[str] = None
    history: Tuple[Turn, ...] = ()
    pending_tool_use_id: Optional[str] = None

    @property
    def running(self) -> bool:
        return self.status == RunStatus.RUNNING
