# os_autopilot/repos/openai_adapter.py
import json
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from openai import OpenAI, OpenAIError

from os_autopilot.core.adapters import (COMPUTER_ACTIONS, COMPUTER_TOOL,
                                        FINISH_TOOL, BaseModelAdapter,
                                        finish_run_schema)
from os_autopilot.core.errors import ModelRequestError
from os_autopilot.core.tal import (ImageBlock, Role, TextBlock,
                                   ToolResultBlock, ToolUseBlock, Turn)

logger = logging.getLogger(__name__)


def _image_part(image: ImageBlock) -> Dict[str, Any]:
    return {
        "type": "image_url",
        "image_url": {"url": f"data:{image.source.media_type};base64,{image.source.data}"},
    }


def to_openai_messages(history: Sequence[Turn], system_prompt: str) -> List[Dict[str, Any]]:
    """
    Translate the Turn log into chat-completions messages.

    Tool results become ``tool`` messages (text only, the API does not accept
    images there); their screenshots follow in one ``user`` message.
    """
    messages: List[Dict[str, Any]] = [{"role": "system", "content": system_prompt}]

    for turn in history:
        if isinstance(turn.content, str):
            messages.append({"role": turn.role.value, "content": turn.content})
            continue

        if turn.role == Role.ASSISTANT:
            msg: Dict[str, Any] = {"role": "assistant", "content": turn.text() or None}
            tool_calls = [
                {
                    "id": use.id,
                    "type": "function",
                    "function": {"name": use.name, "arguments": json.dumps(use.input)},
                }
                for use in turn.tool_uses()
            ]
            if tool_calls:
                msg["tool_calls"] = tool_calls
            messages.append(msg)
            continue

        parts: List[Dict[str, Any]] = []
        for block in turn.content:
            if isinstance(block, ToolResultBlock):
                text = "\n".join(c.text for c in block.content if isinstance(c, TextBlock))
                messages.append({"role": "tool", "tool_call_id": block.tool_use_id, "content": text})
                parts.extend(_image_part(c) for c in block.content if isinstance(c, ImageBlock))
            elif isinstance(block, TextBlock):
                parts.append({"type": "text", "text": block.text})
            elif isinstance(block, ImageBlock):
                parts.append(_image_part(block))
        if parts:
            messages.append({"role": "user", "content": parts})

    return messages


class OpenAIAdapter(BaseModelAdapter):
    """OpenAI chat completions with function calling standing in for the computer tool."""

    def __init__(self, model: str = "gpt-4o", max_tokens: int = 1024, client: Optional[Any] = None):
        self.model = model
        self.max_tokens = max_tokens
        self.client = client or OpenAI()

    def tools(self, display_size: Tuple[int, int]) -> List[Dict[str, Any]]:
        width, height = display_size
        return [
            {
                "type": "function",
                "function": {
                    "name": COMPUTER_TOOL,
                    "description": (
                        f"Use a mouse and keyboard to interact with a {width}x{height} screen "
                        "and take screenshots. Coordinates are pixels from the top-left corner. "
                        "Keys are '+'-joined names such as Return, Tab, ArrowUp."
                    ),
                    "parameters": {
                        "type": "object",
                        "properties": {
                            "action": {"type": "string", "enum": list(COMPUTER_ACTIONS)},
                            "coordinate": {
                                "type": "array",
                                "items": {"type": "integer"},
                                "description": "[x, y], required by mouse_move and left_click_drag",
                            },
                            "text": {
                                "type": "string",
                                "description": "Required by type and key",
                            },
                        },
                        "required": ["action"],
                    },
                },
            },
            {
                "type": "function",
                "function": {
                    "name": FINISH_TOOL,
                    "description": "Call this function when you have achieved the goal of the task.",
                    "parameters": finish_run_schema(),
                },
            },
        ]

    def create_turn(
        self,
        history: Sequence[Turn],
        display_size: Tuple[int, int],
        system_prompt: str,
    ) -> Turn:
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                max_tokens=self.max_tokens,
                messages=to_openai_messages(history, system_prompt),
                tools=self.tools(display_size),
            )
        except OpenAIError as e:
            raise ModelRequestError(f"OpenAI request failed: {e}") from e

        message = response.choices[0].message
        blocks: List[Any] = []
        if message.content:
            blocks.append(TextBlock(text=message.content))
        for call in message.tool_calls or []:
            try:
                arguments = json.loads(call.function.arguments or "{}")
            except json.JSONDecodeError as e:
                raise ModelRequestError(
                    f"Model returned unparseable arguments for {call.function.name}: {e}"
                ) from e
            blocks.append(ToolUseBlock(id=call.id, name=call.function.name, input=arguments))

        return Turn(role=Role.ASSISTANT, content=tuple(blocks))
