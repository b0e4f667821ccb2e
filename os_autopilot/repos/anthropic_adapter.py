# os_autopilot/repos/anthropic_adapter.py
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

import anthropic
from pydantic import TypeAdapter, ValidationError

from os_autopilot.core.adapters import (COMPUTER_TOOL, FINISH_TOOL,
                                        BaseModelAdapter, finish_run_schema)
from os_autopilot.core.errors import ModelRequestError
from os_autopilot.core.tal import ContentBlock, Role, Turn

logger = logging.getLogger(__name__)

COMPUTER_USE_BETA = "computer-use-2024-10-22"
COMPUTER_TOOL_TYPE = "computer_20241022"

_block_adapter = TypeAdapter(ContentBlock)


class AnthropicAdapter(BaseModelAdapter):
    """Claude through the computer-use beta of the Messages API."""

    def __init__(
        self,
        model: str = "claude-3-5-sonnet-20241022",
        max_tokens: int = 1024,
        client: Optional[Any] = None,
    ):
        self.model = model
        self.max_tokens = max_tokens
        # ANTHROPIC_API_KEY is read from the environment by the client
        self.client = client or anthropic.Anthropic()

    def tools(self, display_size: Tuple[int, int]) -> List[Dict[str, Any]]:
        width, height = display_size
        return [
            {
                "type": COMPUTER_TOOL_TYPE,
                "name": COMPUTER_TOOL,
                "display_width_px": width,
                "display_height_px": height,
                "display_number": 1,
            },
            {
                "name": FINISH_TOOL,
                "description": "Call this function when you have achieved the goal of the task.",
                "input_schema": finish_run_schema(),
            },
        ]

    def create_turn(
        self,
        history: Sequence[Turn],
        display_size: Tuple[int, int],
        system_prompt: str,
    ) -> Turn:
        try:
            message = self.client.beta.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                tools=self.tools(display_size),
                system=system_prompt,
                messages=[t.to_wire() for t in history],
                betas=[COMPUTER_USE_BETA],
            )
        except anthropic.APIError as e:
            raise ModelRequestError(f"Anthropic request failed: {e}") from e

        blocks = []
        for block in message.content:
            raw = block.model_dump() if hasattr(block, "model_dump") else dict(block)
            if raw.get("type") not in ("text", "tool_use"):
                logger.debug("Ignoring %s block in model response", raw.get("type"))
                continue
            try:
                blocks.append(_block_adapter.validate_python(raw))
            except ValidationError as e:
                raise ModelRequestError(f"Unreadable content block from model: {e}") from e

        return Turn(role=Role.ASSISTANT, content=tuple(blocks))
