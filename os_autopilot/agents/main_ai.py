# os_autopilot/agents/main_ai.py
import logging
from typing import Any, Dict, Sequence, Tuple

from pydantic import TypeAdapter, ValidationError

from os_autopilot.core.adapters import (COMPUTER_ACTIONS, COMPUTER_TOOL,
                                        FINISH_TOOL, BaseModelAdapter)
from os_autopilot.core.errors import (AutopilotError, ExtractionError,
                                      ModelRequestError)
from os_autopilot.core.history import compact_history
from os_autopilot.core.tal import (Action, ErrorAction, ExtractedAction,
                                   Finish, ToolUseBlock, Turn)

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """
The user will ask you to perform a task and you should use their computer to do so.
After each step, take a screenshot and carefully evaluate if you have achieved the right outcome.
Explicitly show your thinking: "I have evaluated step X..." If not correct, try again with a different approach.
Only when you confirm a step was executed correctly should you move on to the next one.
Note that you have to click into the browser address bar before typing a URL.
You should always call a tool! Always return exactly one tool call.
Remember to call the finish_run tool when you have achieved the goal of the task.
Do not explain you have finished the task, just call the tool.
Use keyboard shortcuts to navigate whenever possible.
""".strip()

_action_adapter = TypeAdapter(Action)


# -----------------------------------------------------
# Tool call -> Action
# -----------------------------------------------------
def _computer_action(params: Dict[str, Any]) -> Action:
    kind = params.get("action")
    if kind not in COMPUTER_ACTIONS:
        raise ExtractionError(f"Unknown computer action: {kind!r}")

    fields: Dict[str, Any] = {"type": kind}
    if kind in ("mouse_move", "left_click_drag"):
        coordinate = params.get("coordinate")
        if not isinstance(coordinate, (list, tuple)) or len(coordinate) != 2:
            raise ExtractionError(f"{kind} requires a coordinate [x, y], got {coordinate!r}")
        fields["x"], fields["y"] = coordinate
    elif kind in ("type", "key"):
        text = params.get("text")
        if not isinstance(text, str) or not text:
            raise ExtractionError(f"{kind} requires a non-empty text")
        fields["text"] = text

    try:
        return _action_adapter.validate_python(fields)
    except ValidationError as e:
        raise ExtractionError(f"Malformed {kind} action: {e}") from e


def _finish_action(params: Dict[str, Any]) -> Finish:
    success = params.get("success")
    if not isinstance(success, bool):
        raise ExtractionError(f"finish_run requires a boolean success, got {success!r}")
    error = params.get("error")
    return Finish(success=success, error=str(error) if error is not None else None)


def action_from_tool_use(use: ToolUseBlock) -> Action:
    if use.name == COMPUTER_TOOL:
        return _computer_action(use.input)
    if use.name == FINISH_TOOL:
        return _finish_action(use.input)
    raise ExtractionError(f"Unknown tool: {use.name}")


def extract_action(turn: Turn) -> ExtractedAction:
    """
    Pull the single tool call out of an assistant turn.

    The agent must answer every turn with exactly one tool call; a turn with
    none, several, or a malformed one yields an ``ErrorAction`` describing why.
    """
    reasoning = turn.text()
    uses = turn.tool_uses()

    if not uses:
        return ExtractedAction(
            action=ErrorAction(message="No tool call found in the model response"),
            reasoning=reasoning,
        )
    if len(uses) > 1:
        return ExtractedAction(
            action=ErrorAction(message=f"Expected exactly one tool call, got {len(uses)}"),
            reasoning=reasoning,
        )

    use = uses[0]
    try:
        action = action_from_tool_use(use)
    except ExtractionError as e:
        action = ErrorAction(message=str(e))
    return ExtractedAction(action=action, reasoning=reasoning, tool_use_id=use.id)


# ====================================================================
# MAIN AI AGENT
# ====================================================================
class MainAIAgent:
    """Asks the agent model for its next turn over an image-compacted history."""

    def __init__(self, model: BaseModelAdapter, system_prompt: str = SYSTEM_PROMPT):
        self.model = model
        self.system_prompt = system_prompt

    def next_turn(self, history: Sequence[Turn], display_size: Tuple[int, int]) -> Turn:
        compacted = compact_history(history)
        try:
            return self.model.create_turn(compacted, display_size, self.system_prompt)
        except AutopilotError:
            raise
        except Exception as e:
            raise ModelRequestError(f"Model call failed: {e}") from e
