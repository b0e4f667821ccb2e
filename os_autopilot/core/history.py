# os_autopilot/core/history.py
from typing import List, Sequence

from os_autopilot.core.tal import ToolResultBlock, Turn


def _strip_images(turn: Turn) -> Turn:
    if isinstance(turn.content, str):
        return turn
    if not any(isinstance(b, ToolResultBlock) for b in turn.content):
        return turn
    content = tuple(
        b.text_only() if isinstance(b, ToolResultBlock) else b for b in turn.content
    )
    return turn.model_copy(update={"content": content})


def compact_history(history: Sequence[Turn]) -> List[Turn]:
    """
    Transmission copy of ``history``: tool-result images survive only in the
    most recent turn. Stored turns are never modified; turns without tool
    results are shared with the input.
    """
    if not history:
        return []
    *earlier, last = history
    return [_strip_images(t) for t in earlier] + [last]
