from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

import pytest
from PIL import Image

from os_autopilot.core.adapters import (BaseInputAdapter, BaseModelAdapter,
                                        BaseScreenAdapter, DisplaySource)
from os_autopilot.core.config import AutopilotConfig
from os_autopilot.core.geometry import DisplayInfo
from os_autopilot.core.integration_contract import AdapterKind
from os_autopilot.core.lifecycle import LifecycleManager
from os_autopilot.core.registry import registry
from os_autopilot.core.tal import Role, TextBlock, ToolUseBlock, Turn


@pytest.fixture(autouse=True)
def isolate_registry():
    """
    Save & restore registry adapters/contracts around each test to avoid cross-test leakage.
    """
    saved_adapters = dict(registry._adapters)
    saved_contracts = dict(registry._contracts)
    try:
        yield
    finally:
        registry._adapters.clear()
        registry._adapters.update(saved_adapters)
        registry._contracts.clear()
        registry._contracts.update(saved_contracts)


# ====================================================================
# Fake collaborators
# ====================================================================
class FakeInput(BaseInputAdapter):
    """Records every call; ``fail(method, times)`` makes a method raise."""

    def __init__(self, position: Tuple[float, float] = (0, 0)):
        self.position = position
        self.calls: List[tuple] = []
        self._failures: Dict[str, Optional[int]] = {}

    def fail(self, method: str, times: Optional[int] = None):
        # times=None fails forever
        self._failures[method] = times

    def calls_to(self, method: str) -> List[tuple]:
        return [c[1:] for c in self.calls if c[0] == method]

    def _record(self, method: str, *args):
        self.calls.append((method,) + args)
        if method in self._failures:
            remaining = self._failures[method]
            if remaining is None:
                raise RuntimeError(f"{method} failed")
            if remaining > 0:
                self._failures[method] = remaining - 1
                raise RuntimeError(f"{method} failed")

    def get_pointer_position(self):
        self._record("get_pointer_position")
        return self.position

    def set_pointer_position(self, x, y):
        self._record("set_pointer_position", x, y)
        self.position = (x, y)

    def click(self, button):
        self._record("click", button)

    def double_click(self, button):
        self._record("double_click", button)

    def drag(self, start, end):
        self._record("drag", start, end)

    def type_text(self, text, delay_ms=0):
        self._record("type_text", text, delay_ms)

    def press_keys(self, keys):
        self._record("press_keys", list(keys))

    def release_keys(self, keys):
        self._record("release_keys", list(keys))


class FakeScreen(BaseScreenAdapter):
    def __init__(self, display: Optional[DisplayInfo] = None, sources: Optional[list] = None):
        self.display = display or DisplayInfo(width=1280, height=800)
        self._sources = sources
        self.captures = 0

    def list_display_sources(self):
        self.captures += 1
        if self._sources is not None:
            return self._sources
        image = Image.new("RGB", (self.display.width, self.display.height), color=(255, 255, 255))
        return [DisplaySource(thumbnail=image)]

    def primary_display_info(self):
        return self.display


class FakeDesktop(FakeInput, FakeScreen):
    kinds = [AdapterKind.INPUT, AdapterKind.SCREEN]

    def __init__(self, display: Optional[DisplayInfo] = None):
        FakeInput.__init__(self)
        FakeScreen.__init__(self, display)


Reply = Union[Turn, Callable[[Sequence[Turn]], Turn], Exception]


class ScriptedModel(BaseModelAdapter):
    """
    Replays scripted replies. Each reply is a Turn, an exception to raise, or
    a callable receiving the history it was sent. ``default`` is used once
    the script runs out.
    """

    def __init__(self, replies: Sequence[Reply] = (), default: Optional[Reply] = None):
        self.replies = list(replies)
        self.default = default
        self.requests: List[List[Turn]] = []
        self.display_sizes: List[Tuple[int, int]] = []
        self.system_prompts: List[str] = []

    def create_turn(self, history, display_size, system_prompt):
        self.requests.append(list(history))
        self.display_sizes.append(display_size)
        self.system_prompts.append(system_prompt)
        reply = self.replies.pop(0) if self.replies else self.default
        if reply is None:
            raise AssertionError("model called more often than scripted")
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            return reply(history)
        return reply


# ====================================================================
# Turn builders
# ====================================================================
_ids = iter(range(1, 1_000_000))


def computer_turn(action: str, reasoning: str = "I have evaluated the screen.", **params) -> Turn:
    tool_input = {"action": action, **params}
    return Turn(
        role=Role.ASSISTANT,
        content=(
            TextBlock(text=reasoning),
            ToolUseBlock(id=f"toolu_{next(_ids)}", name="computer", input=tool_input),
        ),
    )


def finish_turn(success: bool = True, error: Optional[str] = None) -> Turn:
    tool_input = {"success": success}
    if error is not None:
        tool_input["error"] = error
    return Turn(
        role=Role.ASSISTANT,
        content=(ToolUseBlock(id=f"toolu_{next(_ids)}", name="finish_run", input=tool_input),),
    )


# ====================================================================
# Fixtures
# ====================================================================
@pytest.fixture
def fast_config():
    return AutopilotConfig(
        settle_delay_s=0,
        key_hold_s=0,
        fallback_char_delay_s=0,
        move_step_delay_s=0,
    )


@pytest.fixture
def fake_input():
    return FakeInput()


@pytest.fixture
def fake_screen():
    return FakeScreen()


@pytest.fixture
def events():
    return LifecycleManager()


@pytest.fixture
def make_orchestrator(fast_config, fake_input, fake_screen, events):
    from os_autopilot.core.orchestrator import Orchestrator

    def _make(model: BaseModelAdapter, config: Optional[AutopilotConfig] = None):
        return Orchestrator(
            config=config or fast_config,
            model=model,
            input_adapter=fake_input,
            screen=fake_screen,
            events=events,
            sleep=lambda s: None,
        )

    return _make
