# os_autopilot/core/orchestrator.py
"""
The step loop: ask the agent for a turn, pull one action out of it, perform
it, report back with a screenshot, repeat until the agent finishes, fails,
the step budget runs out, or someone calls ``stop()``.
"""
import logging
import threading
import time
from typing import Any, Callable, Dict, Optional

from os_autopilot.agents.executor_agent import ExecutorAgent
from os_autopilot.agents.main_ai import MainAIAgent, extract_action
from os_autopilot.core.adapters import (BaseInputAdapter, BaseModelAdapter,
                                        BaseScreenAdapter)
from os_autopilot.core.capture import ScreenCapture
from os_autopilot.core.config import AutopilotConfig, load_config
from os_autopilot.core.errors import ActionError, MaxStepsExceeded
from os_autopilot.core.geometry import Geometry, agent_dimensions
from os_autopilot.core.integration_contract import AdapterKind
from os_autopilot.core.lifecycle import (ACTION_EXECUTED, ACTION_FAILED,
                                         RUN_FINISHED, RUN_STARTED,
                                         SESSION_COMMITTED, LifecycleManager,
                                         lifecycle)
from os_autopilot.core.registry import registry
from os_autopilot.core.tal import (ErrorAction, Finish, Role, RunStatus,
                                   Session, TextBlock, Turn)

logger = logging.getLogger(__name__)

SCREENSHOT_NOTE = "Here is a screenshot after the action was executed"
SYNTHETIC_RESULT_NOTE = "Action completed successfully"


# ====================================================================
# BUILT-IN ADAPTERS (imported lazily: pyautogui needs a live display)
# ====================================================================
def _pyautogui_factory():
    from os_autopilot.repos.pyautogui_adapter import PyAutoGUIAdapter
    return PyAutoGUIAdapter()


def _anthropic_factory(**kwargs):
    from os_autopilot.repos.anthropic_adapter import AnthropicAdapter
    return AnthropicAdapter(**kwargs)


def _openai_factory(**kwargs):
    from os_autopilot.repos.openai_adapter import OpenAIAdapter
    return OpenAIAdapter(**kwargs)


def register_builtin_adapters():
    builtins = [
        ("pyautogui", _pyautogui_factory, [AdapterKind.INPUT, AdapterKind.SCREEN], ["pyautogui", "Pillow"],
         "os_autopilot.repos.pyautogui_adapter.PyAutoGUIAdapter"),
        ("anthropic", _anthropic_factory, [AdapterKind.MODEL], ["anthropic"],
         "os_autopilot.repos.anthropic_adapter.AnthropicAdapter"),
        ("openai", _openai_factory, [AdapterKind.MODEL], ["openai"],
         "os_autopilot.repos.openai_adapter.OpenAIAdapter"),
    ]
    for name, factory, kinds, deps, adapter_class in builtins:
        if registry.get_adapter(name) is None:
            registry.register_adapter(name, factory, kinds=kinds, dependencies=deps, adapter_class=adapter_class)


# ====================================================================
# SESSION STORE
# ====================================================================
class SessionStore:
    """
    Holds the current ``Session``. Readers get immutable snapshots; every
    write publishes a complete new snapshot.
    """

    def __init__(self, session: Optional[Session] = None, events: Optional[LifecycleManager] = None):
        self._session = session or Session()
        self._lock = threading.Lock()
        self._events = events or lifecycle

    def snapshot(self) -> Session:
        return self._session

    def commit(self, **changes) -> Session:
        with self._lock:
            self._session = self._session.model_copy(update=changes)
            session = self._session
        self._events.emit(SESSION_COMMITTED, {"session": session})
        return session

    def append(self, turn: Turn) -> Session:
        """Append one turn, keeping ``pending_tool_use_id`` in step with it."""
        with self._lock:
            current = self._session
            pending = current.pending_tool_use_id
            if turn.role == Role.ASSISTANT and turn.tool_uses():
                pending = turn.tool_uses()[-1].id
            elif turn.tool_results():
                pending = None
            self._session = current.model_copy(
                update={"history": current.history + (turn,), "pending_tool_use_id": pending}
            )
            session = self._session
        self._events.emit(SESSION_COMMITTED, {"session": session})
        return session


# ====================================================================
# ORCHESTRATOR
# ====================================================================
class Orchestrator:
    def __init__(
        self,
        config: Optional[AutopilotConfig] = None,
        model: Optional[BaseModelAdapter] = None,
        input_adapter: Optional[BaseInputAdapter] = None,
        screen: Optional[BaseScreenAdapter] = None,
        events: Optional[LifecycleManager] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config or load_config()
        self.events = events or lifecycle
        register_builtin_adapters()

        self.screen = screen or registry.create(self.config.screen_backend, AdapterKind.SCREEN)
        if input_adapter is None and self.config.input_backend == self.config.screen_backend \
                and isinstance(self.screen, BaseInputAdapter):
            input_adapter = self.screen
        self.input = input_adapter or registry.create(self.config.input_backend, AdapterKind.INPUT)

        if model is None:
            model_kwargs: Dict[str, Any] = {"max_tokens": self.config.model.max_tokens}
            if self.config.model.name:
                model_kwargs["model"] = self.config.model.name
            model = registry.create(self.config.model.provider, AdapterKind.MODEL, **model_kwargs)
        self.model = model

        self.geometry = Geometry(self.screen.primary_display_info)
        self.capture = ScreenCapture(self.screen)
        self.executor_agent = ExecutorAgent(self.input, self.geometry, self.config, sleep=sleep)
        self.main_agent = MainAIAgent(self.model)
        self.store = SessionStore(events=self.events)

        self._stop_requested = threading.Event()
        self._run_lock = threading.Lock()
        self._active = False

    # ====================================================================
    # CONTROL SURFACE
    # ====================================================================
    def snapshot(self) -> Session:
        return self.store.snapshot()

    def set_instructions(self, text: str) -> None:
        self.store.commit(instructions=text)

    def clear_history(self) -> None:
        if self._active:
            logger.warning("clear_history ignored while a run is active")
            return
        self.store.commit(history=(), pending_tool_use_id=None, error=None, status=RunStatus.IDLE)

    def stop(self) -> None:
        """Request cancellation; the loop exits at its next check point."""
        if self._active:
            logger.info("Stop requested")
        self._stop_requested.set()

    def start(self, instructions: Optional[str] = None) -> Session:
        """
        Begin a fresh run with ``instructions`` (or the stored ones) and block
        until it ends. A start while a run is active, or with empty
        instructions, is a no-op.
        """
        if instructions is not None and not self._active:
            self.set_instructions(instructions)
        if not self._claim_run():
            return self.snapshot()
        return self._start_claimed()

    def _start_claimed(self) -> Session:
        text = self.snapshot().instructions
        self.store.commit(
            status=RunStatus.RUNNING,
            error=None,
            history=(Turn.user_text(text),),
            pending_tool_use_id=None,
        )
        return self._run()

    def send_message(self) -> Session:
        """Continue the conversation with the current instructions as a new user turn."""
        if not self._claim_run():
            return self.snapshot()

        session = self.snapshot()
        new_turns = 2 if session.pending_tool_use_id else 1
        # The appended turns plus a model reply must fit under the cap
        if len(session.history) + new_turns >= 2 * self.config.max_steps:
            self._fail(MaxStepsExceeded())
            self._release_run()
            return self.snapshot()

        if session.pending_tool_use_id:
            self.store.append(
                Turn.tool_result(session.pending_tool_use_id, TextBlock(text=SYNTHETIC_RESULT_NOTE))
            )
        self.store.append(Turn.user_text(session.instructions))
        self.store.commit(status=RunStatus.RUNNING, error=None)
        return self._run()

    def start_in_background(self, instructions: Optional[str] = None) -> threading.Thread:
        """
        Claim the run on the calling thread, then drive it on a worker thread.
        A ``stop()`` issued any time after this returns is honored.
        """
        if instructions is not None and not self._active:
            self.set_instructions(instructions)
        target = self._start_claimed if self._claim_run() else self.snapshot
        thread = threading.Thread(target=target, name="os-autopilot-run", daemon=True)
        thread.start()
        return thread

    def _claim_run(self) -> bool:
        with self._run_lock:
            if self._active or not self.snapshot().instructions:
                return False
            self._active = True
            self._stop_requested.clear()
            return True

    def _release_run(self) -> None:
        with self._run_lock:
            self._active = False

    # ====================================================================
    # RUN LOOP
    # ====================================================================
    def _run(self) -> Session:
        self.events.emit(RUN_STARTED, {"session": self.snapshot()})
        try:
            self._loop()
        finally:
            self._release_run()
            session = self.snapshot()
            logger.info("Run ended: status=%s error=%s turns=%d",
                        session.status.value, session.error, len(session.history))
            self.events.emit(RUN_FINISHED, {"session": session})
        return self.snapshot()

    def _loop(self) -> None:
        history_cap = 2 * self.config.max_steps

        while True:
            if self._stop_requested.is_set():
                return self._halt()
            if len(self.snapshot().history) >= history_cap:
                return self._fail(MaxStepsExceeded())

            # Model call, record the turn verbatim, extract the action
            try:
                display_size = agent_dimensions(self.geometry.display)
                turn = self.main_agent.next_turn(self.snapshot().history, display_size)
                session = self.store.append(turn)
                extracted = extract_action(turn)
            except Exception as e:
                logger.exception("Model step failed")
                return self._fail(e)

            action = extracted.action
            logger.info("REASONING %s", extracted.reasoning)
            logger.info("ACTION %s", action.model_dump())

            if isinstance(action, ErrorAction):
                return self._fail(action.message)
            if isinstance(action, Finish):
                logger.info("Agent finished: success=%s error=%s", action.success, action.error)
                self.store.commit(status=RunStatus.COMPLETED)
                return None
            # No room left for this action's tool result
            if len(session.history) >= history_cap:
                return self._fail(MaxStepsExceeded())
            if self._stop_requested.is_set():
                return self._halt()

            try:
                outcome = self.executor_agent.execute(action)
            except ActionError as e:
                logger.error("Action failed with all retries: %s", e)
                self.events.emit(ACTION_FAILED, {"action": action, "error": e})
                session = self.store.append(Turn.tool_result(
                    extracted.tool_use_id,
                    TextBlock(text=f"Action failed: {e}. Please try a different approach."),
                ))
                if len(session.history) >= history_cap:
                    return self._fail(MaxStepsExceeded())
                continue

            self.events.emit(ACTION_EXECUTED, {"action": action, "outcome": outcome})
            if self._stop_requested.is_set():
                return self._halt()
            # Settle delay; a stop request cuts it short
            if self._stop_requested.wait(self.config.settle_delay_s):
                return self._halt()

            try:
                screenshot = self.capture.capture_block()
            except Exception as e:
                logger.exception("Screenshot after action failed")
                return self._fail(e)

            notes = [TextBlock(text=SCREENSHOT_NOTE)]
            if outcome.output:
                notes.append(TextBlock(text=outcome.output))
            session = self.store.append(Turn.tool_result(extracted.tool_use_id, *notes, screenshot))
            if len(session.history) >= history_cap:
                return self._fail(MaxStepsExceeded())

    def _halt(self) -> None:
        logger.info("Run stopped")
        self.store.commit(status=RunStatus.IDLE)

    def _fail(self, error) -> None:
        message = str(error) or type(error).__name__
        logger.error("Run errored: %s", message)
        self.store.commit(status=RunStatus.ERRORED, error=message)
