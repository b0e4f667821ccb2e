import threading

import pytest

from conftest import ScriptedModel, computer_turn, finish_turn
from os_autopilot.core.errors import ModelRequestError
from os_autopilot.core.lifecycle import (ACTION_EXECUTED, ACTION_FAILED,
                                         RUN_FINISHED, SESSION_COMMITTED)
from os_autopilot.core.tal import (ImageBlock, Role, RunStatus, TextBlock,
                                   ToolResultBlock, Turn)


def _result_block(turn: Turn) -> ToolResultBlock:
    results = turn.tool_results()
    assert len(results) == 1
    return results[0]


# -----------------------------------------------------
# End-to-end runs
# -----------------------------------------------------
def test_click_then_finish_completes(make_orchestrator, fake_input):
    click = computer_turn("left_click")
    model = ScriptedModel([click, finish_turn(True)])
    orch = make_orchestrator(model)

    session = orch.start("click button")

    assert session.status == RunStatus.COMPLETED
    assert session.error is None
    assert not session.running
    assert len(session.history) == 4
    assert session.history[0] == Turn.user_text("click button")
    assert session.history[1] == click

    result = _result_block(session.history[2])
    assert result.tool_use_id == click.tool_uses()[0].id
    assert isinstance(result.content[0], TextBlock)
    assert isinstance(result.content[-1], ImageBlock)
    assert len(fake_input.calls_to("click")) == 1


def test_unknown_key_is_reported_and_run_continues(make_orchestrator, fake_input):
    key = computer_turn("key", text="Foo")
    observed = {}

    def after_failure(history):
        observed["running"] = orch.snapshot().running
        observed["last"] = history[-1]
        return finish_turn(True)

    orch = make_orchestrator(ScriptedModel([key, after_failure]))
    session = orch.start("press foo")

    assert observed["running"] is True
    result = _result_block(observed["last"])
    assert result.tool_use_id == key.tool_uses()[0].id
    assert all(isinstance(c, TextBlock) for c in result.content)
    assert "Foo" in result.content[0].text
    assert "Please try a different approach" in result.content[0].text
    assert fake_input.calls_to("press_keys") == []
    assert session.status == RunStatus.COMPLETED


def test_step_cap_stops_run_at_exactly_twice_max_steps(make_orchestrator, fast_config):
    config = fast_config.model_copy(update={"max_steps": 25})
    model = ScriptedModel(default=lambda history: computer_turn("left_click"))
    orch = make_orchestrator(model, config)

    session = orch.start("click forever")

    assert session.status == RunStatus.ERRORED
    assert session.error == "Maximum steps exceeded"
    assert len(session.history) == 50
    assert len(model.requests) == 25


def test_finish_on_last_budgeted_turn_completes(make_orchestrator, fast_config):
    config = fast_config.model_copy(update={"max_steps": 2})
    orch = make_orchestrator(ScriptedModel([computer_turn("left_click"), finish_turn(True)]), config)

    session = orch.start("click then stop")

    assert session.status == RunStatus.COMPLETED
    assert session.error is None
    assert len(session.history) == 4


def test_bad_turn_at_cap_reports_its_own_error(make_orchestrator, fast_config):
    config = fast_config.model_copy(update={"max_steps": 1})
    chatty = Turn(role=Role.ASSISTANT, content="Nothing to do.")
    session = make_orchestrator(ScriptedModel([chatty]), config).start("anything")

    assert session.status == RunStatus.ERRORED
    assert session.error == "No tool call found in the model response"
    assert len(session.history) == 2


def test_default_step_budget_is_fifty(make_orchestrator):
    model = ScriptedModel(default=lambda history: computer_turn("screenshot"))
    session = make_orchestrator(model).start("look around")

    assert session.error == "Maximum steps exceeded"
    assert len(session.history) == 100
    assert len(model.requests) == 50


def test_stop_between_model_call_and_execution(make_orchestrator, fake_input):
    third = computer_turn("left_click")

    def stop_then_click(history):
        orch.stop()
        return third

    model = ScriptedModel([computer_turn("screenshot"), computer_turn("screenshot"), stop_then_click])
    orch = make_orchestrator(model)

    session = orch.start("three steps")

    assert session.status == RunStatus.IDLE
    assert session.error is None
    assert len(session.history) == 6
    assert session.history[-1] == third
    assert session.pending_tool_use_id == third.tool_uses()[0].id
    assert fake_input.calls_to("click") == []


# -----------------------------------------------------
# Loop invariants
# -----------------------------------------------------
def test_history_grows_by_two_per_successful_step(make_orchestrator):
    steps = [computer_turn("mouse_move", coordinate=[10 * i, 10 * i]) for i in range(1, 6)]
    model = ScriptedModel(steps + [finish_turn()])
    session = make_orchestrator(model).start("wiggle")

    assert [len(h) for h in model.requests] == [1 + 2 * n for n in range(6)]
    assert len(session.history) == 1 + 2 * 5 + 1
    roles = [t.role for t in session.history]
    assert roles[0] == Role.USER
    assert roles[1::2] == [Role.ASSISTANT] * 6
    assert roles[2::2] == [Role.USER] * 5


def test_model_sees_images_only_in_latest_turn(make_orchestrator):
    model = ScriptedModel([computer_turn("screenshot"), computer_turn("screenshot"), finish_turn()])
    make_orchestrator(model).start("look twice")

    last_request = model.requests[-1]
    images = [
        i for i, turn in enumerate(last_request)
        for r in turn.tool_results() for c in r.content if isinstance(c, ImageBlock)
    ]
    assert images == [len(last_request) - 1]


def test_model_receives_agent_space_display_size(make_orchestrator, fake_screen):
    from os_autopilot.core.geometry import DisplayInfo

    fake_screen.display = DisplayInfo(width=1920, height=1080)
    model = ScriptedModel([finish_turn()])
    make_orchestrator(model).start("anything")
    assert model.display_sizes == [(1280, 720)]


def test_cursor_position_is_reported_back(make_orchestrator, fake_input):
    fake_input.position = (640, 400)
    model = ScriptedModel([computer_turn("cursor_position"), finish_turn()])
    session = make_orchestrator(model).start("where is the mouse")

    texts = [c.text for c in _result_block(session.history[2]).content if isinstance(c, TextBlock)]
    assert "Cursor position: (640, 400)" in texts


def test_finish_with_failure_still_completes(make_orchestrator):
    session = make_orchestrator(ScriptedModel([finish_turn(False, "login required")])).start("log in")
    assert session.status == RunStatus.COMPLETED
    assert session.error is None


# -----------------------------------------------------
# Fatal errors
# -----------------------------------------------------
def test_model_failure_is_fatal(make_orchestrator):
    model = ScriptedModel([computer_turn("screenshot"), ModelRequestError("overloaded")])
    session = make_orchestrator(model).start("do things")

    assert session.status == RunStatus.ERRORED
    assert session.error == "overloaded"
    assert len(session.history) == 3


def test_turn_without_tool_call_is_fatal(make_orchestrator):
    chatty = Turn(role=Role.ASSISTANT, content=(TextBlock(text="Sure, let me think."),))
    session = make_orchestrator(ScriptedModel([chatty])).start("do things")

    assert session.status == RunStatus.ERRORED
    assert "No tool call" in session.error
    assert session.history[-1] == chatty


def test_capture_failure_after_action_is_fatal(make_orchestrator, fake_screen):
    fake_screen._sources = []
    session = make_orchestrator(ScriptedModel([computer_turn("left_click")])).start("click")

    assert session.status == RunStatus.ERRORED
    assert session.error == "No display found for screenshot"
    assert len(session.history) == 2


def test_exhausted_retries_become_failure_note(make_orchestrator, fake_input):
    fake_input.fail("click")
    fake_input.fail("double_click")
    model = ScriptedModel([computer_turn("left_click"), finish_turn()])
    session = make_orchestrator(model).start("click")

    assert session.status == RunStatus.COMPLETED
    note = _result_block(session.history[2]).content
    assert len(note) == 1
    assert note[0].text.startswith("Action failed:")
    assert len(fake_input.calls_to("click")) == 4


# -----------------------------------------------------
# Control surface
# -----------------------------------------------------
def test_start_requires_instructions(make_orchestrator):
    model = ScriptedModel()
    session = make_orchestrator(model).start("")
    assert session.status == RunStatus.IDLE
    assert session.history == ()
    assert model.requests == []


def test_start_while_running_is_a_no_op(make_orchestrator):
    nested = {}

    def start_again(history):
        nested["session"] = orch.start("something else")
        return finish_turn()

    orch = make_orchestrator(ScriptedModel([start_again]))
    session = orch.start("first task")

    assert nested["session"].running
    assert nested["session"].instructions == "first task"
    assert session.history[0] == Turn.user_text("first task")
    assert len(session.history) == 2


def test_restart_resets_history(make_orchestrator):
    orch = make_orchestrator(ScriptedModel([finish_turn(), finish_turn()]))
    orch.start("first")
    session = orch.start("second")
    assert session.history[0] == Turn.user_text("second")
    assert len(session.history) == 2


def test_send_message_answers_pending_tool_use(make_orchestrator):
    pending = computer_turn("left_click")

    def stop_before_executing(history):
        orch.stop()
        return pending

    done = finish_turn()
    orch = make_orchestrator(ScriptedModel([stop_before_executing, done]))
    orch.start("click it")
    assert orch.snapshot().pending_tool_use_id == pending.tool_uses()[0].id

    orch.set_instructions("actually, never mind")
    session = orch.send_message()

    synthetic = _result_block(session.history[2])
    assert synthetic.tool_use_id == pending.tool_uses()[0].id
    assert synthetic.content[0].text == "Action completed successfully"
    assert session.history[3] == Turn.user_text("actually, never mind")
    assert session.status == RunStatus.COMPLETED
    # the finish_run call itself is now the unanswered tool use
    assert session.pending_tool_use_id == done.tool_uses()[0].id


def test_send_message_without_pending_tool_use(make_orchestrator):
    chatty = Turn(role=Role.ASSISTANT, content="Which file do you mean?")
    orch = make_orchestrator(ScriptedModel([chatty, finish_turn()]))
    orch.start("first")
    assert orch.snapshot().pending_tool_use_id is None
    orch.set_instructions("and another thing")
    session = orch.send_message()

    assert [t.role for t in session.history] == [Role.USER, Role.ASSISTANT, Role.USER, Role.ASSISTANT]
    assert session.history[2] == Turn.user_text("and another thing")


def test_send_message_after_step_cap_does_not_grow_history(make_orchestrator, fast_config, events):
    config = fast_config.model_copy(update={"max_steps": 2})
    model = ScriptedModel(default=lambda history: computer_turn("left_click"))
    orch = make_orchestrator(model, config)
    orch.start("click forever")
    assert orch.snapshot().error == "Maximum steps exceeded"
    assert len(orch.snapshot().history) == 4

    committed = []
    events.register(SESSION_COMMITTED, lambda ctx: committed.append(ctx["session"]))
    orch.set_instructions("one more")
    session = orch.send_message()

    assert session.status == RunStatus.ERRORED
    assert session.error == "Maximum steps exceeded"
    assert len(session.history) == 4
    assert not any(s.running for s in committed)
    assert all(len(s.history) <= 4 for s in committed)
    assert len(model.requests) == 2

    # the run was released, so a fresh start works
    assert orch.start("again").history[0] == Turn.user_text("again")


def test_stop_right_after_background_start_is_honored(make_orchestrator, monkeypatch):
    class DeferredThread(threading.Thread):
        def start(self):
            pass

    monkeypatch.setattr(threading, "Thread", DeferredThread)
    model = ScriptedModel([finish_turn()])
    orch = make_orchestrator(model)

    worker = orch.start_in_background("do it")
    orch.stop()
    worker.run()

    session = orch.snapshot()
    assert session.status == RunStatus.IDLE
    assert session.history == (Turn.user_text("do it"),)
    assert model.requests == []


def test_clear_history(make_orchestrator):
    orch = make_orchestrator(ScriptedModel([Turn(role=Role.ASSISTANT, content="no tools")]))
    orch.start("fail please")
    assert orch.snapshot().error

    orch.clear_history()
    session = orch.snapshot()
    assert session.history == ()
    assert session.error is None
    assert session.instructions == "fail please"


def test_stop_interrupts_settle_delay(make_orchestrator, fast_config, fake_screen):
    config = fast_config.model_copy(update={"settle_delay_s": 30})
    entered = threading.Event()

    def click(history):
        entered.set()
        return computer_turn("left_click")

    orch = make_orchestrator(ScriptedModel([click]), config)
    worker = orch.start_in_background("slow click")
    assert entered.wait(5)
    orch.stop()
    worker.join(5)

    assert not worker.is_alive()
    session = orch.snapshot()
    assert session.status == RunStatus.IDLE
    assert len(session.history) == 2
    assert fake_screen.captures == 0


def test_lifecycle_events(make_orchestrator, events, fake_input):
    seen = []
    for name in (SESSION_COMMITTED, ACTION_EXECUTED, ACTION_FAILED, RUN_FINISHED):
        events.register(name, lambda ctx, name=name: seen.append(name))
    fake_input.fail("drag")

    model = ScriptedModel([
        computer_turn("left_click"),
        computer_turn("left_click_drag", coordinate=[5, 5]),
        finish_turn(),
    ])
    make_orchestrator(model).start("events")

    assert seen.count(ACTION_EXECUTED) == 1
    assert seen.count(ACTION_FAILED) == 1
    assert seen[-1] == RUN_FINISHED
    assert SESSION_COMMITTED in seen


def test_snapshots_are_immutable(make_orchestrator):
    orch = make_orchestrator(ScriptedModel([finish_turn()]))
    before = orch.snapshot()
    orch.start("go")
    assert before.history == ()
    with pytest.raises(Exception):
        orch.snapshot().history[0].content = "changed"


def test_orchestrator_builds_adapters_from_registry(fast_config, events):
    from conftest import FakeDesktop
    from os_autopilot.core.integration_contract import AdapterKind
    from os_autopilot.core.orchestrator import Orchestrator
    from os_autopilot.core.registry import registry

    desktop = FakeDesktop()
    model = ScriptedModel([computer_turn("left_click"), finish_turn()])
    registry.register_adapter("fake_desktop", lambda: desktop, kinds=[AdapterKind.INPUT, AdapterKind.SCREEN])
    registry.register_adapter("anthropic", lambda **kwargs: model, kinds=[AdapterKind.MODEL])

    config = fast_config.model_copy(update={"input_backend": "fake_desktop", "screen_backend": "fake_desktop"})
    orch = Orchestrator(config=config, events=events)

    assert orch.input is desktop and orch.screen is desktop
    assert orch.start("click").status == RunStatus.COMPLETED
    assert len(desktop.calls_to("click")) == 1
