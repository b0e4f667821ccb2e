# os_autopilot/cli/cli.py
import json

import click

from os_autopilot.core.config import load_config
from os_autopilot.core.geometry import agent_dimensions
from os_autopilot.core.integration_contract import AdapterKind
from os_autopilot.core.registry import registry
from os_autopilot.utils.logger import set_level


def _summary(session):
    last_text = next(
        (t.text() for t in reversed(session.history) if t.role.value == "assistant" and t.text()),
        None,
    )
    return {
        "instructions": session.instructions,
        "status": session.status.value,
        "error": session.error,
        "turns": len(session.history),
        "last_reasoning": last_text,
    }


@click.group()
@click.option("--log-level", default="INFO", show_default=True, help="DEBUG, INFO, WARNING, ERROR")
def cli(log_level):
    set_level(log_level)


@cli.command()
@click.argument("prompt")
@click.option("--config", "config_path", default=None, help="Path to an autopilot YAML config")
@click.option("--provider", type=click.Choice(["anthropic", "openai"]), default=None, help="Override model provider")
@click.option("--model", default=None, help="Override model name")
@click.option("--max-steps", type=int, default=None, help="Override the step budget")
def run(prompt, config_path, provider, model, max_steps):
    """Let the agent drive this computer until PROMPT is done."""
    from os_autopilot.core.orchestrator import Orchestrator

    cfg = load_config(config_path)
    if provider:
        cfg.model.provider = provider
        if not model:
            cfg.model.name = None
    if model:
        cfg.model.name = model
    if max_steps:
        cfg.max_steps = max_steps

    orch = Orchestrator(config=cfg)
    worker = orch.start_in_background(prompt)
    try:
        while worker.is_alive():
            worker.join(0.5)
    except KeyboardInterrupt:
        click.echo("Stopping after the current step...", err=True)
        orch.stop()
        worker.join()

    session = orch.snapshot()
    click.echo(json.dumps(_summary(session), indent=2))
    if session.error:
        raise SystemExit(1)


@cli.command()
@click.option("--config", "config_path", default=None, help="Path to an autopilot YAML config")
def dimensions(config_path):
    """Show the primary display size and the agent-space size derived from it."""
    from os_autopilot.core.orchestrator import register_builtin_adapters

    cfg = load_config(config_path)
    register_builtin_adapters()
    screen = registry.create(cfg.screen_backend, AdapterKind.SCREEN)
    display = screen.primary_display_info()
    width, height = agent_dimensions(display)
    click.echo(json.dumps({
        "physical": {"width": display.width, "height": display.height, "scale_factor": display.scale_factor},
        "agent": {"width": width, "height": height},
    }, indent=2))


if __name__ == "__main__":
    cli()
