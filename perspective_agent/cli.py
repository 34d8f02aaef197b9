"""Click CLI: loads config, builds the backend and orchestrator, runs exchanges."""

import asyncio
import logging
import sys
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler

from config.config_loader import AppConfig, load_config
from perspective_agent.healthcheck import check_provider
from perspective_agent.models import ROLE_USER, ChatResponse, ConversationTurn, InternalDialog
from perspective_agent.orchestrator import OrchestrationError, Orchestrator
from perspective_agent.output import print_answer, print_internal_dialog, save_transcript
from perspective_agent.providers.anthropic import AnthropicProvider
from perspective_agent.providers.base import AIProvider, ProviderError
from perspective_agent.providers.gemini import GeminiProvider
from perspective_agent.providers.openai_provider import OpenAIProvider
from perspective_agent.providers.xai import XAIProvider
from perspective_agent.tools.builtin import default_registry

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

# Keyed by the `sdk` field of a model entry in settings.yaml
PROVIDER_CLASSES: dict[str, type[AIProvider]] = {
    "openai": OpenAIProvider,
    "anthropic": AnthropicProvider,
    "gemini": GeminiProvider,
    "xai": XAIProvider,
}

_EXIT_WORDS = {"exit", "quit"}


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def _pick_provider_name(config: AppConfig, requested: str | None) -> str | None:
    """--provider wins, then the configured default, then any provider with a key."""
    if requested:
        return requested
    if config.defaults.provider in config.available_providers:
        return config.defaults.provider
    available = sorted(config.available_providers)
    return available[0] if available else None


def _build_provider(config: AppConfig, provider_name: str) -> AIProvider:
    if provider_name not in config.models:
        raise ProviderError(provider_name, "Unknown provider (not in settings.yaml)")
    model_cfg = config.models[provider_name]
    provider_cls = PROVIDER_CLASSES.get(model_cfg.sdk)
    if provider_cls is None:
        raise ProviderError(provider_name, f"Unsupported sdk '{model_cfg.sdk}'")
    return provider_cls(model_cfg, tools=default_registry())


async def _stream_exchange(
    orchestrator: Orchestrator,
    message: str,
    history: list[ConversationTurn],
    timeout_sec: float | None,
) -> ChatResponse:
    captured: list[InternalDialog] = []
    fragments: list[str] = []

    console.rule("[bold green]Assistant[/bold green]")
    async for fragment in orchestrator.process_message_streaming(
        message,
        history,
        on_dialog_ready=captured.append,
        timeout_sec=timeout_sec,
    ):
        fragments.append(fragment)
        console.print(fragment, end="", markup=False, highlight=False)
    console.print()
    return ChatResponse(content="".join(fragments), internal=captured[0])


async def _exchange(
    orchestrator: Orchestrator,
    message: str,
    history: list[ConversationTurn],
    *,
    stream: bool,
    show_internal: bool,
    save: bool,
    output_dir: Path,
    timeout_sec: float | None,
) -> ChatResponse:
    """Run one message through the orchestrator and render the result."""
    if stream:
        response = await _stream_exchange(orchestrator, message, history, timeout_sec)
    else:
        with console.status("Consulting perspectives...", spinner="dots"):
            response = await orchestrator.process_message(message, history, timeout_sec=timeout_sec)
        print_answer(response)

    if show_internal:
        print_internal_dialog(response.internal)
    if save:
        saved = save_transcript(response, message, output_dir)
        console.print(f"\n[dim]Saved to: {saved}[/dim]")
    return response


def _report_failure(exc: Exception) -> None:
    if isinstance(exc, OrchestrationError):
        console.print(f"[bold red]Error ({exc.phase}):[/bold red] {exc}")
        if exc.dialog is not None:
            completed = [r.perspective_name for r in exc.dialog.reasoning_process if not r.failed]
            console.print(f"[dim]Perspectives completed before failure: {', '.join(completed) or 'none'}[/dim]")
    elif isinstance(exc, TimeoutError):
        console.print("[bold red]Error:[/bold red] Timed out waiting for the backend.")
    else:
        console.print(f"[bold red]Error:[/bold red] {exc}")


async def _chat_loop(orchestrator: Orchestrator, **exchange_kwargs) -> None:
    """Interactive multi-turn session. The history lives only in memory."""
    history: list[ConversationTurn] = []
    console.print("[dim]Type 'exit' or 'quit' to leave.[/dim]")
    while True:
        try:
            message = click.prompt("\nYou", prompt_suffix="> ").strip()
        except click.exceptions.Abort:
            break
        if not message:
            continue
        if message.lower() in _EXIT_WORDS:
            break
        try:
            response = await _exchange(orchestrator, message, history, **exchange_kwargs)
        except (OrchestrationError, TimeoutError) as exc:
            _report_failure(exc)
            continue
        history.append(ConversationTurn(role=ROLE_USER, content=message))
        history.append(response.as_turn())


async def _run(
    provider: AIProvider,
    orchestrator: Orchestrator,
    message: str | None,
    skip_health_check: bool,
    **exchange_kwargs,
) -> int:
    """Health check, then one exchange or the interactive loop, on a single event loop.

    Returns the process exit code.
    """
    if not skip_health_check:
        console.print(f"\n[bold]Checking {provider.name()}...[/bold]")
        ok, err = await check_provider(provider)
        if not ok:
            short_err = err.splitlines()[0][:120] if err else "unknown error"
            console.print(f"  [red]FAIL[/red] {provider.name()}: {short_err}")
            return 1
        console.print(f"  [green]OK  [/green] {provider.name()}")

    if message is None:
        await _chat_loop(orchestrator, **exchange_kwargs)
        return 0

    try:
        await _exchange(orchestrator, message, [], **exchange_kwargs)
    except (OrchestrationError, TimeoutError) as exc:
        _report_failure(exc)
        return 1
    return 0


@click.command()
@click.argument("message", required=False)
@click.option("--provider", "provider_name", default=None, help="Backend from settings.yaml (default: from config)")
@click.option("--stream", is_flag=True, help="Stream the answer as it is generated")
@click.option("--show-internal", is_flag=True, help="Print the internal reasoning and tool usage")
@click.option("--save", is_flag=True, help="Write a markdown transcript of each exchange")
@click.option("--output", "output_path", default=None, help="Transcript directory (default: from config)")
@click.option("--timeout", "timeout_sec", default=None, type=float, help="Deadline per message, in seconds")
@click.option("--settings", "settings_path", default=None, type=click.Path(exists=True),
              help="Alternative settings.yaml")
@click.option("--skip-health-check", is_flag=True, default=False,
              help="Skip the API connectivity check at startup")
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
def main(
    message: str | None,
    provider_name: str | None,
    stream: bool,
    show_internal: bool,
    save: bool,
    output_path: str | None,
    timeout_sec: float | None,
    settings_path: str | None,
    skip_health_check: bool,
    verbose: bool,
) -> None:
    """Multi-perspective assistant: several expert viewpoints, one answer.

    \b
    Examples:
      perspective-agent "What's our system performance?" --show-internal
      perspective-agent "Is the redesign worth the cost?" --stream
      perspective-agent --provider claude --save
    """
    # Reconfigure stdout/stderr to UTF-8 on Windows so model output containing
    # Unicode chars doesn't crash the ANSI render path.
    if sys.platform == "win32":
        if hasattr(sys.stdout, "reconfigure"):
            sys.stdout.reconfigure(encoding="utf-8", errors="replace")
        if hasattr(sys.stderr, "reconfigure"):
            sys.stderr.reconfigure(encoding="utf-8", errors="replace")

    load_dotenv()
    _setup_logging(verbose)

    try:
        config = load_config(Path(settings_path)) if settings_path else load_config()
    except (FileNotFoundError, KeyError, ValueError) as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        sys.exit(1)

    chosen = _pick_provider_name(config, provider_name)
    if chosen is None:
        console.print("[bold red]Error:[/bold red] No providers available. Check API keys in .env.")
        sys.exit(1)

    try:
        provider = _build_provider(config, chosen)
    except ProviderError as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        sys.exit(1)

    exit_code = asyncio.run(
        _run(
            provider=provider,
            orchestrator=Orchestrator.from_config(config, provider),
            message=message,
            skip_health_check=skip_health_check,
            stream=stream,
            show_internal=show_internal,
            save=save,
            output_dir=Path(output_path) if output_path else config.defaults.output_dir,
            timeout_sec=timeout_sec,
        )
    )
    if exit_code:
        sys.exit(exit_code)


if __name__ == "__main__":
    main()
