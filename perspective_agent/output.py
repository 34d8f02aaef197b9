"""Rich console output and markdown audit transcripts for chat responses."""

import logging
import re
from pathlib import Path

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.rule import Rule
from rich.text import Text

from perspective_agent.models import ChatResponse, InternalDialog, PerspectiveResult

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)


def _slug(text: str, max_len: int = 40) -> str:
    """Convert text to a filename-safe slug."""
    slug = re.sub(r"[^\w\s-]", "", text.lower())
    slug = re.sub(r"[\s_-]+", "-", slug).strip("-")
    return slug[:max_len]


def _thought_preview(result: PerspectiveResult, words: int = 60) -> str:
    """Return first N words of a perspective's reasoning."""
    all_words = result.text.split()
    preview = " ".join(all_words[:words])
    if len(all_words) > words:
        preview += "..."
    return preview


def print_answer(response: ChatResponse) -> None:
    """Print the user-facing answer."""
    console.print(Rule("[bold green]Assistant[/bold green]"))
    console.print(Markdown(response.content))


def print_internal_dialog(dialog: InternalDialog) -> None:
    """Print the reasoning process, tool usage and synthesis note."""
    console.print(Rule("[bold cyan]Internal Reasoning & Tool Usage[/bold cyan]"))
    for result in dialog.reasoning_process:
        console.print(
            Panel(
                _thought_preview(result),
                title=f"[bold]{result.perspective_name.upper()}[/bold]",
                subtitle="degraded" if result.failed else ("tools" if result.used_tools else None),
                border_style="red" if result.failed else "dim",
            )
        )
    if dialog.tool_ledger:
        console.print(Text("TOOLS USED:", style="bold"))
        for entry in dialog.tool_ledger:
            console.print(f"- [{entry.source}] {entry.descriptor}", markup=False)
    if dialog.synthesis_note:
        console.print(Text(f"SYNTHESIS: {dialog.synthesis_note}", style="dim"))
    if dialog.follow_up_needed:
        console.print(Text(f"FOLLOW-UP: {dialog.follow_up_needed}", style="dim"))


def save_transcript(response: ChatResponse, message: str, output_dir: Path) -> Path:
    """Save one exchange, including the internal dialog, as a markdown audit file.

    Returns:
        Path to the saved file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    timestamp = response.timestamp.strftime("%Y%m%d_%H%M%S")
    filepath = output_dir / f"{timestamp}_{_slug(message) or response.id}.md"
    dialog = response.internal

    lines: list[str] = [
        f"# Exchange: {message[:80]}",
        "",
        f"**Id:** {response.id}",
        f"**Date:** {response.timestamp.strftime('%Y-%m-%d %H:%M:%S %Z')}",
        f"**Perspectives:** {', '.join(r.perspective_name for r in dialog.reasoning_process)}",
        "",
        "---",
        "",
        "## User",
        "",
        message,
        "",
        "## Internal Reasoning",
        "",
    ]

    for result in dialog.reasoning_process:
        label = " (degraded)" if result.failed else ""
        lines.append(f"### {result.perspective_name}{label}")
        lines.append("")
        lines.append(result.text)
        lines.append("")
        if result.used_tools:
            lines.append(f"*Tools: {result.tool_usage}*")
            lines.append("")

    if dialog.tool_ledger:
        lines += ["## Tools Used", ""]
        lines += [f"- **{e.phase}** [{e.source}] {e.descriptor}" for e in dialog.tool_ledger]
        lines.append("")

    lines += [
        "## Synthesis",
        "",
        f"*{dialog.synthesis_note}*" if dialog.synthesis_note else "",
        "",
        response.content,
        "",
    ]
    if dialog.follow_up_needed:
        lines += [f"**Follow-up:** {dialog.follow_up_needed}", ""]

    filepath.write_text("\n".join(lines), encoding="utf-8")
    logger.info("Transcript saved to: %s", filepath)
    return filepath
