"""
Guardian Intel - AI Layer CLI

Operator commands for the AI provider routing layer: inspect the
registered models and routing table, and run chat, research,
classification and roof damage analysis from the terminal.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import asdict
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from guardian.config.loader import load_ai_settings, load_environment
from guardian.config.schema import AISettings
from guardian.exceptions import ConfigurationError, GuardianError
from guardian.llm.bootstrap import create_damage_analyzer, create_router
from guardian.llm.llm_config import MODEL_CATALOG, AITask
from guardian.llm.router import AIRouter
from guardian.llm.types import (
    ChatRequest,
    ClassifyRequest,
    Message,
    ResearchRequest,
)
from guardian.llm.vision import AnalyzePhotoOptions
from guardian.observability.logging_config import configure_logging

# Load environment (.env values take precedence)
root_env = Path(__file__).parent / ".env"
load_environment(root_env if root_env.exists() else None)

app = typer.Typer(
    name="guardian-ai",
    help="Guardian Intel - AI provider routing layer",
)
console = Console()


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logs"),
):
    """Guardian Intel AI layer commands."""
    configure_logging(level=logging.DEBUG if verbose else logging.WARNING)


def _get_settings() -> AISettings:
    """Load settings, with a friendly error on failure."""
    try:
        return load_ai_settings()
    except ConfigurationError as e:
        console.print(Panel(
            f"[red]{e}[/]",
            title="⚠ Configuration Error",
            border_style="red",
        ))
        raise typer.Exit(code=1)


def _get_router(settings: AISettings) -> AIRouter:
    router = create_router(settings)
    if not router.has_adapters():
        console.print(Panel(
            "[red]No AI providers configured.[/]\n\n"
            "Set at least one key in your .env file:\n"
            "  [dim]ANTHROPIC_API_KEY, OPENAI_API_KEY, GOOGLE_API_KEY,\n"
            "  MOONSHOT_API_KEY, PERPLEXITY_API_KEY[/]",
            title="⚠ Configuration Error",
            border_style="red",
        ))
        raise typer.Exit(code=1)
    return router


def _run(coro) -> None:
    """Run a command coroutine, reporting layer errors without a traceback."""
    try:
        asyncio.run(coro)
    except GuardianError as e:
        console.print(Panel(
            f"[red]{e.__class__.__name__}:[/] {e}",
            title="⚠ AI Request Failed",
            border_style="red",
        ))
        raise typer.Exit(code=1)


# =========================================================================
# Commands
# =========================================================================


@app.command()
def models():
    """Show registered models and the task routing table."""
    settings = _get_settings()
    router = create_router(settings)
    registered = set(router.registered_models())

    table = Table(title="Guardian Intel - Models")
    table.add_column("Model", style="cyan")
    table.add_column("Provider", style="white")
    table.add_column("API Model", style="green")
    table.add_column("Status", style="yellow")

    for model_id, profile in MODEL_CATALOG.items():
        status = "[green]registered[/]" if model_id in registered else "[dim]no key[/]"
        table.add_row(model_id, profile.provider.value, profile.api_model, status)
    console.print(table)

    routes = Table(title="Task Routing")
    routes.add_column("Task", style="cyan")
    routes.add_column("Preferred Model", style="white")
    routes.add_column("Resolves To", style="green")

    for route in router.routing.list_routes():
        model = route["model"]
        if model in registered:
            resolved = model
        elif router.fallback_adapter is not None:
            resolved = f"{router.fallback_adapter.model} (fallback)"
        else:
            resolved = "[red]unavailable[/]"
        routes.add_row(route["task"], model, resolved)
    console.print(routes)


@app.command()
def chat(
    prompt: str = typer.Argument(..., help="User message"),
    task: AITask = typer.Option(AITask.CHAT, help="Routing task"),
    system: Optional[str] = typer.Option(None, help="System prompt"),
    stream: bool = typer.Option(False, "--stream", help="Stream the reply"),
    max_tokens: Optional[int] = typer.Option(None, help="Completion budget"),
):
    """Send one chat turn through the router."""
    router = _get_router(_get_settings())

    messages = [Message.system(system)] if system else []
    messages.append(Message.user(prompt))
    request = ChatRequest(messages=messages, task=task, max_tokens=max_tokens, stream=stream)

    async def _chat():
        if stream:
            finish = None
            async for chunk in router.chat_stream(request):
                console.print(chunk.delta, end="", soft_wrap=True, highlight=False, markup=False)
                finish = chunk.finish_reason or finish
            console.print()
            console.print(f"[dim]finish_reason={finish.value if finish else 'none'}[/]")
            return

        response = await router.chat(request)
        console.print(Panel(
            Text(response.content) if response.content else "[dim](no text)[/]",
            title=f"{response.model} · {response.finish_reason.value}",
            subtitle=(
                f"{response.usage.prompt_tokens} in / "
                f"{response.usage.completion_tokens} out"
            ),
        ))
        for call in response.tool_calls:
            console.print(f"[yellow]tool_call[/] {escape(call.name)} {escape(json.dumps(call.arguments))}")

    _run(_chat())


@app.command()
def research(
    query: str = typer.Argument(..., help="Research question"),
    context: Optional[str] = typer.Option(None, help="Background context"),
    source: list[str] = typer.Option([], help="Source focus: web, news, academic"),
    max_results: Optional[int] = typer.Option(None, help="Max citations"),
):
    """Run a research query (Perplexity when configured, else emulated)."""
    router = _get_router(_get_settings())

    async def _research():
        result = await router.research(ResearchRequest(
            query=query, context=context, sources=source, max_results=max_results,
        ))
        console.print(Panel(Text(result.answer), title="Answer"))

        if result.citations:
            table = Table(title="Citations")
            table.add_column("#", style="dim")
            table.add_column("Title", style="cyan")
            table.add_column("URL", style="green")
            for i, citation in enumerate(result.citations, 1):
                table.add_row(str(i), Text(citation.title), Text(citation.url))
            console.print(table)

        for related in result.related_queries:
            console.print(f"[dim]related:[/] {escape(related)}")

    _run(_research())


@app.command()
def classify(
    text: str = typer.Argument(..., help="Text to classify"),
    category: list[str] = typer.Option(..., "--category", "-c", help="Candidate label"),
    multi_label: bool = typer.Option(False, "--multi-label", help="Allow several labels"),
):
    """Classify text into one (or several) of the given categories."""
    router = _get_router(_get_settings())

    async def _classify():
        result = await router.classify(ClassifyRequest(
            text=text, categories=category, multi_label=multi_label,
        ))
        table = Table(title="Classification")
        table.add_column("Label", style="cyan")
        table.add_column("Confidence", style="green")
        for score in result.categories:
            table.add_row(Text(score.label), f"{score.confidence:.2f}")
        console.print(table)

    _run(_classify())


@app.command(name="analyze-damage")
def analyze_damage(
    image: Optional[str] = typer.Argument(None, help="Path to a roof photo"),
    url: Optional[str] = typer.Option(None, "--url", help="Photo URL instead of a file"),
    context: Optional[str] = typer.Option(None, help="Extra context, e.g. storm date"),
    as_json: bool = typer.Option(False, "--json", help="Print the raw result as JSON"),
):
    """Analyze a roof photo for storm damage."""
    if not image and not url:
        console.print("[red]Provide an image path or --url[/]")
        raise typer.Exit(code=1)

    analyzer = create_damage_analyzer(_get_settings())
    if not analyzer.has_providers:
        console.print("[yellow]No vision provider configured; showing a sample analysis.[/]")

    options = AnalyzePhotoOptions(
        photo_url=url,
        photo_path=None if url else image,
        photo_id=Path(image).name if image and not url else None,
        additional_context=context,
    )

    async def _analyze():
        try:
            result = await analyzer.analyze_photo(options)
        except ValueError as e:
            console.print(f"[red]{e}[/]")
            raise typer.Exit(code=1)

        if as_json:
            console.print_json(json.dumps(asdict(result), default=str))
            return

        severity_style = "green" if not result.has_damage else "yellow"
        console.print(Panel(
            f"Damage: [{severity_style}]{'yes' if result.has_damage else 'no'}[/]\n"
            f"Severity: {result.overall_severity}\n"
            f"Confidence: {result.confidence_score:.0f}/100\n"
            f"Claim: {result.claim_recommendation} - {escape(result.claim_justification)}\n"
            f"Repair: ${result.estimate.repair_cost.low:,.0f} - "
            f"${result.estimate.repair_cost.high:,.0f}",
            title=f"Damage Analysis ({result.model})",
            border_style=severity_style,
        ))

        if result.damage_types:
            table = Table(title="Detected Damage")
            table.add_column("Type", style="cyan")
            table.add_column("Severity", style="yellow")
            table.add_column("Location", style="white")
            table.add_column("Est. Cost", style="green")
            for damage in result.damage_types:
                table.add_row(
                    Text(damage.type),
                    damage.severity,
                    Text(damage.location),
                    f"${damage.estimated_cost.low:,.0f} - ${damage.estimated_cost.high:,.0f}",
                )
            console.print(table)

        for observation in result.observations:
            console.print(f"  • {escape(observation)}")

    _run(_analyze())


if __name__ == "__main__":
    app()
