"""
SERP Competitor Intelligence - CLI Entry Point.
Command line built with Click and Rich.
"""

import asyncio
import sys
from functools import wraps
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from serp_intel import __version__
from serp_intel.config.settings import get_settings
from serp_intel.models.schemas import AnalysisConfig, AnalysisProjection, AnalysisStatus
from serp_intel.pipeline.orchestrator import build_orchestrator
from serp_intel.utils.errors import ConfigValidationError
from serp_intel.utils.formatters import ReportFormatter
from serp_intel.utils.logger import setup_logging

# Initialize Rich Console
console = Console()

# =============================================================================
# Helper Functions
# =============================================================================

def async_command(f):
    """Decorator to run async click commands."""
    @wraps(f)
    def wrapper(*args, **kwargs):
        return asyncio.run(f(*args, **kwargs))
    return wrapper


def setup_logger(verbose: bool):
    """Configure logging based on verbosity."""
    setup_logging(level="DEBUG" if verbose else "WARNING", json_format=False)


def render_projection(projection: AnalysisProjection) -> None:
    """Print competitors, summary and recommendations."""
    table = Table(title=f"Top Competitors for \"{projection.keyword}\"")
    table.add_column("Rank", justify="right")
    table.add_column("Domain", style="cyan")
    table.add_column("Title")
    table.add_column("Words", justify="right")
    table.add_column("Sentiment", justify="right")
    table.add_column("Entities", justify="right")

    for competitor in projection.competitors:
        sentiment = "-" if competitor.sentiment is None else f"{competitor.sentiment:.2f}"
        table.add_row(
            str(competitor.rank),
            competitor.domain,
            (competitor.title or "")[:60],
            str(competitor.word_count),
            sentiment,
            str(len(competitor.entities)),
        )
    console.print(table)

    summary = projection.summary
    stats = Table(title="Summary", show_header=False)
    stats.add_row("Pages analyzed", str(summary.total_pages))
    stats.add_row("Avg word count", str(summary.avg_word_count))
    stats.add_row("Avg title length", str(summary.avg_title_length))
    stats.add_row("Avg sentiment", str(summary.avg_sentiment))
    stats.add_row(
        "Common entities",
        ", ".join(e.name for e in summary.common_entities[:5]) or "-",
    )
    console.print(stats)

    if projection.recommendations:
        body = "\n".join(f"{i}. {r}" for i, r in enumerate(projection.recommendations, 1))
        console.print(Panel(body, title="Recommendations", border_style="green"))

# =============================================================================
# CLI Group
# =============================================================================

@click.group()
@click.version_option(version=__version__)
def cli():
    """SERP Competitor Intelligence"""
    pass

# =============================================================================
# Commands
# =============================================================================

@cli.command()
@click.argument('keyword')
@click.option('--country', default='US', help='Two-letter country code for localized results')
@click.option('--language', default='en', help='Interface language of the search')
@click.option('--no-entities', is_flag=True, help='Skip entity extraction')
@click.option('--no-sentiment', is_flag=True, help='Skip sentiment analysis')
@click.option('--image-analysis', is_flag=True, help='Request image analysis (accepted, currently no effect)')
@click.option('--api-key', default=None, help='Google API key (defaults to GOOGLE_API_KEY)')
@click.option('--cse-id', default=None, help='Custom Search Engine id (defaults to GOOGLE_CSE_ID)')
@click.option('--format', 'export_format', type=click.Choice(['json', 'csv', 'fullcontent']), default=None, help='Export format (defaults to EXPORT_FORMAT)')
@click.option('--output-dir', default=None, help='Custom output directory')
@click.option('--poll-interval', default=1.0, type=float, help='Seconds between status checks')
@click.option('--verbose', is_flag=True, help='Detailed logging')
@async_command
async def analyze(
    keyword: str,
    country: str,
    language: str,
    no_entities: bool,
    no_sentiment: bool,
    image_analysis: bool,
    api_key: Optional[str],
    cse_id: Optional[str],
    export_format: Optional[str],
    output_dir: Optional[str],
    poll_interval: float,
    verbose: bool,
):
    """
    Analyze the top-ranking pages for a keyword.

    KEYWORD: The search keyword (e.g., "best coffee makers")
    """
    setup_logger(verbose)

    console.print(Panel.fit(
        f"[bold blue]SERP Competitor Analysis[/bold blue]\n"
        f"Keyword: [cyan]{keyword}[/cyan] ({country.upper()}/{language.lower()})"
    ))

    settings = get_settings()
    formatter = ReportFormatter(Path(output_dir) if output_dir else settings.output_dir)

    try:
        config = AnalysisConfig(
            keyword=keyword,
            country=country,
            language=language,
            entity_extraction=not no_entities,
            sentiment_analysis=not no_sentiment,
            image_analysis=image_analysis,
            google_api_key=api_key,
            google_cse_id=cse_id,
        )
    except ValueError as e:
        console.print(f"[bold red]Invalid input:[/bold red] {escape(str(e))}")
        sys.exit(1)

    start_time = asyncio.get_running_loop().time()

    try:
        async with build_orchestrator(settings) as orchestrator:
            analysis_id = await orchestrator.start_analysis(config)

            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                console=console,
            ) as progress:
                task = progress.add_task("[cyan]Submitted...", total=None)

                while True:
                    projection = await orchestrator.get_analysis_results(analysis_id)
                    status = AnalysisStatus(projection.status)
                    progress.update(
                        task,
                        description=f"[cyan]{status.value.capitalize()}: "
                        f"{len(projection.competitors)} competitors analyzed",
                    )
                    if status.is_terminal:
                        break
                    await asyncio.sleep(poll_interval)

                progress.update(task, description=f"[green]Analysis {status.value}")

    except ConfigValidationError as e:
        console.print(f"[bold red]Configuration Error:[/bold red] {escape(e.message)}")
        sys.exit(1)

    duration = asyncio.get_running_loop().time() - start_time

    if status == AnalysisStatus.FAILED:
        console.print(f"[bold red]Analysis failed:[/bold red] {escape(projection.error or 'Unknown error')}")
        sys.exit(1)

    render_projection(projection)

    path = formatter.save(projection, export_format or settings.export_format)
    console.print(f"[green]✓[/green] Analysis {analysis_id} completed in {duration:.2f}s. Export: {path}")


@cli.command()
def validate_setup():
    """Check API keys and environment configuration."""
    console.print("[bold]Validating Setup...[/bold]")

    try:
        settings = get_settings()
    except ValueError as e:
        console.print(f"[bold red]Configuration Error:[/bold red] {e}")
        sys.exit(1)

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Check")
    table.add_column("Status")
    table.add_column("Details")

    has_key = bool(settings.google_api_key and settings.google_api_key.get_secret_value())
    table.add_row(
        "Google API Key",
        "[green]Pass[/green]" if has_key else "[red]Fail[/red]",
        f"configured ({len(settings.google_api_key.get_secret_value())} chars)" if has_key else "GOOGLE_API_KEY not set",
    )

    has_cse = bool(settings.google_cse_id and settings.google_cse_id.get_secret_value())
    table.add_row(
        "Custom Search Engine",
        "[green]Pass[/green]" if has_cse else "[red]Fail[/red]",
        "configured" if has_cse else "GOOGLE_CSE_ID not set",
    )

    table.add_row("Search Provider", "[blue]Info[/blue]", settings.get_search_provider())
    table.add_row("Fetch Timeout", "[blue]Info[/blue]", f"{settings.fetch_timeout_ms} ms")
    table.add_row("Competitor Delay", "[blue]Info[/blue]", f"{settings.competitor_delay_ms} ms")
    table.add_row("Output Dir", "[green]Pass[/green]", str(settings.output_dir))
    table.add_row("Environment", "[blue]Info[/blue]", settings.app_env)

    console.print(table)

    if not (has_key and has_cse):
        console.print(
            "\n[yellow]Warning: Google credentials missing. Pass --api-key/--cse-id "
            "to analyze or set GOOGLE_API_KEY and GOOGLE_CSE_ID.[/yellow]"
        )
        sys.exit(1)


if __name__ == "__main__":
    cli()
