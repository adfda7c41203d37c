"""P&ID tag extractor CLI."""

from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.progress import Progress
from rich.table import Table

from pidtag.config import configure_logging, settings
from pidtag.export import export_instrument_list
from pidtag.models import Category, ProjectSettings
from pidtag.pipeline import (
    NoteConnectionOptimizer,
    PyMuPDFPageSource,
    ToleranceOptimizer,
    generate_regex_from_samples,
)
from pidtag.pipeline.stage_tolerance import OptimizationConfig
from pidtag.processor import DocumentProcessor
from pidtag.storage import ProjectValidationError, build_snapshot, load_project, save_project

app = typer.Typer(
    name="pidtag",
    help="Extract instrument, line and drawing tags from P&ID PDFs",
    add_completion=False,
)
console = Console()


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(None, help="Override PIDTAG_LOG_LEVEL"),
) -> None:
    """Configure logging for every command."""
    configure_logging(log_level)


def _load_settings(path: Optional[Path]) -> ProjectSettings:
    if path is None:
        return ProjectSettings()
    try:
        return ProjectSettings.model_validate_json(path.read_text(encoding="utf-8"))
    except (OSError, ValidationError) as e:
        console.print(f"[red]Could not read settings {path}:[/red] {escape(str(e))}")
        raise typer.Exit(code=1)


def _open_pdf(pdf_path: Path) -> PyMuPDFPageSource:
    try:
        return PyMuPDFPageSource(pdf_path)
    except (FileNotFoundError, RuntimeError) as e:
        console.print(f"[red]Could not open {pdf_path}:[/red] {escape(str(e))}")
        raise typer.Exit(code=1)


def _print_tolerances(project_settings: ProjectSettings, score: float, pages: list[int]) -> None:
    tolerance = project_settings.tolerances.instrument
    table = Table(title="Instrument tolerances")
    table.add_column("Setting")
    table.add_column("Value", justify="right")
    table.add_row("vertical", f"{tolerance.vertical:g}")
    table.add_row("horizontal", f"{tolerance.horizontal:g}")
    table.add_row("autoLinkDistance", f"{tolerance.auto_link_distance or 0:g}")
    table.add_row("score", f"{score:.1f}")
    table.add_row("tested pages", ", ".join(str(p) for p in pages))
    console.print(table)


@app.command()
def extract(
    pdf_path: Path = typer.Argument(..., help="Path to P&ID PDF"),
    output: Path = typer.Option(Path("project.json"), "--output", "-o", help="Project file to write"),
    config: Optional[Path] = typer.Option(None, "--config", help="Project settings JSON"),
    optimize: bool = typer.Option(False, "--optimize/--no-optimize", help="Tune tolerances first"),
    quick: bool = typer.Option(True, "--quick/--full", help="Quick or full tolerance search"),
    link_notes: bool = typer.Option(False, "--link-notes/--no-link-notes", help="Detect and link note descriptions"),
) -> None:
    """Extract tags from a PDF and save a project file."""
    project_settings = _load_settings(config)
    console.print(f"[bold blue]Extracting:[/bold blue] {pdf_path}")

    with _open_pdf(pdf_path) as source, Progress(console=console) as progress:
        if optimize:
            task = progress.add_task("Optimizing tolerances", total=100)
            optimizer = ToleranceOptimizer(project_settings.patterns, project_settings.app_settings)

            def update(pct: float, msg: str) -> None:
                progress.update(task, completed=pct, description=msg)

            if quick:
                result = optimizer.quick_optimize(source, project_settings.tolerances, update)
            else:
                result = optimizer.optimize(
                    source,
                    project_settings.tolerances,
                    OptimizationConfig(max_pages_to_test=settings.optimizer_max_pages),
                    update,
                )
            project_settings = project_settings.model_copy(update={"tolerances": result.tolerances})

        task = progress.add_task("Extracting", total=100)
        processor = DocumentProcessor(
            project_settings.patterns,
            project_settings.tolerances,
            project_settings.app_settings,
        )
        processed = processor.process(
            source,
            progress=lambda pct, msg: progress.update(task, completed=pct, description=msg),
            link_notes=link_notes,
            optimize_notes=optimize,
        )

    snapshot = build_snapshot(processed.state, pdf_path.name, project_settings)
    save_project(snapshot, output)

    state = processed.state
    table = Table(title=pdf_path.name)
    table.add_column("Entity")
    table.add_column("Count", justify="right")
    for category in Category:
        table.add_row(category.value, str(len(state.tags_by_category(category))))
    table.add_row("Raw text items", str(len(state.raw_text_items)))
    table.add_row("Relationships", str(len(state.relationships)))
    table.add_row("Descriptions", str(len(state.descriptions)))
    table.add_row("Loops", str(len(state.loops)))
    console.print(table)
    if processed.skipped_pages:
        console.print(f"[yellow]Skipped pages:[/yellow] {processed.skipped_pages}")
    console.print(f"[green]Saved[/green] {output}")


@app.command()
def optimize(
    pdf_path: Path = typer.Argument(..., help="Path to P&ID PDF"),
    config: Optional[Path] = typer.Option(None, "--config", help="Project settings JSON"),
    quick: bool = typer.Option(True, "--quick/--full", help="Quick or full search"),
    notes: bool = typer.Option(False, "--notes", help="Also calibrate note connection distance"),
) -> None:
    """Find instrument tolerances that work best for a PDF."""
    project_settings = _load_settings(config)
    optimizer = ToleranceOptimizer(project_settings.patterns, project_settings.app_settings)

    with _open_pdf(pdf_path) as source:
        with console.status("Optimizing tolerances..."):
            if quick:
                result = optimizer.quick_optimize(source, project_settings.tolerances)
            else:
                result = optimizer.optimize(
                    source,
                    project_settings.tolerances,
                    OptimizationConfig(max_pages_to_test=settings.optimizer_max_pages),
                )
        tuned = project_settings.model_copy(update={"tolerances": result.tolerances})
        _print_tolerances(tuned, result.score, result.tested_pages)

        if notes:
            with console.status("Calibrating note connections..."):
                processed = DocumentProcessor(
                    tuned.patterns, tuned.tolerances, tuned.app_settings
                ).process(source)
            state = processed.state
            note_optimizer = NoteConnectionOptimizer(settings.optimizer_max_pages)
            run = note_optimizer.quick_optimize if quick else note_optimizer.optimize
            connection = run(
                state.tags_by_category(Category.INSTRUMENT),
                state.tags_by_category(Category.NOTES_AND_HOLDS),
                source.page_count,
            )
            console.print(
                f"Note connection distance: [bold]{connection.distance:.1f}[/bold] "
                f"({connection.multiplier}x note box, {connection.connection_count} connections, "
                f"coverage {connection.coverage_rate:.0%})"
            )


@app.command()
def export(
    project_path: Path = typer.Argument(..., help="Project JSON file"),
    output: Path = typer.Option(Path("instrument_list.xlsx"), "--output", "-o", help="Workbook to write"),
    include_notes: Optional[bool] = typer.Option(
        None, "--include-notes/--no-include-notes", help="Use note descriptions in the NOTE column"
    ),
) -> None:
    """Export the instrument list of a project to Excel."""
    try:
        snapshot = load_project(project_path)
    except (ProjectValidationError, FileNotFoundError) as e:
        console.print(f"[red]Could not load project:[/red] {escape(str(e))}")
        raise typer.Exit(code=1)

    path = export_instrument_list(
        output, snapshot.state, snapshot.settings.app_settings, include_notes
    )
    console.print(f"[green]Exported[/green] {path}")


@app.command()
def validate(
    project_path: Path = typer.Argument(..., help="Project JSON file"),
) -> None:
    """Check that a project file loads and print its contents."""
    try:
        snapshot = load_project(project_path)
    except (ProjectValidationError, FileNotFoundError) as e:
        console.print(f"[red]Invalid project:[/red] {escape(str(e))}")
        raise typer.Exit(code=1)

    console.print(f"[bold blue]{snapshot.pdf_file_name}[/bold blue] [dim]{snapshot.export_date}[/dim]")
    console.print(
        f"{len(snapshot.tags)} tags, {len(snapshot.raw_text_items)} raw items, "
        f"{len(snapshot.relationships)} relationships, {len(snapshot.descriptions)} descriptions, "
        f"{len(snapshot.loops)} loops"
    )
    console.print("[green]OK[/green]")


@app.command()
def regex(
    line: Optional[str] = typer.Option(None, help='Line samples, e.g. 8"-PL-30001-C1C'),
    instrument: Optional[str] = typer.Option(None, help="Instrument samples, e.g. FT-101, PCV 2001A"),
    drawing: Optional[str] = typer.Option(None, help="Drawing number samples"),
) -> None:
    """Suggest extraction patterns from comma-separated sample tags."""
    if not any((line, instrument, drawing)):
        console.print("[yellow]Give at least one of --line, --instrument, --drawing[/yellow]")
        raise typer.Exit(code=1)

    generated = generate_regex_from_samples(line, instrument, drawing)
    table = Table(title="Suggested patterns")
    table.add_column("Category")
    table.add_column("Pattern")
    if generated.line:
        table.add_row("Line", escape(generated.line))
    if generated.instrument:
        table.add_row("Instrument func", escape(generated.instrument.func))
        table.add_row("Instrument num", escape(generated.instrument.num))
    if generated.drawing:
        table.add_row("DrawingNumber", escape(generated.drawing))
    console.print(table)


if __name__ == "__main__":
    app()
