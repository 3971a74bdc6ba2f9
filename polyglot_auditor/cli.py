"""Typer-based CLI for Polyglot Auditor."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .adapters import build_default_registry
from . import config_manager
from .config_manager import load_analysis_config, load_runtime_settings, save_runtime_setting
from .dependency_graph import DependencyGraphBuilder
from .entities import PolyglotAnalysisResult
from .errors import DiscoveryError
from .graph_export import export_dot, export_html
from .models import SEVERITY_ORDER
from .orchestrator import LanguageOrchestrator, PolyglotAnalysisOptions
from .passes import build_default_passes
from .runtime import RuntimeManager, default_runtime_specs
from .storage import IndexStore, index_dir_for

console = Console()

app = typer.Typer(
    help="🔎 Polyglot Auditor: cross-language static analysis for mixed codebases.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

SEVERITY_STYLES = {"critical": "bold red", "warning": "yellow", "suggestion": "dim"}
MAX_ROWS = 50


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        typer.echo(f"Polyglot Auditor v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    )
):
    """Polyglot Auditor: analyze Python, TypeScript and JavaScript side by side."""
    pass


def _configure_logging(verbose: bool) -> None:
    if not verbose:
        return
    logger = logging.getLogger("polyglot_auditor")
    logger.setLevel(logging.DEBUG)
    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        logger.addHandler(RichHandler(console=Console(stderr=True), show_path=False))


def _build_orchestrator(index: Optional[IndexStore] = None) -> LanguageOrchestrator:
    registry = build_default_registry()
    manager = RuntimeManager(registry, build_default_passes())
    return LanguageOrchestrator(manager, registry, index=index)


def _run(orchestrator: LanguageOrchestrator, path: Path, options: PolyglotAnalysisOptions) -> PolyglotAnalysisResult:
    try:
        return orchestrator.analyze(path, options)
    except DiscoveryError as exc:
        console.print(f"[red]❌ {exc}[/red]")
        raise typer.Exit(code=2)
    except KeyboardInterrupt:
        orchestrator.cancel()
        console.print("[yellow]Interrupted.[/yellow]")
        raise typer.Exit(code=130)


# ===================================================================
# Rendering
# ===================================================================

def _render_language_stats(result: PolyglotAnalysisResult) -> None:
    table = Table(title="Languages", show_header=True, show_lines=False)
    table.add_column("Language", style="cyan")
    table.add_column("Files", justify="right")
    table.add_column("Violations", justify="right")
    table.add_column("Functions", justify="right")
    table.add_column("Classes", justify="right")
    table.add_column("Interfaces", justify="right")
    table.add_column("Endpoints", justify="right")
    table.add_column("Time", justify="right", style="dim")
    for language, stats in sorted(result.language_stats.items()):
        table.add_row(
            language,
            str(stats.files_analyzed),
            str(stats.violations),
            str(stats.functions),
            str(stats.classes),
            str(stats.interfaces),
            str(stats.endpoints),
            f"{stats.execution_time:.2f}s",
        )
    console.print(table)


def _render_violations(title: str, violations: list) -> None:
    if not violations:
        return
    ordered = sorted(violations, key=lambda v: (-SEVERITY_ORDER.get(v.severity, 0), v.file, v.line))
    table = Table(title=title, show_header=True, show_lines=False)
    table.add_column("Severity", width=10)
    table.add_column("Location", style="cyan")
    table.add_column("Rule", style="magenta")
    table.add_column("Message", min_width=30)
    for v in ordered[:MAX_ROWS]:
        style = SEVERITY_STYLES.get(v.severity, "")
        table.add_row(f"[{style}]{v.severity}[/{style}]", f"{v.file}:{v.line}", v.rule, v.message)
    console.print(table)
    if len(ordered) > MAX_ROWS:
        console.print(f"[dim]… {len(ordered) - MAX_ROWS} more (use --json for the full list)[/dim]")


def _render_result(result: PolyglotAnalysisResult) -> None:
    _render_language_stats(result)
    _render_violations("Violations", result.violations)
    _render_violations("Cross-language violations", result.cross_language_violations)

    if result.errors:
        table = Table(title="Errors", show_header=True)
        table.add_column("Kind", style="red")
        table.add_column("Scope", style="cyan")
        table.add_column("Error")
        for error in result.errors[:MAX_ROWS]:
            table.add_row(error.kind, error.file or error.language or "-", error.error)
        console.print(table)

    if result.dependency_graph is not None:
        metrics = result.dependency_graph.metrics
        console.print(
            f"Dependency graph: {metrics.total_nodes} nodes, {metrics.total_edges} edges, "
            f"{metrics.cycle_count} cycles, max depth {metrics.max_depth}"
        )

    features = ", ".join(f"{name}={state}" for name, state in sorted(result.feature_status.items()))
    m = result.metrics
    console.print(Panel(
        f"Files: {m.total_files} | Violations: {m.total_violations} | "
        f"Cross-language: {len(result.cross_language_violations)} | "
        f"Languages: {', '.join(m.languages_analyzed) or 'none'} | Time: {m.execution_time:.2f}s\n"
        f"[dim]{features}[/dim]",
        title="Summary",
        border_style="red" if result.has_critical else "green",
    ))


# ===================================================================
# Commands
# ===================================================================

@app.command("analyze")
def analyze(
    path: Path = typer.Argument(..., exists=True, file_okay=False, help="Project root to analyze."),
    languages: Optional[List[str]] = typer.Option(None, "--language", "-l", help="Restrict to these languages."),
    analyzers: Optional[List[str]] = typer.Option(None, "--analyzer", "-a", help="Analysis passes to run."),
    min_severity: Optional[str] = typer.Option(None, "--min-severity", help="suggestion, warning or critical."),
    no_cross_language: bool = typer.Option(False, "--no-cross-language", help="Skip cross-language checks."),
    no_contracts: bool = typer.Option(False, "--no-contracts", help="Skip API contract validation."),
    graph: bool = typer.Option(False, "--graph", help="Build the dependency graph."),
    cross_references: bool = typer.Option(False, "--cross-references", help="Include cross-references."),
    update_index: bool = typer.Option(False, "--update-index", help="Write entities to the local index."),
    as_json: bool = typer.Option(False, "--json", help="Print the full result as JSON."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the JSON result to a file."),
    verbose: bool = typer.Option(False, "--verbose", help="Debug logging."),
):
    """Analyze every supported language under PATH and cross-check them."""
    _configure_logging(verbose)
    settings = load_analysis_config()

    severity = (min_severity or settings["min_severity"]).lower()
    if severity not in SEVERITY_ORDER:
        raise typer.BadParameter("--min-severity must be one of: suggestion, warning, critical")

    options = PolyglotAnalysisOptions(
        languages=languages or None,
        analyzers=analyzers or settings["analyzers"],
        min_severity=severity,
        enable_cross_language_analysis=not no_cross_language,
        validate_api_contracts=not no_contracts,
        build_cross_references=cross_references,
        generate_dependency_graph=graph,
        update_index=update_index,
        exclude_patterns=list(settings["exclude"]),
        max_concurrency=int(settings["max_concurrency"]),
        timeout=float(settings["timeout"]),
    )

    store = IndexStore(index_dir_for(path)) if update_index else None
    try:
        result = _run(_build_orchestrator(store), path, options)
    finally:
        if store is not None:
            store.close()

    if as_json or output:
        payload = json.dumps(result.to_dict(), indent=2, default=str)
        if output:
            output.write_text(payload, encoding="utf-8")
            console.print(f"Wrote results to {output}")
        if as_json:
            typer.echo(payload)
    if not as_json:
        _render_result(result)

    if result.has_critical:
        raise typer.Exit(code=1)


@app.command("runtimes")
def runtimes(
    as_json: bool = typer.Option(False, "--json", help="Print the report as JSON."),
):
    """Show detected analyzer runtimes and how to install missing ones."""
    manager = RuntimeManager(build_default_registry())
    report = manager.version_report()
    if as_json:
        typer.echo(json.dumps(report, indent=2))
        return

    table = Table(title="Runtimes", show_header=True)
    table.add_column("Runtime", style="cyan")
    table.add_column("Languages")
    table.add_column("Status")
    table.add_column("Version")
    table.add_column("Path", style="dim")
    table.add_column("Suggestion", style="yellow")
    for entry in report:
        status = "[green]ready[/green]" if entry["usable"] else f"[red]{entry['error'] or 'unavailable'}[/red]"
        table.add_row(
            entry["name"],
            ", ".join(entry["languages"]),
            status,
            entry["version"] or "-",
            entry["path"] or ("in-process" if entry["native"] else "-"),
            entry.get("suggestion", ""),
        )
    console.print(table)


@app.command("set-runtime")
def set_runtime(
    runtime: str = typer.Argument(..., help="External runtime name, e.g. go."),
    path: Optional[str] = typer.Option(None, "--path", "-p", help="Executable to use instead of PATH lookup."),
    analyzer: Optional[str] = typer.Option(None, "--analyzer", help="Location of the companion analyzer."),
    disable: bool = typer.Option(False, "--disable", help="Never use this runtime."),
    enable: bool = typer.Option(False, "--enable", help="Re-enable a disabled runtime."),
):
    """Store a runtime override in the config file.

    Examples:
        polyglot-auditor set-runtime go --path /usr/local/go/bin/go
        polyglot-auditor set-runtime go --disable
    """
    runtime = runtime.lower().strip()
    known = [spec.name for spec in default_runtime_specs()]
    if runtime not in known:
        console.print(f"[red]❌ Unknown runtime '{runtime}'. Choose from: {', '.join(known)}[/red]")
        raise typer.Exit(code=1)
    if enable and disable:
        raise typer.BadParameter("--enable and --disable are mutually exclusive")
    if path is None and analyzer is None and not (enable or disable):
        raise typer.BadParameter("Nothing to set; pass --path, --analyzer, --enable or --disable")

    disabled = True if disable else (False if enable else None)
    save_runtime_setting(runtime, path=path, disabled=disabled, analyzer=analyzer)

    settings = load_runtime_settings(runtime)
    console.print(f"[green]✅ Saved {runtime} settings to {config_manager.CONFIG_FILE}[/green]")
    typer.echo(f"  Path:     {settings['path'] or '(PATH lookup)'}")
    typer.echo(f"  Analyzer: {settings['analyzer'] or '(default)'}")
    typer.echo(f"  Disabled: {settings['disabled']}")


@app.command("graph")
def graph(
    path: Path = typer.Argument(..., exists=True, file_okay=False, help="Project root to analyze."),
    fmt: str = typer.Option("html", "--format", "-f", help="Export format: html or dot."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Output file path."),
    focus: str = typer.Option("", "--focus", help="Only export the neighbourhood of matching entities."),
    verbose: bool = typer.Option(False, "--verbose", help="Debug logging."),
):
    """Export the cross-language dependency graph to HTML or Graphviz DOT."""
    fmt = fmt.lower()
    if fmt not in {"html", "dot"}:
        raise typer.BadParameter("Format must be one of: html, dot")
    _configure_logging(verbose)

    options = PolyglotAnalysisOptions(
        enable_cross_language_analysis=False,
        generate_dependency_graph=True,
        analyzers=[],
    )
    result = _run(_build_orchestrator(), path, options)
    dependency_graph = result.dependency_graph
    if dependency_graph is None:
        console.print(f"[red]❌ Dependency graph {result.feature_status.get('dependency_graph')}[/red]")
        raise typer.Exit(code=1)

    if output is None:
        output = Path.cwd() / f"{path.resolve().name}_graph.{fmt}"
    if fmt == "html":
        export_html(dependency_graph, output, focus=focus)
    else:
        export_dot(dependency_graph, output, focus=focus)

    health = DependencyGraphBuilder().health(dependency_graph)
    typer.echo(f"Exported graph to {output}")
    typer.echo(
        f"Nodes: {dependency_graph.metrics.total_nodes} | Edges: {dependency_graph.metrics.total_edges} | "
        f"Cycles: {dependency_graph.metrics.cycle_count} | Health: {health['score']}/100"
    )


if __name__ == "__main__":
    app()
