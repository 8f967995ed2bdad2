"""Typer-based CLI for ImpactGraph."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from . import __version__, config_manager
from .classifier import LLMChangeClassifier
from .errors import GraphStoreError
from .graph_export import export_dot, export_json, summarize
from .impact import ImpactAnalyzer
from .llm import LocalLLM
from .models import Severity
from .source import LocalSourceRetriever
from .storage import ProjectManager, open_store
from .tasks import BackgroundRunner

app = typer.Typer(
    help="ImpactGraph: cross-repository dependency graphs and change impact analysis.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()

SEVERITY_STYLES = {
    Severity.LOW: "green",
    Severity.MEDIUM: "yellow",
    Severity.HIGH: "red",
    Severity.CRITICAL: "bold white on red",
}


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        typer.echo(f"ImpactGraph v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None, "--version", "-V", help="Show version and exit.",
        callback=version_callback, is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
):
    """Index repositories into a project graph and analyze change impact."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _resolve_project(pm: ProjectManager, project: Optional[str]) -> str:
    name = project or pm.get_current_project()
    if not name:
        raise typer.BadParameter("No project selected. Pass --project or run 'ig use <project>'.")
    if name not in pm.list_projects():
        raise typer.BadParameter(f"Project '{name}' not found.")
    return name


def _parse_links(links: List[str]) -> Dict[str, Path]:
    parsed: Dict[str, Path] = {}
    for item in links:
        repo_id, sep, path = item.partition("=")
        if not sep or not repo_id or not path:
            raise typer.BadParameter(f"Invalid --link '{item}', expected REPO_ID=PATH.")
        parsed[repo_id] = Path(path).resolve()
    return parsed


@app.command("index")
def index_repository(
    repo_path: Path = typer.Argument(..., exists=True, file_okay=False, help="Path to the repository checkout."),
    project: str = typer.Option(..., "--project", "-p", help="Project the repository belongs to."),
    repo_id: Optional[str] = typer.Option(None, "--repo", "-r", help="Repository id (defaults to directory name)."),
    link: List[str] = typer.Option([], "--link", "-l", help="Other repository of the project, as ID=PATH."),
):
    """Parse a repository and add it to the project's dependency graph."""
    pm = ProjectManager()
    resolved = repo_path.resolve()
    repository_id = repo_id or resolved.name.replace(" ", "_")
    pm.create_or_get_project(project)

    linked_roots = {**pm.repositories(project), **_parse_links(link)}
    linked_roots.pop(repository_id, None)

    runner = BackgroundRunner(max_workers=1)
    try:
        with console.status(f"Indexing {repository_id}..."):
            handle = runner.submit_index(project, repository_id, resolved, linked_roots)
            stats = handle.result()
    except (GraphStoreError, OSError) as exc:
        typer.echo(f"Indexing failed: {exc}", err=True)
        raise typer.Exit(code=1)
    finally:
        runner.shutdown()

    pm.register_repository(project, repository_id, resolved)
    pm.set_current_project(project)

    typer.echo(f"Indexed '{resolved}' as repository '{repository_id}' in project '{project}'.")
    typer.echo(f"Nodes: {stats.nodes} | Edges: {stats.edges} | Parse failures: {stats.failures}")


@app.command("impact")
def impact(
    file_path: str = typer.Argument(..., help="Changed file, relative to its repository root."),
    repo_id: str = typer.Option(..., "--repo", "-r", help="Repository containing the changed file."),
    project: Optional[str] = typer.Option(None, "--project", "-p", help="Project (defaults to current)."),
    old: Optional[Path] = typer.Option(None, "--old", exists=True, dir_okay=False, help="File with the previous content."),
    new: Optional[Path] = typer.Option(None, "--new", exists=True, dir_okay=False, help="File with the new content."),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON."),
):
    """Report files in other repositories affected by a change."""
    pm = ProjectManager()
    name = _resolve_project(pm, project)

    old_content = old.read_text(encoding="utf-8") if old else None
    new_content = new.read_text(encoding="utf-8") if new else None
    classifier = LLMChangeClassifier(LocalLLM()) if old_content is not None and new_content is not None else None

    analyzer = ImpactAnalyzer(
        classifier=classifier,
        source=LocalSourceRetriever(pm.repositories(name)),
    )
    try:
        result = analyzer.analyze(name, repo_id, file_path, old_content, new_content)
    except GraphStoreError as exc:
        typer.echo(f"Cannot load graph: {exc}", err=True)
        raise typer.Exit(code=1)

    if as_json:
        typer.echo(json.dumps(result.to_dict(), indent=2))
        return

    style = SEVERITY_STYLES[result.severity]
    console.print(f"Changed: [bold]{result.changed_repository}:{result.changed_file}[/bold]")
    console.print(f"Breaking: {'yes' if result.is_breaking else 'no'}  Severity: [{style}]{result.severity.value}[/{style}]")
    console.print(f"Explanation: {result.explanation}")

    if not result.affected_files:
        console.print("Affected files: none")
        return

    table = Table(title="Affected files")
    table.add_column("Repository", style="cyan")
    table.add_column("File")
    table.add_column("Reason", style="dim")
    for item in result.affected_files:
        table.add_row(item.repository_id, item.file_path, item.reason)
    console.print(table)


@app.command("stats")
def stats(project: Optional[str] = typer.Option(None, "--project", "-p")):
    """Show node and edge counts of a project graph."""
    pm = ProjectManager()
    name = _resolve_project(pm, project)
    summary = summarize(open_store(name).get_graph())

    table = Table(title=f"Graph '{name}'")
    table.add_column("Kind")
    table.add_column("Name")
    table.add_column("Count", justify="right")
    for kind, counts in summary.items():
        for key, count in sorted(counts.items()):
            table.add_row(kind, key, str(count))
    console.print(table)


@app.command("projects")
def list_projects():
    """List all projects."""
    pm = ProjectManager()
    projects = pm.list_projects()
    current = pm.get_current_project()

    if not projects:
        typer.echo("No projects indexed yet.")
        raise typer.Exit(code=0)

    for p in projects:
        marker = "*" if p == current else " "
        typer.echo(f"{marker} {p}")


@app.command("repos")
def list_repositories(project: Optional[str] = typer.Option(None, "--project", "-p")):
    """List repositories registered in a project."""
    pm = ProjectManager()
    name = _resolve_project(pm, project)
    repos = pm.repositories(name)
    if not repos:
        typer.echo(f"No repositories in project '{name}'.")
        return
    for repo_id, path in sorted(repos.items()):
        typer.echo(f"{repo_id}\t{path}")


@app.command("use")
def use_project(project: str = typer.Argument(..., help="Project to make current.")):
    """Switch the current project."""
    pm = ProjectManager()
    if project not in pm.list_projects():
        raise typer.BadParameter(f"Project '{project}' not found.")
    pm.set_current_project(project)
    typer.echo(f"Using project '{project}'.")


@app.command("delete-project")
def delete_project(project: str = typer.Argument(..., help="Project to delete.")):
    """Delete a project and its graph."""
    pm = ProjectManager()
    if not pm.delete_project(project):
        raise typer.BadParameter(f"Project '{project}' not found.")
    typer.echo(f"Deleted project '{project}'.")


@app.command("export")
def export_graph(
    project: Optional[str] = typer.Option(None, "--project", "-p"),
    fmt: str = typer.Option("dot", "--format", "-f", help="Export format: dot or json."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Output file path."),
    focus: str = typer.Option("", "--focus", help="Node id to center a DOT export on."),
):
    """Export a project graph to Graphviz DOT or JSON."""
    fmt = fmt.lower()
    if fmt not in {"dot", "json"}:
        raise typer.BadParameter("Format must be one of: dot, json")

    pm = ProjectManager()
    name = _resolve_project(pm, project)
    graph = open_store(name).get_graph()
    output = output or Path.cwd() / f"{name}_graph.{fmt}"

    if fmt == "dot":
        export_dot(graph, output, focus=focus)
    else:
        export_json(graph, output)
    typer.echo(f"Exported graph to {output}")


@app.command("set-llm")
def set_llm(
    provider: str = typer.Argument(..., help="LLM provider: ollama, groq, openai, anthropic, gemini, openrouter"),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Model name (uses provider default if not set)."),
    api_key: Optional[str] = typer.Option(None, "--api-key", "-k", help="API key for cloud providers."),
    endpoint: Optional[str] = typer.Option(None, "--endpoint", "-e", help="Custom endpoint URL."),
):
    """Configure the model used to classify breaking changes."""
    provider = provider.lower().strip()
    if provider not in config_manager.ALL_PROVIDERS:
        typer.echo(f"Unknown provider '{provider}'. Choose from: {', '.join(config_manager.ALL_PROVIDERS)}", err=True)
        raise typer.Exit(code=1)

    defaults = config_manager.get_provider_config(provider)
    resolved_model = model or defaults.get("model", "")
    resolved_endpoint = endpoint or defaults.get("endpoint", "")

    if not config_manager.save_config(provider, resolved_model, api_key or "", resolved_endpoint):
        typer.echo("Failed to save configuration!", err=True)
        raise typer.Exit(code=1)

    typer.echo(f"LLM provider set to: {provider}")
    typer.echo(f"  Model:    {resolved_model}")
    if resolved_endpoint:
        typer.echo(f"  Endpoint: {resolved_endpoint}")


@app.command("show-llm")
def show_llm():
    """Show the current LLM provider configuration."""
    cfg = config_manager.load_config()
    api_key = cfg.get("api_key", "")
    typer.echo(f"Provider: {cfg.get('provider', 'ollama')}")
    typer.echo(f"Model:    {cfg.get('model', '')}")
    if cfg.get("endpoint"):
        typer.echo(f"Endpoint: {cfg['endpoint']}")
    typer.echo(f"API Key:  {api_key[:8] + '****' if api_key else '(not set)'}")
    typer.echo(f"Config:   {config_manager.CONFIG_FILE}")


if __name__ == "__main__":
    app()
