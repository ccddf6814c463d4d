import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from qirval._allocation import index_capacity
from qirval._catalog import DEFAULT_CATALOG, FunctionCatalog
from qirval._errors import QirvalError
from qirval._ir import Module, parse_module, print_module
from qirval._kinds import Profile
from qirval._lowering import expand_module
from qirval._pipeline import PipelineResult, process_module
from qirval._registry import check_reserved_types
from qirval._report import ModuleReport, build_report, export_report
from qirval._signatures import validate_signatures

from .config import ConfigError, QirvalConfig, get_config

app = typer.Typer()

logger = logging.getLogger(__name__)
# Console for stderr (info/errors)
err_console = Console(stderr=True)
# Console for stdout (results)
out_console = Console()


@app.callback()
def callback(
    *,
    verbose: bool = typer.Option(default=False, help="Enable verbose output"),
) -> None:
    """Qirval CLI."""
    log_level = logging.DEBUG if verbose else logging.INFO

    # Configure rich logging handler to output to stderr
    logging.basicConfig(
        level=log_level,
        format="%(message)s",
        handlers=[
            RichHandler(
                console=err_console,
                show_time=False,
                show_path=verbose,
                rich_tracebacks=True,
            ),
        ],
    )


@dataclass(slots=True, frozen=True)
class _Settings:
    """Configuration merged with command-line options."""

    profile: Profile
    strict_tracking: bool | None
    index_width: int
    catalog: FunctionCatalog


def _fail(error: Exception) -> typer.Exit:
    err_console.print(f"[red]✗ {type(error).__name__}:[/red] {escape(str(error))}")
    return typer.Exit(code=1)


def _parse_profile_option(value: str | None) -> Profile | None:
    if value is None:
        return None
    try:
        return Profile.parse(value)
    except ValueError as e:
        raise typer.BadParameter(str(e), param_hint="--profile") from e


def _settings(
    profile: str | None,
    *,
    strict_tracking: bool | None = None,
    index_width: int | None = None,
) -> _Settings:
    """Merge `[tool.qirval]` with command-line options; options win."""
    try:
        config = get_config()
    except ConfigError as e:
        raise _fail(e) from e
    return _settings_from(config, profile, strict_tracking=strict_tracking, index_width=index_width)


def _settings_from(
    config: QirvalConfig,
    profile: str | None,
    *,
    strict_tracking: bool | None,
    index_width: int | None,
) -> _Settings:
    catalog = DEFAULT_CATALOG
    if config.functions:
        try:
            catalog = catalog.with_signatures(config.functions)
        except (ValueError, QirvalError) as e:
            raise _fail(ConfigError(f"Invalid [tool.qirval].functions: {e}")) from e
    width = index_width if index_width is not None else config.index_width
    try:
        index_capacity(width)
    except ValueError as e:
        raise typer.BadParameter(str(e), param_hint="--index-width") from e
    return _Settings(
        profile=_parse_profile_option(profile) or config.profile or Profile.FULL,
        strict_tracking=strict_tracking if strict_tracking is not None else config.strict_tracking,
        index_width=width,
        catalog=catalog,
    )


def _read_module(path: Path) -> Module:
    err_console.print(f"[cyan]Reading:[/cyan] {path}")
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        err_console.print(f"[red]Error: cannot read {path}: {e.strerror}[/red]")
        raise typer.Exit(code=1) from e
    try:
        return parse_module(text)
    except QirvalError as e:
        raise _fail(e) from e


def _run(path: Path, settings: _Settings) -> PipelineResult:
    module = _read_module(path)
    try:
        return process_module(
            module,
            profile=settings.profile,
            catalog=settings.catalog,
            strict_tracking=settings.strict_tracking,
            index_width=settings.index_width,
        )
    except QirvalError as e:
        raise _fail(e) from e


def _write_module(module: Module, output: Path | None) -> None:
    text = print_module(module)
    if output is None:
        typer.echo(text, nl=False)
        return
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(text, encoding="utf-8")
    err_console.print(f"[cyan]Wrote:[/cyan] {output}")


def _print_problems(result: PipelineResult) -> None:
    if result.lowering_error is not None:
        err_console.print(f"[red]✗ Lowering to {result.profile} failed:[/red] {escape(str(result.lowering_error))}")
    for diagnostic in result.tracking.diagnostics:
        err_console.print(f"[yellow]⚠ {diagnostic.error}:[/yellow] {escape(diagnostic.message)}")


ProfileOption = Annotated[
    str | None,
    typer.Option("--profile", "-p", help="Target profile: full, base or adaptive"),
]
OutputOption = Annotated[
    Path | None,
    typer.Option("-o", "--output", help="Output file (stdout when omitted)"),
]
IndexWidthOption = Annotated[
    int | None,
    typer.Option("--index-width", help="Bit width of the %Qubit/%Result index field"),
]


@app.command()
def check(
    path: Annotated[Path, typer.Argument(help="Path to a textual QIR module (.ll)")],
    *,
    profile: ProfileOption = None,
    index_width: IndexWidthOption = None,
) -> None:
    """Validate reserved types, function signatures and profile conformance."""
    settings = _settings(profile, index_width=index_width)
    err_console.print()
    result = _run(path, settings)

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Function", style="bold")
    table.add_column("Surface")
    table.add_column("Signature", style="dim")
    table.add_column("Calls", justify="right", style="yellow")
    for signature in result.signatures:
        name = escape(signature.name) + ("" if signature.cataloged else " [dim](uncataloged)[/dim]")
        table.add_row(name, str(signature.surface), escape(str(signature.signature)), str(signature.call_sites))

    err_console.print(
        Panel(
            table,
            title=f"[bold]{escape(path.name)}[/bold]",
            subtitle=f"[dim]{len(result.signatures)} runtime/instruction-set functions[/dim]",
            border_style="cyan",
        ),
    )
    err_console.print()
    _print_problems(result)
    if not result.ok:
        raise typer.Exit(code=1)

    if result.lowered is not None and result.profile.is_restricted:
        err_console.print(
            f"[cyan]{result.profile} profile:[/cyan] "
            f"{result.lowered.qubit_count} qubit(s), {result.lowered.result_count} result(s)",
        )
    err_console.print("[green]✓ Module is valid[/green]")
    err_console.print()


@app.command()
def lower(
    path: Annotated[Path, typer.Argument(help="Path to a textual QIR module (.ll)")],
    *,
    profile: ProfileOption = None,
    output: OutputOption = None,
    index_width: IndexWidthOption = None,
) -> None:
    """Lower a module to a restricted profile and print the result."""
    settings = _settings(profile, index_width=index_width)
    result = _run(path, settings)
    if result.lowering_error is not None:
        raise _fail(result.lowering_error)
    _print_problems(result)
    _write_module(result.output, output)


@app.command()
def track(
    path: Annotated[Path, typer.Argument(help="Path to a textual QIR module (.ll)")],
    *,
    profile: ProfileOption = None,
    strict: Annotated[
        bool | None,
        typer.Option("--strict/--no-strict", help="Fail on the first violation (default: per profile)"),
    ] = None,
    report: Annotated[
        Path | None,
        typer.Option("--report", help="Write a report (.json or .toml)"),
    ] = None,
    index_width: IndexWidthOption = None,
) -> None:
    """Track qubit and result indices and print their live ranges."""
    settings = _settings(profile, strict_tracking=strict, index_width=index_width)
    result = _run(path, settings)

    table = Table(show_header=True, header_style="bold cyan", box=None)
    table.add_column("Function", style="bold")
    table.add_column("Kind")
    table.add_column("Element")
    table.add_column("Index", justify="right", style="yellow")
    table.add_column("Live", justify="right")
    for live_range in result.tracking.live_ranges:
        element = f"%{live_range.array}[{live_range.offset}]" if live_range.array is not None else "literal"
        index = "?" if live_range.index is None else str(live_range.index)
        end = "never released" if live_range.end is None else str(live_range.end)
        table.add_row(
            escape(live_range.function),
            str(live_range.kind),
            escape(element),
            index,
            f"{live_range.start} → {end}",
        )
    out_console.print(table)

    _print_problems(result)
    if report is not None:
        try:
            export_report(build_report(result), report)
        except ValueError as e:
            raise _fail(e) from e
        err_console.print(f"[cyan]Report written to:[/cyan] {report}")
    if not result.tracking.ok:
        raise typer.Exit(code=1)


@app.command()
def expand(
    path: Annotated[Path, typer.Argument(help="Path to a base-profile QIR module (.ll)")],
    *,
    output: OutputOption = None,
) -> None:
    """Rewrite a base-profile module into the full representation."""
    settings = _settings(None)
    module = _read_module(path)
    try:
        registry = check_reserved_types(module)
        validate_signatures(module, registry, settings.catalog)
        expanded = expand_module(module, registry, catalog=settings.catalog)
    except QirvalError as e:
        raise _fail(e) from e
    _write_module(expanded, output)


@app.command()
def schema(
    *,
    output: Annotated[
        Path,
        typer.Option("-o", "--output", help="Path to output JSON schema file"),
    ],
    indent: Annotated[
        int,
        typer.Option("--indent", help="JSON indentation spaces"),
    ] = 2,
) -> None:
    """Generate the JSON schema of the report written by `track --report`."""
    err_console.print(f"[cyan]Writing schema to:[/cyan] {output}")
    output.parent.mkdir(parents=True, exist_ok=True)
    with output.open("w") as f:
        json.dump(ModuleReport.model_json_schema(), f, indent=indent)
    err_console.print("[green]✓ Schema generation complete[/green]")


def main() -> None:
    app()
