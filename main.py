#!/usr/bin/env python3
"""
API Documentation Generator
============================
Static-analysis OpenAPI generator for Python web applications.

Reads a route table (YAML/JSON), analyzes each route's handler source and
the models it references, and writes an OpenAPI 3.0/3.1 document.

Features:
  - AST-based exception, parameter and security analysis
  - Schema resolution for pydantic models, dataclasses and annotated classes
  - Priority-ordered extractor registry with bundled plugins
  - Parallel route analysis
  - JSON or YAML output

Usage: python main.py [OPTIONS] <routes_file>
"""

import sys
import os
import json
import argparse
import logging
from typing import List, Dict, Any, Optional

import yaml
from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn, BarColumn
from rich import box
from dotenv import load_dotenv

from pipeline import __version__
from pipeline.context import RouteInfo
from pipeline.errors import ApiDocError, ConfigurationError
from pipeline.orchestrator import DocumentGenerator, GenerationConfig, build_default_registry
from pipeline.results import ExtractorFault

load_dotenv()

# Document goes to stdout when no output file is given
console = Console(stderr=True)


# =============================================================================
# LOGGING CONFIGURATION
# =============================================================================
def setup_logging(log_level: str = "INFO", log_file: Optional[str] = None,
                  verbose: bool = False) -> logging.Logger:
    """Configure structured logging for the generator."""
    logger = logging.getLogger("api_docs")
    logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    # Clear existing handlers
    logger.handlers.clear()

    # Console handler with structured format
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
    console_formatter = logging.Formatter(
        '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    console_handler.setFormatter(console_formatter)
    logger.addHandler(console_handler)

    # File handler if specified
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)
        file_formatter = logging.Formatter(
            '{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s"}',
            datefmt='%Y-%m-%dT%H:%M:%S'
        )
        file_handler.setFormatter(file_formatter)
        logger.addHandler(file_handler)

    return logger


logger = setup_logging()


# =============================================================================
# ROUTE TABLE / OUTPUT
# =============================================================================
def load_routes(path: str) -> List[RouteInfo]:
    """
    Load a route table from YAML or JSON.

    The file holds either a list of route entries or a mapping with a
    "routes" key.
    """
    with open(path, 'r') as f:
        if path.endswith(('.yaml', '.yml')):
            data = yaml.safe_load(f)
        else:
            data = json.load(f)

    if isinstance(data, dict):
        data = data.get("routes")
    if not isinstance(data, list):
        raise ConfigurationError(f"Route table {path} must contain a list of routes")

    routes = []
    for i, entry in enumerate(data):
        if not isinstance(entry, dict):
            raise ConfigurationError(f"Route #{i} in {path} is not a mapping")
        try:
            routes.append(RouteInfo.from_dict(entry))
        except ValueError as e:
            raise ConfigurationError(f"Route #{i} in {path}: {e}") from e

    logger.info(f"Loaded {len(routes)} routes from {path}")
    return routes


def render_document(document: Dict[str, Any], fmt: str = "json") -> str:
    if fmt == "yaml":
        return yaml.safe_dump(document, sort_keys=False, allow_unicode=True)
    return json.dumps(document, indent=2, ensure_ascii=False)


def make_summary(stats: Dict[str, Any], config: GenerationConfig) -> Panel:
    txt = f"""
[bold cyan] Generation Summary[/bold cyan]

[bold]Document:[/bold] {config.title} {config.version} (OpenAPI {config.openapi_version})
[bold]Routes:[/bold] {stats.get('routes', 0)} | Operations: {stats.get('operations', 0)} | Paths: {stats.get('paths', 0)}
[bold]Schemas:[/bold] {stats.get('schemas', 0)}
[bold]Source Files Parsed:[/bold] {stats.get('files_parsed', 0)}
[bold]Faults:[/bold] {stats.get('faults', 0)}
[bold]Duration:[/bold] {stats.get('duration_seconds', 0)}s
"""
    return Panel(txt, title="Summary", border_style="cyan")


def make_fault_table(faults: List[ExtractorFault]) -> Table:
    t = Table(title=" Extractor Faults", box=box.ROUNDED, header_style="bold magenta")
    t.add_column("#", style="dim", width=4)
    t.add_column("Route", max_width=40)
    t.add_column("Extractor", style="cyan")
    t.add_column("Error", style="red", max_width=60)

    for i, fault in enumerate(faults[:50], 1):
        t.add_row(str(i), fault.route, fault.extractor, f"{fault.error_type}: {fault.error}")

    if len(faults) > 50:
        t.add_row("...", f"... +{len(faults) - 50} more", "", "")
    return t


def build_config(args: argparse.Namespace) -> GenerationConfig:
    if args.config:
        config = GenerationConfig.from_file(args.config)
    else:
        config = GenerationConfig.from_env()

    # Override with CLI args
    return config.with_overrides(
        title=args.title,
        openapi_version=args.openapi_version,
        workers=args.workers,
        strict=True if args.strict else None,
        include_plugins=False if args.no_plugins else None,
        code_samples=True if args.code_samples else None,
        servers=args.server,
    )


def main():
    parser = argparse.ArgumentParser(
        description=f"API Documentation Generator v{__version__}",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py routes.yaml                              # Document to stdout
  python main.py routes.yaml -o openapi.yaml --format yaml
  python main.py routes.json --source-root ./src --strict # Fail on extractor faults
  python main.py routes.yaml --openapi-version 3.1.0 --workers 8
        """
    )

    parser.add_argument("routes_file", help="Route table (YAML/JSON)")

    # Output options
    output_group = parser.add_argument_group("Output Options")
    output_group.add_argument("-o", "--output", help="Output file (default: stdout)")
    output_group.add_argument("--format", choices=["json", "yaml"],
                              help="Output format (default: from output extension, else json)")

    # Generation options
    gen_group = parser.add_argument_group("Generation Options")
    gen_group.add_argument("--config", metavar="FILE", help="Configuration file (JSON/YAML)")
    gen_group.add_argument("--source-root", metavar="DIR", action="append", default=[],
                           help="Directory to import handler modules from (repeatable)")
    gen_group.add_argument("--title", help="Document title")
    gen_group.add_argument("--server", metavar="URL", action="append",
                           help="Server URL (repeatable)")
    gen_group.add_argument("--openapi-version", choices=["3.0.3", "3.1.0"],
                           help="OpenAPI version of the output document")
    gen_group.add_argument("--workers", type=int, help="Number of parallel workers (default: 4)")
    gen_group.add_argument("--strict", action="store_true",
                           help="Abort on the first extractor fault")
    gen_group.add_argument("--no-plugins", action="store_true",
                           help="Do not install the bundled plugins")
    gen_group.add_argument("--code-samples", action="store_true",
                           help="Add x-codeSamples to every operation")

    # General
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    parser.add_argument("--log-file", metavar="FILE", help="Write JSON-lines log to file")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--quiet", "-q", action="store_true", help="Minimal output")

    args = parser.parse_args()
    setup_logging("DEBUG" if args.verbose or args.log_file else "INFO", args.log_file, args.verbose)

    if not args.quiet:
        console.print(Panel.fit(
            f"[bold cyan] API Documentation Generator v{__version__}[/bold cyan]\n"
            "[dim]Routes → AST analysis → Schemas → OpenAPI[/dim]",
            border_style="cyan"
        ))

    if not os.path.exists(args.routes_file):
        console.print(f"[red]Error: {args.routes_file} not found[/red]")
        sys.exit(1)

    for root in reversed(args.source_root):
        sys.path.insert(0, os.path.abspath(root))

    fmt = args.format or ("yaml" if (args.output or "").endswith(('.yaml', '.yml')) else "json")
    exit_code = 0

    try:
        config = build_config(args)
        routes = load_routes(args.routes_file)

        generator = DocumentGenerator(build_default_registry(config), config)

        # Progress callback
        def progress_cb(cur, tot, route):
            prog.update(task, completed=(cur / tot) * 100,
                        description=f"[cyan]{str(route)[:30]}")

        with Progress(SpinnerColumn(), TextColumn("[progress.description]{task.description}"),
                      BarColumn(), TextColumn("{task.percentage:>3.0f}%"),
                      console=console, disable=args.quiet) as prog:
            task = prog.add_task("[cyan]Analyzing", total=100)
            document = generator.generate(routes, progress_cb=progress_cb)

        output = render_document(document, fmt)

        if args.output:
            with open(args.output, 'w') as f:
                f.write(output)
        else:
            sys.stdout.write(output + "\n")

        if not args.quiet:
            console.print(make_summary(generator.stats, config))
            if generator.faults:
                console.print(make_fault_table(generator.faults))
            if args.output:
                console.print(f"\n[green] Saved: {args.output}[/green]")

    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        sys.exit(130)
    except ApiDocError as e:
        console.print(f"\n[red]Error: {e}[/red]")
        if args.verbose:
            console.print_exception()
        exit_code = 1
    except (OSError, yaml.YAMLError, json.JSONDecodeError) as e:
        console.print(f"\n[red]Error: {e}[/red]")
        exit_code = 1

    if not args.quiet and exit_code == 0:
        console.print("\n[bold green] Complete![/bold green]")

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
