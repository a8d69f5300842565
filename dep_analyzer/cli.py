"""CLI entry point: dep-analyzer.

Subcommands:
    dep-analyzer analyze /path/to/repo -o result.json   # Resolve all definition files
    dep-analyzer vcs-info /path/to/checkout             # Describe a working tree
    dep-analyzer classify-url URL                       # Which VCS handles a URL
    dep-analyzer download URL TARGET [--revision R]     # Fetch a source tree
    dep-analyzer tools                                  # Availability and versions of tools
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click

from dep_analyzer.core.config import AnalyzerConfig
from dep_analyzer.core.logging import setup_logging
from dep_analyzer.exceptions import AnalysisAbortedError, AnalyzerError


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Verbose logging")
def main(verbose: bool) -> None:
    """dep-analyzer: resolve third-party dependencies across package managers."""
    setup_logging("DEBUG" if verbose else None)


@main.command("analyze")
@click.argument("root", type=click.Path(file_okay=False, path_type=Path))
@click.option(
    "-f",
    "--file",
    "files",
    multiple=True,
    type=click.Path(path_type=Path),
    help="Definition file to analyze (repeatable). Default: discover all.",
)
@click.option("-o", "--output", type=click.Path(dir_okay=False, path_type=Path), help="Write JSON here")
@click.option("--workers", type=int, default=None, help="Parallel resolutions")
@click.option("--timeout", type=float, default=None, help="Deadline for the whole run, in seconds")
@click.option("--ignore-tool-versions", is_flag=True, help="Warn instead of failing on tool versions")
@click.option("--no-bootstrap", is_flag=True, help="Never download missing tools")
def analyze(
    root: Path,
    files: tuple[Path, ...],
    output: Path | None,
    workers: int | None,
    timeout: float | None,
    ignore_tool_versions: bool,
    no_bootstrap: bool,
) -> None:
    """Resolve the dependencies of every definition file below ROOT."""
    from dep_analyzer.orchestrator import Analyzer
    from dep_analyzer.progress import ProgressTracker

    try:
        config = AnalyzerConfig.from_env().with_overrides(
            max_workers=workers,
            run_timeout=timeout,
            ignore_tool_versions=True if ignore_tool_versions else None,
            allow_bootstrap=False if no_bootstrap else None,
        )
    except ValueError as e:
        click.echo(f"Error: invalid configuration: {e}", err=True)
        sys.exit(1)

    progress = ProgressTracker()
    try:
        result = Analyzer(config=config).analyze(root, files or None, progress=progress)
    except AnalysisAbortedError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if output:
        output.write_text(result.to_json())
        click.echo(f"Result written to {output}", err=True)
    else:
        click.echo(result.to_json(), nl=False)

    summary = progress.get_summary()
    counts = ", ".join(f"{state}: {n}" for state, n in summary["counts"].items() if n)
    click.echo(f"\n{len(result)} definition file(s): {counts or 'nothing to do'}", err=True)
    for f in summary["files"]:
        if f["error"]:
            click.echo(f"  [!] {f['path']}: {f['error']}", err=True)


@main.command("vcs-info")
@click.argument("path", type=click.Path(exists=True, path_type=Path))
def vcs_info(path: Path) -> None:
    """Describe the working tree managing PATH."""
    from dep_analyzer.vcs import create_default_registry

    tree = create_default_registry().for_directory(path)
    info = {
        "provider": tree.provider,
        "root_path": tree.root_path_posix,
        "remote_url": tree.remote_url,
        "revision": tree.revision,
        "is_valid": tree.is_valid,
        "path": tree.path_to_root(path) if tree.is_valid else "",
    }
    click.echo(json.dumps(info, indent=2))


@main.command("classify-url")
@click.argument("url")
def classify_url(url: str) -> None:
    """Print the VCS that would handle URL."""
    from dep_analyzer.vcs import create_default_registry

    provider = create_default_registry().for_url(url)
    if provider is None:
        click.echo("unknown")
        sys.exit(1)
    click.echo(provider.name)


@main.command("download")
@click.argument("url")
@click.argument("target", type=click.Path(file_okay=False, path_type=Path))
@click.option("--revision", default=None, help="Revision, tag or branch to check out")
def download(url: str, target: Path, revision: str | None) -> None:
    """Check out the source tree at URL into TARGET."""
    from dep_analyzer.vcs import create_default_registry

    try:
        tree = create_default_registry().download(url, target, revision)
    except AnalyzerError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    click.echo(f"{tree.provider} checkout of {tree.remote_url} at {tree.revision or 'HEAD'} in {tree.root_path}")


@main.command("tools")
def tools() -> None:
    """Show availability and version of every external tool."""
    from dep_analyzer.managers import create_default_registry as create_manager_registry
    from dep_analyzer.tools import check_version
    from dep_analyzer.vcs import create_default_registry as create_vcs_registry

    candidates = [m.tool for m in create_manager_registry(AnalyzerConfig.from_env()).list_all()]
    candidates += [v.tool for v in create_vcs_registry().list_all()]

    for tool in candidates:
        if tool is None:
            continue
        name = tool.identity.name
        if not tool.is_available():
            click.echo(f"  [-] {name}: not found (requires {tool.version_requirement})")
            continue
        try:
            check = check_version(tool, ignore_mismatch=True)
        except AnalyzerError as e:
            click.echo(f"  [!] {name}: {e}")
            continue
        status_icon = "+" if check.satisfied else "!"
        click.echo(f"  [{status_icon}] {name} {check.version} (requires {check.requirement})")


if __name__ == "__main__":
    main()
