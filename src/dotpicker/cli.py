"""Command line interface for dotpicker."""

from pathlib import Path
from typing import Dict, Optional, Tuple

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.tree import Tree

from .core.backup import BackupManager
from .core.config import Config
from .core.errors import DotpickerError, PathNotFoundError
from .core.logging import setup_logging
from .core.picker import DotfilePicker
from .core.repository import RepositoryCache
from .core.submodules import SubmoduleMaterializer
from .core.types import (
    ApplyReport,
    CreatorSpec,
    DiffKind,
    DiffResult,
    MaterializeResult,
    ResolvedFileMap,
    SubmoduleStatus,
)

console = Console()

REPO_PATH = click.Path(exists=True, file_okay=False, dir_okay=True, path_type=Path)

STATUS_STYLES = {
    SubmoduleStatus.RESOLVED: "green",
    SubmoduleStatus.SKIPPED: "yellow",
    SubmoduleStatus.FAILED: "red",
}

KIND_STYLES = {
    DiffKind.NEW: "green",
    DiffKind.IDENTICAL: "dim",
    DiffKind.MODIFIED: "yellow",
}


def _parse_selections(values: Tuple[str, ...]) -> Dict[str, Path]:
    selections: Dict[str, Path] = {}
    for value in values:
        logical, sep, directory = value.partition("=")
        if not sep or not logical or not directory:
            raise click.BadParameter(f"expected PATH=DIR, got '{value}'", param_hint="--select")
        selections[logical] = Path(directory).expanduser()
    return selections


def _resolve(
    picker: DotfilePicker, repo_path: Path, paths: Tuple[str, ...], select: Tuple[str, ...]
) -> ResolvedFileMap:
    """Resolve paths, turning a miss into a hint about manual selection."""
    try:
        snap, file_map = picker.resolve(repo_path, list(paths), _parse_selections(select))
    except PathNotFoundError as e:
        console.print(
            f"[yellow]Couldn't find '{escape(e.requested_path)}' in {escape(str(e.repo_path))}"
        )
        console.print(
            f"[yellow]Pick its location manually with --select '{escape(e.requested_path)}=DIR'"
        )
        raise click.Abort()
    console.print(f"[bold]Layout:[/] {snap.layout.value}")
    return file_map


def _print_diff(result: DiffResult) -> None:
    style = KIND_STYLES[result.kind]
    console.print(
        f"\n[bold {style}]{result.kind.value}[/] {escape(str(result.target_path))} "
        f"[green]+{result.additions}[/] [red]-{result.deletions}[/]"
    )
    for line in result.diff.splitlines():
        if line.startswith("+ "):
            console.print(f"[green]{escape(line)}[/]")
        elif line.startswith("- "):
            console.print(f"[red]{escape(line)}[/]")
        else:
            console.print(escape(line), style="dim")


def _print_report(report: ApplyReport) -> None:
    table = Table(title="Apply Results")
    table.add_column("Target", style="cyan")
    table.add_column("Status")
    table.add_column("Backup", style="magenta")
    table.add_column("Error", style="red")
    for outcome in report.outcomes:
        status = "[green]ok[/]" if outcome.success else f"[red]{outcome.state.value}[/]"
        table.add_row(
            escape(str(outcome.target_path)),
            status,
            escape(str(outcome.backup_path)) if outcome.backup_path else "",
            escape(str(outcome.error)) if outcome.error else "",
        )
    console.print(table)


def _add_outcomes(tree: Tree, result: MaterializeResult) -> None:
    for outcome in result.outcomes:
        style = STATUS_STYLES[outcome.status]
        label = f"[{style}]{outcome.status.value}[/] {escape(outcome.config.path)}"
        if outcome.reason:
            label += f" [dim]({escape(outcome.reason)})[/]"
        branch = tree.add(label)
        if outcome.nested is not None:
            _add_outcomes(branch, outcome.nested)


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option(
    "--config",
    "config_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="YAML configuration file",
)
@click.option(
    "--log-file", type=click.Path(dir_okay=False, path_type=Path), help="Write logs to this file"
)
@click.pass_context
def cli(
    ctx: click.Context, debug: bool, config_file: Optional[Path], log_file: Optional[Path]
) -> None:
    """Dotfile picker.

    Finds a creator's dotfiles inside their repository, whatever its layout,
    previews what would change in your home directory, backs up your current
    files and applies the new ones.

    Main commands:

      classify    Show how a repository organizes its dotfiles
      resolve     Show which repository files a dotfile path maps to
      diff        Preview changes without writing anything
      apply       Back up and write dotfiles
      backups     List backups
      restore     Restore a backup

    Run 'dotpicker COMMAND --help' for more information on a specific command.
    """
    try:
        config = Config(config_file)
    except DotpickerError as e:
        console.print(f"[red]Error: {escape(str(e))}")
        raise click.Abort()
    setup_logging(debug=debug, log_file=str(log_file or config.log_file))
    ctx.obj = config


@cli.command()
@click.argument("repo_path", type=REPO_PATH)
@click.pass_obj
def classify(config: Config, repo_path: Path) -> None:
    """Show the layout of a checked-out repository.

    Example:

      dotpicker classify ~/.config/dotfile-picker/cache/someone
    """
    snap = DotfilePicker(config).snapshot(repo_path)
    console.print(f"{escape(str(snap.root))}: [bold]{snap.layout.value}")


@cli.command()
@click.argument("repo_path", type=REPO_PATH)
@click.argument("paths", nargs=-1, required=True)
@click.option(
    "--select",
    "-s",
    multiple=True,
    help="Manual location for a path that can't be found, as PATH=DIR",
)
@click.pass_obj
def resolve(
    config: Config, repo_path: Path, paths: Tuple[str, ...], select: Tuple[str, ...]
) -> None:
    """Show which files in REPO_PATH the logical PATHS map to.

    Examples:

      dotpicker resolve ./dotfiles .config/nvim ~/.tmux.conf

      dotpicker resolve ./dotfiles .config/nvim --select .config/nvim=./dotfiles/editor
    """
    picker = DotfilePicker(config)
    try:
        file_map = _resolve(picker, repo_path, paths, select)
    except (DotpickerError, OSError) as e:
        console.print(f"[red]Error: {escape(str(e))}")
        raise click.Abort()

    table = Table(title="Resolved Files")
    table.add_column("Source", style="cyan")
    table.add_column("Target", style="green")
    for source, target in file_map.items():
        table.add_row(escape(str(source)), escape(target))
    console.print(table)


@cli.command()
@click.argument("repo_path", type=REPO_PATH)
@click.argument("paths", nargs=-1, required=True)
@click.option("--select", "-s", multiple=True, help="Manual location as PATH=DIR")
@click.pass_obj
def diff(config: Config, repo_path: Path, paths: Tuple[str, ...], select: Tuple[str, ...]) -> None:
    """Preview what applying PATHS from REPO_PATH would change.

    Example:

      dotpicker diff ./dotfiles .config/nvim
    """
    picker = DotfilePicker(config)
    try:
        file_map = _resolve(picker, repo_path, paths, select)
        results = picker.preview(file_map)
    except (DotpickerError, OSError) as e:
        console.print(f"[red]Error: {escape(str(e))}")
        raise click.Abort()

    for result in results:
        _print_diff(result)


@cli.command()
@click.argument("repo_path", type=REPO_PATH)
@click.argument("paths", nargs=-1, required=True)
@click.option("--creator", "-c", help="Creator id recorded on backups (defaults to repo name)")
@click.option(
    "--dotfile", "-d", "dotfile_id", default="custom", help="Dotfile id recorded on backups"
)
@click.option("--select", "-s", multiple=True, help="Manual location as PATH=DIR")
@click.option("--dry-run", is_flag=True, help="Show what would be written without writing")
@click.option("--yes", "-y", is_flag=True, help="Don't ask for confirmation")
@click.option(
    "--rollback-on-failure",
    is_flag=True,
    help="Restore every backed-up file if any file fails",
)
@click.pass_obj
def apply(
    config: Config,
    repo_path: Path,
    paths: Tuple[str, ...],
    creator: Optional[str],
    dotfile_id: str,
    select: Tuple[str, ...],
    dry_run: bool,
    yes: bool,
    rollback_on_failure: bool,
) -> None:
    """Back up existing files and apply PATHS from REPO_PATH.

    Every file that would be overwritten is backed up first. Files that
    fail are reported individually; the others are still written.

    Examples:

      dotpicker apply ./dotfiles .config/nvim .tmux.conf

      dotpicker apply ./dotfiles .config/nvim --dry-run
    """
    picker = DotfilePicker(config)
    creator_id = creator or repo_path.resolve().name
    try:
        file_map = _resolve(picker, repo_path, paths, select)
        results = picker.preview(file_map)
    except (DotpickerError, OSError) as e:
        console.print(f"[red]Error: {escape(str(e))}")
        raise click.Abort()

    changed = [r for r in results if r.kind is not DiffKind.IDENTICAL]
    for result in changed:
        _print_diff(result)
    if not changed:
        console.print("[green]Everything is already up to date")
        return

    if not dry_run and not yes and not click.confirm(f"\nApply {len(changed)} file(s)?"):
        raise click.Abort()

    changed_sources = {r.source_path for r in changed}
    to_apply = {s: t for s, t in file_map.items() if s in changed_sources}
    report = picker.apply(to_apply, creator_id, dotfile_id, dry_run=dry_run)
    _print_report(report)

    if dry_run:
        console.print("[blue]Dry run, nothing was written")
        return

    if not report.ok:
        console.print(
            f"[red]{len(report.failed)} of {len(report.outcomes)} file(s) failed to apply"
        )
        if rollback_on_failure:
            rollback = picker.rollback(report, remove_created=True)
            console.print(f"[yellow]Rolled back {rollback.restored} file(s)")
            if not rollback.ok:
                console.print(f"[red]Rollback encountered {rollback.failed} error(s)")
        raise click.Abort()

    console.print(f"[green]Applied {len(report.succeeded)} file(s)")


@cli.command()
@click.argument("repo_path", type=REPO_PATH)
@click.option("--depth", type=click.IntRange(min=0), help="Maximum nesting depth")
@click.pass_obj
def submodules(config: Config, repo_path: Path, depth: Optional[int]) -> None:
    """Clone uninitialized submodules of REPO_PATH.

    Private or unreachable submodules are skipped; the command only fails
    when none of them could be resolved.
    """
    materializer = SubmoduleMaterializer()
    try:
        result = materializer.materialize(
            repo_path, config.submodule_depth if depth is None else depth
        )
    except (DotpickerError, OSError) as e:
        console.print(f"[red]Error: {escape(str(e))}")
        raise click.Abort()

    if not result.outcomes:
        console.print("[yellow]No submodules declared")
        return

    tree = Tree(f"[bold]{escape(str(repo_path))}")
    _add_outcomes(tree, result)
    console.print(tree)

    if not result.success:
        console.print("[red]Error: Couldn't resolve any submodules")
        raise click.Abort()


@cli.command()
@click.argument("original", required=False, type=click.Path(path_type=Path))
@click.pass_obj
def backups(config: Config, original: Optional[Path]) -> None:
    """List backups, optionally only those of ORIGINAL."""
    manager = BackupManager(config.backup_dir, home=config.home)
    records = (
        manager.list_backups(original.expanduser().absolute()) if original else manager.list_all()
    )
    if not records:
        console.print("[yellow]No backups found.")
        return

    table = Table(title="Backups")
    table.add_column("Original", style="cyan")
    table.add_column("Backup", style="magenta")
    table.add_column("Date", style="yellow")
    table.add_column("Creator", style="green")
    table.add_column("Dotfile", style="green")
    for record in records:
        table.add_row(
            escape(str(record.original_path)),
            escape(str(record.backup_path)),
            record.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            escape(record.creator_id),
            escape(record.dotfile_id),
        )
    console.print(table)


@cli.command()
@click.argument("backup_path", type=click.Path(path_type=Path))
@click.argument("original_path", type=click.Path(path_type=Path))
@click.pass_obj
def restore(config: Config, backup_path: Path, original_path: Path) -> None:
    """Copy BACKUP_PATH back over ORIGINAL_PATH."""
    manager = BackupManager(config.backup_dir, home=config.home)
    try:
        manager.restore(backup_path, original_path.expanduser())
    except DotpickerError as e:
        console.print(f"[red]Error: {escape(str(e))}")
        raise click.Abort()
    console.print(f"[green]Restored {escape(str(original_path))}")


@cli.command()
@click.argument("creator_id")
@click.argument("repo_url")
@click.pass_obj
def fetch(config: Config, creator_id: str, repo_url: str) -> None:
    """Clone or update a creator's repository in the local cache."""
    cache = RepositoryCache(config)
    try:
        path = cache.ensure_repo(CreatorSpec(id=creator_id, name=creator_id, repo=repo_url))
    except DotpickerError as e:
        console.print(f"[red]Error: {escape(str(e))}")
        raise click.Abort()
    console.print(f"[green]{escape(creator_id)}[/] is available at {escape(str(path))}")


def main() -> None:
    """Entry point for the dotpicker CLI."""
    cli()


if __name__ == "__main__":
    main()
