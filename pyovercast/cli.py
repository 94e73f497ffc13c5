"""CLI interface for pyovercast."""

import logging
from pathlib import Path
from typing import Any, Optional

import click
from rich.tree import Tree

from .api import DrimeClient
from .cli_progress import TransferProgressDisplay
from .config import config
from .container import Container, Folder
from .csp import ProviderContext
from .exceptions import OvercastError
from .output import OutputFormatter
from .providers import DrimeProvider, LocalProvider
from .transfer import TransferJob
from .tree import UNLIMITED_DEPTH

logger = logging.getLogger(__name__)


@click.group()
@click.option("--api-key", "-k", envvar="DRIME_API_KEY", help="Drime Cloud API key")
@click.option(
    "--remote-root",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Use a local directory as the remote side instead of Drime Cloud",
)
@click.option(
    "--local-root",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Local directory transfers start from (default: current directory)",
)
@click.option("--workspace", "-w", type=int, default=None, help="Drime workspace ID")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option("--json", is_flag=True, help="Output in JSON format")
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose/debug logging output",
)
@click.pass_context
def main(
    ctx: Any,
    api_key: Optional[str],
    remote_root: Optional[Path],
    local_root: Optional[Path],
    workspace: Optional[int],
    quiet: bool,
    json: bool,
    verbose: bool,
) -> None:
    """PyOvercast - Manage local and cloud file trees through one model."""
    ctx.ensure_object(dict)
    ctx.obj["api_key"] = api_key
    ctx.obj["remote_root"] = remote_root
    ctx.obj["local_root"] = local_root
    ctx.obj["workspace"] = workspace
    ctx.obj["out"] = OutputFormatter(json_output=json, quiet=quiet)

    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )
        logging.getLogger("pyovercast").setLevel(logging.DEBUG)
    else:
        logging.basicConfig(level=logging.WARNING)


# =========================
# Helpers
# =========================


def _remote(ctx: Any) -> ProviderContext:
    """Return the remote provider context, creating it on first use."""
    obj = ctx.obj
    if "remote" in obj:
        return obj["remote"]

    out: OutputFormatter = obj["out"]
    try:
        if obj["remote_root"] is not None:
            provider: Any = LocalProvider(obj["remote_root"], name="remote", is_local=False)
        else:
            if not config.is_configured() and not obj["api_key"]:
                out.error("API key not configured.")
                out.info("Run 'pyovercast init' to configure your API key")
                ctx.exit(1)
            workspace = obj["workspace"]
            if workspace is None:
                workspace = config.get_default_workspace() or 0
            client = DrimeClient(api_key=obj["api_key"])
            ctx.call_on_close(client.close)
            provider = DrimeProvider(client, workspace_id=workspace)
        csp = ProviderContext(provider)
    except OvercastError as e:
        out.error(str(e))
        ctx.exit(1)

    obj["remote"] = csp
    ctx.call_on_close(csp.close)
    return csp


def _local(ctx: Any) -> ProviderContext:
    """Return the local provider context, creating it on first use."""
    obj = ctx.obj
    if "local" in obj:
        return obj["local"]

    root = obj["local_root"] or config.get_local_root()
    try:
        csp = ProviderContext(LocalProvider(root, name="local"))
    except OvercastError as e:
        obj["out"].error(str(e))
        ctx.exit(1)

    obj["local"] = csp
    ctx.call_on_close(csp.close)
    return csp


def _resolve(
    ctx: Any, csp: ProviderContext, path: str, folder: Optional[bool] = None
) -> Container:
    """Resolve a path or exit with an error message."""
    out: OutputFormatter = ctx.obj["out"]
    container = csp.resolve_path(path)
    if container is None:
        out.error(f"Not found on {csp.name}: {path}")
        ctx.exit(1)
    if folder is True:
        if not isinstance(container, Folder):
            out.error(f"Not a folder: {path}")
            ctx.exit(1)
        # Destinations need their children to detect name clashes
        if not csp.full_tree_loaded:
            container.build_tree(0)
    return container


def _local_relative(ctx: Any, path: Path) -> str:
    """Path of a local file relative to the local root, as a tree path."""
    local = _local(ctx)
    root = Path(local.provider.root()).resolve()
    try:
        relative = path.resolve().relative_to(root).as_posix()
    except ValueError:
        ctx.obj["out"].error(f"{path} is outside the local root {root}")
        ctx.exit(1)
    return "/" if relative == "." else "/" + relative


def _tree_to_dict(container: Container) -> dict[str, Any]:
    data: dict[str, Any] = {
        "name": container.name,
        "path": container.path,
        "type": "folder" if container.is_folder else "file",
        "size": container.size,
    }
    if isinstance(container, Folder):
        data["children"] = [
            _tree_to_dict(child)
            for child in sorted(container.children, key=Container.name_key)
        ]
    return data


def _add_branch(branch: Tree, folder: Folder, out: OutputFormatter) -> None:
    for child in sorted(folder.children, key=Container.name_key):
        if isinstance(child, Folder):
            _add_branch(branch.add(f"[bold blue]{child.name}/"), child, out)
        else:
            branch.add(f"{child.name} [dim]({out.format_size(child.size)})")


def _run_transfers(
    ctx: Any, csp: ProviderContext, start: Any, show_progress: bool
) -> None:
    """Queue jobs through ``start(listener)``, wait and report the outcome."""
    out: OutputFormatter = ctx.obj["out"]
    display = TransferProgressDisplay()
    show_progress = show_progress and not out.quiet and not out.json_output

    try:
        if show_progress:
            with display:
                jobs: list[TransferJob] = start(display)
                csp.wait_for_transfers()
        else:
            jobs = start(display)
            csp.wait_for_transfers()
    except OvercastError as e:
        out.error(str(e))
        ctx.exit(1)

    if out.json_output:
        out.output_json(
            [
                {"name": job.name, "state": job.state.value, "error": job.error}
                for job in jobs
            ]
        )
    else:
        for job in jobs:
            if job.error:
                out.warning(f"{job.name}: {job.error}")
        out.print_summary(
            "Transfer Complete",
            [
                ("Completed", str(display.completed)),
                ("Failed", str(display.failed)),
                ("Cancelled", str(display.cancelled)),
                ("Total", str(display.total)),
            ],
        )

    if display.failed:
        ctx.exit(1)


# =========================
# Commands
# =========================


@main.command()
@click.option(
    "--api-key",
    "-k",
    prompt="Enter your Drime Cloud API key",
    help="Drime Cloud API key",
)
@click.pass_context
def init(ctx: Any, api_key: str) -> None:
    """Initialize Drime Cloud configuration.

    Stores your API key in ~/.config/pyovercast/config for future use.
    """
    out: OutputFormatter = ctx.obj["out"]

    out.info("Validating API key...")
    client = DrimeClient(api_key=api_key)
    try:
        DrimeProvider(client).authorise()
        out.success("API key is valid")
    except OvercastError as e:
        out.error(f"API key validation failed: {e}")
        if not click.confirm("Save API key anyway?", default=False):
            out.warning("Configuration cancelled.")
            ctx.exit(1)
    finally:
        client.close()

    config.save_api_key(api_key)
    out.print_summary(
        "Initialization Complete",
        [
            ("Status", "Configuration saved successfully"),
            ("Config file", str(config.get_config_path())),
        ],
    )


@main.command()
@click.argument("path", default="/")
@click.option(
    "--depth",
    "-d",
    type=int,
    default=None,
    help="Levels to load below PATH (default: everything)",
)
@click.option("--local", "use_local", is_flag=True, help="Show the local tree")
@click.pass_context
def tree(ctx: Any, path: str, depth: Optional[int], use_local: bool) -> None:
    """Show the folder tree below PATH."""
    out: OutputFormatter = ctx.obj["out"]
    csp = _local(ctx) if use_local else _remote(ctx)

    try:
        folder = _resolve(ctx, csp, path, folder=True)
        assert isinstance(folder, Folder)
        folder.build_tree(config.get_tree_depth() if depth is None else depth)
    except OvercastError as e:
        out.error(str(e))
        ctx.exit(1)

    if out.json_output:
        out.output_json(_tree_to_dict(folder))
        return

    root = Tree(f"[bold blue]{folder.path}")
    _add_branch(root, folder, out)
    out.console.print(root)


@main.command()
@click.argument("path", default="/")
@click.option("--local", "use_local", is_flag=True, help="List a local folder")
@click.pass_context
def ls(ctx: Any, path: str, use_local: bool) -> None:
    """List the entries of the folder PATH."""
    out: OutputFormatter = ctx.obj["out"]
    csp = _local(ctx) if use_local else _remote(ctx)

    try:
        folder = _resolve(ctx, csp, path, folder=True)
    except OvercastError as e:
        out.error(str(e))
        ctx.exit(1)
    assert isinstance(folder, Folder)

    table_data = [
        {
            "name": child.name + ("/" if child.is_folder else ""),
            "size": "" if child.is_folder else out.format_size(child.size),
            "modified": child.modified.strftime("%Y-%m-%d %H:%M")
            if child.modified
            else "",
        }
        for child in sorted(folder.children, key=Container.name_key)
    ]
    out.output_table(
        table_data,
        ["name", "size", "modified"],
        {"name": "Name", "size": "Size", "modified": "Modified"},
    )


@main.command()
@click.argument("path")
@click.pass_context
def mkdir(ctx: Any, path: str) -> None:
    """Create the folder PATH (its parent must exist)."""
    out: OutputFormatter = ctx.obj["out"]
    csp = _remote(ctx)
    parent_path, _, name = path.rstrip("/").rpartition("/")

    try:
        parent = _resolve(ctx, csp, parent_path or "/", folder=True)
        assert isinstance(parent, Folder)
        folder = parent.create_folder(name)
    except OvercastError as e:
        out.error(str(e))
        ctx.exit(1)

    out.success(f"Created folder {folder.path}")


@main.command()
@click.argument("source")
@click.argument("destination")
@click.option("--overwrite", is_flag=True, help="Replace an existing entry")
@click.pass_context
def copy(ctx: Any, source: str, destination: str, overwrite: bool) -> None:
    """Copy SOURCE into the folder DESTINATION."""
    out: OutputFormatter = ctx.obj["out"]
    csp = _remote(ctx)

    try:
        container = _resolve(ctx, csp, source)
        folder = _resolve(ctx, csp, destination, folder=True)
        assert isinstance(folder, Folder)
        result = container.copy(folder, overwrite=overwrite)
    except OvercastError as e:
        out.error(str(e))
        ctx.exit(1)

    out.success(f"Copied {source} to {result.path}")


@main.command()
@click.argument("source")
@click.argument("destination")
@click.option("--overwrite", is_flag=True, help="Replace an existing entry")
@click.pass_context
def move(ctx: Any, source: str, destination: str, overwrite: bool) -> None:
    """Move SOURCE into the folder DESTINATION."""
    out: OutputFormatter = ctx.obj["out"]
    csp = _remote(ctx)

    try:
        container = _resolve(ctx, csp, source)
        folder = _resolve(ctx, csp, destination, folder=True)
        assert isinstance(folder, Folder)
        container.move(folder, overwrite=overwrite)
    except OvercastError as e:
        out.error(str(e))
        ctx.exit(1)

    out.success(f"Moved {source} to {container.path}")


@main.command()
@click.argument("path")
@click.argument("new_name")
@click.pass_context
def rename(ctx: Any, path: str, new_name: str) -> None:
    """Rename the entry at PATH to NEW_NAME."""
    out: OutputFormatter = ctx.obj["out"]
    csp = _remote(ctx)

    try:
        container = _resolve(ctx, csp, path)
        container.rename(new_name)
    except OvercastError as e:
        out.error(str(e))
        ctx.exit(1)

    out.success(f"Renamed {path} to {container.path}")


@main.command()
@click.argument("path")
@click.option("--yes", "-y", is_flag=True, help="Don't ask for confirmation")
@click.pass_context
def rm(ctx: Any, path: str, yes: bool) -> None:
    """Delete the entry at PATH."""
    out: OutputFormatter = ctx.obj["out"]
    csp = _remote(ctx)

    container = _resolve(ctx, csp, path)
    if not yes and not click.confirm(f"Delete {container.path}?", default=False):
        out.warning("Deletion cancelled.")
        return

    try:
        container.delete()
    except OvercastError as e:
        out.error(str(e))
        ctx.exit(1)

    out.success(f"Deleted {path}")


@main.command()
@click.argument("path", type=click.Path(exists=True, path_type=Path))
@click.argument("remote_folder", default="/")
@click.option("--overwrite", is_flag=True, help="Replace existing remote files")
@click.option("--no-progress", is_flag=True, help="Disable progress bars")
@click.pass_context
def upload(
    ctx: Any, path: Path, remote_folder: str, overwrite: bool, no_progress: bool
) -> None:
    """Upload the local file or folder PATH into REMOTE_FOLDER."""
    out: OutputFormatter = ctx.obj["out"]
    remote = _remote(ctx)
    local = _local(ctx)

    try:
        container = _resolve(ctx, local, _local_relative(ctx, path))
        folder = _resolve(ctx, remote, remote_folder, folder=True)
    except OvercastError as e:
        out.error(str(e))
        ctx.exit(1)
    assert isinstance(folder, Folder)

    out.progress_message(f"Uploading {container.path} to {folder.path}")
    _run_transfers(
        ctx,
        remote,
        lambda listener: remote.enqueue_upload(container, folder, overwrite, listener),
        not no_progress,
    )


@main.command()
@click.argument("remote_path")
@click.argument(
    "local_folder",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=".",
)
@click.option("--overwrite", is_flag=True, help="Replace existing local files")
@click.option("--no-progress", is_flag=True, help="Disable progress bars")
@click.pass_context
def download(
    ctx: Any, remote_path: str, local_folder: Path, overwrite: bool, no_progress: bool
) -> None:
    """Download the remote file or folder REMOTE_PATH into LOCAL_FOLDER."""
    out: OutputFormatter = ctx.obj["out"]
    remote = _remote(ctx)
    local = _local(ctx)

    try:
        container = _resolve(ctx, remote, remote_path)
        folder = _resolve(ctx, local, _local_relative(ctx, local_folder), folder=True)
    except OvercastError as e:
        out.error(str(e))
        ctx.exit(1)
    assert isinstance(folder, Folder)

    out.progress_message(f"Downloading {container.path} to {local_folder}")
    _run_transfers(
        ctx,
        remote,
        lambda listener: remote.enqueue_download(container, folder, overwrite, listener),
        not no_progress,
    )


@main.command()
@click.argument("path", default="/")
@click.pass_context
def du(ctx: Any, path: str) -> None:
    """Show the size of PATH and the remaining remote space."""
    out: OutputFormatter = ctx.obj["out"]
    csp = _remote(ctx)

    try:
        container = _resolve(ctx, csp, path)
        if isinstance(container, Folder):
            container.build_tree(UNLIMITED_DEPTH)
            size = container.calculate_size()
        else:
            size = container.size
        free = csp.calculate_remote_free_space()
    except OvercastError as e:
        out.error(str(e))
        ctx.exit(1)

    if out.json_output:
        out.output_json({"path": container.path, "size": size, "free": free})
        return

    out.print(
        f"{container.path}: {out.format_size(size)} | "
        f"Free: {out.format_size(free)}"
    )


if __name__ == "__main__":
    main()
