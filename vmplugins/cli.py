"""vmplugins CLI — manage versioned VM plugin packages."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from vmplugins import __version__
from vmplugins.errors import PluginError
from vmplugins.registry.models import PackageRef, parse_ref
from vmplugins.settings import PluginSettings, load_settings, resolve_plugin_dir

console = Console()
err_console = Console(stderr=True)


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def _manager(ctx: click.Context):
    from vmplugins.manager.package_manager import PackageManager

    try:
        return PackageManager(ctx.obj)
    except PluginError as e:
        _fail(str(e))


def _fail(message: str) -> None:
    err_console.print(f"[red]Error:[/] {message}")
    sys.exit(1)


def _parse_ref(ctx, param, value: str) -> PackageRef:
    try:
        return parse_ref(value)
    except ValueError as e:
        raise click.BadParameter(str(e)) from e


@click.group()
@click.version_option(version=__version__)
@click.option("--base-dir", "-d", default=None, help="Plugin base directory (default: $LUX_PLUGIN_DIR or ~/.lux/plugins)")
@click.option("--config", "-c", "config_path", default=None, type=click.Path(exists=True, dir_okay=False), help="YAML settings file")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(ctx: click.Context, base_dir: str | None, config_path: str | None, verbose: bool):
    """vmplugins — versioned package manager for VM plugin binaries.

    Installs plugin binaries under packages/<org>/<name>/<version>/ and
    exposes the active one for each VM ID as current/<vmid>.
    """
    if config_path:
        settings = load_settings(config_path)
    else:
        settings = PluginSettings.from_env()
    if base_dir:
        settings.base_dir = Path(base_dir).expanduser()
    if verbose:
        settings.log_level = "DEBUG"
    _configure_logging(settings.log_level)
    ctx.obj = settings


# ── Identifiers ──────────────────────────────────────────────────────


@main.command()
@click.argument("vm_name")
def vmid(vm_name: str):
    """Print the VM ID derived from VM_NAME."""
    from vmplugins.ids import vmid as compute_vmid

    click.echo(compute_vmid(vm_name))


@main.command(name="well-known")
def well_known():
    """List the VM IDs of the well-known VMs."""
    from vmplugins.ids import well_known_vmids

    table = Table(title="Well-known VMs")
    table.add_column("Name", style="cyan")
    table.add_column("VM ID", overflow="fold")
    for name, value in well_known_vmids().items():
        table.add_row(name, value)
    console.print(table)


# ── Install / link ───────────────────────────────────────────────────


def _package_options(f):
    options = [
        click.option("--org", required=True, help="Organization, e.g. luxfi"),
        click.option("--name", "name", required=True, help="Package name, e.g. evm"),
        click.option("--version", "version", required=True, help="Package version, e.g. v1.0.0"),
        click.option("--vm-name", default="", help="Canonical VM name to derive the VM ID from"),
        click.option("--vmid", "vmid_value", default="", help="Explicit VM ID (overrides --vm-name)"),
        click.option("--binary", default="", help="Binary filename (default: package name)"),
        click.option("--alias", "aliases", multiple=True, help="Alternative VM name"),
        click.option("--description", default="", help="Human-readable description"),
        click.option("--repository", default="", help="Source repository URL"),
    ]
    for option in reversed(options):
        f = option(f)
    return f


def _build_manifest(org, name, version, vm_name, vmid_value, binary, aliases, description, repository):
    from vmplugins.ids import vmid as compute_vmid
    from vmplugins.packages.models import Manifest

    if not vmid_value and not vm_name:
        raise click.UsageError("Either --vm-name or --vmid is required")
    return Manifest(
        org=org,
        name=name,
        version=version,
        vmid=vmid_value or compute_vmid(vm_name),
        vm_name=vm_name,
        aliases=list(aliases),
        binary=binary,
        description=description,
        repository=repository,
    )


@main.command()
@click.argument("binary_path", type=click.Path(exists=True, dir_okay=False))
@_package_options
@click.pass_context
def install(ctx: click.Context, binary_path: str, **fields):
    """Copy BINARY_PATH into the package store and activate it."""
    manifest = _build_manifest(**fields)
    pm = _manager(ctx)
    try:
        pm.install(manifest, binary_path)
    except PluginError as e:
        _fail(str(e))
    console.print(f"  [green]Installed[/] {manifest.qualified_id} ({manifest.size} bytes)")
    console.print(f"  VM ID: {manifest.vmid}", soft_wrap=True)


@main.command()
@click.argument("binary_path", type=click.Path(exists=True, dir_okay=False))
@_package_options
@click.pass_context
def link(ctx: click.Context, binary_path: str, **fields):
    """Symlink BINARY_PATH into the package store and activate it.

    Rebuilding BINARY_PATH in place updates the active plugin without
    reinstalling.
    """
    manifest = _build_manifest(**fields)
    pm = _manager(ctx)
    try:
        pm.link(manifest, binary_path)
    except PluginError as e:
        _fail(str(e))
    console.print(f"  [green]Linked[/] {manifest.qualified_id} -> {Path(binary_path).resolve()}", soft_wrap=True)
    console.print(f"  VM ID: {manifest.vmid}", soft_wrap=True)


# ── Activate / uninstall ─────────────────────────────────────────────


@main.command()
@click.argument("package", callback=_parse_ref)
@click.pass_context
def activate(ctx: click.Context, package: PackageRef):
    """Make PACKAGE (org/name@version) the active binary for its VM ID."""
    pm = _manager(ctx)
    try:
        manifest = pm.activate(package.org, package.name, package.version)
    except PluginError as e:
        _fail(str(e))
    console.print(f"  [green]Activated[/] {manifest.qualified_id} as {manifest.vmid}", soft_wrap=True)


@main.command()
@click.argument("package", callback=_parse_ref)
@click.pass_context
def uninstall(ctx: click.Context, package: PackageRef):
    """Remove PACKAGE (org/name@version).

    If it was active, its VM ID is left unbound until another version is
    activated.
    """
    pm = _manager(ctx)
    try:
        pm.uninstall(package.org, package.name, package.version)
    except PluginError as e:
        _fail(str(e))
    console.print(f"  [green]Uninstalled[/] {package}")


# ── Queries ──────────────────────────────────────────────────────────


@main.command(name="list")
@click.pass_context
def list_packages(ctx: click.Context):
    """List every installed package version."""
    pm = _manager(ctx)
    manifests = pm.list()
    if not manifests:
        console.print("[yellow]No plugins installed.[/]")
        return

    active = {m.qualified_id for m in pm.list_active().values()}
    table = Table(title=f"Installed plugins ({len(manifests)})")
    table.add_column("Package", style="cyan")
    table.add_column("Version")
    table.add_column("Active", justify="center")
    table.add_column("Linked", justify="center")
    table.add_column("Size", justify="right")
    for m in manifests:
        table.add_row(
            m.package_key,
            m.version,
            "[green]Y[/]" if m.qualified_id in active else "",
            "Y" if m.linked else "",
            str(m.size),
        )
    console.print(table)


@main.command(name="list-active")
@click.pass_context
def list_active(ctx: click.Context):
    """List the active package for each VM ID."""
    pm = _manager(ctx)
    active = pm.list_active()
    if not active:
        console.print("[yellow]No active plugins.[/]")
        return
    for vmid_value, m in active.items():
        console.print(f"  [cyan]{vmid_value}[/] {m.qualified_id}", soft_wrap=True)


@main.command()
@click.argument("package", callback=_parse_ref)
@click.pass_context
def info(ctx: click.Context, package: PackageRef):
    """Show the manifest of PACKAGE (org/name@version)."""
    import json

    from vmplugins.packages.models import manifest_to_dict

    pm = _manager(ctx)
    try:
        manifest = pm.get_manifest(package.org, package.name, package.version)
    except PluginError as e:
        _fail(str(e))
    click.echo(json.dumps(manifest_to_dict(manifest), indent=2))


@main.command()
@click.argument("vmid_value", metavar="VMID")
@click.pass_context
def verify(ctx: click.Context, vmid_value: str):
    """Check that VMID resolves to an executable binary.

    Without a current/ directory the base directory is treated as a flat
    <vmid> layout.
    """
    from vmplugins.manager.flat import FlatPluginDirectory

    settings = ctx.obj
    try:
        if settings.current_dir.is_dir():
            binary = _manager(ctx).verify(vmid_value)
        else:
            binary = FlatPluginDirectory(resolve_plugin_dir(settings.base_dir)).verify(vmid_value)
    except PluginError as e:
        _fail(str(e))
    console.print(f"  [green]OK[/] {vmid_value} -> {binary}", soft_wrap=True)


@main.command(name="current-dir")
@click.pass_context
def current_dir(ctx: click.Context):
    """Print the directory the host loads active plugins from."""
    click.echo(str(resolve_plugin_dir(ctx.obj.base_dir)))


# ── Migration ────────────────────────────────────────────────────────


@main.command()
@click.argument("legacy_dir", required=False)
@click.pass_context
def migrate(ctx: click.Context, legacy_dir: str | None):
    """Import a legacy flat VM ID symlink directory.

    LEGACY_DIR defaults to the legacy-dir setting.
    """
    pm = _manager(ctx)
    try:
        report = pm.migrate_from_legacy(legacy_dir)
    except ValueError as e:
        raise click.UsageError(str(e)) from e

    for m in report.migrated:
        console.print(f"  [green]v[/] {m.vmid} -> {m.qualified_id}", soft_wrap=True)
    for failure in report.failed:
        console.print(f"  [red]x[/] {failure.vmid}: {failure.error}", soft_wrap=True)
    console.print(f"\n{report.summary()}")


if __name__ == "__main__":
    main()
