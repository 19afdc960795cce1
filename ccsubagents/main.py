"""
ccsubagents — CLI entrypoint.

Usage:
    ccsubagents install
    ccsubagents install --target both
    ccsubagents update
    ccsubagents uninstall
    ccsubagents status --json
    python -m ccsubagents.main --help

Exit codes: 0 success, 1 failure, 3 finished but tracked paths outside
the managed locations were left on disk.
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
import signal
import sys
import threading
from collections.abc import Iterator
from pathlib import Path

import click

from ccsubagents import __version__
from ccsubagents.core.config.paths import InstallTarget
from ccsubagents.core.errors import BootstrapError, RollbackError
from ccsubagents.core.models.operation import STATUS_COMPLETED_WITH_SKIPS
from ccsubagents.core.observability.logging_config import (
    LOG_FILE_ENV,
    LOG_FILE_LEVEL_ENV,
    resolve_level,
    setup_logging,
)

logger = logging.getLogger(__name__)

EXIT_COMPLETED_WITH_SKIPS = 3


@click.group()
@click.version_option(version=__version__, prog_name="ccsubagents")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to config.yml (default: $CCSUBAGENTS_CONFIG or ~/.config/ccsubagents/config.yml).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """Install, update and remove the local-artifact agent bundle."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    # ── Logging setup (once, at process start) ──────────────────
    setup_logging(
        level=resolve_level(debug=debug, verbose=verbose, quiet=quiet),
        log_file=os.environ.get(LOG_FILE_ENV),
        log_file_level=os.environ.get(LOG_FILE_LEVEL_ENV),
    )


# ── Helpers ─────────────────────────────────────────────────────


def _build_bootstrapper(
    ctx: click.Context,
    skip_attestation: bool = False,
    target: str | None = None,
):
    """Create the Bootstrapper for this invocation.

    Tests inject their own via ``obj={"bootstrapper_factory": ...}``.
    """
    factory = ctx.obj.get("bootstrapper_factory")
    if factory is not None:
        return factory(skip_attestation=skip_attestation, target=target)

    from ccsubagents.core.config.loader import find_config_file, load_config
    from ccsubagents.core.use_cases.install import Bootstrapper

    config_path: Path | None = ctx.obj.get("config_path")
    if config_path is None:
        config_path = find_config_file(Path.home())
    config = load_config(config_path)

    return Bootstrapper(config=config, skip_attestation=skip_attestation, target=target)


@contextlib.contextmanager
def _cancel_on_interrupt() -> Iterator[threading.Event]:
    """Turn Ctrl-C into a cancellation request for the running operation."""
    cancel = threading.Event()

    def _handler(signum, frame):
        if cancel.is_set():
            raise KeyboardInterrupt
        click.secho("\n⏹  Cancelling — rolling back…", fg="yellow", err=True)
        cancel.set()

    try:
        previous = signal.signal(signal.SIGINT, _handler)
    except ValueError:
        # Not the main thread: no handler, Ctrl-C behaves as usual
        yield cancel
        return
    try:
        yield cancel
    finally:
        signal.signal(signal.SIGINT, previous)


def _fail(err: BootstrapError, as_json: bool) -> None:
    if as_json:
        click.echo(json.dumps(err.to_dict(), indent=2))
    else:
        click.secho(f"❌ {err.message}", fg="red")
        if isinstance(err, RollbackError):
            click.secho(
                "   Rollback was incomplete — inspect the paths above before retrying.",
                fg="yellow",
                err=True,
            )
    sys.exit(1)


def _print_skipped(paths: list[str]) -> None:
    if not paths:
        return
    click.echo()
    click.secho("⚠️  Left on disk (outside managed locations):", fg="yellow")
    for path in paths:
        click.echo(f"   • {path}")


def _print_warnings(warnings: list[str]) -> None:
    for warning in warnings:
        click.secho(f"⚠️  {warning}", fg="yellow", err=True)


def _finish(result) -> None:
    """Exit non-zero when tracked paths were refused by the allowlist."""
    if result.status == STATUS_COMPLETED_WITH_SKIPS:
        sys.exit(EXIT_COMPLETED_WITH_SKIPS)


def _run_install(
    ctx: click.Context,
    update: bool,
    as_json: bool,
    skip_attestation: bool,
    target: str | None,
) -> None:
    quiet = ctx.obj.get("quiet", False)
    try:
        boot = _build_bootstrapper(ctx, skip_attestation=skip_attestation, target=target)
        if skip_attestation and not as_json:
            click.secho("⚠️  Attestation verification disabled", fg="yellow", err=True)
        with _cancel_on_interrupt() as cancel:
            result = boot.install_or_update(update=update, cancel=cancel)
    except BootstrapError as e:
        _fail(e, as_json)
        return

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        _finish(result)
        return

    if result.unchanged:
        click.secho(f"✅ {result.release_tag} already installed (re-applied)", fg="green", bold=True)
    elif result.operation == "update":
        click.secho(
            f"✅ Updated {result.previous_release_tag} → {result.release_tag}",
            fg="green",
            bold=True,
        )
    else:
        click.secho(f"✅ Installed {result.release_tag}", fg="green", bold=True)

    if not quiet:
        click.echo(f"   Target: {result.target}")
        click.echo(f"   Files: {len(result.managed_files)}")
        click.echo(f"   Dirs:  {len(result.managed_dirs)}")
        if result.removed_paths:
            click.echo(f"   Removed stale: {len(result.removed_paths)}")
        click.echo(f"   Took:  {result.duration_ms}ms")
    _print_skipped(result.skipped_paths)
    _print_warnings(result.warnings)
    _finish(result)


# ── Commands ────────────────────────────────────────────────────


_skip_attestation_option = click.option(
    "--skip-attestations-check",
    "skip_attestation",
    is_flag=True,
    help="Do not verify release attestations with gh (unsafe).",
)
_json_option = click.option(
    "--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.",
)
_target_option = click.option(
    "--target",
    "-t",
    type=click.Choice([t.value for t in InstallTarget], case_sensitive=False),
    default=None,
    help="Editor channel(s) to configure (default: config file, then the current install, then insiders).",
)


@cli.command()
@_json_option
@_skip_attestation_option
@_target_option
@click.pass_context
def install(ctx: click.Context, as_json: bool, skip_attestation: bool, target: str | None) -> None:
    """Install the latest release (updates an existing install)."""
    _run_install(ctx, update=False, as_json=as_json, skip_attestation=skip_attestation, target=target)


@cli.command()
@_json_option
@_skip_attestation_option
@_target_option
@click.pass_context
def update(ctx: click.Context, as_json: bool, skip_attestation: bool, target: str | None) -> None:
    """Update to the latest release (installs if nothing is tracked)."""
    _run_install(ctx, update=True, as_json=as_json, skip_attestation=skip_attestation, target=target)


@cli.command()
@_json_option
@click.pass_context
def uninstall(ctx: click.Context, as_json: bool) -> None:
    """Remove everything a previous install created."""
    quiet = ctx.obj.get("quiet", False)
    try:
        boot = _build_bootstrapper(ctx)
        with _cancel_on_interrupt() as cancel:
            result = boot.uninstall(cancel=cancel)
    except BootstrapError as e:
        _fail(e, as_json)
        return

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        _finish(result)
        return

    if result.nothing_to_do:
        click.secho("Nothing to uninstall.", fg="white")
        return

    if result.skipped_paths:
        click.secho(
            f"⚠️  Uninstalled {result.release_tag}, but some tracked paths were not removed",
            fg="yellow",
            bold=True,
        )
    else:
        click.secho(f"✅ Uninstalled {result.release_tag}", fg="green", bold=True)
    if not quiet:
        click.echo(f"   Removed: {len(result.removed_paths)} path(s)")
    _print_skipped(result.skipped_paths)
    _finish(result)


@cli.command()
@_json_option
@click.pass_context
def status(ctx: click.Context, as_json: bool) -> None:
    """Show what is installed and where."""
    from ccsubagents.core.use_cases.status import get_status

    try:
        result = get_status(_build_bootstrapper(ctx))
    except BootstrapError as e:
        _fail(e, as_json)
        return

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    if not result.installed:
        click.secho("Not installed.", fg="white")
    else:
        click.secho(f"\n📦 {result.repo} {result.release_tag}", fg="cyan", bold=True)
        click.echo(f"   Installed at: {result.installed_at}")
        click.echo(f"   Target:       {result.install_target}")
        click.echo(f"   Managed: {result.managed_files} file(s), {result.managed_dirs} dir(s)")
        click.echo(f"   settings.json edit: {'yes' if result.settings_added else 'no'}")
        click.echo(f"   mcp.json edit:      {'yes' if result.mcp_touched else 'no'}")

        if result.missing_paths:
            click.echo()
            click.secho(f"   ⚠️  Missing on disk ({len(result.missing_paths)}):", fg="yellow")
            for path in result.missing_paths:
                click.echo(f"     • {path}")

    if not ctx.obj.get("quiet", False):
        click.echo()
        click.secho("   Paths:", fg="white", bold=True)
        for key, val in result.paths.items():
            click.echo(f"     {key}: {val}")

    op = result.last_operation
    if op:
        click.echo()
        click.secho("   Last operation:", fg="white", bold=True)
        status_color = {
            "ok": "green",
            "failed": "red",
            "rolled_back": "yellow",
            "completed_with_skips": "yellow",
        }.get(op.get("status", ""), "red")
        click.echo(f"     {op.get('operation_type')} — ", nl=False)
        click.secho(op.get("status", ""), fg=status_color)
        click.echo(f"     at {op.get('timestamp')}")

    click.echo()


if __name__ == "__main__":
    cli()
