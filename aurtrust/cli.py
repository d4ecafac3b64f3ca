"""CLI entrypoint for aur-trust."""

from __future__ import annotations

import sys
from pathlib import Path

import click

from . import __version__
from .config import Settings, load_settings
from .errors import AurTrustError
from .logging_setup import configure_logging
from .trust.fingerprint import PackageIdentity


class FatalError(click.ClickException):
    """Ledger-wide failure; the run is aborted."""

    exit_code = 2


def _settings(ctx: click.Context) -> Settings:
    return ctx.obj["settings"]


def _parse_identities(ctx: click.Context, values: tuple[str, ...]) -> list[PackageIdentity]:
    default_repository = _settings(ctx).default_repository
    identities = []
    for value in values:
        try:
            identities.append(PackageIdentity.parse(value, default_repository=default_repository))
        except ValueError as e:
            raise click.BadParameter(str(e), param_hint="IDENTITY") from e
    return identities


def _run(fn, *args, **kwargs) -> None:
    """Run a command function and exit with its code; abort on fatal errors."""
    try:
        exit_code = fn(*args, **kwargs)
    except AurTrustError as e:
        raise FatalError(str(e)) from e
    sys.exit(exit_code)


@click.group()
@click.version_option(__version__, prog_name="aur-trust")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=False, dir_okay=False, path_type=Path),
    default=None,
    help="Path to config.toml (defaults to $XDG_CONFIG_HOME/aur-trust/config.toml)",
)
@click.option(
    "--ledger",
    "ledger_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Path to the trust ledger (overrides the config file)",
)
@click.option("--verbose", "-v", count=True, help="More log output (repeat for debug)")
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None, ledger_path: Path | None, verbose: int) -> None:
    """aur-trust - Track which AUR packages you reviewed and trust.

    Approve a package once you have reviewed it; `check` then tells you when
    upstream has changed since your review.
    """
    configure_logging(verbose)
    ctx.ensure_object(dict)
    try:
        settings = load_settings(config_path)
    except AurTrustError as e:
        raise FatalError(str(e)) from e
    ctx.obj["settings"] = settings.with_ledger(ledger_path)


@cli.command()
@click.argument("identities", nargs=-1, metavar="[IDENTITY]...")
@click.option("--json", "output_json", is_flag=True, help="Output the report as JSON")
@click.pass_context
def check(ctx: click.Context, identities: tuple[str, ...], output_json: bool) -> None:
    """Check trusted packages against upstream.

    Checks every package in the ledger, plus any IDENTITY given (as
    `repo/name` or just `name` for the default repository).

    Exits 0 if all packages are trusted (or not yet approved), 1 if any
    package changed, was removed upstream, or could not be checked.
    """
    from .commands.trust_cmd import run_check

    requested = _parse_identities(ctx, identities)
    _run(run_check, _settings(ctx), requested, output_json=output_json)


@cli.command()
@click.argument("identities", nargs=-1, required=True, metavar="IDENTITY...")
@click.option("--yes", "-y", "assume_yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def approve(ctx: click.Context, identities: tuple[str, ...], assume_yes: bool) -> None:
    """Trust packages at their current upstream revision.

    Examples:

        aur-trust approve paru

        aur-trust approve aur/yay aur/paru --yes
    """
    from .commands.trust_cmd import run_approve

    confirm = None if assume_yes else (lambda prompt: click.confirm(prompt, default=False))
    _run(run_approve, _settings(ctx), _parse_identities(ctx, identities), confirm=confirm)


@cli.command()
@click.argument("identities", nargs=-1, required=True, metavar="IDENTITY...")
@click.pass_context
def remove(ctx: click.Context, identities: tuple[str, ...]) -> None:
    """Stop tracking packages (e.g. after they were removed upstream)."""
    from .commands.trust_cmd import run_remove

    _run(run_remove, _settings(ctx), _parse_identities(ctx, identities))


@cli.command("list")
@click.option("--json", "output_json", is_flag=True, help="Output the ledger as JSON")
@click.pass_context
def list_cmd(ctx: click.Context, output_json: bool) -> None:
    """Show trusted packages without contacting upstream."""
    from .commands.trust_cmd import run_list

    _run(run_list, _settings(ctx), output_json=output_json)


@cli.command()
@click.option("--last", "last_n", type=int, default=None, help="Show only the last N entries")
@click.pass_context
def history(ctx: click.Context, last_n: int | None) -> None:
    """Show the approval history."""
    from .commands.trust_cmd import run_history

    _run(run_history, _settings(ctx), last_n=last_n)


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
