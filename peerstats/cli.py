"""Click CLI entry point for peerstats."""
from __future__ import annotations

import json
import logging

import click
from rich.console import Console

from peerstats import __version__
from peerstats.collector import CollectorOptions, collect
from peerstats.config import get_config_path, load_config
from peerstats.output.terminal import render_summary


@click.command()
@click.version_option(version=__version__, prog_name="peerstats")
@click.option("--wgi", default="", help="WireGuard interface, e.g. wg0 (required)")
@click.option("--debug", is_flag=True,
              help="Print skipped subsystems to stderr, indented JSON output")
@click.option("--accel-cmd", "accel_cmd", is_flag=True,
              help="Collect IPsec sessions through accel-cmd")
@click.option("--root", default="/", type=click.Path(file_okay=False),
              help="Filesystem root the config and log paths are read from")
@click.option("--config", "config_path", type=click.Path(dir_okay=False), default=None,
              help="JSON config file (default: $PEERSTATS_CONFIG)")
@click.pass_context
def cli(ctx: click.Context, wgi: str, debug: bool, accel_cmd: bool,
        root: str, config_path: str | None) -> None:
    """Collect per-peer VPN statistics and print them as JSON."""
    if not wgi:
        click.echo(ctx.get_help(), err=True)
        ctx.exit(1)

    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(name)s: %(message)s",
    )

    cfg = load_config(get_config_path(config_path))
    options = CollectorOptions.from_config(
        cfg, wgi=wgi, root=root, accel_cmd=accel_cmd,
    )

    report = collect(options)

    if debug:
        click.echo(json.dumps(report.to_dict(), indent=2))
        render_summary(report, Console(stderr=True))
    else:
        click.echo(json.dumps(report.to_dict(), separators=(",", ":")))


def main() -> None:
    """Entry point."""
    cli()


if __name__ == "__main__":
    main()
