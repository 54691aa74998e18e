"""Main CLI entry point for asynctracker commands."""

import asyncio
import click
from typing import Any


async def run_demo(
    delay: float | None = None,
    fanout: int = 3,
    depth: int = 3,
    seed: int | None = None,
) -> None:
    """Run a random async work tree and report settle notifications."""
    from asynctracker.cli.commands.demo import demo_command

    await demo_command(delay, fanout, depth, seed)


@click.group()
@click.version_option(package_name="asynctracker")
def cli() -> None:
    """asynctracker - Quiescence detection for asyncio work trees."""
    pass


@cli.command("demo")
@click.option(
    "--delay",
    "-d",
    type=float,
    default=None,
    help="Debounce delay in seconds (default: next loop iteration)",
)
@click.option(
    "--fanout",
    "-f",
    type=click.IntRange(1, 10),
    default=3,
    help="Maximum children scheduled by each unit of work",
)
@click.option(
    "--depth",
    type=click.IntRange(0, 6),
    default=3,
    help="Depth of the work tree",
)
@click.option(
    "--seed",
    type=int,
    default=None,
    help="Random seed for a reproducible tree",
)
def demo_command_cli(delay: Any, fanout: Any, depth: Any, seed: Any) -> None:
    """Run a random tree of callbacks, timers and tasks under a tracker."""
    asyncio.run(run_demo(delay, fanout, depth, seed))


def main() -> None:
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
