"""Root CLI group and version flag."""

import signal

import click

# SIGPIPE must not kill the process when stdout closes mid-echo.
if hasattr(signal, "SIGPIPE"):
    signal.signal(signal.SIGPIPE, signal.SIG_IGN)

from threadline import __version__  # noqa: E402
from threadline.commands.init import init  # noqa: E402
from threadline.commands.up import up  # noqa: E402


@click.group()
@click.version_option(version=__version__, prog_name="threadline")
def cli() -> None:
    """Threadline: chat threads bridged to sandboxed agent sessions."""


cli.add_command(init)
cli.add_command(up)
