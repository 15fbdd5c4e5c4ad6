"""Entry point for running the serverkit CLI.

Executing ``python -m serverkit.interfaces.cli`` (or the installed
``serverkit`` script) invokes this group.
"""

import click

from serverkit import __version__

from .check import check
from .serve import serve


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(__version__, prog_name="serverkit")
def cli() -> None:
    """Validate and run serverkit-configured servers."""


cli.add_command(check)
cli.add_command(serve)


if __name__ == "__main__":
    cli()
