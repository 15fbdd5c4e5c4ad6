"""Options shared by the serverkit commands."""

from __future__ import annotations

from pathlib import Path

import click

from serverkit.infrastructure.config import SYSTEM_CONFIG_DIR

config_dir_option = click.option(
    "--config-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory searched before /etc instead of the working directory.",
)


def search_dirs_for(config_dir: Path | None) -> list[Path] | None:
    if config_dir is None:
        return None
    return [config_dir, SYSTEM_CONFIG_DIR]
